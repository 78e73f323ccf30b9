"""
qc_client/uploads.py
-----------------------------------------------------------------------------
Upload coordinator: enforces per-category slot limits and keeps the working
set of acknowledged uploads.

Slot rules
----------
traveler – at most one file.
image    – at most one file.
bom      – at most ``MAX_BOM_FILES`` (4).  Extra inputs beyond the free slots
           are dropped silently; exceeding the cap is not an error.

Uploads are remote + local (the service stores the file, the coordinator
records the acknowledgement).  Removals are local only: an already-uploaded
remote artifact is never rolled back.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from qc_client.api_client import AnalysisServiceClient, LocalFile
from qc_client.errors import ServiceError
from qc_client.schema import FileCategory, UploadedFile

logger = logging.getLogger(__name__)

MAX_BOM_FILES: int = 4


@dataclass
class UploadOutcome:
    """What one ``submit`` call achieved."""

    added: list[UploadedFile] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    dropped: int = 0


class UploadCoordinator:
    def __init__(
        self, client: AnalysisServiceClient, *, max_bom_files: int = MAX_BOM_FILES
    ) -> None:
        self._client = client
        self.max_bom_files = max_bom_files
        self._files: list[UploadedFile] = []
        # Slots held by uploads still awaiting acknowledgement.
        self._reserved: dict[FileCategory, int] = {c: 0 for c in FileCategory}

    @property
    def files(self) -> list[UploadedFile]:
        """Copy of the working set in upload order."""
        return list(self._files)

    def file_ids(self) -> list[str]:
        return [f.id for f in self._files]

    def by_category(self, category: FileCategory) -> list[UploadedFile]:
        category = FileCategory(category)
        return [f for f in self._files if f.type is category]

    def free_slots(self, category: FileCategory) -> int:
        """Number of further files ``category`` can accept right now."""
        category = FileCategory(category)
        limit = self.max_bom_files if category is FileCategory.BOM else 1
        used = len(self.by_category(category)) + self._reserved[category]
        return max(limit - used, 0)

    async def submit(
        self, files: LocalFile | Iterable[LocalFile], category: FileCategory
    ) -> UploadOutcome:
        """
        Upload as many of ``files`` as ``category`` has free slots for.

        Free slots are reserved up front and released as each upload settles,
        so overlapping ``submit`` calls can never overfill a category.  Files
        are uploaded one at a time, in order.  A failed upload is recorded in
        the outcome and does not stop the rest of the batch.

        Parameters
        ----------
        files    : One file or an ordered batch.
        category : Target slot.

        Returns
        -------
        UploadOutcome : Records appended, classified error messages, and the
                        number of inputs dropped for lack of a slot.
        """
        category = FileCategory(category)
        batch = [files] if isinstance(files, LocalFile) else list(files)
        if category is not FileCategory.BOM:
            # Single-file slots only ever look at the first input.
            batch = batch[:1]

        remaining = self.free_slots(category)
        outcome = UploadOutcome(dropped=max(len(batch) - remaining, 0))
        if remaining <= 0:
            logger.debug("No free %s slots; dropping %d file(s)", category.value, len(batch))
            return outcome

        accepted = batch[:remaining]
        held = len(accepted)
        self._reserved[category] += held
        try:
            for local in accepted:
                try:
                    ack = await self._client.upload_file(local, category)
                except ServiceError as exc:
                    logger.warning("Upload of %r failed: %s", local.filename, exc.message)
                    outcome.errors.append(exc.message)
                    continue
                finally:
                    self._reserved[category] -= 1
                    held -= 1
                record = UploadedFile(id=ack.file_id, filename=local.filename, type=category)
                self._files.append(record)
                outcome.added.append(record)
        finally:
            # Release whatever is still held if the batch was cancelled midway.
            self._reserved[category] -= held
        return outcome

    def remove(self, file_id: str) -> bool:
        """Drop the record with ``file_id`` from the working set.  Local only."""
        before = len(self._files)
        self._files = [f for f in self._files if f.id != file_id]
        return len(self._files) != before

    def clear(self) -> None:
        self._files.clear()
