"""
qc_client/schema.py
-----------------------------------------------------------------------------
Pydantic v2 models for every object the QC cross-check client exchanges with
the remote analysis service, plus the snapshot it hands to a rendering layer.

Design principles
-----------------
• Keep models thin – no orchestration logic here.
• Objects produced by the remote service are frozen: the client only reads
  them.
• ``checks`` keeps the service's order verbatim; nothing here sorts it.
• Unknown keys sent by the service are ignored so a newer backend does not
  break an older client.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# -----------------------------------------------------------------------------
# Enumerations
# -----------------------------------------------------------------------------


class FileCategory(str, Enum):
    """Upload slot a document belongs to.  Also the ``/upload/{type}`` path segment."""

    TRAVELER = "traveler"
    IMAGE = "image"
    BOM = "bom"


class JobState(str, Enum):
    """Client-side lifecycle of one analysis job."""

    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


CheckStatus = Literal["pass", "warning", "fail"]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


# -----------------------------------------------------------------------------
# Uploads
# -----------------------------------------------------------------------------


class UploadedFile(_Frozen):
    """
    A document the service has acknowledged.

    Created from the ``file_id`` returned by ``POST /upload/{type}``; lives in
    the orchestrator's working set until analysis starts or the user removes
    it.
    """

    id: str = Field(..., description="Remote file id returned by the upload call.")
    filename: str = Field(..., description="Original local filename.")
    type: FileCategory = Field(..., description="Upload slot the file occupies.")


# -----------------------------------------------------------------------------
# Analysis results
# -----------------------------------------------------------------------------


class FileCoverage(_Frozen):
    """Which document categories took part in a job."""

    traveler: bool = False
    image: bool = False
    boms: int = Field(default=0, ge=0)


class ExpandedDetails(_Frozen):
    expected_value: str
    actual_value: str


class ValidationCheck(_Frozen):
    """
    One comparison the remote service performed.

    ``expanded_details`` carries the long-form values for checks whose short
    ``expected`` / ``actual`` strings are abbreviated.
    """

    check_type: str
    status: CheckStatus
    expected: str
    actual: str
    sources_compared: list[str] = Field(default_factory=list, max_length=2)
    notes: str | None = None
    is_expandable: bool | None = None
    expanded_details: ExpandedDetails | None = None

    @property
    def display_expected(self) -> str:
        """Long-form expected value when available, else the short one."""
        if self.expanded_details and self.expanded_details.expected_value:
            return self.expanded_details.expected_value
        return self.expected

    @property
    def display_actual(self) -> str:
        """Long-form actual value when available, else the short one."""
        if self.expanded_details and self.expanded_details.actual_value:
            return self.expanded_details.actual_value
        return self.actual


class AnalysisResult(_Frozen):
    """
    The full report for one job, as returned by
    ``GET /analysis/{job_id}/results`` and embedded in session history.
    """

    job_id: str
    session_id: str
    overall_status: str
    file_coverage: FileCoverage = Field(default_factory=FileCoverage)
    checks: list[ValidationCheck] = Field(default_factory=list)
    created_at: str = Field(..., description="ISO-8601 timestamp from the service.")

    @field_validator("created_at")
    @classmethod
    def _created_at_is_iso(cls, value: str) -> str:
        # Kept as the service sent it; parsed only to reject what export cannot format.
        try:
            datetime.fromisoformat(value)
        except ValueError as exc:
            raise ValueError(f"created_at is not an ISO-8601 timestamp: {value!r}") from exc
        return value

    def status_counts(self) -> dict[str, int]:
        """Tally of checks per status, e.g. ``{"pass": 3, "warning": 1, "fail": 0}``."""
        counts = {"pass": 0, "warning": 0, "fail": 0}
        for check in self.checks:
            counts[check.status] += 1
        return counts


class Session(_Frozen):
    """A named container that accumulates analysis jobs over time."""

    id: str
    name: str | None = None
    created_at: str
    analysis_jobs: list[AnalysisResult] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.name or f"Session {self.id[:8]}"


# -----------------------------------------------------------------------------
# Wire acknowledgements
# -----------------------------------------------------------------------------


class SessionCreated(_Frozen):
    session_id: str


class FileUploaded(_Frozen):
    file_id: str


class JobStarted(_Frozen):
    job_id: str


class JobStatus(_Frozen):
    """
    Response of ``GET /analysis/{job_id}/status``.

    ``status`` is kept as a plain string: the service may report
    intermediate values (``"pending"``, ``"processing"`` …) that the poller
    treats as "not finished yet".
    """

    job_id: str
    status: str


# -----------------------------------------------------------------------------
# Client snapshot
# -----------------------------------------------------------------------------


class ClientSnapshot(_Frozen):
    """
    Read-only view of the orchestrator handed to subscribers and returned by
    ``GET /api/state``.
    """

    current_session: str | None = Field(
        default=None, description="Id of the session new jobs are attached to."
    )
    job_id: str | None = Field(default=None, description="Id of the active or last job.")
    status: JobState = JobState.IDLE
    result: AnalysisResult | None = None
    uploaded_files: list[UploadedFile] = Field(default_factory=list)
    sessions: list[Session] = Field(default_factory=list)
    error: str | None = Field(
        default=None, description="Single user-visible error slot (classified message)."
    )
    is_uploading: bool = False
