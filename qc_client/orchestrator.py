"""
qc_client/orchestrator.py
-----------------------------------------------------------------------------
Client-side orchestrator: the single owner of session, upload, job and error
state.

Every mutation goes through a named method here; a rendering layer reads
:meth:`Orchestrator.snapshot` or registers with :meth:`Orchestrator.subscribe`
and is notified after each transition.

Responsibilities
----------------
• Session history: load on demand, refresh after a session is created and
  after a job's results arrive.
• Uploads: delegate to :class:`~qc_client.uploads.UploadCoordinator`,
  surface the last failure in the error slot.
• Analysis: create a session on first use, start the job, arm exactly one
  poll loop, fetch results once the job completes.
• Error slot: one classified message at a time.  Each operation clears it
  when it begins; :meth:`clear_error` clears it explicitly.

Result fetch policy
-------------------
A fault while fetching results after the service reported ``completed`` is
surfaced in the error slot but does not move the job back to ``failed``:
the job did complete server-side, only the report download failed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from qc_client.api_client import AnalysisServiceClient, LocalFile
from qc_client.errors import (
    INVALID_RESPONSE_MESSAGE,
    DomainFault,
    InvalidResponse,
    ServiceError,
)
from qc_client.job_state import JobStateMachine
from qc_client.polling import POLL_INTERVAL, PollHandle, StatusPoller
from qc_client.report_export import export_filename, format_timestamp, to_csv
from qc_client.schema import AnalysisResult, ClientSnapshot, FileCategory, Session
from qc_client.uploads import MAX_BOM_FILES, UploadCoordinator, UploadOutcome

logger = logging.getLogger(__name__)

Subscriber = Callable[[ClientSnapshot], None]


class Orchestrator:
    """
    Parameters
    ----------
    client        : Transport client shared by every component.
    poll_interval : Seconds between status checks.
    max_bom_files : BOM slot limit handed to the upload coordinator.
    """

    def __init__(
        self,
        client: AnalysisServiceClient,
        *,
        poll_interval: float = POLL_INTERVAL,
        max_bom_files: int = MAX_BOM_FILES,
    ) -> None:
        self.client = client
        self.uploads = UploadCoordinator(client, max_bom_files=max_bom_files)
        self.job = JobStateMachine()
        self.poller = StatusPoller(client, interval=poll_interval)

        self.current_session: str | None = None
        self.result: AnalysisResult | None = None
        self.sessions: list[Session] = []
        self.error: str | None = None
        self._uploads_in_flight = 0

        self._poll: PollHandle | None = None
        self._results_task: asyncio.Task | None = None
        self._subscribers: list[Subscriber] = []

    @property
    def is_uploading(self) -> bool:
        """True while at least one upload batch is still running."""
        return self._uploads_in_flight > 0

    # -- observation ----------------------------------------------------------

    def snapshot(self) -> ClientSnapshot:
        return ClientSnapshot(
            current_session=self.current_session,
            job_id=self.job.job_id,
            status=self.job.status,
            result=self.result,
            uploaded_files=self.uploads.files,
            sessions=list(self.sessions),
            error=self.error,
            is_uploading=self.is_uploading,
        )

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        if not self._subscribers:
            return
        snap = self.snapshot()
        for callback in list(self._subscribers):
            callback(snap)

    # -- error slot -----------------------------------------------------------

    def _report(self, action: str, exc: ServiceError) -> None:
        logger.warning("Error %s: %s: %s", action, type(exc).__name__, exc.message)
        self.error = exc.message

    def clear_error(self) -> None:
        self.error = None
        self._notify()

    # -- sessions -------------------------------------------------------------

    async def refresh_sessions(self) -> list[Session]:
        """Reload session history.  On failure the previous list is kept."""
        self.error = None
        try:
            self.sessions = await self.client.list_sessions()
        except ServiceError as exc:
            self._report("loading sessions", exc)
        self._notify()
        return list(self.sessions)

    async def create_session(self, name: str | None = None) -> str | None:
        """
        Create a session and make it current.

        Parameters
        ----------
        name : Display name.  Defaults to ``"Session YYYY-MM-DD HH:MM:SS"``
               (UTC, time of creation).

        Returns
        -------
        str | None : The new session id, or ``None`` if creation failed (the
                     error slot holds the reason; no state changed).
        """
        self.error = None
        if name is None:
            name = f"Session {format_timestamp(datetime.now(timezone.utc))}"
        try:
            created = await self.client.create_session(name)
        except ServiceError as exc:
            self._report("creating session", exc)
            self._notify()
            return None
        self.current_session = created.session_id
        logger.info("Created session %s (%s)", created.session_id, name)
        self._notify()
        await self.refresh_sessions()
        return created.session_id

    # -- uploads --------------------------------------------------------------

    async def upload(
        self, files: LocalFile | Iterable[LocalFile], category: FileCategory
    ) -> UploadOutcome:
        """Upload into ``category``; inputs beyond the free slots are dropped silently."""
        self.error = None
        self._uploads_in_flight += 1
        self._notify()
        try:
            outcome = await self.uploads.submit(files, category)
        finally:
            self._uploads_in_flight -= 1
        if outcome.errors:
            self.error = outcome.errors[-1]
        self._notify()
        return outcome

    def remove_file(self, file_id: str) -> bool:
        """Forget an uploaded file locally.  The remote copy is left alone."""
        removed = self.uploads.remove(file_id)
        if removed:
            self._notify()
        return removed

    # -- analysis -------------------------------------------------------------

    def detach(self) -> None:
        """Stop everything tied to the current job: poll loop and result fetch."""
        if self._poll is not None:
            self._poll.cancel()
            self._poll = None
        if self._results_task is not None and not self._results_task.done():
            self._results_task.cancel()
        self._results_task = None

    async def start_analysis(self) -> str | None:
        """
        Submit the working set for analysis.

        No-op when no files are uploaded, or while an upload is still in
        flight (the pending file would otherwise be left out of the job).
        Creates a session first if none is current; if that fails the start
        is abandoned with no state change.
        Any previous result is discarded and any previous poll loop cancelled
        before the new job is armed.

        Returns
        -------
        str | None : The new job id, or ``None`` if nothing was started.
        """
        file_ids = self.uploads.file_ids()
        if not file_ids:
            logger.warning("No files uploaded for analysis.")
            return None
        if self.is_uploading:
            logger.warning("Uploads still in progress; not starting analysis.")
            return None

        self.error = None
        session_id = self.current_session
        if session_id is None:
            session_id = await self.create_session()
            if session_id is None:
                return None

        self.detach()
        self.result = None
        self._notify()
        try:
            started = await self.client.start_analysis(session_id, file_ids)
        except ServiceError as exc:
            self.detach()
            self.job.fail()
            self._report("starting analysis", exc)
            self._notify()
            return None

        # A concurrent start may have armed its own loop while we awaited.
        self.detach()
        self.job.begin(started.job_id)
        self._poll = self.poller.start(started.job_id, self._on_poll_update)
        self._notify()
        return started.job_id

    def _on_poll_update(self, job_id: str, status: str, fault: ServiceError | None) -> None:
        if self._poll is None or self._poll.job_id != job_id:
            logger.debug("Ignoring poll update for stale job %s", job_id)
            return
        # The loop has stopped itself; release the handle.
        self._poll.cancel()
        self._poll = None

        if status == "completed":
            if self.job.complete(job_id):
                self._results_task = asyncio.get_running_loop().create_task(
                    self._load_results(job_id), name=f"results-{job_id}"
                )
        elif self.job.fail(job_id) and fault is not None:
            self._report("checking analysis status", fault)
        self._notify()

    async def _load_results(self, job_id: str) -> None:
        self.error = None
        try:
            result = await self.client.get_results(job_id)
        except ServiceError as exc:
            # Status stays "completed"; only the report download failed.
            self._report("loading analysis results", exc)
            self._notify()
            return
        if self.job.job_id != job_id:
            logger.debug("Dropping results for stale job %s", job_id)
            return
        self.result = result
        self._notify()
        await self.refresh_sessions()

    # -- export ---------------------------------------------------------------

    def find_result(self, job_id: str) -> AnalysisResult | None:
        """Look up a job's result in the current view, then in session history."""
        if self.result is not None and self.result.job_id == job_id:
            return self.result
        for session in self.sessions:
            for job in session.analysis_jobs:
                if job.job_id == job_id:
                    return job
        return None

    def export_report(self, job_id: str) -> tuple[str, str]:
        """
        Render a job's result as CSV.

        Returns
        -------
        tuple[str, str] : ``(filename, csv_text)``.

        Raises
        ------
        DomainFault     : No result for ``job_id`` is known to the client.
        InvalidResponse : The stored result cannot be rendered (e.g. a
                          timestamp that is not ISO-8601).
        """
        result = self.find_result(job_id)
        if result is None:
            raise DomainFault(f"No analysis results available for job {job_id}")
        try:
            csv_text = to_csv(result)
        except ValueError as exc:
            logger.warning("Cannot export results for job %s: %s", job_id, exc)
            raise InvalidResponse(INVALID_RESPONSE_MESSAGE) from exc
        return export_filename(result.job_id), csv_text

    # -- lifecycle ------------------------------------------------------------

    async def settle(self) -> None:
        """Wait for the current poll loop and any result fetch it triggered."""
        while True:
            if self._poll is not None and self._poll.active:
                await self._poll.wait()
                continue
            task = self._results_task
            if task is not None and not task.done():
                await asyncio.wait({task})
                continue
            if task is not None and task.done() and not task.cancelled():
                # Surface anything that escaped the fetch's own handling.
                task.result()
            return

    async def aclose(self) -> None:
        """Detach from the service: stop polling, cancel fetches, close the client."""
        self.detach()
        self._subscribers.clear()
        await self.client.aclose()
