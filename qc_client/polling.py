"""
qc_client/polling.py
-----------------------------------------------------------------------------
Status poller: one cooperative asyncio task per job.

Each iteration sleeps for the poll interval, issues exactly one
``get_status`` call, waits for it, and only then decides whether to go
round again.  Two status checks for the same job can therefore never
overlap, and results are delivered in the order the requests were issued.

Stop conditions
---------------
• The service reports ``completed`` or ``failed`` → report it, stop.
• The call raises a ServiceError → report the fault, stop.  A single fault
  is fatal; the next manually started job gets a fresh loop.
• ``PollHandle.cancel()`` → stop immediately.  A response that arrives after
  cancellation is discarded, so a stale loop can never mutate state.

Environment variables
---------------------
QC_POLL_INTERVAL – Seconds between status checks (default: 2.0).
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable

from dotenv import load_dotenv

from qc_client.api_client import AnalysisServiceClient
from qc_client.errors import ServiceError

load_dotenv()

logger = logging.getLogger(__name__)

POLL_INTERVAL: float = float(os.getenv("QC_POLL_INTERVAL", "2.0"))

FINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})

# on_update(job_id, status, fault) – status is "completed" / "failed"; fault is
# set only when the status call itself raised.
UpdateCallback = Callable[[str, str, ServiceError | None], None]


class PollHandle:
    """
    Cancellable handle for one job's poll loop.

    The orchestrator holds exactly one of these and cancels it on every
    relevant transition.  ``cancel`` is synchronous and idempotent.
    """

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        self._task: asyncio.Task | None = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        return not self._cancelled and self._task is not None and not self._task.done()

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        # Cancelling from inside the loop's own callback must not kill the
        # task that is delivering the update.
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        logger.debug("Poll loop for job %s cancelled", self.job_id)

    async def wait(self) -> None:
        """Wait until the loop has finished (normally or by cancellation)."""
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise


class StatusPoller:
    def __init__(self, client: AnalysisServiceClient, *, interval: float = POLL_INTERVAL) -> None:
        self._client = client
        self.interval = interval

    def start(self, job_id: str, on_update: UpdateCallback) -> PollHandle:
        """
        Arm a poll loop for ``job_id``.  Must be called from a running event loop.

        Returns
        -------
        PollHandle : Hold it; cancel it when the job stops being current.
        """
        handle = PollHandle(job_id)
        handle._task = asyncio.get_running_loop().create_task(
            self._run(handle, on_update), name=f"poll-{job_id}"
        )
        return handle

    async def _run(self, handle: PollHandle, on_update: UpdateCallback) -> None:
        job_id = handle.job_id
        while not handle.cancelled:
            await asyncio.sleep(self.interval)
            if handle.cancelled:
                return
            try:
                status = await self._client.get_status(job_id)
            except ServiceError as exc:
                if handle.cancelled:
                    logger.debug("Discarding fault for cancelled job %s", job_id)
                    return
                logger.warning("Status check for job %s failed: %s", job_id, exc.message)
                on_update(job_id, "failed", exc)
                return
            if handle.cancelled:
                logger.debug("Discarding status %r for cancelled job %s", status.status, job_id)
                return
            if status.status in FINAL_STATUSES:
                on_update(job_id, status.status, None)
                return
            logger.debug("Job %s still %s", job_id, status.status)
