"""
qc_client/job_state.py
-----------------------------------------------------------------------------
Lifecycle of one analysis job as seen by the client.

    idle ──begin──▶ processing ──complete──▶ completed
      │                  │
      └──fail──▶ failed ◀┘──fail

``begin`` is the only way out of a terminal state and always carries a new
job id.  ``fail`` without a job id records a start attempt that the service
rejected before a job existed.  Transitions that name a job id other than
the current one are stale (a late answer for a job the user already moved
on from) and are ignored without touching state.
"""

from __future__ import annotations

import logging

from qc_client.errors import InvalidTransition
from qc_client.schema import JobState

logger = logging.getLogger(__name__)

TERMINAL_STATES: frozenset[JobState] = frozenset({JobState.COMPLETED, JobState.FAILED})


class JobStateMachine:
    def __init__(self) -> None:
        self.status: JobState = JobState.IDLE
        self.job_id: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def _is_stale(self, job_id: str | None) -> bool:
        if job_id is not None and job_id != self.job_id:
            logger.debug("Ignoring transition for stale job %s (current: %s)", job_id, self.job_id)
            return True
        return False

    def begin(self, job_id: str) -> None:
        """Start tracking a fresh job; valid from any state."""
        if not job_id:
            raise InvalidTransition("Cannot begin a job without a job id")
        if job_id == self.job_id and self.status is not JobState.IDLE:
            raise InvalidTransition(f"Job {job_id} has already been started")
        logger.info("Job %s: %s -> processing", job_id, self.status.value)
        self.job_id = job_id
        self.status = JobState.PROCESSING

    def complete(self, job_id: str) -> bool:
        """
        Mark the current job completed.

        Returns
        -------
        bool : ``True`` if the transition was applied, ``False`` for a stale id.

        Raises
        ------
        InvalidTransition : The current job is not processing.
        """
        if self._is_stale(job_id):
            return False
        if self.status is not JobState.PROCESSING:
            raise InvalidTransition(
                f"Cannot complete job {job_id} from state '{self.status.value}'"
            )
        logger.info("Job %s: processing -> completed", job_id)
        self.status = JobState.COMPLETED
        return True

    def fail(self, job_id: str | None = None) -> bool:
        """
        Mark a job failed.

        With ``job_id`` the current processing job fails.  Without it, a start
        attempt that never obtained a job id fails: the previous job (if any)
        is abandoned and the id is cleared.
        """
        if self._is_stale(job_id):
            return False
        if job_id is not None and self.status is not JobState.PROCESSING:
            raise InvalidTransition(
                f"Cannot fail job {job_id} from state '{self.status.value}'"
            )
        logger.info("Job %s: %s -> failed", job_id or "<unstarted>", self.status.value)
        if job_id is None:
            self.job_id = None
        self.status = JobState.FAILED
        return True
