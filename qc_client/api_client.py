"""
qc_client/api_client.py
-----------------------------------------------------------------------------
Thin asynchronous wrapper around the remote QC analysis service.

Why asynchronous?
-----------------
The orchestrator runs on a single asyncio event loop: uploads, the status
poller, and the local FastAPI routes all share it.  ``httpx.AsyncClient``
lets every call suspend without blocking that loop, so no locking is needed
anywhere in the client.

Remote API reference
--------------------
GET  {base}/sessions                      → [Session, ...]
POST {base}/sessions             {name}   → {"session_id": ...}
POST {base}/upload/{type}        file=... → {"file_id": ...}
POST {base}/sessions/{id}/analyze {file_ids} → {"job_id": ...}
GET  {base}/analysis/{id}/status          → {"job_id": ..., "status": ...}
GET  {base}/analysis/{id}/results         → AnalysisResult

Every request carries ``ngrok-skip-browser-warning: true`` so the gateway in
front of the service answers with JSON instead of its browser interstitial.

Failure policy
--------------
Each call issues exactly one request.  Non-2xx responses are failures
regardless of body.  Any fault (transport, timeout, HTTP status, malformed
body) is routed through :func:`qc_client.errors.to_fault` and re-raised as a
:class:`~qc_client.errors.ServiceError` chained to the original.  The raw
exception text goes to the log; callers only ever see the classified
message.  Nothing is
retried here; the status poller is the only caller that calls again, and it
does so on its own timer.

Environment variables
---------------------
QC_API_BASE        – Base URL of the service (default: http://localhost:8000).
QC_UPLOAD_TIMEOUT  – Upload deadline in seconds (default: 30000, effectively
                     unbounded; file sizes are not limited by this layer).
QC_REQUEST_TIMEOUT – Read deadline for all other calls (default: 30).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from collections.abc import Callable
from typing import Any

import httpx
from dotenv import load_dotenv
from pydantic import BaseModel, TypeAdapter, ValidationError

from qc_client.errors import TIMEOUT_MESSAGE, UPLOAD_TIMEOUT_MESSAGE, to_fault
from qc_client.schema import (
    AnalysisResult,
    FileCategory,
    FileUploaded,
    JobStarted,
    JobStatus,
    Session,
    SessionCreated,
)

# Load .env if present (no-op if the file doesn't exist)
load_dotenv()

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------

# Strip any trailing slash so we can safely append paths.
API_BASE: str = os.getenv("QC_API_BASE", "http://localhost:8000").rstrip("/")

_CONNECT_TIMEOUT: float = 10.0
_READ_TIMEOUT: float = float(os.getenv("QC_REQUEST_TIMEOUT", "30"))
_UPLOAD_TIMEOUT: float = float(os.getenv("QC_UPLOAD_TIMEOUT", "30000"))

DEFAULT_HEADERS: dict[str, str] = {"ngrok-skip-browser-warning": "true"}

_SESSION_LIST = TypeAdapter(list[Session])


@dataclass(frozen=True)
class LocalFile:
    """A document picked by the user, not yet uploaded."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


def _validate(validate: Callable[[Any], Any], data: Any, method: str, path: str) -> Any:
    try:
        return validate(data)
    except ValidationError as exc:
        fault = to_fault(exc)
        logger.warning("%s %s returned an unexpected body: %s", method, path, exc)
        raise fault from exc


# -----------------------------------------------------------------------------
# Client
# -----------------------------------------------------------------------------


class AnalysisServiceClient:
    """
    Typed async wrapper around the six remote operations.

    Parameters
    ----------
    base_url    : Service base URL.  Defaults to ``QC_API_BASE``.
    http_client : Pre-built ``httpx.AsyncClient`` (tests pass one backed by
                  ``httpx.MockTransport``).  When omitted the wrapper owns a
                  client and closes it in :meth:`aclose`.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or API_BASE).rstrip("/")
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(
                connect=_CONNECT_TIMEOUT, read=_READ_TIMEOUT, write=_READ_TIMEOUT, pool=5.0
            ),
        )

    async def __aenter__(self) -> AnalysisServiceClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # -- request core ---------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        timeout_message: str = TIMEOUT_MESSAGE,
        **kwargs: Any,
    ) -> Any:
        """
        Issue one request and return the decoded JSON body.

        Raises
        ------
        ServiceError : Classified fault, chained to the original exception.
        """
        url = f"{self.base_url}{path}"
        try:
            response = await self._http.request(
                method, url, headers=DEFAULT_HEADERS, **kwargs
            )
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            fault = to_fault(exc, timeout_message=timeout_message)
            logger.warning("%s %s failed: %s: %s", method, path, type(exc).__name__, exc)
            raise fault from exc

    async def _call(
        self,
        model: type[BaseModel],
        method: str,
        path: str,
        *,
        timeout_message: str = TIMEOUT_MESSAGE,
        **kwargs: Any,
    ) -> Any:
        data = await self._request(method, path, timeout_message=timeout_message, **kwargs)
        return _validate(model.model_validate, data, method, path)

    # -- public operations ----------------------------------------------------

    async def list_sessions(self) -> list[Session]:
        """Return every session with its analysis jobs (``GET /sessions``)."""
        data = await self._request("GET", "/sessions")
        return _validate(_SESSION_LIST.validate_python, data, "GET", "/sessions")

    async def create_session(self, name: str | None = None) -> SessionCreated:
        """Create a session (``POST /sessions``)."""
        return await self._call(SessionCreated, "POST", "/sessions", json={"name": name})

    async def upload_file(self, file: LocalFile, category: FileCategory) -> FileUploaded:
        """
        Upload one document as multipart field ``file`` to ``/upload/{category}``.

        Uses the long upload deadline; a deadline overrun is reported with
        the upload-specific timeout message.
        """
        category = FileCategory(category)
        return await self._call(
            FileUploaded,
            "POST",
            f"/upload/{category.value}",
            files={"file": (file.filename, file.content, file.content_type)},
            timeout=httpx.Timeout(_UPLOAD_TIMEOUT, connect=_CONNECT_TIMEOUT),
            timeout_message=UPLOAD_TIMEOUT_MESSAGE,
        )

    async def start_analysis(self, session_id: str, file_ids: list[str]) -> JobStarted:
        """Start a job over ``file_ids`` (``POST /sessions/{id}/analyze``)."""
        return await self._call(
            JobStarted,
            "POST",
            f"/sessions/{session_id}/analyze",
            json={"file_ids": list(file_ids)},
        )

    async def get_status(self, job_id: str) -> JobStatus:
        """Current status of a job (``GET /analysis/{id}/status``)."""
        return await self._call(JobStatus, "GET", f"/analysis/{job_id}/status")

    async def get_results(self, job_id: str) -> AnalysisResult:
        """Full report of a finished job (``GET /analysis/{id}/results``)."""
        return await self._call(AnalysisResult, "GET", f"/analysis/{job_id}/results")
