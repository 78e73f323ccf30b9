"""
qc_client/main.py
-----------------------------------------------------------------------------
FastAPI application entrypoint for the QC cross-check client.

This module is a **thin routing layer** over one
:class:`~qc_client.orchestrator.Orchestrator`.  A browser front-end drives
the job lifecycle through these routes and renders ``GET /api/state``; all
behaviour lives in the domain modules:

Domain modules
~~~~~~~~~~~~~~
- ``qc_client.errors``        – fault taxonomy and error classifier.
- ``qc_client.schema``        – Pydantic v2 models.
- ``qc_client.api_client``    – async HTTP wrapper around the analysis service.
- ``qc_client.uploads``       – upload slots and working set.
- ``qc_client.job_state``     – job lifecycle state machine.
- ``qc_client.polling``       – status poll loop.
- ``qc_client.report_export`` – CSV export.
- ``qc_client.orchestrator``  – state owner tying the above together.

Run with:
    uvicorn qc_client.main:app --reload --host 127.0.0.1 --port 8300

Endpoints
---------
GET    /api/state                     → current client snapshot
GET    /api/sessions                  → refresh and return session history
POST   /api/upload/{category}         → upload one or more files into a slot
DELETE /api/files/{file_id}           → forget an uploaded file (local only)
POST   /api/analyze                   → start analysis over the working set
POST   /api/error/clear               → clear the error slot
GET    /api/results/{job_id}/export   → download a job's results as CSV

Architecture notes
------------------
- The orchestrator lives on ``app.state`` and is created in the lifespan
  handler, so its poll loop runs on the same event loop as the routes.
  Tests may pre-seed ``app.state.orchestrator`` before the app starts.
- Every route is ``async def`` so orchestrator state is only ever touched
  on the event loop, never from the threadpool.
- Operation failures are not HTTP errors: they land in the snapshot's
  ``error`` slot, exactly as a front-end would display them.  Only lookups
  of unknown resources (404) and exports of unrenderable results (422)
  answer with 4xx.
"""

from __future__ import annotations

import io
import tomllib
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse

from qc_client.api_client import AnalysisServiceClient, LocalFile
from qc_client.errors import DomainFault, InvalidResponse
from qc_client.orchestrator import Orchestrator
from qc_client.schema import ClientSnapshot, FileCategory, Session

# -----------------------------------------------------------------------------
# Bootstrap
# -----------------------------------------------------------------------------

load_dotenv()

_HERE = Path(__file__).parent

# Read version from pyproject.toml (single source of truth).
_PYPROJECT = _HERE.parent / "pyproject.toml"
with open(_PYPROJECT, "rb") as _f:
    _APP_VERSION: str = tomllib.load(_f)["project"]["version"]


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    orchestrator = getattr(app.state, "orchestrator", None)
    if orchestrator is None:
        orchestrator = Orchestrator(AnalysisServiceClient())
        app.state.orchestrator = orchestrator
        # Populate history up front, as the page does on first load.
        await orchestrator.refresh_sessions()
    try:
        yield
    finally:
        await orchestrator.aclose()
        del app.state.orchestrator


# -----------------------------------------------------------------------------
# FastAPI app
# -----------------------------------------------------------------------------

app = FastAPI(
    title="QC Cross-Check Client",
    description=(
        "Local client for submitting manufacturing documents to the QC "
        "analysis service, tracking validation jobs, and exporting results."
    ),
    version=_APP_VERSION,
    lifespan=_lifespan,
)


def _orchestrator(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------


@app.get("/api/state", response_model=ClientSnapshot, summary="Current client state")
async def get_state(request: Request) -> ClientSnapshot:
    return _orchestrator(request).snapshot()


@app.get("/api/sessions", response_model=list[Session], summary="Refresh session history")
async def list_sessions(request: Request) -> list[Session]:
    """
    Reload session history from the service and return it.

    On failure the previously loaded list is returned and the reason is
    available in ``GET /api/state``.
    """
    return await _orchestrator(request).refresh_sessions()


@app.post(
    "/api/upload/{category}",
    response_model=ClientSnapshot,
    summary="Upload documents into a slot",
)
async def upload_files(
    request: Request, category: FileCategory, files: list[UploadFile]
) -> ClientSnapshot:
    """
    Upload one or more files into ``category``.

    ``traveler`` and ``image`` accept a single file (only the first input is
    considered, and only if the slot is empty).  ``bom`` accepts up to the
    free BOM slots; extra files are dropped without error.

    Parameters
    ----------
    category : ``traveler`` | ``image`` | ``bom``.
    files    : Multipart ``files`` field, one or more entries.
    """
    batch = [
        LocalFile(
            filename=upload.filename or "upload",
            content=await upload.read(),
            content_type=upload.content_type or "application/octet-stream",
        )
        for upload in files
    ]
    orchestrator = _orchestrator(request)
    await orchestrator.upload(batch, category)
    return orchestrator.snapshot()


@app.delete(
    "/api/files/{file_id}",
    response_model=ClientSnapshot,
    summary="Remove an uploaded file from the working set",
)
async def remove_file(request: Request, file_id: str) -> ClientSnapshot:
    """
    Forget an uploaded file.  The service's copy is not deleted.

    Raises
    ------
    HTTPException(404) : No file with ``file_id`` is in the working set.
    """
    orchestrator = _orchestrator(request)
    if not orchestrator.remove_file(file_id):
        raise HTTPException(status_code=404, detail=f"File '{file_id}' not found.")
    return orchestrator.snapshot()


@app.post("/api/analyze", response_model=ClientSnapshot, summary="Start analysis")
async def analyze(request: Request) -> ClientSnapshot:
    """
    Start analysis over every uploaded file.

    Returns the snapshot right after the start attempt: ``processing`` on
    success, ``failed`` (with ``error`` set) if the service rejected it, or
    unchanged if there was nothing to analyse or no session could be made.
    """
    orchestrator = _orchestrator(request)
    await orchestrator.start_analysis()
    return orchestrator.snapshot()


@app.post("/api/error/clear", response_model=ClientSnapshot, summary="Clear the error slot")
async def clear_error(request: Request) -> ClientSnapshot:
    orchestrator = _orchestrator(request)
    orchestrator.clear_error()
    return orchestrator.snapshot()


@app.get("/api/results/{job_id}/export", summary="Download a job's results as CSV")
async def export_results(request: Request, job_id: str) -> StreamingResponse:
    """
    Stream a job's results as a CSV attachment.

    Works for the job currently on screen and for any job in the loaded
    session history.

    Raises
    ------
    HTTPException(404) : The job's results are not known to the client.
    HTTPException(422) : The stored results cannot be rendered as CSV.
    """
    try:
        filename, csv_text = _orchestrator(request).export_report(job_id)
    except InvalidResponse as exc:
        raise HTTPException(status_code=422, detail=exc.message) from exc
    except DomainFault as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc

    return StreamingResponse(
        io.BytesIO(csv_text.encode("utf-8")),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
