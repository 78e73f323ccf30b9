"""Shared fixtures for the QC cross-check client test suite."""

from __future__ import annotations

from collections.abc import Iterator

import httpx
import pytest
from fastapi.testclient import TestClient
from fakes import BASE_URL, FakeService, make_result

from qc_client.api_client import AnalysisServiceClient, LocalFile
from qc_client.main import app
from qc_client.orchestrator import Orchestrator
from qc_client.schema import AnalysisResult


@pytest.fixture()
def service() -> FakeService:
    return FakeService()


@pytest.fixture()
def api(service: FakeService) -> AnalysisServiceClient:
    """Transport client wired to the fake service."""
    http = httpx.AsyncClient(transport=httpx.MockTransport(service))
    return AnalysisServiceClient(BASE_URL, http_client=http)


@pytest.fixture()
def orchestrator(api: AnalysisServiceClient) -> Orchestrator:
    """Orchestrator with a zero poll interval so loops advance immediately."""
    return Orchestrator(api, poll_interval=0.0)


@pytest.fixture()
def sample_result() -> AnalysisResult:
    return AnalysisResult.model_validate(make_result())


@pytest.fixture()
def traveler_pdf() -> LocalFile:
    return LocalFile("traveler.pdf", b"%PDF-1.7", "application/pdf")


@pytest.fixture()
def product_image() -> LocalFile:
    return LocalFile("product.jpg", b"\xff\xd8\xff", "image/jpeg")


@pytest.fixture()
def client(service: FakeService) -> Iterator[TestClient]:
    """
    FastAPI test client over an orchestrator wired to the fake service.

    The poll interval is long so a started job stays ``processing`` for the
    duration of a test.
    """
    http = httpx.AsyncClient(transport=httpx.MockTransport(service))
    app.state.orchestrator = Orchestrator(
        AnalysisServiceClient(BASE_URL, http_client=http), poll_interval=60.0
    )
    with TestClient(app) as test_client:
        yield test_client
