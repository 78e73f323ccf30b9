"""
Tests for qc_client/errors.py – fault taxonomy and classifier.

The classifier must be total: every exception maps to exactly one
non-empty message, and ``to_fault`` picks the taxonomy class that matches.
"""

from __future__ import annotations

import json

import httpx
import pytest
from pydantic import ValidationError

from qc_client.errors import (
    CONNECTIVITY_MESSAGE,
    INVALID_RESPONSE_MESSAGE,
    TIMEOUT_MESSAGE,
    UPLOAD_TIMEOUT_MESSAGE,
    DomainFault,
    HttpFault,
    InvalidResponse,
    ServiceError,
    TimeoutFault,
    TransportFault,
    classify,
    http_error_message,
    to_fault,
)
from qc_client.schema import JobStatus


def _status_error(code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "http://qc.test/sessions")
    response = httpx.Response(code, request=request)
    return httpx.HTTPStatusError("boom", request=request, response=response)


def _validation_error() -> ValidationError:
    with pytest.raises(ValidationError) as exc_info:
        JobStatus.model_validate({"job_id": "job-1", "status": None})
    return exc_info.value


# ── http_error_message ──────────────────────────────────────────────────────


class TestHttpErrorMessage:
    @pytest.mark.parametrize(
        ("code", "message"),
        [
            (400, "Bad request: Invalid data sent to server"),
            (401, "Unauthorized: Please check your credentials"),
            (403, "Forbidden: Access denied"),
            (404, "Not found: The requested resource was not found"),
            (408, "Request timeout: Server took too long to respond"),
            (429, "Too many requests: Please try again later"),
            (500, "Server error: Internal server error occurred"),
            (502, "Bad gateway: Server is temporarily unavailable"),
            (503, "Service unavailable: Server is under maintenance"),
            (504, "Gateway timeout: Server took too long to respond"),
        ],
    )
    def test_mapped_codes(self, code: int, message: str) -> None:
        assert http_error_message(code) == message

    def test_unmapped_code_falls_back(self) -> None:
        assert http_error_message(418) == "HTTP error: 418"


# ── classify ────────────────────────────────────────────────────────────────


class TestClassify:
    def test_connect_error_is_connectivity(self) -> None:
        assert classify(httpx.ConnectError("refused")) == CONNECTIVITY_MESSAGE

    def test_connect_timeout_is_connectivity_not_timeout(self) -> None:
        """The socket never opened, so this is a network fault."""
        assert classify(httpx.ConnectTimeout("slow dns")) == CONNECTIVITY_MESSAGE

    def test_read_timeout_is_timeout(self) -> None:
        assert classify(httpx.ReadTimeout("slow body")) == TIMEOUT_MESSAGE

    def test_upload_timeout_message_override(self) -> None:
        exc = httpx.WriteTimeout("slow upload")
        assert classify(exc, timeout_message=UPLOAD_TIMEOUT_MESSAGE) == UPLOAD_TIMEOUT_MESSAGE

    def test_builtin_connection_error_is_connectivity(self) -> None:
        assert classify(ConnectionRefusedError("nope")) == CONNECTIVITY_MESSAGE

    def test_network_message_pattern_is_connectivity(self) -> None:
        assert classify(RuntimeError("TypeError: Failed to fetch")) == CONNECTIVITY_MESSAGE

    def test_http_status_uses_table(self) -> None:
        assert classify(_status_error(503)) == "Service unavailable: Server is under maintenance"

    def test_schema_mismatch_uses_fixed_message(self) -> None:
        assert classify(_validation_error()) == INVALID_RESPONSE_MESSAGE

    def test_non_json_body_uses_fixed_message(self) -> None:
        exc = json.JSONDecodeError("Expecting value", "<html>", 0)
        assert classify(exc) == INVALID_RESPONSE_MESSAGE

    def test_other_exception_keeps_raw_message(self) -> None:
        assert classify(ValueError("unexpected payload")) == "unexpected payload"

    def test_empty_message_never_empty(self) -> None:
        assert classify(RuntimeError()) == "RuntimeError"

    def test_service_error_passes_through(self) -> None:
        assert classify(DomainFault("No files to analyze")) == "No files to analyze"


# ── to_fault ────────────────────────────────────────────────────────────────


class TestToFault:
    def test_transport(self) -> None:
        fault = to_fault(httpx.ConnectError("refused"))
        assert isinstance(fault, TransportFault)
        assert fault.message == CONNECTIVITY_MESSAGE

    def test_timeout(self) -> None:
        fault = to_fault(httpx.PoolTimeout("pool exhausted"))
        assert isinstance(fault, TimeoutFault)
        assert fault.message == TIMEOUT_MESSAGE

    def test_http_carries_status(self) -> None:
        fault = to_fault(_status_error(404))
        assert isinstance(fault, HttpFault)
        assert fault.status_code == 404
        assert str(fault) == "Not found: The requested resource was not found"

    def test_generic(self) -> None:
        fault = to_fault(ValueError("bad json"))
        assert type(fault) is ServiceError
        assert fault.message == "bad json"

    def test_invalid_response_is_domain_fault(self) -> None:
        fault = to_fault(_validation_error())
        assert isinstance(fault, InvalidResponse)
        assert isinstance(fault, DomainFault)
        assert fault.message == INVALID_RESPONSE_MESSAGE
        assert "job_id" not in fault.message

    def test_already_classified_is_returned_as_is(self) -> None:
        original = DomainFault("Session creation failed")
        assert to_fault(original) is original
