"""
qc_client/errors.py
-----------------------------------------------------------------------------
Fault taxonomy and the error classifier for the QC cross-check client.

Every failure the client can hit is normalised into one short, user-facing
message before it reaches the orchestrator's single error slot.  This module
owns that mapping.

Taxonomy
--------
ServiceError      – base class; always carries a non-empty ``message``.
TransportFault    – no response reached the server (offline, DNS, refused,
                    connect timeout).
TimeoutFault      – the request exceeded its own read / write / pool deadline.
HttpFault         – the server answered with a non-2xx status.
DomainFault       – raised by the orchestration logic itself.
InvalidTransition – a job state change that the lifecycle does not allow.
InvalidResponse   – the server answered 2xx with a body the client cannot
                    read (not JSON, or not the expected shape).

Exports
-------
classify(exc, *, timeout_message) -> str
    Pure, total mapping from any exception to a display string.

to_fault(exc, *, timeout_message) -> ServiceError
    Wrap ``classify`` in the matching taxonomy class.

http_error_message(status_code) -> str
    Lookup in the closed HTTP status table.
"""

from __future__ import annotations

import json

import httpx
from pydantic import ValidationError

# -----------------------------------------------------------------------------
# Messages
# -----------------------------------------------------------------------------

CONNECTIVITY_MESSAGE = (
    "Unable to connect to server. Please check your internet connection and try again."
)
TIMEOUT_MESSAGE = "Request timed out. Please try again."
UPLOAD_TIMEOUT_MESSAGE = "File upload timed out. Please try again."
INVALID_RESPONSE_MESSAGE = "Invalid response: The server sent data the client could not read"

# Closed table.  Anything not listed falls back to "HTTP error: <code>".
HTTP_STATUS_MESSAGES: dict[int, str] = {
    0: "Network error: Unable to connect to server",
    400: "Bad request: Invalid data sent to server",
    401: "Unauthorized: Please check your credentials",
    403: "Forbidden: Access denied",
    404: "Not found: The requested resource was not found",
    408: "Request timeout: Server took too long to respond",
    429: "Too many requests: Please try again later",
    500: "Server error: Internal server error occurred",
    502: "Bad gateway: Server is temporarily unavailable",
    503: "Service unavailable: Server is under maintenance",
    504: "Gateway timeout: Server took too long to respond",
}

# Substrings that identify a network-unreachable failure when the exception
# type alone does not (e.g. a plain OSError bubbling up from a proxy layer).
_NETWORK_PATTERNS: tuple[str, ...] = (
    "Failed to fetch",
    "NetworkError",
    "ERR_NETWORK",
    "ERR_INTERNET_DISCONNECTED",
    "ERR_CONNECTION_REFUSED",
    "ERR_CONNECTION_TIMED_OUT",
    "Connection refused",
    "Network is unreachable",
    "Name or service not known",
    "Temporary failure in name resolution",
)


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------


class ServiceError(Exception):
    """Base class for every classified client fault."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TransportFault(ServiceError):
    """The request never reached the server."""


class TimeoutFault(ServiceError):
    """The request exceeded its own deadline."""


class HttpFault(ServiceError):
    """The server answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class DomainFault(ServiceError):
    """Raised by orchestration logic, not by the transport."""


class InvalidTransition(DomainFault):
    """A job lifecycle transition that is not allowed from the current state."""


class InvalidResponse(DomainFault):
    """A successful response whose body is not JSON or does not match its model."""


# -----------------------------------------------------------------------------
# Classification
# -----------------------------------------------------------------------------


def http_error_message(status_code: int) -> str:
    """Return the fixed message for ``status_code`` (generic for unmapped codes)."""
    return HTTP_STATUS_MESSAGES.get(status_code, f"HTTP error: {status_code}")


def _kind(exc: BaseException) -> type[ServiceError]:
    # Deadline timeouts come first because httpx.TimeoutException is itself
    # a TransportError.  A connect timeout means the socket never opened,
    # which is a connectivity problem rather than a slow response.
    if isinstance(exc, httpx.TimeoutException) and not isinstance(
        exc, httpx.ConnectTimeout
    ):
        return TimeoutFault
    if isinstance(exc, httpx.HTTPStatusError):
        return HttpFault
    if isinstance(exc, (ValidationError, json.JSONDecodeError, UnicodeDecodeError)):
        return InvalidResponse
    if isinstance(exc, (httpx.TransportError, ConnectionError)):
        return TransportFault
    text = str(exc)
    if any(pattern in text for pattern in _NETWORK_PATTERNS):
        return TransportFault
    return ServiceError


def classify(exc: BaseException, *, timeout_message: str = TIMEOUT_MESSAGE) -> str:
    """
    Map any exception to exactly one non-empty, user-presentable message.

    Parameters
    ----------
    exc             : The raised fault.
    timeout_message : Message used for deadline timeouts.  Uploads pass
                      ``UPLOAD_TIMEOUT_MESSAGE``.

    Returns
    -------
    str : The classified message.  Never empty; never raises.
    """
    if isinstance(exc, ServiceError):
        return exc.message
    kind = _kind(exc)
    if kind is TimeoutFault:
        return timeout_message
    if kind is HttpFault:
        return http_error_message(exc.response.status_code)
    if kind is TransportFault:
        return CONNECTIVITY_MESSAGE
    if kind is InvalidResponse:
        return INVALID_RESPONSE_MESSAGE
    return str(exc) or type(exc).__name__


def to_fault(
    exc: BaseException, *, timeout_message: str = TIMEOUT_MESSAGE
) -> ServiceError:
    """Wrap ``exc`` in the taxonomy class that matches its classification."""
    if isinstance(exc, ServiceError):
        return exc
    message = classify(exc, timeout_message=timeout_message)
    kind = _kind(exc)
    if kind is HttpFault:
        return HttpFault(message, exc.response.status_code)
    return kind(message)
