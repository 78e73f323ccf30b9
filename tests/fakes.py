"""Test doubles and helpers shared across the QC cross-check client suite."""

from __future__ import annotations

import asyncio
import inspect
import itertools
from typing import Any

import httpx

from qc_client.api_client import LocalFile

BASE_URL = "http://qc.test"


class FakeService:
    """
    Scriptable stand-in for the remote analysis service.

    Mount it behind ``httpx.MockTransport``.  Routes are keyed by
    ``(method, path)``; each holds a queue of replies consumed in order, the
    last one repeating forever.  A reply may be:

    • a JSON-able body (served with 200),
    • a ``(status_code, body)`` tuple,
    • an ``httpx.Response``,
    • an exception instance (raised from the transport),
    • a callable or coroutine function taking the request.

    Unscripted uploads, session listing and session creation get sensible
    defaults so tests only script what they care about.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[Any]] = {}
        self._ids = itertools.count(1)

    def on(self, method: str, path: str, *replies: Any) -> FakeService:
        self._routes[(method, path)] = list(replies)
        return self

    def calls(self, method: str, path_prefix: str = "") -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and r.url.path.startswith(path_prefix)
        ]

    def _default(self, request: httpx.Request) -> Any:
        path = request.url.path
        if request.method == "POST" and path.startswith("/upload/"):
            return {"file_id": f"file-{next(self._ids)}"}
        if request.method == "GET" and path == "/sessions":
            return []
        if request.method == "POST" and path == "/sessions":
            return {"session_id": "sess-1"}
        return (404, {"detail": "not scripted"})

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._routes.get((request.method, request.url.path))
        if queue:
            reply = queue.pop(0) if len(queue) > 1 else queue[0]
        else:
            reply = self._default(request)

        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            reply = reply(request)
            if inspect.isawaitable(reply):
                reply = await reply
        if isinstance(reply, httpx.Response):
            return reply
        if isinstance(reply, tuple):
            status, body = reply
            return httpx.Response(status, json=body)
        return httpx.Response(200, json=reply)


def run(coro: Any) -> Any:
    """Drive a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


def make_result(job_id: str = "job-1", **overrides: Any) -> dict:
    """Raw AnalysisResult body as the service would send it."""
    body = {
        "job_id": job_id,
        "session_id": "sess-1",
        "overall_status": "WARNING",
        "file_coverage": {"traveler": True, "image": True, "boms": 2},
        "checks": [
            {
                "check_type": "Part Number",
                "status": "pass",
                "expected": "PN-100",
                "actual": "PN-100",
                "sources_compared": ["traveler", "bom_1"],
            },
            {
                "check_type": "Revision",
                "status": "warning",
                "expected": "B",
                "actual": "C",
                "sources_compared": ["traveler", "image"],
                "notes": "Revision mismatch on label",
            },
            {
                "check_type": "Serial Number",
                "status": "fail",
                "expected": "SN-1",
                "actual": "SN-2",
                "sources_compared": ["image"],
                "is_expandable": True,
                "expanded_details": {
                    "expected_value": "SN-1 (traveler page 2)",
                    "actual_value": "SN-2 (photo label)",
                },
            },
        ],
        "created_at": "2024-03-05T14:07:09.123Z",
    }
    body.update(overrides)
    return body


def bom_files(count: int) -> list[LocalFile]:
    return [
        LocalFile(f"bom_{i}.xlsx", b"PK\x03\x04", "application/vnd.ms-excel")
        for i in range(1, count + 1)
    ]
