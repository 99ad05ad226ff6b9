"""Shared fixtures: a fake CMDB upstream served through httpx.MockTransport."""

import json
from collections import defaultdict
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest

from cmdb_client.cmdbapi import client

API = "https://cmdb.test/v3/"
APIKEY = "dummyApiKey"


class FakeUpstream:
    """Replies to requests with canned responses and records every request.

    Responses are queued per (method, path). Each request pops the next
    response of its queue; the last one is replayed once the queue is down
    to a single entry.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[Any]] = defaultdict(list)

    def respond(
        self,
        method: str,
        path: str,
        status_code: int = 200,
        body: Any = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        """Queue a response for ``method`` on ``path`` (relative to the API base)."""
        if content is None:
            content = json.dumps(body).encode()
        self._routes[(method, f"/v3/{path}")].append((status_code, content, headers or {}))

    def fail(self, method: str, path: str, exc: Exception) -> None:
        """Queue a transport error for ``method`` on ``path``."""
        self._routes[(method, f"/v3/{path}")].append(exc)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            msg = f"Unexpected request: {request.method} {request.url}"
            raise AssertionError(msg)
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        status_code, content, headers = reply
        return httpx.Response(status_code, content=content, headers=headers)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def mock_logger() -> MagicMock:
    """Mock structlog-style logger."""
    return MagicMock()


@pytest.fixture
def cmdb(upstream: FakeUpstream, mock_logger: MagicMock) -> client.Cmdb:
    """Verbose client talking to the fake upstream."""
    with client.Cmdb(
        apikey=APIKEY,
        api=API,
        verbose=True,
        logger=mock_logger,
        transport=httpx.MockTransport(upstream.handle),
    ) as api_client:
        yield api_client


def logged_events(mock_method: MagicMock) -> list[str]:
    """Event names passed to a mocked logger method."""
    return [c.args[0] for c in mock_method.call_args_list]
