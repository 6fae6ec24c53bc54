"""
Shared fixtures for the microfeed tests.

`FakeServer` stands in for the microfeed API behind an
`httpx.MockTransport`: routes are registered per (method, path) and may be
plain responses, sync callables or coroutines, so tests can hold requests
open to make them interleave.
"""

import inspect
from typing import Any, Callable

import httpx
import pytest

from microfeed.api import ApiClient
from microfeed.auth.credential_store import MemoryCredentialStore
from microfeed.auth.session import SessionState

BASE_URL = "https://microfeed.test/api"

USER = {
    "id": 1,
    "name": "Example User",
    "email": "a@b.com",
    "gravatar_id": "bb3c3c7a0c6dd7d1a4d7e1c5c0c3b5e6",
    "admin": False,
    "activated": True,
}


def _login_body(access: str = "access-1", refresh: str | None = "refresh-1") -> dict:
    tokens: dict[str, Any] = {"access": {"token": access, "expires": "2030-01-01T00:00:00Z"}}
    if refresh is not None:
        tokens["refresh"] = {"token": refresh}
    return {"user": USER, "tokens": tokens}


def _refresh_body(access: str, remember_token: str | None = None) -> dict:
    payload: dict[str, Any] = {"token": access}
    if remember_token is not None:
        payload["remember_token"] = remember_token
    return {"tokens": {"access": payload}}


class FakeServer:
    """Scripted microfeed API."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], Any] = {}

    def route(self, method: str, path: str, handler: httpx.Response | Callable) -> None:
        self.routes[(method, path)] = handler

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.requests if r.method == method and self._path(r) == path
        ]

    @staticmethod
    def _path(request: httpx.Request) -> str:
        return request.url.path.removeprefix("/api")

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.method, self._path(request)))
        if handler is None:
            return httpx.Response(404, json={"error": "Not found"})
        if isinstance(handler, httpx.Response):
            return handler

        result = handler(request)
        if inspect.isawaitable(result):
            result = await result
        return result


@pytest.fixture
def store():
    return MemoryCredentialStore()


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def session_state(store):
    return SessionState(store)


@pytest.fixture
def api(session_state, server):
    return ApiClient(
        session_state,
        base_url=BASE_URL,
        transport=httpx.MockTransport(server),
    )


@pytest.fixture
def user_payload():
    return dict(USER)


@pytest.fixture
def login_body():
    """Factory for a successful login response body."""
    return _login_body


@pytest.fixture
def refresh_body():
    """Factory for a successful refresh response body."""
    return _refresh_body
