"""Shared test fixtures for frodo_auth.

Provides an isolated ``~/.frodo`` per test, a fast key derivation for the
token cache and the master key, an RSA JWK for service account tests, and
:class:`FakeAm`, a small router behind :class:`httpx.MockTransport` that
stands in for an AM deployment.
"""

from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Union

import httpx
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

from frodo_auth.cache.token_cache import TokenCache
from frodo_auth.output import OutputManager, reset_output, set_output
from frodo_auth.protection import MasterKey
from frodo_auth.state import SessionContext

HOST = "https://example.com/am"

Handler = Callable[[httpx.Request], httpx.Response]
Reply = Union[Handler, dict, tuple]


# ---------------------------------------------------------------------------
# Isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolate(tmp_path, monkeypatch) -> None:
    """Point every file frodo_auth touches into tmp_path and clear FRODO_* vars."""
    for name in list(os.environ):
        if name.startswith("FRODO_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("FRODO_TOKEN_CACHE_PATH", str(tmp_path / ".frodo" / "TokenCache.json"))
    monkeypatch.setenv(
        "FRODO_CONNECTION_PROFILES_PATH", str(tmp_path / ".frodo" / "Connections.json")
    )
    monkeypatch.setattr(TokenCache, "kdf_iterations", 1_000)
    monkeypatch.setattr(MasterKey, "kdf_iterations", 1_000)
    set_output(OutputManager(no_color=True, quiet=True))
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_jwk(rsa_private_key) -> dict[str, Any]:
    """Private RSA key as a JWK dict, as downloaded for a service account."""
    return json.loads(RSAAlgorithm.to_jwk(rsa_private_key))


# ---------------------------------------------------------------------------
# Fake AM
# ---------------------------------------------------------------------------


def _reply(
    status_code: int = 200,
    json_body: Any = None,
    headers: Optional[dict[str, str]] = None,
) -> Handler:
    """Build a handler that returns a fresh response on every call."""

    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, json=json_body, headers=headers)

    return _handler


def _redirect_with_code(code: str = "authcode123") -> Handler:
    return _reply(
        302,
        headers={"location": f"https://example.com/platform/appAuthHelperRedirect.html?code={code}&state=x"},
    )


def _session_info_in(ms: int) -> Handler:
    """Session-info handler reporting an idle expiry *ms* from now."""

    def _handler(request: httpx.Request) -> httpx.Response:
        expires = datetime.now(timezone.utc) + timedelta(milliseconds=ms)
        return httpx.Response(
            200,
            json={
                "username": "alice",
                "maxIdleExpirationTime": expires.isoformat().replace("+00:00", "Z"),
            },
        )

    return _handler


class FakeAm:
    """Routes requests by ``(method, path)`` to queued replies.

    Each route holds a list of replies; they are used in order and the last
    one repeats. A reply is a handler, a dict (200 JSON), or a
    ``(status, json)`` tuple. Unrouted requests get a 404 error body.
    """

    reply = staticmethod(_reply)
    redirect_with_code = staticmethod(_redirect_with_code)
    session_info_in = staticmethod(_session_info_in)

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Reply]] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, *replies: Reply) -> FakeAm:
        self.routes[(method, path)] = list(replies)
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        replies = self.routes.get((request.method, request.url.path))
        if not replies:
            return httpx.Response(
                404, json={"code": 404, "reason": "Not Found", "message": "Not Found"}
            )
        current = replies.pop(0) if len(replies) > 1 else replies[0]
        if callable(current):
            return current(request)
        if isinstance(current, tuple):
            return httpx.Response(current[0], json=current[1])
        return httpx.Response(200, json=current)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]


@pytest.fixture
def fake_am() -> FakeAm:
    """A fake classic deployment: cookie name known, no admin OAuth2 clients."""
    am = FakeAm()
    am.on("GET", "/am/json/serverinfo/*", {"cookieName": "iPlanetDirectoryPro"})
    am.on(
        "GET",
        "/am/json/serverinfo/version",
        {"version": "7.3.0", "fullVersion": "ForgeRock Access Management 7.3.0 Build 8d8d5d5"},
    )
    am.on("POST", "/am/oauth2/authorize", (400, {"error": "invalid_client"}))
    return am


@pytest.fixture
def make_ctx(fake_am) -> Callable[..., SessionContext]:
    def _make(**kwargs: Any) -> SessionContext:
        kwargs.setdefault("host", HOST)
        kwargs.setdefault("transport", fake_am.transport)
        kwargs.setdefault("retry_delay", 0)
        kwargs.setdefault("max_retries", 0)
        return SessionContext(**kwargs)

    return _make
