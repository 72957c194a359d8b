"""Asynchronous HTTP client for the AM endpoints used during login.

This module provides :class:`AmClient`, a thin wrapper around
:class:`httpx.AsyncClient` bound to a :class:`~frodo_auth.state.SessionContext`.
It adds:

* the session cookie and, when the context uses bearer tokens for AM APIs,
  the ``Authorization`` header;
* retry with exponential backoff on transport errors and 5xx responses;
* per-request control over redirect following and status checking, since
  the OAuth2 ``authorize`` endpoint answers with an expected redirect.

Errors are raised as plain :mod:`httpx` exceptions; the login flows wrap them
in :class:`~frodo_auth.exceptions.FrodoError` subclasses, which lift the
server's diagnostic fields out of the response.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx

from frodo_auth.output import get_output
from frodo_auth.state import SessionContext


class AmClient:
    """Asynchronous HTTP client for one :class:`SessionContext`.

    Must be used as an async context manager.

    Args:
        ctx: The session context providing the host, tokens, and transport
            settings (timeout, retries, optional custom transport).

    Example::

        async with AmClient(ctx) as client:
            response = await client.get("/json/serverinfo/*")
    """

    def __init__(self, ctx: SessionContext) -> None:
        self._ctx = ctx
        self._client: Optional[httpx.AsyncClient] = None

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> AmClient:
        kwargs: dict[str, Any] = {
            "base_url": self._ctx.host or "",
            "timeout": self._ctx.timeout,
            "follow_redirects": False,
        }
        if self._ctx.transport is not None:
            kwargs["transport"] = self._ctx.transport
        self._client = httpx.AsyncClient(**kwargs)
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        json_body: Optional[Any] = None,
        data: Optional[dict[str, Any]] = None,
        auth: Optional[httpx.Auth] = None,
        authenticated: bool = True,
        follow_redirects: bool = True,
        raise_for_status: bool = True,
    ) -> httpx.Response:
        """Make an HTTP request with session credentials and retry.

        Args:
            method: HTTP method.
            path: URL path appended to the context's host.
            params: Query parameters.
            headers: Extra request headers. They win over injected ones.
            json_body: JSON-serialisable body.
            data: Form-encoded body.
            auth: Explicit httpx auth, e.g. :class:`httpx.BasicAuth` for a
                confidential OAuth2 client. Disables bearer injection.
            authenticated: Send the session cookie and bearer token.
            follow_redirects: Follow 3xx responses.
            raise_for_status: Raise :class:`httpx.HTTPStatusError` on 4xx/5xx.

        Returns:
            The :class:`httpx.Response` from the server.

        Raises:
            httpx.HTTPStatusError: On error responses when *raise_for_status*.
            httpx.TransportError: On network errors after all retries.
        """
        merged_headers: dict[str, str] = {}
        if authenticated:
            merged_headers.update(self._ctx.cookie_header())
            if auth is None:
                merged_headers.update(self._bearer_header())
        merged_headers.update(headers or {})

        response = await self._execute_with_retry(
            method,
            path,
            headers=merged_headers,
            params=params,
            json_body=json_body,
            data=data,
            auth=auth,
            follow_redirects=follow_redirects,
        )
        if raise_for_status:
            response.raise_for_status()
        return response

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        """Send an async GET request."""
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        """Send an async POST request."""
        return await self.request("POST", path, **kwargs)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _bearer_header(self) -> dict[str, str]:
        token = self._ctx.bearer_token
        if self._ctx.use_bearer_token_for_am_apis and token is not None:
            return {"Authorization": f"Bearer {token.access_token}"}
        return {}

    async def _execute_with_retry(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        params: Optional[dict[str, Any]],
        json_body: Any,
        data: Optional[dict[str, Any]],
        auth: Optional[httpx.Auth],
        follow_redirects: bool,
    ) -> httpx.Response:
        """Execute the HTTP request with exponential-backoff retry.

        Retries on 5xx status codes and transport errors up to
        ``ctx.max_retries`` times. The delay doubles each attempt starting at
        ``ctx.retry_delay``.
        """
        assert self._client is not None, "Client not initialised -- use as async context manager"

        max_retries = self._ctx.max_retries
        output = get_output()

        for attempt in range(max_retries + 1):
            kwargs: dict[str, Any] = {
                "method": method,
                "url": path,
                "headers": headers,
                "params": params,
                "follow_redirects": follow_redirects,
            }
            if data is not None:
                kwargs["data"] = data
            elif json_body is not None:
                kwargs["json"] = json_body
            if auth is not None:
                kwargs["auth"] = auth

            delay = self._ctx.retry_delay * 2 ** attempt
            try:
                response = await self._client.request(**kwargs)
            except httpx.TransportError as exc:
                if attempt >= max_retries:
                    raise
                output.debug(
                    f"Connection error: {exc}, retrying in {delay}s "
                    f"(attempt {attempt + 1}/{max_retries})"
                )
                await asyncio.sleep(delay)
                continue

            if response.status_code >= 500 and attempt < max_retries:
                output.debug(
                    f"Server error {response.status_code}, retrying in {delay}s "
                    f"(attempt {attempt + 1}/{max_retries})"
                )
                await asyncio.sleep(delay)
                continue

            return response

        raise AssertionError("unreachable")  # pragma: no cover
