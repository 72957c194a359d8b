"""Wrappers for the AM endpoints involved in login.

Each function opens an :class:`~frodo_auth.client.async_client.AmClient` for
the given context, issues one request with the endpoint's
``Accept-API-Version`` header, and returns the decoded JSON (or the raw
response where headers matter). HTTP failures propagate as :mod:`httpx`
exceptions.
"""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import urlsplit

import httpx

from frodo_auth.client.async_client import AmClient
from frodo_auth.state import DEFAULT_COOKIE_NAME, SessionContext

AUTHENTICATE_API_VERSION = "resource=2.0, protocol=1.0"
OAUTH2_API_VERSION = "protocol=2.1,resource=1.0"
SESSION_API_VERSION = "resource=4.0"
SERVER_INFO_API_VERSION = "resource=1.1"
SERVER_VERSION_API_VERSION = "resource=1.0"
ENV_API_VERSION = "protocol=1.0,resource=1.0"


def get_realm_path(realm: Optional[str]) -> str:
    """Return the CREST realm path for *realm*.

    ``"/"`` maps to ``/realms/root``, ``"alpha"`` to
    ``/realms/root/realms/alpha``, and nested realms are expanded level by
    level.
    """
    elements = ["root"] + [part for part in (realm or "").split("/") if part]
    return "/realms/" + "/realms/".join(elements)


def get_host_only_url(host: str) -> str:
    """``https://tenant.example.com/am`` -> ``https://tenant.example.com``."""
    parts = urlsplit(host)
    return f"{parts.scheme}://{parts.netloc}"


async def step(
    ctx: SessionContext,
    body: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
    realm: str = "/",
    service: Optional[str] = None,
) -> dict[str, Any]:
    """Submit one round of the callback-tree protocol."""
    params: dict[str, str] = {}
    service = service or ctx.authentication_service
    if service:
        params = {"authIndexType": "service", "authIndexValue": service}
    merged_headers = {"Accept-API-Version": AUTHENTICATE_API_VERSION}
    merged_headers.update(headers or {})
    async with AmClient(ctx) as client:
        response = await client.post(
            f"/json{get_realm_path(realm)}/authenticate",
            params=params or None,
            headers=merged_headers,
            json_body=body if body is not None else {},
        )
    return response.json()


async def authorize(ctx: SessionContext, data: dict[str, str]) -> httpx.Response:
    """POST the PKCE authorize form without following the redirect.

    The response is returned as-is, whatever its status: a successful
    authorization is a 3xx whose ``Location`` carries ``code=``.
    """
    async with AmClient(ctx) as client:
        return await client.post(
            "/oauth2/authorize",
            headers={"Accept-API-Version": OAUTH2_API_VERSION},
            data=data,
            follow_redirects=False,
            raise_for_status=False,
        )


async def access_token(
    ctx: SessionContext,
    data: dict[str, str],
    auth: Optional[httpx.Auth] = None,
) -> dict[str, Any]:
    """Exchange a grant at the ``access_token`` endpoint."""
    async with AmClient(ctx) as client:
        response = await client.post(
            "/oauth2/access_token",
            headers={"Accept-API-Version": OAUTH2_API_VERSION},
            data=data,
            auth=auth,
            authenticated=False,
        )
    return response.json()


async def get_session_info(ctx: SessionContext, token_id: str) -> dict[str, Any]:
    """Look up a session, including its ``maxIdleExpirationTime``."""
    async with AmClient(ctx) as client:
        response = await client.post(
            f"/json{get_realm_path('/')}/sessions",
            params={"_action": "getSessionInfo"},
            headers={
                "Accept-API-Version": SESSION_API_VERSION,
                "Cookie": f"{ctx.cookie_name or DEFAULT_COOKIE_NAME}={token_id}",
            },
            json_body={"tokenId": token_id},
        )
    return response.json()


async def get_server_info(ctx: SessionContext) -> dict[str, Any]:
    async with AmClient(ctx) as client:
        response = await client.get(
            "/json/serverinfo/*",
            headers={"Accept-API-Version": SERVER_INFO_API_VERSION},
            authenticated=False,
        )
    return response.json()


async def get_server_version_info(ctx: SessionContext) -> dict[str, Any]:
    """``version``, ``fullVersion``, ``revision`` and ``date`` of the AM build."""
    async with AmClient(ctx) as client:
        response = await client.get(
            "/json/serverinfo/version",
            headers={"Accept-API-Version": SERVER_VERSION_API_VERSION},
        )
    return response.json()


async def get_service_account_scopes(ctx: SessionContext) -> list[dict[str, Any]]:
    """Scopes the cloud tenant allows for service accounts (nested tree)."""
    url = f"{get_host_only_url(ctx.host or '')}/environment/scopes/service-accounts"
    async with AmClient(ctx) as client:
        response = await client.get(
            url,
            headers={"Accept-API-Version": ENV_API_VERSION},
        )
    data = response.json()
    return data if isinstance(data, list) else []


async def get_service_account(ctx: SessionContext, service_account_id: str) -> dict[str, Any]:
    """The IDM managed object of a cloud service account."""
    url = f"{get_host_only_url(ctx.host or '')}/openidm/managed/svcacct/{service_account_id}"
    async with AmClient(ctx) as client:
        response = await client.get(url, params={"_fields": "*"})
    return response.json()
