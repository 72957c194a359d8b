"""JWT-bearer grant login for service accounts.

A service account proves its identity with a short-lived JWT signed by its
private RSA JWK. The assertion is exchanged at the ``access_token`` endpoint
with the ``service-account`` client. Tenants differ in which admin scopes
they allow; when the server rejects the request with ``invalid_scope`` and
names the offending scopes, the request is retried once without them.
"""

from __future__ import annotations

import json
import time
import uuid
from typing import Any, Optional
from urllib.parse import urlsplit

import httpx
import jwt
from jwt.algorithms import RSAAlgorithm

from frodo_auth.auth.oauth2 import CLOUD_ADMIN_SCOPES
from frodo_auth.client import endpoints
from frodo_auth.exceptions import AuthenticationError, ConfigurationError
from frodo_auth.models import BearerToken
from frodo_auth.output import get_output
from frodo_auth.state import SessionContext

SERVICE_ACCOUNT_CLIENT_ID = "service-account"
JWT_BEARER_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME = 180
"""Seconds until the signed assertion expires."""

DEFAULT_SERVICE_ACCOUNT_SCOPES: tuple[str, ...] = CLOUD_ADMIN_SCOPES


def get_token_audience(host: str) -> str:
    """Token endpoint URL with an explicit port, the ``aud`` the server expects."""
    parts = urlsplit(host)
    port = parts.port or (443 if parts.scheme == "https" else 80)
    path = parts.path.rstrip("/")
    return f"{parts.scheme}://{parts.hostname}:{port}{path}/oauth2/access_token"


def create_payload(service_account_id: str, host: str, now: Optional[float] = None) -> dict[str, Any]:
    issued = now if now is not None else time.time()
    return {
        "iss": service_account_id,
        "sub": service_account_id,
        "aud": get_token_audience(host),
        "exp": int(issued + ASSERTION_LIFETIME),
        # required when requesting the openid scope
        "jti": str(uuid.uuid4()),
    }


def create_signed_jwt(payload: dict[str, Any], jwk: dict[str, Any]) -> str:
    """Sign *payload* with RS256 using the private RSA *jwk*.

    Raises:
        ConfigurationError: If *jwk* is not a usable RSA private key.
    """
    try:
        key = RSAAlgorithm.from_jwk(json.dumps(jwk))
    except (jwt.InvalidKeyError, ValueError, KeyError) as exc:
        raise ConfigurationError("Service account JWK is not a valid RSA key", exc) from exc
    return jwt.encode(payload, key, algorithm="RS256")


def _rejected_scopes(error: httpx.HTTPStatusError, requested: list[str]) -> list[str]:
    """Requested scopes named by an ``invalid_scope`` error, if any."""
    try:
        data = error.response.json()
    except ValueError:
        return []
    if not isinstance(data, dict) or data.get("error") != "invalid_scope":
        return []
    description = str(data.get("error_description") or "")
    return [scope for scope in requested if scope in description]


async def _exchange(ctx: SessionContext, scopes: list[str]) -> dict[str, Any]:
    service_account_id = ctx.service_account_id or ""
    payload = create_payload(service_account_id, ctx.host or "")
    get_output().debug(f"Service account assertion payload: {payload}")
    assertion = create_signed_jwt(payload, ctx.service_account_jwk or {})
    form = {
        "assertion": assertion,
        "client_id": SERVICE_ACCOUNT_CLIENT_ID,
        "grant_type": JWT_BEARER_GRANT_TYPE,
        "scope": " ".join(scopes),
    }
    return await endpoints.access_token(ctx, form)


async def get_fresh_sa_bearer_token(ctx: SessionContext) -> BearerToken:
    """Obtain an access token for the context's service account.

    Requests ``ctx.service_account_scope`` or the default admin scopes.

    Raises:
        AuthenticationError: If the grant is rejected or returns no token.
        ConfigurationError: If the JWK cannot sign.
    """
    scopes = (ctx.service_account_scope or " ".join(DEFAULT_SERVICE_ACCOUNT_SCOPES)).split()
    try:
        try:
            data = await _exchange(ctx, scopes)
        except httpx.HTTPStatusError as exc:
            rejected = _rejected_scopes(exc, scopes)
            if not rejected:
                raise
            scopes = [scope for scope in scopes if scope not in rejected]
            get_output().debug(f"Retrying without unsupported scopes: {' '.join(rejected)}")
            data = await _exchange(ctx, scopes)
    except httpx.HTTPError as exc:
        raise AuthenticationError("Service account login error", exc) from exc

    if "access_token" not in data:
        raise AuthenticationError("Service account login error: no access token in response")
    return BearerToken.from_response(data)


async def determine_service_account_name(ctx: SessionContext) -> Optional[str]:
    """Look up the display name of the context's service account.

    The name only decorates the logged-in subject, so a failed lookup falls
    back to the bare id.
    """
    if ctx.service_account_name or not ctx.service_account_id:
        return ctx.service_account_name
    try:
        account = await endpoints.get_service_account(ctx, ctx.service_account_id)
    except (httpx.HTTPError, ValueError) as exc:
        get_output().debug(f"Cannot look up service account {ctx.service_account_id}: {exc}")
        return None
    name = account.get("name") if isinstance(account, dict) else None
    if isinstance(name, str) and name:
        ctx.service_account_name = name
    return ctx.service_account_name
