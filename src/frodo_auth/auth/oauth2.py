"""OAuth2 authorization code flow with PKCE for admin users.

After a callback-tree login, cloud and forgeops deployments need an OAuth2
access token for the IDM admin APIs. The session cookie authorizes an
``authorize`` call against the deployment's admin client; the redirect's
``code`` is then exchanged at ``access_token`` together with the PKCE
``code_verifier``.

Also exports :func:`generate_pkce_pair` and :func:`build_authorize_form`,
used by :mod:`frodo_auth.auth.deployment` to try the admin clients.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
from typing import Optional
from urllib.parse import parse_qs, urlsplit

import httpx

from frodo_auth.client import endpoints
from frodo_auth.exceptions import AuthenticationError
from frodo_auth.models import BearerToken, DeploymentType
from frodo_auth.output import get_output
from frodo_auth.state import SessionContext

CLOUD_ADMIN_CLIENT_ID = "idmAdminClient"
FORGEOPS_ADMIN_CLIENT_ID = "idm-admin-ui"
ADMIN_CLIENT_PASSWORD = "doesnotmatter"
REDIRECT_PATH = "/platform/appAuthHelperRedirect.html"

CLOUD_IDM_ADMIN_SCOPES = "openid fr:idm:* fr:idc:esv:*"
FORGEOPS_IDM_ADMIN_SCOPES = "openid fr:idm:*"

CLOUD_ADMIN_SCOPES: tuple[str, ...] = (
    "fr:am:*",
    "fr:idm:*",
    "fr:idc:analytics:*",
    "fr:idc:certificate:*",
    "fr:idc:content-security-policy:*",
    "fr:idc:cookie-domain:*",
    "fr:idc:custom-domain:*",
    "fr:idc:esv:*",
    "fr:idc:promotion:*",
    "fr:idc:release:*",
    "fr:idc:sso-cookie:*",
    "fr:iga:*",
)
"""Admin scopes a cloud tenant may grant, in the order they are requested."""


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge (S256).

    The verifier is 32 random bytes, base64url encoded without padding.

    Returns:
        A tuple of ``(code_verifier, code_challenge)``.
    """
    code_verifier = _b64url(secrets.token_bytes(32))
    code_challenge = _b64url(hashlib.sha256(code_verifier.encode("ascii")).digest())
    return code_verifier, code_challenge


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def get_redirect_uri(ctx: SessionContext) -> str:
    """The admin client redirect URI, ``{scheme}://{netloc}/platform/...`` by default."""
    if ctx.admin_client_redirect_uri:
        return ctx.admin_client_redirect_uri
    parts = urlsplit(ctx.host or "")
    return f"{parts.scheme}://{parts.netloc}{REDIRECT_PATH}"


def build_authorize_form(
    ctx: SessionContext, client_id: str, scope: str, code_challenge: str
) -> dict[str, str]:
    return {
        "redirect_uri": get_redirect_uri(ctx),
        "scope": scope,
        "response_type": "code",
        "client_id": client_id,
        "csrf": ctx.cookie_value or "",
        "decision": "allow",
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }


def extract_code(response: httpx.Response) -> Optional[str]:
    """Return the ``code`` from a redirect's ``Location``, or ``None``.

    Implicit-style redirects carry the code in the fragment instead of the query.
    """
    if response.is_success:
        return None
    location = response.headers.get("location", "")
    if "code=" not in location:
        return None
    parts = urlsplit(location)
    codes = parse_qs(parts.query).get("code") or parse_qs(parts.fragment).get("code")
    return codes[0] if codes else None


def _flatten_scopes(scopes: list[dict]) -> set[str]:
    flat: set[str] = set()
    for entry in scopes:
        if entry.get("scope"):
            flat.add(entry["scope"])
        flat |= _flatten_scopes(entry.get("childScopes") or [])
    return flat


async def get_admin_scopes(ctx: SessionContext) -> str:
    """Scopes to request for the admin user's access token.

    forgeops always gets ``openid fr:idm:*``. A cloud tenant gets ``openid``
    plus every known admin scope it reports as available to service
    accounts, or a minimal fallback if that lookup fails.
    """
    if ctx.deployment_type != DeploymentType.CLOUD:
        return FORGEOPS_IDM_ADMIN_SCOPES
    try:
        available = _flatten_scopes(await endpoints.get_service_account_scopes(ctx))
    except (httpx.HTTPError, ValueError) as exc:
        get_output().debug(f"Cannot read available scopes, using defaults: {exc}")
        return CLOUD_IDM_ADMIN_SCOPES
    granted = [scope for scope in CLOUD_ADMIN_SCOPES if scope in available]
    if not granted:
        return CLOUD_IDM_ADMIN_SCOPES
    return " ".join(["openid", *granted])


async def get_auth_code(
    ctx: SessionContext, client_id: str, scope: str, code_challenge: str
) -> str:
    form = build_authorize_form(ctx, client_id, scope, code_challenge)
    try:
        response = await endpoints.authorize(ctx, form)
    except httpx.HTTPError as exc:
        raise AuthenticationError("Error getting auth code", exc) from exc
    code = extract_code(response)
    if code is None:
        raise AuthenticationError(
            f"No auth code in authorize response (HTTP {response.status_code}); "
            "likely cause: mismatched parameters with OAuth client config"
        )
    return code


async def get_fresh_user_bearer_token(ctx: SessionContext) -> BearerToken:
    """Obtain an access token for the logged-in admin user.

    Requires a session token and a detected cloud or forgeops deployment.

    Raises:
        AuthenticationError: If no code or no access token is obtained.
    """
    output = get_output()
    client_id = ctx.admin_client_id or (
        CLOUD_ADMIN_CLIENT_ID
        if ctx.deployment_type == DeploymentType.CLOUD
        else FORGEOPS_ADMIN_CLIENT_ID
    )
    verifier, challenge = generate_pkce_pair()
    scope = await get_admin_scopes(ctx)
    output.debug(f"Requesting admin token for {client_id} with scope '{scope}'")
    code = await get_auth_code(ctx, client_id, scope, challenge)

    form = {
        "redirect_uri": get_redirect_uri(ctx),
        "grant_type": "authorization_code",
        "code": code,
        "code_verifier": verifier,
    }
    auth: Optional[httpx.Auth] = None
    if ctx.deployment_type == DeploymentType.CLOUD:
        auth = httpx.BasicAuth(client_id, ADMIN_CLIENT_PASSWORD)
    else:
        form["client_id"] = client_id

    try:
        data = await endpoints.access_token(ctx, form, auth=auth)
    except httpx.HTTPError as exc:
        raise AuthenticationError("Error getting access token for user", exc) from exc
    if "access_token" not in data:
        raise AuthenticationError("No access token in response")
    return BearerToken.from_response(data)
