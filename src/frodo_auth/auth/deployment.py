"""Deployment type detection.

The three kinds of installation differ in which admin OAuth2 client exists:
a cloud tenant has ``idmAdminClient``, a forgeops deployment has
``idm-admin-ui``, and a classic install has neither. Detection posts a PKCE
``authorize`` request for each candidate client with the current session
cookie; the first one answered with a redirect carrying ``code=`` wins.

Each login also records the AM version from ``/json/serverinfo/version``.
"""

from __future__ import annotations

import re
from typing import Any, Optional

import httpx

from frodo_auth.auth.oauth2 import (
    CLOUD_ADMIN_CLIENT_ID,
    CLOUD_IDM_ADMIN_SCOPES,
    FORGEOPS_ADMIN_CLIENT_ID,
    FORGEOPS_IDM_ADMIN_SCOPES,
    build_authorize_form,
    extract_code,
    generate_pkce_pair,
)
from frodo_auth.client import endpoints
from frodo_auth.models import DEFAULT_REALM_KEY, DEPLOYMENT_TYPE_REALM_MAP, DeploymentType
from frodo_auth.output import get_output
from frodo_auth.state import SessionContext

_SEMANTIC_VERSION = re.compile(r"\d+\.\d+\.\d+(?:\.\d+)*")

_CANDIDATES: tuple[tuple[DeploymentType, str, str], ...] = (
    (DeploymentType.CLOUD, CLOUD_ADMIN_CLIENT_ID, CLOUD_IDM_ADMIN_SCOPES),
    (DeploymentType.FORGEOPS, FORGEOPS_ADMIN_CLIENT_ID, FORGEOPS_IDM_ADMIN_SCOPES),
)


async def determine_deployment_type(ctx: SessionContext) -> DeploymentType:
    """Classify the deployment behind ``ctx.host``. Never raises.

    A context already using bearer tokens for AM APIs belongs to a service
    account, which only exists in the cloud, so no request is made. On
    success the matching admin client id is stored on the context unless
    one was configured.
    """
    output = get_output()
    if ctx.use_bearer_token_for_am_apis:
        return DeploymentType.CLOUD

    _, challenge = generate_pkce_pair()
    for deployment_type, client_id, scope in _CANDIDATES:
        form = build_authorize_form(ctx, client_id, scope, challenge)
        try:
            response = await endpoints.authorize(ctx, form)
        except httpx.HTTPError as exc:
            output.debug(f"Authorize request for {client_id} failed: {exc}")
            continue
        if extract_code(response) is not None:
            output.verbose(f"{deployment_type.value.capitalize()} deployment detected.")
            if not ctx.admin_client_id:
                ctx.admin_client_id = client_id
            return deployment_type
        output.debug(f"No auth code for {client_id} (HTTP {response.status_code})")

    output.verbose("Classic deployment detected.")
    return DeploymentType.CLASSIC


def determine_default_realm(ctx: SessionContext) -> None:
    """Set the deployment's default realm when none (or the placeholder) is set."""
    if ctx.deployment_type is None:
        return
    if not ctx.realm or ctx.realm == DEFAULT_REALM_KEY:
        ctx.realm = DEPLOYMENT_TYPE_REALM_MAP[ctx.deployment_type]


def get_semantic_version(version_info: Any) -> str:
    """Pull ``7.3.0`` out of a server version document.

    Raises:
        ValueError: If there is no ``version`` or it holds no dotted number.
    """
    version = version_info.get("version") if isinstance(version_info, dict) else None
    match = _SEMANTIC_VERSION.search(version) if isinstance(version, str) else None
    if match is None:
        raise ValueError("Cannot extract semantic version from version info")
    return match.group(0)


async def determine_am_version(ctx: SessionContext) -> Optional[str]:
    """Record the AM version on the context. Never raises."""
    output = get_output()
    try:
        ctx.am_version = get_semantic_version(await endpoints.get_server_version_info(ctx))
    except (httpx.HTTPError, ValueError) as exc:
        output.debug(f"Cannot determine AM version: {exc}")
        return None
    output.debug(f"AM version {ctx.am_version}")
    return ctx.am_version


async def determine_deployment_type_and_default_realm(ctx: SessionContext) -> None:
    if ctx.deployment_type is None:
        ctx.deployment_type = await determine_deployment_type(ctx)
    determine_default_realm(ctx)
    await determine_am_version(ctx)
    get_output().debug(
        f"realm={ctx.realm}, type={ctx.deployment_type.value}, version={ctx.am_version}"
    )
