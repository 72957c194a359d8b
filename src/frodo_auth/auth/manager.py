"""Token acquisition: the single entry point :func:`get_tokens`.

:func:`get_tokens` resolves missing connection details from the connection
profile store, then logs in with whichever credentials the context holds:

* **Service account** -- JWT-bearer grant (:mod:`frodo_auth.auth.service_account`).
  Only cloud tenants have service accounts.
* **User** -- callback-tree login for a session token
  (:mod:`frodo_auth.auth.callbacks`), followed on cloud and forgeops by the
  PKCE authorization code flow for an admin bearer token
  (:mod:`frodo_auth.auth.oauth2`).

Every token is looked up in the encrypted token cache first and written to
it when freshly obtained. Cache problems never fail a login: they are logged
and treated as a miss. Finally the auto-refresh timer is re-armed.
"""

from __future__ import annotations

from typing import Optional, Sequence, TypeVar, Union
from urllib.parse import urlsplit

import httpx

from frodo_auth.auth.callbacks import OtpHandler, run_login_rounds
from frodo_auth.auth.deployment import determine_deployment_type_and_default_realm
from frodo_auth.auth.oauth2 import get_fresh_user_bearer_token
from frodo_auth.auth.scheduler import schedule_auto_refresh
from frodo_auth.auth.service_account import (
    determine_service_account_name,
    get_fresh_sa_bearer_token,
)
from frodo_auth.cache.token_cache import TokenCache
from frodo_auth.client import endpoints
from frodo_auth.connections import (
    apply_connection_profile,
    decrypt_connection_profile,
    get_connection_profile,
    load_connection_profiles,
    save_connection_profile,
)
from frodo_auth.exceptions import (
    AuthenticationError,
    CacheError,
    ConfigurationError,
    UnsupportedDeploymentTypeError,
)
from frodo_auth.models import (
    DEPLOYMENT_TYPES,
    BearerToken,
    ConnectionProfile,
    DeploymentType,
    SessionToken,
    Tokens,
    TokenType,
)
from frodo_auth.output import get_output
from frodo_auth.protection import MasterKey
from frodo_auth.state import DEFAULT_COOKIE_NAME, SessionContext

T = TypeVar("T", SessionToken, BearerToken)


def is_valid_url(value: str) -> bool:
    parts = urlsplit(value)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


# ------------------------------------------------------------------ #
# Connection details
# ------------------------------------------------------------------ #


def _saved_profile(ctx: SessionContext) -> Optional[ConnectionProfile]:
    """Profile saved under exactly ``ctx.host``.

    The context already holds credentials here, so secrets that cannot be
    decrypted are skipped rather than failing the login.
    """
    raw = load_connection_profiles(ctx.connection_profiles_path).get(ctx.host or "")
    if not isinstance(raw, dict):
        return None
    profile = ConnectionProfile.model_validate({**raw, "tenant": ctx.host})
    try:
        return decrypt_connection_profile(profile, MasterKey(ctx.master_key_path))
    except ConfigurationError as exc:
        get_output().debug(exc.combined_message())
        return profile


def resolve_connection(ctx: SessionContext) -> None:
    """Fill host and credentials from the connection profile store.

    Raises:
        ConfigurationError: If there is no host, a non-URL host matches no
            profile, or no complete set of credentials can be found.
    """
    if not ctx.host:
        raise ConfigurationError("No host specified")

    profile: Optional[ConnectionProfile]
    if not is_valid_url(ctx.host):
        profile = get_connection_profile(ctx)
        if profile is None:
            raise ConfigurationError(
                f"No connection profile matches '{ctx.host}'. "
                "Provide a valid URL or a unique substring of a saved profile."
            )
    elif not (ctx.has_user_credentials or ctx.has_service_account):
        profile = get_connection_profile(ctx)
    else:
        profile = _saved_profile(ctx)

    if profile is not None:
        get_output().debug(f"Using connection profile {profile.tenant}")
        apply_connection_profile(ctx, profile)

    if not (ctx.has_user_credentials or ctx.has_service_account):
        raise ConfigurationError("Incomplete or no credentials")


async def determine_cookie_name(ctx: SessionContext) -> str:
    """Discover the session cookie name, falling back to the AM default."""
    output = get_output()
    try:
        info = await endpoints.get_server_info(ctx)
        ctx.cookie_name = info.get("cookieName") or DEFAULT_COOKIE_NAME
    except (httpx.HTTPError, ValueError) as exc:
        output.verbose(f"Error getting cookie name, using {DEFAULT_COOKIE_NAME}: {exc}")
        ctx.cookie_name = DEFAULT_COOKIE_NAME
    output.debug(f"cookieName={ctx.cookie_name}")
    return ctx.cookie_name


# ------------------------------------------------------------------ #
# Token cache helpers
# ------------------------------------------------------------------ #


def _open_cache(ctx: SessionContext) -> Optional[TokenCache]:
    if not ctx.use_token_cache:
        return None
    cache = ctx.token_cache
    try:
        cache.init()
    except CacheError as exc:
        get_output().debug(f"Token cache unavailable: {exc.combined_message()}")
        return None
    return cache


def _read_cached(cache: Optional[TokenCache], token_type: TokenType, cls: type[T]) -> Optional[T]:
    if cache is None:
        return None
    try:
        token = cache.read_token(token_type)
    except CacheError as exc:
        get_output().debug(str(exc))
        return None
    return token if isinstance(token, cls) else None


def _save_fresh(
    cache: Optional[TokenCache], token_type: TokenType, token: Union[SessionToken, BearerToken]
) -> None:
    if cache is not None and not token.from_cache:
        cache.save_token(token_type, token)


# ------------------------------------------------------------------ #
# Login flows
# ------------------------------------------------------------------ #


async def _login_service_account(ctx: SessionContext, cache: Optional[TokenCache]) -> None:
    output = get_output()
    token = _read_cached(cache, TokenType.SA_BEARER, BearerToken)
    if token is None:
        output.debug(f"Logging in service account {ctx.service_account_id}")
        token = await get_fresh_sa_bearer_token(ctx)
    ctx.bearer_token = token
    ctx.use_bearer_token_for_am_apis = True
    _save_fresh(cache, TokenType.SA_BEARER, token)


async def _login_user(
    ctx: SessionContext,
    cache: Optional[TokenCache],
    types: Sequence[DeploymentType],
    otp_handler: Optional[OtpHandler],
) -> None:
    output = get_output()
    session = _read_cached(cache, TokenType.USER_SESSION, SessionToken)
    if session is None:
        output.debug(f"Logging in user {ctx.username}")
        try:
            session = await run_login_rounds(ctx, otp_handler)
        except httpx.HTTPError as exc:
            raise AuthenticationError(f"User login error for {ctx.username}", exc) from exc
        if session is None:
            raise AuthenticationError(
                f"Incomplete login for user {ctx.username}: no session token issued"
            )
    ctx.user_session_token = session
    _save_fresh(cache, TokenType.USER_SESSION, session)

    await determine_deployment_type_and_default_realm(ctx)
    _check_allowed(ctx, types)

    if ctx.deployment_type in (DeploymentType.CLOUD, DeploymentType.FORGEOPS):
        bearer = _read_cached(cache, TokenType.USER_BEARER, BearerToken)
        if bearer is None:
            bearer = await get_fresh_user_bearer_token(ctx)
        ctx.bearer_token = bearer
        _save_fresh(cache, TokenType.USER_BEARER, bearer)


def _check_allowed(ctx: SessionContext, types: Sequence[DeploymentType]) -> None:
    if ctx.deployment_type is not None and ctx.deployment_type not in types:
        raise UnsupportedDeploymentTypeError(
            ctx.deployment_type.value, [t.value for t in types]
        )


def _subject(ctx: SessionContext) -> str:
    if ctx.use_bearer_token_for_am_apis:
        if ctx.service_account_name:
            return f"service account {ctx.service_account_name} [{ctx.service_account_id}]"
        return f"service account [{ctx.service_account_id}]"
    return f"user {ctx.username}"


async def get_tokens(
    ctx: SessionContext,
    force_login_as_user: bool = False,
    auto_refresh: bool = True,
    types: Sequence[Union[DeploymentType, str]] = DEPLOYMENT_TYPES,
    otp_handler: Optional[OtpHandler] = None,
) -> Tokens:
    """Log in with the context's credentials and return the resulting tokens.

    Args:
        ctx: The session context; updated with tokens, cookie name,
            deployment type, and realm.
        force_login_as_user: Use username/password even when service
            account credentials are available.
        auto_refresh: Re-run this login shortly before the tokens expire.
        types: Deployment types the caller supports.
        otp_handler: Supplies one-time codes when the journey requires 2FA.

    Raises:
        ConfigurationError: Missing host or credentials.
        UnsupportedDeploymentTypeError: Deployment type not in *types*.
        UnsupportedFactorError: The journey requires WebAuthn.
        MissingCallbackHandlerError: A one-time code is needed but there is
            no *otp_handler*.
        AuthenticationError: The login itself failed.
    """
    output = get_output()
    allowed = [DeploymentType(t) for t in types]

    resolve_connection(ctx)
    _check_allowed(ctx, allowed)
    first_connection = ctx.deployment_type is None

    cache = _open_cache(ctx)
    await determine_cookie_name(ctx)

    if (
        not force_login_as_user
        and ctx.deployment_type in (DeploymentType.CLOUD, None)
        and ctx.has_service_account
    ):
        await _login_service_account(ctx, cache)
        await determine_deployment_type_and_default_realm(ctx)
        _check_allowed(ctx, allowed)
        await determine_service_account_name(ctx)
    elif ctx.has_user_credentials:
        ctx.use_bearer_token_for_am_apis = False
        await _login_user(ctx, cache, allowed, otp_handler)
    else:
        raise ConfigurationError("Incomplete or no credentials")

    if first_connection:
        save_connection_profile(ctx)

    schedule_auto_refresh(ctx, force_login_as_user, auto_refresh, allowed, otp_handler)

    tokens = Tokens(
        bearer_token=ctx.bearer_token,
        user_session_token=ctx.user_session_token,
        subject=_subject(ctx),
        host=ctx.host or "",
        realm=ctx.realm,
    )
    output.verbose(f"Connected to {tokens.host} [{tokens.realm}] as {tokens.subject}")
    return tokens
