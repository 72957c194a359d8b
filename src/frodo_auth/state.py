"""Per-connection mutable state threaded through every login operation.

A :class:`SessionContext` holds what the caller configured (host,
credentials, realm, flags) together with what the login flows discovered
(deployment type, admin client id, cookie name, tokens) and the pending
auto-refresh timer. Several contexts can coexist in one process; nothing in
frodo_auth keeps connection state at module level.

Fields that were not set explicitly fall back to their ``FRODO_*``
environment variable at read time, see :mod:`frodo_auth.config`.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

import httpx

from frodo_auth import config
from frodo_auth.exceptions import ConfigurationError
from frodo_auth.models import BearerToken, DeploymentType, SessionToken

if TYPE_CHECKING:
    from frodo_auth.cache.token_cache import TokenCache

DEFAULT_COOKIE_NAME = "iPlanetDirectoryPro"


def _env(name: str) -> Optional[str]:
    value = os.environ.get(name)
    return value if value else None


class SessionContext:
    """Configuration and credential holder for one logical connection.

    Args:
        host: Base URL of the AM instance, e.g. ``https://example.com/am``.
        username: Login name for the callback-tree and PKCE flows.
        password: Password for the callback-tree flow.
        realm: Realm name; ``None`` or ``DEFAULT_REALM_KEY`` selects the
            deployment default.
        deployment_type: Skip detection when the type is already known.
        service_account_id: Identity used for the JWT-bearer grant.
        service_account_jwk: Private RSA JWK (dict or JSON text).
        use_token_cache: Enable the encrypted on-disk token cache. Defaults
            to on unless ``FRODO_NO_CACHE`` is set.
        transport: Optional :class:`httpx.AsyncBaseTransport`, mostly for
            tests.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        realm: Optional[str] = None,
        deployment_type: Union[DeploymentType, str, None] = None,
        service_account_id: Optional[str] = None,
        service_account_jwk: Union[dict[str, Any], str, None] = None,
        service_account_scope: Optional[str] = None,
        admin_client_id: Optional[str] = None,
        admin_client_redirect_uri: Optional[str] = None,
        authentication_service: Optional[str] = None,
        authentication_header_overrides: Optional[dict[str, str]] = None,
        use_token_cache: Optional[bool] = None,
        token_cache_path: Optional[str] = None,
        connection_profiles_path: Optional[str] = None,
        master_key_path: Optional[str] = None,
        timeout: float = config.DEFAULT_TIMEOUT,
        max_retries: int = config.DEFAULT_MAX_RETRIES,
        retry_delay: float = config.DEFAULT_RETRY_DELAY,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._host = host
        self._username = username
        self._password = password
        self._realm = realm
        self.deployment_type: Optional[DeploymentType] = (
            DeploymentType(deployment_type) if deployment_type else None
        )
        self._service_account_id = service_account_id
        self._service_account_jwk = service_account_jwk
        self.service_account_scope = service_account_scope
        self._admin_client_id = admin_client_id
        self._admin_client_redirect_uri = admin_client_redirect_uri
        self._authentication_service = authentication_service
        self.authentication_header_overrides: dict[str, str] = dict(
            authentication_header_overrides or {}
        )
        if use_token_cache is None:
            use_token_cache = not config.env_flag(config.FRODO_NO_CACHE_KEY)
        self.use_token_cache = use_token_cache
        self._token_cache_path = token_cache_path
        self._connection_profiles_path = connection_profiles_path
        self._master_key_path = master_key_path

        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.transport = transport

        self.cookie_name: Optional[str] = None
        self.am_version: Optional[str] = None
        self.service_account_name: Optional[str] = None
        self.use_bearer_token_for_am_apis = False
        self.user_session_token: Optional[SessionToken] = None
        self.bearer_token: Optional[BearerToken] = None

        self.auto_refresh_timer: Optional[asyncio.TimerHandle] = None
        self.auto_refresh_task: Optional[asyncio.Task[Any]] = None
        self._token_cache: Optional[TokenCache] = None

    # ------------------------------------------------------------------ #
    # Values with environment fallback
    # ------------------------------------------------------------------ #

    @property
    def host(self) -> Optional[str]:
        return self._host or _env(config.FRODO_HOST_KEY)

    @host.setter
    def host(self, value: Optional[str]) -> None:
        self._host = value

    @property
    def username(self) -> Optional[str]:
        return self._username or _env(config.FRODO_USERNAME_KEY)

    @username.setter
    def username(self, value: Optional[str]) -> None:
        self._username = value

    @property
    def password(self) -> Optional[str]:
        return self._password or _env(config.FRODO_PASSWORD_KEY)

    @password.setter
    def password(self, value: Optional[str]) -> None:
        self._password = value

    @property
    def realm(self) -> Optional[str]:
        return self._realm or _env(config.FRODO_REALM_KEY)

    @realm.setter
    def realm(self, value: Optional[str]) -> None:
        self._realm = value

    @property
    def service_account_id(self) -> Optional[str]:
        return self._service_account_id or _env(config.FRODO_SA_ID_KEY)

    @service_account_id.setter
    def service_account_id(self, value: Optional[str]) -> None:
        self._service_account_id = value

    @property
    def service_account_jwk(self) -> Optional[dict[str, Any]]:
        """The service account JWK as a dict, parsed from JSON text if needed."""
        value = self._service_account_jwk or _env(config.FRODO_SA_JWK_KEY)
        if value is None or isinstance(value, dict):
            return value
        try:
            parsed = json.loads(value)
        except ValueError as exc:
            raise ConfigurationError("Service account JWK is not valid JSON", exc) from exc
        if not isinstance(parsed, dict):
            raise ConfigurationError("Service account JWK must be a JSON object")
        return parsed

    @service_account_jwk.setter
    def service_account_jwk(self, value: Union[dict[str, Any], str, None]) -> None:
        self._service_account_jwk = value

    @property
    def admin_client_id(self) -> Optional[str]:
        return self._admin_client_id or _env(config.FRODO_LOGIN_CLIENT_ID_KEY)

    @admin_client_id.setter
    def admin_client_id(self, value: Optional[str]) -> None:
        self._admin_client_id = value

    @property
    def admin_client_redirect_uri(self) -> Optional[str]:
        return self._admin_client_redirect_uri or _env(config.FRODO_LOGIN_REDIRECT_URI_KEY)

    @admin_client_redirect_uri.setter
    def admin_client_redirect_uri(self, value: Optional[str]) -> None:
        self._admin_client_redirect_uri = value

    @property
    def authentication_service(self) -> Optional[str]:
        return self._authentication_service or _env(config.FRODO_AUTHENTICATION_SERVICE_KEY)

    @authentication_service.setter
    def authentication_service(self, value: Optional[str]) -> None:
        self._authentication_service = value

    @property
    def token_cache_path(self) -> Path:
        return config.get_token_cache_path(self._token_cache_path)

    @token_cache_path.setter
    def token_cache_path(self, value: Optional[str]) -> None:
        self._token_cache_path = value
        self._token_cache = None

    @property
    def connection_profiles_path(self) -> Path:
        return config.get_connection_profiles_path(self._connection_profiles_path)

    @connection_profiles_path.setter
    def connection_profiles_path(self, value: Optional[str]) -> None:
        self._connection_profiles_path = value

    @property
    def master_key_path(self) -> Path:
        return config.get_master_key_path(self._master_key_path)

    @master_key_path.setter
    def master_key_path(self, value: Optional[str]) -> None:
        self._master_key_path = value

    # ------------------------------------------------------------------ #
    # Derived values
    # ------------------------------------------------------------------ #

    @property
    def cookie_value(self) -> Optional[str]:
        """The current session token id, sent as the session cookie."""
        return self.user_session_token.token_id if self.user_session_token else None

    @property
    def has_user_credentials(self) -> bool:
        return bool(self.username and self.password)

    @property
    def has_service_account(self) -> bool:
        return bool(self.service_account_id and self.service_account_jwk)

    @property
    def token_cache(self) -> TokenCache:
        """The :class:`~frodo_auth.cache.token_cache.TokenCache`, created on first use."""
        if self._token_cache is None:
            from frodo_auth.cache.token_cache import TokenCache

            self._token_cache = TokenCache(self)
        return self._token_cache

    def cookie_header(self) -> dict[str, str]:
        """``Cookie`` header carrying the session token, or ``{}``."""
        if not self.cookie_value:
            return {}
        return {"Cookie": f"{self.cookie_name or DEFAULT_COOKIE_NAME}={self.cookie_value}"}

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def cancel_auto_refresh(self) -> None:
        """Cancel the pending refresh timer, if any."""
        if self.auto_refresh_timer is not None:
            self.auto_refresh_timer.cancel()
            self.auto_refresh_timer = None

    def reset(self) -> None:
        """Forget everything discovered by previous logins.

        Configured values (host, credentials, realm, paths) are kept.
        """
        self.cancel_auto_refresh()
        self.user_session_token = None
        self.bearer_token = None
        self.use_bearer_token_for_am_apis = False
        self.deployment_type = None
        self._admin_client_id = None
        self.cookie_name = None
        self.am_version = None
        self.service_account_name = None

    def __repr__(self) -> str:
        return (
            f"SessionContext(host={self.host!r}, username={self.username!r}, "
            f"realm={self.realm!r}, deployment_type={self.deployment_type!r})"
        )
