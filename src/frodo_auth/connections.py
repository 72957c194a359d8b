"""Connection profiles keyed by tenant URL.

Profiles live in a single JSON document (``~/.frodo/Connections.json`` by
default) mapping each tenant URL to a :class:`~frodo_auth.models.ConnectionProfile`
serialised with camelCase keys. Passwords and service account JWKs are stored
encrypted under the :class:`~frodo_auth.protection.MasterKey` and decrypted
when a profile is looked up. The file is written atomically with ``0o600``
permissions, like the token cache.

A profile is looked up by any unique substring of its tenant URL, so
``get_tokens`` can be called with ``host="dev"`` once
``https://openam-dev.example.com/am`` has been saved.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

from cryptography.exceptions import InvalidTag

from frodo_auth.config import atomic_write, get_master_key_path
from frodo_auth.exceptions import ConfigurationError
from frodo_auth.models import ConnectionProfile
from frodo_auth.output import get_output
from frodo_auth.protection import MasterKey
from frodo_auth.state import SessionContext


def load_connection_profiles(path: Path) -> dict[str, dict[str, Any]]:
    """Read the raw profiles document, or ``{}`` if it is missing or unreadable."""
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        get_output().debug(f"Cannot read connection profiles {path}: {exc}")
        return {}
    return data if isinstance(data, dict) else {}


def find_connection_profiles(
    profiles: dict[str, dict[str, Any]], host: str
) -> list[ConnectionProfile]:
    """Return every profile whose tenant URL contains *host*, still encrypted."""
    found = []
    for tenant, raw in profiles.items():
        if host in tenant and isinstance(raw, dict):
            found.append(ConnectionProfile.model_validate({**raw, "tenant": tenant}))
    return found


def decrypt_connection_profile(
    profile: ConnectionProfile, master_key: MasterKey
) -> ConnectionProfile:
    """Fill ``password`` and ``svcacct_jwk`` from their encrypted fields.

    Raises:
        ConfigurationError: If the secrets cannot be decrypted, usually
            because the master key changed.
    """
    try:
        if profile.encoded_password:
            profile.password = master_key.decrypt(profile.encoded_password)
        if profile.encoded_svcacct_jwk:
            jwk = json.loads(master_key.decrypt(profile.encoded_svcacct_jwk))
            if not isinstance(jwk, dict):
                raise ValueError("Service account JWK is not a JSON object")
            profile.svcacct_jwk = jwk
    except (InvalidTag, ValueError, KeyError, OSError) as exc:
        raise ConfigurationError(
            f"Cannot read saved credentials for {profile.tenant}. "
            "Please specify credentials on the command line.",
            exc,
        ) from exc
    return profile


def get_connection_profile_by_host(
    host: str, path: Path, master_key_path: Optional[Path] = None
) -> Optional[ConnectionProfile]:
    """Find and decrypt the single profile identified by *host*.

    Returns:
        The matching profile, or ``None`` when nothing matches.

    Raises:
        ConfigurationError: If *host* matches more than one tenant or the
            profile's secrets cannot be decrypted.
    """
    found = find_connection_profiles(load_connection_profiles(path), host)
    if not found:
        get_output().debug(f"No connection profile matches '{host}'")
        return None
    if len(found) > 1:
        tenants = ", ".join(profile.tenant for profile in found)
        raise ConfigurationError(
            f"Multiple matching profiles found for '{host}': {tenants}. "
            "Please specify a unique sub-string."
        )
    master_key = MasterKey(master_key_path or get_master_key_path())
    return decrypt_connection_profile(found[0], master_key)


def get_connection_profile(ctx: SessionContext) -> Optional[ConnectionProfile]:
    """Profile for the context's host, or ``None``."""
    if not ctx.host:
        return None
    return get_connection_profile_by_host(
        ctx.host, ctx.connection_profiles_path, ctx.master_key_path
    )


def apply_connection_profile(ctx: SessionContext, profile: ConnectionProfile) -> None:
    """Copy profile values onto *ctx* where the context has none of its own."""
    ctx.host = profile.tenant
    if not ctx.has_user_credentials:
        ctx.username = ctx.username or profile.username
        ctx.password = ctx.password or profile.password
    if not ctx.has_service_account:
        ctx.service_account_id = ctx.service_account_id or profile.svcacct_id
        ctx.service_account_jwk = ctx.service_account_jwk or profile.svcacct_jwk
    if not ctx.service_account_name and profile.svcacct_id == ctx.service_account_id:
        ctx.service_account_name = profile.svcacct_name
    if not ctx.authentication_service:
        ctx.authentication_service = profile.authentication_service
    for name, value in profile.authentication_header_overrides.items():
        ctx.authentication_header_overrides.setdefault(name, value)
    if ctx.deployment_type is None and profile.deployment_type is not None:
        ctx.deployment_type = profile.deployment_type
    if not ctx.admin_client_id:
        ctx.admin_client_id = profile.admin_client_id
    if not ctx.admin_client_redirect_uri:
        ctx.admin_client_redirect_uri = profile.admin_client_redirect_uri


def save_connection_profile(ctx: SessionContext) -> bool:
    """Create or update the profile for the context's host.

    An existing profile matched by substring is updated in place; otherwise a
    new profile keyed by ``ctx.host`` is added. Secrets are encrypted with the
    master key, including plain ones left in the profile by older files.

    Returns:
        ``True`` on success, ``False`` if the file could not be written.
    """
    path = ctx.connection_profiles_path
    host = ctx.host or ""
    profiles = load_connection_profiles(path)
    found = find_connection_profiles(profiles, host)
    if len(found) == 1:
        profile = found[0]
        get_output().verbose(f"Existing profile: {profile.tenant}")
    else:
        profile = ConnectionProfile(tenant=host)
        get_output().verbose(f"New profile: {host}")

    if ctx.username:
        profile.username = ctx.username
    if ctx.service_account_id:
        profile.svcacct_id = ctx.service_account_id
    if ctx.service_account_name:
        profile.svcacct_name = ctx.service_account_name
    if ctx.authentication_service:
        profile.authentication_service = ctx.authentication_service
    if ctx.authentication_header_overrides:
        profile.authentication_header_overrides = dict(ctx.authentication_header_overrides)
    if ctx.deployment_type is not None:
        profile.deployment_type = ctx.deployment_type
    if ctx.admin_client_id:
        profile.admin_client_id = ctx.admin_client_id
    if ctx.admin_client_redirect_uri:
        profile.admin_client_redirect_uri = ctx.admin_client_redirect_uri

    password = ctx.password or profile.password
    jwk = ctx.service_account_jwk or profile.svcacct_jwk
    master_key = MasterKey(ctx.master_key_path)
    try:
        if password:
            profile.encoded_password = master_key.encrypt(password)
        if jwk:
            profile.encoded_svcacct_jwk = master_key.encrypt(json.dumps(jwk))
        profiles[profile.tenant] = profile.model_dump(
            mode="json",
            by_alias=True,
            exclude={"tenant", "password", "svcacct_jwk"},
            exclude_none=True,
        )
        atomic_write(path, json.dumps(profiles, indent=2) + "\n", mode=0o600)
    except OSError as exc:
        get_output().warning(f"Could not save connection profile to {path}: {exc}")
        return False
    get_output().debug(f"Saved connection profile for {profile.tenant} in {path}")
    return True
