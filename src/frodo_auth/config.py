"""Configuration constants, environment variables, and file helpers.

This module handles all persistent configuration for frodo_auth:

* **Environment variables** -- the names read by
  :class:`~frodo_auth.state.SessionContext` when a value was not set
  explicitly (``FRODO_HOST``, ``FRODO_USERNAME``, ...).
* **Directory layout** -- everything lives under ``~/.frodo/`` unless an
  explicit path or environment override is given. See
  :func:`get_frodo_dir`, :func:`get_token_cache_path`,
  :func:`get_connection_profiles_path`, and :func:`get_master_key_path`.
* **Atomic writes** -- :func:`atomic_write` writes through a temporary file
  and ``os.replace`` so that a crash or a concurrent reader never sees a
  half-written JSON document.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Optional

_APP_DIR_NAME = ".frodo"
TOKEN_CACHE_FILENAME = "TokenCache.json"
CONNECTION_PROFILES_FILENAME = "Connections.json"
MASTER_KEY_FILENAME = "masterkey.key"

# --- Environment variables ---

FRODO_HOST_KEY = "FRODO_HOST"
FRODO_USERNAME_KEY = "FRODO_USERNAME"
FRODO_PASSWORD_KEY = "FRODO_PASSWORD"
FRODO_REALM_KEY = "FRODO_REALM"
FRODO_SA_ID_KEY = "FRODO_SA_ID"
FRODO_SA_JWK_KEY = "FRODO_SA_JWK"
FRODO_LOGIN_CLIENT_ID_KEY = "FRODO_LOGIN_CLIENT_ID"
FRODO_LOGIN_REDIRECT_URI_KEY = "FRODO_LOGIN_REDIRECT_URI"
FRODO_AUTHENTICATION_SERVICE_KEY = "FRODO_AUTHENTICATION_SERVICE"
FRODO_TOKEN_CACHE_PATH_KEY = "FRODO_TOKEN_CACHE_PATH"
FRODO_CONNECTION_PROFILES_PATH_KEY = "FRODO_CONNECTION_PROFILES_PATH"
FRODO_NO_CACHE_KEY = "FRODO_NO_CACHE"
FRODO_MASTER_KEY_PATH_KEY = "FRODO_MASTER_KEY_PATH"
FRODO_MASTER_KEY_KEY = "FRODO_MASTER_KEY"

# --- HTTP defaults ---

DEFAULT_TIMEOUT = 30.0
"""Per-request timeout in seconds."""

DEFAULT_MAX_RETRIES = 3
"""Retries on transport errors and 5xx responses."""

DEFAULT_RETRY_DELAY = 1.0
"""Base delay in seconds; doubles on every retry."""


def env_flag(name: str) -> bool:
    """Return True if the environment variable *name* holds a truthy value."""
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


# --- Path resolution ---


def get_frodo_dir() -> Path:
    """Return ``~/.frodo`` (not created)."""
    return Path.home() / _APP_DIR_NAME


def get_token_cache_path(explicit: Optional[str] = None) -> Path:
    """Resolve the token cache file path.

    Precedence: *explicit* argument, ``FRODO_TOKEN_CACHE_PATH``, then
    ``~/.frodo/TokenCache.json``.
    """
    if explicit:
        return Path(explicit)
    env_value = os.environ.get(FRODO_TOKEN_CACHE_PATH_KEY, "")
    if env_value:
        return Path(env_value)
    return get_frodo_dir() / TOKEN_CACHE_FILENAME


def get_connection_profiles_path(explicit: Optional[str] = None) -> Path:
    """Resolve the connection profiles file path.

    Precedence: *explicit* argument, ``FRODO_CONNECTION_PROFILES_PATH``, then
    ``~/.frodo/Connections.json``.
    """
    if explicit:
        return Path(explicit)
    env_value = os.environ.get(FRODO_CONNECTION_PROFILES_PATH_KEY, "")
    if env_value:
        return Path(env_value)
    return get_frodo_dir() / CONNECTION_PROFILES_FILENAME


def get_master_key_path(explicit: Optional[str] = None) -> Path:
    """Resolve the master key file that protects connection profile secrets.

    Precedence: *explicit* argument, ``FRODO_MASTER_KEY_PATH``, then
    ``~/.frodo/masterkey.key``.
    """
    if explicit:
        return Path(explicit)
    env_value = os.environ.get(FRODO_MASTER_KEY_PATH_KEY, "")
    if env_value:
        return Path(env_value)
    return get_frodo_dir() / MASTER_KEY_FILENAME


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. When *mode* is given
    the permissions are applied before any content is written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise
