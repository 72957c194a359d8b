"""``frodo-auth cache`` -- token cache maintenance.

Provides ``path``, ``purge`` and ``flush``. None of them need credentials:
they only touch the cache file, never decrypt it.
"""

from __future__ import annotations

from typing import Optional

import typer

from frodo_auth.cache.token_cache import TokenCache
from frodo_auth.exceptions import CacheError
from frodo_auth.output import error, info, print_data, success
from frodo_auth.state import SessionContext

cache_app = typer.Typer(no_args_is_help=True)

_PATH_OPTION = typer.Option(
    None, "--path", help="Token cache file. Defaults to FRODO_TOKEN_CACHE_PATH or ~/.frodo."
)


def _cache(path: Optional[str]) -> TokenCache:
    return SessionContext(token_cache_path=path).token_cache


@cache_app.command("path")
def cache_path(path: Optional[str] = _PATH_OPTION) -> None:
    """Print the location of the token cache file."""
    print_data(str(_cache(path).path))


@cache_app.command("purge")
def cache_purge(path: Optional[str] = _PATH_OPTION) -> None:
    """Remove expired tokens from the cache."""
    cache = _cache(path)
    try:
        remaining = cache.purge()
    except CacheError as exc:
        error(exc.combined_message())
        raise typer.Exit(code=exc.exit_code) from None
    success(f"Purged expired tokens from {cache.path}")
    info(f"{len(remaining)} host(s) still have cached tokens.")


@cache_app.command("flush")
def cache_flush(path: Optional[str] = _PATH_OPTION) -> None:
    """Delete every cached token."""
    cache = _cache(path)
    if not cache.flush():
        error(f"Could not flush {cache.path}")
        raise typer.Exit(code=CacheError.exit_code)
    success(f"Flushed {cache.path}")
