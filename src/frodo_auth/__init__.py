"""frodo_auth -- authentication and token lifecycle for ForgeRock deployments.

This package logs a client into a ForgeRock Access Management deployment and
keeps the resulting tokens valid for the lifetime of a long-running process.
It supports three login surfaces:

* the interactive callback-tree ``/authenticate`` protocol (session login,
  including one-time-code 2FA),
* the OAuth2 authorization code grant with PKCE for human admins, and
* the JWT bearer grant for service accounts.

Typical usage::

    import asyncio

    from frodo_auth import SessionContext, get_tokens

    ctx = SessionContext(host="https://tenant.example.com/am",
                         username="admin", password="secret")
    tokens = asyncio.run(get_tokens(ctx))

Modules:
    state: The mutable per-connection :class:`SessionContext`.
    models: Pydantic models for tokens, callbacks, and connection profiles.
    auth: Deployment detection, login flows, and the refresh scheduler.
    cache: The encrypted on-disk token cache.
    client: The async HTTP transport and AM endpoint wrappers.
    connections: Connection profile storage.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stderr diagnostics with Rich support.
    app: Typer CLI entry point.
"""

__version__ = "0.1.0"

from frodo_auth.auth.manager import get_tokens  # noqa: E402
from frodo_auth.models import (  # noqa: E402
    BearerToken,
    DeploymentType,
    SessionToken,
    Tokens,
    TokenType,
)
from frodo_auth.state import SessionContext  # noqa: E402

__all__ = [
    "BearerToken",
    "DeploymentType",
    "SessionContext",
    "SessionToken",
    "TokenType",
    "Tokens",
    "get_tokens",
    "__version__",
]
