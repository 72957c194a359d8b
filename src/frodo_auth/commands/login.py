"""``frodo-auth login`` -- connect to a deployment and obtain tokens.

Examples::

    frodo-auth login https://tenant.example.com/am admin
    frodo-auth login tenant --sa-id 1b2c... --sa-jwk-file sa.jwk
    frodo-auth login https://am.example.com/am amadmin --type classic --print-token
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import List, Optional

import typer

from frodo_auth.auth.manager import get_tokens
from frodo_auth.exceptions import ConfigurationError, FrodoError
from frodo_auth.models import DEPLOYMENT_TYPES, DeploymentType
from frodo_auth.output import error, print_data, success
from frodo_auth.state import SessionContext


def _prompt_for_code(prompt: str) -> str:
    return typer.prompt(prompt)


def _read_jwk(path: Path) -> dict:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Cannot read service account JWK from {path}", exc) from exc


def login_command(
    host: Optional[str] = typer.Argument(
        None, help="AM base URL or a unique substring of a saved connection profile."
    ),
    username: Optional[str] = typer.Argument(None, help="Username."),
    password: Optional[str] = typer.Argument(
        None, help="Password. Prompted for when a username is given without one."
    ),
    realm: Optional[str] = typer.Option(None, "--realm", "-r", help="Realm name."),
    sa_id: Optional[str] = typer.Option(None, "--sa-id", help="Service account id."),
    sa_jwk_file: Optional[Path] = typer.Option(
        None, "--sa-jwk-file", help="File holding the service account's private JWK."
    ),
    deployment_types: Optional[List[DeploymentType]] = typer.Option(
        None,
        "--type",
        "-t",
        help="Deployment type(s) to accept. Skips detection when exactly one is given.",
    ),
    no_cache: bool = typer.Option(False, "--no-cache", help="Do not use the token cache."),
    force_user: bool = typer.Option(
        False, "--force-user", help="Log in as the user even if service account credentials exist."
    ),
    print_token: bool = typer.Option(
        False, "--print-token", help="Print the bearer token (or session id) to stdout."
    ),
) -> None:
    """Log in and report who is connected where."""
    try:
        if username and not password:
            password = typer.prompt("Password", hide_input=True)
        ctx = SessionContext(
            host=host,
            username=username,
            password=password,
            realm=realm,
            service_account_id=sa_id,
            service_account_jwk=_read_jwk(sa_jwk_file) if sa_jwk_file else None,
            use_token_cache=False if no_cache else None,
        )
        types = list(deployment_types) if deployment_types else list(DEPLOYMENT_TYPES)
        if deployment_types and len(deployment_types) == 1:
            ctx.deployment_type = deployment_types[0]

        tokens = asyncio.run(
            get_tokens(
                ctx,
                force_login_as_user=force_user,
                auto_refresh=False,
                types=types,
                otp_handler=_prompt_for_code,
            )
        )
    except FrodoError as exc:
        error(exc.combined_message())
        raise typer.Exit(code=exc.exit_code) from None

    success(f"Connected to {tokens.host} [{tokens.realm}] as {tokens.subject}")
    if print_token:
        if tokens.bearer_token is not None:
            print_data(tokens.bearer_token.access_token)
        elif tokens.user_session_token is not None:
            print_data(tokens.user_session_token.token_id)
