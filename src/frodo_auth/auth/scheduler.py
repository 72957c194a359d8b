"""Background refresh of tokens shortly before they expire.

Each :class:`~frodo_auth.state.SessionContext` owns at most one pending
refresh, an :class:`asyncio.TimerHandle` on the running event loop. Arming a
new refresh always cancels the previous one. When the timer fires it starts
a task that calls :func:`~frodo_auth.auth.manager.get_tokens` again with the
original flags; that call re-arms the timer in turn.

The timer does not keep the process alive: once the caller's coroutine
returns and the loop stops, a pending refresh simply never runs.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from frodo_auth.auth.callbacks import OtpHandler
from frodo_auth.models import DEPLOYMENT_TYPES, DeploymentType, now_ms
from frodo_auth.output import get_output
from frodo_auth.state import SessionContext

logger = logging.getLogger(__name__)

REFRESH_LEAD_MS = 25_000
"""Refresh this long before the earliest relevant expiry."""

MIN_TIMEOUT_MS = 10
SHORT_TIMEOUT_MS = 30_000


def compute_refresh_timeout(
    ctx: SessionContext,
    force_login_as_user: bool = False,
    now: Optional[int] = None,
) -> Optional[int]:
    """Milliseconds until the next refresh, or ``None`` if nothing can expire.

    Classic deployments only track the session token; a cloud service
    account only its bearer token; everything else the earlier of the two.
    Timeouts under 30 s are clamped to at least 10 ms so an almost-expired
    token is refreshed right away instead of never.
    """
    now = now if now is not None else now_ms()
    bearer = ctx.bearer_token.expires if ctx.bearer_token else None
    session = ctx.user_session_token.expires if ctx.user_session_token else None

    if ctx.deployment_type == DeploymentType.CLASSIC:
        candidates = [session]
    elif (
        ctx.deployment_type == DeploymentType.CLOUD
        and ctx.use_bearer_token_for_am_apis
        and not force_login_as_user
    ):
        candidates = [bearer]
    else:
        candidates = [bearer, session]

    known = [expires for expires in candidates if expires is not None]
    if not known:
        return None
    timeout = min(known) - now - REFRESH_LEAD_MS
    if timeout < SHORT_TIMEOUT_MS:
        timeout = max(timeout, MIN_TIMEOUT_MS)
    return timeout


def cancel_auto_refresh(ctx: SessionContext) -> None:
    ctx.cancel_auto_refresh()


def schedule_auto_refresh(
    ctx: SessionContext,
    force_login_as_user: bool = False,
    auto_refresh: bool = True,
    types: Sequence[DeploymentType] = DEPLOYMENT_TYPES,
    otp_handler: Optional[OtpHandler] = None,
) -> Optional[asyncio.TimerHandle]:
    """Replace the context's pending refresh.

    Must be called from a coroutine running on the event loop that should
    perform the refresh.

    Returns:
        The new timer handle, or ``None`` if no refresh was armed.
    """
    ctx.cancel_auto_refresh()
    if not auto_refresh:
        return None
    timeout = compute_refresh_timeout(ctx, force_login_as_user)
    if timeout is None:
        return None

    loop = asyncio.get_running_loop()

    def _fire() -> None:
        ctx.auto_refresh_timer = None
        ctx.auto_refresh_task = loop.create_task(
            _refresh(ctx, force_login_as_user, types, otp_handler)
        )

    get_output().debug(f"Auto refresh scheduled in {timeout / 1000:.1f}s")
    ctx.auto_refresh_timer = loop.call_later(timeout / 1000, _fire)
    return ctx.auto_refresh_timer


async def _refresh(
    ctx: SessionContext,
    force_login_as_user: bool,
    types: Sequence[DeploymentType],
    otp_handler: Optional[OtpHandler],
) -> None:
    from frodo_auth.auth.manager import get_tokens

    try:
        await get_tokens(
            ctx,
            force_login_as_user=force_login_as_user,
            auto_refresh=True,
            types=types,
            otp_handler=otp_handler,
        )
    except Exception:
        logger.exception("Auto refresh of tokens for %s failed", ctx.host)
