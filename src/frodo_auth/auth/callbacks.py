"""Callback-tree login: the authenticate-step state machine.

The server drives a login journey as a series of steps. Each step either
carries a ``tokenId`` (the journey is complete) or a list of callbacks the
client fills in and resubmits. :func:`evaluate_step` fills one step and
reports what should happen next as a :class:`StepEvaluation`;
:func:`run_login_rounds` loops until a session token is issued or the round
limit is reached.

Handled callbacks:

* ``SelectIdPCallback`` -- picks ``localAuthentication`` when offered, so a
  federated admin login never leaves the automated path.
* ``HiddenValueCallback`` -- answers ``Skip`` to optional 2FA enrolment and
  stops on WebAuthn, which cannot be automated.
* ``NameCallback`` -- a prompt mentioning ``code`` asks for a one-time code
  from the caller's handler; any other is the username.
* ``PasswordCallback`` -- the password.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Union

from frodo_auth.client import endpoints
from frodo_auth.exceptions import MissingCallbackHandlerError, UnsupportedFactorError
from frodo_auth.models import (
    AuthenticationStep,
    HiddenValueCallback,
    NameCallback,
    PasswordCallback,
    SelectIdPCallback,
    SessionToken,
    now_ms,
)
from frodo_auth.output import get_output
from frodo_auth.state import SessionContext

MAX_STEPS = 3
"""Resubmissions allowed before a login is abandoned."""

OtpHandler = Callable[[str], Union[str, Awaitable[str]]]
"""Receives the server's prompt and returns the one-time code."""


@dataclass
class StepEvaluation:
    """Outcome of filling in one authentication step.

    Attributes:
        next_step: Whether the step should be resubmitted.
        need2fa: Whether the step was a second-factor prompt.
        factor: ``"Code"``, ``"WebAuthN"``, or ``None``.
        supported: ``False`` when the factor cannot be automated.
        step: The (filled in) step.
    """

    next_step: bool
    need2fa: bool
    factor: Optional[str]
    supported: bool
    step: AuthenticationStep


async def _ask_for_code(otp_handler: Optional[OtpHandler], prompt: str) -> str:
    if otp_handler is None:
        raise MissingCallbackHandlerError(
            "2FA is enabled and required for this user, but no one-time code handler "
            "was supplied"
        )
    code = otp_handler(prompt)
    if inspect.isawaitable(code):
        code = await code
    return str(code)


async def evaluate_step(
    step: AuthenticationStep,
    ctx: SessionContext,
    otp_handler: Optional[OtpHandler] = None,
) -> StepEvaluation:
    """Fill in *step* from the context and decide how to proceed."""
    output = get_output()
    if not step.callbacks:
        return StepEvaluation(False, False, None, True, step)

    for callback in step.callbacks:
        if isinstance(callback, SelectIdPCallback):
            providers = callback.providers
            output.debug(f"Admin federation enabled. Allowed providers: {providers}")
            if "localAuthentication" in providers:
                callback.set_input("localAuthentication")
        elif isinstance(callback, HiddenValueCallback):
            value = str(callback.input_value or "")
            if "skip" in value:
                callback.set_input("Skip")
            if "webAuthnOutcome" in value:
                output.debug("Unsupported 2FA factor: WebAuthN")
                return StepEvaluation(False, True, "WebAuthN", False, step)
        elif isinstance(callback, NameCallback):
            if "code" in callback.prompt:
                output.info("2FA is enabled and required for this user...")
                callback.set_input(await _ask_for_code(otp_handler, callback.prompt))
                return StepEvaluation(True, True, "Code", True, step)
            callback.set_input(ctx.username)
        elif isinstance(callback, PasswordCallback):
            callback.set_input(ctx.password)

    return StepEvaluation(True, False, None, True, step)


def _parse_expiry(value: Any) -> Optional[int]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return int(parsed.timestamp() * 1000)


async def get_session_token(ctx: SessionContext, response: dict[str, Any]) -> SessionToken:
    """Build a :class:`SessionToken` from a completed step, resolving its expiry."""
    token_id = response["tokenId"]
    info = await endpoints.get_session_info(ctx, token_id)
    expires = _parse_expiry(info.get("maxIdleExpirationTime"))
    if expires is None:
        get_output().debug("Session info has no usable expiry, assuming 30 minutes")
        expires = now_ms() + 30 * 60 * 1000
    return SessionToken(
        token_id=token_id,
        success_url=response.get("successUrl"),
        realm=response.get("realm"),
        expires=expires,
    )


async def run_login_rounds(
    ctx: SessionContext, otp_handler: Optional[OtpHandler] = None
) -> Optional[SessionToken]:
    """Log ``ctx.username`` in through the callback tree.

    Returns:
        The session token, or ``None`` if the journey did not finish within
        :data:`MAX_STEPS` resubmissions.

    Raises:
        UnsupportedFactorError: If the journey demands WebAuthn.
        MissingCallbackHandlerError: If a one-time code is needed but
            *otp_handler* is ``None``.
        httpx.HTTPError: On transport or server errors.
    """
    output = get_output()
    headers = {
        "X-OpenAM-Username": ctx.username or "",
        "X-OpenAM-Password": ctx.password or "",
        **ctx.authentication_header_overrides,
    }
    response = await endpoints.step(ctx, body={}, headers=headers)

    steps = 0
    while True:
        if "tokenId" in response:
            output.debug("Callback tree login complete")
            return await get_session_token(ctx, response)

        if steps >= MAX_STEPS:
            output.debug(f"No session after {steps} resubmissions")
            return None
        step = AuthenticationStep.from_response(response)
        evaluation = await evaluate_step(step, ctx, otp_handler)
        if not evaluation.supported:
            raise UnsupportedFactorError(evaluation.factor or "unknown")
        if not evaluation.next_step:
            output.debug("Journey ended without a session")
            return None
        steps += 1
        response = await endpoints.step(ctx, body=evaluation.step.to_payload())
