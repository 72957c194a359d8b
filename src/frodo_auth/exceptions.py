"""Exception hierarchy for frodo_auth.

All exceptions inherit from :class:`FrodoError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`frodo_auth.exit_codes` and a list of the original errors it wraps.
When the first wrapped error is an :mod:`httpx` error, the diagnostic fields
reported by the server (status, error code, ``error``, ``reason``,
``message``, ``detail``, ``error_description``) are lifted onto the
exception so that :meth:`FrodoError.combined_message` can rebuild a readable
message without losing the original cause.

Subclass hierarchy::

    FrodoError                         (exit 1)
    +-- ConfigurationError             (exit 2)
    +-- AuthenticationError            (exit 3)
    +-- MissingCallbackHandlerError    (exit 3)
    +-- UnsupportedDeploymentTypeError (exit 4)
    +-- UnsupportedFactorError         (exit 4)
    +-- CacheError                     (exit 5)
        +-- TokenNotFoundError         (exit 5)
"""

from __future__ import annotations

from typing import Any, Optional, Sequence, Union

import httpx

from frodo_auth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CACHE_ERROR,
    EXIT_CONFIGURATION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_UNSUPPORTED,
)


def _response_data(error: BaseException) -> dict[str, Any]:
    """Return the decoded JSON body of an httpx status error, or ``{}``."""
    if not isinstance(error, httpx.HTTPStatusError):
        return {}
    try:
        data = error.response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class FrodoError(Exception):
    """Base exception for all frodo_auth errors.

    Args:
        message: Human-readable error description.
        original_errors: One or more underlying exceptions this error wraps.
            The first one is inspected for HTTP diagnostics.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(
        self,
        message: str,
        original_errors: Union[BaseException, Sequence[BaseException], None] = None,
        exit_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code

        if original_errors is None:
            self.original_errors: list[BaseException] = []
        elif isinstance(original_errors, BaseException):
            self.original_errors = [original_errors]
        else:
            self.original_errors = list(original_errors)

        self.is_http_error = False
        self.http_code: Optional[str] = None
        self.http_status: Optional[int] = None
        self.http_error: Optional[str] = None
        self.http_reason: Optional[str] = None
        self.http_message: Optional[str] = None
        self.http_detail: Optional[str] = None
        self.http_description: Optional[str] = None

        if self.original_errors:
            error = self.original_errors[0]
            self.is_http_error = isinstance(error, httpx.HTTPError)
            if isinstance(error, httpx.HTTPStatusError):
                self.http_status = error.response.status_code
            elif isinstance(error, httpx.HTTPError):
                self.http_code = type(error).__name__
            data = _response_data(error)
            if data.get("code") is not None:
                self.http_code = str(data["code"])
            self.http_error = data.get("error")
            self.http_reason = data.get("reason")
            self.http_message = data.get("message")
            self.http_detail = data.get("detail")
            self.http_description = data.get("error_description")

    def get_original_errors(self) -> list[BaseException]:
        """Return the wrapped exceptions, outermost first."""
        return self.original_errors

    def combined_message(self) -> str:
        """Rebuild a multi-line message from this error and everything it wraps."""
        combined = self.message or ""
        for error in self.original_errors:
            if isinstance(error, FrodoError):
                combined += "\n  " + error.combined_message()
            elif isinstance(error, httpx.HTTPError):
                combined += "\n  HTTP client error"
                for label, value in (
                    ("Code", self.http_code),
                    ("Status", self.http_status),
                    ("Error", self.http_error),
                    ("Reason", self.http_reason),
                    ("Message", self.http_message),
                    ("Detail", self.http_detail),
                    ("Description", self.http_description),
                ):
                    if value:
                        combined += f"\n    {label}: {value}"
            else:
                combined += f"\n  {error}"
        return combined


class ConfigurationError(FrodoError):
    """Raised when the host is missing or credentials are incomplete."""

    exit_code = EXIT_CONFIGURATION_ERROR


class UnsupportedDeploymentTypeError(FrodoError):
    """Raised when the deployment type is not in the caller's allow-list.

    Args:
        deployment_type: The detected or configured deployment type.
        allowed: The deployment types the caller accepts.
    """

    exit_code = EXIT_UNSUPPORTED

    def __init__(self, deployment_type: str, allowed: Sequence[str]):
        super().__init__(
            f"Unsupported deployment type '{deployment_type}'. "
            f"Supported types: {', '.join(allowed)}"
        )
        self.deployment_type = deployment_type
        self.allowed = list(allowed)


class UnsupportedFactorError(FrodoError):
    """Raised when a login journey demands a 2FA factor that cannot be automated.

    Args:
        factor: Name of the factor, e.g. ``"WebAuthN"``.
    """

    exit_code = EXIT_UNSUPPORTED

    def __init__(self, factor: str):
        super().__init__(f"Unsupported 2FA factor: {factor}")
        self.factor = factor


class MissingCallbackHandlerError(FrodoError):
    """Raised when a one-time code is required but no handler was supplied."""

    exit_code = EXIT_AUTH_FAILURE


class AuthenticationError(FrodoError):
    """Raised when a login flow fails or yields no token."""

    exit_code = EXIT_AUTH_FAILURE


class CacheError(FrodoError):
    """Raised on token cache I/O, encryption, or decryption failures."""

    exit_code = EXIT_CACHE_ERROR


class TokenNotFoundError(CacheError):
    """Raised when the token cache has no usable entry for a token type."""
