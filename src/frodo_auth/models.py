"""Canonical Pydantic models shared across all frodo_auth modules.

The models fall into three groups:

**Enumerations and constants** -- :class:`DeploymentType`,
    :class:`TokenType`, :data:`DEPLOYMENT_TYPES`,
    :data:`DEPLOYMENT_TYPE_REALM_MAP` and :data:`DEFAULT_REALM_KEY`.

**Callback-tree models** -- one round of the authenticate protocol:
    :class:`CallbackValue`, the callback variants (:class:`NameCallback`,
    :class:`PasswordCallback`, :class:`TextInputCallback`,
    :class:`HiddenValueCallback`, :class:`SelectIdPCallback`,
    :class:`UnknownCallback`) and :class:`AuthenticationStep`.

**Token and profile models** -- :class:`SessionToken`, :class:`BearerToken`,
    :class:`Tokens` and :class:`ConnectionProfile`.

Models that travel back to the server use ``extra="allow"`` so that keys
the client does not understand (``_id``, ``header``, ``stage``, ...) are
resubmitted unchanged.
"""

from __future__ import annotations

import enum
import time
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# --- Enumerations ---


class DeploymentType(str, enum.Enum):
    """Classification of the target installation."""

    CLASSIC = "classic"
    CLOUD = "cloud"
    FORGEOPS = "forgeops"


DEPLOYMENT_TYPES: tuple[DeploymentType, ...] = (
    DeploymentType.CLASSIC,
    DeploymentType.CLOUD,
    DeploymentType.FORGEOPS,
)

DEPLOYMENT_TYPE_REALM_MAP: dict[DeploymentType, str] = {
    DeploymentType.CLASSIC: "/",
    DeploymentType.CLOUD: "alpha",
    DeploymentType.FORGEOPS: "/",
}

DEFAULT_REALM_KEY = "__default__realm__"
"""Realm placeholder meaning "use the default realm of the deployment type"."""


class TokenType(str, enum.Enum):
    """Kinds of tokens kept in the token cache."""

    USER_SESSION = "userSession"
    USER_BEARER = "userBearer"
    SA_BEARER = "saBearer"


# --- Callback tree ---


class CallbackValue(BaseModel):
    """A single ``{name, value}`` pair of a callback's ``output`` or ``input``."""

    model_config = ConfigDict(extra="allow")

    name: str = ""
    value: Any = None


class Callback(BaseModel):
    """Common shape of every callback the server sends."""

    model_config = ConfigDict(extra="allow")

    type: str
    output: list[CallbackValue] = Field(default_factory=list)
    input: list[CallbackValue] = Field(default_factory=list)

    @property
    def prompt(self) -> str:
        """The first output value rendered as text (the server's prompt)."""
        if not self.output:
            return ""
        value = self.output[0].value
        return value if isinstance(value, str) else str(value)

    @property
    def input_value(self) -> Any:
        """The first input value, or ``None`` when there is no input slot."""
        return self.input[0].value if self.input else None

    def set_input(self, value: Any) -> None:
        """Fill the first input slot, creating it if the server sent none."""
        if self.input:
            self.input[0].value = value
        else:
            self.input.append(CallbackValue(name="IDToken1", value=value))


class NameCallback(Callback):
    type: Literal["NameCallback"] = "NameCallback"


class PasswordCallback(Callback):
    type: Literal["PasswordCallback"] = "PasswordCallback"


class TextInputCallback(Callback):
    type: Literal["TextInputCallback"] = "TextInputCallback"


class HiddenValueCallback(Callback):
    type: Literal["HiddenValueCallback"] = "HiddenValueCallback"


class SelectIdPCallback(Callback):
    type: Literal["SelectIdPCallback"] = "SelectIdPCallback"

    @property
    def providers(self) -> list[str]:
        """Names of the identity providers offered in the first output."""
        if not self.output or not isinstance(self.output[0].value, list):
            return []
        return [
            entry.get("provider", "")
            for entry in self.output[0].value
            if isinstance(entry, dict)
        ]


class UnknownCallback(Callback):
    """Any callback type the client does not interpret. Resubmitted as-is."""


AnyCallback = Union[
    NameCallback,
    PasswordCallback,
    TextInputCallback,
    HiddenValueCallback,
    SelectIdPCallback,
    UnknownCallback,
]

_CALLBACK_TYPES: dict[str, type[Callback]] = {
    "NameCallback": NameCallback,
    "PasswordCallback": PasswordCallback,
    "TextInputCallback": TextInputCallback,
    "HiddenValueCallback": HiddenValueCallback,
    "SelectIdPCallback": SelectIdPCallback,
}


def parse_callback(raw: dict[str, Any]) -> Callback:
    """Build the callback variant matching ``raw["type"]``."""
    cls = _CALLBACK_TYPES.get(raw.get("type", ""), UnknownCallback)
    return cls.model_validate(raw)


class AuthenticationStep(BaseModel):
    """One round of the callback-tree protocol.

    Keys other than ``authId`` and ``callbacks`` are kept in ``model_extra``
    and sent back with the next submission.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    auth_id: Optional[str] = Field(default=None, alias="authId")
    callbacks: list[Callback] = Field(default_factory=list)

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> AuthenticationStep:
        payload = dict(data)
        raw_callbacks = payload.pop("callbacks", None) or []
        step = cls.model_validate(payload)
        step.callbacks = [parse_callback(raw) for raw in raw_callbacks]
        return step

    def to_payload(self) -> dict[str, Any]:
        """Serialise back into the JSON body the server expects."""
        payload = self.model_dump(by_alias=True, exclude={"callbacks"}, exclude_none=True)
        payload["callbacks"] = [callback.model_dump() for callback in self.callbacks]
        return payload


# --- Tokens ---


class SessionToken(BaseModel):
    """A cookie-backed AM session."""

    model_config = ConfigDict(populate_by_name=True)

    token_id: str = Field(alias="tokenId")
    success_url: Optional[str] = Field(default=None, alias="successUrl")
    realm: Optional[str] = None
    expires: int = Field(description="Expiry in epoch milliseconds")
    from_cache: bool = Field(default=False, alias="fromCache")

    def is_valid(self, now: Optional[int] = None) -> bool:
        return (now if now is not None else now_ms()) < self.expires


class BearerToken(BaseModel):
    """An OAuth2 access token as returned by the ``access_token`` endpoint."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    access_token: str
    token_type: str = "Bearer"
    expires_in: int = 0
    scope: Optional[str] = None
    id_token: Optional[str] = None
    expires: int = Field(default=0, description="Expiry in epoch milliseconds")
    from_cache: bool = Field(default=False, alias="fromCache")

    @classmethod
    def from_response(cls, data: dict[str, Any], now: Optional[int] = None) -> BearerToken:
        """Build a token from a token endpoint response, deriving ``expires``."""
        token = cls.model_validate(data)
        issued = now if now is not None else now_ms()
        token.expires = issued + token.expires_in * 1000
        return token

    def is_valid(self, now: Optional[int] = None) -> bool:
        return (now if now is not None else now_ms()) < self.expires


class Tokens(BaseModel):
    """Result of :func:`~frodo_auth.auth.manager.get_tokens`."""

    bearer_token: Optional[BearerToken] = None
    user_session_token: Optional[SessionToken] = None
    subject: str
    host: str
    realm: Optional[str] = None


# --- Connection profiles ---


class ConnectionProfile(BaseModel):
    """Stored connection details for one tenant.

    Serialised with camelCase keys into ``~/.frodo/Connections.json``.
    The password and service account JWK are written only in encrypted form
    (``encodedPassword``, ``encodedSvcacctJwk``); the plain fields hold the
    decrypted values in memory and are still read from older files.
    """

    model_config = ConfigDict(populate_by_name=True)

    tenant: str
    username: Optional[str] = None
    password: Optional[str] = None
    encoded_password: Optional[str] = Field(default=None, alias="encodedPassword")
    svcacct_id: Optional[str] = Field(default=None, alias="svcacctId")
    svcacct_name: Optional[str] = Field(default=None, alias="svcacctName")
    svcacct_jwk: Optional[dict[str, Any]] = Field(default=None, alias="svcacctJwk")
    encoded_svcacct_jwk: Optional[str] = Field(default=None, alias="encodedSvcacctJwk")
    authentication_service: Optional[str] = Field(
        default=None, alias="authenticationService"
    )
    authentication_header_overrides: dict[str, str] = Field(
        default_factory=dict, alias="authenticationHeaderOverrides"
    )
    deployment_type: Optional[DeploymentType] = Field(
        default=None, alias="deploymentType"
    )
    admin_client_id: Optional[str] = Field(default=None, alias="adminClientId")
    admin_client_redirect_uri: Optional[str] = Field(
        default=None, alias="adminClientRedirectUri"
    )
