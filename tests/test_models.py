"""Tests for the shared Pydantic models."""

from __future__ import annotations

from frodo_auth.models import (
    AuthenticationStep,
    BearerToken,
    ConnectionProfile,
    DeploymentType,
    HiddenValueCallback,
    NameCallback,
    PasswordCallback,
    SelectIdPCallback,
    SessionToken,
    UnknownCallback,
    parse_callback,
)


def _name_callback(prompt: str = "User Name") -> dict:
    return {
        "type": "NameCallback",
        "output": [{"name": "prompt", "value": prompt}],
        "input": [{"name": "IDToken1", "value": ""}],
        "_id": 0,
        "echoOn": False,
    }


class TestCallbacks:
    def test_parse_known_types(self) -> None:
        assert isinstance(parse_callback(_name_callback()), NameCallback)
        assert isinstance(
            parse_callback({"type": "PasswordCallback", "input": []}), PasswordCallback
        )
        assert isinstance(
            parse_callback({"type": "HiddenValueCallback"}), HiddenValueCallback
        )

    def test_parse_unknown_type(self) -> None:
        callback = parse_callback({"type": "ConfirmationCallback", "output": []})
        assert isinstance(callback, UnknownCallback)
        assert callback.type == "ConfirmationCallback"

    def test_prompt_and_input(self) -> None:
        callback = parse_callback(_name_callback("One Time Password code"))
        assert callback.prompt == "One Time Password code"
        callback.set_input("123456")
        assert callback.input_value == "123456"

    def test_set_input_creates_slot(self) -> None:
        callback = parse_callback({"type": "PasswordCallback"})
        assert callback.input_value is None
        callback.set_input("secret")
        assert callback.input[0].name == "IDToken1"
        assert callback.input_value == "secret"

    def test_extra_keys_survive_dump(self) -> None:
        callback = parse_callback(_name_callback())
        assert callback.model_dump()["echoOn"] is False

    def test_select_idp_providers(self) -> None:
        callback = parse_callback(
            {
                "type": "SelectIdPCallback",
                "output": [
                    {
                        "name": "providers",
                        "value": [
                            {"provider": "localAuthentication"},
                            {"provider": "azure"},
                        ],
                    }
                ],
                "input": [{"name": "IDToken1", "value": ""}],
            }
        )
        assert isinstance(callback, SelectIdPCallback)
        assert callback.providers == ["localAuthentication", "azure"]


class TestAuthenticationStep:
    def test_round_trip_keeps_unknown_keys(self) -> None:
        raw = {
            "authId": "abc",
            "header": "Sign In",
            "stage": "DataStore1",
            "callbacks": [_name_callback(), {"type": "PasswordCallback", "input": []}],
        }
        step = AuthenticationStep.from_response(raw)
        assert step.auth_id == "abc"
        assert isinstance(step.callbacks[0], NameCallback)
        step.callbacks[0].set_input("alice")

        payload = step.to_payload()
        assert payload["authId"] == "abc"
        assert payload["header"] == "Sign In"
        assert payload["stage"] == "DataStore1"
        assert payload["callbacks"][0]["input"][0]["value"] == "alice"
        assert payload["callbacks"][0]["echoOn"] is False

    def test_no_callbacks(self) -> None:
        step = AuthenticationStep.from_response({"authId": "abc"})
        assert step.callbacks == []


class TestTokens:
    def test_session_token_aliases(self) -> None:
        token = SessionToken.model_validate(
            {"tokenId": "abc123", "successUrl": "/console", "realm": "/", "expires": 1000}
        )
        assert token.token_id == "abc123"
        assert token.success_url == "/console"
        assert token.from_cache is False
        assert token.is_valid(now=999)
        assert not token.is_valid(now=1000)

    def test_bearer_from_response(self) -> None:
        token = BearerToken.from_response(
            {
                "access_token": "at",
                "token_type": "Bearer",
                "expires_in": 899,
                "scope": "fr:idm:*",
                "refresh_token": "rt",
            },
            now=1_000_000,
        )
        assert token.expires == 1_000_000 + 899_000
        assert token.model_extra == {"refresh_token": "rt"}
        assert token.is_valid(now=1_000_000)


class TestConnectionProfile:
    def test_camel_case_aliases(self) -> None:
        profile = ConnectionProfile.model_validate(
            {
                "tenant": "https://openam-dev.example.com/am",
                "username": "admin",
                "svcacctId": "sa-1",
                "deploymentType": "cloud",
                "authenticationHeaderOverrides": {"X-Test": "1"},
            }
        )
        assert profile.svcacct_id == "sa-1"
        assert profile.deployment_type == DeploymentType.CLOUD
        assert profile.authentication_header_overrides == {"X-Test": "1"}

        dumped = profile.model_dump(by_alias=True, exclude_none=True, mode="json")
        assert dumped["svcacctId"] == "sa-1"
        assert dumped["deploymentType"] == "cloud"
