"""Tests for the auto-refresh scheduler."""

from __future__ import annotations

import asyncio
import logging

import pytest

from frodo_auth.auth import manager
from frodo_auth.auth.scheduler import (
    cancel_auto_refresh,
    compute_refresh_timeout,
    schedule_auto_refresh,
)
from frodo_auth.models import BearerToken, DeploymentType, SessionToken

NOW = 1_700_000_000_000


def _session(expires: int) -> SessionToken:
    return SessionToken(token_id="abc123", expires=expires)


def _bearer(expires: int) -> BearerToken:
    return BearerToken(access_token="at-1", expires=expires)


class TestComputeRefreshTimeout:
    def test_classic_uses_session(self, make_ctx) -> None:
        ctx = make_ctx(deployment_type="classic")
        ctx.user_session_token = _session(NOW + 600_000)
        ctx.bearer_token = _bearer(NOW + 100_000)
        assert compute_refresh_timeout(ctx, now=NOW) == 600_000 - 25_000

    def test_cloud_service_account_uses_bearer(self, make_ctx) -> None:
        ctx = make_ctx(deployment_type="cloud")
        ctx.use_bearer_token_for_am_apis = True
        ctx.user_session_token = _session(NOW + 100_000)
        ctx.bearer_token = _bearer(NOW + 900_000)
        assert compute_refresh_timeout(ctx, now=NOW) == 900_000 - 25_000

    def test_forced_user_uses_earliest(self, make_ctx) -> None:
        ctx = make_ctx(deployment_type="cloud")
        ctx.use_bearer_token_for_am_apis = True
        ctx.user_session_token = _session(NOW + 100_000)
        ctx.bearer_token = _bearer(NOW + 900_000)
        assert compute_refresh_timeout(ctx, force_login_as_user=True, now=NOW) == 75_000

    def test_cloud_user_uses_earliest(self, make_ctx) -> None:
        ctx = make_ctx(deployment_type="forgeops")
        ctx.user_session_token = _session(NOW + 900_000)
        ctx.bearer_token = _bearer(NOW + 300_000)
        assert compute_refresh_timeout(ctx, now=NOW) == 275_000

    def test_nearly_expired_is_clamped(self, make_ctx) -> None:
        ctx = make_ctx(deployment_type="classic")
        ctx.user_session_token = _session(NOW + 1_000)
        assert compute_refresh_timeout(ctx, now=NOW) == 10

    def test_short_timeout_kept(self, make_ctx) -> None:
        ctx = make_ctx(deployment_type="classic")
        ctx.user_session_token = _session(NOW + 45_000)
        assert compute_refresh_timeout(ctx, now=NOW) == 20_000

    def test_nothing_to_refresh(self, make_ctx) -> None:
        assert compute_refresh_timeout(make_ctx(deployment_type="classic"), now=NOW) is None


class TestScheduleAutoRefresh:
    @pytest.mark.asyncio
    async def test_replaces_previous_timer(self, make_ctx) -> None:
        ctx = make_ctx(deployment_type="classic")
        ctx.user_session_token = _session(10**13)
        first = schedule_auto_refresh(ctx)
        second = schedule_auto_refresh(ctx)
        try:
            assert first is not None and second is not None
            assert first.cancelled()
            assert not second.cancelled()
            assert ctx.auto_refresh_timer is second
        finally:
            cancel_auto_refresh(ctx)
        assert second.cancelled()
        assert ctx.auto_refresh_timer is None

    @pytest.mark.asyncio
    async def test_disabled_cancels_existing(self, make_ctx) -> None:
        ctx = make_ctx(deployment_type="classic")
        ctx.user_session_token = _session(10**13)
        first = schedule_auto_refresh(ctx)
        assert schedule_auto_refresh(ctx, auto_refresh=False) is None
        assert first.cancelled()
        assert ctx.auto_refresh_timer is None

    @pytest.mark.asyncio
    async def test_no_tokens_no_timer(self, make_ctx) -> None:
        ctx = make_ctx(deployment_type="classic")
        assert schedule_auto_refresh(ctx) is None

    @pytest.mark.asyncio
    async def test_fires_get_tokens_again(self, make_ctx, monkeypatch) -> None:
        calls = []

        async def fake_get_tokens(ctx, **kwargs):
            calls.append(kwargs)

        monkeypatch.setattr(manager, "get_tokens", fake_get_tokens)
        ctx = make_ctx(deployment_type="classic")
        ctx.user_session_token = _session(0)

        schedule_auto_refresh(ctx, types=[DeploymentType.CLASSIC])
        await asyncio.sleep(0.1)
        await ctx.auto_refresh_task

        assert calls == [
            {
                "force_login_as_user": False,
                "auto_refresh": True,
                "types": [DeploymentType.CLASSIC],
                "otp_handler": None,
            }
        ]
        assert ctx.auto_refresh_timer is None

    @pytest.mark.asyncio
    async def test_failed_refresh_is_logged(self, make_ctx, monkeypatch, caplog) -> None:
        async def failing_get_tokens(ctx, **kwargs):
            raise RuntimeError("AM unavailable")

        monkeypatch.setattr(manager, "get_tokens", failing_get_tokens)
        ctx = make_ctx(deployment_type="classic")
        ctx.user_session_token = _session(0)

        with caplog.at_level(logging.ERROR, logger="frodo_auth.auth.scheduler"):
            schedule_auto_refresh(ctx)
            await asyncio.sleep(0.1)
            await ctx.auto_refresh_task

        assert "Auto refresh of tokens" in caplog.text
        assert "AM unavailable" in caplog.text
