"""Tests for configuration paths, environment flags, and atomic writes."""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from frodo_auth import config
from frodo_auth.config import (
    atomic_write,
    env_flag,
    get_connection_profiles_path,
    get_frodo_dir,
    get_token_cache_path,
)


class TestEnvFlag:
    @pytest.mark.parametrize("value", ["1", "true", "TRUE", "yes", " on "])
    def test_truthy(self, monkeypatch, value: str) -> None:
        monkeypatch.setenv("FRODO_NO_CACHE", value)
        assert env_flag("FRODO_NO_CACHE") is True

    @pytest.mark.parametrize("value", ["", "0", "false", "no"])
    def test_falsy(self, monkeypatch, value: str) -> None:
        monkeypatch.setenv("FRODO_NO_CACHE", value)
        assert env_flag("FRODO_NO_CACHE") is False

    def test_unset(self) -> None:
        assert env_flag("FRODO_NO_CACHE") is False


class TestPaths:
    def test_frodo_dir_under_home(self, tmp_path: Path) -> None:
        assert get_frodo_dir() == tmp_path / ".frodo"

    def test_explicit_wins(self, tmp_path: Path) -> None:
        explicit = str(tmp_path / "elsewhere.json")
        assert get_token_cache_path(explicit) == Path(explicit)
        assert get_connection_profiles_path(explicit) == Path(explicit)

    def test_env_override(self, monkeypatch, tmp_path: Path) -> None:
        monkeypatch.setenv(config.FRODO_TOKEN_CACHE_PATH_KEY, str(tmp_path / "cache.json"))
        assert get_token_cache_path() == tmp_path / "cache.json"

    def test_defaults(self, monkeypatch, tmp_path: Path) -> None:
        monkeypatch.delenv(config.FRODO_TOKEN_CACHE_PATH_KEY)
        monkeypatch.delenv(config.FRODO_CONNECTION_PROFILES_PATH_KEY)
        assert get_token_cache_path() == tmp_path / ".frodo" / "TokenCache.json"
        assert get_connection_profiles_path() == tmp_path / ".frodo" / "Connections.json"


class TestAtomicWrite:
    def test_creates_parent_dirs(self, tmp_path: Path) -> None:
        target = tmp_path / "a" / "b" / "file.json"
        atomic_write(target, "{}")
        assert target.read_text() == "{}"

    def test_replaces_existing(self, tmp_path: Path) -> None:
        target = tmp_path / "file.json"
        target.write_text("old")
        atomic_write(target, "new")
        assert target.read_text() == "new"

    def test_mode(self, tmp_path: Path) -> None:
        target = tmp_path / "secret.json"
        atomic_write(target, "{}", mode=0o600)
        assert stat.S_IMODE(os.stat(target).st_mode) == 0o600

    def test_no_temp_files_left(self, tmp_path: Path) -> None:
        target = tmp_path / "file.json"
        atomic_write(target, "{}")
        assert [p.name for p in tmp_path.iterdir()] == ["file.json"]
