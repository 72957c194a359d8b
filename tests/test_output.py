"""Tests for the diagnostic output system.

Covers:
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline
- Quiet mode suppression rules
- Verbose and debug levels
- Global instance management
- Convenience functions
"""

from __future__ import annotations

import pytest

from frodo_auth import output as output_module
from frodo_auth.output import (
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture(autouse=True)
def _reset_global_output():
    """Ensure the global output instance is reset between tests."""
    reset_output()
    yield
    reset_output()


# ------------------------------------------------------------------ #
# Color
# ------------------------------------------------------------------ #


class TestColorDisabling:
    def test_no_color_env_disables_color(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "1")
        assert _should_disable_color() is True

    def test_no_color_env_any_value(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb_disables_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_normal_term_keeps_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert _should_disable_color() is False


# ------------------------------------------------------------------ #
# Stream discipline
# ------------------------------------------------------------------ #


class TestStreams:
    def test_print_data_goes_to_stdout(self, capfd):
        output_module.print_data("token")
        captured = capfd.readouterr()
        assert captured.out == "token\n"
        assert captured.err == ""

    def test_info_goes_to_stderr(self, capfd):
        OutputManager(no_color=True).info("hello")
        captured = capfd.readouterr()
        assert captured.out == ""
        assert "hello" in captured.err

    def test_error_has_prefix(self, capfd):
        OutputManager(no_color=True).error("bad")
        assert "Error: bad" in capfd.readouterr().err

    def test_warning_has_prefix(self, capfd):
        OutputManager(no_color=True).warning("careful")
        assert "Warning: careful" in capfd.readouterr().err

    def test_markup_is_escaped(self, capfd, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm")
        OutputManager().info("scope [fr:idm:*]")
        assert "[fr:idm:*]" in capfd.readouterr().err


# ------------------------------------------------------------------ #
# Levels
# ------------------------------------------------------------------ #


class TestLevels:
    def test_quiet_suppresses_info_and_success(self, capfd):
        out = OutputManager(no_color=True, quiet=True)
        out.info("info")
        out.success("done")
        assert capfd.readouterr().err == ""

    def test_quiet_does_not_suppress_warning_or_error(self, capfd):
        out = OutputManager(no_color=True, quiet=True)
        out.warning("w")
        out.error("e")
        err = capfd.readouterr().err
        assert "Warning: w" in err
        assert "Error: e" in err

    def test_verbose_hidden_by_default(self, capfd):
        OutputManager(no_color=True).verbose("detected")
        assert capfd.readouterr().err == ""

    def test_verbose_shown_with_verbose(self, capfd):
        OutputManager(no_color=True, verbose=True).verbose("detected")
        assert "detected" in capfd.readouterr().err

    def test_debug_needs_debug_flag(self, capfd):
        OutputManager(no_color=True, verbose=True).debug("trace")
        assert capfd.readouterr().err == ""
        OutputManager(no_color=True, debug=True).debug("trace")
        assert "[debug] trace" in capfd.readouterr().err

    def test_debug_implies_verbose(self):
        out = OutputManager(debug=True)
        assert out.is_verbose is True
        assert out.is_debug is True


# ------------------------------------------------------------------ #
# Global instance
# ------------------------------------------------------------------ #


class TestGlobalInstance:
    def test_default_is_quiet(self):
        assert get_output().is_quiet is True

    def test_set_and_get(self):
        manager = OutputManager(no_color=True, verbose=True)
        set_output(manager)
        assert get_output() is manager

    def test_reset(self):
        manager = OutputManager()
        set_output(manager)
        reset_output()
        assert get_output() is not manager

    def test_convenience_functions_delegate(self, capfd):
        set_output(OutputManager(no_color=True, debug=True))
        output_module.info("info-msg")
        output_module.success("success-msg")
        output_module.verbose("verbose-msg")
        output_module.debug("debug-msg")
        err = capfd.readouterr().err
        for text in ("info-msg", "success-msg", "verbose-msg", "[debug] debug-msg"):
            assert text in err
