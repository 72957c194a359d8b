"""Typer application and CLI entry point for frodo-auth.

This module wires together the top-level Typer application and registers
the built-in sub-commands (``login`` and ``cache``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs a SIGINT handler and invokes the Typer app.
Unhandled exceptions are written to a crash log under ``~/.frodo/logs``.

See Also:
    :mod:`frodo_auth.output`: Diagnostics initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any

import typer

from frodo_auth import __version__
from frodo_auth.commands.cache import cache_app
from frodo_auth.commands.login import login_command
from frodo_auth.exit_codes import EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="frodo-auth",
    help="Log in to ForgeRock deployments and manage cached tokens.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("login")(login_command)
app.add_typer(cache_app, name="cache", help="Token cache maintenance.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"frodo-auth {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show connection and detection details."
    ),
    debug: bool = typer.Option(False, "--debug", help="Show debug traces."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~frodo_auth.output.OutputManager` built from
    the CLI flags.
    """
    from frodo_auth.output import OutputManager, set_output

    set_output(OutputManager(no_color=no_color, quiet=quiet, verbose=verbose, debug=debug))


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from frodo_auth.config import get_frodo_dir

    logs_dir = get_frodo_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text("".join(traceback.format_exception(exc)))
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``frodo-auth`` console script.

    Unhandled :class:`~frodo_auth.exceptions.FrodoError` instances cause a
    clean exit with the error's ``exit_code``. All other exceptions produce
    a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from frodo_auth.exceptions import FrodoError
        from frodo_auth.output import error

        if isinstance(exc, FrodoError):
            error(exc.combined_message())
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
