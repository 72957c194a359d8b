"""Diagnostic output with strict stderr discipline.

Every message frodo_auth emits is a diagnostic (status, progress, debug
traces, errors), so everything goes to stderr and stdout stays free for
callers that pipe the CLI's data output.

* **TTY detection** -- Rich markup when stderr is an interactive terminal,
  plain text otherwise.
* **Colour control** -- respects ``NO_COLOR``, ``TERM=dumb``, and the
  ``--no-color`` CLI flag.
* **Levels** -- ``info``/``success`` (suppressed by quiet), ``verbose``
  (shown with ``--verbose`` or ``--debug``), ``debug`` (``--debug`` only),
  ``warning``/``error`` (never suppressed).

The module exposes two layers:

1. :class:`OutputManager` -- a stateful object holding the flags and the
   Rich console. Created once by the CLI and installed via
   :func:`set_output`.
2. Module-level convenience functions (:func:`info`, :func:`error`,
   :func:`debug`, etc.) that delegate to the global ``OutputManager``
   instance so library code does not need to pass the manager around.

Library users who never install a manager get a quiet default, so the
library is silent unless asked otherwise.
"""

from __future__ import annotations

import os
import sys
from typing import Optional

from rich.console import Console
from rich.markup import escape


class OutputManager:
    """Central manager for diagnostic output.

    Args:
        no_color: Disable all colour and Rich markup.
        quiet: Suppress informational messages.
        verbose: Show verbose messages (connection details, detection
            results).
        debug: Show debug traces as well as verbose messages.
    """

    def __init__(
        self,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
        debug: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose or debug
        self._debug = debug
        self._stderr = Console(
            file=sys.stderr,
            no_color=self._no_color,
            stderr=True,
        )

    @property
    def is_quiet(self) -> bool:
        """Whether quiet mode is enabled."""
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        """Whether verbose messages are shown."""
        return self._verbose

    @property
    def is_debug(self) -> bool:
        """Whether debug traces are shown."""
        return self._debug

    def info(self, message: str) -> None:
        """Print an informational message. Suppressed by ``--quiet``."""
        if not self._quiet:
            self._emit(message)

    def success(self, message: str) -> None:
        """Print a green success message. Suppressed by ``--quiet``."""
        if not self._quiet:
            self._emit(message, style="green")

    def warning(self, message: str) -> None:
        """Print a yellow warning. NOT suppressed by ``--quiet``."""
        self._emit(message, prefix="Warning:", style="yellow")

    def error(self, message: str) -> None:
        """Print a bold-red error. Never suppressed."""
        self._emit(message, prefix="Error:", style="bold red")

    def verbose(self, message: str) -> None:
        """Print a message shown only with ``--verbose`` or ``--debug``."""
        if self._verbose:
            self._emit(message, style="cyan")

    def debug(self, message: str) -> None:
        """Print a debug trace shown only with ``--debug``."""
        if self._debug:
            self._emit(message, prefix="[debug]", style="dim")

    def _emit(
        self,
        message: str,
        prefix: Optional[str] = None,
        style: Optional[str] = None,
    ) -> None:
        if self._no_color:
            text = f"{prefix} {message}" if prefix else message
            print(text, file=sys.stderr, flush=True)
            return
        body = escape(message)
        if prefix:
            body = f"{escape(prefix)} {body}"
        if style:
            body = f"[{style}]{body}[/{style}]"
        self._stderr.print(body)


def _should_disable_color() -> bool:
    """Check if color should be disabled.

    Returns True when NO_COLOR env var is set (any value) or TERM=dumb.
    """
    if os.environ.get("NO_COLOR") is not None:
        return True
    if os.environ.get("TERM") == "dumb":
        return True
    return False


# ------------------------------------------------------------------ #
# Global instance
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the global OutputManager, creating a quiet default if needed."""
    global _output
    if _output is None:
        _output = OutputManager(quiet=True)
    return _output


def set_output(manager: OutputManager) -> None:
    """Install *manager* as the global OutputManager."""
    global _output
    _output = manager


def reset_output() -> None:
    """Drop the global OutputManager so the next call builds a fresh one."""
    global _output
    _output = None


def print_data(text: str) -> None:
    """Print raw data to stdout. Never suppressed."""
    print(text, file=sys.stdout, flush=True)


def info(message: str) -> None:
    """Print info message to stderr via the global OutputManager."""
    get_output().info(message)


def success(message: str) -> None:
    """Print success message to stderr via the global OutputManager."""
    get_output().success(message)


def warning(message: str) -> None:
    """Print warning to stderr via the global OutputManager."""
    get_output().warning(message)


def error(message: str) -> None:
    """Print error to stderr via the global OutputManager."""
    get_output().error(message)


def verbose(message: str) -> None:
    """Print verbose message to stderr via the global OutputManager."""
    get_output().verbose(message)


def debug(message: str) -> None:
    """Print debug trace to stderr via the global OutputManager."""
    get_output().debug(message)
