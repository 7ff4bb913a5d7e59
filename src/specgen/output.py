"""Terminal output for the specgen CLI.

stdout carries data only: the ``inspect`` tables and JSON.  Everything a run
has to say about itself goes to stderr, including progress, collected
diagnostics and fatal errors, so ``specgen inspect --json api.yaml | jq``
keeps working while diagnostics are printed.

Rich styling is used when stdout is an interactive terminal; piping, the
``--no-color`` flag, ``NO_COLOR`` (any value) or ``TERM=dumb`` fall back to
plain text with ``Error:`` / ``Warning:`` prefixes.

A single :class:`OutputManager` is installed by
:func:`~specgen.app.main_callback`; the module-level helpers delegate to it.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, Iterable, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from specgen.diagnostics import Diagnostic, Severity


class OutputFormat(str, Enum):
    """How stdout data is rendered. ``AUTO`` picks ``RICH`` on a colour TTY."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Splits a run's output between stdout (data) and stderr (messages).

    Args:
        format: stdout format; ``AUTO`` resolves from TTY detection.
        no_color: Force plain, unstyled text on both streams.
        quiet: Drop info and success messages.  Warnings, errors and
            diagnostics of warning severity or above are always shown.
        verbose: Show debug messages and info-level diagnostics.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._plain = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose

        if format != OutputFormat.AUTO:
            self._format = format
        elif _is_tty() and not self._plain:
            self._format = OutputFormat.RICH
        else:
            self._format = OutputFormat.PLAIN

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._plain,
            force_terminal=self._format == OutputFormat.RICH,
        )
        self._stderr = Console(file=sys.stderr, no_color=self._plain, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    # ------------------------------------------------------------------ #
    # stdout
    # ------------------------------------------------------------------ #

    def print_data(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    def print_json(self, data: Any) -> None:
        """Write *data* as indented JSON whatever the active format is."""
        self.print_data(json.dumps(data, indent=2, ensure_ascii=False, default=str))

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Write a table: rich grid, list of JSON objects, or tab-separated lines.

        The title is only rendered by the rich grid; plain output stays
        machine-readable.
        """
        if self._format == OutputFormat.JSON:
            self.print_json([dict(zip(headers, row)) for row in rows])
            return
        if self._format == OutputFormat.PLAIN:
            for line in [headers, *rows]:
                self.print_data("\t".join(line))
            return

        table = Table(title=title, header_style="bold cyan")
        for header in headers:
            table.add_column(header)
        for row in rows:
            table.add_row(*(escape(cell) for cell in row))
        self._stdout.print(table)

    # ------------------------------------------------------------------ #
    # stderr
    # ------------------------------------------------------------------ #

    def _say(self, message: str, label: str = "", style: str = "") -> None:
        if self._plain:
            print(f"{label}{message}", file=sys.stderr, flush=True)
            return
        text = escape(f"{label}{message}")
        self._stderr.print(f"[{style}]{text}[/{style}]" if style else text)

    def info(self, message: str) -> None:
        if not self._quiet:
            self._say(message)

    def success(self, message: str) -> None:
        if not self._quiet:
            self._say(message, style="green")

    def warning(self, message: str) -> None:
        self._say(message, "Warning: ", "yellow")

    def error(self, message: str) -> None:
        self._say(message, "Error: ", "bold red")

    def debug(self, message: str) -> None:
        if self._verbose:
            self._say(message, "[debug] ", "dim")

    def diagnostics(self, items: Iterable[Diagnostic]) -> None:
        """Print collected diagnostics.

        Errors (skipped types and operations) and warnings are always shown;
        info diagnostics only with ``--verbose``.
        """
        for item in items:
            if item.severity == Severity.ERROR:
                self.error(item.render())
            elif item.severity == Severity.WARNING:
                self.warning(item.render())
            else:
                self.debug(item.render())


# ------------------------------------------------------------------ #
# Global instance
# ------------------------------------------------------------------ #


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """``NO_COLOR`` set to anything, or ``TERM=dumb``."""
    return os.environ.get("NO_COLOR") is not None or os.environ.get("TERM") == "dumb"


_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """The installed :class:`OutputManager`, or a default one created on first use."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    global _output
    _output = None


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def debug(message: str) -> None:
    get_output().debug(message)


def report_diagnostics(items: Iterable[Diagnostic]) -> None:
    get_output().diagnostics(items)
