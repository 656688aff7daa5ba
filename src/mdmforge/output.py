"""Terminal output for the mdmforge CLI.

Everything a command prints goes through an :class:`OutputManager`:

* results (account tables, validation reports, submission outcomes) are
  written to **stdout**, so ``mdmforge --json profile validate x.yaml | jq``
  works;
* status messages, warnings, errors and next-step hints are written to
  **stderr**;
* Rich styling is only used when stdout is a terminal and colour has not
  been turned off with ``--no-color``, ``NO_COLOR`` or ``TERM=dumb``.

Library code never prints. It logs through :mod:`logging`, and
:func:`configure_logging` hands those records to the same stderr console.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table


class OutputFormat(str, Enum):
    """How results are rendered on stdout."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Route CLI output to stdout or stderr in the selected format.

    Args:
        format: ``AUTO`` picks ``RICH`` on a colour terminal and ``PLAIN``
            otherwise.
        no_color: Never emit styles.
        quiet: Drop info, success and suggestion messages.
            Warnings and errors are always shown.
        verbose: Show :meth:`debug` messages.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose

        if format == OutputFormat.AUTO:
            styled = _is_tty() and not self._no_color
            format = OutputFormat.RICH if styled else OutputFormat.PLAIN
        self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=format == OutputFormat.RICH,
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    @property
    def stderr_console(self) -> Console:
        """Console shared with the log handler installed by :func:`configure_logging`."""
        return self._stderr

    # ------------------------------------------------------------------ #
    # Results (stdout)
    # ------------------------------------------------------------------ #

    def format_response(self, data: Any) -> None:
        """Render a result object.

        Dicts are shown as key/value pairs, lists of dicts as rows. In JSON
        mode the value is dumped as-is; a string holding JSON is parsed
        first so it is not double-encoded.
        """
        if self._format == OutputFormat.JSON:
            if isinstance(data, str):
                try:
                    data = json.loads(data)
                except ValueError:
                    self.print_data(data)
                    return
            self.print_data(json.dumps(data, indent=2, ensure_ascii=False, default=str))
            return

        if isinstance(data, dict):
            rows = [[str(key), _cell(value)] for key, value in data.items()]
            if self._format == OutputFormat.PLAIN:
                for row in rows:
                    self.print_data("\t".join(row))
            else:
                self._rich_table(["Field", "Value"], rows, title=None, show_header=False)
        elif isinstance(data, list) and data and all(isinstance(item, dict) for item in data):
            headers = list(data[0])
            self.print_table(headers, [[_cell(item.get(h)) for h in headers] for item in data])
        elif isinstance(data, list):
            for item in data:
                self.print_data(_cell(item))
        else:
            self.print_data(str(data))

    def print_data(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Print rows under *headers*.

        JSON mode emits a list of objects keyed by header; plain mode emits
        a tab-separated header line followed by one line per row. *title*
        is only shown by the Rich renderer.
        """
        if self._format == OutputFormat.JSON:
            records = [dict(zip(headers, row)) for row in rows]
            self.print_data(json.dumps(records, indent=2, ensure_ascii=False))
        elif self._format == OutputFormat.PLAIN:
            for line in [headers, *rows]:
                self.print_data("\t".join(line))
        else:
            self._rich_table(headers, rows, title=title)

    def _rich_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str],
        show_header: bool = True,
    ) -> None:
        table = Table(title=title, show_header=show_header, header_style="bold cyan")
        for header in headers:
            table.add_column(header)
        for row in rows:
            # Cells can hold server text; never interpret it as markup.
            table.add_row(*(escape(cell) for cell in row))
        self._stdout.print(table)

    # ------------------------------------------------------------------ #
    # Diagnostics (stderr)
    # ------------------------------------------------------------------ #

    def _emit(self, text: str, style: Optional[str] = None, label: str = "") -> None:
        if self._no_color:
            print(f"{label}{text}", file=sys.stderr, flush=True)
            return
        body = escape(text)
        if label:
            # The label is static text; escape it too in case it looks like a tag.
            body = f"[{style}]{escape(label)}[/{style}]{body}" if style else f"{escape(label)}{body}"
        elif style:
            body = f"[{style}]{body}[/{style}]"
        # Messages hold paths and URLs that must stay on one line.
        self._stderr.print(body, soft_wrap=True)

    def info(self, message: str) -> None:
        if not self._quiet:
            self._emit(message)

    def success(self, message: str) -> None:
        if not self._quiet:
            self._emit(message, "green")

    def warning(self, message: str) -> None:
        self._emit(message, "yellow", "Warning: ")

    def error(self, message: str) -> None:
        self._emit(message, "bold red", "Error: ")

    def suggest(self, message: str) -> None:
        """Show the command the user probably wants to run next."""
        if not self._quiet:
            self._emit(f"→ {message}", "dim")

    def debug(self, message: str) -> None:
        if self._verbose:
            self._emit(message, "dim", "[debug] ")


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """``NO_COLOR`` (any value, even empty) or ``TERM=dumb`` turn colour off."""
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


def configure_logging(output: OutputManager) -> None:
    """Send ``mdmforge.*`` log records to the stderr console of *output*.

    The threshold is WARNING, or DEBUG when *output* is verbose. Repeated
    calls replace the handler instead of stacking a second one.
    """
    logger = logging.getLogger("mdmforge")
    for handler in [h for h in logger.handlers if isinstance(h, RichHandler)]:
        logger.removeHandler(handler)
    logger.addHandler(
        RichHandler(
            console=output.stderr_console,
            show_time=False,
            show_path=False,
            markup=False,
            rich_tracebacks=False,
        )
    )
    logger.setLevel(logging.DEBUG if output.is_verbose else logging.WARNING)
    logger.propagate = False


# ------------------------------------------------------------------ #
# Process-wide manager
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed manager, creating an ``AUTO`` one on first use."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the installed manager (tests call this between runs)."""
    global _output
    _output = None


def format_response(data: Any) -> None:
    get_output().format_response(data)


def print_data(text: str) -> None:
    get_output().print_data(text)


def print_table(headers: list[str], rows: list[list[str]], title: Optional[str] = None) -> None:
    get_output().print_table(headers, rows, title)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def debug(message: str) -> None:
    get_output().debug(message)
