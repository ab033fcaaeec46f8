"""Output formatting with strict stdout/stderr discipline.

Follows `clig.dev <https://clig.dev/>`_ conventions:

* **stdout** -- response data only.  This is what downstream tools pipe and
  parse.
* **stderr** -- all diagnostics (status lines, warnings, errors, dry-run
  reports).  Never contaminates the data stream.
* **Colour control** -- respects ``NO_COLOR`` and ``TERM=dumb``.

The module exposes two layers:

1. :class:`OutputManager` -- holds the Rich consoles and the quiet/verbose
   flags.  One instance lives on the
   :class:`~ontap.context.RuntimeContext`; nothing here is global.
2. The formatter registry -- :func:`get_formatter` maps a format name
   (``json``, ``yaml``, ``csv``, ``text``, ``table``) to a function that
   renders a decoded response value to bytes, and :func:`write_output`
   sends those bytes to stdout or to a ``--save`` file.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Any, Callable, Optional

import yaml
from rich.console import Console
from rich.table import Table

from ontap.exceptions import UnsupportedFormatError

logger = logging.getLogger(__name__)

Formatter = Callable[[Any], bytes]


class OutputManager:
    """Central manager for user-facing output.

    Both Rich consoles are created without an explicit file so they always
    write to the *current* ``sys.stdout`` / ``sys.stderr``.

    Args:
        no_color: Disable all colour and Rich markup.
        quiet: Suppress informational messages on stderr.
        verbose: Enable debug-level messages on stderr.
    """

    def __init__(
        self,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose
        self._stdout = Console(no_color=self._no_color, highlight=False)
        self._stderr = Console(stderr=True, no_color=self._no_color, highlight=False)

    @property
    def is_verbose(self) -> bool:
        """Whether verbose mode is enabled."""
        return self._verbose

    @property
    def stderr_console(self) -> Console:
        """The diagnostics console, shared with the logging handler."""
        return self._stderr

    # ------------------------------------------------------------------ #
    # Data output (stdout)
    # ------------------------------------------------------------------ #

    def print_data(self, text: str) -> None:
        """Print raw text to stdout, appending a newline if missing."""
        sys.stdout.write(text if text.endswith("\n") else text + "\n")
        sys.stdout.flush()

    # ------------------------------------------------------------------ #
    # Diagnostics (stderr)
    # ------------------------------------------------------------------ #

    def info(self, message: str) -> None:
        """Print an informational message to stderr. Suppressed by quiet mode."""
        if not self._quiet:
            self._emit(message, markup=None)

    def success(self, message: str) -> None:
        """Print a green success message to stderr. Suppressed by quiet mode."""
        if not self._quiet:
            self._emit(message, markup="green")

    def warning(self, message: str) -> None:
        """Print a yellow warning to stderr. Never suppressed."""
        self._emit(message, markup="yellow", prefix="Warning:")

    def error(self, message: str) -> None:
        """Print a bold-red error to stderr. Never suppressed."""
        self._emit(message, markup="bold red", prefix="Error:")

    def debug(self, message: str) -> None:
        """Print a dimmed debug message to stderr. Only shown in verbose mode."""
        if self._verbose:
            self._emit(message, markup="dim", prefix="[debug]")

    def _emit(self, message: str, markup: Optional[str], prefix: str = "") -> None:
        if self._no_color:
            text = f"{prefix} {message}" if prefix else message
            print(text, file=sys.stderr, flush=True)
            return
        if prefix and markup:
            self._stderr.print(f"[{markup}]{_escape(prefix)}[/{markup}] {_escape(message)}")
        elif markup:
            self._stderr.print(f"[{markup}]{_escape(message)}[/{markup}]")
        else:
            self._stderr.print(_escape(message))


def _escape(text: str) -> str:
    from rich.markup import escape

    return escape(text)


def _should_disable_color() -> bool:
    """Return True when NO_COLOR is set (any value) or TERM=dumb."""
    if os.environ.get("NO_COLOR") is not None:
        return True
    return os.environ.get("TERM") == "dumb"


# ------------------------------------------------------------------ #
# Formatters
# ------------------------------------------------------------------ #


def format_json(data: Any) -> bytes:
    """Pretty JSON with a two-space indent."""
    return (json.dumps(data, indent=2, ensure_ascii=False, default=str) + "\n").encode("utf-8")


def format_yaml(data: Any) -> bytes:
    """Block-style YAML, keys in their original order."""
    text = yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False)
    return text.encode("utf-8")


def format_text(data: Any) -> bytes:
    """The value's ``str()`` form."""
    text = "" if data is None else str(data)
    return (text if text.endswith("\n") else text + "\n").encode("utf-8")


def format_csv(data: Any) -> bytes:
    """CSV with a header row.

    Each mapping becomes a row; the columns are the union of all keys in
    first-seen order.  Non-mapping items land in a ``value`` column.
    """
    columns, rows = _tabulate(data)
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow([_cell(row.get(column)) for column in columns])
    return buffer.getvalue().encode("utf-8")


def format_table(data: Any) -> bytes:
    """A Rich table rendered to plain text, with the same shape as :func:`format_csv`."""
    columns, rows = _tabulate(data)
    table = Table(show_header=True, header_style="bold")
    for column in columns:
        table.add_column(column)
    for row in rows:
        table.add_row(*(_cell(row.get(column)) for column in columns))

    buffer = io.StringIO()
    width = shutil.get_terminal_size((120, 24)).columns
    Console(file=buffer, width=width, no_color=True, highlight=False).print(table)
    return buffer.getvalue().encode("utf-8")


def _tabulate(data: Any) -> tuple[list[str], list[dict[str, Any]]]:
    items = data if isinstance(data, list) else [data]
    rows = [item if isinstance(item, dict) else {"value": item} for item in items]
    columns: list[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(str(key))
    return columns, rows


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


FORMATTERS: dict[str, Formatter] = {
    "json": format_json,
    "yaml": format_yaml,
    "csv": format_csv,
    "text": format_text,
    "table": format_table,
}


def get_formatter(name: str) -> Formatter:
    """Return the formatter registered under *name*.

    Raises:
        UnsupportedFormatError: If no formatter has that name.
    """
    try:
        return FORMATTERS[name.lower()]
    except KeyError:
        supported = ", ".join(FORMATTERS)
        raise UnsupportedFormatError(
            f"unsupported output format '{name}' (supported: {supported})"
        ) from None


def write_output(payload: bytes, output: OutputManager, save: Optional[str] = None) -> None:
    """Write rendered *payload* to stdout, or to the file named by *save*."""
    if save:
        path = Path(save).expanduser()
        path.write_bytes(payload)
        logger.info("Output written to %s", path)
        return
    output.print_data(payload.decode("utf-8"))
