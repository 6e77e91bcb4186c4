"""
Output sink shared by every command.

Three modes:
  normal  human-readable messages and tables (rich)
  json    exactly one JSON envelope per command, nothing else
  quiet   errors and warnings only

Envelope shape: {"success": bool, "error": str|null, "data": ...|null, "meta": {...}}.
Successful envelopes go to stdout, failed ones to stderr.
"""

import json
import sys
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table


class OutputMode(str, Enum):
    NORMAL = "normal"
    JSON = "json"
    QUIET = "quiet"


def envelope(data: Any, count: Optional[int] = None, **meta: Any) -> Dict[str, Any]:
    if count is None:
        count = len(data) if isinstance(data, list) else 1
    return {"success": True, "error": None, "data": data, "meta": {"count": count, **meta}}


def error_envelope(message: str, code: int, **meta: Any) -> Dict[str, Any]:
    return {"success": False, "error": message, "data": None, "meta": {"count": 0, "code": code, **meta}}


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


class Output:
    def __init__(self, mode: OutputMode = OutputMode.NORMAL,
                 console: Optional[Console] = None, err_console: Optional[Console] = None):
        self.mode = mode
        self.console = console or Console(highlight=False, soft_wrap=True)
        self.err_console = err_console or Console(stderr=True, highlight=False, soft_wrap=True)
        self._status = None

    def is_json(self) -> bool:
        return self.mode == OutputMode.JSON

    def is_quiet(self) -> bool:
        return self.mode == OutputMode.QUIET

    def is_human(self) -> bool:
        return self.mode == OutputMode.NORMAL

    # ---------- messages ----------
    def log(self, message: str) -> None:
        if self.is_human():
            self.console.print(escape(message))

    def info(self, message: str) -> None:
        if self.is_human():
            self.console.print(f"[cyan]ℹ[/cyan] {escape(message)}")

    def success(self, message: str) -> None:
        if self.is_human():
            self.console.print(f"[green]✔[/green] {escape(message)}")

    def warn(self, message: str) -> None:
        # quiet mode still shows warnings
        if not self.is_json():
            self.err_console.print(f"[yellow]⚠ Warning:[/yellow] {escape(message)}")

    def error(self, message: str) -> None:
        if not self.is_json():
            self.err_console.print(f"[red]✖ Error:[/red] {escape(message)}")

    def newline(self) -> None:
        if self.is_human():
            self.console.print()

    def divider(self) -> None:
        if self.is_human():
            self.console.rule(style="dim")

    # ---------- structured ----------
    def json(self, payload: Dict[str, Any]) -> None:
        stream = sys.stdout if payload.get("success", True) else sys.stderr
        print(json.dumps(payload, ensure_ascii=False, default=str), file=stream)

    def json_error(self, message: str, code: int, **meta: Any) -> None:
        self.json(error_envelope(message, code, **meta))

    def report_error(self, message: str, code: int, details: Optional[list] = None) -> None:
        """Print a terminal error in whichever shape the mode calls for."""
        if self.is_json():
            meta = {"errors": details} if details else {}
            self.json_error(message, code, **meta)
            return
        self.error(message)

    def table(self, rows: Sequence[Dict[str, Any]], columns: Optional[List[tuple]] = None,
              empty_message: str = "No results.", total: Optional[int] = None) -> None:
        """Render rows as a table; in JSON mode emit them as the envelope data.

        ``columns`` is a list of ``(key, header)`` pairs, defaulting to the keys
        of the first row.
        """
        rows = list(rows)
        if self.is_json():
            meta = {"total": total} if total is not None else {}
            self.json(envelope(rows, len(rows), **meta))
            return
        if self.is_quiet():
            return
        if not rows:
            self.info(empty_message)
            return

        columns = columns or [(key, key.upper()) for key in rows[0]]
        table = Table(show_edge=False, header_style="bold")
        for _, header in columns:
            table.add_column(header)
        for row in rows:
            table.add_row(*(escape(_cell(row.get(key))) for key, _ in columns))
        self.console.print(table)
        if total is not None and total > len(rows):
            self.log(f"Showing {len(rows)} of {total} items")

    def object(self, values: Dict[str, Any]) -> None:
        """Key/value block for a single record."""
        if self.is_json():
            self.json(envelope(values, 1))
            return
        if self.is_quiet():
            return
        width = max((len(k) for k in values), default=0)
        for key, value in values.items():
            self.console.print(f"[bold]{escape(key.ljust(width))}[/bold]  {escape(_cell(value))}")

    # ---------- spinner ----------
    def start_spinner(self, message: str) -> None:
        if not self.is_human() or not self.err_console.is_terminal:
            return
        self.stop_spinner()
        self._status = self.err_console.status(escape(message))
        self._status.start()

    def _halt(self) -> None:
        if self._status is not None:
            self._status.stop()
            self._status = None

    def stop_spinner(self, message: Optional[str] = None) -> None:
        self._halt()
        if message:
            self.success(message)

    def fail_spinner(self, message: Optional[str] = None) -> None:
        self._halt()
        if message and self.is_human():
            self.err_console.print(f"[red]✖[/red] {escape(message)}")
