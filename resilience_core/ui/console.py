"""Console management with Rich integration.

This module provides a ConsoleManager that adapts notification output to:
- Rich panels and tables when writing to a terminal
- JSON lines for machine-readable logs (CI/CD)
- Plain-text fallback when Rich output is disabled
"""

from __future__ import annotations

import html
import json
import logging
import re
import sys
import threading
from datetime import datetime
from typing import Any, Mapping, Optional, TextIO

from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

SEVERITY_STYLES = {
    "debug": "dim",
    "info": "blue",
    "warning": "yellow",
    "error": "red",
    "critical": "bold red",
    "fatal": "bold white on red",
    "success": "green",
}


class ThreadSafeConsole:
    """Thread-safe wrapper around Rich Console."""

    def __init__(self, console: Console):
        self._console = console
        self._lock = threading.RLock()

    @property
    def raw(self) -> Console:
        return self._console

    def print(self, *args, **kwargs):
        with self._lock:
            self._console.print(*args, **kwargs)


class ConsoleManager:
    """Renders notifications, summaries and reports in the configured output mode.

    Args:
        verbose: Show debug logging and source paths
        json_output: Emit JSON lines instead of Rich renderables
        rich_output: When False (and not JSON), print plain text
        console: Rich console to draw on (defaults to one bound to stderr)
        stream: Stream for JSON and plain output (defaults to stderr)
    """

    def __init__(
        self,
        verbose: bool = False,
        json_output: bool = False,
        rich_output: bool = True,
        console: Optional[Console] = None,
        stream: Optional[TextIO] = None,
    ):
        self.verbose = verbose
        self.json_output = json_output
        self._stream = stream
        self._json_max_field_length = 200
        self._json_max_nesting_depth = 10

        if self.json_output or not rich_output:
            self.console = None
        else:
            self.console = ThreadSafeConsole(console or Console(stderr=True))

    @property
    def stream(self) -> TextIO:
        return self._stream if self._stream is not None else sys.stderr

    def setup_logging(self, logger: logging.Logger) -> None:
        """Configure logging with Rich handler or JSON/plain formatter.

        Adds a handler and sets logger level based on `verbose`.
        """

        def _has_handler_of_type(h_type):
            return any(isinstance(h, h_type) for h in logger.handlers)

        if self.console is None:
            if not _has_handler_of_type(logging.StreamHandler):
                handler = logging.StreamHandler(self.stream)
                handler.setFormatter(
                    JsonLineFormatter() if self.json_output else logging.Formatter("%(levelname)s %(name)s: %(message)s")
                )
                logger.addHandler(handler)
        else:
            if not _has_handler_of_type(RichHandler):
                handler = RichHandler(
                    console=self.console.raw,
                    show_time=True,
                    show_path=self.verbose,
                    rich_tracebacks=True,
                )
                logger.addHandler(handler)
        logger.setLevel(logging.DEBUG if self.verbose else logging.INFO)

    def print_notification(self, notification: Mapping[str, Any]) -> None:
        """Render one notification (as produced by ``Notification.to_dict()``)."""
        severity = str(notification.get("severity", "info"))
        title = str(notification.get("title", ""))
        message = str(notification.get("message", ""))
        suggestion = notification.get("suggestion")
        actions = notification.get("actions") or []

        if self.json_output:
            self._emit_json({"type": "notification", **self._sanitize_json_value(dict(notification))})
        elif self.console:
            body = escape(message)
            if suggestion:
                body += f"\n[dim]{escape(str(suggestion))}[/dim]"
            if actions:
                body += "\n" + "  ".join(f"[bold]{escape('[' + a['label'] + ']')}[/bold]" for a in actions)
            self.console.print(
                Panel(
                    body,
                    title=f"[bold]{escape(title)}[/bold]",
                    title_align="left",
                    style=SEVERITY_STYLES.get(severity, "white"),
                    padding=(0, 1),
                )
            )
        else:
            line = f"[{severity.upper()}] {title}: {message}"
            if suggestion:
                line += f" ({suggestion})"
            print(line, file=self.stream)

    def print_summary(self, stats: Mapping[str, Any]) -> None:
        """Print an error statistics table or JSON/plain fallback."""
        if self.json_output:
            self._emit_json({"type": "summary", "results": self._sanitize_json_value(dict(stats))})
            return

        rows = [("Total errors", str(stats.get("total_errors", 0)))]
        rows.append(("Error rate (per hour)", f"{stats.get('error_rate', 0.0):.2f}"))
        for kind, count in (stats.get("errors_by_type") or {}).items():
            if count:
                rows.append((f"type: {kind}", str(count)))
        for level, count in (stats.get("errors_by_level") or {}).items():
            if count:
                rows.append((f"level: {level}", str(count)))

        if self.console:
            table = Table(title="Error Summary")
            table.add_column("Metric", style="cyan")
            table.add_column("Value", style="bold")
            for metric, value in rows:
                table.add_row(metric, value)
            self.console.print(table)
        else:
            print("Error Summary:", file=self.stream)
            for metric, value in rows:
                print(f"  {metric}: {value}", file=self.stream)

    def print_report(self, report: str) -> None:
        """Print a Markdown diagnostic report."""
        if self.json_output:
            self._emit_json({"type": "report", "report": report})
        elif self.console:
            self.console.print(Markdown(report))
        else:
            print(report, file=self.stream)

    def _get_timestamp(self) -> str:
        return datetime.now().isoformat()

    def _emit_json(self, payload: Mapping[str, Any]) -> None:
        print(json.dumps({"timestamp": self._get_timestamp(), **payload}), file=self.stream)

    def _sanitize_json_value(self, value: Any, depth: int = 0) -> Any:
        """Comprehensive JSON value sanitization with depth limiting."""
        if depth > self._json_max_nesting_depth:
            return "[TRUNCATED: Max depth exceeded]"

        if isinstance(value, str):
            return self._sanitize_string_field(value)
        elif isinstance(value, bool):
            return value
        elif isinstance(value, (int, float)):
            return self._sanitize_numeric_field(value)
        elif isinstance(value, dict):
            return {
                self._sanitize_string_field(str(k)): self._sanitize_json_value(v, depth + 1)
                for k, v in list(value.items())[:50]
            }
        elif isinstance(value, (list, tuple)):
            return [self._sanitize_json_value(item, depth + 1) for item in list(value)[:100]]
        elif value is None:
            return None
        else:
            return self._sanitize_string_field(str(value))

    def _sanitize_string_field(self, value: str) -> str:
        """Sanitize string values for JSON output."""
        if not isinstance(value, str):
            value = str(value)

        # Remove control characters (except tab, newline, carriage return)
        value = re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]", "", value)
        value = html.escape(value, quote=True)

        if len(value) > self._json_max_field_length:
            value = value[: self._json_max_field_length - 3] + "..."

        # No multi-line values in a JSON log line
        value = re.sub(r"[\r\n]+", " ", value)
        return value

    def _sanitize_numeric_field(self, value: float) -> float:
        """Sanitize numeric values for JSON output."""
        if value != value:  # NaN check
            return 0.0
        if value == float("inf"):
            return 1e308
        if value == float("-inf"):
            return -1e308
        return value


class JsonLineFormatter(logging.Formatter):
    """Formats log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "type": "log",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)
