"""Terminal output for notifications, summaries and reports."""

from .console import ConsoleManager, JsonLineFormatter

__all__ = ["ConsoleManager", "JsonLineFormatter"]
