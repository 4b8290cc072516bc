"""Data models shared across the resilience layer."""

from .errors import ErrorKind, ErrorRecord, Severity

__all__ = ["ErrorKind", "ErrorRecord", "Severity"]
