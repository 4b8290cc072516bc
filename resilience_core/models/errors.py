"""Error taxonomy and the normalized error record."""
from __future__ import annotations

import time
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Failure classes reported by collaborating subsystems."""

    NETWORK = "network"
    PARSING = "parsing"
    FORMATTING = "formatting"
    CLIPBOARD = "clipboard"
    STORAGE = "storage"
    PERMISSION = "permission"
    DOM = "dom"
    VALIDATION = "validation"
    TIMEOUT = "timeout"
    MEMORY = "memory"
    SCREENSHOT = "screenshot"
    UNKNOWN = "unknown"


_SEVERITY_RANKS = {
    "debug": 0,
    "info": 1,
    "warning": 2,
    "error": 3,
    "critical": 4,
    "fatal": 5,
}

_SEVERITY_LOG_LEVELS = {
    "debug": 10,
    "info": 20,
    "warning": 30,
    "error": 40,
    "critical": 50,
    "fatal": 50,
}


class Severity(str, Enum):
    """Ordered severity levels (debug < info < warning < error < critical < fatal)."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    FATAL = "fatal"

    @property
    def rank(self) -> int:
        """Get numeric rank for comparison."""
        return _SEVERITY_RANKS[self.value]

    @property
    def log_level(self) -> int:
        """Get the stdlib logging level used when a record of this severity is logged."""
        return _SEVERITY_LOG_LEVELS[self.value]

    @property
    def is_persistent(self) -> bool:
        """Whether notifications of this severity stay until dismissed."""
        return self.rank >= _SEVERITY_RANKS["critical"]

    def __lt__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


class ErrorRecord(Exception):
    """Normalized, typed representation of a failure.

    An ErrorRecord is an exception so it can be re-raised out of ``handle()``
    (fatal severity) or out of a ``with_fallback`` wrapper once every
    fallback is exhausted.

    Attributes:
        message: Human readable error message
        timestamp: Creation time (epoch seconds)
        context: Opaque caller-supplied data
        user_message: Localized text shown to the user
        suggestion: Localized next step shown to the user
        recoverable: Whether automated recovery may be attempted
        metadata: Open key-value map; the notification queue annotates batch counters here
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        severity: Severity = Severity.ERROR,
        *,
        context: Any = None,
        user_message: Optional[str] = None,
        suggestion: Optional[str] = None,
        recoverable: bool = True,
        metadata: Optional[Dict[str, Any]] = None,
        timestamp: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self._kind = ErrorKind(kind)
        self._severity = Severity(severity)
        self.message = message
        self.timestamp = time.time() if timestamp is None else timestamp
        self.context = context
        self.user_message = user_message
        self.suggestion = suggestion
        self.recoverable = recoverable is not False
        self.metadata: Dict[str, Any] = dict(metadata) if metadata else {}

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def severity(self) -> Severity:
        return self._severity

    @property
    def batch_key(self) -> str:
        """Key used to merge duplicate notifications within one flush window."""
        return f"{self._kind.value}_{self._severity.value}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": type(self).__name__,
            "message": self.message,
            "type": self._kind.value,
            "level": self._severity.value,
            "timestamp": datetime.fromtimestamp(self.timestamp).isoformat(),
            "context": self.context,
            "user_message": self.user_message,
            "suggestion": self.suggestion,
            "recoverable": self.recoverable,
            "metadata": self.metadata,
        }

    def __repr__(self) -> str:
        return (
            f"ErrorRecord(kind={self._kind.value!r}, severity={self._severity.value!r}, "
            f"message={self.message!r})"
        )
