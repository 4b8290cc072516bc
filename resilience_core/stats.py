"""Running error statistics."""
from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional

from .models.errors import ErrorKind, ErrorRecord, Severity


@dataclass
class StatsSnapshot:
    total_errors: int
    errors_by_type: Dict[str, int]
    errors_by_level: Dict[str, int]
    recent_errors: List[ErrorRecord]
    last_error: Optional[ErrorRecord]
    error_rate: float
    start_time: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_errors": self.total_errors,
            "errors_by_type": dict(self.errors_by_type),
            "errors_by_level": dict(self.errors_by_level),
            "recent_errors": [record.to_dict() for record in self.recent_errors],
            "last_error": self.last_error.to_dict() if self.last_error else None,
            "error_rate": round(self.error_rate, 3),
            "start_time": self.start_time,
        }


@dataclass
class ErrorStats:
    """Counts every handled error, suppressed or not."""

    recent_limit: int = 100
    clock: Callable[[], float] = time.time
    total_errors: int = 0
    errors_by_type: Dict[str, int] = field(default_factory=dict)
    errors_by_level: Dict[str, int] = field(default_factory=dict)
    last_error: Optional[ErrorRecord] = None
    start_time: float = 0.0
    _recent: Deque[ErrorRecord] = field(default_factory=deque, init=False, repr=False)

    def __post_init__(self):
        self.clear()

    def record(self, record: ErrorRecord) -> None:
        self.total_errors += 1
        self.errors_by_type[record.kind.value] += 1
        self.errors_by_level[record.severity.value] += 1
        self._recent.appendleft(record)
        self.last_error = record

    def snapshot(self) -> StatsSnapshot:
        """Copy of the counters plus the error rate (errors per elapsed hour)."""
        elapsed_hours = max(self.clock() - self.start_time, 1e-9) / 3600
        return StatsSnapshot(
            total_errors=self.total_errors,
            errors_by_type=dict(self.errors_by_type),
            errors_by_level=dict(self.errors_by_level),
            recent_errors=list(self._recent),
            last_error=self.last_error,
            error_rate=self.total_errors / elapsed_hours,
            start_time=self.start_time,
        )

    def clear(self) -> None:
        self.total_errors = 0
        self.errors_by_type = {kind.value: 0 for kind in ErrorKind}
        self.errors_by_level = {severity.value: 0 for severity in Severity}
        self._recent = deque(maxlen=self.recent_limit)
        self.last_error = None
        self.start_time = self.clock()
