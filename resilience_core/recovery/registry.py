"""Prioritized recovery strategy registry with a per-signature retry cap."""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from ..models.errors import ErrorRecord
from ..scheduler import Scheduler

logger = logging.getLogger(__name__)


@dataclass
class RecoveryResult:
    """Outcome of one recovery attempt."""

    success: bool
    data: Any = None
    message: Optional[str] = None
    requires_user_action: bool = False
    next_attempt_delay: Optional[float] = None


class RecoveryStrategy(ABC):
    """A way to bring the host back to a working state after a failure."""

    id: str = ""
    name: str = ""
    priority: int = 0

    @abstractmethod
    def can_recover(self, record: ErrorRecord) -> bool:
        """Return True if this strategy applies to the record."""

    @abstractmethod
    async def recover(self, record: ErrorRecord, context: Any = None) -> RecoveryResult:
        """Attempt recovery.

        Args:
            record: The failure being recovered from
            context: Caller-supplied data (e.g. a CSS selector for DOM failures)

        Returns:
            RecoveryResult describing the outcome
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, priority={self.priority})"


def retry_key(record: ErrorRecord) -> str:
    return f"{record.kind.value}_{record.severity.value}_{record.message[:50]}"


class RecoveryRegistry:
    """Picks the highest-priority applicable strategy and enforces the retry cap.

    Args:
        strategies: Initial strategies
        max_retry_attempts: Attempts allowed per failure signature before giving up
        on_success: Called with a catalog key and params after a successful recovery
        scheduler: Used to schedule a follow-up attempt when a strategy asks for one
        attempt_ttl: Seconds after the last attempt before a signature's counter is swept
        clock: Time source in epoch seconds
    """

    def __init__(
        self,
        strategies: Iterable[RecoveryStrategy] = (),
        max_retry_attempts: int = 3,
        on_success: Optional[Callable[[str, Mapping[str, Any]], Any]] = None,
        scheduler: Optional[Scheduler] = None,
        attempt_ttl: float = 600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.max_retry_attempts = max_retry_attempts
        self.attempt_ttl = attempt_ttl
        self._on_success = on_success
        self._scheduler = scheduler
        self._clock = clock
        self._strategies: List[RecoveryStrategy] = []
        self._attempts: Dict[str, int] = {}
        self._last_attempt: Dict[str, float] = {}
        for strategy in strategies:
            self.register_strategy(strategy)

    def register_strategy(self, strategy: RecoveryStrategy) -> None:
        self._strategies.append(strategy)
        # sorted() is stable: equal priorities keep registration order
        self._strategies = sorted(self._strategies, key=lambda s: -s.priority)
        logger.debug(f"Registered recovery strategy {strategy.id} (priority {strategy.priority})")

    @property
    def strategies(self) -> List[RecoveryStrategy]:
        return list(self._strategies)

    def find_strategy(self, record: ErrorRecord) -> Optional[RecoveryStrategy]:
        for strategy in self._strategies:
            try:
                if strategy.can_recover(record):
                    return strategy
            except Exception as e:
                logger.error(f"can_recover failed for strategy {strategy.id}: {e}")
        return None

    async def attempt_recovery(self, record: ErrorRecord, context: Any = None) -> RecoveryResult:
        key = retry_key(record)
        attempts = self._attempts.get(key, 0)
        if attempts >= self.max_retry_attempts:
            logger.warning(f"Max recovery attempts ({self.max_retry_attempts}) reached for {key}")
            return RecoveryResult(
                success=False, message="error.max_retries_exceeded", requires_user_action=True
            )

        self._attempts[key] = attempts + 1
        self._last_attempt[key] = self._clock()

        strategy = self.find_strategy(record)
        if strategy is None:
            return RecoveryResult(
                success=False, message="error.no_recovery_strategy", requires_user_action=True
            )

        logger.info(
            f"Attempt {attempts + 1}/{self.max_retry_attempts}: recovering "
            f"{record.kind.value} error with {strategy.name}"
        )
        try:
            result = await strategy.recover(record, context)
        except Exception as e:
            logger.error(f"Recovery strategy {strategy.id} failed: {e}")
            return RecoveryResult(
                success=False, message="error.recovery_failed", requires_user_action=True
            )

        if result.success:
            self._attempts.pop(key, None)
            self._last_attempt.pop(key, None)
            logger.info(f"Recovered from {record.kind.value} error using {strategy.name}")
            if self._on_success is not None:
                self._on_success(
                    "success.error_recovered",
                    {"errorType": record.kind.value, "strategy": strategy.name},
                )
        elif result.next_attempt_delay is not None and self._scheduler is not None:
            logger.info(f"Scheduling another recovery attempt in {result.next_attempt_delay:.2f}s")
            self._scheduler.call_later(
                result.next_attempt_delay,
                lambda: self.attempt_recovery(record, context),
                name=f"recovery-{strategy.id}",
            )
        return result

    def get_recovery_stats(self) -> Dict[str, Any]:
        return {
            "total_attempts": sum(self._attempts.values()),
            "strategies": [
                {"id": s.id, "name": s.name, "priority": s.priority} for s in self._strategies
            ],
        }

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop retry counters whose last attempt is older than ``attempt_ttl``.

        Returns:
            Number of counters removed
        """
        now = self._clock() if now is None else now
        stale = [key for key, last in self._last_attempt.items() if now - last > self.attempt_ttl]
        for key in stale:
            self._attempts.pop(key, None)
            del self._last_attempt[key]
        if stale:
            logger.debug(f"Swept {len(stale)} idle recovery counters")
        return len(stale)

    def clear_recovery_stats(self) -> None:
        self._attempts.clear()
        self._last_attempt.clear()
