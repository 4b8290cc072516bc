"""Rule engine selecting a handling strategy per error record."""
from __future__ import annotations

import inspect
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Pattern, Union

from .models.errors import ErrorKind, ErrorRecord, Severity

logger = logging.getLogger(__name__)


class HandlingStrategy(str, Enum):
    RETRY = "retry"
    FALLBACK = "fallback"
    NOTIFY = "notify"
    IGNORE = "ignore"
    LOG = "log"
    THROW = "throw"


@dataclass
class HandleResult:
    """Outcome of handling one error."""

    success: bool
    result: Any = None
    error: Optional[ErrorRecord] = None


@dataclass
class ErrorRule:
    """Matches records by optional kind, severity and message pattern.

    Attributes:
        strategy: How matching records are handled
        kind: Required kind, or None for any
        severity: Required severity, or None for any
        message: Regex searched in the record message, or None for any
        max_retries: Retry budget advertised to callers of with_fallback
        retry_delay: Base retry delay in seconds
        fallback: Zero-argument callable (sync or async) used by the fallback strategy
        notification: Also queue a user notification after a fallback
    """

    strategy: HandlingStrategy
    kind: Optional[ErrorKind] = None
    severity: Optional[Severity] = None
    message: Optional[Union[str, Pattern[str]]] = None
    max_retries: int = 0
    retry_delay: float = 0.0
    fallback: Optional[Callable[[], Any]] = None
    notification: bool = False
    _pattern: Optional[Pattern[str]] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self.strategy = HandlingStrategy(self.strategy)
        if self.kind is not None:
            self.kind = ErrorKind(self.kind)
        if self.severity is not None:
            self.severity = Severity(self.severity)
        if self.message is not None:
            self._pattern = re.compile(self.message) if isinstance(self.message, str) else self.message

    def matches(self, record: ErrorRecord) -> bool:
        if self.kind is not None and record.kind != self.kind:
            return False
        if self.severity is not None and record.severity != self.severity:
            return False
        if self._pattern is not None and not self._pattern.search(record.message):
            return False
        return True

    @property
    def notifies(self) -> bool:
        """True if executing this rule queues a user notification."""
        if self.strategy in (HandlingStrategy.NOTIFY, HandlingStrategy.THROW):
            return True
        return self.strategy is HandlingStrategy.FALLBACK and self.notification


def default_rules() -> List[ErrorRule]:
    # fatal stays first: kind rules must never catch it
    return [
        ErrorRule(HandlingStrategy.THROW, severity=Severity.FATAL),
        ErrorRule(HandlingStrategy.RETRY, kind=ErrorKind.NETWORK, max_retries=3, retry_delay=1.0),
        ErrorRule(HandlingStrategy.FALLBACK, kind=ErrorKind.PARSING, notification=True),
        ErrorRule(HandlingStrategy.NOTIFY, kind=ErrorKind.PERMISSION),
        ErrorRule(HandlingStrategy.NOTIFY, kind=ErrorKind.MEMORY, severity=Severity.CRITICAL),
        ErrorRule(HandlingStrategy.LOG, severity=Severity.DEBUG),
    ]


class RuleEngine:
    """Ordered rule list; the first rule matching a record decides its handling."""

    def __init__(
        self,
        notifier: Callable[[ErrorRecord], Any],
        rules: Optional[List[ErrorRule]] = None,
    ) -> None:
        self._notify = notifier
        self.rules: List[ErrorRule] = default_rules() if rules is None else list(rules)

    def add_rule(self, rule: ErrorRule) -> None:
        self.rules.append(rule)

    def find_matching_rule(self, record: ErrorRecord) -> Optional[ErrorRule]:
        for rule in self.rules:
            if rule.matches(record):
                return rule
        return None

    async def execute_strategy(self, record: ErrorRecord, rule: ErrorRule) -> HandleResult:
        """Run the rule's strategy for a record.

        Raises:
            ErrorRecord: For the throw strategy, after logging and notifying
        """
        if rule.strategy is HandlingStrategy.THROW:
            logger.critical(f"Unrecoverable {record.kind.value} error: {record.message}")
            self._notify(record)
            raise record

        try:
            if rule.strategy is HandlingStrategy.IGNORE:
                return HandleResult(success=True)

            if rule.strategy is HandlingStrategy.LOG:
                log_record(record)
                return HandleResult(success=True)

            if rule.strategy is HandlingStrategy.RETRY:
                return HandleResult(success=False, error=record)

            if rule.strategy is HandlingStrategy.FALLBACK:
                if rule.fallback is None:
                    if rule.notification:
                        self._notify(record)
                    return HandleResult(success=False, error=record)
                result = rule.fallback()
                if inspect.isawaitable(result):
                    result = await result
                if rule.notification:
                    self._notify(record)
                return HandleResult(success=True, result=result)

            if rule.strategy is HandlingStrategy.NOTIFY:
                self._notify(record)
                return HandleResult(success=False, error=record)

        except Exception as e:
            logger.error(f"Strategy {rule.strategy.value} failed for {record.kind.value} error: {e}")
            return HandleResult(success=False, error=record)

        return HandleResult(success=False, error=record)


def log_record(record: ErrorRecord) -> None:
    """Log a record at the logging level that matches its severity."""
    logger.log(
        record.severity.log_level,
        f"[{record.kind.value}] {record.message}",
        extra={"error_kind": record.kind.value, "error_context": record.context},
    )
