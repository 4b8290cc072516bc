"""Convert arbitrary raised values into typed ErrorRecords."""
from __future__ import annotations

import asyncio
import json
import logging
import traceback
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple, Type

from .i18n import Translator
from .models.errors import ErrorKind, ErrorRecord, Severity

logger = logging.getLogger(__name__)

_SUGGESTION_KEYS = {
    ErrorKind.NETWORK: "suggestion.check_connection",
    ErrorKind.PERMISSION: "suggestion.grant_permission",
    ErrorKind.CLIPBOARD: "suggestion.try_manual_copy",
    ErrorKind.PARSING: "suggestion.refresh_page",
    ErrorKind.DOM: "suggestion.refresh_page",
    ErrorKind.STORAGE: "suggestion.clear_cache",
    ErrorKind.MEMORY: "suggestion.close_tabs",
    ErrorKind.SCREENSHOT: "suggestion.update_browser",
}


@dataclass(frozen=True)
class ClassificationRule:
    """Maps a raw failure onto a kind and severity.

    ``matches`` receives the raw value and its lower-cased message.
    """

    name: str
    kind: ErrorKind
    severity: Severity
    matches: Callable[[Any, str], bool]


def _is_type(*types: Type[BaseException]) -> Callable[[Any, str], bool]:
    return lambda raw, _message: isinstance(raw, types)


def _named(name: str) -> Callable[[Any, str], bool]:
    return lambda raw, _message: isinstance(raw, BaseException) and type(raw).__name__ == name


def _contains(*needles: str) -> Callable[[Any, str], bool]:
    return lambda _raw, message: any(needle in message for needle in needles)


DEFAULT_CLASSIFICATION_RULES: Tuple[ClassificationRule, ...] = (
    ClassificationRule("memory-error", ErrorKind.MEMORY, Severity.CRITICAL, _is_type(MemoryError)),
    ClassificationRule("permission-error", ErrorKind.PERMISSION, Severity.WARNING, _is_type(PermissionError)),
    ClassificationRule("connection-error", ErrorKind.NETWORK, Severity.ERROR, _is_type(ConnectionError)),
    ClassificationRule("network-error", ErrorKind.NETWORK, Severity.ERROR, _named("NetworkError")),
    ClassificationRule("timeout-error", ErrorKind.TIMEOUT, Severity.ERROR, _is_type(TimeoutError, asyncio.TimeoutError)),
    ClassificationRule("json-error", ErrorKind.PARSING, Severity.ERROR, _is_type(json.JSONDecodeError)),
    ClassificationRule("fetch-message", ErrorKind.NETWORK, Severity.ERROR, _contains("fetch")),
    ClassificationRule("permission-message", ErrorKind.PERMISSION, Severity.WARNING, _contains("permission")),
    ClassificationRule("clipboard-message", ErrorKind.CLIPBOARD, Severity.ERROR, _contains("clipboard")),
    ClassificationRule("parse-message", ErrorKind.PARSING, Severity.ERROR, _contains("parse", "json")),
    ClassificationRule("timeout-message", ErrorKind.TIMEOUT, Severity.ERROR, _contains("timeout")),
    ClassificationRule("memory-message", ErrorKind.MEMORY, Severity.CRITICAL, _contains("memory", "heap")),
)


class ErrorNormalizer:
    """Classifies raw failures using an ordered rule list; the first match wins."""

    def __init__(
        self,
        translator: Optional[Translator] = None,
        rules: Optional[List[ClassificationRule]] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.translator = translator or Translator()
        self.rules: List[ClassificationRule] = list(rules or DEFAULT_CLASSIFICATION_RULES)
        self._clock = clock

    def add_rule(self, rule: ClassificationRule, first: bool = True) -> None:
        """Register a classification rule, by default ahead of the built-in ones."""
        if first:
            self.rules.insert(0, rule)
        else:
            self.rules.append(rule)

    def classify(self, raw: Any) -> Tuple[ErrorKind, Severity]:
        message = _message_of(raw).lower()
        for rule in self.rules:
            try:
                if rule.matches(raw, message):
                    return rule.kind, rule.severity
            except Exception as e:
                logger.error(f"Classification rule {rule.name} failed: {e}")
        return ErrorKind.UNKNOWN, Severity.ERROR

    def normalize(self, raw: Any, context: Any = None) -> ErrorRecord:
        """Build an ErrorRecord from any raised value.

        Args:
            raw: Exception, ErrorRecord or any other value (e.g. a rejection reason)
            context: Caller-supplied data attached to the record

        Returns:
            The input itself if it is already an ErrorRecord, else a new record
        """
        if isinstance(raw, ErrorRecord):
            return raw

        kind, severity = self.classify(raw)
        metadata = {"original_name": type(raw).__name__}
        if isinstance(raw, BaseException) and raw.__traceback__ is not None:
            metadata["original_traceback"] = "".join(
                traceback.format_exception(type(raw), raw, raw.__traceback__)
            )

        suggestion_key = _SUGGESTION_KEYS.get(kind, "suggestion.try_again")
        record = ErrorRecord(
            _message_of(raw),
            kind,
            severity,
            context=context,
            user_message=self.translator.t(f"error.{kind.value}"),
            suggestion=self.translator.t(suggestion_key),
            metadata=metadata,
            timestamp=self._clock() if self._clock else None,
        )
        if isinstance(raw, BaseException):
            record.__cause__ = raw
        logger.debug(f"Normalized {metadata['original_name']} as {kind.value}/{severity.value}")
        return record


def _message_of(raw: Any) -> str:
    if isinstance(raw, BaseException):
        return str(raw) or type(raw).__name__
    return str(raw)
