"""Active notification container with actions, rendered through the ConsoleManager."""
from __future__ import annotations

import inspect
import itertools
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib.parse import urlencode

from ..diagnostics import ErrorDiagnostic
from ..i18n import Translator
from ..models.errors import ErrorKind, ErrorRecord, Severity
from ..recovery.collaborators import ClipboardWriter, open_url
from ..ui.console import ConsoleManager

logger = logging.getLogger(__name__)

DEFAULT_DURATIONS = {
    Severity.DEBUG: 2.0,
    Severity.INFO: 3.0,
    Severity.WARNING: 5.0,
    Severity.ERROR: 8.0,
    Severity.CRITICAL: 0.0,
    Severity.FATAL: 0.0,
}

RETRY_EVENT = "error-retry"


@dataclass
class NotificationAction:
    id: str
    label: str
    handler: Callable[[], Any]


@dataclass
class Notification:
    """One visible notification.

    ``duration`` is in seconds; 0 together with ``persistent`` means it stays
    until hidden explicitly.
    """

    id: str
    title: str
    message: str
    severity: Severity
    kind: ErrorKind
    created_at: float
    duration: float = 5.0
    suggestion: Optional[str] = None
    persistent: bool = False
    dismissible: bool = True
    actions: List[NotificationAction] = field(default_factory=list)
    record: Optional[ErrorRecord] = None

    @property
    def expires_at(self) -> Optional[float]:
        if self.persistent or self.duration <= 0:
            return None
        return self.created_at + self.duration

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "suggestion": self.suggestion,
            "severity": self.severity.value,
            "kind": self.kind.value,
            "duration": self.duration,
            "persistent": self.persistent,
            "dismissible": self.dismissible,
            "actions": [{"id": a.id, "label": a.label} for a in self.actions],
        }


class NotificationWidget:
    """Holds active notifications and runs their actions.

    Args:
        console: Renders each notification when it is shown
        translator: Message catalog
        diagnostic: Supplies diagnosis data for the copy-details action
        clipboard: Target of the copy-details action
        url_opener: Opens the pre-filled issue URL for the report action
        report_url: Issue tracker "new issue" URL
        clock: Time source in epoch seconds
    """

    def __init__(
        self,
        console: Optional[ConsoleManager] = None,
        translator: Optional[Translator] = None,
        diagnostic: Optional[ErrorDiagnostic] = None,
        clipboard: Optional[ClipboardWriter] = None,
        url_opener: Callable[[str], Any] = open_url,
        report_url: str = "https://github.com/issues/new",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.console = console or ConsoleManager()
        self.translator = translator or Translator()
        self.diagnostic = diagnostic or ErrorDiagnostic(self.translator)
        self.clipboard = clipboard
        self.url_opener = url_opener
        self.report_url = report_url
        self._clock = clock
        self._ids = itertools.count(1)
        self._active: Dict[str, Notification] = {}
        self._subscribers: Dict[str, List[Callable[[Any], Any]]] = {}

    # ========== Events ==========

    def on(self, event: str, callback: Callable[[Any], Any]) -> None:
        self._subscribers.setdefault(event, []).append(callback)

    def off(self, event: str, callback: Callable[[Any], Any]) -> None:
        callbacks = self._subscribers.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def emit(self, event: str, payload: Any) -> int:
        """Call every subscriber of ``event``; failures are logged. Returns the number called."""
        called = 0
        for callback in list(self._subscribers.get(event, [])):
            try:
                callback(payload)
                called += 1
            except Exception as e:
                logger.error(f"Subscriber for {event} failed: {e}")
        return called

    # ========== Showing / hiding ==========

    def show_error(self, record: ErrorRecord, **overrides: Any) -> str:
        message = record.user_message or self.translator.t(f"error.{record.kind.value}") or record.message
        count = record.metadata.get("count", 1)
        if count > 1:
            message = self.translator.t("error.batched", {"count": count, "message": message})

        persistent = record.severity.is_persistent
        fields: Dict[str, Any] = {
            "title": self.translator.t(f"severity.{record.severity.value}"),
            "message": message,
            "suggestion": record.suggestion,
            "severity": record.severity,
            "kind": record.kind,
            "duration": DEFAULT_DURATIONS[record.severity],
            "persistent": persistent,
            "dismissible": True,
            "actions": self._default_actions(record),
            "record": record,
        }
        fields.update(overrides)
        return self._show(**fields)

    def show_success(self, key: str, params: Optional[Mapping[str, Any]] = None) -> str:
        return self._show(
            title=self.translator.t("severity.info"),
            message=self.translator.t(key, params),
            severity=Severity.INFO,
            kind=ErrorKind.UNKNOWN,
            duration=DEFAULT_DURATIONS[Severity.INFO],
        )

    def show_warning(self, key: str, params: Optional[Mapping[str, Any]] = None) -> str:
        return self._show(
            title=self.translator.t("severity.warning"),
            message=self.translator.t(key, params),
            severity=Severity.WARNING,
            kind=ErrorKind.UNKNOWN,
            duration=DEFAULT_DURATIONS[Severity.WARNING],
        )

    def _show(self, **fields: Any) -> str:
        notification = Notification(id=f"notification-{next(self._ids)}", created_at=self._clock(), **fields)
        self._active[notification.id] = notification
        try:
            self.console.print_notification(notification.to_dict())
        except Exception as e:
            logger.error(f"Failed to render notification {notification.id}: {e}")
        return notification.id

    def hide(self, notification_id: str) -> bool:
        return self._active.pop(notification_id, None) is not None

    def clear_all(self) -> None:
        self._active.clear()

    def dismiss_expired(self, now: Optional[float] = None) -> List[str]:
        """Hide notifications whose display duration has elapsed."""
        now = self._clock() if now is None else now
        expired = [
            n.id for n in self._active.values() if n.expires_at is not None and now >= n.expires_at
        ]
        for notification_id in expired:
            del self._active[notification_id]
        return expired

    def get(self, notification_id: str) -> Optional[Notification]:
        return self._active.get(notification_id)

    @property
    def active(self) -> List[Notification]:
        return list(self._active.values())

    # ========== Actions ==========

    async def invoke_action(self, notification_id: str, action_id: str) -> bool:
        """Run a notification action; non-persistent notifications are hidden afterwards.

        Returns:
            True if the action exists and completed without raising
        """
        notification = self._active.get(notification_id)
        if notification is None:
            return False
        action = next((a for a in notification.actions if a.id == action_id), None)
        if action is None:
            return False

        ok = True
        try:
            result = action.handler()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Notification action {action_id} failed: {e}")
            ok = False

        if not notification.persistent:
            self.hide(notification_id)
        return ok

    def _default_actions(self, record: ErrorRecord) -> List[NotificationAction]:
        actions = []
        if record.recoverable:
            actions.append(
                NotificationAction(
                    "retry", self.translator.t("retry"), lambda: self.emit(RETRY_EVENT, record)
                )
            )
        actions.append(
            NotificationAction(
                "copy-details", self.translator.t("action.copy_error"), lambda: self.copy_error_details(record)
            )
        )
        actions.append(
            NotificationAction("report", self.translator.t("action.report"), lambda: self.report_error(record))
        )
        return actions

    async def copy_error_details(self, record: ErrorRecord) -> bool:
        if self.clipboard is None:
            logger.warning("No clipboard writer configured; cannot copy error details")
            return False
        details = record.to_dict()
        details["stack"] = record.metadata.get("original_traceback")
        details["diagnosis"] = self.diagnostic.diagnose(record).to_dict()
        try:
            await self.clipboard.write_text(json.dumps(details, indent=2, default=str))
        except Exception as e:
            logger.error(f"Failed to copy error details: {e}")
            return False
        self.show_success("success.operation_completed")
        return True

    def build_report_url(self, record: ErrorRecord) -> str:
        body = "\n".join(
            [
                "**Error Details:**",
                f"- Type: {record.kind.value}",
                f"- Level: {record.severity.value}",
                f"- Message: {record.message}",
                f"- Timestamp: {record.to_dict()['timestamp']}",
                "",
                "**Context:**",
                json.dumps(record.context, indent=2, default=str),
                "",
                "**Stack Trace:**",
                record.metadata.get("original_traceback") or "Not available",
            ]
        )
        query = urlencode({"template": "bug_report.md", "title": f"Error: {record.message}", "body": body})
        return f"{self.report_url}?{query}"

    def report_error(self, record: ErrorRecord) -> str:
        url = self.build_report_url(record)
        self.url_opener(url)
        return url
