"""Rate limiting and batching for user-facing error notifications."""
from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from ..config.policies import DEFAULT_THROTTLES, NotificationThrottleConfig
from ..models.errors import ErrorKind, ErrorRecord, Severity

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 3600.0

Display = Callable[[ErrorRecord], Optional[str]]


class NotificationQueue:
    """Collects notifications between flushes and merges duplicates by batch key.

    A record whose batch key (``kind_severity``) is already pending is merged
    into the pending one without consuming a throttle slot. Otherwise the
    (kind, severity) throttle decides whether it is queued at all.

    Args:
        display: Called once per pending batch on flush; returns a notification id
        throttles: Per (kind, severity) limits; pairs without an entry are never throttled
        clock: Time source in epoch seconds
        enabled: When False, queue_notification drops everything
    """

    def __init__(
        self,
        display: Display,
        throttles: Optional[Mapping[Tuple[ErrorKind, Severity], NotificationThrottleConfig]] = None,
        clock: Callable[[], float] = time.time,
        enabled: bool = True,
    ) -> None:
        self._display = display
        self._throttles = dict(DEFAULT_THROTTLES if throttles is None else throttles)
        self._clock = clock
        self.enabled = enabled
        self._history: Dict[str, List[float]] = {}
        self._pending: "OrderedDict[str, ErrorRecord]" = OrderedDict()

    def should_notify(self, record: ErrorRecord) -> bool:
        """Check the throttle for a record and, if allowed, consume one slot."""
        config = self._throttles.get((record.kind, record.severity))
        if config is None:
            return True

        key = record.batch_key
        now = self._clock()
        history = [t for t in self._history.get(key, []) if now - t < HISTORY_WINDOW]

        if history and now - history[-1] < config.min_interval:
            self._history[key] = history
            return False
        if len(history) >= config.max_per_hour:
            self._history[key] = history
            logger.debug(f"Hourly notification limit reached for {key}")
            return False

        history.append(now)
        self._history[key] = history
        return True

    def queue_notification(self, record: ErrorRecord) -> bool:
        """Queue or merge a record.

        Returns:
            True if the record will be shown (on its own or merged), False if throttled
        """
        if not self.enabled:
            return False

        key = record.batch_key
        pending = self._pending.get(key)
        if pending is not None:
            pending.metadata["count"] = pending.metadata.get("count", 1) + 1
            pending.metadata["last_occurrence"] = self._clock()
            return True

        if not self.should_notify(record):
            logger.debug(f"Notification throttled for {key}")
            return False

        record.metadata["count"] = 1
        record.metadata["batch_key"] = key
        self._pending[key] = record
        return True

    def flush(self) -> List[str]:
        """Display every pending batch and empty the queue.

        Returns:
            Ids of the notifications that were displayed
        """
        if not self._pending:
            return []
        batches = list(self._pending.values())
        self._pending.clear()

        shown: List[str] = []
        for record in batches:
            count = record.metadata.get("count", 1)
            if count > 1:
                logger.info(f"Batched notification: {record.kind.value} ({count} occurrences)")
            try:
                notification_id = self._display(record)
            except Exception as e:
                logger.error(f"Failed to display notification for {record.batch_key}: {e}")
                continue
            if notification_id is not None:
                shown.append(notification_id)
        return shown

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop notification history older than one hour. Returns the number of removed keys."""
        now = self._clock() if now is None else now
        removed = 0
        for key in list(self._history):
            recent = [t for t in self._history[key] if now - t < HISTORY_WINDOW]
            if recent:
                self._history[key] = recent
            else:
                del self._history[key]
                removed += 1
        return removed

    def clear(self) -> None:
        self._history.clear()
        self._pending.clear()

    @property
    def pending(self) -> List[ErrorRecord]:
        return list(self._pending.values())

    def get_stats(self) -> Dict[str, int]:
        return {
            "queued_notifications": len(self._pending),
            "throttled_keys": len(self._history),
        }
