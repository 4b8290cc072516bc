"""Escalating cooldown ledger for repeated identical failures.

Each distinct failure signature gets a small circuit breaker: the first few
occurrences pass through, the occurrence that reaches ``max_occurrences``
opens a cooldown, and every further escalation multiplies the cooldown by
``escalation_factor``. Entries reset after ``reset_after`` seconds measured
from the first occurrence and are pruned once idle for twice that long.
"""
from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional

from .config.policies import DEFAULT_COOLDOWN, DEFAULT_COOLDOWNS, CooldownConfig
from .models.errors import ErrorKind, ErrorRecord

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX_LENGTH = 50


@dataclass
class CooldownItem:
    """Occurrence state for one failure signature."""

    key: str
    count: int
    first_occurrence: float
    last_occurrence: float
    cooldown_until: float
    escalation_level: int
    config: CooldownConfig

    def reset(self, now: float) -> None:
        self.count = 1
        self.first_occurrence = now
        self.last_occurrence = now
        self.cooldown_until = 0.0
        self.escalation_level = 0


@dataclass
class CooldownStatus:
    is_active: bool
    remaining_time: float = 0.0
    count: int = 0
    escalation_level: int = 0
    next_reset_time: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "is_active": self.is_active,
            "remaining_time": self.remaining_time,
            "count": self.count,
            "escalation_level": self.escalation_level,
            "next_reset_time": self.next_reset_time,
        }


def signature_key(record: ErrorRecord) -> str:
    """Stable key for a record: kind, severity and a digest of the message prefix."""
    prefix = record.message[:SIGNATURE_PREFIX_LENGTH]
    digest = hashlib.sha1(prefix.encode("utf-8")).hexdigest()[:16]
    return f"{record.kind.value}_{record.severity.value}_{digest}"


class CooldownLedger:
    """Tracks failure signatures and decides whether an occurrence is suppressed."""

    def __init__(
        self,
        configs: Optional[Mapping[ErrorKind, CooldownConfig]] = None,
        default_config: CooldownConfig = DEFAULT_COOLDOWN,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._configs: Dict[ErrorKind, CooldownConfig] = dict(
            DEFAULT_COOLDOWNS if configs is None else configs
        )
        self._default = default_config
        self._clock = clock
        self._items: Dict[str, CooldownItem] = {}

    def config_for(self, kind: ErrorKind) -> CooldownConfig:
        return self._configs.get(kind, self._default)

    def is_in_cooldown(self, record: ErrorRecord) -> bool:
        """Register an occurrence and report whether it should be suppressed.

        Args:
            record: The normalized failure

        Returns:
            True if the occurrence falls inside an active or newly opened cooldown
        """
        key = signature_key(record)
        now = self._clock()
        item = self._items.get(key)

        if item is None:
            self._items[key] = CooldownItem(
                key=key,
                count=1,
                first_occurrence=now,
                last_occurrence=now,
                cooldown_until=0.0,
                escalation_level=0,
                config=self.config_for(record.kind),
            )
            return False

        if now - item.first_occurrence > item.config.reset_after:
            item.reset(now)
            return False

        if now < item.cooldown_until:
            return True

        item.count += 1
        item.last_occurrence = now
        if item.count >= item.config.max_occurrences:
            item.escalation_level += 1
            cooldown = item.config.cooldown_for(item.escalation_level)
            item.cooldown_until = now + cooldown
            logger.warning(
                f"Cooldown opened for {record.kind.value}/{record.severity.value} "
                f"(level {item.escalation_level}, {cooldown:.1f}s, {item.count} occurrences)"
            )
            return True
        return False

    def get_cooldown_status(self, record: ErrorRecord) -> CooldownStatus:
        item = self._items.get(signature_key(record))
        if item is None:
            return CooldownStatus(is_active=False)
        now = self._clock()
        return CooldownStatus(
            is_active=now < item.cooldown_until,
            remaining_time=max(0.0, item.cooldown_until - now),
            count=item.count,
            escalation_level=item.escalation_level,
            next_reset_time=item.first_occurrence + item.config.reset_after,
        )

    def reset_cooldown(self, record: ErrorRecord) -> bool:
        """Forget a signature entirely. Returns True if an entry was removed."""
        return self._items.pop(signature_key(record), None) is not None

    def clear(self) -> None:
        self._items.clear()

    def sweep(self, now: Optional[float] = None) -> int:
        """Prune entries idle for more than twice their reset window.

        Returns:
            Number of pruned entries
        """
        now = self._clock() if now is None else now
        stale = [
            key
            for key, item in self._items.items()
            if now - item.last_occurrence > item.config.reset_after * 2
        ]
        for key in stale:
            del self._items[key]
        if stale:
            logger.debug(f"Pruned {len(stale)} idle cooldown entries")
        return len(stale)

    def get_stats(self) -> Dict[str, int]:
        now = self._clock()
        return {
            "active_cooldowns": sum(1 for item in self._items.values() if now < item.cooldown_until),
            "total_cooldowns": len(self._items),
        }

    def __len__(self) -> int:
        return len(self._items)
