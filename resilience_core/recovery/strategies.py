"""Built-in recovery strategies.

``RecoveryResult.message`` always carries a message catalog key; callers
translate it when they surface the outcome.
"""
from __future__ import annotations

import gc
import json
import logging
import re
import time
from typing import Any, Awaitable, Callable, Iterable, List, Optional

import psutil

from ..models.errors import ErrorKind, ErrorRecord, Severity
from .collaborators import (
    ClipboardPermissions,
    ConnectivityProbe,
    DomQuery,
    SocketConnectivityProbe,
    StorageBackend,
)
from .registry import RecoveryResult, RecoveryStrategy

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

TWEET_SELECTORS = (
    'article[data-testid="tweet"]',
    'div[data-testid="tweet"]',
    '[role="article"]',
)

_TESTID_ATTR = re.compile(r'\[data-testid="([^"]+)"\]')


def looser_selectors(selector: str) -> List[str]:
    """Progressively looser variants of a CSS selector, most specific first."""
    variants = [
        _TESTID_ATTR.sub(r'[class*="\1"]', selector),
        re.sub(r"\barticle\b", "div", selector),
        selector.split()[0] if selector.split() else selector,
        "*",
    ]
    result: List[str] = []
    for variant in variants:
        if variant and variant != selector and variant not in result:
            result.append(variant)
    return result


class NetworkRetryStrategy(RecoveryStrategy):
    id = "network-retry"
    name = "Network Retry"
    priority = 10

    def __init__(
        self,
        probe: Optional[ConnectivityProbe] = None,
        sleep: Optional[Sleep] = None,
        base_retry_delay: float = 1.0,
    ) -> None:
        self.probe = probe or SocketConnectivityProbe()
        self.sleep = sleep
        self.base_retry_delay = base_retry_delay

    def can_recover(self, record: ErrorRecord) -> bool:
        return record.kind is ErrorKind.NETWORK

    async def recover(self, record: ErrorRecord, context: Any = None) -> RecoveryResult:
        if not await self.probe.is_online():
            return RecoveryResult(
                success=False, message="error.network_offline", requires_user_action=True
            )
        if self.sleep is not None:
            await self.sleep(self.base_retry_delay * 2)
        return RecoveryResult(success=True, message="success.network_recovered")


class MemoryCleanupStrategy(RecoveryStrategy):
    """Runs host cache evictors and a garbage collection pass.

    Args:
        evictors: Callables that drop cached data; each returns how many items it freed (or None)
    """

    id = "memory-cleanup"
    name = "Memory Cleanup"
    priority = 9

    def __init__(self, evictors: Iterable[Callable[[], Optional[int]]] = ()) -> None:
        self.evictors = list(evictors)

    def add_evictor(self, evictor: Callable[[], Optional[int]]) -> None:
        self.evictors.append(evictor)

    def can_recover(self, record: ErrorRecord) -> bool:
        return record.kind is ErrorKind.MEMORY or record.severity is Severity.CRITICAL

    async def recover(self, record: ErrorRecord, context: Any = None) -> RecoveryResult:
        rss_before = psutil.Process().memory_info().rss
        evicted = 0
        for evictor in self.evictors:
            try:
                evicted += evictor() or 0
            except Exception as e:
                logger.error(f"Cache evictor {getattr(evictor, '__name__', evictor)} failed: {e}")
        collected = gc.collect()
        rss_after = psutil.Process().memory_info().rss
        data = {
            "evicted": evicted,
            "collected": collected,
            "rss_before": rss_before,
            "rss_after": rss_after,
            "memory_percent": psutil.virtual_memory().percent,
        }
        logger.info(
            f"Memory cleanup evicted {evicted} items, collected {collected} objects "
            f"(rss {rss_before / 1e6:.1f}MB -> {rss_after / 1e6:.1f}MB)"
        )
        return RecoveryResult(success=True, data=data, message="success.memory_cleaned")


class ClipboardPermissionStrategy(RecoveryStrategy):
    id = "clipboard-permission"
    name = "Clipboard Permission Request"
    priority = 8

    def __init__(self, permissions: ClipboardPermissions) -> None:
        self.permissions = permissions

    def can_recover(self, record: ErrorRecord) -> bool:
        return record.kind is ErrorKind.CLIPBOARD and "permission" in record.message.lower()

    async def recover(self, record: ErrorRecord, context: Any = None) -> RecoveryResult:
        try:
            state = await self.permissions.query()
        except Exception as e:
            logger.warning(f"Clipboard permission query failed: {e}")
            return RecoveryResult(
                success=False, message="error.permission_check_failed", requires_user_action=True
            )
        if state == "granted":
            return RecoveryResult(success=True, message="success.permission_granted")
        if state == "prompt":
            return RecoveryResult(
                success=False, message="error.permission_prompt_required", requires_user_action=True
            )
        return RecoveryResult(success=False, message="error.permission_denied", requires_user_action=True)


class DomRefindStrategy(RecoveryStrategy):
    id = "dom-refind"
    name = "DOM Element Refind"
    priority = 6

    def __init__(self, dom: DomQuery, sleep: Optional[Sleep] = None, settle_delay: float = 1.0) -> None:
        self.dom = dom
        self.sleep = sleep
        self.settle_delay = settle_delay

    def can_recover(self, record: ErrorRecord) -> bool:
        return record.kind is ErrorKind.DOM

    def candidate_selectors(self, context: Any) -> List[str]:
        selectors: List[str] = []
        if isinstance(context, dict) and isinstance(context.get("selector"), str):
            selectors.extend(s for s in looser_selectors(context["selector"]) if s != "*")
        selectors.extend(s for s in TWEET_SELECTORS if s not in selectors)
        return selectors

    async def recover(self, record: ErrorRecord, context: Any = None) -> RecoveryResult:
        if self.sleep is not None and self.settle_delay > 0:
            await self.sleep(self.settle_delay)
        context = record.context if context is None else context
        for selector in self.candidate_selectors(context):
            elements = self.dom.query_all(selector)
            if elements:
                logger.info(f"Found {len(elements)} elements with fallback selector {selector}")
                return RecoveryResult(
                    success=True,
                    data={"selector": selector, "elements": list(elements)},
                    message="success.elements_found",
                )
        return RecoveryResult(
            success=False, message="error.elements_still_not_found", requires_user_action=True
        )


class StorageCleanupStrategy(RecoveryStrategy):
    """Evicts storage entries older than ``max_age`` seconds and entries that cannot be decoded."""

    id = "storage-cleanup"
    name = "Storage Cleanup"
    priority = 4

    def __init__(
        self,
        storage: StorageBackend,
        max_age: float = 7 * 24 * 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage
        self.max_age = max_age
        self._clock = clock

    def can_recover(self, record: ErrorRecord) -> bool:
        return record.kind is ErrorKind.STORAGE or "quota" in record.message.lower()

    def _is_stale(self, value: Any, cutoff: float) -> bool:
        if isinstance(value, (str, bytes)):
            try:
                value = json.loads(value)
            except ValueError:
                return True
        if isinstance(value, dict):
            timestamp = value.get("timestamp")
            return isinstance(timestamp, (int, float)) and timestamp < cutoff
        return False

    async def recover(self, record: ErrorRecord, context: Any = None) -> RecoveryResult:
        cutoff = self._clock() - self.max_age
        try:
            data = await self.storage.get_all()
            stale = [key for key, value in data.items() if self._is_stale(value, cutoff)]
            if stale:
                await self.storage.remove(stale)
        except Exception as e:
            logger.error(f"Storage cleanup failed: {e}")
            return RecoveryResult(
                success=False, message="error.storage_cleanup_failed", requires_user_action=True
            )
        if not stale:
            return RecoveryResult(
                success=False, message="error.no_storage_to_clean", requires_user_action=True
            )
        logger.info(f"Removed {len(stale)} stale storage entries")
        return RecoveryResult(success=True, data={"count": len(stale)}, message="success.storage_cleaned")


class PageRefreshStrategy(RecoveryStrategy):
    """Last resort: tells the user to reload."""

    id = "page-refresh"
    name = "Page Refresh"
    priority = 1

    def can_recover(self, record: ErrorRecord) -> bool:
        return record.severity >= Severity.CRITICAL

    async def recover(self, record: ErrorRecord, context: Any = None) -> RecoveryResult:
        return RecoveryResult(
            success=False, message="error.requires_page_refresh", requires_user_action=True
        )
