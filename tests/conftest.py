"""Global pytest fixtures and configuration.

This module provides shared fixtures for all tests including:
- A manually advanced clock and a no-op sleep for virtual time
- Fake host collaborators (connectivity probe, DOM, clipboard permissions, clipboard)
- A plain-text console writing to an in-memory stream
- A fully wired ResilienceCore built from the fakes
"""
from __future__ import annotations

import io
from typing import Any, Dict, List

import pytest

from resilience_core.config import ResilienceConfig, reset_config
from resilience_core.core import ResilienceCore
from resilience_core.ui.console import ConsoleManager

_ENV_VARS = [
    "RESILIENCE_FLUSH_INTERVAL",
    "RESILIENCE_SWEEP_INTERVAL",
    "RESILIENCE_RECOVERY_DELAY",
    "RESILIENCE_MAX_RETRY_ATTEMPTS",
    "RESILIENCE_BASE_RETRY_DELAY",
    "RESILIENCE_RECENT_ERRORS_LIMIT",
    "RESILIENCE_STORAGE_MAX_AGE",
    "RESILIENCE_DOM_SETTLE_DELAY",
    "RESILIENCE_NOTIFICATIONS_ENABLED",
    "RESILIENCE_INSTALL_GLOBAL_HANDLERS",
    "RESILIENCE_REPORT_URL",
    "LOG_LEVEL",
    "LOG_FILE",
    "VERBOSE",
    "OUTPUT_FORMAT",
    "LOCALE",
]


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class RecordingSleep:
    """Awaitable sleep that returns immediately and records requested delays."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeProbe:
    def __init__(self, online: bool = True) -> None:
        self.online = online
        self.calls = 0

    async def is_online(self) -> bool:
        self.calls += 1
        return self.online


class FakeDom:
    """Selector -> elements map; unknown selectors match nothing."""

    def __init__(self, elements: Dict[str, List[Any]] | None = None) -> None:
        self.elements = dict(elements or {})
        self.queries: List[str] = []

    def query_all(self, selector: str) -> List[Any]:
        self.queries.append(selector)
        return list(self.elements.get(selector, []))


class FakePermissions:
    def __init__(self, state: str = "granted", error: Exception | None = None) -> None:
        self.state = state
        self.error = error

    async def query(self) -> str:
        if self.error is not None:
            raise self.error
        return self.state


class FakeClipboard:
    def __init__(self) -> None:
        self.writes: List[str] = []

    async def write_text(self, text: str) -> None:
        self.writes.append(text)


@pytest.fixture(autouse=True)
def clean_resilience_env(monkeypatch):
    """Ensure configuration comes from defaults unless a test sets variables."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def probe() -> FakeProbe:
    return FakeProbe()


@pytest.fixture
def dom() -> FakeDom:
    return FakeDom()


@pytest.fixture
def permissions() -> FakePermissions:
    return FakePermissions()


@pytest.fixture
def clipboard() -> FakeClipboard:
    return FakeClipboard()


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def console(output) -> ConsoleManager:
    """Plain-text console writing to the ``output`` buffer."""
    return ConsoleManager(rich_output=False, stream=output)


@pytest.fixture
def config() -> ResilienceConfig:
    return ResilienceConfig()


@pytest.fixture
def url_opener():
    opened: List[str] = []

    def _open(url: str) -> bool:
        opened.append(url)
        return True

    _open.opened = opened
    return _open


@pytest.fixture
def core(config, clock, sleep, console, probe, dom, permissions, clipboard, url_opener) -> ResilienceCore:
    return ResilienceCore(
        config,
        clock=clock,
        sleep=sleep,
        console=console,
        probe=probe,
        dom=dom,
        clipboard_permissions=permissions,
        clipboard=clipboard,
        url_opener=url_opener,
    )
