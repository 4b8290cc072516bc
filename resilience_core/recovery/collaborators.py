"""Boundary protocols for the host subsystems recovery strategies talk to.

The host injects concrete implementations; the defaults below cover a plain
Python process (socket probe, in-memory storage, no DOM).
"""
from __future__ import annotations

import asyncio
import logging
import webbrowser
from typing import Any, Dict, Iterable, List, Protocol, Sequence, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class ConnectivityProbe(Protocol):
    async def is_online(self) -> bool: ...


@runtime_checkable
class DomQuery(Protocol):
    def query_all(self, selector: str) -> Sequence[Any]: ...


@runtime_checkable
class ClipboardPermissions(Protocol):
    async def query(self) -> str:
        """Return "granted", "prompt" or "denied"."""
        ...


@runtime_checkable
class ClipboardWriter(Protocol):
    async def write_text(self, text: str) -> None: ...


@runtime_checkable
class StorageBackend(Protocol):
    async def get_all(self) -> Dict[str, Any]: ...

    async def remove(self, keys: Iterable[str]) -> None: ...


class SocketConnectivityProbe:
    """Reports online when a TCP connection to ``host:port`` succeeds in time."""

    def __init__(self, host: str = "1.1.1.1", port: int = 53, timeout: float = 3.0) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout

    async def is_online(self) -> bool:
        try:
            _reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"Connectivity probe to {self.host}:{self.port} failed: {e}")
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True


class NullDomQuery:
    """DOM stand-in for hosts without a document; finds nothing."""

    def query_all(self, selector: str) -> List[Any]:
        return []


class StaticClipboardPermissions:
    def __init__(self, state: str = "granted") -> None:
        self.state = state

    async def query(self) -> str:
        return self.state


class MemoryClipboard:
    """In-process clipboard keeping the last written text."""

    def __init__(self) -> None:
        self.text = ""

    async def write_text(self, text: str) -> None:
        self.text = text


class InMemoryStorage:
    """Dict-backed storage, shaped like the extension's local storage area."""

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = dict(data or {})

    async def get_all(self) -> Dict[str, Any]:
        return dict(self.data)

    async def remove(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.data.pop(key, None)


def open_url(url: str) -> bool:
    """Default URL opener used by the report action."""
    return webbrowser.open(url)
