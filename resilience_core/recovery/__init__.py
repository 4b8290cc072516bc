"""Automated recovery: strategy registry, built-in strategies and the fallback wrapper."""

from .collaborators import (
    ClipboardPermissions,
    ClipboardWriter,
    ConnectivityProbe,
    DomQuery,
    InMemoryStorage,
    MemoryClipboard,
    NullDomQuery,
    SocketConnectivityProbe,
    StaticClipboardPermissions,
    StorageBackend,
)
from .fallback import FallbackRegistry, FallbackStrategy, with_fallback
from .registry import RecoveryRegistry, RecoveryResult, RecoveryStrategy
from .strategies import (
    ClipboardPermissionStrategy,
    DomRefindStrategy,
    MemoryCleanupStrategy,
    NetworkRetryStrategy,
    PageRefreshStrategy,
    StorageCleanupStrategy,
    looser_selectors,
)

__all__ = [
    "ClipboardPermissionStrategy",
    "ClipboardPermissions",
    "ClipboardWriter",
    "ConnectivityProbe",
    "DomQuery",
    "DomRefindStrategy",
    "FallbackRegistry",
    "FallbackStrategy",
    "InMemoryStorage",
    "MemoryCleanupStrategy",
    "MemoryClipboard",
    "NetworkRetryStrategy",
    "NullDomQuery",
    "PageRefreshStrategy",
    "RecoveryRegistry",
    "RecoveryResult",
    "RecoveryStrategy",
    "SocketConnectivityProbe",
    "StaticClipboardPermissions",
    "StorageBackend",
    "StorageCleanupStrategy",
    "looser_selectors",
    "with_fallback",
]
