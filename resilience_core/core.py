"""ResilienceCore: the facade wiring normalization, cooldowns, rules, recovery and notifications."""
from __future__ import annotations

import asyncio
import logging
import sys
import time
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional

from .config import ResilienceConfig, get_config
from .cooldown import CooldownLedger, CooldownStatus
from .diagnostics import ErrorDiagnostic
from .i18n import Translator
from .models.errors import ErrorRecord, Severity
from .normalizer import ErrorNormalizer
from .notifications import NotificationQueue, NotificationWidget
from .recovery.collaborators import (
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
    open_url,
)
from .recovery.fallback import (
    MISSING,
    FallbackRegistry,
    FallbackStrategy,
    clipboard_fallback,
    dom_fallback,
    formatting_fallback,
    with_fallback,
)
from .recovery.registry import RecoveryRegistry, RecoveryResult, RecoveryStrategy
from .recovery.strategies import (
    ClipboardPermissionStrategy,
    DomRefindStrategy,
    MemoryCleanupStrategy,
    NetworkRetryStrategy,
    PageRefreshStrategy,
    StorageCleanupStrategy,
)
from .rules import ErrorRule, HandleResult, RuleEngine
from .scheduler import Scheduler
from .stats import ErrorStats, StatsSnapshot
from .ui.console import ConsoleManager
from .utils.logging_factory import LoggingFactory

logger = logging.getLogger(__name__)

Listener = Callable[[ErrorRecord], Any]


class ResilienceCore:
    """Single entry point for reporting and recovering from failures.

    Collaborating subsystems await ``handle(error, context)``. Every call is
    counted and forwarded to listeners; repeated identical failures are then
    suppressed by the cooldown ledger; the rest go through the rule engine and,
    when recoverable, a background recovery attempt.

    Args:
        config: Settings (defaults to the environment-backed singleton)
        clock: Time source in epoch seconds shared by every component
        sleep: Awaitable sleep used for delays and retries
        console: Output for notifications
        probe: Connectivity check for network recovery
        dom: DOM query collaborator
        clipboard_permissions: Clipboard permission query collaborator
        clipboard: Clipboard writer (legacy fallback and copy-details action)
        storage: Storage backend for storage cleanup
        evictors: Cache evictors run by memory cleanup
        url_opener: Opens issue report URLs
        rules: Replaces the default rule list
    """

    def __init__(
        self,
        config: Optional[ResilienceConfig] = None,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        console: Optional[ConsoleManager] = None,
        probe: Optional[ConnectivityProbe] = None,
        dom: Optional[DomQuery] = None,
        clipboard_permissions: Optional[ClipboardPermissions] = None,
        clipboard: Optional[ClipboardWriter] = None,
        storage: Optional[StorageBackend] = None,
        evictors: Iterable[Callable[[], Optional[int]]] = (),
        url_opener: Callable[[str], Any] = open_url,
        rules: Optional[List[ErrorRule]] = None,
    ) -> None:
        self.config = config or get_config()
        self._clock = clock
        self.translator = Translator(self.config.locale)
        self.console = console or ConsoleManager(
            verbose=self.config.verbose, json_output=self.config.json_output
        )
        self.scheduler = Scheduler(sleep=sleep)

        self.dom = dom or NullDomQuery()
        self.clipboard = clipboard or MemoryClipboard()

        self.normalizer = ErrorNormalizer(self.translator, clock=clock)
        self.stats = ErrorStats(recent_limit=self.config.recent_errors_limit, clock=clock)
        self.cooldowns = CooldownLedger(self.config.cooldowns, clock=clock)
        self.diagnostic = ErrorDiagnostic(self.translator)
        self.widget = NotificationWidget(
            console=self.console,
            translator=self.translator,
            diagnostic=self.diagnostic,
            clipboard=self.clipboard,
            url_opener=url_opener,
            report_url=self.config.report_url,
            clock=clock,
        )
        self.notifications = NotificationQueue(
            self.widget.show_error,
            throttles=self.config.throttles,
            clock=clock,
            enabled=self.config.notifications_enabled,
        )
        self.rules = RuleEngine(self.queue_notification, rules)
        self.recovery = RecoveryRegistry(
            strategies=[
                NetworkRetryStrategy(
                    probe or SocketConnectivityProbe(), sleep, self.config.base_retry_delay
                ),
                MemoryCleanupStrategy(evictors),
                ClipboardPermissionStrategy(clipboard_permissions or StaticClipboardPermissions()),
                DomRefindStrategy(self.dom, sleep, self.config.dom_settle_delay),
                StorageCleanupStrategy(storage or InMemoryStorage(), self.config.storage_max_age, clock),
                PageRefreshStrategy(),
            ],
            max_retry_attempts=self.config.max_retry_attempts,
            on_success=self.show_success,
            scheduler=self.scheduler,
            clock=clock,
        )
        self.fallbacks = FallbackRegistry(
            [clipboard_fallback(self.clipboard), dom_fallback(self.dom), formatting_fallback()]
        )

        self._listeners: List[Listener] = []
        self._started = False
        self._previous_excepthook = None
        self._hooked_loop: Optional[asyncio.AbstractEventLoop] = None
        self._previous_loop_handler = None

    # ========== Lifecycle ==========

    def init(self, configure_logging: bool = True) -> "ResilienceCore":
        """Start periodic flush/sweep tasks and, if configured, global handlers.

        Periodic tasks need a running event loop; without one only logging and
        handlers are set up and the host drives ``tick()``/``sweep()`` itself.
        """
        if self._started:
            return self
        if configure_logging:
            LoggingFactory.initialize(
                level=self.config.log_level,
                log_file=self.config.log_file,
                json_output=self.config.json_output,
            )
            if self.config.verbose:
                LoggingFactory.configure_verbose(True)

        if self.scheduler.has_running_loop():
            self.scheduler.every(self.config.flush_interval, self.tick, name="notification-flush")
            self.scheduler.every(self.config.sweep_interval, self.sweep, name="state-sweep")
        else:
            logger.warning("No running event loop; periodic flush and sweep are not scheduled")

        if self.config.install_global_handlers:
            self.install_global_handlers()
        self._started = True
        logger.info("Resilience core initialized")
        return self

    async def dispose(self) -> None:
        """Cancel background work, uninstall handlers and drop all state."""
        await self.scheduler.cancel_all()
        self.uninstall_global_handlers()
        self.widget.clear_all()
        self.notifications.clear()
        self.cooldowns.clear()
        self.recovery.clear_recovery_stats()
        self._listeners.clear()
        self._started = False
        logger.info("Resilience core disposed")

    async def __aenter__(self) -> "ResilienceCore":
        return self.init()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()

    # ========== Handling ==========

    async def handle(self, error: Any, context: Any = None) -> HandleResult:
        """Normalize, count, de-duplicate and handle one failure.

        Args:
            error: Any raised value
            context: Caller-supplied data attached to the record

        Returns:
            HandleResult; ``error`` holds the normalized record on failure

        Raises:
            ErrorRecord: When a throw rule matches (fatal severity by default)
        """
        record = self.normalizer.normalize(error, context)
        self.stats.record(record)
        self._notify_listeners(record)

        suppressed = self.cooldowns.is_in_cooldown(record)
        if suppressed and record.severity is not Severity.FATAL:
            logger.debug(f"{record.kind.value} error is in cooldown, skipping")
            return HandleResult(success=False, error=record)

        if not suppressed:
            self._schedule_recovery(record, context)

        rule = self.rules.find_matching_rule(record)
        if record.severity is Severity.CRITICAL and (rule is None or not rule.notifies):
            self.queue_notification(record)
        if rule is None:
            return HandleResult(success=False, error=record)
        return await self.rules.execute_strategy(record, rule)

    def _schedule_recovery(self, record: ErrorRecord, context: Any) -> None:
        if not record.recoverable or record.severity is Severity.FATAL:
            return
        delay = 0.0 if record.severity is Severity.CRITICAL else self.config.recovery_delay
        self.scheduler.call_later(
            delay,
            lambda: self._recover(record, context),
            name=f"recover-{record.kind.value}",
        )

    async def _recover(self, record: ErrorRecord, context: Any) -> RecoveryResult:
        result = await self.attempt_recovery(record, context)
        if result.success:
            logger.info(f"Successfully recovered from error: {record.message}")
        elif result.requires_user_action:
            logger.info(
                f"Recovery for {record.kind.value} error needs user action: "
                f"{self.translator.t(result.message) if result.message else 'unknown'}"
            )
        return result

    async def attempt_recovery(self, record: ErrorRecord, context: Any = None) -> RecoveryResult:
        return await self.recovery.attempt_recovery(record, context)

    def queue_notification(self, record: ErrorRecord) -> bool:
        return self.notifications.queue_notification(record)

    def show_success(self, key: str, params: Optional[Mapping[str, Any]] = None) -> str:
        return self.widget.show_success(key, params)

    def show_warning(self, key: str, params: Optional[Mapping[str, Any]] = None) -> str:
        return self.widget.show_warning(key, params)

    # ========== Fallback ==========

    def with_fallback(
        self,
        fn: Callable[..., Awaitable[Any]],
        *,
        retries: int = 2,
        retry_delay: float = 1.0,
        fallback_value: Any = MISSING,
        name: Optional[str] = None,
    ) -> Callable[..., Awaitable[Any]]:
        """Wrap ``fn`` with retries and the registered fallback strategies."""
        return with_fallback(
            fn,
            self.fallbacks,
            self.normalizer,
            retries=retries,
            retry_delay=retry_delay,
            fallback_value=fallback_value,
            name=name,
            sleep=self.scheduler.sleep,
        )

    def fallback(self, **options: Any) -> Callable[[Callable[..., Awaitable[Any]]], Callable[..., Awaitable[Any]]]:
        """Decorator form of with_fallback.

        Example:
            @core.fallback(retries=1, fallback_value=[])
            async def load_tweets(selector): ...
        """

        def decorator(fn):
            return self.with_fallback(fn, **options)

        return decorator

    # ========== Registration ==========

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def add_rule(self, rule: ErrorRule) -> None:
        self.rules.add_rule(rule)

    def add_fallback_strategy(self, strategy: FallbackStrategy) -> None:
        self.fallbacks.add(strategy)

    def register_recovery_strategy(self, strategy: RecoveryStrategy) -> None:
        self.recovery.register_strategy(strategy)

    def _notify_listeners(self, record: ErrorRecord) -> None:
        for listener in list(self._listeners):
            try:
                listener(record)
            except Exception as e:
                logger.error(f"Error in error listener: {e}")

    # ========== Periodic work ==========

    def tick(self) -> List[str]:
        """Flush pending notifications and expire old ones. Returns displayed ids."""
        shown = self.notifications.flush()
        self.widget.dismiss_expired()
        return shown

    def sweep(self) -> None:
        self.cooldowns.sweep()
        self.notifications.sweep()
        self.recovery.sweep()

    # ========== Introspection ==========

    def get_stats(self) -> StatsSnapshot:
        return self.stats.snapshot()

    def clear_stats(self) -> None:
        self.stats.clear()

    def get_cooldown_status(self, record: ErrorRecord) -> CooldownStatus:
        return self.cooldowns.get_cooldown_status(record)

    def get_system_stats(self) -> dict:
        """Stats from every component, for dashboards and the CLI summary."""
        return {
            "errors": self.stats.snapshot().to_dict(),
            "cooldowns": self.cooldowns.get_stats(),
            "notifications": self.notifications.get_stats(),
            "recovery": self.recovery.get_recovery_stats(),
        }

    # ========== Global handlers ==========

    def install_global_handlers(self) -> None:
        """Route uncaught exceptions and unhandled task exceptions into handle()."""
        if self._previous_excepthook is None:
            self._previous_excepthook = sys.excepthook
            sys.excepthook = self._excepthook

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None and self._hooked_loop is None:
            self._hooked_loop = loop
            self._previous_loop_handler = loop.get_exception_handler()
            loop.set_exception_handler(self._loop_exception_handler)
        logger.debug("Global error handlers installed")

    def uninstall_global_handlers(self) -> None:
        if self._previous_excepthook is not None:
            sys.excepthook = self._previous_excepthook
            self._previous_excepthook = None
        if self._hooked_loop is not None:
            self._hooked_loop.set_exception_handler(self._previous_loop_handler)
            self._hooked_loop = None
            self._previous_loop_handler = None

    def _excepthook(self, exc_type, exc, tb) -> None:
        if issubclass(exc_type, Exception):
            self._handle_detached(exc, {"source": "excepthook"})
        previous = self._previous_excepthook or sys.__excepthook__
        previous(exc_type, exc, tb)

    def _loop_exception_handler(self, loop: asyncio.AbstractEventLoop, ctx: dict) -> None:
        exc = ctx.get("exception")
        self._handle_detached(
            exc if exc is not None else ctx.get("message", "Unhandled event loop error"),
            {"source": "event_loop", "message": ctx.get("message")},
        )
        if self._previous_loop_handler is not None:
            self._previous_loop_handler(loop, ctx)
        else:
            loop.default_exception_handler(ctx)

    def _handle_detached(self, error: Any, context: Any) -> None:
        if self.scheduler.has_running_loop():
            self.scheduler.spawn(self._handle_quietly(error, context), name="global-handler")
        else:
            asyncio.run(self._handle_quietly(error, context))

    async def _handle_quietly(self, error: Any, context: Any) -> None:
        try:
            await self.handle(error, context)
        except ErrorRecord as record:
            logger.critical(f"Fatal error reported by global handler: {record.message}")
