"""Tests for the ResilienceCore facade."""

import asyncio
import sys
from unittest.mock import Mock

import pytest

from resilience_core.config import ResilienceConfig
from resilience_core.core import ResilienceCore
from resilience_core.models.errors import ErrorKind, ErrorRecord, Severity
from resilience_core.recovery.registry import RecoveryResult, RecoveryStrategy
from resilience_core.rules import ErrorRule, HandlingStrategy
from resilience_core.utils.logging_factory import LoggingFactory


class AlwaysRecovers(RecoveryStrategy):
    id = "always"
    name = "Always"
    priority = 100

    def __init__(self):
        self.contexts = []

    def can_recover(self, record):
        return record.kind is ErrorKind.VALIDATION

    async def recover(self, record, context=None):
        self.contexts.append(context)
        return RecoveryResult(success=True)


class TestHandlePipeline:
    """Test normalize -> stats -> listeners -> cooldown -> rule."""

    @pytest.mark.asyncio
    async def test_notify_rule_queues_notification(self, core, output):
        result = await core.handle(PermissionError("Clipboard access denied"))

        assert result.success is False
        assert result.error.kind is ErrorKind.PERMISSION
        assert core.get_stats().total_errors == 1
        assert len(core.notifications.pending) == 1

        shown = core.tick()
        assert len(shown) == 1
        assert "[WARNING] Warning: Permission denied" in output.getvalue()

    @pytest.mark.asyncio
    async def test_no_matching_rule(self, core):
        result = await core.handle(ErrorRecord("Tweet container missing", ErrorKind.DOM))

        assert result.success is False
        assert core.notifications.pending == []

    @pytest.mark.asyncio
    async def test_context_is_attached(self, core):
        result = await core.handle("Failed to fetch", {"url": "/home"})
        assert result.error.context == {"url": "/home"}

    @pytest.mark.asyncio
    async def test_fatal_is_raised(self, core):
        with pytest.raises(ErrorRecord) as exc_info:
            await core.handle(ErrorRecord("corrupt state", severity=Severity.FATAL))

        assert exc_info.value.severity is Severity.FATAL
        assert core.scheduler.pending == 0
        assert len(core.notifications.pending) == 1

    @pytest.mark.asyncio
    async def test_fatal_network_error_is_raised(self, core):
        record = ErrorRecord("socket closed", ErrorKind.NETWORK, Severity.FATAL)

        with pytest.raises(ErrorRecord) as exc_info:
            await core.handle(record)

        assert exc_info.value is record
        assert core.scheduler.pending == 0
        assert len(core.notifications.pending) == 1

    @pytest.mark.asyncio
    async def test_repeated_fatal_is_raised_through_cooldown(self, core, clock):
        raised = 0
        for _ in range(4):
            with pytest.raises(ErrorRecord):
                await core.handle(ErrorRecord("heap corrupted", ErrorKind.MEMORY, Severity.FATAL))
            raised += 1
            clock.advance(1)

        status = core.get_cooldown_status(ErrorRecord("heap corrupted", ErrorKind.MEMORY, Severity.FATAL))
        assert raised == 4
        assert status.is_active
        assert core.get_stats().total_errors == 4
        assert len(core.notifications.pending) == 1
        assert core.notifications.pending[0].metadata["count"] == 4

    @pytest.mark.asyncio
    async def test_critical_error_gets_persistent_notification(self, core):
        await core.handle(ErrorRecord("Tweet container missing", ErrorKind.DOM, Severity.CRITICAL))
        await core.scheduler.drain()
        core.tick()

        critical = [n for n in core.widget.active if n.severity is Severity.CRITICAL]
        assert len(critical) == 1
        assert critical[0].kind is ErrorKind.DOM
        assert critical[0].persistent

    @pytest.mark.asyncio
    async def test_critical_with_notify_rule_is_queued_once(self, core):
        await core.handle(MemoryError())
        await core.scheduler.drain()

        assert len(core.notifications.pending) == 1
        assert core.notifications.pending[0].metadata["count"] == 1

    @pytest.mark.asyncio
    async def test_custom_rule(self, core):
        core.add_rule(ErrorRule(HandlingStrategy.IGNORE, kind=ErrorKind.DOM))

        result = await core.handle(ErrorRecord("x", ErrorKind.DOM))

        assert result.success is True


class TestListeners:
    @pytest.mark.asyncio
    async def test_listeners_see_every_record(self, core):
        seen = []
        core.add_listener(seen.append)

        for _ in range(4):
            await core.handle(ErrorRecord("Failed to fetch", ErrorKind.NETWORK))

        assert len(seen) == 4

        core.remove_listener(seen.append)
        await core.handle(ErrorRecord("Failed to fetch", ErrorKind.NETWORK))
        assert len(seen) == 4

    @pytest.mark.asyncio
    async def test_failing_listener_is_contained(self, core):
        core.add_listener(Mock(side_effect=RuntimeError("listener crashed")))
        seen = []
        core.add_listener(seen.append)

        await core.handle(ErrorRecord("x"))

        assert len(seen) == 1


class TestSuppression:
    @pytest.mark.asyncio
    async def test_suppressed_records_are_counted_but_not_recovered(self, core, clock, probe):
        results = []
        for _ in range(3):
            results.append(await core.handle(ErrorRecord("Failed to fetch", ErrorKind.NETWORK)))
            clock.advance(5)
        await core.scheduler.drain()

        assert core.get_stats().total_errors == 3
        assert probe.calls == 2
        assert results[2].success is False
        status = core.get_cooldown_status(results[2].error)
        assert status.is_active
        assert status.escalation_level == 1


class TestRecoveryScheduling:
    """Test background recovery after handle()."""

    @pytest.mark.asyncio
    async def test_network_recovery_runs_in_background(self, core, sleep, output):
        await core.handle(ErrorRecord("Failed to fetch", ErrorKind.NETWORK))
        assert core.scheduler.pending == 1

        await core.scheduler.drain()

        assert sleep.calls == [1.0, 2.0]
        assert core.widget.active[-1].message == "Recovered from a network error (Network Retry)"
        assert "Recovered from a network error" in output.getvalue()

    @pytest.mark.asyncio
    async def test_critical_recovers_immediately(self, core, sleep):
        await core.handle(MemoryError())
        await core.scheduler.drain()

        assert 1.0 not in sleep.calls
        assert core.widget.active[-1].message == "Recovered from a memory error (Memory Cleanup)"

    @pytest.mark.asyncio
    async def test_unrecoverable_record_is_not_scheduled(self, core):
        await core.handle(ErrorRecord("x", ErrorKind.NETWORK, recoverable=False))
        assert core.scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_handle_context_reaches_strategy(self, core):
        strategy = AlwaysRecovers()
        core.register_recovery_strategy(strategy)

        await core.handle(ErrorRecord("bad input", ErrorKind.VALIDATION), {"field": "url"})
        await core.scheduler.drain()

        assert strategy.contexts == [{"field": "url"}]

    @pytest.mark.asyncio
    async def test_dom_recovery_uses_selector_context(self, core, dom):
        dom.elements['article[class*="tweet"]'] = ["node"]

        await core.handle(
            ErrorRecord("Tweet element not found", ErrorKind.DOM),
            {"selector": 'article[data-testid="tweet"]'},
        )
        await core.scheduler.drain()

        assert 'article[class*="tweet"]' in dom.queries
        assert core.widget.active[-1].message == "Recovered from a dom error (DOM Element Refind)"

    @pytest.mark.asyncio
    async def test_manual_attempt_recovery(self, core, probe):
        probe.online = False

        result = await core.attempt_recovery(ErrorRecord("Failed to fetch", ErrorKind.NETWORK))

        assert result.success is False
        assert result.message == "error.network_offline"


class TestFallbackIntegration:
    @pytest.mark.asyncio
    async def test_decorator_uses_core_sleep_and_fallbacks(self, core, sleep, clipboard):
        @core.fallback(retries=1, retry_delay=0.25)
        async def copy_tweet(text):
            raise RuntimeError("Clipboard write blocked")

        result = await copy_tweet("hello")

        assert result == {"success": True, "method": "legacy"}
        assert sleep.calls == [0.25]
        assert clipboard.writes == ["hello"]

    @pytest.mark.asyncio
    async def test_with_fallback_value(self, core):
        async def load():
            raise ValueError("broken")

        wrapped = core.with_fallback(load, retries=0, fallback_value=[])
        assert await wrapped() == []


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_init_starts_periodic_tasks(self, core):
        core.init(configure_logging=False)

        assert [t.name for t in core.scheduler._periodic] == ["notification-flush", "state-sweep"]
        assert all(t.running for t in core.scheduler._periodic)
        assert core.init(configure_logging=False) is core
        assert len(core.scheduler._periodic) == 2

        await core.dispose()
        assert core.scheduler._periodic == []

    def test_init_without_loop(self, core):
        core.init(configure_logging=False)
        assert core.scheduler._periodic == []

    @pytest.mark.asyncio
    async def test_dispose_drops_state(self, core, clock):
        for _ in range(3):
            await core.handle(ErrorRecord("Failed to fetch", ErrorKind.NETWORK))
        await core.handle(PermissionError("denied"))
        core.tick()

        await core.dispose()

        assert len(core.cooldowns) == 0
        assert core.widget.active == []
        assert core.notifications.get_stats() == {"queued_notifications": 0, "throttled_keys": 0}
        assert core.scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_async_context_manager(self, config, clock, sleep, console, probe):
        async with ResilienceCore(config, clock=clock, sleep=sleep, console=console, probe=probe) as core:
            assert len(core.scheduler._periodic) == 2
            periodic = list(core.scheduler._periodic)

        assert not any(t.running for t in periodic)
        LoggingFactory.reset()

    @pytest.mark.asyncio
    async def test_sweep_prunes_idle_state(self, core, clock, probe):
        probe.online = False
        await core.handle(ErrorRecord("Failed to fetch", ErrorKind.NETWORK))
        await core.scheduler.drain()
        assert core.recovery.get_recovery_stats()["total_attempts"] == 1
        clock.advance(601)

        core.sweep()

        assert len(core.cooldowns) == 0
        assert core.recovery.get_recovery_stats()["total_attempts"] == 0

    def test_disabled_notifications(self, clock, console):
        core = ResilienceCore(ResilienceConfig(notifications_enabled=False), clock=clock, console=console)
        assert core.queue_notification(ErrorRecord("x")) is False


class TestIntrospection:
    @pytest.mark.asyncio
    async def test_system_stats(self, core):
        await core.handle(ErrorRecord("Failed to fetch", ErrorKind.NETWORK))

        stats = core.get_system_stats()

        assert set(stats) == {"errors", "cooldowns", "notifications", "recovery"}
        assert stats["errors"]["total_errors"] == 1
        assert stats["cooldowns"]["total_cooldowns"] == 1
        assert stats["recovery"]["strategies"][0]["id"] == "network-retry"

    @pytest.mark.asyncio
    async def test_clear_stats(self, core):
        await core.handle(ErrorRecord("x"))
        core.clear_stats()
        assert core.get_stats().total_errors == 0


class TestGlobalHandlers:
    """Test routing of uncaught exceptions into handle()."""

    @pytest.mark.asyncio
    async def test_excepthook(self, core, monkeypatch):
        previous = Mock()
        monkeypatch.setattr(sys, "excepthook", previous)
        core.install_global_handlers()
        assert sys.excepthook == core._excepthook

        error = ValueError("uncaught")
        sys.excepthook(ValueError, error, None)
        await core.scheduler.drain()

        assert core.get_stats().total_errors == 1
        assert core.get_stats().last_error.context == {"source": "excepthook"}
        previous.assert_called_once_with(ValueError, error, None)

        core.uninstall_global_handlers()
        assert sys.excepthook is previous

    @pytest.mark.asyncio
    async def test_keyboard_interrupt_is_not_handled(self, core, monkeypatch):
        monkeypatch.setattr(sys, "excepthook", Mock())
        core.install_global_handlers()

        sys.excepthook(KeyboardInterrupt, KeyboardInterrupt(), None)
        await core.scheduler.drain()

        assert core.get_stats().total_errors == 0
        core.uninstall_global_handlers()

    @pytest.mark.asyncio
    async def test_loop_exception_handler(self, core):
        loop = asyncio.get_running_loop()
        previous = Mock()
        loop.set_exception_handler(previous)
        core.install_global_handlers()

        context = {"message": "Task exception was never retrieved", "exception": RuntimeError("lost task")}
        loop.call_exception_handler(context)
        await core.scheduler.drain()

        record = core.get_stats().last_error
        assert record.message == "lost task"
        assert record.context["source"] == "event_loop"
        previous.assert_called_once_with(loop, context)

        core.uninstall_global_handlers()
        assert loop.get_exception_handler() is previous
        loop.set_exception_handler(None)

    def test_excepthook_without_loop(self, core, monkeypatch):
        monkeypatch.setattr(sys, "excepthook", Mock())
        core.install_global_handlers()

        sys.excepthook(RuntimeError, RuntimeError("at exit"), None)

        assert core.get_stats().total_errors == 1
        core.uninstall_global_handlers()

    def test_fatal_from_global_handler_is_logged(self, core, monkeypatch, caplog):
        monkeypatch.setattr(sys, "excepthook", Mock())
        core.install_global_handlers()
        fatal = ErrorRecord("corrupt state", severity=Severity.FATAL)

        sys.excepthook(ErrorRecord, fatal, None)

        assert "Fatal error reported by global handler: corrupt state" in caplog.text
        core.uninstall_global_handlers()
