"""End-to-end tests driving a ResilienceCore through realistic failure bursts."""

import asyncio
import io
import json

import pytest

from resilience_core.config import ResilienceConfig
from resilience_core.core import ResilienceCore
from resilience_core.models.errors import ErrorKind, ErrorRecord, Severity
from resilience_core.ui.console import ConsoleManager


@pytest.fixture
def json_stream():
    return io.StringIO()


@pytest.fixture
def json_core(clock, sleep, probe, dom, clipboard, url_opener, json_stream):
    config = ResilienceConfig(flush_interval=0.01, sweep_interval=0.01, output_format="json")
    return ResilienceCore(
        config,
        clock=clock,
        sleep=sleep,
        console=ConsoleManager(json_output=True, stream=json_stream),
        probe=probe,
        dom=dom,
        clipboard=clipboard,
        url_opener=url_opener,
    )


def notifications(stream):
    lines = [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]
    return [line for line in lines if line["type"] == "notification"]


class TestNotificationBursts:
    """Test that bursts collapse into batched notifications."""

    @pytest.mark.asyncio
    async def test_permission_burst_is_batched_and_suppressed(self, json_core, json_stream, clock):
        json_core.init(configure_logging=False)
        try:
            results = []
            for _ in range(6):
                results.append(await json_core.handle(PermissionError("Clipboard access denied")))
                clock.advance(1)

            await asyncio.sleep(0.05)
        finally:
            await json_core.dispose()

        shown = notifications(json_stream)
        batched = [n for n in shown if n["kind"] == "permission"]
        assert len(batched) == 1
        assert batched[0]["message"].startswith("4 occurrences:")
        assert batched[0]["title"] == "Warning"
        assert json_core.get_stats().total_errors == 6

    def test_clipboard_warnings_respect_throttle(self, json_core, json_stream, clock):
        for _ in range(2):
            json_core.queue_notification(ErrorRecord("Clipboard write failed", ErrorKind.CLIPBOARD, Severity.WARNING))
            clock.advance(5)
        json_core.tick()

        assert json_core.queue_notification(
            ErrorRecord("Clipboard write failed", ErrorKind.CLIPBOARD, Severity.WARNING)
        ) is False
        json_core.tick()

        clock.advance(15)
        assert json_core.queue_notification(
            ErrorRecord("Clipboard write failed", ErrorKind.CLIPBOARD, Severity.WARNING)
        ) is True
        json_core.tick()

        messages = [n["message"] for n in notifications(json_stream)]
        assert len(messages) == 2
        assert messages[0].startswith("2 occurrences:")


class TestRecoveryFlow:
    @pytest.mark.asyncio
    async def test_network_outage_then_recovery(self, json_core, json_stream, probe, clock):
        probe.online = False
        record = ErrorRecord("Failed to fetch timeline", ErrorKind.NETWORK)

        await json_core.handle(record)
        await json_core.scheduler.drain()
        assert notifications(json_stream) == []

        probe.online = True
        clock.advance(400)
        await json_core.handle(ErrorRecord("Failed to fetch timeline", ErrorKind.NETWORK))
        await json_core.scheduler.drain()

        shown = notifications(json_stream)
        assert len(shown) == 1
        assert shown[0]["message"] == "Recovered from a network error (Network Retry)"
        assert json_core.recovery.get_recovery_stats()["total_attempts"] == 0

    @pytest.mark.asyncio
    async def test_retry_action_feeds_back_into_handle(self, json_core, json_stream):
        retried = []

        async def on_retry(record):
            retried.append(await json_core.handle(record))

        json_core.widget.on("error-retry", lambda record: json_core.scheduler.spawn(on_retry(record)))
        json_core.queue_notification(ErrorRecord("Tweet parse failed", ErrorKind.PARSING))
        (notification_id,) = json_core.tick()

        assert await json_core.widget.invoke_action(notification_id, "retry") is True
        await json_core.scheduler.drain()

        assert len(retried) == 1
        assert json_core.get_stats().errors_by_type["parsing"] == 1

    @pytest.mark.asyncio
    async def test_protected_operation_reports_final_failure(self, json_core, sleep):
        @json_core.fallback(retries=2, retry_delay=0.5)
        async def load_timeline():
            raise ConnectionError("Failed to fetch timeline")

        with pytest.raises(ErrorRecord) as exc_info:
            await load_timeline()

        result = await json_core.handle(exc_info.value)
        await json_core.scheduler.drain()

        assert sleep.calls[:2] == [0.5, 1.0]
        assert result.error is exc_info.value
        assert result.error.context == {"operation": "load_timeline"}
        assert json_core.get_stats().errors_by_type["network"] == 1
