"""Tests for running error statistics."""

from resilience_core.models.errors import ErrorKind, ErrorRecord, Severity
from resilience_core.stats import ErrorStats


class TestErrorStats:
    def test_initial_counters_cover_every_kind_and_level(self, clock):
        snapshot = ErrorStats(clock=clock).snapshot()

        assert snapshot.total_errors == 0
        assert set(snapshot.errors_by_type) == {k.value for k in ErrorKind}
        assert set(snapshot.errors_by_level) == {s.value for s in Severity}
        assert all(v == 0 for v in snapshot.errors_by_type.values())
        assert snapshot.last_error is None

    def test_record_counts(self, clock):
        stats = ErrorStats(clock=clock)
        stats.record(ErrorRecord("a", ErrorKind.NETWORK))
        stats.record(ErrorRecord("b", ErrorKind.NETWORK, Severity.WARNING))
        last = ErrorRecord("c", ErrorKind.DOM)
        stats.record(last)

        snapshot = stats.snapshot()
        assert snapshot.total_errors == 3
        assert snapshot.errors_by_type["network"] == 2
        assert snapshot.errors_by_level["error"] == 2
        assert snapshot.errors_by_level["warning"] == 1
        assert snapshot.last_error is last
        assert sum(snapshot.errors_by_type.values()) == snapshot.total_errors

    def test_recent_errors_newest_first_and_bounded(self, clock):
        stats = ErrorStats(recent_limit=3, clock=clock)
        records = [ErrorRecord(str(i)) for i in range(5)]
        for record in records:
            stats.record(record)

        recent = stats.snapshot().recent_errors
        assert [r.message for r in recent] == ["4", "3", "2"]

    def test_error_rate_per_hour(self, clock):
        stats = ErrorStats(clock=clock)
        for _ in range(6):
            stats.record(ErrorRecord("x"))
        clock.advance(1800)

        assert stats.snapshot().error_rate == 12.0

    def test_snapshot_is_a_copy(self, clock):
        stats = ErrorStats(clock=clock)
        snapshot = stats.snapshot()
        stats.record(ErrorRecord("x", ErrorKind.DOM))

        assert snapshot.errors_by_type["dom"] == 0

    def test_clear_restarts_the_window(self, clock):
        stats = ErrorStats(clock=clock)
        stats.record(ErrorRecord("x"))
        clock.advance(60)
        stats.clear()

        snapshot = stats.snapshot()
        assert snapshot.total_errors == 0
        assert snapshot.recent_errors == []
        assert snapshot.start_time == clock()

    def test_to_dict(self, clock):
        stats = ErrorStats(clock=clock)
        stats.record(ErrorRecord("x", ErrorKind.MEMORY, Severity.CRITICAL, timestamp=clock()))
        clock.advance(3600)

        data = stats.snapshot().to_dict()
        assert data["total_errors"] == 1
        assert data["error_rate"] == 1.0
        assert data["last_error"]["type"] == "memory"
        assert len(data["recent_errors"]) == 1
