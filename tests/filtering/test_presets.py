"""Tests for ready-made filters."""

from datetime import UTC, datetime

from contract_event_tracker.filtering import presets


class TestPresets:
    """Tests for the preset filters."""

    def test_large_transactions(self, make_event) -> None:
        f = presets.large_transactions(1000)

        assert f.matches(make_event("FundsLocked", {"amount": 1000}))
        assert f.matches(make_event("ProgramFundsReleased", {"amount": 5000}))
        assert not f.matches(make_event("FundsLocked", {"amount": 999}))
        assert not f.matches(make_event("FundsRefunded", {"amount": 5000}))

    def test_recent_events(self, make_event) -> None:
        now = datetime(2026, 1, 1, 12, tzinfo=UTC)
        f = presets.recent_events(2, now=now)
        now_ts = int(now.timestamp())

        assert f.matches(make_event(timestamp=now_ts - 3600))
        assert not f.matches(make_event(timestamp=now_ts - 3 * 3600))

    def test_failed_operations(self, make_event) -> None:
        f = presets.failed_operations()

        assert f.matches(make_event("OperationMetric", {"operation": "lock_funds", "success": False}))
        assert not f.matches(make_event("OperationMetric", {"operation": "lock_funds", "success": True}))

    def test_performance_issues(self, make_event) -> None:
        f = presets.performance_issues(1000)

        assert f.matches(make_event("PerformanceMetric", {"operation": "lock_funds", "duration_ms": 1001}))
        assert not f.matches(make_event("PerformanceMetric", {"operation": "lock_funds", "duration_ms": 1000}))
