"""Tests for in-memory statistics."""

import threading
from decimal import Decimal

from contract_event_tracker.filtering.statistics import (
    EventAggregator,
    calculate_statistics,
    hour_bucket,
)


def test_hour_bucket() -> None:
    # 2023-11-14 22:13:20 UTC
    assert hour_bucket(1_700_000_000) == "2023-11-14 22:00"


class TestEventAggregator:
    """Tests for the thread-safe aggregator."""

    def test_empty(self) -> None:
        stats = EventAggregator().stats()

        assert stats.total_events == 0
        assert stats.events_by_type == {}
        assert stats.total_amount == Decimal("0")
        assert stats.average_amount == Decimal("0")
        assert stats.min_amount is None
        assert stats.max_amount is None
        assert stats.time_range is None
        assert stats.unique_contracts == 0

    def test_stats(self, make_event) -> None:
        aggregator = EventAggregator()
        aggregator.add(make_event("FundsLocked", {"amount": 100}, timestamp=10, contract="C1"))
        aggregator.add(make_event("FundsLocked", {"amount": 300}, timestamp=30, contract="C2"))
        aggregator.add(
            make_event("OperationMetric", {"operation": "lock_funds", "success": True}, timestamp=20, contract="C1")
        )

        stats = aggregator.stats()

        assert stats.total_events == 3
        assert stats.events_by_type == {"FundsLocked": 2, "OperationMetric": 1}
        assert stats.total_amount == Decimal("400")
        # Averaged over every event, amount or not.
        assert stats.average_amount == Decimal("400") / 3
        assert stats.min_amount == Decimal("100")
        assert stats.max_amount == Decimal("300")
        assert stats.time_range == (10, 30)
        assert stats.unique_contracts == 2

    def test_clear(self, make_event) -> None:
        aggregator = EventAggregator([make_event(), make_event()])
        assert len(aggregator) == 2

        aggregator.clear()

        assert len(aggregator) == 0
        assert aggregator.stats().total_events == 0

    def test_events_returns_snapshot(self, make_event) -> None:
        aggregator = EventAggregator([make_event()])
        snapshot = aggregator.events()
        aggregator.add(make_event())

        assert len(snapshot) == 1

    def test_concurrent_adds(self, make_event) -> None:
        events = [make_event() for _ in range(400)]
        aggregator = EventAggregator()

        def worker(chunk: list) -> None:
            for event in chunk:
                aggregator.add(event)

        threads = [threading.Thread(target=worker, args=(events[i::4],)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert aggregator.stats().total_events == 400


class TestCalculateStatistics:
    """Tests for filtered-set statistics."""

    def test_breakdown(self, make_event) -> None:
        events = [
            make_event("FundsLocked", {"amount": 100}, timestamp=1_700_000_000, contract="C1"),
            make_event("FundsReleased", {"amount": 50}, timestamp=1_700_000_100, contract="C1"),
            make_event(
                "OperationMetric",
                {"operation": "lock_funds", "success": False},
                timestamp=1_700_003_700,
                contract="C2",
            ),
        ]

        stats = calculate_statistics(events)

        assert stats.total_matched == 3
        assert stats.matched_by_type == {"FundsLocked": 1, "FundsReleased": 1, "OperationMetric": 1}
        assert stats.amount.total == Decimal("150")
        assert stats.amount.count == 2
        assert stats.amount.average == Decimal("75")
        assert stats.amount.min == Decimal("50")
        assert stats.amount.max == Decimal("100")
        assert stats.time_distribution == {"2023-11-14 22:00": 2, "2023-11-14 23:00": 1}
        assert stats.contract_stats == {"C1": 2, "C2": 1}

    def test_time_distribution_is_sorted(self, make_event) -> None:
        events = [
            make_event(timestamp=1_700_007_200),
            make_event(timestamp=1_700_000_000),
        ]

        stats = calculate_statistics(events)

        assert list(stats.time_distribution) == ["2023-11-14 22:00", "2023-11-15 00:00"]

    def test_empty(self) -> None:
        stats = calculate_statistics([])

        assert stats.total_matched == 0
        assert stats.amount.count == 0
        assert stats.amount.min is None
