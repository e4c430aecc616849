"""Tests for the EventMonitor."""

import threading
from unittest.mock import MagicMock

from contract_event_tracker.detector.anomaly import AnomalyDetector
from contract_event_tracker.detector.models import AlertKind
from contract_event_tracker.monitor import EventMonitor


def _failed_operation(make_event):
    return make_event("OperationMetric", {"operation": "release_funds", "success": False})


class TestEventMonitor:
    """Tests for listener dispatch and alert routing."""

    def test_listeners_receive_matching_type_in_order(self, make_event) -> None:
        monitor = EventMonitor()
        calls: list[tuple[str, str]] = []
        monitor.on("FundsLocked", lambda e: calls.append(("first", e.id)))
        monitor.on("FundsLocked", lambda e: calls.append(("second", e.id)))
        monitor.on("FundsReleased", lambda e: calls.append(("other", e.id)))

        event = make_event("FundsLocked")
        monitor.emit(event)

        assert calls == [("first", event.id), ("second", event.id)]

    def test_unregistered_type_is_fine(self, make_event) -> None:
        monitor = EventMonitor()

        assert monitor.emit(make_event("FundsRefunded", {"amount": 1})) == []
        assert monitor.stats.events_emitted == 1

    def test_failing_listener_is_isolated(self, make_event) -> None:
        monitor = EventMonitor()
        survivor = MagicMock()
        monitor.on("FundsLocked", MagicMock(side_effect=RuntimeError("boom")))
        monitor.on("FundsLocked", survivor)

        event = make_event("FundsLocked")
        monitor.emit(event)

        survivor.assert_called_once_with(event)
        assert monitor.stats.listener_errors == 1

    def test_alerts_are_routed_to_every_handler(self, make_event) -> None:
        monitor = EventMonitor()
        first, second = MagicMock(), MagicMock()
        monitor.on_alert(first)
        monitor.on_alert(second)

        alerts = monitor.emit(_failed_operation(make_event))

        assert len(alerts) == 1
        assert alerts[0].kind is AlertKind.OPERATION_FAILURE
        first.assert_called_once_with(alerts[0])
        second.assert_called_once_with(alerts[0])
        assert monitor.stats.alerts_raised == 1

    def test_failing_alert_handler_is_isolated(self, make_event) -> None:
        monitor = EventMonitor()
        survivor = MagicMock()
        monitor.on_alert(MagicMock(side_effect=ValueError("bad handler")))
        monitor.on_alert(survivor)

        alerts = monitor.emit(_failed_operation(make_event))

        assert len(alerts) == 1
        survivor.assert_called_once()
        assert monitor.stats.handler_errors == 1

    def test_failing_listener_does_not_block_detection(self, make_event) -> None:
        monitor = EventMonitor()
        monitor.on("OperationMetric", MagicMock(side_effect=RuntimeError("boom")))

        alerts = monitor.emit(_failed_operation(make_event))

        assert len(alerts) == 1

    def test_detector_sees_every_emitted_event(self, make_event) -> None:
        detector = AnomalyDetector()
        monitor = EventMonitor(detector)

        for _ in range(3):
            monitor.emit(make_event("FundsLocked"))

        assert monitor.detector is detector
        assert len(detector.history("FundsLocked")) == 3

    def test_listener_registered_during_dispatch_sees_next_event(self, make_event) -> None:
        monitor = EventMonitor()
        late = MagicMock()

        def register_late(_event) -> None:
            monitor.on("FundsLocked", late)

        monitor.on("FundsLocked", register_late)
        monitor.emit(make_event("FundsLocked"))
        late.assert_not_called()

        second = make_event("FundsLocked")
        monitor.emit(second)
        late.assert_called_once_with(second)

    def test_stats_is_a_copy(self, make_event) -> None:
        monitor = EventMonitor()
        snapshot = monitor.stats
        monitor.emit(make_event())

        assert snapshot.events_emitted == 0
        assert monitor.stats.events_emitted == 1

    def test_concurrent_emit_and_register(self, make_event) -> None:
        monitor = EventMonitor()
        received: list[str] = []
        lock = threading.Lock()

        def listener(event) -> None:
            with lock:
                received.append(event.id)

        monitor.on("FundsLocked", listener)
        events = [make_event("FundsLocked") for _ in range(100)]

        def emitter(chunk: list) -> None:
            for event in chunk:
                monitor.emit(event)

        def registrar() -> None:
            for _ in range(50):
                monitor.on("FundsReleased", lambda e: None)

        threads = [threading.Thread(target=emitter, args=(events[i::2],)) for i in range(2)]
        threads.append(threading.Thread(target=registrar))
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(received) == sorted(e.id for e in events)
        assert monitor.stats.events_emitted == 100
