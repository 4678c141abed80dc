import threading
import time

import pytest

from counter_queue.monitor import LoadBroadcastMonitor, system_load_label
from counter_queue.notify import LOAD_UPDATED, SERVICE_LOAD_UPDATED, RecordingNotifier


def test_system_load_label_thresholds():
    assert system_load_label(0) == "low"
    assert system_load_label(40) == "low"
    assert system_load_label(41) == "moderate"
    assert system_load_label(70) == "moderate"
    assert system_load_label(71) == "high"


def test_tick_publishes_dashboard_and_service_loads(coordinator, store, clock):
    coordinator.register_counter("Desk 1", ["Finance"], counter_id="c1")
    coordinator.register_counter("Desk 2", ["Finance", "Library"], counter_id="c2")
    t1 = coordinator.create_ticket("Finance")
    coordinator.serve(t1.id, "c2")

    sink = RecordingNotifier()
    monitor = LoadBroadcastMonitor(store, notifier=sink, clock=clock)
    assert monitor.tick()

    dashboard = sink.payloads(LOAD_UPDATED)[0]
    assert dashboard["summary"] == {
        "total_counters": 2,
        "available_counters": 2,
        "busy_counters": 1,
        "overloaded_counters": 1,
        "total_queue_length": 1,
        "avg_load_score": 40,
        "system_load": "low",
    }
    assert [m["counter_id"] for m in dashboard["counter_metrics"]] == ["c1", "c2"]
    assert dashboard["most_loaded"]["counter_id"] == "c2"
    assert dashboard["least_loaded"]["counter_id"] == "c1"
    assert dashboard["recommendations"] == []

    services = {p["service_type"]: p for p in sink.payloads(SERVICE_LOAD_UPDATED)}
    assert set(services) == {"Finance", "Library"}
    assert [m["counter_id"] for m in services["Library"]["counters"]] == ["c2"]


def test_empty_dashboard(store):
    dashboard = LoadBroadcastMonitor(store, notifier=RecordingNotifier()).build_dashboard()
    assert dashboard["summary"]["total_counters"] == 0
    assert dashboard["summary"]["system_load"] == "low"
    assert dashboard["most_loaded"] is None


def test_failed_tick_does_not_stop_the_next_one(store):
    calls = []

    def flaky_refresh():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("store hiccup")

    sink = RecordingNotifier()
    monitor = LoadBroadcastMonitor(store, notifier=sink, refresh=flaky_refresh)

    assert monitor.tick() is False
    assert sink.payloads(LOAD_UPDATED) == []
    assert monitor.tick() is True
    assert len(sink.payloads(LOAD_UPDATED)) == 1


def test_background_loop_starts_and_stops(store):
    sink = RecordingNotifier()
    monitor = LoadBroadcastMonitor(store, notifier=sink, interval=0.01)
    monitor.start()
    try:
        deadline = time.time() + 2.0
        while len(sink.payloads(LOAD_UPDATED)) < 2 and time.time() < deadline:
            time.sleep(0.01)
    finally:
        monitor.stop()

    assert len(sink.payloads(LOAD_UPDATED)) >= 2
    assert not monitor.running


def test_interval_must_be_positive(store):
    with pytest.raises(ValueError):
        LoadBroadcastMonitor(store, notifier=RecordingNotifier(), interval=0)


def test_restart_while_previous_tick_is_still_running(store):
    entered = threading.Event()
    release = threading.Event()

    def slow_refresh():
        entered.set()
        release.wait(2.0)

    monitor = LoadBroadcastMonitor(store, notifier=RecordingNotifier(), interval=0.01, refresh=slow_refresh)
    monitor.start()
    assert entered.wait(2.0)
    first = monitor._thread

    monitor.stop(timeout=0.01)
    assert first.is_alive()
    assert not monitor.running

    monitor.start()
    second = monitor._thread
    assert second is not first
    assert monitor.running

    release.set()
    first.join(2.0)
    assert not first.is_alive()

    monitor.stop(timeout=2.0)
    assert not second.is_alive()
    assert not monitor.running
