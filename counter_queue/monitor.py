from __future__ import annotations

# Periodic load broadcast.
#
# Every `interval` seconds the monitor:
# 1. runs the optional upkeep hook (score refresh, stuck counter release)
# 2. builds a dashboard snapshot from the current counter load
# 3. publishes `load.updated` with the snapshot and one
#    `load.service_updated` per service type that has counters
#
# A failing tick is logged and the next tick still runs. `tick()` does one
# round synchronously, so tests drive the monitor without a thread.

import logging
import threading
import time
from typing import Any, Callable, TYPE_CHECKING

from .config import DEFAULT_CONFIG, SchedulerConfig
from .load import LoadMetric, LoadMetricCalculator
from .models import CounterStatus, ServiceType, TicketStatus
from .notify import LOAD_UPDATED, SERVICE_LOAD_UPDATED
from .rebalancing import RebalancingAdvisor

if TYPE_CHECKING:
    from .store import InMemoryStore

logger = logging.getLogger(__name__)

HIGH_SYSTEM_LOAD = 70
MODERATE_SYSTEM_LOAD = 40


def system_load_label(avg_load: int) -> str:
    if avg_load > HIGH_SYSTEM_LOAD:
        return "high"
    if avg_load > MODERATE_SYSTEM_LOAD:
        return "moderate"
    return "low"


class LoadBroadcastMonitor:
    def __init__(
        self,
        store: InMemoryStore,
        *,
        notifier: Any,
        calculator: LoadMetricCalculator | None = None,
        advisor: RebalancingAdvisor | None = None,
        config: SchedulerConfig = DEFAULT_CONFIG,
        interval: float | None = None,
        clock: Callable[[], float] = time.time,
        refresh: Callable[[], Any] | None = None,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.config = config
        self.calculator = calculator or LoadMetricCalculator(store, config=config)
        self.advisor = advisor or RebalancingAdvisor(store, calculator=self.calculator, config=config)
        self.interval = config.monitor_interval if interval is None else interval
        if self.interval <= 0:
            raise ValueError("interval must be > 0")
        self.clock = clock
        self.refresh = refresh

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------- snapshot --------------------

    def build_dashboard(self) -> dict[str, Any]:
        """Summary of every counter's load plus rebalancing recommendations."""
        metrics = self.calculator.calculate_all(self.store.list_counters())
        metrics.sort(key=lambda m: (m.load_score, m.counter_name))

        avg_load = round(sum(m.load_score for m in metrics) / len(metrics)) if metrics else 0
        most = max(metrics, key=lambda m: m.load_score) if metrics else None
        least = metrics[0] if metrics else None

        return {
            "timestamp": self.clock(),
            "summary": {
                "total_counters": len(metrics),
                "available_counters": sum(1 for m in metrics if m.is_available),
                "busy_counters": sum(1 for m in metrics if m.status == CounterStatus.BUSY),
                "overloaded_counters": sum(1 for m in metrics if m.load_score > self.config.overload_threshold),
                "total_queue_length": sum(m.total_queue_length for m in metrics),
                "avg_load_score": avg_load,
                "system_load": system_load_label(avg_load),
            },
            "counter_metrics": [m.to_message() for m in metrics],
            "most_loaded": most.to_message() if most else None,
            "least_loaded": least.to_message() if least else None,
            "recommendations": [s.to_message() for s in self.advisor.suggest()],
        }

    def service_loads(self, metrics: list[LoadMetric] | None = None) -> dict[ServiceType, dict[str, Any]]:
        if metrics is None:
            metrics = self.calculator.calculate_all(self.store.list_counters())
        out: dict[ServiceType, dict[str, Any]] = {}
        for svc in sorted({s for m in metrics for s in m.service_types}, key=lambda s: s.value):
            group = sorted((m for m in metrics if svc in m.service_types), key=lambda m: (m.load_score, m.counter_name))
            out[svc] = {
                "service_type": svc.value,
                "waiting_tickets": self.store.count_tickets(service_type=svc, status=TicketStatus.WAITING),
                "counters": [m.to_message() for m in group],
                "timestamp": self.clock(),
            }
        return out

    # -------------------- one round --------------------

    def tick(self) -> bool:
        """Run one monitor round. Returns False if the round failed."""
        try:
            if self.refresh is not None:
                self.refresh()
            dashboard = self.build_dashboard()
            self.notifier.notify(LOAD_UPDATED, dashboard)
            for payload in self.service_loads().values():
                self.notifier.notify(SERVICE_LOAD_UPDATED, payload)
        except Exception:
            logger.exception("load monitor tick failed")
            return False
        logger.debug("load broadcast: system load %s", dashboard["summary"]["system_load"])
        return True

    # -------------------- background loop --------------------

    def start(self) -> None:
        if self.running:
            return
        # Each loop owns its stop event; a previous loop still finishing a
        # tick keeps seeing its own (set) event and exits on its own.
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(self._stop_event,), name="load-monitor", daemon=True
        )
        self._thread.start()
        logger.info("load monitor started (every %.1fs)", self.interval)

    def stop(self, timeout: float = 1.0) -> None:
        self._stop_event.set()
        t = self._thread
        if t is None:
            return
        if t.is_alive():
            t.join(timeout=timeout)
        if t.is_alive():
            logger.warning("load monitor did not stop within %.1fs; it exits after the current tick", timeout)
            return
        self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop_event.is_set()

    def _run(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            self.tick()
            stop_event.wait(self.interval)
