"""Advisory load rebalancing.

`RebalancingAdvisor.suggest` pairs overloaded counters with idle ones that
share a service type. Pairing is first-fit: each overloaded counter takes the
first remaining underutilized counter with a common service, and each
underutilized counter is used at most once. There is no optimality
guarantee. Suggestions are advice only; nothing here writes to the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

from .config import DEFAULT_CONFIG, SchedulerConfig
from .load import LoadMetric, LoadMetricCalculator
from .models import CounterStatus, ServiceType

if TYPE_CHECKING:
    from .store import InMemoryStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RebalanceSuggestion:
    from_counter: LoadMetric
    to_counter: LoadMetric
    common_services: tuple[ServiceType, ...]
    reason: str
    action: str = "redistribute_tickets"

    def to_message(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "from_counter": _counter_brief(self.from_counter),
            "to_counter": _counter_brief(self.to_counter),
            "common_services": [s.value for s in self.common_services],
            "reason": self.reason,
        }


def _counter_brief(m: LoadMetric) -> dict[str, Any]:
    return {
        "id": m.counter_id,
        "name": m.counter_name,
        "load_score": m.load_score,
        "queue_length": m.total_queue_length,
    }


class RebalancingAdvisor:
    def __init__(
        self,
        store: InMemoryStore,
        *,
        calculator: LoadMetricCalculator | None = None,
        config: SchedulerConfig = DEFAULT_CONFIG,
    ) -> None:
        self.store = store
        self.config = config
        self.calculator = calculator or LoadMetricCalculator(store, config=config)

    def _candidate_metrics(self) -> list[LoadMetric]:
        # Closed, unavailable and maintenance counters take no part in rebalancing.
        counters = [c for c in self.store.list_counters() if c.is_selectable]
        return self.calculator.calculate_all(counters)

    def suggest(self, load_threshold: int | None = None) -> list[RebalanceSuggestion]:
        threshold = self.config.overload_threshold if load_threshold is None else load_threshold
        metrics = self._candidate_metrics()

        overloaded = [m for m in metrics if m.load_score > threshold and m.total_queue_length > 1]
        underutilized = [
            m for m in metrics if m.load_score < self.config.underutilized_threshold and m.is_available
        ]

        suggestions: list[RebalanceSuggestion] = []
        for busy in overloaded:
            if not underutilized:
                break
            for idle in underutilized:
                common = tuple(sorted(busy.service_types & idle.service_types, key=lambda s: s.value))
                if not common:
                    continue
                underutilized.remove(idle)
                suggestions.append(
                    RebalanceSuggestion(
                        from_counter=busy,
                        to_counter=idle,
                        common_services=common,
                        reason=(
                            f"Move tickets from overloaded {busy.counter_name} (load: {busy.load_score}%) "
                            f"to {idle.counter_name} (load: {idle.load_score}%)"
                        ),
                    )
                )
                break

        if suggestions:
            logger.info("rebalancing: %d suggestion(s) at threshold %d", len(suggestions), threshold)
        return suggestions

    def optimization_insights(self, metrics: list[LoadMetric] | None = None) -> dict[str, Any]:
        """Per-service load analysis with bottlenecks and optimization hints."""
        if metrics is None:
            metrics = self.calculator.calculate_all(self.store.list_counters())

        by_service: dict[ServiceType, list[LoadMetric]] = {}
        for m in metrics:
            for svc in m.service_types:
                by_service.setdefault(svc, []).append(m)

        service_analysis: dict[str, dict[str, Any]] = {}
        bottlenecks: list[dict[str, Any]] = []
        for svc in sorted(by_service, key=lambda s: s.value):
            group = by_service[svc]
            avg_load = round(sum(m.load_score for m in group) / len(group))
            total_queue = sum(m.total_queue_length for m in group)
            service_analysis[svc.value] = {
                "counters": len(group),
                "avg_load": avg_load,
                "overloaded_counters": sum(1 for m in group if m.load_score > self.config.overload_threshold),
                "total_queue": total_queue,
            }
            if avg_load > self.config.overload_threshold and total_queue > 5:
                bottlenecks.append(
                    {
                        "service": svc.value,
                        "reason": "High load and queue length",
                        "severity": "critical" if avg_load > 85 else "warning",
                        "recommendation": "Consider adding more staff or counters",
                    }
                )

        overloaded = sum(1 for m in metrics if m.load_score > self.config.overload_threshold)
        avg_load = round(sum(m.load_score for m in metrics) / len(metrics)) if metrics else 0
        busy = sum(1 for m in metrics if m.status == CounterStatus.BUSY)

        optimizations: list[dict[str, Any]] = []
        if overloaded > 0:
            optimizations.append(
                {
                    "action": "redistribute_staff",
                    "priority": "high",
                    "details": f"{overloaded} counter(s) are overloaded. Consider reassigning staff.",
                }
            )
        if metrics and avg_load < self.config.underutilized_threshold:
            optimizations.append(
                {
                    "action": "consolidate_counters",
                    "priority": "low",
                    "details": "System is underutilized. Consider closing some counters.",
                }
            )

        return {
            "avg_load_score": avg_load,
            "utilization_rate": round(busy / len(metrics) * 100) if metrics else 0,
            "service_analysis": service_analysis,
            "bottlenecks": bottlenecks,
            "optimizations": optimizations,
            "recommendations": [s.to_message() for s in self.suggest()],
        }
