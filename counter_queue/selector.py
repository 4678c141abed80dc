from __future__ import annotations

# Best-counter selection.
#
# Policy (greedy, re-evaluated from scratch on every call, nothing reserved):
# 1. keep counters that serve the service type, are not closed and are not
#    unavailable / under maintenance
# 2. rank them by load score (ties: counter name, for a stable order)
# 3. high / urgent / vip tickets take the least loaded counter, even a busy one
# 4. normal tickets take the least loaded counter below the selection
#    threshold (50); if none qualifies, the least loaded counter overall
#
# The ranking is advisory. By the time the caller acts on it another request
# may have taken the counter; the coordinator's guarded writes settle that.

import logging
from typing import Iterable, TYPE_CHECKING

from .config import DEFAULT_CONFIG, SchedulerConfig
from .errors import NoAvailableCounter
from .load import LoadMetric, LoadMetricCalculator
from .models import PriorityTier, ServiceType, parse_priority_tier, parse_service_type

if TYPE_CHECKING:
    from .store import InMemoryStore

logger = logging.getLogger(__name__)

PRIORITY_FIRST_TIERS = frozenset({PriorityTier.HIGH, PriorityTier.URGENT, PriorityTier.VIP})


class CounterSelector:
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

    def counters_by_load(
        self,
        service_type: ServiceType | str | None = None,
        *,
        exclude: Iterable[str] = (),
    ) -> list[LoadMetric]:
        """Selectable counters (optionally for one service type), least loaded first."""
        svc = parse_service_type(service_type) if service_type is not None else None
        skip = set(exclude)

        candidates = [
            c
            for c in self.store.list_counters()
            if c.is_selectable and c.id not in skip and (svc is None or c.serves(svc))
        ]
        metrics = self.calculator.calculate_all(candidates)
        metrics.sort(key=lambda m: (m.load_score, m.counter_name))
        return metrics

    def find_best_counter(
        self,
        service_type: ServiceType | str,
        priority_tier: PriorityTier | str = PriorityTier.NORMAL,
        *,
        exclude: Iterable[str] = (),
    ) -> LoadMetric:
        """Pick the counter a ticket of this service type and tier should go to.

        `exclude` drops counters the caller already lost a race on.

        Raises:
            NoAvailableCounter: no counter is eligible.
        """
        svc = parse_service_type(service_type)
        tier = parse_priority_tier(priority_tier)

        ranked = self.counters_by_load(svc, exclude=exclude)
        if not ranked:
            logger.info("no available counter for %s", svc.value)
            raise NoAvailableCounter(f"no available counter for service type {svc.value}")

        if tier in PRIORITY_FIRST_TIERS:
            return ranked[0]

        for metric in ranked:
            if metric.load_score < self.config.selection_load_threshold and metric.is_available:
                return metric

        # Everyone is loaded: the least bad counter still beats rejecting the ticket.
        return ranked[0]
