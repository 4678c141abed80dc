from __future__ import annotations

# Counter load measurement.
#
# The load score is a synthetic 0-100 congestion figure used to rank counters:
# - closed, or availability unavailable/maintenance/on_break -> 100 (never picked)
# - busy -> min(80 + waiting * 5, 99)
# - open -> min(queue_len * 10, 80)
#
# `compute_load_metric` is pure. `LoadMetricCalculator` adds the one store
# query it needs (how many waiting tickets are queued at the counter).

from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

from .config import DEFAULT_CONFIG, SchedulerConfig
from .errors import ValidationError
from .models import (
    AvailabilityStatus,
    BLOCKED_AVAILABILITY,
    Counter,
    CounterStatus,
    ServiceType,
    TicketStatus,
)

if TYPE_CHECKING:
    from .store import InMemoryStore

_NOT_WORKING = BLOCKED_AVAILABILITY | {AvailabilityStatus.ON_BREAK}


@dataclass(frozen=True)
class LoadMetric:
    counter_id: str
    counter_name: str
    status: CounterStatus
    availability_status: AvailabilityStatus
    service_types: frozenset[ServiceType]
    assigned_staff: str | None
    waiting_count: int
    serving_count: int
    total_queue_length: int
    load_score: int
    estimated_wait_minutes: int
    is_available: bool

    def to_message(self) -> dict[str, Any]:
        return {
            "counter_id": self.counter_id,
            "counter_name": self.counter_name,
            "status": self.status.value,
            "availability_status": self.availability_status.value,
            "service_types": sorted(s.value for s in self.service_types),
            "assigned_staff": self.assigned_staff,
            "waiting_count": self.waiting_count,
            "serving_count": self.serving_count,
            "total_queue_length": self.total_queue_length,
            "load_score": self.load_score,
            "estimated_wait_minutes": self.estimated_wait_minutes,
            "is_available": self.is_available,
        }


def estimate_wait_minutes(queue_length: int, *, config: SchedulerConfig = DEFAULT_CONFIG) -> int:
    """Minutes until a newcomer is served, assuming a fixed time per head ahead."""
    return max(0, (queue_length - 1) * config.minutes_per_head)


def compute_load_score(
    counter: Counter,
    *,
    waiting_count: int,
    total_queue_length: int,
    config: SchedulerConfig = DEFAULT_CONFIG,
) -> int:
    if counter.status == CounterStatus.CLOSED or counter.availability_status in _NOT_WORKING:
        score = config.unusable_load
    elif counter.status == CounterStatus.BUSY:
        score = min(config.busy_load_base + waiting_count * config.busy_load_per_waiting, config.busy_load_cap)
    else:
        score = min(total_queue_length * config.open_load_per_head, config.open_load_cap)
    return max(0, min(int(score), config.unusable_load))


def compute_load_metric(
    counter: Counter,
    waiting_count: int | None = 0,
    *,
    config: SchedulerConfig = DEFAULT_CONFIG,
) -> LoadMetric:
    """Build the LoadMetric for one counter. Pure; None waiting_count means 0."""
    waiting = int(waiting_count or 0)
    if waiting < 0:
        raise ValidationError("waiting_count must be >= 0")

    serving = 1 if counter.current_ticket else 0
    total = waiting + serving

    return LoadMetric(
        counter_id=counter.id,
        counter_name=counter.name,
        status=counter.status,
        availability_status=counter.availability_status,
        service_types=counter.service_types,
        assigned_staff=counter.assigned_staff,
        waiting_count=waiting,
        serving_count=serving,
        total_queue_length=total,
        load_score=compute_load_score(counter, waiting_count=waiting, total_queue_length=total, config=config),
        estimated_wait_minutes=estimate_wait_minutes(total, config=config),
        is_available=counter.is_selectable,
    )


class LoadMetricCalculator:
    """Computes LoadMetric values using the store for waiting counts."""

    def __init__(self, store: InMemoryStore, *, config: SchedulerConfig = DEFAULT_CONFIG) -> None:
        self.store = store
        self.config = config

    def waiting_count(self, counter_id: str) -> int:
        return self.store.count_tickets(counter_id=counter_id, status=TicketStatus.WAITING)

    def calculate(self, counter: Counter) -> LoadMetric:
        return compute_load_metric(counter, self.waiting_count(counter.id), config=self.config)

    def calculate_all(self, counters: list[Counter]) -> list[LoadMetric]:
        return [self.calculate(c) for c in counters]
