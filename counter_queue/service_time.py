from __future__ import annotations

# Service time helpers.
#
# A counter's performance figures are running aggregates. Each completed
# ticket contributes one sample:
#   service_time_seconds = completed_at - served_at   (rounded to whole seconds)
#
# Aggregates are updated incrementally from the previous values; history is
# never re-scanned.

import copy

from .models import PerformanceMetrics, ServiceType, ServiceTypeMetrics


def service_time_seconds(*, served_at: float | None, completed_at: float | None) -> float:
    """Compute how long a counter spent on a single ticket.

    Args:
        served_at: epoch seconds when serving started.
        completed_at: epoch seconds when the ticket was completed.

    Returns:
        Non-negative whole seconds. 0 when either timestamp is missing.
    """
    if served_at is None or completed_at is None:
        return 0.0
    if completed_at < served_at:
        raise ValueError("completed_at must be >= served_at")
    return float(round(completed_at - served_at))


def record_service_sample(
    metrics: PerformanceMetrics,
    *,
    seconds: float,
    service_type: ServiceType | None = None,
    now: float | None = None,
) -> PerformanceMetrics:
    """Return a new `PerformanceMetrics` with one more sample folded in."""
    if seconds < 0:
        raise ValueError("seconds must be >= 0")

    out = copy.deepcopy(metrics)
    out.total_tickets_served += 1
    out.total_service_time += seconds
    out.avg_service_time = round(out.total_service_time / out.total_tickets_served)

    if out.min_service_time is None or seconds < out.min_service_time:
        out.min_service_time = seconds
    if out.max_service_time is None or seconds > out.max_service_time:
        out.max_service_time = seconds

    if service_type is not None:
        per_type = out.per_service_type.setdefault(service_type.value, ServiceTypeMetrics())
        per_type.tickets_served += 1
        per_type.total_service_time += seconds
        per_type.avg_service_time = round(per_type.total_service_time / per_type.tickets_served)

    out.last_updated = now
    return out
