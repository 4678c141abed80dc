from __future__ import annotations

# Ticket and counter records.
#
# These are plain dataclasses. The record store hands out copies, so mutating
# a record returned by the store never changes shared state; all writes go
# through the store's guarded update methods (see store.py).

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import ValidationError


class ServiceType(str, Enum):
    ADMISSIONS = "Admissions"
    FINANCE = "Finance"
    EXAMINATIONS = "Examinations"
    LIBRARY = "Library"
    ACCOMMODATION = "Accommodation"
    STUDENT_RECORDS = "Student Records"
    ICT_SUPPORT = "ICT Support"
    COUNSELLING = "Counselling"
    GENERAL_ENQUIRIES = "General Enquiries"


class TicketStatus(str, Enum):
    WAITING = "waiting"
    SERVING = "serving"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset({TicketStatus.COMPLETED, TicketStatus.CANCELLED})


class PriorityTier(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"
    VIP = "vip"


class CounterStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    BUSY = "busy"


class AvailabilityStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    MAINTENANCE = "maintenance"
    ON_BREAK = "on_break"


# Never selectable, whatever the operational status says.
BLOCKED_AVAILABILITY = frozenset({AvailabilityStatus.UNAVAILABLE, AvailabilityStatus.MAINTENANCE})


def parse_service_type(value: Any) -> ServiceType:
    if isinstance(value, ServiceType):
        return value
    if not value:
        raise ValidationError("service_type required")
    try:
        return ServiceType(str(value))
    except ValueError:
        raise ValidationError(f"unknown service_type: {value!r}") from None


def parse_priority_tier(value: Any) -> PriorityTier:
    if isinstance(value, PriorityTier):
        return value
    try:
        return PriorityTier(str(value))
    except ValueError:
        raise ValidationError(f"unknown priority tier: {value!r}") from None


@dataclass(frozen=True)
class Submitter:
    """Attributes of the person who took the ticket (used for scoring)."""

    student_year: str | None = None  # e.g. "Final Year", "Postgraduate"
    has_accessibility_needs: bool = False
    is_vip: bool = False

    def to_message(self) -> dict[str, Any]:
        return {
            "student_year": self.student_year,
            "has_accessibility_needs": self.has_accessibility_needs,
            "is_vip": self.is_vip,
        }


@dataclass(frozen=True)
class TransferRecord:
    from_counter: str
    to_counter: str
    when: float
    reason: str


@dataclass
class Ticket:
    id: str
    ticket_number: int
    service_type: ServiceType
    status: TicketStatus = TicketStatus.WAITING
    priority_tier: PriorityTier = PriorityTier.NORMAL
    priority_score: int = 0
    counter_id: str | None = None
    # Counter that last held the ticket; kept after completion for reporting.
    served_by: str | None = None
    submitter_id: str | None = None
    submitter: Submitter | None = None
    created_at: float = field(default_factory=time.time)
    served_at: float | None = None
    completed_at: float | None = None
    cancelled_at: float | None = None
    transfer_history: list[TransferRecord] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_message(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ticket_number": self.ticket_number,
            "service_type": self.service_type.value,
            "status": self.status.value,
            "priority_tier": self.priority_tier.value,
            "priority_score": self.priority_score,
            "counter_id": self.counter_id,
            "served_by": self.served_by,
            "submitter_id": self.submitter_id,
            "submitter": self.submitter.to_message() if self.submitter else None,
            "created_at": self.created_at,
            "served_at": self.served_at,
            "completed_at": self.completed_at,
            "cancelled_at": self.cancelled_at,
            "transfer_history": [
                {"from_counter": t.from_counter, "to_counter": t.to_counter, "when": t.when, "reason": t.reason}
                for t in self.transfer_history
            ],
        }


@dataclass
class ServiceTypeMetrics:
    tickets_served: int = 0
    total_service_time: float = 0.0
    avg_service_time: float = 0.0


@dataclass
class PerformanceMetrics:
    """Running service-time aggregates (seconds). Updated one sample at a time."""

    total_tickets_served: int = 0
    total_service_time: float = 0.0
    min_service_time: float | None = None
    max_service_time: float | None = None
    avg_service_time: float = 0.0
    per_service_type: dict[str, ServiceTypeMetrics] = field(default_factory=dict)
    last_updated: float | None = None

    def to_message(self) -> dict[str, Any]:
        return {
            "total_tickets_served": self.total_tickets_served,
            "total_service_time": self.total_service_time,
            "min_service_time": self.min_service_time,
            "max_service_time": self.max_service_time,
            "avg_service_time": self.avg_service_time,
            "per_service_type": {
                svc: {
                    "tickets_served": m.tickets_served,
                    "total_service_time": m.total_service_time,
                    "avg_service_time": m.avg_service_time,
                }
                for svc, m in self.per_service_type.items()
            },
            "last_updated": self.last_updated,
        }


@dataclass(frozen=True)
class AvailabilityChange:
    status: AvailabilityStatus
    changed_at: float
    reason: str | None = None
    changed_by: str | None = None


@dataclass
class Counter:
    id: str
    name: str
    service_types: frozenset[ServiceType]
    status: CounterStatus = CounterStatus.CLOSED
    availability_status: AvailabilityStatus = AvailabilityStatus.AVAILABLE
    current_ticket: str | None = None
    assigned_staff: str | None = None
    performance: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    unavailability_reason: str | None = None
    estimated_return: float | None = None
    last_availability_change: float | None = None
    availability_history: list[AvailabilityChange] = field(default_factory=list)

    def serves(self, service_type: ServiceType) -> bool:
        return service_type in self.service_types

    @property
    def is_selectable(self) -> bool:
        return self.status != CounterStatus.CLOSED and self.availability_status not in BLOCKED_AVAILABILITY

    def to_message(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "service_types": sorted(s.value for s in self.service_types),
            "status": self.status.value,
            "availability_status": self.availability_status.value,
            "current_ticket": self.current_ticket,
            "assigned_staff": self.assigned_staff,
            "performance": self.performance.to_message(),
            "unavailability_reason": self.unavailability_reason,
            "estimated_return": self.estimated_return,
            "last_availability_change": self.last_availability_change,
        }
