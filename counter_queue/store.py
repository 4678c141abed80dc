from __future__ import annotations

# Record store for tickets and counters.
#
# The scheduler needs very little from storage:
# - find by id / find one / count with simple equality filters
# - create
# - *conditional* update by id: apply `patch` only if every field listed in
#   `expected` still has the expected value (compare-and-swap)
# - waiting tickets per service type in queue order
# - per-service-type ticket number allocation
#
# `InMemoryStore` is the reference implementation (and the test double). A
# document database adapter only has to offer the same methods; the guarded
# update maps to an update-with-filter on the current field values.
#
# Records are copied on the way in and out so callers never share mutable
# state with the store.

import copy
import threading
from contextlib import contextmanager
from dataclasses import fields, replace
from typing import Any, Iterator, Mapping, TypeVar

from .errors import ConcurrentModification, CounterNotFound, StoreTimeout, TicketNotFound, ValidationError
from .models import Counter, ServiceType, Ticket, TicketStatus
from .priority import priority_sort_key

R = TypeVar("R", Ticket, Counter)


class InMemoryStore:
    """Thread-safe in-memory ticket/counter store with guarded updates."""

    def __init__(self, *, timeout: float = 5.0) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be > 0")
        self.timeout = timeout
        self._lock = threading.Lock()
        self._tickets: dict[str, Ticket] = {}
        self._counters: dict[str, Counter] = {}
        self._last_ticket_number: dict[ServiceType, int] = {}

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.timeout):
            raise StoreTimeout(f"store lock not acquired within {self.timeout}s")
        try:
            yield
        finally:
            self._lock.release()

    # -------------------- tickets --------------------

    def create_ticket(self, ticket: Ticket) -> Ticket:
        with self._locked():
            if ticket.id in self._tickets:
                raise ValidationError(f"duplicate ticket id {ticket.id}")
            for other in self._tickets.values():
                if other.service_type == ticket.service_type and other.ticket_number == ticket.ticket_number:
                    raise ValidationError(
                        f"ticket number {ticket.ticket_number} already used for {ticket.service_type.value}"
                    )
            last = self._last_ticket_number.get(ticket.service_type, 0)
            self._last_ticket_number[ticket.service_type] = max(last, ticket.ticket_number)
            self._tickets[ticket.id] = copy.deepcopy(ticket)
            return copy.deepcopy(ticket)

    def next_ticket_number(self, service_type: ServiceType) -> int:
        """Reserve the next ticket number for a service type (1, 2, 3, ...)."""
        with self._locked():
            n = self._last_ticket_number.get(service_type, 0) + 1
            self._last_ticket_number[service_type] = n
            return n

    def find_ticket(self, ticket_id: str) -> Ticket | None:
        with self._locked():
            t = self._tickets.get(ticket_id)
            return copy.deepcopy(t) if t is not None else None

    def find_one_ticket(self, **filters: Any) -> Ticket | None:
        """First matching ticket in queue order (score desc, created_at asc)."""
        _check_filters(Ticket, filters)
        with self._locked():
            matches = sorted(
                (t for t in self._tickets.values() if _matches(t, filters)),
                key=priority_sort_key,
            )
            return copy.deepcopy(matches[0]) if matches else None

    def count_tickets(self, **filters: Any) -> int:
        _check_filters(Ticket, filters)
        with self._locked():
            return sum(1 for t in self._tickets.values() if _matches(t, filters))

    def waiting_tickets(self, service_type: ServiceType | None = None, *, limit: int | None = None) -> list[Ticket]:
        """Waiting tickets in queue order, optionally for one service type."""
        with self._locked():
            waiting = [
                t
                for t in self._tickets.values()
                if t.status == TicketStatus.WAITING and (service_type is None or t.service_type == service_type)
            ]
            waiting.sort(key=priority_sort_key)
            if limit is not None:
                waiting = waiting[:limit]
            return [copy.deepcopy(t) for t in waiting]

    def update_ticket(
        self,
        ticket_id: str,
        patch: Mapping[str, Any],
        expected: Mapping[str, Any] | None = None,
    ) -> Ticket:
        with self._locked():
            current = self._tickets.get(ticket_id)
            if current is None:
                raise TicketNotFound(f"ticket {ticket_id} not found")
            updated = _guarded_replace(current, patch, expected, what=f"ticket {ticket_id}")
            self._tickets[ticket_id] = updated
            return copy.deepcopy(updated)

    # -------------------- counters --------------------

    def create_counter(self, counter: Counter) -> Counter:
        with self._locked():
            if counter.id in self._counters:
                raise ValidationError(f"duplicate counter id {counter.id}")
            if any(c.name == counter.name for c in self._counters.values()):
                raise ValidationError(f"counter name {counter.name!r} already in use")
            self._counters[counter.id] = copy.deepcopy(counter)
            return copy.deepcopy(counter)

    def find_counter(self, counter_id: str) -> Counter | None:
        with self._locked():
            c = self._counters.get(counter_id)
            return copy.deepcopy(c) if c is not None else None

    def list_counters(self, **filters: Any) -> list[Counter]:
        """All counters matching the filters, ordered by name."""
        _check_filters(Counter, filters)
        with self._locked():
            found = [c for c in self._counters.values() if _matches(c, filters)]
            found.sort(key=lambda c: c.name)
            return [copy.deepcopy(c) for c in found]

    def update_counter(
        self,
        counter_id: str,
        patch: Mapping[str, Any],
        expected: Mapping[str, Any] | None = None,
    ) -> Counter:
        with self._locked():
            current = self._counters.get(counter_id)
            if current is None:
                raise CounterNotFound(f"counter {counter_id} not found")
            updated = _guarded_replace(current, patch, expected, what=f"counter {counter_id}")
            self._counters[counter_id] = updated
            return copy.deepcopy(updated)


def _check_filters(cls: type, filters: Mapping[str, Any]) -> None:
    unknown = set(filters) - {f.name for f in fields(cls)}
    if unknown:
        raise ValidationError(f"unknown filter field(s) for {cls.__name__.lower()}: {sorted(unknown)}")


def _matches(record: Ticket | Counter, filters: Mapping[str, Any]) -> bool:
    return all(getattr(record, k) == v for k, v in filters.items())


def _guarded_replace(
    current: R,
    patch: Mapping[str, Any],
    expected: Mapping[str, Any] | None,
    *,
    what: str,
) -> R:
    known = {f.name for f in fields(current)}
    unknown = (set(patch) | set(expected or {})) - known
    if unknown:
        raise ValidationError(f"unknown field(s) for {what}: {sorted(unknown)}")
    if "id" in patch:
        raise ValidationError("id cannot be changed")

    for name, value in (expected or {}).items():
        actual = getattr(current, name)
        if actual != value:
            raise ConcurrentModification(f"{what}: expected {name}={value!r}, found {actual!r}")

    return replace(current, **copy.deepcopy(dict(patch)))
