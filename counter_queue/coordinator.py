from __future__ import annotations

# Ticket assignment coordinator: the only component that changes tickets and
# counters.
#
# Ticket lifecycle:
#     waiting -> serving -> completed
#     waiting -> cancelled
#     serving -> cancelled
#     serving -> serving      (transfer to another counter)
#
# Every operation commits through guarded store updates. Counters are written
# first, the ticket last. `counter.current_ticket` is only set when it is
# still empty and only cleared when it still holds the expected ticket;
# `ticket.status` is only changed when it still has the status we read. If
# any guard fails, the writes already made are restored and the operation
# raises `ConcurrentModification`, so a failed call leaves everything as it
# was.
#
# Notifications go out after the commit and never undo it.

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from .config import DEFAULT_CONFIG, SchedulerConfig
from .errors import (
    ConcurrentModification,
    CounterBusy,
    CounterNotFound,
    CounterUnavailable,
    InvalidTicketState,
    NoAvailableCounter,
    SchedulerError,
    StoreTimeout,
    TicketNotFound,
    ValidationError,
)
from .load import LoadMetric, LoadMetricCalculator
from .models import (
    AvailabilityChange,
    AvailabilityStatus,
    BLOCKED_AVAILABILITY,
    Counter,
    CounterStatus,
    PriorityTier,
    ServiceType,
    Submitter,
    Ticket,
    TicketStatus,
    TransferRecord,
    parse_priority_tier,
    parse_service_type,
)
from .notify import (
    COUNTER_AVAILABILITY_CHANGED,
    COUNTER_STATUS_CHANGED,
    NullNotifier,
    QUEUE_REBALANCED,
    TICKET_CANCELLED,
    TICKET_COMPLETED,
    TICKET_CREATED,
    TICKET_PRIORITY_CHANGED,
    TICKET_SERVING,
    TICKET_TRANSFERRED,
)
from .priority import compute_priority_score, determine_priority_tier, priority_label, score_ticket
from .selector import CounterSelector
from .service_time import record_service_sample, service_time_seconds
from .store import InMemoryStore

logger = logging.getLogger(__name__)

# Attempts at undoing an earlier write when a later one in the same operation fails.
RESTORE_ATTEMPTS = 3


@dataclass
class AssignmentResult:
    """Outcome of `auto_assign`. `success=False` is a normal "nothing to do"."""

    success: bool
    message: str
    service_type: ServiceType
    ticket: Ticket | None = None
    counter: LoadMetric | None = None

    def to_message(self) -> dict[str, Any]:
        return {
            "type": "auto_assign_result",
            "success": self.success,
            "message": self.message,
            "service_type": self.service_type.value,
            "ticket": self.ticket.to_message() if self.ticket else None,
            "counter": self.counter.to_message() if self.counter else None,
        }


@dataclass
class RebalanceResult:
    service_type: ServiceType
    timestamp: float
    processed: int = 0
    assigned: int = 0
    skipped: int = 0
    stopped_reason: str | None = None
    assignments: list[tuple[str, str]] = field(default_factory=list)  # (ticket_id, counter_id)

    def to_message(self) -> dict[str, Any]:
        return {
            "type": "rebalance_result",
            "service_type": self.service_type.value,
            "timestamp": self.timestamp,
            "tickets_processed": self.processed,
            "tickets_assigned": self.assigned,
            "tickets_skipped": self.skipped,
            "stopped_reason": self.stopped_reason,
            "assignments": [{"ticket_id": t, "counter_id": c} for t, c in self.assignments],
        }


class TicketAssignmentCoordinator:
    def __init__(
        self,
        store: InMemoryStore,
        *,
        notifier: Any = None,
        selector: CounterSelector | None = None,
        config: SchedulerConfig = DEFAULT_CONFIG,
        clock: Callable[[], float] = time.time,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.store = store
        self.config = config
        self.clock = clock
        self.notifier = notifier if notifier is not None else NullNotifier()
        self.calculator = LoadMetricCalculator(store, config=config)
        self.selector = selector or CounterSelector(store, calculator=self.calculator, config=config)
        self._new_id = id_factory or (lambda: uuid.uuid4().hex)
        # counter_id -> (ticket_id, first seen) for counters bound to a ticket that is
        # not serving there; released once seen for longer than `orphan_grace`.
        self._orphans: dict[str, tuple[str, float]] = {}

    # -------------------- lookups --------------------

    def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = self.store.find_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFound(f"ticket {ticket_id} not found")
        return ticket

    def get_counter(self, counter_id: str) -> Counter:
        counter = self.store.find_counter(counter_id)
        if counter is None:
            raise CounterNotFound(f"counter {counter_id} not found")
        return counter

    # -------------------- ticket lifecycle --------------------

    def create_ticket(
        self,
        service_type: ServiceType | str,
        *,
        submitter_id: str | None = None,
        submitter: Submitter | None = None,
        tier: PriorityTier | str | None = None,
    ) -> Ticket:
        """Create a waiting ticket with the next number for its service type.

        Without an explicit tier, the tier is derived from the submitter.
        """
        svc = parse_service_type(service_type)
        prio = parse_priority_tier(tier) if tier else determine_priority_tier(submitter)
        now = self.clock()

        ticket = Ticket(
            id=self._new_id(),
            ticket_number=self.store.next_ticket_number(svc),
            service_type=svc,
            priority_tier=prio,
            priority_score=compute_priority_score(tier=prio, created_at=now, now=now, submitter=submitter),
            submitter_id=submitter_id,
            submitter=submitter,
            created_at=now,
        )
        ticket = self.store.create_ticket(ticket)

        logger.info(
            "ticket %s #%d created for %s (tier=%s, score=%d)",
            ticket.id, ticket.ticket_number, svc.value, prio.value, ticket.priority_score,
        )
        self._publish(TICKET_CREATED, self._ticket_payload(ticket, f"New ticket #{ticket.ticket_number} created"))
        return ticket

    def serve(self, ticket_id: str, counter_id: str) -> Ticket:
        """Bind a waiting ticket to a counter.

        Raises:
            TicketNotFound / CounterNotFound: unknown id.
            InvalidTicketState: the ticket is not waiting.
            CounterUnavailable: the counter is closed, unavailable or in maintenance.
            ConcurrentModification: the counter already holds a ticket, or a
                guarded write lost a race.
        """
        ticket = self.get_ticket(ticket_id)
        if ticket.status != TicketStatus.WAITING:
            raise InvalidTicketState(f"ticket {ticket_id} is {ticket.status.value}, expected waiting")
        counter = self.get_counter(counter_id)
        _require_usable(counter)
        if counter.current_ticket is not None:
            raise ConcurrentModification(
                f"counter {counter.name} is already serving ticket {counter.current_ticket}"
            )

        now = self.clock()
        self.store.update_counter(
            counter_id,
            {"status": CounterStatus.BUSY, "current_ticket": ticket_id},
            expected=_claim_guard(counter),
        )
        try:
            ticket = self.store.update_ticket(
                ticket_id,
                {"status": TicketStatus.SERVING, "served_at": now, "counter_id": counter_id, "served_by": counter_id},
                expected={"status": TicketStatus.WAITING},
            )
        except SchedulerError:
            self._restore_counter(
                counter_id,
                {"status": counter.status, "current_ticket": None},
                expected={"current_ticket": ticket_id},
            )
            raise

        logger.info("ticket %s now serving at %s", ticket_id, counter.name)
        self._publish(
            TICKET_SERVING,
            self._ticket_payload(
                ticket,
                f"Ticket #{ticket.ticket_number} is now being served at {counter.name}",
                counter_ids=[counter_id],
                counter_name=counter.name,
            ),
        )
        self._publish_counter(counter_id, f"{counter.name} is serving ticket #{ticket.ticket_number}")
        return ticket

    def complete(self, ticket_id: str) -> Ticket:
        """Finish a serving ticket, free its counter and record the service time."""
        ticket = self.get_ticket(ticket_id)
        if ticket.status != TicketStatus.SERVING or ticket.counter_id is None:
            raise InvalidTicketState(f"ticket {ticket_id} is {ticket.status.value}, expected serving")
        counter = self.get_counter(ticket.counter_id)

        now = self.clock()
        seconds = service_time_seconds(served_at=ticket.served_at, completed_at=max(now, ticket.served_at or now))
        performance = record_service_sample(
            counter.performance, seconds=seconds, service_type=ticket.service_type, now=now
        )

        self.store.update_counter(
            counter.id,
            {"status": CounterStatus.OPEN, "current_ticket": None, "performance": performance},
            expected={"current_ticket": ticket_id, "performance": counter.performance},
        )
        try:
            ticket = self.store.update_ticket(
                ticket_id,
                {"status": TicketStatus.COMPLETED, "completed_at": now, "counter_id": None},
                expected={"status": TicketStatus.SERVING, "counter_id": counter.id},
            )
        except SchedulerError:
            self._restore_counter(
                counter.id,
                {"status": counter.status, "current_ticket": ticket_id, "performance": counter.performance},
                expected={"current_ticket": None, "performance": performance},
            )
            raise

        logger.info("ticket %s completed at %s after %.0fs", ticket_id, counter.name, seconds)
        self._publish(
            TICKET_COMPLETED,
            self._ticket_payload(
                ticket,
                f"Ticket #{ticket.ticket_number} has been completed",
                counter_ids=[counter.id],
                counter_name=counter.name,
                service_seconds=seconds,
            ),
        )
        self._publish_counter(counter.id, f"{counter.name} is open")
        return ticket

    def cancel(self, ticket_id: str) -> Ticket:
        """Cancel a waiting or serving ticket. A serving ticket frees its counter."""
        ticket = self.get_ticket(ticket_id)
        if ticket.is_terminal:
            raise InvalidTicketState(f"ticket {ticket_id} is already {ticket.status.value}")

        now = self.clock()
        if ticket.status == TicketStatus.WAITING:
            ticket = self.store.update_ticket(
                ticket_id,
                {"status": TicketStatus.CANCELLED, "cancelled_at": now},
                expected={"status": TicketStatus.WAITING},
            )
            logger.info("ticket %s cancelled while waiting", ticket_id)
            self._publish(
                TICKET_CANCELLED,
                self._ticket_payload(ticket, f"Ticket #{ticket.ticket_number} has been cancelled"),
            )
            return ticket

        counter = self.get_counter(ticket.counter_id or "")
        self.store.update_counter(
            counter.id,
            {"status": CounterStatus.OPEN, "current_ticket": None},
            expected={"current_ticket": ticket_id},
        )
        try:
            ticket = self.store.update_ticket(
                ticket_id,
                {"status": TicketStatus.CANCELLED, "cancelled_at": now, "counter_id": None},
                expected={"status": TicketStatus.SERVING, "counter_id": counter.id},
            )
        except SchedulerError:
            self._restore_counter(
                counter.id,
                {"status": counter.status, "current_ticket": ticket_id},
                expected={"current_ticket": None},
            )
            raise

        logger.info("ticket %s cancelled while serving at %s", ticket_id, counter.name)
        self._publish(
            TICKET_CANCELLED,
            self._ticket_payload(
                ticket,
                f"Ticket #{ticket.ticket_number} has been cancelled",
                counter_ids=[counter.id],
                counter_name=counter.name,
            ),
        )
        self._publish_counter(counter.id, f"{counter.name} is open")
        return ticket

    def transfer(self, ticket_id: str, new_counter_id: str, reason: str = "") -> Ticket:
        """Move a serving ticket to another, free counter.

        Raises:
            InvalidTicketState: the ticket is not serving.
            ValidationError: the target is the ticket's current counter.
            CounterUnavailable: the target is closed, unavailable or in maintenance.
            CounterBusy: the target already holds a ticket.
            ConcurrentModification: a guarded write lost a race.
        """
        ticket = self.get_ticket(ticket_id)
        if ticket.status != TicketStatus.SERVING or ticket.counter_id is None:
            raise InvalidTicketState(f"ticket {ticket_id} is {ticket.status.value}, expected serving")
        old_id = ticket.counter_id
        if new_counter_id == old_id:
            raise ValidationError(f"ticket {ticket_id} is already at counter {old_id}")

        target = self.get_counter(new_counter_id)
        _require_usable(target)
        if target.current_ticket is not None:
            raise CounterBusy(f"counter {target.name} is serving ticket {target.current_ticket}")
        source = self.get_counter(old_id)

        now = self.clock()
        record = TransferRecord(from_counter=old_id, to_counter=new_counter_id, when=now, reason=reason or "")

        self.store.update_counter(
            new_counter_id,
            {"status": CounterStatus.BUSY, "current_ticket": ticket_id},
            expected=_claim_guard(target),
        )
        undo_target = (
            new_counter_id,
            {"status": target.status, "current_ticket": None},
            {"current_ticket": ticket_id},
        )

        try:
            self.store.update_counter(
                old_id,
                {"status": CounterStatus.OPEN, "current_ticket": None},
                expected={"current_ticket": ticket_id},
            )
        except SchedulerError:
            self._restore_counter(*undo_target)
            raise

        try:
            ticket = self.store.update_ticket(
                ticket_id,
                {
                    "counter_id": new_counter_id,
                    "served_by": new_counter_id,
                    "transfer_history": [*ticket.transfer_history, record],
                },
                expected={"status": TicketStatus.SERVING, "counter_id": old_id},
            )
        except SchedulerError:
            self._restore_counter(
                old_id,
                {"status": source.status, "current_ticket": ticket_id},
                expected={"current_ticket": None},
            )
            self._restore_counter(*undo_target)
            raise

        logger.info("ticket %s transferred %s -> %s (%s)", ticket_id, source.name, target.name, reason)
        self._publish(
            TICKET_TRANSFERRED,
            self._ticket_payload(
                ticket,
                f"Ticket #{ticket.ticket_number} transferred from {source.name} to {target.name}",
                counter_ids=[old_id, new_counter_id],
                from_counter_id=old_id,
                from_counter_name=source.name,
                to_counter_id=new_counter_id,
                to_counter_name=target.name,
                reason=reason,
            ),
        )
        self._publish_counter(old_id, f"{source.name} is open")
        self._publish_counter(new_counter_id, f"{target.name} is serving ticket #{ticket.ticket_number}")
        return ticket

    def update_priority(self, ticket_id: str, new_tier: PriorityTier | str, reason: str | None = None) -> Ticket:
        """Change a live ticket's tier and recompute its score. Bindings are untouched."""
        tier = parse_priority_tier(new_tier)
        ticket = self.get_ticket(ticket_id)
        if ticket.is_terminal:
            raise InvalidTicketState(f"ticket {ticket_id} is {ticket.status.value}; priority is frozen")

        old_tier = ticket.priority_tier
        score = score_ticket(ticket, now=self.clock(), tier=tier)
        ticket = self.store.update_ticket(
            ticket_id,
            {"priority_tier": tier, "priority_score": score},
            expected={"status": ticket.status, "priority_tier": old_tier},
        )

        logger.info("ticket %s priority %s -> %s (score=%d)", ticket_id, old_tier.value, tier.value, score)
        self._publish(
            TICKET_PRIORITY_CHANGED,
            self._ticket_payload(
                ticket,
                f"Ticket #{ticket.ticket_number} priority changed from "
                f"{priority_label(old_tier)} to {priority_label(tier)}",
                counter_ids=[ticket.counter_id] if ticket.counter_id else [],
                old_priority=old_tier.value,
                new_priority=tier.value,
                priority_score=score,
                reason=reason,
            ),
        )
        return ticket

    def refresh_priority_scores(self, service_type: ServiceType | str | None = None) -> int:
        """Re-apply the time boost to waiting tickets. Returns how many changed.

        Tickets changed concurrently are skipped; the next refresh catches them.
        """
        svc = parse_service_type(service_type) if service_type is not None else None
        now = self.clock()
        changed = 0
        for ticket in self.store.waiting_tickets(svc):
            score = score_ticket(ticket, now=now)
            if score == ticket.priority_score:
                continue
            try:
                self.store.update_ticket(
                    ticket.id,
                    {"priority_score": score},
                    expected={
                        "status": TicketStatus.WAITING,
                        "priority_tier": ticket.priority_tier,
                        "priority_score": ticket.priority_score,
                    },
                )
            except (ConcurrentModification, TicketNotFound):
                logger.debug("skipping score refresh for ticket %s", ticket.id)
                continue
            changed += 1
        if changed:
            logger.debug("refreshed %d priority score(s)", changed)
        return changed

    def release_orphaned_counters(self) -> list[str]:
        """Free counters still holding a ticket that is not serving there.

        That happens only when an operation failed and its restore write
        failed too. A counter is released once it has been seen in that state
        for longer than `config.orphan_grace`, so operations still between
        their counter and ticket writes are left alone. Returns released ids.
        """
        now = self.clock()
        released: list[str] = []
        seen: dict[str, tuple[str, float]] = {}
        for counter in self.store.list_counters():
            tid = counter.current_ticket
            if tid is None:
                continue
            ticket = self.store.find_ticket(tid)
            if ticket is not None and ticket.status == TicketStatus.SERVING and ticket.counter_id == counter.id:
                continue

            prev_tid, first_seen = self._orphans.get(counter.id, (None, now))
            if prev_tid != tid:
                first_seen = now
            if now - first_seen < self.config.orphan_grace:
                seen[counter.id] = (tid, first_seen)
                continue

            try:
                self.store.update_counter(
                    counter.id,
                    {"status": CounterStatus.OPEN, "current_ticket": None},
                    expected={"current_ticket": tid},
                )
            except ConcurrentModification:
                continue
            logger.warning("released counter %s still holding ticket %s", counter.name, tid)
            released.append(counter.id)
            self._publish_counter(counter.id, f"{counter.name} is open")

        self._orphans = seen
        return released

    def housekeeping(self) -> None:
        """Periodic upkeep run by the load monitor before each broadcast."""
        self.release_orphaned_counters()
        self.refresh_priority_scores()

    # -------------------- load-balanced assignment --------------------

    def auto_assign(self, service_type: ServiceType | str) -> AssignmentResult:
        """Serve the head of a service queue at the best counter.

        An empty queue or no usable counter is a normal result, not an error.
        """
        svc = parse_service_type(service_type)
        contended: set[str] = set()
        while True:
            head = self.store.find_one_ticket(service_type=svc, status=TicketStatus.WAITING)
            if head is None:
                return AssignmentResult(False, "No waiting tickets", svc)
            try:
                ticket, metric = self._place(head, contended)
            except NoAvailableCounter:
                return AssignmentResult(False, "No available counters", svc, ticket=head)
            except (InvalidTicketState, TicketNotFound):
                # Someone else took or cancelled the head; look again.
                continue
            return AssignmentResult(True, "Ticket auto-assigned to optimal counter", svc, ticket=ticket, counter=metric)

    def rebalance_queue(self, service_type: ServiceType | str, max_batch: int | None = None) -> RebalanceResult:
        """Assign up to `max_batch` waiting tickets (queue order) to free counters.

        Stops early once no counter is available.
        """
        svc = parse_service_type(service_type)
        batch = self.config.rebalance_batch if max_batch is None else max_batch
        if batch <= 0:
            raise ValidationError("max_batch must be > 0")

        result = RebalanceResult(service_type=svc, timestamp=self.clock())
        contended: set[str] = set()
        for ticket in self.store.waiting_tickets(svc, limit=batch):
            result.processed += 1
            try:
                served, metric = self._place(ticket, contended)
            except NoAvailableCounter:
                result.skipped += 1
                result.stopped_reason = "no_available_counter"
                break
            except (InvalidTicketState, TicketNotFound):
                result.skipped += 1
                continue
            result.assigned += 1
            result.assignments.append((served.id, metric.counter_id))

        logger.info(
            "rebalanced %s: processed=%d assigned=%d skipped=%d",
            svc.value, result.processed, result.assigned, result.skipped,
        )
        payload = result.to_message()
        payload["counter_ids"] = sorted({c for _, c in result.assignments})
        self._publish(QUEUE_REBALANCED, payload)
        return result

    def _place(self, ticket: Ticket, contended: set[str]) -> tuple[Ticket, LoadMetric]:
        """Serve `ticket` at the best counter, re-selecting after each lost race.

        Counters that fail are added to `contended` and not tried again. If the
        race was lost on the ticket instead, raises `InvalidTicketState` and
        leaves `contended` alone.
        """
        while True:
            metric = self.selector.find_best_counter(ticket.service_type, ticket.priority_tier, exclude=contended)
            try:
                return self.serve(ticket.id, metric.counter_id), metric
            except ConcurrentModification as exc:
                current = self.get_ticket(ticket.id)
                if current.status != TicketStatus.WAITING:
                    raise InvalidTicketState(
                        f"ticket {ticket.id} is {current.status.value}, expected waiting"
                    ) from exc
                logger.info("counter %s taken before ticket %s could be served", metric.counter_name, ticket.id)
                contended.add(metric.counter_id)
            except (CounterUnavailable, CounterNotFound) as exc:
                logger.info("counter %s not usable for ticket %s: %s", metric.counter_name, ticket.id, exc)
                contended.add(metric.counter_id)

    # -------------------- counter lifecycle --------------------

    def register_counter(
        self,
        name: str,
        service_types: Iterable[ServiceType | str],
        *,
        counter_id: str | None = None,
        status: CounterStatus | str = CounterStatus.OPEN,
        assigned_staff: str | None = None,
        actor: str | None = None,
    ) -> Counter:
        if not name or not str(name).strip():
            raise ValidationError("counter name required")
        types = frozenset(parse_service_type(s) for s in service_types)
        if not types:
            raise ValidationError("a counter must serve at least one service type")
        try:
            st = CounterStatus(status)
        except ValueError:
            raise ValidationError(f"unknown counter status: {status!r}") from None
        if st == CounterStatus.BUSY:
            raise ValidationError("a new counter cannot start busy")

        counter = self.store.create_counter(
            Counter(
                id=counter_id or self._new_id(),
                name=str(name).strip(),
                service_types=types,
                status=st,
                assigned_staff=assigned_staff,
            )
        )
        logger.info("counter %s registered (%s)", counter.name, ", ".join(sorted(t.value for t in types)))
        self._publish_counter(counter.id, f"{counter.name} registered", actor=actor)
        return counter

    def open_counter(self, counter_id: str, *, actor: str | None = None) -> Counter:
        counter = self.get_counter(counter_id)
        if counter.status != CounterStatus.CLOSED:
            return counter
        counter = self.store.update_counter(
            counter_id, {"status": CounterStatus.OPEN}, expected={"status": CounterStatus.CLOSED}
        )
        logger.info("counter %s opened by %s", counter.name, actor or "system")
        self._publish_counter(counter_id, f"{counter.name} opened", actor=actor)
        return counter

    def close_counter(self, counter_id: str, *, actor: str | None = None) -> Counter:
        """Close a counter. Refused while a ticket is bound to it."""
        counter = self.get_counter(counter_id)
        if counter.current_ticket is not None:
            raise CounterBusy(
                f"counter {counter.name} is serving ticket {counter.current_ticket}; complete or transfer it first"
            )
        if counter.status == CounterStatus.CLOSED:
            return counter
        counter = self.store.update_counter(
            counter_id,
            {"status": CounterStatus.CLOSED},
            expected={"status": counter.status, "current_ticket": None},
        )
        logger.info("counter %s closed by %s", counter.name, actor or "system")
        self._publish_counter(counter_id, f"{counter.name} closed", actor=actor)
        return counter

    def set_availability(
        self,
        counter_id: str,
        availability: AvailabilityStatus | str,
        *,
        reason: str | None = None,
        actor: str | None = None,
        estimated_return: float | None = None,
    ) -> Counter:
        """Change a counter's availability and append to its availability history."""
        try:
            status = AvailabilityStatus(availability)
        except ValueError:
            raise ValidationError(f"unknown availability status: {availability!r}") from None

        counter = self.get_counter(counter_id)
        now = self.clock()
        available = status == AvailabilityStatus.AVAILABLE
        change = AvailabilityChange(status=status, changed_at=now, reason=reason, changed_by=actor)

        counter = self.store.update_counter(
            counter_id,
            {
                "availability_status": status,
                "unavailability_reason": None if available else reason,
                "estimated_return": None if available else estimated_return,
                "last_availability_change": now,
                "availability_history": [*counter.availability_history, change],
            },
            expected={
                "availability_status": counter.availability_status,
                "availability_history": counter.availability_history,
            },
        )

        logger.info("counter %s availability -> %s by %s", counter.name, status.value, actor or "system")
        self._publish(
            COUNTER_AVAILABILITY_CHANGED,
            self._counter_payload(
                counter,
                f"{counter.name} is now {status.value}",
                actor=actor,
                reason=reason,
            ),
        )
        return counter

    def assign_staff(self, counter_id: str, staff_id: str | None, *, actor: str | None = None) -> Counter:
        counter = self.get_counter(counter_id)
        counter = self.store.update_counter(
            counter_id,
            {"assigned_staff": staff_id},
            expected={"assigned_staff": counter.assigned_staff},
        )
        logger.info("counter %s staff -> %s by %s", counter.name, staff_id, actor or "system")
        self._publish_counter(counter_id, f"{counter.name} staff changed", actor=actor)
        return counter

    # -------------------- internals --------------------

    def _restore_counter(self, counter_id: str, patch: Mapping[str, Any], expected: Mapping[str, Any]) -> None:
        for attempt in range(1, RESTORE_ATTEMPTS + 1):
            try:
                self.store.update_counter(counter_id, patch, expected=expected)
                return
            except StoreTimeout:
                logger.warning("restoring counter %s timed out (attempt %d/%d)", counter_id, attempt, RESTORE_ATTEMPTS)
            except SchedulerError:
                logger.exception("could not restore counter %s after a failed transition", counter_id)
                return
        logger.error("counter %s not restored; housekeeping will release it", counter_id)

    def _publish(self, topic: str, payload: dict[str, Any]) -> None:
        try:
            self.notifier.notify(topic, payload)
        except Exception:
            logger.warning("notification %s failed; state change is kept", topic, exc_info=True)

    def _publish_counter(self, counter_id: str, message: str, *, actor: str | None = None) -> None:
        counter = self.store.find_counter(counter_id)
        if counter is None:
            return
        self._publish(COUNTER_STATUS_CHANGED, self._counter_payload(counter, message, actor=actor))

    def _ticket_payload(
        self,
        ticket: Ticket,
        message: str,
        *,
        counter_ids: Iterable[str] = (),
        **extra: Any,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "ticket_id": ticket.id,
            "ticket_number": ticket.ticket_number,
            "service_type": ticket.service_type.value,
            "status": ticket.status.value,
            "priority": ticket.priority_tier.value,
            "submitter_id": ticket.submitter_id,
            "counter_ids": [c for c in counter_ids if c],
            "ticket": ticket.to_message(),
            "message": message,
            "timestamp": self.clock(),
        }
        payload.update(extra)
        return payload

    def _counter_payload(self, counter: Counter, message: str, **extra: Any) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "counter_id": counter.id,
            "counter_name": counter.name,
            "status": counter.status.value,
            "availability_status": counter.availability_status.value,
            "counter_ids": [counter.id],
            "counter": counter.to_message(),
            "message": message,
            "timestamp": self.clock(),
        }
        payload.update(extra)
        return payload


def _require_usable(counter: Counter) -> None:
    if counter.status == CounterStatus.CLOSED:
        raise CounterUnavailable(f"counter {counter.name} is closed")
    if counter.availability_status in BLOCKED_AVAILABILITY:
        raise CounterUnavailable(f"counter {counter.name} is {counter.availability_status.value}")


def _claim_guard(counter: Counter) -> dict[str, Any]:
    """Fields that must be unchanged for a counter to be claimed."""
    return {
        "current_ticket": None,
        "status": counter.status,
        "availability_status": counter.availability_status,
    }
