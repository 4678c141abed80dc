import pytest

from counter_queue.errors import ConcurrentModification, StoreTimeout, TicketNotFound, ValidationError
from counter_queue.models import Counter, ServiceType, Ticket, TicketStatus
from counter_queue.store import InMemoryStore


def _ticket(tid, number, score=0, created_at=0.0, service=ServiceType.FINANCE):
    return Ticket(id=tid, ticket_number=number, service_type=service, priority_score=score, created_at=created_at)


def test_guarded_update_applies_only_when_expected_matches(store):
    store.create_ticket(_ticket("t1", 1))

    updated = store.update_ticket("t1", {"status": TicketStatus.SERVING}, expected={"status": TicketStatus.WAITING})
    assert updated.status == TicketStatus.SERVING

    with pytest.raises(ConcurrentModification):
        store.update_ticket("t1", {"status": TicketStatus.CANCELLED}, expected={"status": TicketStatus.WAITING})
    assert store.find_ticket("t1").status == TicketStatus.SERVING


def test_update_rejects_unknown_fields_and_id_changes(store):
    store.create_ticket(_ticket("t1", 1))
    with pytest.raises(ValidationError):
        store.update_ticket("t1", {"colour": "red"})
    with pytest.raises(ValidationError):
        store.update_ticket("t1", {"id": "t2"})
    with pytest.raises(TicketNotFound):
        store.update_ticket("missing", {"priority_score": 1})


def test_records_are_copied(store):
    store.create_counter(Counter(id="c1", name="Desk 1", service_types=frozenset({ServiceType.FINANCE})))
    c = store.find_counter("c1")
    c.current_ticket = "t9"
    assert store.find_counter("c1").current_ticket is None


def test_ticket_numbers_are_per_service_type(store):
    assert store.next_ticket_number(ServiceType.FINANCE) == 1
    assert store.next_ticket_number(ServiceType.FINANCE) == 2
    assert store.next_ticket_number(ServiceType.LIBRARY) == 1


def test_duplicate_ticket_number_rejected(store):
    store.create_ticket(_ticket("t1", 1))
    with pytest.raises(ValidationError):
        store.create_ticket(_ticket("t2", 1))
    store.create_ticket(_ticket("t3", 1, service=ServiceType.LIBRARY))


def test_duplicate_counter_name_rejected(store):
    store.create_counter(Counter(id="c1", name="Desk 1", service_types=frozenset({ServiceType.FINANCE})))
    with pytest.raises(ValidationError):
        store.create_counter(Counter(id="c2", name="Desk 1", service_types=frozenset({ServiceType.LIBRARY})))


def test_waiting_tickets_in_queue_order(store):
    store.create_ticket(_ticket("late", 1, score=10, created_at=20.0))
    store.create_ticket(_ticket("early", 2, score=10, created_at=10.0))
    store.create_ticket(_ticket("urgent", 3, score=150, created_at=30.0))
    store.create_ticket(_ticket("library", 1, score=500, service=ServiceType.LIBRARY))

    ids = [t.id for t in store.waiting_tickets(ServiceType.FINANCE)]
    assert ids == ["urgent", "early", "late"]
    assert [t.id for t in store.waiting_tickets(ServiceType.FINANCE, limit=2)] == ["urgent", "early"]
    assert store.find_one_ticket(service_type=ServiceType.FINANCE, status=TicketStatus.WAITING).id == "urgent"


def test_lock_timeout_raises_store_timeout():
    store = InMemoryStore(timeout=0.01)
    store._lock.acquire()
    try:
        with pytest.raises(StoreTimeout):
            store.find_ticket("t1")
    finally:
        store._lock.release()


def test_unknown_filter_fields_rejected(store):
    store.create_ticket(_ticket("t1", 1))
    store.create_counter(Counter(id="c1", name="Desk 1", service_types=frozenset({ServiceType.FINANCE})))

    with pytest.raises(ValidationError):
        store.count_tickets(colour="red")
    with pytest.raises(ValidationError):
        store.find_one_ticket(status=TicketStatus.WAITING, colour="red")
    with pytest.raises(ValidationError):
        store.list_counters(colour="red")
    assert store.count_tickets(status=TicketStatus.WAITING) == 1
