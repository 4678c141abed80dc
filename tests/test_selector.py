import pytest

from counter_queue.errors import NoAvailableCounter
from counter_queue.models import AvailabilityStatus, Counter, CounterStatus, PriorityTier, ServiceType, Ticket
from counter_queue.selector import CounterSelector

FINANCE = ServiceType.FINANCE


def _add_counter(store, cid, *, services=(FINANCE,), status=CounterStatus.OPEN, availability=AvailabilityStatus.AVAILABLE, current=None):
    store.create_counter(
        Counter(
            id=cid,
            name=f"Desk {cid}",
            service_types=frozenset(services),
            status=status,
            availability_status=availability,
            current_ticket=current,
        )
    )


def _queue_at(store, cid, n, start=100):
    for i in range(n):
        store.create_ticket(Ticket(id=f"{cid}-{i}", ticket_number=start + i, service_type=FINANCE, counter_id=cid))


def test_finance_example_prefers_lightly_loaded_counter(store):
    _add_counter(store, "C1", status=CounterStatus.BUSY, current="other")
    _add_counter(store, "C2")
    _queue_at(store, "C2", 2)

    selector = CounterSelector(store)
    loads = {m.counter_id: m.load_score for m in selector.counters_by_load(FINANCE)}
    assert loads == {"C1": 80, "C2": 20}

    assert selector.find_best_counter("Finance", "normal").counter_id == "C2"


def test_never_selects_closed_or_blocked_counters(store):
    _add_counter(store, "A", status=CounterStatus.CLOSED)
    _add_counter(store, "B", availability=AvailabilityStatus.MAINTENANCE)
    _add_counter(store, "C", availability=AvailabilityStatus.UNAVAILABLE)
    _add_counter(store, "D", services=(ServiceType.LIBRARY,))

    with pytest.raises(NoAvailableCounter):
        CounterSelector(store).find_best_counter(FINANCE)

    _add_counter(store, "E", status=CounterStatus.BUSY, current="x")
    for tier in PriorityTier:
        assert CounterSelector(store).find_best_counter(FINANCE, tier).counter_id == "E"


def test_normal_falls_back_to_least_loaded_when_all_busy(store):
    _add_counter(store, "A", status=CounterStatus.BUSY, current="x")
    _add_counter(store, "B", status=CounterStatus.BUSY, current="y")
    _queue_at(store, "A", 1)

    best = CounterSelector(store).find_best_counter(FINANCE, PriorityTier.NORMAL)
    assert best.counter_id == "B"
    assert best.load_score == 80


def test_ties_broken_by_counter_name(store):
    _add_counter(store, "B")
    _add_counter(store, "A")
    assert CounterSelector(store).find_best_counter(FINANCE, PriorityTier.VIP).counter_id == "A"


def test_excluded_counters_are_skipped(store):
    _add_counter(store, "A")
    _add_counter(store, "B")
    selector = CounterSelector(store)
    assert selector.find_best_counter(FINANCE, exclude={"A"}).counter_id == "B"
    with pytest.raises(NoAvailableCounter):
        selector.find_best_counter(FINANCE, exclude={"A", "B"})
