import pytest

from counter_queue.errors import ValidationError
from counter_queue.load import LoadMetricCalculator, compute_load_metric, estimate_wait_minutes
from counter_queue.models import AvailabilityStatus, Counter, CounterStatus, ServiceType, Ticket


def _counter(status=CounterStatus.OPEN, availability=AvailabilityStatus.AVAILABLE, current=None):
    return Counter(
        id="c1",
        name="Desk 1",
        service_types=frozenset({ServiceType.FINANCE}),
        status=status,
        availability_status=availability,
        current_ticket=current,
    )


def test_open_counter_load_grows_with_queue_and_caps_at_80():
    assert compute_load_metric(_counter(), 0).load_score == 0
    m = compute_load_metric(_counter(), 3)
    assert m.total_queue_length == 3
    assert m.load_score == 30
    assert m.estimated_wait_minutes == 6
    assert compute_load_metric(_counter(), 20).load_score == 80


def test_busy_counter_load():
    busy = _counter(status=CounterStatus.BUSY, current="t1")
    m = compute_load_metric(busy, 2)
    assert m.serving_count == 1
    assert m.total_queue_length == 3
    assert m.load_score == 90
    assert compute_load_metric(busy, 0).load_score == 80
    assert compute_load_metric(busy, 10).load_score == 99


@pytest.mark.parametrize(
    "counter",
    [
        _counter(status=CounterStatus.CLOSED),
        _counter(availability=AvailabilityStatus.MAINTENANCE),
        _counter(availability=AvailabilityStatus.UNAVAILABLE),
        _counter(availability=AvailabilityStatus.ON_BREAK),
    ],
)
def test_counters_not_working_are_fully_loaded(counter):
    assert compute_load_metric(counter, 0).load_score == 100
    assert compute_load_metric(counter, 50).load_score == 100


def test_load_score_stays_within_bounds():
    for status in CounterStatus:
        for availability in AvailabilityStatus:
            for waiting in (0, 1, 5, 17, 1000):
                current = "t1" if status == CounterStatus.BUSY else None
                score = compute_load_metric(_counter(status, availability, current), waiting).load_score
                assert 0 <= score <= 100


def test_waiting_count_none_is_zero_and_negative_rejected():
    assert compute_load_metric(_counter(), None).waiting_count == 0
    with pytest.raises(ValidationError):
        compute_load_metric(_counter(), -1)


def test_wait_estimate_never_negative():
    assert estimate_wait_minutes(0) == 0
    assert estimate_wait_minutes(1) == 0
    assert estimate_wait_minutes(4) == 9


def test_calculator_counts_waiting_tickets_at_counter(store):
    store.create_counter(_counter())
    for n in (1, 2):
        store.create_ticket(Ticket(id=f"t{n}", ticket_number=n, service_type=ServiceType.FINANCE, counter_id="c1"))
    store.create_ticket(Ticket(id="t3", ticket_number=3, service_type=ServiceType.FINANCE))

    m = LoadMetricCalculator(store).calculate(store.find_counter("c1"))
    assert m.waiting_count == 2
    assert m.load_score == 20
