import pytest

from counter_queue.errors import ValidationError
from counter_queue.models import PriorityTier, ServiceType, Submitter, Ticket
from counter_queue.priority import (
    compute_priority_score,
    determine_priority_tier,
    priority_label,
    sort_by_priority,
    time_boost,
)

T0 = 1_700_000_000.0


def test_tier_base_scores():
    scores = {tier: compute_priority_score(tier=tier, created_at=T0, now=T0) for tier in PriorityTier}
    assert scores == {
        PriorityTier.NORMAL: 0,
        PriorityTier.HIGH: 100,
        PriorityTier.URGENT: 150,
        PriorityTier.VIP: 200,
    }


def test_submitter_boosts_add_up():
    s = Submitter(student_year="Final Year", has_accessibility_needs=True, is_vip=True)
    assert compute_priority_score(tier=PriorityTier.NORMAL, created_at=T0, now=T0, submitter=s) == 225

    pg = Submitter(student_year="Postgraduate")
    assert compute_priority_score(tier=PriorityTier.HIGH, created_at=T0, now=T0, submitter=pg) == 125


def test_time_boost_is_floored_and_capped():
    assert time_boost(created_at=T0, now=T0 + 4 * 60) == 0
    assert time_boost(created_at=T0, now=T0 + 10 * 60) == 2
    assert time_boost(created_at=T0, now=T0 + 24 * 3600) == 50
    # clock skew never produces a negative boost
    assert time_boost(created_at=T0, now=T0 - 600) == 0


def test_score_never_decreases_while_waiting():
    previous = -1
    for minutes in range(0, 400, 7):
        score = compute_priority_score(tier=PriorityTier.URGENT, created_at=T0, now=T0 + minutes * 60)
        assert score >= previous
        assert score - 150 == min(minutes // 5, 50)
        previous = score


def test_missing_created_at_disables_time_boost():
    assert compute_priority_score(tier=PriorityTier.HIGH, created_at=None, now=T0 + 3600) == 100


def test_unknown_tier_rejected():
    with pytest.raises(ValidationError):
        compute_priority_score(tier="bogus", created_at=T0, now=T0)


def test_determine_priority_tier():
    assert determine_priority_tier(None) == PriorityTier.NORMAL
    assert determine_priority_tier(Submitter(is_vip=True, has_accessibility_needs=True)) == PriorityTier.VIP
    assert determine_priority_tier(Submitter(has_accessibility_needs=True)) == PriorityTier.HIGH
    assert determine_priority_tier(Submitter(student_year="Final Year")) == PriorityTier.HIGH
    assert determine_priority_tier(Submitter(student_year="Postgraduate")) == PriorityTier.NORMAL


def test_priority_label():
    assert priority_label(PriorityTier.HIGH) == "High Priority"
    assert priority_label("vip") == "VIP"
    assert priority_label("bogus") == "Unknown"


def test_higher_score_first_then_oldest_first():
    a = Ticket(id="a", ticket_number=1, service_type=ServiceType.FINANCE, priority_score=10, created_at=T0 + 5)
    b = Ticket(id="b", ticket_number=2, service_type=ServiceType.FINANCE, priority_score=10, created_at=T0)
    c = Ticket(id="c", ticket_number=3, service_type=ServiceType.FINANCE, priority_score=150, created_at=T0 + 9)
    assert [t.id for t in sort_by_priority([a, b, c])] == ["c", "b", "a"]
