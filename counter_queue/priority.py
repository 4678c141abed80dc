"""Ticket priority scoring.

    score = tier base + submitter boosts + time boost

Tier base: normal 0, high 100, urgent 150, vip 200.
Submitter boosts (additive, may compound): final year +50, postgraduate +25,
accessibility needs +75, VIP +100.
Time boost: one point per five minutes waited, capped at 50, so a ticket's
score never decreases while it waits and is bounded.

Queue order: score descending, then created_at ascending (first come, first
served among equal scores).
"""

from __future__ import annotations

import math
from typing import Iterable

from .errors import ValidationError
from .models import PriorityTier, Submitter, Ticket

TIER_BASE_SCORES = {
    PriorityTier.NORMAL: 0,
    PriorityTier.HIGH: 100,
    PriorityTier.URGENT: 150,
    PriorityTier.VIP: 200,
}

FINAL_YEAR = "Final Year"
POSTGRADUATE = "Postgraduate"

FINAL_YEAR_BOOST = 50
POSTGRADUATE_BOOST = 25
ACCESSIBILITY_BOOST = 75
VIP_BOOST = 100

MINUTES_PER_TIME_POINT = 5
MAX_TIME_BOOST = 50

PRIORITY_LABELS = {
    PriorityTier.NORMAL: "Normal",
    PriorityTier.HIGH: "High Priority",
    PriorityTier.URGENT: "Urgent",
    PriorityTier.VIP: "VIP",
}


def time_boost(*, created_at: float, now: float) -> int:
    """Points earned by waiting: floor(minutes / 5), capped at 50."""
    minutes_waiting = max(0.0, now - created_at) / 60.0
    return min(math.floor(minutes_waiting / MINUTES_PER_TIME_POINT), MAX_TIME_BOOST)


def submitter_boost(submitter: Submitter | None) -> int:
    if submitter is None:
        return 0
    boost = 0
    if submitter.student_year == FINAL_YEAR:
        boost += FINAL_YEAR_BOOST
    if submitter.student_year == POSTGRADUATE:
        boost += POSTGRADUATE_BOOST
    if submitter.has_accessibility_needs:
        boost += ACCESSIBILITY_BOOST
    if submitter.is_vip:
        boost += VIP_BOOST
    return boost


def compute_priority_score(
    *,
    tier: PriorityTier,
    created_at: float | None,
    now: float,
    submitter: Submitter | None = None,
) -> int:
    """Compute a ticket's priority score at wall-clock instant `now`.

    Args:
        tier: the ticket's priority tier.
        created_at: epoch seconds the ticket was created. None disables the time boost.
        now: epoch seconds to score at.
        submitter: optional submitter attributes.

    Returns:
        Non-negative int.
    """
    if tier not in TIER_BASE_SCORES:
        raise ValidationError(f"unknown priority tier: {tier!r}")

    score = TIER_BASE_SCORES[tier] + submitter_boost(submitter)
    if created_at is not None:
        score += time_boost(created_at=created_at, now=now)
    return score


def score_ticket(ticket: Ticket, *, now: float, tier: PriorityTier | None = None) -> int:
    return compute_priority_score(
        tier=tier or ticket.priority_tier,
        created_at=ticket.created_at,
        now=now,
        submitter=ticket.submitter,
    )


def determine_priority_tier(submitter: Submitter | None) -> PriorityTier:
    """Initial tier for a ticket created without an explicit one."""
    if submitter is None:
        return PriorityTier.NORMAL
    if submitter.is_vip:
        return PriorityTier.VIP
    if submitter.has_accessibility_needs or submitter.student_year == FINAL_YEAR:
        return PriorityTier.HIGH
    return PriorityTier.NORMAL


def priority_label(tier: PriorityTier | str) -> str:
    try:
        return PRIORITY_LABELS[PriorityTier(tier)]
    except ValueError:
        return "Unknown"


def priority_sort_key(ticket: Ticket) -> tuple[int, float]:
    return (-ticket.priority_score, ticket.created_at)


def sort_by_priority(tickets: Iterable[Ticket]) -> list[Ticket]:
    return sorted(tickets, key=priority_sort_key)
