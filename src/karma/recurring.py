"""Lifecycle of recurring donation pledges."""

from datetime import datetime
from typing import Iterable

from .models import RecurringDonation, RecurringStatus

TRANSITIONS = {
    RecurringStatus.ACTIVE: frozenset({RecurringStatus.PAUSED, RecurringStatus.CANCELLED}),
    RecurringStatus.PAUSED: frozenset({RecurringStatus.ACTIVE, RecurringStatus.CANCELLED}),
    RecurringStatus.CANCELLED: frozenset(),
}


def available_transitions(status) -> frozenset:
    """Statuses a pledge in `status` may move to. Cancelled is terminal."""
    return TRANSITIONS[RecurringStatus(status)]


def is_allowed(current, target) -> bool:
    return RecurringStatus(target) in available_transitions(current)


def upcoming(pledges: Iterable[RecurringDonation]) -> list[RecurringDonation]:
    """Pledges ordered by next charge date; undated ones last."""
    return sorted(
        pledges,
        key=lambda p: (p.next_donation_date is None,
                       p.next_donation_date or datetime.max),
    )
