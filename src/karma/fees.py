"""Donation fee calculation and recurring pledge scheduling."""

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .models import Frequency

# Candidates for configuration; fixed for now.
PLATFORM_FEE_RATE = Decimal("0.01")
CENTS = Decimal("0.01")
WEEKLY_INTERVAL = timedelta(days=7)


@dataclass(frozen=True)
class FeeBreakdown:
    """How a gross donation splits between the platform and the nonprofit."""
    amount: Decimal
    platform_fee: Decimal
    net_amount: Decimal

    def to_dict(self) -> dict:
        return {
            "amount": float(self.amount),
            "platform_fee": float(self.platform_fee),
            "net_amount": float(self.net_amount),
        }


def coerce_amount(value) -> Decimal:
    """Turn user input into a non-negative amount in cents.

    Anything non-numeric, negative, non-finite or too large to hold in
    cents becomes zero.
    """
    if value is None or isinstance(value, bool):
        return Decimal("0.00")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0.00")
    if not amount.is_finite() or amount < 0:
        return Decimal("0.00")
    try:
        amount = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return Decimal("0.00")
    # "-0" passes the sign check
    return abs(amount)


def split_donation(amount) -> FeeBreakdown:
    """Split a gross donation into platform fee and net amount.

    The fee is rounded to the cent and the net amount is whatever is left,
    so amount == platform_fee + net_amount holds exactly.
    """
    gross = coerce_amount(amount)
    fee = (gross * PLATFORM_FEE_RATE).quantize(CENTS, rounding=ROUND_HALF_UP)
    return FeeBreakdown(amount=gross, platform_fee=fee, net_amount=gross - fee)


def next_donation_date(frequency, start: datetime) -> datetime:
    """Date of the next charge for a recurring pledge started at `start`.

    Monthly pledges keep the day of month, clamped to the last day of
    shorter months (Jan 31 -> Feb 28/29).
    """
    frequency = Frequency(frequency)
    if frequency is Frequency.WEEKLY:
        return start + WEEKLY_INTERVAL

    year, month = (start.year + 1, 1) if start.month == 12 else (start.year, start.month + 1)
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)
