"""
Fixed-point amounts and calendar-month periods used by billing.

All datetimes handled here are naive UTC, the same as stored timestamps.
Calendar dates (periods, due days, lease dates) are taken from that UTC
clock; the scheduler alone works in SCHEDULER_TIMEZONE.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import NamedTuple, Optional, Union

from dateutil.relativedelta import relativedelta

CENT = Decimal("0.01")
MS_PER_DAY = 24 * 60 * 60 * 1000

# Due dates never land past the 28th so every month has the day.
MAX_DUE_DAY = 28


class Period(NamedTuple):
    start_date: date
    end_date: date

    @property
    def label(self) -> str:
        return self.start_date.strftime("%Y-%m")

    def contains(self, d: date) -> bool:
        return self.start_date <= d <= self.end_date


def current_time() -> datetime:
    """Naive UTC 'now', matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def as_datetime(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day)


def to_money(value) -> Decimal:
    """Quantize to cents, rounding half away from zero."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValueError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def month_bounds(value: Union[date, datetime]) -> Period:
    """First and last calendar day of the month containing ``value``."""
    start = as_date(value).replace(day=1)
    end = start + relativedelta(months=1) - timedelta(days=1)
    return Period(start, end)


def parse_month(label: str) -> date:
    """Parse ``YYYY-MM`` into the first day of that month."""
    try:
        year, month_num = map(int, label.split("-"))
        return date(year, month_num, 1)
    except (ValueError, AttributeError):
        raise ValueError(f"Invalid month format {label!r}. Use YYYY-MM")


def clamp_due_day(value: Union[date, datetime]):
    if value.day > MAX_DUE_DAY:
        return value.replace(day=MAX_DUE_DAY)
    return value


def split_evenly(total, n: int) -> Decimal:
    """
    One share of ``total`` split ``n`` ways, rounded to cents.

    Shares are rounded independently, so ``n`` shares can differ from
    ``total`` by up to ``n`` cents. The last share is not adjusted.
    """
    if n <= 0:
        raise ValueError("Cannot split an amount between zero payers")
    return to_money(Decimal(str(total)) / Decimal(n))


def days_until(target: Union[date, datetime], now: Optional[datetime] = None) -> int:
    """Whole days until ``target``: ceiling of the millisecond delta over one day."""
    now = now or current_time()
    delta = as_datetime(target) - now
    delta_ms = delta.days * MS_PER_DAY + delta.seconds * 1000 + delta.microseconds // 1000
    return -(-delta_ms // MS_PER_DAY)
