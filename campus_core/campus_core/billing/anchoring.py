"""Calendar anchoring for recurring monthly bills.

A tenant's *anchor day* is the day-of-month of their move-in date.  Every
cycle is billed on that day, clamped to the last day of shorter months::

    billing_day = min(anchor_day, days_in_month(year, month))

so a tenant who moved in on the 31st is billed on 28/29 Feb, 30 Apr and
31 May.  All functions here are pure; "today" is always passed in.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from campus_core.exceptions import ValidationError

GRACE_PERIOD_DAYS = 7


def days_in_month(year: int, month: int) -> int:
    """Return the number of days in *month* of *year*."""
    if not 1 <= month <= 12:
        raise ValidationError(f"Month must be between 1 and 12, got {month}")
    return calendar.monthrange(year, month)[1]


def billing_day(anchor_day: int, year: int, month: int) -> int:
    """Return the billing day for *anchor_day* in the given month."""
    if not 1 <= anchor_day <= 31:
        raise ValidationError(f"Anchor day must be between 1 and 31, got {anchor_day}")
    return min(anchor_day, days_in_month(year, month))


def billing_date(anchor_day: int, year: int, month: int) -> date:
    return date(year, month, billing_day(anchor_day, year, month))


def cycle_month(day: date) -> date:
    """Return the cycle key (first day of the month) containing *day*."""
    return day.replace(day=1)


def due_date_for(bill_date: date, grace_days: int = GRACE_PERIOD_DAYS) -> date:
    """Return the due date for a bill issued on *bill_date*.

    The date rolls over month and year boundaries naturally, e.g. a bill
    issued on 30 Apr is due on 7 May.
    """
    if grace_days < 0:
        raise ValidationError(f"Grace period cannot be negative, got {grace_days}")
    return bill_date + timedelta(days=grace_days)


def is_billing_day(move_in_date: date, today: date) -> bool:
    """Return True when *today* is the tenant's billing day this month."""
    return today.day == billing_day(move_in_date.day, today.year, today.month)


def add_months(month_start: date, months: int) -> date:
    """Shift a first-of-month date by *months* (may be negative)."""
    index = month_start.year * 12 + (month_start.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def trailing_months(today: date, months: int) -> list[date]:
    """Return the first days of the *months* calendar months ending with *today*'s.

    Oldest first.  ``trailing_months(date(2026, 3, 9), 3)`` gives
    January, February and March 2026.
    """
    if months < 1:
        raise ValidationError(f"Window must cover at least one month, got {months}")
    current = cycle_month(today)
    return [add_months(current, offset) for offset in range(-(months - 1), 1)]


def month_key(day: date) -> str:
    """``YYYY-MM`` label used to bucket records by calendar month."""
    return f"{day.year:04d}-{day.month:02d}"


def parse_month(value: str | date) -> date:
    """Parse ``YYYY-MM`` or an ISO date into a cycle key."""
    if isinstance(value, date):
        return cycle_month(value)
    text = value.strip()
    try:
        if len(text) == 7:
            parsed = datetime.strptime(text, "%Y-%m").date()
        else:
            parsed = date.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"Invalid bill month '{value}', expected YYYY-MM") from exc
    return cycle_month(parsed)


def today_in(timezone_name: str) -> date:
    """Return the current calendar date in *timezone_name*."""
    return datetime.now(ZoneInfo(timezone_name)).date()
