"""Temporal classification of bills and the per-view windowing rules.

``classify`` is the single source of truth for a bill's bucket; every
consumer (billing list, reminder list, dashboard widgets) calls it and then
applies its own window on top:

* **Billing view** -- unpaid bills due on or before today, plus every paid
  bill.  Future-dated bills are not shown.
* **Reminder view** -- unpaid bills due on or before ``today + 8``.
* **Dashboard** -- the 5 soonest-due unpaid bills not yet overdue and the
  5 most recently overdue unpaid bills.

Overdue is never read from storage.  It is computed from
``due_date < today`` on an unpaid bill every time.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, Protocol, Sequence, TypeVar

from campus_core.models.billing import BillBucket, PaymentStatus

REMINDER_WINDOW_DAYS = 8
DASHBOARD_LIST_SIZE = 5


class BillLike(Protocol):
    """Anything with a due date and a stored payment status."""

    due_date: date
    payment_status: str


BillT = TypeVar("BillT", bound=BillLike)


@dataclass(frozen=True)
class Classification:
    """Bucket, display label and signed day distance for one bill.

    ``days`` is ``due_date - today``: negative when overdue, zero when due
    today.
    """

    bucket: BillBucket
    label: str
    days: int


def _plural(count: int) -> str:
    return f"{count} day" if count == 1 else f"{count} days"


def _is_paid(status: str | PaymentStatus) -> bool:
    value = status.value if isinstance(status, PaymentStatus) else status
    return value == PaymentStatus.PAID.value


def classify_dates(due_date: date, payment_status: str | PaymentStatus, today: date) -> Classification:
    """Classify a ``(due_date, status)`` pair against *today*."""
    days = (due_date - today).days
    if _is_paid(payment_status):
        return Classification(BillBucket.PAID, "Paid", days)
    if days < 0:
        return Classification(BillBucket.OVERDUE, f"{_plural(-days)} overdue", days)
    if days == 0:
        return Classification(BillBucket.DUE_TODAY, "Due Today", days)
    return Classification(BillBucket.UPCOMING, f"{_plural(days)} left", days)


def classify(bill: BillLike, today: date) -> Classification:
    """Classify *bill* against *today*."""
    return classify_dates(bill.due_date, bill.payment_status, today)


def display_status(bill: BillLike, today: date) -> PaymentStatus:
    """Return the status shown to operators: Paid, Overdue or Pending."""
    if _is_paid(bill.payment_status):
        return PaymentStatus.PAID
    if bill.due_date < today:
        return PaymentStatus.OVERDUE
    return PaymentStatus.PENDING


# ---------------------------------------------------------------------------
# View windows
# ---------------------------------------------------------------------------


def in_billing_view(bill: BillLike, today: date) -> bool:
    """Paid bills always; unpaid bills only once due."""
    return _is_paid(bill.payment_status) or bill.due_date <= today


def in_reminder_view(bill: BillLike, today: date, window_days: int = REMINDER_WINDOW_DAYS) -> bool:
    """Unpaid bills due within *window_days* of *today*, overdue included."""
    if _is_paid(bill.payment_status):
        return False
    return bill.due_date <= today + timedelta(days=window_days)


_STATUS_RANK = {
    PaymentStatus.OVERDUE: 0,
    PaymentStatus.PENDING: 1,
    PaymentStatus.PAID: 2,
}


def billing_sort_key(bill: BillLike, today: date) -> tuple[int, int]:
    """Overdue, then pending, then paid; most recent due date first in each."""
    return (_STATUS_RANK[display_status(bill, today)], -bill.due_date.toordinal())


def reminder_sort_key(bill: BillLike) -> int:
    """Nearest due date first."""
    return bill.due_date.toordinal()


def billing_view(bills: Iterable[BillT], today: date, status: PaymentStatus | None = None) -> list[BillT]:
    """Apply the billing-view window, an optional status filter, and sort.

    *status* filters on the displayed status, so ``OVERDUE`` selects the
    unpaid bills whose due date has passed.
    """
    visible = [b for b in bills if in_billing_view(b, today)]
    if status is not None:
        visible = [b for b in visible if display_status(b, today) == status]
    return sorted(visible, key=lambda b: billing_sort_key(b, today))


def reminder_view(bills: Iterable[BillT], today: date, window_days: int = REMINDER_WINDOW_DAYS) -> list[BillT]:
    visible = [b for b in bills if in_reminder_view(b, today, window_days)]
    return sorted(visible, key=reminder_sort_key)


def select_dashboard(
    bills: Sequence[BillT],
    today: date,
    limit: int = DASHBOARD_LIST_SIZE,
) -> tuple[list[BillT], list[BillT]]:
    """Return ``(upcoming, overdue)`` top-N lists for the dashboard.

    Upcoming holds unpaid bills with ``due_date >= today`` ordered soonest
    first.  Overdue holds unpaid bills with ``due_date < today`` ordered most
    recently due first.
    """
    unpaid = [b for b in bills if not _is_paid(b.payment_status)]
    upcoming = sorted((b for b in unpaid if b.due_date >= today), key=lambda b: b.due_date)
    overdue = sorted((b for b in unpaid if b.due_date < today), key=lambda b: b.due_date, reverse=True)
    return upcoming[:limit], overdue[:limit]
