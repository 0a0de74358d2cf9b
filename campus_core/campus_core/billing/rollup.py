"""Monthly financial rollups over bill and expense records.

Revenue is the sum of paid bill totals bucketed by the calendar month of
the *payment* date.  Expenses are bucketed by expense date.  Records
outside the trailing window are ignored.  All functions are pure; the
service layer fetches the rows and passes them in.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Iterable

from pydantic import BaseModel, Field

from campus_core.billing.anchoring import add_months, month_key, trailing_months


@dataclass(frozen=True)
class PaidAmount:
    """One paid bill as seen by the aggregator."""

    campus_id: str
    campus_name: str
    amount: float
    payment_date: date


@dataclass(frozen=True)
class ExpenseAmount:
    amount: float
    expense_date: date


class MonthlyRollup(BaseModel):
    month: str = Field(description="YYYY-MM")
    label: str = Field(description="Short month name, e.g. 'Oct'.")
    revenue: float = 0.0
    expenses: float = 0.0
    profit: float = 0.0


class CampusRevenue(BaseModel):
    campus_id: str
    campus_name: str
    revenue: float = 0.0


class RollupTotals(BaseModel):
    """Window totals and period-over-period change percentages."""

    total_revenue: float = 0.0
    total_expenses: float = 0.0
    total_profit: float = 0.0
    revenue_change: int = 0
    expense_change: int = 0
    profit_change: int = 0


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def monthly_series(
    today: date,
    months: int,
    paid: Iterable[PaidAmount],
    expenses: Iterable[ExpenseAmount],
) -> list[MonthlyRollup]:
    """Fold records into one row per month of the trailing window, oldest first."""
    window = trailing_months(today, months)
    rows = {month_key(m): MonthlyRollup(month=month_key(m), label=m.strftime("%b")) for m in window}

    for record in paid:
        row = rows.get(month_key(record.payment_date))
        if row is not None:
            row.revenue += record.amount
    for record in expenses:
        row = rows.get(month_key(record.expense_date))
        if row is not None:
            row.expenses += record.amount

    for row in rows.values():
        row.profit = row.revenue - row.expenses
    return [rows[month_key(m)] for m in window]


def change_percent(recent: float, previous: float) -> int:
    """Percentage change from *previous* to *recent*, rounded.

    Returns 100 when there was nothing before and something now, and 0 when
    both are zero.
    """
    if previous == 0:
        return 100 if recent > 0 else 0
    return _round_half_up((recent - previous) / previous * 100)


def _halves(values: list[float]) -> tuple[float, float]:
    """Sum of the first and last ``len // 2`` values.

    With an odd count the middle value belongs to neither half; with a
    single value both halves are empty.
    """
    half = len(values) // 2
    if half == 0:
        return 0.0, 0.0
    return sum(values[:half]), sum(values[-half:])


def rollup_totals(series: list[MonthlyRollup]) -> RollupTotals:
    revenue = [row.revenue for row in series]
    expenses = [row.expenses for row in series]
    profit = [row.profit for row in series]

    total_revenue = sum(revenue)
    total_expenses = sum(expenses)
    prev_rev, recent_rev = _halves(revenue)
    prev_exp, recent_exp = _halves(expenses)
    prev_profit, recent_profit = _halves(profit)

    return RollupTotals(
        total_revenue=total_revenue,
        total_expenses=total_expenses,
        total_profit=total_revenue - total_expenses,
        revenue_change=change_percent(recent_rev, prev_rev),
        expense_change=change_percent(recent_exp, prev_exp),
        profit_change=change_percent(recent_profit, prev_profit),
    )


def occupancy_rate(occupied: int, capacity: int) -> int:
    """Occupied beds as a whole-number percentage of capacity."""
    if capacity <= 0:
        return 0
    return _round_half_up(occupied / capacity * 100)


def campus_ranking(today: date, months: int, paid: Iterable[PaidAmount]) -> list[CampusRevenue]:
    """Paid revenue per campus inside the trailing window, highest first."""
    window = trailing_months(today, months)
    start, end = window[0], add_months(window[-1], 1)
    totals: dict[str, CampusRevenue] = {}
    for record in paid:
        if not start <= record.payment_date < end:
            continue
        entry = totals.setdefault(
            record.campus_id,
            CampusRevenue(campus_id=record.campus_id, campus_name=record.campus_name),
        )
        entry.revenue += record.amount
    return sorted(totals.values(), key=lambda c: (-c.revenue, c.campus_name))
