"""Financial rollups and the dashboard summary.

Rows are fetched once per request and folded by the pure functions in
``campus_core.billing.rollup``; nothing is cached.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from campus_core.billing.anchoring import add_months, cycle_month, month_key, today_in, trailing_months
from campus_core.billing.classifier import select_dashboard
from campus_core.billing.rollup import (
    campus_ranking,
    monthly_series,
    occupancy_rate,
    rollup_totals,
)
from campus_core.exceptions import ValidationError
from campus_core.state.repository import (
    BillRepository,
    ExpenseRepository,
    RoomRepository,
    TenantRepository,
)
from sqlalchemy.ext.asyncio import AsyncSession

from campus_api.services.billing_service import bill_payload

logger = logging.getLogger(__name__)

_MAX_MONTHS = 36
_DASHBOARD_MONTHS = 6


class RollupService:
    """Revenue, expense and occupancy aggregates for one operator."""

    def __init__(self, session: AsyncSession, operator_id: str, timezone: str = "Asia/Kolkata") -> None:
        self._bills = BillRepository(session, operator_id)
        self._expenses = ExpenseRepository(session, operator_id)
        self._rooms = RoomRepository(session, operator_id)
        self._tenants = TenantRepository(session, operator_id)
        self._timezone = timezone

    async def _occupancy(self, campus_id: str | None) -> dict[str, int]:
        capacity = await self._rooms.active_capacity(campus_id)
        occupied = await self._tenants.count_active(campus_id)
        return {
            "rate": occupancy_rate(occupied, capacity),
            "total_beds": capacity,
            "occupied_beds": occupied,
        }

    async def get_financial_rollup(
        self,
        campus_id: str | None = None,
        months: int = 6,
        today: date | None = None,
    ) -> dict[str, Any]:
        """Monthly series, window totals, campus ranking and occupancy.

        Parameters
        ----------
        campus_id:
            Restrict every aggregate to one campus.
        months:
            Length of the trailing window, including the current month.
        """
        if not 1 <= months <= _MAX_MONTHS:
            raise ValidationError(f"months must be between 1 and {_MAX_MONTHS}, got {months}")
        today = today or today_in(self._timezone)
        window = trailing_months(today, months)
        start, end = window[0], add_months(window[-1], 1)

        paid = await self._bills.paid_amounts(start, campus_id, before=end)
        expenses = await self._expenses.amounts_since(start, campus_id)
        series = monthly_series(today, months, paid, expenses)
        totals = rollup_totals(series)

        logger.info(
            "Rollup months=%d campus=%s revenue=%.2f expenses=%.2f",
            months,
            campus_id or "all",
            totals.total_revenue,
            totals.total_expenses,
        )
        return {
            "months": months,
            "monthly_series": [row.model_dump() for row in series],
            "campus_ranking": [entry.model_dump() for entry in campus_ranking(today, months, paid)],
            "occupancy": await self._occupancy(campus_id),
            **totals.model_dump(),
        }

    async def dashboard_summary(self, campus_id: str | None = None, today: date | None = None) -> dict[str, Any]:
        """Occupancy, this month's money, unpaid exposure and the two top-5 lists."""
        today = today or today_in(self._timezone)
        start = trailing_months(today, _DASHBOARD_MONTHS)[0]
        current = month_key(cycle_month(today))

        paid = await self._bills.paid_amounts(start, campus_id, before=add_months(cycle_month(today), 1))
        expenses = await self._expenses.amounts_since(start, campus_id)
        series = monthly_series(today, _DASHBOARD_MONTHS, paid, expenses)
        this_month = next(row for row in series if row.month == current)

        unpaid = await self._bills.list_unpaid(campus_id)
        upcoming, overdue = select_dashboard(unpaid, today)

        return {
            "occupancy": await self._occupancy(campus_id),
            "monthly_revenue": this_month.revenue,
            "monthly_expenses": this_month.expenses,
            "pending_amount": sum(ctx.bill.total_amount for ctx in unpaid),
            "overdue_count": sum(1 for ctx in unpaid if ctx.bill.due_date < today),
            "upcoming_bills": [bill_payload(ctx, today) for ctx in upcoming],
            "overdue_bills": [bill_payload(ctx, today) for ctx in overdue],
            "revenue_expense_series": [
                {"month": row.label, "revenue": row.revenue, "expenses": row.expenses} for row in series
            ],
        }
