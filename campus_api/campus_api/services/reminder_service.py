"""Reminder list: unpaid bills inside the reminder window.

Nothing here sends messages; every dispatch is an explicit operator
action through the notification dispatcher.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from campus_core.billing.anchoring import today_in
from campus_core.billing.classifier import REMINDER_WINDOW_DAYS, reminder_view
from campus_core.state.repository import BillRepository, NotificationLogRepository
from sqlalchemy.ext.asyncio import AsyncSession

from campus_api.services.billing_service import bill_payload


class ReminderService:
    def __init__(
        self,
        session: AsyncSession,
        operator_id: str,
        timezone: str = "Asia/Kolkata",
        window_days: int = REMINDER_WINDOW_DAYS,
    ) -> None:
        self._bills = BillRepository(session, operator_id)
        self._logs = NotificationLogRepository(session, operator_id)
        self._timezone = timezone
        self._window_days = window_days

    async def list_reminders(self, campus_id: str | None = None, today: date | None = None) -> list[dict[str, Any]]:
        """Unpaid bills due within the window, nearest due date first.

        Each entry carries ``last_reminder_sent``: the time of the tenant's
        most recent successfully sent reminder, or ``None``.
        """
        today = today or today_in(self._timezone)
        horizon = today + timedelta(days=self._window_days)
        contexts = reminder_view(
            await self._bills.list_unpaid(campus_id, due_on_or_before=horizon),
            today,
            self._window_days,
        )
        last_sent = await self._logs.latest_sent_by_tenant(sorted({ctx.tenant.tenant_id for ctx in contexts}))

        reminders = []
        for ctx in contexts:
            payload = bill_payload(ctx, today)
            payload["last_reminder_sent"] = last_sent.get(ctx.tenant.tenant_id)
            reminders.append(payload)
        return reminders
