"""Reminder endpoints: the reminder list, single sends and bulk sends."""

from __future__ import annotations

from typing import Any

from campus_core.models.notification import NotificationStatus
from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from campus_api.dependencies import OperatorDep, ProviderDep, SessionDep, SettingsDep
from campus_api.schemas import BulkReminderRequest
from campus_api.services.notification_dispatcher import NotificationDispatcher
from campus_api.services.reminder_service import ReminderService

router = APIRouter(prefix="/reminders", tags=["reminders"])


@router.get("")
async def list_reminders(
    session: SessionDep,
    operator_id: OperatorDep,
    settings: SettingsDep,
    campus_id: str | None = Query(None),
) -> list[dict[str, Any]]:
    """Unpaid bills due within the reminder window, nearest first."""
    service = ReminderService(session, operator_id, settings.billing_timezone, settings.reminder_window_days)
    return await service.list_reminders(campus_id=campus_id)


@router.post("/bulk")
async def send_bulk_reminders(
    body: BulkReminderRequest,
    session: SessionDep,
    operator_id: OperatorDep,
    provider: ProviderDep,
) -> dict[str, int]:
    result = await NotificationDispatcher(session, provider, operator_id=operator_id).send_bulk_reminders(
        body.bill_ids
    )
    return result.model_dump()


@router.post("/{bill_id}/send")
async def send_reminder(
    bill_id: str,
    session: SessionDep,
    operator_id: OperatorDep,
    provider: ProviderDep,
) -> JSONResponse:
    """Send one payment reminder.  ``202`` means queued as pending."""
    result = await NotificationDispatcher(session, provider, operator_id=operator_id).send_reminder(bill_id)
    status_code = 202 if result.status == NotificationStatus.PENDING else 200
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))
