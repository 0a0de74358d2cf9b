"""Bill endpoints: generation, billing view, manual bills, charges, payments, receipts."""

from __future__ import annotations

import logging
from typing import Any

from campus_core.billing.anchoring import today_in
from campus_core.models.notification import NotificationStatus
from fastapi import APIRouter, BackgroundTasks, Query
from fastapi.responses import JSONResponse, Response

from campus_api.dependencies import (
    OperatorDep,
    ProviderDep,
    SessionDep,
    SessionFactoryDep,
    SettingsDep,
)
from campus_api.schemas import (
    CreateBillRequest,
    GenerateBillsRequest,
    MarkPaidRequest,
    UpdateChargesRequest,
)
from campus_api.services.bill_generator import BillGenerator
from campus_api.services.billing_service import BillingService
from campus_api.services.notification_dispatcher import NotificationDispatcher, send_confirmation_in_background
from campus_api.services.receipt_service import ReceiptService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bills", tags=["bills"])


@router.post("/generate")
async def generate_bills(
    operator_id: OperatorDep,
    session_factory: SessionFactoryDep,
    settings: SettingsDep,
    body: GenerateBillsRequest | None = None,
) -> dict[str, Any]:
    """Run bill generation for the operator's tenants.

    Safe to call repeatedly: tenants already billed for the cycle are
    reported as ``exists``.
    """
    run_date = (body.run_date if body else None) or today_in(settings.billing_timezone)
    generator = BillGenerator(session_factory, settings.grace_period_days, operator_id=operator_id)
    report = await generator.generate(run_date)
    return report.model_dump(mode="json")


@router.get("")
async def list_bills(
    session: SessionDep,
    operator_id: OperatorDep,
    settings: SettingsDep,
    campus_id: str | None = Query(None),
    status: str | None = Query(None, description="Pending, Overdue, Paid or all"),
) -> list[dict[str, Any]]:
    service = BillingService(session, operator_id, settings.billing_timezone, settings.grace_period_days)
    return await service.list_bills(campus_id=campus_id, status=status)


@router.post("", status_code=201)
async def create_bill(
    body: CreateBillRequest,
    session: SessionDep,
    operator_id: OperatorDep,
    settings: SettingsDep,
) -> dict[str, Any]:
    service = BillingService(session, operator_id, settings.billing_timezone, settings.grace_period_days)
    return await service.create_bill(
        body.tenant_id,
        body.bill_month,
        rent_amount=body.rent_amount,
        electricity_amount=body.electricity_amount,
        water_amount=body.water_amount,
        other_charges=body.other_charges,
        due_date=body.due_date,
        notes=body.notes,
    )


@router.get("/{bill_id}")
async def get_bill(
    bill_id: str,
    session: SessionDep,
    operator_id: OperatorDep,
    settings: SettingsDep,
) -> dict[str, Any]:
    service = BillingService(session, operator_id, settings.billing_timezone, settings.grace_period_days)
    return await service.get_bill(bill_id)


@router.patch("/{bill_id}/charges")
async def update_charges(
    bill_id: str,
    body: UpdateChargesRequest,
    session: SessionDep,
    operator_id: OperatorDep,
    settings: SettingsDep,
) -> dict[str, Any]:
    service = BillingService(session, operator_id, settings.billing_timezone, settings.grace_period_days)
    return await service.update_charges(
        bill_id,
        electricity_amount=body.electricity_amount,
        water_amount=body.water_amount,
        other_charges=body.other_charges,
        notes=body.notes,
    )


@router.post("/{bill_id}/mark-paid")
async def mark_paid(
    bill_id: str,
    body: MarkPaidRequest,
    background_tasks: BackgroundTasks,
    session: SessionDep,
    session_factory: SessionFactoryDep,
    operator_id: OperatorDep,
    provider: ProviderDep,
    settings: SettingsDep,
) -> dict[str, Any]:
    """Record a payment, then send the confirmation in the background.

    The payment is committed before the confirmation is scheduled so the
    background dispatch reloads the bill in its paid state.
    """
    service = BillingService(session, operator_id, settings.billing_timezone, settings.grace_period_days)
    bill = await service.mark_paid(bill_id, body.payment_method, body.payment_date)
    await session.commit()

    if body.send_confirmation:
        background_tasks.add_task(
            send_confirmation_in_background,
            session_factory,
            provider,
            bill_id,
            operator_id=operator_id,
            storage_path=settings.receipt_storage_path,
            public_base_url=settings.public_base_url,
        )
    return bill


@router.post("/{bill_id}/confirmation")
async def send_confirmation(
    bill_id: str,
    session: SessionDep,
    operator_id: OperatorDep,
    provider: ProviderDep,
    settings: SettingsDep,
) -> JSONResponse:
    """Send (or re-report) the payment confirmation for a paid bill."""
    receipts = ReceiptService(session, operator_id, settings.receipt_storage_path, settings.public_base_url)
    result = await NotificationDispatcher(session, provider, receipts, operator_id).send_payment_confirmation(bill_id)
    status_code = 202 if result.status == NotificationStatus.PENDING else 200
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


@router.get("/{bill_id}/receipt")
async def get_receipt(bill_id: str, session: SessionDep, settings: SettingsDep) -> Response:
    """Stream the receipt PDF.

    Not operator-scoped: the provider fetches this URL when delivering the
    confirmation document.
    """
    receipts = ReceiptService(session, None, settings.receipt_storage_path, settings.public_base_url)
    document = await receipts.render_receipt(bill_id)
    return Response(
        content=document.pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{document.filename}"'},
    )
