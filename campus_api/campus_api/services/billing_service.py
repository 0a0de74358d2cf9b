"""Operator-facing bill management.

Lists bills through the billing-view window, creates bills manually,
edits utility charges on unpaid bills and marks bills paid.  Payment
confirmations are not sent from here; the router schedules them after the
payment is committed.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from campus_core.billing.anchoring import (
    GRACE_PERIOD_DAYS,
    billing_date,
    due_date_for,
    parse_month,
    today_in,
)
from campus_core.billing.classifier import billing_view, classify, display_status
from campus_core.exceptions import ConflictError, NotFoundError, ValidationError
from campus_core.models.billing import PaymentMethod, PaymentStatus
from campus_core.state.repository import BillContext, BillRepository, TenantRepository
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def bill_payload(context: BillContext, today: date) -> dict[str, Any]:
    """Serialisable view of a bill with its classification against *today*."""
    bill = context.bill
    classification = classify(context, today)
    return {
        "bill_id": bill.bill_id,
        "tenant_id": context.tenant.tenant_id,
        "tenant_name": context.tenant.full_name,
        "phone": context.tenant.phone,
        "room_no": context.room_no,
        "campus_id": context.campus.campus_id,
        "campus_name": context.campus.name,
        "bill_month": bill.bill_month,
        "rent_amount": bill.rent_amount,
        "electricity_amount": bill.electricity_amount,
        "water_amount": bill.water_amount,
        "other_charges": bill.other_charges,
        "total_amount": bill.total_amount,
        "due_date": bill.due_date,
        "payment_status": display_status(context, today).value,
        "bucket": classification.bucket.value,
        "label": classification.label,
        "payment_method": bill.payment_method,
        "payment_date": bill.payment_date,
        "notes": bill.notes,
        "notification_opt_in": context.tenant.notification_opt_in,
    }


def _parse_status(status: str | None) -> PaymentStatus | None:
    if status is None or status == "" or status.lower() == "all":
        return None
    for candidate in PaymentStatus:
        if candidate.value.lower() == status.lower():
            return candidate
    raise ValidationError(f"Unknown payment status '{status}'")


def _parse_method(method: str) -> PaymentMethod:
    for candidate in PaymentMethod:
        if candidate.value.lower() == (method or "").lower():
            return candidate
    allowed = ", ".join(m.value for m in PaymentMethod)
    raise ValidationError(f"Unknown payment method '{method}'. Expected one of: {allowed}")


def _check_amounts(**amounts: float | None) -> None:
    negative = sorted(name for name, value in amounts.items() if value is not None and value < 0)
    if negative:
        raise ValidationError(f"Amounts cannot be negative: {', '.join(negative)}")


class BillingService:
    """Bill listing and mutation for one operator."""

    def __init__(
        self,
        session: AsyncSession,
        operator_id: str,
        timezone: str = "Asia/Kolkata",
        grace_period_days: int = GRACE_PERIOD_DAYS,
    ) -> None:
        self._session = session
        self._operator_id = operator_id
        self._timezone = timezone
        self._grace_period_days = grace_period_days
        self._bills = BillRepository(session, operator_id)
        self._tenants = TenantRepository(session, operator_id)

    def _today(self, today: date | None) -> date:
        return today or today_in(self._timezone)

    async def list_bills(
        self,
        campus_id: str | None = None,
        status: str | None = None,
        today: date | None = None,
    ) -> list[dict[str, Any]]:
        """Billing view: due or overdue unpaid bills plus every paid bill.

        Ordered overdue first, then pending, then paid; most recent due
        date first within each group.
        """
        today = self._today(today)
        wanted = _parse_status(status)
        contexts = await self._bills.list_billing_view(today, campus_id)
        return [bill_payload(ctx, today) for ctx in billing_view(contexts, today, wanted)]

    async def get_bill(self, bill_id: str, today: date | None = None) -> dict[str, Any]:
        context = await self._bills.get_context(bill_id)
        if context is None:
            raise NotFoundError("Bill", bill_id)
        return bill_payload(context, self._today(today))

    async def create_bill(
        self,
        tenant_id: str,
        bill_month: str | date,
        *,
        rent_amount: float | None = None,
        electricity_amount: float = 0.0,
        water_amount: float = 0.0,
        other_charges: float = 0.0,
        due_date: date | None = None,
        notes: str | None = None,
        today: date | None = None,
    ) -> dict[str, Any]:
        """Create a bill by hand.

        Rent defaults to the tenant's current rent and the due date to the
        cycle's billing date plus the grace period.  A second bill for the
        same tenant and month is rejected with :class:`ConflictError`.
        """
        if not tenant_id:
            raise ValidationError("A tenant id is required")
        _check_amounts(
            rent_amount=rent_amount,
            electricity_amount=electricity_amount,
            water_amount=water_amount,
            other_charges=other_charges,
        )
        month = parse_month(bill_month)

        tenant = await self._tenants.get(tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant", tenant_id)

        if due_date is None:
            due_date = due_date_for(
                billing_date(tenant.move_in_date.day, month.year, month.month), self._grace_period_days
            )

        bill_id = await self._bills.insert_if_absent(
            operator_id=self._operator_id,
            tenant_id=tenant.tenant_id,
            campus_id=tenant.campus_id,
            bill_month=month,
            due_date=due_date,
            rent_amount=tenant.rent_amount if rent_amount is None else rent_amount,
            electricity_amount=electricity_amount,
            water_amount=water_amount,
            other_charges=other_charges,
            notes=notes,
        )
        if bill_id is None:
            raise ConflictError("A bill for this month already exists for this tenant")

        logger.info("Manual bill=%s created for tenant=%s month=%s", bill_id, tenant_id, month.isoformat())
        return await self.get_bill(bill_id, today)

    async def update_charges(
        self,
        bill_id: str,
        *,
        electricity_amount: float | None = None,
        water_amount: float | None = None,
        other_charges: float | None = None,
        notes: str | None = None,
        today: date | None = None,
    ) -> dict[str, Any]:
        """Edit the utility and other charges of an unpaid bill."""
        _check_amounts(electricity_amount=electricity_amount, water_amount=water_amount, other_charges=other_charges)
        bill = await self._bills.get(bill_id)
        if bill is None:
            raise NotFoundError("Bill", bill_id)
        if bill.payment_status == PaymentStatus.PAID.value:
            raise ConflictError("Paid bills cannot be edited", code="ALREADY_PAID")

        await self._bills.update_charges(
            bill,
            electricity_amount=electricity_amount,
            water_amount=water_amount,
            other_charges=other_charges,
            notes=notes,
        )
        logger.info("Updated charges on bill=%s total=%.2f", bill_id, bill.total_amount)
        return await self.get_bill(bill_id, today)

    async def mark_paid(
        self,
        bill_id: str,
        method: str,
        payment_date: date | None = None,
        today: date | None = None,
    ) -> dict[str, Any]:
        """Record a payment.  Marking an already-paid bill is a conflict."""
        if not bill_id:
            raise ValidationError("A bill id is required")
        payment_method = _parse_method(method)
        today = self._today(today)

        bill = await self._bills.get(bill_id)
        if bill is None:
            raise NotFoundError("Bill", bill_id)
        if bill.payment_status == PaymentStatus.PAID.value:
            raise ConflictError(f"Bill '{bill_id}' is already paid", code="ALREADY_PAID")
        if payment_date is not None and payment_date > today:
            raise ValidationError(f"Payment date {payment_date.isoformat()} is in the future")

        await self._bills.mark_paid(bill, payment_method.value, payment_date or today)
        logger.info("Bill=%s marked paid via %s", bill_id, payment_method.value)
        return await self.get_bill(bill_id, today)
