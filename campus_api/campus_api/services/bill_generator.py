"""Daily bill generation.

For each active tenant the generator checks whether today is the tenant's
billing day (move-in day clamped to the month length) and, if so, inserts
the cycle's bill with ``INSERT ... ON CONFLICT DO NOTHING`` on
``(tenant_id, bill_month)``.  The storage constraint is the only
synchronisation point: re-running the same day, or two runs overlapping,
yields one bill per tenant per cycle.

Each tenant is processed in its own session and transaction so that a
storage error on one tenant is logged and reported without affecting the
rest of the batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from campus_core.billing.anchoring import (
    GRACE_PERIOD_DAYS,
    billing_date,
    billing_day,
    cycle_month,
    due_date_for,
    is_billing_day,
)
from campus_core.exceptions import CampusBillingError
from campus_core.models.billing import GenerationReport, GenerationStatus, TenantGenerationResult
from campus_core.state.repository import BillRepository, TenantRepository
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _TenantSnapshot:
    tenant_id: str
    full_name: str
    operator_id: str
    campus_id: str
    rent_amount: float
    move_in_date: date


class BillGenerator:
    """Create at most one bill per tenant per cycle month.

    Parameters
    ----------
    session_factory:
        Factory for the per-tenant sessions.
    grace_period_days:
        Days between the billing date and the due date.
    operator_id:
        Restrict the run to one operator's tenants; ``None`` covers all.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        grace_period_days: int = GRACE_PERIOD_DAYS,
        operator_id: str | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._grace_period_days = grace_period_days
        self._operator_id = operator_id

    async def generate(self, today: date) -> GenerationReport:
        """Run one generation pass for *today* and return the report."""
        bill_month = cycle_month(today)
        report = GenerationReport(run_date=today, bill_month=bill_month)

        async with self._session_factory() as session:
            tenants = [
                _TenantSnapshot(
                    tenant_id=t.tenant_id,
                    full_name=t.full_name,
                    operator_id=t.operator_id,
                    campus_id=t.campus_id,
                    rent_amount=t.rent_amount,
                    move_in_date=t.move_in_date,
                )
                for t in await TenantRepository(session, self._operator_id).list_active()
            ]

        logger.info("Bill generation for %s: %d active tenant(s)", today.isoformat(), len(tenants))

        for tenant in tenants:
            report.record(await self._process_tenant(tenant, today, bill_month))

        logger.info(
            "Bill generation for %s complete: created=%d skipped=%d not_due=%d failed=%d",
            today.isoformat(),
            report.created,
            report.skipped,
            report.not_due,
            report.failed,
        )
        return report

    async def _process_tenant(self, tenant: _TenantSnapshot, today: date, bill_month: date) -> TenantGenerationResult:
        base = {"tenant_id": tenant.tenant_id, "tenant_name": tenant.full_name}

        if tenant.move_in_date > today:
            return TenantGenerationResult(
                **base,
                status=GenerationStatus.NOT_DUE,
                reason=f"Moves in on {tenant.move_in_date.isoformat()}",
            )

        day = billing_day(tenant.move_in_date.day, today.year, today.month)
        if not is_billing_day(tenant.move_in_date, today):
            return TenantGenerationResult(
                **base,
                status=GenerationStatus.NOT_DUE,
                billing_day=day,
                reason=f"Today ({today.day}) is not billing day ({day})",
            )

        due = due_date_for(billing_date(tenant.move_in_date.day, today.year, today.month), self._grace_period_days)
        try:
            async with self._session_factory() as session:
                bills = BillRepository(session)
                if await bills.exists(tenant.tenant_id, bill_month):
                    return TenantGenerationResult(
                        **base,
                        status=GenerationStatus.EXISTS,
                        billing_day=day,
                        reason=f"Bill already exists for {bill_month.isoformat()}",
                    )
                bill_id = await bills.insert_if_absent(
                    operator_id=tenant.operator_id,
                    tenant_id=tenant.tenant_id,
                    campus_id=tenant.campus_id,
                    bill_month=bill_month,
                    due_date=due,
                    rent_amount=tenant.rent_amount,
                )
                await session.commit()
        except (SQLAlchemyError, CampusBillingError) as exc:
            logger.error("Bill generation failed for tenant=%s", tenant.tenant_id, exc_info=True)
            return TenantGenerationResult(**base, status=GenerationStatus.ERROR, billing_day=day, reason=str(exc))

        if bill_id is None:
            logger.info("Concurrent run already billed tenant=%s for %s", tenant.tenant_id, bill_month.isoformat())
            return TenantGenerationResult(
                **base,
                status=GenerationStatus.EXISTS,
                billing_day=day,
                reason="Unique constraint prevented duplicate",
            )

        logger.info("Created bill=%s for tenant=%s due=%s", bill_id, tenant.tenant_id, due.isoformat())
        return TenantGenerationResult(
            **base,
            status=GenerationStatus.CREATED,
            billing_day=day,
            bill_id=bill_id,
            due_date=due,
            reason=f"Due date: {due.isoformat()}",
        )
