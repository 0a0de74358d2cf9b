"""Repository classes providing access to the campus billing store.

Each repository takes an ``AsyncSession`` at construction time and operates
within the caller's transaction boundary.  All writes call ``session.flush()``
so that generated defaults are populated; the caller is responsible for calling
``session.commit()`` (or relying on the ``get_session`` context manager).

Repositories accept an optional ``operator_id``.  When set, every query is
scoped to that operator's rows; when ``None`` (scheduler and webhook paths)
queries span all operators.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_core.billing.rollup import ExpenseAmount, PaidAmount
from campus_core.models.billing import PaymentStatus
from campus_core.models.notification import NotificationStatus, TemplateName
from campus_core.state.tables import (
    BillTable,
    CampusTable,
    ExpenseTable,
    NotificationLogTable,
    OperatorTable,
    RoomTable,
    TenantTable,
)

logger = logging.getLogger(__name__)


async def _dialect_upsert_nothing(
    session: AsyncSession,
    table: Any,
    values: dict[str, Any],
    index_elements: list[str] | None = None,
    constraint: str | None = None,
) -> Any:
    """Dialect-aware insert with ``ON CONFLICT DO NOTHING``.

    Parameters
    ----------
    session:
        The active async session.
    table:
        The SQLAlchemy table class to insert into.
    values:
        Column-value mapping for the row to insert.
    index_elements:
        Column names for conflict detection (mutually exclusive with *constraint*).
    constraint:
        Named constraint for conflict detection (PostgreSQL only).

    Returns
    -------
    The execution result from ``session.execute()``; ``rowcount`` is 0 when
    the row already existed.
    """
    bind = session.get_bind()
    dialect_name = getattr(getattr(bind, "dialect", None), "name", "")

    conflict_kwargs: dict[str, Any] = {}
    if constraint is not None and "postgresql" in str(dialect_name):
        conflict_kwargs["constraint"] = constraint
    elif index_elements is not None:
        conflict_kwargs["index_elements"] = index_elements

    stmt: Any
    if "postgresql" in str(dialect_name):
        from sqlalchemy.dialects.postgresql import insert as _pg_insert

        stmt = _pg_insert(table).values(**values)
        stmt = stmt.on_conflict_do_nothing(**conflict_kwargs)
    else:
        from sqlalchemy.dialects.sqlite import insert as _sqlite_insert

        stmt = _sqlite_insert(table).values(**values)
        stmt = stmt.on_conflict_do_nothing(**conflict_kwargs)

    return await session.execute(stmt)


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


class OperatorRepository:
    """Operator accounts and their notification consent flag."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self,
        full_name: str,
        email: str | None = None,
        phone: str | None = None,
        notification_consent: bool = False,
        operator_id: str | None = None,
    ) -> OperatorTable:
        row = OperatorTable(
            operator_id=operator_id or str(uuid.uuid4()),
            full_name=full_name,
            email=email,
            phone=phone,
            notification_consent=notification_consent,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def get(self, operator_id: str) -> OperatorTable | None:
        return await self._session.get(OperatorTable, operator_id)

    async def set_consent(self, operator_id: str, consent: bool) -> OperatorTable | None:
        """Set the operator-level consent flag; return the row or ``None``."""
        row = await self.get(operator_id)
        if row is None:
            return None
        row.notification_consent = consent
        await self._session.flush()
        return row


# ---------------------------------------------------------------------------
# Campuses
# ---------------------------------------------------------------------------


class CampusRepository:
    def __init__(self, session: AsyncSession, operator_id: str | None = None) -> None:
        self._session = session
        self._operator_id = operator_id

    async def create(
        self,
        name: str,
        city: str | None = None,
        address: str | None = None,
    ) -> CampusTable:
        if self._operator_id is None:
            raise ValueError("An operator scope is required to create a campus")
        row = CampusTable(
            campus_id=str(uuid.uuid4()),
            operator_id=self._operator_id,
            name=name,
            city=city,
            address=address,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def get(self, campus_id: str) -> CampusTable | None:
        stmt = select(CampusTable).where(CampusTable.campus_id == campus_id)
        if self._operator_id is not None:
            stmt = stmt.where(CampusTable.operator_id == self._operator_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_all(self) -> list[CampusTable]:
        stmt = select(CampusTable).order_by(CampusTable.name)
        if self._operator_id is not None:
            stmt = stmt.where(CampusTable.operator_id == self._operator_id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------


class RoomRepository:
    def __init__(self, session: AsyncSession, operator_id: str | None = None) -> None:
        self._session = session
        self._operator_id = operator_id

    async def create(
        self,
        campus_id: str,
        room_no: str,
        capacity: int,
        rent_amount: float = 0.0,
        room_type: str | None = None,
    ) -> RoomTable:
        if self._operator_id is None:
            raise ValueError("An operator scope is required to create a room")
        row = RoomTable(
            room_id=str(uuid.uuid4()),
            operator_id=self._operator_id,
            campus_id=campus_id,
            room_no=room_no,
            room_type=room_type,
            capacity=capacity,
            rent_amount=rent_amount,
            is_active=True,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def get(self, room_id: str) -> RoomTable | None:
        stmt = select(RoomTable).where(RoomTable.room_id == room_id)
        if self._operator_id is not None:
            stmt = stmt.where(RoomTable.operator_id == self._operator_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_all(self, campus_id: str | None = None) -> list[RoomTable]:
        stmt = select(RoomTable).order_by(RoomTable.room_no)
        if self._operator_id is not None:
            stmt = stmt.where(RoomTable.operator_id == self._operator_id)
        if campus_id is not None:
            stmt = stmt.where(RoomTable.campus_id == campus_id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def active_capacity(self, campus_id: str | None = None) -> int:
        """Sum of bed capacity over active rooms."""
        stmt = select(func.coalesce(func.sum(RoomTable.capacity), 0)).where(RoomTable.is_active.is_(True))
        if self._operator_id is not None:
            stmt = stmt.where(RoomTable.operator_id == self._operator_id)
        if campus_id is not None:
            stmt = stmt.where(RoomTable.campus_id == campus_id)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------


class TenantRepository:
    """Tenant records.  Tenants are deactivated, never deleted."""

    def __init__(self, session: AsyncSession, operator_id: str | None = None) -> None:
        self._session = session
        self._operator_id = operator_id

    def _scoped(self, stmt: Any) -> Any:
        if self._operator_id is not None:
            stmt = stmt.where(TenantTable.operator_id == self._operator_id)
        return stmt

    async def create(
        self,
        campus_id: str,
        full_name: str,
        phone: str,
        rent_amount: float,
        move_in_date: date,
        room_id: str | None = None,
        security_deposit: float = 0.0,
    ) -> TenantTable:
        if self._operator_id is None:
            raise ValueError("An operator scope is required to create a tenant")
        row = TenantTable(
            tenant_id=str(uuid.uuid4()),
            operator_id=self._operator_id,
            campus_id=campus_id,
            room_id=room_id,
            full_name=full_name,
            phone=phone,
            rent_amount=rent_amount,
            security_deposit=security_deposit,
            move_in_date=move_in_date,
            is_active=True,
            notification_opt_in=False,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def get(self, tenant_id: str) -> TenantTable | None:
        stmt = self._scoped(select(TenantTable).where(TenantTable.tenant_id == tenant_id))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_active(self, campus_id: str | None = None) -> list[TenantTable]:
        """Active tenants ordered by name, then id, for stable batch ordering."""
        stmt = self._scoped(select(TenantTable).where(TenantTable.is_active.is_(True)))
        if campus_id is not None:
            stmt = stmt.where(TenantTable.campus_id == campus_id)
        stmt = stmt.order_by(TenantTable.full_name, TenantTable.tenant_id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count_active(self, campus_id: str | None = None) -> int:
        stmt = self._scoped(select(func.count()).select_from(TenantTable).where(TenantTable.is_active.is_(True)))
        if campus_id is not None:
            stmt = stmt.where(TenantTable.campus_id == campus_id)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def deactivate(self, tenant_id: str, move_out_date: date) -> TenantTable | None:
        """Soft-delete on move-out: inactive and no longer holding a room."""
        row = await self.get(tenant_id)
        if row is None:
            return None
        row.is_active = False
        row.move_out_date = move_out_date
        row.room_id = None
        await self._session.flush()
        return row

    async def find_by_phones(self, candidates: list[str]) -> list[TenantTable]:
        """Tenants whose stored phone equals any of *candidates*."""
        if not candidates:
            return []
        stmt = self._scoped(select(TenantTable).where(TenantTable.phone.in_(candidates)))
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def set_opt_in(self, tenant: TenantTable, confirmed_at: datetime | None = None) -> TenantTable:
        tenant.notification_opt_in = True
        tenant.opt_in_confirmed_at = confirmed_at or datetime.now(UTC)
        await self._session.flush()
        return tenant


# ---------------------------------------------------------------------------
# Bills
# ---------------------------------------------------------------------------


@dataclass
class BillContext:
    """A bill joined with everything needed to display or message it."""

    bill: BillTable
    tenant: TenantTable
    campus: CampusTable
    operator: OperatorTable
    room_no: str | None = None

    # Classifier protocol: expose the bill's due date and stored status.
    @property
    def due_date(self) -> date:
        return self.bill.due_date

    @property
    def payment_status(self) -> str:
        return self.bill.payment_status


class BillRepository:
    """Bill records.  Bills are never deleted."""

    def __init__(self, session: AsyncSession, operator_id: str | None = None) -> None:
        self._session = session
        self._operator_id = operator_id

    def _scoped(self, stmt: Any) -> Any:
        if self._operator_id is not None:
            stmt = stmt.where(BillTable.operator_id == self._operator_id)
        return stmt

    async def insert_if_absent(
        self,
        *,
        operator_id: str,
        tenant_id: str,
        campus_id: str,
        bill_month: date,
        due_date: date,
        rent_amount: float,
        electricity_amount: float = 0.0,
        water_amount: float = 0.0,
        other_charges: float = 0.0,
        notes: str | None = None,
    ) -> str | None:
        """Insert a bill unless the ``(tenant_id, bill_month)`` cycle has one.

        Returns the new ``bill_id``, or ``None`` when the cycle already had a
        bill (including when a concurrent run inserted it first).
        """
        bill_id = str(uuid.uuid4())
        now = datetime.now(UTC)
        total = rent_amount + electricity_amount + water_amount + other_charges
        result = await _dialect_upsert_nothing(
            self._session,
            BillTable,
            {
                "bill_id": bill_id,
                "operator_id": operator_id,
                "tenant_id": tenant_id,
                "campus_id": campus_id,
                "bill_month": bill_month,
                "rent_amount": rent_amount,
                "electricity_amount": electricity_amount,
                "water_amount": water_amount,
                "other_charges": other_charges,
                "total_amount": total,
                "due_date": due_date,
                "payment_status": PaymentStatus.PENDING.value,
                "notes": notes,
                "created_at": now,
                "updated_at": now,
            },
            index_elements=["tenant_id", "bill_month"],
            constraint="uq_bills_tenant_cycle",
        )
        if result.rowcount == 0:
            return None
        return bill_id

    async def exists(self, tenant_id: str, bill_month: date) -> bool:
        stmt = select(BillTable.bill_id).where(
            BillTable.tenant_id == tenant_id,
            BillTable.bill_month == bill_month,
        )
        result = await self._session.execute(stmt)
        return result.first() is not None

    async def get(self, bill_id: str) -> BillTable | None:
        stmt = self._scoped(select(BillTable).where(BillTable.bill_id == bill_id))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    def _context_query(self) -> Any:
        stmt = (
            select(BillTable, TenantTable, CampusTable, OperatorTable, RoomTable.room_no)
            .join(TenantTable, TenantTable.tenant_id == BillTable.tenant_id)
            .join(CampusTable, CampusTable.campus_id == BillTable.campus_id)
            .join(OperatorTable, OperatorTable.operator_id == BillTable.operator_id)
            .outerjoin(RoomTable, RoomTable.room_id == TenantTable.room_id)
        )
        return self._scoped(stmt)

    @staticmethod
    def _to_context(row: Any) -> BillContext:
        bill, tenant, campus, operator, room_no = row
        return BillContext(bill=bill, tenant=tenant, campus=campus, operator=operator, room_no=room_no)

    async def get_context(self, bill_id: str) -> BillContext | None:
        """Load a bill with its tenant, campus and operator straight from storage.

        ``populate_existing`` overwrites any instances already held in the
        session identity map, so callers never see pre-mutation values.
        """
        stmt = self._context_query().where(BillTable.bill_id == bill_id)
        result = await self._session.execute(stmt.execution_options(populate_existing=True))
        row = result.one_or_none()
        return self._to_context(row) if row is not None else None

    async def list_billing_view(self, today: date, campus_id: str | None = None) -> list[BillContext]:
        """Bills due on or before *today* plus every paid bill."""
        stmt = self._context_query().where(
            or_(
                BillTable.payment_status == PaymentStatus.PAID.value,
                BillTable.due_date <= today,
            )
        )
        if campus_id is not None:
            stmt = stmt.where(BillTable.campus_id == campus_id)
        result = await self._session.execute(stmt.order_by(BillTable.due_date.desc()))
        return [self._to_context(row) for row in result.all()]

    async def list_unpaid(
        self,
        campus_id: str | None = None,
        due_on_or_before: date | None = None,
    ) -> list[BillContext]:
        stmt = self._context_query().where(BillTable.payment_status != PaymentStatus.PAID.value)
        if campus_id is not None:
            stmt = stmt.where(BillTable.campus_id == campus_id)
        if due_on_or_before is not None:
            stmt = stmt.where(BillTable.due_date <= due_on_or_before)
        result = await self._session.execute(stmt.order_by(BillTable.due_date))
        return [self._to_context(row) for row in result.all()]

    async def mark_paid(self, bill: BillTable, method: str, paid_on: date) -> BillTable:
        bill.payment_status = PaymentStatus.PAID.value
        bill.payment_method = method
        bill.payment_date = paid_on
        await self._session.flush()
        return bill

    async def update_charges(
        self,
        bill: BillTable,
        *,
        electricity_amount: float | None = None,
        water_amount: float | None = None,
        other_charges: float | None = None,
        notes: str | None = None,
    ) -> BillTable:
        """Edit utility and other charges; the total is recomputed."""
        if electricity_amount is not None:
            bill.electricity_amount = electricity_amount
        if water_amount is not None:
            bill.water_amount = water_amount
        if other_charges is not None:
            bill.other_charges = other_charges
        if notes is not None:
            bill.notes = notes
        bill.total_amount = bill.rent_amount + bill.electricity_amount + bill.water_amount + bill.other_charges
        await self._session.flush()
        return bill

    async def paid_amounts(
        self, since: date, campus_id: str | None = None, before: date | None = None
    ) -> list[PaidAmount]:
        """Paid bill totals with a payment date on or after *since* and, if given, before *before*."""
        stmt = (
            select(BillTable.campus_id, CampusTable.name, BillTable.total_amount, BillTable.payment_date)
            .join(CampusTable, CampusTable.campus_id == BillTable.campus_id)
            .where(
                BillTable.payment_status == PaymentStatus.PAID.value,
                BillTable.payment_date.is_not(None),
                BillTable.payment_date >= since,
            )
        )
        stmt = self._scoped(stmt)
        if campus_id is not None:
            stmt = stmt.where(BillTable.campus_id == campus_id)
        if before is not None:
            stmt = stmt.where(BillTable.payment_date < before)
        result = await self._session.execute(stmt)
        return [
            PaidAmount(
                campus_id=row.campus_id,
                campus_name=row.name,
                amount=float(row.total_amount),
                payment_date=row.payment_date,
            )
            for row in result.all()
        ]


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------


class ExpenseRepository:
    def __init__(self, session: AsyncSession, operator_id: str | None = None) -> None:
        self._session = session
        self._operator_id = operator_id

    def _scoped(self, stmt: Any) -> Any:
        if self._operator_id is not None:
            stmt = stmt.where(ExpenseTable.operator_id == self._operator_id)
        return stmt

    async def create(
        self,
        campus_id: str,
        expense_type: str,
        amount: float,
        expense_date: date,
        custom_type: str | None = None,
        description: str | None = None,
    ) -> ExpenseTable:
        if self._operator_id is None:
            raise ValueError("An operator scope is required to record an expense")
        row = ExpenseTable(
            expense_id=str(uuid.uuid4()),
            operator_id=self._operator_id,
            campus_id=campus_id,
            expense_type=expense_type,
            custom_type=custom_type,
            description=description,
            amount=amount,
            expense_date=expense_date,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def list_all(self, campus_id: str | None = None) -> list[ExpenseTable]:
        stmt = self._scoped(select(ExpenseTable))
        if campus_id is not None:
            stmt = stmt.where(ExpenseTable.campus_id == campus_id)
        result = await self._session.execute(stmt.order_by(ExpenseTable.expense_date.desc()))
        return list(result.scalars().all())

    async def delete(self, expense_id: str) -> bool:
        stmt = self._scoped(delete(ExpenseTable).where(ExpenseTable.expense_id == expense_id))
        result = await self._session.execute(stmt)
        await self._session.flush()
        return bool(result.rowcount)

    async def amounts_since(self, since: date, campus_id: str | None = None) -> list[ExpenseAmount]:
        stmt = self._scoped(
            select(ExpenseTable.amount, ExpenseTable.expense_date).where(ExpenseTable.expense_date >= since)
        )
        if campus_id is not None:
            stmt = stmt.where(ExpenseTable.campus_id == campus_id)
        result = await self._session.execute(stmt)
        return [ExpenseAmount(amount=float(row.amount), expense_date=row.expense_date) for row in result.all()]


# ---------------------------------------------------------------------------
# Notification logs
# ---------------------------------------------------------------------------


class NotificationLogRepository:
    """Append-only access to ``notification_logs``.  No update or delete."""

    def __init__(self, session: AsyncSession, operator_id: str | None = None) -> None:
        self._session = session
        self._operator_id = operator_id

    async def append(
        self,
        *,
        operator_id: str,
        tenant_id: str,
        template: TemplateName,
        status: NotificationStatus,
        bill_id: str | None = None,
        phone: str | None = None,
        provider_message_id: str | None = None,
        error_message: str | None = None,
    ) -> NotificationLogTable:
        row = NotificationLogTable(
            log_id=str(uuid.uuid4()),
            operator_id=operator_id,
            tenant_id=tenant_id,
            bill_id=bill_id,
            template_name=template.value,
            status=status.value,
            phone=phone,
            provider_message_id=provider_message_id,
            error_message=error_message,
            created_at=datetime.now(UTC),
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def latest_sent_by_tenant(
        self,
        tenant_ids: list[str],
        template: TemplateName = TemplateName.PAYMENT_REMINDER,
    ) -> dict[str, datetime]:
        """Most recent successful send of *template* per tenant."""
        if not tenant_ids:
            return {}
        stmt = (
            select(NotificationLogTable.tenant_id, func.max(NotificationLogTable.created_at))
            .where(
                NotificationLogTable.tenant_id.in_(tenant_ids),
                NotificationLogTable.template_name == template.value,
                NotificationLogTable.status == NotificationStatus.SENT.value,
            )
            .group_by(NotificationLogTable.tenant_id)
        )
        if self._operator_id is not None:
            stmt = stmt.where(NotificationLogTable.operator_id == self._operator_id)
        result = await self._session.execute(stmt)
        return {tenant_id: sent_at for tenant_id, sent_at in result.all()}

    async def find_sent(self, bill_id: str, template: TemplateName) -> NotificationLogTable | None:
        """Earliest ``sent`` entry of *template* for *bill_id*, if any."""
        stmt = (
            select(NotificationLogTable)
            .where(
                NotificationLogTable.bill_id == bill_id,
                NotificationLogTable.template_name == template.value,
                NotificationLogTable.status == NotificationStatus.SENT.value,
            )
            .order_by(NotificationLogTable.created_at)
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_tenant(self, tenant_id: str, since: datetime | None = None) -> list[NotificationLogTable]:
        stmt = select(NotificationLogTable).where(NotificationLogTable.tenant_id == tenant_id)
        if self._operator_id is not None:
            stmt = stmt.where(NotificationLogTable.operator_id == self._operator_id)
        if since is not None:
            stmt = stmt.where(NotificationLogTable.created_at >= since)
        result = await self._session.execute(stmt.order_by(NotificationLogTable.created_at))
        return list(result.scalars().all())
