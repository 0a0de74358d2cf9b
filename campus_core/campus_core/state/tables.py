"""SQLAlchemy 2.0 ORM table definitions for the campus billing store.

All tables use the ``Mapped`` / ``mapped_column`` declaration style.  Every
row carries the owning ``operator_id`` so that repositories can scope
queries to a single operator account.

Bills persist only ``Pending`` or ``Paid``; overdue is derived on read.
Notification logs are append-only.
"""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Money columns come back as floats; two decimal places are kept in storage.
_Money = Numeric(12, 2, asdecimal=False)


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Declarative base
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    """Shared declarative base for all campus billing tables."""


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


class OperatorTable(Base):
    """Account that manages one or more campuses.

    ``notification_consent`` is the operator half of the consent gate.
    """

    __tablename__ = "operators"

    operator_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    full_name: Mapped[str] = mapped_column(String(256), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    notification_consent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


# ---------------------------------------------------------------------------
# Campuses and rooms
# ---------------------------------------------------------------------------


class CampusTable(Base):
    __tablename__ = "campuses"

    campus_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    operator_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("operators.operator_id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (Index("ix_campuses_operator", "operator_id"),)


class RoomTable(Base):
    """A room with a bed ``capacity``; active rooms count toward occupancy."""

    __tablename__ = "rooms"

    room_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    operator_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("operators.operator_id", ondelete="CASCADE"), nullable=False
    )
    campus_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("campuses.campus_id", ondelete="CASCADE"), nullable=False
    )
    room_no: Mapped[str] = mapped_column(String(32), nullable=False)
    room_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    rent_amount: Mapped[float] = mapped_column(_Money, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("capacity >= 0", name="ck_rooms_capacity"),
        UniqueConstraint("campus_id", "room_no", name="uq_rooms_campus_room_no"),
        Index("ix_rooms_campus_active", "campus_id", "is_active"),
    )


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------


class TenantTable(Base):
    """A resident.  ``move_in_date.day`` is the billing anchor day.

    Tenants are deactivated on move-out and never deleted.
    ``notification_opt_in`` is set only by an inbound message from the
    tenant.
    """

    __tablename__ = "tenants"

    tenant_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    operator_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("operators.operator_id", ondelete="CASCADE"), nullable=False
    )
    campus_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("campuses.campus_id", ondelete="CASCADE"), nullable=False
    )
    room_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("rooms.room_id", ondelete="SET NULL"), nullable=True
    )
    full_name: Mapped[str] = mapped_column(String(256), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    rent_amount: Mapped[float] = mapped_column(_Money, nullable=False)
    security_deposit: Mapped[float] = mapped_column(_Money, nullable=False, default=0)
    move_in_date: Mapped[date] = mapped_column(Date, nullable=False)
    move_out_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notification_opt_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    opt_in_confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("rent_amount >= 0", name="ck_tenants_rent"),
        Index("ix_tenants_operator_active", "operator_id", "is_active"),
        Index("ix_tenants_campus_active", "campus_id", "is_active"),
        Index("ix_tenants_phone", "phone"),
    )


# ---------------------------------------------------------------------------
# Bills
# ---------------------------------------------------------------------------


class BillTable(Base):
    """One bill per tenant per cycle month.

    ``bill_month`` is the first day of the cycle month.  The unique
    constraint on ``(tenant_id, bill_month)`` is what makes generation
    idempotent across overlapping runs.
    """

    __tablename__ = "bills"

    bill_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    operator_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("operators.operator_id", ondelete="CASCADE"), nullable=False
    )
    tenant_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), nullable=False
    )
    campus_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("campuses.campus_id", ondelete="CASCADE"), nullable=False
    )
    bill_month: Mapped[date] = mapped_column(Date, nullable=False)
    rent_amount: Mapped[float] = mapped_column(_Money, nullable=False, default=0)
    electricity_amount: Mapped[float] = mapped_column(_Money, nullable=False, default=0)
    water_amount: Mapped[float] = mapped_column(_Money, nullable=False, default=0)
    other_charges: Mapped[float] = mapped_column(_Money, nullable=False, default=0)
    total_amount: Mapped[float] = mapped_column(_Money, nullable=False, default=0)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default="Pending")
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "bill_month", name="uq_bills_tenant_cycle"),
        CheckConstraint("payment_status IN ('Pending', 'Paid')", name="ck_bills_payment_status"),
        CheckConstraint("total_amount >= 0", name="ck_bills_total"),
        Index("ix_bills_operator_due", "operator_id", "due_date"),
        Index("ix_bills_campus_status", "campus_id", "payment_status"),
        Index("ix_bills_payment_date", "payment_date"),
    )


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------


class ExpenseTable(Base):
    __tablename__ = "expenses"

    expense_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    operator_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("operators.operator_id", ondelete="CASCADE"), nullable=False
    )
    campus_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("campuses.campus_id", ondelete="CASCADE"), nullable=False
    )
    expense_type: Mapped[str] = mapped_column(String(64), nullable=False)
    custom_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[float] = mapped_column(_Money, nullable=False)
    expense_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_expenses_amount"),
        Index("ix_expenses_operator_date", "operator_id", "expense_date"),
    )


# ---------------------------------------------------------------------------
# Notification logs
# ---------------------------------------------------------------------------


class NotificationLogTable(Base):
    """Append-only audit record of one dispatch attempt or inbound signal."""

    __tablename__ = "notification_logs"

    log_id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    operator_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("operators.operator_id", ondelete="CASCADE"), nullable=False
    )
    tenant_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tenants.tenant_id", ondelete="CASCADE"), nullable=False
    )
    bill_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("bills.bill_id", ondelete="SET NULL"), nullable=True
    )
    template_name: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    provider_message_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('sent', 'failed', 'blocked', 'pending', 'received')",
            name="ck_notification_logs_status",
        ),
        Index("ix_notification_logs_tenant_created", "tenant_id", "created_at"),
        Index("ix_notification_logs_bill_template", "bill_id", "template_name"),
    )
