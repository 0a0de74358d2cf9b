"""Campuses, rooms, tenants and expenses.

Thin record management: field validation, ownership checks and
serialisation.  Tenants are never deleted; move-out deactivates the tenant
and frees the room.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from campus_core.billing.anchoring import today_in
from campus_core.exceptions import NotFoundError, ValidationError
from campus_core.state.repository import (
    CampusRepository,
    ExpenseRepository,
    RoomRepository,
    TenantRepository,
)
from campus_core.state.tables import CampusTable, ExpenseTable, RoomTable, TenantTable
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def campus_payload(row: CampusTable) -> dict[str, Any]:
    return {"campus_id": row.campus_id, "name": row.name, "city": row.city, "address": row.address}


def room_payload(row: RoomTable) -> dict[str, Any]:
    return {
        "room_id": row.room_id,
        "campus_id": row.campus_id,
        "room_no": row.room_no,
        "room_type": row.room_type,
        "capacity": row.capacity,
        "rent_amount": row.rent_amount,
        "is_active": row.is_active,
    }


def tenant_payload(row: TenantTable) -> dict[str, Any]:
    return {
        "tenant_id": row.tenant_id,
        "campus_id": row.campus_id,
        "room_id": row.room_id,
        "full_name": row.full_name,
        "phone": row.phone,
        "rent_amount": row.rent_amount,
        "security_deposit": row.security_deposit,
        "move_in_date": row.move_in_date,
        "move_out_date": row.move_out_date,
        "is_active": row.is_active,
        "notification_opt_in": row.notification_opt_in,
        "opt_in_confirmed_at": row.opt_in_confirmed_at,
    }


def expense_payload(row: ExpenseTable) -> dict[str, Any]:
    return {
        "expense_id": row.expense_id,
        "campus_id": row.campus_id,
        "expense_type": row.expense_type,
        "custom_type": row.custom_type,
        "description": row.description,
        "amount": row.amount,
        "expense_date": row.expense_date,
    }


class PortfolioService:
    """Record management scoped to one operator."""

    def __init__(self, session: AsyncSession, operator_id: str, timezone: str = "Asia/Kolkata") -> None:
        self._campuses = CampusRepository(session, operator_id)
        self._rooms = RoomRepository(session, operator_id)
        self._tenants = TenantRepository(session, operator_id)
        self._expenses = ExpenseRepository(session, operator_id)
        self._timezone = timezone

    async def _require_campus(self, campus_id: str) -> CampusTable:
        campus = await self._campuses.get(campus_id)
        if campus is None:
            raise NotFoundError("Campus", campus_id)
        return campus

    # -- Campuses -------------------------------------------------------------

    async def list_campuses(self) -> list[dict[str, Any]]:
        return [campus_payload(row) for row in await self._campuses.list_all()]

    async def create_campus(self, name: str, city: str | None = None, address: str | None = None) -> dict[str, Any]:
        if not name.strip():
            raise ValidationError("Campus name is required")
        row = await self._campuses.create(name.strip(), city=city, address=address)
        logger.info("Created campus=%s", row.campus_id)
        return campus_payload(row)

    # -- Rooms ----------------------------------------------------------------

    async def list_rooms(self, campus_id: str | None = None) -> list[dict[str, Any]]:
        return [room_payload(row) for row in await self._rooms.list_all(campus_id)]

    async def create_room(
        self,
        campus_id: str,
        room_no: str,
        capacity: int,
        rent_amount: float = 0.0,
        room_type: str | None = None,
    ) -> dict[str, Any]:
        await self._require_campus(campus_id)
        if capacity < 1:
            raise ValidationError("Room capacity must be at least 1")
        row = await self._rooms.create(campus_id, room_no, capacity, rent_amount=rent_amount, room_type=room_type)
        return room_payload(row)

    # -- Tenants --------------------------------------------------------------

    async def list_tenants(self, campus_id: str | None = None) -> list[dict[str, Any]]:
        return [tenant_payload(row) for row in await self._tenants.list_active(campus_id)]

    async def move_in(
        self,
        campus_id: str,
        full_name: str,
        phone: str,
        rent_amount: float,
        move_in_date: date,
        room_id: str | None = None,
        security_deposit: float = 0.0,
    ) -> dict[str, Any]:
        """Register a tenant; ``move_in_date.day`` becomes the billing anchor."""
        await self._require_campus(campus_id)
        if room_id is not None:
            room = await self._rooms.get(room_id)
            if room is None:
                raise NotFoundError("Room", room_id)
            if room.campus_id != campus_id:
                raise ValidationError(f"Room '{room_id}' does not belong to campus '{campus_id}'")
        row = await self._tenants.create(
            campus_id,
            full_name.strip(),
            phone.strip(),
            rent_amount,
            move_in_date,
            room_id=room_id,
            security_deposit=security_deposit,
        )
        logger.info("Tenant=%s moved in on %s (anchor day %d)", row.tenant_id, move_in_date, move_in_date.day)
        return tenant_payload(row)

    async def move_out(self, tenant_id: str, move_out_date: date | None = None) -> dict[str, Any]:
        tenant = await self._tenants.get(tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant", tenant_id)
        if not tenant.is_active:
            raise ValidationError(f"Tenant '{tenant_id}' has already moved out")
        move_out_date = move_out_date or today_in(self._timezone)
        if move_out_date < tenant.move_in_date:
            raise ValidationError("Move-out date cannot precede the move-in date")
        row = await self._tenants.deactivate(tenant_id, move_out_date)
        logger.info("Tenant=%s moved out on %s", tenant_id, move_out_date)
        return tenant_payload(row)

    # -- Expenses -------------------------------------------------------------

    async def list_expenses(self, campus_id: str | None = None) -> list[dict[str, Any]]:
        return [expense_payload(row) for row in await self._expenses.list_all(campus_id)]

    async def record_expense(
        self,
        campus_id: str,
        expense_type: str,
        amount: float,
        expense_date: date,
        custom_type: str | None = None,
        description: str | None = None,
    ) -> dict[str, Any]:
        await self._require_campus(campus_id)
        if amount < 0:
            raise ValidationError("Expense amount cannot be negative")
        row = await self._expenses.create(
            campus_id,
            expense_type,
            amount,
            expense_date,
            custom_type=custom_type,
            description=description,
        )
        return expense_payload(row)

    async def delete_expense(self, expense_id: str) -> None:
        if not await self._expenses.delete(expense_id):
            raise NotFoundError("Expense", expense_id)
