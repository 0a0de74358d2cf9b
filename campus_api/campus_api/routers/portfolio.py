"""Campus, room, tenant and expense records."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from campus_api.dependencies import OperatorDep, SessionDep, SettingsDep
from campus_api.schemas import CampusCreate, ExpenseCreate, MoveOutRequest, RoomCreate, TenantCreate
from campus_api.services.portfolio_service import PortfolioService

router = APIRouter(tags=["portfolio"])


# ---------------------------------------------------------------------------
# Campuses and rooms
# ---------------------------------------------------------------------------


@router.get("/campuses")
async def list_campuses(session: SessionDep, operator_id: OperatorDep) -> list[dict[str, Any]]:
    return await PortfolioService(session, operator_id).list_campuses()


@router.post("/campuses", status_code=201)
async def create_campus(body: CampusCreate, session: SessionDep, operator_id: OperatorDep) -> dict[str, Any]:
    return await PortfolioService(session, operator_id).create_campus(body.name, city=body.city, address=body.address)


@router.get("/rooms")
async def list_rooms(
    session: SessionDep,
    operator_id: OperatorDep,
    campus_id: str | None = Query(None),
) -> list[dict[str, Any]]:
    return await PortfolioService(session, operator_id).list_rooms(campus_id)


@router.post("/rooms", status_code=201)
async def create_room(body: RoomCreate, session: SessionDep, operator_id: OperatorDep) -> dict[str, Any]:
    return await PortfolioService(session, operator_id).create_room(
        body.campus_id,
        body.room_no,
        body.capacity,
        rent_amount=body.rent_amount,
        room_type=body.room_type,
    )


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------


@router.get("/tenants")
async def list_tenants(
    session: SessionDep,
    operator_id: OperatorDep,
    campus_id: str | None = Query(None),
) -> list[dict[str, Any]]:
    """Active tenants only."""
    return await PortfolioService(session, operator_id).list_tenants(campus_id)


@router.post("/tenants", status_code=201)
async def move_in(body: TenantCreate, session: SessionDep, operator_id: OperatorDep) -> dict[str, Any]:
    return await PortfolioService(session, operator_id).move_in(
        body.campus_id,
        body.full_name,
        body.phone,
        body.rent_amount,
        body.move_in_date,
        room_id=body.room_id,
        security_deposit=body.security_deposit,
    )


@router.post("/tenants/{tenant_id}/move-out")
async def move_out(
    tenant_id: str,
    body: MoveOutRequest,
    session: SessionDep,
    operator_id: OperatorDep,
    settings: SettingsDep,
) -> dict[str, Any]:
    service = PortfolioService(session, operator_id, settings.billing_timezone)
    return await service.move_out(tenant_id, body.move_out_date)


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------


@router.get("/expenses")
async def list_expenses(
    session: SessionDep,
    operator_id: OperatorDep,
    campus_id: str | None = Query(None),
) -> list[dict[str, Any]]:
    return await PortfolioService(session, operator_id).list_expenses(campus_id)


@router.post("/expenses", status_code=201)
async def record_expense(body: ExpenseCreate, session: SessionDep, operator_id: OperatorDep) -> dict[str, Any]:
    return await PortfolioService(session, operator_id).record_expense(
        body.campus_id,
        body.expense_type,
        body.amount,
        body.expense_date,
        custom_type=body.custom_type,
        description=body.description,
    )


@router.delete("/expenses/{expense_id}", status_code=204)
async def delete_expense(expense_id: str, session: SessionDep, operator_id: OperatorDep) -> None:
    await PortfolioService(session, operator_id).delete_expense(expense_id)
