"""Financial rollup and dashboard endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from campus_api.dependencies import OperatorDep, SessionDep, SettingsDep
from campus_api.services.rollup_service import RollupService

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/rollup")
async def get_financial_rollup(
    session: SessionDep,
    operator_id: OperatorDep,
    settings: SettingsDep,
    campus_id: str | None = Query(None),
    months: int = Query(6, description="Trailing window length in months, 1-36"),
) -> dict[str, Any]:
    """Monthly revenue, expenses and profit with totals, ranking and occupancy."""
    service = RollupService(session, operator_id, settings.billing_timezone)
    return await service.get_financial_rollup(campus_id=campus_id, months=months)


@router.get("/dashboard")
async def get_dashboard(
    session: SessionDep,
    operator_id: OperatorDep,
    settings: SettingsDep,
    campus_id: str | None = Query(None),
) -> dict[str, Any]:
    service = RollupService(session, operator_id, settings.billing_timezone)
    return await service.dashboard_summary(campus_id=campus_id)
