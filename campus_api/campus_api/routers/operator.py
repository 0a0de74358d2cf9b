"""Operator registration and the notification consent toggle."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from campus_api.dependencies import OperatorDep, SessionDep
from campus_api.schemas import ConsentUpdate, OperatorCreate
from campus_api.services.operator_service import OperatorService

router = APIRouter(tags=["operator"])


@router.post("/operators", status_code=201)
async def register_operator(body: OperatorCreate, session: SessionDep) -> dict[str, Any]:
    return await OperatorService(session).register(body.full_name, email=body.email, phone=body.phone)


@router.get("/operator/settings")
async def get_operator_settings(session: SessionDep, operator_id: OperatorDep) -> dict[str, Any]:
    return await OperatorService(session).get_settings(operator_id)


@router.put("/operator/settings")
async def update_operator_settings(
    body: ConsentUpdate,
    session: SessionDep,
    operator_id: OperatorDep,
) -> dict[str, Any]:
    """Turn operator-level notification consent on or off.

    With consent off every reminder and confirmation is blocked and logged
    as ``blocked``, whatever the tenants' own opt-in.
    """
    return await OperatorService(session).set_consent(operator_id, body.notification_consent)
