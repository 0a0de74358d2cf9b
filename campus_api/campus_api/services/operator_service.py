"""Operator accounts and the operator-level notification consent flag."""

from __future__ import annotations

import logging
from typing import Any

from campus_core.exceptions import NotFoundError, ValidationError
from campus_core.state.repository import OperatorRepository
from campus_core.state.tables import OperatorTable
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def operator_payload(row: OperatorTable) -> dict[str, Any]:
    return {
        "operator_id": row.operator_id,
        "full_name": row.full_name,
        "email": row.email,
        "phone": row.phone,
        "notification_consent": row.notification_consent,
    }


class OperatorService:
    def __init__(self, session: AsyncSession) -> None:
        self._operators = OperatorRepository(session)

    async def register(self, full_name: str, email: str | None = None, phone: str | None = None) -> dict[str, Any]:
        """Create an operator.  Consent starts off; the operator opts in explicitly."""
        if not full_name.strip():
            raise ValidationError("Operator name is required")
        row = await self._operators.create(full_name.strip(), email=email, phone=phone)
        logger.info("Registered operator=%s", row.operator_id)
        return operator_payload(row)

    async def get_settings(self, operator_id: str) -> dict[str, Any]:
        row = await self._operators.get(operator_id)
        if row is None:
            raise NotFoundError("Operator", operator_id)
        return operator_payload(row)

    async def set_consent(self, operator_id: str, consent: bool) -> dict[str, Any]:
        row = await self._operators.set_consent(operator_id, consent)
        if row is None:
            raise NotFoundError("Operator", operator_id)
        logger.info("Operator=%s notification consent set to %s", operator_id, consent)
        return operator_payload(row)
