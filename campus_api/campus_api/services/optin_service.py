"""Tenant opt-in through inbound WhatsApp messages.

A tenant consents to notifications by messaging the business number
first.  The provider forwards that message to the webhook; the sender's
number is matched against stored tenant phones and every matching tenant
that has not yet opted in is flipped to ``notification_opt_in = True``
with a ``received`` entry in the notification log.

This is the only code path that sets tenant opt-in.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from campus_core.models.notification import NotificationStatus, TemplateName
from campus_core.state.repository import NotificationLogRepository, TenantRepository
from sqlalchemy.ext.asyncio import AsyncSession

from campus_api.services.delivery_provider import phone_candidates

logger = logging.getLogger(__name__)

_MESSAGE_EXCERPT = 100


def verify_subscription(mode: str | None, token: str | None, challenge: str | None, verify_token: str) -> str | None:
    """Return the challenge to echo when the subscription request is genuine."""
    if not verify_token:
        return None
    if mode == "subscribe" and token == verify_token and challenge is not None:
        return challenge
    return None


@dataclass(frozen=True)
class InboundMessage:
    sender: str
    text: str
    message_type: str


def extract_messages(payload: dict[str, Any]) -> list[InboundMessage]:
    """Flatten ``entry[].changes[].value.messages[]`` into inbound messages.

    Status callbacks (delivered, read) carry no ``messages`` and are
    ignored.  Malformed entries are skipped rather than rejected.
    """
    messages: list[InboundMessage] = []
    for entry in payload.get("entry") or []:
        if not isinstance(entry, dict):
            continue
        for change in entry.get("changes") or []:
            value = change.get("value") if isinstance(change, dict) else None
            if not isinstance(value, dict):
                continue
            for message in value.get("messages") or []:
                if not isinstance(message, dict) or not message.get("from"):
                    continue
                text = message.get("text") or {}
                messages.append(
                    InboundMessage(
                        sender=str(message["from"]),
                        text=str(text.get("body", "")) if isinstance(text, dict) else "",
                        message_type=str(message.get("type", "")),
                    )
                )
    return messages


@dataclass
class OptInSummary:
    messages: int = 0
    opted_in: list[str] = field(default_factory=list)
    already_opted_in: int = 0
    unmatched: int = 0


class OptInService:
    """Apply inbound messages to tenant opt-in flags.

    Inbound messages are not operator-scoped: the sender may belong to any
    operator, so lookups run across all tenants.
    """

    def __init__(self, session: AsyncSession, country_code: str = "91") -> None:
        self._session = session
        self._tenants = TenantRepository(session)
        self._logs = NotificationLogRepository(session)
        self._country_code = country_code

    async def process_webhook(self, payload: dict[str, Any]) -> OptInSummary:
        summary = OptInSummary()
        for message in extract_messages(payload):
            summary.messages += 1
            await self._apply(message, summary)
        await self._session.commit()

        logger.info(
            "Webhook processed: messages=%d opted_in=%d already=%d unmatched=%d",
            summary.messages,
            len(summary.opted_in),
            summary.already_opted_in,
            summary.unmatched,
        )
        return summary

    async def _apply(self, message: InboundMessage, summary: OptInSummary) -> None:
        tenants = await self._tenants.find_by_phones(phone_candidates(message.sender, self._country_code))
        if not tenants:
            summary.unmatched += 1
            logger.info("No tenant matches inbound sender ending %s", message.sender[-4:])
            return

        now = datetime.now(UTC)
        for tenant in tenants:
            if tenant.notification_opt_in:
                summary.already_opted_in += 1
                continue
            await self._tenants.set_opt_in(tenant, confirmed_at=now)
            await self._logs.append(
                operator_id=tenant.operator_id,
                tenant_id=tenant.tenant_id,
                template=TemplateName.OPT_IN,
                status=NotificationStatus.RECEIVED,
                phone=message.sender,
                error_message=f'Tenant initiated consent: "{message.text[:_MESSAGE_EXCERPT]}"',
            )
            summary.opted_in.append(tenant.tenant_id)
            logger.info("Tenant=%s opted in to notifications", tenant.tenant_id)
