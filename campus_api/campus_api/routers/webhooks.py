"""Inbound WhatsApp webhook: subscription challenge and tenant opt-in messages.

Not operator-scoped.  The provider authenticates with the verify token on
subscription and with the ``X-Hub-Signature-256`` HMAC on deliveries.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from campus_api.dependencies import SessionDep, SettingsDep
from campus_api.services.delivery_provider import verify_signature
from campus_api.services.optin_service import OptInService, verify_subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.get("/whatsapp", response_class=PlainTextResponse)
async def verify_whatsapp_subscription(
    settings: SettingsDep,
    mode: str | None = Query(None, alias="hub.mode"),
    token: str | None = Query(None, alias="hub.verify_token"),
    challenge: str | None = Query(None, alias="hub.challenge"),
) -> str:
    """Echo ``hub.challenge`` when ``hub.verify_token`` matches the configured token."""
    answer = verify_subscription(mode, token, challenge, settings.whatsapp_verify_token.get_secret_value())
    if answer is None:
        logger.warning("WhatsApp webhook verification failed (mode=%s)", mode)
        raise HTTPException(status_code=403, detail="Verification failed")
    logger.info("WhatsApp webhook subscription verified")
    return answer


@router.post("/whatsapp")
async def receive_whatsapp_event(request: Request, session: SessionDep, settings: SettingsDep) -> dict[str, Any]:
    """Apply inbound tenant messages as notification opt-in.

    The signature is checked before the body is parsed whenever an app
    secret is configured.  Status callbacks and unknown senders are
    acknowledged with 200 so the provider does not retry them.
    """
    body = await request.body()

    app_secret = settings.whatsapp_app_secret.get_secret_value()
    if app_secret:
        if not verify_signature(body, request.headers.get("x-hub-signature-256"), app_secret):
            logger.warning("WhatsApp webhook signature verification failed")
            raise HTTPException(status_code=403, detail="Signature verification failed")
    else:
        logger.warning("No WhatsApp app secret configured; webhook signature not verified")

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    summary = await OptInService(session, settings.phone_country_code).process_webhook(payload)
    return {"success": True, "opted_in": len(summary.opted_in)}
