"""WhatsApp Cloud API client used to deliver template messages.

Only pre-approved template messages are sent; there is no free-text path.
A missing access token or phone number id means the provider is
unconfigured: every send raises :class:`ProviderUnavailableError` so the
dispatcher can record the attempt as ``pending``.  Network failures are
reported the same way.  A non-2xx response from the API raises
:class:`ProviderError` carrying the provider's own error message.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
from typing import Any, Protocol

import httpx
from campus_core.billing.templates import RenderedMessage
from campus_core.exceptions import ProviderError, ProviderUnavailableError, ValidationError
from campus_core.models.notification import TemplateName
from pydantic import BaseModel

from campus_api.config import APISettings

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")

# Subscriber numbers are ten digits; anything longer already carries a country code.
_LOCAL_DIGITS = 10


def normalize_phone(phone: str, country_code: str = "91") -> str:
    """Digits only, no trunk ``0``, prefixed with *country_code*.

    ``"098765 43210"`` -> ``"919876543210"``.
    """
    digits = _NON_DIGITS.sub("", phone or "")
    if digits.startswith("0"):
        digits = digits[1:]
    if not digits:
        raise ValidationError(f"Phone number '{phone}' has no digits")
    if len(digits) <= _LOCAL_DIGITS or not digits.startswith(country_code):
        digits = f"{country_code}{digits}"
    return digits


def phone_candidates(sender: str, country_code: str = "91") -> list[str]:
    """Stored-phone spellings that may match an inbound *sender* number.

    Providers report senders as international digits (``919876543210``);
    operators may have stored ``9876543210`` or ``+919876543210``.
    """
    digits = _NON_DIGITS.sub("", sender or "")
    has_prefix = digits.startswith(country_code) and len(digits) > _LOCAL_DIGITS
    local = digits[len(country_code):] if has_prefix else digits
    candidates = [sender, digits, local, f"+{country_code}{local}", f"{country_code}{local}", f"0{local}"]
    seen: list[str] = []
    for candidate in candidates:
        if candidate and candidate not in seen:
            seen.append(candidate)
    return seen


def verify_signature(body: bytes, signature_header: str | None, app_secret: str) -> bool:
    """Check an ``X-Hub-Signature-256`` header against *body*."""
    if not signature_header or not signature_header.startswith("sha256="):
        return False
    expected = hmac.new(app_secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(f"sha256={expected}", signature_header)


class DeliveryAck(BaseModel):
    """Acknowledgement returned by the provider for an accepted message."""

    recipient: str
    message_id: str | None = None


class DeliveryProvider(Protocol):
    """What the dispatcher needs from a delivery provider."""

    async def send_template(self, phone: str, message: RenderedMessage) -> DeliveryAck: ...


class WhatsAppCloudClient:
    """Send template messages through the WhatsApp Cloud API.

    Parameters
    ----------
    access_token, phone_number_id:
        API credentials.  Either being empty leaves the client unconfigured.
    template_names:
        Mapping from internal template to the provider-side template name.
    http_client:
        Optional ``httpx.AsyncClient`` for testing.  A default client
        is created if not provided.
    """

    def __init__(
        self,
        *,
        access_token: str,
        phone_number_id: str,
        api_base: str = "https://graph.facebook.com/v18.0",
        template_names: dict[TemplateName, str] | None = None,
        language: str = "en",
        country_code: str = "91",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._access_token = access_token
        self._phone_number_id = phone_number_id
        self._api_base = api_base.rstrip("/")
        self._template_names = template_names or {}
        self._language = language
        self._country_code = country_code
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    @classmethod
    def from_settings(cls, settings: APISettings, http_client: httpx.AsyncClient | None = None) -> WhatsAppCloudClient:
        return cls(
            access_token=settings.whatsapp_access_token.get_secret_value(),
            phone_number_id=settings.whatsapp_phone_number_id,
            api_base=settings.whatsapp_api_base,
            template_names={
                TemplateName.PAYMENT_REMINDER: settings.reminder_template_name,
                TemplateName.PAYMENT_CONFIRMATION: settings.confirmation_template_name,
            },
            language=settings.template_language,
            country_code=settings.phone_country_code,
            timeout=settings.provider_timeout,
            http_client=http_client,
        )

    @property
    def configured(self) -> bool:
        return bool(self._access_token and self._phone_number_id)

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client:
            await self._client.aclose()

    def build_payload(self, recipient: str, message: RenderedMessage) -> dict[str, Any]:
        """Cloud API request body for *message* addressed to *recipient*."""
        components: list[dict[str, Any]] = []
        if message.document_link:
            components.append(
                {
                    "type": "header",
                    "parameters": [
                        {
                            "type": "document",
                            "document": {
                                "link": message.document_link,
                                "filename": message.document_filename,
                            },
                        }
                    ],
                }
            )
        components.append(
            {
                "type": "body",
                "parameters": [{"type": "text", "text": value} for value in message.parameters],
            }
        )
        return {
            "messaging_product": "whatsapp",
            "to": recipient,
            "type": "template",
            "template": {
                "name": self._template_names.get(message.template, message.template.value),
                "language": {"code": self._language},
                "components": components,
            },
        }

    async def send_template(self, phone: str, message: RenderedMessage) -> DeliveryAck:
        """Send *message* to *phone* and return the provider acknowledgement."""
        if not self.configured:
            raise ProviderUnavailableError("WhatsApp API credentials not configured")

        recipient = normalize_phone(phone, self._country_code)
        url = f"{self._api_base}/{self._phone_number_id}/messages"
        headers = {"Authorization": f"Bearer {self._access_token}", "Content-Type": "application/json"}

        try:
            response = await self._client.post(url, json=self.build_payload(recipient, message), headers=headers)
        except httpx.TimeoutException as exc:
            logger.warning("WhatsApp API timed out for template=%s", message.template.value)
            raise ProviderUnavailableError(f"WhatsApp API timed out: {exc}") from exc
        except httpx.RequestError as exc:
            logger.warning("WhatsApp API unreachable for template=%s: %s", message.template.value, exc)
            raise ProviderUnavailableError(f"WhatsApp API unreachable: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not 200 <= response.status_code < 300:
            error = body.get("error") if isinstance(body, dict) else None
            detail = error.get("message") if isinstance(error, dict) else None
            logger.error(
                "WhatsApp API rejected template=%s status=%d: %s",
                message.template.value,
                response.status_code,
                detail or response.text[:200],
            )
            raise ProviderError(detail or f"HTTP {response.status_code}", status_code=response.status_code)

        messages = body.get("messages") if isinstance(body, dict) else None
        message_id = messages[0].get("id") if messages else None
        logger.info("WhatsApp message accepted template=%s id=%s", message.template.value, message_id)
        return DeliveryAck(recipient=recipient, message_id=message_id)
