"""Tests for campus_api/services/optin_service.py"""

from __future__ import annotations

import pytest
from campus_core.state.repository import NotificationLogRepository, TenantRepository

from campus_api.services.optin_service import (
    InboundMessage,
    OptInService,
    extract_messages,
    verify_subscription,
)


def _payload(*messages: dict) -> dict:
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "waba-1", "changes": [{"field": "messages", "value": {"messages": list(messages)}}]}],
    }


def _text(sender: str, body: str = "YES") -> dict:
    return {"from": sender, "id": "wamid.in", "type": "text", "text": {"body": body}}


class TestVerifySubscription:
    def test_matching_token_echoes_challenge(self) -> None:
        assert verify_subscription("subscribe", "verify-me", "1158201444", "verify-me") == "1158201444"

    @pytest.mark.parametrize(
        ("mode", "token", "challenge", "configured"),
        [
            ("subscribe", "wrong", "c", "verify-me"),
            ("unsubscribe", "verify-me", "c", "verify-me"),
            ("subscribe", "verify-me", None, "verify-me"),
            ("subscribe", "", "c", ""),
        ],
    )
    def test_rejected(self, mode, token, challenge, configured) -> None:
        assert verify_subscription(mode, token, challenge, configured) is None


class TestExtractMessages:
    def test_flattens_nested_messages(self) -> None:
        payload = _payload(_text("919876543210", "Hi"), {"from": "919000000001", "type": "image"})

        assert extract_messages(payload) == [
            InboundMessage(sender="919876543210", text="Hi", message_type="text"),
            InboundMessage(sender="919000000001", text="", message_type="image"),
        ]

    def test_status_callbacks_and_junk_are_skipped(self) -> None:
        payload = {
            "entry": [
                "junk",
                {"changes": [{"value": {"statuses": [{"status": "read"}]}}]},
                {"changes": [{"value": {"messages": [{"type": "text"}, "junk"]}}]},
                {"changes": ["junk", {"value": None}]},
            ]
        }
        assert extract_messages(payload) == []

    def test_empty_payload(self) -> None:
        assert extract_messages({}) == []


class TestProcessWebhook:
    @pytest.mark.asyncio
    async def test_first_message_opts_tenant_in(self, session, session_factory, tenant_factory) -> None:
        tenant = await tenant_factory(phone="9876543210", opted_in=False)

        summary = await OptInService(session).process_webhook(_payload(_text("919876543210", "Yes please")))

        assert summary.messages == 1
        assert summary.opted_in == [tenant.tenant_id]
        async with session_factory() as check:
            stored = await TenantRepository(check).get(tenant.tenant_id)
            logs = await NotificationLogRepository(check).list_for_tenant(tenant.tenant_id)
        assert stored.notification_opt_in is True
        assert stored.opt_in_confirmed_at is not None
        assert [(log.template_name, log.status) for log in logs] == [("opt_in", "received")]
        assert logs[0].error_message == 'Tenant initiated consent: "Yes please"'

    @pytest.mark.asyncio
    async def test_already_opted_in_is_untouched(self, session, session_factory, tenant_factory) -> None:
        tenant = await tenant_factory(phone="+919876543210", opted_in=True)

        summary = await OptInService(session).process_webhook(_payload(_text("919876543210")))

        assert summary.already_opted_in == 1
        assert summary.opted_in == []
        async with session_factory() as check:
            assert await NotificationLogRepository(check).list_for_tenant(tenant.tenant_id) == []

    @pytest.mark.asyncio
    async def test_unknown_sender_is_counted(self, session, tenant_factory) -> None:
        await tenant_factory(phone="9876543210", opted_in=False)

        summary = await OptInService(session).process_webhook(_payload(_text("919111111111")))

        assert summary.unmatched == 1
        assert summary.opted_in == []

    @pytest.mark.asyncio
    async def test_long_message_is_truncated_in_log(self, session, session_factory, tenant_factory) -> None:
        tenant = await tenant_factory(phone="9876543210", opted_in=False)

        await OptInService(session).process_webhook(_payload(_text("919876543210", "x" * 300)))

        async with session_factory() as check:
            logs = await NotificationLogRepository(check).list_for_tenant(tenant.tenant_id)
        assert logs[0].error_message == f'Tenant initiated consent: "{"x" * 100}"'
