"""Tests for the bill and reminder routers.

Covers:
- X-Operator-ID resolution (missing header, unknown operator)
- Bill generation, listing, manual creation, charge edits
- POST /bills/{id}/mark-paid with the background confirmation
- GET /bills/{id}/receipt streaming the PDF
- Reminder sends: 200 sent, 202 pending, 403 blocked, 502 rejected
- Domain and storage error mapping
"""

from __future__ import annotations

from datetime import date
from unittest.mock import AsyncMock, patch

import pytest
from campus_core.exceptions import ProviderError, ProviderUnavailableError
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

PAST_DUE = date(2025, 12, 22)


# ---------------------------------------------------------------------------
# Operator scope
# ---------------------------------------------------------------------------


class TestOperatorHeader:
    @pytest.mark.asyncio
    async def test_missing_header_is_401(self, app, portfolio) -> None:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            resp = await ac.get("/api/v1/bills")
        assert resp.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_operator_is_404(self, app, portfolio) -> None:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            headers={"X-Operator-ID": "ghost"},
        ) as ac:
            resp = await ac.get("/api/v1/bills")
        assert resp.status_code == 404
        assert resp.json()["code"] == "NOT_FOUND"


# ---------------------------------------------------------------------------
# Bills
# ---------------------------------------------------------------------------


class TestBillEndpoints:
    @pytest.mark.asyncio
    async def test_generate_with_run_date(self, client, tenant_factory) -> None:
        await tenant_factory(move_in=date(2026, 1, 15))

        first = await client.post("/api/v1/bills/generate", json={"run_date": "2026-10-15"})
        second = await client.post("/api/v1/bills/generate", json={"run_date": "2026-10-15"})

        assert first.status_code == 200
        assert first.json()["created"] == 1
        assert first.json()["results"][0]["due_date"] == "2026-10-22"
        assert second.json()["created"] == 0
        assert second.json()["skipped"] == 1

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, client, tenant_factory, bill_factory) -> None:
        tenant = await tenant_factory()
        overdue = await bill_factory(tenant, month=date(2025, 12, 1), due=PAST_DUE)
        await bill_factory(tenant, month=date(2025, 11, 1), due=date(2025, 11, 22), paid_on=date(2025, 11, 20))

        resp = await client.get("/api/v1/bills", params={"status": "Overdue"})

        assert resp.status_code == 200
        assert [b["bill_id"] for b in resp.json()] == [overdue]

    @pytest.mark.asyncio
    async def test_unknown_status_is_400(self, client) -> None:
        resp = await client.get("/api/v1/bills", params={"status": "late"})
        assert resp.status_code == 400
        assert resp.json()["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_create_then_duplicate(self, client, tenant_factory) -> None:
        tenant = await tenant_factory()
        body = {"tenant_id": tenant.tenant_id, "bill_month": "2025-12", "electricity_amount": 250}

        created = await client.post("/api/v1/bills", json=body)
        duplicate = await client.post("/api/v1/bills", json=body)

        assert created.status_code == 201
        assert created.json()["total_amount"] == 8750.0
        assert duplicate.status_code == 409
        assert duplicate.json()["code"] == "DUPLICATE"

    @pytest.mark.asyncio
    async def test_negative_charge_rejected_by_schema(self, client, tenant_factory, bill_factory) -> None:
        tenant = await tenant_factory()
        bill_id = await bill_factory(tenant)

        resp = await client.patch(f"/api/v1/bills/{bill_id}/charges", json={"water_amount": -5})

        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_update_charges(self, client, tenant_factory, bill_factory) -> None:
        tenant = await tenant_factory()
        bill_id = await bill_factory(tenant)

        resp = await client.patch(f"/api/v1/bills/{bill_id}/charges", json={"other_charges": 120})

        assert resp.status_code == 200
        assert resp.json()["total_amount"] == 8620.0

    @pytest.mark.asyncio
    async def test_get_unknown_bill(self, client) -> None:
        resp = await client.get("/api/v1/bills/nope")
        assert resp.status_code == 404


class TestMarkPaid:
    @pytest.mark.asyncio
    async def test_confirmation_sent_in_background(self, client, tenant_factory, bill_factory, provider, tmp_path):
        tenant = await tenant_factory(name="Ravi Kumar")
        bill_id = await bill_factory(tenant, month=date(2025, 12, 1), due=PAST_DUE)

        resp = await client.post(
            f"/api/v1/bills/{bill_id}/mark-paid",
            json={"payment_method": "phonepe", "payment_date": "2025-12-20"},
        )

        assert resp.status_code == 200
        assert resp.json()["payment_status"] == "Paid"
        assert resp.json()["payment_method"] == "PhonePe"
        assert len(provider.sent) == 1
        _, message = provider.sent[0]
        assert message.document_link == f"https://billing.example.com/api/v1/bills/{bill_id}/receipt"
        assert list((tmp_path / "receipts").rglob("*.pdf"))

    @pytest.mark.asyncio
    async def test_confirmation_can_be_skipped(self, client, tenant_factory, bill_factory, provider) -> None:
        tenant = await tenant_factory()
        bill_id = await bill_factory(tenant)

        resp = await client.post(
            f"/api/v1/bills/{bill_id}/mark-paid",
            json={"payment_method": "Cash", "send_confirmation": False},
        )

        assert resp.status_code == 200
        assert provider.sent == []

    @pytest.mark.asyncio
    async def test_second_payment_is_409(self, client, tenant_factory, bill_factory) -> None:
        tenant = await tenant_factory()
        bill_id = await bill_factory(tenant, paid_on=date(2025, 12, 20))

        resp = await client.post(f"/api/v1/bills/{bill_id}/mark-paid", json={"payment_method": "Cash"})

        assert resp.status_code == 409
        assert resp.json()["code"] == "ALREADY_PAID"

    @pytest.mark.asyncio
    async def test_pending_confirmation_is_202(self, client, tenant_factory, bill_factory, provider) -> None:
        provider.error = ProviderUnavailableError("timed out")
        tenant = await tenant_factory()
        bill_id = await bill_factory(tenant, paid_on=date(2025, 12, 20))

        resp = await client.post(f"/api/v1/bills/{bill_id}/confirmation")

        assert resp.status_code == 202
        assert resp.json()["status"] == "pending"


class TestReceipt:
    @pytest.mark.asyncio
    async def test_receipt_needs_no_operator_header(self, app, tenant_factory, bill_factory) -> None:
        tenant = await tenant_factory()
        bill_id = await bill_factory(tenant, month=date(2025, 12, 1), paid_on=date(2025, 12, 20))

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            resp = await ac.get(f"/api/v1/bills/{bill_id}/receipt")

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/pdf"
        assert 'filename="Receipt_December_2025.pdf"' in resp.headers["content-disposition"]
        assert resp.content.startswith(b"%PDF")

    @pytest.mark.asyncio
    async def test_unpaid_bill_receipt_is_400(self, client, tenant_factory, bill_factory) -> None:
        tenant = await tenant_factory()
        bill_id = await bill_factory(tenant)

        resp = await client.get(f"/api/v1/bills/{bill_id}/receipt")

        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


class TestReminderEndpoints:
    @pytest.mark.asyncio
    async def test_list_includes_overdue(self, client, tenant_factory, bill_factory) -> None:
        tenant = await tenant_factory()
        bill_id = await bill_factory(tenant, month=date(2025, 12, 1), due=PAST_DUE)

        resp = await client.get("/api/v1/reminders")

        assert resp.status_code == 200
        assert [r["bill_id"] for r in resp.json()] == [bill_id]
        assert resp.json()[0]["last_reminder_sent"] is None

    @pytest.mark.asyncio
    async def test_send_is_200(self, client, tenant_factory, bill_factory, provider) -> None:
        tenant = await tenant_factory()
        bill_id = await bill_factory(tenant)

        resp = await client.post(f"/api/v1/reminders/{bill_id}/send")

        assert resp.status_code == 200
        assert resp.json()["status"] == "sent"
        assert len(provider.sent) == 1

    @pytest.mark.asyncio
    async def test_unavailable_provider_is_202(self, client, tenant_factory, bill_factory, provider) -> None:
        provider.error = ProviderUnavailableError("WhatsApp API credentials not configured")
        tenant = await tenant_factory()
        bill_id = await bill_factory(tenant)

        resp = await client.post(f"/api/v1/reminders/{bill_id}/send")

        assert resp.status_code == 202
        assert resp.json()["status"] == "pending"

    @pytest.mark.asyncio
    async def test_tenant_without_opt_in_is_403(self, client, tenant_factory, bill_factory, provider) -> None:
        tenant = await tenant_factory(opted_in=False)
        bill_id = await bill_factory(tenant)

        resp = await client.post(f"/api/v1/reminders/{bill_id}/send")

        assert resp.status_code == 403
        assert resp.json()["code"] == "TENANT_NOT_OPTED_IN"
        assert provider.sent == []

    @pytest.mark.asyncio
    async def test_rejected_send_is_502_with_generic_detail(self, client, tenant_factory, bill_factory, provider):
        provider.error = ProviderError("(#132001) Template name does not exist", status_code=404)
        tenant = await tenant_factory()
        bill_id = await bill_factory(tenant)

        resp = await client.post(f"/api/v1/reminders/{bill_id}/send")

        assert resp.status_code == 502
        assert "132001" not in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_bulk_tallies(self, client, tenant_factory, bill_factory) -> None:
        tenant = await tenant_factory()
        bill_id = await bill_factory(tenant)

        resp = await client.post("/api/v1/reminders/bulk", json={"bill_ids": [bill_id, "missing"]})

        assert resp.status_code == 200
        assert resp.json() == {"sent_count": 1, "failed_count": 1}

    @pytest.mark.asyncio
    async def test_bulk_requires_ids(self, client) -> None:
        resp = await client.post("/api/v1/reminders/bulk", json={"bill_ids": []})
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_database_error_is_500_without_details(self, client) -> None:
        failure = OperationalError("SELECT paid", {}, Exception("disk I/O error"))
        with patch(
            "campus_api.routers.reports.RollupService.get_financial_rollup",
            new=AsyncMock(side_effect=failure),
        ):
            resp = await client.get("/api/v1/reports/rollup")

        assert resp.status_code == 500
        assert resp.json()["detail"] == "Internal database error"

    @pytest.mark.asyncio
    async def test_value_error_is_400(self, client) -> None:
        with patch(
            "campus_api.routers.reports.RollupService.dashboard_summary",
            new=AsyncMock(side_effect=ValueError("bad window")),
        ):
            resp = await client.get("/api/v1/reports/dashboard")

        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid request"

    @pytest.mark.asyncio
    async def test_rollup_months_out_of_range(self, client) -> None:
        resp = await client.get("/api/v1/reports/rollup", params={"months": 0})
        assert resp.status_code == 400
