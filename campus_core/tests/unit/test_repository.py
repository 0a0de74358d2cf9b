"""Unit tests for the campus billing repositories.

These tests use a file-backed SQLite database via aiosqlite so they can
run without a PostgreSQL instance.

Covers:
- Idempotent bill insert on (tenant_id, bill_month)
- Fresh reload of bill context after an out-of-session mutation
- Billing-view and unpaid queries
- Paid/expense aggregation inputs and room capacity
- Append-only notification log lookups
- Tenant move-out and phone lookup
"""

from __future__ import annotations

from datetime import date

import pytest
from campus_core.models.notification import NotificationStatus, TemplateName
from campus_core.state.repository import (
    BillRepository,
    ExpenseRepository,
    NotificationLogRepository,
    OperatorRepository,
    RoomRepository,
    TenantRepository,
)
from campus_core.state.tables import BillTable
from sqlalchemy import update


async def _insert_bill(session, portfolio, tenant, *, month=date(2026, 10, 1), due=date(2026, 10, 22), rent=8500.0):
    return await BillRepository(session, portfolio.operator_id).insert_if_absent(
        operator_id=portfolio.operator_id,
        tenant_id=tenant.tenant_id,
        campus_id=portfolio.campus_id,
        bill_month=month,
        due_date=due,
        rent_amount=rent,
    )


# ---------------------------------------------------------------------------
# Bill insert
# ---------------------------------------------------------------------------


class TestBillInsert:
    @pytest.mark.asyncio
    async def test_second_insert_for_same_cycle_is_noop(self, session, portfolio, tenant_factory):
        tenant = await tenant_factory()
        first = await _insert_bill(session, portfolio, tenant)
        second = await _insert_bill(session, portfolio, tenant, rent=1.0)
        await session.commit()

        assert first is not None
        assert second is None
        bill = await BillRepository(session).get(first)
        assert bill.rent_amount == 8500.0
        assert bill.total_amount == 8500.0
        assert bill.payment_status == "Pending"

    @pytest.mark.asyncio
    async def test_next_month_is_a_new_cycle(self, session, portfolio, tenant_factory):
        tenant = await tenant_factory()
        assert await _insert_bill(session, portfolio, tenant) is not None
        assert await _insert_bill(session, portfolio, tenant, month=date(2026, 11, 1)) is not None

    @pytest.mark.asyncio
    async def test_exists(self, session, portfolio, tenant_factory):
        tenant = await tenant_factory()
        repo = BillRepository(session)
        assert not await repo.exists(tenant.tenant_id, date(2026, 10, 1))
        await _insert_bill(session, portfolio, tenant)
        assert await repo.exists(tenant.tenant_id, date(2026, 10, 1))


# ---------------------------------------------------------------------------
# Bill context
# ---------------------------------------------------------------------------


class TestBillContext:
    @pytest.mark.asyncio
    async def test_context_joins_tenant_campus_room(self, session, portfolio, tenant_factory):
        tenant = await tenant_factory(name="Meera")
        bill_id = await _insert_bill(session, portfolio, tenant)
        context = await BillRepository(session, portfolio.operator_id).get_context(bill_id)

        assert context.tenant.full_name == "Meera"
        assert context.campus.name == "Sunrise PG"
        assert context.room_no == "101"
        assert context.operator.notification_consent is True
        assert context.due_date == date(2026, 10, 22)

    @pytest.mark.asyncio
    async def test_context_reload_sees_external_update(self, session_factory, portfolio, tenant_factory):
        tenant = await tenant_factory()
        async with session_factory() as session:
            bill_id = await _insert_bill(session, portfolio, tenant)
            await session.commit()
            repo = BillRepository(session)
            before = await repo.get_context(bill_id)
            assert before.bill.payment_status == "Pending"

            async with session_factory() as other:
                await other.execute(
                    update(BillTable).where(BillTable.bill_id == bill_id).values(payment_status="Paid")
                )
                await other.commit()

            await session.commit()
            after = await repo.get_context(bill_id)
            assert after.bill.payment_status == "Paid"

    @pytest.mark.asyncio
    async def test_other_operator_cannot_see_bill(self, session, portfolio, tenant_factory):
        tenant = await tenant_factory()
        bill_id = await _insert_bill(session, portfolio, tenant)
        assert await BillRepository(session, "someone-else").get_context(bill_id) is None


# ---------------------------------------------------------------------------
# Bill listings
# ---------------------------------------------------------------------------


class TestBillListings:
    @pytest.mark.asyncio
    async def test_billing_view_query(self, session, portfolio, tenant_factory):
        today = date(2026, 10, 16)
        a = await tenant_factory(name="A", phone="1")
        b = await tenant_factory(name="B", phone="2")
        c = await tenant_factory(name="C", phone="3")
        due_now = await _insert_bill(session, portfolio, a, due=today)
        await _insert_bill(session, portfolio, b, due=date(2026, 10, 17))
        future_paid = await _insert_bill(session, portfolio, c, due=date(2026, 10, 30))
        repo = BillRepository(session, portfolio.operator_id)
        await repo.mark_paid(await repo.get(future_paid), "Cash", today)

        ids = {ctx.bill.bill_id for ctx in await repo.list_billing_view(today)}
        assert ids == {due_now, future_paid}

    @pytest.mark.asyncio
    async def test_list_unpaid_horizon(self, session, portfolio, tenant_factory):
        a = await tenant_factory(name="A", phone="1")
        b = await tenant_factory(name="B", phone="2")
        near = await _insert_bill(session, portfolio, a, due=date(2026, 10, 24))
        await _insert_bill(session, portfolio, b, due=date(2026, 10, 25))
        repo = BillRepository(session, portfolio.operator_id)

        rows = await repo.list_unpaid(due_on_or_before=date(2026, 10, 24))
        assert [ctx.bill.bill_id for ctx in rows] == [near]
        assert len(await repo.list_unpaid()) == 2

    @pytest.mark.asyncio
    async def test_update_charges_recomputes_total(self, session, portfolio, tenant_factory):
        tenant = await tenant_factory()
        repo = BillRepository(session)
        bill = await repo.get(await _insert_bill(session, portfolio, tenant))
        await repo.update_charges(bill, electricity_amount=450.5, water_amount=100, other_charges=49.5)
        assert bill.total_amount == 9100.0

    @pytest.mark.asyncio
    async def test_paid_amounts(self, session, portfolio, tenant_factory):
        tenant = await tenant_factory()
        repo = BillRepository(session, portfolio.operator_id)
        bill = await repo.get(await _insert_bill(session, portfolio, tenant))
        await _insert_bill(session, portfolio, tenant, month=date(2026, 11, 1))
        await repo.mark_paid(bill, "Cash", date(2026, 10, 20))

        paid = await repo.paid_amounts(date(2026, 10, 1))
        assert len(paid) == 1
        assert paid[0].amount == 8500.0
        assert paid[0].campus_name == "Sunrise PG"
        assert await repo.paid_amounts(date(2026, 10, 21)) == []
        assert await repo.paid_amounts(date(2026, 10, 1), before=date(2026, 10, 20)) == []
        assert len(await repo.paid_amounts(date(2026, 10, 1), before=date(2026, 11, 1))) == 1


# ---------------------------------------------------------------------------
# Expenses, rooms and operators
# ---------------------------------------------------------------------------


class TestExpenseAndRoom:
    @pytest.mark.asyncio
    async def test_expense_lifecycle(self, session, portfolio):
        repo = ExpenseRepository(session, portfolio.operator_id)
        expense = await repo.create(portfolio.campus_id, "Maintenance", 1200, date(2026, 10, 3))
        await repo.create(portfolio.campus_id, "Other", 300, date(2026, 8, 3), custom_type="Pest control")

        amounts = await repo.amounts_since(date(2026, 9, 1))
        assert [a.amount for a in amounts] == [1200.0]
        assert await repo.delete(expense.expense_id) is True
        assert await repo.delete(expense.expense_id) is False

    @pytest.mark.asyncio
    async def test_active_capacity(self, session, portfolio):
        repo = RoomRepository(session, portfolio.operator_id)
        room = await repo.create(portfolio.campus_id, "102", capacity=2)
        assert await repo.active_capacity() == 5
        room.is_active = False
        await session.flush()
        assert await repo.active_capacity(portfolio.campus_id) == 3

    @pytest.mark.asyncio
    async def test_set_consent(self, session, portfolio):
        repo = OperatorRepository(session)
        row = await repo.set_consent(portfolio.operator_id, False)
        assert row.notification_consent is False
        assert await repo.set_consent("missing", True) is None


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------


class TestTenants:
    @pytest.mark.asyncio
    async def test_deactivate_releases_room(self, session, portfolio, tenant_factory):
        tenant = await tenant_factory()
        repo = TenantRepository(session, portfolio.operator_id)
        row = await repo.deactivate(tenant.tenant_id, date(2026, 10, 31))
        assert row.is_active is False
        assert row.room_id is None
        assert row.move_out_date == date(2026, 10, 31)
        assert await repo.list_active() == []
        assert await repo.count_active() == 0

    @pytest.mark.asyncio
    async def test_find_by_phones(self, session, portfolio, tenant_factory):
        tenant = await tenant_factory(phone="+919876543210")
        repo = TenantRepository(session)
        found = await repo.find_by_phones(["919876543210", "+919876543210"])
        assert [t.tenant_id for t in found] == [tenant.tenant_id]
        assert await repo.find_by_phones([]) == []


# ---------------------------------------------------------------------------
# Notification logs
# ---------------------------------------------------------------------------


class TestNotificationLogs:
    @pytest.mark.asyncio
    async def test_latest_sent_only_counts_sent_reminders(self, session, portfolio, tenant_factory):
        tenant = await tenant_factory()
        repo = NotificationLogRepository(session, portfolio.operator_id)
        for status in (NotificationStatus.BLOCKED, NotificationStatus.SENT, NotificationStatus.FAILED):
            await repo.append(
                operator_id=portfolio.operator_id,
                tenant_id=tenant.tenant_id,
                template=TemplateName.PAYMENT_REMINDER,
                status=status,
            )
        await repo.append(
            operator_id=portfolio.operator_id,
            tenant_id=tenant.tenant_id,
            template=TemplateName.PAYMENT_CONFIRMATION,
            status=NotificationStatus.SENT,
        )

        latest = await repo.latest_sent_by_tenant([tenant.tenant_id, "nobody"])
        assert set(latest) == {tenant.tenant_id}
        assert len(await repo.list_for_tenant(tenant.tenant_id)) == 4

    @pytest.mark.asyncio
    async def test_find_sent_confirmation(self, session, portfolio, tenant_factory):
        tenant = await tenant_factory()
        bill_id = await _insert_bill(session, portfolio, tenant)
        repo = NotificationLogRepository(session)
        assert await repo.find_sent(bill_id, TemplateName.PAYMENT_CONFIRMATION) is None

        await repo.append(
            operator_id=portfolio.operator_id,
            tenant_id=tenant.tenant_id,
            bill_id=bill_id,
            template=TemplateName.PAYMENT_CONFIRMATION,
            status=NotificationStatus.SENT,
            provider_message_id="wamid.1",
        )
        found = await repo.find_sent(bill_id, TemplateName.PAYMENT_CONFIRMATION)
        assert found.provider_message_id == "wamid.1"
