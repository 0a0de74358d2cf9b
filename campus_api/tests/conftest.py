"""Shared fixtures for campus_api tests.

Services run against a file-backed SQLite database under ``tmp_path``.
The delivery provider is replaced by :class:`FakeProvider`, which records
every send and can be told to fail.  The FastAPI app is exercised through
``httpx.AsyncClient`` with ``ASGITransport`` and dependency overrides, so no
socket, Postgres instance or WhatsApp account is needed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

import pytest
import pytest_asyncio
from campus_core.billing.templates import RenderedMessage
from campus_core.state.repository import (
    BillRepository,
    CampusRepository,
    OperatorRepository,
    RoomRepository,
    TenantRepository,
)
from campus_core.state.sqlite_adapter import create_local_tables, get_local_engine
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker

from campus_api.config import APISettings
from campus_api.dependencies import get_db_session, get_provider, get_session_factory, get_settings
from campus_api.main import create_app
from campus_api.services.delivery_provider import DeliveryAck, normalize_phone

# ---------------------------------------------------------------------------
# Fake delivery provider
# ---------------------------------------------------------------------------


@dataclass
class FakeProvider:
    """In-memory provider: records sends, or raises ``error`` when set."""

    error: Exception | None = None
    configured: bool = True
    sent: list[tuple[str, RenderedMessage]] = field(default_factory=list)

    async def send_template(self, phone: str, message: RenderedMessage) -> DeliveryAck:
        if self.error is not None:
            raise self.error
        self.sent.append((phone, message))
        return DeliveryAck(recipient=normalize_phone(phone), message_id=f"wamid.{len(self.sent)}")


@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider()


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


@dataclass
class Portfolio:
    operator_id: str
    campus_id: str
    room_id: str


@pytest_asyncio.fixture
async def engine(tmp_path: Path):
    engine = get_local_engine(tmp_path / "billing.db")
    await create_local_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


async def _make_portfolio(session_factory, *, consent: bool) -> Portfolio:
    async with session_factory() as session:
        operator = await OperatorRepository(session).create(full_name="Asha Rao", notification_consent=consent)
        campus = await CampusRepository(session, operator.operator_id).create(name="Sunrise PG", city="Pune")
        room = await RoomRepository(session, operator.operator_id).create(
            campus_id=campus.campus_id, room_no="101", capacity=3, rent_amount=8500
        )
        await session.commit()
        return Portfolio(operator.operator_id, campus.campus_id, room.room_id)


@pytest_asyncio.fixture
async def portfolio(session_factory) -> Portfolio:
    """One operator (consent on) with one campus and one 3-bed room."""
    return await _make_portfolio(session_factory, consent=True)


@pytest_asyncio.fixture
async def tenant_factory(session_factory, portfolio: Portfolio):
    """Return a coroutine that moves a tenant into the portfolio room."""

    async def _add(
        *,
        name: str = "Ravi Kumar",
        phone: str = "9876543210",
        rent: float = 8500.0,
        move_in: date = date(2026, 1, 15),
        opted_in: bool = True,
    ):
        async with session_factory() as session:
            repo = TenantRepository(session, portfolio.operator_id)
            tenant = await repo.create(
                campus_id=portfolio.campus_id,
                full_name=name,
                phone=phone,
                rent_amount=rent,
                move_in_date=move_in,
                room_id=portfolio.room_id,
            )
            if opted_in:
                await repo.set_opt_in(tenant)
            await session.commit()
            return tenant

    return _add


@pytest_asyncio.fixture
async def bill_factory(session_factory, portfolio: Portfolio):
    """Return a coroutine that inserts a bill, optionally already paid."""

    async def _add(
        tenant,
        *,
        month: date = date(2026, 10, 1),
        due: date = date(2026, 10, 22),
        rent: float = 8500.0,
        electricity: float = 0.0,
        paid_on: date | None = None,
        method: str = "PhonePe",
    ) -> str:
        async with session_factory() as session:
            repo = BillRepository(session, portfolio.operator_id)
            bill_id = await repo.insert_if_absent(
                operator_id=portfolio.operator_id,
                tenant_id=tenant.tenant_id,
                campus_id=portfolio.campus_id,
                bill_month=month,
                due_date=due,
                rent_amount=rent,
                electricity_amount=electricity,
            )
            if paid_on is not None:
                await repo.mark_paid(await repo.get(bill_id), method, paid_on)
            await session.commit()
            return bill_id

    return _add


# ---------------------------------------------------------------------------
# Settings and FastAPI app
# ---------------------------------------------------------------------------


@pytest.fixture()
def test_settings(tmp_path: Path) -> APISettings:
    return APISettings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}",
        platform_env="dev",
        cors_origins=["http://localhost:3000"],
        receipt_storage_path=str(tmp_path / "receipts"),
        public_base_url="https://billing.example.com",
        whatsapp_verify_token="verify-me",
        whatsapp_app_secret="app-secret",
    )


@pytest.fixture()
def app(test_settings: APISettings, session_factory, provider: FakeProvider):
    """FastAPI app wired to the test database and the fake provider."""
    application = create_app()

    async def _override_session():
        session = session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    application.dependency_overrides[get_db_session] = _override_session
    application.dependency_overrides[get_session_factory] = lambda: session_factory
    application.dependency_overrides[get_settings] = lambda: test_settings
    application.dependency_overrides[get_provider] = lambda: provider
    return application


@pytest_asyncio.fixture()
async def client(app, portfolio: Portfolio) -> AsyncClient:
    """Async client that sends the portfolio operator's ``X-Operator-ID``."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"X-Operator-ID": portfolio.operator_id},
    ) as ac:
        yield ac
