"""Shared fixtures for campus_core tests.

Storage-backed tests use a file-backed SQLite database under ``tmp_path`` so
that several sessions opened by one test see the same data.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from pathlib import Path

import pytest_asyncio
from campus_core.state.repository import (
    CampusRepository,
    OperatorRepository,
    RoomRepository,
    TenantRepository,
)
from campus_core.state.sqlite_adapter import create_local_tables, get_local_engine
from sqlalchemy.ext.asyncio import async_sessionmaker


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


@pytest_asyncio.fixture
async def portfolio(session_factory) -> Portfolio:
    """One operator (consent on) with one campus and one 3-bed room."""
    async with session_factory() as session:
        operator = await OperatorRepository(session).create(full_name="Asha Rao", notification_consent=True)
        campus = await CampusRepository(session, operator.operator_id).create(name="Sunrise PG", city="Pune")
        room = await RoomRepository(session, operator.operator_id).create(
            campus_id=campus.campus_id, room_no="101", capacity=3, rent_amount=8500
        )
        await session.commit()
        return Portfolio(operator.operator_id, campus.campus_id, room.room_id)


@pytest_asyncio.fixture
async def tenant_factory(session_factory, portfolio: Portfolio):
    """Return a coroutine that moves a tenant into the portfolio room."""

    async def _add(
        *,
        name: str = "Ravi Kumar",
        phone: str = "9876543210",
        rent: float = 8500.0,
        move_in: date = date(2026, 1, 15),
        opted_in: bool = False,
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
