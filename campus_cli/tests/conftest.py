"""Shared fixtures for CLI tests.

Commands run through ``typer.testing.CliRunner`` against a file-backed
SQLite database under ``tmp_path``.  CLI commands call ``asyncio.run``
themselves, so seeding is done synchronously here with ``asyncio.run``
as well and the tests are plain (non-async) functions.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date
from pathlib import Path

import pytest
from campus_core.state.repository import (
    BillRepository,
    CampusRepository,
    OperatorRepository,
    RoomRepository,
    TenantRepository,
)
from campus_core.state.sqlite_adapter import create_local_tables, get_local_engine
from sqlalchemy.ext.asyncio import async_sessionmaker


@dataclass
class Seeded:
    database_url: str
    operator_id: str
    campus_id: str
    tenant_id: str
    bill_id: str


async def _seed(db_path: Path) -> Seeded:
    engine = get_local_engine(db_path)
    try:
        await create_local_tables(engine)
        async with async_sessionmaker(engine, expire_on_commit=False)() as session:
            operator = await OperatorRepository(session).create(full_name="Asha Rao", notification_consent=True)
            op = operator.operator_id
            campus = await CampusRepository(session, op).create(name="Sunrise PG", city="Pune")
            room = await RoomRepository(session, op).create(
                campus_id=campus.campus_id, room_no="101", capacity=2, rent_amount=8500
            )
            tenants = TenantRepository(session, op)
            tenant = await tenants.create(
                campus_id=campus.campus_id,
                full_name="Ravi Kumar",
                phone="9876543210",
                rent_amount=8500.0,
                move_in_date=date(2026, 1, 15),
                room_id=room.room_id,
            )
            bills = BillRepository(session, op)
            paid_id = await bills.insert_if_absent(
                operator_id=op,
                tenant_id=tenant.tenant_id,
                campus_id=campus.campus_id,
                bill_month=date(2026, 9, 1),
                due_date=date(2026, 9, 22),
                rent_amount=8500.0,
            )
            await bills.mark_paid(await bills.get(paid_id), "Cash", date(2026, 9, 20))
            bill_id = await bills.insert_if_absent(
                operator_id=op,
                tenant_id=tenant.tenant_id,
                campus_id=campus.campus_id,
                bill_month=date(2026, 10, 1),
                due_date=date(2026, 10, 22),
                rent_amount=8500.0,
            )
            await session.commit()
            return Seeded(
                database_url=f"sqlite+aiosqlite:///{db_path}",
                operator_id=op,
                campus_id=campus.campus_id,
                tenant_id=tenant.tenant_id,
                bill_id=bill_id,
            )
    finally:
        await engine.dispose()


@pytest.fixture()
def seeded(tmp_path: Path) -> Seeded:
    """One operator, one campus, one tenant (anchor day 15), one paid and one open bill."""
    return asyncio.run(_seed(tmp_path / "billing.db"))


@pytest.fixture()
def empty_db_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'fresh.db'}"


@pytest.fixture(autouse=True)
def wide_console():
    """Widen the CLI console so Rich tables do not wrap cell text."""
    from campus_cli.app import console

    saved = console.width
    console.width = 200
    yield
    console.width = saved
