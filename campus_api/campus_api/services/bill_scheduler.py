"""Background trigger for the daily bill generation run.

Runs as an ``asyncio`` background task, waking every 60 seconds.  Once the
local clock in the billing timezone passes ``run_hour`` the generator is
run for that calendar day; it is not run again until the date changes.
Generation is idempotent, so a restart that repeats a day's run creates
nothing new.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from zoneinfo import ZoneInfo

from campus_core.billing.anchoring import GRACE_PERIOD_DAYS
from campus_core.models.billing import GenerationReport
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from campus_api.services.bill_generator import BillGenerator

logger = logging.getLogger(__name__)

_POLL_SECONDS = 60


def should_run(now: datetime, run_hour: int, last_run: date | None) -> bool:
    """Whether a generation run is due at local time *now*."""
    if now.hour < run_hour:
        return False
    return last_run is None or last_run < now.date()


class BillGenerationScheduler:
    """AsyncIO background task for the daily generation run.

    Parameters
    ----------
    session_factory:
        Passed through to :class:`BillGenerator`.
    timezone:
        IANA zone whose calendar defines "today".
    run_hour:
        Local hour (0-23) from which the day's run may start.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timezone: str = "Asia/Kolkata",
        run_hour: int = 6,
        grace_period_days: int = GRACE_PERIOD_DAYS,
    ) -> None:
        self._session_factory = session_factory
        self._zone = ZoneInfo(timezone)
        self._run_hour = run_hour
        self._grace_period_days = grace_period_days
        self._last_run: date | None = None
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def last_run(self) -> date | None:
        return self._last_run

    async def start(self) -> None:
        if self._running:
            logger.warning("BillGenerationScheduler already running; ignoring start()")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("BillGenerationScheduler started (run_hour=%d, zone=%s)", self._run_hour, self._zone.key)

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("BillGenerationScheduler stopped")

    async def tick(self, now: datetime | None = None) -> GenerationReport | None:
        """Run the generator if it is due at *now*; return its report."""
        now = now or datetime.now(self._zone)
        if not should_run(now, self._run_hour, self._last_run):
            return None
        report = await BillGenerator(self._session_factory, self._grace_period_days).generate(now.date())
        self._last_run = now.date()
        return report

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except (OperationalError, InterfaceError) as exc:
                logger.error("BillGenerationScheduler database error: %s", exc, exc_info=True)
            except Exception as exc:
                logger.critical("BillGenerationScheduler unexpected error: %s", exc, exc_info=True)
                raise
            await asyncio.sleep(_POLL_SECONDS)
