"""Health-check and readiness probe endpoints.

``/health`` (liveness) lives under ``/api/v1``; ``/ready`` is registered at
the application root so orchestrators can gate traffic independently of
the API version.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from campus_api import __version__
from campus_api.dependencies import ProviderDep, SessionDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


def _provider_state(provider: Any) -> str:
    return "configured" if getattr(provider, "configured", True) else "unconfigured"


@router.get("/health")
async def health(session: SessionDep, provider: ProviderDep) -> dict[str, Any]:
    """Always 200; ``db`` and ``provider`` report dependency state."""
    result: dict[str, Any] = {
        "status": "healthy",
        "version": __version__,
        "db": "ok",
        "provider": _provider_state(provider),
    }
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("DB health check failed: %s", exc)
        result["db"] = "degraded"
    return result


readiness_router = APIRouter(tags=["infrastructure"])


@readiness_router.get("/ready")
async def readiness_probe(session: SessionDep, provider: ProviderDep) -> JSONResponse:
    """503 when the database is unreachable.

    An unconfigured provider only degrades readiness: sends are recorded as
    ``pending`` rather than failing.
    """
    checks = {"db": "ok", "provider": _provider_state(provider)}
    overall = "ready"

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Readiness: DB check failed: %s", exc)
        checks["db"] = "unavailable"
        overall = "not_ready"

    if overall == "ready" and checks["provider"] != "configured":
        overall = "degraded"

    return JSONResponse(
        status_code=200 if overall != "not_ready" else 503,
        content={"status": overall, "version": __version__, "checks": checks},
    )
