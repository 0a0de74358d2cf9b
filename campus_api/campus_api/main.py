"""FastAPI application entry-point for the campus billing control plane."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from campus_core.exceptions import (
    CampusBillingError,
    ConflictError,
    ConsentBlockedError,
    NotFoundError,
    ProviderError,
    ProviderUnavailableError,
    ValidationError,
)
from campus_core.state.database import create_tables
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from campus_api import __version__
from campus_api.config import APISettings, PlatformEnv, load_api_settings
from campus_api.dependencies import (
    dispose_engine,
    dispose_provider,
    get_session_factory,
    init_engine,
    init_provider,
)
from campus_api.middleware.logging import RequestLoggingMiddleware
from campus_api.routers import bills, health, operator, portfolio, reminders, reports, webhooks
from campus_api.services.bill_scheduler import BillGenerationScheduler

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup / shutdown lifecycle.

    On startup:
    - Switch to JSON log lines when structured logging is enabled.
    - Initialise the async database engine; create tables in dev or local
      SQLite mode.
    - Initialise the delivery provider client.
    - Start the daily generation scheduler when enabled.

    On shutdown the scheduler, provider client and engine are released in
    reverse order.
    """
    settings: APISettings = load_api_settings()

    if settings.structured_logging:
        from campus_api.middleware.json_formatter import install_json_logging

        install_json_logging()
        logger.info("Structured JSON logging enabled")

    engine = init_engine(settings)
    is_local = settings.database_url.startswith("sqlite")
    logger.info("Database engine initialised (%s)", "local" if is_local else "postgres")

    # Idempotent; production deployments manage the schema out of band.
    if settings.platform_env == PlatformEnv.DEV or is_local:
        await create_tables(engine)

    provider = init_provider(settings)
    if not provider.configured:
        logger.warning("WhatsApp credentials not configured; messages will be recorded as pending")

    scheduler: BillGenerationScheduler | None = None
    if settings.bill_scheduler_enabled:
        scheduler = BillGenerationScheduler(
            get_session_factory(),
            timezone=settings.billing_timezone,
            run_hour=settings.bill_scheduler_hour,
            grace_period_days=settings.grace_period_days,
        )
        await scheduler.start()

    yield

    if scheduler is not None:
        await scheduler.stop()
    await dispose_provider()
    await dispose_engine()
    logger.info("Application shutdown complete")


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def _error(status_code: int, detail: str, code: str | None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, "code": code})


def register_exception_handlers(app: FastAPI) -> None:
    """Map the domain error taxonomy onto HTTP responses.

    Validation, lookup, conflict and consent errors carry their own
    message.  Provider and storage errors return a generic message; the
    details go to the log only.
    """

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
        return _error(400, exc.message, exc.code)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(404, exc.message, exc.code)

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
        return _error(409, exc.message, exc.code)

    @app.exception_handler(ConsentBlockedError)
    async def consent_blocked_handler(request: Request, exc: ConsentBlockedError) -> JSONResponse:
        return _error(403, exc.message, exc.code)

    @app.exception_handler(ProviderUnavailableError)
    async def provider_unavailable_handler(request: Request, exc: ProviderUnavailableError) -> JSONResponse:
        logger.warning("Provider unavailable on %s: %s", request.url.path, exc.message)
        return _error(202, "Delivery provider unavailable; message recorded as pending", exc.code)

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
        logger.error("Provider error on %s (status=%s): %s", request.url.path, exc.status_code, exc.message)
        return _error(502, "Delivery provider rejected the message", exc.code)

    @app.exception_handler(CampusBillingError)
    async def billing_error_handler(request: Request, exc: CampusBillingError) -> JSONResponse:
        logger.warning("Unmapped %s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        return _error(400, exc.message, exc.code)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.warning("ValueError on %s: %s", request.url.path, exc)
        return _error(400, "Invalid request", None)

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error("Database error: %s", exc, exc_info=True)
        return _error(500, "Internal database error", None)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Construct and configure the FastAPI application."""
    settings = load_api_settings()

    app = FastAPI(
        title="Campus Billing API",
        description="Rent billing, payment reminders and financial rollups for hostel operators.",
        version=__version__,
        lifespan=lifespan,
    )

    # -- Middleware (outermost first) ----------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Correlation-ID", "X-Operator-ID", "Accept"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # -- Routers -------------------------------------------------------------

    app.include_router(health.router, prefix="/api/v1")
    app.include_router(bills.router, prefix="/api/v1")
    app.include_router(reminders.router, prefix="/api/v1")
    app.include_router(reports.router, prefix="/api/v1")
    app.include_router(operator.router, prefix="/api/v1")
    app.include_router(portfolio.router, prefix="/api/v1")
    app.include_router(webhooks.router, prefix="/api/v1")
    app.include_router(health.readiness_router)

    register_exception_handlers(app)
    return app


# Module-level application instance used by ``uvicorn campus_api.main:app``.
app = create_app()
