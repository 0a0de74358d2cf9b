"""FastAPI dependency injection for settings, sessions, operator scope and the delivery provider."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from campus_core.exceptions import NotFoundError
from campus_core.state.database import get_engine
from campus_core.state.repository import OperatorRepository
from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from campus_api.config import APISettings, load_api_settings
from campus_api.services.delivery_provider import DeliveryProvider, WhatsAppCloudClient

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_settings_cache: APISettings | None = None


def get_settings() -> APISettings:
    """Return the cached :class:`APISettings` singleton."""
    global _settings_cache  # noqa: PLW0603
    if _settings_cache is None:
        _settings_cache = load_api_settings()
    return _settings_cache


SettingsDep = Annotated[APISettings, Depends(get_settings)]

# ---------------------------------------------------------------------------
# Database session
# ---------------------------------------------------------------------------

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_engine(settings: APISettings) -> AsyncEngine:
    """Create and cache the global async engine."""
    global _engine, _session_factory  # noqa: PLW0603
    _engine = get_engine(settings.database_url)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


async def dispose_engine() -> None:
    """Dispose the global engine pool (call during shutdown)."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the global async session factory.

    Used by work that outlives a request (background confirmations, the
    generation scheduler) and by the per-tenant sessions of the bill
    generator.
    """
    if _session_factory is None:
        raise RuntimeError(
            "Database engine has not been initialised. Ensure init_engine() is called during application startup."
        )
    return _session_factory


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an ``AsyncSession`` that commits on clean exit and rolls back on exception."""
    session = get_session_factory()()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


SessionDep = Annotated[AsyncSession, Depends(get_db_session)]
SessionFactoryDep = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]

# ---------------------------------------------------------------------------
# Operator scope
# ---------------------------------------------------------------------------


async def get_operator_id(
    session: SessionDep,
    x_operator_id: Annotated[str | None, Header()] = None,
) -> str:
    """Resolve the calling operator from the ``X-Operator-ID`` header.

    Every business endpoint is scoped to one operator; an unknown operator
    is reported as not found rather than silently returning empty lists.
    """
    operator_id = (x_operator_id or "").strip()
    if not operator_id:
        raise HTTPException(status_code=401, detail="X-Operator-ID header required")
    if await OperatorRepository(session).get(operator_id) is None:
        raise NotFoundError("Operator", operator_id)
    return operator_id


OperatorDep = Annotated[str, Depends(get_operator_id)]

# ---------------------------------------------------------------------------
# Delivery provider
# ---------------------------------------------------------------------------

_provider: WhatsAppCloudClient | None = None


def init_provider(settings: APISettings) -> WhatsAppCloudClient:
    """Create and cache the global WhatsApp client."""
    global _provider  # noqa: PLW0603
    _provider = WhatsAppCloudClient.from_settings(settings)
    return _provider


async def dispose_provider() -> None:
    """Close the provider's underlying HTTP pool."""
    global _provider  # noqa: PLW0603
    if _provider is not None:
        await _provider.close()
        _provider = None


def get_provider() -> DeliveryProvider:
    """Return the cached delivery provider singleton."""
    if _provider is None:
        raise RuntimeError(
            "Delivery provider has not been initialised. Ensure init_provider() is called during application startup."
        )
    return _provider


ProviderDep = Annotated[DeliveryProvider, Depends(get_provider)]
