"""API router modules for the campus billing control plane."""

from __future__ import annotations

from campus_api.routers import (
    bills,
    health,
    operator,
    portfolio,
    reminders,
    reports,
    webhooks,
)

__all__ = [
    "bills",
    "health",
    "operator",
    "portfolio",
    "reminders",
    "reports",
    "webhooks",
]
