"""Notification dispatch enums and result records."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class NotificationStatus(str, Enum):
    """Outcome recorded in the notification log for one attempt."""

    SENT = "sent"
    FAILED = "failed"
    BLOCKED = "blocked"
    PENDING = "pending"
    RECEIVED = "received"


class TemplateName(str, Enum):
    """Internal message template identifiers."""

    PAYMENT_REMINDER = "payment_reminder"
    PAYMENT_CONFIRMATION = "payment_confirmation"
    OPT_IN = "opt_in"


class DispatchResult(BaseModel):
    """Result of a single accepted dispatch request.

    Blocked and failed attempts surface as exceptions instead; they are
    still written to the log before the exception is raised.
    """

    bill_id: str
    tenant_id: str
    template: TemplateName
    status: NotificationStatus
    message_id: str | None = None
    log_id: str | None = None
    duplicate: bool = False
    logged_at: datetime | None = None


class BulkDispatchResult(BaseModel):
    """Aggregate tally of a bulk reminder run."""

    sent_count: int = 0
    failed_count: int = 0
