"""Bill lifecycle enums and generation-run records."""

from __future__ import annotations

from datetime import date
from enum import Enum

from pydantic import BaseModel, Field


class PaymentStatus(str, Enum):
    """Payment state of a bill.

    Only ``PENDING`` and ``PAID`` are ever persisted.  ``OVERDUE`` is a
    read-time projection of ``due_date < today`` on an unpaid bill.
    """

    PENDING = "Pending"
    PAID = "Paid"
    OVERDUE = "Overdue"


STORED_PAYMENT_STATUSES: frozenset[str] = frozenset({PaymentStatus.PENDING.value, PaymentStatus.PAID.value})


class PaymentMethod(str, Enum):
    """Ways a tenant can settle a bill."""

    CASH = "Cash"
    PHONEPE = "PhonePe"
    GOOGLEPAY = "GooglePay"
    PAYTM = "Paytm"
    BANK_TRANSFER = "BankTransfer"
    OTHER = "Other"


class BillBucket(str, Enum):
    """Temporal category assigned by the classifier."""

    UPCOMING = "upcoming"
    DUE_TODAY = "due_today"
    OVERDUE = "overdue"
    PAID = "paid"


class GenerationStatus(str, Enum):
    """Outcome of one tenant within a generation run.

    ``EXISTS`` covers both a bill found before insert and an insert that
    lost a race against an overlapping run.
    """

    CREATED = "created"
    NOT_DUE = "not_due"
    EXISTS = "exists"
    ERROR = "error"


class TenantGenerationResult(BaseModel):
    """Per-tenant line of a generation report."""

    tenant_id: str
    tenant_name: str
    status: GenerationStatus
    billing_day: int | None = None
    bill_id: str | None = None
    due_date: date | None = None
    reason: str = ""


class GenerationReport(BaseModel):
    """Summary of one generation run."""

    run_date: date
    bill_month: date
    created: int = 0
    skipped: int = Field(default=0, description="Tenants whose cycle already had a bill.")
    not_due: int = 0
    failed: int = 0
    results: list[TenantGenerationResult] = Field(default_factory=list)

    def record(self, result: TenantGenerationResult) -> None:
        """Append *result* and bump the matching counter."""
        self.results.append(result)
        if result.status == GenerationStatus.CREATED:
            self.created += 1
        elif result.status == GenerationStatus.EXISTS:
            self.skipped += 1
        elif result.status == GenerationStatus.NOT_DUE:
            self.not_due += 1
        else:
            self.failed += 1
