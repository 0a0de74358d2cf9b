"""Domain models for the campus billing engine."""

from campus_core.models.billing import (
    BillBucket,
    GenerationReport,
    GenerationStatus,
    PaymentMethod,
    PaymentStatus,
    TenantGenerationResult,
)
from campus_core.models.notification import (
    BulkDispatchResult,
    DispatchResult,
    NotificationStatus,
    TemplateName,
)

__all__ = [
    "BillBucket",
    "BulkDispatchResult",
    "DispatchResult",
    "GenerationReport",
    "GenerationStatus",
    "NotificationStatus",
    "PaymentMethod",
    "PaymentStatus",
    "TemplateName",
    "TenantGenerationResult",
]
