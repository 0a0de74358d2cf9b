"""Pure billing-domain logic: anchoring, classification, consent, templates, rollups."""

from campus_core.billing.anchoring import billing_day, due_date_for, is_billing_day
from campus_core.billing.classifier import Classification, classify
from campus_core.billing.consent import Allowed, Blocked, BlockReason, evaluate_consent

__all__ = [
    "Allowed",
    "BlockReason",
    "Blocked",
    "Classification",
    "billing_day",
    "classify",
    "due_date_for",
    "evaluate_consent",
    "is_billing_day",
]
