"""Error taxonomy shared by the engine, the API and the CLI.

Every error carries a machine-readable ``code`` so that API handlers and
UI clients can pick a targeted remediation message without parsing text.
"""

from __future__ import annotations


class CampusBillingError(Exception):
    """Base class for all billing-engine errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(CampusBillingError):
    """Malformed input, rejected before any side effect."""

    code = "VALIDATION_ERROR"


class NotFoundError(CampusBillingError):
    """A referenced tenant, bill or operator does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, identifier: str) -> None:
        super().__init__(f"{entity} '{identifier}' not found")
        self.entity = entity
        self.identifier = identifier


class ConflictError(CampusBillingError):
    """A uniqueness or state precondition was violated."""

    code = "DUPLICATE"


class ConsentBlockedError(CampusBillingError):
    """One of the two consent flags is false; nothing was sent.

    ``code`` is the value of the blocking reason, e.g.
    ``OPERATOR_CONSENT_DISABLED`` or ``TENANT_NOT_OPTED_IN``.
    """

    def __init__(self, message: str, *, reason: str, tenant_name: str | None = None) -> None:
        super().__init__(message, code=reason)
        self.reason = reason
        self.tenant_name = tenant_name


class ProviderUnavailableError(CampusBillingError):
    """The delivery provider is unconfigured or unreachable."""

    code = "PROVIDER_UNAVAILABLE"


class ProviderError(CampusBillingError):
    """The delivery provider rejected the message."""

    code = "PROVIDER_ERROR"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
