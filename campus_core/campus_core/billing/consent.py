"""Two-party consent gate for outbound notifications.

A message may be sent only when the operator has enabled notifications and
the tenant has opted in.  The gate is evaluated before any I/O and returns
an explicit tagged result so every blocking reason can be enumerated.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class BlockReason(str, Enum):
    OPERATOR_CONSENT_DISABLED = "OPERATOR_CONSENT_DISABLED"
    TENANT_NOT_OPTED_IN = "TENANT_NOT_OPTED_IN"


@dataclass(frozen=True)
class Allowed:
    """Both flags are set; the dispatch may proceed."""

    allowed: bool = True


@dataclass(frozen=True)
class Blocked:
    """One flag is unset; nothing may be sent."""

    reason: BlockReason
    allowed: bool = False

    def describe(self, tenant_name: str) -> str:
        """Actionable message naming the tenant and the missing precondition."""
        if self.reason == BlockReason.OPERATOR_CONSENT_DISABLED:
            return (
                f"Cannot message {tenant_name}: notifications are disabled for this account. "
                "Enable notification consent in operator settings."
            )
        return (
            f"Cannot message {tenant_name}: the tenant has not opted in. "
            "Ask the tenant to send a message to the business number first."
        )


ConsentDecision = Allowed | Blocked


def evaluate_consent(operator_consent: bool, tenant_opt_in: bool) -> ConsentDecision:
    """Evaluate the gate.  The operator flag is checked first."""
    if not operator_consent:
        return Blocked(BlockReason.OPERATOR_CONSENT_DISABLED)
    if not tenant_opt_in:
        return Blocked(BlockReason.TENANT_NOT_OPTED_IN)
    return Allowed()
