"""Rendering of outbound message templates.

Each template has a fixed, ordered list of body parameters that the
delivery provider substitutes into a pre-approved message:

* ``payment_reminder``: tenant name, billing period, due date, campus name.
* ``payment_confirmation``: tenant name, amount, billing period, plus a
  document header pointing at the rendered receipt.

Rendering is pure and validates that every required field is present
before the provider is ever contacted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from campus_core.exceptions import ValidationError
from campus_core.models.notification import TemplateName


@dataclass(frozen=True)
class RenderedMessage:
    """Provider-neutral rendering of one template."""

    template: TemplateName
    parameters: list[str] = field(default_factory=list)
    document_link: str | None = None
    document_filename: str | None = None


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_billing_period(bill_month: date) -> str:
    """``date(2026, 10, 1)`` -> ``"October 2026"``."""
    return bill_month.strftime("%B %Y")


def format_due_date(due: date) -> str:
    """``date(2026, 10, 23)`` -> ``"23 Oct 2026"``."""
    return f"{due.day} {due.strftime('%b %Y')}"


def format_amount(amount: float) -> str:
    """Format *amount* with Indian digit grouping.

    ``1234567`` -> ``"12,34,567"``; ``8500.5`` -> ``"8,500.5"``.
    """
    negative = amount < 0
    text = f"{abs(amount):.2f}"
    whole, fraction = text.split(".")
    fraction = fraction.rstrip("0")
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups + [tail])
    result = f"{whole}.{fraction}" if fraction else whole
    return f"-{result}" if negative else result


def receipt_filename(bill_month: date) -> str:
    """``Receipt_October_2026.pdf``."""
    return f"Receipt_{bill_month.strftime('%B')}_{bill_month.year}.pdf"


def _require(template: TemplateName, **fields: object) -> None:
    missing = sorted(name for name, value in fields.items() if value is None or value == "")
    if missing:
        raise ValidationError(f"Template '{template.value}' is missing required field(s): {', '.join(missing)}")


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


def render_reminder(
    *,
    tenant_name: str | None,
    bill_month: date | None,
    due_date: date | None,
    campus_name: str | None,
) -> RenderedMessage:
    template = TemplateName.PAYMENT_REMINDER
    _require(
        template,
        tenant_name=tenant_name,
        bill_month=bill_month,
        due_date=due_date,
        campus_name=campus_name,
    )
    assert bill_month is not None and due_date is not None
    return RenderedMessage(
        template=template,
        parameters=[
            str(tenant_name),
            format_billing_period(bill_month),
            format_due_date(due_date),
            str(campus_name),
        ],
    )


def render_confirmation(
    *,
    tenant_name: str | None,
    amount: float | None,
    bill_month: date | None,
    receipt_url: str | None,
) -> RenderedMessage:
    """Render the payment confirmation.

    The receipt URL is mandatory: a confirmation without its document is
    never sent.
    """
    template = TemplateName.PAYMENT_CONFIRMATION
    _require(
        template,
        tenant_name=tenant_name,
        amount=amount,
        bill_month=bill_month,
        receipt_url=receipt_url,
    )
    assert bill_month is not None and amount is not None
    return RenderedMessage(
        template=template,
        parameters=[
            str(tenant_name),
            format_amount(amount),
            format_billing_period(bill_month),
        ],
        document_link=receipt_url,
        document_filename=receipt_filename(bill_month),
    )
