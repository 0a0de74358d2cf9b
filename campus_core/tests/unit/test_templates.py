"""Unit tests for message template rendering."""

from __future__ import annotations

from datetime import date

import pytest
from campus_core.billing.templates import (
    format_amount,
    format_billing_period,
    format_due_date,
    receipt_filename,
    render_confirmation,
    render_reminder,
)
from campus_core.exceptions import ValidationError
from campus_core.models.notification import TemplateName

# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


class TestFormatting:
    def test_billing_period(self):
        assert format_billing_period(date(2026, 10, 1)) == "October 2026"

    def test_due_date_has_no_leading_zero(self):
        assert format_due_date(date(2026, 10, 3)) == "3 Oct 2026"
        assert format_due_date(date(2026, 10, 23)) == "23 Oct 2026"

    @pytest.mark.parametrize(
        ("amount", "expected"),
        [
            (0, "0"),
            (500, "500"),
            (8500, "8,500"),
            (123456, "1,23,456"),
            (1234567, "12,34,567"),
            (8500.5, "8,500.5"),
            (8500.25, "8,500.25"),
            (-1500, "-1,500"),
        ],
    )
    def test_indian_grouping(self, amount, expected):
        assert format_amount(amount) == expected

    def test_receipt_filename(self):
        assert receipt_filename(date(2026, 10, 1)) == "Receipt_October_2026.pdf"


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------


class TestRenderReminder:
    def test_parameter_order(self):
        message = render_reminder(
            tenant_name="Ravi",
            bill_month=date(2026, 10, 1),
            due_date=date(2026, 10, 23),
            campus_name="Sunrise PG",
        )
        assert message.template == TemplateName.PAYMENT_REMINDER
        assert message.parameters == ["Ravi", "October 2026", "23 Oct 2026", "Sunrise PG"]
        assert message.document_link is None

    def test_missing_campus_rejected(self):
        with pytest.raises(ValidationError, match="campus_name"):
            render_reminder(
                tenant_name="Ravi",
                bill_month=date(2026, 10, 1),
                due_date=date(2026, 10, 23),
                campus_name="",
            )


class TestRenderConfirmation:
    def test_parameters_and_document(self):
        message = render_confirmation(
            tenant_name="Ravi",
            amount=9200,
            bill_month=date(2026, 10, 1),
            receipt_url="https://pg.example/api/v1/bills/b1/receipt",
        )
        assert message.template == TemplateName.PAYMENT_CONFIRMATION
        assert message.parameters == ["Ravi", "9,200", "October 2026"]
        assert message.document_link == "https://pg.example/api/v1/bills/b1/receipt"
        assert message.document_filename == "Receipt_October_2026.pdf"

    def test_zero_amount_is_allowed(self):
        message = render_confirmation(
            tenant_name="Ravi", amount=0, bill_month=date(2026, 10, 1), receipt_url="https://x/r"
        )
        assert message.parameters[1] == "0"

    def test_receipt_required(self):
        with pytest.raises(ValidationError, match="receipt_url"):
            render_confirmation(tenant_name="Ravi", amount=100, bill_month=date(2026, 10, 1), receipt_url=None)
