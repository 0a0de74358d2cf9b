"""Payment receipt rendering and storage.

Receipts are rendered with reportlab from a freshly loaded bill, written
under ``receipt_storage_path/<operator_id>/<bill_id>.pdf`` and exposed at
``{public_base_url}/api/v1/bills/{bill_id}/receipt``.  The PDF is rebuilt
on every request so it always reflects the stored bill.
"""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass
from pathlib import Path

from campus_core.billing.templates import format_billing_period, receipt_filename
from campus_core.exceptions import NotFoundError, ValidationError
from campus_core.models.billing import PaymentStatus
from campus_core.state.repository import BillContext, BillRepository
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Path traversal prevention
# ---------------------------------------------------------------------------

_SAFE_ID_RE = re.compile(r"^[a-zA-Z0-9_-]+$")


def _validate_path_component(value: str, name: str) -> None:
    """Reject identifiers that contain path-separator or other unsafe chars."""
    if not _SAFE_ID_RE.match(value):
        raise ValidationError(f"Invalid {name}: contains unsafe characters")


def _resolve_safe_path(storage_base: Path, operator_id: str, bill_id: str) -> Path:
    """Build the receipt path and check it stays within *storage_base*."""
    _validate_path_component(operator_id, "operator_id")
    _validate_path_component(bill_id, "bill_id")

    base_resolved = storage_base.resolve()
    full_path = (base_resolved / operator_id / f"{bill_id}.pdf").resolve()
    if not full_path.is_relative_to(base_resolved):
        raise ValidationError("Path traversal detected")
    return full_path


@dataclass(frozen=True)
class ReceiptDocument:
    bill_id: str
    url: str
    filename: str
    path: str
    pdf: bytes


def _money(amount: float) -> str:
    return f"Rs. {amount:,.2f}"


class ReceiptService:
    """Per-operator receipt rendering."""

    def __init__(
        self,
        session: AsyncSession,
        operator_id: str | None = None,
        storage_path: str = "/var/lib/campus/receipts",
        public_base_url: str = "http://localhost:8000",
    ) -> None:
        self._session = session
        self._bills = BillRepository(session, operator_id)
        self._storage_path = storage_path
        self._public_base_url = public_base_url.rstrip("/")

    def receipt_url(self, bill_id: str) -> str:
        return f"{self._public_base_url}/api/v1/bills/{bill_id}/receipt"

    async def render_receipt(self, bill_id: str) -> ReceiptDocument:
        """Render, store and return the receipt for *bill_id*."""
        _validate_path_component(bill_id, "bill_id")
        context = await self._bills.get_context(bill_id)
        if context is None:
            raise NotFoundError("Bill", bill_id)
        if context.bill.payment_status != PaymentStatus.PAID.value:
            raise ValidationError(f"Bill '{bill_id}' is not paid; no receipt is available")

        pdf_bytes = self._render_pdf(context)
        path = self._store_pdf(context.bill.operator_id, bill_id, pdf_bytes)
        return ReceiptDocument(
            bill_id=bill_id,
            url=self.receipt_url(bill_id),
            filename=receipt_filename(context.bill.bill_month),
            path=path,
            pdf=pdf_bytes,
        )

    def _render_pdf(self, context: BillContext) -> bytes:
        bill = context.bill
        buf = io.BytesIO()
        doc = SimpleDocTemplate(buf, pagesize=A4, topMargin=0.75 * inch, bottomMargin=0.75 * inch)
        styles = getSampleStyleSheet()
        elements = []

        header_style = ParagraphStyle(
            "Header", parent=styles["Heading1"], fontSize=20, textColor=colors.HexColor("#1a1a2e")
        )
        elements.append(Paragraph(context.campus.name, header_style))
        if context.campus.address:
            elements.append(Paragraph(context.campus.address, styles["Normal"]))
        elements.append(Spacer(1, 12))

        meta_style = ParagraphStyle("Meta", parent=styles["Normal"], fontSize=10, textColor=colors.grey)
        elements.append(Paragraph("Payment Receipt", styles["Heading3"]))
        elements.append(Paragraph(f"Receipt for: {format_billing_period(bill.bill_month)}", meta_style))
        elements.append(Paragraph(f"Tenant: {context.tenant.full_name}", meta_style))
        elements.append(Paragraph(f"Room: {context.room_no or '-'}", meta_style))
        elements.append(Paragraph(f"Phone: {context.tenant.phone}", meta_style))
        elements.append(Spacer(1, 24))

        table_data = [
            ["Description", "Amount"],
            ["Rent", _money(bill.rent_amount)],
            ["Electricity", _money(bill.electricity_amount)],
            ["Water", _money(bill.water_amount)],
            ["Other charges", _money(bill.other_charges)],
            ["Total Amount Paid", _money(bill.total_amount)],
        ]
        table = Table(table_data, colWidths=[4.5 * inch, 2 * inch])
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1a1a2e")),
                    ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                    ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                    ("BOTTOMPADDING", (0, 0), (-1, 0), 12),
                    ("GRID", (0, 0), (-1, -2), 0.5, colors.grey),
                    ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
                    ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
                    ("LINEABOVE", (0, -1), (-1, -1), 2, colors.black),
                ]
            )
        )
        elements.append(table)
        elements.append(Spacer(1, 24))

        paid_on = bill.payment_date.strftime("%d %b %Y") if bill.payment_date else "-"
        elements.append(Paragraph(f"Payment method: {bill.payment_method or '-'}", styles["Normal"]))
        elements.append(Paragraph(f"Payment date: {paid_on}", styles["Normal"]))
        elements.append(Paragraph(f"Status: {bill.payment_status}", styles["Normal"]))
        elements.append(Spacer(1, 36))

        footer_style = ParagraphStyle("Footer", parent=styles["Normal"], fontSize=8, textColor=colors.grey)
        elements.append(Paragraph("This is a computer-generated receipt.", footer_style))

        doc.build(elements)
        return buf.getvalue()

    def _store_pdf(self, operator_id: str, bill_id: str, pdf_bytes: bytes) -> str:
        pdf_path = _resolve_safe_path(Path(self._storage_path), operator_id, bill_id)
        pdf_path.parent.mkdir(parents=True, exist_ok=True)
        pdf_path.write_bytes(pdf_bytes)
        logger.info("Stored receipt PDF: %s (%d bytes)", pdf_path, len(pdf_bytes))
        return str(pdf_path)
