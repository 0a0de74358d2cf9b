"""Tests for campus_api/services/receipt_service.py"""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest
from campus_core.exceptions import NotFoundError, ValidationError

from campus_api.services.receipt_service import ReceiptService, _resolve_safe_path


@pytest.fixture()
def receipts(session, tmp_path):
    return ReceiptService(session, storage_path=str(tmp_path / "receipts"), public_base_url="https://b.example.com/")


class TestRenderReceipt:
    @pytest.mark.asyncio
    async def test_renders_and_stores_pdf(self, receipts, portfolio, tenant_factory, bill_factory, tmp_path):
        tenant = await tenant_factory()
        bill_id = await bill_factory(tenant, month=date(2026, 10, 1), paid_on=date(2026, 10, 18))

        document = await receipts.render_receipt(bill_id)

        assert document.pdf.startswith(b"%PDF")
        assert document.filename == "Receipt_October_2026.pdf"
        assert document.url == f"https://b.example.com/api/v1/bills/{bill_id}/receipt"
        stored = tmp_path / "receipts" / portfolio.operator_id / f"{bill_id}.pdf"
        assert Path(document.path) == stored.resolve()
        assert stored.read_bytes() == document.pdf

    @pytest.mark.asyncio
    async def test_unpaid_bill_has_no_receipt(self, receipts, tenant_factory, bill_factory) -> None:
        tenant = await tenant_factory()
        bill_id = await bill_factory(tenant)

        with pytest.raises(ValidationError, match="not paid"):
            await receipts.render_receipt(bill_id)

    @pytest.mark.asyncio
    async def test_unknown_bill(self, receipts) -> None:
        with pytest.raises(NotFoundError):
            await receipts.render_receipt("missing-bill")

    @pytest.mark.asyncio
    async def test_unsafe_bill_id_rejected(self, receipts) -> None:
        with pytest.raises(ValidationError, match="unsafe"):
            await receipts.render_receipt("../../etc/passwd")


class TestSafePath:
    def test_path_stays_under_base(self, tmp_path) -> None:
        path = _resolve_safe_path(tmp_path, "op-1", "bill-1")
        assert path == (tmp_path / "op-1" / "bill-1.pdf").resolve()

    @pytest.mark.parametrize("operator_id", ["..", "a/b", "op 1", ""])
    def test_unsafe_operator_rejected(self, tmp_path, operator_id: str) -> None:
        with pytest.raises(ValidationError):
            _resolve_safe_path(tmp_path, operator_id, "bill-1")
