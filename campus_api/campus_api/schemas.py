"""Request bodies for the API endpoints.

Responses are plain dictionaries built by the services; request bodies are
validated here so malformed input is rejected before any service runs.
"""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Bills
# ---------------------------------------------------------------------------


class GenerateBillsRequest(BaseModel):
    """Optional override of the run date; defaults to today in the billing timezone."""

    run_date: date | None = None


class CreateBillRequest(BaseModel):
    tenant_id: str = Field(..., min_length=1)
    bill_month: str = Field(..., description="YYYY-MM or an ISO date inside the month")
    rent_amount: float | None = Field(default=None, ge=0)
    electricity_amount: float = Field(default=0.0, ge=0)
    water_amount: float = Field(default=0.0, ge=0)
    other_charges: float = Field(default=0.0, ge=0)
    due_date: date | None = None
    notes: str | None = Field(default=None, max_length=1000)


class UpdateChargesRequest(BaseModel):
    electricity_amount: float | None = Field(default=None, ge=0)
    water_amount: float | None = Field(default=None, ge=0)
    other_charges: float | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=1000)


class MarkPaidRequest(BaseModel):
    payment_method: str = Field(..., min_length=1)
    payment_date: date | None = None
    send_confirmation: bool = True


# ---------------------------------------------------------------------------
# Reminders
# ---------------------------------------------------------------------------


class BulkReminderRequest(BaseModel):
    bill_ids: list[str] = Field(..., min_length=1, max_length=500)


# ---------------------------------------------------------------------------
# Operator settings
# ---------------------------------------------------------------------------


class ConsentUpdate(BaseModel):
    notification_consent: bool


# ---------------------------------------------------------------------------
# Portfolio records
# ---------------------------------------------------------------------------


class OperatorCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=256)
    email: str | None = None
    phone: str | None = None


class CampusCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=256)
    city: str | None = None
    address: str | None = None


class RoomCreate(BaseModel):
    campus_id: str = Field(..., min_length=1)
    room_no: str = Field(..., min_length=1, max_length=32)
    capacity: int = Field(..., ge=1)
    rent_amount: float = Field(default=0.0, ge=0)
    room_type: str | None = None


class TenantCreate(BaseModel):
    campus_id: str = Field(..., min_length=1)
    room_id: str | None = None
    full_name: str = Field(..., min_length=1, max_length=256)
    phone: str = Field(..., min_length=5, max_length=20)
    rent_amount: float = Field(..., ge=0)
    security_deposit: float = Field(default=0.0, ge=0)
    move_in_date: date


class MoveOutRequest(BaseModel):
    move_out_date: date | None = None


class ExpenseCreate(BaseModel):
    campus_id: str = Field(..., min_length=1)
    expense_type: str = Field(..., min_length=1, max_length=64)
    custom_type: str | None = None
    description: str | None = None
    amount: float = Field(..., ge=0)
    expense_date: date
