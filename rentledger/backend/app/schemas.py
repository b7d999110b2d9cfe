# backend/app/schemas.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Literal

from pydantic import BaseModel, Field, ConfigDict, model_validator


# -------------------- Units / Tenants / Leases --------------------

class UnitCreate(BaseModel):
    property_name: str
    unit_number: str


class UnitOut(UnitCreate):
    id: int
    occupancy_status: str
    model_config = ConfigDict(from_attributes=True)


class TenantCreate(BaseModel):
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    user_id: Optional[int] = None


class TenantOut(TenantCreate):
    id: int
    is_blacklisted: bool = False
    blacklist_severity: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class LeaseCreate(BaseModel):
    lease_number: str
    unit_id: int
    tenant_ids: List[int] = Field(min_length=1)
    start_date: date
    end_date: Optional[date] = None
    monthly_rent: Decimal = Field(gt=0)
    security_deposit: Decimal = Field(default=Decimal("0"), ge=0)
    late_fee: Decimal = Field(default=Decimal("0"), ge=0)
    grace_period_days: Optional[int] = Field(default=None, ge=0)
    rent_due_day: Optional[int] = Field(default=None, ge=1, le=31)

    @model_validator(mode="after")
    def _dates(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date cannot be before start_date")
        return self


class LeaseOut(BaseModel):
    id: int
    lease_number: str
    unit_id: int
    start_date: date
    end_date: Optional[date] = None
    move_out_date: Optional[date] = None
    monthly_rent: Decimal
    security_deposit: Decimal
    late_fee: Decimal
    grace_period_days: Optional[int] = None
    rent_due_day: Optional[int] = None
    lease_status: str
    model_config = ConfigDict(from_attributes=True)


# -------------------- Rent obligations --------------------

class PeriodIn(BaseModel):
    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)


class ObligationCreate(BaseModel):
    lease_id: int
    due_date: date
    amount_due: Decimal = Field(gt=0)
    late_fee: Decimal = Field(default=Decimal("0"), ge=0)


class ObligationOut(BaseModel):
    id: int
    lease_id: int
    due_date: date
    amount_due: Decimal
    utilities_charges: Decimal
    late_fee: Decimal
    amount_paid: Decimal
    status: str
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    payment_date: Optional[date] = None
    model_config = ConfigDict(from_attributes=True)


class PaymentIn(BaseModel):
    amount: Decimal
    payment_method: str
    payment_reference: Optional[str] = None
    payment_date: Optional[date] = None
    notes: Optional[str] = None


class ReminderIn(BaseModel):
    obligation_ids: List[int] = Field(min_length=1)
    reminder_type: Literal["overdue", "upcoming"] = "overdue"


class ObligationUpdateOut(BaseModel):
    id: int
    change_type: str
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    old_amount: Optional[Decimal] = None
    new_amount: Optional[Decimal] = None
    changed_by: Optional[int] = None
    change_reason: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# -------------------- Payment submissions --------------------

class SubmissionCreate(BaseModel):
    amount: Decimal = Field(gt=0)
    payment_method: str = Field(min_length=1)
    transaction_reference: str = Field(min_length=1)
    transaction_date: date
    notes: Optional[str] = None


class SubmissionOut(BaseModel):
    id: int
    tenant_id: int
    lease_id: int
    amount: Decimal
    payment_method: str
    transaction_reference: str
    transaction_date: date
    notes: Optional[str] = None
    submission_date: datetime
    verification_status: str
    verified_amount: Optional[Decimal] = None
    verified_by: Optional[int] = None
    verified_date: Optional[datetime] = None
    admin_notes: Optional[str] = None
    applied_obligation_id: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


class VerifyIn(BaseModel):
    admin_notes: str
    verified_amount: Optional[Decimal] = None


class RejectIn(BaseModel):
    admin_notes: str


class BulkVerifyIn(BaseModel):
    submission_ids: List[int] = Field(min_length=1)
    admin_notes: str


# -------------------- Utilities --------------------

class UtilityChargeCreate(BaseModel):
    lease_id: int
    year: int = Field(ge=2000, le=2100)
    month: int = Field(ge=1, le=12)
    water_charges: Decimal = Field(default=Decimal("0"), ge=0)
    electricity_charges: Decimal = Field(default=Decimal("0"), ge=0)
    gas_charges: Decimal = Field(default=Decimal("0"), ge=0)
    service_charges: Decimal = Field(default=Decimal("0"), ge=0)
    garbage_charges: Decimal = Field(default=Decimal("0"), ge=0)
    common_area_charges: Decimal = Field(default=Decimal("0"), ge=0)
    other_charges: Decimal = Field(default=Decimal("0"), ge=0)
    other_charges_description: Optional[str] = None
    due_date: Optional[date] = None
    notes: Optional[str] = None
    charge_status: Literal["draft", "pending"] = "pending"


class UtilityDraftIn(PeriodIn):
    water_charges: Decimal = Field(default=Decimal("0"), ge=0)
    service_charges: Decimal = Field(default=Decimal("0"), ge=0)


class UtilityChargeOut(BaseModel):
    id: int
    lease_id: int
    billing_month: date
    water_charges: Decimal
    electricity_charges: Decimal
    gas_charges: Decimal
    service_charges: Decimal
    garbage_charges: Decimal
    common_area_charges: Decimal
    other_charges: Decimal
    other_charges_description: Optional[str] = None
    total_utility_charges: Decimal
    charge_status: str
    billed_obligation_id: Optional[int] = None
    due_date: Optional[date] = None
    model_config = ConfigDict(from_attributes=True)


# -------------------- Offboarding --------------------

class DeductionIn(BaseModel):
    description: str = Field(min_length=1)
    amount: Decimal = Field(ge=0)


class OffboardIn(BaseModel):
    move_out_date: date
    deductions: List[DeductionIn] = Field(default_factory=list)
    handle_unpaid_rent: Literal["deduct", "writeoff"] = "deduct"
    notes: Optional[str] = None
