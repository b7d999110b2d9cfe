# backend/app/models.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base

MONEY = Numeric(12, 2)


# -----------------------------
# Actors
# -----------------------------
class AppUser(Base):
    __tablename__ = "app_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="tenant")  # super_admin|admin|manager|tenant
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Units + tenancy
# -----------------------------
class Unit(Base):
    __tablename__ = "units"
    __table_args__ = (UniqueConstraint("property_name", "unit_number", name="uq_units_property_unit"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_name: Mapped[str] = mapped_column(String(200), nullable=False)
    unit_number: Mapped[str] = mapped_column(String(40), nullable=False)
    occupancy_status: Mapped[str] = mapped_column(String(20), nullable=False, default="vacant")  # vacant|occupied
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    leases: Mapped[List["Lease"]] = relationship(back_populates="unit")


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True, index=True)

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    is_blacklisted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    blacklist_severity: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)  # low|medium|high|severe

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    lease_links: Mapped[List["LeaseTenant"]] = relationship(back_populates="tenant")


class Lease(Base):
    __tablename__ = "leases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lease_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)
    unit_id: Mapped[int] = mapped_column(Integer, ForeignKey("units.id"), nullable=False, index=True)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    move_out_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    monthly_rent: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    late_fee: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    grace_period_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rent_due_day: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    security_deposit: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))

    lease_status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", index=True)  # draft|active|terminated

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    unit: Mapped["Unit"] = relationship(back_populates="leases")
    tenant_links: Mapped[List["LeaseTenant"]] = relationship(back_populates="lease")
    obligations: Mapped[List["RentObligation"]] = relationship(back_populates="lease")


class LeaseTenant(Base):
    __tablename__ = "lease_tenants"
    __table_args__ = (UniqueConstraint("lease_id", "tenant_id", name="uq_lease_tenants_lease_tenant"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lease_id: Mapped[int] = mapped_column(Integer, ForeignKey("leases.id"), nullable=False, index=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    is_primary_tenant: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    removed_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    lease: Mapped["Lease"] = relationship(back_populates="tenant_links")
    tenant: Mapped["Tenant"] = relationship(back_populates="lease_links")


# -----------------------------
# Obligations (rent_payments)
# -----------------------------
class RentObligation(Base):
    __tablename__ = "rent_payments"
    __table_args__ = (
        UniqueConstraint("lease_id", "due_date", name="uq_rent_payments_lease_due_date"),
        Index("ix_rent_payments_status_due", "status", "due_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lease_id: Mapped[int] = mapped_column(Integer, ForeignKey("leases.id"), nullable=False, index=True)

    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount_due: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    utilities_charges: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    late_fee: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    amount_paid: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending|partial|paid|overdue|written_off

    payment_method: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(120), nullable=True, index=True)
    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    processed_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    lease: Mapped["Lease"] = relationship(back_populates="obligations")
    updates: Mapped[List["ObligationUpdate"]] = relationship(
        back_populates="obligation", order_by="ObligationUpdate.id"
    )


class ObligationUpdate(Base):
    """Append-only history of every change applied to one obligation."""

    __tablename__ = "payment_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    obligation_id: Mapped[int] = mapped_column(Integer, ForeignKey("rent_payments.id"), nullable=False, index=True)

    change_type: Mapped[str] = mapped_column(String(40), nullable=False)
    old_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    new_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    old_amount: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    new_amount: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)

    changed_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    change_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    extra_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    obligation: Mapped["RentObligation"] = relationship(back_populates="updates")


# -----------------------------
# Utilities
# -----------------------------
class UtilityCharge(Base):
    __tablename__ = "utility_charges"
    __table_args__ = (UniqueConstraint("lease_id", "billing_month", name="uq_utility_charges_lease_month"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lease_id: Mapped[int] = mapped_column(Integer, ForeignKey("leases.id"), nullable=False, index=True)
    billing_month: Mapped[date] = mapped_column(Date, nullable=False)  # first day of the month

    water_charges: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    electricity_charges: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    gas_charges: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    service_charges: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    garbage_charges: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    common_area_charges: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    other_charges: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    other_charges_description: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    charge_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # draft|pending|billed|paid|overdue
    billed_obligation_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("rent_payments.id"), nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    @property
    def total_utility_charges(self) -> Decimal:
        return sum(
            (
                Decimal(self.water_charges or 0),
                Decimal(self.electricity_charges or 0),
                Decimal(self.gas_charges or 0),
                Decimal(self.service_charges or 0),
                Decimal(self.garbage_charges or 0),
                Decimal(self.common_area_charges or 0),
                Decimal(self.other_charges or 0),
            ),
            Decimal("0"),
        )


# -----------------------------
# Payment evidence
# -----------------------------
class PaymentSubmission(Base):
    __tablename__ = "payment_submissions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(Integer, ForeignKey("tenants.id"), nullable=False, index=True)
    lease_id: Mapped[int] = mapped_column(Integer, ForeignKey("leases.id"), nullable=False, index=True)

    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(80), nullable=False)
    transaction_reference: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    submission_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    submitted_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)

    verification_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)  # pending|verified|rejected
    verified_amount: Mapped[Optional[Decimal]] = mapped_column(MONEY, nullable=True)
    verified_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)
    verified_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    admin_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    applied_obligation_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("rent_payments.id"), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Security deposits
# -----------------------------
class SecurityDeposit(Base):
    __tablename__ = "security_deposits"
    __table_args__ = (UniqueConstraint("lease_id", name="uq_security_deposits_lease"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lease_id: Mapped[int] = mapped_column(Integer, ForeignKey("leases.id"), nullable=False, index=True)

    amount_collected: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    collection_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    amount_returned: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    return_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    deductions: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    deduction_itemization_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(30), nullable=False, default="held")  # held|partially_returned|fully_returned|forfeited

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Audit + collaborators
# -----------------------------
class AuditEvent(Base):
    __tablename__ = "audit_events"
    __table_args__ = (Index("ix_audit_events_entity", "entity_type", "entity_id", "action"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    actor_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=True)

    action: Mapped[str] = mapped_column(String(80), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    entity_type: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_id: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)

    before_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    after_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    extra_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class Notification(Base):
    __tablename__ = "user_notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("app_users.id"), nullable=False, index=True)

    notification_type: Mapped[str] = mapped_column(String(60), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    related_resource_type: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    related_resource_id: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    is_urgent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class JobLock(Base):
    __tablename__ = "job_locks"
    __table_args__ = (UniqueConstraint("lock_key", name="uq_job_locks_key"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lock_key: Mapped[str] = mapped_column(String(120), nullable=False)
    owner: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class JobRun(Base):
    __tablename__ = "cron_job_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_name: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    records_affected: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    execution_details_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    execution_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
