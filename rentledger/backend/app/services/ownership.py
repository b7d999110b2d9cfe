# backend/app/services/ownership.py
from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain.errors import NotFound
from ..models import Lease, LeaseTenant, PaymentSubmission, RentObligation, Tenant, UtilityCharge


def must_get_lease(db: Session, *, lease_id: int, for_update: bool = False) -> Lease:
    q = select(Lease).where(Lease.id == int(lease_id))
    if for_update:
        q = q.with_for_update()
    row = db.scalar(q)
    if not row:
        raise NotFound("lease not found", data={"lease_id": lease_id})
    return row


def must_get_tenant(db: Session, *, tenant_id: int) -> Tenant:
    row = db.scalar(select(Tenant).where(Tenant.id == int(tenant_id)))
    if not row:
        raise NotFound("tenant not found", data={"tenant_id": tenant_id})
    return row


def must_get_obligation(db: Session, *, obligation_id: int, for_update: bool = False) -> RentObligation:
    q = select(RentObligation).where(RentObligation.id == int(obligation_id))
    if for_update:
        q = q.with_for_update()
    row = db.scalar(q)
    if not row:
        raise NotFound("rent payment not found", data={"obligation_id": obligation_id})
    return row


def must_get_submission(db: Session, *, submission_id: int, for_update: bool = False) -> PaymentSubmission:
    q = select(PaymentSubmission).where(PaymentSubmission.id == int(submission_id))
    if for_update:
        q = q.with_for_update()
    row = db.scalar(q)
    if not row:
        raise NotFound("payment submission not found", data={"submission_id": submission_id})
    return row


def must_get_utility_charge(db: Session, *, charge_id: int) -> UtilityCharge:
    row = db.scalar(select(UtilityCharge).where(UtilityCharge.id == int(charge_id)))
    if not row:
        raise NotFound("utility charge not found", data={"charge_id": charge_id})
    return row


def current_tenants(db: Session, *, lease_id: int) -> list[Tenant]:
    """Tenants still attached to the lease (removed_date unset), primary first."""
    q = (
        select(Tenant)
        .join(LeaseTenant, LeaseTenant.tenant_id == Tenant.id)
        .where(LeaseTenant.lease_id == int(lease_id), LeaseTenant.removed_date.is_(None))
        .order_by(LeaseTenant.is_primary_tenant.desc(), Tenant.id.asc())
    )
    return list(db.scalars(q).all())


def active_lease_for_tenant(db: Session, *, tenant_id: int) -> Lease | None:
    q = (
        select(Lease)
        .join(LeaseTenant, LeaseTenant.lease_id == Lease.id)
        .where(
            LeaseTenant.tenant_id == int(tenant_id),
            LeaseTenant.removed_date.is_(None),
            Lease.lease_status == "active",
        )
        .order_by(Lease.id.desc())
    )
    return db.scalars(q).first()
