# backend/app/routers/tenants.py
from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, desc
from sqlalchemy.orm import Session

from ..auth import Principal, require_staff
from ..db import get_db
from ..domain.audit import log_activity
from ..domain.errors import Conflict
from ..models import Lease, Tenant, Unit
from ..schemas import LeaseCreate, LeaseOut, OffboardIn, TenantCreate, TenantOut, UnitCreate, UnitOut
from ..services.billing_service import unpaid_balance
from ..services.lease_lifecycle import create_lease
from ..services.ownership import must_get_lease, must_get_tenant
from ..services.settlement_service import get_offboarding_record, settle_lease

router = APIRouter(tags=["tenants"])


# -------------------- Units --------------------

@router.post("/units", response_model=UnitOut)
def create_unit(payload: UnitCreate, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    exists = db.scalar(
        select(Unit.id).where(Unit.property_name == payload.property_name, Unit.unit_number == payload.unit_number)
    )
    if exists is not None:
        raise Conflict("unit already exists", data={"unit_id": exists})
    row = Unit(**payload.model_dump(), occupancy_status="vacant", updated_at=datetime.utcnow())
    db.add(row)
    db.commit()
    return row


@router.get("/units", response_model=list[UnitOut])
def list_units(db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    return list(db.scalars(select(Unit).order_by(Unit.property_name, Unit.unit_number)).all())


# -------------------- Tenants --------------------

@router.post("/tenants", response_model=TenantOut)
def create_tenant(payload: TenantCreate, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    row = Tenant(**payload.model_dump(), created_at=datetime.utcnow())
    db.add(row)
    db.flush()
    log_activity(
        db,
        actor_user_id=p.user_id,
        action="tenant_created",
        entity_type="tenant",
        entity_id=row.id,
        description=f"Created tenant {row.full_name}",
    )
    db.commit()
    return row


@router.get("/tenants", response_model=list[TenantOut])
def list_tenants(
    limit: int = Query(default=100, ge=1, le=2000),
    db: Session = Depends(get_db),
    p: Principal = Depends(require_staff),
):
    return list(db.scalars(select(Tenant).order_by(desc(Tenant.id)).limit(limit)).all())


@router.post("/tenants/{tenant_id}/blacklist", response_model=TenantOut)
def blacklist_tenant(
    tenant_id: int,
    severity: str = Query(default="severe", pattern="^(low|medium|high|severe)$"),
    db: Session = Depends(get_db),
    p: Principal = Depends(require_staff),
):
    row = must_get_tenant(db, tenant_id=tenant_id)
    before = {"is_blacklisted": row.is_blacklisted, "blacklist_severity": row.blacklist_severity}
    row.is_blacklisted = True
    row.blacklist_severity = severity
    db.flush()
    log_activity(
        db,
        actor_user_id=p.user_id,
        action="tenant_blacklisted",
        entity_type="tenant",
        entity_id=row.id,
        before=before,
        after={"is_blacklisted": True, "blacklist_severity": severity},
    )
    db.commit()
    return row


# -------------------- Leases --------------------

@router.post("/leases", response_model=LeaseOut)
def create_lease_route(payload: LeaseCreate, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    return create_lease(db, actor_user_id=p.user_id, **payload.model_dump())


@router.get("/leases", response_model=list[LeaseOut])
def list_leases(
    status: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=2000),
    db: Session = Depends(get_db),
    p: Principal = Depends(require_staff),
):
    q = select(Lease)
    if status:
        q = q.where(Lease.lease_status == status)
    return list(db.scalars(q.order_by(desc(Lease.id)).limit(limit)).all())


@router.get("/leases/{lease_id}", response_model=LeaseOut)
def get_lease(lease_id: int, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    return must_get_lease(db, lease_id=lease_id)


@router.get("/leases/{lease_id}/unpaid", response_model=dict)
def lease_unpaid_balance(lease_id: int, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    return unpaid_balance(db, lease_id=lease_id)


# -------------------- Offboarding --------------------

@router.post("/leases/{lease_id}/offboard", response_model=dict)
def offboard_lease(
    lease_id: int,
    payload: OffboardIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_staff),
):
    result = settle_lease(
        db,
        lease_id=lease_id,
        move_out_date=payload.move_out_date,
        deductions=[d.model_dump() for d in payload.deductions],
        handle_unpaid_rent=payload.handle_unpaid_rent,
        actor_user_id=p.user_id,
        notes=payload.notes,
    )
    return {"ok": True, **result.as_dict()}


@router.get("/leases/{lease_id}/offboarding", response_model=dict)
def offboarding_record(lease_id: int, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    return get_offboarding_record(db, lease_id=lease_id)
