# backend/app/routers/utilities.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Principal, require_staff
from ..db import get_db
from ..schemas import PeriodIn, UtilityChargeCreate, UtilityChargeOut, UtilityDraftIn
from ..services.ownership import must_get_utility_charge
from ..services.utility_billing import (
    CHARGE_FIELDS,
    bill_utilities_to_rent,
    create_utility_charge,
    generate_draft_charges,
    list_charges,
    utility_summary,
)

router = APIRouter(prefix="/utilities", tags=["utilities"])


@router.post("/charges", response_model=UtilityChargeOut)
def create_charge(payload: UtilityChargeCreate, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    data = payload.model_dump()
    return create_utility_charge(
        db,
        lease_id=payload.lease_id,
        year=payload.year,
        month=payload.month,
        charges={k: data[k] for k in CHARGE_FIELDS},
        other_charges_description=payload.other_charges_description,
        due_date=payload.due_date,
        notes=payload.notes,
        status=payload.charge_status,
        actor_user_id=p.user_id,
    )


@router.get("/charges", response_model=list[UtilityChargeOut])
def charges(
    lease_id: Optional[int] = Query(default=None),
    status: Optional[str] = Query(default=None, pattern="^(draft|pending|billed|paid|overdue)$"),
    db: Session = Depends(get_db),
    p: Principal = Depends(require_staff),
):
    return list_charges(db, lease_id=lease_id, status=status)


@router.get("/charges/{charge_id}", response_model=UtilityChargeOut)
def get_charge(charge_id: int, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    return must_get_utility_charge(db, charge_id=charge_id)


@router.post("/drafts", response_model=list[UtilityChargeOut])
def drafts(payload: UtilityDraftIn, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    return generate_draft_charges(
        db,
        year=payload.year,
        month=payload.month,
        actor_user_id=p.user_id,
        default_charges={"water_charges": payload.water_charges, "service_charges": payload.service_charges},
    )


@router.post("/bill", response_model=dict)
def bill(payload: PeriodIn, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    res = bill_utilities_to_rent(db, year=payload.year, month=payload.month, actor_user_id=p.user_id)
    return {"ok": True, **res.as_dict()}


@router.get("/summary", response_model=dict)
def summary(
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db),
    p: Principal = Depends(require_staff),
):
    return utility_summary(db, year=year, month=month)
