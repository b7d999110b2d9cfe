# backend/app/routers/rent.py
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Principal, require_staff
from ..db import atomic, get_db
from ..domain.audit import log_activity
from ..schemas import ObligationCreate, ObligationOut, ObligationUpdateOut, PaymentIn, PeriodIn, ReminderIn
from ..services.billing_service import (
    collection_summary,
    create_obligation,
    generate_monthly_obligations,
    obligation_history,
    obligation_view,
    promote_overdue,
    receipt_notices,
    reminder_notices,
    rent_roll,
)
from ..services.notifications import dispatch
from ..services.ownership import must_get_lease, must_get_obligation
from ..services.payment_engine import apply_payment

router = APIRouter(prefix="/rent", tags=["rent"])


@router.post("/generate", response_model=dict)
def generate(payload: PeriodIn, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    res = generate_monthly_obligations(db, year=payload.year, month=payload.month, actor_user_id=p.user_id)
    return {"ok": True, **res.as_dict()}


@router.post("/overdue", response_model=dict)
def mark_overdue(
    as_of: Optional[date] = Query(default=None),
    db: Session = Depends(get_db),
    p: Principal = Depends(require_staff),
):
    res = promote_overdue(db, today=as_of)
    return {"ok": True, **res.as_dict()}


@router.get("/payments", response_model=list[dict])
def list_payments(
    year: int = Query(..., ge=2000, le=2100),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    status: Optional[str] = Query(default=None, pattern="^(pending|partial|paid|overdue|written_off)$"),
    lease_id: Optional[int] = Query(default=None),
    as_of: Optional[date] = Query(default=None),
    db: Session = Depends(get_db),
    p: Principal = Depends(require_staff),
):
    return rent_roll(db, year=year, month=month, status=status, lease_id=lease_id, today=as_of)


@router.post("/payments", response_model=ObligationOut)
def create_payment_record(payload: ObligationCreate, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    return create_obligation(db, actor_user_id=p.user_id, **payload.model_dump())


@router.get("/payments/{obligation_id}", response_model=dict)
def get_payment(obligation_id: int, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    o = must_get_obligation(db, obligation_id=obligation_id)
    return obligation_view(o, must_get_lease(db, lease_id=o.lease_id))


@router.post("/payments/{obligation_id}/pay", response_model=dict)
def process_payment(
    obligation_id: int,
    payload: PaymentIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(require_staff),
):
    with atomic(db):
        res = apply_payment(
            db,
            obligation_id=obligation_id,
            amount=payload.amount,
            method=payload.payment_method,
            reference=payload.payment_reference,
            payment_date=payload.payment_date,
            actor_user_id=p.user_id,
            reason=payload.notes,
            commit=False,
        )
        log_activity(
            db,
            actor_user_id=p.user_id,
            action="payment_processed",
            entity_type="rent_payment",
            entity_id=obligation_id,
            description=f"Processed payment of {res.amount_applied} ({res.old_status} -> {res.new_status})",
            extra=res.as_dict(),
        )
        receipts = receipt_notices(db, obligation=must_get_obligation(db, obligation_id=obligation_id), amount=res.amount_applied)

    dispatch(receipts)
    return {"ok": True, **res.as_dict()}


@router.get("/payments/{obligation_id}/history", response_model=list[ObligationUpdateOut])
def payment_history(obligation_id: int, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    return obligation_history(db, obligation_id=obligation_id)


@router.get("/summary", response_model=dict)
def summary(
    year: int = Query(..., ge=2000, le=2100),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    db: Session = Depends(get_db),
    p: Principal = Depends(require_staff),
):
    return collection_summary(db, year=year, month=month)


@router.post("/reminders", response_model=dict)
def send_reminders(payload: ReminderIn, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    with atomic(db):
        notices = reminder_notices(db, obligation_ids=payload.obligation_ids, reminder_type=payload.reminder_type)
        recipients = sum(1 for n in notices if n.user_id is not None)
        log_activity(
            db,
            actor_user_id=p.user_id,
            action="payment_reminders_sent",
            entity_type="rent_payment",
            entity_id=None,
            description=f"Sent {recipients} {payload.reminder_type} payment reminders",
            extra={"obligation_ids": payload.obligation_ids},
        )

    return {"ok": True, "reminders_sent": dispatch(notices)}
