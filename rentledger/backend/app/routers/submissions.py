# backend/app/routers/submissions.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select, desc
from sqlalchemy.orm import Session

from ..auth import Principal, require_staff, require_tenant
from ..db import get_db
from ..domain.errors import Forbidden
from ..models import PaymentSubmission
from ..schemas import BulkVerifyIn, RejectIn, SubmissionCreate, SubmissionOut, VerifyIn
from ..services.verification_service import (
    bulk_verify,
    list_history,
    list_pending,
    reject_submission,
    submit_payment,
    verification_stats,
    verify_submission,
)

router = APIRouter(prefix="/payment-submissions", tags=["payment-submissions"])


# -------------------- Tenant side --------------------

def _tenant_id(p: Principal) -> int:
    if p.tenant_id is None:
        raise Forbidden("no tenant profile linked to this user", data={"user_id": p.user_id})
    return int(p.tenant_id)


@router.post("", response_model=SubmissionOut)
def submit(payload: SubmissionCreate, db: Session = Depends(get_db), p: Principal = Depends(require_tenant)):
    return submit_payment(db, tenant_id=_tenant_id(p), actor_user_id=p.user_id, **payload.model_dump())


@router.get("/mine", response_model=list[SubmissionOut])
def my_submissions(
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    p: Principal = Depends(require_tenant),
):
    q = (
        select(PaymentSubmission)
        .where(PaymentSubmission.tenant_id == _tenant_id(p))
        .order_by(desc(PaymentSubmission.submission_date))
        .limit(limit)
    )
    return list(db.scalars(q).all())


# -------------------- Verification queue --------------------

@router.get("/pending", response_model=list[SubmissionOut])
def pending(
    limit: int = Query(default=100, ge=1, le=2000),
    db: Session = Depends(get_db),
    p: Principal = Depends(require_staff),
):
    return list_pending(db, limit=limit)


@router.get("/history", response_model=list[SubmissionOut])
def history(
    status: Optional[str] = Query(default=None, pattern="^(verified|rejected)$"),
    limit: int = Query(default=100, ge=1, le=2000),
    db: Session = Depends(get_db),
    p: Principal = Depends(require_staff),
):
    return list_history(db, status=status, limit=limit)


@router.get("/stats", response_model=dict)
def stats(db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    return verification_stats(db)


@router.post("/{submission_id}/verify", response_model=dict)
def verify(submission_id: int, payload: VerifyIn, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    res = verify_submission(
        db,
        submission_id=submission_id,
        admin_notes=payload.admin_notes,
        verified_amount=payload.verified_amount,
        actor_user_id=p.user_id,
    )
    return {"ok": True, **res.as_dict()}


@router.post("/{submission_id}/reject", response_model=SubmissionOut)
def reject(submission_id: int, payload: RejectIn, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    return reject_submission(db, submission_id=submission_id, admin_notes=payload.admin_notes, actor_user_id=p.user_id)


@router.post("/bulk-verify", response_model=dict)
def bulk(payload: BulkVerifyIn, db: Session = Depends(get_db), p: Principal = Depends(require_staff)):
    res = bulk_verify(db, submission_ids=payload.submission_ids, admin_notes=payload.admin_notes, actor_user_id=p.user_id)
    return {"ok": True, **res.as_dict()}
