# backend/app/services/verification_service.py
"""
Submission Verification Workflow.

pending -> verified | rejected, one shot. Verification is the only way a
tenant-reported payment reaches an obligation, and it does so by calling the
payment engine explicitly inside the same transaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..db import atomic
from ..domain.audit import log_activity
from ..domain.errors import AlreadyProcessed, Conflict, InvalidAmount, InvalidRequest
from ..domain.ledger_math import OVERDUE, PENDING, ZERO, balance_due, to_money
from ..models import Lease, PaymentSubmission, RentObligation, Tenant
from .notifications import Notice, Notifier, dispatch
from .ownership import active_lease_for_tenant, must_get_lease, must_get_submission, must_get_tenant
from .payment_engine import PaymentApplication, apply_to_obligation

log = logging.getLogger("rentledger.verification")

SUBMISSION_PENDING = "pending"
SUBMISSION_VERIFIED = "verified"
SUBMISSION_REJECTED = "rejected"

# statuses a verified submission may be applied to
APPLICABLE_STATUSES = (PENDING, OVERDUE)


def _require_notes(notes: Optional[str], what: str) -> str:
    n = (notes or "").strip()
    if not n:
        raise InvalidRequest(f"{what} is required")
    return n


def _recipient(db: Session, submission: PaymentSubmission) -> Optional[int]:
    tenant = db.get(Tenant, submission.tenant_id)
    if tenant is not None and tenant.user_id is not None:
        return int(tenant.user_id)
    return submission.submitted_by


# -----------------------------------------------------------------------------
# Tenant side
# -----------------------------------------------------------------------------
def submit_payment(
    db: Session,
    *,
    tenant_id: int,
    amount: Any,
    payment_method: str,
    transaction_reference: str,
    transaction_date: date,
    actor_user_id: Optional[int],
    notes: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> PaymentSubmission:
    amt = to_money(amount)
    if amt <= ZERO:
        raise InvalidAmount("payment amount must be greater than zero", data={"amount": str(amt)})
    ref = (transaction_reference or "").strip()
    if not ref:
        raise InvalidRequest("transaction reference is required")
    if not (payment_method or "").strip():
        raise InvalidRequest("payment method is required")

    with atomic(db):
        must_get_tenant(db, tenant_id=tenant_id)
        lease = active_lease_for_tenant(db, tenant_id=tenant_id)
        if lease is None:
            raise Conflict("no active lease found for tenant", data={"tenant_id": tenant_id})

        row = PaymentSubmission(
            tenant_id=int(tenant_id),
            lease_id=lease.id,
            amount=amt,
            payment_method=payment_method.strip(),
            transaction_reference=ref,
            transaction_date=transaction_date,
            notes=notes,
            submission_date=datetime.utcnow(),
            submitted_by=actor_user_id,
            verification_status=SUBMISSION_PENDING,
            updated_at=datetime.utcnow(),
        )
        db.add(row)
        db.flush()

        log_activity(
            db,
            actor_user_id=actor_user_id,
            action="payment_submitted",
            entity_type="payment_submission",
            entity_id=row.id,
            description=f"Payment submission of {amt} via {row.payment_method} (Ref: {ref})",
        )
        recipient = _recipient(db, row)

    dispatch(
        [
            Notice(
                user_id=recipient,
                notification_type="payment_submitted",
                title="Payment Submitted",
                message=(
                    f"Your payment of {settings.currency_code} {amt} has been submitted for verification. "
                    "You will be notified once it's confirmed."
                ),
                related_resource_type="payment_submission",
                related_resource_id=str(row.id),
            )
        ],
        notifier,
    )
    return row


# -----------------------------------------------------------------------------
# Matching
# -----------------------------------------------------------------------------
def _already_applied_obligation(db: Session, submission: PaymentSubmission) -> Optional[RentObligation]:
    q = select(RentObligation).where(
        RentObligation.lease_id == submission.lease_id,
        RentObligation.payment_reference == submission.transaction_reference,
        RentObligation.payment_date == submission.transaction_date,
    )
    return db.scalars(q.order_by(RentObligation.id.asc())).first()


def _eligible_obligations(db: Session, lease_id: int) -> list[RentObligation]:
    q = (
        select(RentObligation)
        .where(RentObligation.lease_id == int(lease_id), RentObligation.status.in_(APPLICABLE_STATUSES))
        .order_by(RentObligation.due_date.asc(), RentObligation.id.asc())
        .with_for_update()
    )
    return list(db.scalars(q).all())


def match_obligation(candidates: list[RentObligation], amount: Decimal) -> RentObligation:
    """Oldest obligation whose outstanding balance covers the amount."""
    for o in candidates:
        if balance_due(o) >= amount:
            return o
    raise InvalidAmount(
        "payment exceeds any single outstanding obligation",
        data={
            "amount": str(amount),
            "largest_balance": str(max(balance_due(o) for o in candidates)),
            "obligation_ids": [o.id for o in candidates],
        },
    )


# -----------------------------------------------------------------------------
# Verify / reject
# -----------------------------------------------------------------------------
@dataclass
class VerificationResult:
    submission: PaymentSubmission
    obligation_id: Optional[int]
    application: Optional[PaymentApplication]
    verified_amount: Decimal
    notices: list[Notice] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "submission_id": self.submission.id,
            "verification_status": self.submission.verification_status,
            "verified_amount": str(self.verified_amount),
            "obligation_id": self.obligation_id,
            "application": self.application.as_dict() if self.application else None,
        }


def _verify_locked(
    db: Session,
    submission: PaymentSubmission,
    *,
    admin_notes: str,
    verified_amount: Any,
    actor_user_id: Optional[int],
) -> VerificationResult:
    if submission.verification_status != SUBMISSION_PENDING:
        raise AlreadyProcessed(
            "payment submission already processed",
            data={"submission_id": submission.id, "verification_status": submission.verification_status},
        )

    lease: Lease = must_get_lease(db, lease_id=submission.lease_id)
    if lease.lease_status != "active":
        raise Conflict(
            "cannot verify a payment for an inactive lease",
            data={"lease_id": lease.id, "lease_status": lease.lease_status},
        )

    tenant = must_get_tenant(db, tenant_id=submission.tenant_id)
    if tenant.is_blacklisted and (tenant.blacklist_severity or "").lower() == "severe":
        raise Conflict("tenant is severely blacklisted", data={"tenant_id": tenant.id})

    candidates = _eligible_obligations(db, lease.id)
    if not candidates:
        raise Conflict("no pending or overdue rent payments to apply this payment to", data={"lease_id": lease.id})

    submitted = to_money(submission.amount)
    amount = submitted if verified_amount is None else to_money(verified_amount)
    if amount <= ZERO or amount > submitted:
        raise InvalidAmount(
            "verified amount must be greater than zero and not exceed the submitted amount",
            data={"verified_amount": str(amount), "submitted_amount": str(submitted)},
        )

    dup = db.scalar(
        select(PaymentSubmission.id).where(
            PaymentSubmission.tenant_id == submission.tenant_id,
            PaymentSubmission.transaction_reference == submission.transaction_reference,
            PaymentSubmission.verification_status == SUBMISSION_VERIFIED,
            PaymentSubmission.id != submission.id,
        )
    )
    if dup is not None:
        raise Conflict(
            "transaction reference already verified on another submission",
            data={"transaction_reference": submission.transaction_reference, "submission_id": dup},
        )

    now = datetime.utcnow()
    submission.verification_status = SUBMISSION_VERIFIED
    submission.verified_amount = amount
    submission.verified_by = actor_user_id
    submission.verified_date = now
    submission.admin_notes = admin_notes
    submission.updated_at = now
    db.flush()

    application: Optional[PaymentApplication] = None
    target = _already_applied_obligation(db, submission)
    if target is None:
        target = match_obligation(candidates, amount)
        application = apply_to_obligation(
            db,
            target,
            amount=amount,
            method=submission.payment_method,
            reference=submission.transaction_reference,
            payment_date=submission.transaction_date,
            actor_user_id=actor_user_id,
            change_type="submission_verified",
            reason=f"verified payment submission #{submission.id}",
        )
    else:
        log.info(
            "submission already reflected on obligation; not re-applied",
            extra={"submission_id": submission.id, "obligation_id": target.id},
        )
    submission.applied_obligation_id = target.id
    db.flush()

    log_activity(
        db,
        actor_user_id=actor_user_id,
        action="payment_verified",
        entity_type="payment_submission",
        entity_id=submission.id,
        description=f"Verified payment submission of {amount} from {submission.transaction_reference}",
        extra={"obligation_id": target.id, "verified_amount": str(amount)},
    )

    notice = Notice(
        user_id=_recipient(db, submission),
        notification_type="payment_verified",
        title="Payment Verified",
        message=(
            f"Your payment of {settings.currency_code} {amount} (Ref: {submission.transaction_reference}) "
            "has been verified and applied to your account."
        ),
        related_resource_type="payment_submission",
        related_resource_id=str(submission.id),
    )
    return VerificationResult(
        submission=submission,
        obligation_id=int(target.id),
        application=application,
        verified_amount=amount,
        notices=[notice],
    )


def verify_submission(
    db: Session,
    *,
    submission_id: int,
    admin_notes: Optional[str],
    actor_user_id: Optional[int],
    verified_amount: Any = None,
    notifier: Optional[Notifier] = None,
) -> VerificationResult:
    notes = _require_notes(admin_notes, "admin notes")
    with atomic(db):
        submission = must_get_submission(db, submission_id=submission_id, for_update=True)
        result = _verify_locked(
            db,
            submission,
            admin_notes=notes,
            verified_amount=verified_amount,
            actor_user_id=actor_user_id,
        )
    dispatch(result.notices, notifier)
    return result


def reject_submission(
    db: Session,
    *,
    submission_id: int,
    admin_notes: Optional[str],
    actor_user_id: Optional[int],
    notifier: Optional[Notifier] = None,
) -> PaymentSubmission:
    reason = _require_notes(admin_notes, "rejection reason")
    with atomic(db):
        submission = must_get_submission(db, submission_id=submission_id, for_update=True)
        if submission.verification_status != SUBMISSION_PENDING:
            raise AlreadyProcessed(
                "payment submission already processed",
                data={"submission_id": submission.id, "verification_status": submission.verification_status},
            )

        now = datetime.utcnow()
        submission.verification_status = SUBMISSION_REJECTED
        submission.verified_by = actor_user_id
        submission.verified_date = now
        submission.admin_notes = reason
        submission.updated_at = now
        db.flush()

        log_activity(
            db,
            actor_user_id=actor_user_id,
            action="payment_rejected",
            entity_type="payment_submission",
            entity_id=submission.id,
            description=f"Rejected payment submission of {to_money(submission.amount)}. Reason: {reason}",
        )
        notice = Notice(
            user_id=_recipient(db, submission),
            notification_type="payment_rejected",
            title="Payment Rejected",
            message=(
                f"Your payment of {settings.currency_code} {to_money(submission.amount)} "
                f"(Ref: {submission.transaction_reference}) was rejected. Reason: {reason}"
            ),
            related_resource_type="payment_submission",
            related_resource_id=str(submission.id),
            urgent=True,
        )

    dispatch([notice], notifier)
    return submission


@dataclass(frozen=True)
class BulkVerifyResult:
    verified_count: int
    total_amount: Decimal
    submission_ids: list[int]

    def as_dict(self) -> dict[str, Any]:
        return {
            "verified_count": self.verified_count,
            "total_amount": str(self.total_amount),
            "submission_ids": list(self.submission_ids),
        }


def bulk_verify(
    db: Session,
    *,
    submission_ids: Iterable[int],
    admin_notes: Optional[str],
    actor_user_id: Optional[int],
    notifier: Optional[Notifier] = None,
) -> BulkVerifyResult:
    """
    All-or-nothing: every id must exist and be pending, otherwise nothing is
    verified. The rows are locked before the status check, and any per-item
    failure rolls the whole batch back.
    """
    ids = list(dict.fromkeys(int(i) for i in submission_ids))
    if not ids:
        raise InvalidRequest("valid submission ids are required")
    notes = _require_notes(admin_notes, "admin notes")

    notices: list[Notice] = []
    with atomic(db):
        rows = list(
            db.scalars(
                select(PaymentSubmission)
                .where(PaymentSubmission.id.in_(ids))
                .order_by(PaymentSubmission.id.asc())
                .with_for_update()
            ).all()
        )
        pending = {r.id: r for r in rows if r.verification_status == SUBMISSION_PENDING}
        if len(pending) != len(ids):
            bad = [i for i in ids if i not in pending]
            raise AlreadyProcessed("some submissions not found or already processed", data={"submission_ids": bad})

        total = ZERO
        for sid in ids:
            res = _verify_locked(
                db,
                pending[sid],
                admin_notes=notes,
                verified_amount=None,
                actor_user_id=actor_user_id,
            )
            total += res.verified_amount
            notices.extend(res.notices)

        log_activity(
            db,
            actor_user_id=actor_user_id,
            action="bulk_payment_verified",
            entity_type="payment_submission",
            entity_id=None,
            description=f"Bulk verified {len(ids)} payment submissions totaling {total}",
            extra={"submission_ids": ids, "total_amount": str(total)},
        )

    dispatch(notices, notifier)
    log.info("bulk verified %s submissions totaling %s", len(ids), total, extra={"actor_user_id": actor_user_id})
    return BulkVerifyResult(verified_count=len(ids), total_amount=total, submission_ids=ids)


# -----------------------------------------------------------------------------
# Queue views
# -----------------------------------------------------------------------------
def list_pending(db: Session, *, limit: int = 100) -> list[PaymentSubmission]:
    q = (
        select(PaymentSubmission)
        .where(PaymentSubmission.verification_status == SUBMISSION_PENDING)
        .order_by(PaymentSubmission.submission_date.asc(), PaymentSubmission.id.asc())
        .limit(int(limit))
    )
    return list(db.scalars(q).all())


def list_history(db: Session, *, status: Optional[str] = None, limit: int = 100) -> list[PaymentSubmission]:
    q = select(PaymentSubmission).where(PaymentSubmission.verification_status != SUBMISSION_PENDING)
    if status:
        q = q.where(PaymentSubmission.verification_status == status)
    q = q.order_by(PaymentSubmission.verified_date.desc(), PaymentSubmission.id.desc()).limit(int(limit))
    return list(db.scalars(q).all())


def verification_stats(db: Session, *, now: Optional[datetime] = None) -> dict[str, Any]:
    now = now or datetime.utcnow()
    start_of_day = datetime(now.year, now.month, now.day)
    week_ago = start_of_day - timedelta(days=7)

    rows = list(db.scalars(select(PaymentSubmission)).all())
    pending = [r for r in rows if r.verification_status == SUBMISSION_PENDING]
    verified_today = [
        r for r in rows
        if r.verification_status == SUBMISSION_VERIFIED and r.verified_date and r.verified_date >= start_of_day
    ]
    processed = [r for r in rows if r.verification_status != SUBMISSION_PENDING and r.verified_date]

    hours = [(r.verified_date - r.submission_date).total_seconds() / 3600 for r in processed]
    oldest = min((r.submission_date for r in pending), default=None)

    return {
        "pending_count": len(pending),
        "verified_today": len(verified_today),
        "rejected_count": sum(1 for r in rows if r.verification_status == SUBMISSION_REJECTED),
        "total_pending_amount": str(sum((to_money(r.amount) for r in pending), ZERO)),
        "verified_amount_today": str(
            sum((to_money(r.verified_amount if r.verified_amount is not None else r.amount) for r in verified_today), ZERO)
        ),
        "avg_processing_hours": round(sum(hours) / len(hours), 2) if hours else 0.0,
        "oldest_pending": oldest.isoformat() if oldest else None,
        "submissions_this_week": sum(1 for r in rows if r.submission_date >= week_ago),
        "verifications_this_week": sum(1 for r in processed if r.verified_date >= week_ago),
    }

