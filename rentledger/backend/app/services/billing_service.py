# backend/app/services/billing_service.py
from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import and_, extract, or_, select
from sqlalchemy.orm import Session

from ..config import settings
from ..db import atomic
from ..domain.audit import log_activity, record_obligation_update
from ..domain.errors import Conflict, InvalidAmount, InvalidState
from ..domain.grace import effective_due_date, grace_view
from ..domain.ledger_math import (
    OVERDUE,
    PAID,
    PARTIAL,
    PENDING,
    UNSETTLED_STATUSES,
    WRITTEN_OFF,
    ZERO,
    balance_due,
    to_money,
    total_due,
)
from ..models import Lease, ObligationUpdate, RentObligation
from .notifications import Notice
from .ownership import current_tenants, must_get_lease, must_get_obligation

log = logging.getLogger("rentledger.billing")


def month_bounds(year: int, month: int) -> tuple[date, date]:
    if not 1 <= int(month) <= 12:
        raise ValueError("month must be 1-12")
    last_day = calendar.monthrange(int(year), int(month))[1]
    return date(int(year), int(month), 1), date(int(year), int(month), last_day)


def due_date_for(lease: Lease, year: int, month: int) -> date:
    """min(rent_due_day, last day of month)."""
    first, last = month_bounds(year, month)
    due_day = int(lease.rent_due_day or settings.default_rent_due_day)
    return date(first.year, first.month, max(1, min(due_day, last.day)))


# -----------------------------------------------------------------------------
# Generation
# -----------------------------------------------------------------------------
@dataclass
class GenerationResult:
    month: int
    year: int
    generated_count: int = 0
    skipped_existing: int = 0
    obligation_ids: list[int] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "year": self.year,
            "generated_count": self.generated_count,
            "skipped_existing": self.skipped_existing,
            "obligation_ids": list(self.obligation_ids),
        }


def eligible_leases_for_month(db: Session, *, year: int, month: int) -> list[Lease]:
    first, _ = month_bounds(year, month)
    q = (
        select(Lease)
        .where(
            Lease.lease_status == "active",
            Lease.start_date <= first,
            or_(Lease.end_date.is_(None), Lease.end_date >= first),
        )
        .order_by(Lease.id.asc())
    )
    return list(db.scalars(q).all())


def _has_obligation_for_month(db: Session, *, lease_id: int, first: date, last: date) -> bool:
    q = select(RentObligation.id).where(
        RentObligation.lease_id == int(lease_id),
        RentObligation.due_date >= first,
        RentObligation.due_date <= last,
    )
    return db.scalar(q.limit(1)) is not None


def generate_monthly_obligations(
    db: Session,
    *,
    year: int,
    month: int,
    actor_user_id: Optional[int] = None,
    commit: bool = True,
) -> GenerationResult:
    """
    One pending obligation per lease active from the first of the month,
    carrying the lease late fee.

    Idempotent per (lease, period): leases that already have an obligation
    due inside the month are skipped, so a second run generates 0 rows.
    Raises Conflict when no active lease covers the month at all.
    """
    first, last = month_bounds(year, month)
    result = GenerationResult(month=int(month), year=int(year))

    with atomic(db, commit=commit):
        leases = eligible_leases_for_month(db, year=year, month=month)
        if not leases:
            raise Conflict(
                "no active leases found for the specified period",
                data={"month": int(month), "year": int(year)},
            )

        for lease in leases:
            if _has_obligation_for_month(db, lease_id=lease.id, first=first, last=last):
                result.skipped_existing += 1
                continue

            row = RentObligation(
                lease_id=lease.id,
                due_date=due_date_for(lease, year, month),
                amount_due=to_money(lease.monthly_rent),
                utilities_charges=ZERO,
                late_fee=to_money(lease.late_fee or 0),
                amount_paid=ZERO,
                status=PENDING,
                payment_date=None,
                created_at=datetime.utcnow(),
                updated_at=datetime.utcnow(),
            )
            db.add(row)
            db.flush()
            result.generated_count += 1
            result.obligation_ids.append(int(row.id))

        log_activity(
            db,
            actor_user_id=actor_user_id,
            action="rent_payments_generated",
            entity_type="rent_payment",
            entity_id=None,
            description=f"Generated {result.generated_count} rent payment records for {int(month)}/{int(year)}",
            extra=result.as_dict(),
        )

    log.info(
        "generated %s obligations for %s-%02d (skipped %s)",
        result.generated_count,
        year,
        int(month),
        result.skipped_existing,
        extra={"job": "generate_monthly_obligations"},
    )
    return result


def create_obligation(
    db: Session,
    *,
    lease_id: int,
    due_date: date,
    amount_due: Any,
    actor_user_id: Optional[int],
    late_fee: Any = 0,
    commit: bool = True,
) -> RentObligation:
    """Manual, one-off obligation for an active lease. Duplicate (lease, due_date) is a Conflict."""
    amt = to_money(amount_due)
    fee = to_money(late_fee)
    if amt <= ZERO:
        raise InvalidAmount("amount_due must be greater than zero", data={"amount_due": str(amt)})
    if fee < ZERO:
        raise InvalidAmount("late_fee cannot be negative", data={"late_fee": str(fee)})

    with atomic(db, commit=commit):
        lease = must_get_lease(db, lease_id=lease_id)
        if lease.lease_status != "active":
            raise InvalidState("lease not active", data={"lease_id": lease.id, "lease_status": lease.lease_status})

        existing = db.scalar(
            select(RentObligation.id).where(RentObligation.lease_id == lease.id, RentObligation.due_date == due_date)
        )
        if existing is not None:
            raise Conflict(
                "payment record already exists for this lease and due date",
                data={"lease_id": lease.id, "due_date": due_date.isoformat(), "obligation_id": existing},
            )

        row = RentObligation(
            lease_id=lease.id,
            due_date=due_date,
            amount_due=amt,
            utilities_charges=ZERO,
            late_fee=fee,
            amount_paid=ZERO,
            status=PENDING,
            created_at=datetime.utcnow(),
            updated_at=datetime.utcnow(),
        )
        db.add(row)
        db.flush()

        record_obligation_update(
            db,
            obligation_id=row.id,
            change_type="created",
            old_status=None,
            new_status=PENDING,
            old_amount=None,
            new_amount=ZERO,
            changed_by=actor_user_id,
            reason="manual rent payment record",
        )
    return row


# -----------------------------------------------------------------------------
# Overdue promotion
# -----------------------------------------------------------------------------
@dataclass
class OverdueResult:
    as_of: date
    updated_count: int = 0
    late_fees_applied: int = 0
    obligation_ids: list[int] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "updated_count": self.updated_count,
            "late_fees_applied": self.late_fees_applied,
            "obligation_ids": list(self.obligation_ids),
        }


def promote_overdue(db: Session, *, today: Optional[date] = None, commit: bool = True) -> OverdueResult:
    """
    pending -> overdue once today > due_date + grace, applying the lease late fee
    if none was applied yet. One-directional; never touches other statuses.
    """
    today = today or date.today()
    result = OverdueResult(as_of=today)

    with atomic(db, commit=commit):
        q = (
            select(RentObligation, Lease)
            .join(Lease, Lease.id == RentObligation.lease_id)
            .where(RentObligation.status == PENDING, RentObligation.due_date < today)
            .order_by(RentObligation.due_date.asc(), RentObligation.id.asc())
            .with_for_update(of=RentObligation)
        )
        for obligation, lease in db.execute(q).all():
            if not today > effective_due_date(obligation, lease):
                continue

            lease_fee = to_money(lease.late_fee)
            fee_applied = False
            if to_money(obligation.late_fee) == ZERO and lease_fee > ZERO:
                obligation.late_fee = lease_fee
                fee_applied = True

            obligation.status = OVERDUE
            obligation.updated_at = datetime.utcnow()

            record_obligation_update(
                db,
                obligation_id=obligation.id,
                change_type="marked_overdue",
                old_status=PENDING,
                new_status=OVERDUE,
                old_amount=to_money(obligation.amount_paid),
                new_amount=to_money(obligation.amount_paid),
                reason="grace period elapsed",
                extra={"late_fee": str(to_money(obligation.late_fee)), "late_fee_applied": fee_applied},
            )

            result.updated_count += 1
            result.late_fees_applied += 1 if fee_applied else 0
            result.obligation_ids.append(int(obligation.id))

    log.info(
        "marked %s obligations overdue as of %s",
        result.updated_count,
        today.isoformat(),
        extra={"job": "promote_overdue"},
    )
    return result


# -----------------------------------------------------------------------------
# Read models
# -----------------------------------------------------------------------------
def obligation_view(obligation: RentObligation, lease: Lease, *, today: Optional[date] = None) -> dict[str, Any]:
    gv = grace_view(obligation, lease, today)
    return {
        "id": obligation.id,
        "lease_id": obligation.lease_id,
        "lease_number": lease.lease_number,
        "due_date": obligation.due_date.isoformat(),
        "amount_due": str(to_money(obligation.amount_due)),
        "utilities_charges": str(to_money(obligation.utilities_charges)),
        "late_fee": str(to_money(obligation.late_fee)),
        "amount_paid": str(to_money(obligation.amount_paid)),
        "total_due": str(total_due(obligation)),
        "balance": str(balance_due(obligation)),
        "status": obligation.status,
        "payment_method": obligation.payment_method,
        "payment_reference": obligation.payment_reference,
        "payment_date": obligation.payment_date.isoformat() if obligation.payment_date else None,
        "invoice_number": f"INV-{obligation.due_date.year}-{int(obligation.id):04d}",
        **gv.as_dict(),
    }


def rent_roll(
    db: Session,
    *,
    year: int,
    month: Optional[int] = None,
    status: Optional[str] = None,
    lease_id: Optional[int] = None,
    today: Optional[date] = None,
) -> list[dict[str, Any]]:
    conds = [extract("year", RentObligation.due_date) == int(year)]
    if month is not None:
        conds.append(extract("month", RentObligation.due_date) == int(month))
    if status:
        conds.append(RentObligation.status == status)
    if lease_id is not None:
        conds.append(RentObligation.lease_id == int(lease_id))

    q = (
        select(RentObligation, Lease)
        .join(Lease, Lease.id == RentObligation.lease_id)
        .where(and_(*conds))
        .order_by(RentObligation.due_date.asc(), RentObligation.id.asc())
    )
    return [obligation_view(o, l, today=today) for o, l in db.execute(q).all()]


def collection_summary(db: Session, *, year: int, month: Optional[int] = None) -> dict[str, Any]:
    conds = [extract("year", RentObligation.due_date) == int(year)]
    if month is not None:
        conds.append(extract("month", RentObligation.due_date) == int(month))
    rows = list(db.scalars(select(RentObligation).where(and_(*conds))).all())

    counts = {s: 0 for s in (PENDING, PARTIAL, PAID, OVERDUE, WRITTEN_OFF)}
    total = ZERO
    collected = ZERO
    pending_amt = ZERO
    overdue_amt = ZERO
    late_fees = ZERO
    for r in rows:
        counts[r.status] = counts.get(r.status, 0) + 1
        total += total_due(r)
        collected += to_money(r.amount_paid)
        late_fees += to_money(r.late_fee)
        if r.status in (PENDING, PARTIAL):
            pending_amt += balance_due(r)
        elif r.status == OVERDUE:
            overdue_amt += balance_due(r)

    n = len(rows)
    rate = (Decimal(counts[PAID]) * 100 / Decimal(n)).quantize(Decimal("0.01")) if n else ZERO
    avg_rent = (sum((to_money(r.amount_due) for r in rows), ZERO) / n).quantize(Decimal("0.01")) if n else ZERO

    return {
        "year": int(year),
        "month": int(month) if month is not None else None,
        "total_payments": n,
        "total_due": str(total),
        "total_collected": str(collected),
        "total_pending": str(pending_amt),
        "total_overdue": str(overdue_amt),
        "total_late_fees": str(late_fees),
        "average_rent": str(avg_rent),
        "counts": counts,
        "collection_rate": str(rate),
    }


def unpaid_obligations(db: Session, *, lease_id: int) -> list[RentObligation]:
    q = (
        select(RentObligation)
        .where(RentObligation.lease_id == int(lease_id), RentObligation.status.in_(UNSETTLED_STATUSES))
        .order_by(RentObligation.due_date.asc(), RentObligation.id.asc())
    )
    return list(db.scalars(q).all())


def unpaid_balance(db: Session, *, lease_id: int) -> dict[str, Any]:
    must_get_lease(db, lease_id=lease_id)
    rows = unpaid_obligations(db, lease_id=lease_id)
    total = sum((balance_due(r) for r in rows), ZERO)
    return {
        "lease_id": int(lease_id),
        "total_unpaid": str(total),
        "count": len(rows),
        "payments": [
            {
                "id": r.id,
                "due_date": r.due_date.isoformat(),
                "status": r.status,
                "total_due": str(total_due(r)),
                "amount_paid": str(to_money(r.amount_paid)),
                "balance": str(balance_due(r)),
            }
            for r in rows
        ],
    }


def obligation_history(db: Session, *, obligation_id: int) -> list[ObligationUpdate]:
    must_get_obligation(db, obligation_id=obligation_id)
    q = select(ObligationUpdate).where(ObligationUpdate.obligation_id == int(obligation_id)).order_by(ObligationUpdate.id.asc())
    return list(db.scalars(q).all())


# -----------------------------------------------------------------------------
# Reminders / receipts (notices only; dispatch happens after commit)
# -----------------------------------------------------------------------------
def reminder_notices(db: Session, *, obligation_ids: Iterable[int], reminder_type: str = "overdue") -> list[Notice]:
    if reminder_type not in {"overdue", "upcoming"}:
        raise ValueError("reminder_type must be overdue or upcoming")

    ids = [int(i) for i in obligation_ids]
    if not ids:
        return []

    q = (
        select(RentObligation)
        .where(RentObligation.id.in_(ids), RentObligation.status.in_(UNSETTLED_STATUSES))
        .order_by(RentObligation.id.asc())
    )
    notices: list[Notice] = []
    for o in db.scalars(q).all():
        bal = balance_due(o)
        if reminder_type == "overdue":
            title = "Rent Overdue"
            msg = f"Your rent of {settings.currency_code} {bal} due on {o.due_date.isoformat()} is overdue."
        else:
            title = "Rent Due Soon"
            msg = f"Your rent of {settings.currency_code} {bal} is due on {o.due_date.isoformat()}."
        for t in current_tenants(db, lease_id=o.lease_id):
            notices.append(
                Notice(
                    user_id=t.user_id,
                    notification_type=f"rent_{reminder_type}_reminder",
                    title=title,
                    message=msg,
                    related_resource_type="rent_payment",
                    related_resource_id=str(o.id),
                    urgent=reminder_type == "overdue",
                )
            )
    return notices


def receipt_notices(db: Session, *, obligation: RentObligation, amount: Decimal) -> list[Notice]:
    status_text = "paid in full" if obligation.status == PAID else f"{obligation.status} (balance {balance_due(obligation)})"
    return [
        Notice(
            user_id=t.user_id,
            notification_type="payment_received",
            title="Payment Received",
            message=(
                f"We received {settings.currency_code} {amount} for rent due {obligation.due_date.isoformat()}; "
                f"it is now {status_text}."
            ),
            related_resource_type="rent_payment",
            related_resource_id=str(obligation.id),
        )
        for t in current_tenants(db, lease_id=obligation.lease_id)
    ]
