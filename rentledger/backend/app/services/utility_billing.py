# backend/app/services/utility_billing.py
"""
Utility Billing Merger.

Charges start as draft/pending, and the merge batch folds each charge's total
into the rent obligation of the same month exactly once. The charge_status
transition to `billed` is the guard that makes re-runs a no-op.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import atomic
from ..domain.audit import log_activity, record_obligation_update
from ..domain.errors import Conflict, InvalidAmount, InvalidState
from ..domain.ledger_math import PAID, PARTIAL, WRITTEN_OFF, ZERO, derive_status, to_money, total_due
from ..models import Lease, RentObligation, UtilityCharge
from .billing_service import month_bounds
from .ownership import must_get_lease

log = logging.getLogger("rentledger.utilities")

CHARGE_FIELDS = (
    "water_charges",
    "electricity_charges",
    "gas_charges",
    "service_charges",
    "garbage_charges",
    "common_area_charges",
    "other_charges",
)

MERGEABLE_STATUSES = ("draft", "pending")


def _charges(values: dict[str, Any]) -> dict[str, Decimal]:
    out: dict[str, Decimal] = {}
    for k in CHARGE_FIELDS:
        v = to_money(values.get(k) or 0)
        if v < ZERO:
            raise InvalidAmount(f"{k} cannot be negative", data={k: str(v)})
        out[k] = v
    return out


def _existing_charge(db: Session, *, lease_id: int, billing_month: date) -> Optional[int]:
    return db.scalar(
        select(UtilityCharge.id).where(
            UtilityCharge.lease_id == int(lease_id),
            UtilityCharge.billing_month == billing_month,
        )
    )


def create_utility_charge(
    db: Session,
    *,
    lease_id: int,
    year: int,
    month: int,
    charges: dict[str, Any],
    actor_user_id: Optional[int],
    other_charges_description: Optional[str] = None,
    due_date: Optional[date] = None,
    notes: Optional[str] = None,
    status: str = "pending",
) -> UtilityCharge:
    if status not in MERGEABLE_STATUSES:
        raise InvalidState("new utility charges must be draft or pending", data={"charge_status": status})
    amounts = _charges(charges)
    first, _ = month_bounds(year, month)

    with atomic(db):
        lease = must_get_lease(db, lease_id=lease_id)
        existing = _existing_charge(db, lease_id=lease.id, billing_month=first)
        if existing is not None:
            raise Conflict(
                "utility charges already exist for this lease and month",
                data={"lease_id": lease.id, "billing_month": first.isoformat(), "charge_id": existing},
            )

        row = UtilityCharge(
            lease_id=lease.id,
            billing_month=first,
            other_charges_description=other_charges_description,
            charge_status=status,
            due_date=due_date,
            notes=notes,
            created_by=actor_user_id,
            created_at=datetime.utcnow(),
            updated_at=datetime.utcnow(),
            **amounts,
        )
        db.add(row)
        db.flush()

        log_activity(
            db,
            actor_user_id=actor_user_id,
            action="utility_charge_created",
            entity_type="utility_charge",
            entity_id=row.id,
            description=f"Utility charges of {row.total_utility_charges} for lease {lease.lease_number}, {first:%Y-%m}",
        )
    return row


def generate_draft_charges(
    db: Session,
    *,
    year: int,
    month: int,
    actor_user_id: Optional[int] = None,
    default_charges: Optional[dict[str, Any]] = None,
) -> list[UtilityCharge]:
    """Draft charge for every active lease that has none for the month yet; unspecified amounts are 0."""
    amounts = _charges(default_charges or {})
    first, last = month_bounds(year, month)
    created: list[UtilityCharge] = []

    with atomic(db):
        leases = db.scalars(
            select(Lease).where(Lease.lease_status == "active", Lease.start_date <= last).order_by(Lease.id.asc())
        ).all()
        for lease in leases:
            if _existing_charge(db, lease_id=lease.id, billing_month=first) is not None:
                continue
            row = UtilityCharge(
                lease_id=lease.id,
                billing_month=first,
                charge_status="draft",
                created_by=actor_user_id,
                notes="auto-generated draft",
                created_at=datetime.utcnow(),
                updated_at=datetime.utcnow(),
                **amounts,
            )
            db.add(row)
            created.append(row)
        db.flush()

        log_activity(
            db,
            actor_user_id=actor_user_id,
            action="utility_drafts_generated",
            entity_type="utility_charge",
            entity_id=None,
            description=f"Generated {len(created)} draft utility charges for {first:%Y-%m}",
        )

    log.info("generated %s draft utility charges for %s", len(created), f"{first:%Y-%m}")
    return created


@dataclass
class MergeResult:
    month: int
    year: int
    billed_count: int = 0
    total_billed: Decimal = ZERO
    unmatched_charge_ids: list[int] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "year": self.year,
            "billed_count": self.billed_count,
            "total_billed": str(self.total_billed),
            "unmatched_charge_ids": list(self.unmatched_charge_ids),
        }


def _obligation_for_month(db: Session, *, lease_id: int, first: date, last: date) -> Optional[RentObligation]:
    q = (
        select(RentObligation)
        .where(
            RentObligation.lease_id == int(lease_id),
            RentObligation.due_date >= first,
            RentObligation.due_date <= last,
            RentObligation.status != WRITTEN_OFF,
        )
        .order_by(RentObligation.due_date.asc(), RentObligation.id.asc())
        .with_for_update()
    )
    return db.scalars(q).first()


def bill_utilities_to_rent(
    db: Session,
    *,
    year: int,
    month: int,
    actor_user_id: Optional[int] = None,
    commit: bool = True,
) -> MergeResult:
    """
    Merge draft/pending charges for the month into that month's obligation.

    Charges without a matching obligation are left untouched and reported.
    A paid obligation that receives new utilities drops back to partial.
    """
    first, last = month_bounds(year, month)
    result = MergeResult(month=int(month), year=int(year))

    with atomic(db, commit=commit):
        charges = db.scalars(
            select(UtilityCharge)
            .where(UtilityCharge.billing_month == first, UtilityCharge.charge_status.in_(MERGEABLE_STATUSES))
            .order_by(UtilityCharge.id.asc())
            .with_for_update()
        ).all()

        for charge in charges:
            obligation = _obligation_for_month(db, lease_id=charge.lease_id, first=first, last=last)
            if obligation is None:
                result.unmatched_charge_ids.append(int(charge.id))
                continue

            amount = to_money(charge.total_utility_charges)
            old_status = obligation.status
            obligation.utilities_charges = to_money(obligation.utilities_charges) + amount
            if old_status in (PAID, PARTIAL):
                obligation.status = derive_status(to_money(obligation.amount_paid), total_due(obligation))
            obligation.updated_at = datetime.utcnow()

            charge.charge_status = "billed"
            charge.billed_obligation_id = obligation.id
            charge.updated_at = datetime.utcnow()
            db.flush()

            record_obligation_update(
                db,
                obligation_id=obligation.id,
                change_type="utilities_billed",
                old_status=old_status,
                new_status=obligation.status,
                old_amount=to_money(obligation.amount_paid),
                new_amount=to_money(obligation.amount_paid),
                changed_by=actor_user_id,
                reason=f"utility charges for {first:%Y-%m}",
                extra={"charge_id": charge.id, "utilities_added": str(amount)},
            )
            result.billed_count += 1
            result.total_billed += amount

        if result.unmatched_charge_ids:
            log.warning(
                "%s utility charges have no rent obligation for %s",
                len(result.unmatched_charge_ids),
                f"{first:%Y-%m}",
                extra={"job": "bill_utilities_to_rent"},
            )

    log.info(
        "billed %s utility charges (%s) for %s",
        result.billed_count,
        result.total_billed,
        f"{first:%Y-%m}",
        extra={"job": "bill_utilities_to_rent"},
    )
    return result


def utility_summary(db: Session, *, year: int, month: int) -> dict[str, Any]:
    first, _ = month_bounds(year, month)
    rows = db.scalars(select(UtilityCharge).where(UtilityCharge.billing_month == first)).all()

    by_status: dict[str, dict[str, Any]] = {}
    per_type = {k: ZERO for k in CHARGE_FIELDS}
    grand = ZERO
    for r in rows:
        t = to_money(r.total_utility_charges)
        bucket = by_status.setdefault(r.charge_status, {"count": 0, "total": ZERO})
        bucket["count"] += 1
        bucket["total"] += t
        grand += t
        for k in CHARGE_FIELDS:
            per_type[k] += to_money(getattr(r, k))

    return {
        "billing_month": first.isoformat(),
        "total_charges": len(rows),
        "total_amount": str(grand),
        "by_status": {s: {"count": b["count"], "total": str(b["total"])} for s, b in by_status.items()},
        "by_type": {k: str(v) for k, v in per_type.items()},
    }


def list_charges(db: Session, *, lease_id: Optional[int] = None, status: Optional[str] = None) -> list[UtilityCharge]:
    q = select(UtilityCharge)
    if lease_id is not None:
        q = q.where(UtilityCharge.lease_id == int(lease_id))
    if status:
        q = q.where(UtilityCharge.charge_status == status)
    return list(db.scalars(q.order_by(UtilityCharge.billing_month.desc(), UtilityCharge.id.desc())).all())
