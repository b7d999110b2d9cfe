# backend/app/services/lease_lifecycle.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..db import atomic
from ..domain.audit import log_activity
from ..domain.errors import InvalidAmount, InvalidRequest, NotFound
from ..domain.ledger_math import ZERO, to_money
from ..models import Lease, LeaseTenant, SecurityDeposit, Tenant, Unit
from .lease_rules import ensure_no_lease_overlap

log = logging.getLogger("rentledger.leases")


def create_lease(
    db: Session,
    *,
    unit_id: int,
    tenant_ids: Iterable[int],
    lease_number: str,
    start_date: date,
    monthly_rent: Any,
    actor_user_id: Optional[int],
    end_date: Optional[date] = None,
    security_deposit: Any = 0,
    late_fee: Any = 0,
    grace_period_days: Optional[int] = None,
    rent_due_day: Optional[int] = None,
) -> Lease:
    """Draft lease; it becomes active on its start date via activate_due_leases()."""
    rent = to_money(monthly_rent)
    deposit = to_money(security_deposit)
    fee = to_money(late_fee)
    if rent <= ZERO:
        raise InvalidAmount("monthly_rent must be greater than zero", data={"monthly_rent": str(rent)})
    if deposit < ZERO or fee < ZERO:
        raise InvalidAmount("security_deposit and late_fee cannot be negative")
    if rent_due_day is not None and not 1 <= int(rent_due_day) <= 31:
        raise InvalidRequest("rent_due_day must be 1-31")
    if grace_period_days is not None and int(grace_period_days) < 0:
        raise InvalidRequest("grace_period_days cannot be negative")

    ids = list(dict.fromkeys(int(t) for t in tenant_ids))
    if not ids:
        raise InvalidRequest("a lease needs at least one tenant")

    with atomic(db):
        if db.get(Unit, int(unit_id)) is None:
            raise NotFound("unit not found", data={"unit_id": unit_id})
        for tid in ids:
            if db.get(Tenant, tid) is None:
                raise NotFound("tenant not found", data={"tenant_id": tid})

        ensure_no_lease_overlap(db, unit_id=unit_id, start_date=start_date, end_date=end_date)

        lease = Lease(
            lease_number=lease_number,
            unit_id=int(unit_id),
            start_date=start_date,
            end_date=end_date,
            monthly_rent=rent,
            late_fee=fee,
            grace_period_days=grace_period_days,
            rent_due_day=rent_due_day,
            security_deposit=deposit,
            lease_status="draft",
            created_at=datetime.utcnow(),
            updated_at=datetime.utcnow(),
        )
        db.add(lease)
        db.flush()
        for i, tid in enumerate(ids):
            db.add(LeaseTenant(lease_id=lease.id, tenant_id=tid, is_primary_tenant=i == 0))
        db.flush()

        log_activity(
            db,
            actor_user_id=actor_user_id,
            action="lease_created",
            entity_type="lease",
            entity_id=lease.id,
            description=f"Created lease {lease.lease_number} starting {start_date.isoformat()}",
        )
    return lease


@dataclass
class ActivationResult:
    as_of: date
    activated_count: int = 0
    deposits_created: int = 0
    lease_ids: list[int] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "activated_count": self.activated_count,
            "deposits_created": self.deposits_created,
            "lease_ids": list(self.lease_ids),
        }


def activate_due_leases(db: Session, *, today: Optional[date] = None, commit: bool = True) -> ActivationResult:
    """draft -> active once start_date has arrived; occupies the unit and opens a held deposit."""
    today = today or date.today()
    result = ActivationResult(as_of=today)

    with atomic(db, commit=commit):
        leases = db.scalars(
            select(Lease)
            .where(Lease.lease_status == "draft", Lease.start_date <= today)
            .order_by(Lease.start_date.asc(), Lease.id.asc())
            .with_for_update()
        ).all()

        for lease in leases:
            lease.lease_status = "active"
            lease.updated_at = datetime.utcnow()

            unit = db.get(Unit, lease.unit_id)
            if unit is not None:
                unit.occupancy_status = "occupied"
                unit.updated_at = datetime.utcnow()

            has_deposit = db.scalar(select(SecurityDeposit.id).where(SecurityDeposit.lease_id == lease.id))
            if has_deposit is None and to_money(lease.security_deposit) > ZERO:
                db.add(
                    SecurityDeposit(
                        lease_id=lease.id,
                        amount_collected=to_money(lease.security_deposit),
                        collection_date=lease.start_date,
                        amount_returned=ZERO,
                        deductions=ZERO,
                        status="held",
                    )
                )
                result.deposits_created += 1

            result.activated_count += 1
            result.lease_ids.append(int(lease.id))
        db.flush()

    log.info("activated %s leases as of %s", result.activated_count, today.isoformat(), extra={"job": "activate_due_leases"})
    return result
