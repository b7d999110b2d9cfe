# backend/app/services/settlement_service.py
"""
Settlement Engine (offboarding).

settle_lease() resolves unpaid rent (deduct from deposit or write off),
terminates the lease, frees the unit and finalizes the security deposit in a
single transaction. The bundled `tenant_offboarded` audit entry is the only
durable record of how the offboarding was resolved, so it is written strictly
(retried, and fatal when it cannot be persisted).
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..db import atomic
from ..domain.audit import audit_write, loads, record_obligation_update
from ..domain.errors import InvalidAmount, InvalidRequest, InvalidState, NotFound
from ..domain.ledger_math import WRITTEN_OFF, ZERO, balance_due, to_money, total_due
from ..models import AuditEvent, LeaseTenant, RentObligation, SecurityDeposit, Unit
from .billing_service import unpaid_obligations
from .ownership import must_get_lease
from .payment_engine import apply_to_obligation

log = logging.getLogger("rentledger.settlement")

DEDUCT = "deduct"
WRITEOFF = "writeoff"

SETTLEMENT_METHODS = {
    DEDUCT: "deducted_from_deposit",
    WRITEOFF: "written_off",
}

DEPOSIT_DEDUCTION_METHOD = "Security Deposit Deduction"
UNPAID_RENT_LINE = "Unpaid Rent Settlement"


@dataclass(frozen=True)
class Deduction:
    description: str
    amount: Decimal

    def as_dict(self) -> dict[str, Any]:
        return {"description": self.description, "amount": str(self.amount)}


def _deductions(items: Iterable[Any]) -> list[Deduction]:
    out: list[Deduction] = []
    for raw in items or []:
        if isinstance(raw, Deduction):
            d = raw
        elif isinstance(raw, dict):
            d = Deduction(description=str(raw.get("description") or "").strip(), amount=to_money(raw.get("amount")))
        else:
            d = Deduction(description=str(getattr(raw, "description", "") or "").strip(), amount=to_money(getattr(raw, "amount", 0)))
        if not d.description:
            raise InvalidRequest("each deduction needs a description")
        if d.amount < ZERO:
            raise InvalidAmount("deduction amounts cannot be negative", data=d.as_dict())
        out.append(d)
    return out


def deposit_status(refund: Decimal, original: Decimal) -> str:
    if refund == original:
        return "fully_returned"
    if refund > ZERO:
        return "partially_returned"
    return "forfeited"


@dataclass
class SettlementResult:
    lease_id: int
    move_out_date: date
    original_deposit: Decimal
    total_deductions: Decimal
    deposit_refund: Decimal
    deposit_status: str
    unpaid_rent_amount: Decimal
    rent_settlement_method: str
    deductions: list[Deduction] = field(default_factory=list)
    unpaid_rent_records: list[dict[str, Any]] = field(default_factory=list)
    audit_event_id: Optional[int] = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "lease_id": self.lease_id,
            "move_out_date": self.move_out_date.isoformat(),
            "original_deposit": str(self.original_deposit),
            "total_deductions": str(self.total_deductions),
            "deposit_refund": str(self.deposit_refund),
            "deposit_status": self.deposit_status,
            "unpaid_rent_amount": str(self.unpaid_rent_amount),
            "rent_settlement_method": self.rent_settlement_method,
            "deductions": [d.as_dict() for d in self.deductions],
            "unpaid_rent_records": list(self.unpaid_rent_records),
            "audit_event_id": self.audit_event_id,
        }


def _write_disposition(db: Session, *, actor_user_id: Optional[int], lease_id: int, description: str, bundle: dict[str, Any]) -> AuditEvent:
    attempts = max(1, int(settings.settlement_audit_retries))
    for attempt in range(1, attempts + 1):
        try:
            with db.begin_nested():
                return audit_write(
                    db,
                    actor_user_id=actor_user_id,
                    action="tenant_offboarded",
                    entity_type="lease",
                    entity_id=lease_id,
                    description=description,
                    extra=bundle,
                )
        except SQLAlchemyError:
            if attempt == attempts:
                raise
            log.warning(
                "disposition audit write failed (attempt %s/%s); retrying",
                attempt,
                attempts,
                extra={"lease_id": lease_id},
            )
    raise AssertionError("unreachable")


def settle_lease(
    db: Session,
    *,
    lease_id: int,
    move_out_date: date,
    deductions: Iterable[Any] = (),
    handle_unpaid_rent: str = DEDUCT,
    actor_user_id: Optional[int],
    notes: Optional[str] = None,
) -> SettlementResult:
    """
    Offboard the lease's tenants and finalize the deposit, all-or-nothing.

    Raises InvalidState for a non-active lease, an already finalized deposit,
    or deductions above the deposit held; nothing is mutated in those cases.
    """
    if handle_unpaid_rent not in SETTLEMENT_METHODS:
        raise InvalidRequest(
            "handle_unpaid_rent must be deduct or writeoff",
            data={"handle_unpaid_rent": handle_unpaid_rent},
        )
    items = _deductions(deductions)

    with atomic(db):
        lease = must_get_lease(db, lease_id=lease_id, for_update=True)
        if lease.lease_status != "active":
            raise InvalidState("lease is not active", data={"lease_id": lease.id, "lease_status": lease.lease_status})

        deposit = db.scalar(select(SecurityDeposit).where(SecurityDeposit.lease_id == lease.id).with_for_update())
        if deposit is not None and deposit.status != "held":
            raise InvalidState("security deposit already settled", data={"lease_id": lease.id, "status": deposit.status})
        original = to_money(deposit.amount_collected if deposit is not None else lease.security_deposit)

        # unpaid rent
        unpaid = unpaid_obligations(db, lease_id=lease.id)
        records = [
            {
                "id": o.id,
                "due_date": o.due_date.isoformat(),
                "status": o.status,
                "total_due": str(total_due(o)),
                "amount_paid": str(to_money(o.amount_paid)),
                "balance": str(balance_due(o)),
            }
            for o in unpaid
        ]
        unpaid_total = sum((balance_due(o) for o in unpaid), ZERO)

        # deposit ceiling is checked before any row is touched
        if unpaid_total > ZERO and handle_unpaid_rent == DEDUCT:
            items.append(Deduction(description=UNPAID_RENT_LINE, amount=unpaid_total))
        total_deductions = sum((d.amount for d in items), ZERO)
        if total_deductions > original:
            raise InvalidState(
                "total deductions cannot exceed the security deposit",
                data={"total_deductions": str(total_deductions), "original_deposit": str(original)},
            )
        refund = max(ZERO, original - total_deductions)

        # resolve unpaid rent
        if unpaid_total > ZERO:
            for o in unpaid:
                _settle_obligation(db, o, method=handle_unpaid_rent, move_out_date=move_out_date, actor_user_id=actor_user_id)
            if handle_unpaid_rent == WRITEOFF:
                audit_write(
                    db,
                    actor_user_id=actor_user_id,
                    action="tenant_debt_recorded",
                    entity_type="lease",
                    entity_id=lease.id,
                    description=(
                        f"Unpaid rent of {settings.currency_code} {unpaid_total} written off "
                        f"for lease {lease.lease_number}"
                    ),
                    extra={"unpaid_rent": str(unpaid_total), "rent_records": records},
                )

        # lease, tenants, unit
        lease.lease_status = "terminated"
        lease.move_out_date = move_out_date
        lease.updated_at = datetime.utcnow()
        for link in db.scalars(
            select(LeaseTenant).where(LeaseTenant.lease_id == lease.id, LeaseTenant.removed_date.is_(None))
        ).all():
            link.removed_date = move_out_date
        unit = db.get(Unit, lease.unit_id)
        if unit is not None:
            unit.occupancy_status = "vacant"
            unit.updated_at = datetime.utcnow()

        # deposit
        status = deposit_status(refund, original)
        if deposit is None:
            deposit = SecurityDeposit(lease_id=lease.id, amount_collected=original, collection_date=lease.start_date)
            db.add(deposit)
        deposit.amount_returned = refund
        deposit.deductions = total_deductions
        deposit.deduction_itemization_json = json.dumps([d.as_dict() for d in items])
        deposit.return_date = move_out_date
        deposit.status = status
        deposit.updated_at = datetime.utcnow()
        db.flush()

        result = SettlementResult(
            lease_id=int(lease.id),
            move_out_date=move_out_date,
            original_deposit=original,
            total_deductions=total_deductions,
            deposit_refund=refund,
            deposit_status=status,
            unpaid_rent_amount=unpaid_total,
            rent_settlement_method=SETTLEMENT_METHODS[handle_unpaid_rent] if unpaid_total > ZERO else "none",
            deductions=items,
            unpaid_rent_records=records,
        )

        # disposition
        bundle = {
            "move_out_date": move_out_date.isoformat(),
            "deposit_refund": str(refund),
            "deductions": [d.as_dict() for d in items],
            "total_deductions": str(total_deductions),
            "original_deposit": str(original),
            "deposit_status": status,
            "unpaid_rent_amount": str(unpaid_total),
            "rent_settlement_method": result.rent_settlement_method,
            "unpaid_rent_records": records,
            "notes": notes,
        }
        event = _write_disposition(
            db,
            actor_user_id=actor_user_id,
            lease_id=lease.id,
            description=(
                f"Offboarded lease {lease.lease_number}. Deposit refund: {settings.currency_code} {refund}, "
                f"deductions: {settings.currency_code} {total_deductions}"
            ),
            bundle=bundle,
        )
        result.audit_event_id = int(event.id)

    log.info(
        "lease settled: refund %s, deductions %s, unpaid rent %s (%s)",
        refund,
        total_deductions,
        unpaid_total,
        result.rent_settlement_method,
        extra={"lease_id": lease_id, "actor_user_id": actor_user_id},
    )
    return result


def _settle_obligation(
    db: Session,
    obligation: RentObligation,
    *,
    method: str,
    move_out_date: date,
    actor_user_id: Optional[int],
) -> None:
    if method == DEDUCT:
        apply_to_obligation(
            db,
            obligation,
            amount=balance_due(obligation),
            method=DEPOSIT_DEDUCTION_METHOD,
            reference=None,
            payment_date=move_out_date,
            actor_user_id=actor_user_id,
            change_type="deposit_deduction",
            reason="unpaid rent deducted from security deposit at move-out",
        )
        return

    # terminal; amount_paid stays below the total due
    old_status = obligation.status
    obligation.status = WRITTEN_OFF
    obligation.updated_at = datetime.utcnow()
    db.flush()

    record_obligation_update(
        db,
        obligation_id=obligation.id,
        change_type="written_off",
        old_status=old_status,
        new_status=WRITTEN_OFF,
        old_amount=to_money(obligation.amount_paid),
        new_amount=to_money(obligation.amount_paid),
        changed_by=actor_user_id,
        reason="unpaid rent written off at move-out",
        extra={"move_out_date": move_out_date.isoformat(), "balance": str(balance_due(obligation))},
    )


def get_offboarding_record(db: Session, *, lease_id: int) -> dict[str, Any]:
    lease = must_get_lease(db, lease_id=lease_id)
    event = db.scalars(
        select(AuditEvent)
        .where(
            AuditEvent.action == "tenant_offboarded",
            AuditEvent.entity_type == "lease",
            AuditEvent.entity_id == str(lease.id),
        )
        .order_by(AuditEvent.id.desc())
    ).first()
    if event is None:
        raise NotFound("offboarding record not found", data={"lease_id": lease.id})

    return {
        "lease_id": lease.id,
        "lease_number": lease.lease_number,
        "offboarded_at": event.created_at.isoformat(),
        "offboarded_by": event.actor_user_id,
        "description": event.description,
        "details": loads(event.extra_json),
    }
