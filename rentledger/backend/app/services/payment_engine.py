# backend/app/services/payment_engine.py
"""
Payment Application Engine.

The single place where money is applied to a rent obligation. Direct admin
processing, submission verification and the settlement engine all call
apply_to_obligation() (directly or through apply_payment()); none of them
recompute paid/partial thresholds themselves.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..db import atomic
from ..domain.audit import record_obligation_update
from ..domain.errors import InvalidAmount, InvalidState
from ..domain.ledger_math import WRITTEN_OFF, ZERO, derive_status, to_money, total_due
from ..models import RentObligation
from .ownership import must_get_obligation

log = logging.getLogger("rentledger.payments")


@dataclass(frozen=True)
class PaymentApplication:
    obligation_id: int
    amount_applied: Decimal
    old_status: str
    new_status: str
    old_amount_paid: Decimal
    new_amount_paid: Decimal
    total_due: Decimal

    @property
    def balance(self) -> Decimal:
        return max(ZERO, self.total_due - self.new_amount_paid)

    def as_dict(self) -> dict[str, Any]:
        return {
            "obligation_id": self.obligation_id,
            "amount_applied": str(self.amount_applied),
            "old_status": self.old_status,
            "new_status": self.new_status,
            "old_amount_paid": str(self.old_amount_paid),
            "new_amount_paid": str(self.new_amount_paid),
            "total_due": str(self.total_due),
            "balance": str(self.balance),
        }


def apply_to_obligation(
    db: Session,
    obligation: RentObligation,
    *,
    amount: Any,
    method: Optional[str],
    reference: Optional[str],
    payment_date: Optional[date],
    actor_user_id: Optional[int],
    change_type: str = "payment_received",
    reason: Optional[str] = None,
) -> PaymentApplication:
    """
    Apply `amount` to an already-loaded (and, on Postgres, row-locked) obligation.
    No commit; callers wrap this in their own unit of work.
    """
    amt = to_money(amount)
    if amt <= ZERO:
        raise InvalidAmount("payment amount must be greater than zero", data={"amount": str(amt)})

    if obligation.status == WRITTEN_OFF:
        raise InvalidState(
            "rent payment is written off and can no longer accept payments",
            data={"obligation_id": obligation.id},
        )

    due = total_due(obligation)
    old_paid = to_money(obligation.amount_paid)
    new_paid = old_paid + amt

    if new_paid > due:
        raise InvalidAmount(
            "payment exceeds the outstanding balance",
            data={
                "obligation_id": obligation.id,
                "amount": str(amt),
                "outstanding": str(due - old_paid),
            },
        )

    old_status = obligation.status
    new_status = derive_status(new_paid, due)

    obligation.amount_paid = new_paid
    obligation.status = new_status
    obligation.payment_method = method
    obligation.payment_reference = reference
    obligation.payment_date = payment_date or date.today()
    obligation.processed_by = actor_user_id
    obligation.updated_at = datetime.utcnow()
    db.flush()

    record_obligation_update(
        db,
        obligation_id=obligation.id,
        change_type=change_type,
        old_status=old_status,
        new_status=new_status,
        old_amount=old_paid,
        new_amount=new_paid,
        changed_by=actor_user_id,
        reason=reason,
        extra={"amount": str(amt), "method": method, "reference": reference},
    )

    log.info(
        "payment applied %s -> %s (%s)",
        old_status,
        new_status,
        amt,
        extra={"obligation_id": obligation.id, "actor_user_id": actor_user_id},
    )

    return PaymentApplication(
        obligation_id=int(obligation.id),
        amount_applied=amt,
        old_status=old_status,
        new_status=new_status,
        old_amount_paid=old_paid,
        new_amount_paid=new_paid,
        total_due=due,
    )


def apply_payment(
    db: Session,
    *,
    obligation_id: int,
    amount: Any,
    method: Optional[str],
    reference: Optional[str],
    payment_date: Optional[date],
    actor_user_id: Optional[int],
    reason: Optional[str] = None,
    commit: bool = True,
) -> PaymentApplication:
    """
    applyPayment(obligationId, amount, method, reference, date, actor).

    Additive: amount_paid accumulates across calls. Raises NotFound,
    InvalidAmount (<= 0 or above the outstanding balance) or InvalidState
    (written off). Rolls back on any error.
    """
    with atomic(db, commit=commit):
        obligation = must_get_obligation(db, obligation_id=obligation_id, for_update=True)
        return apply_to_obligation(
            db,
            obligation,
            amount=amount,
            method=method,
            reference=reference,
            payment_date=payment_date,
            actor_user_id=actor_user_id,
            reason=reason,
        )
