# backend/app/domain/ledger_math.py
"""
Money arithmetic and obligation status derivation.

Every caller that needs "how much is owed" or "what status does this amount
imply" goes through this module, so the thresholds and the rounding rule live
in one place.
"""
from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

PENDING = "pending"
PARTIAL = "partial"
PAID = "paid"
OVERDUE = "overdue"
WRITTEN_OFF = "written_off"

OBLIGATION_STATUSES = (PENDING, PARTIAL, PAID, OVERDUE, WRITTEN_OFF)
UNSETTLED_STATUSES = (PENDING, OVERDUE, PARTIAL)


def to_money(v: Any) -> Decimal:
    """Quantize anything numeric to cents. Floats go through str() to avoid binary noise."""
    if v is None:
        return ZERO
    if isinstance(v, Decimal):
        d = v
    elif isinstance(v, float):
        d = Decimal(str(v))
    else:
        d = Decimal(v)
    return d.quantize(CENT, rounding=ROUND_HALF_UP)


def total_due(obligation: Any) -> Decimal:
    """amount_due + utilities_charges + late_fee; computed, never stored."""
    return (
        to_money(getattr(obligation, "amount_due", None))
        + to_money(getattr(obligation, "utilities_charges", None))
        + to_money(getattr(obligation, "late_fee", None))
    )


def balance_due(obligation: Any) -> Decimal:
    return max(ZERO, total_due(obligation) - to_money(getattr(obligation, "amount_paid", None)))


def derive_status(amount_paid: Decimal, due: Decimal) -> str:
    paid = to_money(amount_paid)
    if paid >= to_money(due):
        return PAID
    if paid > ZERO:
        return PARTIAL
    return PENDING
