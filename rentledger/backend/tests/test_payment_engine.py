# rentledger/backend/tests/test_payment_engine.py
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from app.db import SessionLocal
from app.domain.errors import InvalidAmount, InvalidState, NotFound
from app.models import ObligationUpdate, RentObligation
from app.services.payment_engine import apply_payment
from sqlalchemy import select

from factories import mk_lease, mk_obligation, mk_user


def _pay(db, oid, amount, actor, ref=None):
    return apply_payment(
        db,
        obligation_id=oid,
        amount=amount,
        method="M-Pesa",
        reference=ref,
        payment_date=date(2024, 3, 5),
        actor_user_id=actor,
    )


def test_partial_then_paid():
    db = SessionLocal()
    try:
        admin = mk_user(db)
        lease = mk_lease(db)
        o = mk_obligation(db, lease, amount_due="1000", late_fee="50")

        r1 = _pay(db, o.id, "600", admin.id, ref="TX1")
        assert r1.new_status == "partial"
        assert r1.new_amount_paid == Decimal("600.00")
        assert r1.balance == Decimal("450.00")

        r2 = _pay(db, o.id, Decimal("450"), admin.id, ref="TX2")
        assert r2.old_status == "partial"
        assert r2.new_status == "paid"
        assert r2.new_amount_paid == Decimal("1050.00")

        db.expire_all()
        row = db.get(RentObligation, o.id)
        assert row.status == "paid"
        assert row.amount_paid == Decimal("1050.00")
        assert row.payment_reference == "TX2"
        assert row.processed_by == admin.id

        hist = db.scalars(select(ObligationUpdate).where(ObligationUpdate.obligation_id == o.id)).all()
        assert [h.new_status for h in hist] == ["partial", "paid"]
        assert hist[1].old_amount == Decimal("600.00")
    finally:
        db.close()


def test_utilities_count_towards_total_due():
    db = SessionLocal()
    try:
        lease = mk_lease(db)
        o = mk_obligation(db, lease, amount_due="1000", utilities="200")
        assert _pay(db, o.id, "1000", None).new_status == "partial"
        assert _pay(db, o.id, "200", None).new_status == "paid"
    finally:
        db.close()


@pytest.mark.parametrize("amount", ["0", "-5"])
def test_non_positive_amount_rejected(amount):
    db = SessionLocal()
    try:
        lease = mk_lease(db)
        o = mk_obligation(db, lease, amount_due="1000")
        with pytest.raises(InvalidAmount):
            _pay(db, o.id, amount, None)
    finally:
        db.close()


def test_overpayment_rejected_and_nothing_changes():
    db = SessionLocal()
    try:
        lease = mk_lease(db)
        o = mk_obligation(db, lease, amount_due="1000", paid="900", status="partial")
        with pytest.raises(InvalidAmount):
            _pay(db, o.id, "150", None)

        db.expire_all()
        row = db.get(RentObligation, o.id)
        assert row.amount_paid == Decimal("900.00")
        assert row.status == "partial"
        assert db.scalar(select(ObligationUpdate.id).where(ObligationUpdate.obligation_id == o.id)) is None
    finally:
        db.close()


def test_written_off_is_terminal():
    db = SessionLocal()
    try:
        lease = mk_lease(db)
        o = mk_obligation(db, lease, amount_due="1000", status="written_off")
        with pytest.raises(InvalidState):
            _pay(db, o.id, "100", None)
    finally:
        db.close()


def test_missing_obligation():
    db = SessionLocal()
    try:
        with pytest.raises(NotFound):
            _pay(db, 999, "100", None)
    finally:
        db.close()


def test_overdue_obligation_paid_in_full():
    db = SessionLocal()
    try:
        lease = mk_lease(db)
        o = mk_obligation(db, lease, amount_due="15000", late_fee="500", status="overdue")
        r = _pay(db, o.id, "15500", None)
        assert r.old_status == "overdue"
        assert r.new_status == "paid"
    finally:
        db.close()
