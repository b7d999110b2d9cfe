# rentledger/backend/tests/test_overdue_promotion.py
from __future__ import annotations

from datetime import date
from decimal import Decimal

from app.db import SessionLocal
from app.models import RentObligation
from app.services.billing_service import obligation_view, promote_overdue

from factories import mk_lease, mk_obligation


def test_grace_then_overdue_scenario():
    db = SessionLocal()
    try:
        lease = mk_lease(db, rent="15000", late_fee="500", grace=5)
        o = mk_obligation(db, lease, due=date(2024, 3, 1), amount_due="15000")

        early = promote_overdue(db, today=date(2024, 3, 4))
        assert early.updated_count == 0
        db.expire_all()
        row = db.get(RentObligation, o.id)
        assert row.status == "pending"
        view = obligation_view(row, lease, today=date(2024, 3, 4))
        assert view["within_grace_period"] is True
        assert view["days_overdue"] == 0

        late = promote_overdue(db, today=date(2024, 3, 10))
        assert late.updated_count == 1
        assert late.late_fees_applied == 1
        db.expire_all()
        row = db.get(RentObligation, o.id)
        assert row.status == "overdue"
        assert row.late_fee == Decimal("500.00")

        view = obligation_view(row, lease, today=date(2024, 3, 10))
        assert view["days_overdue"] == 4
        assert view["total_due"] == "15500.00"
    finally:
        db.close()


def test_promotion_is_one_directional_and_idempotent():
    db = SessionLocal()
    try:
        lease = mk_lease(db, late_fee="500", grace=0)
        partial = mk_obligation(db, lease, due=date(2024, 1, 1), paid="100", status="partial")
        paid = mk_obligation(db, lease, due=date(2024, 2, 1), paid="15000", status="paid")
        pending = mk_obligation(db, lease, due=date(2024, 3, 1))

        assert promote_overdue(db, today=date(2024, 4, 1)).updated_count == 1
        assert promote_overdue(db, today=date(2024, 4, 2)).updated_count == 0

        db.expire_all()
        assert db.get(RentObligation, partial.id).status == "partial"
        assert db.get(RentObligation, paid.id).status == "paid"
        assert db.get(RentObligation, pending.id).status == "overdue"
    finally:
        db.close()


def test_existing_late_fee_is_not_doubled():
    db = SessionLocal()
    try:
        lease = mk_lease(db, late_fee="500", grace=0)
        o = mk_obligation(db, lease, due=date(2024, 3, 1), late_fee="250")
        res = promote_overdue(db, today=date(2024, 3, 2))
        assert res.late_fees_applied == 0
        db.expire_all()
        assert db.get(RentObligation, o.id).late_fee == Decimal("250.00")
    finally:
        db.close()
