# rentledger/backend/tests/test_generation_idempotent.py
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.db import SessionLocal
from app.domain.errors import Conflict, InvalidState
from app.models import RentObligation
from app.services.billing_service import create_obligation, generate_monthly_obligations, promote_overdue

from factories import mk_lease


def _rows(db):
    return db.scalars(select(RentObligation).order_by(RentObligation.id)).all()


def test_generation_is_idempotent_per_lease_and_month():
    db = SessionLocal()
    try:
        a = mk_lease(db, rent="15000", late_fee="500")
        b = mk_lease(db, rent="22000.50", late_fee="0", due_day=5)

        first = generate_monthly_obligations(db, year=2024, month=3)
        assert first.generated_count == 2
        assert first.skipped_existing == 0

        second = generate_monthly_obligations(db, year=2024, month=3)
        assert second.generated_count == 0
        assert second.skipped_existing == 2

        rows = _rows(db)
        assert len(rows) == 2
        by_lease = {r.lease_id: r for r in rows}
        assert by_lease[a.id].due_date == date(2024, 3, 1)
        assert by_lease[b.id].due_date == date(2024, 3, 5)
        assert by_lease[b.id].amount_due == Decimal("22000.50")
        assert by_lease[a.id].late_fee == Decimal("500.00")
        assert by_lease[b.id].late_fee == Decimal("0.00")
        for r in rows:
            assert r.status == "pending"
            assert r.amount_paid == Decimal("0.00")
            assert r.utilities_charges == Decimal("0.00")
    finally:
        db.close()


def test_due_day_is_clamped_to_month_end():
    db = SessionLocal()
    try:
        mk_lease(db, due_day=31)
        generate_monthly_obligations(db, year=2024, month=2)
        assert _rows(db)[0].due_date == date(2024, 2, 29)
    finally:
        db.close()


def test_only_active_leases_covering_the_month():
    db = SessionLocal()
    try:
        mk_lease(db, status="draft")
        mk_lease(db, status="terminated")
        mk_lease(db, start=date(2024, 4, 1))
        mk_lease(db, start=date(2023, 1, 1), end=date(2024, 2, 28))
        keep = mk_lease(db)

        res = generate_monthly_obligations(db, year=2024, month=3)
        assert res.generated_count == 1
        assert _rows(db)[0].lease_id == keep.id
    finally:
        db.close()


def test_lease_starting_mid_month_waits_for_next_month():
    db = SessionLocal()
    try:
        mid = mk_lease(db, start=date(2024, 3, 15))
        mk_lease(db)

        march = generate_monthly_obligations(db, year=2024, month=3)
        assert march.generated_count == 1
        assert mid.id not in {r.lease_id for r in _rows(db)}

        generate_monthly_obligations(db, year=2024, month=4)
        rows = [r for r in _rows(db) if r.lease_id == mid.id]
        assert [r.due_date for r in rows] == [date(2024, 4, 1)]
        assert all(r.due_date >= mid.start_date for r in rows)
    finally:
        db.close()


def test_generated_late_fee_is_not_applied_twice_on_promotion():
    db = SessionLocal()
    try:
        mk_lease(db, late_fee="500", grace=0)
        generate_monthly_obligations(db, year=2024, month=3)

        res = promote_overdue(db, today=date(2024, 3, 2))
        assert res.updated_count == 1
        assert res.late_fees_applied == 0
        db.expire_all()
        row = _rows(db)[0]
        assert row.status == "overdue"
        assert row.late_fee == Decimal("500.00")
    finally:
        db.close()


def test_no_active_leases_is_a_conflict():
    db = SessionLocal()
    try:
        mk_lease(db, status="draft")
        with pytest.raises(Conflict):
            generate_monthly_obligations(db, year=2024, month=3)
        assert _rows(db) == []
    finally:
        db.close()


def test_manual_obligation_rejects_duplicates_and_inactive_leases():
    db = SessionLocal()
    try:
        lease = mk_lease(db)
        row = create_obligation(db, lease_id=lease.id, due_date=date(2024, 5, 1), amount_due="15000", actor_user_id=None)
        assert row.status == "pending"

        with pytest.raises(Conflict):
            create_obligation(db, lease_id=lease.id, due_date=date(2024, 5, 1), amount_due="15000", actor_user_id=None)

        draft = mk_lease(db, status="draft")
        with pytest.raises(InvalidState):
            create_obligation(db, lease_id=draft.id, due_date=date(2024, 5, 1), amount_due="100", actor_user_id=None)
    finally:
        db.close()
