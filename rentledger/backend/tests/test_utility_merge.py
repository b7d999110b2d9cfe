# rentledger/backend/tests/test_utility_merge.py
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from app.db import SessionLocal
from app.domain.errors import Conflict
from app.models import RentObligation, UtilityCharge
from app.services.utility_billing import (
    bill_utilities_to_rent,
    create_utility_charge,
    generate_draft_charges,
    utility_summary,
)

from factories import mk_lease, mk_obligation


def test_merge_adds_charges_exactly_once():
    db = SessionLocal()
    try:
        lease = mk_lease(db)
        o = mk_obligation(db, lease, due=date(2024, 3, 1), amount_due="15000")
        charge = create_utility_charge(
            db,
            lease_id=lease.id,
            year=2024,
            month=3,
            charges={"water_charges": "800", "electricity_charges": "1200.50"},
            actor_user_id=None,
        )
        assert charge.total_utility_charges == Decimal("2000.50")

        first = bill_utilities_to_rent(db, year=2024, month=3)
        assert first.billed_count == 1
        assert first.total_billed == Decimal("2000.50")

        again = bill_utilities_to_rent(db, year=2024, month=3)
        assert again.billed_count == 0

        db.expire_all()
        row = db.get(RentObligation, o.id)
        assert row.utilities_charges == Decimal("2000.50")
        c = db.get(UtilityCharge, charge.id)
        assert c.charge_status == "billed"
        assert c.billed_obligation_id == o.id
    finally:
        db.close()


def test_paid_obligation_reopens_as_partial():
    db = SessionLocal()
    try:
        lease = mk_lease(db)
        o = mk_obligation(db, lease, due=date(2024, 3, 1), amount_due="15000", paid="15000", status="paid")
        create_utility_charge(db, lease_id=lease.id, year=2024, month=3, charges={"service_charges": "1000"}, actor_user_id=None)
        bill_utilities_to_rent(db, year=2024, month=3)
        db.expire_all()
        assert db.get(RentObligation, o.id).status == "partial"
    finally:
        db.close()


def test_charge_without_obligation_is_left_pending():
    db = SessionLocal()
    try:
        lease = mk_lease(db)
        c = create_utility_charge(db, lease_id=lease.id, year=2024, month=6, charges={"gas_charges": "300"}, actor_user_id=None)
        res = bill_utilities_to_rent(db, year=2024, month=6)
        assert res.unmatched_charge_ids == [c.id]
        db.expire_all()
        assert db.get(UtilityCharge, c.id).charge_status == "pending"
    finally:
        db.close()


def test_duplicate_charge_for_month_is_a_conflict():
    db = SessionLocal()
    try:
        lease = mk_lease(db)
        create_utility_charge(db, lease_id=lease.id, year=2024, month=3, charges={}, actor_user_id=None)
        with pytest.raises(Conflict):
            create_utility_charge(db, lease_id=lease.id, year=2024, month=3, charges={}, actor_user_id=None)
    finally:
        db.close()


def test_drafts_and_summary():
    db = SessionLocal()
    try:
        a = mk_lease(db)
        mk_lease(db)
        mk_lease(db, status="draft")
        create_utility_charge(db, lease_id=a.id, year=2024, month=3, charges={"water_charges": "100"}, actor_user_id=None)

        drafts = generate_draft_charges(
            db,
            year=2024,
            month=3,
            default_charges={"water_charges": "500", "service_charges": "1000"},
        )
        assert len(drafts) == 1
        assert drafts[0].charge_status == "draft"
        assert drafts[0].total_utility_charges == Decimal("1500.00")

        s = utility_summary(db, year=2024, month=3)
        assert s["total_charges"] == 2
        assert s["total_amount"] == "1600.00"
        assert s["by_status"]["draft"]["count"] == 1
    finally:
        db.close()


def test_drafts_without_amounts_are_zero():
    db = SessionLocal()
    try:
        mk_lease(db)
        drafts = generate_draft_charges(db, year=2024, month=3)
        assert len(drafts) == 1
        assert drafts[0].water_charges == Decimal("0.00")
        assert drafts[0].service_charges == Decimal("0.00")
        assert drafts[0].total_utility_charges == Decimal("0.00")
    finally:
        db.close()
