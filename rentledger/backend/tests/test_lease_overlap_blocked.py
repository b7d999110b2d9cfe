# rentledger/backend/tests/test_lease_overlap_blocked.py
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.db import SessionLocal
from app.domain.errors import Conflict
from app.models import Lease, SecurityDeposit, Unit
from app.services.lease_lifecycle import activate_due_leases, create_lease
from app.services.lease_rules import ensure_no_lease_overlap

from factories import mk_lease, mk_tenant


def test_overlap_blocked():
    db = SessionLocal()
    try:
        l1 = mk_lease(db, start=date(2026, 1, 1), end=date(2026, 12, 31))
        with pytest.raises(Conflict):
            ensure_no_lease_overlap(db, unit_id=l1.unit_id, start_date=date(2026, 6, 1), end_date=date(2026, 6, 30))

        # starts the day after it ends
        ensure_no_lease_overlap(db, unit_id=l1.unit_id, start_date=date(2027, 1, 1))
    finally:
        db.close()


def test_terminated_lease_frees_unit_from_move_out():
    db = SessionLocal()
    try:
        l1 = mk_lease(db, start=date(2024, 1, 1), status="terminated")
        l1.move_out_date = date(2024, 3, 31)
        db.commit()
        ensure_no_lease_overlap(db, unit_id=l1.unit_id, start_date=date(2024, 4, 1))
    finally:
        db.close()


def test_create_then_activate():
    db = SessionLocal()
    try:
        unit = Unit(property_name="Hillview", unit_number="B2", occupancy_status="vacant")
        db.add(unit)
        db.commit()
        t = mk_tenant(db)

        lease = create_lease(
            db,
            unit_id=unit.id,
            tenant_ids=[t.id],
            lease_number="HV-B2-2024",
            start_date=date(2024, 5, 1),
            monthly_rent="18000",
            security_deposit="36000",
            actor_user_id=None,
        )
        assert lease.lease_status == "draft"

        with pytest.raises(Conflict):
            create_lease(
                db,
                unit_id=unit.id,
                tenant_ids=[t.id],
                lease_number="HV-B2-dup",
                start_date=date(2024, 8, 1),
                monthly_rent="18000",
                actor_user_id=None,
            )

        assert activate_due_leases(db, today=date(2024, 4, 30)).activated_count == 0
        res = activate_due_leases(db, today=date(2024, 5, 1))
        assert res.activated_count == 1
        assert res.deposits_created == 1

        db.expire_all()
        assert db.get(Lease, lease.id).lease_status == "active"
        assert db.get(Unit, unit.id).occupancy_status == "occupied"
        dep = db.scalar(select(SecurityDeposit).where(SecurityDeposit.lease_id == lease.id))
        assert dep.status == "held"
        assert dep.amount_collected == Decimal("36000.00")

        assert activate_due_leases(db, today=date(2024, 5, 2)).activated_count == 0
    finally:
        db.close()
