# rentledger/backend/tests/factories.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from app.models import AppUser, Lease, LeaseTenant, RentObligation, SecurityDeposit, Tenant, Unit

_seq = {"n": 0}


def _next() -> int:
    _seq["n"] += 1
    return _seq["n"]


class RecordingNotifier:
    def __init__(self):
        self.sent: list[dict] = []

    def notify(
        self,
        user_id,
        notification_type,
        title,
        message,
        related_resource_type=None,
        related_resource_id=None,
        urgent=False,
    ):
        self.sent.append(
            {
                "user_id": user_id,
                "type": notification_type,
                "title": title,
                "message": message,
                "urgent": urgent,
            }
        )


def mk_user(db, *, role: str = "admin") -> AppUser:
    n = _next()
    u = AppUser(email=f"u{n}@t.local", display_name=f"u{n}", role=role, created_at=datetime.utcnow())
    db.add(u)
    db.commit()
    return u


def mk_tenant(db, *, with_user: bool = True, blacklist: Optional[str] = None) -> Tenant:
    user = mk_user(db, role="tenant") if with_user else None
    t = Tenant(
        user_id=user.id if user else None,
        full_name=f"Tenant {_next()}",
        is_blacklisted=blacklist is not None,
        blacklist_severity=blacklist,
        created_at=datetime.utcnow(),
    )
    db.add(t)
    db.commit()
    return t


def mk_lease(
    db,
    *,
    tenant: Optional[Tenant] = None,
    status: str = "active",
    start: date = date(2024, 1, 1),
    end: Optional[date] = None,
    rent: str = "15000",
    late_fee: str = "500",
    deposit: str = "30000",
    grace: Optional[int] = 5,
    due_day: Optional[int] = 1,
    held_deposit: bool = True,
) -> Lease:
    n = _next()
    unit = Unit(property_name="Riverside", unit_number=f"A{n}", occupancy_status="occupied", updated_at=datetime.utcnow())
    db.add(unit)
    db.flush()
    lease = Lease(
        lease_number=f"L-{n:04d}",
        unit_id=unit.id,
        start_date=start,
        end_date=end,
        monthly_rent=Decimal(rent),
        late_fee=Decimal(late_fee),
        grace_period_days=grace,
        rent_due_day=due_day,
        security_deposit=Decimal(deposit),
        lease_status=status,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow(),
    )
    db.add(lease)
    db.flush()
    tenant = tenant or mk_tenant(db)
    db.add(LeaseTenant(lease_id=lease.id, tenant_id=tenant.id, is_primary_tenant=True))
    if held_deposit and Decimal(deposit) > 0:
        db.add(SecurityDeposit(lease_id=lease.id, amount_collected=Decimal(deposit), collection_date=start, status="held"))
    db.commit()
    return lease


def mk_obligation(
    db,
    lease: Lease,
    *,
    due: date = date(2024, 3, 1),
    amount_due: str = "15000",
    late_fee: str = "0",
    utilities: str = "0",
    paid: str = "0",
    status: str = "pending",
) -> RentObligation:
    o = RentObligation(
        lease_id=lease.id,
        due_date=due,
        amount_due=Decimal(amount_due),
        utilities_charges=Decimal(utilities),
        late_fee=Decimal(late_fee),
        amount_paid=Decimal(paid),
        status=status,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow(),
    )
    db.add(o)
    db.commit()
    return o
