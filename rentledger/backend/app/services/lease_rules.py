# backend/app/services/lease_rules.py
from __future__ import annotations

from datetime import date
from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from ..domain.errors import Conflict, InvalidRequest
from ..models import Lease


def occupied_until(lease: Lease) -> Optional[date]:
    """Last day the lease holds its unit; None means open-ended."""
    if lease.lease_status == "terminated":
        return lease.move_out_date
    return lease.end_date


def windows_overlap(a_start: date, a_end: Optional[date], b_start: date, b_end: Optional[date]) -> bool:
    # inclusive end dates
    return a_start <= (b_end or date.max) and b_start <= (a_end or date.max)


def ensure_no_lease_overlap(
    db: Session,
    *,
    unit_id: int,
    start_date: Optional[date],
    end_date: Optional[date] = None,
    ignore_lease_id: Optional[int] = None,
) -> None:
    """
    Raise Conflict when another lease on the unit occupies any day of
    [start_date, end_date]. Draft and active leases count for their full term;
    a terminated lease only up to its move-out date, and not at all without one.
    """
    if start_date is None:
        raise InvalidRequest("lease start_date is required")
    if end_date is not None and end_date < start_date:
        raise InvalidRequest("lease end_date cannot be before start_date")

    q = select(Lease).where(
        Lease.unit_id == int(unit_id),
        or_(
            Lease.lease_status.in_(("draft", "active")),
            and_(Lease.lease_status == "terminated", Lease.move_out_date.is_not(None)),
        ),
    )
    if ignore_lease_id is not None:
        q = q.where(Lease.id != int(ignore_lease_id))

    for other in db.scalars(q.order_by(Lease.start_date)).all():
        other_end = occupied_until(other)
        if windows_overlap(start_date, end_date, other.start_date, other_end):
            raise Conflict(
                "lease dates overlap with an existing lease on this unit",
                data={
                    "lease_id": int(other.id),
                    "start_date": other.start_date.isoformat(),
                    "end_date": other_end.isoformat() if other_end else None,
                },
            )
