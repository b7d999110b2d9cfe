# backend/app/domain/grace.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Optional

from ..config import settings
from .ledger_math import PENDING, OVERDUE


def grace_days(lease: Any) -> int:
    v = getattr(lease, "grace_period_days", None)
    if v is None:
        return int(settings.default_grace_period_days)
    return max(0, int(v))


def effective_due_date(obligation: Any, lease: Any) -> date:
    return obligation.due_date + timedelta(days=grace_days(lease))


def is_overdue(obligation: Any, lease: Any, today: date) -> bool:
    return obligation.status == PENDING and today > effective_due_date(obligation, lease)


def days_overdue(obligation: Any, lease: Any, today: date) -> int:
    return max(0, (today - effective_due_date(obligation, lease)).days)


def within_grace_period(obligation: Any, lease: Any, today: date) -> bool:
    return (
        obligation.status == PENDING
        and today > obligation.due_date
        and today <= effective_due_date(obligation, lease)
    )


@dataclass(frozen=True)
class GraceView:
    effective_due_date: date
    is_overdue: bool
    days_overdue: int
    within_grace_period: bool

    def as_dict(self) -> dict:
        return {
            "effective_due_date": self.effective_due_date.isoformat(),
            "is_overdue": self.is_overdue,
            "days_overdue": self.days_overdue,
            "within_grace_period": self.within_grace_period,
        }


def grace_view(obligation: Any, lease: Any, today: Optional[date] = None) -> GraceView:
    """
    Read-time view; never persisted.
    days_overdue is only reported for rows already materialized as overdue
    or that would be promoted on the next batch run.
    """
    today = today or date.today()
    overdue_now = is_overdue(obligation, lease, today)
    counts = overdue_now or obligation.status == OVERDUE
    return GraceView(
        effective_due_date=effective_due_date(obligation, lease),
        is_overdue=overdue_now,
        days_overdue=days_overdue(obligation, lease, today) if counts else 0,
        within_grace_period=within_grace_period(obligation, lease, today),
    )
