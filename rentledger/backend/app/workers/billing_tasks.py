# backend/app/workers/billing_tasks.py
from __future__ import annotations

from datetime import date
from typing import Optional

from ..services import jobs
from .celery_app import celery_app


def _date(v: Optional[str]) -> Optional[date]:
    return date.fromisoformat(v) if v else None


@celery_app.task(name="app.workers.billing_tasks.generate_monthly_obligations")
def generate_monthly_obligations(year: Optional[int] = None, month: Optional[int] = None) -> dict:
    return jobs.monthly_generation_job(year=year, month=month)


@celery_app.task(name="app.workers.billing_tasks.promote_overdue")
def promote_overdue(today: Optional[str] = None) -> dict:
    return jobs.overdue_promotion_job(today=_date(today))


@celery_app.task(name="app.workers.billing_tasks.bill_utilities_to_rent")
def bill_utilities_to_rent(year: Optional[int] = None, month: Optional[int] = None) -> dict:
    return jobs.utility_merge_job(year=year, month=month)


@celery_app.task(name="app.workers.billing_tasks.activate_due_leases")
def activate_due_leases(today: Optional[str] = None) -> dict:
    return jobs.lease_activation_job(today=_date(today))
