# backend/app/services/jobs.py
"""
Batch job entry points.

Each job takes the advisory job lock, runs one idempotent service call, and
records a JobRun row whatever the outcome. Domain errors become an error
result; store errors are logged, recorded and re-raised.
"""
from __future__ import annotations

import json
import logging
import os
import socket
from datetime import date, datetime
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session, sessionmaker

from ..config import settings
from ..db import SessionLocal
from ..domain.errors import LedgerError
from ..models import JobRun
from .billing_service import generate_monthly_obligations, promote_overdue
from .lease_lifecycle import activate_due_leases
from .locks_service import job_lock
from .utility_billing import bill_utilities_to_rent

log = logging.getLogger("rentledger.jobs")


def _owner() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def _record(db: Session, *, job_name: str, success: bool, affected: int, details: Any, error: Optional[str]) -> None:
    db.add(
        JobRun(
            job_name=job_name,
            success=success,
            records_affected=int(affected),
            execution_details_json=json.dumps(details, default=str) if details is not None else None,
            error_message=error,
            execution_time=datetime.utcnow(),
        )
    )
    db.commit()


def run_job(
    job_name: str,
    fn: Callable[[Session], Any],
    *,
    affected: Callable[[Any], int],
    session_factory: sessionmaker = SessionLocal,
) -> dict[str, Any]:
    db: Session = session_factory()
    try:
        with job_lock(db, lock_key=f"job:{job_name}", owner=_owner(), ttl_seconds=settings.job_lock_ttl_seconds) as lock:
            if not lock.acquired:
                log.warning("job held by %s; skipped", lock.holder, extra={"job": job_name})
                return {"ok": False, "job": job_name, "skipped": True, "reason": "locked", "holder": lock.holder}

            try:
                result = fn(db)
            except LedgerError as e:
                db.rollback()
                log.warning("job finished with error: %s", e.message, extra={"job": job_name})
                _record(db, job_name=job_name, success=False, affected=0, details=e.data, error=e.message)
                return {"ok": False, "job": job_name, "kind": e.kind, "message": e.message, "data": e.data}
            except Exception as e:
                db.rollback()
                log.exception("job failed", extra={"job": job_name})
                _record(db, job_name=job_name, success=False, affected=0, details=None, error=str(e))
                raise

            details = result.as_dict() if hasattr(result, "as_dict") else result
            _record(db, job_name=job_name, success=True, affected=affected(result), details=details, error=None)
            return {"ok": True, "job": job_name, "result": details}
    finally:
        db.close()


def monthly_generation_job(*, year: Optional[int] = None, month: Optional[int] = None, **kw) -> dict[str, Any]:
    today = date.today()
    y = int(year or today.year)
    m = int(month or today.month)
    return run_job(
        "generate_monthly_obligations",
        lambda db: generate_monthly_obligations(db, year=y, month=m),
        affected=lambda r: r.generated_count,
        **kw,
    )


def overdue_promotion_job(*, today: Optional[date] = None, **kw) -> dict[str, Any]:
    return run_job(
        "promote_overdue",
        lambda db: promote_overdue(db, today=today),
        affected=lambda r: r.updated_count,
        **kw,
    )


def utility_merge_job(*, year: Optional[int] = None, month: Optional[int] = None, **kw) -> dict[str, Any]:
    today = date.today()
    y = int(year or today.year)
    m = int(month or today.month)
    return run_job(
        "bill_utilities_to_rent",
        lambda db: bill_utilities_to_rent(db, year=y, month=m),
        affected=lambda r: r.billed_count,
        **kw,
    )


def lease_activation_job(*, today: Optional[date] = None, **kw) -> dict[str, Any]:
    return run_job(
        "activate_due_leases",
        lambda db: activate_due_leases(db, today=today),
        affected=lambda r: r.activated_count,
        **kw,
    )


JOBS: dict[str, Callable[..., dict[str, Any]]] = {
    "generate": monthly_generation_job,
    "overdue": overdue_promotion_job,
    "utilities": utility_merge_job,
    "activate": lease_activation_job,
}
