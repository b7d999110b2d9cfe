# rentledger/backend/tests/test_jobs.py
from __future__ import annotations

import json
from datetime import date, datetime, timedelta

from sqlalchemy import select

from app.db import SessionLocal
from app.models import JobLock, JobRun
from app.services.jobs import monthly_generation_job, overdue_promotion_job

from factories import mk_lease, mk_obligation


def _runs(db):
    return db.scalars(select(JobRun).order_by(JobRun.id)).all()


def test_generation_job_records_run():
    db = SessionLocal()
    try:
        mk_lease(db)
        out = monthly_generation_job(year=2024, month=3)
        assert out["ok"] is True
        assert out["result"]["generated_count"] == 1

        runs = _runs(db)
        assert len(runs) == 1
        assert runs[0].job_name == "generate_monthly_obligations"
        assert runs[0].success is True
        assert runs[0].records_affected == 1
        assert json.loads(runs[0].execution_details_json)["month"] == 3
    finally:
        db.close()


def test_no_leases_becomes_error_result():
    db = SessionLocal()
    try:
        out = monthly_generation_job(year=2024, month=3)
        assert out["ok"] is False
        assert out["kind"] == "conflict"

        runs = _runs(db)
        assert runs[0].success is False
        assert "no active leases" in runs[0].error_message
    finally:
        db.close()


def test_held_lock_skips_job():
    db = SessionLocal()
    try:
        lease = mk_lease(db, grace=0)
        mk_obligation(db, lease, due=date(2024, 3, 1))
        db.add(JobLock(lock_key="job:promote_overdue", owner="other-host:1", expires_at=datetime.utcnow() + timedelta(minutes=5)))
        db.commit()

        out = overdue_promotion_job(today=date(2024, 4, 1))
        assert out["skipped"] is True
        assert out["holder"] == "other-host:1"
        assert _runs(db) == []
    finally:
        db.close()


def test_lock_released_after_run():
    db = SessionLocal()
    try:
        lease = mk_lease(db, grace=0)
        mk_obligation(db, lease, due=date(2024, 3, 1))
        assert overdue_promotion_job(today=date(2024, 4, 1))["result"]["updated_count"] == 1
        assert overdue_promotion_job(today=date(2024, 4, 2))["result"]["updated_count"] == 0

        db.expire_all()
        lock = db.scalar(select(JobLock).where(JobLock.lock_key == "job:promote_overdue"))
        assert lock.expires_at <= datetime.utcnow()
    finally:
        db.close()
