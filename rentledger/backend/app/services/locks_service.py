# backend/app/services/locks_service.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterator, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..models import JobLock

log = logging.getLogger("rentledger.jobs")


@dataclass(frozen=True)
class LockState:
    acquired: bool
    lock_key: str
    holder: Optional[str] = None
    expires_at: Optional[datetime] = None


def _now() -> datetime:
    return datetime.utcnow()


def acquire_lock(db: Session, *, lock_key: str, owner: str, ttl_seconds: int) -> LockState:
    """
    Claim (or renew) the advisory row for lock_key.

    A row held by another owner blocks until its expiry passes, after which it
    is taken over. Caller commits.
    """
    now = _now()
    until = now + timedelta(seconds=int(ttl_seconds))

    row = db.scalar(select(JobLock).where(JobLock.lock_key == lock_key).with_for_update())
    if row is None:
        db.add(JobLock(lock_key=lock_key, owner=owner, expires_at=until, created_at=now))
        return LockState(True, lock_key, owner, until)

    live = row.expires_at is not None and row.expires_at > now
    if live and row.owner != owner:
        return LockState(False, lock_key, row.owner, row.expires_at)

    row.owner = owner
    row.expires_at = until
    return LockState(True, lock_key, owner, until)


def release_lock(db: Session, *, lock_key: str, owner: str) -> bool:
    """Expire the lock if owner still holds it. Caller commits."""
    row = db.scalar(select(JobLock).where(JobLock.lock_key == lock_key))
    if row is None:
        return True
    if row.owner != owner:
        return False
    row.expires_at = _now() - timedelta(seconds=1)
    return True


@contextmanager
def job_lock(db: Session, *, lock_key: str, owner: str, ttl_seconds: int) -> Iterator[LockState]:
    """
    Hold lock_key for the duration of the block.

    Yields the LockState; the body must check `acquired`. Acquisition and
    release are committed on their own so the lock row is visible to other
    schedulers while the body runs.
    """
    state = acquire_lock(db, lock_key=lock_key, owner=owner, ttl_seconds=ttl_seconds)
    db.commit()
    try:
        yield state
    finally:
        if state.acquired:
            try:
                release_lock(db, lock_key=lock_key, owner=owner)
                db.commit()
            except Exception:
                db.rollback()
                log.exception("lock release failed", extra={"job": lock_key})
