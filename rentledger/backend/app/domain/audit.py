# backend/app/domain/audit.py
from __future__ import annotations

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import AuditEvent, ObligationUpdate

log = logging.getLogger("rentledger.audit")


def _dumps(v: Optional[dict[str, Any]]) -> Optional[str]:
    if v is None:
        return None
    return json.dumps(v, sort_keys=True, default=str)


def loads(s: Optional[str]) -> dict[str, Any]:
    if not s:
        return {}
    try:
        v = json.loads(s)
    except ValueError:
        return {}
    return v if isinstance(v, dict) else {}


def audit_write(
    db: Session,
    *,
    actor_user_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: Any,
    description: Optional[str] = None,
    before: Optional[dict[str, Any]] = None,
    after: Optional[dict[str, Any]] = None,
    extra: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    """
    Strict audit writer.

    - Part of the caller's transaction: add + flush, never commit.
    - A failure here propagates and rolls the caller back.
    """
    row = AuditEvent(
        actor_user_id=actor_user_id,
        action=action,
        description=description,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        before_json=_dumps(before),
        after_json=_dumps(after),
        extra_json=_dumps(extra),
        created_at=datetime.utcnow(),
    )
    db.add(row)
    db.flush()
    return row


def log_activity(
    db: Session,
    *,
    actor_user_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: Any,
    description: Optional[str] = None,
    before: Optional[dict[str, Any]] = None,
    after: Optional[dict[str, Any]] = None,
    extra: Optional[dict[str, Any]] = None,
) -> Optional[AuditEvent]:
    """
    Tolerant activity logger.

    Runs inside a SAVEPOINT so a failed insert is discarded without aborting
    the primary operation. Returns None when the write failed.
    """
    try:
        with db.begin_nested():
            return audit_write(
                db,
                actor_user_id=actor_user_id,
                action=action,
                entity_type=entity_type,
                entity_id=entity_id,
                description=description,
                before=before,
                after=after,
                extra=extra,
            )
    except SQLAlchemyError:
        log.exception("activity log write failed", extra={"actor_user_id": actor_user_id})
        return None


def record_obligation_update(
    db: Session,
    *,
    obligation_id: int,
    change_type: str,
    old_status: Optional[str],
    new_status: Optional[str],
    old_amount: Optional[Decimal] = None,
    new_amount: Optional[Decimal] = None,
    changed_by: Optional[int] = None,
    reason: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> ObligationUpdate:
    row = ObligationUpdate(
        obligation_id=int(obligation_id),
        change_type=change_type,
        old_status=old_status,
        new_status=new_status,
        old_amount=old_amount,
        new_amount=new_amount,
        changed_by=changed_by,
        change_reason=reason,
        extra_json=_dumps(extra),
        created_at=datetime.utcnow(),
    )
    db.add(row)
    db.flush()
    return row
