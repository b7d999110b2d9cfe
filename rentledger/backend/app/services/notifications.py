# backend/app/services/notifications.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional, Protocol

from sqlalchemy.orm import Session, sessionmaker

from ..db import SessionLocal
from ..models import Notification

log = logging.getLogger("rentledger.notifications")


@dataclass(frozen=True)
class Notice:
    user_id: Optional[int]
    notification_type: str
    title: str
    message: str
    related_resource_type: Optional[str] = None
    related_resource_id: Optional[str] = None
    urgent: bool = False


class Notifier(Protocol):
    def notify(
        self,
        user_id: int,
        notification_type: str,
        title: str,
        message: str,
        related_resource_type: Optional[str] = None,
        related_resource_id: Optional[str] = None,
        urgent: bool = False,
    ) -> None: ...


class NotificationDispatcher:
    """
    Fire-and-forget dispatcher.

    Writes user_notifications rows in its OWN session, so it is only ever
    called after the financial transaction has committed, and a failure here
    cannot roll that transaction back. Callers build their notices inside
    their own transaction: a read left open on the request session after
    commit keeps SQLite from accepting the dispatcher's write.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self._session_factory = session_factory

    def notify(
        self,
        user_id: int,
        notification_type: str,
        title: str,
        message: str,
        related_resource_type: Optional[str] = None,
        related_resource_id: Optional[str] = None,
        urgent: bool = False,
    ) -> None:
        db: Session = self._session_factory()
        try:
            db.add(
                Notification(
                    user_id=int(user_id),
                    notification_type=notification_type,
                    title=title,
                    message=message,
                    related_resource_type=related_resource_type,
                    related_resource_id=str(related_resource_id) if related_resource_id is not None else None,
                    is_urgent=bool(urgent),
                    created_at=datetime.utcnow(),
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            log.exception("notification dispatch failed", extra={"actor_user_id": user_id})
        finally:
            db.close()


default_notifier = NotificationDispatcher()


def dispatch(notices: Iterable[Notice], notifier: Optional[Notifier] = None) -> int:
    """Send every notice that has a recipient. Never raises; returns how many were attempted."""
    n = notifier or default_notifier
    sent = 0
    for notice in notices:
        if notice.user_id is None:
            continue
        try:
            n.notify(
                int(notice.user_id),
                notice.notification_type,
                notice.title,
                notice.message,
                related_resource_type=notice.related_resource_type,
                related_resource_id=notice.related_resource_id,
                urgent=notice.urgent,
            )
            sent += 1
        except Exception:
            log.exception("notifier raised; continuing")
    return sent
