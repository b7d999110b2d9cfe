# backend/app/auth.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import settings
from .db import get_db
from .domain.errors import Forbidden
from .models import AppUser, Tenant


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str  # super_admin | admin | manager | tenant
    tenant_id: Optional[int] = None


ROLES = ("super_admin", "admin", "manager", "tenant")
STAFF_ROLES = ("super_admin", "admin", "manager")


def _tenant_id_for(db: Session, user_id: int) -> Optional[int]:
    return db.scalar(select(Tenant.id).where(Tenant.user_id == int(user_id)).order_by(Tenant.id.asc()))


def get_principal(request: Request, db: Session = Depends(get_db)) -> Principal:
    """
    Actor identity comes from headers set by whatever sits in front of this
    service (an auth gateway in prod, the caller itself in dev).

    dev: unknown actor ids are provisioned as app_users on first sight.
    gateway: the actor must already exist and the stored role wins.
    """
    raw_id = (request.headers.get(settings.dev_header_actor_id) or "").strip()
    role_hint = (request.headers.get(settings.dev_header_actor_role) or "").strip().lower()
    if not raw_id:
        raise HTTPException(status_code=401, detail=f"Missing {settings.dev_header_actor_id}")
    try:
        user_id = int(raw_id)
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Invalid {settings.dev_header_actor_id}")

    user = db.get(AppUser, user_id)

    if settings.auth_mode == "dev":
        if role_hint not in ROLES:
            raise HTTPException(status_code=401, detail=f"Missing or unknown {settings.dev_header_actor_role}")
        if user is None:
            user = AppUser(id=user_id, email=f"user{user_id}@dev.local", role=role_hint, created_at=datetime.utcnow())
            db.add(user)
            db.commit()
        role = role_hint
    else:
        if user is None:
            raise HTTPException(status_code=401, detail="Unknown user")
        role = str(user.role)

    tenant_id = _tenant_id_for(db, user_id) if role == "tenant" else None
    return Principal(user_id=user_id, role=role, tenant_id=tenant_id)


def require_roles(*roles: str) -> Callable[..., Principal]:
    allowed = set(roles)

    def _dep(p: Principal = Depends(get_principal)) -> Principal:
        if p.role not in allowed:
            raise Forbidden(f"Requires role in {sorted(allowed)}", data={"role": p.role})
        return p

    return _dep


require_staff = require_roles(*STAFF_ROLES)
require_tenant = require_roles("tenant")
