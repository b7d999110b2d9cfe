# backend/app/middleware/request_id.py
from __future__ import annotations

import re
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..config import settings

_current: ContextVar[Optional[str]] = ContextVar("rentledger_request_id", default=None)

# ids are echoed into logs and headers; accept only short opaque tokens
_ACCEPTABLE = re.compile(r"^[A-Za-z0-9._:-]{8,128}$")


def get_request_id() -> Optional[str]:
    return _current.get()


def resolve_request_id(incoming: Optional[str]) -> str:
    """Reuse a caller's id when it looks sane, otherwise mint one."""
    candidate = (incoming or "").strip()
    if _ACCEPTABLE.match(candidate):
        return candidate
    return uuid.uuid4().hex


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id visible to handlers, logs and the response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        header = settings.request_id_header
        rid = resolve_request_id(request.headers.get(header))

        request.state.request_id = rid
        token = _current.set(rid)
        try:
            response = await call_next(request)
        finally:
            _current.reset(token)
        response.headers[header] = rid
        return response
