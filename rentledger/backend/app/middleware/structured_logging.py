# backend/app/middleware/structured_logging.py
from __future__ import annotations

import logging
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..config import settings

log = logging.getLogger("rentledger.request")


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    One access line per request. The JSON formatter renders the `http` extra
    (method, path, status, latency, acting user and role) next to request_id.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            elapsed_ms = round((time.perf_counter() - started) * 1000, 1)
            http = {
                "method": request.method,
                "path": request.url.path,
                "query": request.url.query or None,
                "status_code": status_code,
                "latency_ms": elapsed_ms,
                "actor_id": request.headers.get(settings.dev_header_actor_id),
                "actor_role": request.headers.get(settings.dev_header_actor_role),
            }
            level = logging.WARNING if status_code >= 500 else logging.INFO
            log.log(
                level,
                "%s %s -> %s",
                request.method,
                request.url.path,
                status_code,
                extra={"http": http, "request_id": getattr(request.state, "request_id", None)},
            )
