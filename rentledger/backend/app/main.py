# backend/app/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .domain.errors import LedgerError
from .logging_config import configure_logging

from .middleware.request_id import RequestIdMiddleware
from .middleware.structured_logging import StructuredLoggingMiddleware

from .routers.health import router as health_router
from .routers.tenants import router as tenants_router
from .routers.rent import router as rent_router
from .routers.submissions import router as submissions_router
from .routers.utilities import router as utilities_router

API_PREFIX = "/api"

log = logging.getLogger("rentledger.api")


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    log.info("%s: %s", exc.kind, exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.as_dict())


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title="RentLedger", version=settings.app_version)

    app.add_exception_handler(LedgerError, ledger_error_handler)

    # added last = outermost; request id must wrap structured logging
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(tenants_router, prefix=API_PREFIX)
    app.include_router(rent_router, prefix=API_PREFIX)
    app.include_router(submissions_router, prefix=API_PREFIX)
    app.include_router(utilities_router, prefix=API_PREFIX)
    return app


app = create_app()
