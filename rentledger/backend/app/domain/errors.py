# backend/app/domain/errors.py
"""
Typed errors raised by the ledger services.

Routers never build error responses by hand: main.py maps every LedgerError
to one JSON body ({"ok": false, "kind", "message", "data"}) and an HTTP status
taken from the class.
"""
from __future__ import annotations

from typing import Any, Optional


class LedgerError(Exception):
    kind: str = "ledger_error"
    http_status: int = 400

    def __init__(self, message: str, *, data: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.data = data or {}

    def as_dict(self) -> dict[str, Any]:
        return {"ok": False, "kind": self.kind, "message": self.message, "data": self.data}


class NotFound(LedgerError):
    kind = "not_found"
    http_status = 404


class InvalidAmount(LedgerError):
    kind = "invalid_amount"
    http_status = 422


class InvalidState(LedgerError):
    kind = "invalid_state"
    http_status = 409


class AlreadyProcessed(InvalidState):
    kind = "already_processed"


class Conflict(LedgerError):
    kind = "conflict"
    http_status = 409


class Forbidden(LedgerError):
    kind = "forbidden"
    http_status = 403


class InvalidRequest(LedgerError):
    """Malformed input the HTTP layer did not already reject (blank notes, empty id lists)."""

    kind = "invalid_request"
    http_status = 400
