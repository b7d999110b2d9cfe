# rentledger/backend/tests/test_logging.py
from __future__ import annotations

import json
import logging

from app.logging_config import JsonFormatter, RequestContextFilter


def _record(**extra) -> logging.LogRecord:
    rec = logging.LogRecord("rentledger.payments", logging.INFO, __file__, 1, "applied %s", ("1000.00",), None)
    for k, v in extra.items():
        setattr(rec, k, v)
    return rec


def test_formatter_emits_ledger_fields():
    rec = _record(obligation_id=7, lease_id=3, unrelated="x")
    RequestContextFilter().filter(rec)
    out = json.loads(JsonFormatter().format(rec))

    assert out["message"] == "applied 1000.00"
    assert out["logger"] == "rentledger.payments"
    assert out["obligation_id"] == 7
    assert out["lease_id"] == 3
    assert "unrelated" not in out
    assert "request_id" not in out


def test_explicit_request_id_is_kept():
    rec = _record(request_id="abc12345")
    RequestContextFilter().filter(rec)
    assert json.loads(JsonFormatter().format(rec))["request_id"] == "abc12345"
