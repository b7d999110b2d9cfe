# rentledger/backend/tests/test_routes.py
from __future__ import annotations

from datetime import date

from fastapi.testclient import TestClient
from sqlalchemy import select

from app.db import SessionLocal
from app.main import app
from app.models import Notification

from factories import mk_lease, mk_obligation, mk_tenant

client = TestClient(app)

ADMIN = {"X-Actor-Id": "1", "X-Actor-Role": "admin"}


def _as(user_id: int, role: str) -> dict:
    return {"X-Actor-Id": str(user_id), "X-Actor-Role": role}


def test_health_has_request_id():
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True
    assert r.headers.get("X-Request-ID")


def test_request_id_echoed_when_sane_and_replaced_otherwise():
    r = client.get("/api/health", headers={"X-Request-ID": "upstream-req-0001"})
    assert r.headers["X-Request-ID"] == "upstream-req-0001"

    r = client.get("/api/health", headers={"X-Request-ID": "bad id with spaces"})
    assert r.headers["X-Request-ID"] != "bad id with spaces"
    assert len(r.headers["X-Request-ID"]) == 32


def test_missing_actor_is_401():
    assert client.get("/api/rent/summary", params={"year": 2024}).status_code == 401


def test_tenant_cannot_use_staff_routes():
    r = client.get("/api/rent/summary", params={"year": 2024}, headers=_as(50, "tenant"))
    assert r.status_code == 403
    assert r.json()["kind"] == "forbidden"


def test_error_body_shape():
    r = client.post(
        "/api/rent/payments/999/pay",
        json={"amount": "10", "payment_method": "Cash"},
        headers=ADMIN,
    )
    assert r.status_code == 404
    body = r.json()
    assert body == {"ok": False, "kind": "not_found", "message": "rent payment not found", "data": {"obligation_id": 999}}


def test_pay_generate_and_summary():
    db = SessionLocal()
    try:
        lease = mk_lease(db, late_fee="0")
    finally:
        db.close()

    r = client.post("/api/rent/generate", json={"year": 2024, "month": 3}, headers=ADMIN)
    assert r.status_code == 200
    assert r.json()["generated_count"] == 1
    oid = r.json()["obligation_ids"][0]

    r = client.post(
        f"/api/rent/payments/{oid}/pay",
        json={"amount": "20000", "payment_method": "Cash"},
        headers=ADMIN,
    )
    assert r.status_code == 422
    assert r.json()["kind"] == "invalid_amount"

    r = client.post(
        f"/api/rent/payments/{oid}/pay",
        json={"amount": "15000", "payment_method": "Cash", "payment_reference": "RCPT-1"},
        headers=ADMIN,
    )
    assert r.status_code == 200
    assert r.json()["new_status"] == "paid"

    r = client.get("/api/rent/summary", params={"year": 2024, "month": 3}, headers=ADMIN)
    assert r.json()["total_collected"] == "15000.00"
    assert r.json()["counts"]["paid"] == 1

    hist = client.get(f"/api/rent/payments/{oid}/history", headers=ADMIN).json()
    assert hist[-1]["change_type"] == "payment_received"

    rows = client.get("/api/rent/payments", params={"year": 2024, "lease_id": lease.id}, headers=ADMIN).json()
    assert rows[0]["balance"] == "0.00"


def test_submission_flow_over_http():
    db = SessionLocal()
    try:
        tenant = mk_tenant(db)
        lease = mk_lease(db, tenant=tenant)
        o = mk_obligation(db, lease, due=date(2024, 3, 1), amount_due="15000")
        tenant_user = tenant.user_id
    finally:
        db.close()

    r = client.post(
        "/api/payment-submissions",
        json={
            "amount": "15000",
            "payment_method": "M-Pesa",
            "transaction_reference": "HTTP1",
            "transaction_date": "2024-03-02",
        },
        headers=_as(tenant_user, "tenant"),
    )
    assert r.status_code == 200, r.text
    sid = r.json()["id"]

    pending = client.get("/api/payment-submissions/pending", headers=ADMIN).json()
    assert [s["id"] for s in pending] == [sid]

    r = client.post(f"/api/payment-submissions/{sid}/verify", json={"admin_notes": ""}, headers=ADMIN)
    assert r.status_code == 400

    r = client.post(f"/api/payment-submissions/{sid}/verify", json={"admin_notes": "ok"}, headers=ADMIN)
    assert r.status_code == 200
    assert r.json()["obligation_id"] == o.id

    r = client.post(f"/api/payment-submissions/{sid}/verify", json={"admin_notes": "ok"}, headers=ADMIN)
    assert r.status_code == 409
    assert r.json()["kind"] == "already_processed"

    db = SessionLocal()
    try:
        kinds = db.scalars(select(Notification.notification_type).where(Notification.user_id == tenant_user)).all()
        assert sorted(kinds) == ["payment_submitted", "payment_verified"]
    finally:
        db.close()


def test_offboarding_over_http():
    db = SessionLocal()
    try:
        lease = mk_lease(db, deposit="30000")
        mk_obligation(db, lease, amount_due="15000", paid="10000", status="partial")
    finally:
        db.close()

    r = client.post(
        f"/api/leases/{lease.id}/offboard",
        json={"move_out_date": "2024-03-31", "deductions": [{"description": "Damages", "amount": "30000"}]},
        headers=ADMIN,
    )
    assert r.status_code == 409
    assert r.json()["kind"] == "invalid_state"

    r = client.post(f"/api/leases/{lease.id}/offboard", json={"move_out_date": "2024-03-31"}, headers=ADMIN)
    assert r.status_code == 200
    assert r.json()["deposit_refund"] == "25000.00"

    rec = client.get(f"/api/leases/{lease.id}/offboarding", headers=ADMIN).json()
    assert rec["details"]["deposit_status"] == "partially_returned"


def test_payment_and_reminders_notify_linked_tenant():
    db = SessionLocal()
    try:
        tenant = mk_tenant(db)
        lease = mk_lease(db, tenant=tenant)
        paid = mk_obligation(db, lease, due=date(2024, 3, 1), amount_due="15000")
        late = mk_obligation(db, lease, due=date(2024, 4, 1), amount_due="15000", status="overdue")
        tenant_user = tenant.user_id
    finally:
        db.close()

    r = client.post(
        f"/api/rent/payments/{paid.id}/pay",
        json={"amount": "5000", "payment_method": "Cash"},
        headers=ADMIN,
    )
    assert r.status_code == 200

    r = client.post("/api/rent/reminders", json={"obligation_ids": [late.id]}, headers=ADMIN)
    assert r.status_code == 200
    assert r.json()["reminders_sent"] == 1

    db = SessionLocal()
    try:
        rows = db.scalars(select(Notification).where(Notification.user_id == tenant_user).order_by(Notification.id)).all()
        assert [n.notification_type for n in rows] == ["payment_received", "rent_overdue_reminder"]
        assert rows[0].related_resource_id == str(paid.id)
        assert rows[1].related_resource_id == str(late.id)
    finally:
        db.close()
