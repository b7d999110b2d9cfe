# rentledger/backend/tests/test_bulk_verify_all_or_nothing.py
from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from app.db import SessionLocal
from app.domain.errors import AlreadyProcessed, InvalidAmount
from app.models import PaymentSubmission, RentObligation
from app.services.verification_service import bulk_verify, reject_submission, submit_payment

from factories import RecordingNotifier, mk_lease, mk_obligation, mk_tenant


def _tenant_with_rent(db, amount_due="15000"):
    tenant = mk_tenant(db)
    lease = mk_lease(db, tenant=tenant)
    o = mk_obligation(db, lease, due=date(2024, 3, 1), amount_due=amount_due)
    return tenant, o


def _submit(db, tenant, amount, ref):
    return submit_payment(
        db,
        tenant_id=tenant.id,
        amount=amount,
        payment_method="Bank",
        transaction_reference=ref,
        transaction_date=date(2024, 3, 2),
        actor_user_id=None,
        notifier=RecordingNotifier(),
    )


def test_bulk_verify_applies_every_submission():
    db = SessionLocal()
    try:
        t1, o1 = _tenant_with_rent(db)
        t2, o2 = _tenant_with_rent(db)
        s1 = _submit(db, t1, "15000", "B1")
        s2 = _submit(db, t2, "7000", "B2")

        notes = RecordingNotifier()
        res = bulk_verify(db, submission_ids=[s1.id, s2.id], admin_notes="statement batch", actor_user_id=None, notifier=notes)
        assert res.verified_count == 2
        assert res.total_amount == Decimal("22000.00")
        assert len(notes.sent) == 2

        db.expire_all()
        assert db.get(RentObligation, o1.id).status == "paid"
        assert db.get(RentObligation, o2.id).status == "partial"
    finally:
        db.close()


def test_one_processed_submission_rejects_the_whole_batch():
    db = SessionLocal()
    try:
        t1, o1 = _tenant_with_rent(db)
        t2, _ = _tenant_with_rent(db)
        s1 = _submit(db, t1, "15000", "C1")
        s2 = _submit(db, t2, "5000", "C2")
        reject_submission(db, submission_id=s2.id, admin_notes="bad ref", actor_user_id=None, notifier=RecordingNotifier())

        with pytest.raises(AlreadyProcessed) as ei:
            bulk_verify(db, submission_ids=[s1.id, s2.id], admin_notes="batch", actor_user_id=None)
        assert ei.value.data["submission_ids"] == [s2.id]

        db.expire_all()
        assert db.get(PaymentSubmission, s1.id).verification_status == "pending"
        assert db.get(RentObligation, o1.id).amount_paid == Decimal("0.00")
    finally:
        db.close()


def test_missing_id_rejects_the_whole_batch():
    db = SessionLocal()
    try:
        t1, _ = _tenant_with_rent(db)
        s1 = _submit(db, t1, "100", "D1")
        with pytest.raises(AlreadyProcessed):
            bulk_verify(db, submission_ids=[s1.id, 4242], admin_notes="batch", actor_user_id=None)
        db.expire_all()
        assert db.get(PaymentSubmission, s1.id).verification_status == "pending"
    finally:
        db.close()


def test_item_failure_rolls_back_earlier_items():
    db = SessionLocal()
    try:
        t1, o1 = _tenant_with_rent(db)
        t2, _ = _tenant_with_rent(db, amount_due="1000")
        s1 = _submit(db, t1, "15000", "E1")
        s2 = _submit(db, t2, "5000", "E2")  # more than is owed

        with pytest.raises(InvalidAmount):
            bulk_verify(db, submission_ids=[s1.id, s2.id], admin_notes="batch", actor_user_id=None)

        db.expire_all()
        assert db.get(PaymentSubmission, s1.id).verification_status == "pending"
        assert db.get(RentObligation, o1.id).amount_paid == Decimal("0.00")
    finally:
        db.close()
