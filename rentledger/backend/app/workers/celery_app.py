# rentledger/backend/app/workers/celery_app.py
from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from ..config import settings

celery_app = Celery(
    "rentledger",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["app.workers.billing_tasks"],
)

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    timezone="UTC",
)

celery_app.conf.task_routes = {
    "app.workers.billing_tasks.*": {"queue": "billing"},
}

celery_app.conf.beat_schedule = {
    "generate-monthly-obligations": {
        "task": "app.workers.billing_tasks.generate_monthly_obligations",
        "schedule": crontab(
            minute=0,
            hour=settings.generation_hour,
            day_of_month=settings.generation_day_of_month,
        ),
    },
    "promote-overdue": {
        "task": "app.workers.billing_tasks.promote_overdue",
        "schedule": crontab(minute=0, hour=settings.overdue_hour),
    },
    "bill-utilities-to-rent": {
        "task": "app.workers.billing_tasks.bill_utilities_to_rent",
        "schedule": crontab(minute=0, hour=settings.utility_merge_hour),
    },
    "activate-due-leases": {
        "task": "app.workers.billing_tasks.activate_due_leases",
        "schedule": crontab(minute=0, hour=settings.lease_activation_hour),
    },
}
