"""Celery beat schedule for the settlement jobs.

Every job is safe to overlap with itself, so the intervals only trade
latency against load.
"""
from __future__ import annotations

from celery.schedules import crontab

CELERY_BEAT_SCHEDULE = {
    "settlement-schedule-payouts": {
        "task": "settlement.schedule_payouts",
        "schedule": crontab(minute=5),  # hourly
    },
    "settlement-process-due-payouts": {
        "task": "settlement.process_due_payouts",
        "schedule": 60.0,
    },
    "settlement-reconcile-processing": {
        "task": "settlement.reconcile_processing",
        "schedule": 300.0,
    },
}
