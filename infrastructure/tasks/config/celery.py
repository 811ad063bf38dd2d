"""Celery application configuration"""
from __future__ import annotations

import os
from core.logging_config import get_logger
from celery import Celery
from kombu import Queue

from core.config import settings
from .beat import CELERY_BEAT_SCHEDULE


CELERY_IMPORTS = (
    "infrastructure.tasks.tasks",
)


celery_app = Celery("settlement")

celery_app.conf.update(
    broker_url=settings.redis.url or os.getenv("CELERY_BROKER_URL"),
    result_backend=settings.redis.url or os.getenv("CELERY_RESULT_BACKEND"),
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # payout jobs are idempotent, so redelivery after a lost worker is safe
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_default_retry_delay=5,
    task_queues=(
        Queue("high"),
        Queue("default"),
        Queue("low"),
    ),
    # money movement first, vendor messages last
    task_routes={
        "settlement.process_payout": {"queue": "high"},
        "settlement.process_due_payouts": {"queue": "high"},
        "settlement.reconcile_processing": {"queue": "high"},
        "settlement.operator_alert": {"queue": "high"},
        "settlement.order_*": {"queue": "default"},
        "settlement.schedule_payouts": {"queue": "default"},
        "settlement.notify_vendor_payout": {"queue": "low"},
    },
    beat_schedule=CELERY_BEAT_SCHEDULE,
    broker_transport_options={"global_keyprefix": f"{settings.redis.namespace}:"},
)

celery_app.conf.imports = CELERY_IMPORTS

environment = getattr(settings, "ENVIRONMENT", "production") or "production"
if environment.lower() in {"development", "dev", "test", "testing"}:
    celery_app.conf.task_always_eager = True

celery_app.autodiscover_tasks(packages=CELERY_IMPORTS)


logger = get_logger(__name__)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info("celery_configured", broker=sender.conf.broker_url, queues=[q.name for q in sender.conf.task_queues])
