"""Vendor and operator notification tasks"""
from __future__ import annotations

from typing import Any, Dict

from celery import shared_task

from ..utils.base_task import BaseTask
from core.logging_config import get_logger

logger = get_logger(__name__)


@shared_task(
    bind=True,
    base=BaseTask,
    name="settlement.notify_vendor_payout",
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_jitter=True,
    retry_kwargs={"max_retries": 5},
)
def notify_vendor_payout(self, vendor_id: str, payout_id: str, status: str, amount: str) -> None:
    """Tell the vendor how their payout ended.

    Replace the body with the real channel (email / in-app message).
    """
    logger.info("vendor_payout_notification", vendor_id=vendor_id, payout_id=payout_id, status=status, amount=amount)


@shared_task(bind=True, base=BaseTask, name="settlement.operator_alert")
def operator_alert(self, event: str, context: Dict[str, Any]) -> None:
    logger.warning("operator_alert_delivered", alert_event=event, **context)
