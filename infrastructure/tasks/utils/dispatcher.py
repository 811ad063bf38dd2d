"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict

from ..config.celery import celery_app


class TaskDispatcher:
    """Internal facade used by the notification adapters and API to schedule tasks."""

    def notify_vendor_payout(self, *, vendor_id: str, payout_id: str, status: str, amount: str) -> None:
        celery_app.send_task(
            "settlement.notify_vendor_payout",
            kwargs={"vendor_id": vendor_id, "payout_id": payout_id, "status": status, "amount": amount},
        )

    def operator_alert(self, *, event: str, context: Dict[str, Any]) -> None:
        celery_app.send_task("settlement.operator_alert", kwargs={"event": event, "context": context})

    def process_payout(self, payout_id: str) -> None:
        celery_app.send_task("settlement.process_payout", kwargs={"payout_id": payout_id})
