"""
Notification adapters backed by Celery.

Both hand work to the broker and return; delivery failures surface in the
worker logs, not in the settlement flow.
"""
from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any

from core.logging_config import get_logger
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


logger = get_logger(__name__)


class CeleryPayoutNotifier:
    def __init__(self, dispatcher: TaskDispatcher | None = None) -> None:
        self._dispatcher = dispatcher or TaskDispatcher()

    async def notify_payout_outcome(self, vendor_id: str, payout_id: str, status: str, amount: Decimal) -> None:
        await asyncio.to_thread(
            self._dispatcher.notify_vendor_payout,
            vendor_id=vendor_id,
            payout_id=payout_id,
            status=status,
            amount=str(amount),
        )


class LoggingOperatorAlerts:
    """Logs the alert and forwards it to the operator alert task."""

    def __init__(self, dispatcher: TaskDispatcher | None = None, *, forward: bool = True) -> None:
        self._dispatcher = dispatcher or TaskDispatcher()
        self._forward = forward

    async def alert(self, event: str, **context: Any) -> None:
        logger.error("operator_alert", alert_event=event, **context)
        if self._forward:
            payload = {k: (str(v) if isinstance(v, Decimal) else v) for k, v in context.items()}
            await asyncio.to_thread(self._dispatcher.operator_alert, event=event, context=payload)
