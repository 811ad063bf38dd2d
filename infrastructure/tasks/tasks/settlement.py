"""Settlement jobs: order event ingestion, payout scheduling, processing, reconciliation."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict

from celery import shared_task

from application.dtos.settlement import OrderSettled
from core.logging_config import get_logger
from infrastructure.composition import task_container
from ..utils.base_task import BaseTask


logger = get_logger(__name__)


def _now(now: str | None) -> datetime:
    if now:
        value = datetime.fromisoformat(now)
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


@shared_task(name="settlement.order_settled", base=BaseTask)
def record_order_settled(payload: Dict[str, Any]) -> Dict[str, Any]:
    event = OrderSettled.model_validate(payload)

    async def _run():
        async with task_container() as c:
            return await c.commission_service.on_order_settled(event)

    commission = asyncio.run(_run())
    return {"commission_id": commission.id, "amount": str(commission.amount)}


@shared_task(name="settlement.order_reversed", base=BaseTask)
def record_order_reversed(order_id: str, vendor_id: str) -> Dict[str, Any]:
    async def _run():
        async with task_container() as c:
            return await c.commission_service.on_order_reversed(order_id, vendor_id)

    commission = asyncio.run(_run())
    return {"commission_id": commission.id, "status": commission.status.value}


@shared_task(name="settlement.schedule_payouts", base=BaseTask)
def schedule_payouts(now: str | None = None) -> Dict[str, Any]:
    async def _run():
        async with task_container() as c:
            return await c.scheduler.run_due(_now(now))

    summary = asyncio.run(_run())
    return {
        "created": summary.created,
        "skipped": summary.skipped,
        "contended": summary.contended,
        "failed": summary.failed,
        "payout_ids": summary.payout_ids,
    }


@shared_task(name="settlement.process_due_payouts", base=BaseTask)
def process_due_payouts(now: str | None = None) -> Dict[str, Any]:
    async def _run():
        async with task_container() as c:
            return await c.processor.process_due(_now(now))

    return asyncio.run(_run()).__dict__


@shared_task(name="settlement.process_payout", base=BaseTask)
def process_payout(payout_id: str) -> Dict[str, Any]:
    async def _run():
        async with task_container() as c:
            return await c.processor.process(payout_id)

    payout = asyncio.run(_run())
    return {"payout_id": payout.id, "status": payout.status.value}


@shared_task(name="settlement.reconcile_processing", base=BaseTask)
def reconcile_processing(now: str | None = None) -> Dict[str, Any]:
    async def _run():
        async with task_container() as c:
            return await c.processor.reconcile_processing(_now(now))

    return asyncio.run(_run()).__dict__
