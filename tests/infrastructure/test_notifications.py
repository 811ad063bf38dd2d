from decimal import Decimal

import pytest

from infrastructure.external.notifications import CeleryPayoutNotifier, LoggingOperatorAlerts
from infrastructure.tasks.utils.dispatcher import TaskDispatcher


class _RecordingDispatcher(TaskDispatcher):
    def __init__(self):
        self.sent = []

    def notify_vendor_payout(self, **kwargs):
        self.sent.append(("notify_vendor_payout", kwargs))

    def operator_alert(self, **kwargs):
        self.sent.append(("operator_alert", kwargs))


@pytest.mark.asyncio
async def test_notifier_hands_outcome_to_dispatcher():
    dispatcher = _RecordingDispatcher()
    await CeleryPayoutNotifier(dispatcher).notify_payout_outcome("v1", "p1", "completed", Decimal("12.50"))
    assert dispatcher.sent == [
        ("notify_vendor_payout", {"vendor_id": "v1", "payout_id": "p1", "status": "completed", "amount": "12.50"})
    ]


@pytest.mark.asyncio
async def test_alerts_forward_with_decimals_as_strings():
    dispatcher = _RecordingDispatcher()
    await LoggingOperatorAlerts(dispatcher).alert("payout_failed", payout_id="p1", amount=Decimal("5.00"))
    assert dispatcher.sent == [
        ("operator_alert", {"event": "payout_failed", "context": {"payout_id": "p1", "amount": "5.00"}})
    ]


@pytest.mark.asyncio
async def test_alerts_can_stay_local():
    dispatcher = _RecordingDispatcher()
    await LoggingOperatorAlerts(dispatcher, forward=False).alert("payout_stuck_processing", payout_id="p1")
    assert dispatcher.sent == []


def test_dispatcher_sends_by_task_name(monkeypatch):
    from infrastructure.tasks.config.celery import celery_app

    calls = []
    monkeypatch.setattr(celery_app, "send_task", lambda name, **kw: calls.append((name, kw)))
    TaskDispatcher().process_payout("p1")
    assert calls == [("settlement.process_payout", {"kwargs": {"payout_id": "p1"}})]
