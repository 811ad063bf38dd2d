from datetime import timedelta
from decimal import Decimal

import pytest

from application.services.payout_scheduler import CycleOutcome, PayoutScheduler
from domain.commission.entity import CommissionStatus
from domain.common.exceptions import BelowMinimumPayoutError, InvalidStateError, VendorNotFoundError
from domain.payout.entity import PayoutOrigin, PayoutStatus
from infrastructure.repositories.commission_repository import SQLAlchemyCommissionRepository
from infrastructure.repositories.vendor_repository import SQLAlchemyVendorRepository

from tests.conftest import NOW


async def _vendor_state(make_uow, vendor_id="v1"):
    async with make_uow(readonly=True) as uow:
        return await uow.vendor_repository.get_by_id(vendor_id)


async def _commissions(make_uow, vendor_id="v1"):
    async with make_uow(readonly=True) as uow:
        return await uow.commission_repository.list_by_vendor(vendor_id)


@pytest.mark.asyncio
async def test_below_minimum_creates_nothing(add_vendor, settle, scheduler, make_uow):
    await add_vendor("v1", minimum_payout=Decimal("1000"))
    await settle("o1", gross="4000.00")
    await settle("o2", gross="4000.00")
    before = (await _vendor_state(make_uow)).next_payout_date

    result = await scheduler.run_vendor_cycle("v1", NOW)

    assert result.outcome == CycleOutcome.BELOW_THRESHOLD
    assert result.available == Decimal("800.00")
    assert (await _vendor_state(make_uow)).next_payout_date == before
    assert all(c.status == CommissionStatus.CALCULATED for c in await _commissions(make_uow))


@pytest.mark.asyncio
async def test_due_vendor_gets_one_payout_for_all_unpaid(add_vendor, settle, scheduler, make_uow):
    await add_vendor("v1", minimum_payout=Decimal("1000"))
    ids = [(await settle(f"o{i}", gross="5000.00")).id for i in range(3)]
    before = (await _vendor_state(make_uow)).next_payout_date

    result = await scheduler.run_vendor_cycle("v1", NOW)

    assert result.outcome == CycleOutcome.CREATED
    payout = result.payout
    assert payout.status == PayoutStatus.PENDING
    assert payout.amount == Decimal("1500.00")
    assert sorted(payout.commission_ids) == sorted(ids)
    assert payout.metadata.created_by == PayoutOrigin.SCHEDULER

    async with make_uow(readonly=True) as uow:
        linked = await uow.commission_repository.list_by_payout(payout.id)
    assert {c.id for c in linked} == set(ids)
    assert all(c.status == CommissionStatus.RESERVED for c in linked)
    assert sum(c.amount for c in linked) == payout.amount

    assert (await _vendor_state(make_uow)).next_payout_date == before + timedelta(weeks=1)


@pytest.mark.asyncio
async def test_overlapping_ticks_produce_one_payout(add_vendor, settle, scheduler, processor):
    await add_vendor("v1", minimum_payout=Decimal("100"))
    await settle("o1")

    first = await scheduler.run_due(NOW)
    second = await scheduler.run_due(NOW)

    assert first.created == 1
    assert second.created == 0
    assert len(await processor.list_vendor_payouts("v1")) == 1


@pytest.mark.asyncio
async def test_lost_schedule_race_rolls_back(add_vendor, settle, scheduler, processor, make_uow, monkeypatch):
    await add_vendor("v1", minimum_payout=Decimal("100"))
    await settle("o1")

    async def _moved(self, vendor_id, expected, new_date):
        return False

    monkeypatch.setattr(SQLAlchemyVendorRepository, "advance_next_payout_date", _moved)
    result = await scheduler.run_vendor_cycle("v1", NOW)

    assert result.outcome == CycleOutcome.CONTENDED
    assert await processor.list_vendor_payouts("v1") == []
    assert all(c.status == CommissionStatus.CALCULATED and c.payout_id is None for c in await _commissions(make_uow))


@pytest.mark.asyncio
async def test_stale_commissions_abort_the_cycle(add_vendor, settle, scheduler, processor, make_uow, monkeypatch):
    await add_vendor("v1", minimum_payout=Decimal("100"))
    await settle("o1")
    await settle("o2")

    # snapshot taken before a manual payout grabs everything
    async with make_uow(readonly=True) as uow:
        stale = await uow.commission_repository.list_unpaid("v1", NOW)
    manual = await scheduler.request_manual_payout("v1", now=NOW)

    async def _stale_snapshot(self, vendor_id, as_of):
        return stale

    monkeypatch.setattr(SQLAlchemyCommissionRepository, "list_unpaid", _stale_snapshot)
    result = await scheduler.run_vendor_cycle("v1", NOW)

    assert result.outcome == CycleOutcome.CONTENDED
    payouts = await processor.list_vendor_payouts("v1")
    assert [p.id for p in payouts] == [manual.id]
    assert {c.payout_id for c in await _commissions(make_uow)} == {manual.id}


@pytest.mark.asyncio
async def test_manual_payout_then_scheduler_finds_nothing(add_vendor, settle, scheduler, make_uow):
    await add_vendor("v1", minimum_payout=Decimal("100"))
    await settle("o1")
    before = (await _vendor_state(make_uow)).next_payout_date

    manual = await scheduler.request_manual_payout("v1", notes="early payout", requested_by="ops-1", now=NOW)
    assert manual.metadata.created_by == PayoutOrigin.MANUAL
    assert manual.metadata.requested_by == "ops-1"
    assert (await _vendor_state(make_uow)).next_payout_date == before

    result = await scheduler.run_vendor_cycle("v1", NOW)
    assert result.outcome == CycleOutcome.BELOW_THRESHOLD


@pytest.mark.asyncio
async def test_manual_payout_is_fifo_capped(add_vendor, settle, scheduler):
    await add_vendor("v1", minimum_payout=Decimal("100"))
    oldest = await settle("o1", gross="3000.00", at=NOW - timedelta(days=3))
    middle = await settle("o2", gross="2000.00", at=NOW - timedelta(days=2))
    await settle("o3", gross="1000.00", at=NOW - timedelta(days=1))

    payout = await scheduler.request_manual_payout("v1", Decimal("550"), now=NOW)

    assert payout.commission_ids == (oldest.id, middle.id)
    assert payout.amount == Decimal("500.00")


@pytest.mark.asyncio
async def test_manual_payout_below_minimum(add_vendor, settle, scheduler):
    await add_vendor("v1", minimum_payout=Decimal("1000"))
    await settle("o1")
    with pytest.raises(BelowMinimumPayoutError):
        await scheduler.request_manual_payout("v1", now=NOW)


@pytest.mark.asyncio
async def test_manual_payout_for_inactive_or_unknown_vendor(add_vendor, scheduler):
    await add_vendor("v1", is_active=False)
    with pytest.raises(InvalidStateError):
        await scheduler.request_manual_payout("v1", now=NOW)
    with pytest.raises(VendorNotFoundError):
        await scheduler.request_manual_payout("ghost", now=NOW)


@pytest.mark.asyncio
async def test_not_due_and_inactive_vendors_are_skipped(add_vendor, settle, scheduler):
    await add_vendor("later", minimum_payout=Decimal("1"), next_payout_date=NOW + timedelta(days=1))
    await add_vendor("off", minimum_payout=Decimal("1"), is_active=False)
    await settle("o1", "later")
    await settle("o2", "off")

    assert (await scheduler.run_vendor_cycle("later", NOW)).outcome == CycleOutcome.NOT_DUE
    summary = await scheduler.run_due(NOW)
    assert summary.created == 0


@pytest.mark.asyncio
async def test_one_failing_vendor_does_not_stop_the_others(add_vendor, settle, scheduler, alerts, monkeypatch):
    for vid in ("a", "b", "c"):
        await add_vendor(vid, minimum_payout=Decimal("100"))
        await settle(f"o-{vid}", vid)

    original = SQLAlchemyCommissionRepository.list_unpaid

    async def _flaky(self, vendor_id, as_of):
        if vendor_id == "b":
            raise RuntimeError("boom")
        return await original(self, vendor_id, as_of)

    monkeypatch.setattr(SQLAlchemyCommissionRepository, "list_unpaid", _flaky)
    summary = await scheduler.run_due(NOW)

    assert summary.created == 2
    assert summary.failed == 1
    assert alerts.names() == ["payout_cycle_failed"]
    assert alerts.events[0][1]["vendor_id"] == "b"


class _BrokenAlerts:
    async def alert(self, event, **context):
        raise RuntimeError("alert channel down")


@pytest.mark.asyncio
async def test_alert_failure_does_not_abort_other_vendors(add_vendor, settle, make_uow, monkeypatch):
    for vid in ("a", "b", "c"):
        await add_vendor(vid, minimum_payout=Decimal("100"))
        await settle(f"o-{vid}", vid)

    original = SQLAlchemyCommissionRepository.list_unpaid

    async def _flaky(self, vendor_id, as_of):
        if vendor_id == "a":
            raise RuntimeError("boom")
        return await original(self, vendor_id, as_of)

    monkeypatch.setattr(SQLAlchemyCommissionRepository, "list_unpaid", _flaky)
    summary = await PayoutScheduler(make_uow, _BrokenAlerts(), concurrency=1).run_due(NOW)

    assert summary.failed == 1
    assert summary.created == 2
