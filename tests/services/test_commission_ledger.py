from datetime import timedelta
from decimal import Decimal

import pytest

from application.dtos.settlement import OrderSettled, SetCommissionRateRequest
from application.services.commission_service import CommissionService
from application.services.rate_table_loader import RateTableProvider
from domain.commission.entity import CommissionStatus
from domain.commission.rates import RateSource
from domain.common.exceptions import (
    CommissionNotFoundError,
    ConfigurationError,
    InvalidAmountError,
    InvalidStateError,
    StaleCommissionError,
    VendorNotFoundError,
)

from tests.conftest import NOW


@pytest.mark.asyncio
async def test_settled_order_records_calculated_commission(add_vendor, settle):
    await add_vendor("v1")
    commission = await settle("o1", gross="250.00")
    assert commission.status == CommissionStatus.CALCULATED
    assert commission.amount == Decimal("25.00")
    assert commission.net_amount == Decimal("225.00")
    assert commission.rate_source == RateSource.SUBSCRIPTION_TIER
    assert commission.payout_id is None


@pytest.mark.asyncio
async def test_duplicate_delivery_is_a_no_op(add_vendor, settle, commission_service):
    await add_vendor("v1")
    first = await settle("o1")
    second = await settle("o1")
    assert second.id == first.id
    rows = await commission_service.list_vendor_commissions("v1")
    assert [c.id for c in rows] == [first.id]


@pytest.mark.asyncio
async def test_one_order_can_yield_commissions_for_several_vendors(add_vendor, settle, commission_service):
    await add_vendor("v1")
    await add_vendor("v2", subscription_tier="premium")
    a = await settle("o1", "v1", gross="100.00")
    b = await settle("o1", "v2", gross="100.00")
    assert a.id != b.id
    assert (a.amount, b.amount) == (Decimal("10.00"), Decimal("8.00"))


@pytest.mark.asyncio
async def test_unknown_vendor(settle):
    with pytest.raises(VendorNotFoundError):
        await settle("o1", "ghost")


@pytest.mark.asyncio
async def test_non_positive_amount_is_rejected(add_vendor, settle, commission_service):
    await add_vendor("v1")
    with pytest.raises(InvalidAmountError):
        await settle("o1", gross="0")
    assert await commission_service.list_vendor_commissions("v1") == []


@pytest.mark.asyncio
async def test_sub_cent_amount_is_rejected(add_vendor, settle, commission_service):
    await add_vendor("v1")
    with pytest.raises(InvalidAmountError):
        await settle("o1", gross="0.004")
    assert await commission_service.list_vendor_commissions("v1") == []


@pytest.mark.asyncio
async def test_missing_rate_blocks_commission_and_alerts(make_uow, add_vendor, alerts, clock):
    await add_vendor("v1", subscription_tier=None)
    service = CommissionService(
        make_uow,
        RateTableProvider(make_uow, default_rate=None, tier_rates={}, ttl_seconds=0),
        alerts,
        clock=clock,
    )
    with pytest.raises(ConfigurationError):
        await service.on_order_settled(OrderSettled(order_id="o1", vendor_id="v1", gross_amount=Decimal("10")))
    assert alerts.names() == ["commission_rate_missing"]
    assert await service.list_vendor_commissions("v1") == []


@pytest.mark.asyncio
async def test_rate_rule_applies_from_its_effective_date(add_vendor, settle, commission_service):
    await add_vendor("v1")
    rule = await commission_service.set_commission_rate(
        SetCommissionRateRequest(
            vendor_id="v1",
            category_id="books",
            rate=Decimal("0.02"),
            effective_from=NOW - timedelta(days=3),
        )
    )
    assert rule.id is not None

    before = await settle("o-old", gross="100.00", at=NOW - timedelta(days=5), categories=["books"])
    after = await settle("o-new", gross="100.00", at=NOW - timedelta(days=1), categories=["books"])
    assert before.amount == Decimal("10.00")
    assert after.amount == Decimal("2.00")
    assert after.rate_source == RateSource.CATEGORY_OVERRIDE
    assert [r.id for r in await commission_service.list_rate_rules("v1")] == [rule.id]


@pytest.mark.asyncio
async def test_rate_for_unknown_vendor(commission_service):
    with pytest.raises(VendorNotFoundError):
        await commission_service.set_commission_rate(
            SetCommissionRateRequest(vendor_id="ghost", rate=Decimal("0.1"), effective_from=NOW)
        )


@pytest.mark.asyncio
async def test_reversal_cancels_and_allows_a_new_commission(add_vendor, settle, commission_service):
    await add_vendor("v1")
    original = await settle("o1")
    cancelled = await commission_service.on_order_reversed("o1", "v1")
    assert cancelled.status == CommissionStatus.CANCELLED
    assert cancelled.cancelled_at is not None

    again = await settle("o1")
    assert again.id != original.id
    assert again.status == CommissionStatus.CALCULATED


@pytest.mark.asyncio
async def test_reversal_without_commission(add_vendor, commission_service):
    await add_vendor("v1")
    with pytest.raises(CommissionNotFoundError):
        await commission_service.on_order_reversed("o1", "v1")


@pytest.mark.asyncio
async def test_reserved_commission_cannot_be_reversed(add_vendor, settle, make_uow, commission_service):
    await add_vendor("v1")
    c = await settle("o1")
    async with make_uow() as uow:
        await uow.commission_repository.reserve_for_payout([c.id], "p1")
    with pytest.raises(InvalidStateError):
        await commission_service.on_order_reversed("o1", "v1")


@pytest.mark.asyncio
async def test_reservation_is_all_or_nothing(add_vendor, settle, make_uow):
    await add_vendor("v1")
    c1 = await settle("o1")
    c2 = await settle("o2")
    async with make_uow() as uow:
        assert await uow.commission_repository.reserve_for_payout([c1.id], "p1") == 1

    with pytest.raises(StaleCommissionError):
        async with make_uow() as uow:
            await uow.commission_repository.reserve_for_payout([c1.id, c2.id], "p2")

    async with make_uow(readonly=True) as uow:
        first = await uow.commission_repository.get_by_id(c1.id)
        second = await uow.commission_repository.get_by_id(c2.id)
    assert (first.status, first.payout_id) == (CommissionStatus.RESERVED, "p1")
    assert (second.status, second.payout_id) == (CommissionStatus.CALCULATED, None)


@pytest.mark.asyncio
async def test_list_unpaid_is_fifo_and_respects_as_of(add_vendor, settle, make_uow):
    await add_vendor("v1")
    late = await settle("o-late", at=NOW - timedelta(hours=1))
    early = await settle("o-early", at=NOW - timedelta(days=2))
    await settle("o-future", at=NOW + timedelta(days=1))
    async with make_uow(readonly=True) as uow:
        unpaid = await uow.commission_repository.list_unpaid("v1", NOW)
    assert [c.id for c in unpaid] == [early.id, late.id]
