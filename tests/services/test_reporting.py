from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

from tests.conftest import NOW


START = NOW - timedelta(days=7)
END = NOW


@pytest_asyncio.fixture
async def ledger(add_vendor, settle, commission_service):
    await add_vendor("v1")
    await add_vendor("v2", subscription_tier="premium", minimum_payout=Decimal("100"))
    await settle("o1", "v1", "5000.00")
    await settle("o2", "v1", "1000.00")
    await settle("o3", "v2", "1000.00")
    await settle("o4", "v2", "2500.00", at=NOW - timedelta(days=30))
    await settle("o5", "v1", "300.00")
    await commission_service.on_order_reversed("o5", "v1")


@pytest.mark.asyncio
async def test_vendor_summary(ledger, commission_service):
    summary = await commission_service.commission_summary("v1", START, END)

    assert summary.commission_count == 2
    assert summary.total_gross == Decimal("6000.00")
    assert summary.total_commission == Decimal("600.00")
    assert summary.total_net_payout == Decimal("5400.00")
    assert summary.average_rate == Decimal("0.1")


@pytest.mark.asyncio
async def test_summary_for_quiet_vendor_is_zero(ledger, commission_service):
    summary = await commission_service.commission_summary("v3", START, END)
    assert summary.commission_count == 0
    assert summary.total_commission == 0
    assert summary.average_rate == 0


@pytest.mark.asyncio
async def test_platform_report_breaks_down_by_vendor(ledger, commission_service):
    report = await commission_service.commission_report(START, END)

    assert report.commission_count == 3
    assert report.total_gross == Decimal("7000.00")
    assert report.total_commission == Decimal("680.00")
    assert report.net_revenue == report.total_commission
    assert report.total_gross == report.total_commission + report.total_net_payout
    assert [v.vendor_id for v in report.vendors] == ["v1", "v2"]
    assert report.vendors[1].total_commission == Decimal("80.00")


@pytest.mark.asyncio
async def test_report_filtered_to_one_vendor(ledger, commission_service):
    report = await commission_service.commission_report(START - timedelta(days=60), END, vendor_id="v2")
    assert report.commission_count == 2
    assert report.total_commission == Decimal("280.00")


@pytest.mark.asyncio
async def test_pending_totals_split_unpaid_and_open(ledger, commission_service, scheduler):
    await scheduler.request_manual_payout("v2", now=NOW)

    totals = {t.vendor_id: t for t in await commission_service.pending_payout_totals(NOW)}

    assert totals["v1"].unpaid_commission_total == Decimal("600.00")
    assert totals["v1"].commission_count == 2
    assert totals["v1"].open_payout_total == 0
    assert totals["v2"].unpaid_commission_total == 0
    assert totals["v2"].open_payout_total == Decimal("280.00")
