from datetime import timedelta
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from infrastructure.composition import build_container
from main import app

from tests.conftest import NOW


@pytest_asyncio.fixture
async def client(session_factory, gateway, notifier, alerts, clock):
    app.state.settlement = build_container(
        session_factory, gateways=lambda method: gateway, notifier=notifier, alerts=alerts, clock=clock
    )
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.state.settlement = None


def _settled(order_id, vendor_id="v1", gross="5000.00"):
    return {
        "order_id": order_id,
        "vendor_id": vendor_id,
        "gross_amount": gross,
        "settled_at": (NOW - timedelta(days=1)).isoformat(),
    }


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"status": "healthy"}


@pytest.mark.asyncio
async def test_order_settled_records_commission(client, add_vendor):
    await add_vendor("v1")

    resp = await client.post("/api/v1/orders/settled", json=_settled("o1"), headers={"X-Request-ID": "req-1"})

    assert resp.status_code == 200
    assert resp.headers["X-Request-ID"] == "req-1"
    data = resp.json()["data"]
    assert Decimal(data["amount"]) == Decimal("500.00")
    assert data["status"] == "calculated"
    assert data["rate_source"] == "subscription_tier"

    again = await client.post("/api/v1/orders/settled", json=_settled("o1"))
    assert again.json()["data"]["id"] == data["id"]


@pytest.mark.asyncio
async def test_unknown_vendor_is_404(client):
    resp = await client.post("/api/v1/orders/settled", json=_settled("o1", vendor_id="ghost"))
    body = resp.json()
    assert resp.status_code == 404
    assert body["error"]["type"] == "VendorNotFoundError"


@pytest.mark.asyncio
async def test_invalid_event_is_422(client):
    resp = await client.post("/api/v1/orders/settled", json={"order_id": "o1"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_sub_cent_gross_is_422(client, add_vendor):
    await add_vendor("v1")
    resp = await client.post("/api/v1/orders/settled", json=_settled("o1", gross="0.004"))
    assert resp.status_code == 422
    assert resp.json()["error"]["type"] == "InvalidAmountError"


@pytest.mark.asyncio
async def test_manual_payout_lifecycle(client, add_vendor, gateway):
    await add_vendor("v1", minimum_payout=Decimal("100"))
    for order_id in ("o1", "o2"):
        await client.post("/api/v1/orders/settled", json=_settled(order_id))

    created = await client.post(
        "/api/v1/vendors/v1/payouts",
        json={"notes": "early payout"},
        headers={"X-Operator-Id": "ops-7"},
    )
    assert created.status_code == 200
    payout = created.json()["data"]
    assert Decimal(payout["amount"]) == Decimal("1000.00")
    assert payout["created_by"] == "manual"
    assert payout["status"] == "pending"
    assert len(payout["commission_ids"]) == 2

    listed = await client.get("/api/v1/vendors/v1/payouts", params={"status": "pending"})
    assert [p["id"] for p in listed.json()["data"]["items"]] == [payout["id"]]

    cancelled = await client.post(f"/api/v1/payouts/{payout['id']}/cancel", json={"reason": "duplicate request"})
    assert cancelled.json()["data"]["status"] == "cancelled"

    again = await client.post(f"/api/v1/payouts/{payout['id']}/cancel", json={})
    assert again.status_code == 409
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_manual_payout_below_minimum(client, add_vendor):
    await add_vendor("v1")
    await client.post("/api/v1/orders/settled", json=_settled("o1"))

    resp = await client.post("/api/v1/vendors/v1/payouts")

    assert resp.status_code == 422
    assert resp.json()["error"]["type"] == "BelowMinimumPayoutError"


@pytest.mark.asyncio
async def test_retry_of_pending_payout_is_conflict(client, add_vendor):
    await add_vendor("v1", minimum_payout=Decimal("100"))
    await client.post("/api/v1/orders/settled", json=_settled("o1"))
    payout = (await client.post("/api/v1/vendors/v1/payouts", json={})).json()["data"]

    resp = await client.post(f"/api/v1/payouts/{payout['id']}/retry")

    assert resp.status_code == 409
    assert (await client.get("/api/v1/payouts/missing")).status_code == 404


@pytest.mark.asyncio
async def test_commission_rates_and_reports(client, add_vendor):
    await add_vendor("v1")
    rule = await client.post(
        "/api/v1/commission-rates",
        json={"vendor_id": "v1", "rate": "0.15", "effective_from": (NOW - timedelta(days=10)).isoformat()},
    )
    assert rule.status_code == 200
    assert len((await client.get("/api/v1/vendors/v1/commission-rates")).json()["data"]) == 1

    commission = (await client.post("/api/v1/orders/settled", json=_settled("o1"))).json()["data"]
    assert Decimal(commission["amount"]) == Decimal("750.00")
    assert commission["rate_source"] == "vendor_override"

    window = {"start": (NOW - timedelta(days=7)).isoformat(), "end": NOW.isoformat()}
    summary = (await client.get("/api/v1/vendors/v1/commissions/summary", params=window)).json()["data"]
    assert Decimal(summary["total_commission"]) == Decimal("750.00")

    report = (await client.get("/api/v1/reports/commissions", params=window)).json()["data"]
    assert Decimal(report["net_revenue"]) == Decimal("750.00")

    pending = (await client.get("/api/v1/reports/pending-payouts", params={"as_of": NOW.isoformat()})).json()["data"]
    assert [p["vendor_id"] for p in pending] == ["v1"]

    rows = (await client.get("/api/v1/vendors/v1/commissions", params={"status": "calculated"})).json()["data"]
    assert rows["items"][0]["order_id"] == "o1"


@pytest.mark.asyncio
async def test_rate_out_of_range_rejected(client, add_vendor):
    await add_vendor("v1")
    resp = await client.post(
        "/api/v1/commission-rates",
        json={"vendor_id": "v1", "rate": "1.5", "effective_from": NOW.isoformat()},
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_reversal_cancels_commission(client, add_vendor):
    await add_vendor("v1")
    await client.post("/api/v1/orders/settled", json=_settled("o1"))

    resp = await client.post("/api/v1/orders/reversed", json={"order_id": "o1", "vendor_id": "v1"})

    assert resp.json()["data"]["status"] == "cancelled"
    missing = await client.post("/api/v1/orders/reversed", json={"order_id": "o1", "vendor_id": "v1"})
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_listings_report_full_total_across_pages(client, add_vendor):
    await add_vendor("v1", minimum_payout=Decimal("100"))
    for order_id in ("o1", "o2", "o3"):
        await client.post("/api/v1/orders/settled", json=_settled(order_id))

    first = (await client.get("/api/v1/vendors/v1/commissions", params={"page": 1, "size": 2})).json()["data"]
    last = (await client.get("/api/v1/vendors/v1/commissions", params={"page": 2, "size": 2})).json()["data"]
    assert (len(first["items"]), first["total"]) == (2, 3)
    assert (len(last["items"]), last["total"]) == (1, 3)

    for _ in range(3):
        await client.post("/api/v1/vendors/v1/payouts", json={"amount": "500.00"})
    payouts = (await client.get("/api/v1/vendors/v1/payouts", params={"size": 2})).json()["data"]
    assert (len(payouts["items"]), payouts["total"]) == (2, 3)

    unpaid = (
        await client.get("/api/v1/vendors/v1/commissions", params={"status": "calculated", "size": 2})
    ).json()["data"]
    assert unpaid["total"] == 0
