from decimal import Decimal

import pytest
import stripe

from application.dtos.settlement import TransferRequest
from domain.common.exceptions import (
    InsufficientPlatformBalanceError,
    InvalidDestinationError,
    TransferDeclinedError,
    TransferNetworkError,
)
from infrastructure.external.payouts import PayoutGatewayRegistry, get_payout_gateway
from infrastructure.external.payouts.base import BasePayoutClient
from infrastructure.external.payouts.sandbox_client import SandboxPayoutClient


def _request(destination="acct_v1", key="p1"):
    return TransferRequest(
        payout_id=key,
        vendor_id="v1",
        destination=destination,
        amount=Decimal("12.34"),
        idempotency_key=key,
    )


class _MapClient(BasePayoutClient):
    provider = "bank_transfer"


def test_provider_status_mapping():
    c = _MapClient()
    assert c._map_status("COMPLETED") == "succeeded"
    assert c._map_status("PROCESSING") == "pending"
    assert c._map_status("RETURNED") == "failed"
    assert c._map_status("SOMETHING_NEW") == "pending"


def test_minor_units():
    assert BasePayoutClient._to_minor(Decimal("12.34"), "usd") == 1234
    assert BasePayoutClient._to_minor(Decimal("500"), "JPY") == 500


@pytest.mark.asyncio
async def test_sandbox_replays_by_idempotency_key():
    gw = SandboxPayoutClient()
    first = await gw.pay(_request())
    again = await gw.pay(_request())
    assert first.status == "succeeded"
    assert first.provider_transaction_id.startswith("sbx_")
    assert again == first
    assert await gw.lookup("p1") == first
    assert await gw.lookup("p2") is None


@pytest.mark.asyncio
async def test_sandbox_rejects_invalid_destination():
    with pytest.raises(InvalidDestinationError):
        await SandboxPayoutClient().pay(_request(destination="invalid-acct"))


@pytest.mark.asyncio
async def test_registry_reuses_one_client_per_method():
    registry = PayoutGatewayRegistry()
    assert registry("sandbox") is registry("sandbox")
    assert isinstance(get_payout_gateway("sandbox"), SandboxPayoutClient)
    await registry.aclose()
    with pytest.raises(ValueError):
        get_payout_gateway("carrier_pigeon")


class _FakeTransfer:
    created = []
    listed = []

    @classmethod
    def create(cls, **kwargs):
        cls.created.append(kwargs)
        return {"id": "tr_1", "reversed": False}

    @classmethod
    def list(cls, **kwargs):
        cls.listed.append(kwargs)
        return {"data": [{"id": "tr_1", "reversed": True}]}


@pytest.fixture
def stripe_client(monkeypatch):
    from infrastructure.external.payouts.stripe_client import StripeConnectClient

    _FakeTransfer.created, _FakeTransfer.listed = [], []
    monkeypatch.setattr(stripe, "Transfer", _FakeTransfer)
    return StripeConnectClient(api_key="sk_test_123")


@pytest.mark.asyncio
async def test_stripe_transfer_uses_payout_id_as_key(stripe_client):
    result = await stripe_client.pay(_request())

    assert result.status == "succeeded"
    assert result.provider_transaction_id == "tr_1"
    (kwargs,) = _FakeTransfer.created
    assert kwargs["amount"] == 1234
    assert kwargs["currency"] == "usd"
    assert kwargs["idempotency_key"] == "p1"
    assert kwargs["transfer_group"] == "p1"


@pytest.mark.asyncio
async def test_stripe_lookup_reports_reversal_as_failed(stripe_client):
    found = await stripe_client.lookup("p1")
    assert found.status == "failed"
    assert _FakeTransfer.listed == [{"transfer_group": "p1", "limit": 1}]


@pytest.mark.parametrize(
    "exc, expected",
    [
        (stripe.APIConnectionError("down"), TransferNetworkError),
        (stripe.InvalidRequestError("no funds", None, code="balance_insufficient"), InsufficientPlatformBalanceError),
        (stripe.InvalidRequestError("bad account", "destination"), InvalidDestinationError),
        (stripe.PermissionError("not allowed"), TransferDeclinedError),
    ],
)
def test_stripe_error_translation(stripe_client, exc, expected):
    assert isinstance(stripe_client._translate(exc), expected)
