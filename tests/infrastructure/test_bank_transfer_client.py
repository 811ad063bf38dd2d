import json
from decimal import Decimal

import httpx
import pytest

from application.dtos.settlement import TransferRequest
from domain.common.exceptions import (
    InsufficientPlatformBalanceError,
    InvalidDestinationError,
    TransferDeclinedError,
    TransferNetworkError,
    TransferTimeoutError,
)
from infrastructure.external.payouts.bank_transfer_client import BankTransferClient


def _request(**overrides):
    values = dict(
        payout_id="p1",
        vendor_id="v1",
        destination="DE89370400440532013000",
        amount=Decimal("1500.00"),
        currency="EUR",
        idempotency_key="p1",
        description="Vendor payout p1",
    )
    values.update(overrides)
    return TransferRequest(**values)


def _client(handler):
    return BankTransferClient(base_url="https://bank.test/api", api_key="k_test", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_pay_sends_idempotency_key_and_maps_status():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"id": "bt_1", "status": "SETTLED"})

    client = _client(handler)
    result = await client.pay(_request())
    await client.aclose()

    assert result.status == "succeeded"
    assert result.provider_transaction_id == "bt_1"
    assert result.raw_status == "SETTLED"
    (req,) = seen
    assert req.url.path == "/api/transfers"
    assert req.headers["Idempotency-Key"] == "p1"
    assert req.headers["Authorization"] == "Bearer k_test"
    body = json.loads(req.content)
    assert body == {
        "reference": "p1",
        "destination_account": "DE89370400440532013000",
        "amount": "1500.00",
        "currency": "EUR",
        "description": "Vendor payout p1",
    }


@pytest.mark.asyncio
async def test_accepted_transfer_is_pending():
    client = _client(lambda r: httpx.Response(202, json={"id": "bt_2", "status": "ACCEPTED"}))
    assert (await client.pay(_request())).status == "pending"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code, error",
    [
        (402, InsufficientPlatformBalanceError),
        (422, InvalidDestinationError),
        (409, TransferNetworkError),
        (503, TransferNetworkError),
        (400, TransferDeclinedError),
    ],
)
async def test_error_status_mapping(status_code, error):
    client = _client(lambda r: httpx.Response(status_code, json={"code": "E1", "message": "nope"}))
    with pytest.raises(error) as info:
        await client.pay(_request())
    assert info.value.provider == "bank_transfer"


@pytest.mark.asyncio
async def test_timeout_surfaces_as_transfer_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow bank", request=request)

    with pytest.raises(TransferTimeoutError):
        await _client(handler).pay(_request())


@pytest.mark.asyncio
async def test_connection_errors_are_retried_with_same_key():
    attempts = []

    def handler(request):
        attempts.append(request.headers["Idempotency-Key"])
        if len(attempts) == 1:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, json={"id": "bt_3", "status": "COMPLETED"})

    result = await _client(handler).pay(_request())
    assert result.status == "succeeded"
    assert attempts == ["p1", "p1"]


@pytest.mark.asyncio
async def test_lookup_by_reference():
    def handler(request):
        if request.url.path.endswith("/p1"):
            return httpx.Response(200, json={"id": "bt_1", "status": "REJECTED", "reason": "account closed"})
        return httpx.Response(404, json={"message": "not found"})

    client = _client(handler)
    found = await client.lookup("p1")
    assert found.status == "failed"
    assert found.failure_reason == "account closed"
    assert await client.lookup("p2") is None
