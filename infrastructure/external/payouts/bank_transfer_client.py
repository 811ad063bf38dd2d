"""
Bank transfer rail reached over a JSON HTTP API.

Every request carries an ``Idempotency-Key`` header; the API answers a replay
with the original transfer instead of creating a new one.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from application.dtos.settlement import TransferRequest, TransferResult
from core.settings import settlement_settings
from domain.common.exceptions import (
    InsufficientPlatformBalanceError,
    InvalidDestinationError,
    TransferDeclinedError,
    TransferNetworkError,
    TransferTimeoutError,
)
from infrastructure.external.payouts.base import BasePayoutClient


class BankTransferClient(BasePayoutClient):
    provider = "bank_transfer"
    supports_lookup = True

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            timeouts=settlement_settings.timeouts.model_dump(),
            retry={"max": settlement_settings.gateway_retry.max, "base": settlement_settings.gateway_retry.base_backoff},
            transport=transport,
        )
        self.base_url = (base_url or settlement_settings.bank_transfer.base_url).rstrip("/")
        self.api_key = api_key or settlement_settings.bank_transfer.api_key

    def _build_client(self) -> httpx.AsyncClient:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeouts,
            transport=self._transport,
            headers=headers,
        )

    def _result(self, body: dict[str, Any]) -> TransferResult:
        raw = str(body.get("status", ""))
        return TransferResult(
            provider=self.provider,
            provider_transaction_id=body.get("id"),
            status=self._map_status(raw),
            raw_status=raw,
            failure_reason=body.get("reason"),
        )

    def _raise_for_error(self, resp: httpx.Response) -> None:
        if resp.is_success:
            return
        try:
            body = resp.json()
        except ValueError:
            body = {}
        code = body.get("code")
        msg = body.get("message") or f"HTTP {resp.status_code}"
        details = {"http_status": resp.status_code}
        if resp.status_code == 402:
            raise InsufficientPlatformBalanceError(msg, provider=self.provider, provider_code=code, details=details)
        if resp.status_code == 422:
            raise InvalidDestinationError(msg, provider=self.provider, provider_code=code, details=details)
        if resp.status_code in (409, 429) or resp.status_code >= 500:
            # 409: same key still being processed on their side
            raise TransferNetworkError(msg, provider=self.provider, provider_code=code, details=details)
        raise TransferDeclinedError(msg, provider=self.provider, provider_code=code, details=details)

    async def pay(self, req: TransferRequest) -> TransferResult:  # type: ignore[override]
        payload = {
            "reference": req.idempotency_key,
            "destination_account": req.destination,
            "amount": str(req.amount),
            "currency": req.currency,
            "description": req.description,
        }
        self._log("payout_transfer_request", payout_id=req.payout_id, amount=payload["amount"])
        try:
            resp = await self._retry(
                lambda: self.client.post(
                    "/transfers",
                    json=payload,
                    headers={"Idempotency-Key": req.idempotency_key},
                )
            )
        except httpx.TimeoutException as exc:
            raise TransferTimeoutError(str(exc) or "bank API timed out", provider=self.provider) from exc
        except httpx.TransportError as exc:
            raise TransferNetworkError(str(exc) or "bank API unreachable", provider=self.provider) from exc
        self._raise_for_error(resp)
        result = self._result(resp.json())
        self._log("payout_transfer_response", payout_id=req.payout_id, status=result.status,
                  provider_transaction_id=result.provider_transaction_id)
        return result

    async def lookup(self, idempotency_key: str) -> Optional[TransferResult]:  # type: ignore[override]
        try:
            resp = await self._retry(lambda: self.client.get(f"/transfers/by-reference/{idempotency_key}"))
        except httpx.TransportError as exc:
            raise TransferNetworkError(str(exc) or "bank API unreachable", provider=self.provider) from exc
        if resp.status_code == 404:
            return None
        self._raise_for_error(resp)
        return self._result(resp.json())
