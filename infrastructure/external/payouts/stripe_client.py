"""
Stripe Connect transfers adapter using the official stripe-python SDK.

Notes on SDK usage:
- ``stripe.Transfer.create`` accepts the ``idempotency_key`` kwarg; the payout
  id is used both as idempotency key and as ``transfer_group`` so a transfer
  can be found again after a timeout.
- The SDK is synchronous, calls run in a worker thread.
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional

import stripe

from application.dtos.settlement import TransferRequest, TransferResult
from core.settings import settlement_settings
from domain.common.exceptions import (
    InsufficientPlatformBalanceError,
    InvalidDestinationError,
    TransferDeclinedError,
    TransferNetworkError,
)
from infrastructure.external.payouts.base import BasePayoutClient


# Stripe error codes that mean the connected account cannot receive funds
_DESTINATION_CODES = {"account_invalid", "no_account", "account_closed", "resource_missing"}
_BALANCE_CODES = {"balance_insufficient", "insufficient_funds"}


class StripeConnectClient(BasePayoutClient):
    provider = "stripe"
    supports_lookup = True

    def __init__(self, *, api_key: Optional[str] = None):
        super().__init__(
            timeouts=settlement_settings.timeouts.model_dump(),
            retry={"max": settlement_settings.gateway_retry.max, "base": settlement_settings.gateway_retry.base_backoff},
        )
        key = api_key or settlement_settings.stripe.secret_key
        if not key:
            raise RuntimeError("SETTLEMENT__STRIPE__SECRET_KEY not configured")
        stripe.api_key = key
        if settlement_settings.stripe.api_version:
            stripe.api_version = settlement_settings.stripe.api_version
        stripe.max_network_retries = int(settlement_settings.gateway_retry.max)

    def _result(self, transfer: Any) -> TransferResult:
        raw = "reversed" if transfer.get("reversed") else "paid"
        return TransferResult(
            provider=self.provider,
            provider_transaction_id=str(transfer["id"]),
            status=self._map_status(raw),
            raw_status=raw,
        )

    def _translate(self, exc: "stripe.StripeError") -> Exception:
        code = getattr(exc, "code", None)
        msg = getattr(exc, "user_message", None) or str(exc)
        if isinstance(exc, (stripe.APIConnectionError, stripe.RateLimitError)):
            return TransferNetworkError(msg, provider=self.provider, provider_code=code)
        if code in _BALANCE_CODES:
            return InsufficientPlatformBalanceError(msg, provider=self.provider, provider_code=code)
        if code in _DESTINATION_CODES or getattr(exc, "param", None) == "destination":
            return InvalidDestinationError(msg, provider=self.provider, provider_code=code)
        if isinstance(exc, stripe.APIError):
            return TransferNetworkError(msg, provider=self.provider, provider_code=code)
        return TransferDeclinedError(msg, provider=self.provider, provider_code=code)

    async def pay(self, req: TransferRequest) -> TransferResult:  # type: ignore[override]
        self._log("payout_transfer_request", payout_id=req.payout_id, amount=str(req.amount))
        try:
            transfer = await asyncio.to_thread(
                stripe.Transfer.create,
                amount=self._to_minor(req.amount, req.currency),
                currency=req.currency.lower(),
                destination=req.destination,
                transfer_group=req.idempotency_key,
                description=req.description,
                metadata={"payout_id": req.payout_id, "vendor_id": req.vendor_id},
                idempotency_key=req.idempotency_key,
            )
        except stripe.StripeError as exc:
            raise self._translate(exc) from exc
        result = self._result(transfer)
        self._log("payout_transfer_response", payout_id=req.payout_id, status=result.status,
                  provider_transaction_id=result.provider_transaction_id)
        return result

    async def lookup(self, idempotency_key: str) -> Optional[TransferResult]:  # type: ignore[override]
        try:
            page = await asyncio.to_thread(stripe.Transfer.list, transfer_group=idempotency_key, limit=1)
        except stripe.StripeError as exc:
            raise self._translate(exc) from exc
        data = page.get("data") or []
        if not data:
            return None
        return self._result(data[0])
