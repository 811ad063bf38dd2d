"""
Base payout client implementing shared concerns: http, retry, logging, mapping.

Concrete rails subclass and implement ``pay`` / ``lookup``.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from application.dtos.settlement import TransferRequest, TransferResult
from application.ports.payout_gateway import PayoutGateway
from core.logging_config import get_logger
from shared.codes.settlement_codes import PROVIDER_TRANSFER_STATUS_TO_INTERNAL


logger = get_logger(__name__)

# ISO-4217 currencies without a minor unit
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW"}


class BasePayoutClient(PayoutGateway):
    provider: str = "base"
    supports_lookup: bool = False

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 5.0, "write": 5.0, "total": 15.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            self._timeouts_cfg["total"],
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
        )

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)

    @property
    def client(self) -> httpx.AsyncClient:
        # Lazily created and kept open for reuse; aclose() releases it
        if self._client is None:
            self._client = self._build_client()
        return self._client

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Awaitable[Any]]):
        """Retry transport failures only; every attempt carries the same idempotency key."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def pay(self, req: TransferRequest) -> TransferResult:  # type: ignore[override]
        raise NotImplementedError

    async def lookup(self, idempotency_key: str) -> Optional[TransferResult]:  # type: ignore[override]
        return None

    # Helpers
    def _map_status(self, provider_status: str) -> str:
        mapping = PROVIDER_TRANSFER_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get(provider_status, "pending")

    @staticmethod
    def _to_minor(amount: Decimal, currency: str) -> int:
        exponent = 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2
        return int((Decimal(amount) * (Decimal(10) ** exponent)).to_integral_value())

    def _log(self, event: str, **kwargs) -> None:
        logger.info(event, provider=self.provider, **kwargs)
