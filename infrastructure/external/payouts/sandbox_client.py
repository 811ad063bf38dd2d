"""
In-process payout rail for local development and demos.

Keeps transfers in memory keyed by idempotency key, so a replay returns the
first result. Destinations starting with ``invalid`` are rejected.
"""
from __future__ import annotations

import uuid
from typing import Optional

from application.dtos.settlement import TransferRequest, TransferResult
from domain.common.exceptions import InvalidDestinationError
from infrastructure.external.payouts.base import BasePayoutClient


class SandboxPayoutClient(BasePayoutClient):
    provider = "sandbox"
    supports_lookup = True

    def __init__(self) -> None:
        super().__init__()
        self._transfers: dict[str, TransferResult] = {}

    async def pay(self, req: TransferRequest) -> TransferResult:  # type: ignore[override]
        existing = self._transfers.get(req.idempotency_key)
        if existing is not None:
            self._log("payout_transfer_replayed", payout_id=req.payout_id)
            return existing
        if req.destination.startswith("invalid"):
            raise InvalidDestinationError(f"Unknown destination {req.destination}", provider=self.provider)
        result = TransferResult(
            provider=self.provider,
            provider_transaction_id=f"sbx_{uuid.uuid4().hex[:24]}",
            status=self._map_status("succeeded"),
            raw_status="succeeded",
        )
        self._transfers[req.idempotency_key] = result
        self._log("payout_transfer_response", payout_id=req.payout_id, status=result.status)
        return result

    async def lookup(self, idempotency_key: str) -> Optional[TransferResult]:  # type: ignore[override]
        return self._transfers.get(idempotency_key)
