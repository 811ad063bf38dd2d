"""
Payout gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters for
Stripe Connect, the bank transfer API and a local sandbox.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from application.dtos.settlement import TransferRequest, TransferResult


@runtime_checkable
class PayoutGateway(Protocol):
    """Gateway protocol for outbound vendor transfers.

    ``pay`` raises a ``TransferError`` subclass on typed failure. Calling it
    twice with the same idempotency key must never move money twice.
    """

    provider: str
    supports_lookup: bool

    async def pay(self, req: TransferRequest) -> TransferResult: ...

    async def lookup(self, idempotency_key: str) -> Optional[TransferResult]: ...

    async def aclose(self) -> None: ...
