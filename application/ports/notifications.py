"""
Outbound notification ports.

Both are fire-and-forget from the caller's point of view: a failing notifier
must never undo a settled payout.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class PayoutNotifier(Protocol):
    async def notify_payout_outcome(
        self,
        vendor_id: str,
        payout_id: str,
        status: str,
        amount: Decimal,
    ) -> None: ...


@runtime_checkable
class OperatorAlerts(Protocol):
    async def alert(self, event: str, **context: Any) -> None: ...
