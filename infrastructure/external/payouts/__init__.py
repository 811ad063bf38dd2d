"""
Factory for payout gateway clients.
"""
from __future__ import annotations

from typing import Dict

from application.ports.payout_gateway import PayoutGateway
from domain.vendor.entity import PayoutMethod


def get_payout_gateway(method: PayoutMethod | str) -> PayoutGateway:
    name = PayoutMethod(method)
    if name == PayoutMethod.STRIPE:
        from .stripe_client import StripeConnectClient
        return StripeConnectClient()
    if name == PayoutMethod.BANK_TRANSFER:
        from .bank_transfer_client import BankTransferClient
        return BankTransferClient()
    if name == PayoutMethod.SANDBOX:
        from .sandbox_client import SandboxPayoutClient
        return SandboxPayoutClient()
    raise ValueError(f"Unsupported payout method: {method}")


class PayoutGatewayRegistry:
    """One client per payout method, created on first use and closed together."""

    def __init__(self) -> None:
        self._clients: Dict[PayoutMethod, PayoutGateway] = {}

    def __call__(self, method: PayoutMethod | str) -> PayoutGateway:
        key = PayoutMethod(method)
        if key not in self._clients:
            self._clients[key] = get_payout_gateway(key)
        return self._clients[key]

    async def aclose(self) -> None:
        clients, self._clients = list(self._clients.values()), {}
        for client in clients:
            await client.aclose()
