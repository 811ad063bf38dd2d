"""
Settlement specific codes and payout provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class SettlementCode(IntEnum):
    # Commission ledger (7xxxx)
    RATE_NOT_CONFIGURED = 70000
    INVALID_AMOUNT = 70001
    DUPLICATE_COMMISSION = 70002
    STALE_COMMISSION = 70003
    COMMISSION_NOT_FOUND = 70004
    LEDGER_INCONSISTENT = 70005

    # Payouts (71xxx)
    PAYOUT_NOT_FOUND = 71000
    INVALID_PAYOUT_STATE = 71001
    BELOW_MINIMUM_PAYOUT = 71002
    VENDOR_NOT_FOUND = 71003

    # Payout rail (72xxx)
    TRANSFER_DECLINED = 72000
    INSUFFICIENT_PLATFORM_BALANCE = 72001
    TRANSFER_NETWORK_ERROR = 72002
    TRANSFER_TIMEOUT = 72003
    INVALID_DESTINATION = 72004
    TRANSFER_FAILED = 72005


# Provider->internal transfer status mapping
PROVIDER_TRANSFER_STATUS_TO_INTERNAL = {
    "stripe": {
        # Transfers are created synchronously; reversals show up as reversed
        "paid": "succeeded",
        "pending": "pending",
        "in_transit": "pending",
        "canceled": "failed",
        "failed": "failed",
        "reversed": "failed",
    },
    "bank_transfer": {
        "COMPLETED": "succeeded",
        "SETTLED": "succeeded",
        "ACCEPTED": "pending",
        "PROCESSING": "pending",
        "REJECTED": "failed",
        "RETURNED": "failed",
    },
    "sandbox": {
        "succeeded": "succeeded",
    },
}
