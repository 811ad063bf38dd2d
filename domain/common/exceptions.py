"""Domain-level business exceptions shared by domain and infrastructure.

The core layer only maps these to HTTP responses; the domain never imports
back from core.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence

from shared.codes import BusinessCode
from shared.codes.settlement_codes import SettlementCode


class BusinessException(Exception):
    """Base class for business errors"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
        message_key: Optional[str] = None,
        format_params: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        self.message_key = message_key
        self.format_params = format_params
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
        message_key: str | None = None,
        format_params: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
            message_key=message_key or "validation.domain",
            format_params=format_params,
        )


# --- commission ledger -----------------------------------------------------


class ConfigurationError(BusinessException):
    """No commission rate can be resolved; commission creation is blocked."""

    def __init__(self, message: str, *, vendor_id: Optional[str] = None, details: Optional[dict] = None):
        full_details = {"vendor_id": vendor_id} if vendor_id else {}
        if details:
            full_details.update(details)
        super().__init__(
            code=SettlementCode.RATE_NOT_CONFIGURED,
            message=message,
            error_type="ConfigurationError",
            details=full_details or None,
            message_key="commission.rate.not_configured",
        )


class InvalidAmountError(BusinessException):
    def __init__(self, amount: Decimal, *, order_id: Optional[str] = None):
        super().__init__(
            code=SettlementCode.INVALID_AMOUNT,
            message=f"Gross amount must be positive: {amount}",
            error_type="InvalidAmountError",
            details={"amount": str(amount), "order_id": order_id},
            field="gross_amount",
            message_key="commission.amount.invalid",
        )


class DuplicateCommissionError(BusinessException):
    def __init__(self, order_id: str, vendor_id: str):
        self.order_id = order_id
        self.vendor_id = vendor_id
        super().__init__(
            code=SettlementCode.DUPLICATE_COMMISSION,
            message=f"Commission already recorded for order {order_id} / vendor {vendor_id}",
            error_type="DuplicateCommissionError",
            details={"order_id": order_id, "vendor_id": vendor_id},
            message_key="commission.duplicate",
        )


class StaleCommissionError(BusinessException):
    """Some commissions were no longer CALCULATED when a reservation ran."""

    def __init__(self, payout_id: str, expected: int, reserved: int, *, commission_ids: Sequence[str] = ()):
        super().__init__(
            code=SettlementCode.STALE_COMMISSION,
            message=f"Reserved {reserved} of {expected} commissions for payout {payout_id}",
            error_type="StaleCommissionError",
            details={
                "payout_id": payout_id,
                "expected": expected,
                "reserved": reserved,
                "commission_ids": list(commission_ids),
            },
            message_key="commission.stale",
        )


class CommissionNotFoundError(BusinessException):
    def __init__(self, order_id: str, vendor_id: Optional[str] = None):
        super().__init__(
            code=SettlementCode.COMMISSION_NOT_FOUND,
            message=f"Commission not found for order {order_id}",
            error_type="CommissionNotFound",
            details={"order_id": order_id, "vendor_id": vendor_id},
            message_key="commission.not_found",
        )


class LedgerInconsistencyError(BusinessException):
    """Payout and ledger disagree; the vendor's cycle must halt for an operator."""

    def __init__(self, message: str, *, payout_id: Optional[str] = None, details: Optional[dict] = None):
        full_details = {"payout_id": payout_id}
        if details:
            full_details.update(details)
        super().__init__(
            code=SettlementCode.LEDGER_INCONSISTENT,
            message=message,
            error_type="LedgerInconsistencyError",
            details=full_details,
            message_key="ledger.inconsistent",
        )


# --- payouts -----------------------------------------------------------------


class PayoutNotFoundError(BusinessException):
    def __init__(self, payout_id: str):
        super().__init__(
            code=SettlementCode.PAYOUT_NOT_FOUND,
            message=f"Payout not found: {payout_id}",
            error_type="PayoutNotFound",
            details={"payout_id": payout_id},
            message_key="payout.not_found",
        )


class VendorNotFoundError(BusinessException):
    def __init__(self, vendor_id: str):
        super().__init__(
            code=SettlementCode.VENDOR_NOT_FOUND,
            message=f"Vendor payout profile not found: {vendor_id}",
            error_type="VendorNotFound",
            details={"vendor_id": vendor_id},
            message_key="vendor.not_found",
        )


class InvalidStateError(BusinessException):
    """A payout or commission is not in the state an operation requires.

    Usually means another worker got there first.
    """

    def __init__(self, entity: str, entity_id: str, status: Optional[str], *, expected: Sequence[str] = ()):
        super().__init__(
            code=SettlementCode.INVALID_PAYOUT_STATE,
            message=f"{entity} {entity_id} is {status or 'unknown'}, expected one of {list(expected)}",
            error_type="InvalidStateError",
            details={"entity": entity, "id": entity_id, "status": status, "expected": list(expected)},
            field="status",
            message_key="state.invalid",
        )


class BelowMinimumPayoutError(BusinessException):
    def __init__(self, vendor_id: str, available: Decimal, minimum: Decimal):
        super().__init__(
            code=SettlementCode.BELOW_MINIMUM_PAYOUT,
            message=f"Payout of {available} is below the minimum of {minimum}",
            error_type="BelowMinimumPayout",
            details={"vendor_id": vendor_id, "available": str(available), "minimum": str(minimum)},
            field="amount",
            message_key="payout.below_minimum",
        )


# --- payout rail failures ------------------------------------------------------


class TransferError(BusinessException):
    """Typed failure returned by a payout gateway."""

    retryable: bool = True

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        code: int = SettlementCode.TRANSFER_FAILED,
        details: Optional[dict] = None,
    ):
        self.provider = provider
        self.provider_code = provider_code
        full_details = {"provider": provider, "provider_code": provider_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=code,
            message=message,
            error_type=type(self).__name__,
            details=full_details,
        )


class TransferDeclinedError(TransferError):
    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(message, provider=provider, provider_code=provider_code,
                         code=SettlementCode.TRANSFER_DECLINED, details=details)


class InsufficientPlatformBalanceError(TransferError):
    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(message, provider=provider, provider_code=provider_code,
                         code=SettlementCode.INSUFFICIENT_PLATFORM_BALANCE, details=details)


class TransferNetworkError(TransferError):
    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(message, provider=provider, provider_code=provider_code,
                         code=SettlementCode.TRANSFER_NETWORK_ERROR, details=details)


class TransferTimeoutError(TransferError):
    """The call did not answer in time; the transfer may or may not exist."""

    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        super().__init__(message, provider=provider, code=SettlementCode.TRANSFER_TIMEOUT, details=details)


class InvalidDestinationError(TransferError):
    retryable = False

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(message, provider=provider, provider_code=provider_code,
                         code=SettlementCode.INVALID_DESTINATION, details=details)
