"""
Settlement DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.types import condecimal

from domain.commission.entity import Commission
from domain.payout.entity import Payout

# Common ISO-4217 currencies (extend as needed)
ISO_4217 = {
    "USD", "EUR", "GBP", "CNY", "JPY", "KRW", "HKD", "AUD", "CAD", "SGD",
}


def _validate_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    if u not in ISO_4217:
        raise ValueError("unsupported currency")
    return u


# --- gateway boundary -------------------------------------------------------


class TransferRequest(BaseModel):
    """One outbound transfer. ``idempotency_key`` is the payout id and must be reused on every attempt."""

    model_config = ConfigDict(frozen=True)

    payout_id: str
    vendor_id: str
    destination: str
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str = "USD"
    idempotency_key: str
    description: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, v: str) -> str:
        return _validate_currency(v)


class TransferResult(BaseModel):
    provider: str
    provider_transaction_id: Optional[str] = None
    status: Literal["succeeded", "pending", "failed"]
    raw_status: Optional[str] = None
    failure_reason: Optional[str] = None


# --- inbound events / operator commands -----------------------------------------


class OrderSettled(BaseModel):
    order_id: str = Field(min_length=1, max_length=100)
    vendor_id: str = Field(min_length=1, max_length=100)
    gross_amount: Decimal
    settled_category_ids: list[str] = Field(default_factory=list)
    settled_at: Optional[datetime] = None


class OrderReversed(BaseModel):
    order_id: str = Field(min_length=1, max_length=100)
    vendor_id: str = Field(min_length=1, max_length=100)


class ManualPayoutRequest(BaseModel):
    amount: Optional[condecimal(gt=0)] = None  # type: ignore[valid-type]
    notes: Optional[str] = Field(default=None, max_length=500)
    requested_by: Optional[str] = Field(default=None, max_length=100)


class SetCommissionRateRequest(BaseModel):
    vendor_id: str = Field(min_length=1, max_length=100)
    category_id: Optional[str] = Field(default=None, max_length=100)
    rate: condecimal(ge=0, le=1)  # type: ignore[valid-type]
    effective_from: datetime
    effective_to: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_window(self):
        if self.effective_to is not None and self.effective_to <= self.effective_from:
            raise ValueError("effective_to must be after effective_from")
        return self


# --- read models -------------------------------------------------------------------


class CommissionOut(BaseModel):
    id: str
    order_id: str
    vendor_id: str
    gross_amount: Decimal
    rate: Decimal
    amount: Decimal
    net_amount: Decimal
    rate_source: str
    status: str
    payout_id: Optional[str] = None
    calculated_at: datetime
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, c: Commission) -> "CommissionOut":
        return cls(
            id=c.id,
            order_id=c.order_id,
            vendor_id=c.vendor_id,
            gross_amount=c.gross_amount,
            rate=c.rate,
            amount=c.amount,
            net_amount=c.net_amount,
            rate_source=c.rate_source.value,
            status=c.status.value,
            payout_id=c.payout_id,
            calculated_at=c.calculated_at,
            paid_at=c.paid_at,
            cancelled_at=c.cancelled_at,
        )


class PayoutOut(BaseModel):
    id: str
    vendor_id: str
    amount: Decimal
    currency: str
    status: str
    payment_method: str
    scheduled_date: datetime
    provider_transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None
    retry_count: int
    max_retries: int
    next_attempt_at: Optional[datetime] = None
    created_at: datetime
    processed_at: Optional[datetime] = None
    commission_ids: list[str]
    created_by: str
    notes: Optional[str] = None

    @classmethod
    def from_entity(cls, p: Payout) -> "PayoutOut":
        return cls(
            id=p.id,
            vendor_id=p.vendor_id,
            amount=p.amount,
            currency=p.currency,
            status=p.status.value,
            payment_method=p.payment_method.value,
            scheduled_date=p.scheduled_date,
            provider_transaction_id=p.provider_transaction_id,
            failure_reason=p.failure_reason,
            retry_count=p.retry_count,
            max_retries=p.max_retries,
            next_attempt_at=p.next_attempt_at,
            created_at=p.created_at,
            processed_at=p.processed_at,
            commission_ids=list(p.commission_ids),
            created_by=p.metadata.created_by.value,
            notes=p.metadata.notes,
        )


class RateRuleOut(BaseModel):
    id: Optional[int] = None
    vendor_id: str
    category_id: Optional[str] = None
    rate: Decimal
    effective_from: datetime
    effective_to: Optional[datetime] = None


class CommissionSummary(BaseModel):
    vendor_id: str
    start: datetime
    end: datetime
    commission_count: int
    total_gross: Decimal
    total_commission: Decimal
    total_net_payout: Decimal
    average_rate: Decimal


class VendorCommissionBreakdown(BaseModel):
    vendor_id: str
    commission_count: int
    total_gross: Decimal
    total_commission: Decimal
    total_net_payout: Decimal


class CommissionReport(BaseModel):
    start: datetime
    end: datetime
    commission_count: int
    total_gross: Decimal
    total_commission: Decimal
    total_net_payout: Decimal
    # commission is treated as the platform's net revenue
    net_revenue: Decimal
    vendors: list[VendorCommissionBreakdown]


class PendingPayoutTotal(BaseModel):
    vendor_id: str
    unpaid_commission_total: Decimal
    open_payout_total: Decimal
    commission_count: int
