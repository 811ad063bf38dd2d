"""
佣金计算 - 纯函数式领域服务，不访问存储
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_EVEN
from typing import Sequence

from domain.common.exceptions import InvalidAmountError
from domain.commission.rates import RateResolver, RateSource
from domain.vendor.entity import VendorPayoutProfile, ensure_utc


def minor_unit(exponent: int = 2) -> Decimal:
    return Decimal(1).scaleb(-exponent)


def round_minor(value: Decimal, exponent: int = 2) -> Decimal:
    """按货币最小单位银行家舍入"""
    return Decimal(value).quantize(minor_unit(exponent), rounding=ROUND_HALF_EVEN)


@dataclass(frozen=True)
class SettledOrder:
    """订单结算事件中与佣金相关的部分"""

    order_id: str
    vendor_id: str
    category_ids: tuple[str, ...] = ()
    settled_at: datetime | None = None


@dataclass(frozen=True)
class CommissionCalculation:
    order_id: str
    vendor_id: str
    gross_amount: Decimal
    rate: Decimal
    rate_source: RateSource
    commission_amount: Decimal
    net_payout: Decimal
    currency: str
    category_ids: tuple[str, ...]
    as_of: datetime


class CommissionCalculator:
    """
    Compute commission for one order/vendor pair.

    Identical inputs always produce identical outputs; a repeated order event
    is rejected by the ledger, not here.
    """

    def __init__(self, resolver: RateResolver, *, minor_unit_exponent: int = 2) -> None:
        self._resolver = resolver
        self._exponent = minor_unit_exponent

    def calculate(
        self,
        order: SettledOrder,
        vendor: VendorPayoutProfile,
        gross_amount: Decimal,
        *,
        as_of: datetime | None = None,
    ) -> CommissionCalculation:
        # 先按最小货币单位取整再校验，不足一分的金额视为非正
        gross = round_minor(Decimal(gross_amount), self._exponent)
        if gross <= 0:
            raise InvalidAmountError(Decimal(gross_amount), order_id=order.order_id)

        effective_at = ensure_utc(as_of or order.settled_at)
        if effective_at is None:
            raise ValueError("calculate() needs either as_of or order.settled_at")

        resolved = self._resolver.resolve(vendor, effective_at, order.category_ids)
        commission = round_minor(gross * resolved.rate, self._exponent)
        return CommissionCalculation(
            order_id=order.order_id,
            vendor_id=vendor.vendor_id,
            gross_amount=gross,
            rate=resolved.rate,
            rate_source=resolved.source,
            commission_amount=commission,
            net_payout=gross - commission,
            currency=vendor.currency,
            category_ids=tuple(order.category_ids),
            as_of=effective_at,
        )


def effective_rate(total_commission: Decimal, total_gross: Decimal, places: int = 4) -> Decimal:
    if not total_gross:
        return Decimal("0")
    return (Decimal(total_commission) / Decimal(total_gross)).quantize(
        Decimal(1).scaleb(-places), rounding=ROUND_HALF_EVEN
    )
