"""
佣金领域实体 - 平台对单个订单/商家的抽成记录
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from domain.commission.calculator import CommissionCalculation
from domain.commission.rates import RateSource
from domain.vendor.entity import ensure_utc


class CommissionStatus(str, Enum):
    """佣金状态枚举"""
    CALCULATED = "calculated"   # 已计算，待结算
    RESERVED = "reserved"       # 已锁定到某个打款单
    PAID = "paid"               # 已打款
    CANCELLED = "cancelled"     # 订单冲正


@dataclass(frozen=True)
class CommissionBreakdown:
    """佣金计算明细（版本化的封闭记录，序列化为 JSON 存储）"""

    category_ids: tuple[str, ...] = ()
    rate_source: RateSource = RateSource.PLATFORM_DEFAULT
    currency: str = "USD"
    version: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "category_ids": list(self.category_ids),
            "rate_source": self.rate_source.value,
            "currency": self.currency,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "CommissionBreakdown":
        if not data:
            return cls()
        version = int(data.get("version", 1))
        if version != 1:
            raise ValueError(f"Unsupported commission breakdown version: {version}")
        return cls(
            category_ids=tuple(data.get("category_ids") or ()),
            rate_source=RateSource(data.get("rate_source", RateSource.PLATFORM_DEFAULT.value)),
            currency=data.get("currency", "USD"),
            version=version,
        )


@dataclass
class Commission:
    """
    佣金聚合根

    业务规则：
    1. amount = round(gross_amount * rate)，net_amount = gross_amount - amount
    2. 同一 (order_id, vendor_id) 最多一条非取消记录（由数据库唯一索引保证）
    3. 状态只通过账本的原子更新变化，从不删除
    """

    order_id: str
    vendor_id: str
    gross_amount: Decimal
    rate: Decimal
    amount: Decimal
    net_amount: Decimal
    rate_source: RateSource
    status: CommissionStatus = CommissionStatus.CALCULATED
    payout_id: Optional[str] = None
    calculated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    breakdown: CommissionBreakdown = field(default_factory=CommissionBreakdown)
    id: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self):
        self.calculated_at = ensure_utc(self.calculated_at)
        self.paid_at = ensure_utc(self.paid_at)
        self.cancelled_at = ensure_utc(self.cancelled_at)

    @classmethod
    def from_calculation(cls, calc: CommissionCalculation) -> "Commission":
        return cls(
            order_id=calc.order_id,
            vendor_id=calc.vendor_id,
            gross_amount=calc.gross_amount,
            rate=calc.rate,
            amount=calc.commission_amount,
            net_amount=calc.net_payout,
            rate_source=calc.rate_source,
            calculated_at=calc.as_of,
            breakdown=CommissionBreakdown(
                category_ids=calc.category_ids,
                rate_source=calc.rate_source,
                currency=calc.currency,
            ),
        )

    @property
    def is_unpaid(self) -> bool:
        return self.status == CommissionStatus.CALCULATED and self.payout_id is None
