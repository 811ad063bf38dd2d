"""
打款领域实体 - 打款聚合根
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from domain.common.exceptions import DomainValidationException
from domain.vendor.entity import PayoutMethod, ensure_utc


class PayoutStatus(str, Enum):
    """打款状态枚举"""
    PENDING = "pending"         # 待处理（含退避等待中）
    PROCESSING = "processing"   # 已被某个 worker 认领
    COMPLETED = "completed"     # 打款成功
    FAILED = "failed"           # 重试耗尽或终止性失败
    CANCELLED = "cancelled"     # 已取消，佣金已释放


TERMINAL_STATUSES = frozenset({PayoutStatus.COMPLETED, PayoutStatus.CANCELLED})
CANCELLABLE_STATUSES = frozenset({PayoutStatus.PENDING, PayoutStatus.FAILED})


class PayoutOrigin(str, Enum):
    SCHEDULER = "scheduler"
    MANUAL = "manual"
    OPERATOR = "operator"


@dataclass(frozen=True)
class PayoutMetadata:
    """打款元数据（版本化的封闭记录）"""

    commission_ids: tuple[str, ...]
    created_by: PayoutOrigin
    notes: Optional[str] = None
    requested_by: Optional[str] = None
    version: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "commission_ids": list(self.commission_ids),
            "created_by": self.created_by.value,
            "notes": self.notes,
            "requested_by": self.requested_by,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "PayoutMetadata":
        data = data or {}
        version = int(data.get("version", 1))
        if version != 1:
            raise ValueError(f"Unsupported payout metadata version: {version}")
        return cls(
            commission_ids=tuple(data.get("commission_ids") or ()),
            created_by=PayoutOrigin(data.get("created_by", PayoutOrigin.SCHEDULER.value)),
            notes=data.get("notes"),
            requested_by=data.get("requested_by"),
            version=version,
        )


@dataclass
class Payout:
    """
    打款聚合根

    业务规则：
    1. amount > 0 且等于关联佣金 amount 之和（整个生命周期不变）
    2. 关联佣金集合在创建时确定，失败重试沿用同一打款单
    3. retry_count 不超过 max_retries
    4. id 同时作为支付通道的幂等键
    """

    vendor_id: str
    amount: Decimal
    currency: str
    payment_method: PayoutMethod
    scheduled_date: datetime
    metadata: PayoutMetadata
    status: PayoutStatus = PayoutStatus.PENDING
    provider_transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None
    retry_count: int = 0
    max_retries: int = 3
    next_attempt_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    processed_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self):
        if self.amount <= 0:
            raise DomainValidationException(f"Payout amount must be positive: {self.amount}", field="amount")
        if not self.metadata.commission_ids:
            raise DomainValidationException("Payout must link at least one commission", field="metadata")
        if self.retry_count < 0 or self.retry_count > self.max_retries:
            raise DomainValidationException(
                f"retry_count {self.retry_count} outside [0, {self.max_retries}]",
                field="retry_count",
            )
        self.scheduled_date = ensure_utc(self.scheduled_date)
        self.created_at = ensure_utc(self.created_at)
        self.processed_at = ensure_utc(self.processed_at)
        self.next_attempt_at = ensure_utc(self.next_attempt_at)
        self.claimed_at = ensure_utc(self.claimed_at)

    @property
    def idempotency_key(self) -> str:
        return self.id

    @property
    def commission_ids(self) -> tuple[str, ...]:
        return self.metadata.commission_ids

    @property
    def retries_left(self) -> int:
        return max(self.max_retries - self.retry_count, 0)

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
