"""
打款数据库模型
"""
from sqlalchemy import CheckConstraint, Column, Integer, String, Numeric, DateTime, Text, JSON, Index
from datetime import datetime, timezone

from .base import Base


class PayoutModel(Base):
    """打款单表，id 同时用作支付通道幂等键"""
    __tablename__ = "payouts"

    id = Column(String(36), primary_key=True, comment="打款ID (UUID)")
    vendor_id = Column(String(100), nullable=False, index=True, comment="商家ID")

    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="打款金额")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码 ISO-4217")

    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="打款状态: pending/processing/completed/failed/cancelled"
    )
    payment_method = Column(String(50), nullable=False, comment="打款渠道: stripe/bank_transfer/sandbox")
    provider_transaction_id = Column(String(200), nullable=True, index=True, comment="渠道交易ID")

    failure_reason = Column(Text, nullable=True, comment="失败原因")
    retry_count = Column(Integer, nullable=False, default=0, comment="已重试次数")
    max_retries = Column(Integer, nullable=False, default=3, comment="最大重试次数")

    scheduled_date = Column(DateTime(timezone=True), nullable=False, comment="计划打款时间")
    next_attempt_at = Column(DateTime(timezone=True), nullable=True, comment="下次尝试时间")
    claimed_at = Column(DateTime(timezone=True), nullable=True, comment="被 worker 认领的时间")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )
    processed_at = Column(DateTime(timezone=True), nullable=True, comment="处理完成时间")

    # 使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突
    extra_metadata = Column("metadata", JSON, nullable=False, comment="打款元数据")

    __table_args__ = (
        Index("ix_payouts_status_next_attempt", "status", "next_attempt_at"),
        Index("ix_payouts_vendor_status", "vendor_id", "status"),
        CheckConstraint("amount > 0", name="ck_payouts_amount_positive"),
        CheckConstraint("retry_count >= 0 AND retry_count <= max_retries", name="ck_payouts_retry_bounds"),
    )

    def __repr__(self):
        return (
            f"<PayoutModel(id='{self.id}', vendor_id='{self.vendor_id}', "
            f"amount={self.amount}, status='{self.status}')>"
        )
