"""
佣金数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，业务规则在 domain.commission.entity.Commission 中
"""
from sqlalchemy import Column, String, Numeric, DateTime, JSON, Index, text
from datetime import datetime, timezone

from .base import Base


class CommissionModel(Base):
    """佣金账本表"""
    __tablename__ = "commissions"

    id = Column(String(36), primary_key=True, comment="佣金ID (UUID)")

    order_id = Column(String(100), nullable=False, index=True, comment="订单ID")
    vendor_id = Column(String(100), nullable=False, index=True, comment="商家ID")

    # 金额信息（使用 Numeric 存储精确金额）
    gross_amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="订单总额")
    rate = Column(Numeric(precision=6, scale=4), nullable=False, comment="佣金费率")
    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="佣金金额")
    net_amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="商家应得金额")
    rate_source = Column(String(50), nullable=False, comment="费率来源")

    status = Column(
        String(20),
        nullable=False,
        default="calculated",
        index=True,
        comment="佣金状态: calculated/reserved/paid/cancelled"
    )
    payout_id = Column(String(36), nullable=True, index=True, comment="关联打款单ID")

    calculated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="计算时间"
    )
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="打款完成时间")
    cancelled_at = Column(DateTime(timezone=True), nullable=True, comment="取消时间")

    breakdown = Column(JSON, nullable=True, comment="计算明细")

    __table_args__ = (
        # 同一订单/商家最多一条未取消的佣金
        Index(
            "uq_commissions_order_vendor_active",
            "order_id",
            "vendor_id",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
        Index("ix_commissions_vendor_status_calculated", "vendor_id", "status", "calculated_at"),
    )

    def __repr__(self):
        return (
            f"<CommissionModel(id='{self.id}', order_id='{self.order_id}', "
            f"vendor_id='{self.vendor_id}', amount={self.amount}, status='{self.status}')>"
        )
