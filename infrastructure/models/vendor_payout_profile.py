"""
商家打款配置模型

由商家管理模块维护；结算服务只写 next_payout_date / last_payout_date。
"""
from sqlalchemy import Column, String, Numeric, DateTime, Boolean, Index
from datetime import datetime, timezone

from .base import Base


class VendorPayoutProfileModel(Base):
    __tablename__ = "vendor_payout_profiles"

    vendor_id = Column(String(100), primary_key=True, comment="商家ID")

    subscription_tier = Column(String(20), nullable=True, comment="订阅等级: basic/premium/enterprise")
    custom_rate = Column(Numeric(precision=6, scale=4), nullable=True, comment="自定义佣金费率")

    payout_frequency = Column(String(20), nullable=False, default="weekly", comment="打款频率: daily/weekly/monthly")
    minimum_payout = Column(Numeric(precision=15, scale=2), nullable=False, default=50, comment="最低打款金额")
    payout_method = Column(String(50), nullable=False, default="stripe", comment="打款渠道")
    payout_destination = Column(String(200), nullable=True, comment="收款账户（Stripe 账户ID/银行账户）")
    currency = Column(String(3), nullable=False, default="USD", comment="货币代码")

    is_active = Column(Boolean, nullable=False, default=True, index=True, comment="是否启用")
    next_payout_date = Column(DateTime(timezone=True), nullable=True, comment="下次打款时间")
    last_payout_date = Column(DateTime(timezone=True), nullable=True, comment="上次打款完成时间")

    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        Index("ix_vendor_payout_profiles_active_next", "is_active", "next_payout_date"),
    )

    def __repr__(self):
        return f"<VendorPayoutProfileModel(vendor_id='{self.vendor_id}', frequency='{self.payout_frequency}')>"
