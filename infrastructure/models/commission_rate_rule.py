"""
佣金费率规则模型
"""
from sqlalchemy import CheckConstraint, Column, Integer, String, Numeric, DateTime, Index
from datetime import datetime, timezone

from .base import Base


class CommissionRateRuleModel(Base):
    __tablename__ = "commission_rate_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    vendor_id = Column(String(100), nullable=False, index=True, comment="商家ID")
    category_id = Column(String(100), nullable=True, comment="类目ID，为空表示商家全局规则")
    rate = Column(Numeric(precision=6, scale=4), nullable=False, comment="佣金费率")
    effective_from = Column(DateTime(timezone=True), nullable=False, comment="生效时间")
    effective_to = Column(DateTime(timezone=True), nullable=True, comment="失效时间（不含）")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    __table_args__ = (
        Index("ix_commission_rate_rules_vendor_category", "vendor_id", "category_id"),
        CheckConstraint("rate >= 0 AND rate <= 1", name="ck_commission_rate_rules_rate_range"),
    )

    def __repr__(self):
        return (
            f"<CommissionRateRuleModel(id={self.id}, vendor_id='{self.vendor_id}', "
            f"category_id={self.category_id!r}, rate={self.rate})>"
        )
