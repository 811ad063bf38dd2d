"""create_settlement_tables

Revision ID: 3b6f1c2d8e41
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b6f1c2d8e41'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'vendor_payout_profiles',
        sa.Column('vendor_id', sa.String(length=100), nullable=False, comment='商家ID'),
        sa.Column('subscription_tier', sa.String(length=20), nullable=True, comment='订阅等级: basic/premium/enterprise'),
        sa.Column('custom_rate', sa.Numeric(precision=6, scale=4), nullable=True, comment='自定义佣金费率'),
        sa.Column('payout_frequency', sa.String(length=20), nullable=False, server_default='weekly', comment='打款频率: daily/weekly/monthly'),
        sa.Column('minimum_payout', sa.Numeric(precision=15, scale=2), nullable=False, server_default='50', comment='最低打款金额'),
        sa.Column('payout_method', sa.String(length=50), nullable=False, server_default='stripe', comment='打款渠道'),
        sa.Column('payout_destination', sa.String(length=200), nullable=True, comment='收款账户'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD', comment='货币代码'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true(), comment='是否启用'),
        sa.Column('next_payout_date', sa.DateTime(timezone=True), nullable=True, comment='下次打款时间'),
        sa.Column('last_payout_date', sa.DateTime(timezone=True), nullable=True, comment='上次打款完成时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('vendor_id'),
        comment='商家打款配置',
    )
    op.create_index('ix_vendor_payout_profiles_is_active', 'vendor_payout_profiles', ['is_active'])
    op.create_index('ix_vendor_payout_profiles_active_next', 'vendor_payout_profiles', ['is_active', 'next_payout_date'])

    op.create_table(
        'commission_rate_rules',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('vendor_id', sa.String(length=100), nullable=False, comment='商家ID'),
        sa.Column('category_id', sa.String(length=100), nullable=True, comment='类目ID，为空表示商家全局规则'),
        sa.Column('rate', sa.Numeric(precision=6, scale=4), nullable=False, comment='佣金费率'),
        sa.Column('effective_from', sa.DateTime(timezone=True), nullable=False, comment='生效时间'),
        sa.Column('effective_to', sa.DateTime(timezone=True), nullable=True, comment='失效时间（不含）'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('rate >= 0 AND rate <= 1', name='ck_commission_rate_rules_rate_range'),
    )
    op.create_index('ix_commission_rate_rules_vendor_id', 'commission_rate_rules', ['vendor_id'])
    op.create_index('ix_commission_rate_rules_vendor_category', 'commission_rate_rules', ['vendor_id', 'category_id'])

    op.create_table(
        'commissions',
        sa.Column('id', sa.String(length=36), nullable=False, comment='佣金ID (UUID)'),
        sa.Column('order_id', sa.String(length=100), nullable=False, comment='订单ID'),
        sa.Column('vendor_id', sa.String(length=100), nullable=False, comment='商家ID'),
        sa.Column('gross_amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='订单总额'),
        sa.Column('rate', sa.Numeric(precision=6, scale=4), nullable=False, comment='佣金费率'),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='佣金金额'),
        sa.Column('net_amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='商家应得金额'),
        sa.Column('rate_source', sa.String(length=50), nullable=False, comment='费率来源'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='calculated', comment='佣金状态: calculated/reserved/paid/cancelled'),
        sa.Column('payout_id', sa.String(length=36), nullable=True, comment='关联打款单ID'),
        sa.Column('calculated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='计算时间'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True, comment='打款完成时间'),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True, comment='取消时间'),
        sa.Column('breakdown', sa.JSON(), nullable=True, comment='计算明细'),
        sa.PrimaryKeyConstraint('id'),
        comment='佣金账本',
    )
    op.create_index('ix_commissions_order_id', 'commissions', ['order_id'])
    op.create_index('ix_commissions_vendor_id', 'commissions', ['vendor_id'])
    op.create_index('ix_commissions_status', 'commissions', ['status'])
    op.create_index('ix_commissions_payout_id', 'commissions', ['payout_id'])
    op.create_index('ix_commissions_vendor_status_calculated', 'commissions', ['vendor_id', 'status', 'calculated_at'])
    # 同一订单/商家最多一条未取消的佣金
    op.create_index(
        'uq_commissions_order_vendor_active',
        'commissions',
        ['order_id', 'vendor_id'],
        unique=True,
        postgresql_where=sa.text("status <> 'cancelled'"),
    )

    op.create_table(
        'payouts',
        sa.Column('id', sa.String(length=36), nullable=False, comment='打款ID (UUID)，兼作幂等键'),
        sa.Column('vendor_id', sa.String(length=100), nullable=False, comment='商家ID'),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='打款金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD', comment='货币代码 ISO-4217'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='打款状态: pending/processing/completed/failed/cancelled'),
        sa.Column('payment_method', sa.String(length=50), nullable=False, comment='打款渠道: stripe/bank_transfer/sandbox'),
        sa.Column('provider_transaction_id', sa.String(length=200), nullable=True, comment='渠道交易ID'),
        sa.Column('failure_reason', sa.Text(), nullable=True, comment='失败原因'),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0', comment='已重试次数'),
        sa.Column('max_retries', sa.Integer(), nullable=False, server_default='3', comment='最大重试次数'),
        sa.Column('scheduled_date', sa.DateTime(timezone=True), nullable=False, comment='计划打款时间'),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=True, comment='下次尝试时间'),
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True, comment='被 worker 认领的时间'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True, comment='处理完成时间'),
        sa.Column('metadata', sa.JSON(), nullable=False, comment='打款元数据'),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount > 0', name='ck_payouts_amount_positive'),
        sa.CheckConstraint('retry_count >= 0 AND retry_count <= max_retries', name='ck_payouts_retry_bounds'),
        comment='商家打款单',
    )
    op.create_index('ix_payouts_vendor_id', 'payouts', ['vendor_id'])
    op.create_index('ix_payouts_status', 'payouts', ['status'])
    op.create_index('ix_payouts_provider_transaction_id', 'payouts', ['provider_transaction_id'])
    op.create_index('ix_payouts_created_at', 'payouts', ['created_at'])
    op.create_index('ix_payouts_status_next_attempt', 'payouts', ['status', 'next_attempt_at'])
    op.create_index('ix_payouts_vendor_status', 'payouts', ['vendor_id', 'status'])


def downgrade() -> None:
    op.drop_table('payouts')
    op.drop_index('uq_commissions_order_vendor_active', table_name='commissions')
    op.drop_table('commissions')
    op.drop_table('commission_rate_rules')
    op.drop_table('vendor_payout_profiles')
