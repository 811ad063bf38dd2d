"""
打款仓储实现 - 使用SQLAlchemy实现数据访问
"""
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.payout.entity import Payout, PayoutMetadata, PayoutStatus
from domain.payout.repository import PayoutRepository
from domain.vendor.entity import PayoutMethod, ensure_utc
from infrastructure.models.payout import PayoutModel


logger = get_logger(__name__)

OPEN_STATUSES = (PayoutStatus.PENDING, PayoutStatus.PROCESSING, PayoutStatus.FAILED)
_DATETIME_FIELDS = {"next_attempt_at", "claimed_at", "processed_at", "scheduled_date"}


class SQLAlchemyPayoutRepository(PayoutRepository):
    """打款仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PayoutModel) -> Payout:
        return Payout(
            id=model.id,
            vendor_id=model.vendor_id,
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            payment_method=PayoutMethod(model.payment_method),
            scheduled_date=model.scheduled_date,
            metadata=PayoutMetadata.from_dict(model.extra_metadata),
            status=PayoutStatus(model.status),
            provider_transaction_id=model.provider_transaction_id,
            failure_reason=model.failure_reason,
            retry_count=model.retry_count,
            max_retries=model.max_retries,
            next_attempt_at=model.next_attempt_at,
            claimed_at=model.claimed_at,
            created_at=model.created_at,
            processed_at=model.processed_at,
        )

    def _to_model(self, entity: Payout) -> PayoutModel:
        return PayoutModel(
            id=entity.id,
            vendor_id=entity.vendor_id,
            amount=entity.amount,
            currency=entity.currency,
            payment_method=entity.payment_method.value,
            scheduled_date=entity.scheduled_date,
            extra_metadata=entity.metadata.to_dict(),
            status=entity.status.value,
            provider_transaction_id=entity.provider_transaction_id,
            failure_reason=entity.failure_reason,
            retry_count=entity.retry_count,
            max_retries=entity.max_retries,
            next_attempt_at=entity.next_attempt_at,
            claimed_at=entity.claimed_at,
            created_at=entity.created_at,
            processed_at=entity.processed_at,
        )

    async def add(self, payout: Payout) -> Payout:
        """创建打款单"""
        db_payout = self._to_model(payout)
        self.session.add(db_payout)
        await self.session.flush()
        await self.session.refresh(db_payout)
        logger.info(
            "payout_created",
            payout_id=db_payout.id,
            vendor_id=db_payout.vendor_id,
            amount=str(db_payout.amount),
            commissions=len(payout.commission_ids),
        )
        return self._to_entity(db_payout)

    async def get_by_id(self, payout_id: str) -> Optional[Payout]:
        # populate_existing: 条件更新不同步会话缓存，读取时总以数据库为准
        result = await self.session.execute(
            select(PayoutModel)
            .where(PayoutModel.id == payout_id)
            .execution_options(populate_existing=True)
        )
        db_payout = result.scalar_one_or_none()
        return self._to_entity(db_payout) if db_payout else None

    async def claim(self, payout_id: str, from_status: PayoutStatus, now: datetime) -> bool:
        now = ensure_utc(now)
        query = update(PayoutModel).where(
            PayoutModel.id == payout_id,
            PayoutModel.status == from_status.value,
        )
        if from_status == PayoutStatus.PENDING:
            query = query.where(
                or_(PayoutModel.next_attempt_at.is_(None), PayoutModel.next_attempt_at <= now)
            )
        result = await self.session.execute(
            query.values(status=PayoutStatus.PROCESSING.value, claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        claimed = result.rowcount == 1
        if claimed:
            logger.info("payout_claimed", payout_id=payout_id, from_status=from_status.value)
        return claimed

    async def transition(
        self,
        payout_id: str,
        from_status: PayoutStatus,
        to_status: PayoutStatus,
        **changes,
    ) -> bool:
        values = {
            key: ensure_utc(value) if key in _DATETIME_FIELDS else value
            for key, value in changes.items()
        }
        values["status"] = to_status.value
        result = await self.session.execute(
            update(PayoutModel)
            .where(PayoutModel.id == payout_id, PayoutModel.status == from_status.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        moved = result.rowcount == 1
        if not moved:
            logger.warning(
                "payout_transition_rejected",
                payout_id=payout_id,
                from_status=from_status.value,
                to_status=to_status.value,
            )
        return moved

    async def list_due_ids(self, now: datetime, limit: int = 100) -> List[str]:
        now = ensure_utc(now)
        result = await self.session.execute(
            select(PayoutModel.id)
            .where(
                PayoutModel.status == PayoutStatus.PENDING.value,
                or_(PayoutModel.next_attempt_at.is_(None), PayoutModel.next_attempt_at <= now),
            )
            .order_by(PayoutModel.created_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_stuck_ids(self, older_than: datetime, limit: int = 100) -> List[str]:
        result = await self.session.execute(
            select(PayoutModel.id)
            .where(
                PayoutModel.status == PayoutStatus.PROCESSING.value,
                PayoutModel.claimed_at <= ensure_utc(older_than),
            )
            .order_by(PayoutModel.claimed_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_by_vendor(
        self,
        vendor_id: str,
        *,
        statuses: Optional[Sequence[PayoutStatus]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Payout]:
        query = select(PayoutModel).where(PayoutModel.vendor_id == vendor_id)
        if statuses:
            query = query.where(PayoutModel.status.in_([s.value for s in statuses]))
        query = query.order_by(PayoutModel.created_at.desc()).offset(offset).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(p) for p in result.scalars().all()]

    async def count_by_vendor(self, vendor_id: str, *, statuses: Optional[Sequence[PayoutStatus]] = None) -> int:
        query = select(func.count()).select_from(PayoutModel).where(PayoutModel.vendor_id == vendor_id)
        if statuses:
            query = query.where(PayoutModel.status.in_([s.value for s in statuses]))
        result = await self.session.execute(query)
        return int(result.scalar() or 0)

    async def open_amounts_by_vendor(self) -> Dict[str, Decimal]:
        # 在 Python 侧求和，避免 SQLite 把 Numeric 聚合成 float
        result = await self.session.execute(
            select(PayoutModel.vendor_id, PayoutModel.amount).where(
                PayoutModel.status.in_([s.value for s in OPEN_STATUSES])
            )
        )
        totals: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
        for vendor_id, amount in result.all():
            totals[vendor_id] += Decimal(str(amount))
        return dict(totals)
