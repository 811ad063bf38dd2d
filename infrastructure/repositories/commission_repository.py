"""
佣金账本仓储实现 - 使用SQLAlchemy实现数据访问

所有状态迁移都是单条带状态条件的 UPDATE，受影响行数就是并发控制的依据。
"""
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.commission.entity import Commission, CommissionBreakdown, CommissionStatus
from domain.commission.rates import RateSource
from domain.commission.repository import CommissionRepository
from domain.common.exceptions import DuplicateCommissionError, StaleCommissionError
from domain.vendor.entity import ensure_utc
from infrastructure.models.commission import CommissionModel


logger = get_logger(__name__)


class SQLAlchemyCommissionRepository(CommissionRepository):
    """佣金账本的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: CommissionModel) -> Commission:
        """将数据库模型转换为领域实体"""
        return Commission(
            id=model.id,
            order_id=model.order_id,
            vendor_id=model.vendor_id,
            gross_amount=Decimal(str(model.gross_amount)),
            rate=Decimal(str(model.rate)),
            amount=Decimal(str(model.amount)),
            net_amount=Decimal(str(model.net_amount)),
            rate_source=RateSource(model.rate_source),
            status=CommissionStatus(model.status),
            payout_id=model.payout_id,
            calculated_at=model.calculated_at,
            paid_at=model.paid_at,
            cancelled_at=model.cancelled_at,
            breakdown=CommissionBreakdown.from_dict(model.breakdown),
        )

    def _to_model(self, entity: Commission) -> CommissionModel:
        """将领域实体转换为数据库模型"""
        return CommissionModel(
            id=entity.id,
            order_id=entity.order_id,
            vendor_id=entity.vendor_id,
            gross_amount=entity.gross_amount,
            rate=entity.rate,
            amount=entity.amount,
            net_amount=entity.net_amount,
            rate_source=entity.rate_source.value,
            status=entity.status.value,
            payout_id=entity.payout_id,
            calculated_at=entity.calculated_at,
            paid_at=entity.paid_at,
            cancelled_at=entity.cancelled_at,
            breakdown=entity.breakdown.to_dict(),
        )

    async def add(self, commission: Commission) -> Commission:
        """记录佣金"""
        try:
            db_commission = self._to_model(commission)
            self.session.add(db_commission)
            await self.session.flush()
            await self.session.refresh(db_commission)
            logger.info(
                "commission_recorded",
                commission_id=db_commission.id,
                order_id=db_commission.order_id,
                vendor_id=db_commission.vendor_id,
                amount=str(db_commission.amount),
                rate_source=db_commission.rate_source,
            )
            return self._to_entity(db_commission)
        except IntegrityError:
            await self.session.rollback()
            logger.warning(
                "commission_duplicate",
                order_id=commission.order_id,
                vendor_id=commission.vendor_id,
            )
            raise DuplicateCommissionError(commission.order_id, commission.vendor_id)

    async def get_by_id(self, commission_id: str) -> Optional[Commission]:
        result = await self.session.execute(
            select(CommissionModel).where(CommissionModel.id == commission_id)
        )
        db_commission = result.scalar_one_or_none()
        return self._to_entity(db_commission) if db_commission else None

    async def get_active_by_order(self, order_id: str, vendor_id: str) -> Optional[Commission]:
        result = await self.session.execute(
            select(CommissionModel).where(
                CommissionModel.order_id == order_id,
                CommissionModel.vendor_id == vendor_id,
                CommissionModel.status != CommissionStatus.CANCELLED.value,
            )
        )
        db_commission = result.scalar_one_or_none()
        return self._to_entity(db_commission) if db_commission else None

    async def list_unpaid(self, vendor_id: str, as_of: datetime) -> List[Commission]:
        """获取商家未结算佣金（最早的在前）"""
        result = await self.session.execute(
            select(CommissionModel)
            .where(
                CommissionModel.vendor_id == vendor_id,
                CommissionModel.status == CommissionStatus.CALCULATED.value,
                CommissionModel.payout_id.is_(None),
                CommissionModel.calculated_at <= ensure_utc(as_of),
            )
            .order_by(CommissionModel.calculated_at.asc(), CommissionModel.id.asc())
        )
        return [self._to_entity(c) for c in result.scalars().all()]

    async def reserve_for_payout(self, commission_ids: Sequence[str], payout_id: str) -> int:
        """把佣金锁定到打款单；任何一条已不是 CALCULATED 都视为竞争失败"""
        ids = list(dict.fromkeys(commission_ids))
        if not ids:
            return 0
        result = await self.session.execute(
            update(CommissionModel)
            .where(
                CommissionModel.id.in_(ids),
                CommissionModel.status == CommissionStatus.CALCULATED.value,
                CommissionModel.payout_id.is_(None),
            )
            .values(status=CommissionStatus.RESERVED.value, payout_id=payout_id)
            .execution_options(synchronize_session=False)
        )
        reserved = result.rowcount
        if reserved != len(ids):
            logger.warning(
                "commission_reservation_stale",
                payout_id=payout_id,
                expected=len(ids),
                reserved=reserved,
            )
            raise StaleCommissionError(payout_id, len(ids), reserved, commission_ids=ids)
        logger.info("commissions_reserved", payout_id=payout_id, count=reserved)
        return reserved

    async def mark_paid(self, payout_id: str, paid_at: datetime) -> int:
        result = await self.session.execute(
            update(CommissionModel)
            .where(
                CommissionModel.payout_id == payout_id,
                CommissionModel.status == CommissionStatus.RESERVED.value,
            )
            .values(status=CommissionStatus.PAID.value, paid_at=ensure_utc(paid_at))
            .execution_options(synchronize_session=False)
        )
        logger.info("commissions_marked_paid", payout_id=payout_id, count=result.rowcount)
        return result.rowcount

    async def release_reservation(self, payout_id: str) -> int:
        result = await self.session.execute(
            update(CommissionModel)
            .where(
                CommissionModel.payout_id == payout_id,
                CommissionModel.status == CommissionStatus.RESERVED.value,
            )
            .values(status=CommissionStatus.CALCULATED.value, payout_id=None)
            .execution_options(synchronize_session=False)
        )
        logger.info("commissions_released", payout_id=payout_id, count=result.rowcount)
        return result.rowcount

    async def list_by_payout(self, payout_id: str) -> List[Commission]:
        result = await self.session.execute(
            select(CommissionModel)
            .where(CommissionModel.payout_id == payout_id)
            .order_by(CommissionModel.calculated_at.asc(), CommissionModel.id.asc())
            .execution_options(populate_existing=True)
        )
        return [self._to_entity(c) for c in result.scalars().all()]

    async def cancel_for_order(self, order_id: str, vendor_id: str, cancelled_at: datetime) -> int:
        result = await self.session.execute(
            update(CommissionModel)
            .where(
                CommissionModel.order_id == order_id,
                CommissionModel.vendor_id == vendor_id,
                CommissionModel.status == CommissionStatus.CALCULATED.value,
            )
            .values(status=CommissionStatus.CANCELLED.value, cancelled_at=ensure_utc(cancelled_at))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info("commission_cancelled", order_id=order_id, vendor_id=vendor_id)
        return result.rowcount

    async def list_by_vendor(
        self,
        vendor_id: str,
        *,
        status: Optional[CommissionStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Commission]:
        query = select(CommissionModel).where(CommissionModel.vendor_id == vendor_id)
        if status:
            query = query.where(CommissionModel.status == status.value)
        query = query.order_by(CommissionModel.calculated_at.desc()).offset(offset).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(c) for c in result.scalars().all()]

    async def count_by_vendor(self, vendor_id: str, *, status: Optional[CommissionStatus] = None) -> int:
        query = select(func.count()).select_from(CommissionModel).where(CommissionModel.vendor_id == vendor_id)
        if status:
            query = query.where(CommissionModel.status == status.value)
        result = await self.session.execute(query)
        return int(result.scalar() or 0)

    async def list_between(
        self,
        start: datetime,
        end: datetime,
        *,
        vendor_id: Optional[str] = None,
    ) -> List[Commission]:
        query = select(CommissionModel).where(
            CommissionModel.calculated_at >= ensure_utc(start),
            CommissionModel.calculated_at <= ensure_utc(end),
            CommissionModel.status != CommissionStatus.CANCELLED.value,
        )
        if vendor_id:
            query = query.where(CommissionModel.vendor_id == vendor_id)
        result = await self.session.execute(query.order_by(CommissionModel.calculated_at.asc()))
        return [self._to_entity(c) for c in result.scalars().all()]

    async def unpaid_totals_by_vendor(self, as_of: datetime) -> Dict[str, Tuple[int, Decimal]]:
        # 在 Python 侧求和，避免 SQLite 把 Numeric 聚合成 float
        result = await self.session.execute(
            select(CommissionModel.vendor_id, CommissionModel.amount).where(
                CommissionModel.status == CommissionStatus.CALCULATED.value,
                CommissionModel.payout_id.is_(None),
                CommissionModel.calculated_at <= ensure_utc(as_of),
            )
        )
        totals: Dict[str, Tuple[int, Decimal]] = {}
        for vendor_id, amount in result.all():
            count, total = totals.get(vendor_id, (0, Decimal("0")))
            totals[vendor_id] = (count + 1, total + Decimal(str(amount)))
        return totals
