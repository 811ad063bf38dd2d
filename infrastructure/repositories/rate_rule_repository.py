"""
佣金费率规则仓储实现
"""
from decimal import Decimal
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.commission.rate_repository import RateRuleRepository
from domain.commission.rates import RateRule
from infrastructure.models.commission_rate_rule import CommissionRateRuleModel


logger = get_logger(__name__)


class SQLAlchemyRateRuleRepository(RateRuleRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: CommissionRateRuleModel) -> RateRule:
        return RateRule(
            id=model.id,
            vendor_id=model.vendor_id,
            category_id=model.category_id,
            rate=Decimal(str(model.rate)),
            effective_from=model.effective_from,
            effective_to=model.effective_to,
        )

    async def add(self, rule: RateRule) -> RateRule:
        model = CommissionRateRuleModel(
            vendor_id=rule.vendor_id,
            category_id=rule.category_id,
            rate=rule.rate,
            effective_from=rule.effective_from,
            effective_to=rule.effective_to,
        )
        self.session.add(model)
        await self.session.flush()
        await self.session.refresh(model)
        logger.info(
            "commission_rate_rule_created",
            rule_id=model.id,
            vendor_id=model.vendor_id,
            category_id=model.category_id,
            rate=str(model.rate),
        )
        return self._to_entity(model)

    async def list_all(self) -> List[RateRule]:
        result = await self.session.execute(
            select(CommissionRateRuleModel).order_by(CommissionRateRuleModel.id.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_by_vendor(self, vendor_id: str) -> List[RateRule]:
        result = await self.session.execute(
            select(CommissionRateRuleModel)
            .where(CommissionRateRuleModel.vendor_id == vendor_id)
            .order_by(CommissionRateRuleModel.effective_from.desc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]
