"""
商家打款配置仓储实现
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.vendor.entity import (
    PayoutFrequency,
    PayoutMethod,
    SubscriptionTier,
    VendorPayoutProfile,
    ensure_utc,
)
from domain.vendor.repository import VendorRepository
from infrastructure.models.vendor_payout_profile import VendorPayoutProfileModel


logger = get_logger(__name__)


class SQLAlchemyVendorRepository(VendorRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: VendorPayoutProfileModel) -> VendorPayoutProfile:
        return VendorPayoutProfile(
            vendor_id=model.vendor_id,
            subscription_tier=SubscriptionTier(model.subscription_tier) if model.subscription_tier else None,
            custom_rate=Decimal(str(model.custom_rate)) if model.custom_rate is not None else None,
            payout_frequency=PayoutFrequency(model.payout_frequency),
            minimum_payout=Decimal(str(model.minimum_payout)),
            payout_method=PayoutMethod(model.payout_method),
            payout_destination=model.payout_destination,
            currency=model.currency,
            is_active=model.is_active,
            next_payout_date=model.next_payout_date,
            last_payout_date=model.last_payout_date,
        )

    async def get_by_id(self, vendor_id: str) -> Optional[VendorPayoutProfile]:
        result = await self.session.execute(
            select(VendorPayoutProfileModel)
            .where(VendorPayoutProfileModel.vendor_id == vendor_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_due_vendor_ids(self, now: datetime, limit: int = 500) -> List[str]:
        result = await self.session.execute(
            select(VendorPayoutProfileModel.vendor_id)
            .where(
                VendorPayoutProfileModel.is_active.is_(True),
                or_(
                    VendorPayoutProfileModel.next_payout_date.is_(None),
                    VendorPayoutProfileModel.next_payout_date <= ensure_utc(now),
                ),
            )
            .order_by(VendorPayoutProfileModel.next_payout_date.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def advance_next_payout_date(
        self,
        vendor_id: str,
        expected: Optional[datetime],
        new_date: datetime,
    ) -> bool:
        query = update(VendorPayoutProfileModel).where(VendorPayoutProfileModel.vendor_id == vendor_id)
        if expected is None:
            query = query.where(VendorPayoutProfileModel.next_payout_date.is_(None))
        else:
            query = query.where(VendorPayoutProfileModel.next_payout_date == ensure_utc(expected))
        result = await self.session.execute(
            query.values(next_payout_date=ensure_utc(new_date))
            .execution_options(synchronize_session=False)
        )
        moved = result.rowcount == 1
        logger.info(
            "vendor_next_payout_date_advanced" if moved else "vendor_next_payout_date_contended",
            vendor_id=vendor_id,
            expected=expected.isoformat() if expected else None,
            new_date=new_date.isoformat(),
        )
        return moved

    async def set_last_payout_date(self, vendor_id: str, paid_at: datetime) -> None:
        await self.session.execute(
            update(VendorPayoutProfileModel)
            .where(VendorPayoutProfileModel.vendor_id == vendor_id)
            .values(last_payout_date=ensure_utc(paid_at))
            .execution_options(synchronize_session=False)
        )
