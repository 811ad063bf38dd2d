"""
佣金账本仓储接口

所有 status / payout_id 的写入都经过这里的条件更新，调用方依赖返回的受影响行数判断竞争。
"""
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from .entity import Commission, CommissionStatus


class CommissionRepository(ABC):
    """佣金账本"""

    @abstractmethod
    async def add(self, commission: Commission) -> Commission:
        """写入新佣金；(order_id, vendor_id) 已有未取消记录时抛出 DuplicateCommissionError"""
        pass

    @abstractmethod
    async def get_by_id(self, commission_id: str) -> Optional[Commission]:
        pass

    @abstractmethod
    async def get_active_by_order(self, order_id: str, vendor_id: str) -> Optional[Commission]:
        pass

    @abstractmethod
    async def list_unpaid(self, vendor_id: str, as_of: datetime) -> List[Commission]:
        """CALCULATED、未关联打款单且 calculated_at <= as_of，按时间升序"""
        pass

    @abstractmethod
    async def reserve_for_payout(self, commission_ids: Sequence[str], payout_id: str) -> int:
        """CALCULATED -> RESERVED；行数不符时抛出 StaleCommissionError"""
        pass

    @abstractmethod
    async def mark_paid(self, payout_id: str, paid_at: datetime) -> int:
        pass

    @abstractmethod
    async def release_reservation(self, payout_id: str) -> int:
        pass

    @abstractmethod
    async def list_by_payout(self, payout_id: str) -> List[Commission]:
        pass

    @abstractmethod
    async def cancel_for_order(self, order_id: str, vendor_id: str, cancelled_at: datetime) -> int:
        """仅取消 CALCULATED 状态的佣金，返回受影响行数"""
        pass

    @abstractmethod
    async def list_by_vendor(
        self,
        vendor_id: str,
        *,
        status: Optional[CommissionStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Commission]:
        pass

    @abstractmethod
    async def count_by_vendor(self, vendor_id: str, *, status: Optional[CommissionStatus] = None) -> int:
        pass

    @abstractmethod
    async def list_between(
        self,
        start: datetime,
        end: datetime,
        *,
        vendor_id: Optional[str] = None,
    ) -> List[Commission]:
        """报表用：区间内所有未取消佣金"""
        pass

    @abstractmethod
    async def unpaid_totals_by_vendor(self, as_of: datetime) -> Dict[str, Tuple[int, Decimal]]:
        """按商家汇总未结算佣金：(条数, amount 之和)"""
        pass
