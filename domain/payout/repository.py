"""
打款仓储接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from .entity import Payout, PayoutStatus


class PayoutRepository(ABC):
    """打款单仓储；状态迁移一律走 transition 条件更新"""

    @abstractmethod
    async def add(self, payout: Payout) -> Payout:
        pass

    @abstractmethod
    async def get_by_id(self, payout_id: str) -> Optional[Payout]:
        pass

    @abstractmethod
    async def claim(self, payout_id: str, from_status: PayoutStatus, now: datetime) -> bool:
        """from_status -> PROCESSING；PENDING 时还要求 next_attempt_at 已到期"""
        pass

    @abstractmethod
    async def transition(
        self,
        payout_id: str,
        from_status: PayoutStatus,
        to_status: PayoutStatus,
        **changes,
    ) -> bool:
        """比较并交换状态，同时写入 changes 中的字段；返回是否生效"""
        pass

    @abstractmethod
    async def list_due_ids(self, now: datetime, limit: int = 100) -> List[str]:
        """PENDING 且 next_attempt_at 为空或已到期，按 created_at 升序"""
        pass

    @abstractmethod
    async def list_stuck_ids(self, older_than: datetime, limit: int = 100) -> List[str]:
        """PROCESSING 且 claimed_at 早于 older_than"""
        pass

    @abstractmethod
    async def list_by_vendor(
        self,
        vendor_id: str,
        *,
        statuses: Optional[Sequence[PayoutStatus]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Payout]:
        pass

    @abstractmethod
    async def count_by_vendor(self, vendor_id: str, *, statuses: Optional[Sequence[PayoutStatus]] = None) -> int:
        pass

    @abstractmethod
    async def open_amounts_by_vendor(self) -> Dict[str, Decimal]:
        """PENDING/PROCESSING/FAILED 打款按商家汇总"""
        pass
