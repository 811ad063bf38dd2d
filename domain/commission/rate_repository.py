"""
佣金费率规则仓储接口
"""
from abc import ABC, abstractmethod
from typing import List

from .rates import RateRule


class RateRuleRepository(ABC):

    @abstractmethod
    async def add(self, rule: RateRule) -> RateRule:
        pass

    @abstractmethod
    async def list_all(self) -> List[RateRule]:
        """全部规则（含已过期的，晚到的订单事件仍按结算时间取费率），用于构建 RateTable"""
        pass

    @abstractmethod
    async def list_by_vendor(self, vendor_id: str) -> List[RateRule]:
        pass
