"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.commission.rate_repository import RateRuleRepository
from domain.commission.repository import CommissionRepository
from domain.payout.repository import PayoutRepository
from domain.vendor.repository import VendorRepository


class AbstractUnitOfWork(ABC):
    """应用层事务边界控制抽象

    跨记录的写操作（创建打款+锁定佣金、完成打款+佣金置为已付、取消+释放）必须在同一个 UoW 内完成。
    """

    commission_repository: CommissionRepository
    payout_repository: PayoutRepository
    vendor_repository: VendorRepository
    rate_rule_repository: RateRuleRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.commission_repository = None  # type: ignore[assignment]
        self.payout_repository = None  # type: ignore[assignment]
        self.vendor_repository = None  # type: ignore[assignment]
        self.rate_rule_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # 只在非只读且未显式提交时自动提交
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""
