"""SQLAlchemy Unit of Work 实现"""
from __future__ import annotations

from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.commission_repository import SQLAlchemyCommissionRepository
from infrastructure.repositories.payout_repository import SQLAlchemyPayoutRepository
from infrastructure.repositories.rate_rule_repository import SQLAlchemyRateRuleRepository
from infrastructure.repositories.vendor_repository import SQLAlchemyVendorRepository


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """基于SQLAlchemy的Unit of Work

    进入时开启事务，正常退出提交，异常退出回滚；同一 UoW 内的条件更新共享一个事务。
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self.commission_repository = SQLAlchemyCommissionRepository(self.session)
        self.payout_repository = SQLAlchemyPayoutRepository(self.session)
        self.vendor_repository = SQLAlchemyVendorRepository(self.session)
        self.rate_rule_repository = SQLAlchemyRateRuleRepository(self.session)
        # 仅在非只读模式下显式开启事务
        if not self._readonly:
            self._transaction = await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            tx = getattr(self, "_transaction", None)
            if tx is not None and tx.is_active:
                await tx.rollback()
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            self.commission_repository = None
            self.payout_repository = None
            self.vendor_repository = None
            self.rate_rule_repository = None

    async def commit(self) -> None:
        if self._readonly:
            # 只读情况下不提交
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False


def uow_factory(session_factory: Callable[[], AsyncSession] = AsyncSessionLocal) -> Callable[..., SQLAlchemyUnitOfWork]:
    """返回一个按需创建 UoW 的工厂，供应用服务注入"""

    def _make(*, readonly: bool = False) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory, readonly=readonly)

    return _make
