"""
Builds immutable ``RateTable`` snapshots from persisted rules plus settings.

Resolvers only ever see a complete table; a refresh swaps the reference.
"""
from __future__ import annotations

import asyncio
import time
from decimal import Decimal
from typing import Callable, Mapping, Optional

from core.logging_config import get_logger
from domain.commission.rates import RateTable
from domain.common.unit_of_work import AbstractUnitOfWork


logger = get_logger(__name__)


class RateTableProvider:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        default_rate: Optional[Decimal],
        tier_rates: Mapping[str, Decimal],
        ttl_seconds: float = 60.0,
    ) -> None:
        self._uow_factory = uow_factory
        self._default_rate = default_rate
        self._tier_rates = dict(tier_rates)
        self._ttl = ttl_seconds
        self._table: Optional[RateTable] = None
        self._loaded_at = 0.0
        self._lock = asyncio.Lock()

    async def load(self) -> RateTable:
        async with self._uow_factory(readonly=True) as uow:
            rules = await uow.rate_rule_repository.list_all()
        table = RateTable.build(default_rate=self._default_rate, tier_rates=self._tier_rates, rules=rules)
        logger.info("rate_table_loaded", rules=len(table.rules), tiers=len(table.tier_rates))
        return table

    async def current(self) -> RateTable:
        table = self._table
        if table is not None and time.monotonic() - self._loaded_at < self._ttl:
            return table
        async with self._lock:
            if self._table is None or time.monotonic() - self._loaded_at >= self._ttl:
                self._table = await self.load()
                self._loaded_at = time.monotonic()
            return self._table

    def invalidate(self) -> None:
        self._table = None
