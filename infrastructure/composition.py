"""
Wires settlement services from settings.

The API keeps one container for the process lifetime. Celery tasks build a
short-lived one per run because every ``asyncio.run`` gets a fresh loop and
pooled connections cannot cross loops.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from application.ports.notifications import OperatorAlerts, PayoutNotifier
from application.ports.payout_gateway import PayoutGateway
from application.services.commission_service import CommissionService
from application.services.payout_processor import PayoutProcessor
from application.services.payout_scheduler import PayoutScheduler
from application.services.rate_table_loader import RateTableProvider
from core.config import settings
from core.settings import SettlementSettings, settlement_settings
from domain.payout.retry import RetryPolicy
from domain.vendor.entity import PayoutMethod
from infrastructure.database import AsyncSessionLocal, build_engine
from infrastructure.external.notifications import CeleryPayoutNotifier, LoggingOperatorAlerts
from infrastructure.external.payouts import PayoutGatewayRegistry
from infrastructure.unit_of_work import uow_factory


@dataclass
class SettlementContainer:
    rates: RateTableProvider
    commission_service: CommissionService
    scheduler: PayoutScheduler
    processor: PayoutProcessor
    gateways: PayoutGatewayRegistry | Callable[[PayoutMethod], PayoutGateway]

    async def aclose(self) -> None:
        close = getattr(self.gateways, "aclose", None)
        if close is not None:
            await close()


def build_container(
    session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
    *,
    config: SettlementSettings = settlement_settings,
    gateways: Optional[Callable[[PayoutMethod], PayoutGateway]] = None,
    notifier: Optional[PayoutNotifier] = None,
    alerts: Optional[OperatorAlerts] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> SettlementContainer:
    make_uow = uow_factory(session_factory)
    alerts = alerts or LoggingOperatorAlerts()
    gateways = gateways or PayoutGatewayRegistry()
    clock_kwargs = {"clock": clock} if clock is not None else {}

    rates = RateTableProvider(make_uow, default_rate=config.default_rate, tier_rates=config.tier_rates)
    commission_service = CommissionService(
        make_uow, rates, alerts, minor_unit_exponent=config.minor_unit_exponent, **clock_kwargs
    )
    scheduler = PayoutScheduler(
        make_uow,
        alerts,
        max_retries=config.retry.max_retries,
        concurrency=config.workers.scheduler_concurrency,
        batch_size=config.workers.batch_size,
    )
    processor = PayoutProcessor(
        make_uow,
        gateways,
        notifier or CeleryPayoutNotifier(),
        alerts,
        retry_policy=RetryPolicy(
            max_retries=config.retry.max_retries,
            base_seconds=config.retry.base_backoff_seconds,
            max_seconds=config.retry.max_backoff_seconds,
        ),
        timeout_seconds=config.timeouts.total,
        concurrency=config.workers.processor_concurrency,
        batch_size=config.workers.batch_size,
        stale_after=timedelta(seconds=config.workers.stale_processing_seconds),
        **clock_kwargs,
    )
    return SettlementContainer(
        rates=rates,
        commission_service=commission_service,
        scheduler=scheduler,
        processor=processor,
        gateways=gateways,
    )


@asynccontextmanager
async def task_container() -> AsyncIterator[SettlementContainer]:
    """Container bound to a private engine, disposed on exit."""
    engine = build_engine(settings.database.url, echo=settings.database.echo)
    container = build_container(async_sessionmaker(bind=engine, expire_on_commit=False))
    try:
        yield container
    finally:
        try:
            await container.aclose()
        finally:
            await engine.dispose()
