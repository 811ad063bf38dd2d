"""Pytest bootstrap configuration.

Settings are read at import time, so the environment is pinned before any
application module is imported.
"""
import asyncio
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DEBUG", "false")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.pool import StaticPool

from application.dtos.settlement import OrderSettled, TransferResult
from application.services.commission_service import CommissionService
from application.services.payout_processor import PayoutProcessor
from application.services.payout_scheduler import PayoutScheduler
from application.services.rate_table_loader import RateTableProvider
from domain.payout.retry import RetryPolicy
from infrastructure.database import build_engine, create_tables, drop_tables
from infrastructure.models import VendorPayoutProfileModel
from infrastructure.unit_of_work import uow_factory


NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

TIER_RATES = {"basic": Decimal("0.10"), "premium": Decimal("0.08"), "enterprise": Decimal("0.05")}


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class ScriptedGateway:
    """Plays back a list of outcomes: a status string, an exception, or "hang"."""

    provider = "sandbox"

    def __init__(self, *outcomes, supports_lookup: bool = False, lookup_result=None):
        self.outcomes = list(outcomes)
        self.supports_lookup = supports_lookup
        self.lookup_result = lookup_result
        self.calls = []
        self.lookups = []

    async def pay(self, req):
        self.calls.append(req)
        outcome = self.outcomes.pop(0) if self.outcomes else "succeeded"
        if isinstance(outcome, Exception):
            raise outcome
        if outcome == "hang":
            await asyncio.sleep(3600)
        return TransferResult(
            provider=self.provider,
            provider_transaction_id=f"tx_{len(self.calls)}",
            status=outcome,
            raw_status=outcome,
        )

    async def lookup(self, idempotency_key):
        self.lookups.append(idempotency_key)
        return self.lookup_result

    async def aclose(self):
        return None


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.sent = []
        self.fail = fail

    async def notify_payout_outcome(self, vendor_id, payout_id, status, amount):
        self.sent.append((vendor_id, payout_id, status, amount))
        if self.fail:
            raise RuntimeError("notification channel down")


class RecordingAlerts:
    def __init__(self):
        self.events = []

    async def alert(self, event, **context):
        self.events.append((event, context))

    def names(self):
        return [e for e, _ in self.events]


@pytest_asyncio.fixture
async def engine():
    eng = build_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(bind=eng)
    yield eng
    await drop_tables(bind=eng)
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def make_uow(session_factory):
    return uow_factory(session_factory)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def alerts():
    return RecordingAlerts()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def add_vendor(session_factory):
    async def _add(vendor_id: str = "v1", **overrides):
        values = dict(
            vendor_id=vendor_id,
            subscription_tier="basic",
            custom_rate=None,
            payout_frequency="weekly",
            minimum_payout=Decimal("1000"),
            payout_method="sandbox",
            payout_destination=f"acct_{vendor_id}",
            currency="USD",
            is_active=True,
            next_payout_date=NOW - timedelta(hours=1),
        )
        values.update(overrides)
        async with session_factory() as session:
            session.add(VendorPayoutProfileModel(**values))
            await session.commit()
        return vendor_id

    return _add


@pytest.fixture
def rates(make_uow):
    return RateTableProvider(make_uow, default_rate=Decimal("0.10"), tier_rates=TIER_RATES, ttl_seconds=0)


@pytest.fixture
def commission_service(make_uow, rates, alerts, clock):
    return CommissionService(make_uow, rates, alerts, clock=clock)


@pytest.fixture
def scheduler(make_uow, alerts):
    return PayoutScheduler(make_uow, alerts, max_retries=3, concurrency=1)


@pytest.fixture
def gateway():
    return ScriptedGateway()


@pytest.fixture
def processor(make_uow, gateway, notifier, alerts, clock):
    return PayoutProcessor(
        make_uow,
        lambda method: gateway,
        notifier,
        alerts,
        retry_policy=RetryPolicy(max_retries=3, base_seconds=60, max_seconds=3600),
        timeout_seconds=0.05,
        concurrency=1,
        clock=clock,
    )


@pytest.fixture
def settle(commission_service):
    async def _settle(order_id: str, vendor_id: str = "v1", gross: str = "5000.00", *, at: datetime = None, categories=()):
        return await commission_service.on_order_settled(
            OrderSettled(
                order_id=order_id,
                vendor_id=vendor_id,
                gross_amount=Decimal(gross),
                settled_category_ids=list(categories),
                settled_at=at or NOW - timedelta(days=1),
            )
        )

    return _settle
