"""
Payout scheduling: batches a vendor's unpaid commissions into one PENDING payout.

Overlapping runs are safe. Reservation and the ``next_payout_date`` move are
both conditional updates in the same transaction as the payout insert, so a
second run for the same commissions rolls back without leaving anything
behind.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional, Sequence

from application.ports.notifications import OperatorAlerts
from application.services.worker_pool import drain
from core.logging_config import get_logger
from domain.commission.entity import Commission
from domain.common.exceptions import (
    BelowMinimumPayoutError,
    InvalidStateError,
    StaleCommissionError,
    VendorNotFoundError,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payout.entity import Payout, PayoutMetadata, PayoutOrigin
from domain.vendor.entity import VendorPayoutProfile, ensure_utc


logger = get_logger(__name__)

ZERO = Decimal("0")


class CycleOutcome(str, Enum):
    CREATED = "created"
    BELOW_THRESHOLD = "below_threshold"
    NOT_DUE = "not_due"
    CONTENDED = "contended"


@dataclass(frozen=True)
class CycleResult:
    vendor_id: str
    outcome: CycleOutcome
    payout: Optional[Payout] = None
    available: Decimal = ZERO


@dataclass
class SchedulerRunSummary:
    created: int = 0
    skipped: int = 0
    contended: int = 0
    failed: int = 0
    payout_ids: List[str] = field(default_factory=list)


class _NextDateMoved(Exception):
    """Another run already advanced this vendor's schedule."""


def _select_fifo(unpaid: Sequence[Commission], cap: Optional[Decimal]) -> List[Commission]:
    if cap is None:
        return list(unpaid)
    selected: List[Commission] = []
    running = ZERO
    for c in unpaid:
        if running + c.amount > cap:
            break
        selected.append(c)
        running += c.amount
    return selected


class PayoutScheduler:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        alerts: OperatorAlerts,
        *,
        max_retries: int = 3,
        concurrency: int = 4,
        batch_size: int = 200,
    ) -> None:
        self._uow_factory = uow_factory
        self._alerts = alerts
        self._max_retries = max_retries
        self._concurrency = concurrency
        self._batch_size = batch_size

    def _new_payout(
        self,
        vendor: VendorPayoutProfile,
        commissions: Sequence[Commission],
        scheduled_date: datetime,
        metadata: PayoutMetadata,
    ) -> Payout:
        return Payout(
            vendor_id=vendor.vendor_id,
            amount=sum((c.amount for c in commissions), ZERO),
            currency=vendor.currency,
            payment_method=vendor.payout_method,
            scheduled_date=scheduled_date,
            metadata=metadata,
            max_retries=self._max_retries,
        )

    async def _reserve(self, uow: AbstractUnitOfWork, payout: Payout) -> Payout:
        created = await uow.payout_repository.add(payout)
        await uow.commission_repository.reserve_for_payout(payout.commission_ids, created.id)
        return created

    async def run_vendor_cycle(self, vendor_id: str, now: datetime) -> CycleResult:
        now = ensure_utc(now)
        try:
            async with self._uow_factory() as uow:
                vendor = await uow.vendor_repository.get_by_id(vendor_id)
                if vendor is None:
                    raise VendorNotFoundError(vendor_id)
                if not vendor.is_due(now):
                    return CycleResult(vendor_id, CycleOutcome.NOT_DUE)

                unpaid = await uow.commission_repository.list_unpaid(vendor_id, now)
                available = sum((c.amount for c in unpaid), ZERO)
                if not unpaid or available <= ZERO or available < vendor.minimum_payout:
                    # next_payout_date stays put so the vendor is picked up again next tick
                    logger.info(
                        "payout_below_threshold",
                        vendor_id=vendor_id,
                        available=str(available),
                        minimum=str(vendor.minimum_payout),
                    )
                    return CycleResult(vendor_id, CycleOutcome.BELOW_THRESHOLD, available=available)

                payout = await self._reserve(
                    uow,
                    self._new_payout(
                        vendor,
                        unpaid,
                        vendor.next_payout_date or now,
                        PayoutMetadata(
                            commission_ids=tuple(c.id for c in unpaid),
                            created_by=PayoutOrigin.SCHEDULER,
                        ),
                    ),
                )
                new_date = vendor.following_payout_date(now)
                if not await uow.vendor_repository.advance_next_payout_date(
                    vendor_id, vendor.next_payout_date, new_date
                ):
                    raise _NextDateMoved(vendor_id)
        except (StaleCommissionError, _NextDateMoved) as exc:
            logger.info("payout_cycle_contended", vendor_id=vendor_id, reason=type(exc).__name__)
            return CycleResult(vendor_id, CycleOutcome.CONTENDED)

        logger.info(
            "payout_scheduled",
            vendor_id=vendor_id,
            payout_id=payout.id,
            amount=str(payout.amount),
            commissions=len(payout.commission_ids),
            next_payout_date=new_date.isoformat(),
        )
        return CycleResult(vendor_id, CycleOutcome.CREATED, payout=payout, available=available)

    async def request_manual_payout(
        self,
        vendor_id: str,
        amount: Optional[Decimal] = None,
        *,
        notes: Optional[str] = None,
        requested_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Payout:
        """Pay out unpaid commissions now, oldest first, up to ``amount`` when given.

        Leaves ``next_payout_date`` alone. A concurrent scheduler run surfaces
        as ``StaleCommissionError``.
        """
        now = ensure_utc(now) or datetime.now(timezone.utc)
        async with self._uow_factory() as uow:
            vendor = await uow.vendor_repository.get_by_id(vendor_id)
            if vendor is None:
                raise VendorNotFoundError(vendor_id)
            if not vendor.is_active:
                raise InvalidStateError("vendor", vendor_id, "inactive", expected=["active"])

            unpaid = await uow.commission_repository.list_unpaid(vendor_id, now)
            selected = _select_fifo(unpaid, Decimal(amount) if amount is not None else None)
            total = sum((c.amount for c in selected), ZERO)
            if not selected or total <= ZERO or total < vendor.minimum_payout:
                raise BelowMinimumPayoutError(vendor_id, total, vendor.minimum_payout)

            payout = await self._reserve(
                uow,
                self._new_payout(
                    vendor,
                    selected,
                    now,
                    PayoutMetadata(
                        commission_ids=tuple(c.id for c in selected),
                        created_by=PayoutOrigin.MANUAL,
                        notes=notes,
                        requested_by=requested_by,
                    ),
                ),
            )

        logger.info(
            "manual_payout_requested",
            vendor_id=vendor_id,
            payout_id=payout.id,
            amount=str(payout.amount),
            requested=str(amount) if amount is not None else None,
            requested_by=requested_by,
        )
        return payout

    async def run_due(self, now: datetime) -> SchedulerRunSummary:
        """Run one cycle for every due vendor; each vendor gets its own transaction."""
        now = ensure_utc(now)
        async with self._uow_factory(readonly=True) as uow:
            vendor_ids = await uow.vendor_repository.list_due_vendor_ids(now, limit=self._batch_size)

        summary = SchedulerRunSummary()

        async def handle(vendor_id: str) -> None:
            result = await self.run_vendor_cycle(vendor_id, now)
            if result.outcome == CycleOutcome.CREATED:
                summary.created += 1
                summary.payout_ids.append(result.payout.id)
            elif result.outcome == CycleOutcome.CONTENDED:
                summary.contended += 1
            else:
                summary.skipped += 1

        async def on_error(vendor_id: str, exc: Exception) -> None:
            summary.failed += 1
            logger.error("payout_cycle_failed", vendor_id=vendor_id, error=str(exc), exc_info=exc)
            await self._safe_alert("payout_cycle_failed", vendor_id=vendor_id, reason=str(exc))

        await drain(vendor_ids, handle, concurrency=self._concurrency, on_error=on_error)
        logger.info(
            "payout_schedule_run_finished",
            due=len(vendor_ids),
            created=summary.created,
            skipped=summary.skipped,
            contended=summary.contended,
            failed=summary.failed,
        )
        return summary

    async def _safe_alert(self, event: str, **context) -> None:
        try:
            await self._alerts.alert(event, **context)
        except Exception as exc:
            logger.error("operator_alert_failed", alert_event=event, error=str(exc), **context)
