"""
Payout processing: drives a payout through the payout rail.

State machine::

    PENDING    --claim-->                     PROCESSING
    PROCESSING --rail success-->              COMPLETED
    PROCESSING --failure, retries left-->     PENDING (next_attempt_at = now + backoff)
    PROCESSING --failure, no retries left-->  FAILED
    PROCESSING --terminal failure-->          FAILED
    FAILED     --manual retry-->              PROCESSING
    PENDING/FAILED --cancel-->                CANCELLED

The rail call runs outside any transaction, always with the payout id as
idempotency key and under a bounded timeout.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, List, Optional

from application.dtos.settlement import TransferRequest, TransferResult
from application.ports.notifications import OperatorAlerts, PayoutNotifier
from application.ports.payout_gateway import PayoutGateway
from application.services.worker_pool import drain
from core.logging_config import get_logger
from domain.commission.entity import CommissionStatus
from domain.common.exceptions import (
    InvalidDestinationError,
    InvalidStateError,
    LedgerInconsistencyError,
    PayoutNotFoundError,
    TransferDeclinedError,
    TransferError,
    TransferNetworkError,
    TransferTimeoutError,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payout.entity import CANCELLABLE_STATUSES, Payout, PayoutStatus
from domain.payout.retry import RetryPolicy
from domain.vendor.entity import PayoutMethod, ensure_utc


logger = get_logger(__name__)

ZERO = Decimal("0")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ProcessRunSummary:
    completed: int = 0
    requeued: int = 0
    failed: int = 0
    in_flight: int = 0
    skipped: int = 0
    errors: int = 0


@dataclass
class ReconcileSummary:
    checked: int = 0
    completed: int = 0
    requeued: int = 0
    failed: int = 0
    unresolved: int = 0


class PayoutProcessor:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateways: Callable[[PayoutMethod], PayoutGateway],
        notifier: PayoutNotifier,
        alerts: OperatorAlerts,
        *,
        retry_policy: RetryPolicy = RetryPolicy(),
        timeout_seconds: float = 15.0,
        concurrency: int = 4,
        batch_size: int = 200,
        stale_after: timedelta = timedelta(minutes=15),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateways = gateways
        self._notifier = notifier
        self._alerts = alerts
        self._retry = retry_policy
        self._timeout = timeout_seconds
        self._concurrency = concurrency
        self._batch_size = batch_size
        self._stale_after = stale_after
        self._clock = clock

    # --- entry points ------------------------------------------------------------

    async def process(self, payout_id: str) -> Payout:
        await self._claim(payout_id, PayoutStatus.PENDING)
        return await self._drive(payout_id)

    async def retry_payout(self, payout_id: str) -> Payout:
        """Operator retry of a FAILED payout, in place and with the same idempotency key."""
        await self._claim(payout_id, PayoutStatus.FAILED)
        logger.info("payout_manual_retry", payout_id=payout_id)
        return await self._drive(payout_id)

    async def cancel_payout(self, payout_id: str, *, reason: Optional[str] = None) -> Payout:
        now = self._clock()
        try:
            async with self._uow_factory() as uow:
                payout = await uow.payout_repository.get_by_id(payout_id)
                if payout is None:
                    raise PayoutNotFoundError(payout_id)
                if payout.status not in CANCELLABLE_STATUSES:
                    raise InvalidStateError(
                        "payout", payout_id, payout.status.value,
                        expected=[s.value for s in CANCELLABLE_STATUSES],
                    )
                moved = await uow.payout_repository.transition(
                    payout_id,
                    payout.status,
                    PayoutStatus.CANCELLED,
                    processed_at=now,
                    next_attempt_at=None,
                    failure_reason=reason or payout.failure_reason,
                )
                if not moved:
                    raise InvalidStateError("payout", payout_id, None, expected=[payout.status.value])
                released = await uow.commission_repository.release_reservation(payout_id)
                if released != len(payout.commission_ids):
                    raise LedgerInconsistencyError(
                        f"Released {released} of {len(payout.commission_ids)} commissions",
                        payout_id=payout_id,
                        details={"vendor_id": payout.vendor_id},
                    )
        except LedgerInconsistencyError as exc:
            await self._safe_alert("ledger_inconsistent", payout_id=payout_id, reason=exc.message)
            raise

        logger.info("payout_cancelled", payout_id=payout_id, vendor_id=payout.vendor_id, released=released)
        await self._safe_notify(payout, PayoutStatus.CANCELLED)
        return await self.get(payout_id)

    async def get(self, payout_id: str) -> Payout:
        async with self._uow_factory(readonly=True) as uow:
            payout = await uow.payout_repository.get_by_id(payout_id)
        if payout is None:
            raise PayoutNotFoundError(payout_id)
        return payout

    async def list_vendor_payouts(
        self,
        vendor_id: str,
        *,
        status: Optional[PayoutStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Payout]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.payout_repository.list_by_vendor(
                vendor_id, statuses=[status] if status else None, limit=limit, offset=offset
            )

    async def count_vendor_payouts(self, vendor_id: str, *, status: Optional[PayoutStatus] = None) -> int:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.payout_repository.count_by_vendor(vendor_id, statuses=[status] if status else None)

    async def process_due(self, now: Optional[datetime] = None) -> ProcessRunSummary:
        now = ensure_utc(now) or self._clock()
        async with self._uow_factory(readonly=True) as uow:
            payout_ids = await uow.payout_repository.list_due_ids(now, limit=self._batch_size)

        summary = ProcessRunSummary()

        async def handle(payout_id: str) -> None:
            try:
                payout = await self.process(payout_id)
            except InvalidStateError:
                # 被其他 worker 抢先认领
                summary.skipped += 1
                return
            if payout.status == PayoutStatus.COMPLETED:
                summary.completed += 1
            elif payout.status == PayoutStatus.PENDING:
                summary.requeued += 1
            elif payout.status == PayoutStatus.FAILED:
                summary.failed += 1
            else:
                summary.in_flight += 1

        async def on_error(payout_id: str, exc: Exception) -> None:
            summary.errors += 1
            logger.error("payout_processing_error", payout_id=payout_id, error=str(exc), exc_info=exc)

        await drain(payout_ids, handle, concurrency=self._concurrency, on_error=on_error)
        logger.info("payout_process_run_finished", due=len(payout_ids), **summary.__dict__)
        return summary

    async def reconcile_processing(self, now: Optional[datetime] = None) -> ReconcileSummary:
        """Settle payouts left in PROCESSING by a worker that died after dispatch."""
        now = ensure_utc(now) or self._clock()
        async with self._uow_factory(readonly=True) as uow:
            payout_ids = await uow.payout_repository.list_stuck_ids(now - self._stale_after, limit=self._batch_size)

        summary = ReconcileSummary()

        async def handle(payout_id: str) -> None:
            summary.checked += 1
            payout = await self.get(payout_id)
            if payout.status != PayoutStatus.PROCESSING:
                return
            gateway = self._gateways(payout.payment_method)
            if not gateway.supports_lookup:
                summary.unresolved += 1
                await self._safe_alert("payout_stuck_processing", payout_id=payout_id, provider=gateway.provider)
                return
            try:
                found = await asyncio.wait_for(gateway.lookup(payout.idempotency_key), timeout=self._timeout)
            except (TransferError, asyncio.TimeoutError) as exc:
                summary.unresolved += 1
                logger.warning("payout_reconcile_lookup_failed", payout_id=payout_id, error=str(exc))
                return

            if found is None:
                # 通道没有这笔转账，按可重试失败处理
                result = await self._record_failure(
                    payout,
                    TransferNetworkError("Transfer not found at provider after interrupted attempt",
                                         provider=gateway.provider),
                )
            else:
                result = await self._apply_result(payout, found)

            if result.status == PayoutStatus.COMPLETED:
                summary.completed += 1
            elif result.status == PayoutStatus.PENDING:
                summary.requeued += 1
            elif result.status == PayoutStatus.FAILED:
                summary.failed += 1
            else:
                summary.unresolved += 1

        async def on_error(payout_id: str, exc: Exception) -> None:
            summary.unresolved += 1
            logger.error("payout_reconcile_error", payout_id=payout_id, error=str(exc), exc_info=exc)

        await drain(payout_ids, handle, concurrency=self._concurrency, on_error=on_error)
        logger.info("payout_reconcile_finished", **summary.__dict__)
        return summary

    # --- internals -----------------------------------------------------------------

    async def _claim(self, payout_id: str, from_status: PayoutStatus) -> None:
        async with self._uow_factory() as uow:
            if await uow.payout_repository.claim(payout_id, from_status, self._clock()):
                return
            payout = await uow.payout_repository.get_by_id(payout_id)
        if payout is None:
            raise PayoutNotFoundError(payout_id)
        raise InvalidStateError("payout", payout_id, payout.status.value, expected=[from_status.value])

    async def _drive(self, payout_id: str) -> Payout:
        async with self._uow_factory(readonly=True) as uow:
            payout = await uow.payout_repository.get_by_id(payout_id)
            vendor = await uow.vendor_repository.get_by_id(payout.vendor_id)

        gateway = self._gateways(payout.payment_method)
        if vendor is None or not vendor.payout_destination:
            return await self._record_failure(
                payout,
                InvalidDestinationError("Vendor has no payout destination", provider=gateway.provider),
            )

        request = TransferRequest(
            payout_id=payout.id,
            vendor_id=payout.vendor_id,
            destination=vendor.payout_destination,
            amount=payout.amount,
            currency=payout.currency,
            idempotency_key=payout.idempotency_key,
            description=f"Vendor payout {payout.id}",
        )
        try:
            result = await self._attempt(gateway, request)
        except TransferError as exc:
            return await self._record_failure(payout, exc)
        return await self._apply_result(payout, result)

    async def _attempt(self, gateway: PayoutGateway, request: TransferRequest) -> TransferResult:
        try:
            return await asyncio.wait_for(gateway.pay(request), timeout=self._timeout)
        except (asyncio.TimeoutError, TransferTimeoutError):
            logger.warning("payout_gateway_timeout", payout_id=request.payout_id, provider=gateway.provider)
        # 超时结果未知：先按幂等键查询，避免把已成功的转账重试成两笔
        if gateway.supports_lookup:
            try:
                found = await asyncio.wait_for(gateway.lookup(request.idempotency_key), timeout=self._timeout)
            except asyncio.TimeoutError:
                found = None
            if found is not None:
                logger.info(
                    "payout_timeout_resolved_by_lookup",
                    payout_id=request.payout_id,
                    status=found.status,
                )
                return found
        raise TransferTimeoutError(
            f"No answer from {gateway.provider} within {self._timeout}s",
            provider=gateway.provider,
        )

    async def _apply_result(self, payout: Payout, result: TransferResult) -> Payout:
        if result.status == "succeeded":
            return await self._complete(payout, result)
        if result.status == "failed":
            return await self._record_failure(
                payout,
                TransferDeclinedError(
                    result.failure_reason or f"Transfer {result.raw_status or 'failed'}",
                    provider=result.provider,
                    provider_code=result.raw_status,
                ),
            )
        # 通道已受理但未到账，保持 PROCESSING，由对账任务收尾
        async with self._uow_factory() as uow:
            await uow.payout_repository.transition(
                payout.id,
                PayoutStatus.PROCESSING,
                PayoutStatus.PROCESSING,
                provider_transaction_id=result.provider_transaction_id,
            )
        logger.info(
            "payout_awaiting_provider",
            payout_id=payout.id,
            provider=result.provider,
            provider_transaction_id=result.provider_transaction_id,
        )
        return await self.get(payout.id)

    async def _complete(self, payout: Payout, result: TransferResult) -> Payout:
        now = self._clock()
        try:
            async with self._uow_factory() as uow:
                moved = await uow.payout_repository.transition(
                    payout.id,
                    PayoutStatus.PROCESSING,
                    PayoutStatus.COMPLETED,
                    provider_transaction_id=result.provider_transaction_id,
                    processed_at=now,
                    next_attempt_at=None,
                    failure_reason=None,
                )
                if not moved:
                    raise InvalidStateError(
                        "payout", payout.id, None, expected=[PayoutStatus.PROCESSING.value]
                    )
                paid = await uow.commission_repository.mark_paid(payout.id, now)
                linked = await uow.commission_repository.list_by_payout(payout.id)
                paid_total = sum((c.amount for c in linked if c.status == CommissionStatus.PAID), ZERO)
                if paid != len(payout.commission_ids) or paid_total != payout.amount:
                    raise LedgerInconsistencyError(
                        f"Paid {paid} commissions totalling {paid_total}, payout amount is {payout.amount}",
                        payout_id=payout.id,
                        details={
                            "vendor_id": payout.vendor_id,
                            "expected_count": len(payout.commission_ids),
                            "provider_transaction_id": result.provider_transaction_id,
                        },
                    )
                await uow.vendor_repository.set_last_payout_date(payout.vendor_id, now)
        except LedgerInconsistencyError as exc:
            # 资金已转出但账本对不上：保持 PROCESSING 等待人工处理
            await self._safe_alert(
                "ledger_inconsistent",
                payout_id=payout.id,
                vendor_id=payout.vendor_id,
                reason=exc.message,
            )
            raise

        logger.info(
            "payout_completed",
            payout_id=payout.id,
            vendor_id=payout.vendor_id,
            amount=str(payout.amount),
            provider=result.provider,
            provider_transaction_id=result.provider_transaction_id,
            retry_count=payout.retry_count,
        )
        await self._safe_notify(payout, PayoutStatus.COMPLETED)
        return await self.get(payout.id)

    async def _record_failure(self, payout: Payout, exc: TransferError) -> Payout:
        now = self._clock()
        reason = f"{exc.error_type}: {exc.message}"[:1000]
        if exc.retryable:
            retry_count = min(payout.retry_count + 1, payout.max_retries)
            exhausted = self._retry.exhausted(retry_count, payout.max_retries)
        else:
            # 终止性失败不消耗重试次数
            retry_count = payout.retry_count
            exhausted = True

        if exhausted:
            target = PayoutStatus.FAILED
            next_attempt_at = None
        else:
            target = PayoutStatus.PENDING
            next_attempt_at = self._retry.next_attempt_at(retry_count, now)

        async with self._uow_factory() as uow:
            moved = await uow.payout_repository.transition(
                payout.id,
                PayoutStatus.PROCESSING,
                target,
                retry_count=retry_count,
                failure_reason=reason,
                next_attempt_at=next_attempt_at,
                processed_at=now if exhausted else None,
            )
        if not moved:
            return await self.get(payout.id)

        if exhausted:
            logger.error(
                "payout_failed",
                payout_id=payout.id,
                vendor_id=payout.vendor_id,
                retry_count=retry_count,
                retryable=exc.retryable,
                reason=reason,
            )
            # 佣金保持 RESERVED，由运营决定重试或取消
            await self._safe_alert(
                "payout_failed",
                payout_id=payout.id,
                vendor_id=payout.vendor_id,
                amount=str(payout.amount),
                retry_count=retry_count,
                reason=reason,
            )
            await self._safe_notify(payout, PayoutStatus.FAILED)
        else:
            logger.warning(
                "payout_retry_scheduled",
                payout_id=payout.id,
                vendor_id=payout.vendor_id,
                retry_count=retry_count,
                next_attempt_at=next_attempt_at.isoformat(),
                reason=reason,
            )
        return await self.get(payout.id)

    async def _safe_notify(self, payout: Payout, status: PayoutStatus) -> None:
        try:
            await self._notifier.notify_payout_outcome(payout.vendor_id, payout.id, status.value, payout.amount)
        except Exception as exc:
            logger.warning("payout_notification_failed", payout_id=payout.id, status=status.value, error=str(exc))

    async def _safe_alert(self, event: str, **context) -> None:
        try:
            await self._alerts.alert(event, **context)
        except Exception as exc:
            logger.error("operator_alert_failed", alert_event=event, error=str(exc), **context)
