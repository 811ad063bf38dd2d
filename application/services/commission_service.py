"""
Application service for the commission ledger.

Order events come in here, get priced by the calculator and land in the
ledger. Reporting queries over the ledger live here too.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional

from application.dtos.settlement import (
    CommissionReport,
    CommissionSummary,
    OrderSettled,
    PendingPayoutTotal,
    SetCommissionRateRequest,
    VendorCommissionBreakdown,
)
from application.ports.notifications import OperatorAlerts
from application.services.rate_table_loader import RateTableProvider
from core.logging_config import get_logger
from domain.commission.calculator import CommissionCalculator, SettledOrder, effective_rate
from domain.commission.entity import Commission, CommissionStatus
from domain.commission.rates import RateResolver, RateRule
from domain.common.exceptions import (
    CommissionNotFoundError,
    ConfigurationError,
    DuplicateCommissionError,
    InvalidAmountError,
    InvalidStateError,
    VendorNotFoundError,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.vendor.entity import ensure_utc


logger = get_logger(__name__)

ZERO = Decimal("0")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CommissionService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        rates: RateTableProvider,
        alerts: OperatorAlerts,
        *,
        minor_unit_exponent: int = 2,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self._rates = rates
        self._alerts = alerts
        self._exponent = minor_unit_exponent
        self._clock = clock

    async def on_order_settled(self, event: OrderSettled) -> Commission:
        """Record the commission for a settled order.

        A repeated delivery of the same event returns the commission that is
        already on the ledger.
        """
        async with self._uow_factory(readonly=True) as uow:
            vendor = await uow.vendor_repository.get_by_id(event.vendor_id)
        if vendor is None:
            raise VendorNotFoundError(event.vendor_id)

        order = SettledOrder(
            order_id=event.order_id,
            vendor_id=event.vendor_id,
            category_ids=tuple(event.settled_category_ids),
            settled_at=ensure_utc(event.settled_at) or self._clock(),
        )
        calculator = CommissionCalculator(RateResolver(await self._rates.current()), minor_unit_exponent=self._exponent)
        try:
            calc = calculator.calculate(order, vendor, event.gross_amount)
        except InvalidAmountError:
            logger.warning(
                "order_flagged_for_review",
                order_id=event.order_id,
                vendor_id=event.vendor_id,
                gross_amount=str(event.gross_amount),
            )
            raise
        except ConfigurationError as exc:
            await self._alerts.alert(
                "commission_rate_missing",
                order_id=event.order_id,
                vendor_id=event.vendor_id,
                reason=exc.message,
            )
            raise

        try:
            async with self._uow_factory() as uow:
                return await uow.commission_repository.add(Commission.from_calculation(calc))
        except DuplicateCommissionError:
            async with self._uow_factory(readonly=True) as uow:
                existing = await uow.commission_repository.get_active_by_order(event.order_id, event.vendor_id)
            if existing is None:
                raise
            logger.info(
                "commission_already_recorded",
                order_id=event.order_id,
                vendor_id=event.vendor_id,
                commission_id=existing.id,
            )
            return existing

    async def on_order_reversed(self, order_id: str, vendor_id: str) -> Commission:
        async with self._uow_factory() as uow:
            repo = uow.commission_repository
            existing = await repo.get_active_by_order(order_id, vendor_id)
            if existing is None:
                raise CommissionNotFoundError(order_id, vendor_id)
            if existing.status != CommissionStatus.CALCULATED:
                # 已锁定或已打款的佣金需人工处理
                raise InvalidStateError(
                    "commission", existing.id, existing.status.value,
                    expected=[CommissionStatus.CALCULATED.value],
                )
            cancelled_at = self._clock()
            if await repo.cancel_for_order(order_id, vendor_id, cancelled_at) != 1:
                raise InvalidStateError(
                    "commission", existing.id, None,
                    expected=[CommissionStatus.CALCULATED.value],
                )
        existing.status = CommissionStatus.CANCELLED
        existing.cancelled_at = cancelled_at
        return existing

    async def set_commission_rate(self, req: SetCommissionRateRequest) -> RateRule:
        rule = RateRule(
            vendor_id=req.vendor_id,
            category_id=req.category_id,
            rate=Decimal(req.rate),
            effective_from=req.effective_from,
            effective_to=req.effective_to,
        )
        async with self._uow_factory() as uow:
            if await uow.vendor_repository.get_by_id(req.vendor_id) is None:
                raise VendorNotFoundError(req.vendor_id)
            saved = await uow.rate_rule_repository.add(rule)
        self._rates.invalidate()
        return saved

    async def list_rate_rules(self, vendor_id: str) -> List[RateRule]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.rate_rule_repository.list_by_vendor(vendor_id)

    async def list_vendor_commissions(
        self,
        vendor_id: str,
        *,
        status: Optional[CommissionStatus] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Commission]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.commission_repository.list_by_vendor(
                vendor_id, status=status, limit=limit, offset=offset
            )

    async def count_vendor_commissions(self, vendor_id: str, *, status: Optional[CommissionStatus] = None) -> int:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.commission_repository.count_by_vendor(vendor_id, status=status)

    # --- reporting ---------------------------------------------------------------

    async def commission_summary(self, vendor_id: str, start: datetime, end: datetime) -> CommissionSummary:
        async with self._uow_factory(readonly=True) as uow:
            rows = await uow.commission_repository.list_between(start, end, vendor_id=vendor_id)
        gross = sum((c.gross_amount for c in rows), ZERO)
        commission = sum((c.amount for c in rows), ZERO)
        return CommissionSummary(
            vendor_id=vendor_id,
            start=start,
            end=end,
            commission_count=len(rows),
            total_gross=gross,
            total_commission=commission,
            total_net_payout=sum((c.net_amount for c in rows), ZERO),
            average_rate=effective_rate(commission, gross),
        )

    async def commission_report(
        self,
        start: datetime,
        end: datetime,
        *,
        vendor_id: Optional[str] = None,
    ) -> CommissionReport:
        async with self._uow_factory(readonly=True) as uow:
            rows = await uow.commission_repository.list_between(start, end, vendor_id=vendor_id)

        per_vendor: dict[str, list[Commission]] = defaultdict(list)
        for c in rows:
            per_vendor[c.vendor_id].append(c)

        vendors = [
            VendorCommissionBreakdown(
                vendor_id=vid,
                commission_count=len(items),
                total_gross=sum((c.gross_amount for c in items), ZERO),
                total_commission=sum((c.amount for c in items), ZERO),
                total_net_payout=sum((c.net_amount for c in items), ZERO),
            )
            for vid, items in sorted(per_vendor.items())
        ]
        total_commission = sum((c.amount for c in rows), ZERO)
        return CommissionReport(
            start=start,
            end=end,
            commission_count=len(rows),
            total_gross=sum((c.gross_amount for c in rows), ZERO),
            total_commission=total_commission,
            total_net_payout=sum((c.net_amount for c in rows), ZERO),
            net_revenue=total_commission,
            vendors=vendors,
        )

    async def pending_payout_totals(self, as_of: Optional[datetime] = None) -> List[PendingPayoutTotal]:
        as_of = ensure_utc(as_of) or self._clock()
        async with self._uow_factory(readonly=True) as uow:
            unpaid = await uow.commission_repository.unpaid_totals_by_vendor(as_of)
            open_payouts = await uow.payout_repository.open_amounts_by_vendor()
        vendor_ids = sorted(set(unpaid) | set(open_payouts))
        return [
            PendingPayoutTotal(
                vendor_id=vid,
                unpaid_commission_total=unpaid.get(vid, (0, ZERO))[1],
                open_payout_total=open_payouts.get(vid, ZERO),
                commission_count=unpaid.get(vid, (0, ZERO))[0],
            )
            for vid in vendor_ids
        ]
