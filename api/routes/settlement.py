"""
Settlement API routes.

Order event intake, payout operations for operators and reporting. Kept thin:
services do the work, routes translate DTOs.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from api.dependencies import Pagination, get_commission_service, get_payout_processor, get_payout_scheduler
from api.middleware import get_operator
from application.dtos.settlement import (
    CommissionOut,
    ManualPayoutRequest,
    OrderReversed,
    OrderSettled,
    PayoutOut,
    RateRuleOut,
    SetCommissionRateRequest,
)
from application.services.commission_service import CommissionService
from application.services.payout_processor import PayoutProcessor
from application.services.payout_scheduler import PayoutScheduler
from core.logging_config import get_logger
from core.response import paginated_response, success_response
from domain.commission.entity import CommissionStatus
from domain.payout.entity import PayoutStatus


router = APIRouter(tags=["Settlement"])
logger = get_logger(__name__)


def _rule_out(rule) -> RateRuleOut:
    return RateRuleOut(
        id=rule.id,
        vendor_id=rule.vendor_id,
        category_id=rule.category_id,
        rate=rule.rate,
        effective_from=rule.effective_from,
        effective_to=rule.effective_to,
    )


# --- order events -------------------------------------------------------------------


@router.post("/orders/settled")
async def order_settled(event: OrderSettled, service: CommissionService = Depends(get_commission_service)):
    commission = await service.on_order_settled(event)
    return success_response(data=CommissionOut.from_entity(commission), message="Commission recorded")


@router.post("/orders/reversed")
async def order_reversed(event: OrderReversed, service: CommissionService = Depends(get_commission_service)):
    commission = await service.on_order_reversed(event.order_id, event.vendor_id)
    return success_response(data=CommissionOut.from_entity(commission), message="Commission cancelled")


# --- commissions & rates ------------------------------------------------------------


@router.get("/vendors/{vendor_id}/commissions")
async def vendor_commissions(
    vendor_id: str,
    status: Optional[CommissionStatus] = Query(None),
    paging: Pagination = Depends(),
    service: CommissionService = Depends(get_commission_service),
):
    rows = await service.list_vendor_commissions(vendor_id, status=status, limit=paging.size, offset=paging.offset)
    total = await service.count_vendor_commissions(vendor_id, status=status)
    items = [CommissionOut.from_entity(c) for c in rows]
    return paginated_response(items=items, total=total, page=paging.page, size=paging.size)


@router.get("/vendors/{vendor_id}/commissions/summary")
async def vendor_commission_summary(
    vendor_id: str,
    start: datetime = Query(...),
    end: datetime = Query(...),
    service: CommissionService = Depends(get_commission_service),
):
    return success_response(data=await service.commission_summary(vendor_id, start, end))


@router.post("/commission-rates")
async def set_commission_rate(
    req: SetCommissionRateRequest,
    service: CommissionService = Depends(get_commission_service),
):
    rule = await service.set_commission_rate(req)
    logger.info("commission_rate_set", vendor_id=rule.vendor_id, category_id=rule.category_id, rate=str(rule.rate))
    return success_response(data=_rule_out(rule), message="Rate saved")


@router.get("/vendors/{vendor_id}/commission-rates")
async def list_commission_rates(vendor_id: str, service: CommissionService = Depends(get_commission_service)):
    rules = await service.list_rate_rules(vendor_id)
    return success_response(data=[_rule_out(r) for r in rules])


# --- payouts ---------------------------------------------------------------------------


@router.post("/vendors/{vendor_id}/payouts")
async def request_manual_payout(
    vendor_id: str,
    req: Optional[ManualPayoutRequest] = None,
    scheduler: PayoutScheduler = Depends(get_payout_scheduler),
):
    req = req or ManualPayoutRequest()
    payout = await scheduler.request_manual_payout(
        vendor_id,
        req.amount,
        notes=req.notes,
        requested_by=req.requested_by or get_operator(),
    )
    return success_response(data=PayoutOut.from_entity(payout), message="Payout created")


@router.get("/vendors/{vendor_id}/payouts")
async def vendor_payouts(
    vendor_id: str,
    status: Optional[PayoutStatus] = Query(None),
    paging: Pagination = Depends(),
    processor: PayoutProcessor = Depends(get_payout_processor),
):
    rows = await processor.list_vendor_payouts(vendor_id, status=status, limit=paging.size, offset=paging.offset)
    total = await processor.count_vendor_payouts(vendor_id, status=status)
    items = [PayoutOut.from_entity(p) for p in rows]
    return paginated_response(items=items, total=total, page=paging.page, size=paging.size)


@router.get("/payouts/{payout_id}")
async def get_payout(payout_id: str, processor: PayoutProcessor = Depends(get_payout_processor)):
    return success_response(data=PayoutOut.from_entity(await processor.get(payout_id)))


@router.post("/payouts/{payout_id}/retry")
async def retry_payout(payout_id: str, processor: PayoutProcessor = Depends(get_payout_processor)):
    logger.info("payout_retry_requested", payout_id=payout_id, operator=get_operator())
    payout = await processor.retry_payout(payout_id)
    return success_response(data=PayoutOut.from_entity(payout))


@router.post("/payouts/{payout_id}/cancel")
async def cancel_payout(
    payout_id: str,
    reason: Optional[str] = Body(None, embed=True, max_length=500),
    processor: PayoutProcessor = Depends(get_payout_processor),
):
    logger.info("payout_cancel_requested", payout_id=payout_id, operator=get_operator())
    payout = await processor.cancel_payout(payout_id, reason=reason)
    return success_response(data=PayoutOut.from_entity(payout), message="Payout cancelled")


# --- reports ------------------------------------------------------------------------------


@router.get("/reports/commissions")
async def commission_report(
    start: datetime = Query(...),
    end: datetime = Query(...),
    vendor_id: Optional[str] = Query(None),
    service: CommissionService = Depends(get_commission_service),
):
    return success_response(data=await service.commission_report(start, end, vendor_id=vendor_id))


@router.get("/reports/pending-payouts")
async def pending_payouts(
    as_of: Optional[datetime] = Query(None),
    service: CommissionService = Depends(get_commission_service),
):
    return success_response(data=await service.pending_payout_totals(as_of))
