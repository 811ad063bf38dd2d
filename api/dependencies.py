"""
API依赖项 - 结算服务注入
"""
from fastapi import Depends, Request

from application.services.commission_service import CommissionService
from application.services.payout_processor import PayoutProcessor
from application.services.payout_scheduler import PayoutScheduler
from core.config import settings
from infrastructure.composition import SettlementContainer


def get_container(request: Request) -> SettlementContainer:
    """应用启动时在 lifespan 中创建的服务容器"""
    return request.app.state.settlement


def get_commission_service(container: SettlementContainer = Depends(get_container)) -> CommissionService:
    return container.commission_service


def get_payout_scheduler(container: SettlementContainer = Depends(get_container)) -> PayoutScheduler:
    return container.scheduler


def get_payout_processor(container: SettlementContainer = Depends(get_container)) -> PayoutProcessor:
    return container.processor


class Pagination:
    def __init__(self, page: int = 1, size: int = settings.DEFAULT_PAGE_SIZE):
        self.page = max(page, 1)
        self.size = min(max(size, 1), settings.MAX_PAGE_SIZE)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size
