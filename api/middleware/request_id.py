"""
Request ID 中间件
生成或透传追踪ID与操作人标识，并通过contextvars传递给日志系统
"""
import uuid
from contextvars import ContextVar
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

import structlog


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
operator_var: ContextVar[Optional[str]] = ContextVar("operator", default=None)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Request ID 追踪中间件

    1. 从 X-Request-ID 获取或生成 request_id，并写回响应头
    2. 从 X-Operator-Id 读取操作人（人工打款/重试/取消的审计字段）
    3. 绑定到 structlog 上下文
    """

    HEADER_NAME = "X-Request-ID"
    OPERATOR_HEADER = "X-Operator-Id"

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(self.HEADER_NAME) or str(uuid.uuid4())
        operator = request.headers.get(self.OPERATOR_HEADER)
        client_ip = self._get_client_ip(request)

        request.state.request_id = request_id
        request.state.operator = operator

        request_id_var.set(request_id)
        operator_var.set(operator)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            client_ip=client_ip,
            method=request.method,
            path=request.url.path,
        )
        if operator:
            structlog.contextvars.bind_contextvars(operator=operator)

        response = await call_next(request)
        response.headers[self.HEADER_NAME] = request_id
        return response

    def _get_client_ip(self, request: Request) -> str:
        # 代理场景优先取 X-Forwarded-For 的第一个地址
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.headers.get("X-Real-IP") or (request.client.host if request.client else "unknown")


def get_request_id() -> Optional[str]:
    """当前请求的 request_id，不在请求上下文中时为 None"""
    return request_id_var.get()


def get_operator() -> Optional[str]:
    return operator_var.get()
