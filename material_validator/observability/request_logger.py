"""
请求日志中间件

- trace_id：沿用调用方的 X-Trace-ID（校验过长度和字符集），否则新生成；
  绑定到 structlog contextvars，本次请求内的所有日志自动携带
- 每个请求记录开始 / 结束两条日志，5xx 用 warning 级别
- 下游抛出未处理异常时记录后原样抛出，由 FastAPI 返回 500
- 响应头回写 X-Trace-ID / X-Duration-Ms
"""

import re
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

log = structlog.get_logger()

TRACE_HEADER = "X-Trace-ID"
_TRACE_ID_RE = re.compile(r"[A-Za-z0-9._-]{1,64}")


def resolve_trace_id(header_value: str | None) -> str:
    if header_value and _TRACE_ID_RE.fullmatch(header_value):
        return header_value
    return uuid.uuid4().hex


def current_trace_id() -> str:
    """当前请求的 trace_id（请求上下文之外为空串）"""
    return structlog.contextvars.get_contextvars().get("trace_id", "")


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """HTTP 请求日志 + trace_id 绑定"""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trace_id = resolve_trace_id(request.headers.get(TRACE_HEADER))
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(trace_id=trace_id)

        path = request.url.path
        log.info(
            "请求开始",
            method=request.method,
            path=path,
            content_length=request.headers.get("content-length"),
        )

        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            log.exception(
                "请求处理异常",
                method=request.method,
                path=path,
                duration_ms=int((time.monotonic() - start) * 1000),
            )
            raise

        duration_ms = int((time.monotonic() - start) * 1000)
        log_method = log.warning if response.status_code >= 500 else log.info
        log_method(
            "请求结束",
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )

        response.headers[TRACE_HEADER] = trace_id
        response.headers["X-Duration-Ms"] = str(duration_ms)
        return response
