"""
请求级指标采集中间件

endpoint 标签取路由模板（如 /validate/syntax），未匹配到路由的请求统一记为 "unmatched"，
避免任意路径撑爆标签基数。处理中抛出异常的请求按 500 计数后继续抛出。
"""

import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from material_validator.observability.metrics import REQUEST_DURATION, REQUEST_TOTAL

_SKIP_PREFIXES = ("/metrics", "/health")


def _endpoint_label(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):
    """HTTP 请求指标采集"""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path.startswith(_SKIP_PREFIXES):
            return await call_next(request)

        start = time.monotonic()
        status_code = "500"
        try:
            response = await call_next(request)
            status_code = str(response.status_code)
            return response
        finally:
            endpoint = _endpoint_label(request)
            REQUEST_TOTAL.labels(method=request.method, endpoint=endpoint, status_code=status_code).inc()
            REQUEST_DURATION.labels(method=request.method, endpoint=endpoint).observe(
                (time.monotonic() - start) * 1000
            )
