"""
material-validator 服务入口

    uvicorn material_validator.main:app --port 8000
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from material_validator.api.health import router as health_router
from material_validator.api.validation import build_content_validator, build_semantic_analyzer
from material_validator.api.validation import router as validation_router
from material_validator.config import Settings, get_settings
from material_validator.observability.logging_config import setup_logging
from material_validator.observability.metrics_middleware import MetricsMiddleware
from material_validator.observability.request_logger import RequestLoggerMiddleware, current_trace_id

log = structlog.get_logger()


@asynccontextmanager
async def lifespan(application: FastAPI):
    settings: Settings = application.state.settings
    log.info(
        "服务启动",
        env=settings.ENV,
        model=settings.QUALITY_GRADER_MODEL or settings.LLM_DEFAULT_MODEL,
        weights=settings.scoring_weights,
        pass_threshold=settings.VALIDATION_PASS_THRESHOLD,
        warn_threshold=settings.VALIDATION_WARN_THRESHOLD,
    )
    if not (settings.LLM_API_KEY or settings.LLM_API_BASE):
        log.warning("未配置 LLM_API_KEY / LLM_API_BASE，质量评分与语义溯源将降级")
    yield
    log.info("服务关闭")


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    log.error("未处理异常", path=request.url.path, error=str(exc), exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal validation error", "traceId": current_trace_id()},
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(env=settings.ENV, level=settings.LOG_LEVEL)

    application = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)
    # 路由依赖从 app.state 取配置与分析器
    application.state.settings = settings
    application.state.content_validator = build_content_validator(settings)
    application.state.semantic_analyzer = build_semantic_analyzer(settings)

    # 后注册的先执行：指标在最外层，日志中间件负责绑定 trace_id
    application.add_middleware(RequestLoggerMiddleware)
    application.add_middleware(MetricsMiddleware)
    application.add_exception_handler(Exception, _unhandled_error)

    application.mount("/metrics", make_asgi_app())
    application.include_router(health_router)
    application.include_router(validation_router)
    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("material_validator.main:app", host="0.0.0.0", port=get_settings().APP_PORT)
