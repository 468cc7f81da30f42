"""
结构化日志配置

- development：彩色控制台输出
- production：单行 JSON（中文不转义），异常栈展开为字符串字段
- trace_id 由请求中间件绑定到 contextvars，merge_contextvars 负责合并进每条日志
- LiteLLM / httpx 自带的标准库日志压到 WARNING，避免每次调用都刷屏
"""

import logging
import sys

import structlog

_NOISY_LOGGERS = ("LiteLLM", "LiteLLM Router", "LiteLLM Proxy", "httpx", "httpcore")


def setup_logging(env: str = "development", level: str = "INFO") -> None:
    """初始化结构化日志；level 为标准库级别名（DEBUG / INFO / WARNING ...）"""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=env == "production"),
    ]
    if env == "production":
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        processors += [
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
