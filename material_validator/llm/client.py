"""
LLM 访问层：LiteLLM 异步补全 + 统一异常

校验链路只依赖窄接口 TextGenerator（prompt → text）：
- 生产环境由 LLMClient 实现，走 litellm.acompletion，兼容任意 OpenAI 协议供应商
- 测试中换成确定性的桩实现，不触网

供应商侧的所有失败（认证、限流、超时、连接、API 错误、未知异常）统一包装为 LLMError，
原始异常保存在 cause 上；调用方只需要处理这一种异常。
"""

import time
from dataclasses import dataclass, field
from typing import Protocol

import structlog
from litellm import acompletion
from litellm.exceptions import (
    APIConnectionError,
    APIError,
    AuthenticationError,
    RateLimitError,
    Timeout,
)

from material_validator.config import get_settings
from material_validator.observability.metrics import LLM_CALL_DURATION, LLM_CALL_TOTAL, LLM_TOKEN_TOTAL

log = structlog.get_logger()


class LLMError(Exception):
    """LLM 调用失败"""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class TextGenerator(Protocol):
    """文本补全的窄接口"""

    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        purpose: str = "general",
        temperature: float = 0.0,
        max_tokens: int = 1024,
    ) -> str: ...


# (异常类型, 日志级别, 对外描述)，按顺序匹配，子类必须排在父类前面
_ERROR_TABLE: tuple[tuple[type[Exception], str, str], ...] = (
    (AuthenticationError, "error", "认证失败，请检查 LLM_API_KEY"),
    (RateLimitError, "warning", "请求被限流"),
    (Timeout, "warning", "调用超时"),
    (APIConnectionError, "error", "服务连接失败"),
    (APIError, "error", "API 返回错误"),
)


def _to_llm_error(exc: Exception, model: str) -> LLMError:
    for exc_type, level, reason in _ERROR_TABLE:
        if isinstance(exc, exc_type):
            getattr(log, level)("LLM 调用失败", model=model, reason=reason, error=str(exc))
            return LLMError(f"LLM {reason}: {exc}", cause=exc)
    log.error("LLM 未知异常", model=model, error=str(exc), exc_info=True)
    return LLMError(f"LLM 调用异常: {exc}", cause=exc)


@dataclass
class LLMResponse:
    content: str
    model: str
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)  # prompt_tokens / completion_tokens / total_tokens


class LLMClient:
    """LiteLLM 客户端，实现 TextGenerator"""

    def __init__(
        self,
        default_model: str | None = None,
        api_key: str | None = None,
        api_base: str | None = None,
        timeout: int | None = None,
    ):
        settings = get_settings()
        self.default_model = default_model or settings.LLM_DEFAULT_MODEL
        self.api_key = api_key or settings.LLM_API_KEY
        self.api_base = api_base or settings.LLM_API_BASE
        self.timeout = timeout or settings.LLM_TIMEOUT

    def _request_kwargs(self, model: str) -> dict:
        kwargs: dict = {"model": model, "timeout": self.timeout}
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        return kwargs

    async def chat(
        self,
        messages: list[dict],
        model: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 2048,
        response_format: dict | None = None,
    ) -> LLMResponse:
        """
        单次补全。

        Args:
            messages:        OpenAI 格式消息
            response_format: 供应商支持时可传 {"type": "json_object"}

        Raises:
            LLMError
        """
        use_model = model or self.default_model
        kwargs = self._request_kwargs(use_model)
        kwargs.update(messages=messages, temperature=temperature, max_tokens=max_tokens)
        if response_format:
            kwargs["response_format"] = response_format

        try:
            response = await acompletion(**kwargs)
        except Exception as e:
            raise _to_llm_error(e, use_model) from e

        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model or use_model,
            finish_reason=choice.finish_reason or "stop",
            usage={
                name: int(getattr(usage, name, 0) or 0)
                for name in ("prompt_tokens", "completion_tokens", "total_tokens")
            },
        )

    async def generate(
        self,
        prompt: str,
        *,
        system: str | None = None,
        purpose: str = "general",
        temperature: float = 0.0,
        max_tokens: int = 1024,
    ) -> str:
        """单轮 prompt → 文本，按 purpose 记录调用次数、耗时和 token 用量"""
        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})

        model = self.default_model
        start = time.monotonic()
        status = "error"
        try:
            resp = await self.chat(messages, temperature=temperature, max_tokens=max_tokens)
            status = "success"
        finally:
            LLM_CALL_TOTAL.labels(model=model, purpose=purpose, status=status).inc()
            LLM_CALL_DURATION.labels(model=model, purpose=purpose).observe((time.monotonic() - start) * 1000)

        for kind in ("prompt_tokens", "completion_tokens"):
            LLM_TOKEN_TOTAL.labels(model=model, purpose=purpose, kind=kind).inc(resp.usage.get(kind, 0))

        if resp.finish_reason == "length":
            log.warning("LLM 输出被截断", model=resp.model, purpose=purpose, max_tokens=max_tokens)
        log.debug("LLM 调用完成", model=resp.model, purpose=purpose, tokens=resp.usage.get("total_tokens", 0))
        return resp.content
