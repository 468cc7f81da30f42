"""
Prometheus 指标（统一前缀 material_validator_）

HTTP 层由 MetricsMiddleware 记录；LLM 调用由 LLMClient.generate 按 purpose 记录
（quality_grading / claim_extraction / fact_matching）；校验结果与降级由各分析器记录。
"""

from prometheus_client import Counter, Histogram

_PREFIX = "material_validator"

# HTTP

REQUEST_TOTAL = Counter(
    f"{_PREFIX}_request_total",
    "HTTP 请求数",
    ["method", "endpoint", "status_code"],
)
REQUEST_DURATION = Histogram(
    f"{_PREFIX}_request_duration_ms",
    "HTTP 请求耗时（毫秒）",
    ["method", "endpoint"],
    buckets=[10, 50, 100, 500, 1000, 5000, 15000, 30000, 60000],
)

# LLM

LLM_CALL_TOTAL = Counter(
    f"{_PREFIX}_llm_call_total",
    "LLM 调用次数",
    ["model", "purpose", "status"],
)
LLM_CALL_DURATION = Histogram(
    f"{_PREFIX}_llm_call_duration_ms",
    "LLM 调用耗时（毫秒）",
    ["model", "purpose"],
    buckets=[250, 500, 1000, 2500, 5000, 10000, 30000, 60000],
)
LLM_TOKEN_TOTAL = Counter(
    f"{_PREFIX}_llm_token_total",
    "LLM token 用量",
    ["model", "purpose", "kind"],  # kind: prompt_tokens / completion_tokens
)

# 校验结果

VALIDATION_TOTAL = Counter(
    f"{_PREFIX}_validation_total",
    "完整校验次数",
    ["status", "material_type"],
)
VALIDATION_SCORE = Histogram(
    f"{_PREFIX}_validation_score",
    "综合得分分布（0-100）",
    buckets=[10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
)
FALLBACK_TOTAL = Counter(
    f"{_PREFIX}_fallback_total",
    "分析器降级次数",
    ["analyzer", "reason"],  # analyzer: syntax_block / quality_grader / claim_extraction / fact_matching
)
