"""
服务配置：环境变量优先，其次是包目录下的 .env

评分相关的权重和阈值在加载时做一致性校验，配置错误时进程启动即失败。
"""

from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """material-validator 配置项"""

    model_config = SettingsConfigDict(
        env_file=Path(__file__).parent / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── LLM（LiteLLM，OpenAI 协议兼容的任意供应商） ──
    LLM_DEFAULT_MODEL: str = "openai/gpt-4o-mini"  # LiteLLM 格式：{provider}/{model}
    LLM_API_KEY: str = ""  # 为空且未配置 LLM_API_BASE 时，质量评分与语义溯源降级
    LLM_API_BASE: str | None = None  # 自建网关 / 本地模型地址
    LLM_TIMEOUT: int = 60  # 单次 HTTP 调用超时（秒），评分另有 QUALITY_GRADER_TIMEOUT

    # ── 质量评分（Quality Grader） ──
    QUALITY_GRADER_MODEL: str | None = None  # 不配置则使用 LLM_DEFAULT_MODEL
    QUALITY_GRADER_TIMEOUT: float = 30.0  # 单次评分调用的超时（秒），超时视为评分失败
    QUALITY_GRADER_MAX_CHARS: int = 3000  # 送入评分 Prompt 的正文截断长度

    # ── 综合评分权重（和不必为 1，计算时按实际参与的维度归一化） ──
    VALIDATION_WEIGHT_SYNTAX: float = 0.30
    VALIDATION_WEIGHT_GROUNDING: float = 0.35
    VALIDATION_WEIGHT_QUALITY: float = 0.35

    # ── 状态阈值（0-100） ──
    VALIDATION_PASS_THRESHOLD: float = 80
    VALIDATION_WARN_THRESHOLD: float = 40

    # ── 引用溯源（Grounding） ──
    GROUNDING_HIGH_THRESHOLD: float = 70
    GROUNDING_MEDIUM_THRESHOLD: float = 40
    GROUNDING_WORDS_PER_CITATION: int = 250  # 期望每 N 个词至少出现一次引用
    GROUNDING_DENSITY_FLOOR: float = 0.6  # 引用密度为 0 时保留的基础分比例
    CITATION_FUZZY_THRESHOLD: int = 85  # rapidfuzz partial_ratio 阈值

    # ── 语义溯源（Claim 级别比对） ──
    SEMANTIC_MAX_CLAIMS: int = 10  # 单次最多核验的 claim 数
    SEMANTIC_CONCURRENCY: int = 4  # 并发核验的 LLM 调用数

    # ── 应用 ──
    ENV: str = "development"  # development | production
    LOG_LEVEL: str = "INFO"
    APP_NAME: str = "material-validator"
    APP_PORT: int = 8000

    @model_validator(mode="after")
    def _check_scoring(self) -> "Settings":
        """权重和阈值的基本一致性校验，配置错误时启动即失败"""
        weights = (
            self.VALIDATION_WEIGHT_SYNTAX,
            self.VALIDATION_WEIGHT_GROUNDING,
            self.VALIDATION_WEIGHT_QUALITY,
        )
        if any(w < 0 for w in weights) or sum(weights) <= 0:
            raise ValueError("评分权重不能为负，且权重之和必须大于 0")
        if self.VALIDATION_WARN_THRESHOLD >= self.VALIDATION_PASS_THRESHOLD:
            raise ValueError("VALIDATION_WARN_THRESHOLD 必须小于 VALIDATION_PASS_THRESHOLD")
        if self.GROUNDING_MEDIUM_THRESHOLD >= self.GROUNDING_HIGH_THRESHOLD:
            raise ValueError("GROUNDING_MEDIUM_THRESHOLD 必须小于 GROUNDING_HIGH_THRESHOLD")
        if not 0.0 <= self.GROUNDING_DENSITY_FLOOR <= 1.0:
            raise ValueError("GROUNDING_DENSITY_FLOOR 必须在 0-1 之间")
        return self

    @property
    def scoring_weights(self) -> dict[str, float]:
        return {
            "syntax": self.VALIDATION_WEIGHT_SYNTAX,
            "grounding": self.VALIDATION_WEIGHT_GROUNDING,
            "quality": self.VALIDATION_WEIGHT_QUALITY,
        }

    @property
    def grounding_options(self) -> dict[str, float]:
        """score_grounding 的关键字参数"""
        return {
            "words_per_citation": self.GROUNDING_WORDS_PER_CITATION,
            "density_floor": self.GROUNDING_DENSITY_FLOOR,
            "high_threshold": self.GROUNDING_HIGH_THRESHOLD,
            "medium_threshold": self.GROUNDING_MEDIUM_THRESHOLD,
            "fuzzy_threshold": self.CITATION_FUZZY_THRESHOLD,
        }


@lru_cache
def get_settings() -> Settings:
    """进程内只加载一次；测试中直接构造 Settings(...)"""
    return Settings()
