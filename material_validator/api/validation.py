"""
内容校验接口

端点：
- POST /validate：完整校验（语法 + 溯源 + 质量评分 → 综合评分）
- POST /validate/syntax：仅代码语法校验
- POST /validate/grounding：仅引用溯源评分
- POST /grounding/semantic：claim 级语义溯源对照

入参不合法（content 缺失 / 为空）由 FastAPI 直接返回 422，不会进入任何分析器。
"""

from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import Field, field_validator

from material_validator.config import Settings
from material_validator.llm.client import LLMClient
from material_validator.observability.request_logger import current_trace_id
from material_validator.validator.content_validator import ContentValidator
from material_validator.validator.grounding_scorer import score_grounding
from material_validator.validator.quality_grader import QualityGrader
from material_validator.validator.schemas import (
    CamelModel,
    GroundingReport,
    MaterialSource,
    MaterialType,
    OverallScore,
    QualityVerdict,
    SemanticGroundingReport,
    SemanticGroundingRequest,
    SyntaxReport,
    ValidationRequest,
)
from material_validator.validator.semantic_grounding import SemanticGroundingAnalyzer
from material_validator.validator.syntax_checker import check_syntax

router = APIRouter(tags=["内容校验"])
log = structlog.get_logger()


# ── 组件装配：create_app 按传入的 Settings 构建一次，挂在 app.state 上 ──

def build_llm_client(settings: Settings, model: str | None = None) -> LLMClient:
    return LLMClient(
        default_model=model or settings.LLM_DEFAULT_MODEL,
        api_key=settings.LLM_API_KEY,
        api_base=settings.LLM_API_BASE,
        timeout=settings.LLM_TIMEOUT,
    )


def build_content_validator(settings: Settings) -> ContentValidator:
    # 评分可单独指定模型，否则与其余调用共用默认模型
    grader = QualityGrader(
        build_llm_client(settings, settings.QUALITY_GRADER_MODEL),
        timeout=settings.QUALITY_GRADER_TIMEOUT,
        max_chars=settings.QUALITY_GRADER_MAX_CHARS,
    )
    return ContentValidator(
        grader,
        weights=settings.scoring_weights,
        pass_threshold=settings.VALIDATION_PASS_THRESHOLD,
        warn_threshold=settings.VALIDATION_WARN_THRESHOLD,
        grounding_options=settings.grounding_options,
    )


def build_semantic_analyzer(settings: Settings) -> SemanticGroundingAnalyzer:
    return SemanticGroundingAnalyzer(
        build_llm_client(settings),
        max_claims=settings.SEMANTIC_MAX_CLAIMS,
        concurrency=settings.SEMANTIC_CONCURRENCY,
        high_threshold=settings.GROUNDING_HIGH_THRESHOLD,
        medium_threshold=settings.GROUNDING_MEDIUM_THRESHOLD,
    )


# ── 依赖（测试通过 dependency_overrides 替换） ──

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_content_validator(request: Request) -> ContentValidator:
    return request.app.state.content_validator


def get_semantic_analyzer(request: Request) -> SemanticGroundingAnalyzer:
    return request.app.state.semantic_analyzer


# ── 请求/响应模型 ──

class SyntaxRequest(CamelModel):
    content: str


class GroundingRequest(CamelModel):
    content: str
    material_sources: list[MaterialSource] = Field(default_factory=list)
    internal_context: str = ""

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content 不能为空")
        return value


class ValidationResponse(CamelModel):
    """HTTP 响应信封：ValidationResult + 时间戳 / trace_id"""
    success: bool = True
    validated_at: datetime
    trace_id: str = ""
    topic: str
    type: MaterialType
    overall: OverallScore
    syntax: SyntaxReport
    grounding: GroundingReport
    quality: QualityVerdict


# ── 端点 ──

@router.post("/validate", response_model=ValidationResponse)
async def validate_content(
    request: ValidationRequest,
    validator: ContentValidator = Depends(get_content_validator),
) -> ValidationResponse:
    """完整内容校验"""
    result = await validator.validate(request)
    return ValidationResponse(
        validated_at=datetime.now(timezone.utc),
        trace_id=current_trace_id(),
        topic=request.topic,
        type=request.type,
        overall=result.overall,
        syntax=result.syntax,
        grounding=result.grounding,
        quality=result.quality,
    )


@router.post("/validate/syntax", response_model=SyntaxReport)
async def validate_syntax(request: SyntaxRequest) -> SyntaxReport:
    return check_syntax(request.content)


@router.post("/validate/grounding", response_model=GroundingReport)
async def validate_grounding(
    request: GroundingRequest,
    settings: Settings = Depends(get_app_settings),
) -> GroundingReport:
    return score_grounding(
        request.content,
        request.material_sources,
        request.internal_context,
        **settings.grounding_options,
    )


@router.post("/grounding/semantic", response_model=SemanticGroundingReport)
async def semantic_grounding(
    request: SemanticGroundingRequest,
    analyzer: SemanticGroundingAnalyzer = Depends(get_semantic_analyzer),
) -> SemanticGroundingReport:
    """claim 级语义溯源（GroundingComparison 面板数据源）"""
    report = await analyzer.analyze(request)
    if not report.success:
        log.warning("语义溯源降级返回", error=report.error)
    return report
