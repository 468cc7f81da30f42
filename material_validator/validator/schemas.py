"""
内容校验数据结构定义

Python 侧字段为 snake_case，序列化到前端时为 camelCase（alias_generator=to_camel），
入参两种写法均可（populate_by_name=True），兼容 file_name / fileName。
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MaterialType = Literal["Theory", "Lab"]
GroundingLevel = Literal["high", "medium", "low", "none"]
ValidationStatus = Literal["pass", "warn", "fail"]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ── 输入 ──

class MaterialSource(CamelModel):
    """课程资料元数据（由调用方按次传入，本模块不访问数据库）"""
    id: int | str
    title: str
    category: str = ""
    file_name: str = ""
    summary: str | None = None  # 仅语义溯源使用
    content: str | None = None  # 仅语义溯源使用


class ValidationRequest(CamelModel):
    """单次校验的不可变输入"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    content: str
    topic: str = ""
    type: MaterialType = "Theory"
    material_sources: list[MaterialSource] = Field(default_factory=list)
    internal_context: str = ""

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content 不能为空")
        return value


# ── 代码语法 ──

class CodeBlock(CamelModel):
    """从 Markdown 中抽取的单个 fenced 代码块"""
    language: str
    code: str
    start_line: int  # 起始 ``` 所在行号（从 1 开始）


class CodeBlockResult(CamelModel):
    """单个代码块的语法校验结果"""
    language: str
    is_valid: bool
    error: str | None = None
    skipped: bool = False  # 不支持的语言（纯文本、mermaid 等）不计为缺陷
    checker: Literal["parser", "heuristic", "none"] = "none"
    start_line: int = 0


class SyntaxReport(CamelModel):
    has_code: bool
    blocks_checked: int = 0
    valid_blocks: int = 0
    invalid_blocks: int = 0
    skipped_blocks: int = 0
    all_valid: bool = True
    details: list[CodeBlockResult] = Field(default_factory=list)
    message: str = ""


# ── 引用溯源 ──

class Citation(CamelModel):
    """正文中的一个引用标记"""
    raw_text: str  # 原始标记，如 "[Source: BST Notes - Data Structures]"
    source_text: str  # 冒号后的引用内容
    kind: Literal["internal", "external"]
    matched_material_id: int | str | None = None


class GroundingReport(CamelModel):
    grounding_score: int = Field(ge=0, le=100)
    grounding_level: GroundingLevel
    total_citations: int = 0
    internal_citations: int = 0
    external_citations: int = 0
    materials_used: list[int | str] = Field(default_factory=list)  # 去重，按首次出现排序
    citations: list[Citation] = Field(default_factory=list)
    grounded: bool = False
    context_overlap: float = Field(default=0.0, ge=0.0, le=1.0)  # 仅供参考，不参与打分
    message: str = ""
    recommendations: list[str] = Field(default_factory=list)


# ── 质量评分 ──

class QualityVerdict(CamelModel):
    """LLM 质量评分结果；success=False 表示该维度缺失（不是 0 分）"""
    success: bool
    overall_score: float | None = Field(default=None, ge=0.0, le=10.0)
    grade: str = ""
    scores: dict[str, float] = Field(default_factory=dict)
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    critical_issues: list[str] = Field(default_factory=list)
    passes_quality_check: bool | None = None
    error: str | None = None


# ── 综合结果 ──

class ScoreBreakdown(CamelModel):
    syntax: int
    grounding: int
    quality: int | None = None  # 质量评分失败时为 None


class OverallScore(CamelModel):
    overall_score: int = Field(ge=0, le=100)
    status: ValidationStatus
    passes_validation: bool
    breakdown: ScoreBreakdown
    weights: dict[str, float] = Field(default_factory=dict)  # 实际生效（已归一化）的权重


class ValidationResult(CamelModel):
    """单次校验的完整结果（不含时间戳，同输入同结果）"""
    overall: OverallScore
    syntax: SyntaxReport
    grounding: GroundingReport
    quality: QualityVerdict


# ── 语义溯源（claim 级比对） ──

VerificationStatus = Literal[
    "verified", "partially_verified", "not_found", "contradicted", "no_sources", "error"
]


class Claim(CamelModel):
    id: int
    claim: str
    type: str = "technical_fact"  # definition|technical_fact|algorithm|code_explanation|example
    importance: Literal["high", "medium", "low"] = "medium"
    location: str = "middle"


class FactMatch(CamelModel):
    found: bool = False
    matched_fact: str | None = None
    source: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=100.0)
    verification_status: VerificationStatus = "not_found"
    explanation: str = ""
    discrepancy: str | None = None


class ClaimComparison(CamelModel):
    id: int
    generated_claim: str
    claim_type: str
    importance: str
    location: str
    verification: FactMatch


class SemanticGroundingSummary(CamelModel):
    verified: int = 0
    partially_verified: int = 0
    not_found: int = 0
    contradicted: int = 0
    errors: int = 0
    overall_grounding_score: int = Field(default=0, ge=0, le=100)
    grounding_level: GroundingLevel = "none"
    message: str = ""


class GroundingRecommendation(CamelModel):
    priority: Literal["high", "medium", "low"]
    action: str
    details: str


class SemanticGroundingRequest(CamelModel):
    content: str
    topic: str = ""
    material_sources: list[MaterialSource] = Field(default_factory=list)
    rag_context: str = ""

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content 不能为空")
        return value


class SemanticGroundingReport(CamelModel):
    success: bool
    total_claims: int = 0
    claims_analyzed: int = 0
    comparisons: list[ClaimComparison] = Field(default_factory=list)
    summary: SemanticGroundingSummary = Field(default_factory=SemanticGroundingSummary)
    recommendations: list[GroundingRecommendation] = Field(default_factory=list)
    error: str | None = None
