"""
AI 质量评分（LLM 单次调用，带超时）

原理：
将生成的课程资料 + 主题 / 类型 + RAG 上下文摘要交给评分 LLM，按六项 rubric 打分（0-10），
返回结构化 JSON（分项得分、优点、不足、改进建议）。

设计要点：
- 只依赖 TextGenerator 窄接口，测试用确定性桩替换
- 正文截断至 QUALITY_GRADER_MAX_CHARS，避免评分本身 token 过高
- 单次尝试，不重试；超时 / LLMError / 回复无法解析均降级为 success=False
- 综合器把 success=False 视为“维度缺失”而不是 0 分
"""

from __future__ import annotations

import asyncio

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from material_validator.guardrails.json_repairer import json_repairer
from material_validator.llm.client import TextGenerator
from material_validator.observability.metrics import FALLBACK_TOTAL
from material_validator.validator.schemas import MaterialType, QualityVerdict

log = structlog.get_logger()

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_CHARS = 3000

_SYSTEM_PROMPT = "You are an expert academic evaluator. Return ONLY valid JSON, no markdown formatting."

# 评分 Prompt（稳定模板，硬编码）
_QUALITY_RUBRIC_PROMPT = """\
You are an expert academic content evaluator. Evaluate the following AI-generated \
educational material using a strict rubric.

**Topic:** {topic}
**Type:** {material_type}
**Content Length:** {content_length} characters

**Material to Evaluate:**
```markdown
{content}
```

**Course context the material was generated from:**
{context}

**EVALUATION RUBRIC** (Score each category 0-10):

1. **Correctness**: factual accuracy, technical correctness, no misleading information
2. **Relevance**: addresses the topic directly, stays on-topic, appropriate depth for {material_type}
3. **Completeness**: covers key concepts, includes examples, has proper structure
4. **Clarity**: well-organized, easy to understand, good explanations
5. **Academic Rigor**: proper citations, evidence-based, meets educational standards
6. **Practical Value**: useful for learning, actionable, real-world applicability

**OUTPUT FORMAT (JSON only, no markdown):**
{{
  "scores": {{
    "correctness": <0-10>,
    "relevance": <0-10>,
    "completeness": <0-10>,
    "clarity": <0-10>,
    "academicRigor": <0-10>,
    "practicalValue": <0-10>
  }},
  "overallScore": <average 0-10>,
  "grade": "<A|B|C|D|F>",
  "strengths": ["<strength 1>", "<strength 2>"],
  "weaknesses": ["<weakness 1>", "<weakness 2>"],
  "recommendations": ["<recommendation 1>", "<recommendation 2>"],
  "criticalIssues": ["<issue 1>" or empty array],
  "passesQualityCheck": <true/false>
}}\
"""


def _truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "\n... (truncated)"


def _clamp(value: float, low: float = 0.0, high: float = 10.0) -> float:
    return max(low, min(high, value))


def letter_grade(score: float) -> str:
    """0-10 分映射到字母等级"""
    if score >= 9:
        return "A"
    if score >= 8:
        return "B"
    if score >= 7:
        return "C"
    if score >= 6:
        return "D"
    return "F"


class _RubricReply(BaseModel):
    """评分 LLM 回复的宽松解析模型"""
    model_config = ConfigDict(extra="ignore")

    scores: dict[str, float] = Field(default_factory=dict)
    overallScore: float | None = None
    grade: str | None = None
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    criticalIssues: list[str] = Field(default_factory=list)
    passesQualityCheck: bool | None = None

    @field_validator("strengths", "weaknesses", "recommendations", "criticalIssues", mode="before")
    @classmethod
    def _coerce_list(cls, value: object) -> object:
        # 模型偶尔返回 null 或单个字符串
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        return value


def parse_quality_reply(raw: str) -> QualityVerdict:
    """
    解析评分 LLM 的原始回复。

    Raises:
        ValueError: 回复不是 JSON 对象，或既无分项得分也无总分
        ValidationError: 字段类型不符
    """
    data = json_repairer.repair(raw)
    reply = _RubricReply.model_validate(data)

    scores = {name: round(_clamp(value), 2) for name, value in reply.scores.items()}
    if reply.overallScore is not None:
        overall = _clamp(reply.overallScore)
    elif scores:
        overall = sum(scores.values()) / len(scores)
    else:
        raise ValueError("评分回复缺少 scores 与 overallScore")
    overall = round(overall, 2)

    return QualityVerdict(
        success=True,
        overall_score=overall,
        grade=(reply.grade or "").strip() or letter_grade(overall),
        scores=scores,
        strengths=reply.strengths,
        weaknesses=reply.weaknesses,
        recommendations=reply.recommendations,
        critical_issues=reply.criticalIssues,
        passes_quality_check=reply.passesQualityCheck,
    )


class QualityGrader:
    """LLM rubric 评分器：无状态，所有请求共享"""

    def __init__(
        self,
        llm: TextGenerator,
        timeout: float = DEFAULT_TIMEOUT,
        max_chars: int = DEFAULT_MAX_CHARS,
    ) -> None:
        self._llm = llm
        self.timeout = timeout
        self.max_chars = max_chars

    def build_prompt(
        self,
        content: str,
        topic: str,
        material_type: MaterialType,
        internal_context: str = "",
    ) -> str:
        return _QUALITY_RUBRIC_PROMPT.format(
            topic=topic or "(not specified)",
            material_type=material_type,
            content_length=len(content),
            content=_truncate(content, self.max_chars),
            context=_truncate(internal_context, self.max_chars // 3) or "(none provided)",
        )

    async def grade(
        self,
        content: str,
        topic: str,
        material_type: MaterialType,
        internal_context: str = "",
    ) -> QualityVerdict:
        """
        执行一次质量评分。

        不抛出异常：调用失败、超时或回复格式不符时返回 success=False。
        """
        prompt = self.build_prompt(content, topic, material_type, internal_context)

        try:
            raw = await asyncio.wait_for(
                self._llm.generate(
                    prompt,
                    system=_SYSTEM_PROMPT,
                    purpose="quality_grading",
                    temperature=0.3,
                    max_tokens=1000,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            log.warning("质量评分超时，降级为维度缺失", timeout=self.timeout)
            FALLBACK_TOTAL.labels(analyzer="quality_grader", reason="timeout").inc()
            return QualityVerdict(success=False, error=f"Quality evaluation timed out after {self.timeout}s")
        except Exception as e:
            log.warning("质量评分调用失败，降级为维度缺失", error=str(e))
            FALLBACK_TOTAL.labels(analyzer="quality_grader", reason="call_failed").inc()
            return QualityVerdict(success=False, error=f"Quality evaluation failed: {e}")

        try:
            verdict = parse_quality_reply(raw)
        except (ValueError, ValidationError) as e:
            log.warning("质量评分回复无法解析，降级为维度缺失", raw_preview=str(raw)[:200], error=str(e))
            FALLBACK_TOTAL.labels(analyzer="quality_grader", reason="malformed_reply").inc()
            return QualityVerdict(success=False, error=f"Malformed quality evaluation reply: {e}")

        log.info("质量评分完成", overall_score=verdict.overall_score, grade=verdict.grade)
        return verdict
