"""
内容校验编排器：三路分析 + 加权综合

执行方式（fan-out / fan-in）：
  - 质量评分（LLM，可能慢或失败）先作为 asyncio task 发出
  - 代码语法校验、引用溯源评分是 CPU 计算，经 asyncio.to_thread 放到线程池，与 LLM 请求并行
  - 本地分析失败时取消评分 task 并抛出异常
  - 三路结果齐全后归一化到 0-100 并加权

归一化规则：
  - syntax    = valid_blocks / blocks_checked * 100；无代码时 100（中性）
  - grounding = GroundingReport.grounding_score
  - quality   = overall_score * 10；评分失败时该维度不参与，其余权重按比例放大

状态阈值（默认）：>=80 pass，>=40 warn，其余 fail；passes_validation = status != fail

无共享可变状态，可并发调用。
"""

from __future__ import annotations

import asyncio

import structlog

from material_validator.config import get_settings
from material_validator.observability.metrics import VALIDATION_SCORE, VALIDATION_TOTAL
from material_validator.validator.grounding_scorer import score_grounding
from material_validator.validator.quality_grader import QualityGrader
from material_validator.validator.schemas import (
    GroundingReport,
    OverallScore,
    QualityVerdict,
    ScoreBreakdown,
    SyntaxReport,
    ValidationRequest,
    ValidationResult,
    ValidationStatus,
)
from material_validator.validator.syntax_checker import check_syntax

log = structlog.get_logger()


def syntax_score(report: SyntaxReport) -> float:
    if not report.has_code or report.blocks_checked == 0:
        return 100.0
    return report.valid_blocks / report.blocks_checked * 100


def quality_score(verdict: QualityVerdict) -> float | None:
    if not verdict.success or verdict.overall_score is None:
        return None
    return verdict.overall_score * 10


def classify_status(score: float, pass_threshold: float, warn_threshold: float) -> ValidationStatus:
    if score >= pass_threshold:
        return "pass"
    if score >= warn_threshold:
        return "warn"
    return "fail"


def combine_scores(
    dimension_scores: dict[str, float | None],
    weights: dict[str, float],
) -> tuple[int, dict[str, float]]:
    """
    加权综合，缺失（None）的维度不参与，剩余权重重新归一化。

    Returns:
        (0-100 的综合分, 实际生效的归一化权重)
    """
    present = {
        name: score
        for name, score in dimension_scores.items()
        if score is not None and weights.get(name, 0) > 0
    }
    total_weight = sum(weights[name] for name in present)
    if total_weight <= 0:
        return 0, {}

    effective = {name: round(weights[name] / total_weight, 4) for name in present}
    blended = sum(max(0.0, min(100.0, present[name])) * weights[name] for name in present) / total_weight
    return max(0, min(100, round(blended))), effective


class ContentValidator:
    """
    内容校验器：编排三路分析，返回综合评分报告。

    应用启动时实例化一次，无状态，所有请求共享。
    """

    def __init__(
        self,
        grader: QualityGrader,
        weights: dict[str, float] | None = None,
        pass_threshold: float | None = None,
        warn_threshold: float | None = None,
        grounding_options: dict | None = None,
    ) -> None:
        settings = get_settings()
        self._grader = grader
        self.weights = weights or settings.scoring_weights
        self.pass_threshold = (
            pass_threshold if pass_threshold is not None else settings.VALIDATION_PASS_THRESHOLD
        )
        self.warn_threshold = (
            warn_threshold if warn_threshold is not None else settings.VALIDATION_WARN_THRESHOLD
        )
        if self.warn_threshold >= self.pass_threshold:
            raise ValueError("warn_threshold 必须小于 pass_threshold")
        self.grounding_options = grounding_options if grounding_options is not None else settings.grounding_options

    async def validate(self, request: ValidationRequest | dict) -> ValidationResult:
        """
        执行全部分析，返回 ValidationResult。

        Raises:
            pydantic.ValidationError: 输入不合法（如 content 缺失或为空），在任何分析开始前抛出
        """
        if not isinstance(request, ValidationRequest):
            request = ValidationRequest.model_validate(request)

        # ── fan-out：LLM 评分与两路本地分析并行 ──
        quality_task = asyncio.create_task(
            self._grader.grade(
                request.content,
                request.topic,
                request.type,
                request.internal_context,
            )
        )
        try:
            syntax, grounding = await asyncio.gather(
                asyncio.to_thread(check_syntax, request.content),
                asyncio.to_thread(
                    score_grounding,
                    request.content,
                    request.material_sources,
                    request.internal_context,
                    **self.grounding_options,
                ),
            )
        except BaseException:
            quality_task.cancel()
            raise

        # ── fan-in ──
        quality = await quality_task

        overall = self._score(syntax, grounding, quality)

        VALIDATION_TOTAL.labels(status=overall.status, material_type=request.type).inc()
        VALIDATION_SCORE.observe(overall.overall_score)

        log.info(
            "内容校验完成",
            topic=request.topic,
            material_type=request.type,
            overall_score=overall.overall_score,
            status=overall.status,
            syntax=overall.breakdown.syntax,
            grounding=overall.breakdown.grounding,
            quality=overall.breakdown.quality,
            quality_available=quality.success,
        )

        return ValidationResult(
            overall=overall,
            syntax=syntax,
            grounding=grounding,
            quality=quality,
        )

    def _score(
        self,
        syntax: SyntaxReport,
        grounding: GroundingReport,
        quality: QualityVerdict,
    ) -> OverallScore:
        dimension_scores = {
            "syntax": syntax_score(syntax),
            "grounding": float(grounding.grounding_score),
            "quality": quality_score(quality),
        }
        overall_score, effective_weights = combine_scores(dimension_scores, self.weights)
        status = classify_status(overall_score, self.pass_threshold, self.warn_threshold)

        quality_value = dimension_scores["quality"]
        return OverallScore(
            overall_score=overall_score,
            status=status,
            passes_validation=status != "fail",
            breakdown=ScoreBreakdown(
                syntax=round(dimension_scores["syntax"]),
                grounding=round(dimension_scores["grounding"]),
                quality=round(quality_value) if quality_value is not None else None,
            ),
            weights=effective_weights,
        )
