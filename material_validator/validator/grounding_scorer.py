"""
引用溯源评分（确定性，零 LLM 成本）

评分公式：
    ratio    = internal_citations / total_citations
    expected = max(1, ceil(词数 / words_per_citation))
    density  = min(1, total_citations / expected)
    score    = round(100 * ratio * (floor + (1 - floor) * density))

- 对内部引用占比、引用密度均单调不减
- 没有引用时得分 0、等级 none，作为结果返回而不是异常
- context_overlap（正文术语在 RAG 上下文中的覆盖率）只做展示，不参与打分
"""

from __future__ import annotations

import math
import re

import structlog

from material_validator.validator.citation_matcher import DEFAULT_FUZZY_THRESHOLD, extract_citations
from material_validator.validator.schemas import GroundingLevel, GroundingReport, MaterialSource

log = structlog.get_logger()

DEFAULT_HIGH_THRESHOLD = 70
DEFAULT_MEDIUM_THRESHOLD = 40
DEFAULT_WORDS_PER_CITATION = 250
DEFAULT_DENSITY_FLOOR = 0.6

_WORD_RE = re.compile(r"\w+")
_TERM_RE = re.compile(r"[a-zA-Z][a-zA-Z0-9_]{3,}")

_LOW_SCORE_RECOMMENDATIONS = [
    "Add more citations to uploaded materials",
    "Ensure facts are backed by course content",
    "Review if external sources are necessary",
]


def grounding_level(
    score: float,
    high_threshold: float = DEFAULT_HIGH_THRESHOLD,
    medium_threshold: float = DEFAULT_MEDIUM_THRESHOLD,
) -> GroundingLevel:
    """>=high → high，>=medium → medium，>0 → low，0 → none"""
    if score >= high_threshold:
        return "high"
    if score >= medium_threshold:
        return "medium"
    if score > 0:
        return "low"
    return "none"


def context_overlap(content: str, internal_context: str) -> float:
    """正文中的术语有多大比例出现在 RAG 上下文里（0-1）"""
    if not internal_context.strip():
        return 0.0
    content_terms = {t.lower() for t in _TERM_RE.findall(content)}
    if not content_terms:
        return 0.0
    context_terms = {t.lower() for t in _TERM_RE.findall(internal_context)}
    return round(len(content_terms & context_terms) / len(content_terms), 3)


def score_grounding(
    content: str,
    materials: list[MaterialSource],
    internal_context: str = "",
    *,
    words_per_citation: int = DEFAULT_WORDS_PER_CITATION,
    density_floor: float = DEFAULT_DENSITY_FLOOR,
    high_threshold: float = DEFAULT_HIGH_THRESHOLD,
    medium_threshold: float = DEFAULT_MEDIUM_THRESHOLD,
    fuzzy_threshold: int = DEFAULT_FUZZY_THRESHOLD,
) -> GroundingReport:
    """
    计算正文对课程资料的引用溯源情况。

    Args:
        content:          生成的 Markdown 正文
        materials:        本次调用传入的已知资料列表
        internal_context: 生成时使用的 RAG 上下文

    Returns:
        GroundingReport
    """
    citations = extract_citations(content, materials, fuzzy_threshold)
    total = len(citations)
    internal = sum(1 for c in citations if c.kind == "internal")

    materials_used: list[int | str] = []
    for c in citations:
        if c.matched_material_id is not None and c.matched_material_id not in materials_used:
            materials_used.append(c.matched_material_id)

    if total:
        ratio = internal / total
        words = len(_WORD_RE.findall(content))
        expected = max(1, math.ceil(words / max(1, words_per_citation)))
        density = min(1.0, total / expected)
        raw_score = 100 * ratio * (density_floor + (1 - density_floor) * density)
        score = max(0, min(100, round(raw_score)))
    else:
        score = 0

    level = grounding_level(score, high_threshold, medium_threshold)

    if total == 0:
        message = "No citations found in content"
    elif not materials:
        message = "No uploaded materials available for grounding"
    elif internal:
        message = (
            f"{internal}/{total} citation(s) reference uploaded materials "
            f"({len(materials_used)} distinct material(s))"
        )
    else:
        message = "Content lacks proper citations to uploaded materials"

    log.debug(
        "引用溯源评分完成",
        total_citations=total,
        internal_citations=internal,
        grounding_score=score,
        grounding_level=level,
    )

    return GroundingReport(
        grounding_score=score,
        grounding_level=level,
        total_citations=total,
        internal_citations=internal,
        external_citations=total - internal,
        materials_used=materials_used,
        citations=citations,
        grounded=internal > 0,
        context_overlap=context_overlap(content, internal_context),
        message=message,
        recommendations=list(_LOW_SCORE_RECOMMENDATIONS) if score < 60 else [],
    )
