"""
语义溯源：生成内容中的 claim vs. 课程资料中的事实，逐条对照

流程：
1. claim 抽取：一次 LLM 调用，从正文中抽取可核验的事实性陈述
2. 事实比对：对 high / medium 重要度的 claim（最多 max_claims 条）并发调用 LLM，
   在资料上下文中查找支撑 / 矛盾的原文
3. 汇总：verified 100 分、partially_verified 60 分、not_found / no_sources 30 分、
   contradicted 与 error 0 分，取平均

降级规则：
- 抽取失败 → 视为没有 claim（得分 100，提示“无可核验陈述”）
- 单条比对失败 → 该条 status=error，不影响其余 claim
- 资料上下文不足 50 字符 → no_sources，不发起 LLM 调用
"""

from __future__ import annotations

import asyncio

import structlog
from pydantic import ValidationError

from material_validator.guardrails.json_repairer import json_repairer
from material_validator.llm.client import TextGenerator
from material_validator.observability.metrics import FALLBACK_TOTAL
from material_validator.validator.grounding_scorer import (
    DEFAULT_HIGH_THRESHOLD,
    DEFAULT_MEDIUM_THRESHOLD,
    grounding_level,
)
from material_validator.validator.schemas import (
    Claim,
    ClaimComparison,
    FactMatch,
    GroundingRecommendation,
    MaterialSource,
    SemanticGroundingReport,
    SemanticGroundingRequest,
    SemanticGroundingSummary,
)

log = structlog.get_logger()

DEFAULT_MAX_CLAIMS = 10
DEFAULT_CONCURRENCY = 4
MIN_SOURCE_CONTEXT_CHARS = 50

_STATUS_POINTS = {
    "verified": 100,
    "partially_verified": 60,
    "not_found": 30,
    "no_sources": 30,
}

_CLAIM_EXTRACTION_PROMPT = """\
Analyze the following educational content and extract all factual claims, definitions, \
and technical statements that can be verified.

**Content to Analyze:**
{content}

**Instructions:**
1. Extract ONLY verifiable factual claims (not opinions or general statements)
2. Focus on: definitions, technical facts, code explanations, algorithm descriptions
3. Keep each claim concise (1-2 sentences max)
4. Include the approximate location (beginning/middle/end of content)

**OUTPUT FORMAT (JSON only, no markdown):**
{{
  "claims": [
    {{
      "id": 1,
      "claim": "<the factual claim>",
      "type": "<definition|technical_fact|algorithm|code_explanation|example>",
      "importance": "<high|medium|low>",
      "location": "<beginning|middle|end>"
    }}
  ],
  "totalClaims": <number>
}}\
"""

_FACT_MATCH_PROMPT = """\
You are a fact-checking expert. Verify if the following claim is supported by the source materials.

**CLAIM TO VERIFY:**
"{claim}"

**SOURCE MATERIALS:**
{sources}

**Instructions:**
1. Search for facts in the source materials that support, contradict, or relate to the claim
2. If found, quote the relevant fact EXACTLY as it appears in the source
3. Assess confidence level based on how well the source supports the claim

**OUTPUT FORMAT (JSON only):**
{{
  "found": <true|false>,
  "matchedFact": "<exact quote from source or null>",
  "source": "<source title/name or null>",
  "confidence": <0-100>,
  "verificationStatus": "<verified|partially_verified|not_found|contradicted>",
  "explanation": "<brief explanation of the match or mismatch>",
  "discrepancy": "<any difference between claim and fact, or null>"
}}\
"""


def _truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "\n... (truncated)"


def build_source_context(materials: list[MaterialSource], rag_context: str = "") -> str:
    """优先使用生成时的 RAG 上下文，否则拼接资料正文 / 摘要"""
    if rag_context.strip():
        return rag_context
    return "\n\n".join(
        f"[{m.title}]: {m.content or m.summary or ''}" for m in materials
    )


def summary_message(verified: int, partial: int, not_found: int, contradicted: int, total: int) -> str:
    if total == 0:
        return "No claims to verify"
    verified_pct = round(verified / total * 100)
    if contradicted > 0:
        return f"{contradicted} claim(s) contradict source materials. Review needed."
    if verified_pct >= 80:
        return f"{verified}/{total} claims verified against source materials. Content is well-grounded."
    if verified_pct >= 50:
        return f"{verified}/{total} claims verified. {not_found} claims lack source backing."
    return f"Only {verified}/{total} claims verified. Content may contain unsupported statements."


def build_recommendations(comparisons: list[ClaimComparison]) -> list[GroundingRecommendation]:
    recommendations: list[GroundingRecommendation] = []
    statuses = [c.verification.verification_status for c in comparisons]

    contradicted = statuses.count("contradicted")
    not_found = statuses.count("not_found") + statuses.count("no_sources")

    if contradicted:
        recommendations.append(GroundingRecommendation(
            priority="high",
            action="Review contradicted claims",
            details=f"{contradicted} claim(s) may contain inaccuracies that contradict source materials.",
        ))
    if not_found > 2:
        recommendations.append(GroundingRecommendation(
            priority="medium",
            action="Add source citations",
            details=(
                f"{not_found} claims lack backing in uploaded materials. "
                "Consider adding supporting documents."
            ),
        ))
    if statuses and all(s == "verified" for s in statuses):
        recommendations.append(GroundingRecommendation(
            priority="low",
            action="Content well-grounded",
            details="All analyzed claims are supported by source materials.",
        ))
    return recommendations


class SemanticGroundingAnalyzer:
    """claim 级语义溯源分析器：无状态，所有请求共享"""

    def __init__(
        self,
        llm: TextGenerator,
        max_claims: int = DEFAULT_MAX_CLAIMS,
        concurrency: int = DEFAULT_CONCURRENCY,
        high_threshold: float = DEFAULT_HIGH_THRESHOLD,
        medium_threshold: float = DEFAULT_MEDIUM_THRESHOLD,
    ) -> None:
        self._llm = llm
        self.max_claims = max_claims
        self.concurrency = max(1, concurrency)
        self.high_threshold = high_threshold
        self.medium_threshold = medium_threshold

    async def extract_claims(self, content: str) -> list[Claim]:
        """抽取可核验的 claim；任何失败返回空列表"""
        prompt = _CLAIM_EXTRACTION_PROMPT.format(content=_truncate(content, 4000))
        try:
            raw = await self._llm.generate(
                prompt,
                system="You are a fact extraction expert. Return ONLY valid JSON, no markdown formatting.",
                purpose="claim_extraction",
                temperature=0.2,
                max_tokens=2000,
            )
            data = json_repairer.repair(raw, required_keys=("claims",))
        except Exception as e:
            log.warning("claim 抽取失败，按无 claim 处理", error=str(e))
            FALLBACK_TOTAL.labels(analyzer="claim_extraction", reason=type(e).__name__).inc()
            return []

        items = data.get("claims")
        if not isinstance(items, list):
            log.warning("claim 抽取回复中 claims 不是数组", claims_type=type(items).__name__)
            return []

        claims: list[Claim] = []
        for idx, item in enumerate(items, start=1):
            if not isinstance(item, dict) or not str(item.get("claim", "")).strip():
                continue
            try:
                claims.append(Claim(
                    id=item.get("id") if isinstance(item.get("id"), int) else idx,
                    claim=str(item["claim"]).strip(),
                    type=str(item.get("type") or "technical_fact"),
                    importance=str(item.get("importance") or "medium").lower(),
                    location=str(item.get("location") or "middle"),
                ))
            except ValidationError as e:
                log.debug("跳过格式不符的 claim", index=idx, error=str(e))

        log.info("claim 抽取完成", claim_count=len(claims))
        return claims

    async def find_matching_fact(
        self,
        claim: str,
        materials: list[MaterialSource],
        rag_context: str = "",
    ) -> FactMatch:
        """在资料上下文中核验单条 claim；失败时返回 status=error"""
        source_context = build_source_context(materials, rag_context)
        if len(source_context.strip()) < MIN_SOURCE_CONTEXT_CHARS:
            return FactMatch(
                verification_status="no_sources",
                explanation="No source materials available for verification",
            )

        prompt = _FACT_MATCH_PROMPT.format(claim=claim, sources=_truncate(source_context, 3000))
        try:
            raw = await self._llm.generate(
                prompt,
                system="You are a meticulous fact-checker. Return ONLY valid JSON, no markdown.",
                purpose="fact_matching",
                temperature=0.1,
                max_tokens=500,
            )
            data = json_repairer.repair(raw, required_keys=("verificationStatus",))
            if isinstance(data.get("confidence"), (int, float)):
                data["confidence"] = max(0, min(100, data["confidence"]))
            return FactMatch.model_validate(data)
        except Exception as e:
            log.warning("事实比对失败", claim_preview=claim[:80], error=str(e))
            FALLBACK_TOTAL.labels(analyzer="fact_matching", reason=type(e).__name__).inc()
            return FactMatch(
                verification_status="error",
                explanation=f"Verification failed: {e}",
            )

    async def analyze(self, request: SemanticGroundingRequest | dict) -> SemanticGroundingReport:
        """
        完整语义溯源分析。

        Raises:
            pydantic.ValidationError: 输入不合法
        """
        if not isinstance(request, SemanticGroundingRequest):
            request = SemanticGroundingRequest.model_validate(request)

        log.info(
            "语义溯源开始",
            topic=request.topic,
            sources=len(request.material_sources),
        )

        try:
            claims = await self.extract_claims(request.content)
            if not claims:
                return SemanticGroundingReport(
                    success=True,
                    summary=SemanticGroundingSummary(
                        overall_grounding_score=100,
                        grounding_level=grounding_level(100, self.high_threshold, self.medium_threshold),
                        message="No verifiable claims found in content",
                    ),
                )

            selected = [c for c in claims if c.importance in ("high", "medium")][: self.max_claims]
            semaphore = asyncio.Semaphore(self.concurrency)

            async def _verify(claim: Claim) -> ClaimComparison:
                async with semaphore:
                    match = await self.find_matching_fact(
                        claim.claim, request.material_sources, request.rag_context
                    )
                return ClaimComparison(
                    id=claim.id,
                    generated_claim=claim.claim,
                    claim_type=claim.type,
                    importance=claim.importance,
                    location=claim.location,
                    verification=match,
                )

            # gather 保持输入顺序
            comparisons = list(await asyncio.gather(*(_verify(c) for c in selected)))
        except Exception as e:
            log.error("语义溯源分析异常", error=str(e), exc_info=True)
            return SemanticGroundingReport(
                success=False,
                error=str(e),
                summary=SemanticGroundingSummary(message="Semantic grounding analysis failed"),
            )

        statuses = [c.verification.verification_status for c in comparisons]
        verified = statuses.count("verified")
        partial = statuses.count("partially_verified")
        not_found = statuses.count("not_found") + statuses.count("no_sources")
        contradicted = statuses.count("contradicted")
        errors = statuses.count("error")

        analyzed = len(comparisons)
        if analyzed:
            points = sum(_STATUS_POINTS.get(s, 0) for s in statuses)
            score = max(0, min(100, round(points / analyzed)))
        else:
            # 只有 low 重要度的 claim：没有任何核验结果，不视为有依据
            score = 0 if request.material_sources else 50

        summary = SemanticGroundingSummary(
            verified=verified,
            partially_verified=partial,
            not_found=not_found,
            contradicted=contradicted,
            errors=errors,
            overall_grounding_score=score,
            grounding_level=grounding_level(score, self.high_threshold, self.medium_threshold),
            message=summary_message(verified, partial, not_found, contradicted, analyzed),
        )

        log.info(
            "语义溯源完成",
            total_claims=len(claims),
            claims_analyzed=analyzed,
            score=score,
            level=summary.grounding_level,
        )

        return SemanticGroundingReport(
            success=True,
            total_claims=len(claims),
            claims_analyzed=analyzed,
            comparisons=comparisons,
            summary=summary,
            recommendations=build_recommendations(comparisons),
        )
