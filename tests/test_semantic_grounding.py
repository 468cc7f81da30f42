import json

import pytest
from pydantic import ValidationError

from material_validator.llm.client import LLMError
from material_validator.validator.schemas import MaterialSource
from material_validator.validator.semantic_grounding import (
    SemanticGroundingAnalyzer,
    build_source_context,
    summary_message,
)

RAG_CONTEXT = (
    "Lecture 4: In a binary search tree every key in the left subtree is smaller than the node key. "
    "Insertion takes O(h) time where h is the height of the tree."
)

CLAIMS = {
    "claims": [
        {
            "id": 1,
            "claim": "A BST keeps smaller keys in the left subtree.",
            "type": "definition",
            "importance": "high",
            "location": "beginning",
        },
        {
            "id": 2,
            "claim": "Insertion into a BST is always O(1).",
            "type": "technical_fact",
            "importance": "medium",
            "location": "middle",
        },
        {
            "id": 3,
            "claim": "Trees are popular in interviews.",
            "type": "example",
            "importance": "low",
            "location": "end",
        },
    ],
    "totalClaims": 3,
}

VERIFIED = {
    "found": True,
    "matchedFact": "every key in the left subtree is smaller than the node key",
    "source": "Lecture 4",
    "confidence": 95,
    "verificationStatus": "verified",
    "explanation": "Direct match",
    "discrepancy": None,
}

CONTRADICTED = {
    "found": True,
    "matchedFact": "Insertion takes O(h) time",
    "source": "Lecture 4",
    "confidence": 90,
    "verificationStatus": "contradicted",
    "explanation": "Source states O(h)",
    "discrepancy": "O(1) vs O(h)",
}


def _router(claims=CLAIMS, on_fact=None):
    def route(prompt, purpose):
        if purpose == "claim_extraction":
            return json.dumps(claims)
        if on_fact is not None:
            return on_fact(prompt)
        if "always O(1)" in prompt:
            return json.dumps(CONTRADICTED)
        return json.dumps(VERIFIED)

    return route


class TestSemanticGroundingAnalyzer:
    @pytest.mark.asyncio
    async def test_verified_and_contradicted(self, make_llm):
        llm = make_llm(router=_router())
        analyzer = SemanticGroundingAnalyzer(llm)

        report = await analyzer.analyze({"content": "BST notes", "topic": "BST", "rag_context": RAG_CONTEXT})

        assert report.success is True
        assert report.total_claims == 3
        assert report.claims_analyzed == 2
        assert [c.id for c in report.comparisons] == [1, 2]
        assert report.comparisons[0].verification.verification_status == "verified"
        assert report.comparisons[1].verification.discrepancy == "O(1) vs O(h)"
        assert report.summary.verified == 1
        assert report.summary.contradicted == 1
        assert report.summary.overall_grounding_score == 50
        assert report.summary.grounding_level == "medium"
        assert "contradict" in report.summary.message
        assert report.recommendations[0].priority == "high"
        assert [c["purpose"] for c in llm.calls].count("fact_matching") == 2

    @pytest.mark.asyncio
    async def test_all_verified(self, make_llm):
        analyzer = SemanticGroundingAnalyzer(make_llm(router=_router(on_fact=lambda _: json.dumps(VERIFIED))))

        report = await analyzer.analyze({"content": "BST notes", "rag_context": RAG_CONTEXT})

        assert report.summary.overall_grounding_score == 100
        assert report.summary.grounding_level == "high"
        assert report.recommendations[-1].action == "Content well-grounded"

    @pytest.mark.asyncio
    async def test_no_claims(self, make_llm):
        analyzer = SemanticGroundingAnalyzer(make_llm(router=_router(claims={"claims": []})))

        report = await analyzer.analyze({"content": "Hello there."})

        assert report.success is True
        assert report.comparisons == []
        assert report.summary.overall_grounding_score == 100

    @pytest.mark.asyncio
    async def test_only_low_importance_claims(self, make_llm):
        claims = {"claims": [{"id": 1, "claim": "Trees are fun.", "importance": "low"}]}
        analyzer = SemanticGroundingAnalyzer(make_llm(router=_router(claims=claims)))

        report = await analyzer.analyze({"content": "Trees are fun.", "rag_context": RAG_CONTEXT})

        assert report.total_claims == 1
        assert report.claims_analyzed == 0
        assert report.summary.overall_grounding_score == 50
        assert report.summary.grounding_level == "medium"
        assert report.summary.message == "No claims to verify"

    @pytest.mark.asyncio
    async def test_only_low_importance_claims_with_materials(self, make_llm, materials):
        claims = {"claims": [{"id": 1, "claim": "Trees are fun.", "importance": "low"}]}
        llm = make_llm(router=_router(claims=claims))
        analyzer = SemanticGroundingAnalyzer(llm)

        report = await analyzer.analyze({"content": "Trees are fun.", "material_sources": materials})

        assert report.claims_analyzed == 0
        assert report.summary.overall_grounding_score == 0
        assert report.summary.grounding_level == "none"
        assert [c["purpose"] for c in llm.calls] == ["claim_extraction"]

    @pytest.mark.asyncio
    async def test_extraction_failure_is_treated_as_no_claims(self, make_llm):
        analyzer = SemanticGroundingAnalyzer(make_llm(error=LLMError("down")))

        report = await analyzer.analyze({"content": "BST notes"})

        assert report.success is True
        assert report.total_claims == 0

    @pytest.mark.asyncio
    async def test_without_sources_no_fact_calls(self, make_llm):
        llm = make_llm(router=_router())
        analyzer = SemanticGroundingAnalyzer(llm)

        report = await analyzer.analyze({
            "content": "BST notes",
            "material_sources": [MaterialSource(id=1, title="Notes")],
        })

        assert [c.verification.verification_status for c in report.comparisons] == ["no_sources", "no_sources"]
        assert report.summary.not_found == 2
        assert report.summary.overall_grounding_score == 30
        assert report.summary.grounding_level == "low"
        assert [c["purpose"] for c in llm.calls] == ["claim_extraction"]

    @pytest.mark.asyncio
    async def test_material_content_is_used_as_source(self, make_llm):
        llm = make_llm(router=_router())
        analyzer = SemanticGroundingAnalyzer(llm)
        material = MaterialSource(id=1, title="Lecture 4", content=RAG_CONTEXT)

        report = await analyzer.analyze({"content": "BST notes", "material_sources": [material]})

        assert report.summary.verified == 1
        fact_prompts = [c["prompt"] for c in llm.calls if c["purpose"] == "fact_matching"]
        assert all("[Lecture 4]:" in p for p in fact_prompts)

    @pytest.mark.asyncio
    async def test_single_fact_failure_is_isolated(self, make_llm):
        def on_fact(prompt):
            if "always O(1)" in prompt:
                raise RuntimeError("provider hiccup")
            return json.dumps(VERIFIED)

        analyzer = SemanticGroundingAnalyzer(make_llm(router=_router(on_fact=on_fact)))

        report = await analyzer.analyze({"content": "BST notes", "rag_context": RAG_CONTEXT})

        assert report.success is True
        assert report.summary.errors == 1
        assert report.summary.verified == 1
        assert report.comparisons[1].verification.verification_status == "error"
        assert report.summary.overall_grounding_score == 50

    @pytest.mark.asyncio
    async def test_confidence_is_clamped(self, make_llm):
        reply = dict(VERIFIED, confidence=150)
        analyzer = SemanticGroundingAnalyzer(make_llm(router=_router(on_fact=lambda _: json.dumps(reply))))

        match = await analyzer.find_matching_fact("A BST keeps smaller keys left.", [], RAG_CONTEXT)

        assert match.confidence == 100

    @pytest.mark.asyncio
    async def test_max_claims_limit(self, make_llm):
        claims = {"claims": [{"id": i, "claim": f"Fact number {i}.", "importance": "high"} for i in range(1, 6)]}
        analyzer = SemanticGroundingAnalyzer(make_llm(router=_router(claims=claims)), max_claims=2, concurrency=1)

        report = await analyzer.analyze({"content": "Facts", "rag_context": RAG_CONTEXT})

        assert report.total_claims == 5
        assert report.claims_analyzed == 2
        assert [c.id for c in report.comparisons] == [1, 2]

    @pytest.mark.asyncio
    async def test_blank_content_is_rejected(self, make_llm):
        analyzer = SemanticGroundingAnalyzer(make_llm())

        with pytest.raises(ValidationError):
            await analyzer.analyze({"content": ""})


def test_build_source_context_prefers_rag():
    materials = [MaterialSource(id=1, title="Slides", summary="Summary text")]

    assert build_source_context(materials, "rag text") == "rag text"
    assert build_source_context(materials) == "[Slides]: Summary text"


@pytest.mark.parametrize(
    "counts, expected",
    [
        ((0, 0, 0, 0, 0), "No claims to verify"),
        ((4, 0, 1, 0, 5), "well-grounded"),
        ((3, 0, 2, 0, 5), "lack source backing"),
        ((1, 0, 4, 0, 5), "unsupported statements"),
    ],
)
def test_summary_message(counts, expected):
    assert expected in summary_message(*counts)
