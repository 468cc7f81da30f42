import asyncio
import json

import pytest

from material_validator.samples import SAMPLE_CONTENT, SAMPLE_MATERIALS


class StubGenerator:
    """确定性的 TextGenerator 桩：固定回复 / 按 purpose 路由 / 抛错 / 延迟"""

    def __init__(self, reply=None, error=None, delay=0.0, router=None):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.router = router
        self.calls = []

    async def generate(
        self,
        prompt,
        *,
        system=None,
        purpose="general",
        temperature=0.0,
        max_tokens=1024,
    ):
        self.calls.append({"prompt": prompt, "system": system, "purpose": purpose})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.router is not None:
            return self.router(prompt, purpose)
        return self.reply


@pytest.fixture
def make_llm():
    """构造 StubGenerator 的工厂"""
    return StubGenerator


@pytest.fixture
def materials():
    return [m.model_copy() for m in SAMPLE_MATERIALS]


@pytest.fixture
def bst_content():
    return SAMPLE_CONTENT


@pytest.fixture
def quality_payload():
    return {
        "scores": {
            "correctness": 8,
            "relevance": 9,
            "completeness": 7,
            "clarity": 8,
            "academicRigor": 8,
            "practicalValue": 8,
        },
        "overallScore": 8,
        "grade": "B",
        "strengths": ["Clear structure"],
        "weaknesses": ["Few examples"],
        "recommendations": ["Add a deletion example"],
        "criticalIssues": [],
        "passesQualityCheck": True,
    }


@pytest.fixture
def quality_reply(quality_payload):
    return json.dumps(quality_payload)
