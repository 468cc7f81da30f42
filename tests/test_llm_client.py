from types import SimpleNamespace

import pytest
from litellm.exceptions import RateLimitError

from material_validator.llm import client as llm_client
from material_validator.llm.client import LLMClient, LLMError


def _completion(content="hello", model="openai/test-model"):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15),
        model=model,
    )


class TestLLMClient:
    @pytest.mark.asyncio
    async def test_generate_sends_system_and_user_messages(self, monkeypatch):
        captured = {}

        async def fake_acompletion(**kwargs):
            captured.update(kwargs)
            return _completion('{"ok": true}')

        monkeypatch.setattr(llm_client, "acompletion", fake_acompletion)
        client = LLMClient(default_model="openai/test-model", api_key="sk-test", timeout=5)

        text = await client.generate("grade this", system="be strict", purpose="quality_grading", temperature=0.3)

        assert text == '{"ok": true}'
        assert captured["model"] == "openai/test-model"
        assert captured["api_key"] == "sk-test"
        assert captured["temperature"] == 0.3
        assert captured["timeout"] == 5
        assert captured["messages"] == [
            {"role": "system", "content": "be strict"},
            {"role": "user", "content": "grade this"},
        ]

    @pytest.mark.asyncio
    async def test_generate_without_system_prompt(self, monkeypatch):
        captured = {}

        async def fake_acompletion(**kwargs):
            captured.update(kwargs)
            return _completion()

        monkeypatch.setattr(llm_client, "acompletion", fake_acompletion)

        await LLMClient(default_model="openai/test-model").generate("hi")

        assert captured["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_chat_returns_usage(self, monkeypatch):
        async def fake_acompletion(**kwargs):
            return _completion("answer")

        monkeypatch.setattr(llm_client, "acompletion", fake_acompletion)

        resp = await LLMClient(default_model="openai/test-model").chat([{"role": "user", "content": "q"}])

        assert resp.content == "answer"
        assert resp.usage["total_tokens"] == 15
        assert resp.finish_reason == "stop"

    @pytest.mark.asyncio
    async def test_provider_failure_becomes_llm_error(self, monkeypatch):
        async def fake_acompletion(**kwargs):
            raise RuntimeError("socket closed")

        monkeypatch.setattr(llm_client, "acompletion", fake_acompletion)

        with pytest.raises(LLMError) as exc_info:
            await LLMClient(default_model="openai/test-model").generate("hi")

        assert isinstance(exc_info.value.cause, RuntimeError)
        assert "socket closed" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_rate_limit_is_labelled(self, monkeypatch):
        async def fake_acompletion(**kwargs):
            raise RateLimitError(message="slow down", llm_provider="openai", model="test-model")

        monkeypatch.setattr(llm_client, "acompletion", fake_acompletion)

        with pytest.raises(LLMError, match="限流") as exc_info:
            await LLMClient(default_model="openai/test-model").generate("hi", purpose="quality_grading")

        assert isinstance(exc_info.value.cause, RateLimitError)
