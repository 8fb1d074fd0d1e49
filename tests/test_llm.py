# =============================================================================
# Unit Tests — LLM Providers & Language Utilities
# =============================================================================
#
# Provider classes are built with a dummy key and their SDK client is
# swapped for a mock, so request shaping can be checked without network.
# =============================================================================

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from chatmesh.services import llm as llm_module
from chatmesh.services.language import (
    NONSENSE,
    detect_language,
    get_language_context,
    get_language_enforcement_instructions,
)
from chatmesh.services.llm import (
    JSON_MODE_INSTRUCTION,
    AnthropicProvider,
    LLMResponse,
    OpenAICompatibleProvider,
    complete_prompt,
)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _llm(content: str | None = "ok") -> AsyncMock:
    llm = AsyncMock()
    llm.complete.return_value = LLMResponse(
        content=content, model="test-model", input_tokens=3, output_tokens=1,
    )
    return llm


# ---------------------------------------------------------------------------
# Test: complete_prompt
# ---------------------------------------------------------------------------


class TestCompletePrompt:
    def test_wraps_prompt_as_user_message(self):
        llm = _llm("answer")
        result = _run(complete_prompt(llm, "question", system="be brief", json_mode=True))

        assert result == "answer"
        kwargs = llm.complete.call_args.kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "question"}]
        assert kwargs["system"] == "be brief"
        assert kwargs["json_mode"] is True

    def test_empty_content_is_empty_string(self):
        assert _run(complete_prompt(_llm(None), "question")) == ""


# ---------------------------------------------------------------------------
# Test: Providers
# ---------------------------------------------------------------------------


class TestAnthropicProvider:
    def _provider(self) -> AnthropicProvider:
        provider = AnthropicProvider(api_key="test-key", model="test-model")
        provider._client = MagicMock()
        provider._client.messages.create = AsyncMock(return_value=SimpleNamespace(
            content=[SimpleNamespace(type="text", text='{"a": 1}')],
            model="test-model",
            usage=SimpleNamespace(input_tokens=12, output_tokens=4),
        ))
        return provider

    def test_system_prompt_is_top_level(self):
        provider = self._provider()
        response = _run(provider.complete(
            [{"role": "user", "content": "hi"}], system="be nice",
        ))

        kwargs = provider._client.messages.create.call_args.kwargs
        assert kwargs["system"] == "be nice"
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]
        assert response.content == '{"a": 1}'
        assert response.input_tokens == 12

    def test_json_mode_appends_instruction(self):
        provider = self._provider()
        _run(provider.complete([{"role": "user", "content": "hi"}], system="s", json_mode=True))
        system = provider._client.messages.create.call_args.kwargs["system"]
        assert system == f"s\n\n{JSON_MODE_INSTRUCTION}"

    def test_missing_key(self):
        with patch.object(llm_module.settings, "llm_api_key", None), \
                patch.object(llm_module.settings, "anthropic_api_key", ""):
            with pytest.raises(ValueError):
                AnthropicProvider()


class TestOpenAICompatibleProvider:
    def _provider(self) -> OpenAICompatibleProvider:
        provider = OpenAICompatibleProvider(api_key="test-key", model="test-model")
        provider._client = MagicMock()
        provider._client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="hello"))],
            model="test-model",
            usage=None,
        ))
        return provider

    def test_system_prompt_is_first_message(self):
        provider = self._provider()
        response = _run(provider.complete([{"role": "user", "content": "hi"}], system="sys"))

        kwargs = provider._client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
        assert "response_format" not in kwargs
        assert response.content == "hello"
        assert response.input_tokens == 0

    def test_json_mode_sets_response_format(self):
        provider = self._provider()
        _run(provider.complete([{"role": "user", "content": "hi"}], json_mode=True))
        kwargs = provider._client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}


# ---------------------------------------------------------------------------
# Test: Language Detection
# ---------------------------------------------------------------------------


class TestLanguage:
    def test_detects_and_strips(self):
        assert _run(detect_language("hola amigo", _llm('"Spanish".'))) == "Spanish"

    def test_provider_error_falls_back(self):
        llm = AsyncMock()
        llm.complete.side_effect = RuntimeError("down")
        assert _run(detect_language("hola", llm)) == "English"

    def test_empty_answer_falls_back(self):
        assert _run(detect_language("hola", _llm(""), default="Spanish")) == "Spanish"

    def test_nonsense_can_be_suppressed(self):
        assert _run(detect_language("xkcd qwe", _llm("Nonsense"), detect_nonsense=False)) == "English"

    def test_context_for_nonsense(self):
        context = _run(get_language_context("asdf qwer", _llm("Nonsense")))
        assert context.language == NONSENSE
        assert context.instructions.startswith("IMPORTANT: Please respond in English.")

    def test_context_strict(self):
        context = _run(get_language_context("hola", _llm("Spanish")))
        assert context.language == "Spanish"
        assert "You MUST reply ONLY in Spanish" in context.instructions

    def test_relaxed_instructions(self):
        text = get_language_enforcement_instructions("French", strict=False)
        assert text.startswith("IMPORTANT: Please respond in French.")
