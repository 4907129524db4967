"""Tests for the LLM client wrapper and output parsing helpers."""

import pytest
from unittest.mock import MagicMock, patch


class TestParseLLMJson:
    def test_plain(self):
        from brain.common.llm_utils import parse_llm_json
        assert parse_llm_json('{"type": "task"}') == {"type": "task"}

    def test_fenced(self):
        from brain.common.llm_utils import parse_llm_json
        assert parse_llm_json('```json\n{"type": "idea"}\n```') == {"type": "idea"}

    def test_surrounding_prose(self):
        from brain.common.llm_utils import parse_llm_json
        raw = 'Sure! Here you go: {"type": "person", "confidence": 0.7} Hope that helps.'
        assert parse_llm_json(raw) == {"type": "person", "confidence": 0.7}

    @pytest.mark.parametrize("raw", ["", "no json here", "[1, 2]", "{broken"])
    def test_unusable(self, raw):
        from brain.common.llm_utils import parse_llm_json
        assert parse_llm_json(raw) == {}


class TestCoerceConfidence:
    @pytest.mark.parametrize("raw,expected", [
        (0.5, 0.5),
        ("0.75", 0.75),
        (2, 1.0),
        (-1, 0.0),
        (None, 0.0),
        (False, 0.0),
        ("nan", 0.0),
        ({}, 0.0),
    ])
    def test_values(self, raw, expected):
        from brain.common.llm_utils import coerce_confidence
        assert coerce_confidence(raw) == expected


class TestLLMClient:
    def test_no_key_is_unavailable(self, caplog):
        import logging
        from brain.common.llm_client import LLMClient
        with caplog.at_level(logging.INFO, logger="brain.common.llm_client"):
            client = LLMClient(provider="anthropic", model="m")
        assert not client.is_available
        assert "API key not provided" in caplog.text
        with pytest.raises(RuntimeError):
            client.generate("hi")

    def test_unsupported_provider(self, caplog):
        from brain.common.llm_client import LLMClient
        client = LLMClient(provider="gemini", model="m", api_key="k")
        assert not client.is_available
        assert "Unsupported LLM provider" in caplog.text

    def test_from_config_picks_model(self):
        from brain.common.config import LLMConfig
        from brain.common.llm_client import LLMClient
        config = LLMConfig(provider="openai", openai_model="gpt-test")
        client = LLMClient.from_config(config)
        assert client.provider == "openai"
        assert client.model == "gpt-test"
        assert not client.is_available

    def test_anthropic_generate(self):
        from brain.common.llm_client import LLMClient
        with patch("anthropic.Anthropic") as anthropic_cls:
            sdk = anthropic_cls.return_value
            sdk.messages.create.return_value = MagicMock(content=[MagicMock(text='  {"type": "task"} ')])
            client = LLMClient(provider="anthropic", model="claude-test", api_key="k")

            text = client.generate("capture", system="classify", timeout=5.0)

        assert text == '{"type": "task"}'
        kwargs = sdk.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["system"] == "classify"
        assert kwargs["timeout"] == 5.0
        assert kwargs["messages"] == [{"role": "user", "content": "capture"}]

    def test_openai_generate(self):
        from brain.common.llm_client import LLMClient
        with patch("openai.OpenAI") as openai_cls:
            sdk = openai_cls.return_value
            message = MagicMock()
            message.content = '{"type": "person"}'
            sdk.chat.completions.create.return_value = MagicMock(choices=[MagicMock(message=message)])
            client = LLMClient(provider="openai", model="gpt-test", api_key="k")

            text = client.generate("capture", system="classify")

        assert text == '{"type": "person"}'
        messages = sdk.chat.completions.create.call_args.kwargs["messages"]
        assert messages[0] == {"role": "system", "content": "classify"}
