"""Tests for LLM provider adapters."""

import json
from unittest.mock import MagicMock

import httpx
import pytest

from llm import LLMAuthError, LLMError, LLMRateLimitError, LLMTimeoutError
from llm.providers.groq import GROQ_API_URL, GroqProvider
from llm.providers.openai import OpenAIProvider

MESSAGES = [{"role": "user", "content": "hi"}]


def _groq(handler, **kwargs) -> GroqProvider:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return GroqProvider(api_key="gsk_test", client=client, max_attempts=1, **kwargs)


def _completion(content, finish_reason="stop", usage=None):
    body = {"choices": [{"message": {"content": content}, "finish_reason": finish_reason}]}
    if usage:
        body["usage"] = usage
    return httpx.Response(200, json=body)


class TestGroqProvider:
    def test_generate(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return _completion(
                "Hello from Groq",
                usage={
                    "prompt_tokens": 100,
                    "completion_tokens": 5,
                    "prompt_tokens_details": {"cached_tokens": 40},
                },
            )

        provider = _groq(handler)
        result = provider.generate(MESSAGES, system="Be helpful", max_tokens=100, temperature=0.2)

        assert result == "Hello from Groq"
        assert seen["url"] == GROQ_API_URL
        assert seen["auth"] == "Bearer gsk_test"
        assert seen["body"]["messages"][0] == {"role": "system", "content": "Be helpful"}
        assert seen["body"]["messages"][1] == MESSAGES[0]
        assert seen["body"]["max_tokens"] == 100
        assert seen["body"]["temperature"] == 0.2
        assert provider.last_usage.prompt_tokens == 100
        assert provider.last_usage.cached_tokens == 40
        assert provider.last_usage.truncated is False

    def test_no_system_no_temperature(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return _completion("ok")

        _groq(handler).generate(MESSAGES)
        assert seen["body"]["messages"] == MESSAGES
        assert "temperature" not in seen["body"]

    def test_truncation_flagged(self):
        provider = _groq(lambda r: _completion('[{"action": "A"', finish_reason="length"))
        assert provider.generate(MESSAGES) == '[{"action": "A"'
        assert provider.last_usage.truncated is True

    def test_null_content(self):
        assert _groq(lambda r: _completion(None)).generate(MESSAGES) == ""

    def test_auth_error(self):
        with pytest.raises(LLMAuthError):
            _groq(lambda r: httpx.Response(401)).generate(MESSAGES)

    def test_rate_limit_error(self):
        with pytest.raises(LLMRateLimitError):
            _groq(lambda r: httpx.Response(429)).generate(MESSAGES)

    def test_server_error(self):
        with pytest.raises(LLMError, match="500"):
            _groq(lambda r: httpx.Response(500, text="oops")).generate(MESSAGES)

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(LLMTimeoutError):
            _groq(handler, timeout=1).generate(MESSAGES)

    def test_unexpected_payload(self):
        with pytest.raises(LLMError, match="unexpected payload"):
            _groq(lambda r: httpx.Response(200, json={"choices": []})).generate(MESSAGES)

    def test_non_json_body(self):
        with pytest.raises(LLMError, match="non-JSON"):
            _groq(lambda r: httpx.Response(200, text="<html>")).generate(MESSAGES)

    def test_missing_key(self):
        with pytest.raises(LLMAuthError):
            GroqProvider(api_key=None)


class TestOpenAIProvider:
    def _client(self, content="Hello from GPT", finish_reason="stop"):
        client = MagicMock()
        choice = MagicMock(finish_reason=finish_reason)
        choice.message.content = content
        client.chat.completions.create.return_value = MagicMock(choices=[choice])
        return client

    def test_generate(self):
        client = self._client()
        provider = OpenAIProvider(client=client)

        result = provider.generate(MESSAGES, system="Be helpful", max_tokens=100, temperature=0.3)

        assert result == "Hello from GPT"
        client.chat.completions.create.assert_called_once_with(
            model="gpt-4o-mini",
            max_tokens=100,
            messages=[{"role": "system", "content": "Be helpful"}, *MESSAGES],
            temperature=0.3,
        )
        assert provider.last_usage.truncated is False

    def test_truncation_flagged(self):
        provider = OpenAIProvider(client=self._client("partial", finish_reason="length"))
        provider.generate(MESSAGES)
        assert provider.last_usage.truncated is True

    def test_generic_error_wrapped(self):
        client = MagicMock()
        client.chat.completions.create.side_effect = RuntimeError("socket closed")
        with pytest.raises(LLMError, match="socket closed"):
            OpenAIProvider(client=client).generate(MESSAGES)
