"""Groq LLM provider: OpenAI-compatible chat completions over httpx."""

import httpx
import structlog

from cli.retry import llm_retry

from ..base import (
    DEFAULT_TIMEOUT_SECONDS,
    CompletionUsage,
    LLMAuthError,
    LLMError,
    LLMProvider,
    LLMRateLimitError,
    LLMTimeoutError,
)

logger = structlog.get_logger()

GROQ_API_URL = "https://api.groq.com/openai/v1/chat/completions"
DEFAULT_MODEL = "openai/gpt-oss-20b"


class GroqProvider(LLMProvider):
    """Groq hosted models through the chat completions endpoint."""

    provider_name = "groq"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.Client | None = None,
        api_url: str = GROQ_API_URL,
        max_attempts: int = 3,
    ):
        super().__init__()
        self.model = model or DEFAULT_MODEL
        self.api_url = api_url
        self.timeout = timeout

        if client is None and not api_key:
            raise LLMAuthError("Groq API key not configured. Set GROQ_API_KEY.")

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = client or httpx.Client(timeout=timeout)
        self._headers = headers
        self._post = llm_retry(max_attempts=max_attempts, exceptions=(LLMRateLimitError,))(
            self._post_once
        )

    def generate(
        self,
        messages: list[dict],
        system: str | None = None,
        max_tokens: int = 2000,
        temperature: float | None = None,
    ) -> str:
        full_messages = []
        if system:
            full_messages.append({"role": "system", "content": system})
        full_messages.extend(messages)

        payload = {
            "model": self.model,
            "messages": full_messages,
            "max_tokens": max_tokens,
        }
        if temperature is not None:
            payload["temperature"] = temperature

        data = self._post(payload)

        try:
            choice = data["choices"][0]
            content = choice["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise LLMError(f"Groq returned an unexpected payload: {e}") from e

        self.last_usage = self._usage(data, choice)
        if self.last_usage.truncated:
            logger.warning(
                "groq.response_truncated",
                model=self.model,
                max_tokens=max_tokens,
                tail=content[-200:],
            )
        return content

    def _post_once(self, payload: dict) -> dict:
        try:
            response = self.client.post(
                self.api_url,
                json=payload,
                headers=self._headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise LLMTimeoutError(f"Groq request timed out after {self.timeout}s") from e
        except httpx.RequestError as e:
            raise LLMError(f"Groq request failed: {e}") from e

        if response.status_code == 401:
            raise LLMAuthError("Groq auth failed (401)")
        if response.status_code == 429:
            raise LLMRateLimitError("Groq rate limit (429)")
        if not response.is_success:
            logger.error(
                "groq.api_error",
                status=response.status_code,
                body=response.text[:500],
            )
            raise LLMError(f"Groq API error {response.status_code}")

        try:
            return response.json()
        except ValueError as e:
            raise LLMError(f"Groq returned non-JSON body: {e}") from e

    def _usage(self, data: dict, choice: dict) -> CompletionUsage:
        usage = data.get("usage") or {}
        details = usage.get("prompt_tokens_details") or {}
        result = CompletionUsage(
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            cached_tokens=details.get("cached_tokens", 0),
            finish_reason=choice.get("finish_reason") or "stop",
        )
        if usage:
            hit_rate = (
                round(result.cached_tokens / result.prompt_tokens * 100, 2)
                if result.prompt_tokens
                else 0.0
            )
            logger.debug(
                "groq.usage",
                model=self.model,
                finish_reason=result.finish_reason,
                prompt_tokens=result.prompt_tokens,
                completion_tokens=result.completion_tokens,
                cache_hit_rate=hit_rate,
            )
        return result

    def close(self):
        self.client.close()
