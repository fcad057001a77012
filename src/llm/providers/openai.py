"""OpenAI LLM provider."""

from ..base import (
    DEFAULT_TIMEOUT_SECONDS,
    CompletionUsage,
    LLMAuthError,
    LLMError,
    LLMProvider,
    LLMRateLimitError,
    LLMTimeoutError,
)

# Lazy exception references, set when the package is available
_openai_exceptions = None


def _get_openai_exceptions():
    global _openai_exceptions
    if _openai_exceptions is None:
        try:
            from openai import (
                APIError,
                APITimeoutError,
                AuthenticationError,
                RateLimitError,
            )

            _openai_exceptions = (AuthenticationError, RateLimitError, APITimeoutError, APIError)
        except ImportError:
            _openai_exceptions = ()
    return _openai_exceptions


def _handle_openai_error(e: Exception):
    exc = _get_openai_exceptions()
    if exc and len(exc) == 4:
        AuthErr, RateErr, TimeoutErr, ApiErr = exc
        if isinstance(e, AuthErr):
            raise LLMAuthError(f"OpenAI auth failed: {e}") from e
        if isinstance(e, RateErr):
            raise LLMRateLimitError(f"OpenAI rate limit: {e}") from e
        if isinstance(e, TimeoutErr):
            raise LLMTimeoutError(f"OpenAI timeout: {e}") from e
        if isinstance(e, ApiErr):
            raise LLMError(f"OpenAI API error: {e}") from e
    raise LLMError(f"OpenAI error: {e}") from e


class OpenAIProvider(LLMProvider):
    """OpenAI GPT provider."""

    provider_name = "openai"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client=None,
    ):
        super().__init__()
        self.model = model or "gpt-4o-mini"
        self.timeout = timeout

        if client:
            self.client = client
            return

        try:
            from openai import OpenAI
        except ImportError:
            raise LLMError("openai package not installed. Run: pip install 'taskbuffer[openai]'")

        # No SDK-level retries: one call, bounded by timeout.
        self.client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

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

        kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": full_messages,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature

        try:
            response = self.client.chat.completions.create(**kwargs)
        except Exception as e:
            _handle_openai_error(e)

        choice = response.choices[0]
        self.last_usage = CompletionUsage(finish_reason=choice.finish_reason or "stop")
        return choice.message.content or ""
