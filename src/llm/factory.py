"""LLM provider factory with auto-detection."""

import os

from .base import DEFAULT_TIMEOUT_SECONDS, LLMError, LLMProvider

_PROVIDER_ENV_KEYS = {
    "groq": "GROQ_API_KEY",
    "openai": "OPENAI_API_KEY",
}

_AUTO_DETECT_ORDER = ["groq", "openai"]


def create_llm_provider(
    provider: str | None = None,
    api_key: str | None = None,
    model: str | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    client=None,
    max_attempts: int = 3,
) -> LLMProvider:
    """Create an LLM provider instance.

    Args:
        provider: "groq", "openai", "auto", or None (auto-detect)
        api_key: Explicit API key (overrides env var)
        model: Model name (None = provider default)
        timeout: Per-call timeout in seconds
        client: Pre-built HTTP/SDK client for testing/DI
        max_attempts: Attempts for rate-limited calls

    Returns:
        LLMProvider instance
    """
    resolved = provider or "auto"

    if resolved == "auto":
        resolved = _auto_detect_provider(api_key)

    if not api_key and not client:
        env_var = _PROVIDER_ENV_KEYS.get(resolved)
        if env_var:
            api_key = os.getenv(env_var)

    if resolved == "groq":
        from .providers.groq import GroqProvider

        return GroqProvider(
            api_key=api_key,
            model=model,
            timeout=timeout,
            client=client,
            max_attempts=max_attempts,
        )
    elif resolved == "openai":
        from .providers.openai import OpenAIProvider

        return OpenAIProvider(api_key=api_key, model=model, timeout=timeout, client=client)
    else:
        raise LLMError(f"Unknown provider: {resolved}. Use: groq, openai")


def _detect_provider_from_key(api_key: str) -> str | None:
    """Infer provider from API key prefix."""
    if api_key.startswith("gsk_"):
        return "groq"
    if api_key.startswith("sk-"):
        return "openai"
    return None


def _auto_detect_provider(api_key: str | None = None) -> str:
    """Detect provider from explicit key prefix, then env vars."""
    if api_key:
        inferred = _detect_provider_from_key(api_key)
        if inferred:
            return inferred

    for name in _AUTO_DETECT_ORDER:
        env_var = _PROVIDER_ENV_KEYS[name]
        if os.getenv(env_var):
            return name
    raise LLMError("No LLM API key found. Set one of: GROQ_API_KEY, OPENAI_API_KEY")
