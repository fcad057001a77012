"""Base LLM provider abstraction."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

DEFAULT_TIMEOUT_SECONDS = 30.0


class LLMError(Exception):
    """Base LLM error."""


class LLMRateLimitError(LLMError):
    """Rate limit hit."""


class LLMAuthError(LLMError):
    """Authentication failure."""


class LLMTimeoutError(LLMError):
    """Call exceeded its timeout."""


@dataclass
class CompletionUsage:
    """Token accounting reported by the provider, when available."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    cached_tokens: int = 0
    finish_reason: str = "stop"  # "stop" | "length" | provider-specific
    extra: dict = field(default_factory=dict)

    @property
    def truncated(self) -> bool:
        return self.finish_reason == "length"


class LLMProvider(ABC):
    """Abstract LLM provider interface."""

    provider_name: str = "base"

    def __init__(self):
        self.last_usage: CompletionUsage | None = None

    @abstractmethod
    def generate(
        self,
        messages: list[dict],
        system: str | None = None,
        max_tokens: int = 2000,
        temperature: float | None = None,
    ) -> str:
        """Generate a response from messages.

        Args:
            messages: List of {"role": ..., "content": ...} dicts
            system: Optional system prompt
            max_tokens: Max response tokens
            temperature: Sampling temperature (None = provider default)

        Returns:
            Generated text

        Raises:
            LLMError: on transport failure, non-success status or timeout
        """
        ...
