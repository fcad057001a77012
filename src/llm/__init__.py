"""LLM provider layer and defensive response parsing."""

from .base import (
    CompletionUsage,
    LLMAuthError,
    LLMError,
    LLMProvider,
    LLMRateLimitError,
    LLMTimeoutError,
)
from .factory import create_llm_provider
from .parsing import parse_json_array, parse_json_object

__all__ = [
    "LLMProvider",
    "CompletionUsage",
    "create_llm_provider",
    "LLMError",
    "LLMRateLimitError",
    "LLMAuthError",
    "LLMTimeoutError",
    "parse_json_object",
    "parse_json_array",
]
