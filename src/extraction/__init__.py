"""Extraction of candidate tasks from rendered message text."""

from .base import ExtractionError, Extractor
from .llm_extractor import LLMActionExtractor, strip_urls, validate_item

__all__ = [
    "ExtractionError",
    "Extractor",
    "LLMActionExtractor",
    "strip_urls",
    "validate_item",
]
