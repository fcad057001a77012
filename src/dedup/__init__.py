"""Duplicate suppression against recently recorded tasks."""

from .checker import DuplicateChecker
from .classifier import (
    NO_RECENT_TASKS,
    DuplicateClassifier,
    LLMDuplicateClassifier,
    parse_verdict,
)
from .window import CandidateWindow

__all__ = [
    "CandidateWindow",
    "DuplicateChecker",
    "DuplicateClassifier",
    "LLMDuplicateClassifier",
    "NO_RECENT_TASKS",
    "parse_verdict",
]
