"""Shared test fixtures for taskbuffer."""

import sys
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from conversations.store import ConversationStore  # noqa: E402
from dedup.checker import DuplicateChecker  # noqa: E402
from dedup.classifier import DuplicateClassifier  # noqa: E402
from dedup.window import CandidateWindow  # noqa: E402
from extraction.base import ExtractionError, Extractor  # noqa: E402
from observability import metrics  # noqa: E402
from tasks.models import CandidateTask, DuplicateVerdict  # noqa: E402
from tasks.store import TaskStore  # noqa: E402

T0 = datetime(2025, 3, 10, 9, 0, 0)


class FakeClock:
    """Manually advanced clock for buffer timing."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeExtractor(Extractor):
    """Returns queued candidate lists in order; raises for queued exceptions."""

    def __init__(self, results=None):
        self.results = list(results or [])
        self.calls: list[tuple[str, str]] = []

    def extract(self, text: str, source: str) -> list[CandidateTask]:
        self.calls.append((text, source))
        if not self.results:
            return []
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class KeywordClassifier(DuplicateClassifier):
    """Deterministic stand-in for the LLM classifier.

    Follows the documented policy in miniature: same action text in the same
    environment is a duplicate, a different environment is not.
    """

    ENVIRONMENTS = ("production", "uat", "staging", "development")

    def __init__(self):
        self.calls = []

    @classmethod
    def _environment(cls, text: str) -> str | None:
        lowered = text.lower()
        for env in cls.ENVIRONMENTS:
            if env in lowered:
                return env
        return None

    @classmethod
    def _problem(cls, text: str) -> str:
        lowered = text.lower()
        for env in cls.ENVIRONMENTS:
            lowered = lowered.replace(env, "")
        return " ".join(lowered.split())

    def check(self, action, priority, sender, window, now=None) -> DuplicateVerdict:
        self.calls.append((action, [t.id for t in window]))
        for task in window:
            if self._problem(task.action) != self._problem(action):
                continue
            if self._environment(task.action) != self._environment(action):
                return DuplicateVerdict(
                    is_duplicate=False,
                    reasoning="Same error in a different environment",
                )
            return DuplicateVerdict(
                is_duplicate=True, matched_task_id=task.id, reasoning="Same problem"
            )
        return DuplicateVerdict(is_duplicate=False, reasoning="No matching task")


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "taskbuffer.db"


@pytest.fixture
def conversation_store(db_path, clock):
    return ConversationStore(db_path, clock=clock)


@pytest.fixture
def task_store(db_path, clock):
    return TaskStore(db_path, clock=clock)


@pytest.fixture
def fake_extractor():
    return FakeExtractor()


@pytest.fixture
def keyword_classifier():
    return KeywordClassifier()


@pytest.fixture
def checker(task_store, keyword_classifier, clock):
    return DuplicateChecker(CandidateWindow(task_store), keyword_classifier, clock=clock)


@pytest.fixture
def mock_provider():
    """LLM provider double; set .generate.return_value or side_effect per test."""
    provider = MagicMock()
    provider.generate.return_value = "[]"
    return provider


@pytest.fixture
def extraction_error():
    return ExtractionError("extractor unavailable")
