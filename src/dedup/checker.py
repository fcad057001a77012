"""Duplicate check entry point: window lookup plus classifier."""

from datetime import datetime

import structlog

from tasks.models import CandidateTask, DuplicateVerdict

from .classifier import NO_RECENT_TASKS, DuplicateClassifier
from .window import CandidateWindow

logger = structlog.get_logger()


class DuplicateChecker:
    """Compares a candidate against the recent window.

    An empty window returns a fixed "not duplicate" verdict without touching
    the classifier.
    """

    def __init__(self, window: CandidateWindow, classifier: DuplicateClassifier, clock=datetime.now):
        self.window = window
        self.classifier = classifier
        self._clock = clock

    def is_duplicate(self, candidate: CandidateTask, now: datetime | None = None) -> DuplicateVerdict:
        now = now or self._clock()
        recent = self.window.recent_tasks(now)
        if not recent:
            logger.debug("dedup.empty_window", action=candidate.action[:80])
            return DuplicateVerdict(is_duplicate=False, reasoning=NO_RECENT_TASKS)

        return self.classifier.check(
            candidate.action,
            candidate.priority,
            candidate.sender,
            recent,
            now=now,
        )
