"""Recorded tasks and the raw message records they are extracted from."""

from .models import CandidateTask, DuplicateVerdict, MessageRecord, RecordedTask
from .store import TaskStore

__all__ = [
    "CandidateTask",
    "DuplicateVerdict",
    "MessageRecord",
    "RecordedTask",
    "TaskStore",
]
