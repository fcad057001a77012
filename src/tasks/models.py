"""Data models for extracted candidates, recorded tasks and duplicate verdicts."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class CandidateTask:
    """Unpersisted action produced by extraction, pending duplicate review."""

    action: str
    priority: str = "medium"
    sender: str | None = None
    environment: str | None = None
    reasoning: str | None = None
    confidence: float | None = None
    relevance_score: float | None = None

    @property
    def has_metadata(self) -> bool:
        return (
            self.reasoning is not None
            or self.confidence is not None
            or self.relevance_score is not None
        )


@dataclass
class RecordedTask:
    id: str
    action: str
    priority: str
    sender: str | None
    environment: str | None
    source: str
    message_id: int | None = None
    created_at: datetime = field(default_factory=datetime.now)
    synced: bool = False
    synced_at: datetime | None = None


@dataclass
class MessageRecord:
    """Flattened raw text handed to extraction (a finalized conversation or a webhook body)."""

    id: int
    source: str
    body: str
    processed: bool = False
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class DuplicateVerdict:
    """Result of comparing one candidate against the recent-task window."""

    is_duplicate: bool
    matched_task_id: str | None = None
    reasoning: str = ""
