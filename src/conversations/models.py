"""Data models for buffered conversations."""

from dataclasses import dataclass, field
from datetime import datetime


class ConversationFinalizedError(RuntimeError):
    """Mutation attempted on a conversation that is already finalized.

    Indicates a concurrency-control bug; callers must not swallow it.
    """


@dataclass
class BufferedMessage:
    sender: str
    body: str
    timestamp: str


@dataclass
class Conversation:
    """An in-flight group of messages sharing a channel and (optionally) a thread."""

    id: int | None
    key: str
    channel: str
    thread_id: str | None
    first_seen_at: datetime
    last_seen_at: datetime
    source: str = "slack"
    messages: list[BufferedMessage] = field(default_factory=list)
    finalized: bool = False
    finalized_at: datetime | None = None
    derived_message_id: int | None = None

    def add_message(self, sender: str, body: str, timestamp: str, seen_at: datetime) -> None:
        """Append in arrival order and advance last_seen_at."""
        if self.finalized:
            raise ConversationFinalizedError(
                f"Conversation {self.key} (id={self.id}) is finalized; cannot append"
            )
        self.messages.append(BufferedMessage(sender=sender, body=body, timestamp=timestamp))
        if seen_at > self.last_seen_at:
            self.last_seen_at = seen_at

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def last_message(self) -> BufferedMessage | None:
        return self.messages[-1] if self.messages else None

    def age_seconds(self, now: datetime) -> float:
        return (now - self.first_seen_at).total_seconds()

    def silence_seconds(self, now: datetime) -> float:
        return (now - self.last_seen_at).total_seconds()
