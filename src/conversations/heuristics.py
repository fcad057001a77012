"""Early-release heuristic: when a burst is actionable enough to skip the buffer."""

from dataclasses import dataclass

from .models import Conversation

DEFAULT_ACTION_INDICATORS: tuple[str, ...] = (
    "can you",
    "could you",
    "please ",
    "need to",
    "make sure",
    "don't forget",
    "remember to",
    "urgent",
    "asap",
    "by tomorrow",
    "by today",
    "deadline",
)


@dataclass(frozen=True)
class ReleasePolicy:
    """Indicator table consulted by should_release_now."""

    indicators: tuple[str, ...] = DEFAULT_ACTION_INDICATORS
    min_messages: int = 2

    @classmethod
    def from_list(cls, indicators: list[str] | None, min_messages: int = 2) -> "ReleasePolicy":
        if not indicators:
            return cls(min_messages=min_messages)
        return cls(
            indicators=tuple(i.lower() for i in indicators if i),
            min_messages=min_messages,
        )

    def matching_indicator(self, body: str) -> str | None:
        lowered = body.lower()
        for indicator in self.indicators:
            if indicator in lowered:
                return indicator
        return None


def should_release_now(conversation: Conversation, policy: ReleasePolicy | None = None) -> bool:
    """True when the last message carries an action indicator.

    A lone message never qualifies; only the most recent body is inspected.
    """
    policy = policy or ReleasePolicy()
    if len(conversation.messages) < policy.min_messages:
        return False

    last = conversation.messages[-1]
    return policy.matching_indicator(last.body or "") is not None
