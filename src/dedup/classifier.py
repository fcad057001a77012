"""Duplicate classification of a candidate action against recent tasks."""

from abc import ABC, abstractmethod
from datetime import datetime

import structlog

from conversations.render import humanize_duration
from llm.base import LLMError, LLMTimeoutError
from llm.parsing import parse_json_object
from tasks.models import DuplicateVerdict, RecordedTask

logger = structlog.get_logger()

NO_RECENT_TASKS = "No recent tasks to compare against"

_SYSTEM = (
    "You are an AI that detects duplicate tasks. Return ONLY a valid JSON object with: "
    '{"is_duplicate": boolean, "duplicate_id": "string or null", "reasoning": "string"}. '
    "No explanations, no markdown, just the JSON object."
)

DEFAULT_POLICY_RULES = """1. Consider it a DUPLICATE if:
   - The core task/goal is the same (even if wording differs)
   - The error/issue being addressed is the same (same error, same environment)
   - It's clearly the same meeting, review, or request
   - The action would resolve the same problem as an existing task

2. Consider it NOT a duplicate if:
   - Different error types or environments (UAT vs Production)
   - Different components/features affected
   - Different deadlines or time-sensitive requests
   - Different meetings/events (even if same topic)
   - Similar but distinct tasks (e.g., "Fix login bug" vs "Fix signup bug")

3. Be strict about error matching:
   - "Fix Unauthenticated error in UAT" vs "Fix Unauthenticated error in Production" = NOT duplicates
   - "Fix database timeout in checkout" vs "Fix database timeout in login" = NOT duplicates
   - "Fix Unauthenticated error in UAT xwave-app" appearing twice = DUPLICATE

4. Time sensitivity matters:
   - If an old task exists but has been there for 24+ hours without resolution, a similar new urgent task may NOT be a duplicate (could be escalation). Use judgment here, not a hard rule."""

_RESPONSE_FORMAT = """RESPONSE FORMAT (JSON only):
{
  "is_duplicate": true,
  "duplicate_id": "<id of the matching existing task>",
  "reasoning": "This is the same Unauthenticated error in UAT xwave-app that was reported 6 hours ago"
}

OR if not a duplicate:
{
  "is_duplicate": false,
  "duplicate_id": null,
  "reasoning": "This is a different error (Production vs UAT) affecting different components"
}"""


class DuplicateClassifier(ABC):
    """Decides whether a candidate action repeats one of the window tasks."""

    @abstractmethod
    def check(
        self,
        action: str,
        priority: str,
        sender: str | None,
        window: list[RecordedTask],
        now: datetime | None = None,
    ) -> DuplicateVerdict:
        """Classify one candidate. Must not raise for collaborator failures."""
        ...


def relative_age(created_at: datetime, now: datetime) -> str:
    if created_at >= now:
        return "just now"
    return f"{humanize_duration(created_at, now)} ago"


def format_window(window: list[RecordedTask], now: datetime) -> str:
    lines = []
    for index, task in enumerate(window, start=1):
        lines.append(
            f"{index}. [ID: {task.id}] {task.action} "
            f"(Priority: {task.priority}, Sender: {task.sender or 'unknown'}, "
            f"Created: {relative_age(task.created_at, now)})"
        )
    return "\n".join(lines)


def build_prompt(
    action: str,
    priority: str,
    sender: str | None,
    window_text: str,
    lookback_hours: float = 48,
    policy_rules: str = DEFAULT_POLICY_RULES,
) -> str:
    hours = f"{lookback_hours:g}"
    return (
        f"You are checking if a NEW action item is a duplicate of any EXISTING recent tasks "
        f"(from the last {hours} hours).\n\n"
        f"NEW ACTION ITEM TO CHECK:\n"
        f"Action: {action}\n"
        f"Priority: {priority}\n"
        f"Sender: {sender or 'unknown'}\n\n"
        f"EXISTING RECENT TASKS (last {hours} hours):\n"
        f"{window_text}\n\n"
        f"DUPLICATE DETECTION RULES:\n"
        f"{policy_rules}\n\n"
        f"{_RESPONSE_FORMAT}\n\n"
        f"Analyze the NEW action against all EXISTING tasks and return your assessment."
    )


def parse_verdict(response: str, window: list[RecordedTask]) -> DuplicateVerdict:
    """Turn the raw classifier reply into a verdict.

    The boolean is authoritative; an id that names no window task is dropped
    rather than discarding the verdict.
    """
    data = parse_json_object(response)
    if data is None:
        return DuplicateVerdict(is_duplicate=False, reasoning="Failed to parse AI response")

    is_duplicate = _as_bool(data.get("is_duplicate", False))
    reasoning = data.get("reasoning") or "No reasoning provided"
    if not isinstance(reasoning, str):
        reasoning = str(reasoning)

    matched_id = None
    duplicate_id = data.get("duplicate_id")
    if is_duplicate and duplicate_id is not None:
        known = {task.id for task in window}
        if str(duplicate_id) in known:
            matched_id = str(duplicate_id)
        else:
            logger.warning("dedup.unknown_duplicate_id", duplicate_id=str(duplicate_id))

    return DuplicateVerdict(is_duplicate=is_duplicate, matched_task_id=matched_id, reasoning=reasoning)


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


class LLMDuplicateClassifier(DuplicateClassifier):
    """Asks an LLM to apply the duplicate policy; fails soft to "not duplicate"."""

    def __init__(
        self,
        provider=None,
        lookback_hours: float = 48,
        max_tokens: int = 300,
        temperature: float = 0.2,
        policy_rules: str | None = None,
        clock=datetime.now,
    ):
        self._provider = provider
        self.lookback_hours = lookback_hours
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.policy_rules = policy_rules or DEFAULT_POLICY_RULES
        self._clock = clock

    def _get_provider(self):
        if self._provider:
            return self._provider
        from llm.factory import create_llm_provider

        self._provider = create_llm_provider()
        return self._provider

    def check(
        self,
        action: str,
        priority: str,
        sender: str | None,
        window: list[RecordedTask],
        now: datetime | None = None,
    ) -> DuplicateVerdict:
        if not window:
            return DuplicateVerdict(is_duplicate=False, reasoning=NO_RECENT_TASKS)

        now = now or self._clock()
        prompt = build_prompt(
            action,
            priority,
            sender,
            format_window(window, now),
            lookback_hours=self.lookback_hours,
            policy_rules=self.policy_rules,
        )

        try:
            provider = self._get_provider()
        except LLMError as e:
            logger.error("dedup.provider_unavailable", error=str(e))
            return DuplicateVerdict(
                is_duplicate=False, reasoning=f"LLM provider not configured: {e}"
            )

        try:
            response = provider.generate(
                messages=[{"role": "user", "content": prompt}],
                system=_SYSTEM,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except LLMTimeoutError as e:
            logger.warning("dedup.classifier_timeout", error=str(e))
            return DuplicateVerdict(is_duplicate=False, reasoning=f"API timeout: {e}")
        except LLMError as e:
            logger.warning("dedup.classifier_failed", error=str(e))
            return DuplicateVerdict(is_duplicate=False, reasoning=f"API error occurred: {e}")
        except Exception as e:
            logger.error("dedup.classifier_exception", error=str(e), exc_info=True)
            return DuplicateVerdict(is_duplicate=False, reasoning=f"Exception occurred: {e}")

        verdict = parse_verdict(response, window)
        logger.info(
            "dedup.verdict",
            is_duplicate=verdict.is_duplicate,
            matched_task_id=verdict.matched_task_id,
            window_size=len(window),
        )
        return verdict
