"""LLM-powered extraction of actionable items from rendered conversations."""

import re

import structlog

from llm.base import LLMError
from llm.parsing import parse_json_array
from shared_types import Environment, Priority
from tasks.models import CandidateTask

from .base import ExtractionError, Extractor

logger = structlog.get_logger()

_URL_RE = re.compile(r"https?://[^\s\]]+", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")

_EXTRACTION_SYSTEM = (
    "You are an AI assistant that extracts actionable tasks from messages. "
    "Return ONLY a valid JSON array, nothing else: no explanations, no markdown, "
    "no text before or after. Each object must have: "
    '"action" (string), "priority" ("low"/"medium"/"high"), "sender" (name/email or null), '
    '"environment" ("production"/"uat"/"staging"/"development" or null), '
    '"reasoning" (why this is actionable), "confidence" (0.0-1.0 how confident you are), '
    '"relevance_score" (0.0-1.0 how relevant to the user\'s job). '
    'Example: [{"action":"Task","priority":"high","sender":"Name","environment":"production",'
    '"reasoning":"Urgent deadline mentioned","confidence":0.95,"relevance_score":0.90}]'
)

_IDENTITY_SECTION = """USER IDENTITY:
The recipient of these action items is: {name}

Messages FROM {name} are CONTEXT, not action items for them:
- If {name} says "we need to fix X" or "can someone do Y", do NOT extract it as their action
- Only extract items when someone asks {name} to do something, or {name} is explicitly the assignee

"""

_JOB_SECTION = """USER JOB CONTEXT:
{context}

RELEVANCE SCORING (0.0-1.0):
- 1.0: core responsibilities
- 0.7-0.9: technical areas they oversee or should be aware of
- 0.4-0.6: tangential, could impact their work indirectly
- 0.0-0.3: not relevant to their role (other teams' work, marketing, sales)
If the item is something they should delegate, include the word "delegate" in the action.

"""

_RULES = """RULES:
1. IGNORE newsletters, marketing, promotional content and automated notifications
2. IGNORE purely informational updates (status reports, announcements, surveys)
3. IGNORE webinar, livestream and event invitations unless directly requested
4. Extract only DISTINCT action items; consolidate sentences describing the same problem into ONE item
5. Ignore signatures, disclaimers and formatting text

Environment: production, uat, staging, development, or null if unclear.
Look for "production", "prod", "live", "UAT", "user acceptance", "staging", "dev".

Priority:
- HIGH: any production issue, explicit deadlines, critical failures, urgent requests
- MEDIUM: UAT tasks by default (HIGH only for "regression", "urgent", "ASAP", "critical"), routine work
- LOW: optional or deferrable

Actions must be DETAILED and SPECIFIC: error type, environment, component and key message
for errors; what, where and constraints for requests; dates for deadlines.
Bad: "Fix the database issue"
Good: "Fix database connection timeout in production: MySQL pool exhausted during peak hours affecting checkout flow"

Set relevance_score to 1.0 when no job context is provided.
Return [] if there are no actionable items.

---

NOW ANALYZE THIS MESSAGE:
Source: {source}

{body}"""

VALID_PRIORITIES = {p.value for p in Priority}
VALID_ENVIRONMENTS = {e.value for e in Environment}


def strip_urls(text: str) -> str:
    """Remove http(s) URLs and collapse the whitespace they leave behind."""
    cleaned = _URL_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def build_prompt(
    body: str, source: str, user_name: str | None = None, job_context: str | None = None
) -> str:
    prompt = "You are analyzing messages to extract actionable items for the recipient.\n\n"
    if user_name:
        prompt += _IDENTITY_SECTION.format(name=user_name)
    if job_context:
        prompt += _JOB_SECTION.format(context=job_context)
    return prompt + _RULES.format(source=source, body=body)


def _unit_interval(value) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if 0.0 <= number <= 1.0 else None


def _clean_str(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def validate_item(item) -> CandidateTask | None:
    """Normalize one parsed item; None when it carries no usable action."""
    if isinstance(item, str):
        action = item.strip()
        return CandidateTask(action=action) if action else None
    if not isinstance(item, dict):
        return None

    action = _clean_str(item.get("action"))
    if not action:
        return None

    priority = (_clean_str(item.get("priority")) or "medium").lower()
    if priority not in VALID_PRIORITIES:
        priority = Priority.MEDIUM.value

    environment = _clean_str(item.get("environment"))
    environment = environment.lower() if environment else None
    if environment not in VALID_ENVIRONMENTS:
        environment = None

    return CandidateTask(
        action=action,
        priority=priority,
        sender=_clean_str(item.get("sender")),
        environment=environment,
        reasoning=_clean_str(item.get("reasoning")),
        confidence=_unit_interval(item.get("confidence")),
        relevance_score=_unit_interval(item.get("relevance_score")),
    )


class LLMActionExtractor(Extractor):
    """Extracts candidate tasks with an LLM; raises ExtractionError on failure."""

    def __init__(
        self,
        provider=None,
        user_name: str | None = None,
        job_context: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.3,
    ):
        self._provider = provider
        self.user_name = user_name
        self.job_context = job_context
        self.max_tokens = max_tokens
        self.temperature = temperature

    def _get_provider(self):
        if self._provider:
            return self._provider
        from llm.factory import create_llm_provider

        self._provider = create_llm_provider()
        return self._provider

    def extract(self, text: str, source: str) -> list[CandidateTask]:
        cleaned = strip_urls(text or "")
        if not cleaned:
            return []

        prompt = build_prompt(cleaned, source, self.user_name, self.job_context)
        try:
            provider = self._get_provider()
            response = provider.generate(
                messages=[{"role": "user", "content": prompt}],
                system=_EXTRACTION_SYSTEM,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except LLMError as e:
            logger.warning("extraction.llm_failed", source=source, error=str(e))
            raise ExtractionError(f"LLM call failed: {e}") from e

        items = parse_json_array(response)
        if items is None:
            raise ExtractionError("Failed to parse extraction response as a JSON array")

        candidates = [c for c in (validate_item(item) for item in items) if c is not None]
        logger.info(
            "extraction.completed",
            source=source,
            returned=len(items),
            valid=len(candidates),
        )
        return candidates
