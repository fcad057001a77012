"""Pipeline orchestrator: buffer, release, extract, dedup, record."""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Iterable

import structlog
import structlog.contextvars

from conversations.heuristics import ReleasePolicy, should_release_now
from conversations.models import Conversation
from conversations.store import ConversationStore
from dedup.checker import DuplicateChecker
from extraction.base import ExtractionError, Extractor
from observability import metrics
from tasks.models import CandidateTask, MessageRecord
from tasks.store import TaskStore

logger = structlog.get_logger()


@dataclass
class ConversationResult:
    """Outcome of processing one finalized conversation or direct message.

    created + suppressed never exceeds extracted. A skipped result or a failed
    extraction has zero of both; a failure partway through the candidates
    keeps the counts of what was already recorded.
    """

    conversation_key: str | None = None
    message_id: int | None = None
    extracted: int = 0
    created: int = 0
    suppressed: int = 0
    bypassed: int = 0
    failed: bool = False
    skipped: bool = False
    error: str | None = None
    task_ids: list[str] = field(default_factory=list)


@dataclass
class ReceiveResult:
    conversation: Conversation
    released: bool = False
    result: ConversationResult | None = None


@dataclass
class SweepResult:
    run_id: str
    ready: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    created: int = 0
    suppressed: int = 0
    cleaned_up: int = 0
    conversations: list[ConversationResult] = field(default_factory=list)

    def add(self, result: ConversationResult) -> None:
        self.conversations.append(result)
        if result.skipped:
            self.skipped += 1
            return
        if result.failed:
            self.failed += 1
        else:
            self.processed += 1
        self.created += result.created
        self.suppressed += result.suppressed


class TaskPipeline:
    """Coordinates the immediate-release and sweep paths over one buffer.

    The extractor and duplicate checker are injected, so tests can swap in
    deterministic fakes.
    """

    def __init__(
        self,
        conversations: ConversationStore,
        tasks: TaskStore,
        extractor: Extractor,
        checker: DuplicateChecker,
        policy: ReleasePolicy | None = None,
        bypass_environments: Iterable[str] = ("production",),
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.conversations = conversations
        self.tasks = tasks
        self.extractor = extractor
        self.checker = checker
        self.policy = policy or ReleasePolicy()
        self.bypass_environments = frozenset(e.lower() for e in bypass_environments)
        self._clock = clock
        self._sweep_lock = threading.Lock()

    def receive_message(
        self,
        channel: str,
        body: str,
        sender: str,
        thread_id: str | None = None,
        timestamp: str | None = None,
        source: str = "slack",
        now: datetime | None = None,
    ) -> ReceiveResult:
        """Buffer an inbound message; process it right away if it reads as actionable."""
        now = now or self._clock()
        conversation = self.conversations.append(
            channel, thread_id, body, sender, timestamp=timestamp, source=source, now=now
        )
        metrics.counter("pipeline.messages_received")

        if not should_release_now(conversation, self.policy):
            return ReceiveResult(conversation=conversation)

        logger.info(
            "pipeline.immediate_release",
            conversation_key=conversation.key,
            message_count=conversation.message_count,
        )
        result = self.process_conversation(conversation, now=now)
        return ReceiveResult(conversation=conversation, released=True, result=result)

    def process_conversation(
        self, conversation: Conversation, now: datetime | None = None
    ) -> ConversationResult:
        """Finalize one conversation, then extract and record its tasks.

        A snapshot that the other path (or another process) already finalized
        is skipped.
        """
        now = now or self._clock()
        record = self.conversations.finalize_if_open(conversation, now=now)
        if record is None:
            logger.info(
                "pipeline.conversation_skipped",
                conversation_key=conversation.key,
                reason="already finalized",
            )
            return ConversationResult(conversation_key=conversation.key, skipped=True)

        metrics.counter("pipeline.conversations_finalized")
        return self._extract_and_record(record, conversation.key, now)

    def process_direct(
        self, source: str, body: str, now: datetime | None = None
    ) -> ConversationResult:
        """Store a raw message and process it without buffering."""
        now = now or self._clock()
        record = self.tasks.create_message(source, body)
        logger.info("pipeline.direct_message", source=source, message_id=record.id)
        return self._extract_and_record(record, None, now)

    def sweep(self, now: datetime | None = None) -> SweepResult | None:
        """Process every ready conversation, oldest first, then prune old ones.

        Returns None when another sweep is already in flight.
        """
        if not self._sweep_lock.acquire(blocking=False):
            logger.info("pipeline.sweep_skipped", reason="sweep already running")
            metrics.counter("pipeline.sweep_skipped")
            return None

        run_id = uuid.uuid4().hex[:8]
        structlog.contextvars.bind_contextvars(run_id=run_id)
        try:
            with metrics.timer("pipeline.sweep"):
                return self._sweep(now or self._clock(), run_id)
        finally:
            structlog.contextvars.unbind_contextvars("run_id")
            self._sweep_lock.release()

    def _sweep(self, now: datetime, run_id: str) -> SweepResult:
        ready = self.conversations.ready_conversations(now)
        summary = SweepResult(run_id=run_id, ready=len(ready))

        for conversation in ready:
            try:
                result = self.process_conversation(conversation, now=now)
            except Exception as e:
                logger.error(
                    "pipeline.conversation_failed",
                    conversation_key=conversation.key,
                    error=str(e),
                    exc_info=True,
                )
                metrics.counter("pipeline.conversation_failed")
                result = ConversationResult(
                    conversation_key=conversation.key, failed=True, error=str(e)
                )
            summary.add(result)

        summary.cleaned_up = self.conversations.cleanup_finalized(now)
        logger.info(
            "pipeline.sweep_completed",
            ready=summary.ready,
            processed=summary.processed,
            skipped=summary.skipped,
            failed=summary.failed,
            created=summary.created,
            suppressed=summary.suppressed,
            cleaned_up=summary.cleaned_up,
        )
        return summary

    def _extract_and_record(
        self, record: MessageRecord, key: str | None, now: datetime
    ) -> ConversationResult:
        result = ConversationResult(conversation_key=key, message_id=record.id)
        try:
            candidates = self.extractor.extract(record.body, record.source)
        except ExtractionError as e:
            logger.error(
                "pipeline.extraction_failed",
                conversation_key=key,
                message_id=record.id,
                error=str(e),
            )
            metrics.counter("pipeline.extraction_failed")
            result.failed = True
            result.error = str(e)
            return result

        result.extracted = len(candidates)
        try:
            self._record_candidates(candidates, record, result, now)
        except Exception as e:
            # Tasks created before the failure stay persisted and stay counted
            logger.error(
                "pipeline.candidate_failed",
                conversation_key=key,
                message_id=record.id,
                created=result.created,
                error=str(e),
                exc_info=True,
            )
            metrics.counter("pipeline.conversation_failed")
            result.failed = True
            result.error = str(e)
            return result

        self.tasks.mark_message_processed(record.id)
        logger.info(
            "pipeline.conversation_processed",
            conversation_key=key,
            message_id=record.id,
            extracted=result.extracted,
            created=result.created,
            suppressed=result.suppressed,
            bypassed=result.bypassed,
        )
        return result

    def _record_candidates(
        self,
        candidates: list[CandidateTask],
        record: MessageRecord,
        result: ConversationResult,
        now: datetime,
    ) -> None:
        for candidate in candidates:
            environment = (candidate.environment or "").lower()
            if environment in self.bypass_environments:
                result.bypassed += 1
                metrics.counter("pipeline.production_bypassed")
            else:
                verdict = self.checker.is_duplicate(candidate, now=now)
                if verdict.is_duplicate:
                    result.suppressed += 1
                    metrics.counter("pipeline.duplicates_suppressed")
                    logger.info(
                        "pipeline.duplicate_suppressed",
                        action=candidate.action[:120],
                        matched_task_id=verdict.matched_task_id,
                        reasoning=verdict.reasoning,
                    )
                    continue

            task = self.tasks.add_task(candidate, source=record.source, message_id=record.id)
            result.created += 1
            result.task_ids.append(task.id)
            metrics.counter("pipeline.tasks_created")
