"""End-to-end: buffer, sweep, extract and dedup over a mocked Groq endpoint."""

import json
import re

import httpx
import pytest

from dedup import CandidateWindow, DuplicateChecker, LLMDuplicateClassifier
from extraction import LLMActionExtractor
from llm.providers.groq import GroqProvider
from pipeline import TaskPipeline
from tasks.models import CandidateTask

_ID_RE = re.compile(r"\[ID: ([0-9a-f]+)\]")


class FakeGroq:
    """Answers extraction and dedup prompts the way a well-behaved model would."""

    def __init__(self):
        self.extraction_calls = 0
        self.dedup_calls = 0

    def __call__(self, request):
        body = json.loads(request.content)
        system = body["messages"][0]["content"]
        prompt = body["messages"][1]["content"]

        if "duplicate" in system:
            self.dedup_calls += 1
            ids = _ID_RE.findall(prompt)
            content = json.dumps(
                {"is_duplicate": True, "duplicate_id": ids[0], "reasoning": "Same UAT auth error"}
            )
        else:
            self.extraction_calls += 1
            environment = "production" if "PRODUCTION" in prompt else "uat"
            content = "```json\n" + json.dumps(
                [
                    {
                        "action": f"Fix Unauthenticated error in {environment.upper()} xwave-app",
                        "priority": "high",
                        "sender": "Sentry",
                        "environment": environment,
                        "confidence": 0.9,
                    }
                ]
            ) + "\n```"

        return httpx.Response(
            200, json={"choices": [{"message": {"content": content}, "finish_reason": "stop"}]}
        )


@pytest.fixture
def groq():
    return FakeGroq()


@pytest.fixture
def pipeline(groq, conversation_store, task_store, clock):
    provider = GroqProvider(
        api_key="gsk_test", client=httpx.Client(transport=httpx.MockTransport(groq)), max_attempts=1
    )
    checker = DuplicateChecker(
        CandidateWindow(task_store), LLMDuplicateClassifier(provider=provider, clock=clock), clock=clock
    )
    return TaskPipeline(
        conversation_store,
        task_store,
        LLMActionExtractor(provider=provider, user_name="Dana"),
        checker,
        clock=clock,
    )


def test_repeat_alert_suppressed_production_bypassed(pipeline, groq, task_store, clock):
    pipeline.receive_message("C-alerts", "Unauthenticated error in UAT xwave-app", "sentry", thread_id="t1")
    clock.advance(minutes=10)
    first = pipeline.sweep()
    assert first.created == 1
    assert groq.dedup_calls == 0

    pipeline.receive_message("C-alerts", "Unauthenticated error in UAT xwave-app", "sentry", thread_id="t2")
    clock.advance(minutes=10)
    second = pipeline.sweep()
    assert second.created == 0
    assert second.suppressed == 1
    assert groq.dedup_calls == 1

    pipeline.receive_message(
        "C-alerts", "Unauthenticated error in PRODUCTION xwave-app", "sentry", thread_id="t3"
    )
    clock.advance(minutes=10)
    third = pipeline.sweep()
    assert third.created == 1
    assert groq.dedup_calls == 1

    actions = sorted(t.action for t in task_store.list_tasks())
    assert actions == [
        "Fix Unauthenticated error in PRODUCTION xwave-app",
        "Fix Unauthenticated error in UAT xwave-app",
    ]
    assert groq.extraction_calls == 3


def test_groq_outage_keeps_candidate(conversation_store, task_store, fake_extractor, clock):
    def handler(request):
        return httpx.Response(500, text="upstream down")

    provider = GroqProvider(
        api_key="gsk_test", client=httpx.Client(transport=httpx.MockTransport(handler)), max_attempts=1
    )
    checker = DuplicateChecker(
        CandidateWindow(task_store), LLMDuplicateClassifier(provider=provider, clock=clock), clock=clock
    )
    pipeline = TaskPipeline(conversation_store, task_store, fake_extractor, checker, clock=clock)
    task_store.add_task(CandidateTask(action="Fix login in UAT"), "sentry")

    fake_extractor.results = [[CandidateTask(action="Fix login in UAT")]]
    result = pipeline.process_direct("sentry", "second")

    assert result.created == 1
    assert result.suppressed == 0
    assert task_store.count() == 2
