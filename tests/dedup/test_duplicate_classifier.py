"""Tests for the LLM duplicate classifier adapter."""

import json
from datetime import datetime, timedelta

import httpx
import pytest

from dedup.classifier import (
    NO_RECENT_TASKS,
    LLMDuplicateClassifier,
    build_prompt,
    format_window,
    parse_verdict,
    relative_age,
)
from llm.base import LLMAuthError, LLMError, LLMTimeoutError
from llm.providers.groq import GroqProvider
from tasks.models import RecordedTask

NOW = datetime(2025, 3, 10, 12, 0, 0)


def _task(task_id, action, hours_ago=1, priority="medium", sender="alice"):
    return RecordedTask(
        id=task_id,
        action=action,
        priority=priority,
        sender=sender,
        environment=None,
        source="slack",
        created_at=NOW - timedelta(hours=hours_ago),
    )


@pytest.fixture
def window():
    return [
        _task("a1b2c3d4e5f60718", "Fix Unauthenticated error in UAT xwave-app", hours_ago=6),
        _task("ffff000011112222", "Review PR #847", hours_ago=30, sender=None),
    ]


def _groq(handler) -> GroqProvider:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return GroqProvider(client=client, max_attempts=1)


class TestPrompt:
    def test_window_lines(self, window):
        text = format_window(window, NOW)
        lines = text.splitlines()
        assert lines[0] == (
            "1. [ID: a1b2c3d4e5f60718] Fix Unauthenticated error in UAT xwave-app "
            "(Priority: medium, Sender: alice, Created: 6 hours ago)"
        )
        assert lines[1].startswith("2. [ID: ffff000011112222] Review PR #847")
        assert "Sender: unknown" in lines[1]
        assert "Created: 1 day ago" in lines[1]

    def test_relative_age_future_is_just_now(self):
        assert relative_age(NOW + timedelta(seconds=5), NOW) == "just now"

    def test_prompt_carries_candidate_and_policy(self, window):
        prompt = build_prompt(
            "Fix Unauthenticated error in PRODUCTION xwave-app", "high", "Sentry",
            format_window(window, NOW),
        )
        assert "Action: Fix Unauthenticated error in PRODUCTION xwave-app" in prompt
        assert "Priority: high" in prompt
        assert "Sender: Sentry" in prompt
        assert "last 48 hours" in prompt
        assert "Different error types or environments (UAT vs Production)" in prompt
        assert "24+ hours" in prompt
        assert "[ID: a1b2c3d4e5f60718]" in prompt


class TestParseVerdict:
    def test_duplicate_with_known_id(self, window):
        verdict = parse_verdict(
            '{"is_duplicate": true, "duplicate_id": "a1b2c3d4e5f60718", "reasoning": "same"}',
            window,
        )
        assert verdict.is_duplicate is True
        assert verdict.matched_task_id == "a1b2c3d4e5f60718"
        assert verdict.reasoning == "same"

    def test_unknown_id_keeps_boolean(self, window):
        verdict = parse_verdict(
            '{"is_duplicate": true, "duplicate_id": "12345678-nope", "reasoning": "same"}',
            window,
        )
        assert verdict.is_duplicate is True
        assert verdict.matched_task_id is None

    def test_id_ignored_when_not_duplicate(self, window):
        verdict = parse_verdict(
            '{"is_duplicate": false, "duplicate_id": "a1b2c3d4e5f60718", "reasoning": "different"}',
            window,
        )
        assert verdict.is_duplicate is False
        assert verdict.matched_task_id is None

    def test_fenced_and_truncated(self, window):
        verdict = parse_verdict(
            '```json\n{"is_duplicate": true, "duplicate_id": "a1b2c3d4e5f60718", "reasoning": "Sa',
            window,
        )
        assert verdict.is_duplicate is True
        assert verdict.matched_task_id == "a1b2c3d4e5f60718"
        assert verdict.reasoning == "No reasoning provided"

    def test_string_boolean(self, window):
        assert parse_verdict('{"is_duplicate": "false"}', window).is_duplicate is False
        assert parse_verdict('{"is_duplicate": "true"}', window).is_duplicate is True

    def test_garbage_fails_soft(self, window):
        verdict = parse_verdict("I think it might be a duplicate", window)
        assert verdict.is_duplicate is False
        assert verdict.reasoning == "Failed to parse AI response"


class TestLLMDuplicateClassifier:
    def test_calls_provider_with_sampling_settings(self, mock_provider, window):
        mock_provider.generate.return_value = (
            '{"is_duplicate": false, "duplicate_id": null, "reasoning": "different env"}'
        )
        classifier = LLMDuplicateClassifier(provider=mock_provider)

        verdict = classifier.check(
            "Fix Unauthenticated error in PRODUCTION xwave-app", "high", "Sentry", window, now=NOW
        )

        assert verdict.is_duplicate is False
        assert verdict.reasoning == "different env"
        kwargs = mock_provider.generate.call_args.kwargs
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 300
        assert "JSON" in kwargs["system"]
        assert "PRODUCTION xwave-app" in kwargs["messages"][0]["content"]

    def test_empty_window_never_calls_provider(self, mock_provider):
        verdict = LLMDuplicateClassifier(provider=mock_provider).check("x", "low", None, [], now=NOW)
        assert verdict.reasoning == NO_RECENT_TASKS
        mock_provider.generate.assert_not_called()

    def test_scenario_d_http_500_fails_soft(self, window):
        def handler(request):
            return httpx.Response(500, text="internal error")

        classifier = LLMDuplicateClassifier(provider=_groq(handler))
        verdict = classifier.check("Fix login", "medium", "bob", window, now=NOW)

        assert verdict.is_duplicate is False
        assert "error" in verdict.reasoning.lower()

    def test_timeout_fails_soft(self, window):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        verdict = LLMDuplicateClassifier(provider=_groq(handler)).check(
            "Fix login", "medium", None, window, now=NOW
        )
        assert verdict.is_duplicate is False
        assert verdict.reasoning.startswith("API timeout")

    def test_network_error_fails_soft(self, window):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        verdict = LLMDuplicateClassifier(provider=_groq(handler)).check(
            "Fix login", "medium", None, window, now=NOW
        )
        assert verdict.is_duplicate is False
        assert verdict.reasoning.startswith("API error occurred")

    def test_unexpected_exception_fails_soft(self, mock_provider, window):
        mock_provider.generate.side_effect = RuntimeError("boom")
        verdict = LLMDuplicateClassifier(provider=mock_provider).check(
            "x", "low", None, window, now=NOW
        )
        assert verdict.is_duplicate is False
        assert verdict.reasoning == "Exception occurred: boom"

    def test_llm_timeout_error_from_provider(self, mock_provider, window):
        mock_provider.generate.side_effect = LLMTimeoutError("30s elapsed")
        verdict = LLMDuplicateClassifier(provider=mock_provider).check(
            "x", "low", None, window, now=NOW
        )
        assert verdict.reasoning == "API timeout: 30s elapsed"

    def test_unconfigured_provider_fails_soft(self, window, monkeypatch):
        def no_provider():
            raise LLMAuthError("Groq API key not configured. Set GROQ_API_KEY.")

        monkeypatch.setattr("llm.factory.create_llm_provider", no_provider)
        verdict = LLMDuplicateClassifier().check("x", "low", None, window, now=NOW)
        assert verdict.is_duplicate is False
        assert verdict.reasoning.startswith("LLM provider not configured")

    def test_end_to_end_through_groq_transport(self, window):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "choices": [
                        {
                            "message": {
                                "content": '{"is_duplicate": true, '
                                '"duplicate_id": "a1b2c3d4e5f60718", "reasoning": "same"}'
                            },
                            "finish_reason": "stop",
                        }
                    ]
                },
            )

        verdict = LLMDuplicateClassifier(provider=_groq(handler)).check(
            "Fix Unauthenticated error in UAT xwave-app", "medium", None, window, now=NOW
        )
        assert verdict.is_duplicate is True
        assert verdict.matched_task_id == "a1b2c3d4e5f60718"
        assert seen["body"]["temperature"] == 0.2
        assert seen["body"]["messages"][0]["role"] == "system"

    def test_is_llm_error_subclass(self):
        assert issubclass(LLMTimeoutError, LLMError)
