"""Tests for the tenacity retry decorator."""

import pytest

from cli.retry import llm_retry
from llm.base import LLMAuthError, LLMRateLimitError


def _flaky(failures, exc=LLMRateLimitError):
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise exc("try again")
        return "ok"

    return fn, calls


class TestLLMRetry:
    def test_retries_until_success(self):
        fn, calls = _flaky(2)
        wrapped = llm_retry(max_attempts=3, min_wait=0, max_wait=0, exceptions=(LLMRateLimitError,))(fn)
        assert wrapped() == "ok"
        assert calls["n"] == 3

    def test_reraises_after_last_attempt(self):
        fn, calls = _flaky(5)
        wrapped = llm_retry(max_attempts=2, min_wait=0, max_wait=0, exceptions=(LLMRateLimitError,))(fn)
        with pytest.raises(LLMRateLimitError):
            wrapped()
        assert calls["n"] == 2

    def test_other_errors_not_retried(self):
        fn, calls = _flaky(1, exc=LLMAuthError)
        wrapped = llm_retry(max_attempts=3, min_wait=0, max_wait=0, exceptions=(LLMRateLimitError,))(fn)
        with pytest.raises(LLMAuthError):
            wrapped()
        assert calls["n"] == 1

    def test_zero_attempts_means_one(self):
        fn, calls = _flaky(1)
        wrapped = llm_retry(max_attempts=0, min_wait=0, max_wait=0)(fn)
        with pytest.raises(LLMRateLimitError):
            wrapped()
        assert calls["n"] == 1
