"""Tests for rate-limit classification, the retry loop and FallbackChain."""

import pytest

from devagent.core.errors import ProviderError, RateLimitError
from devagent.core.resilience import (
    FallbackChain,
    is_rate_limit_error,
    is_rate_limit_message,
    retry_on_rate_limit,
)


class TestClassification:

    @pytest.mark.parametrize("message", [
        "HTTP 429",
        "Rate limit reached for requests",
        "QUOTA EXCEEDED",
        "Too Many Requests",
    ])
    def test_rate_limit_messages(self, message):
        assert is_rate_limit_message(message)

    @pytest.mark.parametrize("message", ["", "API error: 500", "invalid api key"])
    def test_other_messages(self, message):
        assert not is_rate_limit_message(message)

    def test_error_types(self):
        assert is_rate_limit_error(RateLimitError("openai", "slow down"))
        assert is_rate_limit_error(ProviderError("gemini", "API error", status_code=429))
        assert not is_rate_limit_error(ProviderError("gemini", "API error: 503", status_code=503))
        assert not is_rate_limit_error(ValueError("bad input"))


class TestRetryOnRateLimit:

    def test_returns_first_success(self):
        sleeps = []
        assert retry_on_rate_limit(lambda: "ok", 3, lambda n: 1.0, sleep=sleeps.append) == "ok"
        assert sleeps == []

    def test_recovers_after_rate_limit(self):
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise RateLimitError("openai", "429")
            return "done"

        sleeps = []
        result = retry_on_rate_limit(flaky, 2, lambda n: 0.1 * (n + 1), sleep=sleeps.append)

        assert result == "done"
        assert sleeps == [0.1, 0.2]

    def test_never_sleeps_after_last_attempt(self):
        sleeps = []

        def always_limited():
            raise RateLimitError("openai", "429")

        with pytest.raises(RateLimitError):
            retry_on_rate_limit(always_limited, 2, lambda n: float(n), sleep=sleeps.append)
        assert sleeps == [0.0, 1.0]

    def test_zero_retries_is_single_attempt(self):
        calls = []

        def limited():
            calls.append(1)
            raise RateLimitError("gemini", "429")

        with pytest.raises(RateLimitError):
            retry_on_rate_limit(limited, 0, lambda n: 5.0, sleep=lambda s: None)
        assert len(calls) == 1

    def test_other_errors_propagate_immediately(self):
        calls = []

        def broken():
            calls.append(1)
            raise ProviderError("openai", "API error: 400")

        with pytest.raises(ProviderError):
            retry_on_rate_limit(broken, 5, lambda n: 1.0, sleep=lambda s: None)
        assert len(calls) == 1


class TestFallbackChain:

    def test_first_success_wins(self):
        def fail():
            raise ProviderError("a", "down")

        result = FallbackChain([("a", fail), ("b", lambda: "B"), ("c", lambda: "C")]).execute()

        assert result["success"]
        assert result["result"] == "B"
        assert result["strategy_used"] == "b"
        assert result["attempts"] == 2
        assert result["errors"] == ["a: a: down"]

    def test_all_fail(self):
        def fail():
            raise RuntimeError("nope")

        result = FallbackChain([("a", fail), ("b", fail)]).execute()

        assert not result["success"]
        assert result["attempts"] == 2
        assert len(result["errors"]) == 2

    def test_empty_chain(self):
        result = FallbackChain([]).execute()
        assert not result["success"]
        assert result["error"] == "No strategies available"
