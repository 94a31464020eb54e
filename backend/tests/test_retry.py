"""Tests for rate-limit fallback and backoff."""

import asyncio

import pytest

from labelcheck.services.errors import CapacityError, ContentPolicyError, ModelCallError, RateLimitedError
from labelcheck.services.retry import (
    BackoffState,
    RetryPolicy,
    call_with_content_policy_retry,
    call_with_fallback,
)


class TestBackoffState:
    """Test delay growth."""

    def test_doubles_and_caps(self):
        state = BackoffState(RetryPolicy(max_retries=6, initial_delay=1.0, max_delay=16.0))
        delays = [state.advance() for _ in range(6)]

        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 16.0]
        assert state.exhausted

    def test_fresh_state_not_exhausted(self):
        assert not BackoffState(RetryPolicy(max_retries=1)).exhausted


class TestCallWithFallback:
    """Test walking the model list."""

    def test_first_model_succeeds(self, fake_sleep):
        calls = []

        async def call(model):
            calls.append(model)
            return model

        result = asyncio.run(call_with_fallback(["a", "b"], call, RetryPolicy(sleep=fake_sleep)))

        assert result == "a"
        assert calls == ["a"]
        assert fake_sleep.delays == []

    def test_rate_limited_model_falls_back(self, fake_sleep):
        calls = []

        async def call(model):
            calls.append(model)
            if model == "a":
                raise RateLimitedError("429", model)
            return model

        result = asyncio.run(call_with_fallback(["a", "b"], call, RetryPolicy(sleep=fake_sleep)))

        assert result == "b"
        assert calls == ["a", "b"]
        assert fake_sleep.delays == []

    def test_backs_off_when_all_limited_then_recovers(self, fake_sleep):
        attempts = {"count": 0}

        async def call(model):
            attempts["count"] += 1
            # Both models limited on the first two passes
            if attempts["count"] <= 4:
                raise RateLimitedError("429", model)
            return model

        policy = RetryPolicy(initial_delay=1.0, max_delay=16.0, sleep=fake_sleep)
        result = asyncio.run(call_with_fallback(["a", "b"], call, policy))

        assert result == "a"
        assert fake_sleep.delays == [1.0, 2.0]

    def test_exhaustion_raises_capacity_error(self, fake_sleep):
        calls = []

        async def call(model):
            calls.append(model)
            raise RateLimitedError("429", model)

        policy = RetryPolicy(max_retries=3, initial_delay=1.0, max_delay=2.0, sleep=fake_sleep)
        with pytest.raises(CapacityError) as exc_info:
            asyncio.run(call_with_fallback(["a", "b"], call, policy))

        assert exc_info.value.status_code == 429
        # initial pass plus one pass per retry
        assert len(calls) == 2 * 4
        assert fake_sleep.delays == [1.0, 2.0, 2.0]

    def test_other_errors_propagate_immediately(self, fake_sleep):
        calls = []

        async def call(model):
            calls.append(model)
            raise ModelCallError("boom", model)

        with pytest.raises(ModelCallError):
            asyncio.run(call_with_fallback(["a", "b"], call, RetryPolicy(sleep=fake_sleep)))
        assert calls == ["a"]

    def test_empty_model_list(self, fake_sleep):
        async def call(model):
            return model

        with pytest.raises(ValueError):
            asyncio.run(call_with_fallback([], call, RetryPolicy(sleep=fake_sleep)))


class TestContentPolicyRetry:
    """Test the single content-policy retry."""

    def test_retries_once_after_delay(self, fake_sleep):
        attempts = {"count": 0}

        async def call():
            attempts["count"] += 1
            if attempts["count"] == 1:
                raise ContentPolicyError("filtered")
            return "ok"

        result = asyncio.run(call_with_content_policy_retry(call, RetryPolicy(sleep=fake_sleep)))

        assert result == "ok"
        assert attempts["count"] == 2
        assert fake_sleep.delays == [0.3]

    def test_second_rejection_propagates(self, fake_sleep):
        async def call():
            raise ContentPolicyError("filtered")

        with pytest.raises(ContentPolicyError):
            asyncio.run(call_with_content_policy_retry(call, RetryPolicy(sleep=fake_sleep)))
        assert fake_sleep.delays == [0.3]
