"""Unit tests for companion/core/retry.py.

Run with:
    pytest tests/unit/test_retry.py -v
"""

import asyncio

import pytest

from companion.core.errors import GenerationCancelledError
from companion.core.providers.base import (
    AuthenticationError,
    EmptyResponseError,
    ProviderError,
    RateLimitError,
)
from companion.core.quota import QuotaClassifier
from companion.core import retry as retry_module
from companion.core.retry import RetryPolicy, is_blank, with_retry


class Counter:
    """Async operation replaying a script of outcomes."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        item = self.outcomes.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def recorded_waits(monkeypatch):
    """Replace the backoff sleep with one that records each delay."""
    waits = []

    async def fake_sleep(delay, cancel, label):
        waits.append(delay)

    monkeypatch.setattr(retry_module, "_backoff_sleep", fake_sleep)
    return waits


@pytest.mark.fast
class TestIsBlank:
    """Tests for blank-result detection."""

    @pytest.mark.parametrize("value", [None, "", "   ", "\n\t", b""])
    def test_blank_values(self, value):
        assert is_blank(value)

    @pytest.mark.parametrize("value", ["hi", " x ", b"\x89PNG"])
    def test_non_blank_values(self, value):
        assert not is_blank(value)


@pytest.mark.fast
class TestWithRetry:
    """Tests for with_retry()."""

    @pytest.mark.asyncio
    async def test_first_success_single_call(self):
        """A first-attempt success invokes the operation exactly once."""
        op = Counter("hello")
        result = await with_retry(op, max_attempts=3, backoff=0)
        assert result == "hello"
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self):
        """Two failures followed by a success make three calls."""
        op = Counter(ProviderError("boom", "gemini"), ProviderError("boom", "gemini"), "ok")
        result = await with_retry(op, max_attempts=3, backoff=0)
        assert result == "ok"
        assert op.calls == 3

    @pytest.mark.asyncio
    async def test_empty_string_is_failure(self):
        """Blank output is retried and never returned."""
        op = Counter("", "  ", "real text")
        result = await with_retry(op, max_attempts=3, backoff=0)
        assert result == "real text"
        assert op.calls == 3

    @pytest.mark.asyncio
    async def test_all_blank_raises_empty_response(self):
        op = Counter("", "", "")
        with pytest.raises(EmptyResponseError):
            await with_retry(op, max_attempts=3, backoff=0, label="qwen")
        assert op.calls == 3

    @pytest.mark.asyncio
    async def test_reraises_last_error(self):
        """The most recent failure is the one surfaced."""
        first = ProviderError("first", "gemini")
        last = ProviderError("last", "gemini")
        op = Counter(first, last)
        with pytest.raises(ProviderError) as exc_info:
            await with_retry(op, max_attempts=2, backoff=0)
        assert exc_info.value is last

    @pytest.mark.asyncio
    async def test_invalid_max_attempts(self):
        with pytest.raises(ValueError):
            await with_retry(Counter("x"), max_attempts=0)

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failed_attempt(self):
        """An attempt exceeding the timeout is retried."""
        calls = 0

        async def slow_then_fast():
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(1)
            return "done"

        result = await with_retry(slow_then_fast, max_attempts=2, backoff=0, timeout=0.01)
        assert result == "done"
        assert calls == 2

    @pytest.mark.asyncio
    async def test_classifier_stops_on_quota(self):
        """Quota failures skip the remaining in-place attempts."""
        op = Counter(RateLimitError("deepseek"), "never reached")
        with pytest.raises(RateLimitError):
            await with_retry(op, max_attempts=3, backoff=0, classifier=QuotaClassifier())
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_classifier_stops_on_fatal(self):
        op = Counter(AuthenticationError("gemini"), "never reached")
        with pytest.raises(AuthenticationError):
            await with_retry(op, max_attempts=3, backoff=0, classifier=QuotaClassifier())
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_classifier_retries_transient(self):
        op = Counter(asyncio.TimeoutError(), "ok")
        result = await with_retry(op, max_attempts=3, backoff=0, classifier=QuotaClassifier())
        assert result == "ok"
        assert op.calls == 2

    @pytest.mark.asyncio
    async def test_classifier_uses_label_as_provider_id(self):
        """Provider-specific patterns apply to plain errors via the label."""
        op = Counter(RuntimeError("No endpoints found for model"), "never reached")
        with pytest.raises(RuntimeError):
            await with_retry(
                op, max_attempts=3, backoff=0, classifier=QuotaClassifier(), label="zia"
            )
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_backoff_grows_and_caps(self, recorded_waits):
        """Delays double from the initial backoff and stop at the cap."""
        op = Counter(*[ProviderError("boom", "gemini") for _ in range(5)])
        with pytest.raises(ProviderError):
            await with_retry(op, max_attempts=5, backoff=1.0, multiplier=2.0, max_backoff=3.0)
        assert recorded_waits == [1.0, 2.0, 3.0, 3.0]

    @pytest.mark.asyncio
    async def test_single_attempt_never_waits(self, recorded_waits):
        with pytest.raises(ProviderError):
            await with_retry(Counter(ProviderError("boom", "gemini")), max_attempts=1)
        assert recorded_waits == []

    @pytest.mark.asyncio
    async def test_retry_after_replaces_delay_without_classifier(self, recorded_waits):
        """A Retry-After hint sets the wait when rate limits are retried in place."""
        op = Counter(RateLimitError("deepseek", retry_after=2), "ok")
        result = await with_retry(op, max_attempts=3, backoff=0.5, max_backoff=8.0)
        assert result == "ok"
        assert recorded_waits == [2]

    @pytest.mark.asyncio
    async def test_retry_after_is_capped(self, recorded_waits):
        op = Counter(RateLimitError("deepseek", retry_after=60), "ok")
        await with_retry(op, max_attempts=2, backoff=0.5, max_backoff=8.0)
        assert recorded_waits == [8.0]

    @pytest.mark.asyncio
    async def test_cancel_before_first_attempt(self):
        cancel = asyncio.Event()
        cancel.set()
        op = Counter("x")
        with pytest.raises(GenerationCancelledError):
            await with_retry(op, cancel=cancel)
        assert op.calls == 0

    @pytest.mark.asyncio
    async def test_cancel_during_backoff(self):
        """Setting the signal wakes the backoff sleep and stops retrying."""
        cancel = asyncio.Event()

        async def failing():
            asyncio.get_running_loop().call_soon(cancel.set)
            raise ProviderError("boom", "gemini")

        with pytest.raises(GenerationCancelledError):
            await with_retry(failing, max_attempts=3, backoff=5.0, cancel=cancel)


@pytest.mark.fast
class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_attempts == 3
        assert policy.attempt_timeout == 25.0

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    @pytest.mark.asyncio
    async def test_run_uses_policy(self):
        policy = RetryPolicy(max_attempts=2, initial_backoff=0, max_backoff=0)
        op = Counter(ProviderError("boom", "gemini"), "ok")
        assert await policy.run(op, label="gemini") == "ok"
        assert op.calls == 2

    @pytest.mark.asyncio
    async def test_run_applies_policy_backoff(self, recorded_waits):
        policy = RetryPolicy(
            max_attempts=4, initial_backoff=1.0, backoff_multiplier=3.0, max_backoff=5.0
        )
        op = Counter(*[ProviderError("boom", "gemini") for _ in range(4)])
        with pytest.raises(ProviderError):
            await policy.run(op, label="gemini")
        assert recorded_waits == [1.0, 3.0, 5.0]
