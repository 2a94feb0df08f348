"""Bounded retry with exponential backoff for a single async operation.

Both a raised error and a blank result count as a failed attempt. The
last failure is re-raised once attempts run out, since later attempts
carry the most current diagnostics.

Examples:
    >>> policy = RetryPolicy(max_attempts=3, initial_backoff=1.0)
    >>> text = await policy.run(lambda: client.invoke(request), label="gemini")

    >>> # Or without a policy object
    >>> text = await with_retry(lambda: client.invoke(request), max_attempts=3, backoff=0.5)

Tests:
    - tests/unit/test_retry.py
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from companion.config import FailureClass
from companion.core.errors import GenerationCancelledError
from companion.core.providers.base import EmptyResponseError, RateLimitError
from companion.core.quota import QuotaClassifier

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Defaults mirror Settings
DEFAULT_MAX_ATTEMPTS = 3
INITIAL_BACKOFF = 1.0  # seconds
BACKOFF_MULTIPLIER = 2.0
MAX_BACKOFF = 8.0  # seconds


def is_blank(result: Any) -> bool:
    """True for None, whitespace-only strings and empty bytes."""
    if result is None:
        return True
    if isinstance(result, str):
        return not result.strip()
    if isinstance(result, (bytes, bytearray)):
        return len(result) == 0
    return False


def raise_if_cancelled(cancel: asyncio.Event | None, label: str = "generation") -> None:
    """Raise GenerationCancelledError if the cancellation signal is set."""
    if cancel is not None and cancel.is_set():
        raise GenerationCancelledError(f"{label} cancelled")


async def _backoff_sleep(delay: float, cancel: asyncio.Event | None, label: str) -> None:
    """Sleep for delay seconds, waking early if the caller cancels."""
    if cancel is None:
        await asyncio.sleep(delay)
        return
    raise_if_cancelled(cancel, label)
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise GenerationCancelledError(f"{label} cancelled during backoff")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    backoff: float = INITIAL_BACKOFF,
    *,
    multiplier: float = BACKOFF_MULTIPLIER,
    max_backoff: float = MAX_BACKOFF,
    timeout: float | None = None,
    classifier: QuotaClassifier | None = None,
    cancel: asyncio.Event | None = None,
    label: str = "operation",
) -> T:
    """Run operation up to max_attempts times.

    Args:
        operation: Zero-argument callable returning an awaitable.
        max_attempts: Total attempts, including the first.
        backoff: Delay before the second attempt (seconds).
        multiplier: Backoff growth factor between attempts.
        max_backoff: Upper bound on a single delay (seconds).
        timeout: Per-attempt timeout (seconds); a timeout is a failed attempt.
        classifier: When given, quota-exceeded and fatal failures stop
            retrying immediately instead of burning the remaining attempts.
            A RateLimitError classifies as quota-exceeded, so its Retry-After
            hint only shapes the backoff when no classifier is given.
        cancel: Optional cancellation signal, checked before each attempt
            and during backoff.
        label: Name used in log messages, and the provider id passed to
            the classifier.

    Returns:
        The first non-blank result.

    Raises:
        GenerationCancelledError: If cancel is set.
        Exception: The most recent failure once attempts are exhausted.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: BaseException | None = None
    delay = backoff

    for attempt in range(1, max_attempts + 1):
        raise_if_cancelled(cancel, label)
        try:
            if timeout is not None:
                result = await asyncio.wait_for(operation(), timeout=timeout)
            else:
                result = await operation()
            if is_blank(result):
                raise EmptyResponseError(label)
            if attempt > 1:
                logger.info(f"{label}: succeeded on attempt {attempt}/{max_attempts}")
            return result
        except GenerationCancelledError:
            raise
        except Exception as e:
            last_error = e
            if isinstance(e, asyncio.TimeoutError):
                logger.warning(f"{label}: attempt {attempt}/{max_attempts} timed out after {timeout}s")
            else:
                logger.warning(f"{label}: attempt {attempt}/{max_attempts} failed: {e}")

            if classifier is not None:
                failure = classifier.classify(e, label)
                if failure != FailureClass.TRANSIENT:
                    logger.warning(f"{label}: {failure.value} failure, not retrying in place")
                    raise

        if attempt < max_attempts:
            wait_time = delay
            # Only reachable without a classifier; with one, rate limits advance.
            if isinstance(last_error, RateLimitError) and last_error.retry_after:
                wait_time = last_error.retry_after
            wait_time = min(wait_time, max_backoff)
            logger.debug(f"{label}: waiting {wait_time:.1f}s before retry")
            await _backoff_sleep(wait_time, cancel, label)
            delay = min(delay * multiplier, max_backoff)

    logger.warning(f"{label}: all {max_attempts} attempts exhausted")
    raise last_error or EmptyResponseError(label)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings for one candidate.

    Attributes:
        max_attempts: Total attempts per candidate
        initial_backoff: Delay before the second attempt (seconds)
        backoff_multiplier: Growth factor per attempt
        max_backoff: Cap on a single delay (seconds)
        attempt_timeout: Per-attempt timeout (seconds), None for transport default
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    initial_backoff: float = INITIAL_BACKOFF
    backoff_multiplier: float = BACKOFF_MULTIPLIER
    max_backoff: float = MAX_BACKOFF
    attempt_timeout: float | None = 25.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        classifier: QuotaClassifier | None = None,
        cancel: asyncio.Event | None = None,
        label: str = "operation",
    ) -> T:
        """Run operation under this policy (see with_retry)."""
        return await with_retry(
            operation,
            self.max_attempts,
            self.initial_backoff,
            multiplier=self.backoff_multiplier,
            max_backoff=self.max_backoff,
            timeout=self.attempt_timeout,
            classifier=classifier,
            cancel=cancel,
            label=label,
        )
