"""Failure classification for provider errors.

Decides whether a failed provider call hit a quota (switch provider),
was transient (retry in place), or is fatal for that provider (stop
retrying it).

Classification order:
    1. Error type (RateLimitError, AuthenticationError, timeouts, ...)
    2. Message patterns from the FAILURE_PATTERNS table, provider-specific
       rules before the "*" defaults
    3. HTTP-like status code
    4. TRANSIENT when nothing matched

Examples:
    >>> classifier = QuotaClassifier()
    >>> classifier.classify(RateLimitError("deepseek"))
    <FailureClass.QUOTA_EXCEEDED: 'quota-exceeded'>
    >>> classifier.classify(RuntimeError("something odd"))
    <FailureClass.TRANSIENT: 'transient'>

Tests:
    - tests/unit/test_quota.py
"""

import asyncio
import logging
from collections.abc import Mapping, Sequence

import httpx

from companion.config import FAILURE_PATTERNS, FailureClass
from companion.core.errors import InvalidRequestError
from companion.core.providers.base import (
    AuthenticationError,
    EmptyResponseError,
    QuotaExhaustedError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

__all__ = ["FailureClass", "QuotaClassifier"]

# Exception types that always mean "try again"
TRANSIENT_EXCEPTIONS = (
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
    httpx.TransportError,
    EmptyResponseError,
)


class QuotaClassifier:
    """Configuration-driven classifier for provider failures.

    Attributes:
        patterns: Provider id -> [(substring, classification)]; "*" is the
            default rule set applied to every provider.
    """

    def __init__(
        self,
        patterns: Mapping[str, Sequence[tuple[str, FailureClass]]] | None = None,
    ) -> None:
        source = FAILURE_PATTERNS if patterns is None else patterns
        self.patterns = {
            provider_id: [(pattern.lower(), failure) for pattern, failure in rules]
            for provider_id, rules in source.items()
        }

    def _rules_for(self, provider_id: str | None) -> list[tuple[str, FailureClass]]:
        rules: list[tuple[str, FailureClass]] = []
        if provider_id:
            rules.extend(self.patterns.get(provider_id, []))
        rules.extend(self.patterns.get("*", []))
        return rules

    def classify(self, error: BaseException, provider_id: str | None = None) -> FailureClass:
        """Classify a provider failure.

        Args:
            error: The exception raised by (or around) a provider call.
            provider_id: Provider that failed. Defaults to the error's
                ``provider`` attribute when present.

        Returns:
            FailureClass for the error.
        """
        provider_id = provider_id or getattr(error, "provider", None)

        by_type = self._classify_type(error)
        if by_type is None and error.__cause__ is not None:
            by_type = self._classify_type(error.__cause__)
        if by_type is not None:
            return by_type

        message = str(error).lower()
        for pattern, failure in self._rules_for(provider_id):
            if pattern in message:
                return failure

        status = getattr(error, "status_code", None)
        if isinstance(status, int):
            if status == 429:
                return FailureClass.QUOTA_EXCEEDED
            if status == 408 or status >= 500:
                return FailureClass.TRANSIENT
            if 400 <= status < 500:
                return FailureClass.FATAL

        logger.debug(f"Unrecognized failure from {provider_id}, treating as transient: {error!r}")
        return FailureClass.TRANSIENT

    @staticmethod
    def _classify_type(error: BaseException) -> FailureClass | None:
        if isinstance(error, (RateLimitError, QuotaExhaustedError)):
            return FailureClass.QUOTA_EXCEEDED
        if isinstance(error, (AuthenticationError, InvalidRequestError)):
            return FailureClass.FATAL
        if isinstance(error, TRANSIENT_EXCEPTIONS):
            return FailureClass.TRANSIENT
        return None
