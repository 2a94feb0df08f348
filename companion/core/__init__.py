"""Core components for the companion generation layer."""

from companion.core.errors import (
    AllProvidersExhaustedError,
    CompanionError,
    GenerationCancelledError,
    ImageUnavailableError,
    InvalidRequestError,
)
from companion.core.fallback import FallbackChain, build_candidates, generate_with_fallback
from companion.core.providers import (
    AuthenticationError,
    ProviderClient,
    ProviderError,
    QuotaExhaustedError,
    RateLimitError,
)
from companion.core.quota import FailureClass, QuotaClassifier
from companion.core.registry import ProviderRegistry
from companion.core.retry import RetryPolicy, with_retry

__all__ = [
    "AllProvidersExhaustedError",
    "AuthenticationError",
    "CompanionError",
    "FailureClass",
    "FallbackChain",
    "GenerationCancelledError",
    "ImageUnavailableError",
    "InvalidRequestError",
    "ProviderClient",
    "ProviderError",
    "ProviderRegistry",
    "QuotaClassifier",
    "QuotaExhaustedError",
    "RateLimitError",
    "RetryPolicy",
    "build_candidates",
    "generate_with_fallback",
    "with_retry",
]
