"""Provider client abstraction and implementations.

Re-exports base classes and provider implementations for convenient imports.
"""

# Base classes (import from base module)
from companion.core.providers.base import (
    AuthenticationError,
    EmptyResponseError,
    ImageProviderClient,
    ProviderClient,
    ProviderError,
    QuotaExhaustedError,
    RateLimitError,
    TextProviderClient,
)

# Provider implementations
from companion.core.providers.google import GoogleImageClient, GoogleTextClient
from companion.core.providers.openrouter import OpenRouterTextClient
from companion.core.providers.pollinations import PollinationsImageClient

__all__ = [
    # Base classes
    "AuthenticationError",
    "EmptyResponseError",
    "ImageProviderClient",
    "ProviderClient",
    "ProviderError",
    "QuotaExhaustedError",
    "RateLimitError",
    "TextProviderClient",
    # Implementations
    "GoogleImageClient",
    "GoogleTextClient",
    "OpenRouterTextClient",
    "PollinationsImageClient",
]
