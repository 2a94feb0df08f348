"""Base provider client abstraction layer.

This module defines the abstract client classes and the error types every
provider adapter raises. All concrete clients (Google, OpenRouter,
Pollinations) inherit from TextProviderClient or ImageProviderClient.

A client makes exactly one network call per invoke and never retries;
retries and fallback belong to the caller.

Examples:
    >>> from companion.core.providers import OpenRouterTextClient
    >>> client = OpenRouterTextClient(
    ...     provider_id="deepseek",
    ...     api_key="sk-or-v1-...",
    ...     model="deepseek/deepseek-chat-v3-0324:free",
    ... )
    >>> text = await client.invoke(request)

Tests:
    - tests/unit/test_providers.py::TestProviderErrors
    - tests/unit/test_providers.py::TestDescriptor
"""

from abc import ABC, abstractmethod

from companion.config import ProviderKind
from companion.schemas import GenerationRequest, ProviderDescriptor

__all__ = [
    "AuthenticationError",
    "EmptyResponseError",
    "ImageProviderClient",
    "ProviderClient",
    "ProviderError",
    "QuotaExhaustedError",
    "RateLimitError",
    "TextProviderClient",
]


class ProviderError(Exception):
    """Base exception for provider errors.

    Attributes:
        provider: Id of the provider that raised the error
        message: Error message
        status_code: HTTP status code (if applicable)
    """

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: int | None = None,
    ) -> None:
        """Initialize provider error.

        Args:
            message: Error message.
            provider: Provider id that raised the error.
            status_code: HTTP status code (optional).
        """
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code

    @property
    def message(self) -> str:
        return self.args[0]

    def __str__(self) -> str:
        """String representation of the error."""
        parts = [f"[{self.provider}]", self.args[0]]
        if self.status_code:
            parts.insert(1, f"({self.status_code})")
        return " ".join(parts)


class RateLimitError(ProviderError):
    """Rate limit exceeded error (per-minute throttling)."""

    def __init__(self, provider: str, retry_after: int | None = None) -> None:
        """Initialize rate limit error.

        Args:
            provider: Provider id that raised the error.
            retry_after: Seconds the provider asked us to wait (optional).
        """
        message = "Rate limit exceeded"
        if retry_after:
            message += f", retry after {retry_after}s"
        super().__init__(message, provider, status_code=429)
        self.retry_after = retry_after


class QuotaExhaustedError(ProviderError):
    """Quota exhausted error (retrying won't help until the quota resets).

    Different from RateLimitError: the account or model has used up its
    allowance. The caller should move on to another provider.
    """

    def __init__(self, provider: str, message: str | None = None) -> None:
        """Initialize quota exhausted error.

        Args:
            provider: Provider id that raised the error.
            message: Optional custom message with details.
        """
        super().__init__(
            message or "Quota exhausted - fall back to an alternative provider",
            provider,
            status_code=429,
        )


class AuthenticationError(ProviderError):
    """Authentication failed error."""

    def __init__(self, provider: str, status_code: int = 401) -> None:
        """Initialize authentication error.

        Args:
            provider: Provider id that raised the error.
            status_code: 401 or 403.
        """
        super().__init__(
            "Authentication failed - check API key",
            provider,
            status_code=status_code,
        )


class EmptyResponseError(ProviderError):
    """Provider answered but produced no usable output."""

    def __init__(self, provider: str, message: str | None = None) -> None:
        super().__init__(message or "Provider returned an empty response", provider)


class ProviderClient(ABC):
    """Abstract base class for provider clients.

    Attributes:
        provider_id: Catalogue id ("gemini", "deepseek", ...)
        kind: What this client produces
        model: Backend model identifier
        supports_reference: Whether reference-image edits keep identity
    """

    kind: ProviderKind
    supports_reference: bool = False

    def __init__(self, provider_id: str, model: str) -> None:
        """Initialize client.

        Args:
            provider_id: Catalogue id of this provider.
            model: Backend model identifier.
        """
        self.provider_id = provider_id
        self.model = model

    @abstractmethod
    async def invoke(self, request: GenerationRequest) -> str | bytes:
        """Run one generation call for the request.

        Raises:
            ProviderError: If the call fails.
        """

    def descriptor(self) -> ProviderDescriptor:
        """Describe this client for candidate-list construction."""
        return ProviderDescriptor(
            id=self.provider_id,
            kind=self.kind,
            invoke=self.invoke,
            supports_reference=self.supports_reference,
        )

    async def close(self) -> None:
        """Release network resources (no-op by default)."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(provider_id={self.provider_id!r}, model={self.model!r})"


class TextProviderClient(ProviderClient):
    """Client that turns a system prompt and transcript into text."""

    kind = ProviderKind.TEXT

    @abstractmethod
    async def invoke(self, request: GenerationRequest) -> str:
        """Generate text for the request.

        Args:
            request: System prompt, history and optional final prompt.

        Returns:
            Generated text. May be empty; callers treat that as failure.

        Raises:
            ProviderError: If the API call fails.
        """


class ImageProviderClient(ProviderClient):
    """Client that turns a prompt (and optional reference image) into image bytes."""

    kind = ProviderKind.IMAGE

    @abstractmethod
    async def generate_image(
        self,
        prompt: str,
        reference_image: bytes | None = None,
    ) -> bytes:
        """Generate an image.

        Args:
            prompt: The image generation prompt.
            reference_image: Optional source image to edit.

        Returns:
            Raw image bytes.

        Raises:
            ProviderError: If the API call fails.
        """

    async def invoke(self, request: GenerationRequest) -> bytes:
        """Generate an image for the request's prompt and reference image."""
        return await self.generate_image(request.prompt, request.reference_image)
