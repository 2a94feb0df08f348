"""OpenRouter API provider implementation.

This module provides integration with OpenRouter's multi-model API, which
serves the non-Google chat options (DeepSeek, Qwen, Zia).

OpenRouter API docs: https://openrouter.ai/docs

Examples:
    >>> from companion.core.providers.openrouter import OpenRouterTextClient
    >>> client = OpenRouterTextClient(
    ...     provider_id="qwen",
    ...     api_key="sk-or-v1-...",
    ...     model="qwen/qwen3-235b-a22b:free",
    ... )
    >>> text = await client.invoke(request)

Tests:
    - tests/unit/test_providers.py::TestOpenRouterTextClient
"""

import logging
import time
from typing import Any

import httpx

from companion.core.providers.base import (
    AuthenticationError,
    ProviderError,
    QuotaExhaustedError,
    RateLimitError,
    TextProviderClient,
)
from companion.schemas import GenerationRequest

logger = logging.getLogger(__name__)

# OpenRouter API configuration
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

# 429 bodies that mean the daily allowance is gone rather than a burst limit
_DAILY_LIMIT_MARKERS = ("per-day", "per day", "quota")


def create_openrouter_client(
    api_key: str,
    base_url: str = OPENROUTER_BASE_URL,
    timeout: float = 60.0,
) -> httpx.AsyncClient:
    """Create an httpx client with OpenRouter auth headers."""
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=timeout,
        headers={
            "Authorization": f"Bearer {api_key}",
            "X-Title": "Companion",
            "Content-Type": "application/json",
        },
    )


def _error_message(response: httpx.Response) -> str:
    try:
        error_data = response.json()
        return error_data.get("error", {}).get("message", response.text)
    except (ValueError, AttributeError):
        return response.text


class OpenRouterTextClient(TextProviderClient):
    """OpenRouter chat/completions client for one model.

    Attributes:
        api_key: OpenRouter API key
        base_url: API base URL
        timeout: Transport timeout in seconds
    """

    def __init__(
        self,
        provider_id: str,
        api_key: str,
        model: str,
        base_url: str = OPENROUTER_BASE_URL,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize OpenRouter client.

        Args:
            provider_id: Catalogue id.
            api_key: OpenRouter API key.
            model: OpenRouter model id.
            base_url: API base URL (default: https://openrouter.ai/api/v1).
            timeout: Request timeout in seconds.
            client: Optional shared httpx client (created lazily otherwise).
        """
        super().__init__(provider_id, model)
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        """Get httpx async client (lazy initialization)."""
        if self._client is None or self._client.is_closed:
            self._client = create_openrouter_client(self.api_key, self.base_url, self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _handle_error(self, response: httpx.Response) -> None:
        """Convert HTTP errors to provider errors.

        Args:
            response: The HTTP response.

        Raises:
            AuthenticationError: For 401/403 errors.
            QuotaExhaustedError: For 402 and daily-limit 429 errors.
            RateLimitError: For other 429 errors.
            ProviderError: For other errors.
        """
        status = response.status_code
        message = _error_message(response)

        if status in (401, 403):
            raise AuthenticationError(self.provider_id, status_code=status)
        elif status == 402:
            raise QuotaExhaustedError(self.provider_id, message=message)
        elif status == 429:
            if any(marker in message.lower() for marker in _DAILY_LIMIT_MARKERS):
                raise QuotaExhaustedError(self.provider_id, message=message)
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                self.provider_id,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        raise ProviderError(message=message, provider=self.provider_id, status_code=status)

    def _build_messages(self, request: GenerationRequest) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.extend({"role": turn.role.value, "content": turn.text} for turn in request.history)
        if request.prompt:
            messages.append({"role": "user", "content": request.prompt})
        return messages

    async def invoke(self, request: GenerationRequest) -> str:
        """Generate the next message via chat/completions.

        Raises:
            ProviderError: If the API call fails.
        """
        start_time = time.perf_counter()
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": self._build_messages(request),
        }

        try:
            response = await self.client.post("/chat/completions", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"OpenRouter HTTP error ({self.provider_id}): {e}")
            raise ProviderError(
                message=str(e) or type(e).__name__,
                provider=self.provider_id,
            ) from e

        if response.status_code != 200:
            self._handle_error(response)

        data = response.json()
        # Upstream failures can arrive as 200 with an error object
        if "error" in data:
            error = data["error"] or {}
            code = error.get("code")
            raise ProviderError(
                message=error.get("message", "Upstream provider error"),
                provider=self.provider_id,
                status_code=code if isinstance(code, int) else None,
            )

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        logger.debug(f"{self.provider_id}: {self.model} answered in {latency_ms}ms")

        choices = data.get("choices") or []
        if not choices:
            return ""
        return choices[0].get("message", {}).get("content") or ""
