"""Google Gen AI SDK provider implementation.

This module provides integration with Google's Gemini models via the Gen AI SDK.
Supports chat-style text generation and native image generation/editing.

The SDK client is created once by the registry and shared by every Google
adapter; adapters themselves hold no per-call state.

Examples:
    >>> from companion.core.providers.google import GoogleTextClient, create_genai_client
    >>> genai_client = create_genai_client(api_key="AIza...")
    >>> client = GoogleTextClient("gemini", "gemini-2.5-flash", genai_client)
    >>> text = await client.invoke(request)

Tests:
    - tests/unit/test_providers.py::TestGoogleTextClient
    - tests/unit/test_providers.py::TestGoogleImageClient
"""

import logging
import time
from typing import Any

from google import genai
from google.genai import types

from companion.core.providers.base import (
    AuthenticationError,
    EmptyResponseError,
    ImageProviderClient,
    ProviderError,
    QuotaExhaustedError,
    RateLimitError,
    TextProviderClient,
)
from companion.schemas import GenerationRequest, Role

logger = logging.getLogger(__name__)

# Gemini names the assistant side of a conversation "model"
_ROLE_NAMES = {Role.USER: "user", Role.ASSISTANT: "model"}

_IMAGE_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF8", "image/gif"),
)


def create_genai_client(api_key: str) -> genai.Client:
    """Create a Gen AI client for the given key."""
    return genai.Client(api_key=api_key)


def guess_image_mime_type(data: bytes) -> str:
    """Guess an image MIME type from its magic bytes (PNG if unknown)."""
    for signature, mime_type in _IMAGE_SIGNATURES:
        if data.startswith(signature):
            return mime_type
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "image/png"


def _map_error(error: Exception, provider_id: str) -> ProviderError:
    """Convert Google API errors to provider errors.

    Args:
        error: The original exception.
        provider_id: Provider id to attach.

    Returns:
        AuthenticationError for 401/403, QuotaExhaustedError or
        RateLimitError for 429, ProviderError otherwise.
    """
    if isinstance(error, ProviderError):
        return error

    code = getattr(error, "code", None)
    if not isinstance(code, int):
        code = None
    error_str = str(error).lower()

    if code in (401, 403) or "api key not valid" in error_str:
        return AuthenticationError(provider_id, status_code=code or 401)
    if code == 429 or "resource_exhausted" in error_str:
        if "quota" in error_str:
            return QuotaExhaustedError(provider_id, message=str(error))
        return RateLimitError(provider_id)
    return ProviderError(message=str(error) or type(error).__name__, provider=provider_id, status_code=code)


class GoogleTextClient(TextProviderClient):
    """Gemini chat models via the google-genai SDK.

    The request's system prompt becomes the system instruction and the
    history is sent as alternating user/model contents.
    """

    def __init__(
        self,
        provider_id: str,
        model: str,
        client: Any,
        temperature: float | None = None,
        max_output_tokens: int | None = None,
    ) -> None:
        """Initialize Google text client.

        Args:
            provider_id: Catalogue id.
            model: Gemini model id (e.g., "gemini-2.5-flash").
            client: Shared genai.Client instance.
            temperature: Optional sampling temperature.
            max_output_tokens: Optional output cap.
        """
        super().__init__(provider_id, model)
        self.client = client
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    def _build_contents(self, request: GenerationRequest) -> list[types.Content]:
        contents = [
            types.Content(role=_ROLE_NAMES[turn.role], parts=[types.Part(text=turn.text)])
            for turn in request.history
        ]
        if request.prompt:
            contents.append(types.Content(role="user", parts=[types.Part(text=request.prompt)]))
        return contents

    def _build_config(self, request: GenerationRequest) -> types.GenerateContentConfig:
        config_params: dict[str, Any] = {}
        if request.system_prompt:
            config_params["system_instruction"] = request.system_prompt
        if self.temperature is not None:
            config_params["temperature"] = self.temperature
        if self.max_output_tokens is not None:
            config_params["max_output_tokens"] = self.max_output_tokens
        return types.GenerateContentConfig(**config_params)

    async def invoke(self, request: GenerationRequest) -> str:
        """Generate the next message for the request.

        Raises:
            ProviderError: If the API call fails.
        """
        start_time = time.perf_counter()
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=self._build_contents(request),
                config=self._build_config(request),
            )
        except Exception as e:
            logger.error(f"Google API error ({self.provider_id}/{self.model}): {e}")
            raise _map_error(e, self.provider_id) from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        logger.debug(f"{self.provider_id}: {self.model} answered in {latency_ms}ms")
        return response.text or ""


class GoogleImageClient(ImageProviderClient):
    """Gemini native image model (Nano Banana).

    Uses generate_content() with response_modalities=["IMAGE"]. When a
    reference image is given it is sent ahead of the prompt so the model
    edits it instead of drawing from scratch.
    """

    supports_reference = True

    def __init__(
        self,
        provider_id: str,
        model: str,
        client: Any,
        aspect_ratio: str | None = None,
    ) -> None:
        """Initialize Google image client.

        Args:
            provider_id: Catalogue id.
            model: Gemini image model (e.g., "gemini-2.5-flash-image").
            client: Shared genai.Client instance.
            aspect_ratio: Optional aspect ratio ("1:1", "3:4", ...).
        """
        super().__init__(provider_id, model)
        self.client = client
        self.aspect_ratio = aspect_ratio

    async def generate_image(
        self,
        prompt: str,
        reference_image: bytes | None = None,
    ) -> bytes:
        """Generate or edit an image.

        Returns:
            Raw image bytes from the first inline image part.

        Raises:
            EmptyResponseError: If the model returned no image.
            ProviderError: If the API call fails.
        """
        start_time = time.perf_counter()

        contents: list[Any] = []
        if reference_image:
            contents.append(
                types.Part.from_bytes(
                    data=reference_image,
                    mime_type=guess_image_mime_type(reference_image),
                )
            )
        contents.append(prompt)

        config_params: dict[str, Any] = {"response_modalities": ["IMAGE"]}
        if self.aspect_ratio:
            config_params["image_config"] = types.ImageConfig(aspect_ratio=self.aspect_ratio)

        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(**config_params),
            )
        except Exception as e:
            logger.error(f"Gemini image generation error ({self.model}): {e}")
            raise _map_error(e, self.provider_id) from e

        image_data = None
        if response.candidates and response.candidates[0].content:
            for part in response.candidates[0].content.parts or []:
                if getattr(part, "inline_data", None) and part.inline_data.data:
                    image_data = part.inline_data.data
                    break

        if not image_data:
            raise EmptyResponseError(self.provider_id, "No image generated from Gemini model")

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        logger.debug(
            f"{self.provider_id}: image ({len(image_data)} bytes, "
            f"reference={'yes' if reference_image else 'no'}) in {latency_ms}ms"
        )
        return image_data
