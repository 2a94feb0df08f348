"""Pollinations.ai image provider.

Free image generation with no API key. Used as the secondary image
provider: it cannot edit a reference image, so it only serves plain
text-to-image requests.

Tests:
    - tests/unit/test_providers.py::TestPollinationsImageClient
"""

import logging
import time
from urllib.parse import quote

import httpx

from companion.core.providers.base import (
    EmptyResponseError,
    ImageProviderClient,
    ProviderError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

POLLINATIONS_BASE_URL = "https://image.pollinations.ai"
POLLINATIONS_TIMEOUT = 60.0  # Image generation can take time


class PollinationsImageClient(ImageProviderClient):
    """Text-to-image via Pollinations' GET /prompt/{prompt} endpoint."""

    supports_reference = False

    def __init__(
        self,
        provider_id: str,
        model: str = "flux",
        base_url: str = POLLINATIONS_BASE_URL,
        timeout: float = POLLINATIONS_TIMEOUT,
        width: int = 1024,
        height: int = 1024,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(provider_id, model)
        self.base_url = base_url
        self.timeout = timeout
        self.width = width
        self.height = height
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        """Get httpx async client (lazy initialization)."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def generate_image(
        self,
        prompt: str,
        reference_image: bytes | None = None,
    ) -> bytes:
        """Generate an image from the prompt.

        The reference image is ignored; callers that need an edit must not
        route to this provider.

        Raises:
            ProviderError: If the request fails.
        """
        start_time = time.perf_counter()

        if reference_image:
            logger.warning(f"{self.provider_id}: reference image ignored (not supported)")

        # nologo=true removes watermark, width/height for resolution
        params = {
            "model": self.model,
            "nologo": "true",
            "width": str(self.width),
            "height": str(self.height),
        }

        try:
            response = await self.client.get(f"/prompt/{quote(prompt, safe='')}", params=params)
        except httpx.HTTPError as e:
            logger.error(f"Pollinations.ai request failed: {e}")
            raise ProviderError(
                message=f"Pollinations.ai request failed: {e}",
                provider=self.provider_id,
            ) from e

        if response.status_code == 429:
            raise RateLimitError(self.provider_id)
        if response.status_code != 200:
            raise ProviderError(
                message=f"Pollinations.ai returned status {response.status_code}",
                provider=self.provider_id,
                status_code=response.status_code,
            )

        # Response is raw image bytes (JPEG)
        if not response.content:
            raise EmptyResponseError(self.provider_id)

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(f"Pollinations.ai image generated in {latency_ms}ms")
        return response.content
