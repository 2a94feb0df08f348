"""Provider registry: builds every configured client once at startup.

The registry owns the provider adapters (and their shared SDK/HTTP
clients) and answers "which providers should this call try, in which
order". It is constructed once and injected into the generation service;
nothing here changes per call.

Examples:
    >>> registry = ProviderRegistry.from_settings(get_settings())
    >>> [c.id for c in registry.candidates_for(GenerationMode.CHAT_REPLY, "qwen")]
    ['qwen', 'gemini', 'deepseek']
    >>> await registry.close()

Tests:
    - tests/unit/test_registry.py
"""

import logging
from collections.abc import Iterable, Mapping

from companion.config import (
    FALLBACK_PROVIDERS,
    PROVIDER_CATALOGUE,
    GenerationMode,
    ProviderKind,
    ProviderType,
    Settings,
    get_settings,
)
from companion.core.fallback import build_candidates
from companion.core.providers import (
    GoogleImageClient,
    GoogleTextClient,
    OpenRouterTextClient,
    PollinationsImageClient,
    ProviderClient,
)
from companion.core.providers.google import create_genai_client
from companion.core.providers.openrouter import create_openrouter_client
from companion.schemas import ProviderDescriptor

logger = logging.getLogger(__name__)

# Modes where the user picks a model; the default provider leads these
USER_SELECTABLE_MODES = (
    GenerationMode.CHAT_REPLY,
    GenerationMode.SUGGESTION,
    GenerationMode.SCENARIO,
)


class ProviderRegistry:
    """Configured provider clients plus the per-mode backup lists.

    Attributes:
        clients: Provider id -> client, in catalogue order
        fallbacks: Mode -> ordered backup provider ids
        default_provider: Preferred text provider when the caller names none
    """

    def __init__(
        self,
        clients: Iterable[ProviderClient],
        fallbacks: Mapping[GenerationMode, list[str]] | None = None,
        default_provider: str | None = None,
    ) -> None:
        self.clients: dict[str, ProviderClient] = {}
        for client in clients:
            if client.provider_id in self.clients:
                raise ValueError(f"Duplicate provider id: {client.provider_id}")
            self.clients[client.provider_id] = client
        self.fallbacks = dict(FALLBACK_PROVIDERS if fallbacks is None else fallbacks)
        self.default_provider = default_provider
        self._shared_resources: list = []

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "ProviderRegistry":
        """Build clients for every catalogue entry whose backend is configured.

        Args:
            settings: Application settings (defaults to get_settings()).

        Returns:
            ProviderRegistry with one client per usable catalogue entry.
        """
        settings = settings or get_settings()
        clients: list[ProviderClient] = []

        genai_client = None
        if settings.has_provider(ProviderType.GOOGLE):
            genai_client = create_genai_client(settings.get_api_key(ProviderType.GOOGLE))

        openrouter_http = None
        if settings.has_provider(ProviderType.OPENROUTER):
            openrouter_http = create_openrouter_client(
                settings.get_api_key(ProviderType.OPENROUTER),
                base_url=settings.OPENROUTER_BASE_URL,
                timeout=settings.ATTEMPT_TIMEOUT,
            )

        for spec in PROVIDER_CATALOGUE.values():
            if not settings.has_provider(spec.backend):
                logger.debug(f"Skipping {spec.id}: {spec.backend.value} not configured")
                continue
            model = settings.get_model(spec.id)

            if spec.backend == ProviderType.GOOGLE and spec.kind == ProviderKind.TEXT:
                clients.append(GoogleTextClient(spec.id, model, genai_client))
            elif spec.backend == ProviderType.GOOGLE and spec.kind == ProviderKind.IMAGE:
                clients.append(GoogleImageClient(spec.id, model, genai_client))
            elif spec.backend == ProviderType.OPENROUTER:
                clients.append(
                    OpenRouterTextClient(
                        provider_id=spec.id,
                        api_key=settings.get_api_key(ProviderType.OPENROUTER),
                        model=model,
                        base_url=settings.OPENROUTER_BASE_URL,
                        timeout=settings.ATTEMPT_TIMEOUT,
                        client=openrouter_http,
                    )
                )
            elif spec.backend == ProviderType.POLLINATIONS:
                clients.append(
                    PollinationsImageClient(
                        spec.id,
                        model=model,
                        base_url=settings.POLLINATIONS_BASE_URL,
                    )
                )
            logger.info(f"Initialized provider {spec.id} ({spec.backend.value}, {model})")

        registry = cls(clients, default_provider=settings.DEFAULT_PROVIDER)
        if openrouter_http is not None:
            registry._shared_resources.append(openrouter_http)
        return registry

    def __contains__(self, provider_id: str) -> bool:
        return provider_id in self.clients

    def get(self, provider_id: str) -> ProviderClient:
        """Get a client by provider id.

        Raises:
            ValueError: If the provider is not configured.
        """
        if provider_id not in self.clients:
            raise ValueError(
                f"Provider {provider_id} not configured. "
                f"Available: {list(self.clients.keys())}"
            )
        return self.clients[provider_id]

    def descriptors(self) -> dict[str, ProviderDescriptor]:
        """Descriptors of every configured provider, by id."""
        return {provider_id: client.descriptor() for provider_id, client in self.clients.items()}

    def backup_ids(self, mode: GenerationMode) -> list[str]:
        """Fixed backup list for a mode."""
        return list(self.fallbacks.get(mode, []))

    def candidates_for(
        self,
        mode: GenerationMode,
        preferred_id: str | None = None,
        require_reference: bool = False,
    ) -> list[ProviderDescriptor]:
        """Ordered candidate list for one call.

        Args:
            mode: Generation mode (selects the backup list and provider kind).
            preferred_id: User's preferred provider; falls back to the
                registry default for chat, suggestion and scenario.
            require_reference: Keep only providers that can edit a reference image.
        """
        if preferred_id is None and mode in USER_SELECTABLE_MODES:
            preferred_id = self.default_provider
        return build_candidates(
            preferred_id,
            self.backup_ids(mode),
            self.descriptors(),
            kind=mode.kind,
            require_reference=require_reference,
        )

    async def close(self) -> None:
        """Close all provider connections."""
        for client in self.clients.values():
            await client.close()
        for resource in self._shared_resources:
            if not resource.is_closed:
                await resource.aclose()
        self._shared_resources.clear()
