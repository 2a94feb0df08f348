"""Application configuration with Pydantic Settings.

This module provides centralized configuration management using pydantic-settings.
Settings are loaded from environment variables and .env files.

Alongside the runtime settings it holds the static provider tables:
the provider catalogue, the per-mode backup lists, and the failure
patterns used to classify provider errors.

Examples:
    >>> from companion.config import get_settings
    >>> settings = get_settings()
    >>> settings.DEFAULT_PROVIDER
    'gemini'

    >>> FALLBACK_PROVIDERS[GenerationMode.CHAT_REPLY]
    ['gemini', 'deepseek', 'qwen']

Tests:
    - tests/unit/test_config.py::TestSettings
    - tests/unit/test_config.py::TestProviderCatalogue
"""

from enum import Enum
from functools import lru_cache
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from companion.core.retry import RetryPolicy


class ProviderType(str, Enum):
    """Backends the provider adapters talk to."""

    GOOGLE = "google"
    OPENROUTER = "openrouter"
    POLLINATIONS = "pollinations"


class ProviderKind(str, Enum):
    """What a provider produces."""

    TEXT = "text"
    IMAGE = "image"


class GenerationMode(str, Enum):
    """Generation tasks the service knows how to run.

    - CHAT_REPLY: the bot's next message in a conversation
    - SUGGESTION: a draft of the user's next message
    - SCENARIO: an opening line for a new roleplay
    - IMAGE: image generation or reference-image editing
    - TEASER: a one-line hook shown on bot cards
    """

    CHAT_REPLY = "chat-reply"
    SUGGESTION = "suggestion"
    SCENARIO = "scenario"
    IMAGE = "image"
    TEASER = "teaser"

    @property
    def kind(self) -> ProviderKind:
        """Provider kind required by this mode."""
        return ProviderKind.IMAGE if self is GenerationMode.IMAGE else ProviderKind.TEXT


class FailureClass(str, Enum):
    """Classification of a provider failure.

    - QUOTA_EXCEEDED: rate or resource limit hit, switch provider
    - TRANSIENT: timeout, 5xx, empty output, retry in place
    - FATAL: bad request or configuration, retrying this provider won't help
    """

    QUOTA_EXCEEDED = "quota-exceeded"
    TRANSIENT = "transient"
    FATAL = "fatal"


class ProviderSpec(BaseModel):
    """Static catalogue entry for one hosted model.

    Attributes:
        id: Stable provider id (what users pick in settings)
        name: Display name
        backend: Which adapter family serves it
        kind: Text or image
        model: Backend model identifier
        supports_reference: Whether the model can edit a reference image
            while preserving the subject's identity
    """

    id: str
    name: str
    backend: ProviderType
    kind: ProviderKind
    model: str
    supports_reference: bool = False


# Provider catalogue, in display order.
# Text options match the app's model picker; the OpenRouter ones are free-tier
# routes, so quota failures are common and the backup lists matter.
PROVIDER_CATALOGUE: dict[str, ProviderSpec] = {
    spec.id: spec
    for spec in (
        ProviderSpec(
            id="gemini",
            name="Gemini (Default)",
            backend=ProviderType.GOOGLE,
            kind=ProviderKind.TEXT,
            model="gemini-2.5-flash",
        ),
        ProviderSpec(
            id="gemini-lite",
            name="Gemini Flash Lite",
            backend=ProviderType.GOOGLE,
            kind=ProviderKind.TEXT,
            model="gemini-2.5-flash-lite",
        ),
        ProviderSpec(
            id="zia",
            name="Zia AI",
            backend=ProviderType.OPENROUTER,
            kind=ProviderKind.TEXT,
            model="z-ai/glm-4.5-air:free",
        ),
        ProviderSpec(
            id="deepseek",
            name="Deepseek Chat",
            backend=ProviderType.OPENROUTER,
            kind=ProviderKind.TEXT,
            model="deepseek/deepseek-chat-v3-0324:free",
        ),
        ProviderSpec(
            id="qwen",
            name="Qwen",
            backend=ProviderType.OPENROUTER,
            kind=ProviderKind.TEXT,
            model="qwen/qwen3-235b-a22b:free",
        ),
        ProviderSpec(
            id="gemini-image",
            name="Gemini Image (Nano Banana)",
            backend=ProviderType.GOOGLE,
            kind=ProviderKind.IMAGE,
            model="gemini-2.5-flash-image",
            supports_reference=True,
        ),
        ProviderSpec(
            id="pollinations",
            name="Pollinations (free)",
            backend=ProviderType.POLLINATIONS,
            kind=ProviderKind.IMAGE,
            model="flux",
        ),
    )
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Backup providers per mode, tried in order after the user's preferred one.
FALLBACK_PROVIDERS: dict[GenerationMode, list[str]] = {
    GenerationMode.CHAT_REPLY: ["gemini", "deepseek", "qwen"],
    GenerationMode.SUGGESTION: ["gemini", "deepseek", "qwen"],
    GenerationMode.SCENARIO: ["gemini", "gemini-lite", "qwen"],
    GenerationMode.IMAGE: ["gemini-image", "pollinations"],
    GenerationMode.TEASER: ["gemini-lite", "qwen"],
}

# Failure patterns: provider id -> [(lowercase substring, classification)].
# "*" applies to every provider; provider-specific rules are checked first.
FAILURE_PATTERNS: dict[str, list[tuple[str, FailureClass]]] = {
    "*": [
        ("resource_exhausted", FailureClass.QUOTA_EXCEEDED),
        ("resource exhausted", FailureClass.QUOTA_EXCEEDED),
        ("quota", FailureClass.QUOTA_EXCEEDED),
        ("rate limit", FailureClass.QUOTA_EXCEEDED),
        ("rate-limit", FailureClass.QUOTA_EXCEEDED),
        ("rate_limit", FailureClass.QUOTA_EXCEEDED),
        ("too many requests", FailureClass.QUOTA_EXCEEDED),
        ("insufficient credits", FailureClass.QUOTA_EXCEEDED),
        ("api key not valid", FailureClass.FATAL),
        ("invalid api key", FailureClass.FATAL),
        ("permission_denied", FailureClass.FATAL),
        ("invalid_argument", FailureClass.FATAL),
        ("timed out", FailureClass.TRANSIENT),
        ("timeout", FailureClass.TRANSIENT),
        ("unavailable", FailureClass.TRANSIENT),
        ("overloaded", FailureClass.TRANSIENT),
    ],
    "gemini-image": [
        ("image generation is not available", FailureClass.QUOTA_EXCEEDED),
    ],
    "deepseek": [
        ("free-models-per-day", FailureClass.QUOTA_EXCEEDED),
    ],
    "qwen": [
        ("free-models-per-day", FailureClass.QUOTA_EXCEEDED),
    ],
    "zia": [
        ("free-models-per-day", FailureClass.QUOTA_EXCEEDED),
        ("no endpoints found", FailureClass.FATAL),
    ],
}


class Settings(BaseSettings):
    """Application settings with provider configuration.

    Settings are loaded from environment variables and .env file.
    At least one keyed provider (GOOGLE_API_KEY or OPENROUTER_API_KEY) is required.

    Attributes:
        GOOGLE_API_KEY: Google AI API key for Gemini models
        OPENROUTER_API_KEY: OpenRouter API key for the hosted open models
        DEFAULT_PROVIDER: Preferred provider id when the caller names none
        RETRY_MAX_ATTEMPTS: Attempts per candidate before advancing
        ATTEMPT_TIMEOUT: Per-attempt timeout in seconds
        MODEL_OVERRIDES: Provider id -> model id overrides
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Provider API Keys
    GOOGLE_API_KEY: str | None = Field(
        default=None,
        description="Google AI API key",
    )
    OPENROUTER_API_KEY: str | None = Field(
        default=None,
        description="OpenRouter API key",
    )
    OPENROUTER_BASE_URL: str = Field(
        default="https://openrouter.ai/api/v1",
        description="OpenRouter API base URL",
    )
    POLLINATIONS_BASE_URL: str = Field(
        default="https://image.pollinations.ai",
        description="Pollinations image API base URL",
    )

    # Provider Selection
    DEFAULT_PROVIDER: str = Field(
        default="gemini",
        description="Preferred text provider id when none is given",
    )
    MODEL_OVERRIDES: dict[str, str] = Field(
        default_factory=dict,
        description="Provider id -> model id overrides",
    )

    # Retry / timeout policy
    RETRY_MAX_ATTEMPTS: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per candidate before falling back",
    )
    RETRY_INITIAL_BACKOFF: float = Field(
        default=1.0,
        ge=0,
        description="Delay before the second attempt (seconds)",
    )
    RETRY_BACKOFF_MULTIPLIER: float = Field(
        default=2.0,
        ge=1.0,
        description="Backoff growth factor",
    )
    RETRY_MAX_BACKOFF: float = Field(
        default=8.0,
        ge=0,
        description="Upper bound on a single backoff delay (seconds)",
    )
    ATTEMPT_TIMEOUT: float = Field(
        default=25.0,
        gt=0,
        description="Per-attempt timeout (seconds)",
    )
    TEASER_TIMEOUT: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for the single teaser call (seconds)",
    )

    # Logging
    LOG_LEVEL: str = Field(
        default="WARNING",
        description="Root log level (the CLI's --log-level overrides it)",
    )

    @field_validator("DEFAULT_PROVIDER")
    @classmethod
    def validate_default_provider(cls, v: str) -> str:
        """Default provider must be a known text provider."""
        spec = PROVIDER_CATALOGUE.get(v)
        if spec is None or spec.kind != ProviderKind.TEXT:
            text_ids = [s.id for s in PROVIDER_CATALOGUE.values() if s.kind == ProviderKind.TEXT]
            raise ValueError(f"DEFAULT_PROVIDER must be one of: {text_ids}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log level name."""
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid LOG_LEVEL: {v}")
        return level

    @model_validator(mode="after")
    def validate_providers(self) -> "Settings":
        """Ensure at least one provider API key is configured."""
        if not self.GOOGLE_API_KEY and not self.OPENROUTER_API_KEY:
            raise ValueError(
                "At least one provider API key is required "
                "(GOOGLE_API_KEY or OPENROUTER_API_KEY)"
            )
        return self

    def has_provider(self, provider: ProviderType) -> bool:
        """Check if a backend is usable with the current credentials.

        Args:
            provider: The backend to check.

        Returns:
            bool: True if the backend's API key is configured (Pollinations
            needs none).
        """
        if provider == ProviderType.GOOGLE:
            return bool(self.GOOGLE_API_KEY)
        elif provider == ProviderType.OPENROUTER:
            return bool(self.OPENROUTER_API_KEY)
        elif provider == ProviderType.POLLINATIONS:
            return True
        return False

    def get_api_key(self, provider: ProviderType) -> str:
        """Get API key for a specific backend.

        Args:
            provider: The backend to get the key for.

        Returns:
            str: The API key.

        Raises:
            ValueError: If the backend's API key is not configured.
        """
        if provider == ProviderType.GOOGLE:
            if not self.GOOGLE_API_KEY:
                raise ValueError("GOOGLE_API_KEY not configured")
            return self.GOOGLE_API_KEY
        elif provider == ProviderType.OPENROUTER:
            if not self.OPENROUTER_API_KEY:
                raise ValueError("OPENROUTER_API_KEY not configured")
            return self.OPENROUTER_API_KEY
        raise ValueError(f"No API key for provider: {provider.value}")

    def get_model(self, provider_id: str) -> str:
        """Get the model id for a catalogue entry, honoring overrides.

        Raises:
            KeyError: If the provider id is not in the catalogue.
        """
        if provider_id not in PROVIDER_CATALOGUE:
            raise KeyError(f"Unknown provider: {provider_id}")
        return self.MODEL_OVERRIDES.get(provider_id, PROVIDER_CATALOGUE[provider_id].model)

    def get_retry_policy(self) -> "RetryPolicy":
        """Build the per-candidate RetryPolicy from the RETRY_* settings."""
        # Deferred: core.retry imports this module
        from companion.core.retry import RetryPolicy

        return RetryPolicy(
            max_attempts=self.RETRY_MAX_ATTEMPTS,
            initial_backoff=self.RETRY_INITIAL_BACKOFF,
            backoff_multiplier=self.RETRY_BACKOFF_MULTIPLIER,
            max_backoff=self.RETRY_MAX_BACKOFF,
            attempt_timeout=self.ATTEMPT_TIMEOUT,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: The application settings.

    Examples:
        >>> settings = get_settings()
        >>> settings.RETRY_MAX_ATTEMPTS
        3
    """
    return Settings()
