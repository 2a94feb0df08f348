"""
Pytest configuration and fixtures for Companion tests.

Unit tests never touch the network: provider clients are replaced by
scripted fakes (tests/fixtures/fake_providers.py) and the HTTP adapters
run against httpx.MockTransport.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from companion.config import Settings, get_settings
from companion.core.fallback import FallbackChain
from companion.core.quota import QuotaClassifier
from companion.core.registry import ProviderRegistry
from companion.core.retry import RetryPolicy
from companion.services.generation import GenerationService

# Environment variables that would leak real configuration into tests
SETTINGS_ENV_VARS = (
    "GOOGLE_API_KEY",
    "OPENROUTER_API_KEY",
    "OPENROUTER_BASE_URL",
    "POLLINATIONS_BASE_URL",
    "DEFAULT_PROVIDER",
    "MODEL_OVERRIDES",
    "RETRY_MAX_ATTEMPTS",
    "RETRY_INITIAL_BACKOFF",
    "RETRY_BACKOFF_MULTIPLIER",
    "RETRY_MAX_BACKOFF",
    "ATTEMPT_TIMEOUT",
    "TEASER_TIMEOUT",
    "LOG_LEVEL",
)


# ============================================
# Environment isolation
# ============================================

@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Run every test without real keys or a project .env file."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ============================================
# Settings fixtures
# ============================================

@pytest.fixture
def settings():
    """Settings with both keyed backends configured."""
    return Settings(
        _env_file=None,
        GOOGLE_API_KEY="test-google-key",
        OPENROUTER_API_KEY="sk-or-test-key",
    )


@pytest.fixture
def google_only_settings():
    """Settings with only the Google key."""
    return Settings(_env_file=None, GOOGLE_API_KEY="test-google-key")


# ============================================
# Core fixtures
# ============================================

@pytest.fixture
def fast_policy():
    """Retry policy with no backoff delays."""
    return RetryPolicy(
        max_attempts=3,
        initial_backoff=0.0,
        backoff_multiplier=2.0,
        max_backoff=0.0,
        attempt_timeout=1.0,
    )


@pytest.fixture
def classifier():
    return QuotaClassifier()


@pytest.fixture
def chain(fast_policy, classifier):
    """Fallback chain that retries without sleeping."""
    return FallbackChain(fast_policy, classifier)


@pytest.fixture
def make_service(chain):
    """Build a GenerationService over the given fake clients."""

    def _make(*clients, default_provider="gemini", fallbacks=None, **kwargs):
        registry = ProviderRegistry(
            clients,
            fallbacks=fallbacks,
            default_provider=default_provider,
        )
        return GenerationService(registry, chain=chain, **kwargs)

    return _make


# ============================================
# Pytest Configuration
# ============================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "fast: Fast unit tests (no external API calls)"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests against real providers (requires API keys)"
    )
    config.addinivalue_line(
        "markers", "slow: Slow tests (long-running operations)"
    )
