"""Generation service: the public entry points used by the rest of the app.

Each method builds the prompt for its task, asks the registry for the
ordered candidate providers, and runs them through the fallback chain.
Text tasks never surface provider exhaustion to the caller; they return a
fixed fallback string instead. Image generation raises
ImageUnavailableError rather than returning a degraded result.

Examples:
    >>> service = GenerationService.from_settings()
    >>> reply = await service.generate_reply(history, persona, "deepseek")
    >>> image = await service.generate_image("a lighthouse at dusk")
    >>> await service.close()

Tests:
    - tests/unit/test_generation.py
"""

import asyncio
import logging
from collections.abc import Sequence

from companion.config import GenerationMode, Settings, get_settings
from companion.core.errors import (
    GenerationCancelledError,
    ImageUnavailableError,
    InvalidRequestError,
)
from companion.core.fallback import FallbackChain
from companion.core.quota import QuotaClassifier
from companion.core.registry import ProviderRegistry
from companion.core.retry import raise_if_cancelled
from companion.prompts import chat, image, scenario, suggestion, teaser
from companion.prompts.chat import PromptEnhancer
from companion.prompts.suggestion import strip_wrapping_quotes
from companion.schemas import ConversationTurn, GenerationRequest

logger = logging.getLogger(__name__)

# Shown in the chat when every provider failed
REPLY_FALLBACK = "Sorry, I encountered an error. Please try again."

# Leaves the message composer empty
SUGGESTION_FALLBACK = ""

SCENARIO_FALLBACK = "Failed to generate a scenario. Please try again."

# Bot card text when no teaser could be generated
TEASER_PLACEHOLDER = "Say hi and see where the conversation goes."

IMAGE_UNAVAILABLE_MESSAGE = "Image generation is temporarily unavailable. Please try again later."
REFERENCE_UNAVAILABLE_MESSAGE = (
    "Editing with a reference image is temporarily unavailable. Please try again later."
)

DEFAULT_TEASER_TIMEOUT = 10.0  # seconds


class GenerationService:
    """Facade over the provider registry and fallback chain.

    Built once at startup; holds no per-call state, so concurrent calls
    are safe.

    Attributes:
        registry: Configured providers and backup lists
        chain: Fallback chain (with its retry policy and classifier)
        enhancer: Optional chat prompt enhancer
        teaser_timeout: Timeout for the single teaser call (seconds)
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        chain: FallbackChain | None = None,
        enhancer: PromptEnhancer | None = None,
        teaser_timeout: float = DEFAULT_TEASER_TIMEOUT,
    ) -> None:
        self.registry = registry
        self.chain = chain or FallbackChain()
        self.enhancer = enhancer
        self.teaser_timeout = teaser_timeout

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        enhancer: PromptEnhancer | None = None,
    ) -> "GenerationService":
        """Build the service and its registry from application settings."""
        settings = settings or get_settings()
        chain = FallbackChain(settings.get_retry_policy(), QuotaClassifier())
        return cls(
            ProviderRegistry.from_settings(settings),
            chain=chain,
            enhancer=enhancer,
            teaser_timeout=settings.TEASER_TIMEOUT,
        )

    async def close(self) -> None:
        """Close all provider connections."""
        await self.registry.close()

    # =========================================================================
    # Text generation
    # =========================================================================

    async def _generate_text(
        self,
        request: GenerationRequest,
        preferred_provider_id: str | None,
        fallback: str,
        cancel: asyncio.Event | None,
    ) -> str:
        candidates = self.registry.candidates_for(request.mode, preferred_provider_id)
        outcome = await self.chain.resolve(candidates, request, cancel=cancel)
        if outcome.ok:
            return outcome.payload.strip()

        logger.error(
            f"[{request.request_id}] {request.mode.value}: returning fallback text "
            f"after trying {list(outcome.tried)}: {outcome.last_error}"
        )
        return fallback

    def _reply_system_prompt(
        self,
        personality: str,
        history: Sequence[ConversationTurn],
    ) -> str:
        try:
            return chat.get_system_prompt(personality, history, self.enhancer)
        except Exception as e:
            logger.warning(f"Prompt enhancer failed, using the plain personality: {e}")
            return personality

    async def generate_reply(
        self,
        history: Sequence[ConversationTurn],
        system_prompt: str,
        preferred_provider_id: str | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> str:
        """Generate the bot's next message.

        Args:
            history: Conversation so far, oldest first.
            system_prompt: The bot's personality prompt.
            preferred_provider_id: The user's chosen model (None for default).
            cancel: Optional cancellation signal.

        Returns:
            The reply text, or REPLY_FALLBACK if every provider failed.

        Raises:
            InvalidRequestError: If the personality prompt is empty.
            GenerationCancelledError: If cancel is set.
        """
        history = tuple(history)
        request = GenerationRequest(
            mode=GenerationMode.CHAT_REPLY,
            system_prompt=self._reply_system_prompt(system_prompt, history),
            history=history,
            prompt=chat.get_prompt(history),
        )
        return await self._generate_text(request, preferred_provider_id, REPLY_FALLBACK, cancel)

    async def generate_suggestion(
        self,
        history: Sequence[ConversationTurn],
        system_prompt: str,
        preferred_provider_id: str | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> str:
        """Draft the user's next message.

        Returns:
            Suggestion text without wrapping quotes, or SUGGESTION_FALLBACK.

        Raises:
            InvalidRequestError: If the personality prompt is empty.
            GenerationCancelledError: If cancel is set.
        """
        if not system_prompt.strip():
            raise InvalidRequestError("suggestion requires a non-empty system prompt")

        request = GenerationRequest(
            mode=GenerationMode.SUGGESTION,
            system_prompt=suggestion.get_system_prompt(system_prompt),
            history=tuple(history),
            prompt=suggestion.get_prompt(),
        )
        text = await self._generate_text(
            request, preferred_provider_id, SUGGESTION_FALLBACK, cancel
        )
        return suggestion.clean(text)

    async def generate_scenario(
        self,
        personality: str,
        theme: str,
        preferred_provider_id: str | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> str:
        """Generate an opening line for a new roleplay.

        Returns:
            The opening line, or SCENARIO_FALLBACK.
        """
        request = GenerationRequest(
            mode=GenerationMode.SCENARIO,
            system_prompt=scenario.get_system_prompt(personality),
            prompt=scenario.get_prompt(theme),
        )
        return await self._generate_text(request, preferred_provider_id, SCENARIO_FALLBACK, cancel)

    # =========================================================================
    # Image generation
    # =========================================================================

    async def generate_image(
        self,
        prompt: str,
        reference_image: bytes | None = None,
        *,
        cancel: asyncio.Event | None = None,
    ) -> bytes:
        """Generate an image, or edit a reference image.

        Without a reference image every failure advances to the next image
        provider. With one, only providers that preserve the subject's
        identity are tried.

        Args:
            prompt: Image description or edit instruction.
            reference_image: Optional source image bytes.
            cancel: Optional cancellation signal.

        Returns:
            Image bytes.

        Raises:
            ImageUnavailableError: If no provider produced an image.
            InvalidRequestError: If the prompt is empty.
            GenerationCancelledError: If cancel is set.
        """
        has_reference = bool(reference_image)
        request = GenerationRequest(
            mode=GenerationMode.IMAGE,
            prompt=image.get_prompt(prompt, has_reference),
            reference_image=reference_image or None,
        )
        candidates = self.registry.candidates_for(
            GenerationMode.IMAGE, require_reference=has_reference
        )
        outcome = await self.chain.resolve(candidates, request, cancel=cancel)
        if outcome.ok:
            return outcome.payload

        logger.error(
            f"[{request.request_id}] image: no image after trying {list(outcome.tried)}: "
            f"{outcome.last_error}"
        )
        if has_reference:
            raise ImageUnavailableError(
                REFERENCE_UNAVAILABLE_MESSAGE, reference_required=True
            ) from outcome.last_error
        raise ImageUnavailableError(IMAGE_UNAVAILABLE_MESSAGE) from outcome.last_error

    # =========================================================================
    # Teaser
    # =========================================================================

    async def generate_teaser(
        self,
        personality: str,
        *,
        cancel: asyncio.Event | None = None,
    ) -> str:
        """One best-effort hook line for a bot card.

        Called on a polling interval, so it makes a single call to the
        first teaser provider with a short timeout and no retries.
        Any failure returns TEASER_PLACEHOLDER.

        Raises:
            GenerationCancelledError: If cancel is set.
        """
        if not personality or not personality.strip():
            return TEASER_PLACEHOLDER

        candidates = self.registry.candidates_for(GenerationMode.TEASER)
        if not candidates:
            logger.debug("No teaser provider configured")
            return TEASER_PLACEHOLDER
        candidate = candidates[0]

        request = GenerationRequest(
            mode=GenerationMode.TEASER,
            system_prompt=teaser.get_system_prompt(),
            prompt=teaser.get_prompt(personality),
        )
        raise_if_cancelled(cancel, "teaser")
        try:
            text = await asyncio.wait_for(candidate.invoke(request), timeout=self.teaser_timeout)
        except (GenerationCancelledError, asyncio.CancelledError):
            raise
        except Exception as e:
            logger.warning(f"Teaser generation failed on {candidate.id}: {e}")
            return TEASER_PLACEHOLDER

        return strip_wrapping_quotes(text or "") or TEASER_PLACEHOLDER
