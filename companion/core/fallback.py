"""Provider fallback chain.

Tries an ordered list of candidate providers, retrying each one in place
under the RetryPolicy before moving on. The first non-empty result wins;
no quality comparison is made across providers.

Per-call state machine (every transition is logged):

    Idle -> Attempting(i, j) -> Success          -> Done
                              | Retry            -> Attempting(i, j+1)
                              | AdvanceCandidate -> Attempting(i+1, 1)
                              | AllExhausted     -> Failed

Examples:
    >>> candidates = build_candidates("deepseek", ["gemini", "qwen"], registry.descriptors())
    >>> chain = FallbackChain(RetryPolicy(max_attempts=3))
    >>> text = await chain.generate(candidates, request)

    >>> outcome = await chain.resolve(candidates, request)
    >>> if outcome.ok:
    ...     print(outcome.provider_id, outcome.payload)

Tests:
    - tests/unit/test_fallback.py
"""

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from companion.config import GenerationMode, ProviderKind
from companion.core.errors import (
    AllProvidersExhaustedError,
    GenerationCancelledError,
    InvalidRequestError,
)
from companion.core.quota import QuotaClassifier
from companion.core.retry import RetryPolicy, raise_if_cancelled
from companion.schemas import (
    Exhausted,
    GenerationOutcome,
    GenerationRequest,
    ProviderDescriptor,
    Success,
)

logger = logging.getLogger(__name__)

# Modes whose system prompt carries the persona and must not be empty
_PERSONA_MODES = (GenerationMode.CHAT_REPLY, GenerationMode.SUGGESTION)


def build_candidates(
    preferred_id: str | None,
    backup_ids: Iterable[str],
    available: Mapping[str, ProviderDescriptor],
    kind: ProviderKind | None = None,
    require_reference: bool = False,
) -> list[ProviderDescriptor]:
    """Build the ordered, de-duplicated candidate list for one call.

    The preferred provider comes first (when it is known, configured and of
    the right kind), followed by the backup ids in order. A provider never
    appears twice.

    Args:
        preferred_id: User's preferred provider id (may be None).
        backup_ids: Fixed backup list for the mode.
        available: Configured providers by id.
        kind: Only keep providers of this kind.
        require_reference: Only keep providers that can edit a reference image.

    Returns:
        Ordered list of descriptors.
    """
    candidates: list[ProviderDescriptor] = []
    seen: set[str] = set()

    ids = [preferred_id] if preferred_id else []
    ids.extend(backup_ids)

    for provider_id in ids:
        if provider_id in seen:
            continue
        seen.add(provider_id)

        descriptor = available.get(provider_id)
        if descriptor is None:
            if provider_id == preferred_id:
                logger.warning(f"Preferred provider {provider_id!r} is not configured, skipping")
            else:
                logger.debug(f"Backup provider {provider_id!r} is not configured, skipping")
            continue
        if kind is not None and descriptor.kind != kind:
            logger.warning(f"Provider {provider_id!r} is a {descriptor.kind.value} provider, skipping")
            continue
        if require_reference and not descriptor.supports_reference:
            logger.debug(f"Provider {provider_id!r} cannot edit reference images, skipping")
            continue
        candidates.append(descriptor)

    return candidates


def validate_request(request: GenerationRequest) -> None:
    """Request-level checks run once before any provider is called.

    Raises:
        InvalidRequestError: If no provider could serve the request.
    """
    if request.mode in _PERSONA_MODES and not request.system_prompt.strip():
        raise InvalidRequestError(f"{request.mode.value} requires a non-empty system prompt")
    if request.mode == GenerationMode.IMAGE and not request.prompt.strip():
        raise InvalidRequestError("Image generation requires a prompt")
    if not request.history and not request.prompt.strip() and not request.system_prompt.strip():
        raise InvalidRequestError(f"{request.mode.value} request has nothing to generate from")


class FallbackChain:
    """First-success-wins traversal of a candidate list.

    Holds no per-call state; one instance can serve concurrent calls.

    Attributes:
        retry_policy: Policy applied to each candidate
        classifier: Failure classifier shared with the retry policy
    """

    def __init__(
        self,
        retry_policy: RetryPolicy | None = None,
        classifier: QuotaClassifier | None = None,
    ) -> None:
        self.retry_policy = retry_policy or RetryPolicy()
        self.classifier = classifier or QuotaClassifier()

    async def _traverse(
        self,
        candidates: Sequence[ProviderDescriptor],
        request: GenerationRequest,
        cancel: asyncio.Event | None,
        retry_policy: RetryPolicy | None,
    ) -> tuple[Any, str]:
        policy = retry_policy or self.retry_policy
        tag = f"[{request.request_id}] {request.mode.value}"

        validate_request(request)
        if not candidates:
            logger.error(f"{tag}: no candidate providers")
            raise AllProvidersExhaustedError(None)

        last_error: BaseException | None = None
        tried: list[str] = []

        for index, candidate in enumerate(candidates, start=1):
            raise_if_cancelled(cancel, tag)
            tried.append(candidate.id)
            logger.debug(f"{tag}: trying {candidate.id} ({index}/{len(candidates)})")

            try:
                result = await policy.run(
                    lambda c=candidate: c.invoke(request),
                    classifier=self.classifier,
                    cancel=cancel,
                    label=candidate.id,
                )
            except GenerationCancelledError:
                logger.info(f"{tag}: cancelled while on {candidate.id}")
                raise
            except Exception as e:
                last_error = e
                failure = self.classifier.classify(e, candidate.id)
                if index < len(candidates):
                    logger.warning(
                        f"{tag}: {candidate.id} failed ({failure.value}): {e}. "
                        f"Falling back to {candidates[index].id}"
                    )
                else:
                    logger.warning(f"{tag}: {candidate.id} failed ({failure.value}): {e}")
                continue

            if index > 1:
                logger.info(f"{tag}: served by fallback {candidate.id} after {', '.join(tried[:-1])}")
            else:
                logger.debug(f"{tag}: served by {candidate.id}")
            return result, candidate.id

        logger.error(f"{tag}: all candidates exhausted ({', '.join(tried)})")
        raise AllProvidersExhaustedError(last_error, tried) from last_error

    async def generate(
        self,
        candidates: Sequence[ProviderDescriptor],
        request: GenerationRequest,
        *,
        cancel: asyncio.Event | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> Any:
        """Return the first non-empty result from the candidates.

        Args:
            candidates: Ordered providers (see build_candidates).
            request: The generation request.
            cancel: Optional cancellation signal, checked between attempts
                and candidates.
            retry_policy: Override the chain's policy for this call.

        Returns:
            Text or image bytes from the first provider that succeeds.

        Raises:
            InvalidRequestError: If the request fails validation.
            GenerationCancelledError: If cancel is set.
            AllProvidersExhaustedError: If every candidate failed.
        """
        result, _ = await self._traverse(candidates, request, cancel, retry_policy)
        return result

    async def resolve(
        self,
        candidates: Sequence[ProviderDescriptor],
        request: GenerationRequest,
        *,
        cancel: asyncio.Event | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> GenerationOutcome:
        """Like generate(), but report exhaustion as an Exhausted outcome.

        Raises:
            InvalidRequestError: If the request fails validation.
            GenerationCancelledError: If cancel is set.
        """
        try:
            result, provider_id = await self._traverse(candidates, request, cancel, retry_policy)
        except AllProvidersExhaustedError as e:
            return Exhausted(last_error=e.last_error, tried=e.tried)
        return Success(payload=result, provider_id=provider_id)


async def generate_with_fallback(
    candidates: Sequence[ProviderDescriptor],
    request: GenerationRequest,
    retry_policy: RetryPolicy | None = None,
    classifier: QuotaClassifier | None = None,
    cancel: asyncio.Event | None = None,
) -> Any:
    """One-off fallback traversal without keeping a chain around.

    See FallbackChain.generate().
    """
    chain = FallbackChain(retry_policy, classifier)
    return await chain.generate(candidates, request, cancel=cancel)
