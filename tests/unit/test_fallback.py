"""Unit tests for companion/core/fallback.py.

Run with:
    pytest tests/unit/test_fallback.py -v
"""

import asyncio

import pytest

from companion.config import GenerationMode, ProviderKind
from companion.core.errors import (
    AllProvidersExhaustedError,
    GenerationCancelledError,
    InvalidRequestError,
)
from companion.core.fallback import (
    FallbackChain,
    build_candidates,
    generate_with_fallback,
    validate_request,
)
from companion.core.providers.base import (
    AuthenticationError,
    ProviderError,
    QuotaExhaustedError,
    RateLimitError,
)
from companion.core.retry import RetryPolicy
from companion.schemas import ConversationTurn, GenerationRequest, Role
from tests.fixtures.fake_providers import image_client, text_client


def chat_request(**overrides):
    values = {
        "mode": GenerationMode.CHAT_REPLY,
        "system_prompt": "You are a friendly barista.",
        "history": [ConversationTurn(role=Role.USER, text="Hi!")],
    }
    values.update(overrides)
    return GenerationRequest(**values)


def descriptors(*clients):
    return {client.provider_id: client.descriptor() for client in clients}


@pytest.mark.fast
class TestBuildCandidates:
    """Tests for candidate list construction."""

    def test_preferred_first_then_backups(self):
        available = descriptors(text_client("gemini"), text_client("deepseek"), text_client("qwen"))
        candidates = build_candidates("qwen", ["gemini", "deepseek", "qwen"], available)
        assert [c.id for c in candidates] == ["qwen", "gemini", "deepseek"]

    def test_no_duplicates(self):
        available = descriptors(text_client("gemini"), text_client("qwen"))
        candidates = build_candidates("gemini", ["gemini", "qwen", "gemini"], available)
        assert [c.id for c in candidates] == ["gemini", "qwen"]

    def test_unknown_preferred_is_skipped(self):
        available = descriptors(text_client("gemini"))
        candidates = build_candidates("mystery", ["gemini"], available)
        assert [c.id for c in candidates] == ["gemini"]

    def test_unconfigured_backups_are_skipped(self):
        available = descriptors(text_client("gemini"))
        candidates = build_candidates(None, ["deepseek", "gemini", "qwen"], available)
        assert [c.id for c in candidates] == ["gemini"]

    def test_kind_filter(self):
        available = descriptors(text_client("gemini"), image_client("pollinations"))
        candidates = build_candidates(
            "gemini", ["pollinations"], available, kind=ProviderKind.IMAGE
        )
        assert [c.id for c in candidates] == ["pollinations"]

    def test_reference_filter(self):
        available = descriptors(
            image_client("gemini-image", supports_reference=True),
            image_client("pollinations"),
        )
        candidates = build_candidates(
            None, ["gemini-image", "pollinations"], available, require_reference=True
        )
        assert [c.id for c in candidates] == ["gemini-image"]

    def test_order_is_deterministic(self):
        available = descriptors(text_client("gemini"), text_client("deepseek"), text_client("qwen"))
        first = build_candidates("deepseek", ["gemini", "deepseek", "qwen"], available)
        second = build_candidates("deepseek", ["gemini", "deepseek", "qwen"], available)
        assert [c.id for c in first] == [c.id for c in second]


@pytest.mark.fast
class TestValidateRequest:
    """Request-level checks."""

    def test_chat_requires_system_prompt(self):
        with pytest.raises(InvalidRequestError):
            validate_request(chat_request(system_prompt="  "))

    def test_image_requires_prompt(self):
        with pytest.raises(InvalidRequestError):
            validate_request(GenerationRequest(mode=GenerationMode.IMAGE, prompt=""))

    def test_empty_request_rejected(self):
        with pytest.raises(InvalidRequestError):
            validate_request(GenerationRequest(mode=GenerationMode.SCENARIO))

    def test_valid_request(self):
        validate_request(chat_request())


@pytest.mark.fast
class TestFallbackChain:
    """Tests for FallbackChain traversal."""

    @pytest.mark.asyncio
    async def test_first_success_single_invocation(self, chain):
        """A preferred provider that succeeds is called exactly once."""
        gemini = text_client("gemini", "Hello there")
        deepseek = text_client("deepseek", "unused")
        candidates = [gemini.descriptor(), deepseek.descriptor()]

        result = await chain.generate(candidates, chat_request())

        assert result == "Hello there"
        assert gemini.call_count == 1
        assert deepseek.call_count == 0

    @pytest.mark.asyncio
    async def test_fatal_advances_to_next_candidate(self, chain):
        """A fatal failure on the preferred provider does not abort the call."""
        zia = text_client("zia", AuthenticationError("zia"))
        gemini = text_client("gemini", "served by gemini")

        result = await chain.generate([zia.descriptor(), gemini.descriptor()], chat_request())

        assert result == "served by gemini"
        assert zia.call_count == 1

    @pytest.mark.asyncio
    async def test_transient_failures_exhaust_attempts_before_advancing(self, chain):
        """Each transient candidate uses all its attempts; the third serves once."""
        gemini = text_client(
            "gemini", default=ProviderError("503 unavailable", "gemini", status_code=503)
        )
        deepseek = text_client(
            "deepseek", default=ProviderError("503 unavailable", "deepseek", status_code=503)
        )
        qwen = text_client("qwen", "ok")
        candidates = [gemini.descriptor(), deepseek.descriptor(), qwen.descriptor()]

        result = await chain.generate(candidates, chat_request())

        assert result == "ok"
        assert [gemini.call_count, deepseek.call_count, qwen.call_count] == [3, 3, 1]

    @pytest.mark.asyncio
    async def test_quota_advances_without_retrying(self, chain):
        deepseek = text_client("deepseek", QuotaExhaustedError("deepseek"))
        qwen = text_client("qwen", "ok")

        result = await chain.generate([deepseek.descriptor(), qwen.descriptor()], chat_request())

        assert result == "ok"
        assert deepseek.call_count == 1
        assert qwen.call_count == 1

    @pytest.mark.asyncio
    async def test_empty_string_never_succeeds(self, chain):
        """Blank output is exhausted like any other failure."""
        gemini = text_client("gemini", default="")
        qwen = text_client("qwen", default="   ")

        with pytest.raises(AllProvidersExhaustedError):
            await chain.generate([gemini.descriptor(), qwen.descriptor()], chat_request())
        assert gemini.call_count == 3
        assert qwen.call_count == 3

    @pytest.mark.asyncio
    async def test_scenario_all_fail_invocation_counts(self, chain):
        """Three candidates failing transiently are each tried max_attempts times."""
        clients = [
            text_client(pid, default=ProviderError("503 unavailable", pid, status_code=503))
            for pid in ("gemini", "gemini-lite", "qwen")
        ]
        request = GenerationRequest(
            mode=GenerationMode.SCENARIO,
            system_prompt="A retired pirate",
            prompt="Write an opening line",
        )

        with pytest.raises(AllProvidersExhaustedError) as exc_info:
            await chain.generate([c.descriptor() for c in clients], request)

        assert [c.call_count for c in clients] == [3, 3, 3]
        assert exc_info.value.tried == ("gemini", "gemini-lite", "qwen")

    @pytest.mark.asyncio
    async def test_preferred_fails_twice_then_succeeds(self, chain):
        """Transient failures are retried in place before any fallback."""
        deepseek = text_client(
            "deepseek",
            ProviderError("502 bad gateway", "deepseek", status_code=502),
            ProviderError("502 bad gateway", "deepseek", status_code=502),
            "third time lucky",
        )
        gemini = text_client("gemini", "unused")

        result = await chain.generate([deepseek.descriptor(), gemini.descriptor()], chat_request())

        assert result == "third time lucky"
        assert deepseek.call_count == 3
        assert gemini.call_count == 0

    @pytest.mark.asyncio
    async def test_exhaustion_carries_last_error(self, chain):
        last = RateLimitError("qwen")
        gemini = text_client("gemini", AuthenticationError("gemini"))
        qwen = text_client("qwen", last)

        with pytest.raises(AllProvidersExhaustedError) as exc_info:
            await chain.generate([gemini.descriptor(), qwen.descriptor()], chat_request())

        assert exc_info.value.last_error is last
        assert exc_info.value.__cause__ is last

    @pytest.mark.asyncio
    async def test_no_candidates(self, chain):
        with pytest.raises(AllProvidersExhaustedError) as exc_info:
            await chain.generate([], chat_request())
        assert exc_info.value.last_error is None
        assert exc_info.value.tried == ()

    @pytest.mark.asyncio
    async def test_invalid_request_aborts_before_calls(self, chain):
        gemini = text_client("gemini", "unused")
        with pytest.raises(InvalidRequestError):
            await chain.generate([gemini.descriptor()], chat_request(system_prompt=""))
        assert gemini.call_count == 0

    @pytest.mark.asyncio
    async def test_same_request_passed_to_every_candidate(self, chain):
        request = chat_request()
        gemini = text_client("gemini", AuthenticationError("gemini"))
        qwen = text_client("qwen", "ok")

        await chain.generate([gemini.descriptor(), qwen.descriptor()], request)

        assert gemini.calls[0] is request
        assert qwen.calls[0] is request

    @pytest.mark.asyncio
    async def test_cancel_stops_traversal(self, chain):
        cancel = asyncio.Event()
        cancel.set()
        gemini = text_client("gemini", "unused")

        with pytest.raises(GenerationCancelledError):
            await chain.generate([gemini.descriptor()], chat_request(), cancel=cancel)
        assert gemini.call_count == 0

    @pytest.mark.asyncio
    async def test_retry_policy_override(self, chain):
        gemini = text_client("gemini", default=ProviderError("oops", "gemini", status_code=500))
        single = RetryPolicy(max_attempts=1, initial_backoff=0, max_backoff=0)

        with pytest.raises(AllProvidersExhaustedError):
            await chain.generate([gemini.descriptor()], chat_request(), retry_policy=single)
        assert gemini.call_count == 1


@pytest.mark.fast
class TestResolve:
    """Tests for the outcome-returning variant."""

    @pytest.mark.asyncio
    async def test_success_outcome(self, chain):
        gemini = text_client("gemini", AuthenticationError("gemini"))
        qwen = text_client("qwen", "ok")

        outcome = await chain.resolve([gemini.descriptor(), qwen.descriptor()], chat_request())

        assert outcome.ok
        assert outcome.payload == "ok"
        assert outcome.provider_id == "qwen"

    @pytest.mark.asyncio
    async def test_exhausted_outcome(self, chain):
        gemini = text_client("gemini", AuthenticationError("gemini"))

        outcome = await chain.resolve([gemini.descriptor()], chat_request())

        assert not outcome.ok
        assert outcome.tried == ("gemini",)
        assert isinstance(outcome.last_error, AuthenticationError)


@pytest.mark.fast
class TestGenerateWithFallback:

    @pytest.mark.asyncio
    async def test_one_off_call(self, fast_policy):
        gemini = text_client("gemini", "hi")
        result = await generate_with_fallback([gemini.descriptor()], chat_request(), fast_policy)
        assert result == "hi"

    def test_chain_defaults(self):
        chain = FallbackChain()
        assert chain.retry_policy.max_attempts == 3
