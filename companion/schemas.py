"""Request and outcome types for the generation core.

Everything here is created per call and discarded once the call resolves.
Requests are frozen pydantic models; outcomes are plain dataclasses.

Examples:
    >>> from companion.schemas import ConversationTurn, GenerationRequest
    >>> turn = ConversationTurn.from_sender("bot", "Hello there!")
    >>> turn.role
    <Role.ASSISTANT: 'assistant'>
    >>> request = GenerationRequest(
    ...     system_prompt="You are a friendly greeter.",
    ...     history=[turn],
    ...     mode=GenerationMode.CHAT_REPLY,
    ... )

Tests:
    - tests/unit/test_schemas.py
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from companion.config import GenerationMode, ProviderKind

__all__ = [
    "ConversationTurn",
    "Exhausted",
    "GenerationMode",
    "GenerationOutcome",
    "GenerationRequest",
    "ProviderDescriptor",
    "ProviderKind",
    "Role",
    "Success",
    "history_from_messages",
]

PayloadT = TypeVar("PayloadT", str, bytes)


class Role(str, Enum):
    """Speaker of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


class ConversationTurn(BaseModel):
    """One message in a conversation transcript.

    Attributes:
        role: Who said it
        text: What was said
    """

    model_config = ConfigDict(frozen=True)

    role: Role
    text: str

    @classmethod
    def from_sender(cls, sender: str, text: str) -> ConversationTurn:
        """Build a turn from the app's message sender name.

        The chat UI stores bot messages with sender "bot"; everything that
        is not the user is the assistant.
        """
        role = Role.USER if sender == Role.USER.value else Role.ASSISTANT
        return cls(role=role, text=text)


def history_from_messages(messages: list[dict[str, Any]]) -> list[ConversationTurn]:
    """Convert stored chat messages into conversation turns.

    Accepts dicts with either a "role" or a "sender" key plus "text".
    """
    turns = []
    for message in messages:
        sender = message.get("role") or message.get("sender") or Role.USER.value
        turns.append(ConversationTurn.from_sender(sender, message.get("text", "")))
    return turns


class GenerationRequest(BaseModel):
    """Immutable description of one generation call.

    Attributes:
        system_prompt: System instruction (the bot's personality, or a task template)
        history: Prior conversation, oldest first
        mode: Which generation task this is
        prompt: Final user instruction appended after the history
        reference_image: Source image bytes for identity-preserving edits
        request_id: Per-call id used to key logs and discard stale results
    """

    model_config = ConfigDict(frozen=True)

    system_prompt: str = ""
    history: tuple[ConversationTurn, ...] = ()
    mode: GenerationMode
    prompt: str = ""
    reference_image: bytes | None = None
    request_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])

    @field_validator("history", mode="before")
    @classmethod
    def freeze_history(cls, v: Any) -> tuple:
        """Store history as a tuple so the request cannot be mutated."""
        return tuple(v or ())

    @property
    def kind(self) -> ProviderKind:
        """Provider kind able to serve this request."""
        return self.mode.kind


@dataclass(frozen=True)
class ProviderDescriptor:
    """Catalogue entry bound to a callable.

    Attributes:
        id: Provider id
        kind: Text or image
        invoke: Coroutine function taking a GenerationRequest
        supports_reference: Whether reference-image edits keep identity
    """

    id: str
    kind: ProviderKind
    invoke: Callable[[GenerationRequest], Awaitable[Any]]
    supports_reference: bool = False


@dataclass(frozen=True)
class Success(Generic[PayloadT]):
    """A usable payload and the provider that produced it."""

    payload: PayloadT
    provider_id: str

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Exhausted:
    """Every candidate failed.

    Attributes:
        last_error: Most recent failure (None if there were no candidates)
        tried: Provider ids attempted, in order
    """

    last_error: BaseException | None
    tried: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return False


GenerationOutcome = Union[Success, Exhausted]
