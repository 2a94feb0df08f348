"""Chat reply prompt construction.

The bot's personality is the system instruction. An optional prompt
enhancer can rewrite it before every send, based on the conversation so
far (for example to steer tone once a chat gets going).

Examples:
    >>> from companion.prompts.chat import get_system_prompt
    >>> system = get_system_prompt(personality, history, enhancer=my_enhancer)
"""

from collections.abc import Callable, Sequence

from companion.schemas import ConversationTurn, Role

# (history, latest user message, personality) -> system prompt
PromptEnhancer = Callable[[Sequence[ConversationTurn], str, str], str]

# Sent as the user turn when the bot speaks first
OPENING_PROMPT = "Start the conversation in character with a short greeting."


def latest_user_message(history: Sequence[ConversationTurn]) -> str:
    """Text of the most recent user turn, or empty string."""
    for turn in reversed(history):
        if turn.role == Role.USER:
            return turn.text
    return ""


def get_system_prompt(
    personality: str,
    history: Sequence[ConversationTurn] = (),
    enhancer: PromptEnhancer | None = None,
) -> str:
    """Get the system prompt for a chat reply.

    Args:
        personality: The bot's personality prompt
        history: Conversation so far
        enhancer: Optional hook that rewrites the personality per send

    Returns:
        System prompt string
    """
    if enhancer is None:
        return personality
    return enhancer(history, latest_user_message(history), personality)


def get_prompt(history: Sequence[ConversationTurn]) -> str:
    """Get the trailing user instruction for a chat reply.

    Empty when there is history to answer; the opening prompt otherwise.
    """
    return "" if history else OPENING_PROMPT
