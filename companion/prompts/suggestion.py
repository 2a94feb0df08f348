"""Reply-suggestion prompt templates.

The model drafts the *user's* next message, not the bot's.

Examples:
    >>> from companion.prompts.suggestion import get_system_prompt, clean
    >>> system = get_system_prompt(bot_personality)
    >>> clean('"Sure, lead the way!"')
    'Sure, lead the way!'
"""

SYSTEM_TEMPLATE = """You help a user of a roleplay chat app write their next message.

The user is chatting with a character described as follows:
{personality}

In the conversation, "user" messages are the user's and "assistant" messages are the character's.

GUIDELINES:
1. Write the USER's next message, in first person, as the user
2. Do NOT answer as the character
3. Keep it natural and short (1-2 sentences)
4. Continue the current thread of the conversation
5. Output only the message text, without quotation marks or labels"""

USER_PROMPT = "Write my next message."

_QUOTE_PAIRS = {
    '"': '"',
    "'": "'",
    "“": "”",
    "‘": "’",
    "«": "»",
}


def get_system_prompt(personality: str) -> str:
    """Get system prompt for a reply suggestion.

    Args:
        personality: The bot's personality prompt

    Returns:
        Formatted system prompt
    """
    return SYSTEM_TEMPLATE.format(personality=personality.strip())


def get_prompt() -> str:
    return USER_PROMPT


def strip_wrapping_quotes(text: str) -> str:
    """Remove quotation marks wrapping the whole text (repeatedly)."""
    text = text.strip()
    while len(text) >= 2 and _QUOTE_PAIRS.get(text[0]) == text[-1]:
        text = text[1:-1].strip()
    return text


def clean(text: str) -> str:
    """Normalize a model suggestion for the message composer."""
    return strip_wrapping_quotes(text)
