"""Teaser (bot card hook line) prompt templates."""

SYSTEM_PROMPT = """You write one-line teasers for chat characters.
Output a single short, intriguing line (under 20 words) in the character's voice.
No quotation marks, no labels, no explanations."""

USER_TEMPLATE = """Character personality:
{personality}

Write the teaser line."""


def get_system_prompt() -> str:
    return SYSTEM_PROMPT


def get_prompt(personality: str) -> str:
    """Get user prompt for a teaser line."""
    return USER_TEMPLATE.format(personality=personality.strip())
