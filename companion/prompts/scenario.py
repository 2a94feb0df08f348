"""Scenario (opening line) prompt templates.

Examples:
    >>> from companion.prompts.scenario import get_system_prompt, get_prompt
    >>> system = get_system_prompt(persona_personality)
    >>> prompt = get_prompt("a rainy night at a roadside diner")
"""

SYSTEM_TEMPLATE = """You write opening lines for roleplay chats.

The scene is set up for this persona:
{personality}

GUIDELINES:
1. Write ONE opening line (1-3 sentences) that drops the reader into a scene
2. Stay consistent with the persona
3. Use *asterisks* for actions, plain text for dialogue
4. Output only the opening line"""

USER_TEMPLATE = "Write an opening line for a scenario about: {theme}"

DEFAULT_THEME = "a theme of your choice that suits the persona"


def get_system_prompt(personality: str) -> str:
    """Get system prompt for scenario generation.

    Args:
        personality: The persona's personality prompt

    Returns:
        Formatted system prompt
    """
    return SYSTEM_TEMPLATE.format(personality=personality.strip())


def get_prompt(theme: str) -> str:
    """Get user prompt for scenario generation.

    Args:
        theme: What the scenario should be about (may be empty)

    Returns:
        Formatted user prompt
    """
    return USER_TEMPLATE.format(theme=theme.strip() or DEFAULT_THEME)
