"""Prompt templates for each generation task.

Each module provides the system and user prompts for one GenerationService
entry point. The text itself is configuration; the builders only fill in
the persona and task details.

Examples:
    >>> from companion.prompts import scenario
    >>> scenario.get_system_prompt("A retired pirate with a soft heart")
"""

from companion.prompts import chat, image, scenario, suggestion, teaser

__all__ = [
    "chat",
    "image",
    "scenario",
    "suggestion",
    "teaser",
]
