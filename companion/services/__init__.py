"""Services built on top of the generation core."""

from companion.services.generation import (
    IMAGE_UNAVAILABLE_MESSAGE,
    REFERENCE_UNAVAILABLE_MESSAGE,
    REPLY_FALLBACK,
    SCENARIO_FALLBACK,
    SUGGESTION_FALLBACK,
    TEASER_PLACEHOLDER,
    GenerationService,
)

__all__ = [
    "GenerationService",
    "IMAGE_UNAVAILABLE_MESSAGE",
    "REFERENCE_UNAVAILABLE_MESSAGE",
    "REPLY_FALLBACK",
    "SCENARIO_FALLBACK",
    "SUGGESTION_FALLBACK",
    "TEASER_PLACEHOLDER",
]
