"""Errors raised by the generation core itself (not by providers)."""

from collections.abc import Sequence


class CompanionError(Exception):
    """Base class for generation core errors."""


class InvalidRequestError(CompanionError):
    """The request is malformed; no provider can serve it."""


class GenerationCancelledError(CompanionError):
    """The caller's cancellation signal was set before the call finished."""


class AllProvidersExhaustedError(CompanionError):
    """Every candidate provider failed.

    Attributes:
        last_error: The most recent failure (None if there were no candidates)
        tried: Provider ids attempted, in order
    """

    def __init__(
        self,
        last_error: BaseException | None,
        tried: Sequence[str] = (),
    ) -> None:
        self.last_error = last_error
        self.tried = tuple(tried)
        if not self.tried:
            message = "No providers available for this request"
        else:
            message = f"All providers failed ({', '.join(self.tried)}). Last error: {last_error}"
        super().__init__(message)


class ImageUnavailableError(CompanionError):
    """Image generation could not be completed.

    Raised instead of returning a degraded image. ``reference_required`` is
    True when an identity-preserving edit was requested and no capable
    provider is currently available.
    """

    def __init__(self, message: str, reference_required: bool = False) -> None:
        super().__init__(message)
        self.reference_required = reference_required
