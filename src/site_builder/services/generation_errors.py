"""Content generation error types and retry classification."""

from __future__ import annotations

TRANSIENT_HTTP_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504, 529})
AUTHENTICATION_HTTP_STATUS_CODES = frozenset({401, 403})


class ContentGenerationError(Exception):
    """Base content generation failure."""

    def __init__(self, message: str, *, kind: str | None = None) -> None:
        self.message = message
        self.kind = kind
        super().__init__(message)


class ContentGenerationTimeoutError(ContentGenerationError):
    """Raised when the generation service does not answer in time."""


class ContentGenerationHTTPError(ContentGenerationError):
    """Raised when the generation service answers with an error status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        kind: str | None = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, kind=kind)


class ContentDecodeError(ContentGenerationError):
    """Raised when a response cannot be decoded into the expected artifact."""


class GeneratorConfigurationError(ContentGenerationError):
    """Raised when the generator credential is missing or rejected."""


def is_retryable_generation_error(error: BaseException) -> bool:
    """Return whether a failed generation call is worth another attempt."""

    if isinstance(error, GeneratorConfigurationError):
        return False
    if isinstance(error, ContentGenerationHTTPError):
        return error.status_code in TRANSIENT_HTTP_STATUS_CODES
    return isinstance(error, Exception)


__all__ = [
    "AUTHENTICATION_HTTP_STATUS_CODES",
    "ContentDecodeError",
    "ContentGenerationError",
    "ContentGenerationHTTPError",
    "ContentGenerationTimeoutError",
    "GeneratorConfigurationError",
    "TRANSIENT_HTTP_STATUS_CODES",
    "is_retryable_generation_error",
]
