"""Review-level exceptions and the mapping from AI results to them.

``ContentLengthExceeded`` is recoverable only by the split-retry controller.
``AIResponseError`` (and ``ContentFiltered``) are fatal for the unit under
review. Anything else raised by an AI call is treated as a transient transport
or parse failure and retried by the resolution loop.
"""

from __future__ import annotations

import threading

from ..llm.provider import (
    FinishReason,
    LLMParseError,
    LLMQuotaError,
    LLMResult,
    is_context_length_error,
)
from . import messages


class ReviewError(Exception):
    """Base class for errors raised by the review engine."""


class ContentLengthExceeded(ReviewError):
    """The AI reported that the request overflowed its context window."""

    def __init__(self, message: str = messages.CONTENT_TOO_LONG_MESSAGE) -> None:
        super().__init__(message)


class AIResponseError(ReviewError):
    """The AI finished with a fatal, non-retryable finish reason."""

    def __init__(
        self,
        message: str = messages.AI_API_ERROR_MESSAGE,
        *,
        finish_reason: FinishReason | None = None,
    ) -> None:
        super().__init__(message)
        self.finish_reason = finish_reason


class ContentFiltered(AIResponseError):
    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message or FinishReason.CONTENT_FILTER.describe(),
            finish_reason=FinishReason.CONTENT_FILTER,
        )


class ReviewCancelled(ReviewError):
    def __init__(self, message: str = messages.CANCELLED_MESSAGE) -> None:
        super().__init__(message)


def check_finish_reason(result: LLMResult) -> None:
    """Raise the review error matching a non-successful finish reason."""
    reason = result.finish_reason
    if reason.is_success:
        return
    if reason is FinishReason.LENGTH:
        raise ContentLengthExceeded()
    if reason is FinishReason.CONTENT_FILTER:
        raise ContentFiltered()
    raise AIResponseError(reason.describe(), finish_reason=reason)


def check_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ReviewCancelled()


def normalize_error_message(error: BaseException) -> str:
    """Return the message shown to users for ``error``."""
    if isinstance(error, ReviewError):
        return str(error) or messages.AI_API_ERROR_MESSAGE
    if is_context_length_error(error):
        return messages.CONTENT_TOO_LONG_MESSAGE
    if isinstance(error, LLMParseError):
        # Drop the attached response/prompt dump.
        detail = error.args[0] if error.args else ""
        return f"Could not parse the AI response: {detail}".rstrip(": ")
    if isinstance(error, LLMQuotaError):
        return f"AI quota exhausted: {error}"
    text = str(error).strip()
    if not text:
        return f"{messages.AI_API_ERROR_MESSAGE} ({error.__class__.__name__})"
    return text
