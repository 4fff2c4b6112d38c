from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Protocol, Sequence

ProviderReporter = Callable[[str, "ProviderStatus", Exception | None], None]


class ProviderStatus(str, Enum):
    """Status used when reporting the outcome of a provider call."""

    SUCCESS = "success"
    QUOTA = "quota"
    FAILURE = "failure"


class FinishReason(str, Enum):
    """Provider-neutral reason a generation stopped.

    ``LENGTH`` is the context-length overflow signal; ``CONTENT_FILTER`` and
    ``ERROR`` are fatal for the request. ``UNKNOWN`` is treated as an ordinary
    completion.
    """

    STOP = "stop"
    LENGTH = "length"
    CONTENT_FILTER = "content-filter"
    ERROR = "error"
    UNKNOWN = "unknown"

    @property
    def is_success(self) -> bool:
        return self in (FinishReason.STOP, FinishReason.UNKNOWN)

    def describe(self) -> str:
        return _FINISH_REASON_DESCRIPTIONS[self]


_FINISH_REASON_DESCRIPTIONS = {
    FinishReason.STOP: "Completed normally",
    FinishReason.LENGTH: "The model exceeded its maximum context length",
    FinishReason.CONTENT_FILTER: "The output was blocked by a content filter",
    FinishReason.ERROR: "The model reported an unknown error",
    FinishReason.UNKNOWN: "Unknown finish reason",
}


@dataclass
class LLMResult:
    """Single provider response.

    Attributes:
        finish_reason: Why the generation stopped
        data: Parsed JSON payload when JSON filtering was requested, else None
        text: Raw response text (may be empty)
        raw: The provider SDK response object
    """

    finish_reason: FinishReason
    data: Any = None
    text: str = ""
    raw: Any = None


class LLMProviderError(Exception):
    """Generic failure raised by an LLM provider."""


class LLMQuotaError(LLMProviderError):
    """Raised when a provider reports quota or rate-limit exhaustion."""


class LLMProviderConfigurationError(LLMProviderError):
    """Raised when a provider cannot be configured or authenticated."""


class LLMContextLengthError(LLMProviderError):
    """Raised when a provider rejects a request because the input is too long."""


class LLMParseError(LLMProviderError):
    """Raised when an LLM response cannot be parsed as expected.

    This exception includes the raw response text and input prompts
    to aid debugging when the LLM returns unexpected content.
    """

    def __init__(
        self,
        message: str,
        *,
        response_text: str | None = None,
        prompts: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.response_text = response_text
        self.prompts = prompts

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.response_text is not None:
            # Truncate very long responses for readability
            text = self.response_text
            if len(text) > 2000:
                text = text[:2000] + "... [truncated]"
            parts.append(f"\n--- LLM Response ---\n{text}")
        if self.prompts:
            prompt_text = "\n".join(self.prompts)
            if len(prompt_text) > 2000:
                prompt_text = prompt_text[:2000] + "... [truncated]"
            parts.append(f"\n--- Input Prompts ---\n{prompt_text}")
        return "".join(parts)


class LLMProvider(Protocol):
    """Shared contract for LLM providers."""

    name: str

    def generate(
        self,
        user_prompts: Sequence[str],
        *,
        system_prompt: str | None = None,
        images: Sequence[str] | None = None,
        filter_json: bool = False,
    ) -> LLMResult:
        """Produce a single response for the provided prompts.

        ``system_prompt`` overrides the provider's configured instructions for
        this call only. ``images`` are base64 encoded PNG pages appended after
        the text prompts.
        """
        ...

    def health_check(self) -> bool:
        """Optional quick check that returns True when the provider is ready."""
        ...


class ProviderFactory(Protocol):
    def __call__(
        self,
        *,
        system_prompt: str | Path,
        filter_json: bool,
        dotenv_path: str | Path | None,
    ) -> LLMProvider: ...


def load_system_prompt(system_prompt: str | Path) -> str:
    """Accept either a direct string or a path to a file containing the prompt."""
    if not isinstance(system_prompt, (str, Path)):
        raise TypeError(
            f"system_prompt must be str or Path, got {type(system_prompt)}"
        )
    # Try to interpret as path first if it looks like a path
    if isinstance(system_prompt, Path) or (
        "\n" not in system_prompt and len(system_prompt) < 500
    ):
        try:
            prompt_path = Path(system_prompt)
            if prompt_path.exists() and prompt_path.is_file():
                return prompt_path.read_text(encoding="utf-8")
        except (OSError, ValueError):
            pass
    return str(system_prompt)


# Phrases providers use when rejecting an over-long request.
CONTEXT_LENGTH_PATTERNS: tuple[str, ...] = (
    "context_length",
    "context length",
    "maximum context",
    "token limit",
    "tokens exceed",
    "too many tokens",
    "max_tokens",
    "input is too long",
    "exceeds the maximum number of tokens",
)


def is_context_length_message(message: str) -> bool:
    lowered = message.lower()
    return any(pattern in lowered for pattern in CONTEXT_LENGTH_PATTERNS)


def is_context_length_error(error: object) -> bool:
    """Return True when ``error`` signals a context-length overflow.

    Accepts a finish reason (``FinishReason`` or its string value), an object
    exposing ``finish_reason``, or an exception.
    """
    if isinstance(error, FinishReason):
        return error is FinishReason.LENGTH
    if isinstance(error, str):
        return error == FinishReason.LENGTH.value
    if isinstance(error, LLMContextLengthError):
        return True
    finish_reason = getattr(error, "finish_reason", None)
    if finish_reason is not None and is_context_length_error(finish_reason):
        return True
    if isinstance(error, BaseException):
        return is_context_length_message(str(error))
    return False
