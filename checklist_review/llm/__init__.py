"""LLM provider abstraction used by the review engine."""

from __future__ import annotations

from .provider import (
    FinishReason,
    LLMContextLengthError,
    LLMParseError,
    LLMProvider,
    LLMProviderConfigurationError,
    LLMProviderError,
    LLMQuotaError,
    LLMResult,
    ProviderStatus,
)
from .service import LLMService

__all__ = [
    "FinishReason",
    "LLMContextLengthError",
    "LLMParseError",
    "LLMProvider",
    "LLMProviderConfigurationError",
    "LLMProviderError",
    "LLMQuotaError",
    "LLMResult",
    "LLMService",
    "ProviderStatus",
]
