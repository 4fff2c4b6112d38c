"""Provider chain used by the review engine.

The engine talks to a single ``LLMService``; the service walks its providers
in priority order and only moves on to the next one when a provider reports
quota exhaustion. Every other provider error belongs to the request and is
raised to the caller unchanged.
"""

from __future__ import annotations

import logging
from typing import Sequence

from .provider import (
    LLMProvider,
    LLMProviderError,
    LLMQuotaError,
    LLMResult,
    ProviderReporter,
    ProviderStatus,
)

logger = logging.getLogger(__name__)


class LLMService:
    def __init__(
        self,
        providers: Sequence[LLMProvider],
        *,
        reporter: ProviderReporter | None = None,
    ) -> None:
        if not providers:
            raise ValueError("LLMService requires at least one provider")
        self._providers = tuple(providers)
        self._reporter = reporter

    @property
    def name(self) -> str:
        return "+".join(self.provider_order())

    def provider_order(self) -> list[str]:
        return [p.name for p in self._providers]

    def health_check(self) -> list[tuple[str, bool]]:
        """Return ``(provider name, healthy)`` for every provider in the chain."""
        return [(p.name, p.health_check()) for p in self._providers]

    def generate(
        self,
        user_prompts: Sequence[str],
        *,
        system_prompt: str | None = None,
        images: Sequence[str] | None = None,
        filter_json: bool = False,
    ) -> LLMResult:
        """Send the request to the first provider with quota left.

        Raises:
            LLMQuotaError: If every provider reported quota exhaustion
            LLMProviderError: If a provider failed for any other reason
        """
        quota_errors: list[LLMQuotaError] = []
        for position, provider in enumerate(self._providers, start=1):
            try:
                result = provider.generate(
                    user_prompts,
                    system_prompt=system_prompt,
                    images=images,
                    filter_json=filter_json,
                )
            except LLMQuotaError as exc:
                quota_errors.append(exc)
                self._report(provider.name, ProviderStatus.QUOTA, exc)
                if position < len(self._providers):
                    logger.warning(
                        "Provider %s is out of quota; trying %s",
                        provider.name,
                        self._providers[position].name,
                    )
                continue
            except LLMProviderError as exc:
                self._report(provider.name, ProviderStatus.FAILURE, exc)
                raise
            self._report(provider.name, ProviderStatus.SUCCESS)
            return result

        raise LLMQuotaError("All providers exceeded quota") from quota_errors[-1]

    def _report(
        self,
        provider_name: str,
        status: ProviderStatus,
        error: Exception | None = None,
    ) -> None:
        if self._reporter is not None:
            self._reporter(provider_name, status, error)
