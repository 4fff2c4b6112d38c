"""Build the provider chain from arguments or ``LLM_PRIMARY``/``LLM_FALLBACK``.

Both variables hold comma separated provider names. When neither is set every
registered provider is used in registration order.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Sequence

from dotenv import load_dotenv

from .gemini_llm import GeminiLLM
from .mistral_llm import MistralLLM
from .provider import LLMProvider, ProviderFactory

# Provider classes accept the factory keywords directly.
_PROVIDER_FACTORIES: dict[str, ProviderFactory] = {
    GeminiLLM.name: GeminiLLM,
    MistralLLM.name: MistralLLM,
}


def available_providers() -> list[str]:
    return list(_PROVIDER_FACTORIES)


def _split_names(value: str | None) -> list[str]:
    if not value:
        return []
    return [chunk.strip().lower() for chunk in value.split(",") if chunk.strip()]


def _dedupe_known(names: Iterable[str]) -> list[str]:
    order: list[str] = []
    for name in names:
        if name not in _PROVIDER_FACTORIES:
            raise ValueError(f"Unknown LLM provider '{name}'")
        if name not in order:
            order.append(name)
    return order


def resolve_provider_order(
    primary: str | None = None,
    fallbacks: Sequence[str] | None = None,
) -> list[str]:
    """Return provider names in priority order.

    ``primary`` and ``fallbacks`` override the environment variables; each is
    resolved independently.

    Raises:
        ValueError: If a name is not a registered provider
    """
    head = _split_names(primary or os.environ.get("LLM_PRIMARY"))
    if fallbacks:
        tail = [name.strip().lower() for name in fallbacks if name.strip()]
    else:
        tail = _split_names(os.environ.get("LLM_FALLBACK"))
    return _dedupe_known(head + tail or available_providers())


def create_provider_chain(
    *,
    system_prompt: str | Path = "",
    filter_json: bool = False,
    dotenv_path: str | Path | None = None,
    primary: str | None = None,
    fallbacks: Sequence[str] | None = None,
) -> list[LLMProvider]:
    """Instantiate the providers named by :func:`resolve_provider_order`."""
    if dotenv_path is not None:
        # The file decides the order, so it wins over the current environment.
        load_dotenv(dotenv_path=str(dotenv_path), override=True)

    return [
        _PROVIDER_FACTORIES[name](
            system_prompt=system_prompt,
            filter_json=filter_json,
            dotenv_path=dotenv_path,
        )
        for name in resolve_provider_order(primary, fallbacks)
    ]
