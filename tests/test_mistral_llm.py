from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, cast

import pytest
from mistralai import Mistral

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from checklist_review.llm.mistral_llm import MistralLLM
from checklist_review.llm.provider import (
    FinishReason,
    LLMContextLengthError,
    LLMParseError,
    LLMProviderConfigurationError,
    LLMQuotaError,
)


class _DummyResponse:
    def __init__(self, content: Any, finish_reason: Any = "stop") -> None:
        self.choices = [
            SimpleNamespace(message=SimpleNamespace(content=content), finish_reason=finish_reason)
        ]


class _DummyChat:
    def __init__(self, response: Any) -> None:
        self.calls: list[dict[str, object]] = []
        self._response = response

    def complete(self, **kwargs: object) -> _DummyResponse:
        self.calls.append(kwargs)
        if isinstance(self._response, Exception):
            raise self._response
        return self._response


class _DummyClient:
    def __init__(self, response: Any = None) -> None:
        self.chat = _DummyChat(response if response is not None else _DummyResponse("mock-response"))


class _StatusError(Exception):
    def __init__(self, status_code: int, message: str = "error") -> None:
        super().__init__(message)
        self.status_code = status_code


def _llm(client: _DummyClient) -> MistralLLM:
    return MistralLLM(system_prompt="Be helpful.", client=cast(Mistral, client))


def test_generate_builds_system_and_user_messages() -> None:
    client = _DummyClient()

    result = _llm(client).generate(["one", "two"])

    assert result.finish_reason is FinishReason.STOP
    assert result.text == "mock-response"
    call = client.chat.calls[0]
    assert call["messages"] == [
        {"role": "system", "content": "Be helpful."},
        {"role": "user", "content": "one\ntwo"},
    ]
    assert "response_format" not in call


def test_filter_json_parses_and_requests_json_mode() -> None:
    client = _DummyClient(_DummyResponse('Here: {"results": []}'))

    result = _llm(client).generate(["p"], system_prompt="Override", filter_json=True)

    assert result.data == {"results": []}
    call = client.chat.calls[0]
    assert call["response_format"] == {"type": "json_object"}
    assert call["messages"][0]["content"] == "Override"


def test_parse_failure_raises() -> None:
    client = _DummyClient(_DummyResponse("nothing structured"))

    with pytest.raises(LLMParseError):
        _llm(client).generate(["p"], filter_json=True)


@pytest.mark.parametrize(
    "native,expected",
    [
        ("length", FinishReason.LENGTH),
        ("model_length", FinishReason.LENGTH),
        ("error", FinishReason.ERROR),
        ("stop", FinishReason.STOP),
        (None, FinishReason.UNKNOWN),
    ],
)
def test_finish_reasons_are_mapped(native: Any, expected: FinishReason) -> None:
    client = _DummyClient(_DummyResponse('{"a": 1}', finish_reason=native))

    assert _llm(client).generate(["p"]).finish_reason is expected


def test_images_become_data_url_chunks() -> None:
    client = _DummyClient()

    _llm(client).generate(["Look"], images=["aW1n"])

    user = client.chat.calls[0]["messages"][1]
    assert user["content"] == [
        {"type": "text", "text": "Look"},
        {"type": "image_url", "image_url": "data:image/png;base64,aW1n"},
    ]


def test_rate_limit_maps_to_quota_error() -> None:
    with pytest.raises(LLMQuotaError):
        _llm(_DummyClient(_StatusError(429))).generate(["p"])


def test_context_overflow_maps_to_context_length_error() -> None:
    client = _DummyClient(_StatusError(400, "Prompt contains too many tokens for model"))

    with pytest.raises(LLMContextLengthError):
        _llm(client).generate(["p"])


def test_other_errors_propagate() -> None:
    with pytest.raises(_StatusError):
        _llm(_DummyClient(_StatusError(500, "server"))).generate(["p"])


def test_missing_api_key(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("MISTRAL_API_KEY", raising=False)
    empty_env = tmp_path / ".env"
    empty_env.write_text("", encoding="utf-8")

    with pytest.raises(LLMProviderConfigurationError):
        MistralLLM(system_prompt="x", dotenv_path=empty_env)
