from __future__ import annotations

import base64
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, cast

import pytest
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from checklist_review.llm.gemini_llm import GeminiLLM
from checklist_review.llm.provider import (
    FinishReason,
    LLMContextLengthError,
    LLMParseError,
    LLMQuotaError,
)


class _DummyResponse:
    def __init__(self, text: Any, finish_reason: Any = "STOP") -> None:
        self.text = text
        self.candidates = [SimpleNamespace(finish_reason=finish_reason)]
        self.prompt_feedback = None


class _DummyModels:
    def __init__(self, responses: list[Any]) -> None:
        self.calls: list[dict[str, object]] = []
        self._responses = responses

    def generate_content(self, **kwargs: object) -> _DummyResponse:
        self.calls.append(kwargs)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class _DummyClient:
    def __init__(self, *responses: Any) -> None:
        self.models = _DummyModels(list(responses) or [_DummyResponse("mock-response")])


def _llm(client: _DummyClient, **kwargs: Any) -> GeminiLLM:
    return GeminiLLM(
        system_prompt="Default instructions.",
        client=cast(genai.Client, client),
        min_request_interval=0,
        **kwargs,
    )


def test_generate_joins_prompts_and_sets_config() -> None:
    client = _DummyClient()
    llm = _llm(client)

    result = llm.generate(["Line one", "Line two"])

    assert result.finish_reason is FinishReason.STOP
    assert result.text == "mock-response"
    assert result.data is None
    call = client.models.calls[0]
    assert call["model"] == llm.model
    assert call["contents"] == "Line one\nLine two"
    config = call["config"]
    assert isinstance(config, types.GenerateContentConfig)
    assert config.system_instruction == "Default instructions."
    assert config.thinking_config is not None
    assert config.thinking_config.thinking_budget == llm.MAX_THINKING_BUDGET


def test_system_prompt_override_and_file_prompt(tmp_path: Path) -> None:
    prompt_path = tmp_path / "system.md"
    prompt_path.write_text("From file.", encoding="utf-8")
    client = _DummyClient()
    llm = GeminiLLM(system_prompt=prompt_path, client=cast(genai.Client, client))

    assert llm.system_prompt == "From file."
    llm.generate(["hi"], system_prompt="Per call.")
    assert client.models.calls[0]["config"].system_instruction == "Per call."


def test_filter_json_parses_response() -> None:
    client = _DummyClient(_DummyResponse('```json\n{"results": [{"checklistId": 1}]}\n```'))

    result = _llm(client).generate(["prompt"], filter_json=True)

    assert result.data == {"results": [{"checklistId": 1}]}
    assert client.models.calls[0]["config"].response_mime_type == "application/json"


def test_unparseable_json_raises_parse_error() -> None:
    client = _DummyClient(_DummyResponse("no json here"))

    with pytest.raises(LLMParseError) as excinfo:
        _llm(client).generate(["prompt"], filter_json=True)
    assert excinfo.value.response_text == "no json here"


@pytest.mark.parametrize(
    "native,expected",
    [
        ("MAX_TOKENS", FinishReason.LENGTH),
        ("SAFETY", FinishReason.CONTENT_FILTER),
        ("PROHIBITED_CONTENT", FinishReason.CONTENT_FILTER),
        ("OTHER", FinishReason.ERROR),
        (types.FinishReason.STOP, FinishReason.STOP),
        (None, FinishReason.UNKNOWN),
    ],
)
def test_finish_reasons_are_mapped(native: Any, expected: FinishReason) -> None:
    client = _DummyClient(_DummyResponse('{"a": 1}', finish_reason=native))

    result = _llm(client).generate(["prompt"], filter_json=True)

    assert result.finish_reason is expected
    # Only successful completions are parsed.
    assert (result.data is not None) == expected.is_success


def test_images_are_sent_as_parts() -> None:
    client = _DummyClient()
    encoded = base64.b64encode(b"png-bytes").decode("ascii")

    _llm(client).generate(["Look"], images=[encoded])

    contents = client.models.calls[0]["contents"]
    assert isinstance(contents, list)
    assert contents[0].text == "Look"
    assert contents[1].inline_data.data == b"png-bytes"
    assert contents[1].inline_data.mime_type == "image/png"


def test_rate_limit_is_retried_then_reported_as_quota(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("checklist_review.llm.gemini_llm.time.sleep", lambda s: None)
    error = genai_errors.ClientError(
        429, {"error": {"code": 429, "message": "slow down", "status": "RESOURCE_EXHAUSTED"}}
    )
    client = _DummyClient(error, _DummyResponse("ok"))

    assert _llm(client, max_retries=1).generate(["p"]).text == "ok"

    exhausted = _DummyClient(error, error)
    with pytest.raises(LLMQuotaError):
        _llm(exhausted, max_retries=1).generate(["p"])
    assert len(exhausted.models.calls) == 2


def test_input_too_long_becomes_context_length_error() -> None:
    client = _DummyClient(
        RuntimeError("The input token count (2000000) exceeds the maximum number of tokens allowed")
    )

    with pytest.raises(LLMContextLengthError):
        _llm(client).generate(["p"])


def test_empty_prompts_rejected() -> None:
    with pytest.raises(ValueError):
        _llm(_DummyClient()).generate([])
