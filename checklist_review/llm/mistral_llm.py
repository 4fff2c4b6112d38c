from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Sequence

from dotenv import load_dotenv
from mistralai import Mistral

from .json_utils import parse_json_response
from .provider import (
    FinishReason,
    LLMContextLengthError,
    LLMParseError,
    LLMProviderConfigurationError,
    LLMQuotaError,
    LLMResult,
    is_context_length_message,
    load_system_prompt,
)

_FINISH_REASON_MAP: dict[str, FinishReason] = {
    "stop": FinishReason.STOP,
    "length": FinishReason.LENGTH,
    "model_length": FinishReason.LENGTH,
    "error": FinishReason.ERROR,
    "tool_calls": FinishReason.STOP,
}


class MistralLLM:
    """Wrapper around the Mistral chat completion API with system instructions.

    The system prompt can be provided either as a string directly or as a Path to a file.
    Page images are sent as ``image_url`` chunks holding PNG data URLs.
    """

    name = "mistral"
    MODEL = "mistral-medium-latest"

    def __init__(
        self,
        system_prompt: str | Path = "",
        *,
        client: Mistral | None = None,
        dotenv_path: str | Path | None = None,
        filter_json: bool = False,
        model: str | None = None,
    ) -> None:
        self._system_prompt = load_system_prompt(system_prompt)

        if dotenv_path is not None:
            # Existing environment values take precedence over the file.
            load_dotenv(dotenv_path=Path(dotenv_path))
        else:
            load_dotenv()

        # Mistral SDK does not read MISTRAL_API_KEY from the environment itself
        if client is None:
            api_key = os.environ.get("MISTRAL_API_KEY")
            if not api_key:
                raise LLMProviderConfigurationError(
                    "MISTRAL_API_KEY environment variable is required but not set. "
                    "Please set it in your .env file or environment."
                )
            self._client = Mistral(api_key=api_key)
        else:
            self._client = client

        self._filter_json = filter_json
        self._model = model or os.environ.get("MISTRAL_MODEL", self.MODEL)

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    @property
    def model(self) -> str:
        return self._model

    def generate(
        self,
        user_prompts: Sequence[str],
        *,
        system_prompt: str | None = None,
        images: Sequence[str] | None = None,
        filter_json: bool | None = None,
    ) -> LLMResult:
        if not user_prompts:
            raise ValueError("user_prompts must not be empty.")

        apply_filter = self._filter_json if filter_json is None else filter_json
        messages = self._build_messages(
            user_prompts, system_prompt or self._system_prompt, images
        )

        request: dict[str, Any] = dict(
            model=self._model,
            messages=messages,
            temperature=0.2,
        )
        if apply_filter:
            request["response_format"] = {"type": "json_object"}

        try:
            response = self._client.chat.complete(**request)
        except Exception as exc:
            status_code = getattr(exc, "status_code", None)
            if status_code == 429:
                raise LLMQuotaError(
                    "Mistral provider: quota exhausted or rate limited"
                ) from exc
            if is_context_length_message(str(exc)):
                raise LLMContextLengthError(
                    f"Mistral provider: input too long ({exc})"
                ) from exc
            raise

        finish_reason = self._finish_reason(response)
        text = self._response_text(response) or ""

        data = None
        if apply_filter and finish_reason.is_success:
            data = self._parse_response_json(response, prompts=list(user_prompts))
        return LLMResult(finish_reason=finish_reason, data=data, text=text, raw=response)

    def health_check(self) -> bool:
        return True

    @staticmethod
    def _build_messages(
        user_prompts: Sequence[str],
        system_prompt: str,
        images: Sequence[str] | None,
    ) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})

        text = "\n".join(user_prompts)
        if not images:
            messages.append({"role": "user", "content": text})
            return messages

        content: list[dict[str, Any]] = [{"type": "text", "text": text}]
        for image in images:
            content.append(
                {"type": "image_url", "image_url": f"data:image/png;base64,{image}"}
            )
        messages.append({"role": "user", "content": content})
        return messages

    @staticmethod
    def _finish_reason(response: Any) -> FinishReason:
        choices = getattr(response, "choices", None) or []
        if not choices:
            return FinishReason.UNKNOWN
        raw_reason = getattr(choices[0], "finish_reason", None)
        if raw_reason is None:
            return FinishReason.UNKNOWN
        value = getattr(raw_reason, "value", raw_reason)
        return _FINISH_REASON_MAP.get(str(value).lower(), FinishReason.UNKNOWN)

    @staticmethod
    def _response_text(response: Any) -> str | None:
        """Return the assistant message text.

        Supports the chat completion ``choices`` shape and the conversation
        ``outputs`` shape. Chunked content is flattened to its text parts.
        """
        choices = getattr(response, "choices", None)
        if choices:
            message = getattr(choices[0], "message", None)
            content = getattr(message, "content", None) if message is not None else None
            if isinstance(content, str):
                return content
            if isinstance(content, list):
                texts = [
                    getattr(chunk, "text", None)
                    or (chunk.get("text") if isinstance(chunk, dict) else None)
                    for chunk in content
                ]
                return "".join(t for t in texts if isinstance(t, str))

        outputs = getattr(response, "outputs", None)
        if isinstance(outputs, list):
            for entry in outputs:
                if isinstance(entry, dict):
                    content_val = entry.get("content")
                else:
                    content_val = getattr(entry, "content", None)
                if isinstance(content_val, str) and content_val.strip():
                    return content_val
        return None

    def _parse_response_json(
        self, response: Any, prompts: list[str] | None = None
    ) -> Any:
        """Extract and repair JSON content from a Mistral response.

        Raises:
            LLMParseError: If JSON parsing fails, with response text and prompts attached
        """
        text = self._response_text(response)
        if not isinstance(text, str):
            raise LLMParseError(
                "Response message content is not a string for JSON parsing; expected `choices` or `outputs` shapes.",
                response_text=str(response),
                prompts=prompts,
            )

        try:
            return parse_json_response(text)
        except (ValueError, json.JSONDecodeError) as exc:
            raise LLMParseError(
                str(exc),
                response_text=text,
                prompts=prompts,
            ) from exc
