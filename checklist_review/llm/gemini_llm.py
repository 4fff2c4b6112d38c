from __future__ import annotations

import base64
import json
import os
import threading
import time
from pathlib import Path
from typing import Any, Sequence

from dotenv import load_dotenv
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from .json_utils import parse_json_response
from .provider import (
    FinishReason,
    LLMContextLengthError,
    LLMParseError,
    LLMQuotaError,
    LLMResult,
    is_context_length_message,
    load_system_prompt,
)

# Gemini finish reasons (by enum name) mapped onto the provider-neutral set.
_FINISH_REASON_MAP: dict[str, FinishReason] = {
    "STOP": FinishReason.STOP,
    "MAX_TOKENS": FinishReason.LENGTH,
    "SAFETY": FinishReason.CONTENT_FILTER,
    "RECITATION": FinishReason.CONTENT_FILTER,
    "BLOCKLIST": FinishReason.CONTENT_FILTER,
    "PROHIBITED_CONTENT": FinishReason.CONTENT_FILTER,
    "SPII": FinishReason.CONTENT_FILTER,
    "IMAGE_SAFETY": FinishReason.CONTENT_FILTER,
    "MALFORMED_FUNCTION_CALL": FinishReason.ERROR,
    "OTHER": FinishReason.ERROR,
}


class GeminiLLM:
    """Wrapper around the Gemini SDK with system instructions.

    The system prompt can be provided either as a string directly or as a Path to a file.
    """

    name = "gemini"
    MODEL = "gemini-2.5-flash"
    MAX_THINKING_BUDGET = 24576

    def __init__(
        self,
        system_prompt: str | Path = "",
        *,
        client: genai.Client | None = None,
        dotenv_path: str | Path | None = None,
        filter_json: bool = False,
        min_request_interval: float | None = None,
        max_retries: int | None = None,
        model: str | None = None,
    ) -> None:
        self._system_prompt = load_system_prompt(system_prompt)

        if dotenv_path is not None:
            load_dotenv(dotenv_path=Path(dotenv_path))
        else:
            load_dotenv()
        self._client = client or genai.Client()
        self._filter_json = filter_json
        self._model = model or os.environ.get("GEMINI_MODEL", self.MODEL)

        # Read rate limiting configuration from environment or parameters
        if min_request_interval is None:
            try:
                min_request_interval = float(
                    os.environ.get("GEMINI_MIN_REQUEST_INTERVAL", "0")
                )
            except ValueError:
                min_request_interval = 0.0
        self._min_request_interval = max(0.0, min_request_interval)

        # Read retry configuration from environment or parameters
        if max_retries is None:
            try:
                max_retries = int(os.environ.get("GEMINI_MAX_RETRIES", "0"))
            except ValueError:
                max_retries = 0
        self._max_retries = max(0, max_retries)

        # Reviews fan out across worker threads; the interval is shared.
        self._rate_lock = threading.Lock()
        self._last_request_time = 0.0

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

        contents = self._build_contents(user_prompts, images)
        config_kwargs: dict[str, Any] = dict(
            system_instruction=system_prompt or self._system_prompt or None,
            thinking_config=types.ThinkingConfig(
                thinking_budget=self.MAX_THINKING_BUDGET
            ),
            temperature=0.2,
        )
        if apply_filter:
            config_kwargs["response_mime_type"] = "application/json"
        config = types.GenerateContentConfig(**config_kwargs)

        # Implement retry logic with exponential backoff for rate limit errors
        for attempt in range(self._max_retries + 1):
            self._enforce_rate_limit()

            try:
                response = self._client.models.generate_content(
                    model=self._model,
                    contents=contents,
                    config=config,
                )
            except Exception as exc:
                self._mark_request()

                if is_context_length_message(str(exc)):
                    raise LLMContextLengthError(
                        f"Gemini provider: input too long ({exc})"
                    ) from exc

                if self._is_rate_limit(exc):
                    if attempt < self._max_retries:
                        # Backoff: min_interval * 2^attempt (0.1s base when unset)
                        backoff_multiplier = 2**attempt
                        backoff_delay = self._min_request_interval * backoff_multiplier
                        if self._min_request_interval == 0:
                            backoff_delay = 0.1 * backoff_multiplier
                        time.sleep(backoff_delay)
                        continue
                    raise LLMQuotaError(
                        "Gemini provider: rate limited (exhausted retries)"
                    ) from exc

                # Non-quota exception, re-raise immediately
                raise

            self._mark_request()
            return self._build_result(
                response, apply_filter=apply_filter, prompts=list(user_prompts)
            )

        raise LLMQuotaError(  # pragma: no cover - loop always returns or raises
            "Gemini provider: rate limited (exhausted retries)"
        )

    def health_check(self) -> bool:
        return True

    def _build_contents(
        self, user_prompts: Sequence[str], images: Sequence[str] | None
    ) -> Any:
        text = "\n".join(user_prompts)
        if not images:
            return text
        parts: list[Any] = [types.Part.from_text(text=text)]
        for image in images:
            parts.append(
                types.Part.from_bytes(
                    data=base64.b64decode(image), mime_type="image/png"
                )
            )
        return parts

    def _build_result(
        self, response: Any, *, apply_filter: bool, prompts: list[str]
    ) -> LLMResult:
        finish_reason = self._finish_reason(response)
        text = getattr(response, "text", None)
        text = text if isinstance(text, str) else ""

        data = None
        # Truncated or filtered output is never parsed; callers act on the reason.
        if apply_filter and finish_reason.is_success:
            data = self._parse_response_json(response, prompts=prompts)
        return LLMResult(finish_reason=finish_reason, data=data, text=text, raw=response)

    @staticmethod
    def _finish_reason(response: Any) -> FinishReason:
        feedback = getattr(response, "prompt_feedback", None)
        if feedback is not None and getattr(feedback, "block_reason", None):
            return FinishReason.CONTENT_FILTER

        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return FinishReason.UNKNOWN
        raw_reason = getattr(candidates[0], "finish_reason", None)
        if raw_reason is None:
            return FinishReason.UNKNOWN
        reason_name = getattr(raw_reason, "name", None) or str(raw_reason)
        reason_name = reason_name.rsplit(".", 1)[-1].upper()
        return _FINISH_REASON_MAP.get(reason_name, FinishReason.UNKNOWN)

    @staticmethod
    def _is_rate_limit(exc: Exception) -> bool:
        return isinstance(exc, genai_errors.APIError) and exc.code == 429

    def _parse_response_json(
        self, response: Any, prompts: list[str] | None = None
    ) -> Any:
        """Extract and repair JSON content from a Gemini response.

        Raises:
            LLMParseError: If JSON parsing fails, with response text and prompts attached
        """
        text = getattr(response, "text", None)
        if not isinstance(text, str):
            raise LLMParseError(
                "Response object does not expose a text attribute for JSON parsing.",
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

    def _mark_request(self) -> None:
        with self._rate_lock:
            self._last_request_time = time.time()

    def _enforce_rate_limit(self) -> None:
        """Enforce minimum interval between API requests."""
        if self._min_request_interval <= 0:
            return

        with self._rate_lock:
            elapsed = time.time() - self._last_request_time
            if elapsed < self._min_request_interval:
                time.sleep(self._min_request_interval - elapsed)
            self._last_request_time = time.time()
