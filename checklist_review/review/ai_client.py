"""The engine's single doorway to the LLM.

``AIClient`` asks the provider chain for JSON, turns finish reasons and
provider errors into review errors, honours the cancel event and optionally
writes every raw response to disk.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from itertools import count
from pathlib import Path
from typing import Any, Iterator, Sequence

from ..llm.json_utils import coerce_json_list
from ..llm.provider import (
    LLMContextLengthError,
    LLMProvider,
    LLMQuotaError,
    LLMResult,
    is_context_length_error,
)
from ..llm.service import LLMService
from .errors import ContentLengthExceeded, check_cancelled, check_finish_reason

logger = logging.getLogger(__name__)

_RESULT_ID_KEYS = ("checklistId", "checklist_id", "shortId", "short_id", "id")


class AIClient:
    def __init__(
        self,
        llm: LLMService | LLMProvider,
        *,
        cancel_event: threading.Event | None = None,
        log_raw_responses: bool = False,
        log_response_dir: Path | None = None,
    ) -> None:
        self._llm = llm
        self.cancel_event = cancel_event
        self._log_raw_responses = log_raw_responses and log_response_dir is not None
        self._log_response_dir = log_response_dir
        self._sequence = count(1)
        self._sequence_lock = threading.Lock()

    def ask_json(
        self,
        user_prompts: Sequence[str],
        *,
        system_prompt: str,
        images: Sequence[str] | None = None,
        label: str = "review",
    ) -> Any:
        """Send one request and return the parsed JSON payload.

        Raises:
            ReviewCancelled: If the cancel event is set before the call
            ContentLengthExceeded: If the request overflowed the context window
            AIResponseError: If the model stopped for any other fatal reason
            LLMQuotaError: If every provider is out of quota
        """
        check_cancelled(self.cancel_event)
        try:
            result = self._llm.generate(
                list(user_prompts),
                system_prompt=system_prompt,
                images=list(images) if images else None,
                filter_json=True,
            )
        except LLMQuotaError:
            raise
        except LLMContextLengthError as exc:
            raise ContentLengthExceeded() from exc
        except Exception as exc:
            if is_context_length_error(exc):
                raise ContentLengthExceeded() from exc
            raise

        self._maybe_log_response(label, user_prompts, result)
        check_finish_reason(result)
        # The call may have been long; do not hand back work for a cancelled run.
        check_cancelled(self.cancel_event)
        return result.data

    def _maybe_log_response(
        self, label: str, user_prompts: Sequence[str], result: LLMResult
    ) -> None:
        if not self._log_raw_responses or self._log_response_dir is None:
            return

        with self._sequence_lock:
            sequence = next(self._sequence)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        safe_label = "".join(c if c.isalnum() or c in "-_." else "-" for c in label)
        log_file = self._log_response_dir / f"{safe_label}.{sequence:04d}.{timestamp}.json"

        log_data = {
            "timestamp": timestamp,
            "label": label,
            "finish_reason": result.finish_reason.value,
            "prompts": list(user_prompts),
            "response_text": result.text,
            "data": result.data,
        }

        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(log_file, "w", encoding="utf-8") as f:
                json.dump(log_data, f, indent=2, default=str)
        except OSError as e:
            logger.warning("Could not log raw response to %s: %s", log_file, e)


def iter_result_entries(
    data: Any, keys: Sequence[str] = ("results", "items")
) -> Iterator[tuple[object, dict[str, Any]]]:
    """Yield ``(short_id, entry)`` pairs from a parsed result payload.

    Entries without a recognisable id are skipped.
    """
    for entry in coerce_json_list(data, keys=keys):
        if not isinstance(entry, dict):
            continue
        for key in _RESULT_ID_KEYS:
            if key in entry and entry[key] is not None:
                yield entry[key], entry
                break
