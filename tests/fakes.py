"""Scripted stand-ins for the LLM provider chain used across the tests."""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from checklist_review.llm.provider import FinishReason, LLMResult
from checklist_review.models import ChecklistItem

_CHECKLIST_LINE = re.compile(r"^(\d+)\. (.*)$")


@dataclass
class Call:
    system_prompt: str
    user_prompt: str
    images: list[str] | None

    @property
    def kind(self) -> str:
        if "organise checklist items" in self.system_prompt:
            return "categorize"
        if "You read one document" in self.system_prompt:
            return "document"
        if "senior reviewer" in self.system_prompt:
            return "consolidate"
        return "review"

    @property
    def checklist(self) -> dict[int, str]:
        """Short id -> item content, parsed from the prompt's checklist block."""
        _, _, block = self.user_prompt.rpartition("## Checklist")
        entries: dict[int, str] = {}
        for line in block.splitlines():
            match = _CHECKLIST_LINE.match(line.strip())
            if match:
                entries[int(match.group(1))] = match.group(2)
        return entries

    @property
    def document_name(self) -> str | None:
        match = re.search(r"^- Name: (.*)$", self.user_prompt, re.MULTILINE)
        return match.group(1) if match else None


Handler = Callable[[Call], Any]


class ScriptedLLM:
    """Provider whose replies come from ``handler``.

    The handler may return an ``LLMResult``, raise/return an exception, or
    return plain data (wrapped as a ``STOP`` result).
    """

    name = "scripted"

    def __init__(self, handler: Handler) -> None:
        self._handler = handler
        self._lock = threading.Lock()
        self.calls: list[Call] = []

    def generate(
        self,
        user_prompts: Sequence[str],
        *,
        system_prompt: str | None = None,
        images: Sequence[str] | None = None,
        filter_json: bool = False,
    ) -> LLMResult:
        call = Call(system_prompt or "", "\n".join(user_prompts), list(images) if images else None)
        with self._lock:
            self.calls.append(call)
        reply = self._handler(call)
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, LLMResult):
            return reply
        return LLMResult(finish_reason=FinishReason.STOP, data=reply)

    def health_check(self) -> bool:
        return True

    def calls_of(self, kind: str) -> list[Call]:
        with self._lock:
            return [c for c in self.calls if c.kind == kind]


def make_items(count: int) -> list[ChecklistItem]:
    return [ChecklistItem(id=f"item-{i}", content=f"Requirement {i}") for i in range(1, count + 1)]


def grade_all(call: Call, evaluation: str = "A") -> dict[str, Any]:
    return {
        "results": [
            {"checklistId": short_id, "evaluation": evaluation, "comment": f"ok: {content}"}
            for short_id, content in call.checklist.items()
        ]
    }


def comment_all(call: Call) -> dict[str, Any]:
    return {
        "results": [
            {"checklistId": short_id, "comment": f"{call.document_name} covers {content}"}
            for short_id, content in call.checklist.items()
        ]
    }
