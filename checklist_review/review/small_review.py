"""Review of a document set small enough to grade in one prompt."""

from __future__ import annotations

import logging
from typing import Callable, Iterator, Sequence

from ..models import ChecklistItem, DocumentUnit, EvaluationLabels, PerItemOutcome
from .ai_client import AIClient
from .config import ReviewSettings
from .consolidator import parse_evaluated_entries
from .prompts import build_review_prompts, collect_images
from .resolution import DEFAULT_MAX_ATTEMPTS, ResolutionRetryLoop
from .short_ids import ShortIdCodec

logger = logging.getLogger(__name__)

SaveHook = Callable[[list[PerItemOutcome]], None]


def _failure(item: ChecklistItem, message: str) -> PerItemOutcome:
    return PerItemOutcome.failure(item_id=item.id, content=item.content, message=message)


class SmallDocumentReviewer:
    """Grade a chunk of checklist items against every document at once."""

    def __init__(
        self,
        ai: AIClient,
        *,
        labels: EvaluationLabels | None = None,
        settings: ReviewSettings | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._ai = ai
        self.labels = labels or EvaluationLabels.from_criteria(None)
        self._settings = settings
        self._max_attempts = max_attempts

    def review(
        self,
        documents: Sequence[DocumentUnit],
        items: Sequence[ChecklistItem],
        *,
        on_resolved: SaveHook | None = None,
    ) -> list[PerItemOutcome]:
        """Return one outcome per item in ``items`` order.

        A fatal AI error (content filter, overflow, quota) turns every item not
        yet resolved into an error outcome carrying that error's message.
        """
        images = collect_images(documents) or None

        def ask(codec: ShortIdCodec[ChecklistItem]) -> Iterator[tuple[object, PerItemOutcome]]:
            system_prompt, user_prompt = build_review_prompts(
                documents, codec, labels=self.labels, settings=self._settings
            )
            data = self._ai.ask_json(
                [user_prompt],
                system_prompt=system_prompt,
                images=images,
                label="review",
            )
            return parse_evaluated_entries(data, codec, self.labels)

        loop: ResolutionRetryLoop[PerItemOutcome] = ResolutionRetryLoop(
            ask,
            max_attempts=self._max_attempts,
            on_resolved=on_resolved,
            error_factory=_failure,
            cancel_event=self._ai.cancel_event,
            label="small review",
        )
        return loop.run_or_fail(items)
