"""Turn per-document comments into one evaluated outcome per checklist item."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Iterator, Sequence

from ..models import (
    ChecklistItem,
    DocumentComment,
    DocumentReviewBundle,
    EvaluationLabels,
    PerItemOutcome,
)
from ..models.outcome import BundleComment
from .ai_client import AIClient, iter_result_entries
from .config import ReviewSettings
from .prompts import build_consolidation_prompts
from .resolution import DEFAULT_MAX_ATTEMPTS, ResolutionRetryLoop
from .short_ids import ShortIdCodec

logger = logging.getLogger(__name__)


def group_comments_by_document(
    comments: Iterable[DocumentComment],
) -> list[DocumentReviewBundle]:
    """Group comments by document id, keeping first-seen document order."""
    bundles: dict[str, DocumentReviewBundle] = {}
    for comment in comments:
        bundle = bundles.get(comment.document_id)
        if bundle is None:
            bundle = DocumentReviewBundle(
                document_id=comment.document_id,
                document_name=comment.document_name,
                original_name=comment.original_name,
            )
            bundles[comment.document_id] = bundle
        bundle.review_results.append(
            BundleComment(checklist_id=comment.checklist_id, comment=comment.comment)
        )
    return list(bundles.values())


def _failure(item: ChecklistItem, message: str) -> PerItemOutcome:
    return PerItemOutcome.failure(item_id=item.id, content=item.content, message=message)


def parse_evaluated_entries(
    data: object,
    codec: ShortIdCodec[ChecklistItem],
    labels: EvaluationLabels,
) -> Iterator[tuple[object, PerItemOutcome]]:
    """Yield outcomes for entries carrying a valid label and a comment.

    Entries whose evaluation is outside ``labels`` are dropped, leaving the
    item unresolved for the next attempt.
    """
    for short_id, entry in iter_result_entries(data):
        item = codec.decode(short_id)
        if item is None:
            continue
        evaluation = labels.normalise(entry.get("evaluation"))
        if evaluation is None:
            logger.debug(
                "Dropping result for %r: evaluation %r not in %r",
                item.id,
                entry.get("evaluation"),
                labels,
            )
            continue
        comment = entry.get("comment")
        yield short_id, PerItemOutcome.success(
            item_id=item.id,
            content=item.content,
            evaluation=evaluation,
            comment=comment.strip() if isinstance(comment, str) else "",
        )


class ResultConsolidator:
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

    def consolidate(
        self,
        items: Sequence[ChecklistItem],
        bundles: Sequence[DocumentReviewBundle],
        *,
        on_resolved: Callable[[list[PerItemOutcome]], None] | None = None,
    ) -> list[PerItemOutcome]:
        """Return exactly one outcome per item, in ``items`` order.

        A fatal AI error keeps the outcomes already consolidated and turns the
        remaining items into error outcomes.
        """

        def ask(codec: ShortIdCodec[ChecklistItem]) -> Iterator[tuple[object, PerItemOutcome]]:
            system_prompt, user_prompt = build_consolidation_prompts(
                bundles, codec, labels=self.labels, settings=self._settings
            )
            data = self._ai.ask_json(
                [user_prompt], system_prompt=system_prompt, label="consolidate"
            )
            return parse_evaluated_entries(data, codec, self.labels)

        loop: ResolutionRetryLoop[PerItemOutcome] = ResolutionRetryLoop(
            ask,
            max_attempts=self._max_attempts,
            on_resolved=on_resolved,
            error_factory=_failure,
            cancel_event=self._ai.cancel_event,
            label="consolidate",
        )
        return loop.run_or_fail(items)
