"""Review of documents too large to grade together.

Each document is reviewed on its own (split on overflow) to collect comments,
then the comments are consolidated into one evaluated outcome per item.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Callable, Sequence

from ..models import (
    ChecklistItem,
    DocumentComment,
    DocumentUnit,
    EvaluationLabels,
    PerItemOutcome,
    ReviewStatus,
)
from .ai_client import AIClient
from .config import EngineConfiguration, ReviewSettings
from .consolidator import ResultConsolidator, group_comments_by_document
from .document_review import PartReviewOutcome, review_document_part
from .errors import ReviewCancelled, normalize_error_message
from .executor import ChunkConcurrencyExecutor
from .messages import AI_API_ERROR_MESSAGE
from .resolution import notify
from .split_retry import DocumentReviewOutcome, SplitRetryController

logger = logging.getLogger(__name__)

SaveHook = Callable[[list[PerItemOutcome]], None]
IndividualResultsHook = Callable[[list[DocumentComment]], None]


class LargeDocumentReviewer:
    def __init__(
        self,
        ai: AIClient,
        *,
        labels: EvaluationLabels | None = None,
        settings: ReviewSettings | None = None,
        config: EngineConfiguration | None = None,
    ) -> None:
        self._ai = ai
        self._settings = settings
        self._config = config or EngineConfiguration()
        self.labels = labels or EvaluationLabels.from_criteria(None)
        self._consolidator = ResultConsolidator(
            ai,
            labels=self.labels,
            settings=settings,
            max_attempts=self._config.max_resolution_attempts,
        )

    def review(
        self,
        documents: Sequence[DocumentUnit],
        items: Sequence[ChecklistItem],
        *,
        on_resolved: SaveHook | None = None,
        on_individual_results_saved: IndividualResultsHook | None = None,
    ) -> list[PerItemOutcome]:
        """Return one outcome per item in ``items`` order.

        If any document cannot be reviewed, every item becomes an error outcome
        carrying that document's error message.
        """
        outcomes = self._review_documents(documents, items)

        failed = [o for o in outcomes if not o.is_success]
        if failed:
            first = failed[0]
            message = first.error_message or AI_API_ERROR_MESSAGE
            logger.warning(
                "Document %s failed (%d of %d): %s",
                first.document.name,
                len(failed),
                len(outcomes),
                message,
            )
            errors = [
                PerItemOutcome.failure(item_id=item.id, content=item.content, message=message)
                for item in items
            ]
            notify(on_resolved, errors, label="large review")
            return errors

        comments = [c for outcome in outcomes for c in outcome.comments]
        results = self._consolidator.consolidate(
            items, group_comments_by_document(comments), on_resolved=on_resolved
        )
        if comments:
            notify(on_individual_results_saved, comments, label="large review")
        return results

    def _review_documents(
        self, documents: Sequence[DocumentUnit], items: Sequence[ChecklistItem]
    ) -> list[DocumentReviewOutcome]:
        controller = SplitRetryController(
            partial(self._review_part, items=items),
            max_split_retry_count=self._config.max_split_retry_count,
            text_overlap=self._config.text_overlap,
            image_overlap=self._config.image_overlap,
            document_concurrency=self._config.document_concurrency,
        )
        executor = ChunkConcurrencyExecutor(
            self._config.document_concurrency, label="document"
        )
        report = executor.run(
            documents, controller.run, describe=lambda _, d: f"document {d.name}"
        )

        outcomes: list[DocumentReviewOutcome] = []
        for unit in report.results:
            if isinstance(unit.error, ReviewCancelled):
                raise unit.error
            if unit.value is not None:
                outcomes.append(unit.value)
                continue
            document = documents[unit.index]
            outcomes.append(
                DocumentReviewOutcome(
                    document=document,
                    status=ReviewStatus.FAILED,
                    error_message=(
                        normalize_error_message(unit.error) if unit.error else None
                    ),
                )
            )
        return outcomes

    def _review_part(
        self, part: DocumentUnit, *, items: Sequence[ChecklistItem]
    ) -> PartReviewOutcome:
        return review_document_part(
            self._ai,
            part,
            items,
            settings=self._settings,
            max_attempts=self._config.max_resolution_attempts,
        )
