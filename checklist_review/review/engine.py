"""Top-level orchestration of a checklist review.

The engine classifies the checklist into chunks, reviews the chunks in
parallel (small or large path) and merges every chunk's outcomes into one
report that lists each requested checklist item exactly once.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Collection, Sequence

from ..llm.provider import LLMProvider
from ..llm.service import LLMService
from ..models import (
    ChecklistItem,
    DocumentComment,
    DocumentUnit,
    PerItemOutcome,
    ReviewStatus,
    ReviewType,
)
from . import messages
from .ai_client import AIClient
from .classifier import ChecklistClassifier
from .config import EngineConfiguration, ReviewSettings
from .errors import ReviewCancelled, normalize_error_message
from .executor import ChunkConcurrencyExecutor, ResultAccumulator
from .large_review import LargeDocumentReviewer
from .resolution import notify
from .small_review import SmallDocumentReviewer

logger = logging.getLogger(__name__)

# Called with the newly produced outcomes and the id of the chunk producing them.
SaveHook = Callable[[list[PerItemOutcome], str], None]
IndividualResultsHook = Callable[[list[DocumentComment], str], None]


@dataclass
class ReviewReport:
    status: ReviewStatus
    outcomes: list[PerItemOutcome] = field(default_factory=list)
    error_message: str | None = None
    chunk_count: int = 0
    failed_chunks: int = 0
    cancelled: bool = False

    @property
    def succeeded(self) -> list[PerItemOutcome]:
        return [o for o in self.outcomes if not o.is_error]

    @property
    def errors(self) -> list[PerItemOutcome]:
        return [o for o in self.outcomes if o.is_error]

    def outcome_for(self, item_id: str) -> PerItemOutcome | None:
        for outcome in self.outcomes:
            if outcome.check_list_item_id == item_id:
                return outcome
        return None


def _failure(item: ChecklistItem, message: str) -> PerItemOutcome:
    return PerItemOutcome.failure(item_id=item.id, content=item.content, message=message)


def _judge_report(outcomes: list[PerItemOutcome], **kwargs) -> ReviewReport:
    if not outcomes or all(o.is_error for o in outcomes):
        return ReviewReport(
            ReviewStatus.FAILED,
            outcomes,
            error_message=messages.ALL_FAILED_MESSAGE,
            **kwargs,
        )
    return ReviewReport(ReviewStatus.SUCCESS, outcomes, **kwargs)


def _unique_items(items: Sequence[ChecklistItem]) -> list[ChecklistItem]:
    seen: set[str] = set()
    unique: list[ChecklistItem] = []
    for item in items:
        if item.id in seen:
            logger.warning("Ignoring duplicate checklist item id %r", item.id)
            continue
        seen.add(item.id)
        unique.append(item)
    return unique


class ReviewEngine:
    """Review documents against a checklist with an LLM.

    Args:
        llm: Provider chain (or single provider) used for every AI call
        config: Engine tuning values; defaults to ``EngineConfiguration()``
    """

    def __init__(
        self,
        llm: LLMService | LLMProvider,
        *,
        config: EngineConfiguration | None = None,
    ) -> None:
        self._llm = llm
        self.config = config or EngineConfiguration()

    def run(
        self,
        documents: Sequence[DocumentUnit],
        items: Sequence[ChecklistItem],
        *,
        settings: ReviewSettings | None = None,
        on_resolved: SaveHook | None = None,
        on_individual_results_saved: IndividualResultsHook | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ReviewReport:
        """Review ``documents`` against ``items`` and return the merged report.

        ``documents`` may be units extracted by an earlier run; they are used as
        they are. ``on_resolved`` is called from worker threads with each batch
        of new outcomes; its failures are logged and ignored.
        """
        settings = settings or ReviewSettings()
        if not documents:
            return ReviewReport(ReviewStatus.FAILED, error_message=messages.NO_FILES_MESSAGE)
        items = _unique_items(items)
        if not items:
            return ReviewReport(
                ReviewStatus.FAILED, error_message=messages.NO_CHECKLIST_ITEMS_MESSAGE
            )

        usable = [d for d in documents if d.has_content]
        for document in documents:
            if not document.has_content:
                logger.warning("Skipping document %s: no content", document.name)
        if not usable:
            return ReviewReport(
                ReviewStatus.FAILED,
                [_failure(item, messages.NO_DOCUMENT_DATA_MESSAGE) for item in items],
                error_message=messages.NO_DOCUMENT_DATA_MESSAGE,
            )

        ai = AIClient(
            self._llm,
            cancel_event=cancel_event,
            log_raw_responses=self.config.log_raw_responses,
            log_response_dir=self.config.log_response_dir,
        )

        try:
            chunks = ChecklistClassifier(
                ai, max_categories=self.config.max_categories
            ).classify(items, settings.concurrent_review_items)
        except ReviewCancelled:
            return ReviewReport(
                ReviewStatus.FAILED,
                [_failure(item, messages.CANCELLED_MESSAGE) for item in items],
                error_message=messages.CANCELLED_MESSAGE,
                cancelled=True,
            )
        if not chunks:
            return ReviewReport(
                ReviewStatus.FAILED, error_message=messages.NO_CHECKLIST_ITEMS_MESSAGE
            )

        logger.info(
            "Reviewing %d document(s) against %d item(s) in %d chunk(s) (%s)",
            len(usable),
            len(items),
            len(chunks),
            settings.review_type.value,
        )

        accumulator = ResultAccumulator()

        def record(outcomes: list[PerItemOutcome], context_id: str) -> None:
            # Saved outcomes stay valid even if their chunk later fails.
            accumulator.extend(outcomes)
            if on_resolved is not None:
                on_resolved(outcomes, context_id)

        def review_chunk(
            indexed_chunk: tuple[int, list[ChecklistItem]]
        ) -> list[PerItemOutcome]:
            index, chunk = indexed_chunk
            context_id = f"chunk-{index + 1}"
            outcomes = self._review_chunk(
                ai,
                usable,
                chunk,
                settings=settings,
                context_id=context_id,
                on_resolved=record,
                on_individual_results_saved=on_individual_results_saved,
            )
            accumulator.extend(outcomes)
            return outcomes

        executor = ChunkConcurrencyExecutor(self.config.chunk_concurrency, label="chunk")
        report = executor.run(list(enumerate(chunks)), review_chunk)

        cancelled = False
        for unit in report.failed:
            if unit.error is None:
                continue
            chunk = chunks[unit.index]
            if isinstance(unit.error, ReviewCancelled):
                cancelled = True
            message = normalize_error_message(unit.error)
            errors = [
                _failure(item, message) for item in chunk if item.id not in accumulator
            ]
            accumulator.extend(errors)
            if errors:
                notify(on_resolved, errors, f"chunk-{unit.index + 1}", label="engine")

        # Chunks that raised or produced only error outcomes.
        failed_chunks = len(report.failed) + sum(
            1
            for unit in report.succeeded
            if not unit.value or all(o.is_error for o in unit.value)
        )
        collected = accumulator.snapshot()
        outcomes = [
            collected.get(item.id) or _failure(item, messages.AI_API_ERROR_MESSAGE)
            for item in items
        ]
        result = _judge_report(
            outcomes,
            chunk_count=len(chunks),
            failed_chunks=failed_chunks,
            cancelled=cancelled,
        )
        logger.info(
            "Review finished: %s (%d evaluated, %d error(s))",
            result.status.value,
            len(result.succeeded),
            len(result.errors),
        )
        return result

    def retry_items(
        self,
        documents: Sequence[DocumentUnit],
        items: Sequence[ChecklistItem],
        previous: ReviewReport,
        *,
        item_ids: Collection[str] | None = None,
        **options,
    ) -> ReviewReport:
        """Re-review selected items and merge them into ``previous``.

        ``item_ids`` defaults to every item that ended in an error. Outcomes for
        the other items are kept from ``previous``.
        """
        if item_ids is None:
            item_ids = {
                o.check_list_item_id
                for o in previous.errors
                if o.check_list_item_id is not None
            }
        wanted = set(item_ids)
        subset = [item for item in items if item.id in wanted]
        if not subset:
            return previous

        retried = self.run(documents, subset, **options)
        if not retried.outcomes:
            return previous

        replacements = {o.check_list_item_id: o for o in retried.outcomes}
        merged: list[PerItemOutcome] = []
        seen: set[str | None] = set()
        for outcome in previous.outcomes:
            merged.append(replacements.get(outcome.check_list_item_id, outcome))
            seen.add(outcome.check_list_item_id)
        merged.extend(o for o in retried.outcomes if o.check_list_item_id not in seen)
        return _judge_report(
            merged,
            chunk_count=retried.chunk_count,
            failed_chunks=retried.failed_chunks,
            cancelled=retried.cancelled,
        )

    def _review_chunk(
        self,
        ai: AIClient,
        documents: Sequence[DocumentUnit],
        chunk: list[ChecklistItem],
        *,
        settings: ReviewSettings,
        context_id: str,
        on_resolved: SaveHook | None,
        on_individual_results_saved: IndividualResultsHook | None,
    ) -> list[PerItemOutcome]:
        def save(outcomes: list[PerItemOutcome]) -> None:
            if on_resolved is not None:
                on_resolved(outcomes, context_id)

        labels = settings.evaluation_labels
        if settings.review_type is ReviewType.LARGE:

            def save_individual(comments: list[DocumentComment]) -> None:
                if on_individual_results_saved is not None:
                    on_individual_results_saved(comments, context_id)

            return LargeDocumentReviewer(
                ai, labels=labels, settings=settings, config=self.config
            ).review(
                documents,
                chunk,
                on_resolved=save,
                on_individual_results_saved=save_individual,
            )

        return SmallDocumentReviewer(
            ai,
            labels=labels,
            settings=settings,
            max_attempts=self.config.max_resolution_attempts,
        ).review(documents, chunk, on_resolved=save)
