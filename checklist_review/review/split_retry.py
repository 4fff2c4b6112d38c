"""Split-and-retry review of one document.

The controller reviews the document as a single part first. Whenever a part
overflows the context window it re-splits the original document into one more
part than the previous round and reviews the new parts, until every part
succeeds, a part fails for another reason, or the split budget runs out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from ..models import DocumentComment, DocumentUnit, ReviewStatus, TerminationReason
from .document_review import PartReviewOutcome
from .errors import ReviewCancelled, normalize_error_message
from .executor import ChunkConcurrencyExecutor
from .messages import SPLIT_RETRY_EXCEEDED_MESSAGE
from .partition import DEFAULT_IMAGE_OVERLAP, DEFAULT_TEXT_OVERLAP, split_document

logger = logging.getLogger(__name__)

MAX_SPLIT_RETRY_COUNT = 5

PartReviewer = Callable[[DocumentUnit], PartReviewOutcome]


@dataclass
class RetryState:
    original_document: DocumentUnit
    current_parts: list[DocumentUnit]
    retry_count: int = 0
    termination_reason: TerminationReason | None = None
    status: ReviewStatus | None = None
    error_message: str | None = None

    @property
    def split_count(self) -> int:
        return self.retry_count + 1


@dataclass
class DocumentReviewOutcome:
    document: DocumentUnit
    status: ReviewStatus
    comments: list[DocumentComment] = field(default_factory=list)
    retry_count: int = 0
    parts: list[DocumentUnit] = field(default_factory=list)
    error_message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status is ReviewStatus.SUCCESS


class SplitRetryController:
    def __init__(
        self,
        review_part: PartReviewer,
        *,
        max_split_retry_count: int = MAX_SPLIT_RETRY_COUNT,
        text_overlap: int = DEFAULT_TEXT_OVERLAP,
        image_overlap: int = DEFAULT_IMAGE_OVERLAP,
        document_concurrency: int = 5,
    ) -> None:
        self._review_part = review_part
        self.max_split_retry_count = max_split_retry_count
        self.text_overlap = text_overlap
        self.image_overlap = image_overlap
        self._executor = ChunkConcurrencyExecutor(document_concurrency, label="part")

    def run(self, document: DocumentUnit) -> DocumentReviewOutcome:
        state = RetryState(original_document=document, current_parts=[document])

        while True:
            outcomes = self._review_round(state)
            self._judge(state, outcomes)

            if state.termination_reason is TerminationReason.SUCCESS:
                state.status = ReviewStatus.SUCCESS
                comments = [c for outcome in outcomes for c in outcome.comments]
                return self._finish(state, comments)

            if state.termination_reason is not TerminationReason.CONTENT_LENGTH:
                state.status = ReviewStatus.FAILED
                return self._finish(state)

            if state.retry_count >= self.max_split_retry_count:
                logger.warning(
                    "%s: still too long after %d split retries",
                    document.name,
                    state.retry_count,
                )
                state.status = ReviewStatus.FAILED
                state.error_message = SPLIT_RETRY_EXCEEDED_MESSAGE
                return self._finish(state)

            state.retry_count += 1
            state.current_parts = split_document(
                document,
                state.split_count,
                text_overlap=self.text_overlap,
                image_overlap=self.image_overlap,
            )
            logger.info(
                "%s: context length exceeded, retrying as %d parts (retry %d/%d)",
                document.name,
                len(state.current_parts),
                state.retry_count,
                self.max_split_retry_count,
            )

    def _review_round(self, state: RetryState) -> list[PartReviewOutcome]:
        report = self._executor.run(
            state.current_parts,
            self._review_part,
            describe=lambda _, part: f"part {part.name}",
        )
        outcomes: list[PartReviewOutcome] = []
        for unit in report.results:
            if isinstance(unit.error, ReviewCancelled):
                raise unit.error
            if unit.error is not None or unit.value is None:
                part = state.current_parts[unit.index]
                message = (
                    normalize_error_message(unit.error)
                    if unit.error is not None
                    else None
                )
                outcomes.append(
                    PartReviewOutcome(part, TerminationReason.ERROR, error_message=message)
                )
            else:
                outcomes.append(unit.value)
        return outcomes

    @staticmethod
    def _judge(state: RetryState, outcomes: list[PartReviewOutcome]) -> None:
        """Record the round's termination reason.

        An overflow on any part asks for another split, even when a sibling
        part failed. A round with errors but no overflow fails the document.
        """
        overflow = [
            o for o in outcomes if o.termination_reason is TerminationReason.CONTENT_LENGTH
        ]
        if overflow:
            state.termination_reason = TerminationReason.CONTENT_LENGTH
            state.error_message = overflow[0].error_message
            return
        errors = [o for o in outcomes if o.termination_reason is TerminationReason.ERROR]
        if errors:
            state.termination_reason = TerminationReason.ERROR
            state.error_message = errors[0].error_message
            return
        state.termination_reason = TerminationReason.SUCCESS
        state.error_message = None

    @staticmethod
    def _finish(
        state: RetryState, comments: list[DocumentComment] | None = None
    ) -> DocumentReviewOutcome:
        return DocumentReviewOutcome(
            document=state.original_document,
            status=state.status or ReviewStatus.FAILED,
            comments=comments or [],
            retry_count=state.retry_count,
            parts=list(state.current_parts),
            error_message=state.error_message,
        )
