"""Comment-only review of a single document or document part."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, Sequence

from ..llm.provider import LLMQuotaError
from ..models import ChecklistItem, DocumentComment, DocumentUnit, TerminationReason
from .ai_client import AIClient, iter_result_entries
from .config import ReviewSettings
from .errors import AIResponseError, ContentLengthExceeded, normalize_error_message
from .messages import NO_DOCUMENT_DATA_MESSAGE
from .prompts import build_document_review_prompts
from .resolution import DEFAULT_MAX_ATTEMPTS, ResolutionRetryLoop
from .short_ids import ShortIdCodec

logger = logging.getLogger(__name__)


@dataclass
class PartReviewOutcome:
    document: DocumentUnit
    termination_reason: TerminationReason
    comments: list[DocumentComment] = field(default_factory=list)
    error_message: str | None = None


def review_document_part(
    ai: AIClient,
    document: DocumentUnit,
    items: Sequence[ChecklistItem],
    *,
    settings: ReviewSettings | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> PartReviewOutcome:
    """Collect a comment per checklist item for one document (part).

    A context-length overflow ends the review with ``CONTENT_LENGTH`` so the
    caller can split the document; any other fatal condition ends it with
    ``ERROR``. Items the AI never answers are left without a comment.
    """
    if not document.has_content:
        return PartReviewOutcome(
            document, TerminationReason.ERROR, error_message=NO_DOCUMENT_DATA_MESSAGE
        )

    images = list(document.image_data) if document.is_image else None

    def ask(codec: ShortIdCodec[ChecklistItem]) -> Iterator[tuple[object, DocumentComment]]:
        system_prompt, user_prompt = build_document_review_prompts(
            document, codec, settings=settings
        )
        data = ai.ask_json(
            [user_prompt],
            system_prompt=system_prompt,
            images=images,
            label=f"document-{document.id}",
        )
        for short_id, entry in iter_result_entries(data):
            item = codec.decode(short_id)
            comment = entry.get("comment")
            if item is None or not isinstance(comment, str):
                continue
            yield short_id, DocumentComment(
                document_id=document.id,
                document_name=document.name,
                original_name=document.source_name,
                checklist_id=item.id,
                comment=comment.strip(),
                part_index=document.part_index or 0,
                part_count=document.part_count or 1,
            )

    loop: ResolutionRetryLoop[DocumentComment] = ResolutionRetryLoop(
        ask,
        max_attempts=max_attempts,
        cancel_event=ai.cancel_event,
        label=f"document {document.name}",
    )
    try:
        result = loop.run(items)
    except ContentLengthExceeded as exc:
        logger.info("Document %s exceeded the context length", document.name)
        return PartReviewOutcome(
            document, TerminationReason.CONTENT_LENGTH, error_message=str(exc)
        )
    except (AIResponseError, LLMQuotaError) as exc:
        return PartReviewOutcome(
            document,
            TerminationReason.ERROR,
            error_message=normalize_error_message(exc),
        )

    if not result.resolved and result.last_error is not None:
        return PartReviewOutcome(
            document, TerminationReason.ERROR, error_message=result.last_error
        )

    return PartReviewOutcome(
        document,
        TerminationReason.SUCCESS,
        comments=result.outcomes_for(items),
    )
