"""Prompt builders.

Every builder is a pure function of the current working set: the checklist
block is regenerated from the attempt's ``ShortIdCodec`` each time, so a retry
never reuses a stale prompt.
"""

from __future__ import annotations

from typing import Any, Sequence

from ..models import ChecklistItem, DocumentReviewBundle, DocumentUnit, EvaluationLabels
from ..prompt.render_prompt import render_prompts
from .config import ReviewSettings
from .short_ids import ShortIdCodec


def _checklist_context(codec: ShortIdCodec[ChecklistItem]) -> dict[str, Any]:
    return {
        "checklist": [
            {"short_id": short_id, "content": item.content} for short_id, item in codec
        ],
        "checklist_count": len(codec),
    }


def _settings_context(settings: ReviewSettings | None) -> dict[str, Any]:
    if settings is None:
        return {}
    return {
        "additional_instructions": settings.additional_instructions,
        "comment_format": settings.comment_format,
    }


def _labels_context(labels: EvaluationLabels) -> dict[str, Any]:
    return {
        "evaluation_labels": [
            {"label": label, "description": labels.describe(label) or None}
            for label in labels
        ],
        "first_label": labels.labels[0],
    }


def _document_context(document: DocumentUnit) -> dict[str, Any]:
    part_info = None
    if document.part_count is not None and document.part_index is not None:
        part_info = {
            "part_number": document.part_index + 1,
            "part_count": document.part_count,
            "original_name": document.source_name,
        }
    return {
        "name": document.name,
        "part_info": part_info,
        "is_part": document.is_part,
        "is_image": document.is_image,
        "image_count": len(document.image_data),
        "text": document.text_content or "",
    }


def collect_images(documents: Sequence[DocumentUnit]) -> list[str]:
    images: list[str] = []
    for document in documents:
        if document.is_image:
            images.extend(document.image_data)
    return images


def build_review_prompts(
    documents: Sequence[DocumentUnit],
    codec: ShortIdCodec[ChecklistItem],
    *,
    labels: EvaluationLabels,
    settings: ReviewSettings | None = None,
) -> tuple[str, str]:
    """System and user prompt for grading the whole document set at once."""
    context = {
        "documents": [_document_context(d) for d in documents],
        **_checklist_context(codec),
        **_labels_context(labels),
        **_settings_context(settings),
    }
    return render_prompts("review_execution.md", "user_review_execution.md", context)


def build_document_review_prompts(
    document: DocumentUnit,
    codec: ShortIdCodec[ChecklistItem],
    *,
    settings: ReviewSettings | None = None,
) -> tuple[str, str]:
    """System and user prompt for commenting on one document (part)."""
    context = {
        **_document_context(document),
        **_checklist_context(codec),
        **_settings_context(settings),
    }
    return render_prompts(
        "individual_document_review.md", "user_individual_document_review.md", context
    )


def build_consolidation_prompts(
    bundles: Sequence[DocumentReviewBundle],
    codec: ShortIdCodec[ChecklistItem],
    *,
    labels: EvaluationLabels,
    settings: ReviewSettings | None = None,
) -> tuple[str, str]:
    """System and user prompt for turning per-document comments into results.

    Only comments for items still in the working set are included, re-keyed to
    the current short IDs.
    """
    original_files: list[str] = []
    documents: list[dict[str, Any]] = []
    for bundle in bundles:
        if bundle.display_original_name not in original_files:
            original_files.append(bundle.display_original_name)

        display_name = bundle.document_name
        if bundle.is_split_part:
            display_name = f"{bundle.document_name} (part of {bundle.display_original_name})"

        comments = []
        for entry in bundle.review_results:
            short_id = codec.short_id_for(entry.checklist_id)
            if short_id is None:
                continue
            comments.append({"short_id": short_id, "comment": entry.comment})
        comments.sort(key=lambda c: c["short_id"])
        documents.append({"display_name": display_name, "comments": comments})

    context = {
        "original_files": original_files,
        "documents": documents,
        **_checklist_context(codec),
        **_labels_context(labels),
        **_settings_context(settings),
    }
    return render_prompts("consolidate_review.md", "user_consolidate_review.md", context)


def build_categorize_prompts(
    codec: ShortIdCodec[ChecklistItem],
    *,
    max_categories: int,
    max_per_chunk: int,
) -> tuple[str, str]:
    context = {
        **_checklist_context(codec),
        "max_categories": max_categories,
        "max_per_chunk": max_per_chunk,
    }
    return render_prompts(
        "checklist_categorize.md", "user_checklist_categorize.md", context
    )
