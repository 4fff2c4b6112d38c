"""Result models produced by the review engine."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PerItemOutcome(BaseModel):
    """Final outcome for one checklist item.

    Exactly one of (``evaluation`` + ``comment``) or ``error_message`` is
    populated. Use :meth:`success` and :meth:`failure` to build instances.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    check_list_item_id: str | None = None
    check_list_item_content: str
    evaluation: str | None = None
    comment: str | None = None
    error_message: str | None = None

    @model_validator(mode="after")
    def _exclusive(self) -> "PerItemOutcome":
        has_result = self.evaluation is not None and self.comment is not None
        has_partial = self.evaluation is not None or self.comment is not None
        if self.error_message is not None:
            if has_partial:
                raise ValueError(
                    "error_message cannot be combined with evaluation or comment"
                )
        elif not has_result:
            raise ValueError(
                "either evaluation and comment, or error_message, must be set"
            )
        return self

    @classmethod
    def success(
        cls,
        *,
        item_id: str | None,
        content: str,
        evaluation: str,
        comment: str,
    ) -> "PerItemOutcome":
        return cls(
            check_list_item_id=item_id,
            check_list_item_content=content,
            evaluation=evaluation,
            comment=comment,
        )

    @classmethod
    def failure(
        cls, *, item_id: str | None, content: str, message: str
    ) -> "PerItemOutcome":
        return cls(
            check_list_item_id=item_id,
            check_list_item_content=content,
            error_message=message,
        )

    @property
    def is_error(self) -> bool:
        return self.error_message is not None


class DocumentComment(BaseModel):
    """Comment-only result for one checklist item against one document (part)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    document_id: str
    document_name: str
    original_name: str | None = None
    checklist_id: str
    comment: str
    part_index: int = 0
    part_count: int = 1


class BundleComment(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    checklist_id: str
    comment: str


class DocumentReviewBundle(BaseModel):
    """Comments for one document (part), grouped for consolidation."""

    document_id: str
    document_name: str
    original_name: str | None = None
    review_results: List[BundleComment] = Field(default_factory=list)

    @property
    def display_original_name(self) -> str:
        return self.original_name or self.document_name

    @property
    def is_split_part(self) -> bool:
        return self.display_original_name != self.document_name
