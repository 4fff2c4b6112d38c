"""Document units handed to the reviewer.

A ``DocumentUnit`` is either an original document or a part produced by the
split-retry controller. Parts keep ``original_id``/``original_name`` plus
``part_index``/``part_count`` so results can be traced back to their source.
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DocumentUnit(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    name: str
    original_id: str | None = None
    original_name: str | None = None
    text_content: str | None = None
    # Base64 encoded PNG pages, in page order.
    image_data: List[str] = Field(default_factory=list)
    part_index: int | None = None
    part_count: int | None = None

    @model_validator(mode="after")
    def _check_parts(self) -> "DocumentUnit":
        if (self.part_index is None) != (self.part_count is None):
            raise ValueError("part_index and part_count must be set together")
        if self.part_count is not None:
            if self.part_count < 1:
                raise ValueError("part_count must be at least 1")
            if not 0 <= self.part_index < self.part_count:  # type: ignore[operator]
                raise ValueError("part_index must be within [0, part_count)")
        return self

    @property
    def is_image(self) -> bool:
        return not self.text_content and bool(self.image_data)

    @property
    def has_content(self) -> bool:
        return bool(self.text_content) or bool(self.image_data)

    @property
    def is_part(self) -> bool:
        return self.part_count is not None and self.part_count > 1

    @property
    def source_id(self) -> str:
        return self.original_id or self.id

    @property
    def source_name(self) -> str:
        return self.original_name or self.name

    def make_part(
        self,
        index: int,
        count: int,
        *,
        text_content: str | None = None,
        image_data: list[str] | None = None,
    ) -> "DocumentUnit":
        """Return part ``index`` of ``count`` carrying this document's provenance."""
        return DocumentUnit(
            id=f"{self.source_id}_part{index + 1}",
            name=f"{self.source_name} (part {index + 1})",
            original_id=self.source_id,
            original_name=self.source_name,
            text_content=text_content,
            image_data=list(image_data or []),
            part_index=index,
            part_count=count,
        )
