"""Overlapping range partitioning for splitting documents.

The same arithmetic covers character offsets (text) and element indices (page
images). Ranges are half-open ``[start, end)`` and always cover the whole input
without gaps.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, TypeVar

from ..models import DocumentUnit

DEFAULT_TEXT_OVERLAP = 300
DEFAULT_IMAGE_OVERLAP = 3

T = TypeVar("T")


@dataclass(frozen=True)
class Range:
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


def make_ranges_by_count(total: int, split_count: int, overlap: int = 0) -> list[Range]:
    """Return ``split_count`` overlapping ranges covering ``[0, total)``.

    Each range has a base width of ``ceil(total / split_count)`` and is widened
    by ``overlap`` on every inner edge. The first range starts at 0 and the last
    always ends at ``total``.

    Example:
        >>> make_ranges_by_count(10, 2, 2)
        [Range(start=0, end=7), Range(start=5, end=10)]
    """
    if total <= 0 or split_count <= 0:
        return [Range(0, 0)]
    if split_count == 1:
        return [Range(0, total)]

    overlap = max(0, overlap)
    base = math.ceil(total / split_count)
    ranges: list[Range] = []

    for index in range(split_count):
        start = index * base
        end = min((index + 1) * base, total)
        if index > 0:
            start = max(0, start - overlap)
        if index < split_count - 1:
            end = min(total, end + overlap)
        if ranges:
            # Never leave a gap behind the previous range.
            start = min(max(start, ranges[-1].end - overlap), total)
        start = min(start, total)
        ranges.append(Range(start, max(start, end)))

    last = ranges[-1]
    ranges[-1] = Range(last.start, total)
    return ranges


def split_text_by_count(
    text: str, split_count: int, overlap: int = DEFAULT_TEXT_OVERLAP
) -> list[str]:
    return [text[r.start : r.end] for r in make_ranges_by_count(len(text), split_count, overlap)]


def split_images_by_count(
    images: Sequence[T], split_count: int, overlap: int = DEFAULT_IMAGE_OVERLAP
) -> list[list[T]]:
    return [
        list(images[r.start : r.end])
        for r in make_ranges_by_count(len(images), split_count, overlap)
    ]


def split_document(
    document: DocumentUnit,
    split_count: int,
    *,
    text_overlap: int = DEFAULT_TEXT_OVERLAP,
    image_overlap: int = DEFAULT_IMAGE_OVERLAP,
) -> list[DocumentUnit]:
    """Split an original document into ``split_count`` parts.

    Image documents are split by page, text documents by character. A split
    count of one (or less) returns the document unchanged.
    """
    if split_count <= 1:
        return [document]

    if document.is_image:
        chunks = split_images_by_count(document.image_data, split_count, image_overlap)
        return [
            document.make_part(index, len(chunks), image_data=chunk)
            for index, chunk in enumerate(chunks)
        ]

    text = document.text_content or ""
    pieces = split_text_by_count(text, split_count, text_overlap)
    return [
        document.make_part(index, len(pieces), text_content=piece)
        for index, piece in enumerate(pieces)
    ]
