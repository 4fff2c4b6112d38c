"""Enumerations shared by the review engine.

Values are plain strings so they serialise cleanly into JSON payloads and CSV
rows.
"""

from __future__ import annotations

from enum import Enum


class ReviewType(str, Enum):
    """How a chunk of checklist items is reviewed.

    Values:
        SMALL: every document fits in one prompt; evaluation is produced directly
        LARGE: documents are reviewed one by one (split on overflow) and the
            per-document comments are consolidated afterwards
    """

    SMALL = "small"
    LARGE = "large"

    @classmethod
    def all_values(cls) -> list[str]:
        return [m.value for m in cls]


class ReviewStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class TerminationReason(str, Enum):
    """Why a single document review round stopped.

    Only ``CONTENT_LENGTH`` keeps the split-retry loop alive.
    """

    SUCCESS = "success"
    ERROR = "error"
    CONTENT_LENGTH = "content_length"
