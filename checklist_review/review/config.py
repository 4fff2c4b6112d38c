"""Configuration for the review engine.

``EngineConfiguration`` holds the tuning values the engine treats as opaque
(retry caps, overlaps, worker counts). ``ReviewSettings`` holds what the caller
chooses per review: instructions, comment format, evaluation criteria, the
chunk size and the review type.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models import EvaluationCriterion, EvaluationLabels, ReviewType


def _read_int_env(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value >= minimum else default


def _read_bool_env(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class EngineConfiguration:
    """Tuning values for one engine instance."""

    # Retry caps
    max_split_retry_count: int = 5
    max_resolution_attempts: int = 3

    # Overlap budgets used when a document is split
    text_overlap: int = 300
    image_overlap: int = 3

    # Worker counts
    chunk_concurrency: int = 2
    document_concurrency: int = 5

    # Checklist classification
    max_categories: int = 10

    # Logging
    log_raw_responses: bool = False
    log_response_dir: Path = Path("data/review_responses")

    @classmethod
    def from_env(cls, *, dotenv_path: str | Path | None = None) -> "EngineConfiguration":
        """Build a configuration from ``REVIEW_*`` environment variables.

        Missing or malformed values fall back to the defaults.
        """
        if dotenv_path is not None:
            load_dotenv(dotenv_path=Path(dotenv_path))
        else:
            load_dotenv()

        defaults = cls()
        return cls(
            max_split_retry_count=_read_int_env(
                "REVIEW_MAX_SPLIT_RETRY_COUNT", defaults.max_split_retry_count
            ),
            max_resolution_attempts=_read_int_env(
                "REVIEW_MAX_RESOLUTION_ATTEMPTS",
                defaults.max_resolution_attempts,
                minimum=1,
            ),
            text_overlap=_read_int_env("REVIEW_TEXT_OVERLAP", defaults.text_overlap),
            image_overlap=_read_int_env(
                "REVIEW_IMAGE_OVERLAP", defaults.image_overlap
            ),
            chunk_concurrency=_read_int_env(
                "REVIEW_CHUNK_CONCURRENCY", defaults.chunk_concurrency, minimum=1
            ),
            document_concurrency=_read_int_env(
                "REVIEW_DOCUMENT_CONCURRENCY",
                defaults.document_concurrency,
                minimum=1,
            ),
            max_categories=_read_int_env(
                "REVIEW_MAX_CATEGORIES", defaults.max_categories, minimum=1
            ),
            log_raw_responses=_read_bool_env("REVIEW_LOG_RESPONSES"),
            log_response_dir=Path(
                os.environ.get("REVIEW_LOG_DIR", str(defaults.log_response_dir))
            ),
        )


class ReviewSettings(BaseModel):
    """Caller-supplied settings for one review run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    additional_instructions: str | None = None
    comment_format: str | None = None
    evaluation_criteria: List[EvaluationCriterion] | None = None
    concurrent_review_items: int | None = Field(default=None, ge=1)
    review_type: ReviewType = ReviewType.SMALL

    @field_validator("additional_instructions", "comment_format", mode="before")
    def _blank_to_none(cls, value: object) -> object:  # type: ignore[override]
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def evaluation_labels(self) -> EvaluationLabels:
        return EvaluationLabels.from_criteria(self.evaluation_criteria)
