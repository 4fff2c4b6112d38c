"""Chunking, retry and consolidation engine for checklist reviews."""

from .classifier import ChecklistClassifier, split_checklist_equally
from .config import EngineConfiguration, ReviewSettings
from .consolidator import ResultConsolidator, group_comments_by_document
from .engine import ReviewEngine, ReviewReport
from .errors import (
    AIResponseError,
    ContentFiltered,
    ContentLengthExceeded,
    ReviewCancelled,
    ReviewError,
    normalize_error_message,
)
from .executor import ChunkConcurrencyExecutor, ExecutionReport, UnitResult
from .partition import (
    DEFAULT_IMAGE_OVERLAP,
    DEFAULT_TEXT_OVERLAP,
    Range,
    make_ranges_by_count,
    split_images_by_count,
    split_text_by_count,
)
from .persistence import ResultStore
from .resolution import (
    MAX_ATTEMPTS_MESSAGE,
    ResolutionResult,
    ResolutionRetryLoop,
    resolve,
)
from .short_ids import ShortIdCodec
from .split_retry import DocumentReviewOutcome, RetryState, SplitRetryController

__all__ = [
    "AIResponseError",
    "ChecklistClassifier",
    "ChunkConcurrencyExecutor",
    "ContentFiltered",
    "ContentLengthExceeded",
    "DEFAULT_IMAGE_OVERLAP",
    "DEFAULT_TEXT_OVERLAP",
    "DocumentReviewOutcome",
    "EngineConfiguration",
    "ExecutionReport",
    "MAX_ATTEMPTS_MESSAGE",
    "Range",
    "ResolutionResult",
    "ResolutionRetryLoop",
    "ResultConsolidator",
    "ResultStore",
    "RetryState",
    "ReviewCancelled",
    "ReviewEngine",
    "ReviewError",
    "ReviewReport",
    "ReviewSettings",
    "ShortIdCodec",
    "SplitRetryController",
    "UnitResult",
    "group_comments_by_document",
    "make_ranges_by_count",
    "normalize_error_message",
    "resolve",
    "split_checklist_equally",
    "split_images_by_count",
    "split_text_by_count",
]
