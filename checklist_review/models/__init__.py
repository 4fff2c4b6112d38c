"""Public model exports for the project.

Keep the :mod:`checklist_review` namespace clean: tests and other modules should
import ``from checklist_review.models import ChecklistItem, PerItemOutcome``.
"""

from __future__ import annotations

from .checklist import ChecklistItem, EvaluationCriterion, EvaluationLabels
from .document import DocumentUnit
from .enums import ReviewStatus, ReviewType, TerminationReason
from .outcome import DocumentComment, DocumentReviewBundle, PerItemOutcome

__all__ = [
    "ChecklistItem",
    "DocumentComment",
    "DocumentReviewBundle",
    "DocumentUnit",
    "EvaluationCriterion",
    "EvaluationLabels",
    "PerItemOutcome",
    "ReviewStatus",
    "ReviewType",
    "TerminationReason",
]
