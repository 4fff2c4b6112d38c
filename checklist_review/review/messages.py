"""User-visible messages attached to error outcomes and failed reports."""

from __future__ import annotations

MAX_ATTEMPTS_MESSAGE = (
    "Maximum retry attempts reached: the AI did not return a result for this item."
)
SPLIT_RETRY_EXCEEDED_MESSAGE = (
    "The document is still too long for the AI after the maximum number of splits."
)
CONTENT_TOO_LONG_MESSAGE = "The document is too long for the AI to process."
AI_API_ERROR_MESSAGE = "An error occurred while calling the AI API."
ALL_FAILED_MESSAGE = "Every checklist item failed to be reviewed."
NO_DOCUMENT_DATA_MESSAGE = "The document has no text or images to review."
NO_FILES_MESSAGE = "No documents were provided for review."
NO_CHECKLIST_ITEMS_MESSAGE = "No checklist items were provided for review."
CANCELLED_MESSAGE = "The review was cancelled."
