from __future__ import annotations

import sys
from pathlib import Path

import pytest
from pydantic import ValidationError

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from checklist_review.models import (
    ChecklistItem,
    DocumentReviewBundle,
    DocumentUnit,
    EvaluationLabels,
    PerItemOutcome,
    ReviewType,
)
from checklist_review.models.outcome import BundleComment


def test_checklist_item_coerces_and_strips() -> None:
    item = ChecklistItem(id=7, content="  Has a title  ")

    assert item.id == "7"
    assert item.content == "Has a title"


def test_checklist_item_requires_id() -> None:
    with pytest.raises(ValidationError):
        ChecklistItem(id="  ", content="x")


def test_outcome_success_and_failure() -> None:
    ok = PerItemOutcome.success(item_id="1", content="c", evaluation="A", comment="fine")
    err = PerItemOutcome.failure(item_id="1", content="c", message="boom")

    assert not ok.is_error
    assert err.is_error
    assert err.evaluation is None and err.comment is None


def test_outcome_fields_are_exclusive() -> None:
    with pytest.raises(ValidationError):
        PerItemOutcome(check_list_item_content="c", evaluation="A", comment="x", error_message="e")
    with pytest.raises(ValidationError):
        PerItemOutcome(check_list_item_content="c", evaluation="A")
    with pytest.raises(ValidationError):
        PerItemOutcome(check_list_item_content="c")


def test_document_part_fields_set_together() -> None:
    with pytest.raises(ValidationError):
        DocumentUnit(id="d", name="d", part_index=0)
    with pytest.raises(ValidationError):
        DocumentUnit(id="d", name="d", part_index=2, part_count=2)


def test_make_part_keeps_provenance() -> None:
    document = DocumentUnit(id="doc", name="Doc.md", text_content="abcdef")

    part = document.make_part(1, 2, text_content="def")
    nested = part.make_part(0, 2, text_content="d")

    assert part.id == "doc_part2"
    assert part.name == "Doc.md (part 2)"
    assert part.is_part
    assert nested.source_id == "doc"
    assert nested.source_name == "Doc.md"


def test_document_content_flags() -> None:
    assert not DocumentUnit(id="d", name="d").has_content
    image = DocumentUnit(id="d", name="d", image_data=["aGk="])
    assert image.is_image and image.has_content
    assert not DocumentUnit(id="d", name="d", text_content="x", image_data=["aGk="]).is_image


def test_evaluation_labels() -> None:
    labels = EvaluationLabels([" OK ", "NG", "OK"])

    assert labels.labels == ("OK", "NG")
    assert labels.normalise(" NG ") == "NG"
    assert labels.normalise("ng") is None
    assert "OK" in labels
    assert None not in labels
    with pytest.raises(ValueError):
        EvaluationLabels([" "])


def test_bundle_display_name() -> None:
    part = DocumentReviewBundle(
        document_id="d_part1",
        document_name="Doc (part 1)",
        original_name="Doc",
        review_results=[BundleComment(checklist_id="1", comment="x")],
    )
    whole = DocumentReviewBundle(document_id="d", document_name="Doc")

    assert part.is_split_part and part.display_original_name == "Doc"
    assert not whole.is_split_part


def test_review_type_values() -> None:
    assert ReviewType.all_values() == ["small", "large"]
    assert ReviewType("large") is ReviewType.LARGE
