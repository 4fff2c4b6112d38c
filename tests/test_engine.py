from __future__ import annotations

import sys
import threading
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from fakes import ScriptedLLM, comment_all, grade_all, make_items

from checklist_review.llm.provider import FinishReason, LLMResult
from checklist_review.models import (
    DocumentUnit,
    EvaluationCriterion,
    PerItemOutcome,
    ReviewStatus,
    ReviewType,
)
from checklist_review.review import messages
from checklist_review.review.config import EngineConfiguration, ReviewSettings
from checklist_review.review.engine import ReviewEngine, ReviewReport
from checklist_review.review.small_review import SmallDocumentReviewer

DOCUMENTS = [
    DocumentUnit(id="d1", name="Policy.md", text_content="The policy text."),
    DocumentUnit(id="d2", name="Guide.md", text_content="The guide text. " * 50),
]


class _HookRecorder:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.calls: list[tuple[list, str]] = []

    def __call__(self, outcomes, context_id: str) -> None:
        with self._lock:
            self.calls.append((list(outcomes), context_id))

    @property
    def saved_ids(self) -> list[str]:
        return sorted(o.check_list_item_id for outcomes, _ in self.calls for o in outcomes)


def test_small_review_grades_every_item() -> None:
    items = make_items(3)
    llm = ScriptedLLM(grade_all)
    hook = _HookRecorder()

    report = ReviewEngine(llm).run(DOCUMENTS, items, on_resolved=hook)

    assert report.status is ReviewStatus.SUCCESS
    assert [o.check_list_item_id for o in report.outcomes] == ["item-1", "item-2", "item-3"]
    assert all(o.evaluation == "A" for o in report.outcomes)
    assert len(llm.calls) == 1
    assert "### Policy.md" in llm.calls[0].user_prompt
    assert hook.saved_ids == ["item-1", "item-2", "item-3"]
    assert {context for _, context in hook.calls} == {"chunk-1"}


def test_small_review_fatal_error_marks_unresolved_items() -> None:
    def handler(call):
        if len(llm.calls) == 1:
            reply = grade_all(call)
            reply["results"] = reply["results"][:1]
            return reply
        return LLMResult(finish_reason=FinishReason.CONTENT_FILTER)

    llm = ScriptedLLM(handler)

    report = ReviewEngine(llm).run(DOCUMENTS, make_items(3))

    assert report.status is ReviewStatus.SUCCESS
    first, *rest = report.outcomes
    assert first.evaluation == "A"
    assert [o.error_message for o in rest] == [FinishReason.CONTENT_FILTER.describe()] * 2


def test_all_errors_fail_the_report() -> None:
    llm = ScriptedLLM(lambda call: LLMResult(finish_reason=FinishReason.ERROR))

    report = ReviewEngine(llm).run(DOCUMENTS, make_items(2))

    assert report.status is ReviewStatus.FAILED
    assert report.error_message == messages.ALL_FAILED_MESSAGE
    assert len(report.errors) == 2
    assert report.failed_chunks == report.chunk_count


def test_one_failing_chunk_keeps_partial_credit(monkeypatch: pytest.MonkeyPatch) -> None:
    original_review = SmallDocumentReviewer.review

    def review(self, documents, items, **kwargs):
        if any(item.id == "item-2" for item in items):
            raise RuntimeError("chunk exploded")
        return original_review(self, documents, items, **kwargs)

    monkeypatch.setattr(SmallDocumentReviewer, "review", review)
    hook = _HookRecorder()

    report = ReviewEngine(ScriptedLLM(grade_all)).run(
        DOCUMENTS,
        make_items(3),
        settings=ReviewSettings(concurrent_review_items=1),
        on_resolved=hook,
    )

    assert report.status is ReviewStatus.SUCCESS
    assert report.chunk_count == 3
    assert report.failed_chunks == 1
    assert [o.is_error for o in report.outcomes] == [False, True, False]
    assert report.outcome_for("item-2").error_message == "chunk exploded"
    assert ("chunk-2" in {context for _, context in hook.calls})


def test_chunk_with_only_error_outcomes_counts_as_failed() -> None:
    def handler(call):
        if "Requirement 2" in call.checklist.values():
            return LLMResult(finish_reason=FinishReason.CONTENT_FILTER)
        return grade_all(call)

    report = ReviewEngine(ScriptedLLM(handler)).run(
        DOCUMENTS, make_items(3), settings=ReviewSettings(concurrent_review_items=1)
    )

    assert report.status is ReviewStatus.SUCCESS
    assert report.chunk_count == 3
    assert report.failed_chunks == 1
    assert [o.is_error for o in report.outcomes] == [False, True, False]


def test_images_are_sent_with_the_prompt() -> None:
    llm = ScriptedLLM(grade_all)
    scan = DocumentUnit(id="s", name="scan.png", image_data=["aW1n"])

    ReviewEngine(llm).run([scan], make_items(1))

    assert llm.calls[0].images == ["aW1n"]
    assert "1 page image(s)" in llm.calls[0].user_prompt


def test_custom_evaluation_criteria_flow_into_prompts() -> None:
    llm = ScriptedLLM(lambda call: grade_all(call, evaluation="OK"))
    settings = ReviewSettings(
        evaluation_criteria=[
            EvaluationCriterion(label="OK", description="Meets it"),
            EvaluationCriterion(label="NG", description="Misses it"),
        ],
        additional_instructions="Be strict.",
    )

    report = ReviewEngine(llm).run(DOCUMENTS, make_items(1), settings=settings)

    assert report.outcomes[0].evaluation == "OK"
    assert "`NG`: Misses it" in llm.calls[0].system_prompt
    assert "Be strict." in llm.calls[0].system_prompt


def _large_handler(call):
    if call.kind == "document":
        # The long guide only fits once it has been split.
        if call.document_name == "Guide.md":
            return LLMResult(finish_reason=FinishReason.LENGTH)
        return comment_all(call)
    if call.kind == "consolidate":
        return grade_all(call, evaluation="B")
    raise AssertionError(f"unexpected call {call.kind}")


def test_large_review_splits_and_consolidates() -> None:
    llm = ScriptedLLM(_large_handler)
    individual = _HookRecorder()
    hook = _HookRecorder()

    report = ReviewEngine(llm, config=EngineConfiguration(text_overlap=10)).run(
        DOCUMENTS,
        make_items(2),
        settings=ReviewSettings(review_type=ReviewType.LARGE),
        on_resolved=hook,
        on_individual_results_saved=individual,
    )

    assert report.status is ReviewStatus.SUCCESS
    assert [o.evaluation for o in report.outcomes] == ["B", "B"]
    names = sorted(c.document_name for c in llm.calls_of("document"))
    assert names == ["Guide.md", "Guide.md (part 1)", "Guide.md (part 2)", "Policy.md"]
    consolidate = llm.calls_of("consolidate")[0].user_prompt
    assert "Guide.md (part 2) (part of Guide.md)" in consolidate
    comments = [c for batch, _ in individual.calls for c in batch]
    assert {c.document_id for c in comments} == {"d1", "d2_part1", "d2_part2"}
    assert hook.saved_ids == ["item-1", "item-2"]


def test_large_review_document_failure_marks_every_item() -> None:
    def handler(call):
        if call.kind == "document" and call.document_name == "Policy.md":
            return LLMResult(finish_reason=FinishReason.CONTENT_FILTER)
        if call.kind == "document":
            return comment_all(call)
        raise AssertionError("consolidation must not run")

    hook = _HookRecorder()

    report = ReviewEngine(ScriptedLLM(handler)).run(
        DOCUMENTS,
        make_items(2),
        settings=ReviewSettings(review_type=ReviewType.LARGE),
        on_resolved=hook,
    )

    assert report.status is ReviewStatus.FAILED
    assert [o.error_message for o in report.outcomes] == [
        FinishReason.CONTENT_FILTER.describe()
    ] * 2
    assert hook.saved_ids == ["item-1", "item-2"]


def test_large_review_fatal_consolidation_error_keeps_resolved_items() -> None:
    def handler(call):
        if call.kind == "document":
            return comment_all(call)
        if len(llm.calls_of("consolidate")) == 1:
            reply = grade_all(call)
            reply["results"] = reply["results"][:1]
            return reply
        return LLMResult(finish_reason=FinishReason.CONTENT_FILTER)

    llm = ScriptedLLM(handler)
    hook = _HookRecorder()

    report = ReviewEngine(llm).run(
        DOCUMENTS[:1],
        make_items(3),
        settings=ReviewSettings(review_type=ReviewType.LARGE),
        on_resolved=hook,
    )

    assert report.status is ReviewStatus.SUCCESS
    assert report.outcome_for("item-1").evaluation == "A"
    assert [o.error_message for o in report.outcomes[1:]] == [
        FinishReason.CONTENT_FILTER.describe()
    ] * 2
    assert hook.saved_ids == ["item-1", "item-2", "item-3"]
    saved_first = [
        o for outcomes, _ in hook.calls for o in outcomes if o.check_list_item_id == "item-1"
    ]
    assert [o.is_error for o in saved_first] == [False]


def test_missing_inputs_fail_with_specific_messages() -> None:
    engine = ReviewEngine(ScriptedLLM(grade_all))

    no_files = engine.run([], make_items(1))
    no_items = engine.run(DOCUMENTS, [])

    assert no_files.status is ReviewStatus.FAILED
    assert no_files.error_message == messages.NO_FILES_MESSAGE
    assert no_items.error_message == messages.NO_CHECKLIST_ITEMS_MESSAGE


def test_documents_without_content_fail_every_item() -> None:
    empty = DocumentUnit(id="e", name="empty.md", text_content="")

    report = ReviewEngine(ScriptedLLM(grade_all)).run([empty], make_items(2))

    assert report.status is ReviewStatus.FAILED
    assert {o.error_message for o in report.outcomes} == {messages.NO_DOCUMENT_DATA_MESSAGE}


def test_cancelled_run_reports_every_item() -> None:
    cancel = threading.Event()
    cancel.set()
    llm = ScriptedLLM(grade_all)

    report = ReviewEngine(llm).run(DOCUMENTS, make_items(2), cancel_event=cancel)

    assert report.cancelled
    assert llm.calls == []
    assert {o.error_message for o in report.outcomes} == {messages.CANCELLED_MESSAGE}


def test_retry_items_reviews_only_failed_items() -> None:
    items = make_items(3)
    previous = ReviewReport(
        ReviewStatus.SUCCESS,
        [
            PerItemOutcome.success(item_id="item-1", content="Requirement 1", evaluation="A", comment="x"),
            PerItemOutcome.failure(item_id="item-2", content="Requirement 2", message="boom"),
            PerItemOutcome.success(item_id="item-3", content="Requirement 3", evaluation="C", comment="y"),
        ],
    )
    llm = ScriptedLLM(lambda call: grade_all(call, evaluation="B"))

    report = ReviewEngine(llm).retry_items(DOCUMENTS, items, previous)

    assert list(llm.calls[0].checklist.values()) == ["Requirement 2"]
    assert [o.evaluation for o in report.outcomes] == ["A", "B", "C"]
    assert report.status is ReviewStatus.SUCCESS


def test_duplicate_item_ids_are_reviewed_once() -> None:
    items = make_items(2) + make_items(1)
    llm = ScriptedLLM(grade_all)

    report = ReviewEngine(llm).run(DOCUMENTS, items)

    assert [o.check_list_item_id for o in report.outcomes] == ["item-1", "item-2"]
    assert len(llm.calls[0].checklist) == 2
