"""Command line entry point: review documents against a checklist CSV."""

from __future__ import annotations

import argparse
import base64
import csv
import logging
import sys
from pathlib import Path
from typing import Sequence

from dotenv import load_dotenv

from .llm.provider_registry import available_providers, create_provider_chain
from .llm.service import LLMService
from .models import (
    ChecklistItem,
    DocumentUnit,
    EvaluationCriterion,
    PerItemOutcome,
    ReviewStatus,
    ReviewType,
)
from .review.config import EngineConfiguration, ReviewSettings
from .review.engine import ReviewEngine, ReviewReport
from .review.persistence import ResultStore

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = {".txt", ".md", ".markdown"}
IMAGE_SUFFIXES = {".png"}


def load_checklist(path: Path) -> list[ChecklistItem]:
    """Read checklist items from a CSV file.

    Uses the ``id`` and ``content`` columns when present; otherwise the first
    column is the content and ids are row numbers.
    """
    with open(path, "r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        fieldnames = [name.strip().lower() for name in reader.fieldnames or []]
        rows = list(reader)

    if not fieldnames:
        return []

    items: list[ChecklistItem] = []
    for index, row in enumerate(rows, start=1):
        normalised = {k.strip().lower(): (v or "") for k, v in row.items() if k}
        if "content" in normalised:
            content = normalised["content"]
            item_id = normalised.get("id") or str(index)
        else:
            content = normalised.get(fieldnames[0], "")
            item_id = str(index)
        if not content.strip():
            continue
        items.append(ChecklistItem(id=item_id, content=content))
    return items


def _iter_document_files(paths: Sequence[Path]) -> list[Path]:
    files: list[Path] = []
    for path in paths:
        if path.is_dir():
            files.extend(
                sorted(
                    p
                    for p in path.iterdir()
                    if p.is_file() and p.suffix.lower() in TEXT_SUFFIXES | IMAGE_SUFFIXES
                )
            )
        else:
            files.append(path)
    return files


def load_documents(paths: Sequence[Path]) -> list[DocumentUnit]:
    """Load text files as text documents and PNG files as one-page image documents."""
    documents: list[DocumentUnit] = []
    for index, path in enumerate(_iter_document_files(paths), start=1):
        suffix = path.suffix.lower()
        if suffix in IMAGE_SUFFIXES:
            encoded = base64.b64encode(path.read_bytes()).decode("ascii")
            documents.append(
                DocumentUnit(id=f"doc{index}", name=path.name, image_data=[encoded])
            )
        elif suffix in TEXT_SUFFIXES:
            documents.append(
                DocumentUnit(
                    id=f"doc{index}",
                    name=path.name,
                    text_content=path.read_text(encoding="utf-8"),
                )
            )
        else:
            logger.warning("Skipping unsupported file %s", path)
    return documents


def _parse_criteria(values: Sequence[str] | None) -> list[EvaluationCriterion] | None:
    if not values:
        return None
    criteria: list[EvaluationCriterion] = []
    for value in values:
        label, _, description = value.partition("=")
        if not label.strip():
            raise argparse.ArgumentTypeError(f"Invalid evaluation label: {value!r}")
        criteria.append(EvaluationCriterion(label=label, description=description))
    return criteria


def _report_from_rows(rows: list[dict[str, str]]) -> ReviewReport:
    outcomes: list[PerItemOutcome] = []
    for row in rows:
        item_id = row.get("check_list_item_id") or None
        content = row.get("check_list_item_content", "")
        if row.get("error_message"):
            outcomes.append(
                PerItemOutcome.failure(
                    item_id=item_id, content=content, message=row["error_message"]
                )
            )
        else:
            outcomes.append(
                PerItemOutcome.success(
                    item_id=item_id,
                    content=content,
                    evaluation=row.get("evaluation", ""),
                    comment=row.get("comment", ""),
                )
            )
    status = (
        ReviewStatus.SUCCESS
        if any(not o.is_error for o in outcomes)
        else ReviewStatus.FAILED
    )
    return ReviewReport(status, outcomes)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Review documents against a checklist using an LLM.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--checklist",
        type=Path,
        required=True,
        help="CSV file with checklist items (columns: id, content)",
    )
    parser.add_argument(
        "--documents",
        type=Path,
        nargs="+",
        required=True,
        help="Text/Markdown/PNG files or directories to review",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("data/review_results.csv"),
        help="CSV file the outcomes are written to (default: data/review_results.csv)",
    )
    parser.add_argument(
        "--review-type",
        default=ReviewType.SMALL.value,
        choices=ReviewType.all_values(),
        help="small: grade all documents in one prompt; large: review each document then consolidate",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="Maximum checklist items reviewed together (default: all at once)",
    )
    parser.add_argument(
        "--instructions",
        default=None,
        help="Additional instructions for the reviewer",
    )
    parser.add_argument(
        "--comment-format",
        default=None,
        help="Format the reviewer should use for comments",
    )
    parser.add_argument(
        "--evaluation",
        action="append",
        metavar="LABEL=DESCRIPTION",
        help="Evaluation label (repeatable; default: A, B, C, -)",
    )
    parser.add_argument(
        "--retry-failed",
        action="store_true",
        help="Re-review only the items stored with an error in --output",
    )
    parser.add_argument(
        "--provider",
        choices=available_providers(),
        help="Primary LLM provider to use (overrides LLM_PRIMARY env var)",
    )
    parser.add_argument(
        "--dotenv",
        type=Path,
        default=None,
        help="Path to a .env file",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity (default: INFO).",
    )
    return parser


def _print_summary(report: ReviewReport, output: Path) -> None:
    print(f"\n{'=' * 60}")
    print("Summary:")
    print(f"  Status: {report.status.value}")
    print(f"  Chunks: {report.chunk_count} ({report.failed_chunks} failed)")
    print(f"  Evaluated: {len(report.succeeded)}")
    print(f"  Errors: {len(report.errors)}")
    if report.error_message:
        print(f"  Message: {report.error_message}")
    print(f"  Results: {output}")
    print(f"{'=' * 60}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level))

    if args.dotenv is not None:
        load_dotenv(dotenv_path=args.dotenv)
    else:
        load_dotenv()

    try:
        criteria = _parse_criteria(args.evaluation)
        settings = ReviewSettings(
            additional_instructions=args.instructions,
            comment_format=args.comment_format,
            evaluation_criteria=criteria,
            concurrent_review_items=args.chunk_size,
            review_type=ReviewType(args.review_type),
        )
    except (argparse.ArgumentTypeError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    items = load_checklist(args.checklist)
    documents = load_documents(args.documents)
    print(f"Loaded {len(items)} checklist item(s) and {len(documents)} document(s)")

    store = ResultStore(args.output)
    try:
        providers = create_provider_chain(
            primary=args.provider, dotenv_path=args.dotenv, filter_json=True
        )
        engine = ReviewEngine(
            LLMService(providers),
            config=EngineConfiguration.from_env(dotenv_path=args.dotenv),
        )
        options = dict(
            settings=settings,
            on_resolved=store.save,
            on_individual_results_saved=store.save_comments,
        )
        if args.retry_failed:
            previous = _report_from_rows(store.load())
            report = engine.retry_items(documents, items, previous, **options)
        else:
            store.clear()
            report = engine.run(documents, items, **options)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _print_summary(report, store.output_path)
    return 0 if report.status is ReviewStatus.SUCCESS else 1


if __name__ == "__main__":
    raise SystemExit(main())
