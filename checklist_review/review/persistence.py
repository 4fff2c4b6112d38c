"""CSV persistence for review outcomes.

``ResultStore.save`` matches the engine's save-hook signature, so a store can
be passed straight to ``ReviewEngine.run(on_resolved=store.save)``. Writes go
through a temp file and are merged with what is already on disk, keyed on the
checklist item.
"""

from __future__ import annotations

import csv
import logging
import threading
from pathlib import Path
from typing import Iterable

from ..models import DocumentComment, PerItemOutcome

logger = logging.getLogger(__name__)

OUTCOME_COLUMNS = [
    "check_list_item_id",
    "check_list_item_content",
    "evaluation",
    "comment",
    "error_message",
    "context_id",
]

COMMENT_COLUMNS = [
    "document_id",
    "document_name",
    "original_name",
    "checklist_id",
    "comment",
    "part_index",
    "part_count",
]


def _clean(value: object) -> str:
    if value is None:
        return ""
    return str(value)


class ResultStore:
    """Persist outcomes (and optional per-document comments) to CSV files."""

    def __init__(self, output_path: Path, *, comments_path: Path | None = None):
        self.output_path = Path(output_path)
        self.comments_path = (
            Path(comments_path)
            if comments_path is not None
            else self.output_path.with_name(f"{self.output_path.stem}.comments.csv")
        )
        self._lock = threading.Lock()

    def save(self, outcomes: Iterable[PerItemOutcome], context_id: str = "") -> Path:
        """Merge ``outcomes`` into the results file and return its path.

        A later error outcome never replaces a stored evaluation for the same item.
        """
        new_rows: dict[str, dict[str, str]] = {}
        for outcome in outcomes:
            row = {
                "check_list_item_id": _clean(outcome.check_list_item_id),
                "check_list_item_content": outcome.check_list_item_content,
                "evaluation": _clean(outcome.evaluation),
                "comment": _clean(outcome.comment),
                "error_message": _clean(outcome.error_message),
                "context_id": context_id,
            }
            new_rows[self._row_key(row)] = row

        with self._lock:
            existing = self._read_rows(self.output_path, OUTCOME_COLUMNS)
            merged = {self._row_key(row): row for row in existing}
            for key, row in new_rows.items():
                current = merged.get(key)
                if current and current["evaluation"] and row["error_message"]:
                    continue
                merged[key] = row
            self._write_rows(self.output_path, OUTCOME_COLUMNS, merged.values())
        return self.output_path

    def save_comments(
        self, comments: Iterable[DocumentComment], context_id: str = ""
    ) -> Path:
        """Append per-document comments to the comments file."""
        rows = [
            {column: _clean(getattr(comment, column)) for column in COMMENT_COLUMNS}
            for comment in comments
        ]
        with self._lock:
            existing = self._read_rows(self.comments_path, COMMENT_COLUMNS)
            self._write_rows(self.comments_path, COMMENT_COLUMNS, [*existing, *rows])
        return self.comments_path

    def load(self) -> list[dict[str, str]]:
        """Return stored outcome rows; an empty list if nothing was saved yet."""
        with self._lock:
            return self._read_rows(self.output_path, OUTCOME_COLUMNS)

    def clear(self) -> None:
        with self._lock:
            for path in (self.output_path, self.comments_path):
                if path.exists():
                    try:
                        path.unlink()
                    except OSError as e:
                        logger.warning("Could not delete %s: %s", path, e)

    @staticmethod
    def _row_key(row: dict[str, str]) -> str:
        return row.get("check_list_item_id") or row.get("check_list_item_content", "")

    @staticmethod
    def _read_rows(path: Path, columns: list[str]) -> list[dict[str, str]]:
        if not path.exists():
            return []
        try:
            with open(path, "r", encoding="utf-8", newline="") as f:
                return [
                    {column: row.get(column) or "" for column in columns}
                    for row in csv.DictReader(f)
                ]
        except OSError as e:
            logger.warning("Could not read existing CSV %s: %s", path, e)
            return []

    @staticmethod
    def _write_rows(
        path: Path, columns: list[str], rows: Iterable[dict[str, str]]
    ) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = path.with_suffix(".tmp")
        try:
            with open(temp_file, "w", encoding="utf-8", newline="") as f:
                writer = csv.DictWriter(f, fieldnames=columns)
                writer.writeheader()
                for row in rows:
                    writer.writerow(row)
            temp_file.replace(path)
        except OSError as e:
            logger.error("Error writing to %s: %s", path, e)
            if temp_file.exists():
                temp_file.unlink()
            raise
