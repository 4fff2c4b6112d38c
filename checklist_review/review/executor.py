"""Bounded fan-out over independent units of work.

Units run on a ``ThreadPoolExecutor``; a unit that raises is recorded as a
failed ``UnitResult`` and never cancels its siblings. Results are joined once
every unit has finished and are returned in submission order.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, Sequence, TypeVar

from ..models import PerItemOutcome

logger = logging.getLogger(__name__)

U = TypeVar("U")
T = TypeVar("T")


@dataclass
class UnitResult(Generic[T]):
    index: int
    label: str
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ExecutionReport(Generic[T]):
    results: list[UnitResult[T]] = field(default_factory=list)

    @property
    def succeeded(self) -> list[UnitResult[T]]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> list[UnitResult[T]]:
        return [r for r in self.results if not r.ok]

    @property
    def all_failed(self) -> bool:
        return bool(self.results) and not self.succeeded


class ChunkConcurrencyExecutor:
    """Run units with at most ``max_workers`` in flight."""

    def __init__(self, max_workers: int, *, label: str = "unit") -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self.label = label

    def run(
        self,
        units: Sequence[U],
        worker: Callable[[U], T],
        *,
        describe: Callable[[int, U], str] | None = None,
    ) -> ExecutionReport[T]:
        labels = [
            describe(i, unit) if describe else f"{self.label} {i + 1}"
            for i, unit in enumerate(units)
        ]
        if not units:
            return ExecutionReport()

        results: list[UnitResult[T] | None] = [None] * len(units)
        workers = min(self.max_workers, len(units))

        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_map = {
                executor.submit(worker, unit): index for index, unit in enumerate(units)
            }
            for future in as_completed(future_map):
                index = future_map[future]
                try:
                    value = future.result()
                except Exception as exc:
                    logger.warning("%s failed: %s", labels[index], exc, exc_info=True)
                    results[index] = UnitResult(index, labels[index], error=exc)
                else:
                    results[index] = UnitResult(index, labels[index], value=value)

        return ExecutionReport([r for r in results if r is not None])


class ResultAccumulator:
    """Thread-safe collector of outcomes keyed on checklist item.

    Later outcomes for the same item replace earlier ones only when the earlier
    one was an error.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._outcomes: dict[str, PerItemOutcome] = {}

    def _key(self, outcome: PerItemOutcome) -> str:
        return outcome.check_list_item_id or outcome.check_list_item_content

    def extend(self, outcomes: Iterable[PerItemOutcome]) -> None:
        with self._lock:
            for outcome in outcomes:
                key = self._key(outcome)
                existing = self._outcomes.get(key)
                if existing is None or (existing.is_error and not outcome.is_error):
                    self._outcomes[key] = outcome

    def __contains__(self, item_id: str) -> bool:
        with self._lock:
            return item_id in self._outcomes

    def snapshot(self) -> dict[str, PerItemOutcome]:
        with self._lock:
            return dict(self._outcomes)
