"""Checklist items and the evaluation label set used to grade them."""

from __future__ import annotations

from typing import Iterable, Sequence

from pydantic import BaseModel, ConfigDict, field_validator

DEFAULT_EVALUATION_LABELS: tuple[str, ...] = ("A", "B", "C", "-")

DEFAULT_EVALUATION_DESCRIPTIONS: dict[str, str] = {
    "A": "Fully satisfies the criterion",
    "B": "Partially satisfies the criterion",
    "C": "Does not satisfy the criterion",
    "-": "Not applicable or cannot be evaluated",
}


class ChecklistItem(BaseModel):
    """One evaluable requirement posed to the AI reviewer.

    Items are immutable once created and are referenced by value inside the
    engine; ``id`` is stable for the lifetime of the review.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str
    content: str

    @field_validator("id", mode="before")
    def _coerce_id(cls, value: object) -> str:  # type: ignore[override]
        text = str(value if value is not None else "").strip()
        if not text:
            raise ValueError("id must not be empty")
        return text

    @field_validator("content", mode="before")
    def _strip_content(cls, value: object) -> str:  # type: ignore[override]
        return str(value or "").strip()


class EvaluationCriterion(BaseModel):
    """A caller-configured evaluation label with its meaning."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    label: str
    description: str

    @field_validator("label", "description", mode="before")
    def _strip(cls, value: object) -> str:  # type: ignore[override]
        return str(value or "").strip()


class EvaluationLabels:
    """Closed set of evaluation labels, decided at runtime per review.

    The set is a runtime value rather than an enum because every review may
    configure its own criteria. Membership is exact after trimming whitespace.
    """

    def __init__(
        self,
        labels: Iterable[str] = DEFAULT_EVALUATION_LABELS,
        *,
        descriptions: dict[str, str] | None = None,
    ) -> None:
        ordered: list[str] = []
        for label in labels:
            text = str(label).strip()
            if text and text not in ordered:
                ordered.append(text)
        if not ordered:
            raise ValueError("EvaluationLabels requires at least one label")
        self._labels = tuple(ordered)
        self._descriptions = dict(descriptions or {})

    @classmethod
    def from_criteria(
        cls, criteria: Sequence[EvaluationCriterion] | None
    ) -> "EvaluationLabels":
        """Build the label set from criteria, or the default ``A/B/C/-`` set."""
        if not criteria:
            return cls(
                DEFAULT_EVALUATION_LABELS,
                descriptions=DEFAULT_EVALUATION_DESCRIPTIONS,
            )
        return cls(
            [c.label for c in criteria],
            descriptions={c.label: c.description for c in criteria},
        )

    @property
    def labels(self) -> tuple[str, ...]:
        return self._labels

    def describe(self, label: str) -> str:
        return self._descriptions.get(label, "")

    def normalise(self, value: object) -> str | None:
        """Return the matching label, or ``None`` when ``value`` is not in the set."""
        if value is None:
            return None
        text = str(value).strip()
        return text if text in self._labels else None

    def __contains__(self, value: object) -> bool:
        return self.normalise(value) is not None

    def __iter__(self):
        return iter(self._labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __repr__(self) -> str:
        return f"EvaluationLabels({list(self._labels)!r})"
