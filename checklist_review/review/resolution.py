"""Ask-and-retry loop shared by every step that talks to the AI.

Each attempt encodes the still-unresolved items as short IDs, asks the AI,
keeps whatever came back and retries with only the remainder. Items still
unresolved when the attempts run out become explicit error outcomes, so a
request for N items always yields N outcomes.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, Sequence, TypeVar

from ..llm.provider import LLMQuotaError
from ..models import ChecklistItem
from .errors import ReviewCancelled, ReviewError, check_cancelled, normalize_error_message
from .messages import MAX_ATTEMPTS_MESSAGE
from .short_ids import ShortIdCodec

logger = logging.getLogger(__name__)

O = TypeVar("O")

AskFn = Callable[[ShortIdCodec[ChecklistItem]], Iterable[tuple[object, O]]]
ErrorFactory = Callable[[ChecklistItem, str], O]
ResolvedHook = Callable[[list[O]], None]

DEFAULT_MAX_ATTEMPTS = 3


@dataclass
class ResolutionResult(Generic[O]):
    """What a resolution loop produced.

    Attributes:
        resolved: Outcomes the AI returned, keyed by checklist item id
        unresolved: Items the AI never answered, in request order
        errors: Error outcomes built for ``unresolved`` (empty without an error factory)
        attempts: Number of AI calls made
        last_error: Message of the most recent transient failure, if any
    """

    resolved: dict[str, O] = field(default_factory=dict)
    unresolved: list[ChecklistItem] = field(default_factory=list)
    errors: dict[str, O] = field(default_factory=dict)
    attempts: int = 0
    last_error: str | None = None

    def outcomes_for(self, items: Sequence[ChecklistItem]) -> list[O]:
        """Return one outcome per item in ``items`` order, skipping unknown items."""
        ordered: list[O] = []
        for item in items:
            if item.id in self.resolved:
                ordered.append(self.resolved[item.id])
            elif item.id in self.errors:
                ordered.append(self.errors[item.id])
        return ordered


def notify(hook: Callable[..., None] | None, *args: object, label: str = "review") -> None:
    """Call a save hook, logging and swallowing any failure."""
    if hook is None:
        return
    try:
        hook(*args)
    except Exception:
        logger.exception("%s: save hook failed; continuing", label)


class ResolutionRetryLoop(Generic[O]):
    """Resolve checklist items through repeated AI calls.

    ``ask`` receives the codec for the current working set and returns
    ``(short_id, outcome)`` pairs. Unknown short IDs and items already resolved
    are ignored. ``ReviewError`` and ``LLMQuotaError`` from ``ask`` abort the
    loop; any other exception is logged and the attempt is retried.
    """

    def __init__(
        self,
        ask: AskFn[O],
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        on_resolved: ResolvedHook[O] | None = None,
        error_factory: ErrorFactory[O] | None = None,
        cancel_event: threading.Event | None = None,
        label: str = "review",
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._ask = ask
        self._max_attempts = max_attempts
        self._on_resolved = on_resolved
        self._error_factory = error_factory
        self._cancel_event = cancel_event
        self._label = label
        self._partial: ResolutionResult[O] | None = None

    def run(self, items: Sequence[ChecklistItem]) -> ResolutionResult[O]:
        result: ResolutionResult[O] = ResolutionResult()
        self._partial = result
        pending = list(items)

        for attempt in range(1, self._max_attempts + 1):
            if not pending:
                break
            check_cancelled(self._cancel_event)

            if attempt > 1:
                logger.info(
                    "%s: retry %d/%d for %d unresolved item(s)",
                    self._label,
                    attempt - 1,
                    self._max_attempts - 1,
                    len(pending),
                )

            codec = ShortIdCodec(pending)
            result.attempts = attempt
            try:
                replies = list(self._ask(codec))
            except (ReviewError, LLMQuotaError):
                raise
            except Exception as exc:
                result.last_error = normalize_error_message(exc)
                logger.warning(
                    "%s: attempt %d failed: %s", self._label, attempt, result.last_error
                )
                continue

            new_outcomes: dict[str, O] = {}
            for short_id, outcome in replies:
                item = codec.decode(short_id)
                if item is None:
                    logger.debug("%s: ignoring unknown short id %r", self._label, short_id)
                    continue
                if item.id in result.resolved or item.id in new_outcomes:
                    continue
                new_outcomes[item.id] = outcome

            result.resolved.update(new_outcomes)
            pending = [item for item in pending if item.id not in result.resolved]
            logger.info(
                "%s: attempt %d resolved %d item(s), %d remaining",
                self._label,
                attempt,
                len(new_outcomes),
                len(pending),
            )
            if new_outcomes:
                notify(self._on_resolved, list(new_outcomes.values()), label=self._label)

        result.unresolved = pending
        if pending:
            logger.warning(
                "%s: %d item(s) unresolved after %d attempt(s)",
                self._label,
                len(pending),
                result.attempts,
            )
            if self._error_factory is not None:
                result.errors = {
                    item.id: self._error_factory(item, MAX_ATTEMPTS_MESSAGE)
                    for item in pending
                }
                notify(self._on_resolved, list(result.errors.values()), label=self._label)
        return result

    def run_or_fail(self, items: Sequence[ChecklistItem]) -> list[O]:
        """Return one outcome per item, turning a fatal AI error into error outcomes.

        Outcomes resolved before the failure are kept; only the items still
        unresolved get the error message. ``ReviewCancelled`` propagates.
        """
        if self._error_factory is None:
            raise ValueError("run_or_fail requires an error_factory")
        try:
            return self.run(items).outcomes_for(items)
        except ReviewCancelled:
            raise
        except (ReviewError, LLMQuotaError) as exc:
            message = normalize_error_message(exc)
            logger.warning("%s failed: %s", self._label, message)
            resolved = self._partial.resolved if self._partial is not None else {}
            errors = {
                item.id: self._error_factory(item, message)
                for item in items
                if item.id not in resolved
            }
            if errors:
                notify(self._on_resolved, list(errors.values()), label=self._label)
            return [
                resolved[item.id] if item.id in resolved else errors[item.id]
                for item in items
            ]


def resolve(
    items: Sequence[ChecklistItem],
    ask: AskFn[O],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    **options,
) -> ResolutionResult[O]:
    """Run a :class:`ResolutionRetryLoop` once over ``items``."""
    return ResolutionRetryLoop(ask, max_attempts=max_attempts, **options).run(items)
