"""Dense 1-based handles for the items of a single AI round-trip."""

from __future__ import annotations

from typing import Callable, Generic, Iterator, Sequence, TypeVar

T = TypeVar("T")


def _default_key(item: object) -> str:
    return str(getattr(item, "id"))


class ShortIdCodec(Generic[T]):
    """Map a working set to short IDs ``1..N`` and back.

    A codec describes exactly one attempt. Build a new one whenever the working
    set changes; short IDs from an older codec mean nothing to a newer one.
    """

    def __init__(
        self,
        items: Sequence[T],
        *,
        key: Callable[[T], str] = _default_key,
    ) -> None:
        self._items = list(items)
        self._key = key
        self._positions = {key(item): index for index, item in enumerate(self._items)}

    @property
    def items(self) -> list[T]:
        return list(self._items)

    def encode(self) -> dict[int, str]:
        """Return ``{short_id: original_id}`` for the working set."""
        return {index + 1: self._key(item) for index, item in enumerate(self._items)}

    def short_id(self, item: T) -> int:
        try:
            return self._positions[self._key(item)] + 1
        except KeyError:
            raise KeyError(f"Item {self._key(item)!r} is not in this working set") from None

    def short_id_for(self, original_id: str) -> int | None:
        position = self._positions.get(str(original_id))
        return None if position is None else position + 1

    def decode(self, short_id: object) -> T | None:
        """Return the item for ``short_id``, or ``None`` for unknown handles.

        Numeric strings are accepted; anything else (including out-of-range
        numbers the model invented) decodes to ``None``.
        """
        if isinstance(short_id, bool):
            return None
        try:
            number = int(str(short_id).strip())
        except (TypeError, ValueError):
            return None
        if 1 <= number <= len(self._items):
            return self._items[number - 1]
        return None

    def __iter__(self) -> Iterator[tuple[int, T]]:
        for index, item in enumerate(self._items):
            yield index + 1, item

    def __len__(self) -> int:
        return len(self._items)
