"""Group checklist items into chunks that are reviewed together."""

from __future__ import annotations

import logging
import math
from typing import Sequence

from ..llm.json_utils import coerce_json_list
from ..models import ChecklistItem
from .ai_client import AIClient
from .errors import ReviewCancelled
from .prompts import build_categorize_prompts
from .short_ids import ShortIdCodec

logger = logging.getLogger(__name__)

DEFAULT_MAX_CATEGORIES = 10
UNCATEGORIZED_NAME = "other"


def split_checklist_equally(
    items: Sequence[ChecklistItem], max_per_chunk: int
) -> list[list[ChecklistItem]]:
    """Split ``items`` into ``ceil(n / max_per_chunk)`` near-equal chunks.

    The first ``n % parts`` chunks take one extra item.
    """
    if not items:
        return []
    max_per_chunk = max(1, max_per_chunk)
    parts = math.ceil(len(items) / max_per_chunk)
    base, remainder = divmod(len(items), parts)

    chunks: list[list[ChecklistItem]] = []
    start = 0
    for index in range(parts):
        size = base + (1 if index < remainder else 0)
        chunks.append(list(items[start : start + size]))
        start += size
    return chunks


class ChecklistClassifier:
    """Split a checklist into chunks of related items.

    The AI proposes named categories; each category is then sliced into chunks
    of at most ``max_per_chunk`` items. If the AI call fails or returns no
    categories the checklist is split into equal chunks instead.
    """

    def __init__(self, ai: AIClient, *, max_categories: int = DEFAULT_MAX_CATEGORIES) -> None:
        self._ai = ai
        self.max_categories = max_categories

    def classify(
        self, items: Sequence[ChecklistItem], max_per_chunk: int | None
    ) -> list[list[ChecklistItem]]:
        if not items:
            return []
        if max_per_chunk is None or max_per_chunk >= len(items):
            return [list(items)]
        if max_per_chunk <= 1:
            return [[item] for item in items]

        try:
            categories = self._categorize(items, max_per_chunk)
        except ReviewCancelled:
            raise
        except Exception as exc:
            logger.warning(
                "Checklist classification failed, splitting equally: %s", exc
            )
            return split_checklist_equally(items, max_per_chunk)

        if not categories:
            logger.warning("Classifier returned no categories, splitting equally")
            return split_checklist_equally(items, max_per_chunk)

        chunks: list[list[ChecklistItem]] = []
        for name, members in categories:
            for start in range(0, len(members), max_per_chunk):
                chunks.append(members[start : start + max_per_chunk])
            logger.debug("Category %r: %d item(s)", name, len(members))
        logger.info(
            "Classified %d item(s) into %d categor(ies), %d chunk(s)",
            len(items),
            len(categories),
            len(chunks),
        )
        return chunks

    def _categorize(
        self, items: Sequence[ChecklistItem], max_per_chunk: int
    ) -> list[tuple[str, list[ChecklistItem]]]:
        """Ask the AI for categories and resolve them to items.

        Items claimed by several categories stay in the first one. Items no
        category claims are appended as a final ``other`` category. An empty
        list means the AI proposed no categories.
        """
        codec = ShortIdCodec(items)
        system_prompt, user_prompt = build_categorize_prompts(
            codec, max_categories=self.max_categories, max_per_chunk=max_per_chunk
        )
        data = self._ai.ask_json(
            [user_prompt], system_prompt=system_prompt, label="checklist-categorize"
        )

        claimed: set[str] = set()
        proposed = 0
        categories: list[tuple[str, list[ChecklistItem]]] = []
        for raw in coerce_json_list(data, keys=("categories",)):
            if not isinstance(raw, dict):
                continue
            raw_ids = raw.get("checklistIds", raw.get("checklist_ids"))
            if not isinstance(raw_ids, list):
                continue
            proposed += 1
            members: list[ChecklistItem] = []
            for short_id in raw_ids:
                item = codec.decode(short_id)
                if item is None or item.id in claimed:
                    continue
                claimed.add(item.id)
                members.append(item)
            if members:
                name = str(raw.get("name") or f"category {len(categories) + 1}")
                categories.append((name, members))

        if not proposed:
            return []

        # With no decodable ids at all, every item lands in the other category.
        uncategorized = [item for item in items if item.id not in claimed]
        if uncategorized:
            categories.append((UNCATEGORIZED_NAME, uncategorized))
        return categories
