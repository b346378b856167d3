"""
Novelty filter: split one scan's raw items into new and already seen.
"""

from __future__ import annotations

import logging
from typing import List, Sequence

from pydantic import BaseModel, Field

from .models import MonitoredTarget, RawItem
from .seen_store import SeenItemStore

logger = logging.getLogger(__name__)


class NoveltyResult(BaseModel):
    """Classification of one batch."""
    new_items: List[RawItem] = Field(default_factory=list)
    seen_ids: List[str] = Field(default_factory=list)
    total_count: int = 0

    @property
    def new_ids(self) -> List[str]:
        return [item.id for item in self.new_items]


class NoveltyFilter:
    """Classifies a batch against the store, then commits every observed id."""

    def __init__(self, store: SeenItemStore):
        self.store = store

    def classify(self, target: MonitoredTarget, items: Sequence[RawItem]) -> NoveltyResult:
        """Return the new items in source order; does not touch the store.

        Items without an id cannot be deduplicated and are dropped. Only the
        first occurrence of an id repeated within the batch is considered.
        """
        result = NoveltyResult(total_count=len(items))
        observed = set()
        dropped = 0

        for item in items:
            item_id = (item.id or "").strip()
            if not item_id:
                dropped += 1
                continue
            if item_id in observed:
                continue
            observed.add(item_id)
            result.seen_ids.append(item_id)
            if self.store.is_new(target.kind, target.identifier, item_id):
                result.new_items.append(item)

        if dropped:
            logger.debug(f"{target.key}: dropped {dropped} items without an id")
        logger.info(
            f"{target.key}: {result.total_count} items on page, {len(result.new_items)} new"
        )
        return result

    def commit(self, target: MonitoredTarget, result: NoveltyResult) -> None:
        """Mark all observed ids (new and old) as seen; safe to repeat."""
        self.store.mark_seen(target.kind, target.identifier, result.seen_ids)
