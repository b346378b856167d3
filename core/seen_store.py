"""
Seen-item store: durable, per-target set membership for deduplication.

State is a mapping ``"<kind>:<identifier>" -> set of item ids`` mirrored to a
JSON document that is rewritten in full after every mutation.

The store uses the *check-only* variant: :meth:`SeenItemStore.is_new` never
mutates, and identifiers enter the store only through
:meth:`SeenItemStore.mark_seen`, which is idempotent. None of the methods
await, so under the asyncio event loop a mutation can never interleave with
another target's check on the same key.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from pathlib import Path
from typing import Dict, Iterable, Optional, Set, Union

from core.errors import PersistenceError
from core.infra.json_store import load_json, write_json

logger = logging.getLogger(__name__)


def cache_key(kind: str, target_id: str) -> str:
    return f"{kind}:{target_id}"


def embedded_timestamp_ms(item_id: str) -> Optional[int]:
    """Return the epoch-millis timestamp embedded in ``<prefix>-<millis>`` ids."""
    parts = item_id.split("-")
    if len(parts) < 2 or not parts[1].isdigit():
        return None
    return int(parts[1])


class SeenItemStore:
    """Persistent per-target set of already observed item identifiers."""

    def __init__(self, path: Union[str, Path] = "data/item-cache.json", autoload: bool = True):
        self.path = Path(path)
        self._cache: Dict[str, Set[str]] = {}
        self._dirty = False
        if autoload:
            self.load()

    # ------------------------------------------------------------------ #
    # Persistence
    def load(self) -> None:
        """Load the cache document; a missing or corrupt file means empty."""
        data = load_json(self.path, dict)
        cache: Dict[str, Set[str]] = {}
        if isinstance(data, dict):
            for key, ids in data.items():
                if isinstance(ids, list):
                    cache[key] = {str(i) for i in ids}
        else:
            logger.warning(f"Ignoring malformed item cache in {self.path}")
        self._cache = cache
        self._dirty = False
        logger.info(f"Loaded item cache: {len(cache)} targets, {len(self)} ids")

    def to_document(self) -> Dict[str, list]:
        return {key: sorted(ids) for key, ids in self._cache.items()}

    def save(self) -> bool:
        """Write the full cache; on failure keep memory state and retry later."""
        try:
            write_json(self.path, self.to_document())
        except PersistenceError as e:
            logger.error(f"Error saving item cache: {e}")
            self._dirty = True
            return False
        self._dirty = False
        return True

    @property
    def dirty(self) -> bool:
        """True while a previous write failed and has not been retried yet."""
        return self._dirty

    # ------------------------------------------------------------------ #
    # Queries
    def is_new(self, kind: str, target_id: str, item_id: str) -> bool:
        seen = self._cache.get(cache_key(kind, target_id))
        return not seen or item_id not in seen

    def is_first_scan(self, kind: str, target_id: str) -> bool:
        return not self._cache.get(cache_key(kind, target_id))

    def count(self, kind: str, target_id: str) -> int:
        return len(self._cache.get(cache_key(kind, target_id), ()))

    def ids(self, kind: str, target_id: str) -> Set[str]:
        return set(self._cache.get(cache_key(kind, target_id), ()))

    def __len__(self) -> int:
        return sum(len(ids) for ids in self._cache.values())

    # ------------------------------------------------------------------ #
    # Mutations
    def mark_seen(self, kind: str, target_id: str, item_ids: Iterable[str]) -> None:
        """Union ``item_ids`` into the target's set and persist."""
        seen = self._cache.setdefault(cache_key(kind, target_id), set())
        before = len(seen)
        seen.update(item_ids)
        if len(seen) != before or self._dirty:
            self.save()

    def evict_older_than(self, max_age: timedelta, now_ms: Optional[int] = None) -> int:
        """Drop ids whose embedded timestamp is older than ``max_age``.

        Ids without a parseable timestamp are kept. Returns the number removed.
        """
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        max_age_ms = max_age.total_seconds() * 1000

        removed = 0
        for key, seen in self._cache.items():
            stale = set()
            for item_id in seen:
                ts = embedded_timestamp_ms(item_id)
                if ts is not None and now_ms - ts > max_age_ms:
                    stale.add(item_id)
            if stale:
                seen.difference_update(stale)
                removed += len(stale)
                logger.debug(f"Evicted {len(stale)} ids from {key}")

        if removed or self._dirty:
            self.save()
        logger.info(f"Item cache eviction removed {removed} ids older than {max_age}")
        return removed
