"""
Result Cache - Memoizes derived frames and metrics for one snapshot.
"""

import hashlib
import json
import logging
import threading
from collections import OrderedDict
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str, str]


def canonical_hash(value: Any) -> str:
    """sha256 of the canonical JSON form (sorted keys, dates as ISO strings)."""
    canonical = json.dumps(value, sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def snapshot_identity(snapshot: Dict[str, Any]) -> str:
    """Identity of a raw snapshot; equal content gives an equal identity."""
    return canonical_hash(snapshot)


class ResultCache:
    """
    Thread-safe memo of (snapshot_id, operation, params_hash) -> result.

    Holds entries for one snapshot identity at a time: the first lookup with a
    different identity discards every entry. Entries never expire otherwise;
    max_entries > 0 bounds the cache with least-recently-used eviction.
    """

    def __init__(self, max_entries: int = 256):
        if max_entries < 0:
            raise ValueError(f"max_entries must be >= 0, got {max_entries}")
        self.max_entries = max_entries
        self._entries: "OrderedDict[CacheKey, Any]" = OrderedDict()
        self._snapshot_id: Optional[str] = None
        self._lock = threading.RLock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    @staticmethod
    def make_key(snapshot_id: str, operation: str, params: Hashable = None) -> CacheKey:
        return snapshot_id, operation, canonical_hash(params)

    def get_or_compute(self, snapshot_id: str, operation: str, params: Any,
                       compute: Callable[[], Any]) -> Any:
        """
        Return the cached result or compute, store and return it.

        Args:
            snapshot_id: Identity of the snapshot the result derives from
            operation: Operation name, e.g. 'reconstruct_at'
            params: JSON-serialisable parameters of the call
            compute: Zero-argument callable producing the result
        """
        key = self.make_key(snapshot_id, operation, params)
        with self._lock:
            self._bind(snapshot_id)
            if key in self._entries:
                self._entries.move_to_end(key)
                self.hits += 1
                logger.debug(f"Cache hit: {operation}")
                return self._entries[key]
            self.misses += 1
            logger.debug(f"Cache miss: {operation}")

            # Computation runs under the lock so concurrent callers compute once
            result = compute()
            self._entries[key] = result
            if self.max_entries and len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
                self.evictions += 1
            return result

    def _bind(self, snapshot_id: str):
        if self._snapshot_id != snapshot_id:
            if self._entries:
                logger.info(f"Snapshot changed; dropping {len(self._entries)} cached results")
            self._entries.clear()
            self._snapshot_id = snapshot_id

    def clear(self):
        """Drop every entry."""
        with self._lock:
            self._entries.clear()
            self._snapshot_id = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        with self._lock:
            return key in self._entries

    @property
    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'entries': len(self._entries),
                'hits': self.hits,
                'misses': self.misses,
                'evictions': self.evictions,
                'snapshot_id': self._snapshot_id,
            }
