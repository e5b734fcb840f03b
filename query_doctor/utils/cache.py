"""
Per-run cache for SQL-derived results.
Every cached value is a pure function of the raw SQL text, so one instance
can be shared by all analyzers of a run and survive across runs in a
long-lived worker until reset() is called.
"""

import logging
from typing import Any, Callable, Dict

logger = logging.getLogger(__name__)


class SqlAnalysisCache:
    """Memoize SQL-derived values by namespace and raw SQL string."""

    def __init__(self, max_entries: int = 10000):
        self.max_entries = max_entries
        self._store: Dict[str, Dict[str, Any]] = {}
        self.hits = 0
        self.misses = 0

    def get_or_compute(self, namespace: str, sql: str, compute: Callable[[], Any]) -> Any:
        """Return the cached value for ``sql`` or compute and store it."""
        bucket = self._store.setdefault(namespace, {})
        if sql in bucket:
            self.hits += 1
            return bucket[sql]

        self.misses += 1
        value = compute()

        if len(bucket) >= self.max_entries:
            # Oldest entry first (dicts keep insertion order)
            bucket.pop(next(iter(bucket)))
        bucket[sql] = value
        return value

    def size(self, namespace: str = None) -> int:
        if namespace is not None:
            return len(self._store.get(namespace, {}))
        return sum(len(bucket) for bucket in self._store.values())

    def stats(self) -> Dict[str, int]:
        return {
            'entries': self.size(),
            'hits': self.hits,
            'misses': self.misses,
        }

    def reset(self) -> None:
        """Drop every cached value and counter."""
        logger.debug(f"Clearing SQL analysis cache ({self.size()} entries)")
        self._store.clear()
        self.hits = 0
        self.misses = 0
