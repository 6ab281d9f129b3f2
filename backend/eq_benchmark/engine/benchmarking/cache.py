# engine/benchmarking/cache.py
"""
Cache explicite des statistiques calculées.

Clé : (benchmark_id, benchmark_version, kind, subject, scope)
    kind    → "stats" | "correlations" | "top_performers" | ...
    subject → métrique, paire ou outcome
    scope   → FilterSpec.cache_key()

Invalidation :
    - invalidate(benchmark_id) à chaque import / recalcul / suppression
    - un changement de version du benchmark produit naturellement un miss

Aucun état global : une instance appartient au service qui la crée.
Éviction LRU au-delà de max_entries.
"""
from __future__ import annotations
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")

_MISSING = object()


@dataclass(frozen=True)
class CacheKey:
    benchmark_id:      int
    benchmark_version: int
    kind:              str
    subject:           str
    scope:             str


class StatsCache:

    def __init__(self, max_entries: int = 2048):
        if max_entries <= 0:
            raise ValueError("CACHE_SIZE_INVALID")
        self.max_entries = max_entries
        self._entries: "OrderedDict[CacheKey, Any]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def get(self, key: CacheKey, default: Optional[Any] = None) -> Any:
        if key not in self._entries:
            return default
        self._entries.move_to_end(key)
        return self._entries[key]

    def put(self, key: CacheKey, value: Any) -> None:
        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def get_or_compute(self, key: CacheKey, compute: Callable[[], T]) -> T:
        """Les résultats None (échantillon insuffisant) sont mis en cache aussi."""
        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            self.hits += 1
            return cached
        self.misses += 1
        value = compute()
        self.put(key, value)
        return value

    def invalidate(self, benchmark_id: int) -> int:
        """Supprime toutes les entrées d'un benchmark. Retourne le nombre retiré."""
        stale = [k for k in self._entries if k.benchmark_id == benchmark_id]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0
