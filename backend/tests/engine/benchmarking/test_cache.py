# tests/engine/benchmarking/test_cache.py
"""
Tests unitaires pour engine.benchmarking.cache.StatsCache

Couverture :
    - put() / get() / __contains__
    - Éviction LRU au-delà de max_entries
    - get_or_compute() : calcul unique, None mis en cache, compteurs hits/misses
    - invalidate(benchmark_id) : seules les entrées du benchmark sont retirées
    - Changement de version → miss
"""
import pytest

from eq_benchmark.engine.benchmarking.cache import CacheKey, StatsCache

pytestmark = pytest.mark.engine


def key(benchmark_id: int = 1, version: int = 1, subject: str = "K", scope: str = "1|global"):
    return CacheKey(benchmark_id, version, "stats", subject, scope)


class TestStatsCache:
    def test_put_get(self):
        cache = StatsCache()
        cache.put(key(), {"n": 120})
        assert key() in cache
        assert cache.get(key()) == {"n": 120}

    def test_get_absent_retourne_default(self):
        assert StatsCache().get(key(), "absent") == "absent"

    def test_eviction_lru(self):
        cache = StatsCache(max_entries=2)
        cache.put(key(subject="K"), 1)
        cache.put(key(subject="C"), 2)
        cache.get(key(subject="K"))          # K redevient le plus récent
        cache.put(key(subject="G"), 3)
        assert key(subject="C") not in cache
        assert key(subject="K") in cache
        assert len(cache) == 2

    def test_get_or_compute_calcul_unique(self):
        cache = StatsCache()
        calls = []

        def compute():
            calls.append(1)
            return 42

        assert cache.get_or_compute(key(), compute) == 42
        assert cache.get_or_compute(key(), compute) == 42
        assert len(calls) == 1
        assert (cache.hits, cache.misses) == (1, 1)

    def test_none_mis_en_cache(self):
        cache = StatsCache()
        calls = []

        def compute():
            calls.append(1)
            return None

        cache.get_or_compute(key(), compute)
        cache.get_or_compute(key(), compute)
        assert len(calls) == 1

    def test_invalidate_par_benchmark(self):
        cache = StatsCache()
        cache.put(key(benchmark_id=1, subject="K"), 1)
        cache.put(key(benchmark_id=1, subject="C"), 2)
        cache.put(key(benchmark_id=2, subject="K"), 3)
        assert cache.invalidate(1) == 2
        assert len(cache) == 1
        assert key(benchmark_id=2, subject="K") in cache

    def test_nouvelle_version_est_un_miss(self):
        cache = StatsCache()
        cache.put(key(version=1), "v1")
        assert cache.get(key(version=2)) is None

    def test_clear(self):
        cache = StatsCache()
        cache.get_or_compute(key(), lambda: 1)
        cache.clear()
        assert len(cache) == 0
        assert cache.misses == 0

    def test_taille_invalide(self):
        with pytest.raises(ValueError, match="CACHE_SIZE_INVALID"):
            StatsCache(max_entries=0)
