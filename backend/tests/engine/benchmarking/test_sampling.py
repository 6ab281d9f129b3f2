# tests/engine/benchmarking/test_sampling.py
"""
Tests unitaires pour engine.benchmarking.sampling

Couverture :
    cap_population() :
        - Population ≤ cap → inchangée, sampled False
        - Stride → indices i × N / cap, déterministe
        - Random → seed reproductible, sans remise, ordre d'origine conservé
        - cap ≤ 0 → ValueError
"""
import pytest

from eq_benchmark.shared.enums import SamplingStrategy
from eq_benchmark.engine.benchmarking.sampling import cap_population

pytestmark = pytest.mark.engine


class TestCapPopulation:
    def test_sous_le_plafond_inchangee(self):
        items = list(range(50))
        sample, info = cap_population(items, cap=100)
        assert sample == items
        assert not info.sampled
        assert info.population_size == info.sample_size == 50
        assert info.strategy is None

    def test_stride(self):
        sample, info = cap_population(list(range(100)), cap=10)
        assert sample == [0, 10, 20, 30, 40, 50, 60, 70, 80, 90]
        assert info.sampled
        assert info.population_size == 100
        assert info.sample_size == 10
        assert info.strategy == SamplingStrategy.STRIDE

    def test_stride_couvre_toute_la_population(self):
        sample, _ = cap_population(list(range(1000)), cap=7)
        assert sample[0] == 0
        assert sample[-1] > 800

    def test_random_reproductible(self):
        items = list(range(500))
        a, _ = cap_population(items, cap=40, strategy=SamplingStrategy.RANDOM, seed=42)
        b, _ = cap_population(items, cap=40, strategy=SamplingStrategy.RANDOM, seed=42)
        assert a == b

    def test_random_sans_remise_ordre_conserve(self):
        sample, info = cap_population(list(range(500)), cap=40, strategy="random", seed=1)
        assert len(sample) == len(set(sample)) == 40
        assert sample == sorted(sample)
        assert info.strategy == SamplingStrategy.RANDOM

    @pytest.mark.parametrize("cap", [0, -5])
    def test_cap_invalide(self, cap):
        with pytest.raises(ValueError, match="SAMPLING_CAP_INVALID"):
            cap_population([1, 2, 3], cap=cap)
