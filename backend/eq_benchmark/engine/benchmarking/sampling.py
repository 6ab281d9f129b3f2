# engine/benchmarking/sampling.py
"""
Plafonnement des grosses populations avant calcul centile / corrélation.

Au-delà de SAMPLING_CAP enregistrements, on travaille sur un échantillon :
    stride → indices i × N / cap (déterministe, couvre toute la population)
    random → tirage uniforme sans remise (numpy Generator, seed optionnelle)

L'échantillonnage n'est JAMAIS silencieux : SamplingInfo accompagne
chaque résultat, et le n rapporté est celui de l'échantillon réellement
utilisé (population_size garde la taille d'origine).
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, TypeVar
import logging

import numpy as np

from eq_benchmark.shared.enums import SamplingStrategy

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_SAMPLING_CAP = 10_000


@dataclass
class SamplingInfo:
    population_size: int
    sample_size:     int
    sampled:         bool
    strategy:        Optional[SamplingStrategy] = None


def cap_population(
    items: Sequence[T],
    cap: int = DEFAULT_SAMPLING_CAP,
    strategy: SamplingStrategy = SamplingStrategy.STRIDE,
    seed: Optional[int] = None,
) -> Tuple[List[T], SamplingInfo]:
    """Retourne (échantillon, info). Population ≤ cap → inchangée."""
    if cap <= 0:
        raise ValueError("SAMPLING_CAP_INVALID")

    n = len(items)
    if n <= cap:
        return list(items), SamplingInfo(population_size=n, sample_size=n, sampled=False)

    strategy = SamplingStrategy(strategy)
    if strategy == SamplingStrategy.RANDOM:
        rng = np.random.default_rng(seed)
        indices = np.sort(rng.choice(n, size=cap, replace=False))
    else:
        indices = [(i * n) // cap for i in range(cap)]

    sample = [items[int(i)] for i in indices]
    logger.info("Population plafonnée : %d → %d (%s)", n, cap, strategy.value)
    return sample, SamplingInfo(
        population_size=n,
        sample_size=len(sample),
        sampled=True,
        strategy=strategy,
    )
