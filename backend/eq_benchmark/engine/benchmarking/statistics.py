# engine/benchmarking/statistics.py
"""
Primitives statistiques du moteur de benchmark.

Fonctions pures sur des tableaux numériques simples. ZÉRO accès DB,
ZÉRO état. Déterministes.

Convention "pas de données" :
    Une entrée vide (ou < 3 paires pour Pearson) retourne None, jamais 0.
    Un tableau vide n'est PAS une population de moyenne nulle.

Écart-type :
    Population (diviseur n), pas échantillon (n-1) :
        σ = sqrt( Σ (x - μ)² / n )

Percentile (méthode "linear", interpolation entre statistiques d'ordre) :
    idx    = (p / 100) × (n - 1)
    lower  = floor(idx),  upper = ceil(idx)
    weight = idx - lower
    P(p)   = s[lower] × (1 - weight) + s[upper] × weight

    → p = 0 donne le min, p = 100 le max, p = 50 la médiane classique
      (moyenne des deux valeurs centrales si n pair).

Rang centile (inverse du percentile) :
    On cherche p tel que P(p) ≈ valeur, par dichotomie sur la fonction
    d'interpolation. Sur un plateau d'ex-aequo, on prend le milieu du
    plateau (borne basse + borne haute) / 2.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple
import math

import numpy as np


# ── Constantes ────────────────────────────────────────────────────────────────

STAT_PERCENTILES = (10, 25, 50, 75, 90, 95)
MIN_PEARSON_PAIRS = 3

RANK_SEARCH_ITERATIONS = 60   # 100 / 2^60 : bien en-dessous de l'arrondi
RANK_ROUNDING = 1
PEARSON_ROUNDING = 12         # bruit flottant sur les relations parfaites


# ── Dataclass de résultat ─────────────────────────────────────────────────────

@dataclass
class StatResult:
    """Descripteurs d'une métrique sur une population résolue."""
    n:       int
    mean:    float
    median:  float
    std_dev: float      # population
    min:     float
    max:     float
    p10:     float
    p25:     float
    p50:     float
    p75:     float
    p90:     float
    p95:     float


# ── Helpers ───────────────────────────────────────────────────────────────────

def _clean(values: Iterable[Optional[float]]) -> List[float]:
    """Retire les None et NaN."""
    out = []
    for v in values:
        if v is None:
            continue
        f = float(v)
        if math.isnan(f):
            continue
        out.append(f)
    return out


# ── Primitives ────────────────────────────────────────────────────────────────

def mean(values: Sequence[Optional[float]]) -> Optional[float]:
    clean = _clean(values)
    if not clean:
        return None
    return float(np.mean(clean))


def std_dev(values: Sequence[Optional[float]]) -> Optional[float]:
    """Écart-type de population (ddof=0)."""
    clean = _clean(values)
    if not clean:
        return None
    return float(np.std(clean, ddof=0))


def percentile(sorted_values: Sequence[float], p: float) -> Optional[float]:
    """
    Percentile par interpolation linéaire.
    sorted_values DOIT être trié croissant (non vérifié, coût O(n)).
    """
    if not 0 <= p <= 100:
        raise ValueError("PERCENTILE_OUT_OF_RANGE")
    n = len(sorted_values)
    if n == 0:
        return None
    if n == 1:
        return float(sorted_values[0])

    idx = (p / 100) * (n - 1)
    lower = math.floor(idx)
    upper = math.ceil(idx)
    weight = idx - lower
    return float(sorted_values[lower]) * (1 - weight) + float(sorted_values[upper]) * weight


def median(values: Sequence[Optional[float]]) -> Optional[float]:
    return percentile(sorted(_clean(values)), 50)


def paired_values(
    xs: Sequence[Optional[float]],
    ys: Sequence[Optional[float]],
) -> Tuple[List[float], List[float]]:
    """Garde uniquement les indices où xs[i] ET ys[i] sont renseignés."""
    if len(xs) != len(ys):
        raise ValueError("PAIRED_LENGTH_MISMATCH")
    px, py = [], []
    for x, y in zip(xs, ys):
        if x is None or y is None:
            continue
        fx, fy = float(x), float(y)
        if math.isnan(fx) or math.isnan(fy):
            continue
        px.append(fx)
        py.append(fy)
    return px, py


def pearson_correlation(
    xs: Sequence[Optional[float]],
    ys: Sequence[Optional[float]],
) -> Optional[float]:
    """
    r de Pearson sur les paires complètes.

    None si moins de 3 paires, ou si l'une des deux séries est constante
    (variance nulle → r indéfini). Symétrique : r(xs, ys) == r(ys, xs).
    """
    px, py = paired_values(xs, ys)
    if len(px) < MIN_PEARSON_PAIRS:
        return None

    x = np.asarray(px, dtype=float)
    y = np.asarray(py, dtype=float)
    dx = x - x.mean()
    dy = y - y.mean()

    sxx = float(np.sum(dx * dx))
    syy = float(np.sum(dy * dy))
    if sxx == 0 or syy == 0:
        return None

    r = float(np.sum(dx * dy)) / math.sqrt(sxx * syy)
    r = max(-1.0, min(1.0, r))
    return round(r, PEARSON_ROUNDING)


def calculate_stats(values: Sequence[Optional[float]]) -> Optional[StatResult]:
    """Bundle StatResult complet. None pour une entrée vide."""
    clean = sorted(_clean(values))
    if not clean:
        return None

    pcts = {p: percentile(clean, p) for p in STAT_PERCENTILES}
    return StatResult(
        n=len(clean),
        mean=float(np.mean(clean)),
        median=pcts[50],
        std_dev=float(np.std(clean, ddof=0)),
        min=clean[0],
        max=clean[-1],
        p10=pcts[10],
        p25=pcts[25],
        p50=pcts[50],
        p75=pcts[75],
        p90=pcts[90],
        p95=pcts[95],
    )


# ── Rang centile ──────────────────────────────────────────────────────────────

def _lowest_p_reaching(sorted_values: Sequence[float], value: float) -> float:
    """Plus petit p tel que P(p) >= value."""
    lo, hi = 0.0, 100.0
    for _ in range(RANK_SEARCH_ITERATIONS):
        mid = (lo + hi) / 2
        if percentile(sorted_values, mid) < value:
            lo = mid
        else:
            hi = mid
    return hi


def _highest_p_within(sorted_values: Sequence[float], value: float) -> float:
    """Plus grand p tel que P(p) <= value."""
    lo, hi = 0.0, 100.0
    for _ in range(RANK_SEARCH_ITERATIONS):
        mid = (lo + hi) / 2
        if percentile(sorted_values, mid) <= value:
            lo = mid
        else:
            hi = mid
    return lo


def percentile_rank(sorted_values: Sequence[float], value: float) -> Optional[float]:
    """
    Rang centile d'une valeur dans une distribution triée ∈ [0, 100].

    value <  min → 0
    value >  max → 100
    sinon        → milieu du plateau [p_bas, p_haut] où P(p) == value
    """
    n = len(sorted_values)
    if n == 0:
        return None
    value = float(value)

    if value < sorted_values[0]:
        return 0.0
    if value > sorted_values[-1]:
        return 100.0
    if n == 1:
        return 50.0

    low = _lowest_p_reaching(sorted_values, value)
    high = _highest_p_within(sorted_values, value)
    rank = (low + high) / 2
    return round(max(0.0, min(100.0, rank)), RANK_ROUNDING)
