# engine/benchmarking/correlation.py
"""
Matrice de corrélation compétences EQ × outcomes.

Pour chaque paire (compétence, outcome) :
    r = Pearson sur les enregistrements où les DEUX valeurs sont renseignées.
    Paires avec < 30 observations appariées → omises (pas d'étiquette
    weak/strong trompeuse sur un petit n).

Force :
    |r| ≥ 0.5        → strong
    0.3 ≤ |r| < 0.5  → moderate
    |r| < 0.3        → weak

Direction :
    r > 0.1 → positive,  r < -0.1 → negative,  sinon none

Ordre de sortie (contrat, pas un choix de rendu) :
    |r| décroissant, égalités → ordre catalogue (outcome, puis compétence).
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from eq_benchmark.shared.enums import CorrelationDirection, CorrelationStrength, MetricKey
from eq_benchmark.engine.benchmarking.catalog import EQ_COMPETENCIES, OUTCOMES, catalog_index
from eq_benchmark.engine.benchmarking.sample_filter import DataPoint
from eq_benchmark.engine.benchmarking.statistics import paired_values, pearson_correlation


MIN_CORRELATION_PAIRS = 30

STRONG_THRESHOLD    = 0.5
MODERATE_THRESHOLD  = 0.3
DIRECTION_THRESHOLD = 0.1

R_ROUNDING = 4


@dataclass
class CorrelationResult:
    competency: MetricKey
    outcome:    MetricKey
    r:          float
    n:          int
    strength:   CorrelationStrength
    direction:  CorrelationDirection
    scope:      Optional[str] = None
    year:       Optional[int] = None


def classify_strength(r: float) -> CorrelationStrength:
    a = abs(r)
    if a >= STRONG_THRESHOLD:
        return CorrelationStrength.STRONG
    if a >= MODERATE_THRESHOLD:
        return CorrelationStrength.MODERATE
    return CorrelationStrength.WEAK


def classify_direction(r: float) -> CorrelationDirection:
    if r > DIRECTION_THRESHOLD:
        return CorrelationDirection.POSITIVE
    if r < -DIRECTION_THRESHOLD:
        return CorrelationDirection.NEGATIVE
    return CorrelationDirection.NONE


def sort_correlations(results: Sequence[CorrelationResult]) -> List[CorrelationResult]:
    return sorted(results, key=lambda c: (
        -abs(c.r),
        catalog_index(c.outcome),
        catalog_index(c.competency),
    ))


def analyze_correlations(
    points: Sequence[DataPoint],
    competencies: Sequence[MetricKey] = EQ_COMPETENCIES,
    outcomes: Sequence[MetricKey] = OUTCOMES,
    min_pairs: int = MIN_CORRELATION_PAIRS,
    scope: Optional[str] = None,
    year: Optional[int] = None,
) -> List[CorrelationResult]:
    columns: Dict[MetricKey, List[Optional[float]]] = {
        k: [p.value(k) for p in points]
        for k in list(competencies) + [o for o in outcomes if o not in competencies]
    }

    results = []
    for outcome in outcomes:
        for competency in competencies:
            xs, ys = paired_values(columns[competency], columns[outcome])
            if len(xs) < min_pairs:
                continue
            r = pearson_correlation(xs, ys)
            if r is None:
                continue
            results.append(CorrelationResult(
                competency=competency,
                outcome=outcome,
                r=round(r, R_ROUNDING),
                n=len(xs),
                strength=classify_strength(r),
                direction=classify_direction(r),
                scope=scope,
                year=year,
            ))
    return sort_correlations(results)


def group_by_outcome(results: Sequence[CorrelationResult]) -> Dict[MetricKey, List[CorrelationResult]]:
    """Groupes dans l'ordre catalogue des outcomes ; chaque groupe trié par |r|."""
    groups: Dict[MetricKey, List[CorrelationResult]] = {}
    for outcome in sorted({c.outcome for c in results}, key=catalog_index):
        groups[outcome] = []
    for c in sort_correlations(results):
        groups[c.outcome].append(c)
    return groups


def correlations_for_outcome(
    results: Sequence[CorrelationResult],
    outcome: MetricKey,
) -> List[CorrelationResult]:
    return [c for c in sort_correlations(results) if c.outcome == outcome]


def analyze_by_year(
    points: Sequence[DataPoint],
    min_records: int = MIN_CORRELATION_PAIRS,
    competencies: Sequence[MetricKey] = EQ_COMPETENCIES,
    outcomes: Sequence[MetricKey] = OUTCOMES,
    scope: Optional[str] = None,
) -> Dict[int, List[CorrelationResult]]:
    """Matrice par année d'évaluation ; années < min_records ignorées."""
    by_year: Dict[int, List[DataPoint]] = {}
    for p in points:
        if p.year is None:
            continue
        by_year.setdefault(p.year, []).append(p)

    out = {}
    for year in sorted(by_year):
        subset = by_year[year]
        if len(subset) < min_records:
            continue
        out[year] = analyze_correlations(
            subset, competencies, outcomes, min_records, scope=scope, year=year,
        )
    return out
