# engine/benchmarking/top_performers.py
"""
Profil des top performers d'un outcome.

Étapes :
    1. cutoff = P90(outcome) sur la population résolue
    2. top    = enregistrements avec outcome ≥ cutoff
    3. |top| ≥ MIN_TOP_PERFORMER_SAMPLE (30), sinon None → le résolveur
       de fallback élargit le périmètre (profile_with_fallback)
    4. Pour chaque trait profilé (indices, compétences, talents) :

           d = (μ_top − μ_pop) / σ_pop

       Cohen's d avec l'écart-type de la POPULATION au dénominateur :
       le sous-groupe sélectionné sur l'outcome a une dispersion réduite
       qui gonflerait d artificiellement.
       σ_pop = 0 → d = 0.
    5. Tri par |d| décroissant, égalités départagées par l'ordre du catalogue.

Magnitude :
    |d| < 0.2 → negligible
    |d| < 0.5 → small
    |d| < 0.8 → medium
    sinon     → large

Seuls les traits ≥ small sont "distinctifs".

Patterns communs :
    Top 3 compétences EQ de chaque top performer → paires co-occurrentes.
    Paires présentes chez ≥ 20 % des top performers, 5 plus fréquentes.

ZÉRO accès DB. Déterministe pour une population et un seuil donnés.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from itertools import combinations
from typing import Dict, List, Optional, Sequence, Tuple

from eq_benchmark.shared.enums import (
    ConfidenceTier,
    EffectMagnitude,
    MetricCategory,
    MetricKey,
)
from eq_benchmark.engine.benchmarking.catalog import (
    EQ_COMPETENCIES,
    OUTCOMES,
    PROFILED_TRAITS,
    catalog_index,
    get_metric,
)
from eq_benchmark.engine.benchmarking.fallback import (
    CONFIDENCE_HIGH_N,
    CONFIDENCE_MEDIUM_N,
    MIN_SAMPLE_SIZE,
    FallbackResolution,
    confidence_tier,
    resolve_with,
)
from eq_benchmark.engine.benchmarking.sample_filter import (
    DataPoint,
    FilterSpec,
    apply_filter,
    metric_values,
    with_metric,
)
from eq_benchmark.engine.benchmarking.statistics import mean, percentile, std_dev


# ── Seuils ────────────────────────────────────────────────────────────────────

DEFAULT_TOP_PERCENTILE   = 90.0
MIN_TOP_PERFORMER_SAMPLE = 30

EFFECT_SMALL  = 0.2
EFFECT_MEDIUM = 0.5
EFFECT_LARGE  = 0.8

PATTERN_COMPETENCIES_PER_PERSON = 3
PATTERN_MIN_FREQUENCY           = 20.0   # % des top performers
PATTERN_MAX_RESULTS             = 5

EFFECT_ROUNDING = 3


# ── Dataclasses de résultat ───────────────────────────────────────────────────

@dataclass
class TraitEffect:
    metric:          MetricKey
    category:        MetricCategory
    population_mean: float
    top_group_mean:  float
    effect_size:     float
    magnitude:       EffectMagnitude
    n_population:    int
    n_top:           int


@dataclass
class CompetencyPattern:
    competencies: Tuple[MetricKey, MetricKey]
    count:        int
    frequency:    float          # % des top performers, arrondi
    avg_outcome:  Optional[float]


@dataclass
class TopPerformerProfile:
    """
    Profil distinctif des top performers d'un outcome.

    traits      → tous les traits profilés, triés par |d| décroissant
    confidence  → selon population_size
    """
    outcome:            MetricKey
    quantile_threshold: float
    cutoff:             float
    population_size:    int
    top_group_size:     int
    traits:             List[TraitEffect] = field(default_factory=list)
    common_patterns:    List[CompetencyPattern] = field(default_factory=list)
    confidence:         ConfidenceTier = ConfidenceTier.LOW
    flags:              List[str] = field(default_factory=list)

    @property
    def distinguishing_traits(self) -> List[TraitEffect]:
        return [t for t in self.traits if t.magnitude != EffectMagnitude.NEGLIGIBLE]

    def trait(self, metric: MetricKey) -> Optional[TraitEffect]:
        for t in self.traits:
            if t.metric == metric:
                return t
        return None


# ── Primitives ────────────────────────────────────────────────────────────────

def interpret_effect_size(d: float) -> EffectMagnitude:
    a = abs(d)
    if a < EFFECT_SMALL:
        return EffectMagnitude.NEGLIGIBLE
    if a < EFFECT_MEDIUM:
        return EffectMagnitude.SMALL
    if a < EFFECT_LARGE:
        return EffectMagnitude.MEDIUM
    return EffectMagnitude.LARGE


def identify_top_performers(
    population: Sequence[DataPoint],
    outcome: MetricKey,
    quantile: float = DEFAULT_TOP_PERCENTILE,
) -> Tuple[Optional[float], List[DataPoint]]:
    """(cutoff, top). Population déjà restreinte aux outcome non nuls."""
    values = sorted(metric_values(population, outcome))
    cutoff = percentile(values, quantile)
    if cutoff is None:
        return None, []
    return cutoff, [p for p in population if p.value(outcome) >= cutoff]


def _trait_effect(
    metric: MetricKey,
    population: Sequence[DataPoint],
    top: Sequence[DataPoint],
    min_population: int,
) -> Optional[TraitEffect]:
    pop_values = metric_values(population, metric)
    top_values = metric_values(top, metric)
    if len(pop_values) < min_population or not top_values:
        return None

    mu_pop = mean(pop_values)
    mu_top = mean(top_values)
    sigma = std_dev(pop_values)
    d = 0.0 if not sigma else (mu_top - mu_pop) / sigma
    d = round(d, EFFECT_ROUNDING)

    return TraitEffect(
        metric=metric,
        category=get_metric(metric).category,
        population_mean=round(mu_pop, 2),
        top_group_mean=round(mu_top, 2),
        effect_size=d,
        magnitude=interpret_effect_size(d),
        n_population=len(pop_values),
        n_top=len(top_values),
    )


def detect_common_patterns(
    top: Sequence[DataPoint],
    outcome: MetricKey,
    min_top: int = MIN_TOP_PERFORMER_SAMPLE,
) -> List[CompetencyPattern]:
    n = len(top)
    if n < min_top:
        return []

    counts: Dict[Tuple[MetricKey, MetricKey], List[float]] = {}
    for p in top:
        scored = [(k, p.value(k)) for k in EQ_COMPETENCIES if p.value(k) is not None]
        scored.sort(key=lambda kv: (-kv[1], catalog_index(kv[0])))
        best = [k for k, _ in scored[:PATTERN_COMPETENCIES_PER_PERSON]]
        for a, b in combinations(best, 2):
            pair = tuple(sorted((a, b), key=catalog_index))
            counts.setdefault(pair, []).append(p.value(outcome))

    patterns = []
    for pair, outcomes in counts.items():
        frequency = len(outcomes) / n * 100
        if frequency < PATTERN_MIN_FREQUENCY:
            continue
        patterns.append(CompetencyPattern(
            competencies=pair,
            count=len(outcomes),
            frequency=round(frequency),
            avg_outcome=mean(outcomes),
        ))

    patterns.sort(key=lambda pt: (
        -pt.count,
        catalog_index(pt.competencies[0]),
        catalog_index(pt.competencies[1]),
    ))
    return patterns[:PATTERN_MAX_RESULTS]


# ── Profil ────────────────────────────────────────────────────────────────────

def profile_top_performers(
    points: Sequence[DataPoint],
    outcome: MetricKey,
    quantile: float = DEFAULT_TOP_PERCENTILE,
    min_top: int = MIN_TOP_PERFORMER_SAMPLE,
    min_population: int = MIN_SAMPLE_SIZE,
    traits: Sequence[MetricKey] = PROFILED_TRAITS,
    high_n: int = CONFIDENCE_HIGH_N,
    medium_n: int = CONFIDENCE_MEDIUM_N,
) -> Optional[TopPerformerProfile]:
    """
    Profil sur une population déjà résolue.
    None si population < min_population ou top group < min_top.
    """
    if get_metric(outcome).category != MetricCategory.OUTCOME:
        raise ValueError("NOT_AN_OUTCOME")

    population = with_metric(points, outcome)
    if len(population) < min_population:
        return None

    cutoff, top = identify_top_performers(population, outcome, quantile)
    if cutoff is None or len(top) < min_top:
        return None

    effects = []
    for metric in traits:
        if metric in OUTCOMES:
            continue
        effect = _trait_effect(metric, population, top, min_population)
        if effect is not None:
            effects.append(effect)

    effects.sort(key=lambda e: (-abs(e.effect_size), catalog_index(e.metric)))

    tier = confidence_tier(len(population), min_population, high_n, medium_n)
    flags = []
    if tier == ConfidenceTier.LOW:
        flags.append("LOW_CONFIDENCE")
    if not any(e.magnitude != EffectMagnitude.NEGLIGIBLE for e in effects):
        flags.append("NO_DISTINGUISHING_TRAIT")

    return TopPerformerProfile(
        outcome=outcome,
        quantile_threshold=quantile,
        cutoff=round(cutoff, 2),
        population_size=len(population),
        top_group_size=len(top),
        traits=effects,
        common_patterns=detect_common_patterns(top, outcome, min_top),
        confidence=tier,
        flags=flags,
    )


def profile_with_fallback(
    points: Sequence[DataPoint],
    spec: FilterSpec,
    outcome: MetricKey,
    quantile: float = DEFAULT_TOP_PERCENTILE,
    min_top: int = MIN_TOP_PERFORMER_SAMPLE,
    min_population: int = MIN_SAMPLE_SIZE,
    high_n: int = CONFIDENCE_HIGH_N,
    medium_n: int = CONFIDENCE_MEDIUM_N,
) -> FallbackResolution[TopPerformerProfile]:
    """
    Escalade : un périmètre dont le top group est < min_top est rejeté,
    le périmètre immédiatement plus large est essayé.
    """

    def evaluate(candidate: FilterSpec):
        population = with_metric(apply_filter(points, candidate).points, outcome)
        profile = profile_top_performers(
            population, outcome, quantile, min_top, min_population,
            high_n=high_n, medium_n=medium_n,
        )
        return profile, len(population)

    return resolve_with(spec, evaluate, min_population, high_n, medium_n)


def compute_all_profiles(
    points: Sequence[DataPoint],
    spec: FilterSpec,
    quantile: float = DEFAULT_TOP_PERCENTILE,
    min_top: int = MIN_TOP_PERFORMER_SAMPLE,
    min_population: int = MIN_SAMPLE_SIZE,
) -> Dict[MetricKey, FallbackResolution[TopPerformerProfile]]:
    """Un profil par outcome du catalogue (recalcul complet d'un benchmark)."""
    return {
        outcome: profile_with_fallback(points, spec, outcome, quantile, min_top, min_population)
        for outcome in OUTCOMES
    }
