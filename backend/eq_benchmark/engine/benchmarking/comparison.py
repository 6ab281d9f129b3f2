# engine/benchmarking/comparison.py
"""
Orchestrateur de comparaison : point d'entrée public du moteur.

    compare(individual_metrics, filter_spec, points) → ComparisonResult

Pipeline :
    1. Validation des clés (InvalidMetricError AVANT tout calcul)
    2. Par métrique : fallback → population résolue (les métriques peuvent
       se résoudre à des périmètres différents selon leurs valeurs nulles)
    3. Plafonnement (sampling divulgué) puis rang centile de l'individu
    4. Classification :
           rang ≥ 75 → strength
           rang ≤ 25 → growth_area
           sinon     → neutral
    5. Contexte de l'outcome cible (demandé, sinon l'outcome le plus fort
       de l'individu) :
           - profil top performers (avec escalade de périmètre)
           - position vs top performers par métrique (±2 points = "at")
           - axes de développement (écart > 5 vs top performers)
           - corrélations compétences ↔ outcome

Chaque statistique incluse porte son n, son niveau de confiance et le
périmètre réellement utilisé.

Échec explicite :
    Aucune métrique comparable même au global → status
    insufficient_population_data, aucune valeur partielle.

ZÉRO accès DB : les DataPoints sont chargés une fois par le service.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Union
import logging

from eq_benchmark.shared.enums import (
    ComparisonStatus,
    DevelopmentPriority,
    MetricCategory,
    MetricKey,
    PercentileClass,
    SamplingStrategy,
    TopPerformerPosition,
)
from eq_benchmark.engine.benchmarking.catalog import (
    COMPETENCIES,
    catalog_index,
    get_metric,
    is_outcome,
    resolve_metric_key,
)
from eq_benchmark.engine.benchmarking.correlation import CorrelationResult, analyze_correlations
from eq_benchmark.engine.benchmarking.errors import InvalidMetricError
from eq_benchmark.engine.benchmarking.fallback import (
    CONFIDENCE_HIGH_N,
    CONFIDENCE_MEDIUM_N,
    MIN_SAMPLE_SIZE,
    ScopeDisclosure,
    resolve_metric_population,
)
from eq_benchmark.engine.benchmarking.sample_filter import DataPoint, FilterSpec, metric_values
from eq_benchmark.engine.benchmarking.sampling import DEFAULT_SAMPLING_CAP, cap_population
from eq_benchmark.engine.benchmarking.statistics import StatResult, calculate_stats, percentile_rank
from eq_benchmark.engine.benchmarking.top_performers import (
    DEFAULT_TOP_PERCENTILE,
    MIN_TOP_PERFORMER_SAMPLE,
    TopPerformerProfile,
    profile_with_fallback,
)

logger = logging.getLogger(__name__)


# ── Seuils ────────────────────────────────────────────────────────────────────

STRENGTH_PERCENTILE = 75.0
GROWTH_PERCENTILE   = 25.0

TOP_PERFORMER_BAND = 2.0      # |écart| ≤ 2 points → "at"

DEVELOPMENT_MIN_GAP     = 5.0
DEVELOPMENT_MEDIUM_GAP  = 10.0
DEVELOPMENT_HIGH_GAP    = 15.0
DEVELOPMENT_MAX_RESULTS = 3

# Compétences qui s'appuient mutuellement (relation lue dans les deux sens)
LEVERAGE_MAP: Dict[MetricKey, tuple] = {
    MetricKey.EL:  (MetricKey.NE, MetricKey.EMP),
    MetricKey.RP:  (MetricKey.ACT, MetricKey.NE),
    MetricKey.ACT: (MetricKey.RP, MetricKey.IM),
    MetricKey.NE:  (MetricKey.EL, MetricKey.OP),
    MetricKey.IM:  (MetricKey.NG, MetricKey.OP),
    MetricKey.OP:  (MetricKey.IM, MetricKey.NG),
    MetricKey.EMP: (MetricKey.EL, MetricKey.NG),
    MetricKey.NG:  (MetricKey.IM, MetricKey.EMP),
}

_PRIORITY_ORDER = {
    DevelopmentPriority.HIGH: 0,
    DevelopmentPriority.MEDIUM: 1,
    DevelopmentPriority.LOW: 2,
}


@dataclass(frozen=True)
class EngineThresholds:
    """Seuils du moteur. Le service les construit depuis settings."""
    min_sample:         int = MIN_SAMPLE_SIZE
    min_top_performers: int = MIN_TOP_PERFORMER_SAMPLE
    top_percentile:     float = DEFAULT_TOP_PERCENTILE
    high_n:             int = CONFIDENCE_HIGH_N
    medium_n:           int = CONFIDENCE_MEDIUM_N
    sampling_cap:       int = DEFAULT_SAMPLING_CAP
    sampling_strategy:  SamplingStrategy = SamplingStrategy.STRIDE
    sampling_seed:      Optional[int] = None


# ── Dataclasses de résultat ───────────────────────────────────────────────────

@dataclass
class MetricComparison:
    metric:             MetricKey
    category:           MetricCategory
    value:              float
    percentile_rank:    float
    classification:     PercentileClass
    stats:              StatResult
    scope:              ScopeDisclosure
    vs_top_performer:   Optional[TopPerformerPosition] = None
    top_performer_mean: Optional[float] = None
    flags:              List[str] = field(default_factory=list)


@dataclass
class DevelopmentArea:
    metric:              MetricKey
    priority:            DevelopmentPriority
    leveraged_by:        List[MetricKey]
    current_score:       float
    top_performer_score: float
    gap:                 float


@dataclass
class ComparisonResult:
    status:              ComparisonStatus
    benchmark_id:        int
    requested_scope:     str
    metrics:             List[MetricComparison] = field(default_factory=list)
    strengths:           List[MetricKey] = field(default_factory=list)
    growth_areas:        List[MetricKey] = field(default_factory=list)
    development_areas:   List[DevelopmentArea] = field(default_factory=list)
    target_outcome:      Optional[MetricKey] = None
    top_performers:      Optional[TopPerformerProfile] = None
    top_performer_scope: Optional[ScopeDisclosure] = None
    correlations:        List[CorrelationResult] = field(default_factory=list)
    correlation_scope:   Optional[ScopeDisclosure] = None
    withheld:            List[MetricKey] = field(default_factory=list)
    flags:               List[str] = field(default_factory=list)

    def metric(self, key: MetricKey) -> Optional[MetricComparison]:
        for m in self.metrics:
            if m.metric == key:
                return m
        return None


# ── Classification ────────────────────────────────────────────────────────────

def classify_percentile(rank: float) -> PercentileClass:
    if rank >= STRENGTH_PERCENTILE:
        return PercentileClass.STRENGTH
    if rank <= GROWTH_PERCENTILE:
        return PercentileClass.GROWTH_AREA
    return PercentileClass.NEUTRAL


def position_vs_top(value: float, top_mean: float, band: float = TOP_PERFORMER_BAND) -> TopPerformerPosition:
    diff = value - top_mean
    if diff > band:
        return TopPerformerPosition.ABOVE
    if diff >= -band:
        return TopPerformerPosition.AT
    return TopPerformerPosition.BELOW


def _validate_profile(individual_metrics: Mapping[Union[str, MetricKey], Optional[float]]) -> Dict[MetricKey, float]:
    """Toutes les clés sont validées avant le premier calcul."""
    keys = {resolve_metric_key(k): v for k, v in individual_metrics.items()}
    return {k: float(v) for k, v in keys.items() if v is not None}


# ── Comparaison par métrique ──────────────────────────────────────────────────

def compare_metric(
    points: Sequence[DataPoint],
    spec: FilterSpec,
    metric: MetricKey,
    value: float,
    thresholds: EngineThresholds = EngineThresholds(),
) -> Optional[MetricComparison]:
    """None si aucune population utilisable, même au global."""
    resolution = resolve_metric_population(
        points, spec, metric,
        thresholds.min_sample, thresholds.high_n, thresholds.medium_n,
    )
    if not resolution.usable:
        return None

    sample, info = cap_population(
        resolution.payload,
        thresholds.sampling_cap,
        thresholds.sampling_strategy,
        thresholds.sampling_seed,
    )
    distribution = sorted(metric_values(sample, metric))
    rank = percentile_rank(distribution, value)

    flags = list(resolution.flags)
    if info.sampled:
        flags.append("SAMPLED")
    if not get_metric(metric).contains(value):
        flags.append("OUT_OF_RANGE")

    return MetricComparison(
        metric=metric,
        category=get_metric(metric).category,
        value=value,
        percentile_rank=rank,
        classification=classify_percentile(rank),
        stats=calculate_stats(distribution),
        scope=resolution.disclosure(sampled=info.sampled, sample_size=info.sample_size),
        flags=flags,
    )


# ── Axes de développement ─────────────────────────────────────────────────────

def identify_development_areas(
    comparisons: Sequence[MetricComparison],
    profile: TopPerformerProfile,
) -> List[DevelopmentArea]:
    """
    Compétences non-forces avec un écart > 5 points vs top performers.
    Priorité : high si écart > 15 ET appui d'une force, medium si écart > 10
    ou ≥ 2 appuis, sinon low.
    """
    by_metric = {c.metric: c for c in comparisons}
    strengths = [
        k for k in COMPETENCIES
        if k in by_metric and by_metric[k].classification == PercentileClass.STRENGTH
    ]

    areas = []
    for comp in COMPETENCIES:
        current = by_metric.get(comp)
        trait = profile.trait(comp)
        if current is None or trait is None or comp in strengths:
            continue
        gap = round(trait.top_group_mean - current.value, 2)
        if gap <= DEVELOPMENT_MIN_GAP:
            continue

        leveraged_by = [
            s for s in strengths
            if s in LEVERAGE_MAP.get(comp, ()) or comp in LEVERAGE_MAP.get(s, ())
        ]
        if gap > DEVELOPMENT_HIGH_GAP and leveraged_by:
            priority = DevelopmentPriority.HIGH
        elif gap > DEVELOPMENT_MEDIUM_GAP or len(leveraged_by) > 1:
            priority = DevelopmentPriority.MEDIUM
        else:
            priority = DevelopmentPriority.LOW

        areas.append(DevelopmentArea(
            metric=comp,
            priority=priority,
            leveraged_by=leveraged_by,
            current_score=current.value,
            top_performer_score=trait.top_group_mean,
            gap=gap,
        ))

    areas.sort(key=lambda a: (_PRIORITY_ORDER[a.priority], -a.gap, catalog_index(a.metric)))
    return areas[:DEVELOPMENT_MAX_RESULTS]


# ── Contexte de l'outcome cible ───────────────────────────────────────────────

def _strongest_outcome(comparisons: Sequence[MetricComparison]) -> Optional[MetricKey]:
    outcomes = [c for c in comparisons if c.category == MetricCategory.OUTCOME]
    if not outcomes:
        return None
    outcomes.sort(key=lambda c: (-c.percentile_rank, catalog_index(c.metric)))
    return outcomes[0].metric


def _attach_outcome_context(
    result: ComparisonResult,
    points: Sequence[DataPoint],
    spec: FilterSpec,
    outcome: MetricKey,
    thresholds: EngineThresholds,
) -> None:
    profile_res = profile_with_fallback(
        points, spec, outcome,
        thresholds.top_percentile,
        thresholds.min_top_performers,
        thresholds.min_sample,
        thresholds.high_n,
        thresholds.medium_n,
    )
    if profile_res.usable:
        profile = profile_res.payload
        result.top_performers = profile
        result.top_performer_scope = profile_res.disclosure()
        for mc in result.metrics:
            trait = profile.trait(mc.metric)
            if trait is None:
                continue
            mc.top_performer_mean = trait.top_group_mean
            mc.vs_top_performer = position_vs_top(mc.value, trait.top_group_mean)
        result.development_areas = identify_development_areas(result.metrics, profile)
    else:
        result.flags.append("TOP_PERFORMERS_UNAVAILABLE")

    corr_res = resolve_metric_population(
        points, spec, outcome,
        thresholds.min_sample, thresholds.high_n, thresholds.medium_n,
    )
    if not corr_res.usable:
        result.flags.append("CORRELATIONS_UNAVAILABLE")
        return

    sample, info = cap_population(
        corr_res.payload,
        thresholds.sampling_cap,
        thresholds.sampling_strategy,
        thresholds.sampling_seed,
    )
    result.correlations = analyze_correlations(
        sample,
        outcomes=[outcome],
        min_pairs=thresholds.min_sample,
        scope=corr_res.scope_description,
    )
    result.correlation_scope = corr_res.disclosure(sampled=info.sampled, sample_size=info.sample_size)


# ── Point d'entrée ────────────────────────────────────────────────────────────

def compare(
    individual_metrics: Mapping[Union[str, MetricKey], Optional[float]],
    filter_spec: FilterSpec,
    points: Sequence[DataPoint],
    target_outcome: Optional[Union[str, MetricKey]] = None,
    thresholds: Optional[EngineThresholds] = None,
) -> ComparisonResult:
    thresholds = thresholds or EngineThresholds()
    values = _validate_profile(individual_metrics)

    target = None
    if target_outcome is not None:
        target = resolve_metric_key(target_outcome)
        if not is_outcome(target):
            raise InvalidMetricError(target_outcome)

    comparisons: List[MetricComparison] = []
    withheld: List[MetricKey] = []
    for metric in sorted(values, key=catalog_index):
        mc = compare_metric(points, filter_spec, metric, values[metric], thresholds)
        if mc is None:
            withheld.append(metric)
        else:
            comparisons.append(mc)

    if not comparisons:
        logger.info(
            "Comparaison impossible (benchmark=%s, %s) : population insuffisante",
            filter_spec.benchmark_id, filter_spec.describe(),
        )
        return ComparisonResult(
            status=ComparisonStatus.INSUFFICIENT_POPULATION_DATA,
            benchmark_id=filter_spec.benchmark_id,
            requested_scope=filter_spec.describe(),
            withheld=withheld,
            flags=["INSUFFICIENT_POPULATION_DATA"],
        )

    ranked = sorted(comparisons, key=lambda c: (-c.percentile_rank, catalog_index(c.metric)))
    result = ComparisonResult(
        status=ComparisonStatus.COMPLETE,
        benchmark_id=filter_spec.benchmark_id,
        requested_scope=filter_spec.describe(),
        metrics=comparisons,
        strengths=[c.metric for c in ranked if c.classification == PercentileClass.STRENGTH],
        growth_areas=[
            c.metric for c in reversed(ranked)
            if c.classification == PercentileClass.GROWTH_AREA
        ],
        withheld=withheld,
    )
    if withheld:
        result.flags.append("PARTIAL_PROFILE")

    outcome = target or _strongest_outcome(comparisons)
    if outcome is not None:
        result.target_outcome = outcome
        _attach_outcome_context(result, points, filter_spec, outcome, thresholds)
    return result
