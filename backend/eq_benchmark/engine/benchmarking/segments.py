# engine/benchmarking/segments.py
"""
Comparaison de segments nommés d'un même benchmark
(ex : "Amérique latine" vs "Amérique du Nord").

Règles :
    - Au moins 2 segments, noms uniques ; le premier sert de base.
    - Un segment est comparé TEL QU'IL EST DÉCLARÉ : pas de fallback.
      Élargir un segment trop petit le ferait converger vers les autres.
    - Chaque cellule (segment × métrique) porte son n et son niveau de
      confiance ; n < MIN_SAMPLE_SIZE → stats None (cellule retenue).
    - Les écarts ne sont calculés qu'entre cellules exploitables.

Écart vs base :
    mean_diff         = mean(segment) - mean(base)
    mean_diff_percent = mean_diff / mean(base) × 100
    median_diff       = median(segment) - median(base)

Écarts marquants : moyenne des |mean_diff_percent| par métrique,
top 10, égalités → ordre catalogue.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Union

from eq_benchmark.shared.enums import ConfidenceTier, MetricCategory, MetricKey, SamplingStrategy
from eq_benchmark.engine.benchmarking.catalog import (
    COMPETENCIES,
    METRIC_CATALOG,
    catalog_index,
    get_metric,
    resolve_metric_key,
)
from eq_benchmark.engine.benchmarking.fallback import (
    CONFIDENCE_HIGH_N,
    CONFIDENCE_MEDIUM_N,
    MIN_SAMPLE_SIZE,
    ScopeDisclosure,
    confidence_tier,
    scope_level,
)
from eq_benchmark.engine.benchmarking.sample_filter import (
    DataPoint,
    FilterSpec,
    apply_filter,
    metric_values,
)
from eq_benchmark.engine.benchmarking.sampling import DEFAULT_SAMPLING_CAP, cap_population
from eq_benchmark.engine.benchmarking.statistics import StatResult, calculate_stats


MIN_SEGMENTS = 2
MAX_SIGNIFICANT_DIFFERENCES = 10
TOP_COMPETENCIES_PER_SEGMENT = 3

DIFF_ROUNDING = 4
PERCENT_ROUNDING = 2

FLAG_SEGMENT_INSUFFICIENT = "SEGMENT_INSUFFICIENT_SAMPLE"
FLAG_SAMPLED = "SAMPLED"


# ── Dataclasses ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Segment:
    name: str
    spec: FilterSpec
    year: Optional[int] = None

    def describe(self) -> str:
        scope = self.spec.describe()
        return scope if self.year is None else f"{scope}, year={self.year}"


@dataclass
class SegmentCell:
    segment: str
    stats:   Optional[StatResult]
    scope:   ScopeDisclosure

    @property
    def usable(self) -> bool:
        return self.stats is not None


@dataclass
class SegmentDifference:
    segment:           str
    mean_diff:         float
    mean_diff_percent: float
    median_diff:       float


@dataclass
class MetricSegments:
    metric:      MetricKey
    category:    MetricCategory
    cells:       List[SegmentCell]
    differences: List[SegmentDifference] = field(default_factory=list)


@dataclass
class SignificantDifference:
    metric:               MetricKey
    avg_abs_diff_percent: float


@dataclass
class RankedMetric:
    metric: MetricKey
    mean:   float


@dataclass
class SegmentSummary:
    name:              str
    scope_description: str
    sample_size:       int
    confidence:        ConfidenceTier
    top_competencies:  List[RankedMetric] = field(default_factory=list)


@dataclass
class SegmentComparison:
    base_segment:            str
    segments:                List[SegmentSummary]
    metrics:                 List[MetricSegments]
    significant_differences: List[SignificantDifference] = field(default_factory=list)
    flags:                   List[str] = field(default_factory=list)


# ── Helpers ───────────────────────────────────────────────────────────────────

def validate_segments(segments: Sequence[Segment]) -> None:
    if len(segments) < MIN_SEGMENTS:
        raise ValueError("SEGMENTS_MIN_2")
    names = [s.name for s in segments]
    if len(set(names)) != len(names):
        raise ValueError("SEGMENT_NAME_DUPLICATE")


def resolve_metrics(metrics: Optional[Sequence[Union[str, MetricKey]]]) -> List[MetricKey]:
    if not metrics:
        return [d.key for d in METRIC_CATALOG]
    out: List[MetricKey] = []
    for m in metrics:
        key = resolve_metric_key(m)
        if key not in out:
            out.append(key)
    return out


def segment_points(points: Sequence[DataPoint], segment: Segment) -> List[DataPoint]:
    matched = apply_filter(points, segment.spec).points
    if segment.year is None:
        return matched
    return [p for p in matched if p.year == segment.year]


def _difference(base: StatResult, other: StatResult, segment: str) -> Optional[SegmentDifference]:
    if base.mean == 0:
        return None
    mean_diff = other.mean - base.mean
    return SegmentDifference(
        segment=segment,
        mean_diff=round(mean_diff, DIFF_ROUNDING),
        mean_diff_percent=round(mean_diff / base.mean * 100, PERCENT_ROUNDING),
        median_diff=round(other.median - base.median, DIFF_ROUNDING),
    )


# ── Comparaison ───────────────────────────────────────────────────────────────

def compare_segments(
    points: Sequence[DataPoint],
    segments: Sequence[Segment],
    metrics: Optional[Sequence[Union[str, MetricKey]]] = None,
    min_sample: int = MIN_SAMPLE_SIZE,
    high_n: int = CONFIDENCE_HIGH_N,
    medium_n: int = CONFIDENCE_MEDIUM_N,
    sampling_cap: int = DEFAULT_SAMPLING_CAP,
    sampling_strategy: SamplingStrategy = SamplingStrategy.STRIDE,
    sampling_seed: Optional[int] = None,
) -> SegmentComparison:
    validate_segments(segments)
    keys = resolve_metrics(metrics)
    subsets = {s.name: segment_points(points, s) for s in segments}
    flags: List[str] = []

    # ── 1. Cellules segment × métrique
    rows: List[MetricSegments] = []
    for key in keys:
        cells = []
        for segment in segments:
            values = metric_values(subsets[segment.name], key)
            sample, info = cap_population(values, sampling_cap, sampling_strategy, sampling_seed)
            stats = calculate_stats(sample) if len(values) >= min_sample else None
            if info.sampled and FLAG_SAMPLED not in flags:
                flags.append(FLAG_SAMPLED)
            cells.append(SegmentCell(
                segment=segment.name,
                stats=stats,
                scope=ScopeDisclosure(
                    n=info.sample_size,
                    confidence=confidence_tier(len(values), min_sample, high_n, medium_n),
                    scope_level=scope_level(segment.spec),
                    scope_description=segment.describe(),
                    relaxed=False,
                    sampled=info.sampled,
                    population_size=info.population_size,
                ),
            ))
        rows.append(MetricSegments(metric=key, category=get_metric(key).category, cells=cells))

    # ── 2. Écarts vs segment de base
    for row in rows:
        base = row.cells[0]
        if not base.usable:
            continue
        for cell in row.cells[1:]:
            if not cell.usable:
                continue
            diff = _difference(base.stats, cell.stats, cell.segment)
            if diff is not None:
                row.differences.append(diff)

    # ── 3. Écarts marquants
    significant = []
    for row in rows:
        if not row.differences:
            continue
        avg = sum(abs(d.mean_diff_percent) for d in row.differences) / len(row.differences)
        if avg > 0:
            significant.append(SignificantDifference(row.metric, round(avg, PERCENT_ROUNDING)))
    significant.sort(key=lambda s: (-s.avg_abs_diff_percent, catalog_index(s.metric)))

    # ── 4. Résumé par segment
    summaries = []
    for segment in segments:
        subset = subsets[segment.name]
        ranked = []
        for comp in COMPETENCIES:
            values = metric_values(subset, comp)
            if len(values) >= min_sample:
                ranked.append(RankedMetric(comp, round(sum(values) / len(values), DIFF_ROUNDING)))
        ranked.sort(key=lambda r: (-r.mean, catalog_index(r.metric)))
        if len(subset) < min_sample and FLAG_SEGMENT_INSUFFICIENT not in flags:
            flags.append(FLAG_SEGMENT_INSUFFICIENT)
        summaries.append(SegmentSummary(
            name=segment.name,
            scope_description=segment.describe(),
            sample_size=len(subset),
            confidence=confidence_tier(len(subset), min_sample, high_n, medium_n),
            top_competencies=ranked[:TOP_COMPETENCIES_PER_SEGMENT],
        ))

    return SegmentComparison(
        base_segment=segments[0].name,
        segments=summaries,
        metrics=rows,
        significant_differences=significant[:MAX_SIGNIFICANT_DIFFERENCES],
        flags=flags,
    )
