# eq_benchmark/modules/benchmark/schemas.py
from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Dict, List, Optional
from datetime import datetime
from eq_benchmark.shared.enums import (
    BenchmarkStatus,
    ComparisonStatus,
    ConfidenceTier,
    CorrelationDirection,
    CorrelationStrength,
    DevelopmentPriority,
    EffectMagnitude,
    FilterDimension,
    MetricCategory,
    MetricKey,
    PercentileClass,
    TopPerformerPosition,
)


# ── Benchmark ──────────────────────────────────────────────

class BenchmarkOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    version: int
    status: BenchmarkStatus
    total_rows: int
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# ── Périmètre / précision ──────────────────────────────────

class ScopeOut(BaseModel):
    """Marqueur de précision : toute statistique l'accompagne."""
    n: int
    confidence: ConfidenceTier
    scope_level: str
    scope_description: str
    relaxed: bool
    relaxed_dimensions: List[FilterDimension] = []
    sampled: bool = False
    population_size: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


# ── Statistiques ───────────────────────────────────────────

class StatResultOut(BaseModel):
    n: int
    mean: float
    median: float
    std_dev: float
    min: float
    max: float
    p10: float
    p25: float
    p50: float
    p75: float
    p90: float
    p95: float
    model_config = ConfigDict(from_attributes=True)


class MetricStatsOut(BaseModel):
    benchmark_id: int
    metric: MetricKey
    category: MetricCategory
    label_key: str
    stats: StatResultOut
    scope: ScopeOut
    flags: List[str] = []
    model_config = ConfigDict(from_attributes=True)


class PersistedStatisticOut(StatResultOut):
    metric_key: str
    scope_key: str
    confidence: str
    sampled: bool = False
    population_size: Optional[int] = None
    computed_at: Optional[datetime] = None


# ── Corrélations ───────────────────────────────────────────

class CorrelationOut(BaseModel):
    competency: MetricKey
    outcome: MetricKey
    r: float
    n: int
    strength: CorrelationStrength
    direction: CorrelationDirection
    scope: Optional[str] = None
    year: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


class CorrelationGroupOut(BaseModel):
    outcome: MetricKey
    correlations: List[CorrelationOut]


class CorrelationReportOut(BaseModel):
    benchmark_id: int
    scope: ScopeOut
    groups: List[CorrelationGroupOut]
    by_year: Dict[int, List[CorrelationOut]] = {}


# ── Top performers ─────────────────────────────────────────

class TraitEffectOut(BaseModel):
    metric: MetricKey
    category: MetricCategory
    population_mean: float
    top_group_mean: float
    effect_size: float
    magnitude: EffectMagnitude
    n_population: int
    n_top: int
    model_config = ConfigDict(from_attributes=True)


class CompetencyPatternOut(BaseModel):
    competencies: List[MetricKey]
    count: int
    frequency: float
    avg_outcome: Optional[float] = None
    model_config = ConfigDict(from_attributes=True)


class TopPerformerProfileOut(BaseModel):
    outcome: MetricKey
    quantile_threshold: float
    cutoff: float
    population_size: int
    top_group_size: int
    traits: List[TraitEffectOut]
    distinguishing_traits: List[TraitEffectOut] = []
    common_patterns: List[CompetencyPatternOut] = []
    confidence: ConfidenceTier
    flags: List[str] = []
    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="after")
    def derive_distinguishing(self):
        # les dataclasses sont aplaties par FastAPI : la propriété est perdue
        self.distinguishing_traits = [
            t for t in self.traits if t.magnitude != EffectMagnitude.NEGLIGIBLE
        ]
        return self


class TopPerformerReportOut(BaseModel):
    benchmark_id: int
    profile: TopPerformerProfileOut
    scope: ScopeOut


# ── Comparaison individuelle ───────────────────────────────

class CompareIn(BaseModel):
    """
    metrics : {clé catalogue: valeur}. Les clés sont validées par le moteur
    (clé inconnue → 400) pour garder une seule source de vérité.
    """
    metrics: Dict[str, Optional[float]] = Field(..., min_length=1)
    filters: Dict[str, Optional[str]] = {}
    target_outcome: Optional[str] = None


class MetricComparisonOut(BaseModel):
    metric: MetricKey
    category: MetricCategory
    value: float
    percentile_rank: float
    classification: PercentileClass
    stats: StatResultOut
    scope: ScopeOut
    vs_top_performer: Optional[TopPerformerPosition] = None
    top_performer_mean: Optional[float] = None
    flags: List[str] = []
    model_config = ConfigDict(from_attributes=True)


class DevelopmentAreaOut(BaseModel):
    metric: MetricKey
    priority: DevelopmentPriority
    leveraged_by: List[MetricKey]
    current_score: float
    top_performer_score: float
    gap: float
    model_config = ConfigDict(from_attributes=True)


class ComparisonOut(BaseModel):
    status: ComparisonStatus
    benchmark_id: int
    requested_scope: str
    metrics: List[MetricComparisonOut] = []
    strengths: List[MetricKey] = []
    growth_areas: List[MetricKey] = []
    development_areas: List[DevelopmentAreaOut] = []
    target_outcome: Optional[MetricKey] = None
    top_performers: Optional[TopPerformerProfileOut] = None
    top_performer_scope: Optional[ScopeOut] = None
    correlations: List[CorrelationOut] = []
    correlation_scope: Optional[ScopeOut] = None
    withheld: List[MetricKey] = []
    flags: List[str] = []
    model_config = ConfigDict(from_attributes=True)


# ── Recalcul ───────────────────────────────────────────────

class RecalculateOut(BaseModel):
    benchmark_id: int
    version: int
    statistics: int
    correlations: int
    top_performers: int
    withheld_metrics: List[MetricKey] = []


# ── Comparaison de segments ────────────────────────────────

class SegmentIn(BaseModel):
    name: str = Field(..., min_length=1)
    filters: Dict[str, Optional[str]] = {}
    year: Optional[int] = None


class SegmentCompareIn(BaseModel):
    """Le premier segment sert de base aux écarts."""
    segments: List[SegmentIn] = Field(..., min_length=2)
    metrics: Optional[List[str]] = None


class SegmentCellOut(BaseModel):
    segment: str
    stats: Optional[StatResultOut] = None
    scope: ScopeOut
    model_config = ConfigDict(from_attributes=True)


class SegmentDifferenceOut(BaseModel):
    segment: str
    mean_diff: float
    mean_diff_percent: float
    median_diff: float
    model_config = ConfigDict(from_attributes=True)


class MetricSegmentsOut(BaseModel):
    metric: MetricKey
    category: MetricCategory
    cells: List[SegmentCellOut]
    differences: List[SegmentDifferenceOut] = []
    model_config = ConfigDict(from_attributes=True)


class SignificantDifferenceOut(BaseModel):
    metric: MetricKey
    avg_abs_diff_percent: float
    model_config = ConfigDict(from_attributes=True)


class RankedMetricOut(BaseModel):
    metric: MetricKey
    mean: float
    model_config = ConfigDict(from_attributes=True)


class SegmentSummaryOut(BaseModel):
    name: str
    scope_description: str
    sample_size: int
    confidence: ConfidenceTier
    top_competencies: List[RankedMetricOut] = []
    model_config = ConfigDict(from_attributes=True)


class SegmentComparisonOut(BaseModel):
    base_segment: str
    segments: List[SegmentSummaryOut]
    metrics: List[MetricSegmentsOut]
    significant_differences: List[SignificantDifferenceOut] = []
    flags: List[str] = []
    model_config = ConfigDict(from_attributes=True)


# ── Qualité des données ────────────────────────────────────

class FieldCompletenessOut(BaseModel):
    name: str
    present: int
    missing: int
    percentage: float
    model_config = ConfigDict(from_attributes=True)


class DuplicateGroupOut(BaseModel):
    identity_key: str
    count: int
    years: List[Optional[int]] = []
    model_config = ConfigDict(from_attributes=True)


class OutlierOut(BaseModel):
    identity_key: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    value: float
    z_score: float
    direction: str
    model_config = ConfigDict(from_attributes=True)


class OutlierSummaryOut(BaseModel):
    metric: MetricKey
    n: int
    mean: float
    std_dev: float
    threshold_low: float
    threshold_high: float
    total_outliers: int
    model_config = ConfigDict(from_attributes=True)


class DataQualityOut(BaseModel):
    total_records: int
    quality_score: float
    completeness: List[FieldCompletenessOut] = []
    duplicates: List[DuplicateGroupOut] = []
    total_duplicate_groups: int = 0
    total_duplicate_records: int = 0
    outliers: List[OutlierOut] = []
    outlier_summary: Optional[OutlierSummaryOut] = None
    model_config = ConfigDict(from_attributes=True)
