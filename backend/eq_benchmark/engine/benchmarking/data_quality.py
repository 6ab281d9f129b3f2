# engine/benchmarking/data_quality.py
"""
Qualité des données importées d'un benchmark.

Quatre volets :
    1. Complétude   → par métrique clé et par dimension démographique,
                      présents / manquants / pourcentage (2 décimales)
    2. Doublons     → identity_key présente plus d'une fois
                      (évaluations répétées d'une même personne)
    3. Outliers     → |valeur - moyenne| > 2σ sur une métrique (eqTotal par défaut)
    4. Score        → 0–100, arrondi à 0.1 :
                      complétude moyenne
                      - min(doublons / total × 100, 20)
                      - min(outliers / total × 200, 15)
"""
from __future__ import annotations
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from eq_benchmark.shared.enums import FilterDimension, MetricKey
from eq_benchmark.engine.benchmarking.catalog import COMPETENCIES, CORE_INDICES
from eq_benchmark.engine.benchmarking.sample_filter import DataPoint, metric_sample_size, metric_values
from eq_benchmark.engine.benchmarking.statistics import mean, std_dev


QUALITY_METRICS = CORE_INDICES + COMPETENCIES + (
    MetricKey.EFFECTIVENESS, MetricKey.RELATIONSHIPS,
    MetricKey.WELLBEING, MetricKey.QUALITY_OF_LIFE,
)

OUTLIER_Z = 2.0
MAX_DUPLICATE_GROUPS = 20
MAX_OUTLIERS = 30

DUPLICATES_PENALTY_MAX = 20.0
OUTLIERS_PENALTY_MAX   = 15.0


@dataclass
class FieldCompleteness:
    name:       str
    present:    int
    missing:    int
    percentage: float


@dataclass
class DuplicateGroup:
    identity_key: str
    count:        int
    years:        List[Optional[int]] = field(default_factory=list)


@dataclass
class Outlier:
    identity_key: Optional[str]
    country:      Optional[str]
    region:       Optional[str]
    value:        float
    z_score:      float
    direction:    str          # high | low


@dataclass
class OutlierSummary:
    metric:         MetricKey
    n:              int
    mean:           float
    std_dev:        float
    threshold_low:  float
    threshold_high: float
    total_outliers: int


@dataclass
class DataQualityReport:
    total_records:           int
    quality_score:           float
    completeness:            List[FieldCompleteness] = field(default_factory=list)
    duplicates:              List[DuplicateGroup] = field(default_factory=list)
    total_duplicate_groups:  int = 0
    total_duplicate_records: int = 0
    outliers:                List[Outlier] = field(default_factory=list)
    outlier_summary:         Optional[OutlierSummary] = None


def _completeness(name: str, present: int, total: int) -> FieldCompleteness:
    return FieldCompleteness(
        name=name,
        present=present,
        missing=total - present,
        percentage=round(present / total * 100, 2),
    )


def field_completeness(points: Sequence[DataPoint]) -> List[FieldCompleteness]:
    total = len(points)
    out = [_completeness(m.value, metric_sample_size(points, m), total) for m in QUALITY_METRICS]
    for dim in FilterDimension:
        present = sum(1 for p in points if p.attribute(dim) is not None)
        out.append(_completeness(dim.value, present, total))
    return out


def find_duplicates(points: Sequence[DataPoint]) -> List[DuplicateGroup]:
    """Groupes triés par taille décroissante, puis identity_key."""
    counts = Counter(p.identity_key for p in points if p.identity_key is not None)
    groups = []
    for key, count in counts.items():
        if count < 2:
            continue
        years = sorted(
            (p.year for p in points if p.identity_key == key),
            key=lambda y: (y is None, y or 0),
        )
        groups.append(DuplicateGroup(identity_key=key, count=count, years=years))
    groups.sort(key=lambda g: (-g.count, g.identity_key))
    return groups


def find_outliers(
    points: Sequence[DataPoint],
    metric: MetricKey = MetricKey.EQ_TOTAL,
    z_threshold: float = OUTLIER_Z,
) -> tuple:
    """(outliers triés par valeur décroissante, résumé | None)."""
    values = metric_values(points, metric)
    if not values:
        return [], None

    mu, sigma = mean(values), std_dev(values)
    high, low = mu + z_threshold * sigma, mu - z_threshold * sigma
    outliers = []
    if sigma > 0:
        for p in points:
            v = p.value(metric)
            if v is None or low <= v <= high:
                continue
            outliers.append(Outlier(
                identity_key=p.identity_key,
                country=p.country,
                region=p.region,
                value=v,
                z_score=round((v - mu) / sigma, 2),
                direction="high" if v > mu else "low",
            ))
    outliers.sort(key=lambda o: -o.value)

    summary = OutlierSummary(
        metric=metric,
        n=len(values),
        mean=round(mu, 2),
        std_dev=round(sigma, 2),
        threshold_low=round(low, 2),
        threshold_high=round(high, 2),
        total_outliers=len(outliers),
    )
    return outliers, summary


def analyze_data_quality(
    points: Sequence[DataPoint],
    outlier_metric: MetricKey = MetricKey.EQ_TOTAL,
    z_threshold: float = OUTLIER_Z,
    max_duplicate_groups: int = MAX_DUPLICATE_GROUPS,
    max_outliers: int = MAX_OUTLIERS,
) -> DataQualityReport:
    total = len(points)
    if total == 0:
        return DataQualityReport(total_records=0, quality_score=0.0)

    completeness = field_completeness(points)
    duplicates = find_duplicates(points)
    duplicate_records = sum(g.count for g in duplicates)
    outliers, summary = find_outliers(points, outlier_metric, z_threshold)

    avg_completeness = sum(c.percentage for c in completeness) / len(completeness)
    duplicates_penalty = min(duplicate_records / total * 100, DUPLICATES_PENALTY_MAX)
    outliers_penalty = min(len(outliers) / total * 200, OUTLIERS_PENALTY_MAX)
    score = max(0.0, min(100.0, avg_completeness - duplicates_penalty - outliers_penalty))

    return DataQualityReport(
        total_records=total,
        quality_score=round(score, 1),
        completeness=completeness,
        duplicates=duplicates[:max_duplicate_groups],
        total_duplicate_groups=len(duplicates),
        total_duplicate_records=duplicate_records,
        outliers=outliers[:max_outliers],
        outlier_summary=summary,
    )
