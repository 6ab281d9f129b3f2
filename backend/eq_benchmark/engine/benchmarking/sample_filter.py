# engine/benchmarking/sample_filter.py
"""
Filtre d'échantillon : DataPoint, FilterSpec, application du filtre.

Sémantique de filtre ouverte :
    Un champ absent du FilterSpec est ignoré. Les prédicats présents sont
    combinés en ET (égalité stricte). FilterSpec() sans prédicat = global.

Taille d'échantillon toujours spécifique à la métrique :
    Un DataPoint qui matche le filtre mais dont la métrique est None
    ne compte PAS dans le n de cette métrique.

FilterSpec est immuable : on ne le modifie jamais, on construit
un nouveau FilterSpec via without() / narrow().
"""
from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import date
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from eq_benchmark.shared.enums import FilterDimension, MetricKey
from eq_benchmark.engine.benchmarking.catalog import resolve_metric_key
from eq_benchmark.engine.benchmarking.errors import MalformedFilterError


GLOBAL_SCOPE = "global"

DIMENSION_FIELDS = tuple(d.value for d in FilterDimension)


def resolve_dimension(dimension: Union[str, FilterDimension]) -> FilterDimension:
    if isinstance(dimension, FilterDimension):
        return dimension
    try:
        return FilterDimension(dimension)
    except ValueError:
        raise MalformedFilterError(dimension) from None


# ── DataPoint ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True, eq=False)
class DataPoint:
    """
    Un enregistrement d'évaluation, immuable.

    metrics : MetricKey → valeur (None = non mesuré). Accès via value().
    identity_key relie les évaluations répétées d'une même personne.
    """
    identity_key: Optional[str] = None
    assessed_at:  Optional[date] = None

    country:      Optional[str] = None
    region:       Optional[str] = None
    sector:       Optional[str] = None
    job_function: Optional[str] = None
    job_role:     Optional[str] = None
    age_range:    Optional[str] = None
    gender:       Optional[str] = None
    education:    Optional[str] = None
    source_id:    Optional[str] = None

    metrics: Mapping[MetricKey, Optional[float]] = field(default_factory=dict)

    def __post_init__(self):
        frozen = {resolve_metric_key(k): (None if v is None else float(v))
                  for k, v in self.metrics.items()}
        object.__setattr__(self, "metrics", MappingProxyType(frozen))

    def value(self, metric: Union[str, MetricKey]) -> Optional[float]:
        return self.metrics.get(resolve_metric_key(metric))

    def attribute(self, dimension: FilterDimension) -> Optional[str]:
        return getattr(self, dimension.value)

    @property
    def year(self) -> Optional[int]:
        return self.assessed_at.year if self.assessed_at else None

    @classmethod
    def from_record(cls, record: Any) -> "DataPoint":
        """
        Construit un DataPoint depuis une ligne ORM BenchmarkDataPoint.
        Les clés de métriques hors catalogue dans le JSON sont ignorées.
        """
        raw = getattr(record, "metrics", None) or {}
        metrics = {}
        for key, val in raw.items():
            try:
                metrics[MetricKey(key)] = val
            except ValueError:
                continue

        assessed = getattr(record, "assessed_at", None)
        if assessed is not None and hasattr(assessed, "date"):
            assessed = assessed.date()

        attrs = {}
        for name in DIMENSION_FIELDS:
            val = getattr(record, name, None)
            attrs[name] = None if val is None else str(val)

        return cls(
            identity_key=getattr(record, "identity_key", None),
            assessed_at=assessed,
            metrics=metrics,
            **attrs,
        )


# ── FilterSpec ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class FilterSpec:
    """Prédicats démographiques + benchmark cible. Immuable."""
    benchmark_id: int
    country:      Optional[str] = None
    region:       Optional[str] = None
    sector:       Optional[str] = None
    job_function: Optional[str] = None
    job_role:     Optional[str] = None
    age_range:    Optional[str] = None
    gender:       Optional[str] = None
    education:    Optional[str] = None
    source_id:    Optional[str] = None

    @classmethod
    def from_dict(
        cls,
        benchmark_id: int,
        filters: Optional[Mapping[str, Optional[Any]]] = None,
    ) -> "FilterSpec":
        """
        Construit un FilterSpec depuis une entrée non fiable (query, JSON).
        Dimension inconnue → MalformedFilterError. Valeurs vides ignorées.
        """
        kwargs: Dict[str, str] = {}
        for key, val in (filters or {}).items():
            dim = resolve_dimension(key)
            if val is None or str(val).strip() == "":
                continue
            kwargs[dim.value] = str(val).strip()
        return cls(benchmark_id=benchmark_id, **kwargs)

    def predicates(self) -> Dict[FilterDimension, str]:
        out = {}
        for d in FilterDimension:
            val = getattr(self, d.value)
            if val is not None:
                out[d] = val
        return out

    def active_dimensions(self) -> List[FilterDimension]:
        return list(self.predicates().keys())

    @property
    def is_global(self) -> bool:
        return not self.active_dimensions()

    def without(self, dimension: Union[str, FilterDimension]) -> "FilterSpec":
        dim = resolve_dimension(dimension)
        return replace(self, **{dim.value: None})

    def narrow(self, **dimensions: Optional[str]) -> "FilterSpec":
        for key in dimensions:
            resolve_dimension(key)
        return replace(self, **dimensions)

    def describe(self) -> str:
        """Description lisible : "country=France, sector=Tech" ou "global"."""
        preds = self.predicates()
        if not preds:
            return GLOBAL_SCOPE
        return ", ".join(f"{d.value}={v}" for d, v in preds.items())

    def cache_key(self) -> str:
        return f"{self.benchmark_id}|{self.describe()}"

    def matches(self, point: DataPoint) -> bool:
        for dim, expected in self.predicates().items():
            if point.attribute(dim) != expected:
                return False
        return True


# ── Application ───────────────────────────────────────────────────────────────

@dataclass
class FilteredSample:
    points: List[DataPoint]
    size:   int


def apply_filter(points: Sequence[DataPoint], spec: FilterSpec) -> FilteredSample:
    matched = [p for p in points if spec.matches(p)]
    return FilteredSample(points=matched, size=len(matched))


def metric_values(points: Sequence[DataPoint], metric: MetricKey) -> List[float]:
    """Valeurs non nulles d'une métrique."""
    out = []
    for p in points:
        v = p.value(metric)
        if v is not None:
            out.append(v)
    return out


def metric_sample_size(points: Sequence[DataPoint], metric: MetricKey) -> int:
    return sum(1 for p in points if p.value(metric) is not None)


def with_metric(points: Sequence[DataPoint], metric: MetricKey) -> List[DataPoint]:
    return [p for p in points if p.value(metric) is not None]
