# engine/benchmarking/fallback.py
"""
Résolveur de fallback : garantit n ≥ MIN_SAMPLE_SIZE pour toute
statistique rapportée, en élargissant le périmètre plutôt qu'en échouant.

Ordre de relâchement (du plus spécifique au plus général) :
    job_role → job_function → source_id → age_range → gender → education
    → sector → country → region → global

Algorithme :
    1. Évaluer le FilterSpec demandé.
    2. n ≥ MIN_SAMPLE_SIZE → on s'arrête sur ce périmètre.
    3. Sinon, retirer la prochaine dimension active dans l'ordre ci-dessus.
    4. Si même le global (aucun filtre) reste < 30 → échec explicite,
       aucune statistique (usable = False). Jamais un n=5 présenté comme valide.

Niveaux de confiance (calculés sur le n FINAL, pas sur le n demandé) :
    n ≥ 385        → high    (≈ IC 95 %, marge 5 % : n = (z/E)² × 0.25, z = 1.96)
    100 ≤ n < 385  → medium
    30 ≤ n < 100   → low
    n < 30         → insufficient (non reportable)

Le résolveur retourne toujours le périmètre réellement utilisé, pour que
l'UI puisse afficher "comparaison au niveau pays, données équipe insuffisantes".
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar
import logging
import math

from eq_benchmark.shared.enums import ConfidenceTier, FilterDimension, MetricKey
from eq_benchmark.engine.benchmarking.sample_filter import (
    GLOBAL_SCOPE,
    DataPoint,
    FilterSpec,
    apply_filter,
    with_metric,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ── Seuils ────────────────────────────────────────────────────────────────────

MIN_SAMPLE_SIZE = 30

CONFIDENCE_Z      = 1.96
CONFIDENCE_MARGIN = 0.05


def required_sample_size(z: float = CONFIDENCE_Z, margin: float = CONFIDENCE_MARGIN) -> int:
    """n = (z / E)² × p(1-p), p = 0.5 (variance maximale)."""
    return math.ceil((z / margin) ** 2 * 0.25)


CONFIDENCE_HIGH_N   = required_sample_size()   # 385
CONFIDENCE_MEDIUM_N = 100

RELAXATION_ORDER: Tuple[FilterDimension, ...] = (
    FilterDimension.JOB_ROLE,
    FilterDimension.JOB_FUNCTION,
    FilterDimension.SOURCE_ID,
    FilterDimension.AGE_RANGE,
    FilterDimension.GENDER,
    FilterDimension.EDUCATION,
    FilterDimension.SECTOR,
    FilterDimension.COUNTRY,    # un pays implique sa région : on retombe sur la région
    FilterDimension.REGION,
)

# Flags
FLAG_SCOPE_RELAXED       = "SCOPE_RELAXED"
FLAG_LOW_CONFIDENCE      = "LOW_CONFIDENCE"
FLAG_INSUFFICIENT_SAMPLE = "INSUFFICIENT_SAMPLE"


def confidence_tier(
    n: int,
    min_sample: int = MIN_SAMPLE_SIZE,
    high_n: int = CONFIDENCE_HIGH_N,
    medium_n: int = CONFIDENCE_MEDIUM_N,
) -> ConfidenceTier:
    if n >= high_n:
        return ConfidenceTier.HIGH
    if n >= medium_n:
        return ConfidenceTier.MEDIUM
    if n >= min_sample:
        return ConfidenceTier.LOW
    return ConfidenceTier.INSUFFICIENT


# ── Dataclasses de résultat ───────────────────────────────────────────────────

@dataclass
class ScopeAttempt:
    scope: str
    n:     int


@dataclass
class ScopeDisclosure:
    """Marqueur de précision joint à toute statistique rapportée."""
    n:                  int
    confidence:         ConfidenceTier
    scope_level:        str
    scope_description:  str
    relaxed:            bool
    relaxed_dimensions: List[FilterDimension] = field(default_factory=list)
    sampled:            bool = False
    population_size:    Optional[int] = None


@dataclass
class FallbackResolution(Generic[T]):
    """
    Résultat du résolveur.

    requested   → FilterSpec demandé
    effective   → FilterSpec réellement utilisé (None si échec)
    n           → taille au périmètre effectif (ou au global en cas d'échec)
    scope_level → dimension la plus spécifique restante, ou "global"
    payload     → ce que l'évaluateur a produit au périmètre retenu
    """
    requested:          FilterSpec
    effective:          Optional[FilterSpec]
    n:                  int
    confidence:         ConfidenceTier
    scope_level:        str
    scope_description:  str
    relaxed_dimensions: List[FilterDimension] = field(default_factory=list)
    attempts:           List[ScopeAttempt] = field(default_factory=list)
    payload:            Optional[T] = None
    flags:              List[str] = field(default_factory=list)

    @property
    def usable(self) -> bool:
        return self.effective is not None

    @property
    def relaxed(self) -> bool:
        return bool(self.relaxed_dimensions)

    def disclosure(self, sampled: bool = False, sample_size: Optional[int] = None) -> ScopeDisclosure:
        """Disclosure prête à sérialiser ; sample_size remplace n si échantillonné."""
        return ScopeDisclosure(
            n=sample_size if (sampled and sample_size is not None) else self.n,
            confidence=self.confidence,
            scope_level=self.scope_level,
            scope_description=self.scope_description,
            relaxed=self.relaxed,
            relaxed_dimensions=list(self.relaxed_dimensions),
            sampled=sampled,
            population_size=self.n,
        )


# ── Chemin de relâchement ─────────────────────────────────────────────────────

def scope_level(spec: FilterSpec) -> str:
    """Dimension active la plus spécifique, ou "global"."""
    active = set(spec.active_dimensions())
    for dim in RELAXATION_ORDER:
        if dim in active:
            return dim.value
    return GLOBAL_SCOPE


def relaxation_path(spec: FilterSpec) -> List[Tuple[FilterSpec, List[FilterDimension]]]:
    """
    Séquence des périmètres essayés : [(spec, dimensions_retirées), ...]
    Commence par le filtre demandé, termine toujours par le global.
    """
    path = [(spec, [])]
    current, dropped = spec, []
    active = set(spec.active_dimensions())
    for dim in RELAXATION_ORDER:
        if dim not in active:
            continue
        current = current.without(dim)
        dropped = dropped + [dim]
        path.append((current, dropped))
    return path


# ── Résolution ────────────────────────────────────────────────────────────────

def resolve_with(
    spec: FilterSpec,
    evaluate: Callable[[FilterSpec], Tuple[Optional[T], int]],
    min_sample: int = MIN_SAMPLE_SIZE,
    high_n: int = CONFIDENCE_HIGH_N,
    medium_n: int = CONFIDENCE_MEDIUM_N,
) -> FallbackResolution[T]:
    """
    Forme générique : evaluate(spec) → (payload | None, n).
    Un périmètre est retenu si payload n'est pas None ET n ≥ min_sample.
    """
    attempts: List[ScopeAttempt] = []
    last_n = 0

    for candidate, dropped in relaxation_path(spec):
        payload, n = evaluate(candidate)
        attempts.append(ScopeAttempt(scope=candidate.describe(), n=n))
        last_n = n
        logger.debug("Fallback %s : n=%d", candidate.describe(), n)

        if payload is None or n < min_sample:
            continue

        tier = confidence_tier(n, min_sample, high_n, medium_n)
        flags = []
        if dropped:
            flags.append(FLAG_SCOPE_RELAXED)
            logger.info(
                "Périmètre élargi : %s → %s (n=%d)",
                spec.describe(), candidate.describe(), n,
            )
        if tier == ConfidenceTier.LOW:
            flags.append(FLAG_LOW_CONFIDENCE)

        return FallbackResolution(
            requested=spec,
            effective=candidate,
            n=n,
            confidence=tier,
            scope_level=scope_level(candidate),
            scope_description=candidate.describe(),
            relaxed_dimensions=list(dropped),
            attempts=attempts,
            payload=payload,
            flags=flags,
        )

    logger.info("Échantillon insuffisant même au global : %s (n=%d)", spec.describe(), last_n)
    return FallbackResolution(
        requested=spec,
        effective=None,
        n=last_n,
        confidence=ConfidenceTier.INSUFFICIENT,
        scope_level=GLOBAL_SCOPE,
        scope_description=GLOBAL_SCOPE,
        relaxed_dimensions=list(spec.active_dimensions()),
        attempts=attempts,
        payload=None,
        flags=[FLAG_INSUFFICIENT_SAMPLE],
    )


def resolve_metric_population(
    points: Sequence[DataPoint],
    spec: FilterSpec,
    metric: MetricKey,
    min_sample: int = MIN_SAMPLE_SIZE,
    high_n: int = CONFIDENCE_HIGH_N,
    medium_n: int = CONFIDENCE_MEDIUM_N,
) -> FallbackResolution[List[DataPoint]]:
    """Population où la métrique est renseignée ; n spécifique à la métrique."""

    def evaluate(candidate: FilterSpec):
        subset = with_metric(apply_filter(points, candidate).points, metric)
        return subset, len(subset)

    return resolve_with(spec, evaluate, min_sample, high_n, medium_n)


def resolve_population(
    points: Sequence[DataPoint],
    spec: FilterSpec,
    min_sample: int = MIN_SAMPLE_SIZE,
    high_n: int = CONFIDENCE_HIGH_N,
    medium_n: int = CONFIDENCE_MEDIUM_N,
) -> FallbackResolution[List[DataPoint]]:
    """Population d'enregistrements, indépendamment d'une métrique."""

    def evaluate(candidate: FilterSpec):
        sample = apply_filter(points, candidate)
        return sample.points, sample.size

    return resolve_with(spec, evaluate, min_sample, high_n, medium_n)
