# engine/benchmarking/catalog.py
"""
Catalogue des métriques analysables.

Quatre familles :
    core        → K (Know Yourself), C (Choose Yourself), G (Give Yourself), eqTotal
    competency  → EL, RP, ACT, NE, IM, OP, EMP, NG
    outcome     → 12 résultats de vie (effectiveness … health)
    talent      → 18 talents du Brain Talent Profile

Échelles :
    core / competency / outcome → échelle normée SEI 65–135 (moyenne 100)
    talent                      → 0–100

Accès typé uniquement : toute clé inconnue lève InvalidMetricError
AVANT le moindre calcul. Aucun accès par chaîne arbitraire dans l'engine.

L'ordre de déclaration de METRIC_CATALOG est l'ordre canonique :
tous les tris à égalité (effect size, |r|) s'y réfèrent.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Tuple, Union

from eq_benchmark.shared.enums import MetricCategory, MetricKey
from eq_benchmark.engine.benchmarking.errors import InvalidMetricError


# ── Échelles ──────────────────────────────────────────────────────────────────

SEI_SCALE_MIN    = 65.0
SEI_SCALE_MAX    = 135.0
TALENT_SCALE_MIN = 0.0
TALENT_SCALE_MAX = 100.0

LABEL_PREFIX = "benchmarks"


@dataclass(frozen=True)
class MetricDefinition:
    """Définition statique d'une métrique du catalogue."""
    key:       MetricKey
    category:  MetricCategory
    label_key: str           # clé i18n, résolue côté UI
    min_value: float
    max_value: float

    def contains(self, value: float) -> bool:
        return self.min_value <= value <= self.max_value


# ── Familles ──────────────────────────────────────────────────────────────────

CORE_INDICES: Tuple[MetricKey, ...] = (
    MetricKey.K, MetricKey.C, MetricKey.G, MetricKey.EQ_TOTAL,
)

COMPETENCIES: Tuple[MetricKey, ...] = (
    MetricKey.EL, MetricKey.RP, MetricKey.ACT, MetricKey.NE,
    MetricKey.IM, MetricKey.OP, MetricKey.EMP, MetricKey.NG,
)

OUTCOMES: Tuple[MetricKey, ...] = (
    MetricKey.EFFECTIVENESS, MetricKey.RELATIONSHIPS, MetricKey.QUALITY_OF_LIFE,
    MetricKey.WELLBEING, MetricKey.INFLUENCE, MetricKey.DECISION_MAKING,
    MetricKey.COMMUNITY, MetricKey.NETWORK, MetricKey.ACHIEVEMENT,
    MetricKey.SATISFACTION, MetricKey.BALANCE, MetricKey.HEALTH,
)

TALENTS: Tuple[MetricKey, ...] = (
    MetricKey.DATA_MINING, MetricKey.MODELING, MetricKey.PRIORITIZING,
    MetricKey.CONNECTION, MetricKey.EMOTIONAL_INSIGHT, MetricKey.COLLABORATION,
    MetricKey.REFLECTING, MetricKey.ADAPTABILITY, MetricKey.CRITICAL_THINKING,
    MetricKey.RESILIENCE, MetricKey.RISK_TOLERANCE, MetricKey.IMAGINATION,
    MetricKey.PROACTIVITY, MetricKey.COMMITMENT, MetricKey.PROBLEM_SOLVING,
    MetricKey.VISION, MetricKey.DESIGNING, MetricKey.ENTREPRENEURSHIP,
)

# Compétences EQ croisées avec les outcomes : K, C, G + les 8 compétences
# (eqTotal exclu, c'est un agrégat des trois indices)
EQ_COMPETENCIES: Tuple[MetricKey, ...] = (
    MetricKey.K, MetricKey.C, MetricKey.G,
) + COMPETENCIES

# Traits comparés dans le profil top performers : tout sauf les outcomes
PROFILED_TRAITS: Tuple[MetricKey, ...] = CORE_INDICES + COMPETENCIES + TALENTS


def _define(keys, category: MetricCategory, label_group: str,
            lo: float, hi: float) -> List[MetricDefinition]:
    return [
        MetricDefinition(
            key=k,
            category=category,
            label_key=f"{LABEL_PREFIX}.{label_group}.{k.value}",
            min_value=lo,
            max_value=hi,
        )
        for k in keys
    ]


METRIC_CATALOG: Tuple[MetricDefinition, ...] = tuple(
    _define(CORE_INDICES, MetricCategory.CORE,       "metrics",  SEI_SCALE_MIN, SEI_SCALE_MAX)
    + _define(COMPETENCIES, MetricCategory.COMPETENCY, "metrics",  SEI_SCALE_MIN, SEI_SCALE_MAX)
    + _define(OUTCOMES,     MetricCategory.OUTCOME,    "outcomes", SEI_SCALE_MIN, SEI_SCALE_MAX)
    + _define(TALENTS,      MetricCategory.TALENT,     "talents",  TALENT_SCALE_MIN, TALENT_SCALE_MAX)
)

_BY_KEY: Dict[MetricKey, MetricDefinition] = {d.key: d for d in METRIC_CATALOG}
_INDEX:  Dict[MetricKey, int] = {d.key: i for i, d in enumerate(METRIC_CATALOG)}


# ── Accès ─────────────────────────────────────────────────────────────────────

def resolve_metric_key(key: Union[str, MetricKey]) -> MetricKey:
    """Convertit une clé brute (API, JSON) en MetricKey. Lève InvalidMetricError."""
    if isinstance(key, MetricKey):
        return key
    try:
        return MetricKey(key)
    except ValueError:
        raise InvalidMetricError(key) from None


def get_metric(key: Union[str, MetricKey]) -> MetricDefinition:
    return _BY_KEY[resolve_metric_key(key)]


def catalog_index(key: MetricKey) -> int:
    """Position dans l'ordre canonique du catalogue (tie-break stable)."""
    return _INDEX[key]


def metrics_in(*categories: MetricCategory) -> List[MetricKey]:
    wanted = set(categories)
    return [d.key for d in METRIC_CATALOG if d.category in wanted]


def is_outcome(key: MetricKey) -> bool:
    return _BY_KEY[key].category == MetricCategory.OUTCOME
