# eq_benchmark/shared/enums.py
"""
Toutes les énumérations du projet EQ Benchmark.

Source unique de vérité pour les statuts, catégories, clés de métriques
et niveaux de confiance.
Importé par les modèles, schemas, services et engine.
"""

from enum import Enum

class BenchmarkStatus(str, Enum):
    PENDING    = "pending"
    PROCESSING = "processing"
    COMPLETED  = "completed"
    FAILED     = "failed"


class MetricCategory(str, Enum):
    CORE       = "core"         # Know / Choose / Give + EQ total
    COMPETENCY = "competency"   # 8 compétences SEI
    OUTCOME    = "outcome"      # 12 résultats de vie
    TALENT     = "talent"       # 18 talents (Brain Talent Profile)


class MetricKey(str, Enum):
    """
    Catalogue fermé des métriques analysables.
    L'ordre de déclaration sert de tie-break déterministe partout dans l'engine.
    """
    # ── Indices principaux
    K        = "K"
    C        = "C"
    G        = "G"
    EQ_TOTAL = "eqTotal"

    # ── Compétences
    EL  = "EL"    # Enhance Emotional Literacy
    RP  = "RP"    # Recognize Patterns
    ACT = "ACT"   # Apply Consequential Thinking
    NE  = "NE"    # Navigate Emotions
    IM  = "IM"    # Engage Intrinsic Motivation
    OP  = "OP"    # Exercise Optimism
    EMP = "EMP"   # Increase Empathy
    NG  = "NG"    # Pursue Noble Goals

    # ── Outcomes
    EFFECTIVENESS   = "effectiveness"
    RELATIONSHIPS   = "relationships"
    QUALITY_OF_LIFE = "qualityOfLife"
    WELLBEING       = "wellbeing"
    INFLUENCE       = "influence"
    DECISION_MAKING = "decisionMaking"
    COMMUNITY       = "community"
    NETWORK         = "network"
    ACHIEVEMENT     = "achievement"
    SATISFACTION    = "satisfaction"
    BALANCE         = "balance"
    HEALTH          = "health"

    # ── Talents
    DATA_MINING        = "dataMining"
    MODELING           = "modeling"
    PRIORITIZING       = "prioritizing"
    CONNECTION         = "connection"
    EMOTIONAL_INSIGHT  = "emotionalInsight"
    COLLABORATION      = "collaboration"
    REFLECTING         = "reflecting"
    ADAPTABILITY       = "adaptability"
    CRITICAL_THINKING  = "criticalThinking"
    RESILIENCE         = "resilience"
    RISK_TOLERANCE     = "riskTolerance"
    IMAGINATION        = "imagination"
    PROACTIVITY        = "proactivity"
    COMMITMENT         = "commitment"
    PROBLEM_SOLVING    = "problemSolving"
    VISION             = "vision"
    DESIGNING          = "designing"
    ENTREPRENEURSHIP   = "entrepreneurship"


class FilterDimension(str, Enum):
    COUNTRY      = "country"
    REGION       = "region"
    SECTOR       = "sector"
    JOB_FUNCTION = "job_function"
    JOB_ROLE     = "job_role"
    AGE_RANGE    = "age_range"
    GENDER       = "gender"
    EDUCATION    = "education"
    SOURCE_ID    = "source_id"    # collection / campagne d'import d'origine


class ConfidenceTier(str, Enum):
    HIGH         = "high"
    MEDIUM       = "medium"
    LOW          = "low"
    INSUFFICIENT = "insufficient"   # n < 30 → non reportable


class EffectMagnitude(str, Enum):
    NEGLIGIBLE = "negligible"
    SMALL      = "small"
    MEDIUM     = "medium"
    LARGE      = "large"


class CorrelationStrength(str, Enum):
    STRONG   = "strong"
    MODERATE = "moderate"
    WEAK     = "weak"


class CorrelationDirection(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NONE     = "none"


class PercentileClass(str, Enum):
    STRENGTH    = "strength"
    GROWTH_AREA = "growth_area"
    NEUTRAL     = "neutral"


class TopPerformerPosition(str, Enum):
    ABOVE = "above"
    AT    = "at"
    BELOW = "below"


class ComparisonStatus(str, Enum):
    COMPLETE                     = "complete"
    INSUFFICIENT_POPULATION_DATA = "insufficient_population_data"


class SamplingStrategy(str, Enum):
    STRIDE = "stride"   # pas d'indice déterministe
    RANDOM = "random"   # tirage uniforme sans remise (numpy Generator)


class DevelopmentPriority(str, Enum):
    HIGH   = "high"
    MEDIUM = "medium"
    LOW    = "low"
