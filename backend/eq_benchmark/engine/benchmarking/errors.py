# engine/benchmarking/errors.py
"""
Erreurs structurelles du moteur de benchmark.

Toutes héritent de ValueError : les routers les traduisent en HTTPException
comme n'importe quel ValueError("CODE") levé par un service.

L'absence de données (tableau vide, < 3 paires) n'est PAS une erreur :
les primitives retournent None. Seules les requêtes mal formées lèvent.
"""
from typing import Optional


class InvalidMetricError(ValueError):
    """Clé de métrique absente du catalogue."""

    def __init__(self, key: object):
        self.key = key
        super().__init__(f"INVALID_METRIC: {key}")


class MalformedFilterError(ValueError):
    """Dimension de filtre sans champ démographique correspondant."""

    def __init__(self, dimension: object):
        self.dimension = dimension
        super().__init__(f"MALFORMED_FILTER: {dimension}")


class InsufficientSampleError(ValueError):
    """
    Moins de MIN_SAMPLE_SIZE observations, même après fallback global.
    Levée par le service quand un endpoint exige une statistique unique.
    """

    def __init__(self, subject: object, n: int, scope: Optional[str] = None):
        self.subject = subject
        self.n = n
        self.scope = scope
        super().__init__(f"INSUFFICIENT_SAMPLE: {subject} (n={n})")
