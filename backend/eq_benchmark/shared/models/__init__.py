# eq_benchmark/shared/models/__init__.py
"""
Point d'entrée unique pour tous les modèles SQLAlchemy.

TOUJOURS importer les modèles depuis ce fichier :
  from eq_benchmark.shared.models import Benchmark, BenchmarkDataPoint, ...

→ Garantit que tous les modèles sont enregistrés dans Base.metadata
  avant la création des tables (Alembic, create_all).
"""

from eq_benchmark.shared.models.Benchmark import (
    Benchmark,
    BenchmarkDataPoint,
    BenchmarkStatistic,
    BenchmarkCorrelation,
    BenchmarkTopPerformer,
)

__all__ = [
    "Benchmark",
    "BenchmarkDataPoint",
    # Résultats persistés
    "BenchmarkStatistic",
    "BenchmarkCorrelation",
    "BenchmarkTopPerformer",
]
