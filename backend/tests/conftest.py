# tests/conftest.py
"""
Fixtures et factories partagées sur l'ensemble de la suite de tests.

Trois couches :
    1. Engine  : fonctions pures, aucun mock nécessaire (factories de DataPoints)
    2. Service : mocks AsyncSession + repo via pytest-mock
    3. Router  : httpx.AsyncClient + dependency_overrides FastAPI
"""
import pytest
from types import SimpleNamespace
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import numpy as np
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

from eq_benchmark.main import app
from eq_benchmark.core.database import get_db
from eq_benchmark.shared.enums import BenchmarkStatus, MetricKey
from eq_benchmark.engine.benchmarking.catalog import PROFILED_TRAITS, get_metric
from eq_benchmark.engine.benchmarking.sample_filter import DataPoint


# ── DataPoints (input principal de l'engine) ──────────────────────────────────

def make_point(metrics: dict = None, **kwargs) -> DataPoint:
    """DataPoint avec attributs démographiques par défaut (France / Tech)."""
    defaults = {
        "identity_key": None,
        "assessed_at": None,
        "country": "France",
        "region": "Europe",
        "sector": "Tech",
        "job_function": None,
        "job_role": None,
    }
    defaults.update(kwargs)
    return DataPoint(metrics=metrics or {}, **defaults)


def make_population(values, metric: MetricKey = MetricKey.K, **kwargs) -> list:
    """Une population où seule `metric` est renseignée."""
    return [make_point({metric: v}, **kwargs) for v in values]


def make_outcome_population(
    n: int = 400,
    outcome: MetricKey = MetricKey.EFFECTIVENESS,
    driver: MetricKey = MetricKey.K,
    seed: int = 7,
    **kwargs,
) -> list:
    """
    Population synthétique :
        outcome = 65 + i × 70 / n   (uniforme sur l'échelle SEI)
        driver  = outcome           (corrélation parfaite)
        autres traits = bruit uniforme sur leur échelle (seed fixe)
    """
    rng = np.random.default_rng(seed)
    points = []
    for i in range(n):
        value = 65 + i * 70 / n
        metrics = {outcome: value, driver: value}
        for trait in PROFILED_TRAITS:
            if trait == driver:
                continue
            scale = get_metric(trait)
            metrics[trait] = float(rng.uniform(scale.min_value, scale.max_value))
        points.append(make_point(metrics, **kwargs))
    return points


# ── Factories de modèles ORM (SimpleNamespace, léger, sans ORM) ──────────────

def make_benchmark(**kwargs) -> SimpleNamespace:
    defaults = {
        "id": 1,
        "name": "SEI Global 2025",
        "description": None,
        "version": 1,
        "status": BenchmarkStatus.COMPLETED,
        "total_rows": 0,
        "error_message": None,
        "created_at": datetime(2025, 1, 1),
        "updated_at": None,
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def make_data_point_row(**kwargs) -> SimpleNamespace:
    defaults = {
        "id": 1,
        "benchmark_id": 1,
        "identity_key": None,
        "assessed_at": datetime(2025, 3, 1),
        "country": "France",
        "region": "Europe",
        "sector": "Tech",
        "job_function": None,
        "job_role": None,
        "age_range": None,
        "gender": None,
        "education": None,
        "source_id": None,
        "metrics": {"K": 100.0},
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


def make_rows(values, metric: str = "K", **kwargs) -> list:
    return [
        make_data_point_row(id=i + 1, metrics={metric: v}, **kwargs)
        for i, v in enumerate(values)
    ]


def make_persisted_statistic(**kwargs) -> SimpleNamespace:
    defaults = {
        "id": 1,
        "benchmark_id": 1,
        "metric_key": "K",
        "scope_key": "global",
        "confidence": "high",
        "n": 500, "mean": 100.0, "median": 100.0, "std_dev": 15.0,
        "min": 65.0, "max": 135.0,
        "p10": 80.0, "p25": 90.0, "p50": 100.0, "p75": 110.0, "p90": 120.0, "p95": 125.0,
        "sampled": False,
        "population_size": 500,
        "computed_at": datetime(2025, 1, 2),
    }
    defaults.update(kwargs)
    return SimpleNamespace(**defaults)


# ── Mock AsyncSession ─────────────────────────────────────────────────────────

def make_async_db() -> AsyncMock:
    """AsyncMock simulant une AsyncSession SQLAlchemy."""
    db = AsyncMock(spec=AsyncSession)
    added_objects: list = []

    def capture_add(obj):
        added_objects.append(obj)

    db.add = MagicMock(side_effect=capture_add)
    db.add_all = MagicMock(side_effect=lambda objs: added_objects.extend(objs))
    db._added = added_objects
    return db


# ── Fixtures HTTP (httpx.AsyncClient + dependency_overrides) ─────────────────

@pytest.fixture
async def client():
    """Client HTTP : le service est mocké endpoint par endpoint."""
    mock_db = AsyncMock(spec=AsyncSession)
    app.dependency_overrides[get_db] = lambda: mock_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
