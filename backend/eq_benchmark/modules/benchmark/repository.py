# modules/benchmark/repository.py
"""
Accès DB pour les benchmarks, leurs DataPoints et les résultats persistés.

Deux capacités de requête consommées par le moteur :
- get_data_points()       → lignes brutes filtrées (égalité démographique)
                            + contrainte non-null par métrique
- get_metric_aggregate()  → count / mean / min / max (pré-check rapide
                            avant de tirer les lignes pour les centiles)

Aucun calcul statistique ici : tout passe par engine.benchmarking.
"""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func, Float
from typing import Dict, List, Optional, Sequence

from eq_benchmark.shared.enums import BenchmarkStatus, FilterDimension, MetricKey
from eq_benchmark.shared.models import (
    Benchmark,
    BenchmarkDataPoint,
    BenchmarkStatistic,
    BenchmarkCorrelation,
    BenchmarkTopPerformer,
)


def _metric_expr(metric: MetricKey):
    return BenchmarkDataPoint.metrics[metric.value].as_float()


def _apply_filters(stmt, filters: Optional[Dict[str, str]]):
    for key, value in (filters or {}).items():
        if value is None:
            continue
        column = getattr(BenchmarkDataPoint, FilterDimension(key).value)
        stmt = stmt.where(column == value)
    return stmt


class BenchmarkRepository:

    # ── Benchmarks ───────────────────────────────────────────

    async def list_benchmarks(self, db: AsyncSession) -> List[Benchmark]:
        r = await db.execute(select(Benchmark).order_by(Benchmark.created_at.desc()))
        return list(r.scalars().all())

    async def get_benchmark(self, db: AsyncSession, benchmark_id: int) -> Optional[Benchmark]:
        r = await db.execute(select(Benchmark).where(Benchmark.id == benchmark_id))
        return r.scalar_one_or_none()

    async def set_status(
        self,
        db: AsyncSession,
        benchmark: Benchmark,
        status: BenchmarkStatus,
        error_message: Optional[str] = None,
    ) -> Benchmark:
        benchmark.status = status
        benchmark.error_message = error_message
        await db.commit()
        await db.refresh(benchmark)
        return benchmark

    async def delete_benchmark(self, db: AsyncSession, benchmark: Benchmark) -> None:
        """Suppression en masse : DataPoints et résultats partent en cascade."""
        await db.delete(benchmark)
        await db.commit()

    # ── DataPoints ───────────────────────────────────────────

    async def get_data_points(
        self,
        db: AsyncSession,
        benchmark_id: int,
        filters: Optional[Dict[str, str]] = None,
        non_null_metrics: Optional[Sequence[MetricKey]] = None,
    ) -> List[BenchmarkDataPoint]:
        stmt = select(BenchmarkDataPoint).where(BenchmarkDataPoint.benchmark_id == benchmark_id)
        stmt = _apply_filters(stmt, filters)
        for metric in non_null_metrics or []:
            stmt = stmt.where(_metric_expr(metric).is_not(None))
        r = await db.execute(stmt.order_by(BenchmarkDataPoint.id))
        return list(r.scalars().all())

    async def get_metric_aggregate(
        self,
        db: AsyncSession,
        benchmark_id: int,
        metric: MetricKey,
        filters: Optional[Dict[str, str]] = None,
    ) -> Dict:
        expr = _metric_expr(metric)
        stmt = select(
            func.count(expr),
            func.avg(expr).cast(Float),
            func.min(expr),
            func.max(expr),
        ).where(BenchmarkDataPoint.benchmark_id == benchmark_id)
        stmt = _apply_filters(stmt, filters)
        r = await db.execute(stmt)
        count, avg, lo, hi = r.one()
        return {"count": count or 0, "mean": avg, "min": lo, "max": hi}

    # ── Résultats persistés ──────────────────────────────────

    async def replace_results(
        self,
        db: AsyncSession,
        benchmark_id: int,
        statistics: List[Dict],
        correlations: List[Dict],
        top_performers: List[Dict],
    ) -> None:
        """Remplace l'intégralité des résultats d'un benchmark (une transaction)."""
        for model in (BenchmarkStatistic, BenchmarkCorrelation, BenchmarkTopPerformer):
            await db.execute(delete(model).where(model.benchmark_id == benchmark_id))

        db.add_all([BenchmarkStatistic(benchmark_id=benchmark_id, **s) for s in statistics])
        db.add_all([BenchmarkCorrelation(benchmark_id=benchmark_id, **c) for c in correlations])
        db.add_all([BenchmarkTopPerformer(benchmark_id=benchmark_id, **t) for t in top_performers])
        await db.commit()

    async def get_statistics(
        self, db: AsyncSession, benchmark_id: int, scope_key: str = "global"
    ) -> List[BenchmarkStatistic]:
        r = await db.execute(
            select(BenchmarkStatistic).where(
                BenchmarkStatistic.benchmark_id == benchmark_id,
                BenchmarkStatistic.scope_key == scope_key,
            )
        )
        return list(r.scalars().all())
