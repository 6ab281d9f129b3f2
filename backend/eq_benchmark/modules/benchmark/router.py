# modules/benchmark/router.py
"""
Endpoints du moteur de benchmark comparatif.

Lecture seule sur la population (sauf recalcul / suppression en masse).
Toute statistique renvoyée porte son n, son niveau de confiance et le
périmètre réellement utilisé.

Erreurs :
    clé de métrique / filtre inconnu → 400
    benchmark introuvable            → 404
    benchmark non terminé / occupé   → 409
    échantillon insuffisant          → 422
"""
from fastapi import APIRouter, HTTPException, Query, status
from typing import List, Optional

from eq_benchmark.shared.deps import DbDep, FiltersDep
from eq_benchmark.engine.benchmarking.errors import (
    InsufficientSampleError,
    InvalidMetricError,
    MalformedFilterError,
)
from eq_benchmark.modules.benchmark.service import BenchmarkService
from eq_benchmark.modules.benchmark.schemas import (
    BenchmarkOut,
    CompareIn,
    ComparisonOut,
    CorrelationReportOut,
    DataQualityOut,
    MetricStatsOut,
    PersistedStatisticOut,
    RecalculateOut,
    SegmentCompareIn,
    SegmentComparisonOut,
    TopPerformerReportOut,
)

router = APIRouter(prefix="/benchmarks", tags=["Benchmarks"])
service = BenchmarkService()


def _raise_http(e: ValueError):
    if isinstance(e, (InvalidMetricError, MalformedFilterError)):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, InsufficientSampleError):
        raise HTTPException(
            status_code=422,
            detail={"code": "INSUFFICIENT_SAMPLE", "subject": str(e.subject), "n": e.n, "scope": e.scope},
        )
    code = str(e)
    if code == "BENCHMARK_NOT_FOUND":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Benchmark introuvable.")
    if code in ("BENCHMARK_NOT_READY", "BENCHMARK_BUSY"):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=code)
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=code)


# ─────────────────────────────────────────────
# Benchmarks
# ─────────────────────────────────────────────

@router.get("", response_model=List[BenchmarkOut], summary="Lister les benchmarks")
async def list_benchmarks(db: DbDep):
    return await service.list_benchmarks(db)


@router.get("/{benchmark_id}", response_model=BenchmarkOut, summary="Détail d'un benchmark")
async def get_benchmark(benchmark_id: int, db: DbDep):
    try:
        return await service.get_benchmark(db, benchmark_id)
    except ValueError as e:
        _raise_http(e)


@router.delete(
    "/{benchmark_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Supprimer un benchmark et toute sa population",
)
async def delete_benchmark(benchmark_id: int, db: DbDep):
    try:
        await service.delete_benchmark(db, benchmark_id)
    except ValueError as e:
        _raise_http(e)


@router.post(
    "/{benchmark_id}/recalculate",
    response_model=RecalculateOut,
    summary="Recalculer et persister les résultats",
    description=(
        "Recalcule les statistiques globales, la matrice de corrélation "
        "(globale et par année) et les profils top performers de chaque outcome. "
        "Invalide le cache du benchmark."
    ),
)
async def recalculate(benchmark_id: int, db: DbDep):
    try:
        return await service.recalculate(db, benchmark_id)
    except ValueError as e:
        _raise_http(e)


# ─────────────────────────────────────────────
# Statistiques
# ─────────────────────────────────────────────

@router.get(
    "/{benchmark_id}/statistics",
    response_model=List[PersistedStatisticOut],
    summary="Statistiques persistées (dernier recalcul)",
)
async def get_persisted_statistics(benchmark_id: int, db: DbDep):
    try:
        return await service.get_persisted_statistics(db, benchmark_id)
    except ValueError as e:
        _raise_http(e)


@router.get(
    "/{benchmark_id}/stats/{metric}",
    response_model=MetricStatsOut,
    summary="Statistiques d'une métrique",
    description="Avec fallback de périmètre si le filtre demandé donne n < 30.",
)
async def get_metric_stats(benchmark_id: int, metric: str, db: DbDep, filters: FiltersDep):
    try:
        return await service.get_metric_stats(db, benchmark_id, metric, filters)
    except ValueError as e:
        _raise_http(e)


# ─────────────────────────────────────────────
# Corrélations & Top performers
# ─────────────────────────────────────────────

@router.get(
    "/{benchmark_id}/correlations",
    response_model=CorrelationReportOut,
    summary="Corrélations compétences ↔ outcomes",
    description="Groupées par outcome, triées par |r| décroissant. Paires n < 30 omises.",
)
async def get_correlations(
    benchmark_id: int,
    db: DbDep,
    filters: FiltersDep,
    outcome: Optional[str] = Query(None),
    by_year: bool = Query(False),
):
    try:
        return await service.get_correlations(db, benchmark_id, filters, outcome, by_year)
    except ValueError as e:
        _raise_http(e)


@router.get(
    "/{benchmark_id}/top-performers/{outcome}",
    response_model=TopPerformerReportOut,
    summary="Profil des top performers d'un outcome",
)
async def get_top_performers(
    benchmark_id: int,
    outcome: str,
    db: DbDep,
    filters: FiltersDep,
    quantile: Optional[float] = Query(None, gt=0, lt=100),
):
    try:
        return await service.get_top_performers(db, benchmark_id, outcome, filters, quantile)
    except ValueError as e:
        _raise_http(e)


# ─────────────────────────────────────────────
# Comparaison individuelle
# ─────────────────────────────────────────────

@router.post(
    "/{benchmark_id}/compare",
    response_model=ComparisonOut,
    summary="Comparer un individu à la population",
    description=(
        "Rang centile par métrique, forces (≥ 75) et axes de progrès (≤ 25), "
        "profil top performers et corrélations de l'outcome le plus fort. "
        "status = insufficient_population_data si aucune métrique n'est comparable."
    ),
)
async def compare_individual(benchmark_id: int, payload: CompareIn, db: DbDep):
    try:
        return await service.compare(
            db,
            benchmark_id,
            payload.metrics,
            payload.filters,
            payload.target_outcome,
        )
    except ValueError as e:
        _raise_http(e)


# ─────────────────────────────────────────────
# Segments & qualité des données
# ─────────────────────────────────────────────

@router.post(
    "/{benchmark_id}/compare-segments",
    response_model=SegmentComparisonOut,
    summary="Comparer des segments nommés",
    description=(
        "Statistiques par segment et par métrique, écarts vs le premier segment, "
        "écarts marquants et top compétences par segment. Pas de fallback : "
        "une cellule n < 30 est retenue (stats nulles)."
    ),
)
async def compare_segments(benchmark_id: int, payload: SegmentCompareIn, db: DbDep):
    try:
        return await service.compare_segments(
            db,
            benchmark_id,
            [s.model_dump() for s in payload.segments],
            payload.metrics,
        )
    except ValueError as e:
        _raise_http(e)


@router.get(
    "/{benchmark_id}/data-quality",
    response_model=DataQualityOut,
    summary="Qualité des données importées",
    description="Complétude par champ, doublons d'identité, outliers à ±2σ et score 0–100.",
)
async def get_data_quality(
    benchmark_id: int,
    db: DbDep,
    outlier_metric: Optional[str] = Query(None),
):
    try:
        return await service.get_data_quality(db, benchmark_id, outlier_metric)
    except ValueError as e:
        _raise_http(e)
