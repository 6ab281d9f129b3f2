# tests/modules/benchmark/test_service.py
"""
Tests unitaires pour modules.benchmark.service.BenchmarkService

Couverture :
    get_benchmark() / _get_ready() :
        - Introuvable → ValueError "BENCHMARK_NOT_FOUND"
        - Statut ≠ completed → ValueError "BENCHMARK_NOT_READY"

    get_metric_stats() :
        - Clé inconnue → InvalidMetricError, aucun accès DB
        - Filtre inconnu → MalformedFilterError
        - Pré-check agrégé < 30 → InsufficientSampleError, lignes non chargées
        - Succès → stats + disclosure, second appel servi par le cache
        - Lignes chargées avec la contrainte non-null sur la métrique
        - Fallback → SCOPE_RELAXED

    get_correlations() :
        - Outcome invalide → InvalidMetricError
        - Succès → groupes par outcome, by_year
        - Population < 30 → InsufficientSampleError

    get_top_performers() :
        - Trait corrélé en tête, population insuffisante → InsufficientSampleError

    compare() :
        - Validation avant tout accès DB
        - Succès → ComparisonResult complet

    recalculate() :
        - Benchmark en cours → ValueError "BENCHMARK_BUSY"
        - Succès → replace_results, version +1, statut completed, cache invalidé
        - Population plafonnée → sampled / population_size persistés
        - Erreur → rollback, statut failed, exception propagée

    delete_benchmark() :
        - Suppression + invalidation du cache

    compare_segments() :
        - Validation (noms, filtres, métriques) avant tout accès DB
        - Benchmark non prêt → BENCHMARK_NOT_READY
        - Succès → écarts vs premier segment

    get_data_quality() :
        - Disponible quel que soit le statut, second appel servi par le cache
        - Métrique d'outlier inconnue → InvalidMetricError
"""
import pytest
from datetime import datetime
from unittest.mock import AsyncMock

from eq_benchmark.shared.enums import BenchmarkStatus, ComparisonStatus, MetricKey
from eq_benchmark.engine.benchmarking.cache import CacheKey
from eq_benchmark.engine.benchmarking.comparison import EngineThresholds
from eq_benchmark.engine.benchmarking.errors import (
    InsufficientSampleError,
    InvalidMetricError,
    MalformedFilterError,
)
from eq_benchmark.modules.benchmark.service import BenchmarkService
from tests.conftest import (
    make_async_db,
    make_benchmark,
    make_data_point_row,
    make_persisted_statistic,
    make_rows,
)

pytestmark = pytest.mark.service

REPO = "eq_benchmark.modules.benchmark.service.repo"


def _service():
    return BenchmarkService(thresholds=EngineThresholds())


def _paired_rows(n: int, year: int = 2025, **kwargs):
    """K = effectiveness = ramp 65 → 135."""
    rows = []
    for i in range(n):
        v = 65 + i * 70 / n
        rows.append(make_data_point_row(
            id=i + 1,
            assessed_at=datetime(year, 3, 1),
            metrics={"K": v, "effectiveness": v, "EL": 100.0 + (i % 7)},
            **kwargs,
        ))
    return rows


def _patch_ready(mocker, benchmark=None):
    return mocker.patch(f"{REPO}.get_benchmark", AsyncMock(return_value=benchmark or make_benchmark()))


# ── get_benchmark() ───────────────────────────────────────────────────────────

class TestGetBenchmark:
    @pytest.mark.asyncio
    async def test_introuvable(self, mocker):
        mocker.patch(f"{REPO}.get_benchmark", AsyncMock(return_value=None))
        with pytest.raises(ValueError, match="BENCHMARK_NOT_FOUND"):
            await _service().get_benchmark(make_async_db(), 99)

    @pytest.mark.asyncio
    async def test_succes(self, mocker):
        _patch_ready(mocker, make_benchmark(id=4))
        result = await _service().get_benchmark(make_async_db(), 4)
        assert result.id == 4

    @pytest.mark.asyncio
    async def test_list(self, mocker):
        mocker.patch(f"{REPO}.list_benchmarks", AsyncMock(return_value=[make_benchmark()]))
        assert len(await _service().list_benchmarks(make_async_db())) == 1


# ── get_metric_stats() ────────────────────────────────────────────────────────

class TestGetMetricStats:
    @pytest.mark.asyncio
    async def test_cle_inconnue_sans_acces_db(self, mocker):
        get_benchmark = _patch_ready(mocker)
        with pytest.raises(InvalidMetricError):
            await _service().get_metric_stats(make_async_db(), 1, "charisma")
        get_benchmark.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_filtre_inconnu(self, mocker):
        _patch_ready(mocker)
        with pytest.raises(MalformedFilterError):
            await _service().get_metric_stats(make_async_db(), 1, "K", {"team": "A"})

    @pytest.mark.asyncio
    async def test_benchmark_non_pret(self, mocker):
        _patch_ready(mocker, make_benchmark(status=BenchmarkStatus.PROCESSING))
        with pytest.raises(ValueError, match="BENCHMARK_NOT_READY"):
            await _service().get_metric_stats(make_async_db(), 1, "K")

    @pytest.mark.asyncio
    async def test_precheck_insuffisant(self, mocker):
        _patch_ready(mocker)
        mocker.patch(f"{REPO}.get_metric_aggregate", AsyncMock(return_value={"count": 12}))
        get_points = mocker.patch(f"{REPO}.get_data_points", AsyncMock(return_value=[]))

        with pytest.raises(InsufficientSampleError) as exc:
            await _service().get_metric_stats(make_async_db(), 1, "K")
        assert exc.value.n == 12
        get_points.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_succes_puis_cache(self, mocker):
        _patch_ready(mocker)
        mocker.patch(f"{REPO}.get_metric_aggregate", AsyncMock(return_value={"count": 120}))
        get_points = mocker.patch(
            f"{REPO}.get_data_points",
            AsyncMock(return_value=make_rows([80.0 + (i % 40) for i in range(120)])),
        )
        service = _service()

        result = await service.get_metric_stats(make_async_db(), 1, "K")
        again = await service.get_metric_stats(make_async_db(), 1, "K")

        assert result["metric"] == MetricKey.K
        assert result["stats"].n == 120
        assert result["scope"].n == 120
        assert result["label_key"] == "benchmarks.metrics.K"
        assert again is result
        assert get_points.await_count == 1
        assert get_points.await_args.kwargs["non_null_metrics"] == [MetricKey.K]

    @pytest.mark.asyncio
    async def test_fallback(self, mocker):
        _patch_ready(mocker)
        rows = (
            make_rows([100.0] * 5, country="Spain")
            + make_rows([90.0 + (i % 20) for i in range(100)], country="France")
        )
        mocker.patch(f"{REPO}.get_metric_aggregate", AsyncMock(return_value={"count": 105}))
        mocker.patch(f"{REPO}.get_data_points", AsyncMock(return_value=rows))

        result = await _service().get_metric_stats(make_async_db(), 1, "K", {"country": "Spain"})
        assert result["scope"].relaxed
        assert result["scope"].n == 105
        assert "SCOPE_RELAXED" in result["flags"]


# ── get_correlations() ────────────────────────────────────────────────────────

class TestGetCorrelations:
    @pytest.mark.asyncio
    async def test_outcome_invalide(self, mocker):
        _patch_ready(mocker)
        with pytest.raises(InvalidMetricError):
            await _service().get_correlations(make_async_db(), 1, outcome="K")

    @pytest.mark.asyncio
    async def test_succes(self, mocker):
        _patch_ready(mocker)
        mocker.patch(f"{REPO}.get_data_points", AsyncMock(return_value=_paired_rows(60)))

        report = await _service().get_correlations(make_async_db(), 1, by_year=True)

        assert [g["outcome"] for g in report["groups"]] == [MetricKey.EFFECTIVENESS]
        first = report["groups"][0]["correlations"][0]
        assert first.competency == MetricKey.K
        assert first.r == 1.0
        assert list(report["by_year"]) == [2025]
        assert report["scope"].n == 60

    @pytest.mark.asyncio
    async def test_population_insuffisante(self, mocker):
        _patch_ready(mocker)
        mocker.patch(f"{REPO}.get_data_points", AsyncMock(return_value=_paired_rows(10)))
        with pytest.raises(InsufficientSampleError):
            await _service().get_correlations(make_async_db(), 1)


# ── get_top_performers() ──────────────────────────────────────────────────────

class TestGetTopPerformers:
    @pytest.mark.asyncio
    async def test_succes(self, mocker):
        _patch_ready(mocker)
        mocker.patch(f"{REPO}.get_data_points", AsyncMock(return_value=_paired_rows(400)))

        result = await _service().get_top_performers(make_async_db(), 1, "effectiveness")
        profile = result["profile"]
        assert profile.outcome == MetricKey.EFFECTIVENESS
        assert profile.traits[0].metric == MetricKey.K
        assert profile.top_group_size == 40
        assert result["scope"].n == 400

    @pytest.mark.asyncio
    async def test_non_outcome(self, mocker):
        _patch_ready(mocker)
        with pytest.raises(InvalidMetricError):
            await _service().get_top_performers(make_async_db(), 1, "EL")

    @pytest.mark.asyncio
    async def test_population_insuffisante(self, mocker):
        _patch_ready(mocker)
        mocker.patch(f"{REPO}.get_data_points", AsyncMock(return_value=_paired_rows(100)))
        with pytest.raises(InsufficientSampleError):
            await _service().get_top_performers(make_async_db(), 1, "effectiveness")


# ── compare() ─────────────────────────────────────────────────────────────────

class TestCompare:
    @pytest.mark.asyncio
    async def test_validation_avant_db(self, mocker):
        get_benchmark = _patch_ready(mocker)
        with pytest.raises(InvalidMetricError):
            await _service().compare(make_async_db(), 1, {"K": 100.0, "iq": 130.0})
        get_benchmark.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_target_non_outcome(self, mocker):
        get_benchmark = _patch_ready(mocker)
        with pytest.raises(InvalidMetricError):
            await _service().compare(make_async_db(), 1, {"K": 100.0}, target_outcome="EL")
        get_benchmark.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_succes(self, mocker):
        _patch_ready(mocker)
        mocker.patch(f"{REPO}.get_data_points", AsyncMock(return_value=_paired_rows(400)))

        result = await _service().compare(
            make_async_db(), 1, {"K": 130.0, "effectiveness": 125.0},
        )
        assert result.status == ComparisonStatus.COMPLETE
        assert result.target_outcome == MetricKey.EFFECTIVENESS
        assert MetricKey.K in result.strengths
        assert result.top_performers is not None

    @pytest.mark.asyncio
    async def test_population_insuffisante(self, mocker):
        _patch_ready(mocker)
        mocker.patch(f"{REPO}.get_data_points", AsyncMock(return_value=_paired_rows(10)))
        result = await _service().compare(make_async_db(), 1, {"K": 100.0})
        assert result.status == ComparisonStatus.INSUFFICIENT_POPULATION_DATA


# ── recalculate() ─────────────────────────────────────────────────────────────

class TestRecalculate:
    @pytest.mark.asyncio
    async def test_benchmark_occupe(self, mocker):
        _patch_ready(mocker, make_benchmark(status=BenchmarkStatus.PROCESSING))
        with pytest.raises(ValueError, match="BENCHMARK_BUSY"):
            await _service().recalculate(make_async_db(), 1)

    @pytest.mark.asyncio
    async def test_succes(self, mocker):
        benchmark = make_benchmark(version=3)
        _patch_ready(mocker, benchmark)
        mocker.patch(f"{REPO}.get_data_points", AsyncMock(return_value=_paired_rows(400)))
        set_status = mocker.patch(f"{REPO}.set_status", AsyncMock())
        replace = mocker.patch(f"{REPO}.replace_results", AsyncMock())

        service = _service()
        stale = CacheKey(1, 3, "stats", "K", "1|global")
        service.cache.put(stale, {"old": True})

        result = await service.recalculate(make_async_db(), 1)

        assert result["version"] == 4
        assert result["statistics"] == 3           # K, EL, effectiveness
        assert result["top_performers"] == 1
        assert MetricKey.C in result["withheld_metrics"]
        assert benchmark.total_rows == 400

        statuses = [c.args[2] for c in set_status.await_args_list]
        assert statuses == [BenchmarkStatus.PROCESSING, BenchmarkStatus.COMPLETED]

        _, benchmark_id, statistics, correlations, profiles = replace.await_args.args
        assert benchmark_id == 1
        assert {s["metric_key"] for s in statistics} == {"K", "EL", "effectiveness"}
        assert all(s["confidence"] == "high" for s in statistics)
        assert not any(s["sampled"] for s in statistics)
        assert all(s["population_size"] == 400 for s in statistics)
        assert {c["year"] for c in correlations} == {None, 2025}
        assert profiles[0]["outcome_key"] == "effectiveness"
        assert profiles[0]["traits"][0]["metric"] == "K"

        assert stale not in service.cache

    @pytest.mark.asyncio
    async def test_echantillonnage_persiste(self, mocker):
        """Population plafonnée : n = échantillon, sampled + population_size persistés."""
        _patch_ready(mocker)
        mocker.patch(f"{REPO}.get_data_points", AsyncMock(return_value=_paired_rows(1000)))
        mocker.patch(f"{REPO}.set_status", AsyncMock())
        replace = mocker.patch(f"{REPO}.replace_results", AsyncMock())

        service = BenchmarkService(thresholds=EngineThresholds(sampling_cap=100))
        await service.recalculate(make_async_db(), 1)

        _, _, statistics, correlations, _ = replace.await_args.args
        k = next(s for s in statistics if s["metric_key"] == "K")
        assert k["n"] == 100
        assert k["sampled"] is True
        assert k["population_size"] == 1000
        assert k["confidence"] == "medium"

        assert correlations
        assert all(c["sampled"] and c["population_size"] == 1000 for c in correlations)
        assert all(c["n"] <= 100 for c in correlations)

    @pytest.mark.asyncio
    async def test_erreur_statut_failed(self, mocker):
        _patch_ready(mocker)
        mocker.patch(f"{REPO}.get_data_points", AsyncMock(side_effect=RuntimeError("db down")))
        set_status = mocker.patch(f"{REPO}.set_status", AsyncMock())
        db = make_async_db()

        with pytest.raises(RuntimeError):
            await _service().recalculate(db, 1)

        db.rollback.assert_awaited_once()
        last = set_status.await_args_list[-1]
        assert last.args[2] == BenchmarkStatus.FAILED
        assert last.args[3] == "db down"


# ── get_persisted_statistics() / delete_benchmark() ───────────────────────────

class TestPersistedAndDelete:
    @pytest.mark.asyncio
    async def test_statistiques_persistees(self, mocker):
        _patch_ready(mocker)
        mocker.patch(f"{REPO}.get_statistics", AsyncMock(return_value=[make_persisted_statistic()]))
        rows = await _service().get_persisted_statistics(make_async_db(), 1)
        assert rows[0].metric_key == "K"

    @pytest.mark.asyncio
    async def test_suppression_invalide_le_cache(self, mocker):
        _patch_ready(mocker)
        delete = mocker.patch(f"{REPO}.delete_benchmark", AsyncMock())
        service = _service()
        key = CacheKey(1, 1, "stats", "K", "1|global")
        service.cache.put(key, {})

        await service.delete_benchmark(make_async_db(), 1)

        delete.assert_awaited_once()
        assert key not in service.cache

    @pytest.mark.asyncio
    async def test_suppression_introuvable(self, mocker):
        mocker.patch(f"{REPO}.get_benchmark", AsyncMock(return_value=None))
        with pytest.raises(ValueError, match="BENCHMARK_NOT_FOUND"):
            await _service().delete_benchmark(make_async_db(), 1)


# ── compare_segments() ────────────────────────────────────────────────────────

SEGMENTS = [
    {"name": "Europe", "filters": {"region": "Europe"}},
    {"name": "Asie", "filters": {"region": "Asia"}, "year": None},
]


def _segment_rows():
    return (
        make_rows([100.0] * 40, region="Europe")
        + make_rows([110.0] * 40, region="Asia", country="Japan")
    )


class TestCompareSegments:
    @pytest.mark.asyncio
    async def test_nom_duplique_avant_db(self, mocker):
        get_benchmark = _patch_ready(mocker)
        segments = [SEGMENTS[0], {"name": "Europe", "filters": {"country": "France"}}]
        with pytest.raises(ValueError, match="SEGMENT_NAME_DUPLICATE"):
            await _service().compare_segments(make_async_db(), 1, segments)
        get_benchmark.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_filtre_et_metrique_inconnus(self, mocker):
        get_benchmark = _patch_ready(mocker)
        with pytest.raises(MalformedFilterError):
            await _service().compare_segments(
                make_async_db(), 1, [SEGMENTS[0], {"name": "X", "filters": {"planet": "Mars"}}],
            )
        with pytest.raises(InvalidMetricError):
            await _service().compare_segments(make_async_db(), 1, SEGMENTS, ["iq"])
        get_benchmark.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_benchmark_non_pret(self, mocker):
        _patch_ready(mocker, make_benchmark(status=BenchmarkStatus.PROCESSING))
        with pytest.raises(ValueError, match="BENCHMARK_NOT_READY"):
            await _service().compare_segments(make_async_db(), 1, SEGMENTS)

    @pytest.mark.asyncio
    async def test_succes(self, mocker):
        _patch_ready(mocker)
        mocker.patch(f"{REPO}.get_data_points", AsyncMock(return_value=_segment_rows()))

        result = await _service().compare_segments(make_async_db(), 1, SEGMENTS, ["K"])

        assert result.base_segment == "Europe"
        [row] = result.metrics
        assert [c.scope.n for c in row.cells] == [40, 40]
        assert row.differences[0].segment == "Asie"
        assert row.differences[0].mean_diff_percent == 10.0
        assert [s.sample_size for s in result.segments] == [40, 40]


# ── get_data_quality() ────────────────────────────────────────────────────────

class TestDataQuality:
    @pytest.mark.asyncio
    async def test_disponible_hors_statut_completed_puis_cache(self, mocker):
        _patch_ready(mocker, make_benchmark(status=BenchmarkStatus.FAILED))
        rows = make_rows([100.0] * 20, metric="eqTotal") + [
            make_data_point_row(id=99, identity_key="p-1", metrics={"eqTotal": 200.0}),
            make_data_point_row(id=100, identity_key="p-1", metrics={"eqTotal": 100.0}),
        ]
        get_points = mocker.patch(f"{REPO}.get_data_points", AsyncMock(return_value=rows))
        service = _service()

        report = await service.get_data_quality(make_async_db(), 1)
        again = await service.get_data_quality(make_async_db(), 1)

        assert report.total_records == 22
        assert report.total_duplicate_groups == 1
        assert report.outlier_summary.metric == MetricKey.EQ_TOTAL
        assert [o.value for o in report.outliers] == [200.0]
        assert again is report
        get_points.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_metrique_outlier_inconnue(self, mocker):
        get_benchmark = _patch_ready(mocker)
        with pytest.raises(InvalidMetricError):
            await _service().get_data_quality(make_async_db(), 1, "iq")
        get_benchmark.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_introuvable(self, mocker):
        mocker.patch(f"{REPO}.get_benchmark", AsyncMock(return_value=None))
        with pytest.raises(ValueError, match="BENCHMARK_NOT_FOUND"):
            await _service().get_data_quality(make_async_db(), 1)
