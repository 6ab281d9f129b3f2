# modules/benchmark/service.py
"""
Service Benchmark : chargement unique des DataPoints → moteur → cache.

Règles :
- Les DataPoints sont chargés UNE fois par requête, avant tout calcul.
- Le moteur (engine/benchmarking) ne touche jamais la DB.
- Le cache est détenu par l'instance de service et invalidé à chaque
  recalcul / suppression ; la version du benchmark fait partie de la clé.
- Un benchmark non "completed" n'est pas analysable (BENCHMARK_NOT_READY).
"""
from __future__ import annotations
from dataclasses import asdict
from typing import Dict, List, Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from eq_benchmark.core.config import settings
from eq_benchmark.shared.enums import BenchmarkStatus, MetricKey, SamplingStrategy
from eq_benchmark.shared.models import Benchmark
from eq_benchmark.modules.benchmark.repository import BenchmarkRepository
from eq_benchmark.engine.benchmarking.cache import CacheKey, StatsCache
from eq_benchmark.engine.benchmarking.catalog import (
    METRIC_CATALOG,
    OUTCOMES,
    get_metric,
    is_outcome,
    resolve_metric_key,
)
from eq_benchmark.engine.benchmarking.comparison import EngineThresholds, compare
from eq_benchmark.engine.benchmarking.correlation import (
    analyze_by_year,
    analyze_correlations,
    group_by_outcome,
)
from eq_benchmark.engine.benchmarking.data_quality import DataQualityReport, analyze_data_quality
from eq_benchmark.engine.benchmarking.errors import InsufficientSampleError, InvalidMetricError
from eq_benchmark.engine.benchmarking.fallback import (
    confidence_tier,
    resolve_metric_population,
    resolve_population,
)
from eq_benchmark.engine.benchmarking.sample_filter import DataPoint, FilterSpec, metric_values
from eq_benchmark.engine.benchmarking.sampling import SamplingInfo, cap_population
from eq_benchmark.engine.benchmarking.segments import (
    Segment,
    SegmentComparison,
    compare_segments,
    resolve_metrics,
    validate_segments,
)
from eq_benchmark.engine.benchmarking.statistics import calculate_stats
from eq_benchmark.engine.benchmarking.top_performers import profile_with_fallback

logger = logging.getLogger(__name__)

repo = BenchmarkRepository()


def thresholds_from_settings() -> EngineThresholds:
    return EngineThresholds(
        min_sample=settings.MIN_SAMPLE_SIZE,
        min_top_performers=settings.MIN_TOP_PERFORMER_SAMPLE,
        top_percentile=settings.TOP_PERFORMER_PERCENTILE,
        high_n=settings.CONFIDENCE_HIGH_MIN_N,
        medium_n=settings.CONFIDENCE_MEDIUM_MIN_N,
        sampling_cap=settings.SAMPLING_CAP,
        sampling_strategy=SamplingStrategy(settings.SAMPLING_STRATEGY),
        sampling_seed=settings.SAMPLING_SEED,
    )


class BenchmarkService:

    def __init__(
        self,
        cache: Optional[StatsCache] = None,
        thresholds: Optional[EngineThresholds] = None,
    ):
        self.cache = cache or StatsCache(settings.STATS_CACHE_MAX_ENTRIES)
        self.thresholds = thresholds or thresholds_from_settings()

    # ── Benchmarks ───────────────────────────────────────────

    async def list_benchmarks(self, db: AsyncSession) -> List[Benchmark]:
        return await repo.list_benchmarks(db)

    async def get_benchmark(self, db: AsyncSession, benchmark_id: int) -> Benchmark:
        benchmark = await repo.get_benchmark(db, benchmark_id)
        if not benchmark:
            raise ValueError("BENCHMARK_NOT_FOUND")
        return benchmark

    async def _get_ready(self, db: AsyncSession, benchmark_id: int) -> Benchmark:
        benchmark = await self.get_benchmark(db, benchmark_id)
        if benchmark.status != BenchmarkStatus.COMPLETED:
            raise ValueError("BENCHMARK_NOT_READY")
        return benchmark

    async def _load_points(
        self,
        db: AsyncSession,
        benchmark_id: int,
        non_null_metrics: Optional[List[MetricKey]] = None,
    ) -> List[DataPoint]:
        rows = await repo.get_data_points(db, benchmark_id, non_null_metrics=non_null_metrics)
        return [DataPoint.from_record(r) for r in rows]

    def _key(self, benchmark: Benchmark, kind: str, subject: str, spec: FilterSpec) -> CacheKey:
        return CacheKey(
            benchmark_id=benchmark.id,
            benchmark_version=benchmark.version or 0,
            kind=kind,
            subject=subject,
            scope=spec.cache_key(),
        )

    # ── Statistiques d'une métrique ──────────────────────────

    async def get_metric_stats(
        self,
        db: AsyncSession,
        benchmark_id: int,
        metric: str,
        filters: Optional[Dict[str, Optional[str]]] = None,
    ) -> Dict:
        key = resolve_metric_key(metric)
        spec = FilterSpec.from_dict(benchmark_id, filters)
        benchmark = await self._get_ready(db, benchmark_id)
        th = self.thresholds

        cache_key = self._key(benchmark, "stats", key.value, spec)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        # Pré-check agrégé : inutile de tirer les lignes si le global est < seuil
        aggregate = await repo.get_metric_aggregate(db, benchmark_id, key)
        if aggregate["count"] < th.min_sample:
            raise InsufficientSampleError(key.value, aggregate["count"], "global")

        # Seules les lignes où la métrique est renseignée comptent dans son n
        points = await self._load_points(db, benchmark_id, non_null_metrics=[key])
        resolution = resolve_metric_population(points, spec, key, th.min_sample, th.high_n, th.medium_n)
        if not resolution.usable:
            raise InsufficientSampleError(key.value, resolution.n, resolution.scope_description)

        sample, info = cap_population(
            resolution.payload, th.sampling_cap, th.sampling_strategy, th.sampling_seed,
        )
        flags = list(resolution.flags)
        if info.sampled:
            flags.append("SAMPLED")

        definition = get_metric(key)
        result = {
            "benchmark_id": benchmark_id,
            "metric": key,
            "category": definition.category,
            "label_key": definition.label_key,
            "stats": calculate_stats(metric_values(sample, key)),
            "scope": resolution.disclosure(sampled=info.sampled, sample_size=info.sample_size),
            "flags": flags,
        }
        self.cache.put(cache_key, result)
        return result

    async def get_persisted_statistics(self, db: AsyncSession, benchmark_id: int):
        await self.get_benchmark(db, benchmark_id)
        return await repo.get_statistics(db, benchmark_id)

    # ── Corrélations ─────────────────────────────────────────

    async def get_correlations(
        self,
        db: AsyncSession,
        benchmark_id: int,
        filters: Optional[Dict[str, Optional[str]]] = None,
        outcome: Optional[str] = None,
        by_year: bool = False,
    ) -> Dict:
        outcomes = list(OUTCOMES)
        if outcome is not None:
            key = resolve_metric_key(outcome)
            if not is_outcome(key):
                raise InvalidMetricError(outcome)
            outcomes = [key]

        spec = FilterSpec.from_dict(benchmark_id, filters)
        benchmark = await self._get_ready(db, benchmark_id)
        th = self.thresholds
        subject = ",".join(o.value for o in outcomes) + ("|by_year" if by_year else "")

        cache_key = self._key(benchmark, "correlations", subject, spec)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        points = await self._load_points(db, benchmark_id)
        resolution = resolve_population(points, spec, th.min_sample, th.high_n, th.medium_n)
        if not resolution.usable:
            raise InsufficientSampleError("correlations", resolution.n, resolution.scope_description)

        sample, info = cap_population(
            resolution.payload, th.sampling_cap, th.sampling_strategy, th.sampling_seed,
        )
        results = analyze_correlations(
            sample, outcomes=outcomes, min_pairs=th.min_sample,
            scope=resolution.scope_description,
        )
        report = {
            "benchmark_id": benchmark_id,
            "scope": resolution.disclosure(sampled=info.sampled, sample_size=info.sample_size),
            "groups": [
                {"outcome": o, "correlations": cs}
                for o, cs in group_by_outcome(results).items()
            ],
            "by_year": {},
        }
        if by_year:
            report["by_year"] = analyze_by_year(
                sample, th.min_sample, outcomes=outcomes,
                scope=resolution.scope_description,
            )
        self.cache.put(cache_key, report)
        return report

    # ── Top performers ───────────────────────────────────────

    async def get_top_performers(
        self,
        db: AsyncSession,
        benchmark_id: int,
        outcome: str,
        filters: Optional[Dict[str, Optional[str]]] = None,
        quantile: Optional[float] = None,
    ) -> Dict:
        key = resolve_metric_key(outcome)
        if not is_outcome(key):
            raise InvalidMetricError(outcome)
        spec = FilterSpec.from_dict(benchmark_id, filters)
        benchmark = await self._get_ready(db, benchmark_id)
        th = self.thresholds
        q = quantile if quantile is not None else th.top_percentile

        cache_key = self._key(benchmark, "top_performers", f"{key.value}@{q}", spec)
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        points = await self._load_points(db, benchmark_id)
        resolution = profile_with_fallback(
            points, spec, key, q, th.min_top_performers, th.min_sample, th.high_n, th.medium_n,
        )
        if not resolution.usable:
            raise InsufficientSampleError(key.value, resolution.n, resolution.scope_description)

        result = {
            "benchmark_id": benchmark_id,
            "profile": resolution.payload,
            "scope": resolution.disclosure(),
        }
        self.cache.put(cache_key, result)
        return result

    # ── Comparaison individuelle ─────────────────────────────

    async def compare(
        self,
        db: AsyncSession,
        benchmark_id: int,
        individual_metrics: Dict[str, Optional[float]],
        filters: Optional[Dict[str, Optional[str]]] = None,
        target_outcome: Optional[str] = None,
    ):
        # Validation structurelle avant tout accès DB
        for k in individual_metrics:
            resolve_metric_key(k)
        if target_outcome is not None and not is_outcome(resolve_metric_key(target_outcome)):
            raise InvalidMetricError(target_outcome)
        spec = FilterSpec.from_dict(benchmark_id, filters)
        await self._get_ready(db, benchmark_id)

        points = await self._load_points(db, benchmark_id)
        return compare(individual_metrics, spec, points, target_outcome, self.thresholds)

    # ── Comparaison de segments ──────────────────────────────

    async def compare_segments(
        self,
        db: AsyncSession,
        benchmark_id: int,
        segments: List[Dict],
        metrics: Optional[List[str]] = None,
    ) -> SegmentComparison:
        declared = [
            Segment(
                name=s["name"],
                spec=FilterSpec.from_dict(benchmark_id, s.get("filters")),
                year=s.get("year"),
            )
            for s in segments
        ]
        validate_segments(declared)
        keys = resolve_metrics(metrics)
        await self._get_ready(db, benchmark_id)
        th = self.thresholds

        points = await self._load_points(db, benchmark_id)
        return compare_segments(
            points, declared, keys,
            th.min_sample, th.high_n, th.medium_n,
            th.sampling_cap, th.sampling_strategy, th.sampling_seed,
        )

    # ── Qualité des données ──────────────────────────────────

    async def get_data_quality(
        self,
        db: AsyncSession,
        benchmark_id: int,
        outlier_metric: Optional[str] = None,
    ) -> DataQualityReport:
        """Disponible quel que soit le statut : sert justement à diagnostiquer un import."""
        key = resolve_metric_key(outlier_metric) if outlier_metric else MetricKey.EQ_TOTAL
        benchmark = await self.get_benchmark(db, benchmark_id)

        cache_key = self._key(benchmark, "data_quality", key.value, FilterSpec(benchmark_id=benchmark_id))
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        points = await self._load_points(db, benchmark_id)
        report = analyze_data_quality(points, outlier_metric=key)
        logger.info(
            "Qualité du benchmark %s : score %.1f sur %d enregistrements",
            benchmark_id, report.quality_score, report.total_records,
        )
        self.cache.put(cache_key, report)
        return report

    # ── Recalcul complet ─────────────────────────────────────

    async def recalculate(self, db: AsyncSession, benchmark_id: int) -> Dict:
        """
        Recalcule et persiste stats globales, corrélations (globales + par année)
        et profils top performers de tous les outcomes. Invalide le cache.
        """
        benchmark = await self.get_benchmark(db, benchmark_id)
        if benchmark.status == BenchmarkStatus.PROCESSING:
            raise ValueError("BENCHMARK_BUSY")

        await repo.set_status(db, benchmark, BenchmarkStatus.PROCESSING)
        th = self.thresholds
        try:
            points = await self._load_points(db, benchmark_id)
            spec = FilterSpec(benchmark_id=benchmark_id)

            statistics, withheld = [], []
            for definition in METRIC_CATALOG:
                values = metric_values(points, definition.key)
                if len(values) < th.min_sample:
                    withheld.append(definition.key)
                    continue
                sample, info = cap_population(
                    values, th.sampling_cap, th.sampling_strategy, th.sampling_seed,
                )
                stats = calculate_stats(sample)
                tier = confidence_tier(stats.n, th.min_sample, th.high_n, th.medium_n)
                statistics.append({
                    "metric_key": definition.key.value,
                    "scope_key": spec.describe(),
                    "confidence": tier.value,
                    "sampled": info.sampled,
                    "population_size": info.population_size,
                    **asdict(stats),
                })

            # n des corrélations = paires dans l'échantillon ; population_size = enregistrements
            sample, info = cap_population(points, th.sampling_cap, th.sampling_strategy, th.sampling_seed)
            correlations = [
                _correlation_row(c, info)
                for c in analyze_correlations(sample, min_pairs=th.min_sample, scope=spec.describe())
            ]
            for year_results in analyze_by_year(sample, th.min_sample, scope=spec.describe()).values():
                correlations.extend(_correlation_row(c, info) for c in year_results)

            profiles = []
            for outcome in OUTCOMES:
                res = profile_with_fallback(
                    points, spec, outcome, th.top_percentile,
                    th.min_top_performers, th.min_sample, th.high_n, th.medium_n,
                )
                if res.usable:
                    profiles.append(_profile_row(res.payload, res.scope_description))

            await repo.replace_results(db, benchmark_id, statistics, correlations, profiles)
            benchmark.total_rows = len(points)
            benchmark.version = (benchmark.version or 0) + 1
            await repo.set_status(db, benchmark, BenchmarkStatus.COMPLETED)
        except Exception as e:
            logger.exception("Recalcul du benchmark %s échoué", benchmark_id)
            await db.rollback()
            await repo.set_status(db, benchmark, BenchmarkStatus.FAILED, str(e))
            raise
        finally:
            self.cache.invalidate(benchmark_id)

        logger.info(
            "Benchmark %s recalculé : %d stats, %d corrélations, %d profils (v%s)",
            benchmark_id, len(statistics), len(correlations), len(profiles), benchmark.version,
        )
        return {
            "benchmark_id": benchmark_id,
            "version": benchmark.version,
            "statistics": len(statistics),
            "correlations": len(correlations),
            "top_performers": len(profiles),
            "withheld_metrics": withheld,
        }

    # ── Suppression ──────────────────────────────────────────

    async def delete_benchmark(self, db: AsyncSession, benchmark_id: int) -> None:
        benchmark = await self.get_benchmark(db, benchmark_id)
        await repo.delete_benchmark(db, benchmark)
        removed = self.cache.invalidate(benchmark_id)
        logger.info("Benchmark %s supprimé (%d entrées de cache invalidées)", benchmark_id, removed)


# ── Sérialisation vers les tables de résultats ────────────────

def _correlation_row(c, info: SamplingInfo) -> Dict:
    return {
        "competency_key": c.competency.value,
        "outcome_key": c.outcome.value,
        "r": c.r,
        "n": c.n,
        "strength": c.strength.value,
        "direction": c.direction.value,
        "scope_key": c.scope or "global",
        "year": c.year,
        "sampled": info.sampled,
        "population_size": info.population_size,
    }


def _profile_row(profile, scope_key: str) -> Dict:
    return {
        "outcome_key": profile.outcome.value,
        "quantile_threshold": profile.quantile_threshold,
        "cutoff": profile.cutoff,
        "population_size": profile.population_size,
        "top_group_size": profile.top_group_size,
        "scope_key": scope_key,
        "confidence": profile.confidence.value,
        "traits": [
            {
                "metric": t.metric.value,
                "category": t.category.value,
                "population_mean": t.population_mean,
                "top_group_mean": t.top_group_mean,
                "effect_size": t.effect_size,
                "magnitude": t.magnitude.value,
            }
            for t in profile.traits
        ],
        "common_patterns": [
            {
                "competencies": [k.value for k in p.competencies],
                "count": p.count,
                "frequency": p.frequency,
                "avg_outcome": p.avg_outcome,
            }
            for p in profile.common_patterns
        ],
    }
