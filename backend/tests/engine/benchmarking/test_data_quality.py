# tests/engine/benchmarking/test_data_quality.py
"""
Tests unitaires pour engine.benchmarking.data_quality

Couverture :
    field_completeness() : métriques (n spécifique) et dimensions
    find_duplicates()    : groupes par identity_key, tri par taille
    find_outliers()      : seuil ±2σ, z-score, σ = 0
    analyze_data_quality() :
        - Population vide → rapport à zéro
        - Population complète et propre → 100
        - Pénalités doublons (plafond 20) et outliers
        - Limites de listes sans perte des totaux
"""
import pytest

from eq_benchmark.shared.enums import MetricKey
from eq_benchmark.engine.benchmarking.data_quality import (
    QUALITY_METRICS,
    analyze_data_quality,
    field_completeness,
    find_duplicates,
    find_outliers,
)
from tests.conftest import make_point

pytestmark = pytest.mark.engine

EQ = MetricKey.EQ_TOTAL


def _complete(identity_key: str, eq_total: float = 100.0):
    """Tous les champs contrôlés renseignés."""
    metrics = {m: 100.0 for m in QUALITY_METRICS}
    metrics[EQ] = eq_total
    return make_point(
        metrics,
        identity_key=identity_key,
        job_function="Ops",
        job_role="Manager",
        age_range="30-39",
        gender="F",
        education="Master",
        source_id="import-1",
    )


def _by_name(report_or_list, name):
    return next(c for c in report_or_list if c.name == name)


# ── Complétude ────────────────────────────────────────────────────────────────

class TestCompleteness:
    def test_metriques_et_dimensions(self):
        points = [make_point({MetricKey.K: 100.0}) for _ in range(3)] + [make_point({})]
        completeness = field_completeness(points)

        k = _by_name(completeness, "K")
        assert (k.present, k.missing, k.percentage) == (3, 1, 75.0)
        assert _by_name(completeness, "country").percentage == 100.0
        assert _by_name(completeness, "gender").present == 0

    def test_arrondi_deux_decimales(self):
        points = [make_point({MetricKey.K: 1.0}), make_point({}), make_point({})]
        assert _by_name(field_completeness(points), "K").percentage == 33.33


# ── Doublons ──────────────────────────────────────────────────────────────────

class TestDuplicates:
    def test_groupes_tries_par_taille(self):
        keys = ["a", "b", "a", "c", "b", "a", None, None]
        groups = find_duplicates([make_point({}, identity_key=k) for k in keys])

        assert [(g.identity_key, g.count) for g in groups] == [("a", 3), ("b", 2)]


# ── Outliers ──────────────────────────────────────────────────────────────────

class TestOutliers:
    def test_un_outlier_haut(self):
        points = [make_point({EQ: 100.0}) for _ in range(20)] + [make_point({EQ: 200.0}, country="Spain")]
        outliers, summary = find_outliers(points)

        [o] = outliers
        assert o.value == 200.0
        assert o.direction == "high"
        assert o.country == "Spain"
        # un seul écart parmi n points : z = √(n − 1)
        assert o.z_score == 4.47
        assert summary.n == 21
        assert summary.total_outliers == 1

    def test_serie_constante(self):
        outliers, summary = find_outliers([make_point({EQ: 100.0}) for _ in range(10)])
        assert outliers == []
        assert summary.std_dev == 0.0

    def test_metrique_absente(self):
        assert find_outliers([make_point({MetricKey.K: 1.0})]) == ([], None)

    def test_autre_metrique(self):
        points = [make_point({MetricKey.K: 100.0}) for _ in range(20)] + [make_point({MetricKey.K: 10.0})]
        [o], summary = find_outliers(points, MetricKey.K)
        assert o.direction == "low"
        assert summary.metric == MetricKey.K


# ── Rapport complet ───────────────────────────────────────────────────────────

class TestAnalyze:
    def test_population_vide(self):
        report = analyze_data_quality([])
        assert report.total_records == 0
        assert report.quality_score == 0.0
        assert report.completeness == []

    def test_population_propre(self):
        report = analyze_data_quality([_complete(f"id{i}") for i in range(10)])
        assert report.quality_score == 100.0
        assert report.duplicates == []
        assert report.outliers == []

    def test_penalite_doublons_plafonnee(self):
        report = analyze_data_quality([_complete("same") for _ in range(10)])
        assert report.total_duplicate_groups == 1
        assert report.total_duplicate_records == 10
        assert report.quality_score == 80.0

    def test_penalite_outliers(self):
        points = [_complete(f"id{i}") for i in range(20)] + [_complete("id20", eq_total=200.0)]
        report = analyze_data_quality(points)
        # 100 − 1/21 × 200
        assert report.quality_score == 90.5

    def test_limites_de_listes(self):
        points = (
            [_complete(f"id{i}") for i in range(40)]
            + [_complete("dup-a", 200.0), _complete("dup-a", 210.0)]
            + [_complete("dup-b"), _complete("dup-b")]
        )
        report = analyze_data_quality(points, max_duplicate_groups=1, max_outliers=1)

        assert len(report.duplicates) == 1
        assert report.total_duplicate_groups == 2
        assert [o.value for o in report.outliers] == [210.0]
        assert report.outlier_summary.total_outliers == 2
