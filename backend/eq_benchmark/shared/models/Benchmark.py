# eq_benchmark/shared/models/Benchmark.py
"""
Benchmark → BenchmarkDataPoint (population importée)
          → BenchmarkStatistic / BenchmarkCorrelation / BenchmarkTopPerformer
            (résultats persistés pour les dashboards, recalculés à chaque import)

Les DataPoints sont immuables une fois importés ; ils ne sont supprimés
qu'avec leur Benchmark (cascade).
"""
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, JSON, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from eq_benchmark.core.database import Base
from eq_benchmark.shared.enums import BenchmarkStatus


class Benchmark(Base):
    __tablename__ = "benchmarks"

    id          = Column(Integer, primary_key=True, index=True)
    name        = Column(String, nullable=False)
    description = Column(String, nullable=True)
    version     = Column(Integer, nullable=False, default=1)   # +1 à chaque import terminé

    status        = Column(Enum(BenchmarkStatus, name="benchmarkstatus",
                                values_callable=lambda e: [m.value for m in e]),
                           nullable=False, default=BenchmarkStatus.PENDING)
    total_rows    = Column(Integer, nullable=False, default=0)
    error_message = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    data_points    = relationship("BenchmarkDataPoint", back_populates="benchmark", cascade="all, delete-orphan")
    statistics     = relationship("BenchmarkStatistic", back_populates="benchmark", cascade="all, delete-orphan")
    correlations   = relationship("BenchmarkCorrelation", back_populates="benchmark", cascade="all, delete-orphan")
    top_performers = relationship("BenchmarkTopPerformer", back_populates="benchmark", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Benchmark id={self.id} name={self.name} v{self.version} status={self.status}>"


class BenchmarkDataPoint(Base):
    __tablename__ = "benchmark_data_points"

    id           = Column(Integer, primary_key=True, index=True)
    benchmark_id = Column(Integer, ForeignKey("benchmarks.id", ondelete="CASCADE"), nullable=False, index=True)
    identity_key = Column(String, nullable=True, index=True)   # relie les évaluations répétées
    assessed_at  = Column(DateTime(timezone=True), nullable=True)

    # ── Dimensions démographiques (filtres)
    country      = Column(String, nullable=True, index=True)
    region       = Column(String, nullable=True, index=True)
    sector       = Column(String, nullable=True, index=True)
    job_function = Column(String, nullable=True)
    job_role     = Column(String, nullable=True)
    age_range    = Column(String, nullable=True)
    gender       = Column(String, nullable=True)
    education    = Column(String, nullable=True)
    source_id    = Column(String, nullable=True)

    # ── Valeurs : {metric_key: float | null}, clés du catalogue MetricKey
    metrics = Column(JSON, nullable=False, default=dict)

    benchmark = relationship("Benchmark", back_populates="data_points")

    def __repr__(self):
        return f"<BenchmarkDataPoint id={self.id} benchmark={self.benchmark_id} country={self.country}>"


class BenchmarkStatistic(Base):
    __tablename__ = "benchmark_statistics"

    id           = Column(Integer, primary_key=True, index=True)
    benchmark_id = Column(Integer, ForeignKey("benchmarks.id", ondelete="CASCADE"), nullable=False, index=True)
    metric_key   = Column(String, nullable=False)
    scope_key    = Column(String, nullable=False, default="global")   # FilterSpec.describe()
    confidence   = Column(String, nullable=False)

    n       = Column(Integer, nullable=False)
    mean    = Column(Float, nullable=False)
    median  = Column(Float, nullable=False)
    std_dev = Column(Float, nullable=False)
    min     = Column(Float, nullable=False)
    max     = Column(Float, nullable=False)
    p10     = Column(Float, nullable=False)
    p25     = Column(Float, nullable=False)
    p50     = Column(Float, nullable=False)
    p75     = Column(Float, nullable=False)
    p90     = Column(Float, nullable=False)
    p95     = Column(Float, nullable=False)

    # ── Échantillonnage : n = taille de l'échantillon, population_size = avant plafond
    sampled         = Column(Boolean, nullable=False, default=False)
    population_size = Column(Integer, nullable=True)

    computed_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("benchmark_id", "metric_key", "scope_key", name="uq_benchmark_stat_scope"),
    )

    benchmark = relationship("Benchmark", back_populates="statistics")

    def __repr__(self):
        return f"<BenchmarkStatistic {self.metric_key} n={self.n} scope={self.scope_key}>"


class BenchmarkCorrelation(Base):
    __tablename__ = "benchmark_correlations"

    id             = Column(Integer, primary_key=True, index=True)
    benchmark_id   = Column(Integer, ForeignKey("benchmarks.id", ondelete="CASCADE"), nullable=False, index=True)
    competency_key = Column(String, nullable=False)
    outcome_key    = Column(String, nullable=False)
    r              = Column(Float, nullable=False)
    n              = Column(Integer, nullable=False)
    strength       = Column(String, nullable=False)    # strong | moderate | weak
    direction      = Column(String, nullable=False)    # positive | negative | none
    scope_key      = Column(String, nullable=False, default="global")
    year           = Column(Integer, nullable=True)    # None = toutes années
    sampled         = Column(Boolean, nullable=False, default=False)
    population_size = Column(Integer, nullable=True)   # enregistrements avant plafond

    computed_at = Column(DateTime(timezone=True), server_default=func.now())

    benchmark = relationship("Benchmark", back_populates="correlations")

    def __repr__(self):
        return f"<BenchmarkCorrelation {self.competency_key}×{self.outcome_key} r={self.r}>"


class BenchmarkTopPerformer(Base):
    __tablename__ = "benchmark_top_performers"

    id                 = Column(Integer, primary_key=True, index=True)
    benchmark_id       = Column(Integer, ForeignKey("benchmarks.id", ondelete="CASCADE"), nullable=False, index=True)
    outcome_key        = Column(String, nullable=False)
    quantile_threshold = Column(Float, nullable=False)
    cutoff             = Column(Float, nullable=False)
    population_size    = Column(Integer, nullable=False)
    top_group_size     = Column(Integer, nullable=False)
    scope_key          = Column(String, nullable=False, default="global")
    confidence         = Column(String, nullable=False)

    # [{metric, category, population_mean, top_group_mean, effect_size, magnitude}, ...]
    traits          = Column(JSON, nullable=False, default=list)
    common_patterns = Column(JSON, nullable=False, default=list)

    computed_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("benchmark_id", "outcome_key", "scope_key", name="uq_benchmark_top_outcome"),
    )

    benchmark = relationship("Benchmark", back_populates="top_performers")

    def __repr__(self):
        return f"<BenchmarkTopPerformer {self.outcome_key} top={self.top_group_size}/{self.population_size}>"
