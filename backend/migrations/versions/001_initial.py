"""initial schema : eq benchmark v1

Revision ID: 001_initial
Create Date: 19/10/2026
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = '001_initial'
down_revision = None

# Valeurs des Enums
BENCHMARK_STATUS = ('pending', 'processing', 'completed', 'failed')

def upgrade() -> None:
    # ── 1. CREATION MANUELLE DES TYPES ENUM (SÉCURISÉE) ──
    enums = {
        "benchmarkstatus": BENCHMARK_STATUS,
    }

    for name, values in enums.items():
        vals_str = ", ".join([f"'{v}'" for v in values])
        op.execute(f"""
            DO $$
            BEGIN
                IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = '{name}') THEN
                    CREATE TYPE {name} AS ENUM ({vals_str});
                END IF;
            END $$;
        """)

    # ── 2. CREATION DES TABLES ──
    # postgresql.ENUM(..., create_type=False) : le type existe déjà (étape 1)

    op.create_table("benchmarks",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String, nullable=False),
        sa.Column("description", sa.String, nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("status", postgresql.ENUM(*BENCHMARK_STATUS, name='benchmarkstatus', create_type=False), nullable=False, server_default="pending"),
        sa.Column("total_rows", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_message", sa.String, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), onupdate=sa.func.now()),
    )

    op.create_table("benchmark_data_points",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("benchmark_id", sa.Integer, sa.ForeignKey("benchmarks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("identity_key", sa.String, nullable=True),
        sa.Column("assessed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("country", sa.String, nullable=True),
        sa.Column("region", sa.String, nullable=True),
        sa.Column("sector", sa.String, nullable=True),
        sa.Column("job_function", sa.String, nullable=True),
        sa.Column("job_role", sa.String, nullable=True),
        sa.Column("age_range", sa.String, nullable=True),
        sa.Column("gender", sa.String, nullable=True),
        sa.Column("education", sa.String, nullable=True),
        sa.Column("source_id", sa.String, nullable=True),
        sa.Column("metrics", sa.JSON, nullable=False),
    )
    op.create_index("ix_benchmark_data_points_benchmark_id", "benchmark_data_points", ["benchmark_id"])
    op.create_index("ix_benchmark_data_points_identity_key", "benchmark_data_points", ["identity_key"])
    op.create_index("ix_benchmark_data_points_country", "benchmark_data_points", ["country"])
    op.create_index("ix_benchmark_data_points_region", "benchmark_data_points", ["region"])
    op.create_index("ix_benchmark_data_points_sector", "benchmark_data_points", ["sector"])

    op.create_table("benchmark_statistics",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("benchmark_id", sa.Integer, sa.ForeignKey("benchmarks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("metric_key", sa.String, nullable=False),
        sa.Column("scope_key", sa.String, nullable=False, server_default="global"),
        sa.Column("confidence", sa.String, nullable=False),
        sa.Column("n", sa.Integer, nullable=False),
        sa.Column("mean", sa.Float, nullable=False),
        sa.Column("median", sa.Float, nullable=False),
        sa.Column("std_dev", sa.Float, nullable=False),
        sa.Column("min", sa.Float, nullable=False),
        sa.Column("max", sa.Float, nullable=False),
        sa.Column("p10", sa.Float, nullable=False),
        sa.Column("p25", sa.Float, nullable=False),
        sa.Column("p50", sa.Float, nullable=False),
        sa.Column("p75", sa.Float, nullable=False),
        sa.Column("p90", sa.Float, nullable=False),
        sa.Column("p95", sa.Float, nullable=False),
        sa.Column("sampled", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("population_size", sa.Integer, nullable=True),
        sa.Column("computed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("benchmark_id", "metric_key", "scope_key", name="uq_benchmark_stat_scope"),
    )
    op.create_index("ix_benchmark_statistics_benchmark_id", "benchmark_statistics", ["benchmark_id"])

    op.create_table("benchmark_correlations",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("benchmark_id", sa.Integer, sa.ForeignKey("benchmarks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("competency_key", sa.String, nullable=False),
        sa.Column("outcome_key", sa.String, nullable=False),
        sa.Column("r", sa.Float, nullable=False),
        sa.Column("n", sa.Integer, nullable=False),
        sa.Column("strength", sa.String, nullable=False),
        sa.Column("direction", sa.String, nullable=False),
        sa.Column("scope_key", sa.String, nullable=False, server_default="global"),
        sa.Column("year", sa.Integer, nullable=True),
        sa.Column("sampled", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("population_size", sa.Integer, nullable=True),
        sa.Column("computed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_benchmark_correlations_benchmark_id", "benchmark_correlations", ["benchmark_id"])

    op.create_table("benchmark_top_performers",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("benchmark_id", sa.Integer, sa.ForeignKey("benchmarks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("outcome_key", sa.String, nullable=False),
        sa.Column("quantile_threshold", sa.Float, nullable=False),
        sa.Column("cutoff", sa.Float, nullable=False),
        sa.Column("population_size", sa.Integer, nullable=False),
        sa.Column("top_group_size", sa.Integer, nullable=False),
        sa.Column("scope_key", sa.String, nullable=False, server_default="global"),
        sa.Column("confidence", sa.String, nullable=False),
        sa.Column("traits", sa.JSON, nullable=False),
        sa.Column("common_patterns", sa.JSON, nullable=False),
        sa.Column("computed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("benchmark_id", "outcome_key", "scope_key", name="uq_benchmark_top_outcome"),
    )
    op.create_index("ix_benchmark_top_performers_benchmark_id", "benchmark_top_performers", ["benchmark_id"])


def downgrade() -> None:
    tables = [
        "benchmark_top_performers", "benchmark_correlations",
        "benchmark_statistics", "benchmark_data_points", "benchmarks",
    ]
    for table in tables:
        op.drop_table(table)

    enums = ["benchmarkstatus"]
    for e in enums:
        op.execute(f"DROP TYPE IF EXISTS {e}")
