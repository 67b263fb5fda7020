# alembic/versions/b7e4f19a3c21_add_forecast_pipeline_tables.py
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "b7e4f19a3c21"
down_revision = "5a1c0e7d2b90"
branch_labels = None
depends_on = None

JSON_PAYLOAD = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade():
    op.create_table(
        "warmup_jobs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("timeframe", sa.String(length=32), nullable=False),
        sa.Column("geo", sa.String(length=16), nullable=False, server_default=""),
        sa.Column("data_hash", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="queued"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("debug_id", sa.String(length=64), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("active_key", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("active_key", name="uq_warmup_jobs_active_key"),
    )
    op.create_index("ix_warmup_jobs_slug", "warmup_jobs", ["slug"])
    op.create_index("ix_warmup_jobs_status_created", "warmup_jobs", ["status", "created_at"])

    op.create_table(
        "forecast_runs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("comparison_id", sa.Integer(), sa.ForeignKey("comparisons.id", ondelete="CASCADE"), nullable=False),
        sa.Column("timeframe", sa.String(length=32), nullable=False),
        sa.Column("geo", sa.String(length=16), nullable=False, server_default=""),
        sa.Column("horizon", sa.Integer(), nullable=False),
        sa.Column("data_hash", sa.String(length=64), nullable=False),
        sa.Column("engine_version", sa.String(length=32), nullable=False),
        sa.Column("model_term_a", sa.String(length=64), nullable=True),
        sa.Column("model_term_b", sa.String(length=64), nullable=True),
        sa.Column("confidence_score_a", sa.Float(), nullable=True),
        sa.Column("confidence_score_b", sa.Float(), nullable=True),
        sa.Column("metrics_a", JSON_PAYLOAD, nullable=True),
        sa.Column("metrics_b", JSON_PAYLOAD, nullable=True),
        sa.Column("warnings_a", JSON_PAYLOAD, nullable=True),
        sa.Column("warnings_b", JSON_PAYLOAD, nullable=True),
        sa.Column("winner_probability", sa.Float(), nullable=False),
        sa.Column("expected_margin", sa.Float(), nullable=True),
        sa.Column("lead_change_risk", sa.String(length=16), nullable=True),
        sa.Column("computed_at", sa.DateTime(), nullable=False),
        sa.Column("horizon_ends_at", sa.DateTime(), nullable=False),
        sa.Column("evaluated_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("comparison_id", "timeframe", "horizon", "data_hash", name="uq_forecast_run_key"),
    )
    op.create_index("ix_forecast_runs_comparison_id", "forecast_runs", ["comparison_id"])
    op.create_index("ix_forecast_runs_computed_at", "forecast_runs", ["computed_at"])
    op.create_index("ix_forecast_runs_horizon_ends_at", "forecast_runs", ["horizon_ends_at"])
    op.create_index("ix_forecast_runs_evaluated_at", "forecast_runs", ["evaluated_at"])

    op.create_table(
        "forecast_points",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("forecast_run_id", sa.Integer(), sa.ForeignKey("forecast_runs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("term", sa.String(length=8), nullable=False),
        sa.Column("point_date", sa.Date(), nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        sa.Column("lower80", sa.Float(), nullable=False),
        sa.Column("upper80", sa.Float(), nullable=False),
        sa.Column("lower95", sa.Float(), nullable=False),
        sa.Column("upper95", sa.Float(), nullable=False),
        sa.Column("actual_value", sa.Float(), nullable=True),
        sa.UniqueConstraint("forecast_run_id", "term", "point_date", name="uq_forecast_point_day"),
    )

    op.create_table(
        "forecast_evaluations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "forecast_run_id",
            sa.Integer(),
            sa.ForeignKey("forecast_runs.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("evaluated_at", sa.DateTime(), nullable=False),
        sa.Column("winner_correct", sa.Boolean(), nullable=True),
        sa.Column("direction_correct_a", sa.Boolean(), nullable=True),
        sa.Column("direction_correct_b", sa.Boolean(), nullable=True),
        sa.Column("interval_hit_rate_80", sa.Float(), nullable=True),
        sa.Column("interval_hit_rate_95", sa.Float(), nullable=True),
        sa.Column("mae", sa.Float(), nullable=True),
        sa.Column("mape", sa.Float(), nullable=True),
        sa.Column("evaluated_points", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_forecast_evaluations_evaluated_at", "forecast_evaluations", ["evaluated_at"])

    op.create_table(
        "forecast_trust_stats",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("period", sa.String(length=32), nullable=False, unique=True),
        sa.Column("total_evaluated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("winner_accuracy_percent", sa.Float(), nullable=True),
        sa.Column("interval_coverage_percent", sa.Float(), nullable=True),
        sa.Column("last_90_days_accuracy", sa.Float(), nullable=True),
        sa.Column("sample_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_calculated", sa.DateTime(), nullable=False),
    )


def downgrade():
    op.drop_table("forecast_trust_stats")
    op.drop_index("ix_forecast_evaluations_evaluated_at", table_name="forecast_evaluations")
    op.drop_table("forecast_evaluations")
    op.drop_table("forecast_points")
    op.drop_index("ix_forecast_runs_evaluated_at", table_name="forecast_runs")
    op.drop_index("ix_forecast_runs_horizon_ends_at", table_name="forecast_runs")
    op.drop_index("ix_forecast_runs_computed_at", table_name="forecast_runs")
    op.drop_index("ix_forecast_runs_comparison_id", table_name="forecast_runs")
    op.drop_table("forecast_runs")
    op.drop_index("ix_warmup_jobs_status_created", table_name="warmup_jobs")
    op.drop_index("ix_warmup_jobs_slug", table_name="warmup_jobs")
    op.drop_table("warmup_jobs")
