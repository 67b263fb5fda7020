# alembic/versions/5a1c0e7d2b90_create_comparisons_and_interest_daily.py
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "5a1c0e7d2b90"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "comparisons",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("term_a", sa.String(length=255), nullable=False),
        sa.Column("term_b", sa.String(length=255), nullable=False),
        sa.Column("timeframe", sa.String(length=32), nullable=False, server_default="12m"),
        sa.Column("geo", sa.String(length=16), nullable=False, server_default=""),
        sa.Column("category", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("slug", "timeframe", "geo", name="uq_comparison_slug_tf_geo"),
    )
    op.create_index("ix_comparisons_id", "comparisons", ["id"])
    op.create_index("ix_comparisons_slug", "comparisons", ["slug"])

    op.create_table(
        "interest_daily",
        sa.Column("comparison_id", sa.Integer(), sa.ForeignKey("comparisons.id", ondelete="CASCADE"), nullable=False),
        sa.Column("point_date", sa.Date(), nullable=False),
        sa.Column("term", sa.String(length=255), nullable=False),
        sa.Column("value", sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint("comparison_id", "point_date", "term", name="pk_interest_daily"),
    )
    op.create_index("ix_interest_daily_cmp_date", "interest_daily", ["comparison_id", "point_date"])


def downgrade():
    op.drop_index("ix_interest_daily_cmp_date", table_name="interest_daily")
    op.drop_table("interest_daily")
    op.drop_index("ix_comparisons_slug", table_name="comparisons")
    op.drop_index("ix_comparisons_id", table_name="comparisons")
    op.drop_table("comparisons")
