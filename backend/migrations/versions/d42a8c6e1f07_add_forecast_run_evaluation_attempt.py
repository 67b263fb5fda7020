# alembic/versions/d42a8c6e1f07_add_forecast_run_evaluation_attempt.py
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "d42a8c6e1f07"
down_revision = "b7e4f19a3c21"
branch_labels = None
depends_on = None


def upgrade():
    op.add_column("forecast_runs", sa.Column("last_evaluation_attempt_at", sa.DateTime(), nullable=True))


def downgrade():
    op.drop_column("forecast_runs", "last_evaluation_attempt_at")
