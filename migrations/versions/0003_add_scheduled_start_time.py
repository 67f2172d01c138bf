"""add planned start to tasks"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0003_add_scheduled_start_time"
down_revision = "0002_create_tasks"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("tasks", sa.Column("scheduled_start_time", sa.DateTime(), nullable=True))


def downgrade() -> None:
    op.drop_column("tasks", "scheduled_start_time")
