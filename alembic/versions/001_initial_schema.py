"""Initial schema with queues and tasks tables

Revision ID: 001
Revises: 
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TASK_STATUSES = ("available", "processing", "completed", "error")


def upgrade() -> None:
    op.execute("""
        DO $$ BEGIN
            CREATE TYPE task_status AS ENUM ('available', 'processing', 'completed', 'error');
        EXCEPTION
            WHEN duplicate_object THEN null;
        END $$;
    """)

    op.create_table(
        "queues",
        sa.Column("id", sa.BigInteger, sa.Identity(), nullable=False),
        sa.Column("type", sa.String(255), nullable=False),
        sa.Column("options", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_queues_type", "queues", ["type"])

    op.create_table(
        "tasks",
        sa.Column("id", sa.BigInteger, sa.Identity(), nullable=False),
        sa.Column("task_id", sa.String(255), nullable=False),
        sa.Column("queue_id", sa.BigInteger, nullable=False),
        sa.Column("params", postgresql.JSONB, nullable=True),
        sa.Column(
            "status",
            postgresql.ENUM(*TASK_STATUSES, name="task_status", create_type=False),
            nullable=False,
            server_default="available",
        ),
        sa.Column("expiry_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("result", postgresql.JSONB, nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["queue_id"], ["queues.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("queue_id", "task_id", name="uq_tasks_queue_task_id"),
    )

    op.create_index("ix_tasks_queue_status", "tasks", ["queue_id", "status"])
    op.create_index("ix_tasks_status_expiry", "tasks", ["status", "expiry_time"])

    # Claim polling scans only non-terminal rows
    op.execute("""
        CREATE INDEX ix_tasks_claimable
        ON tasks (queue_id, id)
        WHERE status IN ('available', 'processing')
    """)


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS ix_tasks_claimable")
    op.drop_index("ix_tasks_status_expiry")
    op.drop_index("ix_tasks_queue_status")
    op.drop_table("tasks")

    op.drop_index("ix_queues_type")
    op.drop_table("queues")

    op.execute("DROP TYPE IF EXISTS task_status")
