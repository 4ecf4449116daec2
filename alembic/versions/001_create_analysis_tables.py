"""create_analysis_tables

Revision ID: 001
Revises:
Create Date: 2026-10-17 10:00:00.000000

- analysis_records: durable mirror of task status, one row per admitted task
- page_extractions: per-task scratch table filled by the pipeline stages
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create analysis_records and page_extractions."""
    op.create_table(
        "analysis_records",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("task_id", sa.String(32), nullable=False, index=True),
        sa.Column("user_id", sa.String(64), nullable=True, index=True),
        sa.Column("email", sa.String(320), nullable=True, index=True),
        sa.Column("url", sa.String(2048), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="queued"),
        sa.Column("email_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("report_directory", sa.String(1024), nullable=True),
        sa.Column("email_error", sa.Text, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            index=True,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    # Composite indexes for history and reconciliation queries
    op.create_index(
        "idx_analysis_records_email_created",
        "analysis_records",
        ["email", "created_at"],
    )
    op.create_index(
        "idx_analysis_records_user_created",
        "analysis_records",
        ["user_id", "created_at"],
    )

    op.create_table(
        "page_extractions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("url", sa.String(2048), nullable=False),
        sa.Column("domain", sa.String(255), nullable=False, index=True),
        sa.Column("status_code", sa.Integer, nullable=True),
        sa.Column("title", sa.Text, nullable=True),
        sa.Column("meta", postgresql.JSON, nullable=True),
        sa.Column("headings", postgresql.JSON, nullable=True),
        sa.Column("text", sa.Text, nullable=True),
        sa.Column("json_ld", postgresql.JSON, nullable=True),
        sa.Column("geo_schema", postgresql.JSON, nullable=True),
        sa.Column("geo_score", postgresql.JSON, nullable=True),
        sa.Column("claims_evaluation", postgresql.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    """Drop both tables."""
    op.drop_table("page_extractions")
    op.drop_index("idx_analysis_records_user_created", table_name="analysis_records")
    op.drop_index("idx_analysis_records_email_created", table_name="analysis_records")
    op.drop_table("analysis_records")
