"""add planning_records and presence_sheets

Revision ID: 0002_planning_presence
Revises: 0001_initial
Create Date: 2026-02-15 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0002_planning_presence"
down_revision: Union[str, None] = "0001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- planning_records ---
    op.create_table(
        "planning_records",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("employee_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("employee_code", sa.String(32), nullable=False),
        sa.Column("employee_name", sa.String(255), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("shift", sa.String(100), nullable=False),
        sa.Column("start_time", sa.String(5), nullable=False),
        sa.Column("end_time", sa.String(5), nullable=False),
        sa.Column("break_duration", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("upload_batch", sa.String(64), nullable=False),
        sa.Column("uploaded_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("notes", sa.String(500), nullable=False, server_default=""),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["employee_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["uploaded_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_planning_code_date", "planning_records", ["employee_code", "work_date"]
    )
    op.create_index(
        "ix_planning_employee_date", "planning_records", ["employee_id", "work_date"]
    )
    op.create_index("ix_planning_work_date", "planning_records", ["work_date"])
    op.create_index("ix_planning_upload_batch", "planning_records", ["upload_batch"])

    # --- presence_sheets ---
    op.create_table(
        "presence_sheets",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("employee_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("year", sa.SmallInteger(), nullable=False),
        sa.Column("month", sa.SmallInteger(), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_path", sa.String(512), nullable=False),
        sa.Column("generated_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "generated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("size", sa.BigInteger(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["employee_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["generated_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "employee_id", "year", "month", name="uq_presence_sheet_employee_period"
        ),
    )
    op.create_index("ix_presence_sheet_period", "presence_sheets", ["year", "month"])


def downgrade() -> None:
    op.drop_index("ix_presence_sheet_period", table_name="presence_sheets")
    op.drop_table("presence_sheets")
    op.drop_index("ix_planning_upload_batch", table_name="planning_records")
    op.drop_index("ix_planning_work_date", table_name="planning_records")
    op.drop_index("ix_planning_employee_date", table_name="planning_records")
    op.drop_index("ix_planning_code_date", table_name="planning_records")
    op.drop_table("planning_records")
