"""Add absence requests and their revision history

Revision ID: 0002_absence_requests
Revises: 0001_initial
Create Date: 2026-10-14 10:30:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0002_absence_requests"
down_revision: Union[str, None] = "0001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

absence_request_type = postgresql.ENUM("FERIE", "PERMESSO", name="absence_request_type", create_type=False)
absence_request_mode = postgresql.ENUM("HOURS", "DAY", name="absence_request_mode", create_type=False)
absence_request_status = postgresql.ENUM(
    "PENDING",
    "APPROVED",
    "REJECTED",
    "CANCELLED",
    "CHANGES_REQUESTED",
    name="absence_request_status",
    create_type=False,
)
absence_request_category = postgresql.ENUM(
    "PERSONALE",
    "MEDICO",
    "LEGGE_104",
    "ALTRO",
    name="absence_request_category",
    create_type=False,
)
absence_day_part = postgresql.ENUM("FULL", "AM", "PM", name="absence_day_part", create_type=False)


def upgrade() -> None:
    bind = op.get_bind()
    absence_request_type.create(bind, checkfirst=True)
    absence_request_mode.create(bind, checkfirst=True)
    absence_request_status.create(bind, checkfirst=True)
    absence_request_category.create(bind, checkfirst=True)
    absence_day_part.create(bind, checkfirst=True)

    op.create_table(
        "absence_requests",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("type", absence_request_type, nullable=False),
        sa.Column("mode", absence_request_mode, nullable=True),
        sa.Column("status", absence_request_status, nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("category", absence_request_category, nullable=True),
        sa.Column("is_104", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("day_part", absence_day_part, nullable=True),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("attachment_url", sa.String(length=500), nullable=True),
        sa.Column("decision_by", sa.Uuid(), nullable=True),
        sa.Column("decision_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decision_note", sa.Text(), nullable=True),
        sa.Column("requested_changes", sa.Text(), nullable=True),
        sa.Column("revision_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["employee_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["decision_by"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint("end_date IS NULL OR end_date >= start_date", name="ck_absence_requests_date_order"),
        sa.CheckConstraint(
            "(type = 'FERIE' AND mode IS NULL) OR (type = 'PERMESSO' AND mode IS NOT NULL)",
            name="ck_absence_requests_mode_by_type",
        ),
        sa.CheckConstraint(
            "duration_minutes IS NULL OR duration_minutes > 0",
            name="ck_absence_requests_duration_positive",
        ),
    )
    op.create_index(
        "ix_absence_requests_employee_status",
        "absence_requests",
        ["employee_id", "status"],
        unique=False,
    )
    op.create_index(
        "ix_absence_requests_company_status",
        "absence_requests",
        ["company_id", "status"],
        unique=False,
    )
    op.create_index("ix_absence_requests_start_date", "absence_requests", ["start_date"], unique=False)
    op.create_index("ix_absence_requests_created_at", "absence_requests", ["created_at"], unique=False)

    op.create_table(
        "absence_request_revisions",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("absence_request_id", sa.Uuid(), nullable=False),
        sa.Column("revision_number", sa.Integer(), nullable=False),
        sa.Column("changed_by", sa.Uuid(), nullable=False),
        sa.Column("changes", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["absence_request_id"], ["absence_requests.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["changed_by"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "absence_request_id",
            "revision_number",
            name="uq_absence_request_revisions_request_number",
        ),
    )
    op.create_index(
        "ix_absence_request_revisions_absence_request_id",
        "absence_request_revisions",
        ["absence_request_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_absence_request_revisions_absence_request_id", table_name="absence_request_revisions")
    op.drop_table("absence_request_revisions")

    op.drop_index("ix_absence_requests_created_at", table_name="absence_requests")
    op.drop_index("ix_absence_requests_start_date", table_name="absence_requests")
    op.drop_index("ix_absence_requests_company_status", table_name="absence_requests")
    op.drop_index("ix_absence_requests_employee_status", table_name="absence_requests")
    op.drop_table("absence_requests")

    bind = op.get_bind()
    absence_day_part.drop(bind, checkfirst=True)
    absence_request_category.drop(bind, checkfirst=True)
    absence_request_status.drop(bind, checkfirst=True)
    absence_request_mode.drop(bind, checkfirst=True)
    absence_request_type.drop(bind, checkfirst=True)
