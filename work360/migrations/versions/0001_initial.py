"""Initial schema: companies, users, sites, materials, attendances, audit logs

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-12 09:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_role = postgresql.ENUM("worker", "owner", name="user_role", create_type=False)
site_status = postgresql.ENUM("planned", "active", "completed", "suspended", name="site_status", create_type=False)
material_usage_state = postgresql.ENUM(
    "catalogato",
    "da_approvare",
    "rifiutato",
    name="material_usage_state",
    create_type=False,
)
audit_actor_type = postgresql.ENUM("USER", "SYSTEM", name="audit_actor_type", create_type=False)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("CURRENT_TIMESTAMP"),
    )


def upgrade() -> None:
    bind = op.get_bind()
    user_role.create(bind, checkfirst=True)
    site_status.create(bind, checkfirst=True)
    material_usage_state.create(bind, checkfirst=True)
    audit_actor_type.create(bind, checkfirst=True)

    op.create_table(
        "companies",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        _created_at(),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("role", user_role, nullable=False),
        sa.Column("hourly_cost", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("username", name="uq_users_username"),
    )
    op.create_index("ix_users_company_id", "users", ["company_id"], unique=False)

    op.create_table(
        "construction_sites",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=150), nullable=False),
        sa.Column("address", sa.String(length=200), nullable=True),
        sa.Column("status", site_status, nullable=False, server_default=sa.text("'planned'")),
        sa.Column("contract_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_construction_sites_company_id", "construction_sites", ["company_id"], unique=False)

    op.create_table(
        "material_catalog_items",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("product_code", sa.String(length=100), nullable=True),
        sa.Column("brand", sa.String(length=150), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("unit", sa.String(length=20), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=False, server_default=sa.text("'Altro'")),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_material_catalog_items_company_id", "material_catalog_items", ["company_id"], unique=False)

    op.create_table(
        "material_usages",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("site_id", sa.Uuid(), nullable=False),
        sa.Column("material_id", sa.Uuid(), nullable=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("package_count", sa.Integer(), nullable=False),
        sa.Column("state", material_usage_state, nullable=False, server_default=sa.text("'catalogato'")),
        sa.Column("note", sa.String(length=500), nullable=True),
        sa.Column(
            "used_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["site_id"], ["construction_sites.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["material_id"], ["material_catalog_items.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_material_usages_company_id", "material_usages", ["company_id"], unique=False)
    op.create_index("ix_material_usages_site_used_at", "material_usages", ["site_id", "used_at"], unique=False)

    op.create_table(
        "attendances",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("site_id", sa.Uuid(), nullable=False),
        sa.Column("clock_in_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("clock_in_latitude", sa.Numeric(9, 6), nullable=True),
        sa.Column("clock_in_longitude", sa.Numeric(9, 6), nullable=True),
        sa.Column("clock_in_address", sa.String(length=255), nullable=True),
        sa.Column("clock_out_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("clock_out_latitude", sa.Numeric(9, 6), nullable=True),
        sa.Column("clock_out_longitude", sa.Numeric(9, 6), nullable=True),
        sa.Column("clock_out_address", sa.String(length=255), nullable=True),
        sa.Column("total_hours", sa.Numeric(6, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("hourly_cost", sa.Numeric(10, 2), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["site_id"], ["construction_sites.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_attendances_company_id", "attendances", ["company_id"], unique=False)
    op.create_index("ix_attendances_site_clock_in", "attendances", ["site_id", "clock_in_time"], unique=False)
    op.create_index(
        "uq_attendances_user_open",
        "attendances",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("clock_out_time IS NULL"),
        sqlite_where=sa.text("clock_out_time IS NULL"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("ts_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=True),
        sa.Column("actor_type", audit_actor_type, nullable=False),
        sa.Column("actor_id", sa.String(length=100), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("ip", sa.String(length=100), nullable=True),
        sa.Column("user_agent", sa.String(length=500), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("details", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_audit_logs_company_id", "audit_logs", ["company_id"], unique=False)
    op.create_index("ix_audit_logs_ts_utc", "audit_logs", ["ts_utc"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_audit_logs_ts_utc", table_name="audit_logs")
    op.drop_index("ix_audit_logs_company_id", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("uq_attendances_user_open", table_name="attendances")
    op.drop_index("ix_attendances_site_clock_in", table_name="attendances")
    op.drop_index("ix_attendances_company_id", table_name="attendances")
    op.drop_table("attendances")

    op.drop_index("ix_material_usages_site_used_at", table_name="material_usages")
    op.drop_index("ix_material_usages_company_id", table_name="material_usages")
    op.drop_table("material_usages")

    op.drop_index("ix_material_catalog_items_company_id", table_name="material_catalog_items")
    op.drop_table("material_catalog_items")

    op.drop_index("ix_construction_sites_company_id", table_name="construction_sites")
    op.drop_table("construction_sites")

    op.drop_index("ix_users_company_id", table_name="users")
    op.drop_table("users")

    op.drop_table("companies")

    bind = op.get_bind()
    audit_actor_type.drop(bind, checkfirst=True)
    material_usage_state.drop(bind, checkfirst=True)
    site_status.drop(bind, checkfirst=True)
    user_role.drop(bind, checkfirst=True)
