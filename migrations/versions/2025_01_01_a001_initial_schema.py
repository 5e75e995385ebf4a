"""Initial schema: tenants, employees, Square connection and time clock

Revision ID: a001
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "a001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # === tenants ===
    op.create_table(
        "tenants",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(100), nullable=True, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tenants_is_active", "tenants", ["is_active"])

    # === user_profiles ===
    op.create_table(
        "user_profiles",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("role", sa.String(30), nullable=False, server_default="employee", comment="owner|manager|employee"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_profiles_tenant_active", "user_profiles", ["tenant_id", "is_active"])

    # === tip_employees ===
    op.create_table(
        "tip_employees",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True, server_default="true"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_tip_employees_tenant_id", "tip_employees", ["tenant_id"])

    # === square_connections ===
    op.create_table(
        "square_connections",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("merchant_id", sa.String(64), nullable=True, comment="Square merchant ID from the OAuth exchange"),
        sa.Column("access_token_encrypted", sa.LargeBinary(), nullable=True, comment="Fernet-encrypted OAuth access token"),
        sa.Column("refresh_token_encrypted", sa.LargeBinary(), nullable=True, comment="Fernet-encrypted OAuth refresh token"),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("oauth_state", sa.String(255), nullable=True),
        sa.Column("location_id", sa.String(64), nullable=True),
        sa.Column("sync_enabled", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True, comment="Incremental sync watermark"),
        sa.Column("last_sync_status", sa.String(30), nullable=True, comment="success|partial|failed|reconnect_required"),
        sa.Column("last_error_code", sa.String(50), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "(access_token_encrypted IS NULL) = (refresh_token_encrypted IS NULL)",
            name="ck_square_connections_token_pair",
        ),
    )
    op.create_index("ix_square_connections_merchant_id", "square_connections", ["merchant_id"])
    op.create_index("ix_square_connections_sync_enabled", "square_connections", ["sync_enabled"])

    # === square_employee_mappings ===
    op.create_table(
        "square_employee_mappings",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("square_team_member_id", sa.String(64), nullable=False),
        sa.Column("square_team_member_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("user_profile_id", sa.Uuid(), sa.ForeignKey("user_profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("tip_employee_id", sa.Uuid(), sa.ForeignKey("tip_employees.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="suggested"),
        sa.Column("confirmed_by", sa.Uuid(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "square_team_member_id", name="uq_square_mapping_tenant_member"),
        sa.CheckConstraint("status IN ('suggested', 'confirmed', 'ignored')", name="ck_square_mapping_status"),
        sa.CheckConstraint(
            "NOT (user_profile_id IS NOT NULL AND tip_employee_id IS NOT NULL)",
            name="ck_square_mapping_single_link",
        ),
        sa.CheckConstraint(
            "status <> 'confirmed' OR user_profile_id IS NOT NULL OR tip_employee_id IS NOT NULL",
            name="ck_square_mapping_confirmed_link",
        ),
    )
    op.create_index("ix_square_mappings_tenant_status", "square_employee_mappings", ["tenant_id", "status"])

    # === time_clock_entries ===
    op.create_table(
        "time_clock_entries",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("employee_id", sa.Uuid(), sa.ForeignKey("user_profiles.id", ondelete="SET NULL"), nullable=True),
        sa.Column("tip_employee_id", sa.Uuid(), sa.ForeignKey("tip_employees.id", ondelete="SET NULL"), nullable=True),
        sa.Column("employee_name", sa.String(255), nullable=True),
        sa.Column("clock_in", sa.DateTime(timezone=True), nullable=False),
        sa.Column("clock_out", sa.DateTime(timezone=True), nullable=True),
        sa.Column("source", sa.String(20), nullable=False, server_default="manual", comment="manual|square"),
        sa.Column("external_id", sa.String(64), nullable=True, comment="Square timecard ID for synced rows"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_time_clock_entries_tenant_external",
        "time_clock_entries",
        ["tenant_id", "external_id"],
        unique=True,
        postgresql_where=sa.text("external_id IS NOT NULL"),
    )
    op.create_index("ix_time_clock_entries_tenant_clock_in", "time_clock_entries", ["tenant_id", "clock_in"])

    # === time_clock_breaks ===
    op.create_table(
        "time_clock_breaks",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "time_clock_entry_id",
            sa.Uuid(),
            sa.ForeignKey("time_clock_entries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("break_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("break_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("break_type", sa.String(100), nullable=False, server_default="break"),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("external_id", sa.String(64), nullable=True, comment="Square break ID for synced rows"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "uq_time_clock_breaks_tenant_external",
        "time_clock_breaks",
        ["tenant_id", "external_id"],
        unique=True,
        postgresql_where=sa.text("external_id IS NOT NULL"),
    )
    op.create_index("ix_time_clock_breaks_entry_id", "time_clock_breaks", ["time_clock_entry_id"])


def downgrade() -> None:
    op.drop_table("time_clock_breaks")
    op.drop_table("time_clock_entries")
    op.drop_table("square_employee_mappings")
    op.drop_table("square_connections")
    op.drop_table("tip_employees")
    op.drop_table("user_profiles")
    op.drop_table("tenants")
