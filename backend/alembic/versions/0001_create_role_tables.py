"""Create users, role_audit_logs and role_change_requests

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

The role column is constrained to the closed role set at the database
level, and role_change_requests can never target super_admin.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str | None = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Apply schema changes."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_role_modified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_role_modified_by", sa.String(length=128), nullable=True),
        sa.CheckConstraint(
            "role IN ('super_admin', 'admin', 'user')", name="valid_user_role"
        ),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "role_audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("performed_by", sa.String(length=128), nullable=False),
        sa.Column("target_user_id", sa.String(length=128), nullable=False),
        sa.Column("previous_role", sa.String(length=32), nullable=True),
        sa.Column("new_role", sa.String(length=32), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("request_id", sa.String(length=36), nullable=True),
        sa.Column("source", sa.String(length=50), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_role_audit_logs_action", "role_audit_logs", ["action"])
    op.create_index("ix_role_audit_logs_performed_by", "role_audit_logs", ["performed_by"])
    op.create_index("ix_role_audit_logs_target_user_id", "role_audit_logs", ["target_user_id"])
    op.create_index("ix_role_audit_logs_request_id", "role_audit_logs", ["request_id"])
    op.create_index("ix_role_audit_logs_created_at", "role_audit_logs", ["created_at"])

    op.create_table(
        "role_change_requests",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("target_user_id", sa.String(length=128), nullable=False),
        sa.Column("requested_role", sa.String(length=32), nullable=False),
        sa.Column("current_role_at_request_time", sa.String(length=32), nullable=False),
        sa.Column("requested_by", sa.String(length=128), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_by", sa.String(length=128), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')", name="valid_request_status"
        ),
        sa.CheckConstraint(
            "requested_role IN ('admin', 'user')", name="valid_requested_role"
        ),
    )
    op.create_index(
        "ix_role_change_requests_target_user_id", "role_change_requests", ["target_user_id"]
    )
    op.create_index("ix_role_change_requests_status", "role_change_requests", ["status"])


def downgrade() -> None:
    """Revert schema changes."""
    op.drop_index("ix_role_change_requests_status", table_name="role_change_requests")
    op.drop_index("ix_role_change_requests_target_user_id", table_name="role_change_requests")
    op.drop_table("role_change_requests")

    for index in (
        "ix_role_audit_logs_created_at",
        "ix_role_audit_logs_request_id",
        "ix_role_audit_logs_target_user_id",
        "ix_role_audit_logs_performed_by",
        "ix_role_audit_logs_action",
    ):
        op.drop_index(index, table_name="role_audit_logs")
    op.drop_table("role_audit_logs")

    op.drop_index("ix_users_role", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
