"""users, deletion jobs and audit log

Revision ID: 0001_account_deletion_lifecycle
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_account_deletion_lifecycle"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("business_name", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deletion_scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deletion_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deletion_reason", sa.Text(), nullable=True),
        sa.Column("undo_token", sa.Text(), nullable=True),
        sa.CheckConstraint("status in ('active','pending_deletion')", name="ck_user_status"),
        sa.CheckConstraint(
            "(status='active' AND undo_token IS NULL AND deletion_scheduled_at IS NULL)"
            " OR (status='pending_deletion' AND undo_token IS NOT NULL AND deletion_scheduled_at IS NOT NULL)",
            name="ck_user_deletion_fields",
        ),
    )
    op.create_index("uq_users_undo_token", "users", ["undo_token"], unique=True)
    op.create_index("ix_users_status_deletion_scheduled", "users", ["status", "deletion_scheduled_at"])

    op.create_table(
        "account_deletion_jobs",
        sa.Column("account_id", sa.Text(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("job_name", sa.Text(), nullable=False, unique=True),
        sa.Column("fire_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("target", sa.Text(), nullable=False),
        sa.Column("dead_letter_target", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="scheduled"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("fired_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status in ('scheduled','running','fired','dead_lettered')",
            name="ck_account_deletion_jobs_status",
        ),
    )
    op.create_index("ix_account_deletion_jobs_due", "account_deletion_jobs", ["status", "fire_at"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_user_id", sa.Text(), nullable=True),
        sa.Column("entity_type", sa.Text(), nullable=False),
        sa.Column("entity_id", sa.Text(), nullable=False),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False, server_default=sa.text("'{}'::json")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_audit_entity", "audit_log", ["entity_type", "entity_id"])
    op.create_index("ix_audit_actor_created", "audit_log", ["actor_user_id", sa.text("created_at DESC")])


def downgrade():
    op.drop_index("ix_audit_actor_created", table_name="audit_log")
    op.drop_index("ix_audit_entity", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_index("ix_account_deletion_jobs_due", table_name="account_deletion_jobs")
    op.drop_table("account_deletion_jobs")
    op.drop_index("ix_users_status_deletion_scheduled", table_name="users")
    op.drop_index("uq_users_undo_token", table_name="users")
    op.drop_table("users")
