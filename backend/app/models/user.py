import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base

class User(Base):
    __tablename__ = "users"

    # Subject issued by the identity provider
    id: Mapped[str] = mapped_column(sa.Text, primary_key=True)
    email: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    business_name: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    status: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="active")
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())
    updated_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())
    last_login_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default="0")

    deletion_scheduled_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    deletion_requested_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    deletion_reason: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    undo_token: Mapped[str | None] = mapped_column(sa.Text, nullable=True)

    __table_args__ = (
        sa.CheckConstraint("status in ('active','pending_deletion')", name="ck_user_status"),
        sa.CheckConstraint(
            "(status='active' AND undo_token IS NULL AND deletion_scheduled_at IS NULL)"
            " OR (status='pending_deletion' AND undo_token IS NOT NULL AND deletion_scheduled_at IS NOT NULL)",
            name="ck_user_deletion_fields",
        ),
        sa.Index("uq_users_undo_token", "undo_token", unique=True),
        sa.Index("ix_users_status_deletion_scheduled", "status", "deletion_scheduled_at"),
    )
