import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class AccountDeletionJob(Base):
    __tablename__ = "account_deletion_jobs"

    account_id: Mapped[str] = mapped_column(sa.Text, sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    job_name: Mapped[str] = mapped_column(sa.Text, nullable=False, unique=True)
    fire_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    target: Mapped[str] = mapped_column(sa.Text, nullable=False)
    dead_letter_target: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    status: Mapped[str] = mapped_column(sa.Text, nullable=False, server_default="scheduled")
    attempts: Mapped[int] = mapped_column(sa.Integer, nullable=False, server_default="0")
    last_error: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())
    fired_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        sa.CheckConstraint(
            "status in ('scheduled','running','fired','dead_lettered')",
            name="ck_account_deletion_jobs_status",
        ),
        sa.Index("ix_account_deletion_jobs_due", "status", "fire_at"),
    )
