from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Protocol

import sqlalchemy as sa
from sqlalchemy.orm import Session

from app.core.errors import ConcurrentModification
from app.core.security import as_utc
from app.models.user import User
from app.services.audit import audit


class AccountStatus(str, enum.Enum):
    ACTIVE = "active"
    PENDING_DELETION = "pending_deletion"


@dataclass(frozen=True)
class PendingDeletion:
    scheduled_at: datetime
    undo_token: str
    requested_at: datetime | None = None
    reason: str | None = None


@dataclass(frozen=True)
class Account:
    account_id: str
    email: str | None
    status: AccountStatus
    version: int
    deletion: PendingDeletion | None = None

    def __post_init__(self):
        if (self.status is AccountStatus.PENDING_DELETION) != (self.deletion is not None):
            raise ValueError(f"account {self.account_id}: deletion details must be present only while pending deletion")

    @property
    def is_pending_deletion(self) -> bool:
        return self.status is AccountStatus.PENDING_DELETION


class AccountStore(Protocol):
    def get(self, account_id: str) -> Account | None:
        ...

    def find_by_undo_token(self, token: str) -> Account | None:
        ...

    def mark_pending_deletion(
        self, account: Account, deletion: PendingDeletion, now: datetime, *, action: str = "deletion_requested"
    ) -> Account:
        ...

    def restore_active(self, account: Account, now: datetime, *, action: str = "deletion_cancelled") -> Account:
        ...

    def reschedule_deletion(self, account: Account, scheduled_at: datetime, now: datetime) -> Account:
        ...

    def list_pending(self, limit: int = 500) -> list[Account]:
        ...

    def list_inactive(self, last_login_before: datetime, limit: int = 100) -> list[Account]:
        ...

    def record_login(self, account_id: str, now: datetime) -> bool:
        ...


def _to_account(row: User) -> Account:
    status = AccountStatus(row.status or AccountStatus.ACTIVE.value)
    deletion = None
    if status is AccountStatus.PENDING_DELETION:
        deletion = PendingDeletion(
            scheduled_at=as_utc(row.deletion_scheduled_at),
            undo_token=row.undo_token,
            requested_at=as_utc(row.deletion_requested_at),
            reason=row.deletion_reason,
        )
    return Account(
        account_id=row.id,
        email=row.email,
        status=status,
        version=int(row.version or 0),
        deletion=deletion,
    )


class SqlAccountStore:
    """Account records backed by the ``users`` table.

    Writes are targeted UPDATEs of the lifecycle columns guarded by the
    ``version`` counter and the expected status, so columns owned by other
    subsystems are never rewritten. A guarded write that matches no row raises
    ``ConcurrentModification``. Every write commits together with its audit row.
    """

    def __init__(self, db: Session):
        self.db = db

    def _select(self):
        return sa.select(User).execution_options(populate_existing=True)

    def get(self, account_id: str) -> Account | None:
        row = self.db.execute(self._select().where(User.id == account_id)).scalar_one_or_none()
        return _to_account(row) if row else None

    def find_by_undo_token(self, token: str) -> Account | None:
        row = self.db.execute(
            self._select().where(
                User.undo_token == token,
                User.status == AccountStatus.PENDING_DELETION.value,
            )
        ).scalar_one_or_none()
        return _to_account(row) if row else None

    def list_pending(self, limit: int = 500) -> list[Account]:
        rows = self.db.execute(
            self._select()
            .where(User.status == AccountStatus.PENDING_DELETION.value)
            .order_by(User.deletion_scheduled_at.asc(), User.id.asc())
            .limit(limit)
        ).scalars().all()
        return [_to_account(r) for r in rows]

    def list_inactive(self, last_login_before: datetime, limit: int = 100) -> list[Account]:
        rows = self.db.execute(
            self._select()
            .where(
                User.status == AccountStatus.ACTIVE.value,
                User.last_login_at.is_not(None),
                User.last_login_at < last_login_before,
            )
            .order_by(User.last_login_at.asc(), User.id.asc())
            .limit(limit)
        ).scalars().all()
        return [_to_account(r) for r in rows]

    def record_login(self, account_id: str, now: datetime) -> bool:
        # last_login_at belongs to the sign-in flow, so the version is left alone
        result = self.db.execute(
            sa.update(User)
            .where(User.id == account_id)
            .values(last_login_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    def _guarded_update(self, account: Account, expected: AccountStatus, values: dict, action: str, data: dict):
        result = self.db.execute(
            sa.update(User)
            .where(
                User.id == account.account_id,
                User.version == account.version,
                User.status == expected.value,
            )
            .values(version=User.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            raise ConcurrentModification(account_id=account.account_id)
        audit(self.db, account.account_id, "account", account.account_id, action, data)
        self.db.commit()

    def mark_pending_deletion(
        self, account: Account, deletion: PendingDeletion, now: datetime, *, action: str = "deletion_requested"
    ) -> Account:
        self._guarded_update(
            account,
            AccountStatus.ACTIVE,
            {
                "status": AccountStatus.PENDING_DELETION.value,
                "deletion_scheduled_at": deletion.scheduled_at,
                "deletion_requested_at": deletion.requested_at,
                "deletion_reason": deletion.reason,
                "undo_token": deletion.undo_token,
                "updated_at": now,
            },
            action,
            {"deletion_scheduled_at": deletion.scheduled_at.isoformat(), "reason": deletion.reason},
        )
        return replace(
            account,
            status=AccountStatus.PENDING_DELETION,
            version=account.version + 1,
            deletion=deletion,
        )

    def restore_active(self, account: Account, now: datetime, *, action: str = "deletion_cancelled") -> Account:
        self._guarded_update(
            account,
            AccountStatus.PENDING_DELETION,
            {
                "status": AccountStatus.ACTIVE.value,
                "deletion_scheduled_at": None,
                "deletion_requested_at": None,
                "deletion_reason": None,
                "undo_token": None,
                "updated_at": now,
            },
            action,
            {},
        )
        return replace(account, status=AccountStatus.ACTIVE, version=account.version + 1, deletion=None)

    def reschedule_deletion(self, account: Account, scheduled_at: datetime, now: datetime) -> Account:
        self._guarded_update(
            account,
            AccountStatus.PENDING_DELETION,
            {"deletion_scheduled_at": scheduled_at, "updated_at": now},
            "deletion_expedited",
            {"deletion_scheduled_at": scheduled_at.isoformat()},
        )
        return replace(
            account,
            version=account.version + 1,
            deletion=replace(account.deletion, scheduled_at=scheduled_at),
        )
