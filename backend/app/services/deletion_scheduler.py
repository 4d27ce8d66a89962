from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol
from urllib import request as urlrequest

import sqlalchemy as sa
from sqlalchemy.orm import Session

from app.core.security import Clock, SystemClock, as_utc
from app.models.account_deletion import AccountDeletionJob
from app.models.user import User

logger = logging.getLogger(__name__)

JOB_NAME_PREFIX = "user-deletion-"
MIN_LEAD_TIME = timedelta(minutes=1)

# Jobs in these states count as live: at most one per account
LIVE_STATUSES = ("scheduled", "running")
TERMINAL_STATUSES = ("fired", "dead_lettered")


def deletion_job_name(account_id: str) -> str:
    return f"{JOB_NAME_PREFIX}{account_id}"


def effective_fire_at(fire_at: datetime, now: datetime) -> datetime:
    # A job must fire at least one minute in the future
    earliest = now + MIN_LEAD_TIME
    return earliest if fire_at <= earliest else fire_at


class DeletionScheduler(Protocol):
    def create_job(self, account_id: str, fire_at: datetime, target: str, dead_letter_target: str | None) -> str:
        ...

    def cancel_job(self, account_id: str) -> bool:
        ...

    def job_exists(self, account_id: str) -> bool:
        ...


class SqlDeletionScheduler:
    """One-shot deletion jobs stored in ``account_deletion_jobs``.

    The table is keyed by account, so creating a job replaces any previous one
    and cancelling is addressed by account identity alone.
    """

    def __init__(self, db: Session, clock: Clock | None = None):
        self.db = db
        self.clock = clock or SystemClock()

    def create_job(self, account_id: str, fire_at: datetime, target: str, dead_letter_target: str | None) -> str:
        name = deletion_job_name(account_id)
        when = effective_fire_at(as_utc(fire_at), self.clock.now())
        try:
            replaced = self.db.execute(
                sa.delete(AccountDeletionJob)
                .where(AccountDeletionJob.account_id == account_id)
                .execution_options(synchronize_session=False)
            ).rowcount
            self.db.execute(
                sa.insert(AccountDeletionJob).values(
                    account_id=account_id,
                    job_name=name,
                    fire_at=when,
                    target=target,
                    dead_letter_target=dead_letter_target,
                    status="scheduled",
                    attempts=0,
                    created_at=self.clock.now(),
                )
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        if replaced:
            logger.info("Replaced existing deletion job %s", name, extra={"account_id": account_id})
        return name

    def cancel_job(self, account_id: str) -> bool:
        try:
            deleted = self.db.execute(
                sa.delete(AccountDeletionJob)
                .where(
                    AccountDeletionJob.account_id == account_id,
                    AccountDeletionJob.status == "scheduled",
                )
                .execution_options(synchronize_session=False)
            ).rowcount
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return deleted > 0

    def job_exists(self, account_id: str) -> bool:
        row = self.db.execute(
            sa.select(AccountDeletionJob.account_id).where(
                AccountDeletionJob.account_id == account_id,
                AccountDeletionJob.status.in_(LIVE_STATUSES),
            )
        ).first()
        return row is not None


class JobInvoker(Protocol):
    def invoke(self, target: str, payload: dict) -> None:
        ...


def _http_json_post(url: str, payload: dict, *, timeout: int, headers: dict[str, str] | None = None) -> None:
    req_headers = {"Content-Type": "application/json"}
    if headers:
        req_headers.update(headers)
    body = json.dumps(payload).encode("utf-8")
    req = urlrequest.Request(url=url, method="POST", data=body, headers=req_headers)
    with urlrequest.urlopen(req, timeout=timeout) as resp:
        resp.read()


class HttpJobInvoker:
    def __init__(self, *, timeout_seconds: int = 10, headers: dict[str, str] | None = None):
        self.timeout_seconds = timeout_seconds
        self.headers = headers or {}

    def invoke(self, target: str, payload: dict) -> None:
        _http_json_post(target, payload, timeout=self.timeout_seconds, headers=self.headers)


@dataclass
class DispatchSummary:
    claimed: int = 0
    fired: int = 0
    retried: int = 0
    dead_lettered: int = 0


def _set_job(db: Session, account_id: str, **values):
    db.execute(
        sa.update(AccountDeletionJob)
        .where(AccountDeletionJob.account_id == account_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def _dead_letter(invoker: JobInvoker, row, attempts: int, error: str):
    if not row.dead_letter_target:
        logger.error("Deletion job %s exhausted retries with no dead-letter target", row.job_name)
        return
    try:
        invoker.invoke(
            row.dead_letter_target,
            {"userId": row.account_id, "jobName": row.job_name, "attempts": attempts, "error": error},
        )
    except Exception:
        logger.exception("Failed to dead-letter deletion job %s", row.job_name)


def dispatch_due_jobs(
    db: Session,
    invoker: JobInvoker,
    *,
    now: datetime,
    max_attempts: int = 3,
    limit: int = 100,
) -> DispatchSummary:
    """Fire every scheduled job whose time has come.

    Each job is claimed with a conditional update before the executor is
    invoked, so concurrent dispatchers never fire the same job twice. A failed
    invocation is re-queued until ``max_attempts`` is reached, then handed to
    the dead-letter target.
    """
    summary = DispatchSummary()
    rows = db.execute(
        sa.select(
            AccountDeletionJob.account_id,
            AccountDeletionJob.job_name,
            AccountDeletionJob.target,
            AccountDeletionJob.dead_letter_target,
            AccountDeletionJob.attempts,
        )
        .where(
            AccountDeletionJob.status == "scheduled",
            AccountDeletionJob.fire_at <= now,
        )
        .order_by(AccountDeletionJob.fire_at.asc(), AccountDeletionJob.account_id.asc())
        .limit(limit)
    ).all()

    for row in rows:
        claimed = db.execute(
            sa.update(AccountDeletionJob)
            .where(
                AccountDeletionJob.account_id == row.account_id,
                AccountDeletionJob.status == "scheduled",
                AccountDeletionJob.attempts == row.attempts,
            )
            .values(status="running")
            .execution_options(synchronize_session=False)
        ).rowcount
        db.commit()
        if claimed != 1:
            continue
        summary.claimed += 1

        attempts = row.attempts + 1
        try:
            invoker.invoke(row.target, {"userId": row.account_id})
        except Exception as exc:
            error = str(exc)[:1000]
            if attempts >= max_attempts:
                _dead_letter(invoker, row, attempts, error)
                _set_job(db, row.account_id, status="dead_lettered", attempts=attempts, last_error=error)
                summary.dead_lettered += 1
                logger.error("Deletion job %s dead-lettered after %s attempts: %s", row.job_name, attempts, error)
            else:
                _set_job(db, row.account_id, status="scheduled", attempts=attempts, last_error=error)
                summary.retried += 1
                logger.warning("Deletion job %s failed (attempt %s), will retry: %s", row.job_name, attempts, error)
            continue

        _set_job(db, row.account_id, status="fired", attempts=attempts, fired_at=now, last_error=None)
        summary.fired += 1
        logger.info("Fired deletion job %s", row.job_name, extra={"account_id": row.account_id})

    return summary


def _finished_job(db: Session, account):
    """Terminal job row created for the account's current deletion request, if any."""
    row = db.execute(
        sa.select(AccountDeletionJob.job_name, AccountDeletionJob.status, AccountDeletionJob.created_at).where(
            AccountDeletionJob.account_id == account.account_id,
            AccountDeletionJob.status.in_(TERMINAL_STATUSES),
        )
    ).first()
    if row is None:
        return None
    requested_at = account.deletion.requested_at
    # A leftover from an earlier, cancelled request does not block a new job
    if requested_at is not None and as_utc(row.created_at) < requested_at:
        return None
    return row


@dataclass
class ReconcileSummary:
    pending: int = 0
    recreated: int = 0
    left_for_operator: int = 0
    orphans_removed: int = 0
    errors: int = 0


def reconcile_deletion_jobs(
    db: Session,
    store,
    scheduler: DeletionScheduler,
    *,
    target: str,
    dead_letter_target: str | None,
    dry_run: bool = False,
    limit: int = 500,
) -> ReconcileSummary:
    """Repair drift between pending accounts and live jobs.

    Pending accounts without a live job get one (a best-effort create may have
    failed at request time); scheduled jobs whose account is no longer pending
    are removed. A job that already fired or was dead-lettered for the current
    deletion request is never restarted: retries are bounded by the dispatcher.
    """
    summary = ReconcileSummary()
    for account in store.list_pending(limit):
        summary.pending += 1
        if scheduler.job_exists(account.account_id):
            continue
        finished = _finished_job(db, account)
        if finished is not None:
            summary.left_for_operator += 1
            logger.warning(
                "Deletion job %s is %s, leaving it for an operator",
                finished.job_name,
                finished.status,
                extra={"account_id": account.account_id},
            )
            continue
        if dry_run:
            summary.recreated += 1
            logger.info("Would recreate deletion job", extra={"account_id": account.account_id})
            continue
        try:
            scheduler.create_job(account.account_id, account.deletion.scheduled_at, target, dead_letter_target)
            summary.recreated += 1
        except Exception:
            summary.errors += 1
            logger.exception("Failed to recreate deletion job", extra={"account_id": account.account_id})

    pending_ids = sa.select(User.id).where(User.status == "pending_deletion")
    orphans = db.execute(
        sa.select(AccountDeletionJob.account_id)
        .where(
            AccountDeletionJob.status == "scheduled",
            AccountDeletionJob.account_id.not_in(pending_ids),
        )
        .limit(limit)
    ).scalars().all()
    for account_id in orphans:
        if dry_run:
            summary.orphans_removed += 1
            logger.info("Would remove orphaned deletion job %s", deletion_job_name(account_id))
            continue
        try:
            if scheduler.cancel_job(account_id):
                summary.orphans_removed += 1
        except Exception:
            summary.errors += 1
            logger.exception("Failed to remove orphaned deletion job", extra={"account_id": account_id})
    return summary
