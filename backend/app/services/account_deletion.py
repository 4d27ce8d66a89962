"""Deferred account deletion lifecycle.

An account moves from ``active`` to ``pending_deletion`` on request and back
to ``active`` when the owner cancels (authenticated) or follows the emailed
undo link (token only, before the grace period ends). The terminal purge is
performed later by the external executor the scheduler job points at.

Scheduling and email are best-effort: the state transition is committed
first and their failures are recorded as ``SideEffectOutcome`` values and
logged, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Literal

from app.core.errors import (
    AccountNotFound,
    AlreadyPending,
    AlreadyProcessed,
    ConcurrentModification,
    ConfigurationMissing,
    ContactEmailMissing,
    InvalidConfirmation,
    InvalidOrExpiredToken,
    NoPendingDeletion,
    Unauthenticated,
)
from app.core.security import Clock, SystemClock, is_well_formed_undo_token, new_undo_token
from app.services.accounts import Account, AccountStore, PendingDeletion
from app.services.deletion_scheduler import DeletionScheduler
from app.services.notifications import DeletionNotifier, dashboard_login_link, deletion_undo_link

logger = logging.getLogger(__name__)

REQUEST_REQUIRES = ("executor_target", "dead_letter_target", "dashboard_url", "sender_email")
UNDO_REQUIRES = ("dashboard_url",)
EXPEDITE_REQUIRES = ("executor_target", "dead_letter_target")
INACTIVITY_REQUIRES = ("executor_target", "dead_letter_target", "dashboard_url")

INACTIVITY_REASON = "inactivity"


@dataclass(frozen=True)
class DeletionConfig:
    grace_period: timedelta = timedelta(days=3)
    confirmation_phrase: str = "Potwierdzam"
    deletion_reason: str = "manual"
    inactivity_threshold: timedelta = timedelta(days=360)
    inactivity_grace_period: timedelta = timedelta(days=30)
    dashboard_url: str | None = None
    sender_email: str | None = None
    executor_target: str | None = None
    dead_letter_target: str | None = None

    @classmethod
    def from_settings(cls, settings) -> "DeletionConfig":
        return cls(
            grace_period=timedelta(days=settings.ACCOUNT_DELETION_GRACE_DAYS),
            confirmation_phrase=settings.ACCOUNT_DELETION_CONFIRMATION_PHRASE,
            deletion_reason=settings.ACCOUNT_DELETION_REASON,
            inactivity_threshold=timedelta(days=settings.INACTIVITY_THRESHOLD_DAYS),
            inactivity_grace_period=timedelta(days=settings.INACTIVITY_DELETION_GRACE_DAYS),
            dashboard_url=settings.PUBLIC_DASHBOARD_URL,
            sender_email=settings.SENDER_EMAIL,
            executor_target=settings.USER_DELETION_EXECUTOR_URL,
            dead_letter_target=settings.USER_DELETION_DLQ_URL,
        )

    @property
    def grace_days(self) -> int:
        return self.grace_period.days

    def require(self, *names: str) -> None:
        missing = [name for name in names if not getattr(self, name)]
        if missing:
            raise ConfigurationMissing(f"Missing configuration: {', '.join(missing)}", missing=missing)


@dataclass(frozen=True)
class SideEffectOutcome:
    name: str
    status: Literal["ok", "failed", "skipped"]
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"


@dataclass(frozen=True)
class DeletionRequested:
    account_id: str
    status: str
    deletion_scheduled_at: datetime
    side_effects: tuple[SideEffectOutcome, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DeletionCancelled:
    account_id: str
    message: str
    login_url: str | None = None
    side_effects: tuple[SideEffectOutcome, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DeletionStatus:
    status: str
    deletion_scheduled_at: datetime | None
    deletion_reason: str | None
    deletion_requested_at: datetime | None
    grace_days: int


@dataclass(frozen=True)
class LoginRecorded:
    account_id: str
    deletion_cancelled: bool
    side_effects: tuple[SideEffectOutcome, ...] = field(default_factory=tuple)


@dataclass
class InactivityScanSummary:
    scanned: int = 0
    scheduled: int = 0
    conflicts: int = 0


def _run_side_effect(name: str, fn: Callable[[], object], *, level: int, context: dict) -> SideEffectOutcome:
    try:
        fn()
    except Exception as exc:
        logger.log(
            level,
            "%s failed for account %s: %s",
            name,
            context.get("account_id"),
            exc,
            extra=context,
            exc_info=True,
        )
        return SideEffectOutcome(name, "failed", f"{type(exc).__name__}: {exc}")
    return SideEffectOutcome(name, "ok")


class AccountDeletionService:
    def __init__(
        self,
        store: AccountStore,
        scheduler: DeletionScheduler,
        notifier: DeletionNotifier,
        clock: Clock | None = None,
        config: DeletionConfig | None = None,
    ):
        self.store = store
        self.scheduler = scheduler
        self.notifier = notifier
        self.clock = clock or SystemClock()
        self.config = config or DeletionConfig()

    def _load(self, account_id: str | None) -> Account:
        if not account_id:
            raise Unauthenticated()
        account = self.store.get(account_id)
        if account is None:
            raise AccountNotFound()
        return account

    def request_deletion(
        self,
        account_id: str | None,
        confirmation_phrase: str | None,
        *,
        fallback_email: str | None = None,
    ) -> DeletionRequested:
        self.config.require(*REQUEST_REQUIRES)
        account = self._load(account_id)

        if confirmation_phrase != self.config.confirmation_phrase:
            raise InvalidConfirmation(
                f"Invalid confirmation phrase. Please type {self.config.confirmation_phrase} to confirm."
            )

        if account.is_pending_deletion:
            raise AlreadyPending(deletion_scheduled_at=account.deletion.scheduled_at)

        email = account.email or fallback_email
        if not email:
            logger.warning("Email not found for deletion request", extra={"account_id": account.account_id})
            raise ContactEmailMissing()

        now = self.clock.now()
        deletion = PendingDeletion(
            scheduled_at=now + self.config.grace_period,
            undo_token=new_undo_token(),
            requested_at=now,
            reason=self.config.deletion_reason,
        )
        account = self.store.mark_pending_deletion(account, deletion, now)

        context = {"account_id": account.account_id, "deletion_scheduled_at": deletion.scheduled_at.isoformat()}
        outcomes = (
            self._schedule(account, context),
            _run_side_effect(
                "deletion_requested_email",
                lambda: self.notifier.send_deletion_requested(
                    email,
                    deletion_undo_link(self.config.dashboard_url, deletion.undo_token),
                    deletion.scheduled_at,
                ),
                level=logging.ERROR,
                context=context,
            ),
        )
        logger.info("User deletion requested", extra=context)
        return DeletionRequested(
            account_id=account.account_id,
            status=account.status.value,
            deletion_scheduled_at=deletion.scheduled_at,
            side_effects=outcomes,
        )

    def cancel_deletion(self, account_id: str | None) -> DeletionCancelled:
        account = self._load(account_id)
        if not account.is_pending_deletion:
            raise NoPendingDeletion()
        return self._restore(account, action="deletion_cancelled")

    def undo_by_token(self, token: str | None) -> DeletionCancelled:
        self.config.require(*UNDO_REQUIRES)
        if not is_well_formed_undo_token(token):
            raise InvalidOrExpiredToken()
        account = self.store.find_by_undo_token(token)
        if account is None:
            raise InvalidOrExpiredToken()

        # The executor may already be purging the record: once the grace period
        # has elapsed the token is dead even if the row still exists.
        if account.deletion.scheduled_at <= self.clock.now():
            raise AlreadyProcessed(deletion_date=account.deletion.scheduled_at)

        result = self._restore(account, action="deletion_undone")
        return DeletionCancelled(
            account_id=result.account_id,
            message=result.message,
            login_url=dashboard_login_link(self.config.dashboard_url),
            side_effects=result.side_effects,
        )

    def get_status(self, account_id: str | None) -> DeletionStatus:
        account = self._load(account_id)
        deletion = account.deletion
        return DeletionStatus(
            status=account.status.value,
            deletion_scheduled_at=deletion.scheduled_at if deletion else None,
            deletion_reason=deletion.reason if deletion else None,
            deletion_requested_at=deletion.requested_at if deletion else None,
            grace_days=self.config.grace_days,
        )

    def expedite_deletion(self, account_id: str | None, delay: timedelta) -> DeletionRequested:
        """Pull the deletion forward to ``now + delay`` (non-production use)."""
        self.config.require(*EXPEDITE_REQUIRES)
        account = self._load(account_id)
        now = self.clock.now()
        scheduled_at = now + delay
        if account.is_pending_deletion:
            account = self.store.reschedule_deletion(account, scheduled_at, now)
        else:
            deletion = PendingDeletion(
                scheduled_at=scheduled_at,
                undo_token=new_undo_token(),
                requested_at=now,
                reason=self.config.deletion_reason,
            )
            account = self.store.mark_pending_deletion(account, deletion, now, action="deletion_expedited")

        context = {"account_id": account.account_id, "deletion_scheduled_at": scheduled_at.isoformat()}
        outcome = self._schedule(account, context)
        logger.info("User deletion expedited", extra=context)
        return DeletionRequested(
            account_id=account.account_id,
            status=account.status.value,
            deletion_scheduled_at=scheduled_at,
            side_effects=(outcome,),
        )

    def schedule_inactivity_deletion(self, account: Account) -> DeletionRequested:
        """Put an inactive account into pending deletion and send the final warning.

        The account still gets an undo token, so the emailed-link path keeps
        working alongside the cancel-on-login path.
        """
        self.config.require(*INACTIVITY_REQUIRES)
        now = self.clock.now()
        deletion = PendingDeletion(
            scheduled_at=now + self.config.inactivity_grace_period,
            undo_token=new_undo_token(),
            requested_at=now,
            reason=INACTIVITY_REASON,
        )
        account = self.store.mark_pending_deletion(account, deletion, now, action="inactivity_deletion_scheduled")

        context = {"account_id": account.account_id, "deletion_scheduled_at": deletion.scheduled_at.isoformat()}
        outcomes = [self._schedule(account, context)]
        if not account.email:
            outcomes.append(SideEffectOutcome("inactivity_final_warning_email", "skipped", "no contact email"))
        elif not self.notifier.sender_address:
            outcomes.append(SideEffectOutcome("inactivity_final_warning_email", "skipped", "sender not configured"))
        else:
            outcomes.append(
                _run_side_effect(
                    "inactivity_final_warning_email",
                    lambda: self.notifier.send_inactivity_final_warning(
                        account.email,
                        dashboard_login_link(self.config.dashboard_url),
                        deletion.scheduled_at,
                    ),
                    level=logging.ERROR,
                    context=context,
                )
            )
        logger.info("Scheduled user deletion for inactivity", extra=context)
        return DeletionRequested(
            account_id=account.account_id,
            status=account.status.value,
            deletion_scheduled_at=deletion.scheduled_at,
            side_effects=tuple(outcomes),
        )

    def scan_inactive_accounts(self, limit: int = 100) -> InactivityScanSummary:
        self.config.require(*INACTIVITY_REQUIRES)
        cutoff = self.clock.now() - self.config.inactivity_threshold
        summary = InactivityScanSummary()
        for account in self.store.list_inactive(cutoff, limit):
            summary.scanned += 1
            try:
                self.schedule_inactivity_deletion(account)
            except ConcurrentModification:
                # Logged in or requested deletion since the scan read it
                summary.conflicts += 1
                logger.warning("Account changed during inactivity scan", extra={"account_id": account.account_id})
                continue
            summary.scheduled += 1
        logger.info(
            "Inactivity scan completed: scanned=%s scheduled=%s conflicts=%s",
            summary.scanned,
            summary.scheduled,
            summary.conflicts,
        )
        return summary

    def record_login(self, account_id: str | None) -> LoginRecorded:
        """Track a successful sign-in; it cancels a deletion scheduled for inactivity.

        A manually requested deletion is left pending: only the owner's explicit
        cancel or the undo link restores it.
        """
        account = self._load(account_id)
        self.store.record_login(account.account_id, self.clock.now())
        if not (account.is_pending_deletion and account.deletion.reason == INACTIVITY_REASON):
            return LoginRecorded(account_id=account.account_id, deletion_cancelled=False)
        result = self._restore(account, action="inactivity_deletion_cancelled", notify=False)
        return LoginRecorded(account_id=account.account_id, deletion_cancelled=True, side_effects=result.side_effects)

    def _schedule(self, account: Account, context: dict) -> SideEffectOutcome:
        outcome = _run_side_effect(
            "create_deletion_job",
            lambda: self.scheduler.create_job(
                account.account_id,
                account.deletion.scheduled_at,
                self.config.executor_target,
                self.config.dead_letter_target,
            ),
            level=logging.ERROR,
            context=context,
        )
        if outcome.ok:
            logger.info("Created deletion job", extra=context)
        return outcome

    def _restore(self, account: Account, *, action: str, notify: bool = True) -> DeletionCancelled:
        context = {"account_id": account.account_id}
        cancelled = []

        def cancel_job():
            cancelled.append(self.scheduler.cancel_job(account.account_id))

        job_outcome = _run_side_effect("cancel_deletion_job", cancel_job, level=logging.WARNING, context=context)
        if cancelled and not cancelled[0]:
            logger.info("No live deletion job to cancel (already fired or never created)", extra=context)

        account = self.store.restore_active(account, self.clock.now(), action=action)

        if not notify:
            email_outcome = SideEffectOutcome("deletion_cancelled_email", "skipped", "not requested")
        elif not account.email:
            email_outcome = SideEffectOutcome("deletion_cancelled_email", "skipped", "no contact email")
        elif not self.notifier.sender_address:
            email_outcome = SideEffectOutcome("deletion_cancelled_email", "skipped", "sender not configured")
        else:
            email_outcome = _run_side_effect(
                "deletion_cancelled_email",
                lambda: self.notifier.send_deletion_cancelled(account.email),
                level=logging.ERROR,
                context=context,
            )

        logger.info("User deletion cancelled (%s)", action, extra=context)
        return DeletionCancelled(
            account_id=account.account_id,
            message="Deletion cancelled successfully",
            side_effects=(job_outcome, email_outcome),
        )

