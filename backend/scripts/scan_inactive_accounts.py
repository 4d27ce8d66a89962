import argparse

from app.api.deps import get_deletion_notifier
from app.core.config import settings
from app.core.logging import setup_logging
from app.db.session import SessionLocal
from app.services.account_deletion import AccountDeletionService, DeletionConfig
from app.services.accounts import SqlAccountStore
from app.services.deletion_scheduler import SqlDeletionScheduler


def main():
    parser = argparse.ArgumentParser(description="Schedule deletion of accounts inactive for too long")
    parser.add_argument("--limit", type=int, default=100)
    args = parser.parse_args()

    setup_logging(settings.LOG_LEVEL)

    db = SessionLocal()
    try:
        service = AccountDeletionService(
            store=SqlAccountStore(db),
            scheduler=SqlDeletionScheduler(db),
            notifier=get_deletion_notifier(),
            config=DeletionConfig.from_settings(settings),
        )
        summary = service.scan_inactive_accounts(limit=args.limit)
        print(
            "ok: inactivity scan "
            f"scanned={summary.scanned} scheduled={summary.scheduled} conflicts={summary.conflicts}"
        )
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
