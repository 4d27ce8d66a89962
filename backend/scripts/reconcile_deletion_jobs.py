import argparse

from app.core.config import settings
from app.core.logging import setup_logging
from app.db.session import SessionLocal
from app.services.accounts import SqlAccountStore
from app.services.deletion_scheduler import SqlDeletionScheduler, reconcile_deletion_jobs


def main():
    parser = argparse.ArgumentParser(description="Recreate missing deletion jobs and drop orphaned ones")
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--limit", type=int, default=500)
    args = parser.parse_args()

    setup_logging(settings.LOG_LEVEL)
    if not settings.USER_DELETION_EXECUTOR_URL:
        raise SystemExit("USER_DELETION_EXECUTOR_URL is not configured")

    db = SessionLocal()
    try:
        summary = reconcile_deletion_jobs(
            db,
            SqlAccountStore(db),
            SqlDeletionScheduler(db),
            target=settings.USER_DELETION_EXECUTOR_URL,
            dead_letter_target=settings.USER_DELETION_DLQ_URL,
            dry_run=args.dry_run,
            limit=args.limit,
        )
        mode = "dry-run" if args.dry_run else "applied"
        print(
            f"ok: reconcile {mode} pending={summary.pending} recreated={summary.recreated} "
            f"left_for_operator={summary.left_for_operator} "
            f"orphans_removed={summary.orphans_removed} errors={summary.errors}"
        )
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
