import argparse

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.security import now_utc
from app.db.session import SessionLocal
from app.services.deletion_scheduler import HttpJobInvoker, dispatch_due_jobs


def main():
    parser = argparse.ArgumentParser(description="Fire account deletion jobs whose time has come")
    parser.add_argument("--limit", type=int, default=100)
    args = parser.parse_args()

    setup_logging(settings.LOG_LEVEL)
    invoker = HttpJobInvoker(timeout_seconds=settings.SIDE_EFFECT_TIMEOUT_SECONDS)

    db = SessionLocal()
    try:
        summary = dispatch_due_jobs(
            db,
            invoker,
            now=now_utc(),
            max_attempts=settings.USER_DELETION_JOB_MAX_ATTEMPTS,
            limit=args.limit,
        )
        print(
            "ok: deletion jobs "
            f"claimed={summary.claimed} fired={summary.fired} "
            f"retried={summary.retried} dead_lettered={summary.dead_lettered}"
        )
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
