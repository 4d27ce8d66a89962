from dataclasses import dataclass

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.security import SystemClock, decode_token
from app.db.session import get_db
from app.services.account_deletion import AccountDeletionService, DeletionConfig
from app.services.accounts import SqlAccountStore
from app.services.deletion_scheduler import SqlDeletionScheduler
from app.services.notifications import DeletionNotifier, get_email_sender, resolve_timezone

bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    account_id: str
    email: str | None = None


def get_current_principal(creds: HTTPAuthorizationCredentials | None = Depends(bearer)) -> Principal:
    if creds is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        payload = decode_token(creds.credentials)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid token")
    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type")
    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return Principal(account_id=str(sub), email=payload.get("email") or None)


def get_clock() -> SystemClock:
    return SystemClock()


def get_deletion_notifier() -> DeletionNotifier:
    return DeletionNotifier(
        settings.SENDER_EMAIL,
        get_email_sender(settings.EMAIL_PROVIDER, settings),
        resolve_timezone(settings.EMAIL_TIMEZONE),
    )


def get_account_deletion_service(
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
    notifier: DeletionNotifier = Depends(get_deletion_notifier),
) -> AccountDeletionService:
    return AccountDeletionService(
        store=SqlAccountStore(db),
        scheduler=SqlDeletionScheduler(db, clock),
        notifier=notifier,
        clock=clock,
        config=DeletionConfig.from_settings(settings),
    )
