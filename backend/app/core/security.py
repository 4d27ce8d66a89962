import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Protocol

from jose import jwt

from app.core.config import settings

ALGO = "HS256"
ACCESS_TOKEN_MINUTES = 60

UNDO_TOKEN_BYTES = 32
_UNDO_TOKEN_RE = re.compile(r"[0-9a-f]{64}")

def now_utc() -> datetime:
    return datetime.now(timezone.utc)

class Clock(Protocol):
    def now(self) -> datetime:
        ...

class SystemClock:
    def now(self) -> datetime:
        return now_utc()

def as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def create_access_token(sub: str, email: str | None = None, minutes: int = ACCESS_TOKEN_MINUTES) -> str:
    exp = now_utc() + timedelta(minutes=minutes)
    payload = {"sub": sub, "type": "access", "exp": exp}
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGO)

def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGO])

def new_undo_token() -> str:
    # 256 bits from the OS CSPRNG, rendered as 64 hex chars
    return secrets.token_hex(UNDO_TOKEN_BYTES)

def is_well_formed_undo_token(token: str | None) -> bool:
    return isinstance(token, str) and _UNDO_TOKEN_RE.fullmatch(token) is not None
