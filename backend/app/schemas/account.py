from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class AccountDeletionRequestIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Any value is accepted here; a mismatch is rejected by the service with INVALID_CONFIRMATION
    confirmation_phrase: Any = Field(default=None, alias="confirmationPhrase")


class AccountDeletionRequestOut(BaseModel):
    status: Literal["active", "pending_deletion"]
    deletion_scheduled_at: datetime


class AccountDeletionStatusOut(BaseModel):
    status: Literal["active", "pending_deletion"]
    deletion_scheduled_at: datetime | None = None
    deletion_reason: str | None = None
    deletion_requested_at: datetime | None = None
    grace_days: int


class AccountDeletionActionOut(BaseModel):
    ok: bool = True
    message: str


class DevDeletionTriggerIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    minutes_from_now: int = Field(default=1, alias="minutesFromNow", ge=1, le=60 * 24 * 30)


class DevDeletionTriggerOut(BaseModel):
    user_id: str
    status: Literal["active", "pending_deletion"]
    deletion_scheduled_at: datetime
    job_scheduled: bool


class LoginEventOut(BaseModel):
    ok: bool = True
    deletion_cancelled: bool
