from fastapi import APIRouter, Depends

from app.api.deps import Principal, get_account_deletion_service, get_current_principal
from app.schemas.account import (
    AccountDeletionActionOut,
    AccountDeletionRequestIn,
    AccountDeletionRequestOut,
    AccountDeletionStatusOut,
    LoginEventOut,
)
from app.services.account_deletion import AccountDeletionService

router = APIRouter()


@router.post("/request-deletion", response_model=AccountDeletionRequestOut)
def request_deletion(
    payload: AccountDeletionRequestIn | None = None,
    current: Principal = Depends(get_current_principal),
    service: AccountDeletionService = Depends(get_account_deletion_service),
):
    result = service.request_deletion(
        current.account_id,
        payload.confirmation_phrase if payload else None,
        fallback_email=current.email,
    )
    return AccountDeletionRequestOut(status=result.status, deletion_scheduled_at=result.deletion_scheduled_at)


@router.post("/cancel-deletion", response_model=AccountDeletionActionOut)
def cancel_deletion(
    current: Principal = Depends(get_current_principal),
    service: AccountDeletionService = Depends(get_account_deletion_service),
):
    result = service.cancel_deletion(current.account_id)
    return AccountDeletionActionOut(ok=True, message=result.message)


@router.get("/deletion-status", response_model=AccountDeletionStatusOut)
def deletion_status(
    current: Principal = Depends(get_current_principal),
    service: AccountDeletionService = Depends(get_account_deletion_service),
):
    status = service.get_status(current.account_id)
    return AccountDeletionStatusOut(
        status=status.status,
        deletion_scheduled_at=status.deletion_scheduled_at,
        deletion_reason=status.deletion_reason,
        deletion_requested_at=status.deletion_requested_at,
        grace_days=status.grace_days,
    )


@router.post("/login-event", response_model=LoginEventOut)
def login_event(
    current: Principal = Depends(get_current_principal),
    service: AccountDeletionService = Depends(get_account_deletion_service),
):
    result = service.record_login(current.account_id)
    return LoginEventOut(ok=True, deletion_cancelled=result.deletion_cancelled)
