from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import Principal, get_account_deletion_service, get_current_principal
from app.core.config import settings
from app.schemas.account import DevDeletionTriggerIn, DevDeletionTriggerOut
from app.services.account_deletion import AccountDeletionService

router = APIRouter()


@router.post("/users/{account_id}/trigger-deletion", response_model=DevDeletionTriggerOut)
def trigger_user_deletion(
    account_id: str,
    payload: DevDeletionTriggerIn | None = None,
    current: Principal = Depends(get_current_principal),
    service: AccountDeletionService = Depends(get_account_deletion_service),
):
    if settings.ENV == "prod":
        raise HTTPException(403, "This endpoint is not available in production")
    minutes = payload.minutes_from_now if payload else 1
    result = service.expedite_deletion(account_id, timedelta(minutes=minutes))
    return DevDeletionTriggerOut(
        user_id=result.account_id,
        status=result.status,
        deletion_scheduled_at=result.deletion_scheduled_at,
        job_scheduled=all(o.ok for o in result.side_effects),
    )
