from fastapi import APIRouter
from app.api.routes import account, dev, public

router = APIRouter()
router.include_router(account.router, prefix="/auth", tags=["account-deletion"])
router.include_router(public.router, prefix="/auth", tags=["public"])
router.include_router(dev.router, prefix="/dev", tags=["dev"])
