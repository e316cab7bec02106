"""Service status, sanity check and account events."""

from fastapi import APIRouter, Depends

from hydrophone.core.deps import get_engine, get_token
from hydrophone.core.errors import Forbidden
from hydrophone.schemas.confirmation import StatusRead
from hydrophone.services import account_service
from hydrophone.services.confirmation_service import EngineContext
from hydrophone.services.directory.models import TokenData

router = APIRouter(tags=["account"])


@router.get("/status", response_model=StatusRead)
def get_status(ctx: EngineContext = Depends(get_engine)):
    """Health check: the confirmation store answers."""
    account_service.status(ctx)
    return StatusRead()


@router.post("/sanity_check/{user_id}", response_model=StatusRead)
async def sanity_check(
    user_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    """Send a test email to the account to prove mail delivery works."""
    await account_service.sanity_check(ctx, token, user_id)
    return StatusRead()


@router.delete("/internal/users/{user_id}/confirmations")
def delete_user_confirmations(
    user_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    """Account deletion event: drop every record of the account."""
    if not token.is_server:
        raise Forbidden("Only services can delete account data")
    deleted = account_service.remove_all(ctx, user_id)
    return {"deleted": deleted}
