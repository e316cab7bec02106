"""Patient emails: PIN reset and account information."""

from fastapi import APIRouter, Depends

from hydrophone.core.deps import get_engine, get_token
from hydrophone.schemas.confirmation import StatusRead
from hydrophone.services import inform_service, pin_reset_service
from hydrophone.services.confirmation_service import EngineContext
from hydrophone.services.directory.models import TokenData

router = APIRouter(prefix="/send", tags=["patients"])


@router.post("/pin-reset/{user_id}", response_model=StatusRead)
async def send_pin_reset(
    user_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    """Email the current PIN reset code. The code itself is never returned."""
    await pin_reset_service.send_pin_reset(ctx, token, user_id)
    return StatusRead()


@router.post("/inform/{user_id}", response_model=StatusRead)
async def send_information(
    user_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    await inform_service.send_information(ctx, token, user_id)
    return StatusRead()
