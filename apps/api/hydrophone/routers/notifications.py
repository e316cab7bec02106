"""Notifications sent on behalf of other services."""

from fastapi import APIRouter, Body, Depends

from hydrophone.core.deps import get_engine, get_token
from hydrophone.schemas.confirmation import ConfirmationRead, confirmation_to_read
from hydrophone.services import notification_service
from hydrophone.services.confirmation_service import EngineContext
from hydrophone.services.directory.models import TokenData
from hydrophone.types import JsonObject

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post("/{topic}", response_model=ConfirmationRead)
async def send_notification(
    topic: str,
    payload: JsonObject = Body(default_factory=dict),
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    notification = await notification_service.send_notification(ctx, token, topic, payload)
    return confirmation_to_read(notification)
