"""Lost password endpoints (no authentication)."""

from fastapi import APIRouter, Depends, Request

from hydrophone.core.deps import get_engine
from hydrophone.core.rate_limit import SEND_LIMIT, limiter
from hydrophone.schemas.confirmation import PasswordResetAccept, StatusRead
from hydrophone.services import password_service
from hydrophone.services.confirmation_service import EngineContext

router = APIRouter(tags=["password"])


@router.post("/send/forgot/{email}", response_model=StatusRead)
@limiter.limit(SEND_LIMIT)
async def send_forgot(
    request: Request,
    email: str,
    info: str | None = None,
    ctx: EngineContext = Depends(get_engine),
):
    """
    Always answers 200 once the email is sent, whether or not an account
    exists for ``email``.
    """
    await password_service.send_forgot(ctx, email, info=bool(info))
    return StatusRead()


@router.put("/accept/forgot", response_model=StatusRead)
async def accept_forgot(
    body: PasswordResetAccept,
    ctx: EngineContext = Depends(get_engine),
):
    await password_service.accept_forgot(ctx, body)
    return StatusRead(reason="Password has been reset")
