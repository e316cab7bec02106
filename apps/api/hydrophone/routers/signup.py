"""Sign-up confirmation endpoints."""

from fastapi import APIRouter, Depends, Request

from hydrophone.core.deps import get_engine, get_token
from hydrophone.core.rate_limit import SEND_LIMIT, limiter
from hydrophone.schemas.confirmation import (
    ConfirmationRead,
    KeyBody,
    SignupUpsert,
    StatusRead,
    confirmation_to_read,
)
from hydrophone.services import signup_service
from hydrophone.services.confirmation_service import EngineContext
from hydrophone.services.directory.models import TokenData

router = APIRouter(tags=["signup"])


@router.post("/send/signup/{user_id}", response_model=StatusRead)
async def send_signup(
    user_id: str,
    body: SignupUpsert | None = None,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    """Create (or refresh) the sign-up of ``user_id`` and email it."""
    await signup_service.send_signup(ctx, token, user_id, body)
    return StatusRead()


@router.post("/signup/{user_id}", response_model=ConfirmationRead | StatusRead)
async def upsert_signup(
    user_id: str,
    body: SignupUpsert | None = None,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    """Create (or refresh) the sign-up of ``user_id`` without emailing it."""
    signup = await signup_service.upsert_signup(ctx, token, user_id, body)
    if signup is None:
        return StatusRead()
    return confirmation_to_read(signup)


@router.post("/resend/signup/{email}", response_model=StatusRead)
@limiter.limit(SEND_LIMIT)
async def resend_signup(
    request: Request,
    email: str,
    ctx: EngineContext = Depends(get_engine),
):
    await signup_service.resend_signup(ctx, email)
    return StatusRead()


@router.put("/accept/signup/{user_id}/{key}", response_model=StatusRead)
async def accept_signup(
    request: Request,
    user_id: str,
    key: str,
    ctx: EngineContext = Depends(get_engine),
):
    """
    Confirm the email of the account.

    The body ``{password, birthday}`` is read raw: accounts without a
    password must send it, and each problem has its own error code.
    """
    body = await request.body()
    await signup_service.accept_signup(ctx, user_id, key, body)
    return StatusRead(reason="User has had signup confirmed")


@router.put("/dismiss/signup/{user_id}", response_model=StatusRead)
async def dismiss_signup(
    user_id: str,
    body: KeyBody,
    ctx: EngineContext = Depends(get_engine),
):
    await signup_service.dismiss_signup(ctx, user_id, body.key)
    return StatusRead()


@router.get("/signup/{user_id}", response_model=ConfirmationRead)
async def get_signup(
    user_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    signup = await signup_service.get_signup(ctx, token, user_id)
    return confirmation_to_read(signup)


@router.delete("/signup/{user_id}", response_model=StatusRead)
async def cancel_signup(
    user_id: str,
    body: KeyBody | None = None,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    await signup_service.cancel_signup(ctx, token, user_id, body.key if body else None)
    return StatusRead()
