"""Care-team invitation endpoints."""

from fastapi import APIRouter, Depends

from hydrophone.core.deps import get_engine, get_token
from hydrophone.schemas.confirmation import (
    CareTeamInviteCreate,
    ConfirmationRead,
    KeyBody,
    confirmation_to_read,
)
from hydrophone.services import careteam_service
from hydrophone.services.confirmation_service import EngineContext
from hydrophone.services.directory.models import TokenData

router = APIRouter(tags=["careteam"])


@router.post("/send/invite/{user_id}", response_model=ConfirmationRead)
async def send_invite(
    user_id: str,
    body: CareTeamInviteCreate,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    """Invite someone to the care team of ``user_id``."""
    invite = await careteam_service.send_invite(ctx, token, user_id, body)
    return confirmation_to_read(invite)


@router.post("/resend/invite/{key}", response_model=ConfirmationRead)
async def resend_invite(
    key: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    invite = await careteam_service.resend_invite(ctx, token, key)
    return confirmation_to_read(invite)


@router.get("/invitations/{user_id}", response_model=list[ConfirmationRead])
async def received_invites(
    user_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    """Pending invitations addressed to ``user_id``."""
    invites = await careteam_service.received_invites(ctx, token, user_id)
    return [confirmation_to_read(invite) for invite in invites]


@router.get("/invite/{user_id}", response_model=list[ConfirmationRead])
async def sent_invites(
    user_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    """Pending and declined invitations sent by ``user_id``."""
    invites = await careteam_service.sent_invites(ctx, token, user_id)
    return [confirmation_to_read(invite) for invite in invites]


@router.put("/accept/invite/{user_id}/{invited_by}", response_model=ConfirmationRead)
async def accept_invite(
    user_id: str,
    invited_by: str,
    body: KeyBody,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    invite = await careteam_service.accept_invite(ctx, token, user_id, invited_by, body.key)
    return confirmation_to_read(invite)


@router.put("/dismiss/invite/{user_id}/{invited_by}", response_model=ConfirmationRead)
async def dismiss_invite(
    user_id: str,
    invited_by: str,
    body: KeyBody,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    invite = await careteam_service.dismiss_invite(ctx, token, user_id, invited_by, body.key)
    return confirmation_to_read(invite)


@router.put("/{user_id}/invited/{email}", response_model=ConfirmationRead)
async def cancel_invite(
    user_id: str,
    email: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    """The inviter withdraws the pending invitation sent to ``email``."""
    invite = await careteam_service.cancel_invite(ctx, token, user_id, email)
    return confirmation_to_read(invite)
