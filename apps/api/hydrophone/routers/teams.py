"""Medical team endpoints: invitations, roles, removal and remote monitoring."""

from fastapi import APIRouter, Depends

from hydrophone.core.deps import get_engine, get_token
from hydrophone.schemas.confirmation import (
    ConfirmationRead,
    KeyBody,
    MonitoringInviteCreate,
    StatusRead,
    TeamInviteCreate,
    TeamRoleUpdate,
    confirmation_to_read,
)
from hydrophone.services import team_invite_service
from hydrophone.services.confirmation_service import EngineContext
from hydrophone.services.directory.models import TokenData

router = APIRouter(tags=["teams"])


@router.post("/send/team/invite", response_model=ConfirmationRead)
async def send_team_invite(
    body: TeamInviteCreate,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    invite = await team_invite_service.send_team_invite(ctx, token, body)
    return confirmation_to_read(invite)


@router.put("/accept/team/invite", response_model=ConfirmationRead)
async def accept_team_invite(
    body: KeyBody,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    """Accept an invitation, or acknowledge a role change or removal."""
    confirmation = await team_invite_service.accept_team_invite(ctx, token, body.key)
    return confirmation_to_read(confirmation)


@router.put("/dismiss/team/invite/{team_id}", response_model=ConfirmationRead)
async def dismiss_team_invite(
    team_id: str,
    body: KeyBody,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    invite = await team_invite_service.dismiss_team_invite(ctx, token, team_id, body.key)
    return confirmation_to_read(invite)


@router.get("/teams/{team_id}/invites", response_model=list[ConfirmationRead])
async def list_team_invites(
    team_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    invites = await team_invite_service.list_team_invites(ctx, token, team_id)
    return [confirmation_to_read(invite) for invite in invites]


@router.put("/send/team/role/{user_id}", response_model=ConfirmationRead | StatusRead)
async def update_team_role(
    user_id: str,
    body: TeamRoleUpdate,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    """Change the role of a member; a promotion to admin returns its notice."""
    confirmation = await team_invite_service.update_team_role(ctx, token, user_id, body)
    if confirmation is None:
        return StatusRead()
    return confirmation_to_read(confirmation)


@router.delete("/send/team/leave/{team_id}/{user_id}", response_model=ConfirmationRead)
async def delete_team_member(
    team_id: str,
    user_id: str,
    email: str | None = None,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    confirmation = await team_invite_service.delete_team_member(
        ctx, token, team_id, user_id, email=email
    )
    return confirmation_to_read(confirmation)


# =============================================================================
# Remote monitoring
# =============================================================================


@router.post("/send/team/monitoring/{team_id}/{user_id}", response_model=ConfirmationRead)
async def send_monitoring_invite(
    team_id: str,
    user_id: str,
    body: MonitoringInviteCreate,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    invite = await team_invite_service.send_monitoring_invite(ctx, token, team_id, user_id, body)
    return confirmation_to_read(invite)


@router.put("/accept/team/monitoring/{team_id}/{user_id}", response_model=ConfirmationRead)
async def accept_monitoring_invite(
    team_id: str,
    user_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    invite = await team_invite_service.accept_monitoring_invite(ctx, token, team_id, user_id)
    return confirmation_to_read(invite)


@router.put("/dismiss/team/monitoring/{team_id}/{user_id}", response_model=ConfirmationRead)
async def dismiss_monitoring_invite(
    team_id: str,
    user_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    invite = await team_invite_service.dismiss_monitoring_invite(ctx, token, team_id, user_id)
    return confirmation_to_read(invite)
