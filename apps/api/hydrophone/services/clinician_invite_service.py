"""Clinician invitations: a clinic admin invites a colleague to the clinic."""

from __future__ import annotations

import logging

from hydrophone.core.errors import Forbidden, NotFound, Unauthorized
from hydrophone.db.enums import ConfirmationStatus, ConfirmationType, TemplateName
from hydrophone.db.models import Confirmation
from hydrophone.schemas.confirmation import ClinicianInviteCreate, Restrictions
from hydrophone.services import confirmation_store as store
from hydrophone.services.confirmation_service import (
    EngineContext,
    add_creator,
    creator_name,
    get_caller,
    recipient_language,
    require_clinic_admin,
    send_confirmation_email,
    transition,
)
from hydrophone.services.confirmation_store import ConfirmationFilter
from hydrophone.services.directory.models import Clinic, Clinician, TokenData, User

logger = logging.getLogger(__name__)


async def _get_clinic(ctx: EngineContext, clinic_id: str) -> Clinic:
    clinic = await ctx.directories.clinic.get_clinic(clinic_id)
    if clinic is None:
        raise NotFound("Clinic not found")
    return clinic


async def _deliver(ctx: EngineContext, invite: Confirmation, clinic: Clinic) -> Confirmation:
    """Attach the recipient and creator, persist, then email the invite."""
    invite.clinic_id = clinic.id
    invitee = await ctx.directories.identity.get_user(invite.email)
    if invitee is not None:
        invite.user_id = invitee.userid
    await add_creator(ctx, invite, clinic_id=clinic.id, clinic_name=clinic.name)
    invite = store.upsert(ctx.db, invite)

    content = {
        "ClinicName": clinic.name,
        "CreatorName": creator_name(invite),
        "Email": invite.email,
        "WebPath": "login" if invite.user_id else "signup/clinician",
    }
    language = await recipient_language(ctx, invite.user_id)
    await send_confirmation_email(ctx, invite, content, language)
    return invite


async def send_invite(
    ctx: EngineContext, token: TokenData, clinic_id: str, data: ClinicianInviteCreate
) -> Confirmation:
    await require_clinic_admin(ctx, token, clinic_id)
    clinic = await _get_clinic(ctx, clinic_id)

    invite = Confirmation.new(
        ConfirmationType.CLINICIAN_INVITATION, TemplateName.CLINICIAN_INVITATION, token.userid
    )
    invite.email = data.email
    await ctx.directories.clinic.create_clinician(
        clinic.id, Clinician(invite_id=invite.key, email=data.email, roles=data.roles)
    )
    return await _deliver(ctx, invite, clinic)


async def resend_invite(
    ctx: EngineContext, token: TokenData, clinic_id: str, invite_id: str
) -> Confirmation:
    """Send again; the record is recreated under the same key when missing."""
    await require_clinic_admin(ctx, token, clinic_id)
    clinic = await _get_clinic(ctx, clinic_id)
    invited = await ctx.directories.clinic.get_invited_clinician(clinic_id, invite_id)
    if invited is None:
        raise NotFound("Invited clinician not found")

    invite = store.find_one(
        ctx.db,
        ConfirmationFilter(
            key=invite_id,
            type=ConfirmationType.CLINICIAN_INVITATION,
            status=ConfirmationStatus.PENDING,
        ),
    )
    if invite is None:
        invite = Confirmation.new(
            ConfirmationType.CLINICIAN_INVITATION, TemplateName.CLINICIAN_INVITATION, token.userid
        )
        invite.key = invite_id
    else:
        invite.reset_creation_attributes()
    invite.email = invited.email
    return await _deliver(ctx, invite, clinic)


async def get_invite(
    ctx: EngineContext, token: TokenData, clinic_id: str, invite_id: str
) -> Confirmation:
    await require_clinic_admin(ctx, token, clinic_id)
    if await ctx.directories.clinic.get_invited_clinician(clinic_id, invite_id) is None:
        raise NotFound("Invited clinician not found")
    invite = store.find_one(
        ctx.db,
        ConfirmationFilter(
            key=invite_id,
            type=ConfirmationType.CLINICIAN_INVITATION,
            status=ConfirmationStatus.PENDING,
        ),
    )
    if invite is None:
        raise NotFound("No matching invite was found")
    return invite


def restrictions_for(invite: Confirmation) -> Restrictions:
    return Restrictions(can_accept=not invite.is_expired())


async def _caller_as_invitee(ctx: EngineContext, token: TokenData, user_id: str) -> User:
    if token.is_server or token.userid != user_id:
        raise Unauthorized("Token belongs to a different user")
    return await get_caller(ctx, token)


async def list_user_invites(
    ctx: EngineContext, token: TokenData, user_id: str
) -> list[tuple[Confirmation, Restrictions]]:
    """Pending clinician invites of a user, with what the user may do with each."""
    invitee = await _caller_as_invitee(ctx, token, user_id)

    # Invites sent before the account existed only carry the email
    userless = store.find_many(
        ctx.db,
        ConfirmationFilter(emails=tuple(invitee.emails), type=ConfirmationType.CLINICIAN_INVITATION),
        [ConfirmationStatus.PENDING],
    )
    for invite in userless:
        if not invite.user_id:
            invite.user_id = invitee.userid
            store.upsert(ctx.db, invite)

    invites = store.find_many(
        ctx.db,
        ConfirmationFilter(user_id=invitee.userid, type=ConfirmationType.CLINICIAN_INVITATION),
        [ConfirmationStatus.PENDING],
    )
    if not invites:
        raise NotFound("No invites found")
    return [(invite, restrictions_for(invite)) for invite in invites]


def _find_user_invite(ctx: EngineContext, user_id: str, invite_id: str) -> Confirmation | None:
    return store.find_one(
        ctx.db,
        ConfirmationFilter(
            key=invite_id,
            user_id=user_id,
            type=ConfirmationType.CLINICIAN_INVITATION,
            status=ConfirmationStatus.PENDING,
        ),
    )


async def accept_invite(
    ctx: EngineContext, token: TokenData, user_id: str, invite_id: str
) -> Clinician:
    invitee = await _caller_as_invitee(ctx, token, user_id)
    invite = _find_user_invite(ctx, invitee.userid, invite_id)
    if invite is None:
        raise NotFound("No matching invite was found")
    if not restrictions_for(invite).can_accept:
        raise Forbidden("Invite cannot be accepted")

    clinician = await ctx.directories.clinic.associate_clinician_to_user(
        invite.clinic_id, invite_id, invitee.userid
    )
    transition(ctx, invite, ConfirmationStatus.COMPLETED)
    return clinician


async def accept_clinic_invite(
    ctx: EngineContext, token: TokenData, clinic_id: str, invite_id: str
) -> Clinician:
    """Accept addressed by clinic and invite rather than by user."""
    invite = _find_user_invite(ctx, token.userid, invite_id)
    if invite is not None and invite.clinic_id != clinic_id:
        raise NotFound("No matching invite was found")
    return await accept_invite(ctx, token, token.userid, invite_id)


async def dismiss_invite(
    ctx: EngineContext, token: TokenData, user_id: str, invite_id: str
) -> Confirmation:
    invitee = await _caller_as_invitee(ctx, token, user_id)
    invite = _find_user_invite(ctx, invitee.userid, invite_id)
    if invite is None:
        raise NotFound("No matching invite was found")
    await ctx.directories.clinic.delete_invited_clinician(invite.clinic_id, invite_id)
    return transition(ctx, invite, ConfirmationStatus.DECLINED)


async def cancel_invite(
    ctx: EngineContext, token: TokenData, clinic_id: str, invite_id: str
) -> Confirmation | None:
    """Withdraw an invite; the directory entry is removed even without a record."""
    await require_clinic_admin(ctx, token, clinic_id)
    invite = store.find_one(
        ctx.db,
        ConfirmationFilter(
            key=invite_id,
            clinic_id=clinic_id,
            type=ConfirmationType.CLINICIAN_INVITATION,
            status=ConfirmationStatus.PENDING,
        ),
    )
    await ctx.directories.clinic.delete_invited_clinician(clinic_id, invite_id)
    if invite is None:
        return None
    return transition(ctx, invite, ConfirmationStatus.CANCELED)
