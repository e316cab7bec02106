"""Care-team invitations: one user shares their data with another."""

from __future__ import annotations

import logging

from hydrophone.core.errors import ExistingMember, Forbidden, NotFound, Unauthorized, ValidationError
from hydrophone.core.structured_logging import build_log_context
from hydrophone.db.enums import ConfirmationStatus, ConfirmationType, TemplateName
from hydrophone.db.models import Confirmation
from hydrophone.schemas.confirmation import CareTeamInviteCreate
from hydrophone.schemas.context import CareTeamContext
from hydrophone.services import confirmation_store as store
from hydrophone.services.confirmation_service import (
    EngineContext,
    add_creator,
    careteam_name,
    check_duplicate,
    ensure_user_ids,
    find_pending,
    get_caller,
    recipient_language,
    require_authority,
    require_recipient,
    send_confirmation_email,
    transition,
)
from hydrophone.services.confirmation_store import ConfirmationFilter
from hydrophone.services.directory.models import TokenData
from hydrophone.types import Permissions

logger = logging.getLogger(__name__)

FOLLOW_PERMISSION = "follow"


def adds_alerting(existing: Permissions, requested: Permissions) -> bool:
    """True when the invite grants ``follow`` to someone who does not have it yet."""
    return FOLLOW_PERMISSION not in existing and FOLLOW_PERMISSION in requested


def _email_content(confirmation: Confirmation, nickname: str | None = None) -> dict[str, str]:
    return {
        "CareteamName": careteam_name(confirmation),
        "Email": confirmation.email,
        "WebPath": "login" if confirmation.user_id else "signup",
        "Nickname": nickname or "",
    }


async def send_invite(
    ctx: EngineContext, token: TokenData, inviter_id: str, data: CareTeamInviteCreate
) -> Confirmation:
    """
    Invite ``data.email`` to the care team of ``inviter_id``.

    An existing member is refused unless the invite adds alerting, in which
    case the member's current permissions are merged into the invite.
    """
    await require_authority(ctx, token, inviter_id)
    if not data.permissions:
        raise ValidationError("permissions are required")

    check_duplicate(
        ctx,
        ConfirmationFilter(
            creator_id=inviter_id, email=data.email, type=ConfirmationType.CARETEAM_INVITATION
        ),
    )

    permissions: Permissions = dict(data.permissions)
    invitee = await ctx.directories.identity.get_user(data.email)
    if invitee is not None:
        existing = await ctx.directories.permission.user_in_group(invitee.userid, inviter_id)
        if existing:
            if not adds_alerting(existing, permissions):
                raise ExistingMember()
            permissions.update(existing)

    context = CareTeamContext(
        permissions=permissions, nickname=data.nickname, alerts_config=data.alerts_config
    )
    invite = Confirmation.new(
        ConfirmationType.CARETEAM_INVITATION, TemplateName.CARETEAM_INVITATION, inviter_id, context
    )
    invite.email = data.email
    if invitee is not None:
        invite.user_id = invitee.userid
    await add_creator(ctx, invite)
    invite = store.upsert(ctx.db, invite)
    logger.info(
        "Care team invite created",
        extra=build_log_context(
            user_id=inviter_id, confirmation_key=invite.key, confirmation_type=invite.type
        ),
    )

    language = await recipient_language(ctx, invite.user_id)
    await send_confirmation_email(ctx, invite, _email_content(invite, data.nickname), language)
    return invite


async def resend_invite(ctx: EngineContext, token: TokenData, key: str) -> Confirmation:
    invite = store.find_one(
        ctx.db,
        ConfirmationFilter(
            key=key,
            type=ConfirmationType.CARETEAM_INVITATION,
            status=ConfirmationStatus.PENDING,
        ),
    )
    if invite is None or invite.clinic_id or invite.is_expired():
        raise Forbidden("Cannot resend this invite")
    await require_authority(ctx, token, invite.creator_id)

    invite.reset_creation_attributes()
    await add_creator(ctx, invite)
    invite = store.upsert(ctx.db, invite)

    context = invite.decode_context()
    language = await recipient_language(ctx, invite.user_id)
    await send_confirmation_email(ctx, invite, _email_content(invite, context.nickname), language)
    return invite


async def received_invites(ctx: EngineContext, token: TokenData, invitee_id: str) -> list[Confirmation]:
    if not token.is_server and token.userid != invitee_id:
        raise Unauthorized()
    invitee = await ctx.directories.identity.get_user(invitee_id)
    if invitee is None:
        raise NotFound("User not found")
    invites = store.find_many(
        ctx.db,
        ConfirmationFilter(
            recipient_id=invitee.userid,
            emails=tuple(invitee.emails),
            type=ConfirmationType.CARETEAM_INVITATION,
        ),
        [ConfirmationStatus.PENDING],
    )
    await ensure_user_ids(ctx, invites)
    return invites


async def sent_invites(ctx: EngineContext, token: TokenData, inviter_id: str) -> list[Confirmation]:
    await require_authority(ctx, token, inviter_id)
    invites = store.find_many(
        ctx.db,
        ConfirmationFilter(creator_id=inviter_id, type=ConfirmationType.CARETEAM_INVITATION),
        [ConfirmationStatus.PENDING, ConfirmationStatus.DECLINED],
    )
    await ensure_user_ids(ctx, invites)
    return invites


async def accept_invite(
    ctx: EngineContext, token: TokenData, invitee_id: str, inviter_id: str, key: str
) -> Confirmation:
    """Grant the invite's permissions over the inviter's data and complete it."""
    if token.userid != invitee_id and not token.is_server:
        raise Unauthorized()
    caller = await get_caller(ctx, token)
    if not key:
        raise ValidationError("Missing confirmation key")

    invite = find_pending(ctx, ConfirmationFilter(key=key))
    mismatches = invite.validate_type(ConfirmationType.CARETEAM_INVITATION)
    mismatches += invite.validate_creator_id(inviter_id)
    if mismatches:
        for mismatch in mismatches:
            logger.warning("Care team accept refused: %s", mismatch)
        raise Forbidden()
    require_recipient(invite, caller)

    context = invite.decode_context()
    if not context.permissions:
        raise ValidationError("Invite carries no permissions")
    await ctx.directories.permission.set_permissions(invitee_id, inviter_id, context.permissions)

    invite.user_id = invitee_id
    return transition(ctx, invite, ConfirmationStatus.COMPLETED)


async def dismiss_invite(
    ctx: EngineContext, token: TokenData, invitee_id: str, inviter_id: str, key: str
) -> Confirmation:
    """Decline an invite; only its recipient may do so."""
    if token.userid != invitee_id and not token.is_server:
        raise Unauthorized()
    caller = await get_caller(ctx, token)
    if not key:
        raise ValidationError("Missing confirmation key")
    invite = store.find_one(
        ctx.db,
        ConfirmationFilter(
            key=key, creator_id=inviter_id, type=ConfirmationType.CARETEAM_INVITATION
        ),
    )
    if invite is None:
        raise NotFound("No matching invite was found")
    require_recipient(invite, caller)
    return transition(ctx, invite, ConfirmationStatus.DECLINED)


async def cancel_invite(
    ctx: EngineContext, token: TokenData, inviter_id: str, email: str
) -> Confirmation:
    await require_authority(ctx, token, inviter_id)
    invite = store.find_one(
        ctx.db,
        ConfirmationFilter(
            creator_id=inviter_id,
            email=email,
            type=ConfirmationType.CARETEAM_INVITATION,
            status=ConfirmationStatus.PENDING,
        ),
    )
    if invite is None:
        raise NotFound("No matching invite was found")
    return transition(ctx, invite, ConfirmationStatus.CANCELED)
