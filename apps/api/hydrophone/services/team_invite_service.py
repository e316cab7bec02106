"""Medical team flows: member and patient invites, roles, removal, monitoring."""

from __future__ import annotations

import logging
from datetime import timedelta

from hydrophone.core.config import settings
from hydrophone.core.errors import (
    Conflict,
    ConfirmationError,
    ExistingMember,
    Expired,
    Forbidden,
    NotAllowed,
    NotFound,
    NotModified,
    Unauthorized,
    ValidationError,
)
from hydrophone.core.structured_logging import build_log_context
from hydrophone.db.enums import (
    ConfirmationStatus,
    ConfirmationType,
    MembershipStatus,
    TeamRole,
    TemplateName,
)
from hydrophone.db.models import Confirmation, utcnow
from hydrophone.schemas.confirmation import MonitoringInviteCreate, TeamInviteCreate, TeamRoleUpdate
from hydrophone.schemas.context import MonitoringContext
from hydrophone.services import confirmation_store as store
from hydrophone.services.confirmation_service import (
    EngineContext,
    add_creator,
    check_duplicate,
    creator_name,
    ensure_user_ids,
    recipient_language,
    send_confirmation_email,
    transition,
)
from hydrophone.services.confirmation_store import ConfirmationFilter
from hydrophone.services.directory.models import (
    ROLE_HCP,
    ROLE_PATIENT,
    Team,
    TeamMember,
    TeamPatient,
    TokenData,
    User,
)

logger = logging.getLogger(__name__)

TEAM_ACTION_TYPES = (
    ConfirmationType.MEDICALTEAM_DO_ADMIN,
    ConfirmationType.MEDICALTEAM_REMOVE,
    ConfirmationType.MEDICALTEAM_INVITATION,
    ConfirmationType.MEDICALTEAM_PATIENT_INVITATION,
)


def normalize_role(role: str | None) -> TeamRole:
    value = (role or "").lower()
    if value == TeamRole.ADMIN.value:
        return TeamRole.ADMIN
    if value == TeamRole.PATIENT.value:
        return TeamRole.PATIENT
    return TeamRole.MEMBER


async def _get_team(ctx: EngineContext, token: TokenData, team_id: str) -> Team:
    team = await ctx.directories.team.get_team(team_id, token=token.token)
    if team is None:
        raise NotFound("Team not found")
    return team


def _team_content(team: Team, confirmation: Confirmation) -> dict[str, str]:
    return {
        "MedicalteamName": team.name,
        "MedicalteamAddress": team.formatted_address(),
        "MedicalteamPhone": team.phone,
        "MedicalteamIentification": team.code,
        "CreatorName": creator_name(confirmation),
        "Email": confirmation.email,
        "Duration": confirmation.readable_duration(),
    }


def _new_team_record(
    confirmation_type: ConfirmationType,
    template: TemplateName,
    creator_id: str,
    team: Team,
    email: str,
) -> Confirmation:
    confirmation = Confirmation.new(confirmation_type, template, creator_id)
    confirmation.team_id = team.id
    confirmation.team_name = team.name
    confirmation.email = email
    return confirmation


# =============================================================================
# Team invitations
# =============================================================================

async def _check_existing_member(
    ctx: EngineContext, token: TokenData, team: Team, invitee: User | None, patient_invite: bool
) -> None:
    if invitee is None:
        return
    if patient_invite:
        patients = await ctx.directories.team.get_team_patients(team.id, token=token.token)
        for patient in patients:
            if (
                patient.user_id == invitee.userid
                and patient.invitation_status != MembershipStatus.REJECTED.value
            ):
                raise ExistingMember()
        return
    member = team.member(invitee.userid)
    if member is not None and member.invitation_status == MembershipStatus.ACCEPTED.value:
        raise ExistingMember()


def _check_invitee_role(invitee: User | None, patient_invite: bool) -> None:
    if patient_invite:
        if invitee is None:
            raise Forbidden("Cannot find the invited user")
        if not invitee.is_patient():
            raise NotAllowed("Only patient accounts can join a team as patient")
    elif invitee is not None and invitee.is_patient():
        raise NotAllowed("Patient accounts cannot join a team as member")


async def _add_pending_membership(
    ctx: EngineContext, token: TokenData, invite: Confirmation, role: TeamRole
) -> None:
    if not invite.user_id:
        return
    if role is TeamRole.PATIENT:
        await ctx.directories.team.add_patient(
            TeamPatient(
                user_id=invite.user_id,
                team_id=invite.team_id,
                invitation_status=MembershipStatus.PENDING.value,
            ),
            token=token.token,
        )
    else:
        await ctx.directories.team.add_team_member(
            TeamMember(
                user_id=invite.user_id,
                team_id=invite.team_id,
                role=role.value,
                invitation_status=MembershipStatus.PENDING.value,
            ),
            token=token.token,
        )


async def send_team_invite(
    ctx: EngineContext, token: TokenData, data: TeamInviteCreate
) -> Confirmation:
    """
    Invite a clinician (member or admin) or a patient to a medical team.

    The record is persisted before the pending membership is written to the
    team directory; when that write fails the record is canceled.
    """
    role = normalize_role(data.role)
    patient_invite = role is TeamRole.PATIENT
    confirmation_type = (
        ConfirmationType.MEDICALTEAM_PATIENT_INVITATION
        if patient_invite
        else ConfirmationType.MEDICALTEAM_INVITATION
    )

    team = await _get_team(ctx, token, data.team_id)
    if not team.is_admin(token.userid) and not patient_invite:
        raise ValidationError("Only team admins can invite members")

    check_duplicate(
        ctx, ConfirmationFilter(email=data.email, team_id=team.id, type=confirmation_type)
    )
    invitee = await ctx.directories.identity.get_user(data.email)
    await _check_existing_member(ctx, token, team, invitee, patient_invite)
    _check_invitee_role(invitee, patient_invite)

    template = (
        TemplateName.MEDICALTEAM_PATIENT_INVITATION
        if patient_invite
        else TemplateName.MEDICALTEAM_INVITATION
    )
    invite = _new_team_record(confirmation_type, template, token.userid, team, data.email)
    invite.role = role.value
    if invitee is not None:
        invite.user_id = invitee.userid
    await add_creator(ctx, invite)
    invite = store.upsert(ctx.db, invite)

    try:
        await _add_pending_membership(ctx, token, invite, role)
    except ConfirmationError:
        logger.error(
            "Team membership update failed, canceling invite",
            extra=build_log_context(confirmation_key=invite.key, confirmation_type=invite.type),
        )
        transition(ctx, invite, ConfirmationStatus.CANCELED)
        raise

    content = _team_content(team, invite)
    content["WebPath"] = "signup" if not patient_invite and not invite.user_id else ""
    language = await recipient_language(ctx, invite.user_id)
    await send_confirmation_email(ctx, invite, content, language)
    return invite


async def accept_team_invite(ctx: EngineContext, token: TokenData, key: str) -> Confirmation:
    """Accept a team invitation or acknowledge a role change or removal."""
    if token.role not in (ROLE_HCP, ROLE_PATIENT):
        raise Forbidden("Caregivers cannot accept a team invitation")
    if not key:
        raise ValidationError("Missing confirmation key")

    confirmation = store.find_one(ctx.db, ConfirmationFilter(key=key))
    if confirmation is None:
        raise NotFound("No matching invite was found")
    mismatches = confirmation.validate_status(ConfirmationStatus.PENDING)
    mismatches += confirmation.validate_user_id(token.userid)
    if not ConfirmationType.has_value(confirmation.type) or ConfirmationType(
        confirmation.type
    ) not in TEAM_ACTION_TYPES:
        mismatches.append(f"Confirmation type `{confirmation.type}` is not a team action")
    if mismatches:
        for mismatch in mismatches:
            logger.warning("Team accept refused: %s", mismatch)
        raise Forbidden()
    if confirmation.is_expired():
        raise Expired()

    if confirmation.type == ConfirmationType.MEDICALTEAM_INVITATION.value:
        await ctx.directories.team.update_team_member(
            TeamMember(
                user_id=confirmation.user_id,
                team_id=confirmation.team_id,
                role=confirmation.role or TeamRole.MEMBER.value,
                invitation_status=MembershipStatus.ACCEPTED.value,
            ),
            token=token.token,
        )
    elif confirmation.type == ConfirmationType.MEDICALTEAM_PATIENT_INVITATION.value:
        await ctx.directories.team.update_patient(
            TeamPatient(
                user_id=confirmation.user_id,
                team_id=confirmation.team_id,
                invitation_status=MembershipStatus.ACCEPTED.value,
            ),
            token=token.token,
        )
    return transition(ctx, confirmation, ConfirmationStatus.COMPLETED)


async def dismiss_team_invite(
    ctx: EngineContext, token: TokenData, team_id: str, key: str
) -> Confirmation:
    """The invitee, or an admin of the team, declines an invitation."""
    if not key:
        raise ValidationError("Missing confirmation key")
    team = await _get_team(ctx, token, team_id)

    flt = ConfirmationFilter(key=key, team_id=team_id)
    if not team.is_admin(token.userid):
        flt.user_id = token.userid
    confirmation = store.find_one(ctx.db, flt)
    if confirmation is None:
        raise NotFound("No matching invite was found")
    if confirmation.status_enum.is_terminal:
        raise NotModified("The invite is not active anymore")

    if confirmation.type == ConfirmationType.MEDICALTEAM_PATIENT_INVITATION.value:
        await ctx.directories.team.update_patient(
            TeamPatient(
                user_id=confirmation.user_id,
                team_id=team_id,
                invitation_status=MembershipStatus.REJECTED.value,
            ),
            token=token.token,
        )
    else:
        await ctx.directories.team.update_team_member(
            TeamMember(
                user_id=confirmation.user_id,
                team_id=team_id,
                role=confirmation.role or TeamRole.MEMBER.value,
                invitation_status=MembershipStatus.REJECTED.value,
            ),
            token=token.token,
        )
    return transition(ctx, confirmation, ConfirmationStatus.DECLINED)


# =============================================================================
# Roles and removal
# =============================================================================

async def update_team_role(
    ctx: EngineContext, token: TokenData, invitee_id: str, data: TeamRoleUpdate
) -> Confirmation | None:
    """Change a member's role; a promotion to admin is notified by email."""
    role = (data.role or "").lower()
    if role not in (TeamRole.ADMIN.value, TeamRole.MEMBER.value):
        raise ValidationError("Role must be admin or member")

    team = await _get_team(ctx, token, data.team_id)
    if not team.is_admin(token.userid):
        raise Unauthorized("Only team admins can change roles")
    member = team.member(invitee_id)
    if member is None or member.invitation_status != MembershipStatus.ACCEPTED.value:
        raise ValidationError("The user is not a member of the team")
    if team.is_admin(invitee_id) == (role == TeamRole.ADMIN.value):
        raise Conflict("The role is already assigned")

    await ctx.directories.team.update_team_member(
        TeamMember(user_id=invitee_id, team_id=team.id, role=role), token=token.token
    )
    if role != TeamRole.ADMIN.value:
        return None

    confirmation = _new_team_record(
        ConfirmationType.MEDICALTEAM_DO_ADMIN,
        TemplateName.MEDICALTEAM_DO_ADMIN,
        token.userid,
        team,
        data.email,
    )
    confirmation.role = role
    confirmation.user_id = invitee_id
    await add_creator(ctx, confirmation)
    confirmation = store.upsert(ctx.db, confirmation)

    language = await recipient_language(ctx, invitee_id)
    await send_confirmation_email(ctx, confirmation, _team_content(team, confirmation), language)
    return confirmation


async def delete_team_member(
    ctx: EngineContext,
    token: TokenData,
    team_id: str,
    user_id: str,
    email: str | None = None,
) -> Confirmation:
    if not email:
        user = await ctx.directories.identity.get_user(user_id)
        if user is None or not (user.username or user.email):
            raise NotFound("User not found")
        email = user.username or user.email

    team = await _get_team(ctx, token, team_id)
    member = team.member(user_id)
    if member is None:
        raise ValidationError("The user is not a member of the team")
    if not team.is_admin(token.userid):
        raise Unauthorized("Only team admins can remove members")

    confirmation = _new_team_record(
        ConfirmationType.MEDICALTEAM_REMOVE,
        TemplateName.MEDICALTEAM_REMOVE,
        token.userid,
        team,
        email,
    )
    confirmation.role = member.role
    confirmation.user_id = user_id

    await ctx.directories.team.remove_team_member(team_id, user_id, token=token.token)
    await add_creator(ctx, confirmation)
    confirmation = store.upsert(ctx.db, confirmation)

    language = await recipient_language(ctx, user_id)
    await send_confirmation_email(ctx, confirmation, _team_content(team, confirmation), language)
    return confirmation


# =============================================================================
# Remote monitoring
# =============================================================================

async def send_monitoring_invite(
    ctx: EngineContext,
    token: TokenData,
    team_id: str,
    patient_id: str,
    data: MonitoringInviteCreate,
) -> Confirmation:
    team = await _get_team(ctx, token, team_id)
    if not team.is_admin(token.userid):
        raise Unauthorized("Only team admins can invite to monitoring")
    if not team.monitoring_enabled:
        raise ValidationError("The team does not do remote monitoring")

    check_duplicate(
        ctx,
        ConfirmationFilter(
            user_id=patient_id,
            team_id=team.id,
            type=ConfirmationType.MEDICALTEAM_MONITORING_INVITATION,
        ),
    )
    patient = await ctx.directories.identity.get_user(patient_id)
    if patient is None:
        raise ValidationError("Cannot find the patient")
    team_patient = await ctx.directories.team.get_team_patient(team.id, patient_id, token=token.token)
    if team_patient is None or team_patient.invitation_status != MembershipStatus.ACCEPTED.value:
        raise Forbidden("The patient is not a member of the team")

    monitoring_end = data.monitoring_end.isoformat()
    invite = _new_team_record(
        ConfirmationType.MEDICALTEAM_MONITORING_INVITATION,
        TemplateName.MEDICALTEAM_MONITORING_INVITATION,
        token.userid,
        team,
        patient.username or patient.email,
    )
    invite.user_id = patient.userid
    invite.add_context(
        MonitoringContext(monitoring_end=monitoring_end, referring_doctor=data.referring_doctor)
    )
    await add_creator(ctx, invite)
    invite = store.upsert(ctx.db, invite)

    content = _team_content(team, invite)
    content["WebPath"] = "notifications"
    language = await recipient_language(ctx, patient.userid)
    await send_confirmation_email(ctx, invite, content, language)

    if data.referring_doctor:
        await ctx.directories.profile.update_profile(
            patient.userid, {"patient": {"referringDoctor": data.referring_doctor}}
        )
    await ctx.directories.team.update_patient_monitoring(
        team.id,
        patient.userid,
        {"monitoringEnd": monitoring_end, "status": MembershipStatus.PENDING.value},
    )
    return invite


async def accept_monitoring_invite(
    ctx: EngineContext, token: TokenData, team_id: str, user_id: str
) -> Confirmation:
    """
    The patient consents to remote monitoring.

    An expired invite is refused and left pending.
    """
    if token.role != ROLE_PATIENT:
        raise Forbidden("Only patients can accept a monitoring invitation")
    if user_id != token.userid:
        raise Forbidden("Monitoring can only be accepted by the patient")

    invite = store.find_one(
        ctx.db,
        ConfirmationFilter(
            user_id=user_id,
            team_id=team_id,
            type=ConfirmationType.MEDICALTEAM_MONITORING_INVITATION,
        ),
    )
    if invite is None:
        raise NotFound("No matching invite was found")
    if invite.validate_status(ConfirmationStatus.PENDING):
        raise Forbidden()
    if invite.is_expired():
        raise Expired("The invite has expired")

    now = utcnow()
    await ctx.directories.profile.update_profile(
        user_id,
        {
            "patient": {
                "monitoring": {
                    "acceptanceTimestamp": now.isoformat().replace("+00:00", "Z"),
                    "isAccepted": True,
                }
            }
        },
    )

    monitoring_end = None
    team_patient = await ctx.directories.team.get_team_patient(team_id, user_id)
    if team_patient is not None and team_patient.monitoring:
        monitoring_end = team_patient.monitoring.get("monitoringEnd")
    if not monitoring_end:
        monitoring_end = invite.decode_context().monitoring_end
    if not monitoring_end:
        monitoring_end = (now + timedelta(days=settings.MONITORING_DEFAULT_DAYS)).isoformat()

    await ctx.directories.team.update_patient_monitoring(
        team_id,
        user_id,
        {"monitoringEnd": monitoring_end, "status": MembershipStatus.ACCEPTED.value},
    )
    return transition(ctx, invite, ConfirmationStatus.COMPLETED)


async def dismiss_monitoring_invite(
    ctx: EngineContext, token: TokenData, team_id: str, patient_id: str
) -> Confirmation:
    """The patient declines, or a team admin cancels, a monitoring invite."""
    by_patient = token.userid == patient_id
    if not by_patient:
        team = await _get_team(ctx, token, team_id)
        if not team.is_admin(token.userid):
            raise Unauthorized()

    invite = store.find_one(
        ctx.db,
        ConfirmationFilter(
            user_id=patient_id,
            team_id=team_id,
            type=ConfirmationType.MEDICALTEAM_MONITORING_INVITATION,
            status=ConfirmationStatus.PENDING,
        ),
    )
    if invite is None:
        raise NotFound("No matching invite was found")

    await ctx.directories.team.update_patient_monitoring(
        team_id,
        patient_id,
        {"monitoringEnd": None, "status": MembershipStatus.REJECTED.value},
    )
    status = ConfirmationStatus.DECLINED if by_patient else ConfirmationStatus.CANCELED
    return transition(ctx, invite, status)


# =============================================================================
# Listing
# =============================================================================

TEAM_INVITE_TYPES = (
    ConfirmationType.MEDICALTEAM_INVITATION,
    ConfirmationType.MEDICALTEAM_PATIENT_INVITATION,
    ConfirmationType.MEDICALTEAM_MONITORING_INVITATION,
)


async def list_team_invites(ctx: EngineContext, token: TokenData, team_id: str) -> list[Confirmation]:
    """Pending invitations of a team, for its admins."""
    if not token.is_server:
        team = await _get_team(ctx, token, team_id)
        if not team.is_admin(token.userid):
            raise Unauthorized("Only team admins can list invitations")
    invites = store.find_many(
        ctx.db,
        ConfirmationFilter(team_id=team_id, types=TEAM_INVITE_TYPES),
        [ConfirmationStatus.PENDING],
    )
    await ensure_user_ids(ctx, invites)
    return invites
