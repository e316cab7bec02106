"""Patient to clinic invitations: a patient shares their data with a clinic."""

from __future__ import annotations

import logging

from hydrophone.core.errors import Conflict, Forbidden, NotFound, ValidationError
from hydrophone.core.structured_logging import build_log_context
from hydrophone.db.enums import ConfirmationStatus, ConfirmationType, TemplateName
from hydrophone.db.models import Confirmation
from hydrophone.schemas.confirmation import AcceptPatientInvite, PatientClinicInviteCreate
from hydrophone.schemas.context import ClinicPatientContext
from hydrophone.services import confirmation_store as store
from hydrophone.services.confirmation_service import (
    EngineContext,
    add_creator,
    careteam_name,
    check_duplicate,
    recipient_language,
    require_authority,
    require_clinic_member,
    send_email,
    transition,
)
from hydrophone.services.confirmation_store import ConfirmationFilter
from hydrophone.services.directory import ClinicPatientExists
from hydrophone.services.directory.models import CLINIC_ADMIN, Clinic, ClinicPatient, TokenData

logger = logging.getLogger(__name__)

MAX_CLINIC_ADMINS = 100


async def _resolve_clinic(
    ctx: EngineContext, share_code: str | None, clinic_id: str | None
) -> Clinic:
    if clinic_id:
        clinic = await ctx.directories.clinic.get_clinic(clinic_id)
    elif share_code:
        clinics = await ctx.directories.clinic.list_clinics(share_code=share_code, limit=1)
        clinic = clinics[0] if clinics else None
    else:
        raise ValidationError("shareCode is required")
    if clinic is None:
        raise NotFound("Clinic not found")
    return clinic


async def send_invite(
    ctx: EngineContext,
    token: TokenData,
    inviter_id: str,
    data: PatientClinicInviteCreate,
    clinic_id: str | None = None,
) -> Confirmation:
    """
    Invite a clinic to the care team of ``inviter_id``.

    The clinic is found by id when given, else by share code. The email goes
    to every clinic admin unless the clinic suppresses these notifications.
    """
    await require_authority(ctx, token, inviter_id)
    if not data.permissions:
        raise ValidationError("permissions are required")
    clinic = await _resolve_clinic(ctx, data.share_code, clinic_id)

    check_duplicate(
        ctx,
        ConfirmationFilter(
            creator_id=inviter_id,
            clinic_id=clinic.id,
            type=ConfirmationType.PATIENT_CLINIC_INVITATION,
        ),
    )
    if await ctx.directories.clinic.get_patient(clinic.id, inviter_id) is not None:
        raise Conflict("The user is already a patient of the clinic")

    admins = await ctx.directories.clinic.list_clinicians(
        clinic.id, role=CLINIC_ADMIN, limit=MAX_CLINIC_ADMINS
    )
    recipients = [admin.email for admin in admins if admin.email]

    invite = Confirmation.new(
        ConfirmationType.PATIENT_CLINIC_INVITATION,
        TemplateName.PATIENT_CLINIC_INVITATION,
        inviter_id,
        ClinicPatientContext(permissions=data.permissions),
    )
    invite.clinic_id = clinic.id
    await add_creator(ctx, invite)
    invite = store.upsert(ctx.db, invite)
    logger.info(
        "Clinic invite created",
        extra=build_log_context(
            user_id=inviter_id, confirmation_key=invite.key, confirmation_type=invite.type
        ),
    )

    if clinic.suppresses_patient_invitations:
        logger.info("Clinic %s suppresses patient invitation emails", clinic.id)
        return invite

    content = {
        "CareteamName": careteam_name(invite),
        "ClinicName": clinic.name,
        "WebPath": "login",
    }
    language = await recipient_language(ctx, None)
    tags = {"type": invite.type, "template": invite.template_name}
    for recipient in recipients:
        await send_email(ctx, invite.template_name, recipient, content, language, tags)
    return invite


async def list_invites(ctx: EngineContext, token: TokenData, clinic_id: str) -> list[Confirmation]:
    await require_clinic_member(ctx, token, clinic_id)
    return store.find_many(
        ctx.db,
        ConfirmationFilter(clinic_id=clinic_id, type=ConfirmationType.PATIENT_CLINIC_INVITATION),
        [ConfirmationStatus.PENDING],
    )


def _find_invite(ctx: EngineContext, clinic_id: str, key: str) -> Confirmation | None:
    return store.find_one(ctx.db, ConfirmationFilter(key=key, clinic_id=clinic_id))


def _check_invite(
    invite: Confirmation, clinic_id: str, statuses: list[ConfirmationStatus]
) -> None:
    mismatches = invite.validate_status_in(statuses)
    mismatches += invite.validate_type(ConfirmationType.PATIENT_CLINIC_INVITATION)
    mismatches += invite.validate_clinic_id(clinic_id)
    if mismatches:
        for mismatch in mismatches:
            logger.warning("Clinic invite refused: %s", mismatch)
        raise Forbidden()


async def accept_invite(
    ctx: EngineContext,
    token: TokenData,
    clinic_id: str,
    key: str,
    data: AcceptPatientInvite,
) -> ClinicPatient:
    """A clinic member accepts: the inviter becomes a patient of the clinic."""
    await require_clinic_member(ctx, token, clinic_id)
    invite = _find_invite(ctx, clinic_id, key)
    if invite is None:
        raise NotFound("No matching invite was found")
    _check_invite(invite, clinic_id, [ConfirmationStatus.PENDING])

    mrn_settings = await ctx.directories.clinic.get_mrn_settings(clinic_id)
    if mrn_settings.required and not (data.mrn or "").strip():
        raise ValidationError("MRN is required")

    context = invite.decode_context()
    try:
        patient = await ctx.directories.clinic.create_patient_from_user(
            clinic_id,
            invite.creator_id,
            context.permissions,
            mrn=data.mrn,
            birth_date=data.birth_date,
            full_name=data.full_name,
        )
    except ClinicPatientExists:
        patient = await ctx.directories.clinic.get_patient(clinic_id, invite.creator_id)
        if patient is None:
            raise NotFound("Patient not found") from None

    transition(ctx, invite, ConfirmationStatus.COMPLETED)
    return patient


async def cancel_or_dismiss_invite(
    ctx: EngineContext, token: TokenData, clinic_id: str, key: str
) -> Confirmation:
    """The inviter cancels; a clinic member dismisses."""
    invite = _find_invite(ctx, clinic_id, key)
    if invite is None:
        raise Forbidden()

    status = ConfirmationStatus.CANCELED
    if token.userid != invite.creator_id:
        status = ConfirmationStatus.DECLINED
        await require_clinic_member(ctx, token, clinic_id)

    _check_invite(invite, clinic_id, [ConfirmationStatus.PENDING, ConfirmationStatus.DECLINED])
    if invite.status_enum is ConfirmationStatus.DECLINED:
        # Terminal already; repeating the call is harmless
        return invite
    return transition(ctx, invite, status)
