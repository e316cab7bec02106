"""Clinic endpoints: patient to clinic invites and clinician invites."""

from fastapi import APIRouter, Depends

from hydrophone.core.deps import get_engine, get_token
from hydrophone.schemas.confirmation import (
    AcceptPatientInvite,
    ClinicianInviteCreate,
    ConfirmationRead,
    PatientClinicInviteCreate,
    StatusRead,
    confirmation_to_read,
)
from hydrophone.services import clinic_invite_service, clinician_invite_service
from hydrophone.services.confirmation_service import EngineContext
from hydrophone.services.directory.models import TokenData
from hydrophone.types import JsonObject

router = APIRouter(tags=["clinics"])


# =============================================================================
# Patient invites
# =============================================================================


@router.post("/send/invite/{user_id}/clinic", response_model=ConfirmationRead)
async def send_patient_invite_by_share_code(
    user_id: str,
    body: PatientClinicInviteCreate,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    """Share the data of ``user_id`` with the clinic owning ``shareCode``."""
    invite = await clinic_invite_service.send_invite(ctx, token, user_id, body)
    return confirmation_to_read(invite)


@router.post("/clinics/{clinic_id}/invite/patient", response_model=ConfirmationRead)
async def send_patient_invite(
    clinic_id: str,
    body: PatientClinicInviteCreate,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    """The caller shares their data with ``clinic_id``."""
    invite = await clinic_invite_service.send_invite(
        ctx, token, token.userid, body, clinic_id=clinic_id
    )
    return confirmation_to_read(invite)


@router.get("/clinics/{clinic_id}/invites/patients", response_model=list[ConfirmationRead])
async def list_patient_invites(
    clinic_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    invites = await clinic_invite_service.list_invites(ctx, token, clinic_id)
    return [confirmation_to_read(invite) for invite in invites]


@router.put("/clinics/{clinic_id}/invites/patients/{invite_id}")
async def accept_patient_invite(
    clinic_id: str,
    invite_id: str,
    body: AcceptPatientInvite | None = None,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
) -> JsonObject:
    """Accept the invite; returns the new clinic patient."""
    patient = await clinic_invite_service.accept_invite(
        ctx, token, clinic_id, invite_id, body or AcceptPatientInvite()
    )
    return patient.model_dump(by_alias=True, exclude_none=True)


@router.delete("/clinics/{clinic_id}/invites/patients/{invite_id}", response_model=ConfirmationRead)
async def cancel_or_dismiss_patient_invite(
    clinic_id: str,
    invite_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    invite = await clinic_invite_service.cancel_or_dismiss_invite(ctx, token, clinic_id, invite_id)
    return confirmation_to_read(invite)


# =============================================================================
# Clinician invites (clinic side)
# =============================================================================


@router.post("/clinics/{clinic_id}/invite/clinician", response_model=ConfirmationRead)
async def send_clinician_invite(
    clinic_id: str,
    body: ClinicianInviteCreate,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    invite = await clinician_invite_service.send_invite(ctx, token, clinic_id, body)
    return confirmation_to_read(invite)


@router.patch("/clinics/{clinic_id}/invites/{invite_id}/clinician", response_model=ConfirmationRead)
async def resend_clinician_invite(
    clinic_id: str,
    invite_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    invite = await clinician_invite_service.resend_invite(ctx, token, clinic_id, invite_id)
    return confirmation_to_read(invite)


@router.get("/clinics/{clinic_id}/invites/{invite_id}/clinician", response_model=ConfirmationRead)
async def get_clinician_invite(
    clinic_id: str,
    invite_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    invite = await clinician_invite_service.get_invite(ctx, token, clinic_id, invite_id)
    return confirmation_to_read(invite)


@router.put("/clinics/{clinic_id}/invites/{invite_id}/clinician")
async def accept_clinician_invite_for_clinic(
    clinic_id: str,
    invite_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
) -> JsonObject:
    clinician = await clinician_invite_service.accept_clinic_invite(ctx, token, clinic_id, invite_id)
    return clinician.model_dump(by_alias=True, exclude_none=True)


@router.delete(
    "/clinics/{clinic_id}/invites/{invite_id}/clinician",
    response_model=ConfirmationRead | StatusRead,
)
async def cancel_clinician_invite(
    clinic_id: str,
    invite_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    invite = await clinician_invite_service.cancel_invite(ctx, token, clinic_id, invite_id)
    if invite is None:
        return StatusRead()
    return confirmation_to_read(invite)


# =============================================================================
# Clinician invites (invitee side)
# =============================================================================


@router.get("/clinicians/{user_id}/invites", response_model=list[ConfirmationRead])
async def list_clinician_invites(
    user_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    """Pending clinician invites of ``user_id``, each with its restrictions."""
    invites = await clinician_invite_service.list_user_invites(ctx, token, user_id)
    return [confirmation_to_read(invite, restrictions) for invite, restrictions in invites]


@router.put("/clinicians/{user_id}/invites/{invite_id}")
async def accept_clinician_invite(
    user_id: str,
    invite_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
) -> JsonObject:
    clinician = await clinician_invite_service.accept_invite(ctx, token, user_id, invite_id)
    return clinician.model_dump(by_alias=True, exclude_none=True)


@router.delete("/clinicians/{user_id}/invites/{invite_id}", response_model=ConfirmationRead)
async def dismiss_clinician_invite(
    user_id: str,
    invite_id: str,
    ctx: EngineContext = Depends(get_engine),
    token: TokenData = Depends(get_token),
):
    invite = await clinician_invite_service.dismiss_invite(ctx, token, user_id, invite_id)
    return confirmation_to_read(invite)
