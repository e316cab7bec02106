"""Confirmation-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_serializer, field_validator

from hydrophone.db.models import Confirmation, as_utc
from hydrophone.schemas.context import AlertsConfig
from hydrophone.types import JsonObject, Permissions


def _rfc3339(value: datetime | None) -> str | None:
    if value is None:
        return None
    return as_utc(value).isoformat().replace("+00:00", "Z")


# =============================================================================
# Read models
# =============================================================================

class Restrictions(BaseModel):
    can_accept: bool = Field(alias="canAccept")
    required_idp: str | None = Field(default=None, alias="requiredIdp")

    model_config = ConfigDict(populate_by_name=True)


class TeamRead(BaseModel):
    id: str
    name: str | None = None


class ConfirmationRead(BaseModel):
    """Wire representation of a confirmation record."""

    key: str
    type: str
    status: str
    email: str
    creator_id: str = Field(alias="creatorId")
    creator: JsonObject = Field(default_factory=dict)
    context: JsonObject | None = None
    created: datetime
    modified: datetime | None = None
    user_id: str | None = Field(default=None, alias="userId")
    clinic_id: str | None = Field(default=None, alias="clinicId")
    team: TeamRead | None = None
    role: str | None = None
    restrictions: Restrictions | None = None

    model_config = ConfigDict(populate_by_name=True)

    @field_serializer("created", "modified")
    def _serialize_dt(self, value: datetime | None) -> str | None:
        return _rfc3339(value)


def confirmation_to_read(
    confirmation: Confirmation, restrictions: Restrictions | None = None
) -> ConfirmationRead:
    team = None
    if confirmation.team_id:
        team = TeamRead(id=confirmation.team_id, name=confirmation.team_name)
    return ConfirmationRead(
        key=confirmation.key,
        type=confirmation.type,
        status=confirmation.status,
        email=confirmation.email,
        creator_id=confirmation.creator_id,
        creator=confirmation.creator or {},
        context=confirmation.context,
        created=confirmation.created,
        modified=confirmation.modified,
        user_id=confirmation.user_id or None,
        clinic_id=confirmation.clinic_id,
        team=team,
        role=confirmation.role,
        restrictions=restrictions,
    )


# =============================================================================
# Request bodies
# =============================================================================

class KeyBody(BaseModel):
    """Body of accept/dismiss calls that carry the confirmation key."""
    key: str = ""


class CareTeamInviteCreate(BaseModel):
    email: EmailStr
    permissions: Permissions
    nickname: str | None = None
    alerts_config: AlertsConfig | None = Field(default=None, alias="alertsConfig")

    model_config = ConfigDict(populate_by_name=True)


class PatientClinicInviteCreate(BaseModel):
    share_code: str | None = Field(default=None, alias="shareCode")
    permissions: Permissions

    model_config = ConfigDict(populate_by_name=True)


class AcceptPatientInvite(BaseModel):
    mrn: str | None = None
    birth_date: str | None = Field(default=None, alias="birthDate")
    full_name: str | None = Field(default=None, alias="fullName")

    model_config = ConfigDict(populate_by_name=True)


class ClinicianInviteCreate(BaseModel):
    email: EmailStr
    roles: list[str] = Field(default_factory=list)


class TeamInviteCreate(BaseModel):
    team_id: str = Field(alias="teamId")
    email: EmailStr
    role: str = "member"

    model_config = ConfigDict(populate_by_name=True)


class MonitoringInviteCreate(BaseModel):
    monitoring_end: datetime = Field(alias="monitoringEnd")
    referring_doctor: str | None = Field(default=None, alias="referringDoctor")

    model_config = ConfigDict(populate_by_name=True)


class TeamRoleUpdate(BaseModel):
    team_id: str = Field(alias="teamId")
    email: EmailStr
    role: str

    model_config = ConfigDict(populate_by_name=True)


class PasswordResetAccept(BaseModel):
    key: str = ""
    email: EmailStr
    password: str

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        """Normalize email to lowercase."""
        return v.lower()


class StatusRead(BaseModel):
    """Plain status payload for operations that do not return a record."""
    code: int = 200
    reason: str = "OK"


class SignupUpsert(BaseModel):
    """Optional body of a sign-up send made on behalf of a clinic."""
    clinic_id: str | None = Field(default=None, alias="clinicId")
    invited_by: str | None = Field(default=None, alias="invitedBy")

    model_config = ConfigDict(populate_by_name=True)


class SignupAcceptance(BaseModel):
    """Claim of a custodial account: the new password and the patient birthday."""
    password: str = ""
    birthday: str = ""


class PrescriptionCreate(BaseModel):
    id: str = ""
    code: str | None = None
    patient_email: str = Field(default="", alias="patientEmail")
    patient_id: str | None = Field(default=None, alias="patientId")
    prescriptor_id: str = Field(default="", alias="prescriptorId")
    product: str | None = None

    model_config = ConfigDict(populate_by_name=True)
