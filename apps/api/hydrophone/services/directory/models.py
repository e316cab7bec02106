"""Entities returned by the directory services."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from hydrophone.types import JsonObject, Permissions

ROLE_CLINIC = "clinic"
ROLE_HCP = "hcp"
ROLE_PATIENT = "patient"
ROLE_CAREGIVER = "caregiver"
CLINIC_ADMIN = "CLINIC_ADMIN"


class _Entity(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class User(_Entity):
    userid: str
    username: str = ""
    emails: list[str] = Field(default_factory=list)
    roles: list[str] = Field(default_factory=list)
    email_verified: bool = Field(default=False, alias="emailVerified")
    password_exists: bool = Field(default=True, alias="passwordExists")

    @property
    def email(self) -> str:
        return self.emails[0] if self.emails else ""

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def is_clinic(self) -> bool:
        return self.has_role(ROLE_CLINIC) or self.has_role(ROLE_HCP)

    def is_patient(self) -> bool:
        return self.has_role(ROLE_PATIENT)

    def is_custodial(self) -> bool:
        # Custodial accounts are created for someone else and have no password yet
        return not self.password_exists


class TokenData(_Entity):
    userid: str = ""
    is_server: bool = Field(default=False, alias="isserver")
    role: str = ""
    token: str = ""


class PatientProfile(_Entity):
    birthday: str = ""
    diagnosis_date: str = Field(default="", alias="diagnosisDate")
    is_other_person: bool = Field(default=False, alias="isOtherPerson")
    full_name: str = Field(default="", alias="fullName")


class Profile(_Entity):
    full_name: str = Field(default="", alias="fullName")
    patient: PatientProfile = Field(default_factory=PatientProfile)


class Preferences(_Entity):
    display_language: str = Field(default="", alias="displayLanguage")


class TeamMember(_Entity):
    user_id: str = Field(alias="userId")
    team_id: str = Field(default="", alias="teamId")
    role: str = "member"
    invitation_status: str = Field(default="", alias="invitationStatus")
    email: str = ""


class TeamPatient(_Entity):
    user_id: str = Field(alias="userId")
    team_id: str = Field(default="", alias="teamId")
    invitation_status: str = Field(default="", alias="invitationStatus")
    monitoring: JsonObject | None = None


class Address(_Entity):
    line1: str = ""
    line2: str = ""
    zip: str = ""
    city: str = ""
    country: str = ""


class Team(_Entity):
    id: str
    name: str = ""
    code: str = ""
    phone: str = ""
    email: str = ""
    address: Address | None = None
    members: list[TeamMember] = Field(default_factory=list)
    remote_patient_monitoring: JsonObject | None = Field(
        default=None, alias="remotePatientMonitoring"
    )

    @property
    def monitoring_enabled(self) -> bool:
        return bool((self.remote_patient_monitoring or {}).get("enabled"))

    def member(self, user_id: str) -> TeamMember | None:
        return next((m for m in self.members if m.user_id == user_id), None)

    def is_admin(self, user_id: str) -> bool:
        member = self.member(user_id)
        return bool(
            member and member.role == "admin" and member.invitation_status == "accepted"
        )

    def formatted_address(self) -> str:
        if not self.address:
            return ""
        a = self.address
        parts = [a.line1, a.line2, " ".join(p for p in (a.zip, a.city) if p), a.country]
        return ", ".join(p for p in parts if p)


class Clinic(_Entity):
    id: str
    name: str = ""
    share_code: str = Field(default="", alias="shareCode")
    suppressed_notifications: JsonObject | None = Field(
        default=None, alias="suppressedNotifications"
    )

    @property
    def suppresses_patient_invitations(self) -> bool:
        return bool((self.suppressed_notifications or {}).get("patientClinicInvitation"))


class Clinician(_Entity):
    id: str | None = None
    invite_id: str | None = Field(default=None, alias="inviteId")
    email: str = ""
    name: str = ""
    roles: list[str] = Field(default_factory=list)

    def is_admin(self) -> bool:
        return CLINIC_ADMIN in self.roles


class ClinicPatient(_Entity):
    id: str
    email: str | None = None
    full_name: str = Field(default="", alias="fullName")
    permissions: Permissions | None = None


class MrnSettings(_Entity):
    required: bool = False
