"""Enum definitions for confirmation constants."""

from enum import Enum


class ConfirmationStatus(str, Enum):
    """
    Confirmation lifecycle states.

    pending → completed | declined | canceled. Terminal states never change.
    Expiry is derived from the creation date and is not a status.
    """
    PENDING = "pending"
    COMPLETED = "completed"
    DECLINED = "declined"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self is not ConfirmationStatus.PENDING


class ConfirmationType(str, Enum):
    """Kinds of pending action a confirmation stands for."""
    PASSWORD_RESET = "password_reset"
    PATIENT_PASSWORD_RESET = "patient_password_reset"
    PATIENT_PASSWORD_INFO = "patient_password_info"
    NO_ACCOUNT = "no_account"
    CARETEAM_INVITATION = "careteam_invitation"
    SIGNUP = "signup_confirmation"
    CLINICIAN_INVITATION = "clinician_invitation"
    PATIENT_CLINIC_INVITATION = "patient_clinic_invitation"
    MEDICALTEAM_INVITATION = "medicalteam_invitation"
    MEDICALTEAM_PATIENT_INVITATION = "medicalteam_patient_invitation"
    MEDICALTEAM_DO_ADMIN = "medicalteam_do_admin"
    MEDICALTEAM_REMOVE = "medicalteam_remove"
    MEDICALTEAM_MONITORING_INVITATION = "medicalteam_monitoring_invitation"
    PATIENT_PIN_RESET = "patient_pin_reset"
    PATIENT_INFORMATION = "patient_information"
    NOTIFICATION = "notification"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid confirmation type."""
        return value in cls._value2member_map_


# Types a user can see in their "received invitations" list
INVITATION_TYPES = (
    ConfirmationType.CARETEAM_INVITATION,
    ConfirmationType.MEDICALTEAM_INVITATION,
    ConfirmationType.MEDICALTEAM_PATIENT_INVITATION,
    ConfirmationType.MEDICALTEAM_MONITORING_INVITATION,
    ConfirmationType.MEDICALTEAM_DO_ADMIN,
    ConfirmationType.MEDICALTEAM_REMOVE,
)

# Sends of these types are throttled per user
THROTTLED_TYPES = (
    ConfirmationType.SIGNUP,
    ConfirmationType.PATIENT_PIN_RESET,
)


class TemplateName(str, Enum):
    """Email templates available in the template registry."""
    APP_PRESCRIPTION = "app_prescription"
    CARETEAM_INVITATION = "careteam_invitation"
    CLINICIAN_INVITATION = "clinician_invitation"
    PATIENT_CLINIC_INVITATION = "patient_clinic_invitation"
    MEDICALTEAM_INVITATION = "medicalteam_invitation"
    MEDICALTEAM_PATIENT_INVITATION = "medicalteam_patient_invitation"
    MEDICALTEAM_MONITORING_INVITATION = "medicalteam_monitoring_invitation"
    MEDICALTEAM_DO_ADMIN = "medicalteam_do_admin"
    MEDICALTEAM_REMOVE = "medicalteam_remove"
    NO_ACCOUNT = "no_account"
    PASSWORD_RESET = "password_reset"
    PATIENT_PASSWORD_RESET = "patient_password_reset"
    PATIENT_PASSWORD_INFO = "patient_password_info"
    PATIENT_INFORMATION = "patient_information"
    PATIENT_PIN_RESET = "patient_pin_reset"
    SIGNUP = "signup_confirmation"
    SIGNUP_CLINIC = "signup_clinic_confirmation"
    SIGNUP_CUSTODIAL = "signup_custodial_confirmation"
    SIGNUP_CUSTODIAL_CLINIC = "signup_custodial_clinic_confirmation"


class TeamRole(str, Enum):
    """Medical team membership roles."""
    MEMBER = "member"
    ADMIN = "admin"
    PATIENT = "patient"


class MembershipStatus(str, Enum):
    """Invitation status of a team member/patient in the team directory."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
