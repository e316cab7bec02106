"""Type-specific payloads stored in a confirmation's ``context`` column."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from hydrophone.db.enums import ConfirmationType
from hydrophone.types import JsonObject


class _Context(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class AlertConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    enabled: bool = False
    repeat: int | None = None  # minutes
    delay: int | None = None  # minutes
    threshold: int | None = None  # mg/dL


class AlertsConfig(BaseModel):
    """Initial alerting configuration sent with a care-team invitation."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    urgent_low: AlertConfig | None = Field(default=None, alias="urgentLow")
    low: AlertConfig | None = None
    high: AlertConfig | None = None
    not_looping: AlertConfig | None = Field(default=None, alias="notLooping")
    no_communication: AlertConfig | None = Field(default=None, alias="noCommunication")


class CareTeamContext(_Context):
    permissions: JsonObject = Field(default_factory=dict)
    nickname: str | None = None
    alerts_config: AlertsConfig | None = Field(default=None, alias="alertsConfig")


class ClinicPatientContext(_Context):
    permissions: JsonObject = Field(default_factory=dict)


class TOTPContext(_Context):
    timestamp: int
    otp: str


class PrescriptionContext(_Context):
    id: str
    code: str | None = None
    patient_email: str = Field(alias="patientEmail")
    patient_id: str | None = Field(default=None, alias="patientId")
    prescriptor_id: str = Field(alias="prescriptorId")
    product: str | None = None


class MonitoringContext(_Context):
    monitoring_end: str | None = Field(default=None, alias="monitoringEnd")
    referring_doctor: str | None = Field(default=None, alias="referringDoctor")


CONTEXT_MODELS: dict[ConfirmationType, type[_Context]] = {
    ConfirmationType.CARETEAM_INVITATION: CareTeamContext,
    ConfirmationType.PATIENT_CLINIC_INVITATION: ClinicPatientContext,
    ConfirmationType.PATIENT_PIN_RESET: TOTPContext,
    ConfirmationType.NOTIFICATION: PrescriptionContext,
    ConfirmationType.MEDICALTEAM_MONITORING_INVITATION: MonitoringContext,
}
