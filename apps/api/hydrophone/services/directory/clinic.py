"""Clinic directory: clinics, clinicians, invited clinicians and patients."""

from __future__ import annotations

import logging

from hydrophone.core.config import settings
from hydrophone.services.directory.base import DirectoryClient
from hydrophone.services.directory.models import Clinic, Clinician, ClinicPatient, MrnSettings
from hydrophone.types import Permissions

logger = logging.getLogger(__name__)


class ClinicPatientExists(Exception):
    """The clinic directory already holds this patient (HTTP 409)."""


class ClinicClient(DirectoryClient):
    service = "clinic"

    def __init__(self, base_url: str | None = None, **kwargs):
        super().__init__(base_url or settings.CLINIC_URL, **kwargs)

    # =========================================================================
    # Clinics
    # =========================================================================

    async def list_clinics(self, share_code: str | None = None, limit: int = 1) -> list[Clinic]:
        params: dict = {"limit": limit}
        if share_code:
            params["shareCode"] = share_code
        data = await self.get_json("/v1/clinics", params=params)
        return [Clinic.model_validate(item) for item in data or []]

    async def get_clinic(self, clinic_id: str) -> Clinic | None:
        data = await self.get_json(f"/v1/clinics/{clinic_id}")
        return Clinic.model_validate(data) if data else None

    async def get_mrn_settings(self, clinic_id: str) -> MrnSettings:
        data = await self.get_json(f"/v1/clinics/{clinic_id}/settings/mrn")
        return MrnSettings.model_validate(data or {})

    # =========================================================================
    # Clinicians
    # =========================================================================

    async def list_clinicians(
        self, clinic_id: str, role: str | None = None, limit: int = 100
    ) -> list[Clinician]:
        params: dict = {"limit": limit}
        if role:
            params["role"] = role
        data = await self.get_json(f"/v1/clinics/{clinic_id}/clinicians", params=params)
        return [Clinician.model_validate(item) for item in data or []]

    async def get_clinician(self, clinic_id: str, user_id: str) -> Clinician | None:
        data = await self.get_json(f"/v1/clinics/{clinic_id}/clinicians/{user_id}")
        return Clinician.model_validate(data) if data else None

    async def create_clinician(self, clinic_id: str, clinician: Clinician) -> Clinician:
        response = await self.send_json(
            "POST",
            f"/v1/clinics/{clinic_id}/clinicians",
            clinician.model_dump(by_alias=True, exclude_none=True),
        )
        return Clinician.model_validate(response.json()) if response.content else clinician

    async def get_invited_clinician(self, clinic_id: str, invite_id: str) -> Clinician | None:
        data = await self.get_json(f"/v1/clinics/{clinic_id}/invites/clinicians/{invite_id}/clinician")
        return Clinician.model_validate(data) if data else None

    async def delete_invited_clinician(self, clinic_id: str, invite_id: str) -> None:
        """Remove an invited clinician; an already removed one is not an error."""
        response = await self.request(
            "DELETE", f"/v1/clinics/{clinic_id}/invites/clinicians/{invite_id}/clinician"
        )
        if response.status_code == 404:
            logger.info("Invited clinician %s already removed from %s", invite_id, clinic_id)
            return
        if response.status_code not in (200, 204):
            raise self.fail(response)

    async def associate_clinician_to_user(
        self, clinic_id: str, invite_id: str, user_id: str
    ) -> Clinician:
        response = await self.send_json(
            "PATCH",
            f"/v1/clinics/{clinic_id}/invites/clinicians/{invite_id}/clinician",
            {"userId": user_id},
        )
        return Clinician.model_validate(response.json())

    # =========================================================================
    # Patients
    # =========================================================================

    async def get_patient(self, clinic_id: str, patient_id: str) -> ClinicPatient | None:
        data = await self.get_json(f"/v1/clinics/{clinic_id}/patients/{patient_id}")
        return ClinicPatient.model_validate(data) if data else None

    async def create_patient_from_user(
        self,
        clinic_id: str,
        patient_id: str,
        permissions: Permissions,
        mrn: str | None = None,
        birth_date: str | None = None,
        full_name: str | None = None,
    ) -> ClinicPatient:
        """Attach an existing account to a clinic; raises ClinicPatientExists on 409."""
        body: dict = {"permissions": permissions}
        if mrn:
            body["mrn"] = mrn
        if birth_date:
            body["birthDate"] = birth_date
        if full_name:
            body["fullName"] = full_name
        response = await self.request(
            "POST", f"/v1/clinics/{clinic_id}/patients/{patient_id}/from_user", json=body
        )
        if response.status_code == 409:
            raise ClinicPatientExists(patient_id)
        if response.status_code not in (200, 201):
            raise self.fail(response)
        return ClinicPatient.model_validate(response.json())
