"""Medical team directory: teams, members, patients and monitoring."""

from __future__ import annotations

from hydrophone.core.config import settings
from hydrophone.services.directory.base import DirectoryClient
from hydrophone.services.directory.models import Team, TeamMember, TeamPatient
from hydrophone.types import JsonObject


class TeamClient(DirectoryClient):
    service = "team"

    def __init__(self, base_url: str | None = None, **kwargs):
        super().__init__(base_url or settings.CREW_URL, **kwargs)

    async def get_team(self, team_id: str, token: str | None = None) -> Team | None:
        data = await self.get_json(f"/v0/teams/{team_id}", token=token)
        return Team.model_validate(data) if data else None

    async def get_team_patients(self, team_id: str, token: str | None = None) -> list[TeamPatient]:
        data = await self.get_json(f"/v0/teams/{team_id}/patients", token=token)
        return [TeamPatient.model_validate(item) for item in data or []]

    async def get_team_patient(
        self, team_id: str, user_id: str, token: str | None = None
    ) -> TeamPatient | None:
        patients = await self.get_team_patients(team_id, token=token)
        return next((p for p in patients if p.user_id == user_id), None)

    # =========================================================================
    # Members
    # =========================================================================

    async def add_team_member(self, member: TeamMember, token: str | None = None) -> None:
        await self.send_json(
            "POST",
            f"/v0/teams/{member.team_id}/members",
            member.model_dump(by_alias=True, exclude_none=True),
            token=token,
        )

    async def update_team_member(self, member: TeamMember, token: str | None = None) -> None:
        await self.send_json(
            "PUT",
            f"/v0/teams/{member.team_id}/members",
            member.model_dump(by_alias=True, exclude_none=True),
            token=token,
        )

    async def remove_team_member(
        self, team_id: str, user_id: str, token: str | None = None
    ) -> None:
        await self.send_json("DELETE", f"/v0/teams/{team_id}/members/{user_id}", token=token)

    # =========================================================================
    # Patients
    # =========================================================================

    async def add_patient(self, patient: TeamPatient, token: str | None = None) -> None:
        await self.send_json(
            "POST",
            f"/v0/teams/{patient.team_id}/patients",
            patient.model_dump(by_alias=True, exclude_none=True),
            token=token,
        )

    async def update_patient(self, patient: TeamPatient, token: str | None = None) -> None:
        await self.send_json(
            "PUT",
            f"/v0/teams/{patient.team_id}/patients",
            patient.model_dump(by_alias=True, exclude_none=True),
            token=token,
        )

    async def update_patient_monitoring(
        self, team_id: str, user_id: str, monitoring: JsonObject, token: str | None = None
    ) -> None:
        await self.send_json(
            "PUT",
            f"/v0/teams/{team_id}/patients/{user_id}/monitoring",
            monitoring,
            token=token,
        )
