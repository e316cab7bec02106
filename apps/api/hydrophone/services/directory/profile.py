"""Profile and preferences store."""

from __future__ import annotations

from hydrophone.core.config import settings
from hydrophone.services.directory.base import DirectoryClient
from hydrophone.services.directory.models import Preferences, Profile


class ProfileClient(DirectoryClient):
    service = "profile"

    def __init__(self, base_url: str | None = None, **kwargs):
        super().__init__(base_url or settings.SEAGULL_URL, **kwargs)

    async def get_profile(self, user_id: str) -> Profile | None:
        data = await self.get_json(f"/{user_id}/profile")
        return Profile.model_validate(data) if data else None

    async def get_preferences(self, user_id: str) -> Preferences | None:
        data = await self.get_json(f"/{user_id}/preferences")
        return Preferences.model_validate(data) if data else None

    async def update_profile(self, user_id: str, profile: dict) -> None:
        await self.send_json("PUT", f"/{user_id}/profile", profile)
