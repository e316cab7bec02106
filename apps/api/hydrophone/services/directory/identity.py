"""Identity directory: account lookup, token checks, account updates."""

from __future__ import annotations

import hmac
from urllib.parse import quote

from hydrophone.core.config import settings
from hydrophone.services.directory.base import DirectoryClient
from hydrophone.services.directory.models import TokenData, User


class IdentityClient(DirectoryClient):
    service = "identity"

    def __init__(self, base_url: str | None = None, **kwargs):
        super().__init__(base_url or settings.AUTH_URL, **kwargs)

    async def get_user(self, id_or_email: str, token: str | None = None) -> User | None:
        """Account by id or email, or None when unknown."""
        if not id_or_email:
            return None
        data = await self.get_json(f"/user/{quote(id_or_email, safe='')}", token=token)
        return User.model_validate(data) if data else None

    async def authenticate(self, token: str) -> TokenData | None:
        """Validate a session token; None when invalid."""
        if not token:
            return None
        if self.system_token and hmac.compare_digest(token, self.system_token):
            return TokenData(userid="", is_server=True, token=token)
        data = await self.get_json(f"/token/{quote(token, safe='')}")
        if not data:
            return None
        token_data = TokenData.model_validate(data)
        token_data.token = token
        return token_data

    async def update_user(self, user_id: str, updates: dict, token: str | None = None) -> None:
        await self.send_json("PUT", f"/user/{user_id}", {"updates": updates}, token=token)
