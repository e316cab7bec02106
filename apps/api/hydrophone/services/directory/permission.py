"""Care-team permission directory."""

from __future__ import annotations

from hydrophone.core.config import settings
from hydrophone.services.directory.base import DirectoryClient
from hydrophone.types import Permissions

# Permissions that grant authority to act on behalf of another account
AUTHORITY_PERMISSIONS = ("root", "custodian")


class PermissionClient(DirectoryClient):
    service = "permission"

    def __init__(self, base_url: str | None = None, **kwargs):
        super().__init__(base_url or settings.GATEKEEPER_URL, **kwargs)

    async def user_in_group(self, user_id: str, group_id: str) -> Permissions:
        """Permissions ``user_id`` holds over ``group_id``'s data ({} when none)."""
        data = await self.get_json(f"/access/{group_id}/{user_id}")
        return data or {}

    async def users_in_group(self, group_id: str) -> dict[str, Permissions]:
        data = await self.get_json(f"/access/{group_id}")
        return data or {}

    async def set_permissions(
        self, user_id: str, group_id: str, permissions: Permissions
    ) -> Permissions:
        response = await self.send_json("POST", f"/access/{group_id}/{user_id}", permissions)
        return response.json() if response.content else {}

    async def is_custodian_or_root(self, caller_id: str, target_id: str) -> bool:
        """True when the caller is root or custodian of the target account."""
        if not caller_id or not target_id:
            return False
        permissions = await self.user_in_group(caller_id, target_id)
        return any(p in permissions for p in AUTHORITY_PERMISSIONS)
