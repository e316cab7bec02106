"""Medical data service: device settings of a patient."""

from __future__ import annotations

from hydrophone.core.config import settings
from hydrophone.services.directory.base import DirectoryClient


class MedicalDataClient(DirectoryClient):
    service = "medical-data"

    def __init__(self, base_url: str | None = None, **kwargs):
        super().__init__(base_url or settings.MEDICAL_DATA_URL, **kwargs)

    async def get_device_imei(self, token: str) -> str:
        """IMEI of the patient's handset, read with the patient's own token ("" if unknown)."""
        data = await self.get_json("/v1/patient/config", token=token)
        device = (data or {}).get("device") or {}
        return str(device.get("imei") or "")
