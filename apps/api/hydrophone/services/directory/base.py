"""HTTP plumbing shared by the directory clients: retries, auth, error mapping."""

from __future__ import annotations

import asyncio
import logging
import random

import httpx

from hydrophone.core.config import settings
from hydrophone.core.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

SESSION_TOKEN_HEADER = "x-tidepool-session-token"
DEFAULT_RETRY_STATUSES = {429, 500, 502, 503, 504}


class DirectoryError(UpstreamUnavailable):
    """Unexpected answer from a directory service."""

    def __init__(self, service: str, status: int, detail: str = ""):
        self.service = service
        self.upstream_status = status
        super().__init__(f"{service} returned {status} {detail}".strip())


class DirectoryClient:
    """
    Base for the directory service clients.

    Outbound calls carry the system token unless a caller token is given,
    are retried with exponential backoff on transport errors and retryable
    statuses, and time out after HTTP_TIMEOUT_SECONDS.
    """

    service = "directory"

    def __init__(
        self,
        base_url: str,
        *,
        system_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        base_delay: float = 0.5,
        max_delay: float = 4.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.system_token = system_token if system_token is not None else settings.SERVER_SECRET
        self.transport = transport
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self.max_attempts = max(1, max_attempts or settings.HTTP_MAX_ATTEMPTS)
        self.base_delay = base_delay
        self.max_delay = max_delay

    def _backoff(self, attempt: int) -> float:
        delay = min(self.max_delay, self.base_delay * (2**attempt))
        if delay:
            delay = delay + random.uniform(0, delay / 2)
        return delay

    async def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        json: object = None,
        params: dict | None = None,
    ) -> httpx.Response:
        headers = {SESSION_TOKEN_HEADER: token or self.system_token}
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self.transport
        ) as client:
            for attempt in range(self.max_attempts):
                last_attempt = attempt >= self.max_attempts - 1
                try:
                    response = await client.request(
                        method, path, headers=headers, json=json, params=params
                    )
                except httpx.RequestError as exc:
                    if last_attempt:
                        logger.error("%s %s %s failed: %s", self.service, method, path, exc)
                        raise UpstreamUnavailable(f"{self.service} is unavailable") from exc
                    logger.warning("%s request failed, retrying", self.service, exc_info=exc)
                    await asyncio.sleep(self._backoff(attempt))
                    continue

                if response.status_code in DEFAULT_RETRY_STATUSES and not last_attempt:
                    logger.warning(
                        "%s request returned %s, retrying", self.service, response.status_code
                    )
                    await asyncio.sleep(self._backoff(attempt))
                    continue
                return response
        return response

    def fail(self, response: httpx.Response) -> DirectoryError:
        return DirectoryError(self.service, response.status_code, response.text[:200])

    async def get_json(self, path: str, *, token: str | None = None, params: dict | None = None):
        """GET returning decoded JSON, or None on 404."""
        response = await self.request("GET", path, token=token, params=params)
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise self.fail(response)
        return response.json()

    async def send_json(
        self,
        method: str,
        path: str,
        body: object = None,
        *,
        token: str | None = None,
        ok: tuple[int, ...] = (200, 201, 204),
    ) -> httpx.Response:
        response = await self.request(method, path, token=token, json=body)
        if response.status_code not in ok:
            raise self.fail(response)
        return response
