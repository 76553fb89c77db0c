"""HTTP implementation of :class:`InboxBackend` against the Chowkar API."""

import logging
from typing import Any, Optional

import httpx

from chowkar.marketplace.errors import UpstreamError

logger = logging.getLogger(__name__)


class InboxClient:
    """Calls the backend's inbox and job endpoints with a bearer token.

    Args:
        base_url: API root, e.g. ``https://api.chowkar.in/api/v1``
        auth_token: Access token of the signed-in user
        timeout: Per-request timeout in seconds
        client: Optional shared ``httpx.AsyncClient`` (not closed by us)
    """

    def __init__(
        self,
        base_url: str,
        auth_token: str,
        timeout: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout = timeout
        self._client = client

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.auth_token}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str) -> Any:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.request(method, url, headers=self._headers())
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(method, url, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.debug(f"{method} {path} failed: {e}")
            raise UpstreamError(f"{method} {path} failed: {e}") from e
        if not response.content:
            return None
        return response.json()

    async def fetch_inbox_summaries(self, user_id: str) -> list[dict[str, Any]]:
        # The server derives the user from the token; user_id is kept for the protocol.
        data = await self._request("GET", "/inbox")
        return (data or {}).get("chats", [])

    async def archive_chat(self, job_id: str) -> None:
        await self._request("POST", f"/inbox/{job_id}/archive")

    async def unarchive_chat(self, job_id: str) -> None:
        await self._request("POST", f"/inbox/{job_id}/unarchive")

    async def delete_chat(self, job_id: str) -> None:
        await self._request("POST", f"/inbox/{job_id}/delete")

    async def get_job_details(self, job_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/jobs/{job_id}")
