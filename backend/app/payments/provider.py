"""Razorpay API client.

Order notes fetched here are the authoritative source for who paid and what
the payment buys; client-supplied values are never trusted.
"""

import logging
from typing import Any, Optional

import httpx

from .errors import UpstreamError

logger = logging.getLogger(__name__)


class RazorpayClient:
    """Minimal async client for the Razorpay REST API.

    Requests carry no client-side timeout: a hung lookup leaves the caller
    pending and the provider's redelivery policy is the backstop.
    """

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        api_url: str = "https://api.razorpay.com/v1",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_url = api_url.rstrip("/")
        self._client = client

    async def _get(self, path: str) -> dict[str, Any]:
        url = f"{self.api_url}{path}"
        auth = (self.key_id, self.key_secret)
        try:
            if self._client is not None:
                response = await self._client.get(url, auth=auth)
            else:
                async with httpx.AsyncClient(timeout=None) as client:
                    response = await client.get(url, auth=auth)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            logger.error(f"Razorpay request failed: GET {path}: {e}")
            raise UpstreamError(f"Failed to fetch {path} from Razorpay") from e

    async def fetch_order(self, order_id: str) -> dict[str, Any]:
        """Fetch an order with its amount, currency and notes."""
        return await self._get(f"/orders/{order_id}")
