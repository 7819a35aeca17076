"""Minimal SUZURI REST API client used by the MCP tools."""
import logging
from typing import Any, Optional

import httpx

from config import DEFAULT_UPSTREAM_API_URL

logger = logging.getLogger(__name__)


class SuzuriAPIError(Exception):
    """Non-success response from the SUZURI API."""

    def __init__(self, status_code: int, reason: str = ""):
        super().__init__(f"SUZURI API error: {status_code} {reason}".strip())
        self.status_code = status_code


def _check_paging(limit: Optional[int], offset: Optional[int]) -> None:
    if limit is not None and not 1 <= limit <= 100:
        raise ValueError("limit must be between 1 and 100")
    if offset is not None and offset < 0:
        raise ValueError("offset must be >= 0")


class SuzuriClient:
    """Bearer-token client for the SUZURI API (read operations only)."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: str = DEFAULT_UPSTREAM_API_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _get(self, endpoint: str, params: Optional[dict] = None) -> Any:
        headers = {"Accept": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        query = {k: v for k, v in (params or {}).items() if v is not None}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(f"{self.base_url}{endpoint}", params=query, headers=headers)

        if not response.is_success:
            raise SuzuriAPIError(response.status_code, response.reason_phrase)
        return response.json()

    async def get_me(self) -> dict:
        return await self._get("/user")

    async def get_items(self, limit: Optional[int] = None, offset: Optional[int] = None) -> dict:
        _check_paging(limit, offset)
        return await self._get("/items", {"limit": limit, "offset": offset})

    async def get_products(
        self,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        user_id: Optional[int] = None,
        user_name: Optional[str] = None,
        item_id: Optional[int] = None,
    ) -> dict:
        _check_paging(limit, offset)
        return await self._get("/products", {
            "limit": limit,
            "offset": offset,
            "userId": user_id,
            "userName": user_name,
            "itemId": item_id,
        })

    async def get_product(self, product_id: int) -> dict:
        return await self._get(f"/products/{product_id}")

    async def search_products(
        self,
        q: str,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        item_id: Optional[int] = None,
    ) -> dict:
        if not q:
            raise ValueError("q is required")
        _check_paging(limit, offset)
        return await self._get("/products/search", {"q": q, "limit": limit, "offset": offset, "itemId": item_id})
