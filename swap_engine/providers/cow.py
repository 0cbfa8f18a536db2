"""Async client for the CoW Protocol order book API."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..core.execution.errors import CowApiError


class CowApiClient:
    """Thin wrapper around https://api.cow.fi/<network>/api/v1 endpoints.

    Quote, order submission and order lookup are separate calls against the
    same venue. Error responses carry a JSON ``description`` which is surfaced
    verbatim through CowApiError.
    """

    def __init__(
        self,
        network: str,
        *,
        base_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        root = (base_url or settings.cow_api_base_url).rstrip("/")
        self.network = network
        self.base_url = f"{root}/{network}/api/v1"
        self.timeout_s = timeout_s if timeout_s is not None else settings.http_timeout_seconds
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "accept": "application/json",
            "content-type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_s,
            transport=self._transport,
        ) as client:
            response = await client.request(method, path, json=json, params=params, headers=self._headers())

        if response.is_error:
            raise self._to_error(response)
        return response.json()

    @staticmethod
    def _to_error(response: httpx.Response) -> CowApiError:
        description = None
        error_type = None
        try:
            body = response.json()
            if isinstance(body, dict):
                description = body.get("description")
                error_type = body.get("errorType")
        except ValueError:
            body = None

        if not description:
            text = response.text[:200]
            description = f"CoW request failed: {response.status_code} {text}".strip()
        return CowApiError(description, status_code=response.status_code, error_type=error_type)

    async def quote(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Request a price quote for an order (``POST /quote``)."""
        return await self._request("POST", "/quote", json=payload)

    async def send_order(self, payload: Dict[str, Any]) -> str:
        """Submit a signed order (``POST /orders``); returns the order UID."""
        uid = await self._request("POST", "/orders", json=payload)
        if not isinstance(uid, str) or not uid:
            raise CowApiError(f"Unexpected order submission response: {uid!r}")
        return uid

    async def get_order(self, order_uid: str) -> Dict[str, Any]:
        return await self._request("GET", f"/orders/{order_uid}")

    async def get_trades(self, order_uid: str) -> List[Dict[str, Any]]:
        """Fetch settlement trades for an order; each entry carries ``txHash``."""
        trades = await self._request("GET", "/trades", params={"orderUid": order_uid})
        return trades if isinstance(trades, list) else []
