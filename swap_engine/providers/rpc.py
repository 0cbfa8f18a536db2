"""JSON-RPC connectivity provider over an ordered list of endpoints."""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..config import settings


logger = logging.getLogger(__name__)


class RpcError(RuntimeError):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, error: Any):
        message = error.get("message") if isinstance(error, dict) else str(error)
        super().__init__(f"RPC error: {message}")
        self.error = error


class JsonRpcProvider:
    """Minimal ``ChainProvider`` backed by HTTP JSON-RPC.

    Endpoints are tried in the given order; a transport failure moves on to
    the next URL. Choosing which endpoints are best is the caller's concern.
    """

    def __init__(
        self,
        rpc_urls: Optional[Sequence[str]] = None,
        *,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        urls = list(rpc_urls or settings.rpc_urls)
        if not urls:
            raise ValueError("At least one RPC URL is required")
        self.rpc_urls: List[str] = urls
        self.timeout_s = timeout_s if timeout_s is not None else settings.http_timeout_seconds
        self._transport = transport
        self._ids = itertools.count(1)

    async def _rpc_call(self, method: str, params: List[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }
        last_error: Optional[Exception] = None

        for url in self.rpc_urls:
            try:
                async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                    response = await client.post(url, json=payload)
                    response.raise_for_status()
                    result = response.json()
            except (httpx.RequestError, httpx.HTTPStatusError) as exc:
                logger.warning(f"RPC endpoint {url} failed for {method}: {exc}")
                last_error = exc
                continue

            if "error" in result:
                raise RpcError(result["error"])
            return result.get("result")

        if last_error is not None:
            raise last_error
        raise RuntimeError("All RPC endpoints failed without providing an error response")

    async def call(self, tx: Dict[str, Any]) -> str:
        return await self._rpc_call("eth_call", [tx, "latest"])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self._rpc_call("eth_getTransactionReceipt", [tx_hash])
