"""
Batch auction strategy: gasless, MEV-protected swaps through CoW Protocol.

The swap is an off-chain signed order. Submission returns an order UID,
settlement happens whenever a solver includes the order in a batch, so
tracking polls the order book rather than waiting on a receipt.
"""

from __future__ import annotations

import asyncio
import json
import time
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from eth_utils import encode_hex, keccak
from pydantic import Field

from ...config import settings
from ...providers.cow import CowApiClient
from ..execution.errors import (
    CowApiError,
    ErrorCategory,
    OrderTrackingError,
    QuoteUnavailableError,
    UnsupportedChainError,
)
from ..execution.models import (
    ExecutionHandle,
    OrderStatus,
    Quote,
    SettlementModel,
    StatusReport,
    StrategyMetadata,
    SwapRequest,
    SwapResult,
    TrackedExecution,
    TrackingStatus,
    TransactionReceipt,
)
from .base import SwapStrategy, SwapStrategyConfig


# 0x + 32-byte order digest + 20-byte owner + 4-byte validTo
ORDER_UID_HEX_LENGTH = 2 + 2 * 56

EIP712_DOMAIN_NAME = "Gnosis Protocol"
EIP712_DOMAIN_VERSION = "v2"

ORDER_TYPES = {
    "Order": [
        {"name": "sellToken", "type": "address"},
        {"name": "buyToken", "type": "address"},
        {"name": "receiver", "type": "address"},
        {"name": "sellAmount", "type": "uint256"},
        {"name": "buyAmount", "type": "uint256"},
        {"name": "validTo", "type": "uint32"},
        {"name": "appData", "type": "bytes32"},
        {"name": "feeAmount", "type": "uint256"},
        {"name": "kind", "type": "string"},
        {"name": "partiallyFillable", "type": "bool"},
        {"name": "sellTokenBalance", "type": "string"},
        {"name": "buyTokenBalance", "type": "string"},
    ]
}


class BatchAuctionConfig(SwapStrategyConfig):
    """Configuration for CoW Protocol orders."""

    validity_duration_seconds: int = Field(
        default_factory=lambda: settings.order_validity_seconds,
        ge=1,
        description="Seconds until the order expires (validTo offset).",
    )
    poll_interval_seconds: float = Field(default_factory=lambda: settings.order_poll_interval_seconds, ge=0)
    max_poll_attempts: int = Field(default_factory=lambda: settings.order_max_poll_attempts, ge=1)
    vault_relayer_address: str = Field(default_factory=lambda: settings.cow_vault_relayer_address)
    settlement_address: str = Field(default_factory=lambda: settings.cow_settlement_address)
    app_code: str = Field(default="SwapEngine", description="appCode recorded in the order's app data.")
    api_base_url: Optional[str] = Field(default=None, description="Override for the order venue base URL.")


class BatchAuctionStrategy(SwapStrategy):
    """Off-chain signed sell orders settled in CoW batch auctions."""

    id = "cowswap"
    name = "CowSwap"
    ConfigModel = BatchAuctionConfig
    metadata = StrategyMetadata(
        name="CoW Swap",
        description="Gasless batch auctions with MEV protection",
        settlement_model=SettlementModel.BATCH_AUCTION,
        gas_required=False,
        mev_protected=True,
        slippage_protection=False,
        approval_address=settings.cow_vault_relayer_address,
        approval_address_label="CoW Vault Relayer",
        features=("gasless", "mev_protection", "batch_auction", "requires_polling"),
    )
    failure_patterns = (
        (("insufficient liquidity",), "Insufficient liquidity for this trade size", ErrorCategory.LIQUIDITY),
        (("price too low",), "Current market price is below your minimum acceptable price", ErrorCategory.SLIPPAGE),
        (
            ("Order tracking failed",),
            "Unable to track order status - order may still be processing",
            ErrorCategory.TRACKING,
        ),
    )

    config: BatchAuctionConfig

    def get_required_approval_address(self) -> str:
        return self.config.vault_relayer_address

    def create_api_client(self, network: str) -> CowApiClient:
        return CowApiClient(network, base_url=self.config.api_base_url)

    async def _api(self) -> Tuple[CowApiClient, int]:
        chain_id = await self.get_chain_id()
        network = settings.cow_network_for(chain_id)
        if network is None:
            raise UnsupportedChainError(f"CoW Swap not supported on chain ID {chain_id}", chain_id=chain_id)
        return self.create_api_client(network), chain_id

    # ------------------------------------------------------------------
    # Quote / order construction
    # ------------------------------------------------------------------

    def _app_data(self) -> str:
        return json.dumps(
            {
                "appCode": self.config.app_code,
                "environment": "production",
                "metadata": {"orderClass": {"orderClass": "market"}},
            },
            separators=(",", ":"),
        )

    async def request_quote(self, client: CowApiClient, request: SwapRequest) -> Dict[str, Any]:
        """Ask the venue for a verified sell quote; returns the full quote response."""
        payload = {
            "kind": "sell",
            "sellToken": request.token_in,
            "buyToken": request.token_out,
            "sellAmountBeforeFee": str(request.amount),
            "from": request.user_address,
            "receiver": request.user_address,
            "appData": self._app_data(),
            "partiallyFillable": False,
            "sellTokenBalance": "erc20",
            "buyTokenBalance": "erc20",
            "signingScheme": "eip712",
            "onchainOrder": False,
            "priceQuality": "verified",
            "validTo": int(time.time()) + self.config.validity_duration_seconds,
        }
        response = await client.quote(payload)
        quote = response.get("quote") if isinstance(response, dict) else None
        if not quote or not quote.get("buyAmount") or not quote.get("sellAmount"):
            raise QuoteUnavailableError("Invalid CoW quote received")
        return response

    @staticmethod
    def app_data_hash(quote: Dict[str, Any]) -> str:
        """bytes32 form of the order's app data."""
        if quote.get("appDataHash"):
            return quote["appDataHash"]
        app_data = quote.get("appData") or "{}"
        if app_data.startswith("0x") and len(app_data) == 66:
            return app_data
        return encode_hex(keccak(text=app_data))

    def build_order(self, quote: Dict[str, Any], request: SwapRequest) -> Dict[str, Any]:
        return {
            "sellToken": quote.get("sellToken", request.token_in),
            "buyToken": quote.get("buyToken", request.token_out),
            "receiver": quote.get("receiver") or request.user_address,
            "sellAmount": str(request.amount),
            "buyAmount": str(quote["buyAmount"]),
            "validTo": int(quote.get("validTo") or int(time.time()) + self.config.validity_duration_seconds),
            "appData": quote.get("appData"),
            "feeAmount": "0",
            "kind": quote.get("kind", "sell"),
            "partiallyFillable": False,
            "sellTokenBalance": "erc20",
            "buyTokenBalance": "erc20",
        }

    async def sign_order(self, order: Dict[str, Any], app_data_hash: str, chain_id: int) -> str:
        domain = {
            "name": EIP712_DOMAIN_NAME,
            "version": EIP712_DOMAIN_VERSION,
            "chainId": chain_id,
            "verifyingContract": self.config.settlement_address,
        }
        message = {**order, "appData": app_data_hash}
        return await self.signer.sign_typed_data(domain, ORDER_TYPES, message)

    # ------------------------------------------------------------------
    # Template steps
    # ------------------------------------------------------------------

    async def perform_swap(self, request: SwapRequest) -> ExecutionHandle:
        client, chain_id = await self._api()

        response = await self.request_quote(client, request)
        quote = response["quote"]
        self.logger.info(f"{self.name}: quote received, buyAmount={quote['buyAmount']}")

        order = self.build_order(quote, request)
        app_data_hash = self.app_data_hash(quote)
        signature = await self.sign_order(order, app_data_hash, chain_id)

        submission = {
            **order,
            "appDataHash": app_data_hash,
            "signature": signature,
            "signingScheme": "eip712",
            "from": request.user_address,
        }
        if response.get("id") is not None:
            submission["quoteId"] = response["id"]

        order_uid = await client.send_order(submission)
        self.logger.info(f"{self.name}: order submitted: {order_uid}")

        async def wait() -> TransactionReceipt:
            order_status = await self.poll_order_status(order_uid)
            fulfilled = order_status.get("status") == OrderStatus.FULFILLED.value
            tx_hash = await self.settlement_tx_hash(order_uid) if fulfilled else None
            return TransactionReceipt(
                transaction_hash=tx_hash or order_uid,
                status=1 if fulfilled else 0,
                confirmations=1 if fulfilled else 0,
                raw=order_status,
            )

        return ExecutionHandle(
            id=order_uid,
            is_order_based=True,
            wait=wait,
            order={**submission},
        )

    async def poll_order_status(self, order_uid: str) -> Dict[str, Any]:
        """Poll until the order is terminal or attempts run out.

        Running out of attempts is not an error: the order is reported as
        ``pending`` and may still settle later.
        """
        client, _ = await self._api()
        attempts = self.config.max_poll_attempts
        terminal = {status.value for status in OrderStatus.terminal()}

        for attempt in range(attempts):
            try:
                order_status = await client.get_order(order_uid)
                status = order_status.get("status")
                self.logger.info(f"{self.name}: order {order_uid} status: {status}")
                if status in terminal:
                    return order_status
            except Exception as e:
                self.logger.warning(f"{self.name}: error checking order status: {e}")
                if attempt == attempts - 1:
                    raise

            if attempt < attempts - 1:
                await asyncio.sleep(self.config.poll_interval_seconds)

        return {"status": "pending", "uid": order_uid}

    async def settlement_tx_hash(self, order_uid: str) -> Optional[str]:
        client, _ = await self._api()
        try:
            trades = await client.get_trades(order_uid)
        except Exception as e:
            self.logger.warning(f"{self.name}: could not fetch trades for {order_uid}: {e}")
            return None
        for trade in trades:
            if trade.get("txHash"):
                return trade["txHash"]
        return None

    async def track_transaction(self, handle: ExecutionHandle) -> TrackedExecution:
        self.logger.info(f"{self.name}: tracking order {handle.id}")
        try:
            receipt = await handle.wait()
        except Exception as e:
            raise OrderTrackingError(f"Order tracking failed: {e}", order_id=handle.id) from e

        order_status = receipt.raw
        status = order_status.get("status")
        settlement_tx = None
        if receipt.succeeded:
            tracking_status = TrackingStatus.CONFIRMED
            # wait() falls back to the order UID when no trade was found
            if receipt.transaction_hash != handle.id:
                settlement_tx = receipt.transaction_hash
        elif status in (OrderStatus.CANCELLED.value, OrderStatus.EXPIRED.value):
            tracking_status = TrackingStatus.FAILED
        else:
            tracking_status = TrackingStatus.PENDING

        return TrackedExecution(
            handle=handle,
            status=tracking_status,
            explorer_url=self.get_explorer_url(handle.id),
            order_status=order_status,
            settlement_tx_hash=settlement_tx,
        )

    async def estimate_output(self, request: SwapRequest) -> Optional[Quote]:
        client, _ = await self._api()
        response = await self.request_quote(client, request)
        quote = response["quote"]

        buy_amount = int(quote["buyAmount"])
        sell_amount = int(quote["sellAmount"])
        return Quote(
            strategy_id=self.id,
            estimated_output=buy_amount,
            minimum_output=buy_amount,
            slippage_bps=0,
            execution_price=Decimal(buy_amount) / Decimal(sell_amount) if sell_amount else None,
            fee_amount=int(quote.get("feeAmount") or 0),
            raw=response,
        )

    def process_result(self, tracked: TrackedExecution, request: SwapRequest, **_) -> SwapResult:
        order_status = tracked.order_status or {}
        details = {
            "type": "order_based",
            "order_id": tracked.handle.id,
            "vault_relayer": self.config.vault_relayer_address,
            "needs_polling": True,
            "wait_for_confirmation": False,
            "order": tracked.handle.order,
        }
        if tracked.settlement_tx_hash:
            details["settlement_tx_hash"] = tracked.settlement_tx_hash

        return super().process_result(
            tracked,
            request,
            details=details,
            order_status=order_status.get("status"),
            explorer_url=tracked.explorer_url,
        )

    def describe_failure(self, exc: BaseException, message: str) -> Optional[Tuple[str, ErrorCategory]]:
        if isinstance(exc, CowApiError):
            return f"CoW API Error: {exc.description}", ErrorCategory.PROVIDER
        return super().describe_failure(exc, message)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_transaction_status(self, order_uid_or_hash: str) -> StatusReport:
        """Try the id as an order UID first, then as a transaction hash."""
        try:
            client, _ = await self._api()
            order_status = await client.get_order(order_uid_or_hash)
        except Exception as e:
            self.logger.debug(f"{self.name}: order lookup failed for {order_uid_or_hash}, trying receipt: {e}")
            return await super().get_transaction_status(order_uid_or_hash)

        status = order_status.get("status")
        if status == OrderStatus.FULFILLED.value:
            mapped = "success"
        elif status in (OrderStatus.CANCELLED.value, OrderStatus.EXPIRED.value):
            mapped = "failed"
        else:
            mapped = "pending"

        return StatusReport(
            status=mapped,
            explorer_url=self.get_explorer_url(order_uid_or_hash),
            order_status=order_status,
            tx_hash=order_status.get("txHash"),
        )

    def get_explorer_url(self, order_uid_or_hash: str) -> str:
        if order_uid_or_hash.startswith("0x") and len(order_uid_or_hash) == ORDER_UID_HEX_LENGTH:
            return settings.explorer_order_url(order_uid_or_hash)
        return settings.explorer_tx_url(order_uid_or_hash)
