"""
Direct swap strategy: single-hop swaps through the Swapr V3 (Algebra) router.

Settles immediately as an on-chain transaction. The minimum output is derived
from the pool's current sqrt price and the configured slippage.
"""

from __future__ import annotations

import re
import time
from decimal import Decimal
from typing import Dict, Optional

from pydantic import Field, field_validator

from ...config import settings
from ..execution.errors import (
    ErrorCategory,
    SettlementFailedError,
    SlippageProtectionUnavailableError,
    SwapEngineError,
)
from ..execution.models import (
    ExecutionHandle,
    Quote,
    SettlementModel,
    StrategyMetadata,
    SwapRequest,
    SwapResult,
    TrackedExecution,
    TrackingStatus,
)
from ..execution.tx_builder import (
    POOL_GLOBAL_STATE_SELECTOR,
    POOL_TOKEN0_SELECTOR,
    TransactionBuilder,
    decode_address,
    decode_words,
)
from .base import SwapStrategy, SwapStrategyConfig


Q192 = 2 ** 192
BPS_DENOMINATOR = 10_000


class DirectSwapConfig(SwapStrategyConfig):
    """Configuration for router swaps."""

    slippage_bps: int = Field(
        default_factory=lambda: settings.default_slippage_bps,
        ge=0,
        le=BPS_DENOMINATOR,
        description="Slippage tolerance in basis points.",
    )
    deadline_seconds: int = Field(
        default_factory=lambda: settings.default_deadline_seconds,
        ge=1,
        description="Seconds from submission until the router rejects the swap.",
    )
    router_address: str = Field(default_factory=lambda: settings.swapr_router_address)
    gas_limit: int = Field(default_factory=lambda: settings.default_swap_gas_limit, gt=0)
    pools: Dict[str, str] = Field(
        default_factory=dict,
        description="'tokenA:tokenB' -> pool address. Token order does not matter.",
    )
    allow_unprotected_swaps: bool = Field(
        default=False,
        description="Submit with a zero minimum output when no pool price is available.",
    )

    @field_validator("pools")
    @classmethod
    def _check_pool_keys(cls, value: Dict[str, str]) -> Dict[str, str]:
        for pair in value:
            if len(pair.split(":")) != 2:
                raise ValueError(f"Pool key must look like 'tokenA:tokenB', got {pair!r}")
        return value

    def pool_for(self, token_a: str, token_b: str) -> Optional[str]:
        wanted = {token_a.lower(), token_b.lower()}
        for pair, pool in self.pools.items():
            if {part.strip().lower() for part in pair.split(":")} == wanted:
                return pool
        return None


def apply_slippage(amount: int, slippage_bps: int) -> int:
    return amount * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR


def output_from_sqrt_price(amount_in: int, sqrt_price_x96: int, token_in_is_token0: bool) -> int:
    """Spot output for ``amount_in`` at a Q64.96 sqrt price, in raw units.

    price(token1 per token0) = sqrtP^2 / 2^192
    """
    price_numerator = sqrt_price_x96 * sqrt_price_x96
    if token_in_is_token0:
        return amount_in * price_numerator // Q192
    return amount_in * Q192 // price_numerator


class DirectSwapStrategy(SwapStrategy):
    """Immediate on-chain swaps via ``exactInputSingle``."""

    id = "algebra"
    name = "AlgebraSwap"
    ConfigModel = DirectSwapConfig
    metadata = StrategyMetadata(
        name="Algebra (Swapr)",
        description="Direct V3 pool swaps with immediate settlement",
        settlement_model=SettlementModel.IMMEDIATE,
        gas_required=True,
        mev_protected=False,
        slippage_protection=True,
        approval_address=settings.swapr_router_address,
        approval_address_label="Swapr V3 Router",
        features=("immediate_settlement", "slippage_protection", "gas_required"),
    )
    failure_patterns = (
        ((re.compile(r"\bSTF\b"),), "Insufficient liquidity or slippage too high", ErrorCategory.LIQUIDITY),
        (("Too little received",), "Slippage exceeded, try increasing slippage tolerance", ErrorCategory.SLIPPAGE),
        (("Transaction failed",), "Transaction was reverted on-chain", ErrorCategory.SETTLEMENT),
    )

    config: DirectSwapConfig

    def get_required_approval_address(self) -> str:
        return self.config.router_address

    async def estimate_pool_output(self, request: SwapRequest) -> Optional[int]:
        """Spot output from the configured pool, or None when no price is known."""
        pool = self.config.pool_for(request.token_in, request.token_out)
        if not pool:
            self.logger.debug(f"{self.name}: no pool configured for {request.token_in}/{request.token_out}")
            return None

        try:
            token0 = decode_address(
                await self.provider.call(TransactionBuilder.build_pool_call(pool, POOL_TOKEN0_SELECTOR))
            )
            state = decode_words(
                await self.provider.call(TransactionBuilder.build_pool_call(pool, POOL_GLOBAL_STATE_SELECTOR))
            )
        except Exception as e:
            self.logger.warning(f"{self.name}: could not read pool {pool}: {e}")
            return None

        if not state or state[0] == 0:
            return None
        return output_from_sqrt_price(request.amount, state[0], token0 == request.token_in.lower())

    async def perform_swap(self, request: SwapRequest) -> ExecutionHandle:
        estimated = await self.estimate_pool_output(request)
        if estimated is None:
            if not self.config.allow_unprotected_swaps:
                raise SlippageProtectionUnavailableError(
                    "No pool price available to derive a minimum output; "
                    "enable allow_unprotected_swaps to submit anyway"
                )
            self.logger.warning(f"{self.name}: submitting without slippage protection (minimum output 0)")
            amount_out_minimum = 0
        else:
            amount_out_minimum = apply_slippage(estimated, self.config.slippage_bps)

        tx = TransactionBuilder.build_exact_input_single(
            router_address=self.config.router_address,
            token_in=request.token_in,
            token_out=request.token_out,
            recipient=request.user_address,
            deadline=int(time.time()) + self.config.deadline_seconds,
            amount_in=request.amount,
            amount_out_minimum=amount_out_minimum,
            limit_sqrt_price=0,
            gas_limit=self.config.gas_limit,
        )
        tx_hash = await self.signer.send_transaction(tx.to_dict())
        self.logger.info(f"{self.name}: swap transaction sent: {tx_hash}")

        async def wait():
            return await self.wait_for_receipt(tx_hash)

        return ExecutionHandle(id=tx_hash, is_order_based=False, wait=wait)

    async def track_transaction(self, handle: ExecutionHandle) -> TrackedExecution:
        self.logger.info(f"{self.name}: tracking transaction {handle.id}")
        try:
            receipt = await handle.wait()
        except SwapEngineError:
            raise
        except Exception as e:
            raise SettlementFailedError(f"Transaction failed: {e}", tx_hash=handle.id) from e

        if not receipt.succeeded:
            raise SettlementFailedError("Transaction failed: reverted", tx_hash=handle.id)

        return TrackedExecution(
            handle=handle,
            status=TrackingStatus.CONFIRMED,
            explorer_url=self.get_explorer_url(handle.id),
            receipt=receipt,
            block_number=receipt.block_number,
            gas_used=receipt.gas_used,
        )

    async def estimate_output(self, request: SwapRequest) -> Optional[Quote]:
        estimated = await self.estimate_pool_output(request)
        if estimated is None:
            return Quote(
                strategy_id=self.id,
                estimated_output=0,
                minimum_output=0,
                slippage_bps=self.config.slippage_bps,
                slippage_protected=False,
            )

        return Quote(
            strategy_id=self.id,
            estimated_output=estimated,
            minimum_output=apply_slippage(estimated, self.config.slippage_bps),
            slippage_bps=self.config.slippage_bps,
            execution_price=Decimal(estimated) / Decimal(request.amount),
        )

    def process_result(self, tracked: TrackedExecution, request: SwapRequest, **_) -> SwapResult:
        return super().process_result(
            tracked,
            request,
            details={
                "type": "direct_swap",
                "router": self.config.router_address,
                "slippage_bps": self.config.slippage_bps,
                "wait_for_confirmation": True,
            },
            block_number=tracked.block_number,
            gas_used=tracked.gas_used,
            explorer_url=tracked.explorer_url,
        )
