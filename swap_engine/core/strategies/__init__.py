"""Swap strategy implementations.

Each strategy is one settlement backend behind the SwapStrategy contract:
- DirectSwapStrategy ("algebra"): immediate Swapr V3 router swaps
- BatchAuctionStrategy ("cowswap"): CoW Protocol batch auction orders

Usage:
    from swap_engine.core.strategies import build_default_registry

    registry = build_default_registry()
    strategy = registry.create_strategy("algebra", signer, provider, {"slippage_bps": 100})
    result = await strategy.execute_swap(request)
"""

from .base import SwapStrategy, SwapStrategyConfig
from .direct import DirectSwapConfig, DirectSwapStrategy
from .batch_auction import BatchAuctionConfig, BatchAuctionStrategy
from .factory import StrategyRegistry, build_default_registry

__all__ = [
    "SwapStrategy",
    "SwapStrategyConfig",
    "DirectSwapStrategy",
    "DirectSwapConfig",
    "BatchAuctionStrategy",
    "BatchAuctionConfig",
    "StrategyRegistry",
    "build_default_registry",
]
