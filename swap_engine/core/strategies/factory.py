"""Strategy registry: maps strategy ids to backend classes and builds instances."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Type

from pydantic import ValidationError as PydanticValidationError

from ..execution.errors import AllStrategiesFailedError, StrategyConfigError, UnknownStrategyError
from ..execution.events import SwapEvents
from ..execution.interfaces import ChainProvider, Signer
from ..execution.models import StrategyMetadata
from .base import SwapStrategy
from .batch_auction import BatchAuctionStrategy
from .direct import DirectSwapStrategy


logger = logging.getLogger(__name__)


class StrategyRegistry:
    """Registry of swap strategy implementations, keyed by lowercase id."""

    def __init__(self) -> None:
        self._strategies: Dict[str, Type[SwapStrategy]] = {}

    def register(self, strategy_cls: Type[SwapStrategy]) -> None:
        key = strategy_cls.id.lower()
        if key in self._strategies:
            raise ValueError(f"Strategy {strategy_cls.id!r} is already registered")
        self._strategies[key] = strategy_cls

    def _lookup(self, strategy_id: str) -> Type[SwapStrategy]:
        strategy_cls = self._strategies.get((strategy_id or "").lower())
        if strategy_cls is None:
            raise UnknownStrategyError(strategy_id)
        return strategy_cls

    def create_strategy(
        self,
        strategy_id: str,
        signer: Signer,
        provider: ChainProvider,
        config: Optional[Dict[str, Any]] = None,
        events: Optional[SwapEvents] = None,
    ) -> SwapStrategy:
        """Instantiate a strategy with a validated config.

        Raises:
            UnknownStrategyError: No strategy registered under ``strategy_id``.
            StrategyConfigError: ``config`` failed the strategy's config model.
        """
        strategy_cls = self._lookup(strategy_id)
        try:
            strategy_config = strategy_cls.ConfigModel(**(config or {}))
        except PydanticValidationError as e:
            raise StrategyConfigError(f"Invalid config for {strategy_cls.id}: {e}") from e

        return strategy_cls(
            signer,
            provider,
            config=strategy_config,
            events=events,
            logger=logging.getLogger(f"{__package__}.{strategy_cls.id}"),
        )

    def get_available_strategies(self) -> List[str]:
        return list(self._strategies)

    def is_valid_strategy(self, strategy_id: str) -> bool:
        return (strategy_id or "").lower() in self._strategies

    def get_strategy_info(self, strategy_id: str) -> Optional[StrategyMetadata]:
        strategy_cls = self._strategies.get((strategy_id or "").lower())
        return strategy_cls.metadata if strategy_cls else None

    def create_with_fallback(
        self,
        primary_id: str,
        fallback_ids: Sequence[str],
        signer: Signer,
        provider: ChainProvider,
        config: Optional[Dict[str, Any]] = None,
        events: Optional[SwapEvents] = None,
    ) -> SwapStrategy:
        """Build the first strategy in ``[primary_id, *fallback_ids]`` that constructs."""
        candidates = [primary_id, *fallback_ids]
        last_error: Optional[Exception] = None

        for strategy_id in candidates:
            try:
                return self.create_strategy(strategy_id, signer, provider, config=config, events=events)
            except Exception as e:
                logger.warning(f"Strategy {strategy_id} could not be created: {e}")
                last_error = e

        raise AllStrategiesFailedError(
            f"All strategies failed. Primary: {primary_id}, Fallbacks: {', '.join(fallback_ids)}",
            last_error=last_error,
        )


def build_default_registry() -> StrategyRegistry:
    """Registry with the built-in direct and batch auction backends."""
    registry = StrategyRegistry()
    registry.register(DirectSwapStrategy)
    registry.register(BatchAuctionStrategy)
    return registry
