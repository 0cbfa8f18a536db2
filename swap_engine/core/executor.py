"""
Swap executor.

Single entry point for callers: resolves a strategy per request, runs it,
and reports lifecycle events. Quotes from several strategies can be
gathered concurrently, and a swap can fall back through an ordered list of
strategies.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Union

import structlog

from .execution.errors import AllStrategiesFailedError, SettlementFailedError
from .execution.events import EventHandler, SwapEvents, SwapEventType
from .execution.interfaces import ChainProvider, Signer
from .execution.models import Quote, StatusReport, StrategyMetadata, SwapRequest, SwapResult
from .strategies.base import SwapStrategy
from .strategies.factory import StrategyRegistry, build_default_registry


logger = logging.getLogger(__name__)


QuoteOutcome = Union[Quote, Dict[str, str]]


class SwapExecutor:
    """
    Orchestrates swaps across registered strategies.

    Responsibilities:
    - Build the strategy for each request (default config merged with the request's)
    - Run the strategy's swap sequence
    - Emit swap_start / swap_complete / error (approval events come from the strategy)
    - Quote one or many strategies
    - Fall back through alternative strategies
    """

    def __init__(
        self,
        signer: Signer,
        provider: ChainProvider,
        registry: Optional[StrategyRegistry] = None,
        default_config: Optional[Dict[str, Any]] = None,
    ):
        self.signer = signer
        self.provider = provider
        self.registry = registry or build_default_registry()
        self.default_config = dict(default_config or {})
        self.events = SwapEvents(logger=logger)
        self.current_strategy: Optional[SwapStrategy] = None

    def _create_strategy(self, strategy_id: str, strategy_config: Optional[Dict[str, Any]] = None) -> SwapStrategy:
        return self.registry.create_strategy(
            strategy_id,
            self.signer,
            self.provider,
            config={**self.default_config, **(strategy_config or {})},
            events=self.events,
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_swap(self, request: SwapRequest) -> SwapResult:
        """Execute ``request`` with the strategy it names.

        Raises whatever the strategy raised, after emitting ``error``.
        """
        with structlog.contextvars.bound_contextvars(
            strategy=request.strategy_id,
            user=request.user_address,
        ):
            try:
                strategy = self._create_strategy(request.strategy_id, request.strategy_config)
                self.current_strategy = strategy
                logger.info(f"Executing swap with {strategy.name} strategy")

                await self.events.emit(SwapEventType.SWAP_START, request)
                result = await strategy.execute_swap(request)
            except Exception as e:
                category = getattr(e, "category", None)
                logger.error(
                    f"Swap execution failed: {e}",
                    extra={"error_category": category.value if category is not None else "unknown"},
                )
                await self.events.emit(SwapEventType.ERROR, e)
                raise

            logger.info(f"Swap {result.id} finished with status {result.status.value}")
            await self.events.emit(SwapEventType.SWAP_COMPLETE, result)
            return result

    async def execute_swap_with_fallback(
        self,
        request: SwapRequest,
        fallback_ids: Sequence[str] = (),
    ) -> SwapResult:
        """Try ``request.strategy_id`` then each fallback in order.

        A pending result ends the search like a confirmed one. A result with
        ``success=False`` counts as a failure and the next strategy is tried.

        Raises:
            AllStrategiesFailedError: carries only the last failure.
            OrderTrackingError: an order was submitted but its status is
                unknown; no other strategy is tried while it may still settle.
        """
        last_error: Optional[Exception] = None

        for strategy_id in [request.strategy_id, *fallback_ids]:
            try:
                logger.info(f"Attempting swap with {strategy_id} strategy")
                result = await self.execute_swap(request.with_strategy(strategy_id))
            except Exception as e:
                if getattr(e, "is_hard_failure", True) is False:
                    logger.warning(f"Not falling back from {strategy_id}, swap may still settle: {e}")
                    raise
                logger.warning(f"Swap failed with {strategy_id} strategy: {e}")
                last_error = e
                continue

            if result.success:
                logger.info(f"Swap successful with {strategy_id} strategy")
                return result

            logger.warning(f"Swap {result.id} with {strategy_id} strategy ended as {result.status.value}")
            last_error = SettlementFailedError(
                f"Swap {result.id} finished with status {result.status.value}",
                tx_hash=result.id,
                strategy_name=result.strategy_name,
            )

        raise AllStrategiesFailedError(
            f"All swap strategies failed. Last error: {last_error}",
            last_error=last_error,
        ) from last_error

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    async def _estimate(self, request: SwapRequest, strategy_id: str) -> Optional[Quote]:
        strategy = self._create_strategy(strategy_id, request.strategy_config)
        return await strategy.estimate_output(request.with_strategy(strategy_id))

    async def get_quote(self, request: SwapRequest) -> Optional[Quote]:
        """Quote ``request`` with its own strategy. Returns None on any failure."""
        try:
            return await self._estimate(request, request.strategy_id)
        except Exception as e:
            logger.warning(f"Quote failed for {request.strategy_id}: {e}")
            return None

    async def get_multiple_quotes(
        self,
        request: SwapRequest,
        strategy_ids: Optional[Sequence[str]] = None,
    ) -> Dict[str, QuoteOutcome]:
        """Quote several strategies concurrently.

        Every strategy gets an entry: a Quote, or ``{"error": message}``.
        """
        ids = list(strategy_ids) if strategy_ids is not None else self.registry.get_available_strategies()
        outcomes = await asyncio.gather(
            *(self._estimate(request, strategy_id) for strategy_id in ids),
            return_exceptions=True,
        )

        quotes: Dict[str, QuoteOutcome] = {}
        for strategy_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"Quote failed for {strategy_id}: {outcome}")
                quotes[strategy_id] = {"error": str(outcome)}
            elif outcome is None:
                quotes[strategy_id] = {"error": "Quote unavailable"}
            else:
                quotes[strategy_id] = outcome
        return quotes

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def check_approval_needed(self, request: SwapRequest) -> bool:
        """Re-read the allowance for the request's strategy; never cached."""
        strategy = self._create_strategy(request.strategy_id, request.strategy_config)
        return await strategy.check_approval(request)

    async def check_transaction_status(self, id_or_hash: str, strategy_id: str) -> StatusReport:
        strategy = self._create_strategy(strategy_id)
        return await strategy.get_transaction_status(id_or_hash)

    def get_available_strategies(self) -> List[str]:
        return self.registry.get_available_strategies()

    def get_strategy_info(self, strategy_id: str) -> Optional[StrategyMetadata]:
        return self.registry.get_strategy_info(strategy_id)

    def get_current_strategy_name(self) -> Optional[str]:
        return self.current_strategy.name if self.current_strategy else None

    def reset(self) -> None:
        self.current_strategy = None

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def on_approval_start(self, handler: EventHandler):
        return self.events.subscribe(SwapEventType.APPROVAL_START, handler)

    def on_approval_complete(self, handler: EventHandler):
        return self.events.subscribe(SwapEventType.APPROVAL_COMPLETE, handler)

    def on_swap_start(self, handler: EventHandler):
        return self.events.subscribe(SwapEventType.SWAP_START, handler)

    def on_swap_complete(self, handler: EventHandler):
        return self.events.subscribe(SwapEventType.SWAP_COMPLETE, handler)

    def on_error(self, handler: EventHandler):
        return self.events.subscribe(SwapEventType.ERROR, handler)
