"""
Swap strategy contract.

Every settlement backend runs the same fixed sequence:

    validate -> check approval -> approve (if needed) -> perform swap
             -> track -> normalize result

Subclasses implement submission, tracking and quoting. Errors raised at any
step are tagged with the strategy name before they leave ``execute_swap``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple, Type

from eth_utils import is_address
from pydantic import BaseModel, Field

from ...config import settings
from ..execution.confirmations import wait_for_receipt
from ..execution.errors import (
    COMMON_FAILURE_PATTERNS,
    ApprovalFailedError,
    ErrorCategory,
    FailurePattern,
    StrategyError,
    SwapEngineError,
    ValidationError,
    classify_failure,
)
from ..execution.events import SwapEvents, SwapEventType
from ..execution.interfaces import ChainProvider, Signer
from ..execution.models import (
    ExecutionHandle,
    Quote,
    StatusReport,
    StrategyMetadata,
    SwapRequest,
    SwapResult,
    TrackedExecution,
    TrackingInfo,
    TrackingMethod,
    TrackingStatus,
    TransactionReceipt,
)
from ..execution.tx_builder import MAX_UINT256, TransactionBuilder, decode_uint256


class SwapStrategyConfig(BaseModel):
    """Base configuration shared by all swap strategies."""

    confirmation_poll_interval_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Delay between receipt lookups while waiting for a transaction.",
    )
    confirmation_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Give up waiting for a receipt after this long; unset waits indefinitely.",
    )


class SwapStrategy(ABC):
    """Base class for settlement backends."""

    id: str = "strategy"
    name: str = "SwapStrategy"
    ConfigModel: Type[SwapStrategyConfig] = SwapStrategyConfig
    metadata: StrategyMetadata

    # Strategy-specific substrings, checked before the common ones
    failure_patterns: Tuple[FailurePattern, ...] = ()

    def __init__(
        self,
        signer: Signer,
        provider: ChainProvider,
        config: Optional[SwapStrategyConfig] = None,
        events: Optional[SwapEvents] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.signer = signer
        self.provider = provider
        self.config = config or self.ConfigModel()
        self.events = events or SwapEvents()
        self.logger = logger or logging.getLogger(self.__class__.__name__)

    # ------------------------------------------------------------------
    # Template method
    # ------------------------------------------------------------------

    async def execute_swap(self, request: SwapRequest) -> SwapResult:
        """Run the full swap sequence for ``request``.

        Raises:
            SwapEngineError: tagged ``"<strategy name>: <message>"``.
        """
        try:
            self.validate_request(request)

            if await self.check_approval(request):
                await self.handle_approval(request)

            handle = await self.perform_swap(request)
            tracked = await self.track_transaction(handle)
            return self.process_result(tracked, request)
        except Exception as exc:
            error = self.handle_error(exc)
            if error is exc:
                raise
            raise error from exc

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def validate_request(self, request: SwapRequest) -> None:
        for label, address in (
            ("token_in", request.token_in),
            ("token_out", request.token_out),
            ("user_address", request.user_address),
        ):
            if not isinstance(address, str) or not is_address(address):
                raise ValidationError(f"Invalid {label} address: {address!r}")

        if request.token_in.lower() == request.token_out.lower():
            raise ValidationError("Cannot swap a token for itself")

        if not isinstance(request.amount, int) or isinstance(request.amount, bool) or request.amount <= 0:
            raise ValidationError(f"Amount must be a positive integer, got {request.amount!r}")

    async def check_approval(self, request: SwapRequest) -> bool:
        """Return True when the allowance for the spender is below ``amount``.

        Any failure to read the allowance counts as "approval needed".
        """
        spender = self.get_required_approval_address()
        call = TransactionBuilder.build_allowance_call(request.token_in, request.user_address, spender)
        try:
            allowance = decode_uint256(await self.provider.call(call))
        except Exception as e:
            self.logger.warning(f"{self.name}: error checking approval, assuming it is needed: {e}")
            return True

        self.logger.debug(f"{self.name}: allowance {allowance} for {spender}, need {request.amount}")
        return allowance < request.amount

    async def handle_approval(self, request: SwapRequest) -> str:
        """Grant the spender an unlimited allowance and wait for it to be mined."""
        spender = self.get_required_approval_address()
        self.logger.info(f"Approving {self.name} for token {request.token_in}")
        await self.events.emit(SwapEventType.APPROVAL_START, self.name, request.token_in)

        tx = TransactionBuilder.build_erc20_approve(
            owner_address=request.user_address,
            token_address=request.token_in,
            spender_address=spender,
            amount=MAX_UINT256,
        )
        tx_hash = await self.signer.send_transaction(tx.to_dict())
        self.logger.info(f"{self.name}: approval transaction sent: {tx_hash}")

        receipt = await self.wait_for_receipt(tx_hash)
        if not receipt.succeeded:
            raise ApprovalFailedError(tx_hash=tx_hash)

        await self.events.emit(SwapEventType.APPROVAL_COMPLETE, self.name, request.token_in, tx_hash)
        return tx_hash

    @abstractmethod
    async def perform_swap(self, request: SwapRequest) -> ExecutionHandle:
        """Submit the swap and return a handle to the in-flight execution."""

    @abstractmethod
    async def track_transaction(self, handle: ExecutionHandle) -> TrackedExecution:
        """Follow the execution until it settles (or tracking gives up)."""

    @abstractmethod
    async def estimate_output(self, request: SwapRequest) -> Optional[Quote]:
        """Best-effort quote for ``request``."""

    @abstractmethod
    def get_required_approval_address(self) -> str:
        """Address that must hold the ERC-20 allowance for this backend."""

    def process_result(
        self,
        tracked: TrackedExecution,
        request: SwapRequest,
        details: Optional[Dict[str, Any]] = None,
        **tracking_extras: Any,
    ) -> SwapResult:
        handle = tracked.handle
        method = TrackingMethod.ORDER_BASED if handle.is_order_based else TrackingMethod.TRANSACTION_BASED
        return SwapResult(
            success=tracked.status != TrackingStatus.FAILED,
            id=handle.id,
            strategy_id=self.id,
            strategy_name=self.name,
            status=tracked.status,
            explorer_url=tracked.explorer_url,
            tracking_info=TrackingInfo(
                can_track=True,
                tracking_method=method,
                tracking_id=handle.id,
                **tracking_extras,
            ),
            details=details or {},
        )

    def handle_error(self, exc: BaseException) -> SwapEngineError:
        """Map a raw failure to a tagged, user-presentable engine error."""
        if isinstance(exc, SwapEngineError) and exc.strategy_name:
            return exc

        raw = exc.detail if isinstance(exc, SwapEngineError) else (str(exc) or "Unknown error occurred")
        display, category = self.describe_failure(exc, raw) or (raw, None)
        self.logger.error(f"{self.name} error: {raw}")

        if isinstance(exc, SwapEngineError):
            return exc.attribute_to(self.name, display, category)
        return StrategyError(display, strategy_name=self.name, category=category or ErrorCategory.UNKNOWN)

    def describe_failure(self, exc: BaseException, message: str) -> Optional[Tuple[str, ErrorCategory]]:
        return classify_failure(message, COMMON_FAILURE_PATTERNS + self.failure_patterns)

    # ------------------------------------------------------------------
    # Tracking helpers
    # ------------------------------------------------------------------

    async def wait_for_receipt(self, tx_hash: str) -> TransactionReceipt:
        return await wait_for_receipt(
            self.provider,
            tx_hash,
            poll_interval=self.config.confirmation_poll_interval_seconds,
            timeout=self.config.confirmation_timeout_seconds,
        )

    async def get_transaction_status(self, tx_hash: str) -> StatusReport:
        """Look up a transaction hash. Never raises."""
        explorer_url = self.get_explorer_url(tx_hash)
        try:
            raw = await self.provider.get_transaction_receipt(tx_hash)
        except Exception as e:
            self.logger.error(f"Error checking transaction status for {tx_hash}: {e}")
            return StatusReport(status="error", explorer_url=explorer_url, tx_hash=tx_hash, error=str(e))

        if not raw:
            return StatusReport(status="pending", explorer_url=explorer_url, tx_hash=tx_hash)

        receipt = TransactionReceipt.from_rpc(raw)
        return StatusReport(
            status="success" if receipt.succeeded else "failed",
            explorer_url=explorer_url,
            receipt=receipt,
            tx_hash=receipt.transaction_hash or tx_hash,
            block_number=receipt.block_number,
            gas_used=receipt.gas_used,
        )

    def get_explorer_url(self, tx_hash: str) -> str:
        return settings.explorer_tx_url(tx_hash)

    async def get_user_address(self) -> str:
        return await self.signer.get_address()

    async def get_chain_id(self) -> int:
        return int(await self.signer.get_chain_id())
