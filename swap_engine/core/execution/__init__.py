"""
Swap Execution Layer

Shared building blocks used by every swap strategy:
- Models: requests, quotes, handles, results
- Errors: the swap error taxonomy and failure classification
- TransactionBuilder: calldata for approvals, router swaps and pool reads
- SwapEvents: lifecycle notification channel
- wait_for_receipt: receipt polling

Usage:
    from swap_engine.core.execution import SwapRequest, TransactionBuilder

    request = SwapRequest(
        token_in="0x...",
        token_out="0x...",
        amount=10**18,
        user_address="0x...",
        strategy_id="cowswap",
    )

    tx = TransactionBuilder.build_erc20_approve(
        owner_address="0x...",
        token_address="0x...",
        spender_address="0x...",
    )
"""

from .models import (
    SettlementModel,
    TrackingMethod,
    TrackingStatus,
    OrderStatus,
    SwapRequest,
    StrategyMetadata,
    Quote,
    TransactionReceipt,
    ExecutionHandle,
    TrackedExecution,
    TrackingInfo,
    SwapResult,
    StatusReport,
    TransactionType,
    PreparedTransaction,
)

from .errors import (
    ErrorCategory,
    SwapEngineError,
    ValidationError,
    StrategyConfigError,
    UnknownStrategyError,
    UnsupportedChainError,
    QuoteUnavailableError,
    CowApiError,
    AllStrategiesFailedError,
    StrategyError,
    ApprovalFailedError,
    SettlementFailedError,
    SlippageProtectionUnavailableError,
    OrderTrackingError,
    classify_failure,
)

from .interfaces import (
    Signer,
    ChainProvider,
)

from .tx_builder import (
    TransactionBuilder,
    MAX_UINT256,
)

from .events import (
    SwapEvents,
    SwapEventType,
)

from .confirmations import wait_for_receipt

__all__ = [
    # Models
    "SettlementModel",
    "TrackingMethod",
    "TrackingStatus",
    "OrderStatus",
    "SwapRequest",
    "StrategyMetadata",
    "Quote",
    "TransactionReceipt",
    "ExecutionHandle",
    "TrackedExecution",
    "TrackingInfo",
    "SwapResult",
    "StatusReport",
    "TransactionType",
    "PreparedTransaction",
    # Errors
    "ErrorCategory",
    "SwapEngineError",
    "ValidationError",
    "StrategyConfigError",
    "UnknownStrategyError",
    "UnsupportedChainError",
    "QuoteUnavailableError",
    "CowApiError",
    "AllStrategiesFailedError",
    "StrategyError",
    "ApprovalFailedError",
    "SettlementFailedError",
    "SlippageProtectionUnavailableError",
    "OrderTrackingError",
    "classify_failure",
    # Collaborators
    "Signer",
    "ChainProvider",
    # Transaction Builder
    "TransactionBuilder",
    "MAX_UINT256",
    # Events
    "SwapEvents",
    "SwapEventType",
    # Confirmations
    "wait_for_receipt",
]
