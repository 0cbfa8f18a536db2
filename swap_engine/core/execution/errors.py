"""
Error taxonomy for swap execution.

Every engine error carries an ErrorCategory and a recoverable flag so that
callers (and the fallback path) can decide whether another attempt makes
sense. Strategy-raised errors are tagged with the strategy name and render
as ``"<StrategyName>: <message>"`` for user display.
"""

import re
from enum import Enum
from typing import Iterable, Optional, Tuple, Union


class ErrorCategory(str, Enum):
    """Categories of swap failures."""

    VALIDATION = "validation"           # Malformed request
    CONFIGURATION = "configuration"     # Unknown strategy / bad config
    APPROVAL = "approval"               # Allowance grant failed
    SETTLEMENT = "settlement"           # On-chain revert
    SLIPPAGE = "slippage"               # Slippage bound missing or exceeded
    LIQUIDITY = "liquidity"             # Not enough liquidity
    USER_REJECTED = "user_rejected"     # Signer declined
    INSUFFICIENT_FUNDS = "insufficient_funds"
    PROVIDER = "provider"               # Venue / RPC error
    TRACKING = "tracking"               # Order status unknown
    UNKNOWN = "unknown"


class SwapEngineError(Exception):
    """Base exception for the swap engine."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = False
    strategy_name: Optional[str] = None

    def __init__(self, message: str, *, category: Optional[ErrorCategory] = None):
        super().__init__(message)
        self.message = message
        self.detail = message
        if category is not None:
            self.category = category

    def attribute_to(
        self,
        strategy_name: str,
        detail: str,
        category: Optional[ErrorCategory] = None,
    ) -> "SwapEngineError":
        """Rewrite the message as ``"<strategy_name>: <detail>"`` keeping the error type."""
        self.strategy_name = strategy_name
        self.detail = detail
        self.message = f"{strategy_name}: {detail}"
        self.args = (self.message,)
        if category is not None:
            self.category = category
        return self


class ValidationError(SwapEngineError):
    """Malformed swap request. Never retried."""

    category = ErrorCategory.VALIDATION


class StrategyConfigError(SwapEngineError):
    """Strategy configuration failed validation."""

    category = ErrorCategory.CONFIGURATION


class UnknownStrategyError(SwapEngineError):
    """No strategy is registered under the requested id."""

    category = ErrorCategory.CONFIGURATION

    def __init__(self, strategy_id: str):
        super().__init__(f"Unknown strategy type: {strategy_id}")
        self.strategy_id = strategy_id


class UnsupportedChainError(SwapEngineError):
    """The active chain is not served by the strategy's venue."""

    category = ErrorCategory.CONFIGURATION

    def __init__(self, message: str, chain_id: Optional[int] = None):
        super().__init__(message)
        self.chain_id = chain_id


class QuoteUnavailableError(SwapEngineError):
    """The venue did not return a usable quote."""

    category = ErrorCategory.PROVIDER
    recoverable = True


class CowApiError(SwapEngineError):
    """Order venue returned an error response."""

    category = ErrorCategory.PROVIDER
    recoverable = True

    def __init__(
        self,
        description: str,
        status_code: Optional[int] = None,
        error_type: Optional[str] = None,
    ):
        super().__init__(description)
        self.description = description
        self.status_code = status_code
        self.error_type = error_type


class AllStrategiesFailedError(SwapEngineError):
    """Every strategy in a fallback chain failed; keeps only the last failure."""

    category = ErrorCategory.UNKNOWN

    def __init__(self, message: str, last_error: Optional[BaseException] = None):
        super().__init__(message)
        self.last_error = last_error


class StrategyError(SwapEngineError):
    """Failure attributed to a specific strategy."""

    recoverable = True

    def __init__(
        self,
        message: str,
        *,
        strategy_name: Optional[str] = None,
        category: Optional[ErrorCategory] = None,
    ):
        super().__init__(message, category=category)
        if strategy_name:
            self.attribute_to(strategy_name, message)


class ApprovalFailedError(StrategyError):
    """Approval transaction did not succeed. Retryable by the caller."""

    category = ErrorCategory.APPROVAL

    def __init__(self, message: str = "Approval transaction reverted", *, tx_hash: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.tx_hash = tx_hash


class SettlementFailedError(StrategyError):
    """Direct swap transaction reverted or never confirmed."""

    category = ErrorCategory.SETTLEMENT
    recoverable = False

    def __init__(self, message: str = "Transaction failed", *, tx_hash: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.tx_hash = tx_hash


class SlippageProtectionUnavailableError(StrategyError):
    """No pool price was available, so no minimum output can be enforced."""

    category = ErrorCategory.SLIPPAGE


class OrderTrackingError(StrategyError):
    """Order status could not be read. The order may still settle."""

    category = ErrorCategory.TRACKING
    is_hard_failure = False

    def __init__(self, message: str, *, order_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.order_id = order_id


# Needles -> (display message, category). A plain string matches as a
# case-insensitive substring; a compiled regex is searched as written. The
# first hit wins, so more specific patterns must come first.
Needle = Union[str, re.Pattern]
FailurePattern = Tuple[Tuple[Needle, ...], str, ErrorCategory]

COMMON_FAILURE_PATTERNS: Tuple[FailurePattern, ...] = (
    (("user rejected", "user denied"), "Transaction rejected by user", ErrorCategory.USER_REJECTED),
    (("insufficient funds",), "Insufficient funds for transaction", ErrorCategory.INSUFFICIENT_FUNDS),
)


def classify_failure(
    message: str,
    patterns: Iterable[FailurePattern],
) -> Optional[Tuple[str, ErrorCategory]]:
    """Return the stable display message for a raw failure, if any pattern matches."""
    message = message or ""
    lowered = message.lower()
    for needles, display, category in patterns:
        if any(_matches(needle, message, lowered) for needle in needles):
            return display, category
    return None


def _matches(needle: Needle, message: str, lowered: str) -> bool:
    if isinstance(needle, re.Pattern):
        return needle.search(message) is not None
    return needle.lower() in lowered
