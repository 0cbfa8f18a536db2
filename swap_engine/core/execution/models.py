"""
Swap execution models and types.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple


class SettlementModel(str, Enum):
    """How a strategy settles a swap."""
    IMMEDIATE = "immediate"            # On-chain transaction with a receipt
    BATCH_AUCTION = "batch_auction"    # Off-chain order, polled until settled


class TrackingMethod(str, Enum):
    TRANSACTION_BASED = "transaction_based"
    ORDER_BASED = "order_based"


class TrackingStatus(str, Enum):
    """Outcome of tracking an execution handle."""
    CONFIRMED = "confirmed"    # Receipt status 1 / order fulfilled
    PENDING = "pending"        # Not resolved yet; check later
    FAILED = "failed"          # Reverted, cancelled or expired


class OrderStatus(str, Enum):
    """Order states reported by the batch-auction venue."""
    PRESIGNATURE_PENDING = "presignaturePending"
    OPEN = "open"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    EXPIRED = "expired"

    @classmethod
    def terminal(cls) -> Tuple["OrderStatus", ...]:
        return (cls.FULFILLED, cls.CANCELLED, cls.EXPIRED)


@dataclass(frozen=True)
class SwapRequest:
    """A single swap request. Immutable for the duration of the call."""
    token_in: str
    token_out: str
    amount: int                                 # In smallest units
    user_address: str
    strategy_id: str = "algebra"
    strategy_config: Dict[str, Any] = field(default_factory=dict)

    def with_strategy(self, strategy_id: str) -> "SwapRequest":
        return SwapRequest(
            token_in=self.token_in,
            token_out=self.token_out,
            amount=self.amount,
            user_address=self.user_address,
            strategy_id=strategy_id,
            strategy_config=dict(self.strategy_config),
        )


@dataclass(frozen=True)
class StrategyMetadata:
    """Static description of a registered strategy. Available without I/O."""
    name: str
    description: str
    settlement_model: SettlementModel
    gas_required: bool
    mev_protected: bool
    slippage_protection: bool
    approval_address: str
    approval_address_label: str
    features: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "settlement": self.settlement_model.value,
            "gasRequired": self.gas_required,
            "mevProtection": self.mev_protected,
            "slippageProtection": self.slippage_protection,
            "approvalAddress": self.approval_address,
            "approvalAddressName": self.approval_address_label,
            "features": list(self.features),
        }


@dataclass(frozen=True)
class Quote:
    """Per-strategy output estimate. Recomputed on every request."""
    strategy_id: str
    estimated_output: int
    minimum_output: int
    slippage_bps: int
    execution_price: Optional[Decimal] = None   # Output per unit of input (raw units)
    fee_amount: int = 0
    # False means no price source was available and minimum_output is 0:
    # the swap would run without slippage protection.
    slippage_protected: bool = True
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strategyId": self.strategy_id,
            "estimatedOutput": str(self.estimated_output),
            "minimumOutput": str(self.minimum_output),
            "executionPrice": str(self.execution_price) if self.execution_price is not None else None,
            "slippageBps": self.slippage_bps,
            "feeAmount": str(self.fee_amount),
            "slippageProtected": self.slippage_protected,
        }


@dataclass
class TransactionReceipt:
    """Normalized receipt for a mined transaction (or a settled order)."""
    transaction_hash: str
    status: int
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    confirmations: int = 1
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_rpc(cls, receipt: Dict[str, Any]) -> "TransactionReceipt":
        """Parse an ``eth_getTransactionReceipt`` payload (hex quantities or ints)."""
        return cls(
            transaction_hash=receipt.get("transactionHash", ""),
            status=_to_int(receipt.get("status", 1)),
            block_number=_to_int(receipt.get("blockNumber")) if receipt.get("blockNumber") is not None else None,
            gas_used=_to_int(receipt.get("gasUsed")) if receipt.get("gasUsed") is not None else None,
            raw=receipt,
        )


@dataclass
class ExecutionHandle:
    """In-flight swap returned by a strategy's submission step.

    ``id`` is a transaction hash for immediate settlement and an order UID for
    batch auctions; callers must not assume a hash format.
    """
    id: str
    is_order_based: bool
    wait: Callable[[], Awaitable[TransactionReceipt]]
    order: Optional[Dict[str, Any]] = None
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class TrackedExecution:
    """Handle plus whatever tracking learned about its settlement."""
    handle: ExecutionHandle
    status: TrackingStatus
    explorer_url: Optional[str] = None
    receipt: Optional[TransactionReceipt] = None
    order_status: Optional[Dict[str, Any]] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    settlement_tx_hash: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.status == TrackingStatus.CONFIRMED


@dataclass(frozen=True)
class TrackingInfo:
    can_track: bool
    tracking_method: TrackingMethod
    tracking_id: str
    explorer_url: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    order_status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "canTrack": self.can_track,
            "trackingMethod": self.tracking_method.value,
            "trackingId": self.tracking_id,
        }
        if self.explorer_url:
            data["explorerUrl"] = self.explorer_url
        if self.block_number is not None:
            data["blockNumber"] = self.block_number
        if self.gas_used is not None:
            data["gasUsed"] = str(self.gas_used)
        if self.order_status:
            data["orderStatus"] = self.order_status
        return data


@dataclass(frozen=True)
class SwapResult:
    """Terminal, normalized output of one swap attempt."""
    success: bool
    id: str
    strategy_id: str
    strategy_name: str
    status: TrackingStatus
    tracking_info: TrackingInfo
    explorer_url: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_pending(self) -> bool:
        return self.status == TrackingStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "id": self.id,
            "strategy": self.strategy_name,
            "strategyId": self.strategy_id,
            "status": self.status.value,
            "explorerUrl": self.explorer_url,
            "timestamp": self.timestamp.isoformat(),
            "trackingInfo": self.tracking_info.to_dict(),
            "details": self.details,
        }


@dataclass
class StatusReport:
    """Result of looking up a transaction hash or order UID after the fact."""
    status: str                                 # success | failed | pending | unknown | error
    explorer_url: Optional[str] = None
    receipt: Optional[TransactionReceipt] = None
    order_status: Optional[Dict[str, Any]] = None
    tx_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    error: Optional[str] = None


def _to_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


class TransactionType(str, Enum):
    """Types of transactions the engine sends."""
    SWAP = "swap"
    APPROVE = "approve"


@dataclass
class PreparedTransaction:
    """A transaction ready to be handed to the signer."""
    tx_type: TransactionType
    chain_id: Optional[int]
    from_address: str
    to_address: str
    data: str                                   # Encoded calldata (hex)
    value: int = 0
    gas_limit: Optional[int] = None
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the dict shape accepted by ``Signer.send_transaction``."""
        tx: Dict[str, Any] = {
            "from": self.from_address,
            "to": self.to_address,
            "data": self.data,
            "value": hex(self.value),
        }
        if self.chain_id is not None:
            tx["chainId"] = hex(self.chain_id)
        if self.gas_limit:
            tx["gas"] = hex(self.gas_limit)
        return tx
