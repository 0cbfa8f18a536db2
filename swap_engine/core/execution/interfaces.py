"""Collaborator protocols consumed by the swap engine.

The signer and the connectivity provider are supplied by the wallet layer
and by the endpoint selector respectively. The engine only reads through
them and never mutates them.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol


class Signer(Protocol):
    """Transaction-signing capability bound to the user's wallet."""

    async def get_address(self) -> str:
        ...

    async def get_chain_id(self) -> int:
        ...

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        """Sign and broadcast ``tx`` ({to, data, value, gas}); return the tx hash."""
        ...

    async def sign_typed_data(
        self,
        domain: Dict[str, Any],
        types: Dict[str, List[Dict[str, str]]],
        message: Dict[str, Any],
    ) -> str:
        """Return an EIP-712 signature (0x-prefixed hex) over ``message``."""
        ...


class ChainProvider(Protocol):
    """Read access to chain state plus receipt lookup."""

    async def call(self, tx: Dict[str, Any]) -> str:
        """Execute an ``eth_call`` and return the hex-encoded return data."""
        ...

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Return the raw receipt, or None while the transaction is unmined."""
        ...
