"""Receipt polling for submitted transactions."""

import asyncio
import logging
import time
from typing import Optional

from .errors import SettlementFailedError
from .interfaces import ChainProvider
from .models import TransactionReceipt


logger = logging.getLogger(__name__)


async def wait_for_receipt(
    provider: ChainProvider,
    tx_hash: str,
    poll_interval: float = 2.0,
    timeout: Optional[float] = None,
) -> TransactionReceipt:
    """
    Poll the provider until ``tx_hash`` is mined.

    Lookup errors are logged and retried; the connectivity layer owns its own
    timeouts. With ``timeout`` set, giving up raises SettlementFailedError.

    Returns:
        The mined receipt, whatever its status. Callers decide what a
        non-success status means.
    """
    started = time.monotonic()

    while True:
        try:
            raw = await provider.get_transaction_receipt(tx_hash)
            if raw:
                receipt = TransactionReceipt.from_rpc(raw)
                if not receipt.transaction_hash:
                    receipt.transaction_hash = tx_hash
                return receipt
        except Exception as e:
            logger.warning(f"Error checking transaction status for {tx_hash}: {e}")

        if timeout is not None and time.monotonic() - started >= timeout:
            raise SettlementFailedError(
                f"Transaction not confirmed within {timeout}s",
                tx_hash=tx_hash,
            )

        await asyncio.sleep(poll_interval)
