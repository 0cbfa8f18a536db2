"""
Tests for the swap event channel and receipt waiting.
"""

import pytest

from swap_engine.core.execution.confirmations import wait_for_receipt
from swap_engine.core.execution.errors import SettlementFailedError
from swap_engine.core.execution.events import SwapEvents, SwapEventType


class TestSwapEvents:
    @pytest.mark.asyncio
    async def test_sync_and_async_handlers_in_order(self):
        events = SwapEvents()
        seen = []

        def first(name, token):
            seen.append(("sync", name, token))

        async def second(name, token):
            seen.append(("async", name, token))

        events.subscribe(SwapEventType.APPROVAL_START, first)
        events.subscribe(SwapEventType.APPROVAL_START, second)

        await events.emit(SwapEventType.APPROVAL_START, "AlgebraSwap", "0xtoken")

        assert seen == [("sync", "AlgebraSwap", "0xtoken"), ("async", "AlgebraSwap", "0xtoken")]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        events = SwapEvents()
        seen = []
        unsubscribe = events.subscribe(SwapEventType.SWAP_COMPLETE, seen.append)

        assert events.handler_count(SwapEventType.SWAP_COMPLETE) == 1
        unsubscribe()
        await events.emit(SwapEventType.SWAP_COMPLETE, "result")

        assert seen == []
        assert events.handler_count(SwapEventType.SWAP_COMPLETE) == 0

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self):
        events = SwapEvents()
        seen = []

        def broken(_):
            raise RuntimeError("handler bug")

        events.subscribe(SwapEventType.ERROR, broken)
        events.subscribe(SwapEventType.ERROR, seen.append)

        await events.emit(SwapEventType.ERROR, "oops")

        assert seen == ["oops"]

    def test_subscribe_accepts_string_names(self):
        events = SwapEvents()
        events.subscribe("swap_start", lambda request: None)
        assert events.handler_count(SwapEventType.SWAP_START) == 1

    @pytest.mark.asyncio
    async def test_clear(self):
        events = SwapEvents()
        seen = []
        events.subscribe(SwapEventType.SWAP_START, seen.append)
        events.clear()
        await events.emit(SwapEventType.SWAP_START, "request")
        assert seen == []


class _SequenceProvider:
    """Returns queued receipt lookups in order; exceptions are raised."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.lookups = 0

    async def call(self, tx):
        return "0x"

    async def get_transaction_receipt(self, tx_hash):
        self.lookups += 1
        response = self.responses.pop(0) if self.responses else None
        if isinstance(response, Exception):
            raise response
        return response


class TestWaitForReceipt:
    @pytest.mark.asyncio
    async def test_polls_until_mined(self):
        provider = _SequenceProvider([
            None,
            ConnectionError("rpc down"),
            {"status": "0x1", "blockNumber": "0x10", "gasUsed": "0x5208"},
        ])

        receipt = await wait_for_receipt(provider, "0xhash", poll_interval=0)

        assert provider.lookups == 3
        assert receipt.succeeded
        assert receipt.transaction_hash == "0xhash"
        assert receipt.block_number == 16
        assert receipt.gas_used == 21000

    @pytest.mark.asyncio
    async def test_reverted_receipt_is_returned(self):
        provider = _SequenceProvider([{"transactionHash": "0xhash", "status": "0x0"}])

        receipt = await wait_for_receipt(provider, "0xhash", poll_interval=0)

        assert receipt.status == 0
        assert not receipt.succeeded

    @pytest.mark.asyncio
    async def test_timeout_raises_settlement_failure(self):
        provider = _SequenceProvider([])

        with pytest.raises(SettlementFailedError) as exc_info:
            await wait_for_receipt(provider, "0xhash", poll_interval=0, timeout=0.01)

        assert exc_info.value.tx_hash == "0xhash"
        assert provider.lookups >= 1
