"""
Tests for the CoW Protocol batch auction strategy.
"""

import json
from decimal import Decimal

import pytest
from eth_utils import encode_hex, keccak

from swap_engine.config import settings
from swap_engine.core.execution.errors import (
    CowApiError,
    ErrorCategory,
    OrderTrackingError,
    QuoteUnavailableError,
    UnsupportedChainError,
)
from swap_engine.core.execution.events import SwapEvents, SwapEventType
from swap_engine.core.execution.models import (
    ExecutionHandle,
    SwapRequest,
    TrackingMethod,
    TrackingStatus,
    TransactionReceipt,
)
from swap_engine.core.execution.tx_builder import ERC20_APPROVE_SELECTOR, MAX_UINT256
from swap_engine.core.strategies.batch_auction import BatchAuctionConfig, BatchAuctionStrategy

from fakes import ORDER_UID, SETTLEMENT_TX, TOKEN_A, TOKEN_B, USER


RELAYER = settings.cow_vault_relayer_address


def _request(**overrides) -> SwapRequest:
    values = dict(token_in=TOKEN_A, token_out=TOKEN_B, amount=100, user_address=USER, strategy_id="cowswap")
    values.update(overrides)
    return SwapRequest(**values)


@pytest.fixture
def make_strategy(signer, provider, batch_strategy_cls):
    def _make(**overrides):
        values = {"poll_interval_seconds": 0, "confirmation_poll_interval_seconds": 0, **overrides}
        return batch_strategy_cls(signer, provider, config=BatchAuctionConfig(**values), events=SwapEvents())
    return _make


@pytest.fixture
def approved(chain):
    chain.set_allowance(TOKEN_A, USER, RELAYER, MAX_UINT256)


# =============================================================================
# Full swap
# =============================================================================

class TestOrderSwap:
    @pytest.mark.asyncio
    async def test_approval_then_order_with_order_tracking(self, make_strategy, chain, cow_api):
        chain.set_allowance(TOKEN_A, USER, RELAYER, 50)
        strategy = make_strategy()
        approvals = []
        strategy.events.subscribe(SwapEventType.APPROVAL_COMPLETE, lambda *args: approvals.append(args))

        result = await strategy.execute_swap(_request())

        assert len(approvals) == 1
        assert approvals[0][:2] == ("CowSwap", TOKEN_A)
        # only the approval goes on-chain; the swap is an off-chain order
        assert [tx["data"][:10] for tx in chain.sent] == [ERC20_APPROVE_SELECTOR]

        assert result.success is True
        assert result.status == TrackingStatus.CONFIRMED
        assert result.id == ORDER_UID
        assert result.tracking_info.tracking_method == TrackingMethod.ORDER_BASED
        assert result.tracking_info.tracking_id == ORDER_UID
        assert result.tracking_info.order_status == "fulfilled"
        assert result.explorer_url == f"https://explorer.cow.fi/gc/orders/{ORDER_UID}"
        assert result.details["type"] == "order_based"
        assert result.details["order_id"] == ORDER_UID
        assert result.details["vault_relayer"] == RELAYER
        assert result.details["needs_polling"] is True
        assert result.details["wait_for_confirmation"] is False
        assert result.details["settlement_tx_hash"] == SETTLEMENT_TX
        assert cow_api.order_polls == 2

    @pytest.mark.asyncio
    async def test_quote_request_payload(self, make_strategy, cow_api, approved):
        await make_strategy(app_code="MyApp").execute_swap(_request())

        payload = cow_api.quote_payloads[0]
        assert payload["kind"] == "sell"
        assert payload["sellToken"] == TOKEN_A
        assert payload["buyToken"] == TOKEN_B
        assert payload["sellAmountBeforeFee"] == "100"
        assert payload["from"] == USER
        assert payload["receiver"] == USER
        assert payload["priceQuality"] == "verified"
        assert payload["signingScheme"] == "eip712"
        assert payload["onchainOrder"] is False
        assert json.loads(payload["appData"])["appCode"] == "MyApp"
        assert cow_api.requests[0].url.path == "/xdai/api/v1/quote"

    @pytest.mark.asyncio
    async def test_submitted_order_is_signed_with_zero_fee(self, make_strategy, cow_api, signer, approved):
        await make_strategy().execute_swap(_request())

        order = cow_api.submitted[0]
        app_data = cow_api.quote_response["quote"]["appData"]
        expected_hash = encode_hex(keccak(text=app_data))

        assert order["feeAmount"] == "0"
        assert order["sellAmount"] == "100"
        assert order["buyAmount"] == "1980"
        assert order["validTo"] == 1_893_456_000
        assert order["signingScheme"] == "eip712"
        assert order["signature"] == "0x" + "ab" * 65
        assert order["from"] == USER
        assert order["quoteId"] == 42
        assert order["appDataHash"] == expected_hash

        domain, types, message = signer.typed_data[0]
        assert domain == {
            "name": "Gnosis Protocol",
            "version": "v2",
            "chainId": 100,
            "verifyingContract": settings.cow_settlement_address,
        }
        assert [field["name"] for field in types["Order"]][:3] == ["sellToken", "buyToken", "receiver"]
        assert message["appData"] == expected_hash
        assert message["feeAmount"] == "0"

    @pytest.mark.asyncio
    async def test_handle_wait_returns_settlement_receipt(self, make_strategy, approved):
        strategy = make_strategy()
        handle = await strategy.perform_swap(_request())

        receipt = await handle.wait()

        assert handle.is_order_based is True
        assert handle.id == ORDER_UID
        assert receipt.succeeded
        assert receipt.transaction_hash == SETTLEMENT_TX


# =============================================================================
# Tracking
# =============================================================================

class TestTracking:
    @pytest.mark.asyncio
    async def test_exhausted_polls_report_pending(self, make_strategy, cow_api, approved):
        cow_api.order_statuses = ["open"]

        result = await make_strategy(max_poll_attempts=20).execute_swap(_request())

        assert cow_api.order_polls == 20
        assert result.status == TrackingStatus.PENDING
        assert result.is_pending
        assert result.success is True
        assert result.tracking_info.order_status == "pending"
        assert "settlement_tx_hash" not in result.details

    @pytest.mark.asyncio
    async def test_fulfilled_without_trades_has_no_settlement_hash(self, make_strategy, cow_api, approved):
        cow_api.trades = []

        result = await make_strategy().execute_swap(_request())

        assert result.status == TrackingStatus.CONFIRMED
        assert "settlement_tx_hash" not in result.details
        assert cow_api.order_polls == 2

    @pytest.mark.asyncio
    async def test_tracking_is_driven_by_the_handle(self, make_strategy, cow_api):
        async def wait():
            return TransactionReceipt(
                transaction_hash=SETTLEMENT_TX,
                status=1,
                raw={"uid": ORDER_UID, "status": "fulfilled"},
            )

        handle = ExecutionHandle(id=ORDER_UID, is_order_based=True, wait=wait)
        tracked = await make_strategy().track_transaction(handle)

        assert tracked.status == TrackingStatus.CONFIRMED
        assert tracked.settlement_tx_hash == SETTLEMENT_TX
        assert tracked.order_status["status"] == "fulfilled"
        assert cow_api.requests == []

    @pytest.mark.asyncio
    async def test_cancelled_order_is_failed_status(self, make_strategy, cow_api, approved):
        cow_api.order_statuses = ["open", "cancelled"]

        result = await make_strategy().execute_swap(_request())

        assert result.status == TrackingStatus.FAILED
        assert result.success is False

    @pytest.mark.asyncio
    async def test_lookup_failures_on_every_attempt_raise_tracking_error(self, make_strategy, cow_api, approved):
        cow_api.order_lookup_status = 500

        with pytest.raises(OrderTrackingError) as exc_info:
            await make_strategy(max_poll_attempts=3).execute_swap(_request())

        assert str(exc_info.value) == "CowSwap: Unable to track order status - order may still be processing"
        assert exc_info.value.is_hard_failure is False
        assert exc_info.value.order_id == ORDER_UID


# =============================================================================
# Failures
# =============================================================================

class TestFailures:
    @pytest.mark.asyncio
    async def test_unsupported_chain(self, make_strategy, chain, approved):
        chain.chain_id = 137

        with pytest.raises(UnsupportedChainError) as exc_info:
            await make_strategy().execute_swap(_request())

        assert str(exc_info.value) == "CowSwap: CoW Swap not supported on chain ID 137"
        assert exc_info.value.chain_id == 137

    @pytest.mark.asyncio
    async def test_incomplete_quote(self, make_strategy, cow_api, approved):
        del cow_api.quote_response["quote"]["buyAmount"]

        with pytest.raises(QuoteUnavailableError) as exc_info:
            await make_strategy().execute_swap(_request())

        assert str(exc_info.value) == "CowSwap: Invalid CoW quote received"
        assert cow_api.submitted == []

    @pytest.mark.asyncio
    async def test_venue_description_is_surfaced(self, make_strategy, cow_api, approved):
        cow_api.order_submit_error = (
            400,
            {"errorType": "InsufficientFee", "description": "Order does not include sufficient fee"},
        )

        with pytest.raises(CowApiError) as exc_info:
            await make_strategy().execute_swap(_request())

        assert str(exc_info.value) == "CowSwap: CoW API Error: Order does not include sufficient fee"
        assert exc_info.value.status_code == 400
        assert exc_info.value.category == ErrorCategory.PROVIDER

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("insufficient liquidity in batch", "Insufficient liquidity for this trade size"),
            ("limit price too low", "Current market price is below your minimum acceptable price"),
        ],
    )
    def test_venue_failure_patterns(self, make_strategy, raw, expected):
        assert str(make_strategy().handle_error(RuntimeError(raw))) == f"CowSwap: {expected}"


# =============================================================================
# Quotes, status, explorer
# =============================================================================

class TestQuoteAndStatus:
    @pytest.mark.asyncio
    async def test_estimate_output(self, make_strategy):
        quote = await make_strategy().estimate_output(_request())

        assert quote.strategy_id == "cowswap"
        assert quote.estimated_output == 1980
        assert quote.minimum_output == 1980
        assert quote.fee_amount == 10
        assert quote.execution_price == Decimal(2)
        assert quote.slippage_protected is True

    @pytest.mark.asyncio
    async def test_status_from_order_lookup(self, make_strategy, cow_api):
        cow_api.order_statuses = ["expired"]

        report = await make_strategy().get_transaction_status(ORDER_UID)

        assert report.status == "failed"
        assert report.order_status["status"] == "expired"
        assert report.explorer_url.endswith(f"/orders/{ORDER_UID}")

    @pytest.mark.asyncio
    async def test_status_falls_back_to_receipt(self, make_strategy, cow_api, chain):
        cow_api.order_lookup_status = 404
        tx_hash = chain.mine({"from": USER, "to": TOKEN_A, "data": "0x", "value": "0x0"})

        report = await make_strategy().get_transaction_status(tx_hash)

        assert report.status == "success"
        assert report.tx_hash == tx_hash
        assert report.explorer_url == f"https://gnosisscan.io/tx/{tx_hash}"

    def test_explorer_url_by_id_shape(self, make_strategy):
        strategy = make_strategy()
        assert strategy.get_explorer_url(ORDER_UID) == f"https://explorer.cow.fi/gc/orders/{ORDER_UID}"
        assert strategy.get_explorer_url(SETTLEMENT_TX) == f"https://gnosisscan.io/tx/{SETTLEMENT_TX}"

    def test_app_data_hash_prefers_venue_hash(self):
        assert BatchAuctionStrategy.app_data_hash({"appData": "{}", "appDataHash": "0x" + "12" * 32}) == "0x" + "12" * 32
        assert BatchAuctionStrategy.app_data_hash({"appData": "0x" + "34" * 32}) == "0x" + "34" * 32

    def test_approval_address_is_vault_relayer(self, make_strategy):
        assert make_strategy().get_required_approval_address() == RELAYER
