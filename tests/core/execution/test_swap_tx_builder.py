"""
Tests for calldata encoding.
"""

import pytest
from eth_utils import keccak

from swap_engine.core.execution.models import TransactionType
from swap_engine.core.execution.tx_builder import (
    ERC20_ALLOWANCE_SELECTOR,
    ERC20_APPROVE_SELECTOR,
    EXACT_INPUT_SINGLE_SELECTOR,
    MAX_UINT256,
    POOL_GLOBAL_STATE_SELECTOR,
    TransactionBuilder,
    decode_address,
    decode_uint256,
    decode_words,
)


OWNER = "0x" + "1" * 40
TOKEN = "0x" + "A" * 40
SPENDER = "0x" + "2" * 40
ROUTER = "0x" + "3" * 40


class TestSelectors:
    def test_global_state_selector(self):
        assert POOL_GLOBAL_STATE_SELECTOR == "0x" + keccak(text="globalState()")[:4].hex()

    def test_selectors_are_four_bytes(self):
        assert len(EXACT_INPUT_SINGLE_SELECTOR) == 10
        assert EXACT_INPUT_SINGLE_SELECTOR.startswith("0x")


class TestApprove:
    def test_unlimited_approval_calldata(self):
        tx = TransactionBuilder.build_erc20_approve(
            owner_address=OWNER,
            token_address=TOKEN,
            spender_address=SPENDER,
        )

        assert tx.tx_type == TransactionType.APPROVE
        assert tx.to_address == TOKEN.lower()
        assert tx.data.startswith(ERC20_APPROVE_SELECTOR)
        assert tx.data[10:74] == "0" * 24 + "2" * 40
        assert tx.data[74:] == "f" * 64
        assert len(tx.data) == 10 + 128

    def test_to_dict_shape(self):
        tx = TransactionBuilder.build_erc20_approve(OWNER, TOKEN, SPENDER, amount=5, chain_id=100)
        payload = tx.to_dict()

        assert payload["from"] == OWNER
        assert payload["to"] == TOKEN.lower()
        assert payload["value"] == "0x0"
        assert payload["chainId"] == "0x64"
        assert "gas" not in payload
        assert int(payload["data"][74:], 16) == 5

    def test_amount_out_of_range(self):
        with pytest.raises(ValueError):
            TransactionBuilder.build_erc20_approve(OWNER, TOKEN, SPENDER, amount=MAX_UINT256 + 1)


class TestExactInputSingle:
    def test_encodes_seven_words(self):
        tx = TransactionBuilder.build_exact_input_single(
            router_address=ROUTER,
            token_in=TOKEN,
            token_out=SPENDER,
            recipient=OWNER,
            deadline=1_700_000_000,
            amount_in=10**18,
            amount_out_minimum=995,
            gas_limit=350_000,
        )
        words = decode_words("0x" + tx.data[10:])

        assert tx.tx_type == TransactionType.SWAP
        assert tx.to_address == ROUTER
        assert tx.data.startswith(EXACT_INPUT_SINGLE_SELECTOR)
        assert len(words) == 7
        assert words[0] == int(TOKEN, 16)
        assert words[2] == int(OWNER, 16)
        assert words[3] == 1_700_000_000
        assert words[4] == 10**18
        assert words[5] == 995
        assert words[6] == 0  # no price limit
        assert tx.to_dict()["gas"] == hex(350_000)


class TestReadHelpers:
    def test_allowance_call(self):
        call = TransactionBuilder.build_allowance_call(TOKEN, OWNER, SPENDER)
        assert call["to"] == TOKEN
        assert call["data"].startswith(ERC20_ALLOWANCE_SELECTOR)
        assert call["data"][10:74].endswith("1" * 40)
        assert call["data"][74:].endswith("2" * 40)

    def test_decoders(self):
        assert decode_uint256("0x" + format(42, "064x")) == 42
        assert decode_address("0x" + "0" * 24 + "ab" * 20) == "0x" + "ab" * 20
        assert decode_words("0x") == []

    def test_misaligned_return_data(self):
        with pytest.raises(ValueError):
            decode_words("0x1234")

    def test_empty_uint(self):
        with pytest.raises(ValueError):
            decode_uint256("0x")


class TestHardcodedSelectors:
    @pytest.mark.parametrize(
        "selector, signature",
        [
            (ERC20_APPROVE_SELECTOR, "approve(address,uint256)"),
            (ERC20_ALLOWANCE_SELECTOR, "allowance(address,address)"),
        ],
    )
    def test_matches_signature_hash(self, selector, signature):
        assert selector == "0x" + keccak(text=signature)[:4].hex()
