"""
Transaction builder for the calls the swap engine makes.

Calldata is ABI-encoded by hand: every argument here is a static type, so
each encodes to exactly one 32-byte word.
"""

from typing import List, Optional

from eth_utils import function_signature_to_4byte_selector

from .models import PreparedTransaction, TransactionType


# Common contract ABIs (minimal for encoding)
ERC20_APPROVE_SELECTOR = "0x095ea7b3"    # approve(address,uint256)
ERC20_ALLOWANCE_SELECTOR = "0xdd62ed3e"  # allowance(address,address)
POOL_TOKEN0_SELECTOR = "0x0dfe1681"      # token0()

# Algebra pools expose globalState() instead of Uniswap's slot0(); the first
# returned word is the current sqrt price (Q64.96).
POOL_GLOBAL_STATE_SELECTOR = "0x" + function_signature_to_4byte_selector("globalState()").hex()

# Swapr V3 router: exactInputSingle((tokenIn,tokenOut,recipient,deadline,amountIn,amountOutMinimum,limitSqrtPrice))
EXACT_INPUT_SINGLE_SELECTOR = "0x" + function_signature_to_4byte_selector(
    "exactInputSingle((address,address,address,uint256,uint256,uint256,uint160))"
).hex()

# Maximum uint256 for unlimited approval
MAX_UINT256 = 2**256 - 1


def _encode_uint256(value: int) -> str:
    """Encode a uint256 as a 32-byte hex string (without 0x prefix)."""
    if value < 0 or value > MAX_UINT256:
        raise ValueError(f"Value out of uint256 range: {value}")
    return format(value, "064x")


def _encode_address(address: str) -> str:
    """Encode an address as a 32-byte hex string (without 0x prefix)."""
    addr = address.lower().replace("0x", "")
    return addr.zfill(64)


def decode_words(data: str) -> List[int]:
    """Split hex return data into 32-byte words interpreted as unsigned ints."""
    body = data[2:] if data.startswith("0x") else data
    if not body:
        return []
    if len(body) % 64:
        raise ValueError(f"Return data is not word aligned: {len(body)} hex chars")
    return [int(body[i:i + 64], 16) for i in range(0, len(body), 64)]


def decode_uint256(data: str) -> int:
    words = decode_words(data)
    if not words:
        raise ValueError("Empty return data")
    return words[0]


def decode_address(data: str) -> str:
    """Decode the first word of return data as a lowercase address."""
    return "0x" + format(decode_uint256(data), "040x")[-40:]


class TransactionBuilder:
    """
    Builds calls and transactions for the swap engine.

    Handles:
    - ERC20 allowance reads and approvals
    - Swapr V3 exactInputSingle swaps
    - Algebra pool state reads
    """

    @staticmethod
    def build_allowance_call(token_address: str, owner_address: str, spender_address: str) -> dict:
        """Build an ``eth_call`` payload for ``allowance(owner, spender)``."""
        return {
            "to": token_address,
            "data": (
                ERC20_ALLOWANCE_SELECTOR +
                _encode_address(owner_address) +
                _encode_address(spender_address)
            ),
        }

    @staticmethod
    def build_pool_call(pool_address: str, selector: str) -> dict:
        return {"to": pool_address, "data": selector}

    @staticmethod
    def build_erc20_approve(
        owner_address: str,
        token_address: str,
        spender_address: str,
        amount: int = MAX_UINT256,
        chain_id: Optional[int] = None,
        description: str = "",
    ) -> PreparedTransaction:
        """
        Build an ERC20 approval transaction.

        Args:
            owner_address: The token owner (sender)
            token_address: The ERC20 token contract
            spender_address: The address being approved to spend
            amount: The amount to approve (default: unlimited)
            chain_id: Optional chain id to pin the transaction to
            description: Human-readable description

        Returns:
            PreparedTransaction ready to be signed
        """
        calldata = (
            ERC20_APPROVE_SELECTOR +
            _encode_address(spender_address) +
            _encode_uint256(amount)
        )

        return PreparedTransaction(
            tx_type=TransactionType.APPROVE,
            chain_id=chain_id,
            from_address=owner_address.lower(),
            to_address=token_address.lower(),
            data=calldata,
            value=0,
            description=description or f"Approve {spender_address[:10]}... to spend tokens",
        )

    @staticmethod
    def build_exact_input_single(
        router_address: str,
        token_in: str,
        token_out: str,
        recipient: str,
        deadline: int,
        amount_in: int,
        amount_out_minimum: int,
        limit_sqrt_price: int = 0,
        gas_limit: Optional[int] = None,
        chain_id: Optional[int] = None,
    ) -> PreparedTransaction:
        """
        Build a single-hop Swapr V3 swap.

        ``limit_sqrt_price`` of 0 disables the price limit; slippage is then
        bounded only by ``amount_out_minimum``.
        """
        calldata = (
            EXACT_INPUT_SINGLE_SELECTOR +
            _encode_address(token_in) +
            _encode_address(token_out) +
            _encode_address(recipient) +
            _encode_uint256(deadline) +
            _encode_uint256(amount_in) +
            _encode_uint256(amount_out_minimum) +
            _encode_uint256(limit_sqrt_price)
        )

        return PreparedTransaction(
            tx_type=TransactionType.SWAP,
            chain_id=chain_id,
            from_address=recipient.lower(),
            to_address=router_address.lower(),
            data=calldata,
            value=0,
            gas_limit=gas_limit,
            description=f"Swap {token_in[:10]}... -> {token_out[:10]}...",
        )
