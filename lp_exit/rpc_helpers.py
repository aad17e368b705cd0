#!/usr/bin/env python3
"""
RPC Helpers: V4 PositionManager ABI Codec and JSON-RPC Client
===============================================================

Low-level EVM interaction primitives used by position_reader.py:

  • ABI word helpers (uint256, int256, address)
  • Fixed encode/decode pairs for the two PositionManager views we read:
      getPoolAndPositionInfo(uint256) → (PoolKey, uint256 info)
      getPositionLiquidity(uint256)   → (uint128 liquidity)
  • JSON-RPC client (rpc_call, eth_call): single attempt, no retries

This is deliberately NOT a general ABI encoder: a new contract read means
a new fixed encode/decode pair below.

All constants reference the Ethereum ABI specification:
  https://docs.soliditylang.org/en/latest/abi-spec.html

Terminology:
  • Word:  32 bytes = 256 bits = 64 hex characters
  • Slot:  Position of a 32-byte word in an ABI response
  • Q256:  2^256: two's complement boundary for int256
"""

import itertools
import re
import time
from typing import Any, List, Optional, Tuple

import httpx

from lp_exit.central_config import RPC_TIMEOUT_SECONDS
from lp_exit.chain_registry import get_rpc_url
from lp_exit.errors import AbiDecodeError, RpcProtocolError, TransportError
from lp_exit.models import PoolKey

# ── ABI Word Constants ──────────────────────────────────────────────────
# Ethereum ABI spec: https://docs.soliditylang.org/en/latest/abi-spec.html

ABI_WORD_BYTES = 32          # 1 ABI word = 32 bytes
ABI_WORD_HEX = 64            # 32 bytes × 2 hex chars = 64 hex characters
ADDRESS_HEX = 40              # 20 bytes × 2 = 40 hex characters
ADDRESS_PAD_HEX = 24          # Left padding in a 32-byte slot = 64 - 40 = 24 hex chars
SIGN_BIT = 1 << 255           # Two's complement sign bit for int256
Q256 = 2 ** 256              # int256 overflow boundary (two's complement wrap)

MAX_UINT24 = (1 << 24) - 1
MIN_INT24 = -(1 << 23)
MAX_INT24 = (1 << 23) - 1
MAX_UINT128 = (1 << 128) - 1

_HEX_RE = re.compile(r"[0-9a-fA-F]*")


# ── ABI Function Selectors ──────────────────────────────────────────────
# First 4 bytes of keccak256(function_signature).
# Uniswap V4 PositionManager: https://github.com/Uniswap/v4-periphery/blob/main/src/PositionManager.sol

SELECTORS: dict[str, str] = {
    "getPoolAndPositionInfo": "0x7ba03aad",  # getPoolAndPositionInfo(uint256)
    "getPositionLiquidity":   "0x1efeed33",  # getPositionLiquidity(uint256)
}

# Fixed return layouts, in 32-byte words
POOL_AND_POSITION_INFO_WORDS = 6   # PoolKey (5 static fields) + info
POSITION_LIQUIDITY_WORDS = 1


# ── ABI Encoding ────────────────────────────────────────────────────────

def encode_uint256(value: int) -> str:
    """ABI-encode a uint256 as 32-byte hex (no 0x prefix).

    >>> encode_uint256(1)
    '0000000000000000000000000000000000000000000000000000000000000001'
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"uint256 must be an int, got {type(value).__name__}")
    if value < 0 or value >= Q256:
        raise ValueError(f"Value out of uint256 range: {value}")
    return format(value, f'0{ABI_WORD_HEX}x')


def encode_get_pool_and_position_info(token_id: int) -> str:
    """Calldata for PositionManager.getPoolAndPositionInfo(tokenId)."""
    return SELECTORS["getPoolAndPositionInfo"] + encode_uint256(token_id)


def encode_get_position_liquidity(token_id: int) -> str:
    """Calldata for PositionManager.getPositionLiquidity(tokenId)."""
    return SELECTORS["getPositionLiquidity"] + encode_uint256(token_id)


# ── ABI Decoding ────────────────────────────────────────────────────────

def strip_hex(hex_data: str, words: int, label: str = "response") -> str:
    """Drop the 0x prefix and check the payload covers ``words`` ABI words.

    Raises:
        AbiDecodeError: non-string, non-hex or shorter than the fixed layout.
    """
    if not isinstance(hex_data, str):
        raise AbiDecodeError(f"{label}: expected hex string, got {type(hex_data).__name__}")
    data = hex_data[2:] if hex_data[:2].lower() == "0x" else hex_data
    if not _HEX_RE.fullmatch(data):
        raise AbiDecodeError(f"{label}: response is not valid hex")
    needed = words * ABI_WORD_HEX
    if len(data) < needed:
        raise AbiDecodeError(
            f"{label}: expected at least {needed // 2} bytes, got {len(data) // 2}"
        )
    return data


def decode_uint(hex_data: str, slot: int = 0) -> int:
    """Decode uint256 from ABI response at 32-byte slot offset.

    Args:
        hex_data: Hex string (without 0x prefix).
        slot: Which 32-byte word to read (0-indexed).
    """
    start = slot * ABI_WORD_HEX
    return int(hex_data[start:start + ABI_WORD_HEX], 16)


def decode_int(hex_data: str, slot: int = 0) -> int:
    """Decode int256 (two's complement) from ABI response."""
    val = decode_uint(hex_data, slot)
    if val >= SIGN_BIT:
        return val - Q256
    return val


def decode_address(hex_data: str, slot: int = 0) -> str:
    """Decode address (last 20 bytes of 32-byte slot)."""
    start = slot * ABI_WORD_HEX
    return "0x" + hex_data[start + ADDRESS_PAD_HEX:start + ABI_WORD_HEX].lower()


def decode_get_pool_and_position_info(hex_data: str) -> Tuple[PoolKey, int]:
    """
    Decode getPoolAndPositionInfo() return data.

    Layout (all static, 6 words):
      0 currency0 (address)   1 currency1 (address)   2 fee (uint24)
      3 tickSpacing (int24)   4 hooks (address)       5 info (uint256)

    Returns:
        (PoolKey, packed PositionInfo as int)
    """
    data = strip_hex(hex_data, POOL_AND_POSITION_INFO_WORDS, "getPoolAndPositionInfo")
    fee = decode_uint(data, 2)
    if fee > MAX_UINT24:
        raise AbiDecodeError(f"getPoolAndPositionInfo: fee {fee} exceeds uint24")
    tick_spacing = decode_int(data, 3)
    if not MIN_INT24 <= tick_spacing <= MAX_INT24:
        raise AbiDecodeError(
            f"getPoolAndPositionInfo: tickSpacing {tick_spacing} exceeds int24"
        )
    pool_key = PoolKey(
        currency0=decode_address(data, 0),
        currency1=decode_address(data, 1),
        fee=fee,
        tick_spacing=tick_spacing,
        hooks=decode_address(data, 4),
    )
    return pool_key, decode_uint(data, 5)


def decode_get_position_liquidity(hex_data: str) -> str:
    """Decode getPositionLiquidity() → uint128 as a decimal string."""
    data = strip_hex(hex_data, POSITION_LIQUIDITY_WORDS, "getPositionLiquidity")
    liquidity = decode_uint(data, 0)
    if liquidity > MAX_UINT128:
        raise AbiDecodeError(f"getPositionLiquidity: {liquidity} exceeds uint128")
    return str(liquidity)


# ── JSON-RPC Client ─────────────────────────────────────────────────────

# Millisecond clock at startup + counter: unique for the life of the process
_request_ids = itertools.count(int(time.time() * 1000))


def next_request_id() -> int:
    return next(_request_ids)


async def rpc_call(
    chain_id: int,
    method: str,
    params: Optional[List[Any]] = None,
    timeout: float = RPC_TIMEOUT_SECONDS,
) -> Any:
    """
    Send one JSON-RPC 2.0 request to the endpoint registered for ``chain_id``.

    Returns:
        The ``result`` member, untyped. Decoding is the caller's job.

    Raises:
        UnsupportedChainError / MisconfiguredEndpointError: before any I/O.
        TransportError: non-2xx HTTP status, connect error or timeout.
        RpcProtocolError: envelope carries ``error`` or is not JSON-RPC.
    """
    rpc_url = get_rpc_url(chain_id)
    payload = {
        "jsonrpc": "2.0",
        "id": next_request_id(),
        "method": method,
        "params": params or [],
    }
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(rpc_url, json=payload)
    except httpx.HTTPError as e:
        raise TransportError(f"RPC call failed: {type(e).__name__}: {e}") from e

    if not resp.is_success:
        raise TransportError(
            f"RPC call failed: {resp.status_code} {resp.reason_phrase}",
            status_code=resp.status_code,
            reason=resp.reason_phrase,
        )

    try:
        result = resp.json()
    except ValueError as e:
        raise RpcProtocolError("response is not valid JSON") from e
    if not isinstance(result, dict):
        raise RpcProtocolError("response is not a JSON-RPC object")

    if result.get("error") is not None:
        err = result["error"]
        if isinstance(err, dict):
            raise RpcProtocolError(str(err.get("message", err)), err.get("code"))
        raise RpcProtocolError(str(err))
    return result.get("result")


async def eth_call(chain_id: int, to: str, data: str, timeout: float = RPC_TIMEOUT_SECONDS) -> str:
    """
    Execute eth_call against the latest block.

    Args:
        chain_id: Registered chain ID (1, 8453, 130)
        to: Contract address (0x...)
        data: ABI-encoded calldata (0x + selector + params)

    Returns:
        Hex response string (0x-prefixed, as returned by the node).
    """
    return await rpc_call(
        chain_id, "eth_call", [{"to": to, "data": data}, "latest"], timeout=timeout
    )
