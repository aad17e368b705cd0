"""
PositionInfo Decoder: Uniswap V4 packed position record
========================================================

PositionManager stores one uint256 per token ID (``PositionInfo``).
Layout, least-significant bit first:

    bits   0..7    hasSubscriber   (uint8, non-zero ⇒ true)
    bits   8..31   tickLower       (int24, two's complement)
    bits  32..55   tickUpper       (int24, two's complement)
    bits  56..255  poolId          (bytes25, top 200 bits of PoolId)

Ref: https://github.com/Uniswap/v4-periphery/blob/main/src/libraries/PositionInfoLibrary.sol

Pure functions only: no network, no state.
"""

from lp_exit.models import ParsedPositionInfo

UINT256_LIMIT = 1 << 256

SUBSCRIBER_BITS = 8
TICK_BITS = 24
POOL_ID_BITS = 200

TICK_LOWER_OFFSET = 8
TICK_UPPER_OFFSET = 32
POOL_ID_OFFSET = 56

SUBSCRIBER_MASK = (1 << SUBSCRIBER_BITS) - 1
TICK_MASK = (1 << TICK_BITS) - 1
POOL_ID_MASK = (1 << POOL_ID_BITS) - 1

INT24_SIGN = 1 << (TICK_BITS - 1)  # 2^23
INT24_MIN = -INT24_SIGN
INT24_MAX = INT24_SIGN - 1

POOL_ID_HEX = POOL_ID_BITS // 4  # 50 hex characters


def to_int24(raw: int) -> int:
    """Interpret a 24-bit unsigned value as int24.

    >>> to_int24(0xFFFFF6)
    -10
    """
    if not 0 <= raw <= TICK_MASK:
        raise ValueError(f"Not a 24-bit value: {raw}")
    return raw - (1 << TICK_BITS) if raw >= INT24_SIGN else raw


def from_int24(tick: int) -> int:
    """Inverse of to_int24: int24 → 24-bit two's complement."""
    if not INT24_MIN <= tick <= INT24_MAX:
        raise ValueError(f"Tick out of int24 range: {tick}")
    return tick & TICK_MASK


def format_pool_id(pool_id: int) -> str:
    return "0x" + format(pool_id, f"0{POOL_ID_HEX}x")


def decode_position_info(packed: int) -> ParsedPositionInfo:
    """Unpack a PositionInfo uint256 into its four fields."""
    if isinstance(packed, bool) or not isinstance(packed, int):
        raise TypeError(f"PositionInfo must be an int, got {type(packed).__name__}")
    if not 0 <= packed < UINT256_LIMIT:
        raise ValueError(f"PositionInfo out of uint256 range: {packed}")

    return ParsedPositionInfo(
        has_subscriber=(packed & SUBSCRIBER_MASK) != 0,
        tick_lower=to_int24((packed >> TICK_LOWER_OFFSET) & TICK_MASK),
        tick_upper=to_int24((packed >> TICK_UPPER_OFFSET) & TICK_MASK),
        pool_id=format_pool_id((packed >> POOL_ID_OFFSET) & POOL_ID_MASK),
    )


def encode_position_info(
    has_subscriber: bool, tick_lower: int, tick_upper: int, pool_id: int
) -> int:
    """Pack fields into a PositionInfo uint256 (fixtures, round-trip checks)."""
    if not 0 <= pool_id <= POOL_ID_MASK:
        raise ValueError(f"poolId exceeds {POOL_ID_BITS} bits: {pool_id:#x}")
    return (
        (pool_id << POOL_ID_OFFSET)
        | (from_int24(tick_upper) << TICK_UPPER_OFFSET)
        | (from_int24(tick_lower) << TICK_LOWER_OFFSET)
        | (1 if has_subscriber else 0)
    )
