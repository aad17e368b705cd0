#!/usr/bin/env python3
"""
On-Chain Position Reader for Uniswap V4
========================================

Reads position data directly from the blockchain via JSON-RPC and,
optionally, previews a liquidity decrease through the Uniswap Trading API.
No web3.py dependency: uses httpx for raw eth_call.

Data Sources (per RPC call):
─────────────────────────────
1. PositionManager.getPoolAndPositionInfo(tokenId)
   Returns: PoolKey (currency0, currency1, fee, tickSpacing, hooks),
            PositionInfo (packed uint256: poolId | tickUpper | tickLower | hasSubscriber)
   Ref: https://github.com/Uniswap/v4-periphery/blob/main/src/PositionManager.sol

2. PositionManager.getPositionLiquidity(tokenId)
   Returns: uint128 liquidity

Both reads are independent and issued concurrently; either failing fails
the whole resolution (no partial snapshot).

V3 positions are recognised but not resolved yet: the snapshot comes back
with status "unsupported" and no pool / tick / liquidity data.
"""

import asyncio
from typing import Optional, Tuple

from lp_exit.chain_registry import get_v4_contract_address, resolve
from lp_exit.errors import (
    AbiDecodeError,
    PositionResolutionError,
    RpcProtocolError,
    TransportError,
)
from lp_exit.models import (
    PROTOCOL_V3,
    PROTOCOL_V4,
    STATUS_RESOLVED,
    STATUS_UNSUPPORTED,
    SUPPORTED_PROTOCOLS,
    PoolKey,
    PositionSnapshot,
)
from lp_exit.position_info import UINT256_LIMIT, decode_position_info
from lp_exit.rpc_helpers import (
    decode_get_pool_and_position_info,
    decode_get_position_liquidity,
    encode_get_pool_and_position_info,
    encode_get_position_liquidity,
    eth_call,
)
from lp_exit.trading_api_client import TradingApiClient

ZERO_ADDRESS = "0x" + "0" * 40

V3_UNSUPPORTED_MESSAGE = (
    "V3 on-chain resolution is not yet supported: "
    "no pool, tick or liquidity data available"
)


def normalize_position_id(position_id) -> str:
    """Token IDs travel as decimal strings; reject anything else early."""
    if isinstance(position_id, bool):
        raise ValueError(f"Invalid position id: {position_id!r}")
    if isinstance(position_id, int):
        token_id = position_id
    else:
        text = str(position_id).strip()
        if not text.isdigit():
            raise ValueError(f"Invalid position id: {position_id!r} (expected a decimal token id)")
        token_id = int(text)
    if not 0 <= token_id < UINT256_LIMIT:
        raise ValueError(f"position_id must fit in uint256, got {token_id}")
    return str(token_id)


# ── Position Reader ─────────────────────────────────────────────────────

class PositionReader:
    """
    Resolves V4 positions on one chain.

    Usage:
        reader = PositionReader(8453)                       # Base
        snapshot = await reader.resolve("12345")            # v4 by default
        snapshot = await reader.resolve("12345", "v3")      # status == "unsupported"
    """

    def __init__(self, chain_id: int = 1, verbose: bool = True, timeout: Optional[float] = None):
        # Fails fast (no network) on unsupported chains or placeholder endpoints
        self.endpoint = resolve(chain_id)
        self.chain_id = chain_id
        self.chain_name = self.endpoint.name
        self.verbose = verbose
        self.timeout = timeout

    def _log(self, message: str) -> None:
        if self.verbose:
            print(message)

    async def resolve(self, position_id, protocol_version: str = PROTOCOL_V4) -> PositionSnapshot:
        """
        Build a PositionSnapshot for ``position_id``.

        Raises:
            ValueError: malformed position id or unknown protocol.
            UnconfiguredContractError: no V4 PositionManager on this chain.
            PositionResolutionError: transport / RPC / decode failure or timeout.
        """
        position_id = normalize_position_id(position_id)
        if protocol_version not in SUPPORTED_PROTOCOLS:
            raise ValueError(
                f"Unsupported protocol version: {protocol_version!r}. "
                f"Available: {list(SUPPORTED_PROTOCOLS)}"
            )
        if protocol_version == PROTOCOL_V3:
            self._log(f"  ⚠️  V3 position #{position_id}: {V3_UNSUPPORTED_MESSAGE}")
            return PositionSnapshot(
                id=position_id,
                protocol=PROTOCOL_V3,
                chain_id=self.chain_id,
                status=STATUS_UNSUPPORTED,
                message=V3_UNSUPPORTED_MESSAGE,
            )

        position_manager = get_v4_contract_address(self.chain_id, "position_manager")
        token_id = int(position_id)

        self._log(f"  📖 Reading V4 position #{position_id} from {self.chain_name}...")
        try:
            (pool_key, info), liquidity = await self._read_onchain(position_manager, token_id)
        except asyncio.TimeoutError as e:
            raise PositionResolutionError(
                position_id, self.chain_id, f"timed out after {self.timeout}s"
            ) from e
        except (TransportError, RpcProtocolError, AbiDecodeError) as e:
            raise PositionResolutionError(position_id, self.chain_id, str(e)) from e

        position_info = decode_position_info(info)

        if pool_key.currency0 == ZERO_ADDRESS and pool_key.currency1 == ZERO_ADDRESS:
            self._log("  ⚠️  Empty pool key (token ID may not exist on this chain)")
        elif liquidity == "0":
            self._log("  ⚠️  Position has zero liquidity (may be closed)")
        self._log(
            f"  ✅ Position loaded: ticks [{position_info.tick_lower}, "
            f"{position_info.tick_upper}] | liquidity {liquidity}"
        )

        return PositionSnapshot(
            id=position_id,
            protocol=PROTOCOL_V4,
            chain_id=self.chain_id,
            status=STATUS_RESOLVED,
            pool_key=pool_key,
            position_info=position_info,
            liquidity=liquidity,
        )

    # ── Internal: concurrent reads ───────────────────────────────────

    async def _read_onchain(self, position_manager: str, token_id: int) -> Tuple[Tuple[PoolKey, int], str]:
        """Issue both reads back-to-back, join them, cancel the survivor on failure."""
        tasks = [
            asyncio.ensure_future(self._read_pool_and_position_info(position_manager, token_id)),
            asyncio.ensure_future(self._read_position_liquidity(position_manager, token_id)),
        ]
        try:
            return tuple(await asyncio.wait_for(asyncio.gather(*tasks), self.timeout))
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

    async def _read_pool_and_position_info(self, position_manager: str, token_id: int) -> Tuple[PoolKey, int]:
        calldata = encode_get_pool_and_position_info(token_id)
        result = await eth_call(self.chain_id, position_manager, calldata)
        return decode_get_pool_and_position_info(result)

    async def _read_position_liquidity(self, position_manager: str, token_id: int) -> str:
        calldata = encode_get_position_liquidity(token_id)
        result = await eth_call(self.chain_id, position_manager, calldata)
        return decode_get_position_liquidity(result)


async def resolve_position(
    position_id,
    chain_id: int,
    protocol_version: str = PROTOCOL_V4,
    timeout: Optional[float] = None,
    verbose: bool = True,
) -> PositionSnapshot:
    """Resolve one position without simulation."""
    reader = PositionReader(chain_id, verbose=verbose, timeout=timeout)
    return await reader.resolve(position_id, protocol_version)


# ── Orchestrator ────────────────────────────────────────────────────────

async def fetch_position_with_simulation(
    position_id,
    protocol_version: str,
    chain_id: int,
    wallet_address: Optional[str] = None,
    percentage: int = 100,
    *,
    client: Optional[TradingApiClient] = None,
    timeout: Optional[float] = None,
    verbose: bool = True,
) -> PositionSnapshot:
    """
    Resolve a position and, when possible, attach a decrease simulation.

    The simulation runs only for V4 snapshots with complete data and a
    wallet address. Its outcome (success or failure) is attached as
    ``decrease_simulation``; a failed simulation never raises here.
    Resolution errors propagate unchanged.
    """
    reader = PositionReader(chain_id, verbose=verbose, timeout=timeout)
    snapshot = await reader.resolve(position_id, protocol_version)

    if wallet_address and protocol_version == PROTOCOL_V4 and snapshot.has_simulation_data:
        reader._log(f"  🧪 Simulating {percentage}% liquidity decrease for {wallet_address[:10]}...")
        client = client or TradingApiClient()
        snapshot.decrease_simulation = await client.simulate(snapshot, wallet_address, percentage)
        if snapshot.decrease_simulation.success:
            reader._log("  ✅ Simulation ready")
        else:
            reader._log(f"  ⚠️  Simulation failed: {snapshot.decrease_simulation.error}")
    return snapshot


# ── Standalone Test ──────────────────────────────────────────────────────

if __name__ == "__main__":
    import sys
    if len(sys.argv) < 3:
        print("Usage: python position_reader.py <position_id> <chain_id> [v3|v4] [wallet]")
        print("  chain_id : 1 (Ethereum) | 8453 (Base) | 130 (Unichain)")
        sys.exit(1)
    _protocol = sys.argv[3] if len(sys.argv) > 3 else PROTOCOL_V4
    _wallet = sys.argv[4] if len(sys.argv) > 4 else None
    _snapshot = asyncio.run(
        fetch_position_with_simulation(sys.argv[1], _protocol, int(sys.argv[2]), _wallet)
    )
    print(_snapshot.to_dict())
