#!/usr/bin/env python3
"""
Chain Registry: Uniswap V4 Endpoint & Contract Configuration
==============================================================

Maps each supported chain ID to its JSON-RPC endpoint and the Uniswap V4
PositionManager / PoolManager contract addresses.

The registry is built ONCE at import time from the environment and is
read-only afterwards (MappingProxyType), so it is safe for any number of
concurrent readers.

RPC endpoints (override via environment):
  1     Ethereum : MAINNET_RPC_URL   (default: https://1rpc.io/eth)
  8453  Base     : BASE_RPC_URL      (default: https://1rpc.io/base)
  130   Unichain : UNICHAIN_RPC_URL  (default: https://mainnet.unichain.org)

Contract Address Sources:
  Uniswap V4 : https://docs.uniswap.org/contracts/v4/deployments
"""

import os
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from lp_exit.central_config import PLACEHOLDER_MARKER
from lp_exit.errors import (
    MisconfiguredEndpointError,
    UnconfiguredContractError,
    UnsupportedChainError,
)

# ── Static chain table ──────────────────────────────────────────────────
#
# Structure:
#   _CHAINS[chain_id] = {
#       "name": str,               # Display name
#       "rpc_env": str,            # Environment variable overriding the RPC URL
#       "default_rpc": str,        # Public endpoint used when the env var is unset
#       "position_manager": "0x...",
#       "pool_manager": "0x...",
#   }

_CHAINS: Dict[int, dict] = {
    # ── Ethereum Mainnet ───────────────────────────────────────────
    1: {
        "name": "Ethereum",
        "rpc_env": "MAINNET_RPC_URL",
        "default_rpc": "https://1rpc.io/eth",
        "position_manager": "0xbd216513d74c8cf14cf4747e6aaa6420ff64ee9e",
        "pool_manager": "0x000000000004444c5dc75cb358380d2e3de08a90",
    },
    # ── Base ───────────────────────────────────────────────────────
    8453: {
        "name": "Base",
        "rpc_env": "BASE_RPC_URL",
        "default_rpc": "https://1rpc.io/base",
        "position_manager": "0x7c5f5a4bbd8fd63184577525326123b519429bdc",
        "pool_manager": "0x498581ff718922c3f8e6a244956af099b2652b2b",
    },
    # ── Unichain ───────────────────────────────────────────────────
    130: {
        "name": "Unichain",
        "rpc_env": "UNICHAIN_RPC_URL",
        "default_rpc": "https://mainnet.unichain.org",
        "position_manager": "0x4529a01c7a0410167c5740c487a8de60232617bf",
        "pool_manager": "0x1f98400000000000000000000000000000000004",
    },
}

CONTRACT_TYPES = ("position_manager", "pool_manager")


@dataclass(frozen=True)
class ChainEndpoint:
    chain_id: int
    name: str
    rpc_url: str
    position_manager: str
    pool_manager: str


def build_registry(environ: Optional[Mapping[str, str]] = None) -> Mapping[int, dict]:
    """Freeze the chain table with RPC URLs resolved from ``environ``.

    An env var that is set (even to an empty string) wins over the public
    default, so an explicitly blanked endpoint is reported as misconfigured
    instead of silently falling back.
    """
    env = os.environ if environ is None else environ
    registry = {}
    for chain_id, chain in _CHAINS.items():
        entry = dict(chain)
        entry["rpc_url"] = env.get(chain["rpc_env"], chain["default_rpc"]).strip()
        registry[chain_id] = MappingProxyType(entry)
    return MappingProxyType(registry)


CHAIN_REGISTRY = build_registry()


# ── Helper Functions ────────────────────────────────────────────────────


def get_supported_chain_ids() -> List[int]:
    return list(CHAIN_REGISTRY.keys())


def get_chain_name(chain_id: int) -> str:
    chain = CHAIN_REGISTRY.get(chain_id)
    return chain["name"] if chain else f"chain {chain_id}"


def _get_chain(chain_id: int) -> Mapping:
    chain = CHAIN_REGISTRY.get(chain_id)
    if chain is None:
        raise UnsupportedChainError(chain_id, CHAIN_REGISTRY.keys())
    return chain


def get_rpc_url(chain_id: int) -> str:
    """Get the JSON-RPC endpoint for a chain.

    Raises:
        UnsupportedChainError: chain_id is not in the registry.
        MisconfiguredEndpointError: endpoint empty or still a placeholder.
    """
    url = _get_chain(chain_id)["rpc_url"]
    if not url:
        raise MisconfiguredEndpointError(chain_id, "endpoint is empty")
    if PLACEHOLDER_MARKER in url:
        raise MisconfiguredEndpointError(
            chain_id, f"placeholder value '{url}' was never replaced"
        )
    return url


def get_v4_contract_address(chain_id: int, contract_type: str) -> str:
    """Get a V4 contract address (``position_manager`` or ``pool_manager``)."""
    if contract_type not in CONTRACT_TYPES:
        raise ValueError(
            f"Unknown contract type: {contract_type}. Available: {list(CONTRACT_TYPES)}"
        )
    address = _get_chain(chain_id).get(contract_type) or ""
    if not address or address == "0x":
        raise UnconfiguredContractError(chain_id, contract_type)
    return address


def resolve(chain_id: int) -> ChainEndpoint:
    """Resolve everything the pipeline needs to talk to ``chain_id``.

    Note: the position-manager address is NOT validated here; the
    resolver checks it separately so a missing contract surfaces as
    UnconfiguredContractError rather than a generic config failure.
    """
    chain = _get_chain(chain_id)
    return ChainEndpoint(
        chain_id=chain_id,
        name=chain["name"],
        rpc_url=get_rpc_url(chain_id),
        position_manager=chain.get("position_manager") or "",
        pool_manager=chain.get("pool_manager") or "",
    )


def mask_rpc_url(url: str) -> str:
    """Hide API keys embedded in RPC URLs (e.g. .../v2/<key>) for display."""
    if not url:
        return "(not set)"
    scheme, sep, rest = url.partition("://")
    host, _, path = rest.partition("/")
    if not sep:
        return "***"
    return f"{scheme}://{host}/***" if path else f"{scheme}://{host}"
