"""
LP Exit: Command Implementations
=================================

All CLI command handlers live here, keeping run.py as a thin
argparse dispatcher.  Each public function corresponds to a
subcommand (position, chains, info).

Output contract for ``position``:
  • resolution / configuration failure  → "❌ Position data unavailable: <reason>", exit 1
  • simulation failure                  → position shown +
    "⚠️ Position data shown, but liquidity-removal preview unavailable: <reason>", exit 0
"""

from __future__ import annotations

import json
import re

from lp_exit.central_config import PROJECT_NAME, PROJECT_VERSION, config
from lp_exit.chain_registry import CHAIN_REGISTRY, mask_rpc_url
from lp_exit.errors import LpExitError
from lp_exit.legal_disclaimers import CLI_DISCLAIMER, TRANSACTION_WARNING
from lp_exit.models import PositionSnapshot, SimulationResult

WALLET_RE = re.compile(r"0x[0-9a-fA-F]{40}")


def is_valid_wallet(address: str | None) -> bool:
    return bool(address) and WALLET_RE.fullmatch(address) is not None


# ── Rendering ────────────────────────────────────────────────────────────


def _fee_label(fee: int) -> str:
    # V4 fee is in hundredths of a bip: 3000 → 0.30%
    return f"{fee / 10_000:.2f}%"


def _print_simulation(sim: SimulationResult) -> None:
    if not sim.success:
        print(
            "\n⚠️  Position data shown, but liquidity-removal preview unavailable: "
            f"{sim.error}"
        )
        return

    print("\n🧪 Decrease Simulation")
    print("-" * 55)
    print(f"  Request ID     : {sim.request_id or '-'}")
    print(f"  Pool liquidity : {sim.pool_liquidity}")
    print(f"  Current tick   : {sim.current_tick}")
    print(f"  sqrtRatioX96   : {sim.sqrt_ratio_x96}")
    print(f"  Gas fee        : {sim.gas_fee}")
    if sim.decrease:
        tx = sim.decrease
        print("\n  📝 Transaction")
        print(f"     to        : {tx.to}")
        print(f"     from      : {tx.from_address}")
        print(f"     value     : {tx.value}")
        print(f"     gasLimit  : {tx.gas_limit}")
        print(f"     gasPrice  : {tx.gas_price}")
        print(f"     chainId   : {tx.chain_id}")
        print(f"     data      : {tx.data[:66]}{'…' if len(tx.data) > 66 else ''}")
        print(TRANSACTION_WARNING)


def render_snapshot(snapshot: PositionSnapshot, chain_name: str) -> None:
    """Print a snapshot, including partial (v3 / no simulation) data."""
    print(f"\n{'=' * 55}")
    print(f"  Position #{snapshot.id} ({snapshot.protocol.upper()}) on {chain_name}")
    print(f"{'=' * 55}")

    if not snapshot.is_resolved:
        print(f"  ⚪ Status     : {snapshot.status}")
        print(f"  ℹ️  {snapshot.message}")
        return

    pk = snapshot.pool_key
    info = snapshot.position_info
    print(f"  Token0       : {pk.currency0}")
    print(f"  Token1       : {pk.currency1}")
    print(f"  Fee Tier     : {_fee_label(pk.fee)} ({pk.fee})")
    print(f"  Tick Spacing : {pk.tick_spacing}")
    print(f"  Hooks        : {pk.hooks}")
    print(f"  Pool ID      : {info.pool_id}")
    print(f"  Tick Range   : [{info.tick_lower}, {info.tick_upper}]")
    print(f"  Subscriber   : {'yes' if info.has_subscriber else 'no'}")
    print(f"  Liquidity    : {snapshot.liquidity}")

    if snapshot.decrease_simulation is not None:
        _print_simulation(snapshot.decrease_simulation)


# ── Commands ─────────────────────────────────────────────────────────────


def cmd_info() -> None:
    """Display system and architecture information."""
    print(f"\n📊 {PROJECT_NAME} v{PROJECT_VERSION}")
    print("=" * 55)
    print("🔗 Protocol   : Uniswap V4 PositionManager (V3 recognised, not resolved)")
    print("🌐 Chains     : " + ", ".join(
        f"{c['name']} ({cid})" for cid, c in CHAIN_REGISTRY.items()
    ))
    print(f"🧪 Simulation : {config.trading_api.get_decrease_url()}")
    print()
    print("📁 Files:")
    print("   run.py                   CLI entry point")
    print("   position_reader.py       V4 resolver + simulation orchestrator")
    print("   lp_exit/rpc_helpers.py   ABI codec + JSON-RPC client")
    print("   lp_exit/position_info.py PositionInfo bit decoder")
    print()
    print("🔗 Quick Start:")
    print("   python run.py position --id 12345 --chain 8453")
    print("   python run.py position --id 12345 --chain 1 --wallet 0x… --percentage 50")
    print("   python run.py chains")
    print()
    print(CLI_DISCLAIMER)


def cmd_chains() -> None:
    """List supported chains, their (masked) RPC endpoints and V4 contracts."""
    print(f"\n🌐 Supported chains: {PROJECT_NAME} v{PROJECT_VERSION}")
    print("=" * 65)
    for chain_id, chain in CHAIN_REGISTRY.items():
        print(f"\n  {chain['name']} (chain ID {chain_id})")
        print(f"    RPC              : {mask_rpc_url(chain['rpc_url'])}")
        print(f"    PositionManager  : {chain.get('position_manager') or '(not configured)'}")
        print(f"    PoolManager      : {chain.get('pool_manager') or '(not configured)'}")


async def cmd_position(
    position_id: str,
    chain_id: int,
    protocol: str = "v4",
    wallet: str | None = None,
    percentage: int = 100,
    timeout: float | None = None,
    as_json: bool = False,
) -> int:
    """Resolve a position (and optionally preview a decrease). Returns exit code."""
    from position_reader import fetch_position_with_simulation
    from lp_exit.chain_registry import get_chain_name

    if wallet and not is_valid_wallet(wallet):
        print("❌ Invalid wallet address. Must be 42 hex characters starting with 0x.")
        return 1

    try:
        snapshot = await fetch_position_with_simulation(
            position_id,
            protocol,
            chain_id,
            wallet_address=wallet,
            percentage=percentage,
            timeout=timeout,
            verbose=not as_json,
        )
    except (LpExitError, ValueError) as e:
        if as_json:
            print(json.dumps({"status": "error", "error": str(e)}, indent=2))
        else:
            print(f"\n❌ Position data unavailable: {e}")
        return 1

    if as_json:
        print(json.dumps(snapshot.to_dict(), indent=2))
    else:
        render_snapshot(snapshot, get_chain_name(chain_id))
        if wallet is None and snapshot.is_resolved:
            print("\n  💡 Add --wallet 0x… to preview a liquidity decrease.")
    return 0
