#!/usr/bin/env python3
"""
LP Exit: Uniswap V4 Position Inspector & Withdrawal Preview
============================================================

Reads a V4 liquidity position straight from chain and previews a
partial liquidity decrease via the Uniswap Trading API (simulation only;
nothing is signed or sent).

Usage:
  python run.py position --id <tokenId> --chain <id>                       Position snapshot
  python run.py position --id <tokenId> --chain <id> --wallet <0x…>        + 100% decrease preview
  python run.py position --id <tokenId> --chain <id> --wallet <0x…> --percentage 25
  python run.py position --id <tokenId> --chain <id> --json                Machine-readable output
  python run.py chains                                                     Supported chains & contracts
  python run.py info                                                       System overview

Sources:
  Uniswap V4 Docs      : https://docs.uniswap.org/contracts/v4/overview
  Uniswap Trading API  : https://api-docs.uniswap.org/
"""

import sys
import asyncio
import argparse

from lp_exit.central_config import PROJECT_VERSION
from lp_exit.chain_registry import get_supported_chain_ids
from lp_exit.commands import cmd_chains, cmd_info, cmd_position


def _percentage(value: str) -> int:
    try:
        pct = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"percentage must be an integer, got {value!r}")
    if not 1 <= pct <= 100:
        raise argparse.ArgumentTypeError(f"percentage must be between 1 and 100, got {pct}")
    return pct


# ── CLI Parser ────────────────────────────────────────────────────────────


def create_parser() -> argparse.ArgumentParser:
    chains = ", ".join(str(c) for c in get_supported_chain_ids())
    parser = argparse.ArgumentParser(
        prog="lp-exit",
        description=f"LP Exit v{PROJECT_VERSION}: Uniswap V4 position inspector",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py position --id 12345 --chain 8453
  python run.py position --id 12345 --chain 1 --wallet 0xYOUR_WALLET --percentage 50
  python run.py position --id 12345 --chain 130 --protocol v3
  python run.py chains

How to find your Position ID:
  app.uniswap.org → Pool → click your position
  URL: app.uniswap.org/positions/v4/<network>/<tokenId>
""",
    )
    parser.add_argument(
        "--version", action="version", version=f"LP Exit v{PROJECT_VERSION}"
    )

    sub = parser.add_subparsers(dest="command", help="Available commands")

    pos_p = sub.add_parser("position", help="Read a position and preview a decrease")
    pos_p.add_argument(
        "--id", dest="position_id", required=True, help="Position NFT tokenId (decimal)"
    )
    pos_p.add_argument(
        "--chain", dest="chain_id", type=int, default=1,
        help=f"Chain ID: {chains} (default: 1)",
    )
    pos_p.add_argument(
        "--protocol", choices=("v4", "v3"), default="v4",
        help="Protocol version (default: v4; v3 is not resolved yet)",
    )
    pos_p.add_argument(
        "--wallet", type=str, default=None,
        help="Wallet address (0x…) owning the position; enables the decrease preview",
    )
    pos_p.add_argument(
        "--percentage", type=_percentage, default=100,
        help="Liquidity percentage to decrease, 1-100 (default: 100)",
    )
    pos_p.add_argument(
        "--timeout", type=float, default=None,
        help="Abort both on-chain reads after N seconds",
    )
    pos_p.add_argument("--json", action="store_true", help="Print the snapshot as JSON")

    sub.add_parser("chains", help="Supported chains, RPC endpoints and V4 contracts")
    sub.add_parser("info", help="System & architecture info")

    return parser


# ── Main ──────────────────────────────────────────────────────────────────


def main(argv=None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    if args.command == "info":
        cmd_info()
        return 0
    if args.command == "chains":
        cmd_chains()
        return 0
    if args.command == "position":
        return asyncio.run(
            cmd_position(
                position_id=args.position_id,
                chain_id=args.chain_id,
                protocol=args.protocol,
                wallet=args.wallet,
                percentage=args.percentage,
                timeout=args.timeout,
                as_json=args.json,
            )
        )

    parser.print_help()
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n❌ Cancelled.")
        sys.exit(130)
