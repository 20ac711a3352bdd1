#!/usr/bin/env python3
"""
LP Hedge Simulator -- Concentrated Liquidity + Short Hedge
==========================================================

Models the outcome of an LP position over a fixed horizon, with an
optional perpetual short as a hedge.

Usage:
  python run.py new     --pair ETH/USDC --investment 1000        Create a simulation
  python run.py list                                             List simulations
  python run.py show    <id>                                     Valuation snapshot
  python run.py set     <id> latestPriceA=2700 apr=30            Edit fields
  python run.py set     <id> --preset 1W                         Duration preset
  python run.py hedge   <id> --on --token A                      Enable the short hedge
  python run.py project <id> --every 5                           Daily projection
  python run.py bounds  <id> --lower-pct 10 --upper-pct 15       Range in % of entry ratio
  python run.py suggest <id>                                     New prices (oracle/fallback)
  python run.py remove  <id>                                     Delete a simulation
  python run.py info                                             Model overview

Sources:
  Impermanent loss (Pintail) : https://pintail.medium.com/uniswap-a-good-deal-for-liquidity-providers-104c0b6816f2
  Uniswap V3 Docs            : https://docs.uniswap.org/
"""

import sys
import asyncio
import argparse
from pathlib import Path

# ── Imports ───────────────────────────────────────────────────────────────

project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from lp_sim.central_config import PROJECT_VERSION  # noqa: E402
from lp_sim.commands import (  # noqa: E402
    cmd_bounds,
    cmd_hedge,
    cmd_info,
    cmd_list,
    cmd_new,
    cmd_project,
    cmd_remove,
    cmd_set,
    cmd_show,
    cmd_suggest,
)


# ── CLI Parser ────────────────────────────────────────────────────────────


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lp-sim",
        description=f"LP Hedge Simulator v{PROJECT_VERSION} — LP + short hedge projections",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py new --pair ETH/USDC --investment 5000 --range-pct 15
  python run.py set 1718000000000 latestPriceA=2700 latestPriceB=1
  python run.py set 1718000000000 pctLower=10 pctUpper=25
  python run.py hedge 1718000000000 --on --token A
  python run.py suggest 1718000000000 --seed 42

Editable fields (set):
  protocol tokenA tokenB initialPriceA initialPriceB amountA valueA amountB
  valueB apr duration lowerPriceBound upperPriceBound pctLower pctUpper
  startDate latestPriceA latestPriceB shortAmount fundingRate

Oracle:
  Set GEMINI_API_KEY (or API_KEY) to let the model suggest prices.
  Without a key, prices move by a local random ±5% (A) / ±1% (B).
""",
    )
    parser.add_argument(
        "--version", action="version", version=f"LP Hedge Simulator v{PROJECT_VERSION}"
    )
    parser.add_argument(
        "--store",
        type=str,
        default=None,
        help="JSON store file (default: $LP_SIM_STORE or ./lp_simulations.json)",
    )

    sub = parser.add_subparsers(dest="command", help="Available commands")

    new_p = sub.add_parser("new", help="Create a simulation from the default seed")
    new_p.add_argument("--pair", type=str, default=None, help="Token pair, e.g. ETH/USDC")
    new_p.add_argument("--protocol", type=str, default=None, help="Display name (default: Uniswap V3)")
    new_p.add_argument("--investment", type=float, default=None, help="USD split 50/50 (default: 1000)")
    new_p.add_argument("--price-a", type=float, default=None, help="Entry price of token A (default: 3000)")
    new_p.add_argument("--price-b", type=float, default=None, help="Entry price of token B (default: 1)")
    new_p.add_argument("--apr", type=float, default=None, help="Fee APR in %% (default: 25)")
    new_p.add_argument("--days", type=int, default=None, help="Horizon in days (default: 30)")
    new_p.add_argument(
        "--range-pct", type=float, default=None, help="Symmetric range ±%% around entry ratio (default: 20)"
    )

    sub.add_parser("list", help="List simulations")

    show_p = sub.add_parser("show", help="Valuation snapshot")
    show_p.add_argument("id", help="Simulation id (or unique prefix)")

    set_p = sub.add_parser("set", help="Edit fields: field=value …")
    set_p.add_argument("id", help="Simulation id (or unique prefix)")
    set_p.add_argument("assignments", nargs="*", help="field=value pairs")
    set_p.add_argument("--preset", type=str, default=None, help="Duration preset: 1D, 1W, 1M, 1Y")

    hedge_p = sub.add_parser("hedge", help="Configure the short hedge")
    hedge_p.add_argument("id", help="Simulation id (or unique prefix)")
    toggle = hedge_p.add_mutually_exclusive_group()
    toggle.add_argument("--on", dest="enabled", action="store_true", default=None)
    toggle.add_argument("--off", dest="enabled", action="store_false", default=None)
    hedge_p.add_argument("--token", type=str, default=None, help="Leg to short: A or B")

    project_p = sub.add_parser("project", help="Day-by-day projection")
    project_p.add_argument("id", help="Simulation id (or unique prefix)")
    project_p.add_argument("--every", type=int, default=None, help="Show one row per N days")

    bounds_p = sub.add_parser("bounds", help="Range bounds as absolute ratio and %%")
    bounds_p.add_argument("id", help="Simulation id (or unique prefix)")
    bounds_p.add_argument("--lower-pct", type=float, default=None, help="Lower bound, %% below entry ratio")
    bounds_p.add_argument("--upper-pct", type=float, default=None, help="Upper bound, %% above entry ratio")

    suggest_p = sub.add_parser("suggest", help="Suggest new latest prices")
    suggest_p.add_argument("id", help="Simulation id (or unique prefix)")
    suggest_p.add_argument(
        "--seed", type=int, default=None, help="Seed for the local fallback randomizer"
    )

    remove_p = sub.add_parser("remove", help="Delete a simulation")
    remove_p.add_argument("id", help="Simulation id (or unique prefix)")

    sub.add_parser("info", help="Model & system info")

    return parser


# ── Main ──────────────────────────────────────────────────────────────────


def main(argv=None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    store = args.store

    if args.command == "info":
        cmd_info()
        return 0

    if args.command == "new":
        pos = cmd_new(
            store,
            pair=args.pair,
            protocol=args.protocol,
            investment=args.investment,
            price_a=args.price_a,
            price_b=args.price_b,
            apr=args.apr,
            days=args.days,
            range_pct=args.range_pct,
        )
        return 0 if pos else 1

    if args.command == "list":
        ok = cmd_list(store)
    elif args.command == "show":
        ok = cmd_show(store, args.id)
    elif args.command == "set":
        ok = cmd_set(store, args.id, args.assignments, preset=args.preset)
    elif args.command == "hedge":
        ok = cmd_hedge(store, args.id, enabled=args.enabled, token=args.token)
    elif args.command == "project":
        ok = cmd_project(store, args.id, every=args.every)
    elif args.command == "bounds":
        ok = cmd_bounds(store, args.id, pct_lower=args.lower_pct, pct_upper=args.upper_pct)
    elif args.command == "suggest":
        ok = asyncio.run(cmd_suggest(store, args.id, seed=args.seed))
    elif args.command == "remove":
        ok = cmd_remove(store, args.id)
    else:
        parser.print_help()
        return 0

    return 0 if ok else 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n❌ Cancelled.")
        sys.exit(130)
