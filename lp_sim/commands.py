"""
LP Simulator — Command Implementations
======================================

All CLI command handlers live here, keeping run.py as a thin
argparse dispatcher. Each public function corresponds to a
subcommand (info, new, list, show, set, hedge, project, bounds,
suggest, remove) and returns True on success.

Positions are loaded from and saved to the JSON store on every command;
the engine itself never touches the store.
"""

from __future__ import annotations

import math
import random
from pathlib import Path

from lp_sim.central_config import PROJECT_NAME, PROJECT_VERSION, config
from lp_sim.edits import (
    DURATION_PRESETS,
    apply_duration_preset,
    apply_text_edit,
    change_short_token,
    field_texts,
    toggle_hedge,
)
from lp_sim.formatters import (
    _safe_num,
    _safe_usd,
    render_projection_table,
    render_range_bar,
    signed_pct,
    signed_usd,
)
from lp_sim.legal_disclaimers import (
    CLI_DISCLAIMER,
    ESTIMATED_PRICES_NOTICE,
    get_model_assumptions,
)
from lp_sim.repository import PositionRepository, RepositoryError
from lp_sim_math import (
    BoundConverter,
    SimulationPosition,
    evaluate_position,
    project_position,
)


# ── Store Helpers ────────────────────────────────────────────────────────


def _store_path(store: str | Path | None) -> Path:
    return Path(store) if store else config.defaults.get_store_path()


def _load(store: str | Path | None) -> PositionRepository | None:
    try:
        return PositionRepository.load(_store_path(store))
    except RepositoryError as e:
        print(f"❌ {e}")
        return None


def _save(repo: PositionRepository, store: str | Path | None) -> None:
    repo.save(_store_path(store))


def _find(repo: PositionRepository, position_id: str) -> SimulationPosition | None:
    """Exact id, or a unique id prefix."""
    exact = repo.get(position_id)
    if exact is not None:
        return exact
    matches = [p for p in repo.list() if p.id.startswith(position_id)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        print(f"❌ Id prefix {position_id!r} is ambiguous ({len(matches)} matches).")
    else:
        print(f"❌ Simulation {position_id!r} not found. Run: python run.py list")
    return None


def _pair_label(p: SimulationPosition) -> str:
    return f"{p.token_a}/{p.token_b}"


# ── Commands ─────────────────────────────────────────────────────────────


def cmd_info() -> None:
    """Display system and model information."""
    print(f"\n📊 {PROJECT_NAME} v{PROJECT_VERSION}")
    print("=" * 55)
    print("🔗 Model      : Concentrated-liquidity LP + optional perp short hedge")
    print("📐 IL         : 2·√k/(1+k) − 1 on the A/B price ratio")
    print("💸 Fees       : linear APR accrual over the horizon")
    print(f"🤖 Oracle     : {config.oracle.MODEL} (local ±5%/±1% fallback)")
    print(f"💾 Store      : {config.defaults.get_store_path()}")
    print()
    print("📁 Files:")
    print("   run.py                — CLI entry point")
    print("   lp_sim_math.py        — valuation & projection engine")
    print("   lp_sim/               — config, oracle, store, form edits, commands")
    print()
    print("📏 Assumptions:")
    for line in get_model_assumptions():
        print(f"   • {line}")
    print()
    print("🔗 Quick Start:")
    print("   python run.py new --pair ETH/USDC --investment 1000")
    print("   python run.py show <id>")
    print("   python run.py set <id> latestPriceA=2700")
    print("   python run.py hedge <id> --on")
    print("   python run.py project <id> --every 5")


def cmd_new(
    store: str | Path | None = None,
    pair: str | None = None,
    protocol: str | None = None,
    investment: float | None = None,
    price_a: float | None = None,
    price_b: float | None = None,
    apr: float | None = None,
    days: int | None = None,
    range_pct: float | None = None,
) -> SimulationPosition | None:
    """Create a simulation from the seed, applying any overrides."""
    repo = _load(store)
    if repo is None:
        return None

    position = SimulationPosition.seed()
    overrides: dict = {}

    if pair:
        if "/" not in pair:
            print("❌ Pair must look like TOKEN_A/TOKEN_B (e.g. ETH/USDC).")
            return None
        token_a, token_b = (s.strip().upper() for s in pair.split("/", 1))
        overrides.update(token_a=token_a, token_b=token_b)
    if protocol:
        overrides["protocol"] = protocol
    if apr is not None:
        overrides["apr"] = apr
    if days is not None:
        overrides["duration"] = max(0, days)

    pa = price_a if price_a is not None else position.initial_price_a
    pb = price_b if price_b is not None else position.initial_price_b
    if not (math.isfinite(pa) and math.isfinite(pb)) or pa <= 0 or pb <= 0:
        print("❌ Prices must be positive.")
        return None
    overrides.update(
        initial_price_a=pa, initial_price_b=pb, latest_price_a=pa, latest_price_b=pb
    )

    total = investment if investment is not None else position.initial_investment
    half = max(0.0, total) / 2
    overrides.update(amount_a=half / pa, amount_b=half / pb, short_amount=half)

    width = range_pct if range_pct is not None else 20.0
    bounds = BoundConverter.range_from_pct(pa / pb, width, width)
    overrides.update(lower_price_bound=bounds["lower"], upper_price_bound=bounds["upper"])

    position = repo.add(position.replace(**overrides))
    repo.set_texts(position.id, field_texts(position))
    _save(repo, store)

    print(f"✅ Created simulation {position.id} — {_pair_label(position)} "
          f"${_safe_usd(position.initial_investment)} on {position.protocol}")
    return position


def cmd_list(store: str | Path | None = None) -> bool:
    """List stored simulations with range status and net return."""
    repo = _load(store)
    if repo is None:
        return False

    print(f"\n{'=' * 65}")
    print(f"  Simulations — {_store_path(store)}")
    print(f"{'=' * 65}")

    if not len(repo):
        print("  No simulations yet.")
        print("\n  💡 Create one: python run.py new --pair ETH/USDC")
        return True

    for i, p in enumerate(repo.list(), 1):
        snap = evaluate_position(p)
        status = "🟢 In range" if snap.is_in_range else "🔴 Out of range"
        hedge = f" | 🔻 short {p.short_token}" if p.is_hedge_enabled else ""
        print(f"\n  {i}. {p.id}  {_pair_label(p)} ({p.protocol})")
        print(f"     {p.start_date} → {p.end_date} ({p.duration}d){hedge}")
        print(f"     {status} | Net {signed_usd(snap.total_net_return)} "
              f"({signed_pct(snap.total_net_return_pct)})")

    print(f"\n{'=' * 65}")
    print(f"  Total: {len(repo)} simulation(s)")
    return True


def cmd_show(store: str | Path | None, position_id: str) -> bool:
    """Print the full valuation snapshot of one simulation."""
    repo = _load(store)
    if repo is None:
        return False
    p = _find(repo, position_id)
    if p is None:
        return False

    snap = evaluate_position(p)

    print(f"\n📊 {_pair_label(p)} — {p.protocol}  [{p.id}]")
    print("=" * 60)
    print(f"  📅 Period     : {p.start_date} → {p.end_date} ({p.duration} days)")
    print(f"  💰 Deposit    : {_safe_num(p.amount_a, 6)} {p.token_a} @ ${_safe_usd(p.initial_price_a)}"
          f" + {_safe_num(p.amount_b, 4)} {p.token_b} @ ${_safe_usd(p.initial_price_b, 4)}")
    print(f"  💵 Investment : ${_safe_usd(snap.initial_investment)}")
    print(f"  📈 Latest     : {p.token_a} ${_safe_usd(p.latest_price_a)} | "
          f"{p.token_b} ${_safe_usd(p.latest_price_b, 4)}")
    print(f"  🎯 Range      : {render_range_bar(snap.price_range)}")
    print()
    print("  ── Liquidity position ──")
    print(f"  HODL value      : ${_safe_usd(snap.hold_value)}")
    print(f"  LP value        : ${_safe_usd(snap.final_lp_value)}")
    print(f"  Impermanent loss: {signed_usd(snap.impermanent_loss)} "
          f"({signed_pct(snap.impermanent_loss_pct)})")
    print(f"  Fees ({_safe_num(p.apr)}% APR): {signed_usd(snap.earned_fees)}")
    print(f"  LP net return   : {signed_usd(snap.lp_net_return)} "
          f"({signed_pct(snap.lp_net_return_pct)})")

    if p.is_hedge_enabled:
        short_leg = p.token_a if p.short_token == "A" else p.token_b
        print()
        print(f"  ── Hedge: short {short_leg} ${_safe_usd(p.short_amount)} ──")
        print(f"  Short P&L       : {signed_usd(snap.short_pnl)}")
        print(f"  Funding ({_safe_num(p.funding_rate, 4)}%/day): {signed_usd(snap.funding_pnl)}")

    print()
    print(f"  🧮 Total net return : {signed_usd(snap.total_net_return)} "
          f"({signed_pct(snap.total_net_return_pct)})")
    print(f"  🏁 Final value      : ${_safe_usd(snap.final_total_value)}")
    print(CLI_DISCLAIMER)
    return True


def cmd_set(
    store: str | Path | None,
    position_id: str,
    assignments: list[str],
    preset: str | None = None,
) -> bool:
    """Apply ``field=value`` edits (form semantics) and/or a duration preset."""
    repo = _load(store)
    if repo is None:
        return False
    p = _find(repo, position_id)
    if p is None:
        return False

    texts = repo.texts(p.id)
    for item in assignments:
        key, sep, value = item.partition("=")
        if not sep:
            print(f"❌ Expected field=value, got {item!r}")
            return False
        try:
            updated, texts = apply_text_edit(p, texts, key.strip(), value.strip())
        except KeyError:
            print(f"❌ Unknown field {key.strip()!r}. Fields: {', '.join(field_texts(p))}")
            return False
        if updated == p:
            print(f"  ⚠️  {key.strip()} = {value.strip()!r} did not change the simulation")
        p = updated

    if preset:
        if preset.upper() not in DURATION_PRESETS:
            print(f"❌ Unknown preset {preset!r}. Presets: {', '.join(DURATION_PRESETS)}")
            return False
        p = apply_duration_preset(p, preset)
        texts = dict(texts or {})
        texts["duration"] = str(p.duration)

    repo.put(p)
    repo.set_texts(p.id, texts or field_texts(p))
    _save(repo, store)
    print(f"✅ Updated {p.id}")
    return True


def cmd_hedge(
    store: str | Path | None,
    position_id: str,
    enabled: bool | None = None,
    token: str | None = None,
) -> bool:
    """Toggle the hedge and/or switch the shorted leg."""
    repo = _load(store)
    if repo is None:
        return False
    p = _find(repo, position_id)
    if p is None:
        return False

    if token:
        try:
            p = change_short_token(p, token)
        except ValueError as e:
            print(f"❌ {e}")
            return False
    if enabled is not None:
        p = toggle_hedge(p, enabled)

    repo.put(p)
    texts = repo.texts(p.id) or field_texts(p)
    texts["shortAmount"] = f"{p.short_amount:.2f}"
    repo.set_texts(p.id, texts)
    _save(repo, store)

    state = "ON" if p.is_hedge_enabled else "OFF"
    print(f"✅ Hedge {state} — short {p.short_token} ${_safe_usd(p.short_amount)}")
    return True


def cmd_project(
    store: str | Path | None, position_id: str, every: int | None = None
) -> bool:
    """Print the day-by-day projection."""
    repo = _load(store)
    if repo is None:
        return False
    p = _find(repo, position_id)
    if p is None:
        return False

    points = project_position(p, every=every)
    print(f"\n📈 Projection — {_pair_label(p)} over {p.duration} days  [{p.id}]")
    if not points:
        print("  No projection: duration must be > 0 and both token amounts set.")
        return True
    print(render_projection_table(points, hedged=p.is_hedge_enabled))
    return True


def cmd_bounds(
    store: str | Path | None,
    position_id: str,
    pct_lower: float | None = None,
    pct_upper: float | None = None,
) -> bool:
    """Show (and optionally set, by percentage) the range bounds."""
    repo = _load(store)
    if repo is None:
        return False
    p = _find(repo, position_id)
    if p is None:
        return False

    texts = repo.texts(p.id)
    if pct_lower is not None:
        p, texts = apply_text_edit(p, texts, "pctLower", str(pct_lower))
    if pct_upper is not None:
        p, texts = apply_text_edit(p, texts, "pctUpper", str(pct_upper))
    if pct_lower is not None or pct_upper is not None:
        repo.put(p)
        repo.set_texts(p.id, texts)
        _save(repo, store)

    ratio = BoundConverter.reference_ratio(p)
    pcts = BoundConverter.percentages(p)
    print(f"\n🎯 Range — {_pair_label(p)} (entry ratio {_safe_num(ratio, 4)})")
    print(f"  Lower : {_safe_num(p.lower_price_bound, 4):>14}  (-{BoundConverter.format_pct(pcts['pct_lower'])}%)")
    print(f"  Upper : {_safe_num(p.upper_price_bound, 4):>14}  (+{BoundConverter.format_pct(pcts['pct_upper'])}%)")
    if ratio <= 0:
        print("  ⚠️  Entry ratio undefined (initial price B ≤ 0); percentages shown as 0.00")
    return True


async def cmd_suggest(
    store: str | Path | None, position_id: str, seed: int | None = None
) -> bool:
    """Ask the oracle for new latest prices (falls back to local estimates)."""
    from lp_sim.price_oracle import apply_suggested_prices, suggest_prices

    repo = _load(store)
    if repo is None:
        return False
    p = _find(repo, position_id)
    if p is None:
        return False

    rng = random.Random(seed) if seed is not None else None
    print(f"⏳ Fetching suggested prices for {_pair_label(p)}…")
    prices = await suggest_prices(p, rng=rng)

    updated = apply_suggested_prices(p, prices)
    repo.put(updated)
    texts = repo.texts(p.id) or field_texts(p)
    texts["latestPriceA"] = str(prices["priceA"])
    texts["latestPriceB"] = str(prices["priceB"])
    repo.set_texts(p.id, texts)
    _save(repo, store)

    print(f"✅ {p.token_a} ${_safe_usd(p.latest_price_a)} → ${_safe_usd(updated.latest_price_a)} | "
          f"{p.token_b} ${_safe_usd(p.latest_price_b, 4)} → ${_safe_usd(updated.latest_price_b, 4)}")
    if prices["source"] == "fallback":
        print(ESTIMATED_PRICES_NOTICE)
    return True


def cmd_remove(store: str | Path | None, position_id: str) -> bool:
    """Delete a simulation and its saved form values."""
    repo = _load(store)
    if repo is None:
        return False
    p = _find(repo, position_id)
    if p is None:
        return False
    repo.remove(p.id)
    _save(repo, store)
    print(f"🗑️  Removed {p.id} ({_pair_label(p)})")
    return True
