"""
Terminal formatting helpers for simulation output.
"""

from typing import Any, Iterable, List

from lp_sim_math import PriceRange, ProjectionPoint


def _safe_num(val: Any, decimals: int = 2, default: float = 0) -> str:
    """Format a number with fixed decimals (no thousands separator). Use for token amounts, ratios, etc."""
    try:
        return f"{float(val or default):.{decimals}f}"
    except (ValueError, TypeError):
        return f"{default:.{decimals}f}"


def _safe_usd(val: Any, decimals: int = 2, default: float = 0) -> str:
    """Format a number as USD with thousands separator (1,234.56). Use for all dollar values."""
    try:
        return f"{float(val or default):,.{decimals}f}"
    except (ValueError, TypeError):
        return f"{default:,.{decimals}f}"


def signed_usd(val: Any, decimals: int = 2) -> str:
    """+$1,234.56 / -$12.00"""
    try:
        num = float(val or 0)
    except (ValueError, TypeError):
        num = 0.0
    sign = "-" if num < 0 else "+"
    return f"{sign}${abs(num):,.{decimals}f}"


def signed_pct(val: Any, decimals: int = 2) -> str:
    try:
        return f"{float(val or 0):+.{decimals}f}%"
    except (ValueError, TypeError):
        return f"{0:+.{decimals}f}%"


def render_range_bar(price_range: PriceRange, width: int = 40) -> str:
    """
    One-line range bar:  2400.00 [--------●---------] 3600.00  In Range

    An inverted or zero-width range prints a notice instead of a bar.
    """
    if price_range.max - price_range.min <= 0:
        return "⚠️ Price range must be positive. Upper bound must be greater than lower bound."

    slot = round(price_range.range_position_pct / 100 * (width - 1))
    bar = "".join("●" if i == slot else "-" for i in range(width))
    status = "🟢 In Range" if price_range.is_in_range else "🔴 Out of Range"
    return (
        f"{_safe_num(price_range.min)} [{bar}] {_safe_num(price_range.max)}"
        f"  {status} (current {_safe_num(price_range.current, 4)})"
    )


def render_projection_table(points: Iterable[ProjectionPoint], hedged: bool = False) -> str:
    """Fixed-width table of projection points."""
    header = f"{'Day':>5}  {'Price A':>12}  {'Hold':>12}  {'LP':>12}  {'Fees':>10}"
    if hedged:
        header += f"  {'Short':>10}  {'Funding':>10}"
    header += f"  {'Total':>12}"

    lines: List[str] = [header, "-" * len(header)]
    for pt in points:
        row = (
            f"{pt.day:>5}  {_safe_usd(pt.price_a):>12}  {_safe_usd(pt.hold_value):>12}"
            f"  {_safe_usd(pt.lp_value):>12}  {_safe_usd(pt.earned_fees):>10}"
        )
        if hedged:
            row += f"  {_safe_usd(pt.short_pnl):>10}  {_safe_usd(pt.funding_pnl):>10}"
        row += f"  {_safe_usd(pt.total_value):>12}"
        lines.append(row)
    return "\n".join(lines)
