#!/usr/bin/env python3
"""
LP Simulation Math Engine
=========================

Valuation and projection math for a simulated concentrated-liquidity
position, optionally hedged with a perpetual short.

FORMULA SOURCES:
──────────────────────────────────────────────
1. Impermanent Loss — Original AMM Math
   https://pintail.medium.com/uniswap-a-good-deal-for-liquidity-providers-104c0b6816f2
   IL = 2·√(k) / (1 + k) − 1,  where k = ratio_latest / ratio_initial

2. Uniswap V3 Docs — Concentrated Liquidity Concepts
   https://docs.uniswap.org/concepts/protocol/concentrated-liquidity
   Range bounds are expressed on the price ratio token A / token B.

3. Linear fee accrual (no compounding):
   fees = investment × APR × days / 365

4. Perpetual short P&L (linear payoff) and daily funding:
   short_pnl   = notional × (1 − P_latest / P_entry)
   funding_pnl = −notional × rate_per_day × days

Every function here is total: degenerate inputs (zero prices, inverted
ranges, zero duration) resolve to a documented fallback number, never an
exception. The IL figure is the ratio-only approximation; it does not clamp
once the price leaves the configured range.
"""

import math
import time
from dataclasses import asdict, dataclass, field, replace
from datetime import date, timedelta
from typing import Any, Dict, Iterator, List, Optional

# ── Named Constants ──────────────────────────────────────────────────────
DAYS_PER_YEAR = 365
SHORT_TOKENS = ("A", "B")

# Seed position (ETH/USDC, $1000 split 50/50, ±20% range, 30 days)
SEED_INVESTMENT_USD = 1000.0
SEED_PRICE_A = 3000.0
SEED_PRICE_B = 1.0


# ── Guarded Numeric Helpers ──────────────────────────────────────────────


def safe_div(num: float, den: float, fallback: float = 0.0) -> float:
    """Division that returns ``fallback`` instead of raising or yielding inf/NaN."""
    if not den:
        return fallback
    result = num / den
    return result if math.isfinite(result) else fallback


def safe_sqrt(x: float, fallback: float = 0.0) -> float:
    """Square root with ``fallback`` for negative or non-finite input."""
    if not math.isfinite(x) or x < 0:
        return fallback
    return math.sqrt(x)


def price_ratio(price_a: float, price_b: float) -> float:
    """Price ratio A/B — 0 when B is not positive (ratio undefined)."""
    return price_a / price_b if price_b > 0 else 0.0


def il_factor(k: float) -> float:
    """
    Constant-product impermanent-loss factor.

    Formula (Pintail, 2019):
        IL(k) = 2·√k / (1 + k) − 1

    0 at k = 1, negative otherwise, and IL(k) == IL(1/k).
    Returns 0 for k ≤ 0.
    """
    if k <= 0 or not math.isfinite(k):
        return 0.0
    return 2 * safe_sqrt(k) / (1 + k) - 1


def pct_of(part: float, whole: float) -> float:
    """part as a percentage of whole, 0 when whole is not positive."""
    return safe_div(part, whole) * 100 if whole > 0 else 0.0


# ── Position Data ────────────────────────────────────────────────────────


def _new_position_id() -> str:
    # Creation-time token (milliseconds since epoch)
    return str(int(time.time() * 1000))


@dataclass(frozen=True)
class SimulationPosition:
    """
    One simulated LP strategy: parameters plus the market snapshot.

    Fields:
      - token_a / token_b               → pair symbols, prices quoted in USD
      - initial_price_a/b, amount_a/b   → deposit at ``start_date``
      - latest_price_a/b                → "ending" prices for the scenario
      - apr (% per year), duration (days)
      - lower/upper_price_bound         → range on the ratio price_a/price_b
      - is_hedge_enabled, short_token, short_amount (USD notional),
        funding_rate (% per day, positive = cost to the short)

    Instances are immutable; every edit goes through ``replace``.
    """

    id: str = field(default_factory=_new_position_id)
    protocol: str = "Uniswap V3"
    token_a: str = "ETH"
    token_b: str = "USDC"

    initial_price_a: float = SEED_PRICE_A
    initial_price_b: float = SEED_PRICE_B
    amount_a: float = 0.0
    amount_b: float = 0.0

    latest_price_a: float = SEED_PRICE_A
    latest_price_b: float = SEED_PRICE_B

    apr: float = 25.0
    duration: int = 30

    lower_price_bound: float = 2400.0
    upper_price_bound: float = 3600.0

    is_hedge_enabled: bool = False
    short_token: str = "A"
    short_amount: float = 0.0
    funding_rate: float = 0.01

    start_date: date = field(default_factory=date.today)

    @classmethod
    def seed(cls, **overrides: Any) -> "SimulationPosition":
        """
        Factory: default position for a new simulation.

        $1000 split 50/50 between ETH @ 3000 and USDC @ 1, range ±20% around
        the entry ratio, 25% APR over 30 days. The hedge is off but sized to
        half the investment so toggling it on gives a sensible default.
        """
        half = SEED_INVESTMENT_USD / 2
        base = cls(
            amount_a=half / SEED_PRICE_A,
            amount_b=half / SEED_PRICE_B,
            short_amount=half,
        )
        return base.replace(**overrides) if overrides else base

    def replace(self, **changes: Any) -> "SimulationPosition":
        """Return a new position with ``changes`` applied."""
        return replace(self, **changes)

    # ── Derived values ──

    @property
    def end_date(self) -> date:
        """``start_date + duration`` days, clamped to ``date.max``."""
        try:
            return self.start_date + timedelta(days=int(self.duration))
        except OverflowError:
            return date.max

    @property
    def value_a(self) -> float:
        return (self.amount_a or 0) * self.initial_price_a

    @property
    def value_b(self) -> float:
        return (self.amount_b or 0) * self.initial_price_b

    @property
    def initial_investment(self) -> float:
        return self.value_a + self.value_b

    @property
    def initial_ratio(self) -> float:
        return price_ratio(self.initial_price_a, self.initial_price_b)

    @property
    def latest_ratio(self) -> float:
        return price_ratio(self.latest_price_a, self.latest_price_b)

    # ── Records ──

    def to_record(self) -> Dict[str, Any]:
        """Plain dict using the persisted camelCase keys."""
        return {
            "id": self.id,
            "protocol": self.protocol,
            "tokenA": self.token_a,
            "tokenB": self.token_b,
            "amountA": self.amount_a,
            "amountB": self.amount_b,
            "apr": self.apr,
            "duration": self.duration,
            "lowerPriceBound": self.lower_price_bound,
            "upperPriceBound": self.upper_price_bound,
            "startDate": self.start_date.isoformat(),
            "initialPriceA": self.initial_price_a,
            "initialPriceB": self.initial_price_b,
            "latestPriceA": self.latest_price_a,
            "latestPriceB": self.latest_price_b,
            "isHedgeEnabled": self.is_hedge_enabled,
            "shortAmount": self.short_amount,
            "fundingRate": self.funding_rate,
            "shortToken": self.short_token,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "SimulationPosition":
        """
        Factory: build a position from a persisted record.

        Older records carried only ``initialInvestment``; those are split
        50/50 across both legs at the initial prices.
        """
        price_a = float(record.get("initialPriceA", SEED_PRICE_A))
        price_b = float(record.get("initialPriceB", SEED_PRICE_B))
        amount_a = record.get("amountA")
        amount_b = record.get("amountB")

        legacy_investment = record.get("initialInvestment")
        if amount_a is None and amount_b is None and legacy_investment:
            half = float(legacy_investment) / 2
            amount_a = safe_div(half, price_a)
            amount_b = safe_div(half, price_b)

        try:
            start = date.fromisoformat(record.get("startDate", ""))
        except (TypeError, ValueError):
            start = date.today()

        short_token = record.get("shortToken", "A")
        if short_token not in SHORT_TOKENS:
            short_token = "A"

        return cls(
            id=str(record.get("id") or _new_position_id()),
            protocol=record.get("protocol", "Uniswap V3"),
            token_a=record.get("tokenA", "ETH"),
            token_b=record.get("tokenB", "USDC"),
            initial_price_a=price_a,
            initial_price_b=price_b,
            amount_a=float(amount_a or 0),
            amount_b=float(amount_b or 0),
            latest_price_a=float(record.get("latestPriceA", price_a)),
            latest_price_b=float(record.get("latestPriceB", price_b)),
            apr=float(record.get("apr", 0)),
            duration=int(record.get("duration", 0)),
            lower_price_bound=float(record.get("lowerPriceBound", 0)),
            upper_price_bound=float(record.get("upperPriceBound", 0)),
            is_hedge_enabled=bool(record.get("isHedgeEnabled", False)),
            short_token=short_token,
            short_amount=float(record.get("shortAmount", 0)),
            funding_rate=float(record.get("fundingRate", 0)),
            start_date=start,
        )


# ── Bound Conversion ─────────────────────────────────────────────────────


class BoundConverter:
    """
    Absolute ratio bounds ↔ percentage deviation from the entry ratio.

        pct_lower = (R − lower) / R × 100      lower = R × (1 − pct_lower/100)
        pct_upper = (upper − R) / R × 100      upper = R × (1 + pct_upper/100)

    R = initial_price_a / initial_price_b. When R is 0 every percentage is
    reported as 0 and absolute bounds are left as they are.
    """

    @staticmethod
    def reference_ratio(position: SimulationPosition) -> float:
        return position.initial_ratio

    @staticmethod
    def pct_lower(ratio: float, lower_bound: float) -> float:
        if ratio <= 0:
            return 0.0
        return safe_div(ratio - lower_bound, ratio) * 100

    @staticmethod
    def pct_upper(ratio: float, upper_bound: float) -> float:
        if ratio <= 0:
            return 0.0
        return safe_div(upper_bound - ratio, ratio) * 100

    @staticmethod
    def lower_from_pct(ratio: float, pct: float) -> float:
        return ratio * (1 - pct / 100)

    @staticmethod
    def upper_from_pct(ratio: float, pct: float) -> float:
        return ratio * (1 + pct / 100)

    @staticmethod
    def format_pct(value: float) -> str:
        """Two-decimal text; non-finite values read as ``0.00``."""
        if value is None or not math.isfinite(value):
            return "0.00"
        return f"{value:.2f}"

    @classmethod
    def percentages(cls, position: SimulationPosition) -> Dict[str, float]:
        ratio = cls.reference_ratio(position)
        return {
            "pct_lower": cls.pct_lower(ratio, position.lower_price_bound),
            "pct_upper": cls.pct_upper(ratio, position.upper_price_bound),
        }

    @classmethod
    def apply_lower_pct(
        cls, position: SimulationPosition, pct: float
    ) -> SimulationPosition:
        ratio = cls.reference_ratio(position)
        if ratio <= 0:
            return position
        return position.replace(lower_price_bound=cls.lower_from_pct(ratio, pct))

    @classmethod
    def apply_upper_pct(
        cls, position: SimulationPosition, pct: float
    ) -> SimulationPosition:
        ratio = cls.reference_ratio(position)
        if ratio <= 0:
            return position
        return position.replace(upper_price_bound=cls.upper_from_pct(ratio, pct))

    @classmethod
    def range_from_pct(
        cls, ratio: float, pct_lower: float, pct_upper: float
    ) -> Dict[str, float]:
        """Absolute ``lower``/``upper`` bounds for a pair of percentages."""
        return {
            "lower": cls.lower_from_pct(ratio, pct_lower),
            "upper": cls.upper_from_pct(ratio, pct_upper),
        }


# ── Valuation ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class PriceRange:
    """Range bar data: bounds, current ratio, in-range flag."""

    min: float
    max: float
    current: float
    is_in_range: bool

    @property
    def range_position_pct(self) -> float:
        """Where ``current`` sits inside [min, max], clamped to 0–100."""
        width = self.max - self.min
        if width <= 0:
            return 0.0
        return max(0.0, min(100.0, (self.current - self.min) / width * 100))


@dataclass(frozen=True)
class ValuationSnapshot:
    initial_investment: float
    hold_value: float
    initial_ratio: float
    latest_ratio: float
    is_in_range: bool
    il_factor: float
    final_lp_value: float
    impermanent_loss: float
    impermanent_loss_pct: float
    earned_fees: float
    lp_net_return: float
    lp_net_return_pct: float
    short_pnl: float
    funding_pnl: float
    total_net_return: float
    total_net_return_pct: float
    final_total_value: float
    price_range: PriceRange

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def earned_fees(investment: float, apr: float, days: float) -> float:
    """Linear fee accrual: investment × (APR/100) × (days/365)."""
    return investment * (apr / 100) * (days / DAYS_PER_YEAR)


def short_pnl(position: SimulationPosition, price_a: float, price_b: float) -> float:
    """
    Linear short payoff on the chosen leg versus its entry price.

        short_pnl = notional × (1 − P / P_entry)

    0 when the entry price of the shorted leg is not positive.
    """
    if position.short_token == "A":
        entry, current = position.initial_price_a, price_a
    else:
        entry, current = position.initial_price_b, price_b
    if entry <= 0:
        return 0.0
    return position.short_amount * (1 - current / entry)


def funding_pnl(short_amount: float, funding_rate: float, days: float) -> float:
    """Funding carry: −notional × (rate/100) × days. Positive rate = cost."""
    return -short_amount * (funding_rate / 100) * days


def _lp_value(hold_value: float, initial_ratio: float, ratio: float) -> float:
    if initial_ratio > 0 and ratio > 0:
        return hold_value * (1 + il_factor(ratio / initial_ratio))
    return hold_value


def evaluate_position(position: SimulationPosition) -> ValuationSnapshot:
    """
    Snapshot of every derived metric as of the latest prices.

    IL applies only when both ratios are positive and the range is
    well-formed (upper > lower); otherwise the LP is valued at hold value.
    Hedge terms are 0 when the hedge is disabled.
    """
    amount_a = position.amount_a or 0
    amount_b = position.amount_b or 0

    initial_investment = position.initial_investment
    hold_value = amount_a * position.latest_price_a + amount_b * position.latest_price_b

    initial_ratio = position.initial_ratio
    latest_ratio = position.latest_ratio
    lower, upper = position.lower_price_bound, position.upper_price_bound
    is_in_range = lower <= latest_ratio <= upper

    factor = 0.0
    if initial_ratio > 0 and latest_ratio > 0 and upper > lower:
        factor = il_factor(latest_ratio / initial_ratio)
    final_lp_value = hold_value * (1 + factor)

    impermanent_loss = final_lp_value - hold_value
    fees = earned_fees(initial_investment, position.apr, position.duration)
    lp_net_return = (final_lp_value + fees) - initial_investment

    hedge_pnl = funding = 0.0
    if position.is_hedge_enabled:
        hedge_pnl = short_pnl(
            position, position.latest_price_a, position.latest_price_b
        )
        funding = funding_pnl(
            position.short_amount, position.funding_rate, position.duration
        )

    total_net_return = lp_net_return + hedge_pnl + funding

    return ValuationSnapshot(
        initial_investment=initial_investment,
        hold_value=hold_value,
        initial_ratio=initial_ratio,
        latest_ratio=latest_ratio,
        is_in_range=is_in_range,
        il_factor=factor,
        final_lp_value=final_lp_value,
        impermanent_loss=impermanent_loss,
        impermanent_loss_pct=pct_of(impermanent_loss, hold_value),
        earned_fees=fees,
        lp_net_return=lp_net_return,
        lp_net_return_pct=pct_of(lp_net_return, initial_investment),
        short_pnl=hedge_pnl,
        funding_pnl=funding,
        total_net_return=total_net_return,
        total_net_return_pct=pct_of(total_net_return, initial_investment),
        final_total_value=initial_investment + total_net_return,
        price_range=PriceRange(
            min=lower, max=upper, current=latest_ratio, is_in_range=is_in_range
        ),
    )


# ── Projection ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProjectionPoint:
    day: int
    total_value: float
    hold_value: float
    earned_fees: float
    lp_value: float = 0.0
    short_pnl: float = 0.0
    funding_pnl: float = 0.0
    price_a: float = 0.0
    price_b: float = 0.0


class ProjectionSeries:
    """
    Day-by-day value of the position from day 0 to ``duration``.

    Prices move linearly from initial to latest — a simplifying path, not a
    market model. Iterating twice yields the same points; nothing is cached
    between iterations.
    """

    def __init__(self, position: SimulationPosition):
        self.position = position

    def __iter__(self) -> Iterator[ProjectionPoint]:
        p = self.position
        duration = int(p.duration)
        if duration <= 0 or not p.amount_a or not p.amount_b:
            return

        initial_investment = p.initial_investment
        initial_ratio = p.initial_ratio

        for day in range(duration + 1):
            progress = day / duration
            price_a = p.initial_price_a + (p.latest_price_a - p.initial_price_a) * progress
            price_b = (
                p.initial_price_b + (p.latest_price_b - p.initial_price_b) * progress
                if p.initial_price_b > 0
                else 1.0
            )

            hold_value = p.amount_a * price_a + p.amount_b * price_b
            fees = earned_fees(initial_investment, p.apr, day)
            lp_value = _lp_value(hold_value, initial_ratio, price_ratio(price_a, price_b))

            hedge_pnl = funding = 0.0
            if p.is_hedge_enabled:
                hedge_pnl = short_pnl(p, price_a, price_b)
                funding = funding_pnl(p.short_amount, p.funding_rate, day)

            yield ProjectionPoint(
                day=day,
                total_value=lp_value + fees + hedge_pnl + funding,
                hold_value=hold_value,
                earned_fees=fees,
                lp_value=lp_value,
                short_pnl=hedge_pnl,
                funding_pnl=funding,
                price_a=price_a,
                price_b=price_b,
            )

    def __len__(self) -> int:
        p = self.position
        if int(p.duration) <= 0 or not p.amount_a or not p.amount_b:
            return 0
        return int(p.duration) + 1


def project_position(
    position: SimulationPosition, every: Optional[int] = None
) -> List[ProjectionPoint]:
    """
    Materialize the projection. ``every`` keeps one point per N days
    (the final day is always kept).
    """
    points = list(ProjectionSeries(position))
    if not every or every <= 1 or not points:
        return points
    sampled = [pt for pt in points if pt.day % every == 0]
    if sampled[-1].day != points[-1].day:
        sampled.append(points[-1])
    return sampled
