"""
Test Suite — LP Simulation Formula Validation
=============================================

Tests every formula in lp_sim_math.py against known inputs, including
the worked ETH/USDC scenarios, the IL symmetry and ratio-invariance
properties, bound round trips, and projection/valuation agreement.

Formula Sources:
  - Pintail (2019) — Impermanent Loss
  - Linear fee accrual, linear short payoff, daily funding carry

Run:  python -m pytest tests/test_math.py -v
"""

import math
from datetime import date

import pytest

from lp_sim_math import (
    BoundConverter,
    PriceRange,
    ProjectionSeries,
    SimulationPosition,
    earned_fees,
    evaluate_position,
    funding_pnl,
    il_factor,
    pct_of,
    price_ratio,
    project_position,
    safe_div,
    safe_sqrt,
    short_pnl,
)


# ── Helpers ──────────────────────────────────────────────────────────────

def expected_il(k: float) -> float:
    """Reference impermanent loss factor: 2√k/(1+k) - 1 (Pintail formula)."""
    return 2 * math.sqrt(k) / (1 + k) - 1


def eth_usdc(**overrides) -> SimulationPosition:
    """0.5 ETH @ 3000 + 1500 USDC @ 1, 25% APR, 30 days, range [2400, 3600]."""
    base = SimulationPosition(
        id="test",
        amount_a=0.5,
        initial_price_a=3000.0,
        amount_b=1500.0,
        initial_price_b=1.0,
        latest_price_a=3000.0,
        latest_price_b=1.0,
        apr=25.0,
        duration=30,
        lower_price_bound=2400.0,
        upper_price_bound=3600.0,
        short_amount=1500.0,
        funding_rate=0.01,
        start_date=date(2024, 1, 1),
    )
    return base.replace(**overrides)


def all_finite(snapshot) -> bool:
    values = snapshot.as_dict()
    pr = values.pop("price_range")
    values.pop("is_in_range")
    numbers = list(values.values()) + [pr["min"], pr["max"], pr["current"]]
    return all(math.isfinite(v) for v in numbers)


# ── Guarded Helpers ──────────────────────────────────────────────────────

class TestSafeDiv:
    def test_regular_division(self):
        assert safe_div(10, 4) == 2.5

    def test_zero_denominator_returns_zero(self):
        assert safe_div(10, 0) == 0.0

    def test_zero_denominator_custom_fallback(self):
        assert safe_div(10, 0, fallback=-1.0) == -1.0

    def test_nan_result_uses_fallback(self):
        assert safe_div(float("nan"), 2) == 0.0

    def test_negative_denominator_allowed(self):
        assert safe_div(10, -2) == -5.0


class TestSafeSqrt:
    def test_positive(self):
        assert safe_sqrt(9) == 3.0

    def test_zero(self):
        assert safe_sqrt(0) == 0.0

    def test_negative_returns_fallback(self):
        assert safe_sqrt(-4) == 0.0
        assert safe_sqrt(-4, fallback=1.0) == 1.0

    def test_nan_and_inf(self):
        assert safe_sqrt(float("nan")) == 0.0
        assert safe_sqrt(float("inf")) == 0.0


class TestPriceRatio:
    def test_ratio(self):
        assert price_ratio(3000, 1) == 3000

    def test_zero_b_is_undefined(self):
        assert price_ratio(3000, 0) == 0.0

    def test_negative_b_is_undefined(self):
        assert price_ratio(3000, -1) == 0.0


class TestPctOf:
    def test_basic(self):
        assert pct_of(25, 200) == 12.5

    def test_zero_whole(self):
        assert pct_of(25, 0) == 0.0

    def test_negative_whole(self):
        assert pct_of(25, -100) == 0.0


# ── Impermanent Loss (Pintail 2019) ─────────────────────────────────────

class TestILFactor:
    """IL = 2√k / (1+k) - 1, where k = ratio_latest / ratio_initial"""

    @pytest.mark.parametrize("k,expected", [
        (1.0, 0.0),          # no change → no IL
        (1.5, -0.020204),    # 50% up
        (2.0, -0.057191),    # 2× ratio
        (0.5, -0.057191),    # 50% down (symmetric to 2×)
        (4.0, -0.2),         # 4× ratio
        (0.25, -0.2),        # 75% down
    ])
    def test_known_values(self, k: float, expected: float):
        assert il_factor(k) == pytest.approx(expected, abs=1e-6)

    def test_exactly_zero_at_one(self):
        assert il_factor(1.0) == 0.0

    @pytest.mark.parametrize("k", [0.01, 0.3, 0.9, 1.1, 2.5, 7.0, 100.0])
    def test_symmetry(self, k: float):
        """IL(k) == IL(1/k) — loss does not depend on direction."""
        assert il_factor(k) == pytest.approx(il_factor(1 / k), abs=1e-12)

    @pytest.mark.parametrize("k", [0.1, 0.5, 0.99, 1.01, 2.0, 10.0])
    def test_never_positive(self, k: float):
        assert il_factor(k) < 0

    def test_grows_with_divergence(self):
        assert abs(il_factor(2)) < abs(il_factor(3)) < abs(il_factor(5))

    @pytest.mark.parametrize("k", [0.0, -1.0, float("nan"), float("inf")])
    def test_degenerate_k_is_zero(self, k: float):
        assert il_factor(k) == 0.0

    def test_matches_reference_formula(self):
        for k in [0.2, 0.5, 1.3, 2.0, 3.0]:
            assert il_factor(k) == pytest.approx(expected_il(k))


# ── Position Model ──────────────────────────────────────────────────────

class TestSimulationPosition:
    def test_seed_defaults(self):
        p = SimulationPosition.seed()
        assert p.token_a == "ETH" and p.token_b == "USDC"
        assert p.protocol == "Uniswap V3"
        assert p.initial_investment == pytest.approx(1000.0)
        assert p.value_a == pytest.approx(500.0)
        assert p.value_b == pytest.approx(500.0)
        assert p.lower_price_bound == 2400 and p.upper_price_bound == 3600
        assert p.duration == 30
        assert p.apr == 25
        assert p.is_hedge_enabled is False
        assert p.short_token == "A"
        assert p.short_amount == pytest.approx(500.0)

    def test_seed_overrides(self):
        p = SimulationPosition.seed(apr=40, duration=7)
        assert p.apr == 40
        assert p.duration == 7
        assert p.amount_b == pytest.approx(500.0)

    def test_seed_range_is_20_pct(self):
        p = SimulationPosition.seed()
        pcts = BoundConverter.percentages(p)
        assert pcts["pct_lower"] == pytest.approx(20.0)
        assert pcts["pct_upper"] == pytest.approx(20.0)

    def test_ids_are_strings(self):
        assert isinstance(SimulationPosition.seed().id, str)

    def test_replace_does_not_mutate(self):
        p = eth_usdc()
        q = p.replace(apr=50)
        assert p.apr == 25 and q.apr == 50
        assert q.id == p.id

    def test_frozen(self):
        p = eth_usdc()
        with pytest.raises(Exception):
            p.apr = 10

    def test_end_date(self):
        p = eth_usdc(start_date=date(2024, 1, 30), duration=3)
        assert p.end_date == date(2024, 2, 2)

    def test_end_date_zero_duration(self):
        p = eth_usdc(duration=0)
        assert p.end_date == p.start_date

    @pytest.mark.parametrize("days", [10_000_000, 10**12])
    def test_end_date_clamped_past_max_date(self, days):
        p = eth_usdc(duration=days)
        assert p.end_date == date.max


class TestPositionRecords:
    def test_record_roundtrip(self):
        p = eth_usdc(is_hedge_enabled=True, short_token="B")
        assert SimulationPosition.from_record(p.to_record()) == p

    def test_record_uses_camel_case(self):
        rec = eth_usdc().to_record()
        assert rec["tokenA"] == "ETH"
        assert rec["initialPriceA"] == 3000.0
        assert rec["startDate"] == "2024-01-01"
        assert rec["shortToken"] == "A"

    def test_legacy_initial_investment_split(self):
        rec = {
            "id": "old",
            "initialInvestment": 1000,
            "initialPriceA": 2000,
            "initialPriceB": 1,
            "startDate": "2023-05-01",
        }
        p = SimulationPosition.from_record(rec)
        assert p.amount_a == pytest.approx(0.25)
        assert p.amount_b == pytest.approx(500.0)
        assert p.initial_investment == pytest.approx(1000.0)

    def test_missing_optional_fields(self):
        p = SimulationPosition.from_record({"id": "x", "startDate": "2024-02-02"})
        assert p.amount_a == 0 and p.amount_b == 0
        assert p.is_hedge_enabled is False
        assert p.start_date == date(2024, 2, 2)

    def test_bad_start_date_falls_back_to_today(self):
        p = SimulationPosition.from_record({"id": "x", "startDate": "not a date"})
        assert p.start_date == date.today()

    def test_bad_short_token_defaults_to_a(self):
        p = SimulationPosition.from_record({"id": "x", "shortToken": "C"})
        assert p.short_token == "A"


# ── Bound Conversion ────────────────────────────────────────────────────

class TestBoundConverter:
    def test_percentages_from_bounds(self):
        pcts = BoundConverter.percentages(eth_usdc(lower_price_bound=2700, upper_price_bound=3450))
        assert pcts["pct_lower"] == pytest.approx(10.0)
        assert pcts["pct_upper"] == pytest.approx(15.0)

    def test_bounds_from_percentages(self):
        assert BoundConverter.lower_from_pct(3000, 10) == pytest.approx(2700)
        assert BoundConverter.upper_from_pct(3000, 15) == pytest.approx(3450)

    @pytest.mark.parametrize("ratio", [0.0004, 0.5, 1.0, 3000.0, 65000.0])
    @pytest.mark.parametrize("lower", [0.1, 0.8, 0.999])
    def test_lower_roundtrip(self, ratio: float, lower: float):
        bound = ratio * lower
        pct = BoundConverter.pct_lower(ratio, bound)
        assert BoundConverter.lower_from_pct(ratio, pct) == pytest.approx(bound, rel=1e-12)

    @pytest.mark.parametrize("ratio", [0.0004, 1.0, 3000.0])
    def test_upper_roundtrip(self, ratio: float):
        bound = ratio * 1.37
        pct = BoundConverter.pct_upper(ratio, bound)
        assert BoundConverter.upper_from_pct(ratio, pct) == pytest.approx(bound, rel=1e-12)

    def test_zero_ratio_gives_zero_pct(self):
        p = eth_usdc(initial_price_b=0)
        pcts = BoundConverter.percentages(p)
        assert pcts == {"pct_lower": 0.0, "pct_upper": 0.0}

    def test_format_pct(self):
        assert BoundConverter.format_pct(12.3456) == "12.35"
        assert BoundConverter.format_pct(float("nan")) == "0.00"
        assert BoundConverter.format_pct(float("inf")) == "0.00"

    def test_apply_pct_updates_absolute_bound(self):
        p = BoundConverter.apply_lower_pct(eth_usdc(), 5)
        p = BoundConverter.apply_upper_pct(p, 50)
        assert p.lower_price_bound == pytest.approx(2850)
        assert p.upper_price_bound == pytest.approx(4500)

    def test_apply_pct_with_zero_ratio_is_noop(self):
        p = eth_usdc(initial_price_b=0)
        assert BoundConverter.apply_lower_pct(p, 10) is p
        assert BoundConverter.apply_upper_pct(p, 10) is p

    def test_range_from_pct(self):
        r = BoundConverter.range_from_pct(2000, 20, 30)
        assert r["lower"] == pytest.approx(1600)
        assert r["upper"] == pytest.approx(2600)


# ── Component Formulas ──────────────────────────────────────────────────

class TestFees:
    def test_scenario_value(self):
        assert earned_fees(3000, 25, 30) == pytest.approx(61.6438, abs=1e-4)

    def test_linear_in_duration(self):
        assert earned_fees(3000, 25, 60) == pytest.approx(2 * earned_fees(3000, 25, 30))

    def test_linear_in_apr(self):
        assert earned_fees(3000, 50, 30) == pytest.approx(2 * earned_fees(3000, 25, 30))

    def test_full_year(self):
        assert earned_fees(1000, 10, 365) == pytest.approx(100.0)

    def test_zero_duration(self):
        assert earned_fees(1000, 10, 0) == 0.0


class TestHedgeComponents:
    def test_short_a_profit_when_price_falls(self):
        p = eth_usdc(short_token="A")
        assert short_pnl(p, 2700, 1) == pytest.approx(150.0)

    def test_short_a_loss_when_price_rises(self):
        p = eth_usdc(short_token="A")
        assert short_pnl(p, 3300, 1) == pytest.approx(-150.0)

    def test_short_b_uses_b_leg(self):
        p = eth_usdc(short_token="B")
        assert short_pnl(p, 2000, 0.99) == pytest.approx(15.0)

    def test_zero_entry_price(self):
        p = eth_usdc(short_token="B", initial_price_b=0)
        assert short_pnl(p, 3000, 1) == 0.0

    def test_funding_scenario(self):
        assert funding_pnl(1500, 0.01, 30) == pytest.approx(-4.5)

    def test_negative_funding_pays_the_short(self):
        assert funding_pnl(1000, -0.02, 10) == pytest.approx(2.0)


# ── Valuation ───────────────────────────────────────────────────────────

class TestValuationScenario:
    """0.5 ETH + 1500 USDC, prices unchanged."""

    def test_unchanged_prices(self):
        s = evaluate_position(eth_usdc())
        assert s.initial_investment == pytest.approx(3000.00)
        assert s.hold_value == pytest.approx(3000.00)
        assert s.il_factor == 0
        assert s.final_lp_value == s.hold_value
        assert s.impermanent_loss == 0
        assert s.earned_fees == pytest.approx(61.64, abs=0.01)
        assert s.lp_net_return == pytest.approx(61.64, abs=0.01)
        assert s.lp_net_return_pct == pytest.approx(2.0548, abs=1e-3)
        assert s.is_in_range is True

    def test_hedge_disabled_has_no_hedge_terms(self):
        s = evaluate_position(eth_usdc(latest_price_a=2700))
        assert s.short_pnl == 0
        assert s.funding_pnl == 0
        assert s.total_net_return == pytest.approx(s.lp_net_return)

    def test_hedge_scenario(self):
        s = evaluate_position(
            eth_usdc(is_hedge_enabled=True, short_token="A", latest_price_a=2700)
        )
        assert s.short_pnl == pytest.approx(150.00)
        assert s.funding_pnl == pytest.approx(-4.50)
        assert s.hold_value == pytest.approx(2850.0)
        assert s.il_factor == pytest.approx(expected_il(0.9))
        assert s.final_lp_value == pytest.approx(2850.0 * (1 + expected_il(0.9)))
        assert s.total_net_return == pytest.approx(s.lp_net_return + 150.0 - 4.5)
        assert s.final_total_value == pytest.approx(3000 + s.total_net_return)

    def test_impermanent_loss_pct(self):
        s = evaluate_position(eth_usdc(latest_price_a=6000))
        assert s.impermanent_loss_pct == pytest.approx(expected_il(2.0) * 100)
        assert s.impermanent_loss < 0

    def test_out_of_range_still_uses_ratio_formula(self):
        s = evaluate_position(eth_usdc(latest_price_a=6000))
        assert s.is_in_range is False
        assert s.il_factor == pytest.approx(expected_il(2.0))

    def test_range_boundaries_are_inclusive(self):
        assert evaluate_position(eth_usdc(latest_price_a=2400)).is_in_range is True
        assert evaluate_position(eth_usdc(latest_price_a=3600)).is_in_range is True

    def test_price_range_record(self):
        s = evaluate_position(eth_usdc(latest_price_a=3300))
        assert s.price_range.min == 2400
        assert s.price_range.max == 3600
        assert s.price_range.current == pytest.approx(3300)
        assert s.price_range.is_in_range is True

    @pytest.mark.parametrize("price_a,price_b", [(6000, 2), (1500, 0.5), (3000, 1)])
    def test_ratio_invariance(self, price_a, price_b):
        """Same A/B ratio as entry → no impermanent loss, whatever the level."""
        s = evaluate_position(eth_usdc(latest_price_a=price_a, latest_price_b=price_b))
        assert s.il_factor == 0
        assert s.final_lp_value == s.hold_value

    def test_as_dict_is_flat_enough_for_rendering(self):
        d = evaluate_position(eth_usdc()).as_dict()
        assert d["initial_investment"] == pytest.approx(3000)
        assert d["price_range"]["is_in_range"] is True


class TestValuationDegenerate:
    @pytest.mark.parametrize("overrides", [
        {"initial_price_b": 0},
        {"latest_price_b": 0},
        {"initial_price_a": 0, "initial_price_b": 0},
        {"duration": 0},
        {"lower_price_bound": 3600, "upper_price_bound": 2400},
        {"lower_price_bound": 3000, "upper_price_bound": 3000},
        {"amount_a": 0, "amount_b": 0},
        {"initial_price_a": -5},
    ])
    def test_never_raises_and_all_finite(self, overrides):
        s = evaluate_position(eth_usdc(is_hedge_enabled=True, **overrides))
        assert all_finite(s)

    def test_inverted_range_has_no_il(self):
        s = evaluate_position(
            eth_usdc(latest_price_a=6000, lower_price_bound=3600, upper_price_bound=2400)
        )
        assert s.il_factor == 0
        assert s.final_lp_value == s.hold_value
        assert s.is_in_range is False

    def test_zero_initial_b_has_no_il(self):
        s = evaluate_position(eth_usdc(initial_price_b=0, latest_price_a=6000))
        assert s.initial_ratio == 0
        assert s.final_lp_value == s.hold_value

    def test_zero_investment_percentages_are_zero(self):
        s = evaluate_position(eth_usdc(amount_a=0, amount_b=0))
        assert s.lp_net_return_pct == 0
        assert s.total_net_return_pct == 0
        assert s.impermanent_loss_pct == 0

    def test_zero_duration_has_no_fees_or_funding(self):
        s = evaluate_position(eth_usdc(duration=0, is_hedge_enabled=True))
        assert s.earned_fees == 0
        assert s.funding_pnl == 0


class TestPriceRange:
    def test_position_mid(self):
        assert PriceRange(2400, 3600, 3000, True).range_position_pct == pytest.approx(50)

    def test_position_clamped(self):
        assert PriceRange(2400, 3600, 1000, False).range_position_pct == 0
        assert PriceRange(2400, 3600, 9000, False).range_position_pct == 100

    def test_zero_width(self):
        assert PriceRange(3000, 3000, 3000, True).range_position_pct == 0


# ── Projection ──────────────────────────────────────────────────────────

class TestProjection:
    def test_length_and_days(self):
        points = project_position(eth_usdc())
        assert len(points) == 31
        assert [pt.day for pt in points] == list(range(31))

    def test_day_zero_is_initial_state(self):
        first = project_position(eth_usdc(latest_price_a=2700))[0]
        assert first.hold_value == pytest.approx(3000)
        assert first.earned_fees == 0
        assert first.total_value == pytest.approx(3000)

    def test_linear_price_path(self):
        points = project_position(eth_usdc(latest_price_a=2700))
        assert points[15].price_a == pytest.approx(2850)
        assert points[15].hold_value == pytest.approx(0.5 * 2850 + 1500)

    def test_empty_when_duration_zero(self):
        assert project_position(eth_usdc(duration=0)) == []

    def test_empty_when_amount_missing(self):
        assert project_position(eth_usdc(amount_a=0)) == []
        assert project_position(eth_usdc(amount_b=0)) == []

    def test_len_matches_iteration(self):
        series = ProjectionSeries(eth_usdc(duration=7))
        assert len(series) == len(list(series)) == 8
        assert len(ProjectionSeries(eth_usdc(duration=0))) == 0

    def test_restartable(self):
        series = ProjectionSeries(eth_usdc(latest_price_a=2500, is_hedge_enabled=True))
        assert list(series) == list(series)

    def test_zero_initial_b_uses_unit_price(self):
        points = project_position(eth_usdc(initial_price_b=0))
        assert all(pt.price_b == 1 for pt in points)
        assert all(math.isfinite(pt.total_value) for pt in points)

    @pytest.mark.parametrize("hedged", [False, True])
    @pytest.mark.parametrize("latest_a", [2000, 2700, 3000, 3900])
    def test_endpoint_matches_valuation(self, hedged: bool, latest_a: float):
        p = eth_usdc(latest_price_a=latest_a, latest_price_b=1.002, is_hedge_enabled=hedged)
        last = project_position(p)[-1]
        snap = evaluate_position(p)
        assert last.day == p.duration
        assert last.hold_value == pytest.approx(snap.hold_value)
        assert last.earned_fees == pytest.approx(snap.earned_fees)
        assert last.short_pnl == pytest.approx(snap.short_pnl)
        assert last.funding_pnl == pytest.approx(snap.funding_pnl)
        assert last.lp_value == pytest.approx(snap.final_lp_value)
        assert last.total_value == pytest.approx(
            snap.final_lp_value + snap.earned_fees + snap.short_pnl + snap.funding_pnl
        )

    def test_funding_accrues_daily(self):
        points = project_position(eth_usdc(is_hedge_enabled=True))
        assert points[10].funding_pnl == pytest.approx(-1500 * 0.0001 * 10)

    def test_sampling_keeps_last_day(self):
        points = project_position(eth_usdc(), every=7)
        assert [pt.day for pt in points] == [0, 7, 14, 21, 28, 30]

    def test_sampling_on_exact_multiple(self):
        points = project_position(eth_usdc(), every=10)
        assert [pt.day for pt in points] == [0, 10, 20, 30]
