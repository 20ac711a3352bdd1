"""
Form Edits — text field ↔ position synchronisation
===================================================

The simulator's form keeps every field as the text the user last typed
(so "0." or "" survive a round trip), while the position itself only
holds numbers. ``apply_text_edit`` takes one edited field and returns the
new position plus the new text bag, recomputing the paired field where two
inputs describe the same quantity:

  amountA ↔ valueA      (value = amount × initialPriceA)
  amountB ↔ valueB      (value = amount × initialPriceB)
  lowerPriceBound ↔ pctLower
  upperPriceBound ↔ pctUpper

Rules:
  - ""            → numeric field becomes 0 (bounds and percentages keep
                    their previous value)
  - unparseable   → text kept, position unchanged
  - negative      → rejected for amounts, values, duration and short size
  - fractional    → rejected for duration (whole days only)
"""

import math
from datetime import date
from typing import Dict, Optional, Tuple

from lp_sim.central_config import config
from lp_sim_math import SHORT_TOKENS, BoundConverter, SimulationPosition

DURATION_PRESETS = config.defaults.DURATION_PRESETS

STRING_FIELDS = {
    "protocol": "protocol",
    "tokenA": "token_a",
    "tokenB": "token_b",
}

NUMERIC_FIELDS = {
    "initialPriceA": "initial_price_a",
    "initialPriceB": "initial_price_b",
    "apr": "apr",
    "duration": "duration",
    "latestPriceA": "latest_price_a",
    "latestPriceB": "latest_price_b",
    "shortAmount": "short_amount",
    "fundingRate": "funding_rate",
}

NON_NEGATIVE = {"amountA", "amountB", "valueA", "valueB", "duration", "shortAmount"}

TEXT_FIELDS = (
    "protocol", "tokenA", "tokenB",
    "initialPriceA", "initialPriceB",
    "amountA", "valueA", "amountB", "valueB",
    "apr", "duration",
    "lowerPriceBound", "upperPriceBound", "pctLower", "pctUpper",
    "startDate", "latestPriceA", "latestPriceB",
    "shortAmount", "fundingRate",
)


def _num_text(value: float) -> str:
    """Shortest text for a number: 3000.0 → "3000", 0.1666… → repr."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return repr(value) if isinstance(value, float) else str(value)


def _parse_number(text: str) -> Optional[float]:
    try:
        number = float(text)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def field_texts(position: SimulationPosition) -> Dict[str, str]:
    """Text value of every editable field, derived from ``position``."""
    pcts = BoundConverter.percentages(position)
    return {
        "protocol": position.protocol,
        "tokenA": position.token_a,
        "tokenB": position.token_b,
        "initialPriceA": _num_text(position.initial_price_a),
        "initialPriceB": _num_text(position.initial_price_b),
        "amountA": _num_text(position.amount_a),
        "valueA": f"{position.value_a:.2f}",
        "amountB": _num_text(position.amount_b),
        "valueB": f"{position.value_b:.2f}",
        "apr": _num_text(position.apr),
        "duration": str(position.duration),
        "lowerPriceBound": _num_text(position.lower_price_bound),
        "upperPriceBound": _num_text(position.upper_price_bound),
        "pctLower": BoundConverter.format_pct(pcts["pct_lower"]),
        "pctUpper": BoundConverter.format_pct(pcts["pct_upper"]),
        "startDate": position.start_date.isoformat(),
        "latestPriceA": _num_text(position.latest_price_a),
        "latestPriceB": _num_text(position.latest_price_b),
        "shortAmount": _num_text(position.short_amount),
        "fundingRate": _num_text(position.funding_rate),
    }


def apply_text_edit(
    position: SimulationPosition,
    texts: Optional[Dict[str, str]],
    key: str,
    value: str,
) -> Tuple[SimulationPosition, Dict[str, str]]:
    """
    Apply one edited form field.

    Returns ``(new_position, new_texts)``; neither input is mutated.
    Raises KeyError for an unknown field name.
    """
    if key not in TEXT_FIELDS:
        raise KeyError(key)

    new_texts = dict(texts) if texts else field_texts(position)
    new_texts[key] = value

    if key in STRING_FIELDS:
        return position.replace(**{STRING_FIELDS[key]: value}), new_texts

    if key == "startDate":
        try:
            return position.replace(start_date=date.fromisoformat(value)), new_texts
        except ValueError:
            return position, new_texts

    number = 0.0 if value == "" else _parse_number(value)
    if number is None or (key in NON_NEGATIVE and number < 0):
        return position, new_texts
    if key == "duration" and not number.is_integer():
        return position, new_texts

    ratio = BoundConverter.reference_ratio(position)

    if key == "amountA":
        new_texts["valueA"] = f"{number * position.initial_price_a:.2f}"
        return position.replace(amount_a=number), new_texts

    if key == "amountB":
        new_texts["valueB"] = f"{number * position.initial_price_b:.2f}"
        return position.replace(amount_b=number), new_texts

    if key == "valueA":
        if value == "":
            new_texts["amountA"] = ""
            return position.replace(amount_a=0.0), new_texts
        if position.initial_price_a > 0:
            amount = number / position.initial_price_a
            new_texts["amountA"] = _num_text(amount)
            return position.replace(amount_a=amount), new_texts
        return position, new_texts

    if key == "valueB":
        if value == "":
            new_texts["amountB"] = ""
            return position.replace(amount_b=0.0), new_texts
        if position.initial_price_b > 0:
            amount = number / position.initial_price_b
            new_texts["amountB"] = _num_text(amount)
            return position.replace(amount_b=amount), new_texts
        return position, new_texts

    if key == "pctLower":
        if value == "" or ratio <= 0:
            return position, new_texts
        updated = BoundConverter.apply_lower_pct(position, number)
        new_texts["lowerPriceBound"] = _num_text(updated.lower_price_bound)
        return updated, new_texts

    if key == "pctUpper":
        if value == "" or ratio <= 0:
            return position, new_texts
        updated = BoundConverter.apply_upper_pct(position, number)
        new_texts["upperPriceBound"] = _num_text(updated.upper_price_bound)
        return updated, new_texts

    if key in ("lowerPriceBound", "upperPriceBound") and value == "":
        return position, new_texts

    if key == "lowerPriceBound":
        if ratio > 0:
            new_texts["pctLower"] = BoundConverter.format_pct(
                BoundConverter.pct_lower(ratio, number)
            )
        return position.replace(lower_price_bound=number), new_texts

    if key == "upperPriceBound":
        if ratio > 0:
            new_texts["pctUpper"] = BoundConverter.format_pct(
                BoundConverter.pct_upper(ratio, number)
            )
        return position.replace(upper_price_bound=number), new_texts

    attr = NUMERIC_FIELDS[key]
    updated = position.replace(**{attr: int(number) if key == "duration" else number})

    # Entry prices feed the value and percentage texts
    if key in ("initialPriceA", "initialPriceB"):
        derived = field_texts(updated)
        for dependent in ("valueA", "valueB", "pctLower", "pctUpper"):
            new_texts[dependent] = derived[dependent]

    return updated, new_texts


def apply_duration_preset(position: SimulationPosition, label: str) -> SimulationPosition:
    """Set ``duration`` from a preset label (1D, 1W, 1M, 1Y)."""
    return position.replace(duration=DURATION_PRESETS[label.upper()])


def _leg_value(position: SimulationPosition, token: str) -> float:
    return position.value_a if token == "A" else position.value_b


def toggle_hedge(position: SimulationPosition, enabled: bool) -> SimulationPosition:
    """
    Switch the hedge on or off.

    Turning it on sizes the short to the current value of the selected leg.
    """
    if not enabled:
        return position.replace(is_hedge_enabled=False)
    return position.replace(
        is_hedge_enabled=True,
        short_amount=_leg_value(position, position.short_token),
    )


def change_short_token(position: SimulationPosition, token: str) -> SimulationPosition:
    """Short the other leg; the short size resets to that leg's value."""
    token = token.upper()
    if token not in SHORT_TOKENS:
        raise ValueError(f"Short token must be one of {SHORT_TOKENS}, got {token!r}")
    return position.replace(short_token=token, short_amount=_leg_value(position, token))
