#!/usr/bin/env python3
"""
LP Simulator — Price Oracle
===========================

Suggests a new (priceA, priceB) pair for a simulated position.

Primary source: Gemini generateContent with a JSON response schema.
Degraded mode: a local uniform jitter around the latest prices
(±5% on token A, ±1% on token B), used whenever the API key is missing or
the call fails for any reason. The fallback takes an injectable random
source so results are reproducible.

Ref: https://ai.google.dev/gemini-api/docs/structured-output
"""

import asyncio
import json
import math
import random
import time
from typing import Any, Dict, Optional

import httpx

from lp_sim.central_config import config
from lp_sim_math import SimulationPosition


class PriceOracleError(Exception):
    """The oracle could not produce a usable price pair."""


# ── Rate Limiter (CWE-770 mitigation) ────────────────────────────────────


class _RateLimiter:
    """Token-bucket rate limiter to respect API limits.

    CWE-770: Allocation of Resources Without Limits or Throttling.
    Keeps repeated "suggest" calls under the model's per-minute quota.
    """

    def __init__(self, max_requests: int, period_seconds: float):
        self._max = max_requests
        self._period = period_seconds
        self._timestamps: list[float] = []

    async def acquire(self) -> None:
        """Wait until a request slot is available."""
        now = time.monotonic()
        # Purge timestamps outside the current window
        self._timestamps = [t for t in self._timestamps if now - t < self._period]
        if len(self._timestamps) >= self._max:
            # Wait until the oldest request expires
            sleep_time = self._period - (now - self._timestamps[0]) + 0.1
            if sleep_time > 0:
                await asyncio.sleep(sleep_time)
        self._timestamps.append(time.monotonic())


_gemini_limiter = _RateLimiter(
    max_requests=config.oracle.MAX_REQUESTS_PER_MINUTE, period_seconds=60
)


# ── Local Fallback ───────────────────────────────────────────────────────


def local_price_fallback(
    position: SimulationPosition, rng: Optional[Any] = None
) -> Dict[str, float]:
    """
    Randomized price pair around the latest prices.

        priceA' = priceA × (1 + U(−0.05, 0.05))   rounded to 2 dp
        priceB' = priceB × (1 + U(−0.01, 0.01))   rounded to 4 dp

    ``rng`` is anything with ``uniform(a, b)`` — pass ``random.Random(seed)``
    for a reproducible draw.
    """
    rng = rng or random
    jitter = config.fallback
    price_a = position.latest_price_a * (
        1 + rng.uniform(-jitter.SPREAD_A, jitter.SPREAD_A)
    )
    price_b = position.latest_price_b * (
        1 + rng.uniform(-jitter.SPREAD_B, jitter.SPREAD_B)
    )
    return {
        "priceA": round(price_a, jitter.DECIMALS_A),
        "priceB": round(price_b, jitter.DECIMALS_B),
    }


# ── Gemini Client ────────────────────────────────────────────────────────


def _build_prompt(position: SimulationPosition) -> str:
    return (
        "You are a financial market simulator for a crypto trading application.\n"
        "Given the following token pair and their current prices, generate a "
        "plausible new set of prices that would reflect a few hours of market "
        "activity.\n"
        f"Token A: {position.token_a} at ${position.latest_price_a}\n"
        f"Token B: {position.token_b} at ${position.latest_price_b}\n\n"
        f"Consider that {position.token_a} is likely more volatile than "
        f"{position.token_b}. If Token B looks like a stablecoin (e.g., USDC, "
        "USDT), its price should remain very close to $1.00.\n\n"
        "Provide only the JSON object in your response."
    )


def _build_payload(position: SimulationPosition) -> Dict[str, Any]:
    return {
        "contents": [{"parts": [{"text": _build_prompt(position)}]}],
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": {
                "type": "OBJECT",
                "properties": {
                    "priceA": {
                        "type": "NUMBER",
                        "description": f"New price for {position.token_a}",
                    },
                    "priceB": {
                        "type": "NUMBER",
                        "description": f"New price for {position.token_b}",
                    },
                },
                "required": ["priceA", "priceB"],
            },
        },
    }


def _parse_prices(body: Dict[str, Any]) -> Dict[str, float]:
    """Extract and validate {priceA, priceB} from a generateContent response."""
    try:
        text = body["candidates"][0]["content"]["parts"][0]["text"]
        prices = json.loads(text.strip())
        price_a = float(prices["priceA"])
        price_b = float(prices["priceB"])
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        raise PriceOracleError("Malformed oracle response") from exc

    for value in (price_a, price_b):
        if not math.isfinite(value) or value <= 0:
            raise PriceOracleError("Oracle returned a non-positive price")

    return {"priceA": price_a, "priceB": price_b}


class GeminiPriceClient:
    """Gemini-backed price suggestion client."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key or config.oracle.get_api_key()
        self.url = config.oracle.get_generate_url(model)
        self.timeout = config.oracle.TIMEOUT_SECONDS

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def fetch_prices(self, position: SimulationPosition) -> Dict[str, float]:
        """
        Ask the model for a new price pair.

        Raises PriceOracleError on a missing key, a non-200 status, a
        timeout or an unusable payload.
        """
        if not self.api_key:
            raise PriceOracleError("No API key configured")

        await _gemini_limiter.acquire()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, verify=True) as client:
                response = await client.post(
                    self.url,
                    params={"key": self.api_key},
                    json=_build_payload(position),
                )
        except httpx.TimeoutException as exc:
            raise PriceOracleError("Oracle request timed out") from exc
        except httpx.HTTPError as exc:
            raise PriceOracleError("Oracle request failed") from exc

        if response.status_code == 429:
            raise PriceOracleError("Oracle rate limit reached")
        if response.status_code != 200:
            raise PriceOracleError(f"Oracle HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise PriceOracleError("Oracle response is not JSON") from exc

        return _parse_prices(body)


# ── Public Entry Points ──────────────────────────────────────────────────


async def suggest_prices(
    position: SimulationPosition,
    client: Optional[GeminiPriceClient] = None,
    rng: Optional[Any] = None,
) -> Dict[str, Any]:
    """
    New price pair for ``position`` — never raises.

    Returns ``{"priceA", "priceB", "source"}`` where source is ``"gemini"``
    or ``"fallback"``.
    """
    client = client or GeminiPriceClient()

    if client.is_configured:
        try:
            prices = await client.fetch_prices(position)
            return {**prices, "source": "gemini"}
        except PriceOracleError as exc:
            # CWE-209: short reason only, no response body or key
            print(f"⚠️ Price oracle unavailable ({exc}). Using estimated prices.")
    else:
        print("⚠️ No API key set. Using estimated prices.")

    return {**local_price_fallback(position, rng), "source": "fallback"}


def apply_suggested_prices(
    position: SimulationPosition, prices: Dict[str, Any]
) -> SimulationPosition:
    """Return ``position`` with the suggested prices as its latest prices."""
    return position.replace(
        latest_price_a=float(prices["priceA"]),
        latest_price_b=float(prices["priceB"]),
    )
