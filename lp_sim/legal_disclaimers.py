"""
Disclaimers shown alongside simulation output.

Every figure this tool prints is a projection from user-supplied prices
and a closed-form impermanent-loss approximation. Nothing here is a quote,
a forecast or financial advice.
"""

# Short notice printed under every valuation
CLI_DISCLAIMER = """
⚠️  SIMULATION ONLY - NOT FINANCIAL ADVICE
📉 Impermanent loss uses the full-range 2·√k/(1+k) − 1 approximation;
   concentrated positions that leave their range can lose more
📈 Fees accrue linearly from the APR you enter; real fees depend on volume
🔻 Hedge P&L assumes a linear short and a constant daily funding rate
"""

# Printed when the oracle fell back to local random prices
ESTIMATED_PRICES_NOTICE = (
    "ℹ️  Latest prices are local estimates (±5% / ±1% around the previous "
    "values), not market data."
)


def get_model_assumptions() -> list[str]:
    """The modelling assumptions behind every projection, one per line."""
    return [
        "Prices move linearly from entry to latest over the horizon",
        "Impermanent loss depends only on the A/B price ratio",
        "No compounding of fees, no gas, no slippage",
        "Funding is charged daily on the full short notional",
    ]
