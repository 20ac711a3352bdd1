"""
Project Configuration — oracle endpoint, fallback jitter, seed defaults
=======================================================================

Contains the Gemini price-oracle configuration and project metadata.
Source: https://ai.google.dev/api/generate-content
"""

import os
import re
from dataclasses import dataclass
from importlib.metadata import version, PackageNotFoundError
from pathlib import Path
from types import MappingProxyType
from typing import Optional

# Version — single source of truth is pyproject.toml
try:
    PROJECT_VERSION = version("lp-hedge-sim")
except PackageNotFoundError:
    # Dev / CI: package not installed — read pyproject.toml directly
    _toml = Path(__file__).resolve().parent.parent / "pyproject.toml"
    _m = (
        re.search(r'version\s*=\s*"([^"]+)"', _toml.read_text())
        if _toml.exists()
        else None
    )
    PROJECT_VERSION = _m.group(1) if _m else "0.0.0-dev"
PROJECT_NAME = "LP Hedge Simulator"


@dataclass(frozen=True)
class GeminiAPI:
    """Gemini generateContent endpoint used as the price oracle."""

    BASE_URL: str = "https://generativelanguage.googleapis.com"
    MODEL: str = "gemini-2.5-flash"

    # Checked in order; the first non-empty one wins
    API_KEY_ENV_VARS = ("GEMINI_API_KEY", "API_KEY")

    TIMEOUT_SECONDS: int = 20

    # Free tier allows 10 req/min on flash models; keep a margin
    MAX_REQUESTS_PER_MINUTE: int = 8

    @classmethod
    def get_generate_url(cls, model: Optional[str] = None) -> str:
        """URL of the generateContent call for ``model``."""
        return f"{cls.BASE_URL}/v1beta/models/{model or cls.MODEL}:generateContent"

    @classmethod
    def get_api_key(cls) -> Optional[str]:
        """API key from the environment, read at call time."""
        for var in cls.API_KEY_ENV_VARS:
            key = os.environ.get(var, "").strip()
            if key:
                return key
        return None


@dataclass(frozen=True)
class FallbackJitter:
    """Local randomizer used whenever the oracle is unavailable."""

    # Relative half-width of the uniform draw per leg
    SPREAD_A: float = 0.05  # volatile leg: ±5%
    SPREAD_B: float = 0.01  # usually a stablecoin: ±1%

    DECIMALS_A: int = 2
    DECIMALS_B: int = 4


@dataclass(frozen=True)
class SimulationDefaults:
    """Defaults for new simulations and the CLI."""

    STORE_ENV_VAR: str = "LP_SIM_STORE"
    STORE_FILENAME: str = "lp_simulations.json"

    # Keys of the persisted JSON document
    POSITIONS_KEY: str = "lp-simulations"
    TEXTS_KEY: str = "lp-sim-values"

    DURATION_PRESETS = MappingProxyType(
        {
            "1D": 1,
            "1W": 7,
            "1M": 30,
            "1Y": 365,
        }
    )

    @classmethod
    def get_store_path(cls) -> Path:
        return Path(os.environ.get(cls.STORE_ENV_VAR) or cls.STORE_FILENAME)


# Unified configuration
class SimulatorConfig:
    """Unified configuration for the simulator."""

    oracle = GeminiAPI()
    fallback = FallbackJitter()
    defaults = SimulationDefaults()


# Global instance
config = SimulatorConfig()
