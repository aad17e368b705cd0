"""
Project Configuration: API endpoints, version, constants
==========================================================

Contains Uniswap Trading API configuration, JSON-RPC timeouts and
project metadata.
Source: https://api-docs.uniswap.org/api-reference/liquidity_provisioning/decrease_lp_position
"""

import os
import re
from dataclasses import dataclass, field
from importlib.metadata import version, PackageNotFoundError
from pathlib import Path
from types import MappingProxyType

# Version: single source of truth is pyproject.toml
try:
    PROJECT_VERSION = version("lp-exit")
except PackageNotFoundError:
    # Dev / CI: package not installed, read pyproject.toml directly
    _toml = Path(__file__).resolve().parent.parent / "pyproject.toml"
    _m = (
        re.search(r'version\s*=\s*"([^"]+)"', _toml.read_text())
        if _toml.exists()
        else None
    )
    PROJECT_VERSION = _m.group(1) if _m else "0.0.0-dev"
PROJECT_NAME = "LP Exit"

# JSON-RPC eth_call timeout (seconds): one attempt, no retries
RPC_TIMEOUT_SECONDS = 20

# Marker left in example .env files; an endpoint containing it was never filled in
PLACEHOLDER_MARKER = "YOUR_"


def _default_headers() -> MappingProxyType:
    headers = {
        "accept": "application/json",
        "content-type": "application/json",
        "origin": "https://app.uniswap.org",
        "referer": "https://app.uniswap.org/",
        "x-request-source": "uniswap-web",
        "x-universal-router-version": "2.0",
    }
    api_key = os.environ.get("UNISWAP_TRADING_API_KEY", "").strip()
    if api_key:
        headers["x-api-key"] = api_key
    return MappingProxyType(headers)


@dataclass(frozen=True)
class TradingAPI:
    """Uniswap Trading API (liquidity provisioning) configuration."""

    # Base URL (override for staging / self-hosted proxies)
    BASE_URL: str = os.environ.get(
        "UNISWAP_TRADING_API_URL",
        "https://trading-api-labs.interface.gateway.uniswap.org/v1",
    ).rstrip("/")

    # Official endpoints
    DECREASE_ENDPOINT: str = "/lp/decrease"  # Decrease LP position (simulate or build tx)

    # Recommended timeout
    TIMEOUT_SECONDS: int = 30

    # Request headers: read once at startup, immutable afterwards
    HEADERS: MappingProxyType = field(default_factory=_default_headers)

    def get_decrease_url(self) -> str:
        """URL of the decrease-liquidity endpoint."""
        return f"{self.BASE_URL}{self.DECREASE_ENDPOINT}"


# Unified configuration
class LpExitConfig:
    """Unified configuration for outbound services."""

    trading_api = TradingAPI()


# Global instance
config = LpExitConfig()
