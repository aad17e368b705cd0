#!/usr/bin/env python3
"""
Uniswap Trading API Client: Decrease-Liquidity Simulation
==========================================================

Based on the liquidity provisioning API:
https://api-docs.uniswap.org/api-reference/liquidity_provisioning/decrease_lp_position

Every call here returns a ``SimulationResult``; nothing raises past
``TradingApiClient.simulate``. A failed preview is data, not an error,
so the position lookup that precedes it is never lost.
"""

import httpx
from typing import Any, Optional

from lp_exit.central_config import TradingAPI, config
from lp_exit.errors import InsufficientDataError
from lp_exit.models import PositionSnapshot, SimulationRequest, SimulationResult

# error_code values carried by failed SimulationResults
INSUFFICIENT_DATA = "InsufficientData"
HTTP_STATUS = "HttpStatus"
TRANSPORT = "Transport"
MALFORMED_RESPONSE = "MalformedResponse"


def build_decrease_request(
    snapshot: PositionSnapshot, wallet_address: str, percentage: int = 100
) -> SimulationRequest:
    """
    Build the /lp/decrease body from a resolved snapshot.

    ``percentage`` is forwarded as-is; range checks ([1, 100]) belong to
    the caller.

    Raises:
        InsufficientDataError: pool key, tick range, liquidity or wallet missing.
    """
    missing = [
        name
        for name, value in (
            ("poolKey", snapshot.pool_key),
            ("positionInfo", snapshot.position_info),
            ("liquidity", snapshot.liquidity),
        )
        if not value
    ]
    if missing:
        raise InsufficientDataError(
            f"Insufficient position data for Trading API request (missing: {', '.join(missing)})"
        )
    if not wallet_address:
        raise InsufficientDataError("Wallet address is required for a decrease simulation")
    if not str(snapshot.id).isdigit():
        raise InsufficientDataError(f"Position id is not a token id: {snapshot.id!r}")

    return SimulationRequest(
        token_id=int(snapshot.id),
        chain_id=snapshot.chain_id,
        wallet_address=wallet_address,
        position_liquidity=snapshot.liquidity,
        tick_lower=snapshot.position_info.tick_lower,
        tick_upper=snapshot.position_info.tick_upper,
        pool_key=snapshot.pool_key,
        liquidity_percentage_to_decrease=percentage,
    )


def _error_detail(response: httpx.Response) -> str:
    """Best-effort human detail from an error body ({detail|error|errorCode})."""
    try:
        body: Any = response.json()
    except ValueError:
        return ""
    if isinstance(body, dict):
        for key in ("detail", "error", "errorCode"):
            if body.get(key):
                return str(body[key])
    return ""


class TradingApiClient:
    """Uniswap Trading API client (simulation only, never submits)."""

    def __init__(self, api: Optional[TradingAPI] = None):
        api = api or config.trading_api
        self.url = api.get_decrease_url()
        self.timeout = api.TIMEOUT_SECONDS
        self.headers = dict(api.HEADERS)

    async def decrease_liquidity(self, request: SimulationRequest) -> SimulationResult:
        """POST /lp/decrease and map every outcome to a SimulationResult."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout, verify=True) as client:
                response = await client.post(
                    self.url, json=request.to_payload(), headers=self.headers
                )
        except httpx.HTTPError as e:
            # CWE-209: report the failure class, not the internal exception text
            return SimulationResult.failure(
                f"Trading API unreachable ({type(e).__name__})", TRANSPORT
            )

        if not response.is_success:
            message = f"Trading API error: {response.status_code} {response.reason_phrase}"
            detail = _error_detail(response)
            if detail:
                message += f" ({detail})"
            return SimulationResult.failure(message, HTTP_STATUS)

        try:
            data = response.json()
            if not isinstance(data, dict):
                raise TypeError("response body is not a JSON object")
            return SimulationResult.from_response(data)
        except (KeyError, TypeError, ValueError) as e:
            return SimulationResult.failure(
                f"Malformed Trading API response: {e}", MALFORMED_RESPONSE
            )

    async def simulate(
        self, snapshot: PositionSnapshot, wallet_address: str, percentage: int = 100
    ) -> SimulationResult:
        """
        Preview decreasing ``percentage`` % of the position's liquidity.

        Returns immediately (no network) with error_code ``InsufficientData``
        when the snapshot lacks pool key, tick range or liquidity.
        """
        try:
            request = build_decrease_request(snapshot, wallet_address, percentage)
        except InsufficientDataError as e:
            return SimulationResult.failure(str(e), INSUFFICIENT_DATA)
        return await self.decrease_liquidity(request)
