"""
Data Model: Position Snapshot, Pool Key & Trading API Shapes
==============================================================

Plain dataclasses shared by the resolver, the Trading API client and the
CLI. Frozen where the value never changes after construction; the
snapshot itself is mutable only so the orchestrator can attach a
simulation result before handing it to the caller.

JSON field names follow the Uniswap Trading API (camelCase) in
``to_payload()`` / ``to_dict()``; attribute names stay snake_case.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

STATUS_RESOLVED = "resolved"
STATUS_UNSUPPORTED = "unsupported"

PROTOCOL_V3 = "v3"
PROTOCOL_V4 = "v4"
SUPPORTED_PROTOCOLS = (PROTOCOL_V3, PROTOCOL_V4)


@dataclass(frozen=True)
class PoolKey:
    """Uniswap V4 PoolKey struct (PoolManager identifies a pool by it)."""

    currency0: str
    currency1: str
    fee: int  # uint24, hundredths of a bip (3000 = 0.30%)
    tick_spacing: int  # int24
    hooks: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currency0": self.currency0,
            "currency1": self.currency1,
            "fee": self.fee,
            "tickSpacing": self.tick_spacing,
            "hooks": self.hooks,
        }


@dataclass(frozen=True)
class ParsedPositionInfo:
    has_subscriber: bool
    tick_lower: int
    tick_upper: int
    pool_id: str  # 0x + 50 hex chars (bytes25, truncated PoolId)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hasSubscriber": self.has_subscriber,
            "tickLower": self.tick_lower,
            "tickUpper": self.tick_upper,
            "poolId": self.pool_id,
        }


# ── Trading API: /lp/decrease ───────────────────────────────────────────


@dataclass(frozen=True)
class SimulationRequest:
    """Body of POST /lp/decrease (simulation only, never submitted)."""

    token_id: int
    chain_id: int
    wallet_address: str
    position_liquidity: str
    tick_lower: int
    tick_upper: int
    pool_key: PoolKey
    liquidity_percentage_to_decrease: int = 100
    simulate_transaction: bool = True
    protocol: str = "V4"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "simulateTransaction": self.simulate_transaction,
            "protocol": self.protocol,
            "tokenId": self.token_id,
            "chainId": self.chain_id,
            "walletAddress": self.wallet_address,
            "liquidityPercentageToDecrease": self.liquidity_percentage_to_decrease,
            "positionLiquidity": self.position_liquidity,
            "position": {
                "tickLower": self.tick_lower,
                "tickUpper": self.tick_upper,
                "pool": {
                    "token0": self.pool_key.currency0,
                    "token1": self.pool_key.currency1,
                    "fee": self.pool_key.fee,
                    "tickSpacing": self.pool_key.tick_spacing,
                    "hooks": self.pool_key.hooks,
                },
            },
        }


@dataclass(frozen=True)
class DecreaseTransaction:
    """Unsigned transaction returned by the simulation (user signs it elsewhere)."""

    to: str
    from_address: str
    data: str
    value: str
    gas_price: str
    gas_limit: str
    chain_id: int

    @classmethod
    def from_response(cls, raw: Dict[str, Any]) -> "DecreaseTransaction":
        """Parse the ``decrease`` object. Raises KeyError/TypeError/ValueError on bad shape."""
        if not isinstance(raw, dict):
            raise TypeError("decrease is not a JSON object")
        if not raw.get("to") or not raw.get("data"):
            raise ValueError("decrease transaction is missing 'to' or 'data'")
        return cls(
            to=str(raw["to"]),
            from_address=str(raw.get("from", "")),
            data=str(raw["data"]),
            value=str(raw.get("value", "0")),
            gas_price=str(raw.get("gasPrice", "")),
            gas_limit=str(raw.get("gasLimit", "")),
            chain_id=int(raw["chainId"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "to": self.to,
            "from": self.from_address,
            "data": self.data,
            "value": self.value,
            "gasPrice": self.gas_price,
            "gasLimit": self.gas_limit,
            "chainId": self.chain_id,
        }


@dataclass
class SimulationResult:
    success: bool
    request_id: str = ""
    decrease: Optional[DecreaseTransaction] = None
    pool_liquidity: str = ""
    current_tick: int = 0
    sqrt_ratio_x96: str = ""
    gas_fee: str = ""
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def failure(cls, error: str, error_code: str) -> "SimulationResult":
        return cls(success=False, error=error, error_code=error_code)

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "SimulationResult":
        """Build a successful result from a 2xx Trading API body."""
        return cls(
            success=True,
            request_id=str(data.get("requestId", "")),
            decrease=DecreaseTransaction.from_response(data["decrease"]),
            pool_liquidity=str(data.get("poolLiquidity", "")),
            current_tick=int(data.get("currentTick", 0)),
            sqrt_ratio_x96=str(data.get("sqrtRatioX96", "")),
            gas_fee=str(data.get("gasFee", "")),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success}
        if self.success:
            out.update({
                "requestId": self.request_id,
                "decrease": self.decrease.to_dict() if self.decrease else None,
                "poolLiquidity": self.pool_liquidity,
                "currentTick": self.current_tick,
                "sqrtRatioX96": self.sqrt_ratio_x96,
                "gasFee": self.gas_fee,
            })
        else:
            out["error"] = self.error
            out["errorCode"] = self.error_code
        return out


# ── Position snapshot ──────────────────────────────────────────────────


@dataclass
class PositionSnapshot:
    id: str
    protocol: str
    chain_id: int
    status: str = STATUS_RESOLVED
    pool_key: Optional[PoolKey] = None
    position_info: Optional[ParsedPositionInfo] = None
    liquidity: Optional[str] = None  # uint128 as decimal string
    decrease_simulation: Optional[SimulationResult] = None
    message: Optional[str] = None

    @property
    def is_resolved(self) -> bool:
        return self.status == STATUS_RESOLVED

    @property
    def has_simulation_data(self) -> bool:
        """True when pool key, tick range and liquidity are all present."""
        return bool(self.pool_key and self.position_info and self.liquidity)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "protocol": self.protocol,
            "chainId": self.chain_id,
            "status": self.status,
        }
        if self.message:
            out["message"] = self.message
        if self.pool_key:
            out["poolKey"] = self.pool_key.to_dict()
            # Flat fields kept for consumers of the pre-V4 shape
            out["token0"] = self.pool_key.currency0
            out["token1"] = self.pool_key.currency1
            out["fee"] = self.pool_key.fee
        if self.position_info:
            out["positionInfo"] = self.position_info.to_dict()
            out["tickLower"] = self.position_info.tick_lower
            out["tickUpper"] = self.position_info.tick_upper
        if self.liquidity is not None:
            out["liquidity"] = self.liquidity
        if self.decrease_simulation is not None:
            out["decreaseSimulation"] = self.decrease_simulation.to_dict()
        return out
