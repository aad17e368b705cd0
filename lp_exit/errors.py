"""
Error Taxonomy: Position Resolution & Simulation
==================================================

Every failure the pipeline can raise derives from ``LpExitError`` and
also from the builtin it semantically refines (``ValueError`` for bad
input, ``RuntimeError`` for configuration / network state), so callers
that only know the builtins keep working.

  Configuration : UnsupportedChainError, MisconfiguredEndpointError,
                  UnconfiguredContractError
  Network       : TransportError, RpcProtocolError
  Decoding      : AbiDecodeError
  Simulation    : InsufficientDataError (local precondition only)
  Resolution    : PositionResolutionError (wraps network/decoding errors
                  with the token id and chain for diagnostics)

A failed liquidity-decrease simulation is NOT an exception: it is a
``SimulationResult`` with ``success=False`` (see lp_exit.models).
"""

from typing import Optional


class LpExitError(Exception):
    """Base class for all pipeline errors."""


class UnsupportedChainError(LpExitError, ValueError):
    def __init__(self, chain_id, supported=()):
        self.chain_id = chain_id
        self.supported = tuple(supported)
        msg = f"Unsupported chain ID: {chain_id}"
        if self.supported:
            msg += f". Available: {list(self.supported)}"
        super().__init__(msg)


class MisconfiguredEndpointError(LpExitError, RuntimeError):
    def __init__(self, chain_id: int, reason: str):
        self.chain_id = chain_id
        super().__init__(f"RPC URL misconfigured for chain ID {chain_id}: {reason}")


class UnconfiguredContractError(LpExitError, RuntimeError):
    def __init__(self, chain_id: int, contract_type: str):
        self.chain_id = chain_id
        self.contract_type = contract_type
        super().__init__(
            f"V4 {contract_type} address not configured for chain {chain_id}"
        )


class TransportError(LpExitError, RuntimeError):
    """HTTP layer failed: non-2xx status, connect error or timeout."""

    def __init__(self, message: str, status_code: Optional[int] = None, reason: str = ""):
        self.status_code = status_code
        self.reason = reason
        super().__init__(message)


class RpcProtocolError(LpExitError, RuntimeError):
    """JSON-RPC envelope carried an ``error`` member."""

    def __init__(self, rpc_message: str, code: Optional[int] = None):
        self.rpc_message = rpc_message
        self.code = code
        super().__init__(f"RPC error: {rpc_message}")


class AbiDecodeError(LpExitError, ValueError):
    pass


class InsufficientDataError(LpExitError, ValueError):
    pass


class PositionResolutionError(LpExitError, RuntimeError):
    """Resolution of a position failed; ``__cause__`` holds the root error."""

    def __init__(self, position_id: str, chain_id: int, reason: str):
        self.position_id = position_id
        self.chain_id = chain_id
        self.reason = reason
        super().__init__(
            f"Failed to resolve position #{position_id} on chain {chain_id}: {reason}"
        )
