"""
Pipeline Tests: RPC client, resolver, Trading API client, orchestrator, CLI
============================================================================

Network is always mocked: httpx.AsyncClient for the transport layers,
position_reader.eth_call for the resolver / orchestrator.

Run:  python -m pytest tests/test_pipeline.py -v
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

import position_reader
from lp_exit.errors import (
    PositionResolutionError,
    RpcProtocolError,
    TransportError,
    UnsupportedChainError,
)
from lp_exit.models import ParsedPositionInfo, PoolKey, PositionSnapshot, SimulationResult
from lp_exit.rpc_helpers import SELECTORS, eth_call, rpc_call
from lp_exit.trading_api_client import TradingApiClient
from position_reader import (
    PositionReader,
    fetch_position_with_simulation,
    normalize_position_id,
)

USDC = "0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48"
WETH = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
NO_HOOKS = "0x" + "0" * 40
WALLET = "0x" + "ab" * 20


def _word(value: int) -> str:
    return format(value % (1 << 256), "064x")


def _addr_word(addr: str) -> str:
    return addr[2:].rjust(64, "0")


POOL_AND_INFO_RESULT = "0x" + "".join([
    _addr_word(USDC), _addr_word(WETH), _word(3000), _word(60), _addr_word(NO_HOOKS), _word(0x02AB),
])
LIQUIDITY_RESULT = "0x" + _word(500000)

SIM_RESPONSE = {
    "requestId": "req-42",
    "decrease": {
        "to": "0xbd216513d74c8cf14cf4747e6aaa6420ff64ee9e",
        "from": WALLET,
        "data": "0xdd46508f" + "00" * 32,
        "value": "0",
        "gasPrice": "1000000000",
        "gasLimit": "300000",
        "chainId": 1,
    },
    "poolLiquidity": "123456789",
    "currentTick": 10,
    "sqrtRatioX96": "79228162514264337593543950336",
    "gasFee": "300000000000000",
}


def _response(status: int, body=None, text: str = None) -> httpx.Response:
    request = httpx.Request("POST", "http://fake")
    if text is not None:
        return httpx.Response(status, text=text, request=request)
    return httpx.Response(status, json=body, request=request)


def _patch_async_client(target: str, response=None, side_effect=None):
    """Patch httpx.AsyncClient as an async context manager; returns (patcher, MockClient, mock_client)."""
    patcher = patch(target)
    MockClient = patcher.start()
    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_client.post.return_value = response
    MockClient.return_value.__aenter__ = AsyncMock(return_value=mock_client)
    MockClient.return_value.__aexit__ = AsyncMock(return_value=False)
    return patcher, MockClient, mock_client


def fake_eth_call(overrides=None):
    """eth_call stand-in routing by selector."""
    results = {
        SELECTORS["getPoolAndPositionInfo"]: POOL_AND_INFO_RESULT,
        SELECTORS["getPositionLiquidity"]: LIQUIDITY_RESULT,
    }
    results.update(overrides or {})

    async def _call(chain_id, to, data, timeout=None):
        outcome = results[data[:10]]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return AsyncMock(side_effect=_call)


# ═══════════════════════════════════════════════════════════════════════════
# 1. JSON-RPC client
# ═══════════════════════════════════════════════════════════════════════════


class TestRpcCall:
    TARGET = "lp_exit.rpc_helpers.httpx.AsyncClient"

    def test_returns_result_verbatim(self):
        patcher, _, client = _patch_async_client(
            self.TARGET, _response(200, {"jsonrpc": "2.0", "id": 1, "result": {"any": ["thing"]}})
        )
        try:
            assert asyncio.run(rpc_call(1, "eth_chainId")) == {"any": ["thing"]}
        finally:
            patcher.stop()

    def test_envelope(self):
        patcher, _, client = _patch_async_client(
            self.TARGET, _response(200, {"jsonrpc": "2.0", "id": 1, "result": "0x01"})
        )
        try:
            asyncio.run(eth_call(8453, "0xPM", "0xDATA"))
            asyncio.run(eth_call(8453, "0xPM", "0xDATA"))
        finally:
            patcher.stop()
        first = client.post.call_args_list[0].kwargs["json"]
        second = client.post.call_args_list[1].kwargs["json"]
        assert first["jsonrpc"] == "2.0"
        assert first["method"] == "eth_call"
        assert first["params"] == [{"to": "0xPM", "data": "0xDATA"}, "latest"]
        assert first["id"] != second["id"]

    def test_http_error_status(self):
        patcher, _, _ = _patch_async_client(self.TARGET, _response(503, text="down"))
        try:
            with pytest.raises(TransportError, match="503 Service Unavailable") as exc:
                asyncio.run(rpc_call(1, "eth_call", []))
        finally:
            patcher.stop()
        assert exc.value.status_code == 503

    def test_connect_error(self):
        patcher, _, _ = _patch_async_client(
            self.TARGET, side_effect=httpx.ConnectError("refused")
        )
        try:
            with pytest.raises(TransportError, match="ConnectError"):
                asyncio.run(rpc_call(1, "eth_call", []))
        finally:
            patcher.stop()

    def test_rpc_error_member(self):
        patcher, _, _ = _patch_async_client(
            self.TARGET,
            _response(200, {"jsonrpc": "2.0", "id": 1, "error": {"code": 3, "message": "execution reverted"}}),
        )
        try:
            with pytest.raises(RpcProtocolError, match="execution reverted") as exc:
                asyncio.run(rpc_call(1, "eth_call", []))
        finally:
            patcher.stop()
        assert exc.value.code == 3

    @pytest.mark.parametrize("error", [{}, ""])
    def test_empty_error_member_still_raises(self, error):
        patcher, _, _ = _patch_async_client(
            self.TARGET, _response(200, {"jsonrpc": "2.0", "id": 1, "error": error}),
        )
        try:
            with pytest.raises(RpcProtocolError):
                asyncio.run(rpc_call(1, "eth_call", []))
        finally:
            patcher.stop()

    def test_null_error_member_returns_result(self):
        patcher, _, _ = _patch_async_client(
            self.TARGET, _response(200, {"jsonrpc": "2.0", "id": 1, "error": None, "result": "0x01"}),
        )
        try:
            assert asyncio.run(rpc_call(1, "eth_call", [])) == "0x01"
        finally:
            patcher.stop()

    def test_non_json_body(self):
        patcher, _, _ = _patch_async_client(self.TARGET, _response(200, text="<html>"))
        try:
            with pytest.raises(RpcProtocolError, match="not valid JSON"):
                asyncio.run(rpc_call(1, "eth_call", []))
        finally:
            patcher.stop()

    def test_unsupported_chain_no_network(self):
        patcher, MockClient, _ = _patch_async_client(self.TARGET, _response(200, {"result": "0x"}))
        try:
            with pytest.raises(UnsupportedChainError):
                asyncio.run(rpc_call(999, "eth_call", []))
        finally:
            patcher.stop()
        MockClient.assert_not_called()


# ═══════════════════════════════════════════════════════════════════════════
# 2. PositionReader (resolver)
# ═══════════════════════════════════════════════════════════════════════════


class TestNormalizePositionId:
    @pytest.mark.parametrize("raw,expected", [("12345", "12345"), (" 7 ", "7"), (42, "42"), ("007", "7")])
    def test_valid(self, raw, expected):
        assert normalize_position_id(raw) == expected

    @pytest.mark.parametrize("raw", ["", "-1", "0x10", "abc", -5, True])
    def test_invalid(self, raw):
        with pytest.raises(ValueError):
            normalize_position_id(raw)

    @pytest.mark.parametrize("raw", [2 ** 256, str(2 ** 256)])
    def test_above_uint256_rejected(self, raw):
        with pytest.raises(ValueError, match="uint256"):
            normalize_position_id(raw)

    def test_max_uint256_accepted(self):
        assert normalize_position_id(2 ** 256 - 1) == str(2 ** 256 - 1)


class TestPositionReader:
    def test_end_to_end_v4(self):
        with patch.object(position_reader, "eth_call", fake_eth_call()) as mock_call:
            snap = asyncio.run(PositionReader(1, verbose=False).resolve("12345", "v4"))

        assert snap.status == "resolved"
        assert snap.id == "12345" and snap.chain_id == 1 and snap.protocol == "v4"
        assert snap.pool_key == PoolKey(USDC, WETH, 3000, 60, NO_HOOKS)
        # 0x02AB → low byte 0xAB (subscriber), tickLower 2, tickUpper 0
        assert snap.position_info.has_subscriber is True
        assert snap.position_info.tick_lower == 2
        assert snap.position_info.tick_upper == 0
        assert snap.position_info.pool_id == "0x" + "0" * 50
        assert snap.liquidity == "500000"
        assert snap.decrease_simulation is None

        assert mock_call.await_count == 2
        targets = {c.args[1] for c in mock_call.call_args_list}
        assert targets == {"0xbd216513d74c8cf14cf4747e6aaa6420ff64ee9e"}
        calldata = sorted(c.args[2] for c in mock_call.call_args_list)
        assert calldata == sorted([
            "0x7ba03aad" + _word(12345),
            "0x1efeed33" + _word(12345),
        ])

    def test_oversized_id_rejected_before_reads(self):
        with patch.object(position_reader, "eth_call", fake_eth_call()) as mock_call:
            with pytest.raises(ValueError, match="uint256"):
                asyncio.run(PositionReader(1, verbose=False).resolve(str(2 ** 256), "v4"))
        mock_call.assert_not_called()

    def test_reads_are_concurrent(self):
        started = []

        async def scenario():
            both_started = asyncio.Event()

            async def _call(chain_id, to, data, timeout=None):
                started.append(data[:10])
                if len(started) == 2:
                    both_started.set()
                # Sequential issuing would never reach two starts → timeout
                await asyncio.wait_for(both_started.wait(), 1.0)
                if data.startswith(SELECTORS["getPositionLiquidity"]):
                    return LIQUIDITY_RESULT
                return POOL_AND_INFO_RESULT

            with patch.object(position_reader, "eth_call", AsyncMock(side_effect=_call)):
                return await PositionReader(8453, verbose=False).resolve("1")

        snap = asyncio.run(scenario())
        assert len(started) == 2
        assert snap.liquidity == "500000"

    def test_either_failure_fails_resolution(self):
        failing = fake_eth_call({SELECTORS["getPositionLiquidity"]: TransportError("RPC call failed: 502 Bad Gateway", 502)})
        with patch.object(position_reader, "eth_call", failing):
            with pytest.raises(PositionResolutionError) as exc:
                asyncio.run(PositionReader(130, verbose=False).resolve("12345"))
        err = exc.value
        assert err.position_id == "12345"
        assert err.chain_id == 130
        assert isinstance(err.__cause__, TransportError)
        assert "502" in str(err)

    def test_decode_failure_wrapped(self):
        short = fake_eth_call({SELECTORS["getPoolAndPositionInfo"]: "0x" + "00" * 10})
        with patch.object(position_reader, "eth_call", short):
            with pytest.raises(PositionResolutionError, match="getPoolAndPositionInfo"):
                asyncio.run(PositionReader(1, verbose=False).resolve("9"))

    def test_rpc_error_wrapped(self):
        reverted = fake_eth_call({SELECTORS["getPoolAndPositionInfo"]: RpcProtocolError("execution reverted")})
        with patch.object(position_reader, "eth_call", reverted):
            with pytest.raises(PositionResolutionError, match="execution reverted"):
                asyncio.run(PositionReader(1, verbose=False).resolve("9"))

    def test_timeout_cancels_both(self):
        cancelled = []

        async def scenario():
            async def _slow(chain_id, to, data, timeout=None):
                try:
                    await asyncio.sleep(10)
                except asyncio.CancelledError:
                    cancelled.append(data[:10])
                    raise

            with patch.object(position_reader, "eth_call", AsyncMock(side_effect=_slow)):
                try:
                    await PositionReader(1, verbose=False, timeout=0.05).resolve("5")
                finally:
                    await asyncio.sleep(0)

        with pytest.raises(PositionResolutionError, match="timed out"):
            asyncio.run(scenario())
        assert sorted(cancelled) == sorted(SELECTORS.values())

    def test_v3_is_unsupported_not_failure(self):
        with patch.object(position_reader, "eth_call", fake_eth_call()) as mock_call:
            snap = asyncio.run(PositionReader(1, verbose=False).resolve("77", "v3"))
        assert snap.status == "unsupported"
        assert snap.is_resolved is False
        assert snap.pool_key is None and snap.position_info is None and snap.liquidity is None
        assert "not yet supported" in snap.message
        mock_call.assert_not_called()

    def test_unknown_protocol(self):
        with pytest.raises(ValueError, match="protocol"):
            asyncio.run(PositionReader(1, verbose=False).resolve("1", "v2"))

    def test_unsupported_chain_no_network(self):
        with patch.object(position_reader, "eth_call", fake_eth_call()) as mock_call:
            with pytest.raises(UnsupportedChainError):
                PositionReader(10)
        mock_call.assert_not_called()

    def test_progress_output(self, capsys):
        with patch.object(position_reader, "eth_call", fake_eth_call()):
            asyncio.run(PositionReader(1).resolve("12345"))
        out = capsys.readouterr().out
        assert "Reading V4 position #12345 from Ethereum" in out
        assert "liquidity 500000" in out


# ═══════════════════════════════════════════════════════════════════════════
# 3. TradingApiClient (simulation gateway)
# ═══════════════════════════════════════════════════════════════════════════


def _snapshot(**overrides) -> PositionSnapshot:
    fields = dict(
        id="12345",
        protocol="v4",
        chain_id=1,
        pool_key=PoolKey(USDC, WETH, 3000, 60, NO_HOOKS),
        position_info=ParsedPositionInfo(True, 2, 0, "0x" + "0" * 50),
        liquidity="500000",
    )
    fields.update(overrides)
    return PositionSnapshot(**fields)


class TestTradingApiClient:
    TARGET = "lp_exit.trading_api_client.httpx.AsyncClient"

    def test_success(self):
        patcher, _, client = _patch_async_client(self.TARGET, _response(200, SIM_RESPONSE))
        try:
            result = asyncio.run(TradingApiClient().simulate(_snapshot(), WALLET, 50))
        finally:
            patcher.stop()
        assert result.success is True
        assert result.request_id == "req-42"
        assert result.decrease.to == "0xbd216513d74c8cf14cf4747e6aaa6420ff64ee9e"
        assert result.pool_liquidity == "123456789"

        call = client.post.call_args
        assert call.args[0].endswith("/lp/decrease")
        body = call.kwargs["json"]
        assert body["simulateTransaction"] is True
        assert body["liquidityPercentageToDecrease"] == 50
        assert body["positionLiquidity"] == "500000"
        assert call.kwargs["headers"]["content-type"] == "application/json"

    def test_missing_liquidity_no_network(self):
        patcher, MockClient, _ = _patch_async_client(self.TARGET, _response(200, SIM_RESPONSE))
        try:
            result = asyncio.run(TradingApiClient().simulate(_snapshot(liquidity=None), WALLET))
        finally:
            patcher.stop()
        assert result.success is False
        assert result.error_code == "InsufficientData"
        MockClient.assert_not_called()

    def test_http_500_is_data(self):
        patcher, _, _ = _patch_async_client(self.TARGET, _response(500, {"detail": "upstream exploded"}))
        try:
            result = asyncio.run(TradingApiClient().simulate(_snapshot(), WALLET))
        finally:
            patcher.stop()
        assert result.success is False
        assert result.error_code == "HttpStatus"
        assert "500" in result.error
        assert "upstream exploded" in result.error

    def test_transport_failure_is_data(self):
        patcher, _, _ = _patch_async_client(self.TARGET, side_effect=httpx.ReadTimeout("slow"))
        try:
            result = asyncio.run(TradingApiClient().simulate(_snapshot(), WALLET))
        finally:
            patcher.stop()
        assert result.success is False
        assert result.error_code == "Transport"
        assert "ReadTimeout" in result.error

    @pytest.mark.parametrize("response", [
        _response(200, text="not json"),
        _response(200, ["a", "list"]),
        _response(200, {"requestId": "no-decrease"}),
        _response(200, {**SIM_RESPONSE, "currentTick": "NaN"}),
        _response(200, {**SIM_RESPONSE, "decrease": None}),
        _response(200, {**SIM_RESPONSE, "decrease": []}),
        _response(200, {**SIM_RESPONSE, "decrease": "0xdead"}),
    ])
    def test_malformed_response_is_data(self, response):
        patcher, _, _ = _patch_async_client(self.TARGET, response)
        try:
            result = asyncio.run(TradingApiClient().simulate(_snapshot(), WALLET))
        finally:
            patcher.stop()
        assert result.success is False
        assert result.error_code == "MalformedResponse"


# ═══════════════════════════════════════════════════════════════════════════
# 4. Orchestrator
# ═══════════════════════════════════════════════════════════════════════════


class TestFetchPositionWithSimulation:
    def _client(self, result: SimulationResult):
        client = MagicMock(spec=TradingApiClient)
        client.simulate = AsyncMock(return_value=result)
        return client

    def test_attaches_successful_simulation(self):
        client = self._client(SimulationResult.from_response(SIM_RESPONSE))
        with patch.object(position_reader, "eth_call", fake_eth_call()):
            snap = asyncio.run(fetch_position_with_simulation(
                "12345", "v4", 1, WALLET, 25, client=client, verbose=False,
            ))
        assert snap.decrease_simulation.success is True
        client.simulate.assert_awaited_once()
        args = client.simulate.await_args.args
        assert args[1] == WALLET and args[2] == 25

    def test_attaches_failed_simulation_without_raising(self):
        client = self._client(SimulationResult.failure("Trading API error: 500 Internal Server Error", "HttpStatus"))
        with patch.object(position_reader, "eth_call", fake_eth_call()):
            snap = asyncio.run(fetch_position_with_simulation(
                "12345", "v4", 1, WALLET, client=client, verbose=False,
            ))
        assert snap.liquidity == "500000"
        assert snap.decrease_simulation.success is False
        assert "500" in snap.decrease_simulation.error

    def test_no_wallet_no_simulation(self):
        client = self._client(SimulationResult.from_response(SIM_RESPONSE))
        with patch.object(position_reader, "eth_call", fake_eth_call()):
            snap = asyncio.run(fetch_position_with_simulation("12345", "v4", 1, client=client, verbose=False))
        assert snap.decrease_simulation is None
        assert "decreaseSimulation" not in snap.to_dict()
        client.simulate.assert_not_called()

    def test_v3_never_simulates(self):
        client = self._client(SimulationResult.from_response(SIM_RESPONSE))
        snap = asyncio.run(fetch_position_with_simulation("1", "v3", 8453, WALLET, client=client, verbose=False))
        assert snap.status == "unsupported"
        assert snap.decrease_simulation is None
        client.simulate.assert_not_called()

    def test_resolution_failure_propagates(self):
        client = self._client(SimulationResult.from_response(SIM_RESPONSE))
        failing = fake_eth_call({SELECTORS["getPoolAndPositionInfo"]: TransportError("RPC call failed: 429 Too Many Requests", 429)})
        with patch.object(position_reader, "eth_call", failing):
            with pytest.raises(PositionResolutionError):
                asyncio.run(fetch_position_with_simulation("3", "v4", 1, WALLET, client=client, verbose=False))
        client.simulate.assert_not_called()


# ═══════════════════════════════════════════════════════════════════════════
# 5. CLI (run.py + commands.py)
# ═══════════════════════════════════════════════════════════════════════════

from lp_exit.commands import cmd_position, is_valid_wallet
from run import create_parser, main


class TestParser:
    def test_position_defaults(self):
        args = create_parser().parse_args(["position", "--id", "12345"])
        assert args.chain_id == 1
        assert args.protocol == "v4"
        assert args.percentage == 100
        assert args.wallet is None
        assert args.json is False

    @pytest.mark.parametrize("pct", ["0", "101", "abc"])
    def test_percentage_out_of_range(self, pct):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["position", "--id", "1", "--percentage", pct])

    def test_protocol_choices(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args(["position", "--id", "1", "--protocol", "v2"])

    def test_chains_command(self, capsys):
        assert main(["chains"]) == 0
        out = capsys.readouterr().out
        assert "Unichain (chain ID 130)" in out
        assert "0xbd216513d74c8cf14cf4747e6aaa6420ff64ee9e" in out


class TestCmdPosition:
    def test_wallet_validation(self):
        assert is_valid_wallet(WALLET)
        assert not is_valid_wallet("0x123")
        assert not is_valid_wallet(None)

    def test_invalid_wallet_exit_code(self, capsys):
        assert asyncio.run(cmd_position("1", 1, wallet="nope")) == 1
        assert "Invalid wallet" in capsys.readouterr().out

    def test_json_output(self, capsys):
        snap = _snapshot(decrease_simulation=SimulationResult.failure("Trading API error: 500 Internal Server Error", "HttpStatus"))
        with patch.object(position_reader, "fetch_position_with_simulation", AsyncMock(return_value=snap)):
            code = asyncio.run(cmd_position("12345", 1, wallet=WALLET, as_json=True))
        assert code == 0
        data = json.loads(capsys.readouterr().out)
        assert data["liquidity"] == "500000"
        assert data["decreaseSimulation"]["success"] is False

    def test_resolution_failure_message(self, capsys):
        err = PositionResolutionError("12345", 1, "RPC error: execution reverted")
        with patch.object(position_reader, "fetch_position_with_simulation", AsyncMock(side_effect=err)):
            code = asyncio.run(cmd_position("12345", 1))
        assert code == 1
        assert "Position data unavailable" in capsys.readouterr().out

    def test_simulation_failure_message(self, capsys):
        snap = _snapshot(decrease_simulation=SimulationResult.failure("Trading API error: 500 Internal Server Error", "HttpStatus"))
        with patch.object(position_reader, "fetch_position_with_simulation", AsyncMock(return_value=snap)):
            code = asyncio.run(cmd_position("12345", 1, wallet=WALLET))
        out = capsys.readouterr().out
        assert code == 0
        assert "Liquidity    : 500000" in out
        assert "liquidity-removal preview unavailable: Trading API error: 500" in out

    def test_v3_renders_partial(self, capsys):
        snap = PositionSnapshot(id="9", protocol="v3", chain_id=1, status="unsupported", message="not yet supported")
        with patch.object(position_reader, "fetch_position_with_simulation", AsyncMock(return_value=snap)):
            code = asyncio.run(cmd_position("9", 1, protocol="v3"))
        assert code == 0
        assert "not yet supported" in capsys.readouterr().out
