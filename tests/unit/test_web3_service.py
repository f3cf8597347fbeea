"""
Unit tests for the RPC adapter and provider error classification.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, PropertyMock

import pytest
from eth_utils import to_checksum_address
from web3.middleware import ExtraDataToPOAMiddleware

from zkvote_toolkit.shared.exceptions import RetrievalError, SizeLimitExceeded
from zkvote_toolkit.shared.services.web3_service import (
    RpcErrorKind,
    Web3Service,
    classify_rpc_error,
)

ADDRESS = "0x7e1444ba99dcdffe8fbdb42c02fb0da4aaace4d5"


class TestClassifyRpcError:
    """Tests for classify_rpc_error."""

    def test_json_rpc_payload(self):
        """web3 raises ValueError carrying the JSON-RPC error dict."""
        error = ValueError(
            {"code": -32005, "message": "query returned more than 10000 results"}
        )
        assert classify_rpc_error(error) is RpcErrorKind.SIZE_LIMIT

    def test_nested_data_message(self):
        error = ValueError(
            {
                "code": -32000,
                "message": "internal error",
                "data": {"message": "Log response size exceeded."},
            }
        )
        assert classify_rpc_error(error) is RpcErrorKind.SIZE_LIMIT

    def test_rpc_response_attribute(self):
        """Newer web3 versions attach the response to the exception."""
        error = Exception("RPC error")
        error.rpc_response = {"error": {"message": "block range is too wide"}}

        assert classify_rpc_error(error) is RpcErrorKind.SIZE_LIMIT

    def test_timeout(self):
        assert classify_rpc_error(asyncio.TimeoutError()) is RpcErrorKind.TIMEOUT

    def test_other(self):
        assert (
            classify_rpc_error(ConnectionError("connection refused"))
            is RpcErrorKind.OTHER
        )

    def test_custom_markers(self):
        """Provider-specific markers can be supplied."""
        error = ValueError("too many logs, narrow your filter")

        assert classify_rpc_error(error) is RpcErrorKind.OTHER
        assert (
            classify_rpc_error(error, size_limit_markers=["too many logs"])
            is RpcErrorKind.SIZE_LIMIT
        )


@pytest.fixture
def w3():
    mock = MagicMock()
    mock.eth.get_logs = AsyncMock(return_value=[])
    return mock


class TestGetLogs:
    """Tests for Web3Service.get_logs."""

    @pytest.mark.asyncio
    async def test_filter_params(self, w3):
        """The inclusive range and topics are passed through."""
        w3.eth.get_logs.return_value = [{"blockNumber": 5}]
        service = Web3Service(80002, "http://localhost:8545", w3=w3)

        logs = await service.get_logs(ADDRESS.lower(), ["0xabc"], 1, 9)

        assert logs == [{"blockNumber": 5}]
        params = w3.eth.get_logs.call_args.args[0]
        assert params == {
            "address": to_checksum_address(ADDRESS),
            "topics": ["0xabc"],
            "fromBlock": 1,
            "toBlock": 9,
        }

    @pytest.mark.asyncio
    async def test_size_limit(self, w3):
        w3.eth.get_logs.side_effect = ValueError(
            {"code": -32005, "message": "query returned more than 10000 results"}
        )
        service = Web3Service(80002, "http://localhost:8545", w3=w3)

        with pytest.raises(SizeLimitExceeded) as exc_info:
            await service.get_logs(ADDRESS, [], 10, 20)
        assert (exc_info.value.from_block, exc_info.value.to_block) == (10, 20)

    @pytest.mark.asyncio
    async def test_other_failure(self, w3):
        w3.eth.get_logs.side_effect = ConnectionError("connection refused")
        service = Web3Service(80002, "http://localhost:8545", w3=w3)

        with pytest.raises(RetrievalError, match="connection refused"):
            await service.get_logs(ADDRESS, [], 10, 20)


class TestInitialization:
    """Tests for building the AsyncWeb3 instance."""

    def test_poa_middleware_on_non_mainnet(self):
        """Polygon-style chains need the extraData middleware."""
        service = Web3Service(80002, "http://localhost:8545")

        assert ExtraDataToPOAMiddleware in service.w3.middleware_onion

    def test_no_poa_middleware_on_mainnet(self):
        service = Web3Service(1, "http://localhost:8545")

        assert ExtraDataToPOAMiddleware not in service.w3.middleware_onion

    @pytest.mark.asyncio
    async def test_block_number_failure(self, w3):
        type(w3.eth).block_number = PropertyMock(
            side_effect=ConnectionError("down")
        )
        service = Web3Service(80002, "http://localhost:8545", w3=w3)

        with pytest.raises(RetrievalError, match="block number"):
            await service.get_block_number()
