"""
Web3 Service module for talking to the election's RPC endpoint.

This module provides a Web3Service class that owns one AsyncWeb3 connection
and acts as the RPC adapter for the rest of the toolkit: every provider
failure on a log query is classified here into a typed error, so callers
never inspect error text themselves.
"""

import asyncio
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.middleware import ExtraDataToPOAMiddleware

from zkvote_toolkit.shared.constants import RetrievalConstants
from zkvote_toolkit.shared.exceptions import (
    RetrievalError,
    SizeLimitExceeded,
)
from zkvote_toolkit.shared.services.resource_manager import (
    resource_manager,
)


class RpcErrorKind(Enum):
    """Typed classification of provider failures."""

    SIZE_LIMIT = "size_limit"  # Response too large, split the range
    TIMEOUT = "timeout"  # Deadline hit
    OTHER = "other"  # Anything else is fatal


def _collect_messages(error: BaseException) -> List[str]:
    """Gather every message a provider may have hidden in an exception."""
    messages: List[str] = [str(error)]

    rpc_response = getattr(error, "rpc_response", None)
    if isinstance(rpc_response, dict):
        err = rpc_response.get("error")
        if isinstance(err, dict) and err.get("message"):
            messages.append(str(err["message"]))

    for arg in getattr(error, "args", ()):
        if isinstance(arg, dict):
            if arg.get("message"):
                messages.append(str(arg["message"]))
            data = arg.get("data")
            if isinstance(data, dict) and data.get("message"):
                messages.append(str(data["message"]))
        elif isinstance(arg, str):
            messages.append(arg)

    return messages


def classify_rpc_error(
    error: BaseException,
    size_limit_markers: Iterable[str] = RetrievalConstants.SIZE_LIMIT_MARKERS,
) -> RpcErrorKind:
    """
    Classify a provider exception.

    Providers do not agree on an error code for oversized log responses, so
    the payload message is matched against known markers. This is the only
    place in the toolkit that looks at error text.
    """
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return RpcErrorKind.TIMEOUT

    markers = [m.lower() for m in size_limit_markers]
    for message in _collect_messages(error):
        lowered = message.lower()
        if any(marker in lowered for marker in markers):
            return RpcErrorKind.SIZE_LIMIT

    return RpcErrorKind.OTHER


class Web3Service:
    """
    A service class for managing an AsyncWeb3 connection and interactions.

    Implements the log source used by LogRetriever (`get_logs`,
    `get_block_number`) and hands out contract instances.
    """

    def __init__(
        self,
        chain_id: int,
        rpc_url: str,
        request_timeout: float = RetrievalConstants.RPC_TIMEOUT_SECONDS,
        w3: Optional[AsyncWeb3] = None,
    ):
        """
        Initialize the Web3Service.

        Args:
            chain_id (int): The chain ID to use.
            rpc_url (str): The RPC URL to use.
            request_timeout (float): HTTP timeout for a single request.
            w3 (AsyncWeb3): Pre-built instance, mainly for tests.
        """
        self.chain_id = chain_id
        self.rpc_url = rpc_url
        self.w3 = w3 or self._initialize_web3(rpc_url, request_timeout)
        self._contract_cache: Dict[Any, Any] = {}

    def _initialize_web3(self, rpc_url: str, request_timeout: float) -> AsyncWeb3:
        """Initialize AsyncWeb3 instance with middleware if needed"""
        w3 = AsyncWeb3(
            AsyncHTTPProvider(
                rpc_url, request_kwargs={"timeout": request_timeout}
            )
        )

        # Add POA middleware for non-mainnet chains
        if self.chain_id != 1:
            w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

        return w3

    async def get_block_number(self) -> int:
        """Get the latest block number"""
        try:
            return int(await self.w3.eth.block_number)
        except Exception as e:
            raise RetrievalError(f"Error fetching block number: {e}") from e

    async def get_logs(
        self,
        address: str,
        topics: Sequence[Optional[str]],
        from_block: int,
        to_block: int,
    ) -> List[Dict[str, Any]]:
        """
        Run eth_getLogs over an inclusive block range.

        Raises:
            SizeLimitExceeded: the provider refused the range as too large
            RetrievalError: any other failure
        """
        filter_params = {
            "address": AsyncWeb3.to_checksum_address(address),
            "topics": list(topics),
            "fromBlock": from_block,
            "toBlock": to_block,
        }
        try:
            logs = await self.w3.eth.get_logs(filter_params)
        except Exception as e:
            kind = classify_rpc_error(e)
            if kind is RpcErrorKind.SIZE_LIMIT:
                raise SizeLimitExceeded(str(e), from_block, to_block) from e
            raise RetrievalError(
                f"Error fetching logs for blocks {from_block}-{to_block} "
                f"({kind.value}): {e}",
                from_block,
                to_block,
            ) from e
        return [dict(log) for log in logs]

    def get_contract(self, address: str, abi_name: str) -> Any:
        """Get a contract instance for a given address and ABI name"""
        key = (address, abi_name)
        if key not in self._contract_cache:
            abi = resource_manager.load_abi(abi_name)
            self._contract_cache[key] = self.w3.eth.contract(
                address=AsyncWeb3.to_checksum_address(address), abi=abi
            )
        return self._contract_cache[key]
