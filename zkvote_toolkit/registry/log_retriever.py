"""
Retrieval of `Registered` logs under provider response limits.

A single eth_getLogs call is tried first. When the provider refuses it as too
large, the inclusive block range [lo, hi] is split into [lo, mid] and
[mid + 1, hi] after a short back-off and both halves are fetched
concurrently. The halves never overlap, so no log is returned twice; their
completion order does not matter because LeafDecoder re-sorts by
registration index.
"""

import asyncio
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

from zkvote_toolkit.registry.decoder import LeafDecoder
from zkvote_toolkit.shared.constants import RetrievalConstants
from zkvote_toolkit.shared.exceptions import (
    RetrievalError,
    SizeLimitExceeded,
)
from zkvote_toolkit.shared.logging import get_logger
from zkvote_toolkit.shared.types import EventRecord

_logger = get_logger(__name__)

BlockIdentifier = Union[int, str]


class LogSource(Protocol):
    """What LogRetriever needs from an RPC adapter (see Web3Service)."""

    async def get_logs(
        self,
        address: str,
        topics: Sequence[Optional[str]],
        from_block: int,
        to_block: int,
    ) -> List[Dict[str, Any]]: ...

    async def get_block_number(self) -> int: ...


class LogRetriever:
    """Fetches every log matching one address/topic filter in a block range."""

    def __init__(
        self,
        source: LogSource,
        address: str,
        topics: Sequence[Optional[str]],
        rpc_timeout: Optional[float] = RetrievalConstants.RPC_TIMEOUT_SECONDS,
        split_backoff: float = RetrievalConstants.SPLIT_BACKOFF_SECONDS,
        min_block_span: int = RetrievalConstants.MIN_BLOCK_SPAN,
        max_split_depth: int = RetrievalConstants.MAX_SPLIT_DEPTH,
        max_concurrency: int = RetrievalConstants.MAX_CONCURRENCY,
    ):
        if min_block_span < 1:
            raise ValueError("min_block_span must be at least 1")
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

        self.source = source
        self.address = address
        self.topics = list(topics)
        self.rpc_timeout = rpc_timeout
        self.split_backoff = split_backoff
        self.min_block_span = min_block_span
        self.max_split_depth = max_split_depth
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def resolve_block(self, block: BlockIdentifier) -> int:
        """Turn "latest" into a concrete block number."""
        if block == "latest":
            return await self._call(self.source.get_block_number(), "eth_blockNumber")
        if isinstance(block, int) and block >= 0:
            return block
        raise ValueError(f"Invalid block identifier: {block!r}")

    async def fetch_logs(
        self, from_block: int, to_block: BlockIdentifier = "latest"
    ) -> List[Dict[str, Any]]:
        """
        All matching raw logs in [from_block, to_block].

        Raises:
            RetrievalError: a non size-limit RPC failure, a timeout, or a range
                that cannot be split any further
        """
        upper = await self.resolve_block(to_block)
        if from_block > upper:
            _logger.debug(f"Empty range {from_block}-{upper}, nothing to fetch")
            return []

        logs = await self._fetch_range(from_block, upper, depth=0)
        _logger.info(
            f"Fetched {len(logs)} logs from blocks {from_block}-{upper}"
        )
        return logs

    async def fetch_events(
        self,
        from_block: int,
        to_block: BlockIdentifier = "latest",
        decoder: Optional[LeafDecoder] = None,
    ) -> List[EventRecord]:
        """Fetch and decode; records come back sorted by registration index."""
        decoder = decoder or LeafDecoder()
        return decoder.decode_records(
            await self.fetch_logs(from_block, to_block)
        )

    async def _fetch_range(
        self, lo: int, hi: int, depth: int
    ) -> List[Dict[str, Any]]:
        try:
            return await self._query(lo, hi)
        except SizeLimitExceeded as e:
            span = hi - lo + 1
            if span <= self.min_block_span:
                raise RetrievalError(
                    f"Blocks {lo}-{hi} exceed the provider's response limit "
                    f"and cannot be split further",
                    lo,
                    hi,
                ) from e
            if depth >= self.max_split_depth:
                raise RetrievalError(
                    f"Gave up on blocks {lo}-{hi} after {depth} range splits",
                    lo,
                    hi,
                ) from e

            mid = (lo + hi) // 2
            _logger.debug(
                f"Response too large for {lo}-{hi}, splitting at {mid} "
                f"(depth {depth + 1})"
            )
            await asyncio.sleep(self.split_backoff)

            lower, upper = await asyncio.gather(
                self._fetch_range(lo, mid, depth + 1),
                self._fetch_range(mid + 1, hi, depth + 1),
            )
            return lower + upper

    async def _query(self, lo: int, hi: int) -> List[Dict[str, Any]]:
        async with self._semaphore:
            return await self._call(
                self.source.get_logs(self.address, self.topics, lo, hi),
                f"eth_getLogs {lo}-{hi}",
                lo,
                hi,
            )

    async def _call(
        self,
        awaitable,
        description: str,
        lo: Optional[int] = None,
        hi: Optional[int] = None,
    ):
        try:
            if self.rpc_timeout is None:
                return await awaitable
            return await asyncio.wait_for(awaitable, timeout=self.rpc_timeout)
        except asyncio.TimeoutError as e:
            raise RetrievalError(
                f"{description} timed out after {self.rpc_timeout}s", lo, hi
            ) from e
