"""
Pytest configuration and shared fixtures.

This module provides common fixtures and configuration for all tests.
Trees are hashed with Keccak256Hasher so no Node.js runtime is needed.
"""

from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_abi import encode
from eth_utils import event_abi_to_log_topic, to_checksum_address

from zkvote_toolkit.merkle.hashing import Keccak256Hasher
from zkvote_toolkit.shared.constants import ElectionConfig
from zkvote_toolkit.shared.exceptions import SizeLimitExceeded
from zkvote_toolkit.shared.services.resource_manager import resource_manager


class FakeLogSource:
    """
    In-memory eth_getLogs provider.

    Refuses any query whose result would exceed `max_results`, the way
    hosted providers do, and records every range it was asked for.
    """

    def __init__(
        self,
        logs: List[Dict[str, Any]],
        head: int,
        max_results: Optional[int] = None,
    ):
        self.logs = logs
        self.head = head
        self.max_results = max_results
        self.calls: List[tuple] = []

    async def get_block_number(self) -> int:
        return self.head

    async def get_logs(self, address, topics, from_block, to_block):
        self.calls.append((from_block, to_block))
        matched = [
            log
            for log in self.logs
            if from_block <= log["blockNumber"] <= to_block
        ]
        if self.max_results is not None and len(matched) > self.max_results:
            raise SizeLimitExceeded(
                "query returned more than 10000 results", from_block, to_block
            )
        return matched


@pytest.fixture
def keccak_hasher() -> Keccak256Hasher:
    """Hasher used for every tree in the unit tests."""
    return Keccak256Hasher()


@pytest.fixture
def sample_contract_address() -> str:
    """Sample election contract address for tests."""
    return to_checksum_address("0x7e1444ba99dcdffe8fbdb42c02fb0da4aaace4d5")


@pytest.fixture
def sample_wallet_key() -> str:
    """Throwaway private key (hardhat account #0)."""
    return "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"


@pytest.fixture
def election_config(sample_contract_address) -> ElectionConfig:
    """Config for a depth-3 keccak registry with fast retrieval settings."""
    return ElectionConfig(
        rpc_url="http://localhost:8545",
        contract_address=sample_contract_address,
        chain_id=31337,
        start_block=0,
        tree_depth=3,
        hash_function="keccak256",
        split_backoff=0,
        rpc_timeout=5.0,
        pipeline_timeout=10.0,
        stale_retries=2,
    )


@pytest.fixture
def registered_topic() -> bytes:
    """topic0 of the packaged Registered event."""
    event_abi = resource_manager.load_event_abi("zk_election", "Registered")
    return event_abi_to_log_topic(event_abi)


@pytest.fixture
def make_registered_log(registered_topic) -> Callable[..., Dict[str, Any]]:
    """Factory for raw `Registered(commitment, index)` logs."""

    def _make(
        commitment: int, index: int, block_number: int = 0
    ) -> Dict[str, Any]:
        return {
            "address": "0x7E1444BA99dcdFfE8fBdb42C02fb0DA4AAAcE4d5",
            "topics": [registered_topic],
            "data": encode(["uint256", "uint256"], [commitment, index]),
            "blockNumber": block_number,
            "transactionHash": bytes([index % 256]) * 32,
            "logIndex": 0,
        }

    return _make


@pytest.fixture
def fake_log_source_factory() -> Callable[..., FakeLogSource]:
    """Factory for in-memory log providers."""
    return FakeLogSource


@pytest.fixture
def mock_election_contract() -> MagicMock:
    """ElectionContract double with async view calls."""
    contract = MagicMock()
    contract.accepted_roots = AsyncMock(return_value=[])
    contract.is_nullifier_spent = AsyncMock(return_value=False)
    contract.cast_vote = AsyncMock(return_value="0x" + "ab" * 32)
    return contract


@pytest.fixture
def sample_snarkjs_proof() -> Dict[str, Any]:
    """Groth16 proof as written by `snarkjs groth16 fullprove`."""
    return {
        "pi_a": ["1", "2", "1"],
        "pi_b": [["3", "4"], ["5", "6"], ["1", "0"]],
        "pi_c": ["7", "8", "1"],
        "protocol": "groth16",
        "curve": "bn128",
    }


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line("markers", "slow: mark test as slow-running")
