"""All constants and runtime configuration for the project"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from eth_utils import is_address, to_checksum_address

from zkvote_toolkit.shared.exceptions import ConfigurationException

load_dotenv()


class FieldConstants:
    """BN254 scalar field shared by circom circuits and the EVM verifier"""

    SNARK_SCALAR_FIELD = 21888242871839275222246405745257275088548364400416034343698204186575808495617


class RegistryConstants:
    """Defaults for the on-chain voter registry"""

    REGISTERED_EVENT = "Registered"
    ELECTION_ABI = "zk_election"

    # Deployment block of the reference election on Polygon Amoy
    DEFAULT_START_BLOCK = 3595561
    DEFAULT_TREE_DEPTH = 3
    DEFAULT_ZERO_VALUE = 0
    DEFAULT_ROOT_HISTORY_SIZE = 3
    DEFAULT_CHAIN_ID = 80002

    HASH_FUNCTIONS = ("poseidon", "keccak256")


class RetrievalConstants:
    """Log retrieval limits"""

    SPLIT_BACKOFF_SECONDS = 0.5
    RPC_TIMEOUT_SECONDS = 30.0
    MIN_BLOCK_SPAN = 1
    MAX_SPLIT_DEPTH = 32
    MAX_CONCURRENCY = 8

    # Known provider messages for "response too large"
    SIZE_LIMIT_MARKERS = (
        "log response size exceeded",
        "query returned more than 10000 results",
        "query returned more than",
        "response size should not greater than",
        "block range is too wide",
        "exceed maximum block range",
        "range too large",
    )


class CircuitConstants:
    """Circuit artifact layout: <circuits_dir>/voting/..."""

    CIRCUIT_NAME = "voting"
    WASM_FILE = "Voting.wasm"
    ZKEY_FILE = "circuit_final.zkey"
    VERIFICATION_KEY_FILE = "verification_key.json"
    DEFAULT_SNARKJS_BIN = "snarkjs"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw, 0)
    except ValueError:
        raise ConfigurationException(
            f"Environment variable {name} must be an integer, got {raw!r}"
        )


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationException(
            f"Environment variable {name} must be a number, got {raw!r}"
        )


@dataclass
class ElectionConfig:
    """
    Everything the ballot-proof pipeline needs to reach the chain and the
    prover. Passed explicitly into each component.
    """

    rpc_url: Optional[str] = None
    contract_address: Optional[str] = None
    chain_id: int = RegistryConstants.DEFAULT_CHAIN_ID
    wallet_private_key: Optional[str] = field(default=None, repr=False)

    start_block: int = RegistryConstants.DEFAULT_START_BLOCK
    tree_depth: int = RegistryConstants.DEFAULT_TREE_DEPTH
    zero_value: int = RegistryConstants.DEFAULT_ZERO_VALUE
    hash_function: str = "poseidon"
    root_history_size: int = RegistryConstants.DEFAULT_ROOT_HISTORY_SIZE

    circuits_dir: Path = Path("circuits")
    snarkjs_bin: str = CircuitConstants.DEFAULT_SNARKJS_BIN

    rpc_timeout: float = RetrievalConstants.RPC_TIMEOUT_SECONDS
    split_backoff: float = RetrievalConstants.SPLIT_BACKOFF_SECONDS
    min_block_span: int = RetrievalConstants.MIN_BLOCK_SPAN
    max_split_depth: int = RetrievalConstants.MAX_SPLIT_DEPTH
    max_concurrency: int = RetrievalConstants.MAX_CONCURRENCY

    pipeline_timeout: Optional[float] = 300.0
    stale_retries: int = 2
    verify_root: bool = True
    verify_proofs: bool = False

    @classmethod
    def from_env(cls, **overrides) -> "ElectionConfig":
        """Build a config from ZKV_* environment variables."""
        config = cls(
            rpc_url=os.getenv("ZKV_RPC_URL"),
            contract_address=os.getenv("ZKV_CONTRACT_ADDRESS"),
            chain_id=_env_int("ZKV_CHAIN_ID", RegistryConstants.DEFAULT_CHAIN_ID),
            wallet_private_key=os.getenv("ZKV_WALLET_PRIVATE_KEY"),
            start_block=_env_int(
                "ZKV_START_BLOCK", RegistryConstants.DEFAULT_START_BLOCK
            ),
            tree_depth=_env_int(
                "ZKV_TREE_DEPTH", RegistryConstants.DEFAULT_TREE_DEPTH
            ),
            zero_value=_env_int(
                "ZKV_ZERO_VALUE", RegistryConstants.DEFAULT_ZERO_VALUE
            ),
            hash_function=os.getenv("ZKV_HASH_FUNCTION", "poseidon").lower(),
            root_history_size=_env_int(
                "ZKV_ROOT_HISTORY_SIZE",
                RegistryConstants.DEFAULT_ROOT_HISTORY_SIZE,
            ),
            circuits_dir=Path(os.getenv("ZKV_CIRCUITS_DIR", "circuits")),
            snarkjs_bin=os.getenv(
                "ZKV_SNARKJS_BIN", CircuitConstants.DEFAULT_SNARKJS_BIN
            ),
            rpc_timeout=_env_float(
                "ZKV_RPC_TIMEOUT", RetrievalConstants.RPC_TIMEOUT_SECONDS
            ),
        )
        if overrides:
            config = replace(
                config,
                **{k: v for k, v in overrides.items() if v is not None},
            )
        return config

    def validate(self, require_wallet: bool = False) -> "ElectionConfig":
        """Raise ConfigurationException on missing or invalid settings."""
        if not self.rpc_url:
            raise ConfigurationException(
                "RPC URL is not set (ZKV_RPC_URL)"
            )
        if not self.contract_address:
            raise ConfigurationException(
                "Election contract address is not set (ZKV_CONTRACT_ADDRESS)"
            )
        if not is_address(self.contract_address):
            raise ConfigurationException(
                f"Invalid election contract address: {self.contract_address}"
            )
        self.contract_address = to_checksum_address(self.contract_address)

        if self.tree_depth < 1:
            raise ConfigurationException(
                f"Tree depth must be positive, got {self.tree_depth}"
            )
        if self.hash_function not in RegistryConstants.HASH_FUNCTIONS:
            raise ConfigurationException(
                f"Unknown hash function {self.hash_function!r}. "
                f"Must be one of {RegistryConstants.HASH_FUNCTIONS}"
            )
        if not 0 <= self.zero_value < FieldConstants.SNARK_SCALAR_FIELD:
            raise ConfigurationException("Zero value must be a field element")
        if self.start_block < 0:
            raise ConfigurationException("Start block must not be negative")
        if require_wallet and not self.wallet_private_key:
            raise ConfigurationException(
                "Wallet private key is not set (ZKV_WALLET_PRIVATE_KEY)"
            )
        return self
