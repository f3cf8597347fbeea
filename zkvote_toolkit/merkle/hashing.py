"""
Field-element hash functions for the voter registry.

The registry tree, the commitment `H(secret, nullifier)` and the nullifier
hash `H(nullifier)` must use exactly the hash the election contract and the
circuit use. Two are provided:

- PoseidonHasher: circomlib Poseidon, computed by circomlibjs in a long-lived
  Node.js helper process, so results are bit-identical to the circuit.
- Keccak256Hasher: keccak256 over 32-byte big-endian words, reduced into the
  BN254 scalar field, for registries that hash with keccak on-chain.
"""

import json
import os
import selectors
import shutil
import subprocess
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol, Sequence, Tuple, Union

from eth_abi import encode
from eth_utils import keccak

from zkvote_toolkit.shared.constants import FieldConstants
from zkvote_toolkit.shared.exceptions import ConfigurationException
from zkvote_toolkit.shared.logging import get_logger

_logger = get_logger(__name__)

SNARK_SCALAR_FIELD = FieldConstants.SNARK_SCALAR_FIELD

FieldLike = Union[int, str]


def to_field(value: FieldLike, name: str = "value") -> int:
    """
    Parse an int, decimal string or 0x-hex string into a field element.

    Raises:
        ValueError: not an integer, or outside [0, p)
    """
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got bool")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            number = int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError:
            raise ValueError(f"{name} is not an integer: {value!r}")
    else:
        raise ValueError(
            f"{name} must be an int or string, got {type(value).__name__}"
        )

    if not 0 <= number < SNARK_SCALAR_FIELD:
        raise ValueError(f"{name} is outside the SNARK scalar field")
    return number


class Hasher(Protocol):
    """Hash over one or more field elements."""

    name: str

    def hash(self, inputs: Sequence[int]) -> int: ...

    def hash_pair(self, left: int, right: int) -> int: ...


class Keccak256Hasher:
    """keccak256(abi.encode(uint256...)) % p"""

    name = "keccak256"

    def hash(self, inputs: Sequence[int]) -> int:
        if not inputs:
            raise ValueError("Cannot hash an empty input list")
        digest = keccak(encode(["uint256"] * len(inputs), list(inputs)))
        return int.from_bytes(digest, byteorder="big") % SNARK_SCALAR_FIELD

    def hash_pair(self, left: int, right: int) -> int:
        return self.hash((left, right))


class PoseidonHasher:
    """
    Wrapper for circomlib-compatible Poseidon hash.

    Starts `node poseidon_node.js` once and exchanges one JSON line per hash,
    so building a tree does not spawn a process per node. `circomlibjs` must
    be resolvable from `node_path` (a directory containing node_modules).
    A reply that does not arrive within `timeout` seconds kills the helper.
    """

    name = "poseidon"
    MAX_INPUTS = 16

    def __init__(
        self,
        node_bin: Optional[str] = None,
        node_path: Optional[Path] = None,
        timeout: float = 30.0,
    ):
        self.node_bin = node_bin or os.getenv("ZKV_NODE_BIN", "node")
        self.node_path = Path(
            node_path or os.getenv("ZKV_NODE_PATH", os.getcwd())
        )
        self.script_path = Path(__file__).with_name("poseidon_node.js")
        self.timeout = timeout
        self._process: Optional[subprocess.Popen] = None
        self._lock = threading.Lock()
        # Cache for computed hashes to avoid repeated round-trips
        self._cache: Dict[Tuple[int, ...], int] = {}

    def _start(self) -> subprocess.Popen:
        if shutil.which(self.node_bin) is None:
            raise ConfigurationException(
                f"Node.js not found ({self.node_bin}). "
                "Install Node.js and circomlibjs to use Poseidon hashing."
            )
        _logger.debug(f"Starting Poseidon helper from {self.node_path}")
        env = dict(os.environ)
        env["NODE_PATH"] = str(self.node_path / "node_modules")
        return subprocess.Popen(
            [self.node_bin, str(self.script_path)],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            bufsize=1,
            cwd=str(self.node_path),
            env=env,
        )

    def _request(self, inputs: Sequence[int]) -> int:
        if self._process is None or self._process.poll() is not None:
            self._process = self._start()

        process = self._process
        if process.stdin is None or process.stdout is None:
            raise RuntimeError("Poseidon helper has no stdio pipes")

        try:
            process.stdin.write(json.dumps([str(x) for x in inputs]) + "\n")
            process.stdin.flush()
        except BrokenPipeError as e:
            self._kill()
            raise RuntimeError("Poseidon helper exited before the request") from e

        with selectors.DefaultSelector() as selector:
            selector.register(process.stdout, selectors.EVENT_READ)
            ready = selector.select(self.timeout)
        if not ready:
            self._kill()
            raise RuntimeError(
                f"Poseidon helper did not answer within {self.timeout}s"
            )
        line = process.stdout.readline()

        if not line:
            code = process.poll()
            self._kill()
            raise RuntimeError(f"Poseidon helper exited (code {code})")

        reply = json.loads(line)
        if "error" in reply:
            raise RuntimeError(f"Poseidon hash failed: {reply['error']}")
        return int(reply["hash"])

    def hash(self, inputs: Sequence[int]) -> int:
        if not 1 <= len(inputs) <= self.MAX_INPUTS:
            raise ValueError(
                f"Poseidon takes 1 to {self.MAX_INPUTS} inputs, got {len(inputs)}"
            )
        key = tuple(int(x) for x in inputs)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        with self._lock:
            value = self._request(key)
        self._cache[key] = value
        return value

    def hash_pair(self, left: int, right: int) -> int:
        return self.hash((left, right))

    def _kill(self) -> None:
        if self._process is not None:
            self._process.kill()
            self._process.wait()
            self._process = None

    def close(self) -> None:
        """Stop the helper process."""
        if self._process is not None:
            if self._process.stdin:
                self._process.stdin.close()
            try:
                self._process.wait(timeout=self.timeout)
            except subprocess.TimeoutExpired:
                self._process.kill()
            self._process = None

    def __enter__(self) -> "PoseidonHasher":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def get_hasher(name: str) -> Hasher:
    """Resolve a configured hash function name."""
    name = name.lower()
    if name == "poseidon":
        return PoseidonHasher()
    if name == "keccak256":
        return Keccak256Hasher()
    raise ConfigurationException(f"Unknown hash function: {name}")
