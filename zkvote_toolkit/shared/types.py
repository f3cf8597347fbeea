"""
Shared type definitions used across the zkVote toolkit.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, TypedDict

from zkvote_toolkit.shared.constants import CircuitConstants
from zkvote_toolkit.shared.exceptions import ConfigurationException

# =============================================================================
# REGISTRY
# =============================================================================


@dataclass(frozen=True)
class EventRecord:
    """One decoded `Registered` event."""

    commitment: int
    registration_index: int
    block_number: Optional[int] = None  # Diagnostics only
    transaction_hash: Optional[str] = None
    log_index: Optional[int] = None


# =============================================================================
# WITNESS & PROOF
# =============================================================================


class CircuitInput(TypedDict):
    """Input signals of the voting circuit, as snarkjs expects them."""

    secret: str
    nullifier: str
    nullifierHash: str
    root: str
    path_elements: List[str]
    path_index: List[str]


@dataclass(frozen=True)
class MembershipWitness:
    """Private and public inputs of the membership circuit, decimal strings."""

    secret: str
    nullifier: str
    nullifier_hash: str
    root: str
    path_elements: List[str]
    path_indices: List[str]

    def to_circuit_input(self) -> CircuitInput:
        return CircuitInput(
            secret=self.secret,
            nullifier=self.nullifier,
            nullifierHash=self.nullifier_hash,
            root=self.root,
            path_elements=list(self.path_elements),
            path_index=list(self.path_indices),
        )


@dataclass(frozen=True)
class ProofArtifact:
    """Groth16 proof in the verifier's positional ABI order."""

    a: List[str]
    b: List[List[str]]
    c: List[str]
    public_inputs: List[str]

    def as_call_args(
        self,
    ) -> Tuple[List[str], List[List[str]], List[str], List[str]]:
        return self.a, self.b, self.c, self.public_inputs

    def as_uint_args(
        self,
    ) -> Tuple[List[int], List[List[int]], List[int], List[int]]:
        """Same tuple with ints, as web3 encodes uint256 arguments."""
        return (
            [int(x) for x in self.a],
            [[int(x) for x in row] for row in self.b],
            [int(x) for x in self.c],
            [int(x) for x in self.public_inputs],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "a": self.a,
            "b": self.b,
            "c": self.c,
            "input": self.public_inputs,
        }


@dataclass(frozen=True)
class CircuitArtifacts:
    """Witness generator and proving key of the voting circuit."""

    wasm_path: Path
    zkey_path: Path
    verification_key_path: Optional[Path] = None

    @classmethod
    def from_directory(cls, circuits_dir: Path) -> "CircuitArtifacts":
        """Resolve <circuits_dir>/voting/{Voting.wasm,circuit_final.zkey}."""
        base = Path(circuits_dir) / CircuitConstants.CIRCUIT_NAME
        vkey = base / CircuitConstants.VERIFICATION_KEY_FILE
        return cls(
            wasm_path=base / CircuitConstants.WASM_FILE,
            zkey_path=base / CircuitConstants.ZKEY_FILE,
            verification_key_path=vkey if vkey.exists() else None,
        )

    def ensure_exists(self) -> "CircuitArtifacts":
        for path in (self.wasm_path, self.zkey_path):
            if not Path(path).is_file():
                raise ConfigurationException(
                    f"Circuit artifact not found: {path}"
                )
        return self


@dataclass
class BallotProof:
    """Everything produced by one run of the ballot-proof pipeline."""

    artifact: ProofArtifact
    witness: MembershipWitness
    leaf_index: int
    leaf_count: int
    root: int
    accepted_roots: List[int] = field(default_factory=list)

    @property
    def nullifier_hash(self) -> str:
        return self.witness.nullifier_hash

    def to_dict(self) -> Dict[str, Any]:
        """Public view; never includes the secret or nullifier."""
        return {
            "calldata": self.artifact.to_dict(),
            "root": str(self.root),
            "nullifier_hash": self.witness.nullifier_hash,
            "leaf_index": self.leaf_index,
            "leaf_count": self.leaf_count,
            "accepted_roots": [str(r) for r in self.accepted_roots],
        }
