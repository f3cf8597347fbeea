from zkvote_toolkit.merkle.hashing import (
    Keccak256Hasher,
    PoseidonHasher,
    get_hasher,
)
from zkvote_toolkit.merkle.tree import (
    IncrementalMerkleTree,
    SiblingPath,
    build,
    locate,
    sibling_path,
    verify_path,
)

__all__ = [
    "IncrementalMerkleTree",
    "Keccak256Hasher",
    "PoseidonHasher",
    "SiblingPath",
    "build",
    "get_hasher",
    "locate",
    "sibling_path",
    "verify_path",
]
