"""Witness assembly for the membership (voting) circuit."""

from zkvote_toolkit.merkle.hashing import FieldLike, Hasher, to_field
from zkvote_toolkit.merkle.tree import IncrementalMerkleTree
from zkvote_toolkit.shared.exceptions import WitnessError
from zkvote_toolkit.shared.types import MembershipWitness


def compute_commitment(
    secret: FieldLike, nullifier: FieldLike, hasher: Hasher
) -> int:
    """H(secret, nullifier): the value registered on-chain."""
    return hasher.hash(
        (to_field(secret, "secret"), to_field(nullifier, "nullifier"))
    )


def compute_nullifier_hash(nullifier: FieldLike, hasher: Hasher) -> int:
    """H(nullifier): published with the vote to block a second ballot."""
    return hasher.hash((to_field(nullifier, "nullifier"),))


class WitnessAssembler:
    """Builds circuit inputs from a voter's secrets and the rebuilt registry."""

    def __init__(self, hasher: Hasher):
        self.hasher = hasher

    def assemble(
        self,
        secret: FieldLike,
        nullifier: FieldLike,
        tree: IncrementalMerkleTree,
        index: int,
    ) -> MembershipWitness:
        """
        Package secret, nullifier, nullifier hash, root and path.

        Args:
            secret: voter secret (int, decimal or 0x-hex string)
            nullifier: voter nullifier
            tree: registry tree holding the voter's commitment
            index: position of the commitment in `tree`

        Returns:
            MembershipWitness with every value as a decimal string

        Raises:
            WitnessError: inputs outside the field, or the leaf at `index`
                is not H(secret, nullifier)
        """
        try:
            secret_value = to_field(secret, "secret")
            nullifier_value = to_field(nullifier, "nullifier")
        except ValueError as e:
            raise WitnessError(str(e)) from e

        commitment = compute_commitment(
            secret_value, nullifier_value, self.hasher
        )
        leaves = tree.leaves
        if not 0 <= index < len(leaves):
            raise WitnessError(
                f"Leaf index {index} out of range (tree has {len(leaves)} leaves)"
            )
        if leaves[index] != commitment:
            raise WitnessError(
                f"Leaf {index} does not match H(secret, nullifier)"
            )

        nullifier_hash = compute_nullifier_hash(nullifier_value, self.hasher)
        path = tree.sibling_path(index)

        return MembershipWitness(
            secret=str(secret_value),
            nullifier=str(nullifier_value),
            nullifier_hash=str(nullifier_hash),
            root=str(tree.root),
            path_elements=[str(e) for e in path.elements],
            path_indices=[str(i) for i in path.indices],
        )
