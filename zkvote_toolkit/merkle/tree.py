"""
Incremental Merkle tree matching the election contract's voter registry.

Fixed depth, arity 2, empty slots padded with `zero_value`. Leaves are
appended in registration order; each insert rehashes only the path from the
new leaf to the root. Node storage is one plain list per level, so the root
depends only on the leaf sequence.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional

from zkvote_toolkit.merkle.hashing import Hasher
from zkvote_toolkit.shared.exceptions import CapacityError, NotFoundError
from zkvote_toolkit.shared.logging import get_logger

_logger = get_logger(__name__)


@dataclass(frozen=True)
class SiblingPath:
    """
    Membership path of one leaf.

    Attributes:
        elements: sibling hash at each level, leaf level first
        indices: 0 if the path node is the left child at that level, 1 if right
    """

    elements: List[int]
    indices: List[int]

    def __len__(self) -> int:
        return len(self.elements)


class IncrementalMerkleTree:
    """Append-only binary Merkle tree of fixed depth."""

    def __init__(self, depth: int, hasher: Hasher, zero_value: int = 0):
        if depth < 1:
            raise ValueError(f"Tree depth must be positive, got {depth}")

        self.depth = depth
        self.hasher = hasher
        self.zero_value = zero_value

        # zeroes[i] is the root of an empty subtree of height i
        self.zeroes: List[int] = [zero_value]
        for level in range(depth):
            self.zeroes.append(
                hasher.hash_pair(self.zeroes[level], self.zeroes[level])
            )

        self._nodes: List[List[int]] = [[] for _ in range(depth + 1)]
        self._root = self.zeroes[depth]

    @property
    def capacity(self) -> int:
        return 2**self.depth

    @property
    def root(self) -> int:
        return self._root

    @property
    def leaves(self) -> List[int]:
        return list(self._nodes[0])

    def __len__(self) -> int:
        return len(self._nodes[0])

    def insert(self, leaf: int) -> int:
        """Append a leaf and return its index."""
        index = len(self._nodes[0])
        if index >= self.capacity:
            raise CapacityError(
                f"Tree of depth {self.depth} is full ({self.capacity} leaves)"
            )

        self._nodes[0].append(leaf)
        node = leaf
        position = index

        for level in range(self.depth):
            if position % 2 == 1:
                node = self.hasher.hash_pair(
                    self._nodes[level][position - 1], node
                )
            else:
                node = self.hasher.hash_pair(node, self.zeroes[level])

            position //= 2
            parents = self._nodes[level + 1]
            if position < len(parents):
                parents[position] = node
            else:
                parents.append(node)

        self._root = node
        return index

    def index_of(self, leaf: int) -> int:
        """Position of the first leaf equal to `leaf`, or -1."""
        try:
            return self._nodes[0].index(leaf)
        except ValueError:
            return -1

    def _node(self, level: int, position: int) -> int:
        nodes = self._nodes[level]
        if position < len(nodes):
            return nodes[position]
        return self.zeroes[level]

    def sibling_path(self, index: int) -> SiblingPath:
        """Siblings and left/right bits from leaf `index` up to the root."""
        if not 0 <= index < len(self._nodes[0]):
            raise IndexError(
                f"Leaf index {index} out of range (tree has {len(self)} leaves)"
            )

        elements: List[int] = []
        indices: List[int] = []
        position = index

        for level in range(self.depth):
            is_right = position % 2
            sibling = position - 1 if is_right else position + 1
            elements.append(self._node(level, sibling))
            indices.append(is_right)
            position //= 2

        return SiblingPath(elements=elements, indices=indices)


def build(
    leaves: Iterable[int],
    depth: int,
    hasher: Hasher,
    zero_value: int = 0,
) -> IncrementalMerkleTree:
    """
    Insert leaves in order into a fresh tree.

    Raises:
        CapacityError: more leaves than 2**depth
    """
    leaves = list(leaves)
    tree = IncrementalMerkleTree(depth, hasher, zero_value)
    if len(leaves) > tree.capacity:
        raise CapacityError(
            f"Registry has {len(leaves)} commitments but a depth-{depth} "
            f"tree holds at most {tree.capacity}"
        )

    for leaf in leaves:
        tree.insert(leaf)

    _logger.debug(
        f"Built depth-{depth} tree with {len(leaves)} leaves, root {tree.root}"
    )
    return tree


def locate(tree: IncrementalMerkleTree, commitment: int) -> int:
    """
    Index of `commitment` in the tree.

    Raises:
        NotFoundError: the commitment is not registered, or the tree is stale
    """
    index = tree.index_of(commitment)
    if index < 0:
        raise NotFoundError(
            f"Commitment {commitment} is not in the registry "
            f"({len(tree)} leaves, root {tree.root})"
        )
    return index


def sibling_path(tree: IncrementalMerkleTree, index: int) -> SiblingPath:
    return tree.sibling_path(index)


def compute_root(
    leaf: int, path: SiblingPath, hasher: Hasher
) -> int:
    """Rehash from a leaf to the root along its path."""
    node = leaf
    for sibling, is_right in zip(path.elements, path.indices):
        if is_right:
            node = hasher.hash_pair(sibling, node)
        else:
            node = hasher.hash_pair(node, sibling)
    return node


def verify_path(
    leaf: int,
    path: SiblingPath,
    root: int,
    hasher: Hasher,
    depth: Optional[int] = None,
) -> bool:
    """True if `path` leads from `leaf` to `root`."""
    if depth is not None and len(path) != depth:
        return False
    return compute_root(leaf, path, hasher) == root
