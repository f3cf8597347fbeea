"""
Unit tests for the incremental Merkle tree and its helpers.
"""

import pytest

from zkvote_toolkit.merkle.tree import (
    IncrementalMerkleTree,
    build,
    compute_root,
    locate,
    sibling_path,
    verify_path,
)
from zkvote_toolkit.proofs.witness import compute_commitment
from zkvote_toolkit.shared.exceptions import CapacityError, NotFoundError


class TestBuild:
    """Tests for building trees from a leaf sequence."""

    def test_empty_tree_root_is_zero_subtree(self, keccak_hasher):
        """An empty tree's root is the root of an all-zero tree."""
        tree = build([], 3, keccak_hasher)

        z1 = keccak_hasher.hash_pair(0, 0)
        z2 = keccak_hasher.hash_pair(z1, z1)
        z3 = keccak_hasher.hash_pair(z2, z2)
        assert tree.zeroes == [0, z1, z2, z3]
        assert tree.root == z3
        assert len(tree) == 0

    def test_deterministic(self, keccak_hasher):
        """Same leaves, same root."""
        leaves = [11, 22, 33, 44, 55]

        assert (
            build(leaves, 4, keccak_hasher).root
            == build(leaves, 4, keccak_hasher).root
        )

    def test_order_matters(self, keccak_hasher):
        """The root commits to leaf order."""
        assert (
            build([1, 2, 3], 3, keccak_hasher).root
            != build([3, 2, 1], 3, keccak_hasher).root
        )

    def test_four_leaves_depth_three(self, keccak_hasher):
        """Root of 4 leaves equals the hand-built tree with 4 zero slots."""
        secret, nullifier = 1234, 5678
        c2 = compute_commitment(secret, nullifier, keccak_hasher)
        leaves = [101, 202, c2, 404]

        tree = build(leaves, 3, keccak_hasher)

        h = keccak_hasher.hash_pair
        z1 = h(0, 0)
        left = h(h(101, 202), h(c2, 404))
        right = h(z1, z1)
        assert tree.root == h(left, right)

        index = locate(tree, c2)
        path = sibling_path(tree, index)
        assert index == 2
        assert len(path) == 3
        assert path.elements == [404, h(101, 202), right]
        assert path.indices == [0, 1, 0]

    def test_capacity_exceeded(self, keccak_hasher):
        """A depth-2 tree holds at most 4 leaves."""
        with pytest.raises(CapacityError):
            build([1, 2, 3, 4, 5], 2, keccak_hasher)

    def test_full_tree(self, keccak_hasher):
        """Exactly 2**depth leaves fit."""
        tree = build([1, 2, 3, 4], 2, keccak_hasher)

        assert len(tree) == tree.capacity == 4
        with pytest.raises(CapacityError):
            tree.insert(5)

    def test_nonzero_zero_value(self, keccak_hasher):
        """Padding uses the configured zero value."""
        tree = build([], 1, keccak_hasher, zero_value=7)

        assert tree.root == keccak_hasher.hash_pair(7, 7)

    def test_invalid_depth(self, keccak_hasher):
        """Depth must be at least 1."""
        with pytest.raises(ValueError):
            IncrementalMerkleTree(0, keccak_hasher)


class TestIncrementalInsert:
    """Tests that incremental inserts match a full rebuild."""

    def test_root_after_each_insert(self, keccak_hasher):
        """Every intermediate root equals a fresh build of the prefix."""
        leaves = [5, 6, 7, 8, 9, 10, 11]
        tree = IncrementalMerkleTree(3, keccak_hasher)

        for count, leaf in enumerate(leaves, start=1):
            assert tree.insert(leaf) == count - 1
            assert tree.root == build(leaves[:count], 3, keccak_hasher).root


class TestLocateAndPaths:
    """Tests for locate and sibling paths."""

    def test_locate_every_leaf(self, keccak_hasher):
        """locate(build(leaves), leaves[i]) == i for unique leaves."""
        leaves = [17, 29, 31, 43, 59, 61]
        tree = build(leaves, 3, keccak_hasher)

        for i, leaf in enumerate(leaves):
            assert locate(tree, leaf) == i

    def test_locate_absent(self, keccak_hasher):
        """An unregistered commitment is NotFoundError."""
        tree = build([1, 2, 3], 3, keccak_hasher)

        with pytest.raises(NotFoundError):
            locate(tree, 999)

    def test_locate_first_duplicate(self, keccak_hasher):
        """With a repeated commitment the first position wins."""
        tree = build([8, 9, 8], 2, keccak_hasher)

        assert locate(tree, 8) == 0

    def test_paths_round_trip_to_root(self, keccak_hasher):
        """Rehashing along each path reproduces the root."""
        leaves = [3, 1, 4, 1, 5, 9, 2]
        tree = build(leaves, 3, keccak_hasher)

        for i, leaf in enumerate(leaves):
            path = sibling_path(tree, i)
            assert compute_root(leaf, path, keccak_hasher) == tree.root
            assert verify_path(leaf, path, tree.root, keccak_hasher, depth=3)

    def test_verify_rejects_wrong_leaf(self, keccak_hasher):
        """A path does not authenticate a different leaf."""
        tree = build([1, 2, 3, 4], 2, keccak_hasher)
        path = sibling_path(tree, 1)

        assert not verify_path(5, path, tree.root, keccak_hasher)

    def test_verify_rejects_wrong_depth(self, keccak_hasher):
        """Path length must equal the tree depth when given."""
        tree = build([1, 2], 2, keccak_hasher)
        path = sibling_path(tree, 0)

        assert not verify_path(1, path, tree.root, keccak_hasher, depth=3)

    def test_path_index_out_of_range(self, keccak_hasher):
        """Only occupied leaves have paths."""
        tree = build([1, 2], 3, keccak_hasher)

        with pytest.raises(IndexError):
            sibling_path(tree, 2)
