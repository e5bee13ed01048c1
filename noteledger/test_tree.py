from unittest import TestCase

from .crypto import HASH, Field
from .errors import TreeFull
from .tree import CommitmentTree, ZeroTable, compute_root


def naive_root(leaves: list[Field], depth: int) -> Field:
    level = list(leaves) + [Field(0)] * ((1 << depth) - len(leaves))
    for _ in range(depth):
        level = [HASH([level[i], level[i + 1]]) for i in range(0, len(level), 2)]
    return level[0]


class TestZeroTable(TestCase):
    def test_zero_table(self):
        zeros = ZeroTable(4)
        assert len(zeros) == 5
        assert zeros[0] == 0
        for k in range(1, 5):
            assert zeros[k] == HASH([zeros[k - 1], zeros[k - 1]])


class TestCommitmentTree(TestCase):
    def test_empty_root(self):
        tree = CommitmentTree(depth=4)
        assert tree.root == naive_root([], 4)
        assert tree.root == ZeroTable(4)[4]
        assert tree.next_index == 0

    def test_root_matches_full_recomputation(self):
        tree = CommitmentTree(depth=4)
        leaves = []
        for i in range(16):
            leaf = Field(i + 1)
            assert tree.insert(leaf) == i
            leaves.append(leaf)
            assert tree.root == naive_root(leaves, 4)
            assert tree.get_next_index() == i + 1

    def test_tree_full(self):
        tree = CommitmentTree(depth=2)
        for i in range(4):
            tree.insert(Field(i + 1))
        root = tree.root
        with self.assertRaises(TreeFull):
            tree.insert(Field(5))
        assert tree.root == root
        assert tree.next_index == 4

    def test_proofs_verify_against_current_root(self):
        tree = CommitmentTree(depth=5)
        for i in range(11):
            tree.insert(Field(100 + i))

        for i in range(11):
            path = tree.get_proof(i)
            assert path.leaf == Field(100 + i)
            assert len(path.siblings) == 5
            assert path.verify(tree.root)
            assert CommitmentTree.verify_proof(tree.root, path.leaf, i, path.siblings)
            assert compute_root(path.leaf, i, path.siblings) == tree.root

        path = tree.get_proof(3)
        assert not CommitmentTree.verify_proof(tree.root, Field(1), 3, path.siblings)
        assert not CommitmentTree.verify_proof(tree.root, path.leaf, 4, path.siblings)
        assert not CommitmentTree.verify_proof(tree.root, path.leaf, 32, path.siblings)

        with self.assertRaises(IndexError):
            tree.get_proof(11)

    def test_contains_and_index_of(self):
        tree = CommitmentTree(depth=3)
        tree.insert(Field(7))
        tree.insert(Field(8))
        assert tree.contains(Field(8))
        assert tree.index_of(Field(8)) == 1
        assert not tree.contains(Field(9))
        assert tree.index_of(Field(9)) is None
        assert list(tree.leaves()) == [Field(7), Field(8)]

    def test_rollback(self):
        tree = CommitmentTree(depth=4)
        for i in range(5):
            tree.insert(Field(i + 1))
        checkpoint = tree.checkpoint()
        root = tree.root

        for i in range(5, 11):
            tree.insert(Field(i + 1))
        tree.rollback(checkpoint)

        assert tree.root == root
        assert tree.next_index == 5
        assert not tree.contains(Field(6))

        # the tree keeps working as if the dropped leaves never existed
        leaves = [Field(i + 1) for i in range(5)]
        for leaf in [Field(50), Field(51)]:
            tree.insert(leaf)
            leaves.append(leaf)
        assert tree.root == naive_root(leaves, 4)

    def test_rollback_to_empty(self):
        tree = CommitmentTree(depth=3)
        checkpoint = tree.checkpoint()
        tree.insert(Field(1))
        tree.insert(Field(2))
        tree.rollback(checkpoint)
        assert tree.root == naive_root([], 3)
        assert len(tree) == 0
