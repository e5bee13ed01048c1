"""
Incremental fixed-depth Merkle tree over note commitments.

Leaves are appended left to right. Every unfilled position holds the empty
subtree value of its level (the ZeroTable), so the root is always the hash of
the full 2^depth leaf tree while only O(depth) nodes are touched per insert.
"""

from dataclasses import dataclass
from typing import Iterator, Sequence

from noteledger.crypto import HASH, Field, Hasher
from noteledger.errors import TreeFull

DEFAULT_DEPTH = 20
MAX_DEPTH = 32

# The canonical empty leaf.
EMPTY_LEAF = Field(0)


class ZeroTable:
    """
    zeros[0] is the empty leaf, zeros[k] = hash(zeros[k-1], zeros[k-1]) is the
    root of an empty subtree of height k.
    """

    def __init__(self, depth: int, hasher: Hasher = HASH):
        zeros = [EMPTY_LEAF]
        for _ in range(depth):
            zeros.append(hasher([zeros[-1], zeros[-1]]))
        self._zeros = tuple(zeros)

    def __getitem__(self, level: int) -> Field:
        return self._zeros[level]

    def __len__(self):
        return len(self._zeros)

    def __iter__(self) -> Iterator[Field]:
        return iter(self._zeros)


@dataclass(frozen=True)
class MerklePath:
    leaf: Field
    index: int
    siblings: tuple[Field, ...]

    @property
    def path_indices(self) -> list[int]:
        """For each level, 1 if the node on the path is a right child."""
        return [(self.index >> level) & 1 for level in range(len(self.siblings))]

    def root(self, hasher: Hasher = HASH) -> Field:
        return compute_root(self.leaf, self.index, self.siblings, hasher)

    def verify(self, root: Field, hasher: Hasher = HASH) -> bool:
        return CommitmentTree.verify_proof(
            root, self.leaf, self.index, self.siblings, hasher
        )


def compute_root(
    leaf: Field, index: int, siblings: Sequence[Field], hasher: Hasher = HASH
) -> Field:
    node = Field(leaf)
    for sibling in siblings:
        if index % 2 == 0:
            node = hasher([node, sibling])
        else:
            node = hasher([sibling, node])
        index //= 2
    return node


@dataclass(frozen=True)
class TreeCheckpoint:
    next_index: int
    root: Field


class CommitmentTree:
    def __init__(self, depth: int = DEFAULT_DEPTH, hasher: Hasher = HASH):
        assert 0 < depth <= MAX_DEPTH, f"depth out of range: {depth}"
        self.depth = depth
        self.hasher = hasher
        self.zeros = ZeroTable(depth, hasher)

        # level -> {node index -> hash}; level 0 holds the leaves, level
        # `depth` holds the root at index 0
        self._nodes: list[dict[int, Field]] = [{} for _ in range(depth + 1)]
        self._indices: dict[Field, int] = {}
        self._next_index = 0
        self._root = self.zeros[depth]

    @property
    def capacity(self) -> int:
        return 1 << self.depth

    @property
    def root(self) -> Field:
        return self._root

    @property
    def next_index(self) -> int:
        return self._next_index

    def get_root(self) -> Field:
        return self._root

    def get_next_index(self) -> int:
        return self._next_index

    def __len__(self):
        return self._next_index

    def remaining(self) -> int:
        return self.capacity - self._next_index

    def insert(self, leaf: Field) -> int:
        if self._next_index >= self.capacity:
            raise TreeFull(self.capacity)

        index = self._next_index
        leaf = Field(leaf)
        self._nodes[0][index] = leaf
        self._indices.setdefault(leaf, index)
        self._root = self._update_path(index)
        self._next_index += 1
        return index

    def contains(self, leaf: Field) -> bool:
        return leaf in self._indices

    def index_of(self, leaf: Field) -> int | None:
        return self._indices.get(leaf)

    def leaves(self) -> Iterator[Field]:
        for index in range(self._next_index):
            yield self._nodes[0][index]

    def get_proof(self, index: int) -> MerklePath:
        """
        Returns the sibling path of the leaf at `index` against the current root.
        """
        if not 0 <= index < self._next_index:
            raise IndexError(f"no leaf at index {index}")

        siblings = []
        node_index = index
        for level in range(self.depth):
            siblings.append(self._node(level, node_index ^ 1))
            node_index //= 2

        return MerklePath(
            leaf=self._nodes[0][index], index=index, siblings=tuple(siblings)
        )

    @staticmethod
    def verify_proof(
        root: Field,
        leaf: Field,
        index: int,
        siblings: Sequence[Field],
        hasher: Hasher = HASH,
    ) -> bool:
        if not 0 <= index < (1 << len(siblings)):
            return False
        return compute_root(leaf, index, siblings, hasher) == root

    def checkpoint(self) -> TreeCheckpoint:
        return TreeCheckpoint(next_index=self._next_index, root=self._root)

    def rollback(self, checkpoint: TreeCheckpoint):
        """
        Drops every leaf inserted after `checkpoint` and restores the root.
        Only the ledger's atomic unit uses this; there is no way to remove a
        committed leaf.
        """
        keep = checkpoint.next_index
        assert keep <= self._next_index, "checkpoint is ahead of the tree"
        if keep == self._next_index:
            return

        for index in range(keep, self._next_index):
            leaf = self._nodes[0].pop(index)
            if self._indices.get(leaf) == index:
                del self._indices[leaf]

        # internal nodes that only cover dropped leaves disappear, the node
        # covering the new last leaf is recomputed below
        last = self._next_index - 1
        for level in range(1, self.depth + 1):
            first_dropped = ((keep - 1) >> level) + 1 if keep else 0
            for index in range(first_dropped, (last >> level) + 1):
                self._nodes[level].pop(index, None)

        self._next_index = keep
        self._root = self._update_path(keep - 1) if keep else self.zeros[self.depth]
        assert self._root == checkpoint.root, "rollback produced a different root"

    def _node(self, level: int, index: int) -> Field:
        return self._nodes[level].get(index, self.zeros[level])

    def _update_path(self, index: int) -> Field:
        # Leaves are appended in order: a right child always has its left
        # neighbour stored, a left child's right neighbour is still empty.
        node = self._nodes[0][index]
        for level in range(self.depth):
            if index % 2 == 0:
                node = self.hasher([node, self._node(level, index + 1)])
            else:
                node = self.hasher([self._nodes[level][index - 1], node])
            index //= 2
            self._nodes[level + 1][index] = node
        return node
