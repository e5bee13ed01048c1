"""
The set of spent nullifier hashes. Entries are write-once: a nullifier hash
marked spent stays spent for the life of the ledger.
"""

from typing import Iterator

from noteledger.crypto import Field
from noteledger.errors import NullifierAlreadySpent


class NullifierSet:
    def __init__(self):
        # dicts keep insertion order, which makes rollback a matter of popping
        # the most recent entries
        self._spent: dict[Field, None] = {}

    def is_spent(self, nullifier: Field) -> bool:
        return nullifier in self._spent

    def mark_spent(self, nullifier: Field):
        if nullifier in self._spent:
            raise NullifierAlreadySpent(nullifier)
        self._spent[Field(nullifier)] = None

    def __contains__(self, nullifier) -> bool:
        return nullifier in self._spent

    def __len__(self):
        return len(self._spent)

    def __iter__(self) -> Iterator[Field]:
        return iter(self._spent)

    def checkpoint(self) -> int:
        return len(self._spent)

    def rollback(self, checkpoint: int):
        """
        Forgets the nullifiers marked after `checkpoint`. Only the ledger's
        atomic unit uses this to undo a rejected operation.
        """
        assert checkpoint <= len(self._spent), "checkpoint is ahead of the set"
        while len(self._spent) > checkpoint:
            self._spent.popitem()
