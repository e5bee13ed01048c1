"""
Every ledger rejection is one of the exceptions below. They are raised
synchronously, abort the whole operation and are never retried by the ledger.

- StructuralError: malformed request, rejected before any verification work.
- StateConflictError: well formed but conflicts with the current state; the
  caller refreshes its view (and its proof) and resubmits.
- CryptographicError: the proof did not verify.
- ResourceError: capacity or collateral exhausted, or the caller is not allowed.
- CustodyError: the underlying asset movement failed.
"""


def _short(value) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        return f"0x{value:064x}"[:18] + "..."
    return repr(value)


class LedgerError(Exception):
    pass


class StructuralError(LedgerError):
    pass


class StateConflictError(LedgerError):
    pass


class CryptographicError(LedgerError):
    pass


class ResourceError(LedgerError):
    pass


class CustodyError(LedgerError):
    pass


class InvalidArrayLength(StructuralError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def __str__(self):
        return f"Invalid array length: {self.reason}"


class InvalidCommitment(StructuralError):
    def __init__(self, commitment):
        super().__init__(commitment)
        self.commitment = commitment

    def __str__(self):
        return f"Invalid commitment {_short(self.commitment)}"


class InvalidNullifier(StructuralError):
    def __init__(self, nullifier):
        super().__init__(nullifier)
        self.nullifier = nullifier

    def __str__(self):
        return f"Invalid nullifier hash {_short(self.nullifier)}"


class InvalidRequest(StructuralError):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason

    def __str__(self):
        return f"Invalid request: {self.reason}"


class CommitmentAlreadyExists(StateConflictError):
    def __init__(self, commitment):
        super().__init__(commitment)
        self.commitment = commitment

    def __str__(self):
        return f"Commitment {_short(self.commitment)} already exists"


class NullifierAlreadySpent(StateConflictError):
    def __init__(self, nullifier):
        super().__init__(nullifier)
        self.nullifier = nullifier

    def __str__(self):
        return f"Nullifier {_short(self.nullifier)} already spent"


class InvalidMerkleRoot(StateConflictError):
    def __init__(self, root):
        super().__init__(root)
        self.root = root

    def __str__(self):
        return f"Merkle root {_short(self.root)} is not the current root"


class InvalidProof(CryptographicError):
    def __str__(self):
        return "Invalid proof"


class TreeFull(ResourceError):
    def __init__(self, capacity: int):
        super().__init__(capacity)
        self.capacity = capacity

    def __str__(self):
        return f"Commitment tree is full ({self.capacity} leaves)"


class InsufficientCollateral(ResourceError):
    def __init__(self, requested: int, locked: int):
        super().__init__(requested, locked)
        self.requested = requested
        self.locked = locked

    def __str__(self):
        return f"Insufficient collateral: requested {self.requested}, locked {self.locked}"


class UnauthorizedIssuer(ResourceError):
    def __init__(self, issuer, asset):
        super().__init__(issuer, asset)
        self.issuer = issuer
        self.asset = asset

    def __str__(self):
        return f"Issuer {self.issuer!r} is not authorized for asset {self.asset!r}"


class ReentrantOperation(ResourceError):
    def __init__(self, op: str, in_flight: str):
        super().__init__(op, in_flight)
        self.op = op
        self.in_flight = in_flight

    def __str__(self):
        return f"Cannot {self.op} while a {self.in_flight} on the same ledger is in flight"


class TransferFailed(CustodyError):
    def __init__(self, asset, party, amount: int):
        super().__init__(asset, party, amount)
        self.asset = asset
        self.party = party
        self.amount = amount

    def __str__(self):
        return f"Transfer of {self.amount} {self.asset} for {self.party!r} failed"
