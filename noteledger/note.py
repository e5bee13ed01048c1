from dataclasses import dataclass

from noteledger.crypto import HASH, Field, Hasher

# Amounts are range checked to 64 bits by the circuits so that sums of a
# handful of notes can never wrap around the field.
AMOUNT_BITS = 64
MAX_AMOUNT = 2**AMOUNT_BITS - 1


@dataclass(frozen=True)
class Note:
    """
    A private note. Only its commitment and, when spent, its nullifier hash
    ever reach the ledger.
    """

    amount: int
    secret: Field
    nullifier_seed: Field

    def __post_init__(self):
        assert 0 <= self.amount <= MAX_AMOUNT, f"amount out of range: {self.amount}"
        assert isinstance(self.secret, Field), f"secret is {type(self.secret)}"
        assert isinstance(
            self.nullifier_seed, Field
        ), f"nullifier_seed is {type(self.nullifier_seed)}"

    @classmethod
    def random(cls, amount: int) -> "Note":
        return cls(amount=amount, secret=Field.random(), nullifier_seed=Field.random())

    def commitment(self, hasher: Hasher = HASH) -> Field:
        return hasher([self.amount, self.secret, self.nullifier_seed])

    def nullifier_hash(self, hasher: Hasher = HASH) -> Field:
        return hasher([self.nullifier_seed])

    def encode(self) -> bytes:
        return (
            int.to_bytes(self.amount, length=32, byteorder="big")
            + self.secret.encode()
            + self.nullifier_seed.encode()
        )

    @classmethod
    def decode(cls, data: bytes) -> "Note":
        if len(data) != 96:
            raise ValueError(f"encoded note must be 96 bytes, got {len(data)}")
        amount = int.from_bytes(data[:32], byteorder="big")
        if amount > MAX_AMOUNT:
            raise ValueError(f"encoded amount out of range: {amount}")
        return cls(
            amount=amount,
            secret=Field.decode(data[32:64]),
            nullifier_seed=Field.decode(data[64:]),
        )
