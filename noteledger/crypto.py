"""
Field elements and the hash primitive shared by notes, the commitment tree and
the circuits.

!Important! The primitives here must agree with the proving system the
verification keys were produced by. The deposit / transfer / withdraw circuits
are Groth16 circuits over BN254, so every public value lives in the BN254
scalar field.
"""

import functools
import secrets
from hashlib import sha256
from typing import Callable, Sequence

from py_ecc.bn128 import curve_order


class Field(int):
    ORDER = curve_order

    def __new__(cls, value: int = 0):
        return super().__new__(cls, int(value) % cls.ORDER)

    @classmethod
    def zero(cls) -> "Field":
        return cls(0)

    @classmethod
    def random(cls) -> "Field":
        # 31 bytes (248 bits) always stays below the field order
        return cls(int.from_bytes(secrets.token_bytes(31), byteorder="big"))

    @classmethod
    def decode(cls, data: bytes) -> "Field":
        assert len(data) == 32, len(data)
        return cls(int.from_bytes(data, byteorder="big"))

    def encode(self) -> bytes:
        return int.to_bytes(self, length=32, byteorder="big")

    def __repr__(self):
        return f"Field(0x{self.encode().hex()})"


def is_field_element(value) -> bool:
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value < Field.ORDER
    )


Hasher = Callable[[Sequence[int]], Field]


def sha256_hash(data: Sequence[int]) -> Field:
    """
    Stand-in for the algebraic hash: sha256 over the 32 byte big endian
    encoding of each element, reduced into the field.
    """
    h = sha256()
    for d in data:
        h.update(int.to_bytes(int(d) % Field.ORDER, length=32, byteorder="big"))
    return Field(int.from_bytes(h.digest(), byteorder="big"))


def build_poseidon() -> Hasher:
    import poseidon

    h = poseidon.Poseidon(
        p=Field.ORDER,
        security_level=128,
        alpha=5,
        input_rate=3,
        t=9,
    )

    # Absorb arbitrary length input by chaining the previous digest into each
    # block of `input_rate - 1` elements.
    def inner(data: Sequence[int]) -> Field:
        digest = 0
        for i in range(0, len(data), h.input_rate - 1):
            digest = h.run_hash([int(digest), *map(int, data[i : i + h.input_rate - 1])])
        return Field(int(digest))

    return inner


HASH: Hasher = sha256_hash

_HASHERS: dict[str, Callable[[], Hasher]] = {
    "sha256": lambda: sha256_hash,
    "poseidon": build_poseidon,
}


@functools.cache
def get_hasher(name: str) -> Hasher:
    if name not in _HASHERS:
        raise ValueError(f"unknown hash primitive: {name}")
    return _HASHERS[name]()


HASH_NAMES = tuple(_HASHERS)
