"""
Protocol parameters and the public-input layouts of the three circuits.

The order of the public-input vector is part of the protocol: it must match
the order the circuit that produced a proof exposes its public signals in.
A vector built in any other order simply fails verification. The ledger and
the provers both build their vectors with the functions below.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from hashlib import sha256
from typing import Sequence

from noteledger.crypto import Field
from noteledger.note import MAX_AMOUNT
from noteledger.tree import DEFAULT_DEPTH


class AmountPolicy(Enum):
    # every note is worth the configured denomination, amounts never appear
    DENOMINATION = "denomination"
    # the amount is a public input bound by the proof
    REVEALED = "revealed"


class TransferLayout(Enum):
    # 2-in / 2-out circuit: [root, nf0, nf1, cm0, cm1]
    FIXED = "fixed"
    # k-in / m-out circuits: [nf..., cm..., root]
    VARIABLE = "variable"


@dataclass(frozen=True)
class TransferArity:
    # None means any number (>= 1) is accepted
    inputs: int | None = 2
    outputs: int | None = 2
    layout: TransferLayout = TransferLayout.FIXED

    def __post_init__(self):
        assert self.inputs is None or self.inputs >= 1, self.inputs
        assert self.outputs is None or self.outputs >= 1, self.outputs
        if self.layout == TransferLayout.FIXED:
            assert (self.inputs, self.outputs) == (2, 2), (
                "the fixed transfer layout is 2-in / 2-out"
            )

    @staticmethod
    def fixed() -> "TransferArity":
        return TransferArity(2, 2, TransferLayout.FIXED)

    @staticmethod
    def variable(inputs: int | None = None, outputs: int | None = None) -> "TransferArity":
        return TransferArity(inputs, outputs, TransferLayout.VARIABLE)

    def accepts(self, inputs: int, outputs: int) -> bool:
        return (
            inputs >= 1
            and outputs >= 1
            and self.inputs in (None, inputs)
            and self.outputs in (None, outputs)
        )


@dataclass(frozen=True)
class LedgerConfig:
    depth: int = DEFAULT_DEPTH
    hash: str = "sha256"
    policy: AmountPolicy = AmountPolicy.DENOMINATION
    # amount locked per note under the DENOMINATION policy
    denomination: int = 10**18
    arity: TransferArity = field(default_factory=TransferArity.fixed)

    def __post_init__(self):
        assert 0 < self.depth <= 32, self.depth
        if self.policy == AmountPolicy.DENOMINATION:
            assert 0 < self.denomination <= MAX_AMOUNT, self.denomination

    def replace(self, **kwarg) -> "LedgerConfig":
        return replace(self, **kwarg)


def encode_recipient(recipient: str) -> Field:
    """
    Maps a recipient into the field. 20 byte hex addresses are taken as the
    integer they spell (as an EVM address would be), anything else is hashed.
    """
    if recipient.startswith("0x") and len(recipient) == 42:
        return Field(int(recipient, 16))
    digest = sha256(b"NOTELEDGER_RECIPIENT" + recipient.encode("utf-8")).digest()
    return Field(int.from_bytes(digest, byteorder="big"))


def mint_public_inputs(
    policy: AmountPolicy,
    commitment: Field,
    *,
    denomination: int | None = None,
    nullifier_hash: Field | None = None,
    amount: int | None = None,
) -> list[Field]:
    if policy == AmountPolicy.DENOMINATION:
        return [Field(commitment), Field(denomination)]
    # the amount sits in the last slot so it can be read back from the vector
    return [Field(commitment), Field(nullifier_hash), Field(amount)]


def transfer_public_inputs(
    layout: TransferLayout,
    input_nullifiers: Sequence[Field],
    output_commitments: Sequence[Field],
    merkle_root: Field,
) -> list[Field]:
    nullifiers = [Field(n) for n in input_nullifiers]
    commitments = [Field(c) for c in output_commitments]
    if layout == TransferLayout.FIXED:
        return [Field(merkle_root), *nullifiers, *commitments]
    return [*nullifiers, *commitments, Field(merkle_root)]


def redeem_public_inputs(
    policy: AmountPolicy,
    nullifier_hash: Field,
    recipient: str,
    merkle_root: Field,
    *,
    amount: int | None = None,
    change_commitment: Field | None = None,
) -> list[Field]:
    if policy == AmountPolicy.DENOMINATION:
        return [Field(nullifier_hash), encode_recipient(recipient), Field(merkle_root)]
    return [
        Field(merkle_root),
        Field(amount),
        encode_recipient(recipient),
        Field(change_commitment or 0),
        Field(nullifier_hash),
    ]


def mint_amount(policy: AmountPolicy, public_inputs: Sequence[Field]) -> int:
    """Reads the amount a verified mint vector locks."""
    if policy == AmountPolicy.DENOMINATION:
        return int(public_inputs[1])
    return int(public_inputs[-1])
