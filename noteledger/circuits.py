"""
Circuit-equivalent constraint descriptions of the deposit, transfer and
withdraw circuits.

A real deployment only ever sees the proofs these circuits produce. Here the
constraints are evaluated directly against a witness carried by a
`WitnessProof`, which lets the ledger be exercised end to end (tests and the
simulation) without a proving backend: a `CircuitVerifier` accepts exactly
the (witness, public inputs) pairs a sound circuit would.
"""

from dataclasses import dataclass
from typing import Sequence

from noteledger.crypto import HASH, Field, Hasher, get_hasher, is_field_element
from noteledger.note import MAX_AMOUNT, Note
from noteledger.protocol import (
    AmountPolicy,
    LedgerConfig,
    mint_public_inputs,
    redeem_public_inputs,
    transfer_public_inputs,
)
from noteledger.tree import MerklePath
from noteledger.verifier import CircuitVerifiers, Proof, ProofVerifier


@dataclass(frozen=True)
class SpentNote:
    """A note being spent together with its membership path in the tree."""

    note: Note
    path: MerklePath


@dataclass(frozen=True)
class DepositWitness:
    note: Note


@dataclass(frozen=True)
class TransferWitness:
    inputs: tuple[SpentNote, ...]
    outputs: tuple[Note, ...]


@dataclass(frozen=True)
class WithdrawWitness:
    spent: SpentNote
    recipient: str
    change: Note | None = None

    @property
    def amount(self) -> int:
        change = self.change.amount if self.change is not None else 0
        return self.spent.note.amount - change


Witness = DepositWitness | TransferWitness | WithdrawWitness


@dataclass(frozen=True)
class WitnessProof(Proof):
    witness: Witness


class Circuit:
    def __init__(self, config: LedgerConfig, hasher: Hasher = HASH):
        self.config = config
        self.hasher = hasher

    def check(self, witness: Witness, public_inputs: Sequence[int]) -> bool:
        raise NotImplementedError()

    def _in_range(self, note: Note) -> bool:
        if not 0 <= note.amount <= MAX_AMOUNT:
            return False
        if self.config.policy == AmountPolicy.DENOMINATION:
            return note.amount == self.config.denomination
        return True

    def _is_spent_note(self, spent) -> bool:
        """Shape of a spent note: a note and a full-depth path of field elements."""
        if not isinstance(spent, SpentNote) or not isinstance(spent.note, Note):
            return False
        path = spent.path
        return (
            isinstance(path, MerklePath)
            and is_field_element(path.leaf)
            and isinstance(path.index, int)
            and 0 <= path.index < 2**self.config.depth
            and isinstance(path.siblings, (tuple, list))
            and len(path.siblings) == self.config.depth
            and all(is_field_element(sibling) for sibling in path.siblings)
        )

    def _is_member(self, spent: SpentNote, root: Field) -> bool:
        return spent.path.leaf == spent.note.commitment(self.hasher) and spent.path.verify(
            root, self.hasher
        )


class DepositCircuit(Circuit):
    def check(self, witness: Witness, public_inputs: Sequence[int]) -> bool:
        if not isinstance(witness, DepositWitness) or not isinstance(witness.note, Note):
            return False
        note = witness.note
        if not self._in_range(note):
            return False

        expected = mint_public_inputs(
            self.config.policy,
            note.commitment(self.hasher),
            denomination=self.config.denomination,
            nullifier_hash=note.nullifier_hash(self.hasher),
            amount=note.amount,
        )
        return _same(expected, public_inputs)


class TransferCircuit(Circuit):
    def check(self, witness: Witness, public_inputs: Sequence[int]) -> bool:
        if not isinstance(witness, TransferWitness):
            return False
        if not isinstance(witness.inputs, (tuple, list)) or not witness.inputs:
            return False
        if not isinstance(witness.outputs, (tuple, list)) or not witness.outputs:
            return False
        if not all(self._is_spent_note(spent) for spent in witness.inputs):
            return False
        if not all(isinstance(note, Note) for note in witness.outputs):
            return False

        root = witness.inputs[0].path.root(self.hasher)
        if not all(self._is_member(spent, root) for spent in witness.inputs):
            return False

        notes = [spent.note for spent in witness.inputs] + list(witness.outputs)
        if not all(self._in_range(note) for note in notes):
            return False

        value_in = sum(spent.note.amount for spent in witness.inputs)
        value_out = sum(note.amount for note in witness.outputs)
        if value_in != value_out:
            return False

        expected = transfer_public_inputs(
            self.config.arity.layout,
            [spent.note.nullifier_hash(self.hasher) for spent in witness.inputs],
            [note.commitment(self.hasher) for note in witness.outputs],
            root,
        )
        return _same(expected, public_inputs)


class WithdrawCircuit(Circuit):
    def check(self, witness: Witness, public_inputs: Sequence[int]) -> bool:
        if not isinstance(witness, WithdrawWitness) or not self._is_spent_note(witness.spent):
            return False
        if not isinstance(witness.recipient, str):
            return False
        if witness.change is not None and not isinstance(witness.change, Note):
            return False

        spent = witness.spent
        root = spent.path.root(self.hasher)
        if not self._is_member(spent, root) or not self._in_range(spent.note):
            return False

        if self.config.policy == AmountPolicy.DENOMINATION:
            # denomination notes are always withdrawn whole
            if witness.change is not None:
                return False
            expected = redeem_public_inputs(
                self.config.policy,
                spent.note.nullifier_hash(self.hasher),
                witness.recipient,
                root,
            )
            return _same(expected, public_inputs)

        if witness.amount < 0:
            return False
        change_commitment = None
        if witness.change is not None:
            if not self._in_range(witness.change):
                return False
            change_commitment = witness.change.commitment(self.hasher)

        expected = redeem_public_inputs(
            self.config.policy,
            spent.note.nullifier_hash(self.hasher),
            witness.recipient,
            root,
            amount=witness.amount,
            change_commitment=change_commitment,
        )
        return _same(expected, public_inputs)


class CircuitVerifier(ProofVerifier):
    def __init__(self, circuit: Circuit):
        self.circuit = circuit

    def verify(self, proof: Proof, public_inputs: Sequence[int]) -> bool:
        if not isinstance(proof, WitnessProof):
            return False
        return self.circuit.check(proof.witness, public_inputs)


def circuit_verifiers(config: LedgerConfig) -> CircuitVerifiers:
    hasher = get_hasher(config.hash)
    return CircuitVerifiers(
        mint=CircuitVerifier(DepositCircuit(config, hasher)),
        transfer=CircuitVerifier(TransferCircuit(config, hasher)),
        redeem=CircuitVerifier(WithdrawCircuit(config, hasher)),
    )


def _same(expected: Sequence[int], public_inputs: Sequence[int]) -> bool:
    return len(expected) == len(public_inputs) and all(
        int(a) == int(b) for a, b in zip(expected, public_inputs)
    )
