"""
Wallet-side request builder. Produces witness proofs the circuit verifiers in
`noteledger.circuits` accept, together with the matching ledger requests.
"""

from typing import Sequence

from noteledger.circuits import (
    DepositWitness,
    SpentNote,
    TransferWitness,
    WithdrawWitness,
    WitnessProof,
)
from noteledger.crypto import get_hasher
from noteledger.ledger import MintRequest, RedeemRequest, TransferRequest
from noteledger.note import Note
from noteledger.protocol import AmountPolicy, LedgerConfig
from noteledger.tree import MerklePath


class MockProver:
    def __init__(self, config: LedgerConfig):
        self.config = config
        self.hasher = get_hasher(config.hash)

    def spend(self, note: Note, path: MerklePath) -> SpentNote:
        return SpentNote(note=note, path=path)

    def mint(self, note: Note, depositor: str, encrypted_payload: bytes = b"") -> MintRequest:
        revealed = self.config.policy == AmountPolicy.REVEALED
        return MintRequest(
            commitment=note.commitment(self.hasher),
            depositor=depositor,
            encrypted_payload=encrypted_payload,
            proof=WitnessProof(DepositWitness(note)),
            nullifier_hash=note.nullifier_hash(self.hasher) if revealed else None,
            amount=note.amount if revealed else None,
        )

    def transfer(
        self,
        inputs: Sequence[SpentNote],
        outputs: Sequence[Note],
        encrypted_payloads: Sequence[bytes] | None = None,
    ) -> TransferRequest:
        """
        The request targets the root the input paths were taken against, so
        every path has to come from the same tree state.
        """
        if encrypted_payloads is None:
            encrypted_payloads = [b""] * len(outputs)
        return TransferRequest(
            input_nullifiers=[spent.note.nullifier_hash(self.hasher) for spent in inputs],
            output_commitments=[note.commitment(self.hasher) for note in outputs],
            merkle_root=inputs[0].path.root(self.hasher),
            encrypted_payloads=list(encrypted_payloads),
            proof=WitnessProof(TransferWitness(tuple(inputs), tuple(outputs))),
        )

    def redeem(
        self,
        spent: SpentNote,
        recipient: str,
        change: Note | None = None,
        encrypted_payload: bytes = b"",
    ) -> RedeemRequest:
        witness = WithdrawWitness(spent=spent, recipient=recipient, change=change)
        revealed = self.config.policy == AmountPolicy.REVEALED
        return RedeemRequest(
            nullifier_hash=spent.note.nullifier_hash(self.hasher),
            recipient=recipient,
            merkle_root=spent.path.root(self.hasher),
            proof=WitnessProof(witness),
            amount=witness.amount if revealed else None,
            change_commitment=(
                change.commitment(self.hasher) if revealed and change is not None else None
            ),
            encrypted_payload=encrypted_payload,
        )
