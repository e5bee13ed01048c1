"""
The note ledger: mint, transfer and redeem of confidential-value notes.

State is the commitment tree, the spent nullifier set and the collateral
locked behind the ledger's notes. Every operation is validated in full, then
applied as one atomic unit: either all of its effects (tree leaves, spent
nullifiers, collateral movements, events) happen, or none do.

Operations and queries are serialized by a single lock per ledger, so every
query observes the state between two operations and the proof verified by an
operation is always checked against the state it is applied to.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Sequence

from noteledger.collateral import CollateralLedger
from noteledger.crypto import Field, is_field_element, get_hasher
from noteledger.errors import (
    CommitmentAlreadyExists,
    InvalidArrayLength,
    InvalidCommitment,
    InvalidMerkleRoot,
    InvalidNullifier,
    InvalidProof,
    InvalidRequest,
    LedgerError,
    NullifierAlreadySpent,
    ReentrantOperation,
    TreeFull,
)
from noteledger.events import (
    CollateralLocked,
    CollateralReleased,
    Deposit,
    Event,
    EventLog,
    Listener,
    NoteCommitted,
    NullifierSpent,
    Withdrawal,
)
from noteledger.note import MAX_AMOUNT
from noteledger.nullifiers import NullifierSet
from noteledger.protocol import (
    AmountPolicy,
    LedgerConfig,
    mint_amount,
    mint_public_inputs,
    redeem_public_inputs,
    transfer_public_inputs,
)
from noteledger.tree import CommitmentTree, MerklePath
from noteledger.verifier import CircuitVerifiers, Proof, ProofVerifier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MintRequest:
    commitment: Field
    depositor: str
    encrypted_payload: bytes
    proof: Proof
    # REVEALED policy only
    nullifier_hash: Field | None = None
    amount: int | None = None


@dataclass(frozen=True)
class TransferRequest:
    input_nullifiers: Sequence[Field]
    output_commitments: Sequence[Field]
    merkle_root: Field
    encrypted_payloads: Sequence[bytes]
    proof: Proof


@dataclass(frozen=True)
class RedeemRequest:
    nullifier_hash: Field
    recipient: str
    merkle_root: Field
    proof: Proof
    # REVEALED policy only
    amount: int | None = None
    change_commitment: Field | None = None
    # payload of the change note
    encrypted_payload: bytes = b""


@dataclass
class _Unit:
    """Effects of an operation in flight, applied or undone as a whole."""

    events: list[Event] = field(default_factory=list)
    compensations: list[Callable[[], object]] = field(default_factory=list)

    def emit(self, *events: Event):
        self.events.extend(events)

    def on_rollback(self, compensate: Callable[[], object]):
        self.compensations.append(compensate)


class NoteLedger:
    def __init__(
        self,
        ledger_id: str,
        asset: str,
        config: LedgerConfig,
        verifiers: CircuitVerifiers,
        collateral: CollateralLedger,
        tree: CommitmentTree | None = None,
        nullifiers: NullifierSet | None = None,
    ):
        self.ledger_id = ledger_id
        self.asset = asset
        self.config = config
        self.verifiers = verifiers
        self.collateral = collateral
        self.hasher = get_hasher(config.hash)
        self.tree = tree if tree is not None else CommitmentTree(config.depth, self.hasher)
        self.nullifiers = nullifiers if nullifiers is not None else NullifierSet()
        assert self.tree.depth == config.depth, "tree depth does not match the config"
        assert self.tree.hasher is self.hasher, "tree hasher does not match the config"

        self._events = EventLog()
        # queries may be issued from collaborator callbacks, operations may not
        self._lock = threading.RLock()
        self._in_flight: str | None = None

    def mint(self, request: MintRequest) -> int:
        """
        Locks the note's amount of the underlying asset from the depositor and
        appends the note commitment to the tree. Returns the leaf index.
        """
        with self._rejections("mint"), self._operation("mint"), self._atomic("mint") as unit:
            commitment = request.commitment
            self._check_commitment(commitment)
            self._check_party(request.depositor, "depositor")
            self._check_mint_fields(request)

            if self.tree.contains(commitment):
                raise CommitmentAlreadyExists(commitment)
            if (
                self.config.policy == AmountPolicy.REVEALED
                and self.nullifiers.is_spent(request.nullifier_hash)
            ):
                raise NullifierAlreadySpent(request.nullifier_hash)
            self._check_capacity(1)

            public_inputs = mint_public_inputs(
                self.config.policy,
                commitment,
                denomination=self.config.denomination,
                nullifier_hash=request.nullifier_hash,
                amount=request.amount,
            )
            self._verify(self.verifiers.mint, request.proof, public_inputs)

            amount = mint_amount(self.config.policy, public_inputs)
            self.collateral.lock(self.asset, self.ledger_id, amount, request.depositor)
            unit.on_rollback(
                lambda: self.collateral.release(
                    self.asset, self.ledger_id, amount, request.depositor
                )
            )

            index = self.tree.insert(commitment)
            unit.emit(
                NoteCommitted(Field(commitment), index, request.encrypted_payload),
                Deposit(Field(commitment)),
                CollateralLocked(Field(commitment)),
            )
            logger.debug("minted %r at %d for %d %s", commitment, index, amount, self.asset)
            return index

    def transfer(self, request: TransferRequest) -> list[int]:
        """
        Spends the input notes and creates the output notes. Returns the leaf
        indices of the outputs, in request order.
        """
        with self._rejections("transfer"), self._operation("transfer"), self._atomic("transfer") as unit:
            nullifiers = list(request.input_nullifiers)
            commitments = list(request.output_commitments)
            payloads = list(request.encrypted_payloads)

            if not nullifiers:
                raise InvalidArrayLength("transfer has no inputs")
            if not commitments:
                raise InvalidArrayLength("transfer has no outputs")
            if len(payloads) != len(commitments):
                raise InvalidArrayLength(
                    f"{len(payloads)} payloads for {len(commitments)} outputs"
                )
            if not self.config.arity.accepts(len(nullifiers), len(commitments)):
                raise InvalidArrayLength(
                    f"{len(nullifiers)}-in / {len(commitments)}-out transfers are not supported"
                )
            for nullifier in nullifiers:
                self._check_nullifier(nullifier)
            for commitment in commitments:
                self._check_commitment(commitment)

            for nullifier in _duplicates_or(nullifiers, self.nullifiers.is_spent):
                raise NullifierAlreadySpent(nullifier)
            for commitment in _duplicates_or(commitments, self.tree.contains):
                raise CommitmentAlreadyExists(commitment)
            self._check_root(request.merkle_root)
            self._check_capacity(len(commitments))

            public_inputs = transfer_public_inputs(
                self.config.arity.layout, nullifiers, commitments, request.merkle_root
            )
            self._verify(self.verifiers.transfer, request.proof, public_inputs)

            for nullifier in nullifiers:
                self.nullifiers.mark_spent(nullifier)
                unit.emit(NullifierSpent(Field(nullifier)))

            indices = []
            for commitment, payload in zip(commitments, payloads):
                index = self.tree.insert(commitment)
                indices.append(index)
                unit.emit(NoteCommitted(Field(commitment), index, payload))

            logger.debug("transfer %d -> %d notes at %s", len(nullifiers), len(commitments), indices)
            return indices

    def redeem(self, request: RedeemRequest) -> int | None:
        """
        Spends a note and pays its value out of custody to the recipient.
        Under the REVEALED policy an optional change note takes the unredeemed
        remainder; its leaf index is returned.
        """
        with self._rejections("redeem"), self._operation("redeem"), self._atomic("redeem") as unit:
            nullifier = request.nullifier_hash
            self._check_nullifier(nullifier)
            self._check_party(request.recipient, "recipient")
            amount, change = self._check_redeem_fields(request)

            if self.nullifiers.is_spent(nullifier):
                raise NullifierAlreadySpent(nullifier)
            self._check_root(request.merkle_root)
            if change is not None:
                if self.tree.contains(change):
                    raise CommitmentAlreadyExists(change)
                self._check_capacity(1)

            public_inputs = redeem_public_inputs(
                self.config.policy,
                nullifier,
                request.recipient,
                request.merkle_root,
                amount=amount,
                change_commitment=change,
            )
            self._verify(self.verifiers.redeem, request.proof, public_inputs)

            self.nullifiers.mark_spent(nullifier)
            unit.emit(NullifierSpent(Field(nullifier)))

            index = None
            if change is not None:
                index = self.tree.insert(change)
                unit.emit(NoteCommitted(Field(change), index, request.encrypted_payload))
            unit.emit(Withdrawal(Field(nullifier)), CollateralReleased(Field(nullifier)))

            # last: a refused or failed release undoes everything above
            self.collateral.release(self.asset, self.ledger_id, amount, request.recipient)
            logger.debug("redeemed %r for %d %s", nullifier, amount, self.asset)
            return index

    def commitment_exists(self, commitment: Field) -> bool:
        with self._lock:
            return self.tree.contains(commitment)

    def is_nullifier_spent(self, nullifier: Field) -> bool:
        with self._lock:
            return self.nullifiers.is_spent(nullifier)

    def get_merkle_root(self) -> Field:
        with self._lock:
            return self.tree.root

    def get_next_index(self) -> int:
        with self._lock:
            return self.tree.next_index

    def total_locked(self) -> int:
        with self._lock:
            return self.collateral.total_locked(self.asset, self.ledger_id)

    @property
    def events(self) -> list[Event]:
        with self._lock:
            return list(self._events)

    def subscribe(self, listener: Listener):
        """
        `listener` is called with every event of every operation applied from
        now on, after the operation is applied and before it returns.
        """
        with self._lock:
            self._events.subscribe(listener)

    def merkle_path(self, commitment: Field) -> MerklePath:
        with self._lock:
            index = self.tree.index_of(commitment)
            if index is None:
                raise KeyError(commitment)
            return self.tree.get_proof(index)

    def merkle_paths(self, commitments: Iterable[Field]) -> list[MerklePath]:
        """Paths of several commitments, all against the same root."""
        with self._lock:
            return [self.merkle_path(commitment) for commitment in commitments]

    @contextmanager
    def _operation(self, op: str):
        """
        Holds the ledger lock for the whole operation and rejects any
        operation started from within it, e.g. by a custody, verifier or
        listener callback on the same thread.
        """
        with self._lock:
            if self._in_flight is not None:
                raise ReentrantOperation(op, self._in_flight)
            self._in_flight = op
            try:
                yield
            finally:
                self._in_flight = None

    @contextmanager
    def _atomic(self, op: str) -> Iterator[_Unit]:
        tree_checkpoint = self.tree.checkpoint()
        nullifiers_checkpoint = self.nullifiers.checkpoint()
        unit = _Unit()
        try:
            yield unit
        except Exception:
            mutated = (
                self.tree.next_index != tree_checkpoint.next_index
                or len(self.nullifiers) != nullifiers_checkpoint
                or unit.compensations
            )
            try:
                for compensate in reversed(unit.compensations):
                    compensate()
            finally:
                self.nullifiers.rollback(nullifiers_checkpoint)
                self.tree.rollback(tree_checkpoint)
            if mutated:
                logger.warning("%s rolled back to root %r", op, tree_checkpoint.root)
            raise
        self._events.publish(unit.events)

    @contextmanager
    def _rejections(self, op: str):
        try:
            yield
        except LedgerError as e:
            logger.info("%s rejected: %s", op, e)
            raise

    def _verify(self, verifier: ProofVerifier, proof: Proof, public_inputs: list[Field]):
        if not verifier.verify(proof, public_inputs):
            raise InvalidProof()

    def _check_root(self, merkle_root):
        if merkle_root != self.tree.root:
            raise InvalidMerkleRoot(merkle_root)

    def _check_capacity(self, leaves: int):
        if self.tree.remaining() < leaves:
            raise TreeFull(self.tree.capacity)

    @staticmethod
    def _check_commitment(commitment):
        # zero is the empty leaf and can never be a note
        if not is_field_element(commitment) or commitment == 0:
            raise InvalidCommitment(commitment)

    @staticmethod
    def _check_nullifier(nullifier):
        if not is_field_element(nullifier):
            raise InvalidNullifier(nullifier)

    @staticmethod
    def _check_party(party, role: str):
        if not isinstance(party, str) or not party:
            raise InvalidRequest(f"{role} must be a non-empty string")

    def _check_mint_fields(self, request: MintRequest):
        if self.config.policy == AmountPolicy.DENOMINATION:
            if request.nullifier_hash is not None or request.amount is not None:
                raise InvalidRequest("denomination mints carry no amount or nullifier hash")
            return
        if request.nullifier_hash is None:
            raise InvalidRequest("revealed mints require a nullifier hash")
        self._check_nullifier(request.nullifier_hash)
        _check_amount(request.amount)

    def _check_redeem_fields(self, request: RedeemRequest) -> tuple[int, Field | None]:
        if self.config.policy == AmountPolicy.DENOMINATION:
            if request.amount is not None or request.change_commitment is not None:
                raise InvalidRequest("denomination redeems carry no amount or change")
            return self.config.denomination, None

        _check_amount(request.amount)
        # 0 stands for "no change note"
        change = request.change_commitment or None
        if change is not None:
            self._check_commitment(change)
        return request.amount, change


def launch(
    ledger_id: str,
    asset: str,
    config: LedgerConfig,
    collateral: CollateralLedger,
    verifiers: CircuitVerifiers,
) -> NoteLedger:
    """
    Creates a note ledger over `asset` and registers it as the only issuer
    allowed to lock and release collateral for it.
    """
    collateral.register_issuer(ledger_id, asset)
    ledger = NoteLedger(ledger_id, asset, config, verifiers, collateral)
    logger.info("launched note ledger %s over %s (%s)", ledger_id, asset, config.policy.value)
    return ledger


def _check_amount(amount):
    if amount is None:
        raise InvalidRequest("amount is required")
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise InvalidRequest(f"amount must be an integer, got {amount!r}")
    if not 0 <= amount <= MAX_AMOUNT:
        raise InvalidRequest(f"amount out of range: {amount}")


def _duplicates_or(values: Sequence[Field], present: Callable[[Field], bool]) -> Iterator[Field]:
    """Yields the values already present or repeated earlier in `values`."""
    seen = set()
    for value in values:
        if value in seen or present(value):
            yield value
        seen.add(value)
