"""
Drives a note ledger with a seeded random workload of mints, transfers and
redeems between a handful of users, including replayed and stale requests
the ledger has to reject.

Users never read the ledger's state directly: they learn about the notes
they own by trial-decrypting the payloads of NoteCommitted events and forget
them when the matching NullifierSpent event appears.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from noteledger.collateral import CollateralLedger, InMemoryCustody
from noteledger.config import Config
from noteledger.crypto import Field
from noteledger.encryption import encrypt_note, try_decrypt_note
from noteledger.errors import LedgerError
from noteledger.events import Event, NoteCommitted, NullifierSpent
from noteledger.ledger import NoteLedger, launch
from noteledger.note import MAX_AMOUNT, Note
from noteledger.prover import MockProver
from noteledger.protocol import AmountPolicy

logger = logging.getLogger(__name__)

LEDGER_ID = "noteledger-sim"


@dataclass
class SimulationStats:
    accepted: Counter = field(default_factory=Counter)
    rejected: Counter = field(default_factory=Counter)
    minted: int = 0
    redeemed: int = 0
    root: Field = Field(0)
    next_index: int = 0
    total_locked: int = 0

    def summary(self) -> str:
        lines = [
            f"accepted: {dict(self.accepted)}",
            f"rejected: {dict(self.rejected)}",
            f"minted: {self.minted}, redeemed: {self.redeemed}, locked: {self.total_locked}",
            f"notes: {self.next_index}, root: {self.root!r}",
        ]
        return "\n".join(lines)


class User:
    def __init__(self, name: str, private_key: X25519PrivateKey, hasher):
        self.name = name
        self.private_key = private_key
        self.public_key = private_key.public_key()
        self.hasher = hasher
        # commitment -> note, for every unspent note this user can open
        self.notes: dict[Field, Note] = {}
        self._by_nullifier: dict[Field, Field] = {}

    def on_event(self, event: Event):
        if isinstance(event, NoteCommitted):
            note = try_decrypt_note(event.encrypted_payload, self.private_key)
            if note is not None and note.commitment(self.hasher) == event.commitment:
                self.notes[event.commitment] = note
                self._by_nullifier[note.nullifier_hash(self.hasher)] = event.commitment
        elif isinstance(event, NullifierSpent):
            commitment = self._by_nullifier.pop(event.nullifier, None)
            if commitment is not None:
                del self.notes[commitment]

    def balance(self) -> int:
        return sum(note.amount for note in self.notes.values())


class Simulation:
    def __init__(self, config: Config):
        self.config = config
        self.rng = config.simulation.seed
        self.asset = config.simulation.asset
        self.ledger_config = config.ledger_config()

        self.custody = InMemoryCustody()
        self.collateral = CollateralLedger(self.custody)
        self.ledger: NoteLedger = launch(
            LEDGER_ID,
            self.asset,
            self.ledger_config,
            self.collateral,
            config.build_verifiers(),
        )
        self.prover = MockProver(self.ledger_config)

        self.users = [
            User(f"user-{i}", X25519PrivateKey.generate(), self.prover.hasher)
            for i in range(config.simulation.users)
        ]
        for user in self.users:
            self.custody.credit(self.asset, user.name, config.simulation.initial_balance)
            self.ledger.subscribe(user.on_event)

        self.stats = SimulationStats()
        self._last_accepted: tuple[Callable, object] | None = None

    def run(self) -> SimulationStats:
        actions = [self._mint, self._transfer, self._redeem, self._replay, self._stale]
        weights = [4, 3, 2, 1, 1]
        for _ in range(self.config.simulation.operations):
            action = self.rng.choices(actions, weights)[0]
            action()

        self.stats.root = self.ledger.get_merkle_root()
        self.stats.next_index = self.ledger.get_next_index()
        self.stats.total_locked = self.ledger.total_locked()
        self._check_conservation()
        return self.stats

    def _submit(self, op: str, submit: Callable, request) -> bool:
        try:
            submit(request)
        except LedgerError as e:
            self.stats.rejected[type(e).__name__] += 1
            return False
        self.stats.accepted[op] += 1
        self._last_accepted = (submit, request)
        return True

    def _mint(self):
        user = self.rng.choice(self.users)
        note = self._random_note(self._note_amount())
        request = self.prover.mint(note, user.name, encrypt_note(note, user.public_key))
        if self._submit("mint", self.ledger.mint, request):
            self.stats.minted += note.amount

    def _transfer(self):
        sender = self._user_with_notes(self._inputs_needed())
        if sender is None:
            return
        n_inputs = self._inputs_needed()
        if self.ledger_config.arity.inputs is None:
            n_inputs = self.rng.randint(n_inputs, min(3, len(sender.notes)))
        notes = self.rng.sample(list(sender.notes.values()), n_inputs)
        total = sum(note.amount for note in notes)
        if total > MAX_AMOUNT:
            return

        recipient = self.rng.choice([u for u in self.users if u is not sender])
        outputs = [
            self._random_note(amount) for amount in self._split(total, self._outputs_for(n_inputs))
        ]
        owners = [recipient] + [self.rng.choice([sender, recipient]) for _ in outputs[1:]]

        request = self.prover.transfer(
            self._spend(notes),
            outputs,
            [encrypt_note(note, owner.public_key) for note, owner in zip(outputs, owners)],
        )
        self._submit("transfer", self.ledger.transfer, request)

    def _redeem(self):
        request, amount = self._redeem_request()
        if request is None:
            return
        if self._submit("redeem", self.ledger.redeem, request):
            self.stats.redeemed += amount

    def _replay(self):
        # an accepted request must never be accepted twice
        if self._last_accepted is None:
            return
        submit, request = self._last_accepted
        try:
            submit(request)
        except LedgerError as e:
            self.stats.rejected[type(e).__name__] += 1
            return
        raise AssertionError(f"replayed request was accepted: {request}")

    def _stale(self):
        # a redeem proven against a root that a later mint has moved on from
        request, _ = self._redeem_request()
        if request is None:
            return
        self._mint()
        if self.ledger.get_merkle_root() == request.merkle_root:
            return
        self._submit("redeem", self.ledger.redeem, request)

    def _redeem_request(self):
        user = self._user_with_notes(1)
        if user is None:
            return None, 0
        note = self.rng.choice(list(user.notes.values()))
        [spent] = self._spend([note])

        change = None
        amount = note.amount
        if self.ledger_config.policy == AmountPolicy.REVEALED:
            amount = self.rng.randint(0, note.amount)
            if amount < note.amount:
                change = self._random_note(note.amount - amount)

        request = self.prover.redeem(
            spent,
            user.name,
            change,
            encrypt_note(change, user.public_key) if change is not None else b"",
        )
        return request, amount

    def _spend(self, notes: list[Note]):
        paths = self.ledger.merkle_paths(note.commitment(self.prover.hasher) for note in notes)
        return [self.prover.spend(note, path) for note, path in zip(notes, paths)]

    def _user_with_notes(self, count: int) -> User | None:
        candidates = [user for user in self.users if len(user.notes) >= count]
        if not candidates:
            return None
        return self.rng.choice(candidates)

    def _inputs_needed(self) -> int:
        return self.ledger_config.arity.inputs or 1

    def _outputs_for(self, inputs: int) -> int:
        if self.ledger_config.policy == AmountPolicy.DENOMINATION:
            # every note is one denomination, value conservation fixes the count
            return inputs
        if self.ledger_config.arity.outputs is not None:
            return self.ledger_config.arity.outputs
        return self.rng.randint(1, 3)

    def _split(self, total: int, parts: int) -> list[int]:
        if self.ledger_config.policy == AmountPolicy.DENOMINATION:
            return [self.ledger_config.denomination] * parts
        cuts = sorted(self.rng.randint(0, total) for _ in range(parts - 1))
        bounds = [0, *cuts, total]
        return [hi - lo for lo, hi in zip(bounds, bounds[1:])]

    def _note_amount(self) -> int:
        if self.ledger_config.policy == AmountPolicy.DENOMINATION:
            return self.ledger_config.denomination
        return self.rng.randint(1, 10**18)

    def _random_note(self, amount: int) -> Note:
        return Note(
            amount=amount,
            secret=Field(self.rng.getrandbits(248)),
            nullifier_seed=Field(self.rng.getrandbits(248)),
        )

    def _check_conservation(self):
        locked = self.ledger.total_locked()
        assert locked == self.custody.vault[self.asset], (locked, self.custody.vault[self.asset])
        assert locked == self.stats.minted - self.stats.redeemed, (
            locked,
            self.stats.minted,
            self.stats.redeemed,
        )
        held = sum(user.balance() for user in self.users)
        assert held == locked, f"users hold {held} in notes, {locked} is locked"
        logger.info("collateral conserved: %d %s locked", locked, self.asset)
