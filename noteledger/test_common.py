import random

from py_ecc.optimized_bn128 import G1, G2, curve_order, multiply

from .circuits import circuit_verifiers
from .collateral import CollateralLedger, InMemoryCustody
from .errors import LedgerError
from .ledger import NoteLedger, launch
from .note import Note
from .prover import MockProver
from .protocol import AmountPolicy, LedgerConfig, TransferArity
from .verifier import CircuitVerifiers, Groth16Proof, ProofVerifier, VerifyingKey

ASSET = "0x00000000000000000000000000000000000000aa"
LEDGER_ID = "note-ledger"
DENOMINATION = 10**18


def mk_config(
    depth: int = 8,
    policy: AmountPolicy = AmountPolicy.DENOMINATION,
    arity: TransferArity | None = None,
) -> LedgerConfig:
    return LedgerConfig(
        depth=depth,
        policy=policy,
        denomination=DENOMINATION,
        arity=arity or TransferArity.fixed(),
    )


def mk_ledger(
    config: LedgerConfig | None = None,
    verifier: ProofVerifier | None = None,
    balances: dict[str, int] | None = None,
    custody: InMemoryCustody | None = None,
) -> tuple[NoteLedger, InMemoryCustody, MockProver]:
    """
    A ledger launched over ASSET with the circuit verifiers (or `verifier` for
    every circuit) and custody balances funded from `balances`.
    """
    config = config or mk_config()
    custody = custody if custody is not None else InMemoryCustody()
    for holder, amount in (balances or {"alice": 10 * DENOMINATION}).items():
        custody.credit(ASSET, holder, amount)

    verifiers = (
        circuit_verifiers(config)
        if verifier is None
        else CircuitVerifiers.uniform(verifier)
    )
    ledger = launch(LEDGER_ID, ASSET, config, CollateralLedger(custody), verifiers)
    return ledger, custody, MockProver(config)


class CallbackCustody(InMemoryCustody):
    """
    Runs `callback` once, from inside the next movement of the asset, and
    keeps the ledger errors it raised.
    """

    def __init__(self):
        super().__init__()
        self.callback = None
        self.errors: list[LedgerError] = []

    def _run_callback(self):
        callback, self.callback = self.callback, None
        if callback is None:
            return
        try:
            callback()
        except LedgerError as e:
            self.errors.append(e)

    def transfer_in(self, asset: str, source: str, amount: int) -> bool:
        self._run_callback()
        return super().transfer_in(asset, source, amount)

    def transfer_out(self, asset: str, destination: str, amount: int) -> bool:
        self._run_callback()
        return super().transfer_out(asset, destination, amount)


def mint_note(
    ledger: NoteLedger, prover: MockProver, amount: int = DENOMINATION, depositor="alice"
) -> Note:
    note = Note.random(amount)
    ledger.mint(prover.mint(note, depositor))
    return note


def spend(ledger: NoteLedger, prover: MockProver, *notes: Note):
    paths = ledger.merkle_paths(note.commitment(prover.hasher) for note in notes)
    return [prover.spend(note, path) for note, path in zip(notes, paths)]


class Setup:
    """
    A Groth16 setup whose toxic waste is kept around, so that valid proofs
    for any public input vector can be simulated without a circuit.
    """

    def __init__(self, n_public: int, seed: int = 0):
        self.rng = random.Random(seed)
        self.alpha, self.beta, self.gamma, self.delta = (self._scalar() for _ in range(4))
        self.ic = [self._scalar() for _ in range(n_public + 1)]
        self.vk = VerifyingKey(
            alpha=multiply(G1, self.alpha),
            beta=multiply(G2, self.beta),
            gamma=multiply(G2, self.gamma),
            delta=multiply(G2, self.delta),
            ic=tuple(multiply(G1, k) for k in self.ic),
        )

    def _scalar(self) -> int:
        return self.rng.randrange(1, curve_order)

    def prove(self, public_inputs: list[int]) -> Groth16Proof:
        x = (self.ic[0] + sum(i * k for i, k in zip(public_inputs, self.ic[1:]))) % curve_order
        a, b = self._scalar(), self._scalar()
        # a * b == alpha * beta + x * gamma + c * delta
        c = (
            (a * b - self.alpha * self.beta - x * self.gamma)
            * pow(self.delta, -1, curve_order)
            % curve_order
        )
        return Groth16Proof(a=multiply(G1, a), b=multiply(G2, b), c=multiply(G1, c))

