from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import dacite
import yaml

from noteledger.circuits import circuit_verifiers
from noteledger.crypto import HASH_NAMES
from noteledger.note import MAX_AMOUNT
from noteledger.protocol import AmountPolicy, LedgerConfig, TransferArity, TransferLayout
from noteledger.tree import DEFAULT_DEPTH, MAX_DEPTH
from noteledger.verifier import (
    AcceptAllVerifier,
    CircuitVerifiers,
    Groth16Verifier,
    SnarkjsVerifier,
)


class VerifierKind(Enum):
    ACCEPT_ALL = "accept_all"
    CIRCUIT = "circuit"
    GROTH16 = "groth16"
    SNARKJS = "snarkjs"


@dataclass
class Config:
    tree: TreeConfig = field(default_factory=lambda: TreeConfig())
    amounts: AmountsConfig = field(default_factory=lambda: AmountsConfig())
    transfer: TransferConfig = field(default_factory=lambda: TransferConfig())
    verifier: VerifierConfig = field(default_factory=lambda: VerifierConfig())
    simulation: SimulationConfig = field(default_factory=lambda: SimulationConfig())

    @classmethod
    def load(cls, yaml_path: str) -> Config:
        with open(yaml_path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict) -> Config:
        config = dacite.from_dict(
            data_class=Config,
            data=data,
            config=dacite.Config(
                type_hooks={random.Random: seed_to_random},
                cast=[AmountPolicy, TransferLayout, VerifierKind],
                strict=True,
            ),
        )
        config.validate()
        return config

    @classmethod
    def default(cls) -> Config:
        config = cls()
        config.validate()
        return config

    def validate(self):
        self.tree.validate()
        self.amounts.validate()
        self.transfer.validate()
        self.verifier.validate()
        self.simulation.validate()

    def ledger_config(self) -> LedgerConfig:
        return LedgerConfig(
            depth=self.tree.depth,
            hash=self.tree.hash,
            policy=self.amounts.policy,
            denomination=self.amounts.denomination,
            arity=self.transfer.arity(),
        )

    def build_verifiers(self) -> CircuitVerifiers:
        kind = self.verifier.kind
        if kind == VerifierKind.ACCEPT_ALL:
            return CircuitVerifiers.uniform(AcceptAllVerifier())
        if kind == VerifierKind.CIRCUIT:
            return circuit_verifiers(self.ledger_config())
        factory = Groth16Verifier.load if kind == VerifierKind.GROTH16 else SnarkjsVerifier
        return CircuitVerifiers.from_keys_dir(Path(self.verifier.keys_dir), factory)


@dataclass
class TreeConfig:
    # Depth of the commitment tree. The tree holds 2^depth notes.
    depth: int = DEFAULT_DEPTH
    # Hash primitive for commitments, nullifier hashes and tree nodes.
    # It must be the one the circuits were compiled with.
    hash: str = "sha256"

    def validate(self):
        assert 0 < self.depth <= MAX_DEPTH, self.depth
        assert self.hash in HASH_NAMES, self.hash


@dataclass
class AmountsConfig:
    policy: AmountPolicy = AmountPolicy.DENOMINATION
    # Value of every note under the denomination policy.
    denomination: int = 10**18

    def validate(self):
        if self.policy == AmountPolicy.DENOMINATION:
            assert 0 < self.denomination <= MAX_AMOUNT


@dataclass
class TransferConfig:
    # Number of inputs / outputs per transfer, null for any number.
    inputs: int | None = 2
    outputs: int | None = 2
    layout: TransferLayout = TransferLayout.FIXED

    def validate(self):
        assert self.inputs is None or self.inputs > 0
        assert self.outputs is None or self.outputs > 0
        if self.layout == TransferLayout.FIXED:
            assert (self.inputs, self.outputs) == (2, 2)

    def arity(self) -> TransferArity:
        return TransferArity(self.inputs, self.outputs, self.layout)


@dataclass
class VerifierConfig:
    kind: VerifierKind = VerifierKind.CIRCUIT
    # Directory holding {deposit,transfer,withdraw}_verification_key.json.
    keys_dir: str | None = None

    def validate(self):
        if self.kind in (VerifierKind.GROTH16, VerifierKind.SNARKJS):
            assert self.keys_dir is not None, f"{self.kind.value} needs keys_dir"


@dataclass
class SimulationConfig:
    # Number of operations submitted to the ledger.
    operations: int = 50
    # Seed for the random number generator that picks operations and amounts.
    seed: random.Random = field(default_factory=lambda: random.Random(0))
    users: int = 4
    # Underlying asset balance every user starts with.
    initial_balance: int = 100 * 10**18
    asset: str = "0x00000000000000000000000000000000000000aa"

    def validate(self):
        assert self.operations > 0
        assert self.seed is not None
        assert self.users >= 2, "transfers need a counterparty"
        assert self.initial_balance >= 0


def seed_to_random(seed: int) -> random.Random:
    return random.Random(seed)
