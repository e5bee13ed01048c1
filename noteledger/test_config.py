import random
from pathlib import Path
from unittest import TestCase

from .circuits import CircuitVerifier
from .config import Config, VerifierKind
from .note import MAX_AMOUNT
from .protocol import AmountPolicy, TransferArity, TransferLayout
from .verifier import AcceptAllVerifier


class TestConfig(TestCase):
    def test_default(self):
        config = Config.default()
        ledger_config = config.ledger_config()
        assert ledger_config.depth == 20
        assert ledger_config.policy == AmountPolicy.DENOMINATION
        assert ledger_config.arity == TransferArity.fixed()
        assert isinstance(config.build_verifiers().mint, CircuitVerifier)

    def test_load_yaml(self):
        config = Config.load(str(Path(__file__).parent / "config.ci.yaml"))
        assert config.tree.depth == 10
        assert config.amounts.policy == AmountPolicy.REVEALED
        assert config.transfer.layout == TransferLayout.VARIABLE
        assert config.transfer.arity() == TransferArity.variable()
        assert config.verifier.kind == VerifierKind.CIRCUIT
        assert isinstance(config.simulation.seed, random.Random)
        assert config.simulation.operations == 100

    def test_from_dict(self):
        config = Config.from_dict(
            {
                "tree": {"depth": 4, "hash": "sha256"},
                "amounts": {"policy": "denomination", "denomination": 5},
                "verifier": {"kind": "accept_all"},
                "simulation": {"operations": 3, "seed": 7, "users": 2, "initial_balance": 10},
            }
        )
        assert config.ledger_config().denomination == 5
        assert config.ledger_config().depth == 4
        assert config.simulation.seed.random() == random.Random(7).random()
        verifiers = config.build_verifiers()
        assert isinstance(verifiers.transfer, AcceptAllVerifier)

    def test_validation(self):
        with self.assertRaises(AssertionError):
            Config.from_dict({"tree": {"depth": 33}})
        with self.assertRaises(AssertionError):
            Config.from_dict({"tree": {"hash": "md5"}})
        with self.assertRaises(AssertionError):
            Config.from_dict({"transfer": {"inputs": 3, "outputs": 1, "layout": "fixed"}})
        with self.assertRaises(AssertionError):
            Config.from_dict({"verifier": {"kind": "groth16"}})
        with self.assertRaises(AssertionError):
            Config.from_dict({"simulation": {"users": 1}})

    def test_denomination_must_fit_a_note(self):
        with self.assertRaises(AssertionError):
            Config.from_dict({"amounts": {"denomination": MAX_AMOUNT + 1}})
        with self.assertRaises(AssertionError):
            Config.from_dict({"amounts": {"denomination": 0}})
        config = Config.from_dict({"amounts": {"denomination": MAX_AMOUNT}})
        assert config.ledger_config().denomination == MAX_AMOUNT
