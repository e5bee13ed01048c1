"""
This module provides the proof verification capability the ledger depends on.

The ledger only ever asks `verify(proof, public_inputs) -> bool`. Variants:

- AcceptAllVerifier / RejectAllVerifier: deterministic test doubles.
- Groth16Verifier: the Groth16 pairing check over BN254, using py_ecc and a
  verification key exported by `snarkjs zkey export verificationkey`.
- SnarkjsVerifier: shells out to `snarkjs groth16 verify`.

The circuit-equivalent oracle used by tests and the simulation lives in
`noteledger.circuits`.
"""

import functools
import json
import logging
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

import sh
from py_ecc.optimized_bn128 import (
    FQ,
    FQ2,
    FQ12,
    add,
    b,
    b2,
    curve_order,
    is_inf,
    is_on_curve,
    multiply,
    neg,
    normalize,
    pairing,
)

logger = logging.getLogger(__name__)

# Points are py_ecc's projective coordinates: (x, y, z)
G1Point = tuple[FQ, FQ, FQ]
G2Point = tuple[FQ2, FQ2, FQ2]

# Circuit names of the deposit / transfer / withdraw trusted setups.
MINT_CIRCUIT = "deposit"
TRANSFER_CIRCUIT = "transfer"
REDEEM_CIRCUIT = "withdraw"


class Proof:
    pass


@dataclass(frozen=True)
class Groth16Proof(Proof):
    a: G1Point
    b: G2Point
    c: G1Point

    @classmethod
    def from_snarkjs(cls, data: dict) -> "Groth16Proof":
        return cls(
            a=g1_from_json(data["pi_a"]),
            b=g2_from_json(data["pi_b"]),
            c=g1_from_json(data["pi_c"]),
        )

    def to_snarkjs(self) -> dict:
        return {
            "pi_a": g1_to_json(self.a),
            "pi_b": g2_to_json(self.b),
            "pi_c": g1_to_json(self.c),
            "protocol": "groth16",
            "curve": "bn128",
        }


class ProofVerifier(ABC):
    @abstractmethod
    def verify(self, proof: Proof, public_inputs: Sequence[int]) -> bool:
        raise NotImplementedError()


class AcceptAllVerifier(ProofVerifier):
    def verify(self, proof: Proof, public_inputs: Sequence[int]) -> bool:
        return True


class RejectAllVerifier(ProofVerifier):
    def verify(self, proof: Proof, public_inputs: Sequence[int]) -> bool:
        return False


@dataclass(frozen=True)
class VerifyingKey:
    alpha: G1Point
    beta: G2Point
    gamma: G2Point
    delta: G2Point
    # ic[0] + sum(input_i * ic[i + 1]) commits to the public inputs
    ic: tuple[G1Point, ...]

    @property
    def n_public(self) -> int:
        return len(self.ic) - 1

    @classmethod
    def from_snarkjs(cls, data: dict) -> "VerifyingKey":
        assert data.get("protocol", "groth16") == "groth16", data.get("protocol")
        vk = cls(
            alpha=g1_from_json(data["vk_alpha_1"]),
            beta=g2_from_json(data["vk_beta_2"]),
            gamma=g2_from_json(data["vk_gamma_2"]),
            delta=g2_from_json(data["vk_delta_2"]),
            ic=tuple(g1_from_json(p) for p in data["IC"]),
        )
        assert vk.n_public == int(data.get("nPublic", vk.n_public)), "IC / nPublic mismatch"
        return vk

    def to_snarkjs(self) -> dict:
        return {
            "protocol": "groth16",
            "curve": "bn128",
            "nPublic": self.n_public,
            "vk_alpha_1": g1_to_json(self.alpha),
            "vk_beta_2": g2_to_json(self.beta),
            "vk_gamma_2": g2_to_json(self.gamma),
            "vk_delta_2": g2_to_json(self.delta),
            "IC": [g1_to_json(p) for p in self.ic],
        }

    @classmethod
    def load(cls, path: Path) -> "VerifyingKey":
        with open(path, "r") as f:
            return cls.from_snarkjs(json.load(f))


class Groth16Verifier(ProofVerifier):
    """
    Checks e(A, B) == e(alpha, beta) * e(vk_x, gamma) * e(C, delta), written as
    e(-A, B) * e(alpha, beta) * e(vk_x, gamma) * e(C, delta) == 1.

    Any malformed proof or input vector makes verification fail; the reason
    is never reported.
    """

    def __init__(self, vk: VerifyingKey):
        self.vk = vk

    @classmethod
    def load(cls, path: Path) -> "Groth16Verifier":
        return cls(VerifyingKey.load(path))

    @functools.cached_property
    def _alpha_beta(self) -> FQ12:
        return pairing(self.vk.beta, self.vk.alpha)

    def verify(self, proof: Proof, public_inputs: Sequence[int]) -> bool:
        if not isinstance(proof, Groth16Proof):
            return False
        if len(public_inputs) != self.vk.n_public:
            return False
        if not all(_is_scalar(x) for x in public_inputs):
            return False
        if not (_is_g1(proof.a) and _is_g1(proof.c) and _is_g2(proof.b)):
            return False

        vk_x = self.vk.ic[0]
        for x, ic in zip(public_inputs, self.vk.ic[1:]):
            vk_x = add(vk_x, multiply(ic, int(x)))

        product = (
            pairing(proof.b, neg(proof.a))
            * self._alpha_beta
            * pairing(self.vk.gamma, vk_x)
            * pairing(self.vk.delta, proof.c)
        )
        return product == FQ12.one()


class SnarkjsVerifier(ProofVerifier):
    """
    Provides a wrapper around `snarkjs groth16 verify`. Every call writes the
    proof and public signals to a fresh temporary directory, so concurrent
    verifications never share files.
    """

    def __init__(self, verification_key: Path):
        self.verification_key = Path(verification_key)
        assert self.verification_key.is_file(), self.verification_key
        self._snarkjs = sh.Command("snarkjs")

    def verify(self, proof: Proof, public_inputs: Sequence[int]) -> bool:
        if not isinstance(proof, Groth16Proof):
            return False
        if not all(_is_scalar(x) for x in public_inputs):
            return False
        if not (_is_g1(proof.a) and _is_g1(proof.c) and _is_g2(proof.b)):
            return False

        with tempfile.TemporaryDirectory() as tmp:
            proof_file = Path(tmp) / "proof.json"
            public_file = Path(tmp) / "public.json"
            with open(proof_file, "w") as f:
                json.dump(proof.to_snarkjs(), f)
            with open(public_file, "w") as f:
                json.dump([str(int(x)) for x in public_inputs], f)

            result = self._snarkjs(
                "groth16",
                "verify",
                str(self.verification_key),
                str(public_file),
                str(proof_file),
                _ok_code=list(range(256)),
                _return_cmd=True,
            )
            if result.exit_code != 0:
                logger.debug("snarkjs rejected proof: %s", str(result).strip())
            return result.exit_code == 0 and "OK" in str(result)


@dataclass(frozen=True)
class CircuitVerifiers:
    """One verifier per circuit, as each circuit has its own trusted setup."""

    mint: ProofVerifier
    transfer: ProofVerifier
    redeem: ProofVerifier

    @classmethod
    def uniform(cls, verifier: ProofVerifier) -> "CircuitVerifiers":
        return cls(mint=verifier, transfer=verifier, redeem=verifier)

    @classmethod
    def from_keys_dir(
        cls,
        keys_dir: Path,
        factory: Callable[[Path], ProofVerifier] = Groth16Verifier.load,
    ) -> "CircuitVerifiers":
        """
        Loads `<circuit>_verification_key.json` for the deposit, transfer and
        withdraw circuits from `keys_dir`.
        """
        keys_dir = Path(keys_dir)

        def key(circuit: str) -> Path:
            return keys_dir / f"{circuit}_verification_key.json"

        return cls(
            mint=factory(key(MINT_CIRCUIT)),
            transfer=factory(key(TRANSFER_CIRCUIT)),
            redeem=factory(key(REDEEM_CIRCUIT)),
        )


def _is_scalar(x) -> bool:
    return isinstance(x, int) and not isinstance(x, bool) and 0 <= x < curve_order


def _is_point(point, coordinate_type, curve_b) -> bool:
    return (
        isinstance(point, tuple)
        and len(point) == 3
        and all(isinstance(c, coordinate_type) for c in point)
        and is_on_curve(point, curve_b)
    )


def _is_g1(point) -> bool:
    return _is_point(point, FQ, b)


def _is_g2(point) -> bool:
    # G2 has a cofactor, so being on the twist is not enough
    return _is_point(point, FQ2, b2) and is_inf(multiply(point, curve_order))


def _to_int(coordinate) -> int:
    return int(getattr(coordinate, "n", coordinate))


def g1_from_json(p: Sequence[str]) -> G1Point:
    x, y, z = (int(v) for v in p[:3])
    return (FQ(x), FQ(y), FQ(z))


def g2_from_json(p: Sequence[Sequence[str]]) -> G2Point:
    # snarkjs writes each FQ2 coordinate as [c0, c1], the order py_ecc expects
    return tuple(FQ2([int(c[0]), int(c[1])]) for c in p[:3])


def g1_to_json(point: G1Point) -> list[str]:
    if is_inf(point):
        return ["0", "1", "0"]
    x, y = normalize(point)
    return [str(_to_int(x)), str(_to_int(y)), "1"]


def g2_to_json(point: G2Point) -> list[list[str]]:
    if is_inf(point):
        return [["0", "0"], ["1", "0"], ["0", "0"]]
    x, y = normalize(point)
    return [
        [str(_to_int(x.coeffs[0])), str(_to_int(x.coeffs[1]))],
        [str(_to_int(y.coeffs[0])), str(_to_int(y.coeffs[1]))],
        ["1", "0"],
    ]
