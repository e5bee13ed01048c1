"""
Collateral accounting: the underlying asset locked 1:1 behind the notes a note
ledger (the issuer) has minted.

Each issuer is registered against exactly one underlying asset. Only that
issuer may lock or release collateral for the (asset, issuer) pair, and a
release can never exceed what has been locked.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict

from noteledger.errors import (
    InsufficientCollateral,
    InvalidRequest,
    TransferFailed,
    UnauthorizedIssuer,
)

logger = logging.getLogger(__name__)


class AssetCustody(ABC):
    """
    Moves the underlying fungible asset in and out of custody.
    Both methods return False when the movement could not be made.
    """

    @abstractmethod
    def transfer_in(self, asset: str, source: str, amount: int) -> bool:
        raise NotImplementedError()

    @abstractmethod
    def transfer_out(self, asset: str, destination: str, amount: int) -> bool:
        raise NotImplementedError()


class InMemoryCustody(AssetCustody):
    def __init__(self):
        self.balances: dict[tuple[str, str], int] = defaultdict(int)
        self.vault: dict[str, int] = defaultdict(int)

    def credit(self, asset: str, holder: str, amount: int):
        self.balances[(asset, holder)] += amount

    def balance_of(self, asset: str, holder: str) -> int:
        return self.balances.get((asset, holder), 0)

    def transfer_in(self, asset: str, source: str, amount: int) -> bool:
        if self.balances[(asset, source)] < amount:
            return False
        self.balances[(asset, source)] -= amount
        self.vault[asset] += amount
        return True

    def transfer_out(self, asset: str, destination: str, amount: int) -> bool:
        if self.vault[asset] < amount:
            return False
        self.vault[asset] -= amount
        self.balances[(asset, destination)] += amount
        return True


class CollateralLedger:
    def __init__(self, custody: AssetCustody):
        self.custody = custody
        self._issuers: dict[str, str] = {}
        self._locked: dict[tuple[str, str], int] = {}
        # shared between the note ledgers of every registered issuer
        self._lock = threading.Lock()

    def register_issuer(self, issuer: str, asset: str):
        with self._lock:
            registered = self._issuers.get(issuer)
            if registered is not None and registered != asset:
                raise UnauthorizedIssuer(issuer, asset)
            self._issuers[issuer] = asset
            logger.info("registered issuer %s for %s", issuer, asset)

    def is_authorized(self, issuer: str) -> bool:
        return issuer in self._issuers

    def underlying_asset(self, issuer: str) -> str | None:
        return self._issuers.get(issuer)

    def total_locked(self, asset: str, issuer: str) -> int:
        return self._locked.get((asset, issuer), 0)

    def lock(self, asset: str, issuer: str, amount: int, depositor: str):
        """
        Pulls `amount` of `asset` from `depositor` into custody and accounts it
        to the issuer.
        """
        with self._lock:
            self._authorize(asset, issuer)
            _check_amount(amount)

            if not self._move(self.custody.transfer_in, asset, depositor, amount):
                raise TransferFailed(asset, depositor, amount)

            key = (asset, issuer)
            self._locked[key] = self._locked.get(key, 0) + amount

    def release(self, asset: str, issuer: str, amount: int, recipient: str) -> bool:
        """
        Pays `amount` of `asset` out of custody to `recipient`. The locked
        balance is left untouched when the release is refused or the payment
        fails.
        """
        with self._lock:
            self._authorize(asset, issuer)
            _check_amount(amount)

            key = (asset, issuer)
            locked = self._locked.get(key, 0)
            if amount > locked:
                raise InsufficientCollateral(amount, locked)

            self._locked[key] = locked - amount
            if not self._move(self.custody.transfer_out, asset, recipient, amount):
                self._locked[key] = locked
                raise TransferFailed(asset, recipient, amount)
            return True

    def _authorize(self, asset: str, issuer: str):
        if self._issuers.get(issuer) != asset:
            raise UnauthorizedIssuer(issuer, asset)

    @staticmethod
    def _move(transfer, asset: str, party: str, amount: int) -> bool:
        try:
            return bool(transfer(asset, party, amount))
        except Exception:
            logger.exception("custody transfer of %d %s for %s raised", amount, asset, party)
            return False


def _check_amount(amount: int):
    if not isinstance(amount, int) or isinstance(amount, bool) or amount < 0:
        raise InvalidRequest(f"amount must be a non-negative integer, got {amount!r}")
