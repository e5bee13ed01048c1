from unittest import TestCase

from .collateral import AssetCustody, CollateralLedger, InMemoryCustody
from .errors import InsufficientCollateral, InvalidRequest, TransferFailed, UnauthorizedIssuer


class BrokenCustody(AssetCustody):
    def transfer_in(self, asset, source, amount):
        raise RuntimeError("custody offline")

    def transfer_out(self, asset, destination, amount):
        return False


def mk_collateral() -> tuple[CollateralLedger, InMemoryCustody]:
    custody = InMemoryCustody()
    custody.credit("ETH", "alice", 100)
    collateral = CollateralLedger(custody)
    collateral.register_issuer("zkETH", "ETH")
    return collateral, custody


class TestCollateralLedger(TestCase):
    def test_lock_and_release(self):
        collateral, custody = mk_collateral()

        collateral.lock("ETH", "zkETH", 60, "alice")
        assert collateral.total_locked("ETH", "zkETH") == 60
        assert custody.balance_of("ETH", "alice") == 40
        assert custody.vault["ETH"] == 60

        assert collateral.release("ETH", "zkETH", 25, "bob")
        assert collateral.total_locked("ETH", "zkETH") == 35
        assert custody.balance_of("ETH", "bob") == 25
        assert custody.vault["ETH"] == 35

    def test_release_more_than_locked(self):
        collateral, custody = mk_collateral()
        collateral.lock("ETH", "zkETH", 10, "alice")
        with self.assertRaises(InsufficientCollateral):
            collateral.release("ETH", "zkETH", 11, "bob")
        assert collateral.total_locked("ETH", "zkETH") == 10
        assert custody.balance_of("ETH", "bob") == 0

    def test_failed_deposit_changes_nothing(self):
        collateral, custody = mk_collateral()
        with self.assertRaises(TransferFailed):
            collateral.lock("ETH", "zkETH", 101, "alice")
        assert collateral.total_locked("ETH", "zkETH") == 0
        assert custody.balance_of("ETH", "alice") == 100

    def test_failed_payout_restores_balance(self):
        collateral = CollateralLedger(BrokenCustody())
        collateral.register_issuer("zkETH", "ETH")
        with self.assertRaises(TransferFailed):
            collateral.lock("ETH", "zkETH", 1, "alice")

        collateral, custody = mk_collateral()
        collateral.lock("ETH", "zkETH", 10, "alice")
        custody.vault["ETH"] = 0
        with self.assertRaises(TransferFailed):
            collateral.release("ETH", "zkETH", 10, "bob")
        assert collateral.total_locked("ETH", "zkETH") == 10

    def test_only_the_registered_issuer(self):
        collateral, _ = mk_collateral()
        with self.assertRaises(UnauthorizedIssuer):
            collateral.lock("ETH", "zkDAI", 1, "alice")
        with self.assertRaises(UnauthorizedIssuer):
            collateral.lock("DAI", "zkETH", 1, "alice")
        with self.assertRaises(UnauthorizedIssuer):
            collateral.register_issuer("zkETH", "DAI")

        # registering again for the same asset is harmless
        collateral.register_issuer("zkETH", "ETH")
        assert collateral.is_authorized("zkETH")
        assert collateral.underlying_asset("zkETH") == "ETH"
        assert collateral.underlying_asset("zkDAI") is None

    def test_amounts(self):
        collateral, _ = mk_collateral()
        with self.assertRaises(InvalidRequest):
            collateral.lock("ETH", "zkETH", -1, "alice")
        collateral.lock("ETH", "zkETH", 0, "alice")
        assert collateral.release("ETH", "zkETH", 0, "bob")
        assert collateral.total_locked("ETH", "zkETH") == 0
