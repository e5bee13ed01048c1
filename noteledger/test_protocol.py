from unittest import TestCase

from .crypto import Field
from .note import MAX_AMOUNT
from .protocol import (
    AmountPolicy,
    LedgerConfig,
    TransferArity,
    TransferLayout,
    encode_recipient,
    mint_amount,
    mint_public_inputs,
    transfer_public_inputs,
)


class TestProtocol(TestCase):
    def test_encode_recipient(self):
        address = "0x" + "ab" * 20
        assert encode_recipient(address) == int(address, 16)
        assert encode_recipient("bob") == encode_recipient("bob")
        assert encode_recipient("bob") != encode_recipient("alice")

    def test_transfer_layouts(self):
        nfs, cms, root = [Field(1), Field(2)], [Field(3), Field(4)], Field(9)
        assert transfer_public_inputs(TransferLayout.FIXED, nfs, cms, root) == [9, 1, 2, 3, 4]
        assert transfer_public_inputs(TransferLayout.VARIABLE, nfs, cms, root) == [1, 2, 3, 4, 9]

    def test_mint_amount_slot(self):
        revealed = mint_public_inputs(
            AmountPolicy.REVEALED, Field(1), nullifier_hash=Field(2), amount=77
        )
        assert revealed == [1, 2, 77]
        assert mint_amount(AmountPolicy.REVEALED, revealed) == 77

        fixed = mint_public_inputs(AmountPolicy.DENOMINATION, Field(1), denomination=10)
        assert mint_amount(AmountPolicy.DENOMINATION, fixed) == 10

    def test_arity(self):
        assert TransferArity.fixed().accepts(2, 2)
        assert not TransferArity.fixed().accepts(1, 2)
        assert TransferArity.variable().accepts(5, 1)
        assert not TransferArity.variable().accepts(0, 1)
        assert TransferArity.variable(inputs=2).accepts(2, 7)
        assert not TransferArity.variable(inputs=2).accepts(3, 7)
        with self.assertRaises(AssertionError):
            TransferArity(3, 1, TransferLayout.FIXED)

    def test_denomination_bounds(self):
        with self.assertRaises(AssertionError):
            LedgerConfig(denomination=MAX_AMOUNT + 1)
        with self.assertRaises(AssertionError):
            LedgerConfig(denomination=0)
        assert LedgerConfig(denomination=MAX_AMOUNT).denomination == MAX_AMOUNT
        # only the denomination policy uses it
        LedgerConfig(policy=AmountPolicy.REVEALED, denomination=MAX_AMOUNT + 1)
