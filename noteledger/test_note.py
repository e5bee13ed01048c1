from unittest import TestCase

from .crypto import Field
from .note import MAX_AMOUNT, Note


class TestNote(TestCase):
    def test_commitment_binds_every_field(self):
        note = Note(amount=5, secret=Field(1), nullifier_seed=Field(2))
        assert note.commitment() != Note(6, Field(1), Field(2)).commitment()
        assert note.commitment() != Note(5, Field(3), Field(2)).commitment()
        assert note.commitment() != Note(5, Field(1), Field(3)).commitment()

    def test_nullifier_hash_only_depends_on_seed(self):
        a = Note(amount=5, secret=Field(1), nullifier_seed=Field(2))
        b = Note(amount=7, secret=Field(9), nullifier_seed=Field(2))
        assert a.nullifier_hash() == b.nullifier_hash()
        assert a.nullifier_hash() != a.commitment()

    def test_encoding(self):
        note = Note.random(MAX_AMOUNT)
        assert len(note.encode()) == 96
        assert Note.decode(note.encode()) == note

    def test_decode_rejects_malformed(self):
        with self.assertRaises(ValueError):
            Note.decode(bytes(95))
        with self.assertRaises(ValueError):
            Note.decode((MAX_AMOUNT + 1).to_bytes(32, "big") + bytes(64))

    def test_amount_range(self):
        with self.assertRaises(AssertionError):
            Note(amount=-1, secret=Field(1), nullifier_seed=Field(2))
        with self.assertRaises(AssertionError):
            Note(amount=MAX_AMOUNT + 1, secret=Field(1), nullifier_seed=Field(2))
