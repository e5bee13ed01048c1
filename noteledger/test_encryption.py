from unittest import TestCase

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from .encryption import decrypt_note, encrypt_note, try_decrypt_note
from .note import Note


class TestNoteEncryption(TestCase):
    def test_only_the_recipient_can_decrypt(self):
        bob = X25519PrivateKey.generate()
        eve = X25519PrivateKey.generate()
        note = Note.random(123)

        payload = encrypt_note(note, bob.public_key())
        assert decrypt_note(payload, bob) == note
        assert try_decrypt_note(payload, eve) is None
        with self.assertRaises(InvalidTag):
            decrypt_note(payload, eve)

    def test_payloads_are_unlinkable(self):
        bob = X25519PrivateKey.generate()
        note = Note.random(1)
        assert encrypt_note(note, bob.public_key()) != encrypt_note(note, bob.public_key())

    def test_tampering(self):
        bob = X25519PrivateKey.generate()
        payload = bytearray(encrypt_note(Note.random(1), bob.public_key()))
        payload[-1] ^= 1
        assert try_decrypt_note(bytes(payload), bob) is None
        assert try_decrypt_note(b"", bob) is None
        assert try_decrypt_note(bytes(44), bob) is None
