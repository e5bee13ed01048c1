"""
Note payload encryption.

The ledger stores and emits encrypted payloads verbatim; only the holder of
the recipient's X25519 private key can recover the note. Each payload uses a
fresh ephemeral key:

    payload = ephemeral_public_key (32) || nonce (12) || ChaCha20-Poly1305(note)

The symmetric key is HKDF-SHA256 over the X25519 shared secret, and the
ephemeral public key is bound as associated data.
"""

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from noteledger.note import Note

KEY_SIZE = 32
NONCE_SIZE = 12
INFO = b"NOTELEDGER_NOTE_ENC"


def public_key_bytes(public_key: X25519PublicKey) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw
    )


def _derive_key(shared_secret: bytes) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(), length=KEY_SIZE, salt=None, info=INFO
    ).derive(shared_secret)


def encrypt_note(note: Note, recipient: X25519PublicKey) -> bytes:
    ephemeral = X25519PrivateKey.generate()
    ephemeral_pk = public_key_bytes(ephemeral.public_key())
    key = _derive_key(ephemeral.exchange(recipient))
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = ChaCha20Poly1305(key).encrypt(nonce, note.encode(), ephemeral_pk)
    return ephemeral_pk + nonce + ciphertext


def decrypt_note(payload: bytes, private_key: X25519PrivateKey) -> Note:
    """
    Raises ValueError on a truncated payload and InvalidTag when the payload
    was not encrypted for `private_key` or was tampered with.
    """
    if len(payload) < KEY_SIZE + NONCE_SIZE:
        raise ValueError(f"payload too short: {len(payload)} bytes")

    ephemeral_pk = payload[:KEY_SIZE]
    nonce = payload[KEY_SIZE : KEY_SIZE + NONCE_SIZE]
    ciphertext = payload[KEY_SIZE + NONCE_SIZE :]

    shared = private_key.exchange(X25519PublicKey.from_public_bytes(ephemeral_pk))
    plaintext = ChaCha20Poly1305(_derive_key(shared)).decrypt(
        nonce, ciphertext, ephemeral_pk
    )
    return Note.decode(plaintext)


def try_decrypt_note(payload: bytes, private_key: X25519PrivateKey) -> Note | None:
    try:
        return decrypt_note(payload, private_key)
    except (ValueError, InvalidTag):
        return None
