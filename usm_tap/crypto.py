"""AES-256-CBC helpers for locally persisted preference values.

Stored values look like ``base64(iv):base64(ciphertext)``. Values written by
older clients carry no IV segment and were encrypted with an all-zero IV.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .exceptions import EncryptionError

KEY_LENGTH = 32
IV_LENGTH = 16
LEGACY_IV = bytes(IV_LENGTH)


def normalize_key(key: str, length: int = KEY_LENGTH) -> bytes:
    """Repeat-and-truncate (or truncate) the UTF-8 key to exactly ``length`` bytes.

    Not a KDF: the key string is expected to already carry full entropy.
    """
    raw = key.encode("utf-8")
    if not raw:
        raise EncryptionError("Encryption key must not be empty")
    if len(raw) == length:
        return raw
    if len(raw) < length:
        repeats = -(-length // len(raw))
        return (raw * repeats)[:length]
    return raw[:length]


def _cipher(key: str, iv: bytes) -> Cipher:
    return Cipher(algorithms.AES(normalize_key(key)), modes.CBC(iv))


def _encrypt_bytes(plaintext: str, key: str, iv: bytes) -> bytes:
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
    encryptor = _cipher(key, iv).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def _decrypt_bytes(ciphertext: bytes, key: str, iv: bytes) -> str:
    try:
        decryptor = _cipher(key, iv).decryptor()
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        data = unpadder.update(padded) + unpadder.finalize()
        return data.decode("utf-8")
    except (ValueError, UnicodeDecodeError) as exc:
        raise EncryptionError(f"Decryption failed: {exc}") from exc


def encrypt_value(plaintext: str, key: str) -> str:
    iv = os.urandom(IV_LENGTH)
    ciphertext = _encrypt_bytes(plaintext, key, iv)
    return f"{base64.b64encode(iv).decode('ascii')}:{base64.b64encode(ciphertext).decode('ascii')}"


def encrypt_legacy_value(plaintext: str, key: str) -> str:
    """Encrypt with the fixed zero IV and no IV segment, as older clients did."""
    return base64.b64encode(_encrypt_bytes(plaintext, key, LEGACY_IV)).decode("ascii")


def decrypt_value(blob: str, key: str) -> str:
    parts = blob.split(":")
    try:
        if len(parts) != 2:
            return _decrypt_bytes(base64.b64decode(blob, validate=True), key, LEGACY_IV)
        iv = base64.b64decode(parts[0], validate=True)
        ciphertext = base64.b64decode(parts[1], validate=True)
    except binascii.Error as exc:
        raise EncryptionError(f"Malformed encrypted value: {exc}") from exc

    if len(iv) != IV_LENGTH:
        raise EncryptionError("Malformed encrypted value: bad IV length")
    return _decrypt_bytes(ciphertext, key, iv)


def hash_data(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
