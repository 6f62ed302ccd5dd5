"""Transport encryption for dispensed credentials.

AES-256-CBC with PKCS7 padding. The key is SHA-256 of the shared secret; every
call draws a fresh 16-byte IV, so sealing the same credential twice never
yields the same token.

Token format: "<iv hex>:<ciphertext hex>". ':' is outside the hex alphabet, so
clients split on the first ':' unambiguously.
"""

from __future__ import annotations

import hashlib
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes


IV_BYTES = 16
DELIMITER = ":"


def derive_key(shared_secret: str) -> bytes:
    return hashlib.sha256(shared_secret.encode("utf-8")).digest()


class CredentialCipher:
    def __init__(self, shared_secret: str) -> None:
        if not shared_secret:
            raise ValueError("shared secret must not be empty")
        self._key = derive_key(shared_secret)

    def seal(self, secret: str) -> str:
        iv = os.urandom(IV_BYTES)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(secret.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}{DELIMITER}{ciphertext.hex()}"

    def open(self, token: str) -> str:
        """Reference decoder for clients and tests. Raises ValueError on bad input."""
        iv_hex, sep, body_hex = token.partition(DELIMITER)
        if not sep:
            raise ValueError("missing iv delimiter")
        iv = bytes.fromhex(iv_hex)
        body = bytes.fromhex(body_hex)
        if len(iv) != IV_BYTES:
            raise ValueError("iv must be 16 bytes")
        if not body or len(body) % IV_BYTES:
            raise ValueError("ciphertext length is not a multiple of the block size")
        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(body) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")
