"""At-rest encryption for third-party access tokens (Notion).

AES-256-CBC with PKCS#7 padding. The key is derived from the server secret
with scrypt (salt ``b"salt"``, N=2**14, r=8, p=1); ciphertexts are stored as
``<iv hex>:<ciphertext hex>``.
"""

from __future__ import annotations

import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

_SALT = b"salt"
_KEY_LENGTH = 32
_IV_LENGTH = 16


class TokenDecryptionError(ValueError):
    """Raised when a stored token cannot be decrypted with the configured key."""


def derive_key(secret: str) -> bytes:
    kdf = Scrypt(salt=_SALT, length=_KEY_LENGTH, n=2**14, r=8, p=1)
    return kdf.derive(secret.encode("utf-8"))


class TokenCipher:
    """Encrypt/decrypt short secrets with a key derived from *secret*."""

    def __init__(self, secret: str) -> None:
        if not secret:
            raise ValueError("Encryption secret must not be empty.")
        self._key = derive_key(secret)

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(_IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, token: str) -> str:
        """Decrypt an ``iv:ciphertext`` hex pair.

        Raises:
            TokenDecryptionError: on malformed input, a wrong key, or bad padding.
        """
        iv_hex, sep, ct_hex = token.partition(":")
        if not sep:
            raise TokenDecryptionError("Encrypted token is not in 'iv:ciphertext' format.")
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(ct_hex)
            if len(iv) != _IV_LENGTH or not ciphertext:
                raise ValueError("bad IV or empty ciphertext")
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            return (unpadder.update(padded) + unpadder.finalize()).decode("utf-8")
        except ValueError as exc:
            raise TokenDecryptionError(f"Failed to decrypt token: {exc}") from exc
