"""Cryptographic helpers for kwclient.

This module provides:
- Local sealing of session secrets using AES-256-GCM
- HMAC-SHA1 request signatures for signature authentication
"""

from __future__ import annotations

import hashlib
import hmac
import os

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

# AES-GCM constants
KEY_SIZE = 32  # 256 bits
NONCE_SIZE = 12  # 96 bits (recommended for AES-GCM)


def generate_key() -> bytes:
    """Generate a random 256-bit key for sealing secrets."""
    return os.urandom(KEY_SIZE)


def encrypt_secret(secret: str, key: bytes) -> bytes:
    """Encrypt a secret using AES-256-GCM with a random nonce.

    Args:
        secret: Plaintext secret.
        key: 32-byte key.

    Returns:
        Encrypted data in format: nonce (12 bytes) || ciphertext || auth_tag (16 bytes)
    """
    nonce = os.urandom(NONCE_SIZE)
    aesgcm = AESGCM(key)
    return nonce + aesgcm.encrypt(nonce, secret.encode("utf-8"), None)


def decrypt_secret(encrypted: bytes, key: bytes) -> str:
    """Decrypt a secret sealed with encrypt_secret.

    Raises:
        cryptography.exceptions.InvalidTag: If the key is wrong or data was tampered.
    """
    nonce = encrypted[:NONCE_SIZE]
    ciphertext = encrypted[NONCE_SIZE:]
    aesgcm = AESGCM(key)
    return aesgcm.decrypt(nonce, ciphertext, None).decode("utf-8")


class SealedSecrets:
    """Secrets held encrypted in memory under a key minted per instance.

    The key is only generated when the first secret is stored, so an
    instance without secrets holds no key material at all.
    """

    def __init__(self) -> None:
        self._key: bytes | None = None
        self._sealed: dict[str, bytes] = {}

    def store(self, name: str, value: str) -> None:
        """Seal and store a secret under name."""
        if self._key is None:
            self._key = generate_key()
        self._sealed[name] = encrypt_secret(value, self._key)

    def reveal(self, name: str) -> str:
        """Return the plaintext of a stored secret, or "" if unset."""
        sealed = self._sealed.get(name)
        if sealed is None or self._key is None:
            return ""
        return decrypt_secret(sealed, self._key)

    def __contains__(self, name: str) -> bool:
        return name in self._sealed


def sign(key: str, message: str) -> str:
    """Return the hex HMAC-SHA1 of message under key."""
    return hmac.new(key.encode("utf-8"), message.encode("utf-8"), hashlib.sha1).hexdigest()
