"""
keybox_core.crypto
------------------
Symmetric at-rest encryption for Keybox collections.

- AES-256-GCM via `cryptography` (AEAD: confidentiality + tamper detection)
- Sealed blobs are self-contained: nonce(12) || ciphertext || tag(16)
- decrypt() never raises: integrity or format failures return None so that
  callers can fall back to reading legacy plaintext blobs

Key management note: the key is SHA-256 of a fixed passphrase, identical on
every installation. Anyone holding the source can decrypt a stolen blob.
Pass `key=` (e.g. a random key from the platform keystore) to opt out.
"""

from __future__ import annotations
from typing import Optional
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .logger import get_logger

log = get_logger("Keybox.Crypto")

DEFAULT_PASSPHRASE = "KeyboxAppSecretKey2024SecureStorage"
NONCE_SIZE = 12
TAG_SIZE = 16


def derive_key(passphrase: str = DEFAULT_PASSPHRASE) -> bytes:
    digest = hashes.Hash(hashes.SHA256())
    digest.update(passphrase.encode("utf-8"))
    return digest.finalize()  # 256-bit AEAD key


def aead_encrypt(key: bytes, plaintext: bytes, aad: Optional[bytes] = None) -> bytes:
    nonce = os.urandom(NONCE_SIZE)
    return nonce + AESGCM(key).encrypt(nonce, plaintext, aad)


def aead_decrypt(key: bytes, sealed: bytes, aad: Optional[bytes] = None) -> bytes:
    if len(sealed) < NONCE_SIZE + TAG_SIZE:
        raise ValueError("sealed blob too short")
    return AESGCM(key).decrypt(sealed[:NONCE_SIZE], sealed[NONCE_SIZE:], aad)


class EncryptionService:
    """One derived key per instance; shared by every store it is injected into."""

    def __init__(self, passphrase: str = DEFAULT_PASSPHRASE, key: Optional[bytes] = None):
        self._key = key if key is not None else derive_key(passphrase)
        if len(self._key) != 32:
            raise ValueError("AES-256 key must be 32 bytes")

    def encrypt(self, plaintext: bytes) -> Optional[bytes]:
        try:
            return aead_encrypt(self._key, plaintext)
        except Exception as e:
            log.error(f"[CRYPTO] encryption error: {e}")
            return None

    def decrypt(self, sealed: bytes) -> Optional[bytes]:
        try:
            return aead_decrypt(self._key, sealed)
        except (InvalidTag, ValueError) as e:
            log.debug(f"[CRYPTO] decryption failed: {type(e).__name__}")
            return None
