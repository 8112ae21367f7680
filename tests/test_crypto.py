# tests/test_crypto.py

import os
import pytest
from cryptography.exceptions import InvalidTag
from keybox_core.crypto import (
    DEFAULT_PASSPHRASE, NONCE_SIZE, TAG_SIZE, EncryptionService,
    aead_decrypt, aead_encrypt, derive_key,
)


def test_derive_key_is_deterministic_sha256():
    key = derive_key()
    assert len(key) == 32
    assert key == derive_key(DEFAULT_PASSPHRASE)
    assert key != derive_key("another passphrase")


def test_encrypt_decrypt_roundtrip_and_layout():
    svc = EncryptionService()
    plaintext = b'[{"id":"a","secret":"JBSWY3DPEHPK3PXP"}]'
    sealed = svc.encrypt(plaintext)
    assert sealed is not None
    assert len(sealed) == NONCE_SIZE + len(plaintext) + TAG_SIZE
    assert plaintext not in sealed
    assert svc.decrypt(sealed) == plaintext


def test_fresh_nonce_per_encryption():
    svc = EncryptionService()
    assert svc.encrypt(b"same") != svc.encrypt(b"same")


def test_two_installations_share_the_default_key():
    # Blobs written on one device decrypt on another with the default key
    assert EncryptionService().decrypt(EncryptionService().encrypt(b"x")) == b"x"


def test_tampered_blob_returns_none():
    svc = EncryptionService()
    sealed = bytearray(svc.encrypt(b"secret payload"))
    sealed[NONCE_SIZE] ^= 0x01
    assert svc.decrypt(bytes(sealed)) is None


def test_short_or_plaintext_blob_returns_none():
    svc = EncryptionService()
    assert svc.decrypt(b"") is None
    assert svc.decrypt(b"short") is None
    assert svc.decrypt(b'[{"id": "legacy", "issuer": "Plain", "secret": "AAAA"}]') is None


def test_wrong_key_cannot_decrypt():
    sealed = EncryptionService().encrypt(b"data")
    other = EncryptionService(key=os.urandom(32))
    assert other.decrypt(sealed) is None


def test_injected_key_must_be_256_bits():
    with pytest.raises(ValueError):
        EncryptionService(key=b"too short")


def test_aead_helpers_bind_associated_data():
    key = derive_key()
    sealed = aead_encrypt(key, b"payload", aad=b"saved_tokens_v1")
    assert aead_decrypt(key, sealed, aad=b"saved_tokens_v1") == b"payload"
    with pytest.raises(InvalidTag):
        aead_decrypt(key, sealed, aad=b"saved_accounts_v1")
    with pytest.raises(ValueError):
        aead_decrypt(key, b"\x00" * 10)
