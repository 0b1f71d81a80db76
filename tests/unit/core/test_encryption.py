import base64

import pytest

from catalog_sync.core.config import clear_settings_cache
from catalog_sync.core.encryption import (
    NONCE_LENGTH,
    TAG_LENGTH,
    decrypt,
    decrypt_json,
    encrypt,
    encrypt_json,
)
from catalog_sync.core.exceptions import CredentialDecryptionError


def test_encrypted_blob_layout():
    """base64(nonce || tag || ciphertext), fresh nonce every time"""
    first = encrypt("hunter2")
    second = encrypt("hunter2")

    raw = base64.b64decode(first)
    assert len(raw) == NONCE_LENGTH + TAG_LENGTH + len("hunter2")
    assert first != second
    assert decrypt(first) == decrypt(second) == "hunter2"


def test_credentials_json_survive_the_vault():
    credentials = {"username": "api-user", "password": "pä$$wörd"}

    assert decrypt_json(encrypt_json(credentials)) == credentials


def test_wrong_key_fails_authentication():
    blob = encrypt("secret", secret="key-one")

    with pytest.raises(CredentialDecryptionError):
        decrypt(blob, secret="key-two")


def test_tampered_ciphertext_is_rejected():
    raw = bytearray(base64.b64decode(encrypt("secret")))
    raw[-1] ^= 0x01
    tampered = base64.b64encode(bytes(raw)).decode("ascii")

    with pytest.raises(CredentialDecryptionError):
        decrypt(tampered)


@pytest.mark.parametrize("blob", ["not base64 at all!", base64.b64encode(b"short").decode("ascii")])
def test_malformed_blob_is_rejected(blob):
    with pytest.raises(CredentialDecryptionError):
        decrypt(blob)


def test_missing_encryption_key(monkeypatch):
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    clear_settings_cache()

    with pytest.raises(CredentialDecryptionError):
        encrypt("secret")
