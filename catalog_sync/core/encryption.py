"""
Credential vault helpers.

Tenant credentials are stored as base64(nonce || auth tag || ciphertext),
encrypted with AES-256-GCM. The key is the sha256 digest of ENCRYPTION_KEY,
so any passphrase length works.
"""

import base64
import binascii
import hashlib
import json
import os
from typing import Any, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from catalog_sync.core.config import get_settings
from catalog_sync.core.exceptions import CredentialDecryptionError

NONCE_LENGTH = 12
TAG_LENGTH = 16


def _derive_key(secret: Optional[str] = None) -> bytes:
    secret = secret if secret is not None else get_settings().ENCRYPTION_KEY
    if not secret:
        raise CredentialDecryptionError("ENCRYPTION_KEY is not set")
    return hashlib.sha256(secret.encode("utf-8")).digest()


def encrypt(plaintext: str, secret: Optional[str] = None) -> str:
    """Encrypt a string and return the base64 blob."""
    key = _derive_key(secret)
    nonce = os.urandom(NONCE_LENGTH)
    # stored layout: nonce, tag, ciphertext
    sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
    return base64.b64encode(nonce + tag + ciphertext).decode("ascii")


def decrypt(blob: str, secret: Optional[str] = None) -> str:
    """
    Decrypt a blob produced by encrypt().

    Raises:
        CredentialDecryptionError: wrong key, tampered or malformed data
    """
    key = _derive_key(secret)
    try:
        raw = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CredentialDecryptionError(f"Credential blob is not valid base64: {e}") from e

    if len(raw) < NONCE_LENGTH + TAG_LENGTH:
        raise CredentialDecryptionError("Credential blob is too short")

    nonce = raw[:NONCE_LENGTH]
    tag = raw[NONCE_LENGTH:NONCE_LENGTH + TAG_LENGTH]
    ciphertext = raw[NONCE_LENGTH + TAG_LENGTH:]
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag as e:
        raise CredentialDecryptionError("Credential blob failed authentication") from e
    return plaintext.decode("utf-8")


def encrypt_json(data: Any, secret: Optional[str] = None) -> str:
    return encrypt(json.dumps(data), secret)


def decrypt_json(blob: str, secret: Optional[str] = None) -> Any:
    try:
        return json.loads(decrypt(blob, secret))
    except json.JSONDecodeError as e:
        raise CredentialDecryptionError(f"Decrypted credentials are not JSON: {e}") from e
