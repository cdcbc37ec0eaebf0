"""
Encryption utilities for stored Oracle credentials

Values are sealed with AES-256-GCM under a key derived from ENCRYPTION_KEY
with PBKDF2-HMAC-SHA256. A fresh salt and IV are drawn per value and the
stored envelope is base64(salt | iv | tag | ciphertext).
"""
import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from tms.config import settings
from tms.core.errors import DecryptionError

SALT_LENGTH = 64
IV_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32
PBKDF2_ITERATIONS = 100000

DEFAULT_KEY = "default-encryption-key-change-this"


def _derive_key(secret: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(secret.encode("utf-8"))


def encrypt_value(value: str, secret: str = None) -> str:
    """Encrypt a string value and return the base64 envelope."""
    secret = secret or settings.ENCRYPTION_KEY
    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    key = _derive_key(secret, salt)

    # AESGCM appends the tag; the envelope stores it ahead of the ciphertext
    sealed = AESGCM(key).encrypt(iv, value.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]

    return base64.b64encode(salt + iv + tag + ciphertext).decode("ascii")


def decrypt_value(encrypted_value: str, secret: str = None) -> str:
    """
    Decrypt an envelope produced by encrypt_value.

    Raises:
        DecryptionError: the envelope is malformed, was tampered with, or was
            sealed under a different key.
    """
    if not encrypted_value:
        raise DecryptionError("Encrypted value is empty")

    secret = secret or settings.ENCRYPTION_KEY
    try:
        raw = base64.b64decode(encrypted_value.encode("ascii"), validate=True)
    except (binascii.Error, ValueError, UnicodeEncodeError) as e:
        raise DecryptionError("Encrypted value is not valid base64") from e

    header = SALT_LENGTH + IV_LENGTH + TAG_LENGTH
    if len(raw) < header:
        raise DecryptionError("Encrypted value is truncated")

    salt = raw[:SALT_LENGTH]
    iv = raw[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
    tag = raw[SALT_LENGTH + IV_LENGTH:header]
    ciphertext = raw[header:]

    key = _derive_key(secret, salt)
    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
    except InvalidTag as e:
        raise DecryptionError() from e

    return plaintext.decode("utf-8")


def validate_encryption_key(secret: str = None) -> bool:
    """Check that the configured key is long enough and not the shipped default."""
    secret = secret or settings.ENCRYPTION_KEY
    return bool(secret) and len(secret) >= 32 and secret != DEFAULT_KEY
