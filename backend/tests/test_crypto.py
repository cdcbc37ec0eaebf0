"""
Tests for stored-credential encryption
"""
import base64

import pytest

from tms.core.crypto import encrypt_value, decrypt_value, validate_encryption_key, DEFAULT_KEY
from tms.core.errors import DecryptionError


class TestCredentialEncryption:
    """AES-GCM envelope round trip and tamper detection"""

    def test_round_trip(self):
        sealed = encrypt_value("s3cret-pässword")
        assert sealed != "s3cret-pässword"
        assert decrypt_value(sealed) == "s3cret-pässword"

    def test_fresh_salt_per_value(self):
        assert encrypt_value("tiger") != encrypt_value("tiger")

    def test_tampered_ciphertext_is_rejected(self):
        raw = bytearray(base64.b64decode(encrypt_value("tiger")))
        raw[-1] ^= 0x01
        with pytest.raises(DecryptionError):
            decrypt_value(base64.b64encode(bytes(raw)).decode("ascii"))

    def test_wrong_key_is_rejected(self):
        sealed = encrypt_value("tiger", secret="k" * 40)
        with pytest.raises(DecryptionError):
            decrypt_value(sealed, secret="x" * 40)

    @pytest.mark.parametrize("value", ["", "not base64 at all!", base64.b64encode(b"short").decode()])
    def test_malformed_envelope(self, value):
        with pytest.raises(DecryptionError):
            decrypt_value(value)

    def test_error_does_not_echo_ciphertext(self):
        sealed = encrypt_value("tiger")
        corrupted = sealed[:-4] + ("AAAA" if not sealed.endswith("AAAA") else "BBBB")
        with pytest.raises(DecryptionError) as exc_info:
            decrypt_value(corrupted)
        assert corrupted not in str(exc_info.value)
        assert exc_info.value.status_code == 500


class TestEncryptionKeyValidation:

    def test_default_key_is_weak(self):
        assert validate_encryption_key(DEFAULT_KEY) is False

    def test_short_key_is_weak(self):
        assert validate_encryption_key("short") is False

    def test_configured_test_key_is_accepted(self):
        assert validate_encryption_key() is True
