"""Tests for credential encryption and webhook signatures."""

import pytest
from hypothesis import given, strategies as st

from src.core.encryption import (
    CredentialEncryption,
    DecryptionError,
    EncryptionKeyError,
    mask_credential_value,
    sign_payload,
    verify_signature,
)

TEST_KEY = "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY="


class TestCredentialEncryption:
    """Tests for CredentialEncryption class."""

    def test_encrypt_decrypt_roundtrip(self, encryption: CredentialEncryption):
        """Decrypting returns the original secret."""
        original = {"access_token": "ya29.abc", "refresh_token": "1//xyz", "expires_in": 1700000000000}
        assert encryption.decrypt(encryption.encrypt(original)) == original

    def test_ciphertext_hides_plaintext(self, encryption: CredentialEncryption):
        """Secret values never appear in the ciphertext."""
        encrypted = encryption.encrypt({"api_key": "fc-secret-123"})

        assert "fc-secret-123" not in encrypted

    def test_decrypt_invalid_data_raises_error(self, encryption: CredentialEncryption):
        with pytest.raises(DecryptionError):
            encryption.decrypt("invalid-encrypted-data")

    def test_decrypt_with_other_key_fails(self, encryption: CredentialEncryption):
        """A ciphertext from another key is rejected, not garbled."""
        other = CredentialEncryption(CredentialEncryption.generate_key())
        with pytest.raises(DecryptionError):
            encryption.decrypt(other.encrypt({"api_key": "x"}))

    def test_invalid_key_raises_error(self):
        with pytest.raises(EncryptionKeyError):
            CredentialEncryption("invalid-key")

    def test_generate_key_format(self):
        """Generated keys are 44-character Fernet keys."""
        key = CredentialEncryption.generate_key()

        assert isinstance(key, str)
        assert len(key) == 44
        assert CredentialEncryption(key) is not None

    @given(st.dictionaries(st.text(min_size=1), st.text()))
    def test_encrypt_arbitrary_payloads(self, payload: dict[str, str]):
        """Property test: any string mapping survives encryption."""
        encryption = CredentialEncryption(TEST_KEY)
        assert encryption.decrypt(encryption.encrypt(payload)) == payload


class TestWebhookSignatures:
    """Tests for HMAC webhook signing."""

    def test_valid_signature(self):
        body = b'{"type":"user.created"}'
        signature = sign_payload("secret", body)

        assert verify_signature("secret", body, signature)

    def test_prefixed_signature(self):
        body = b"{}"
        assert verify_signature("secret", body, "sha256=" + sign_payload("secret", body))

    def test_tampered_body_rejected(self):
        signature = sign_payload("secret", b'{"a":1}')
        assert not verify_signature("secret", b'{"a":2}', signature)

    def test_wrong_secret_rejected(self):
        body = b"{}"
        assert not verify_signature("other", body, sign_payload("secret", body))


class TestMasking:
    def test_mask_keeps_prefix(self):
        masked = mask_credential_value("ya29.abcdefghijkl")

        assert masked.startswith("ya29")
        assert "abcdefghijkl" not in masked
