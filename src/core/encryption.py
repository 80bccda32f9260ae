"""Credential encryption using Fernet symmetric encryption.

Secret payloads are serialized to JSON and encrypted before they reach the
database. Ciphertext is decrypted only inside the credential vault.

SECURITY NOTES:
- Uses Fernet (AES-128-CBC with HMAC-SHA256)
- Encryption key must be 32 url-safe base64-encoded bytes
- Never log decrypted credential values
"""

import hashlib
import hmac
import json
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
import structlog

logger = structlog.get_logger()


class EncryptionError(Exception):
    """Base exception for encryption operations."""

    pass


class EncryptionKeyError(EncryptionError):
    """Invalid or missing encryption key."""

    pass


class DecryptionError(EncryptionError):
    """Failed to decrypt data."""

    pass


class CredentialEncryption:
    """Fernet-based secret encryption.

    Stateless apart from the key, so one instance can be shared.

    Example usage:
        encryption = CredentialEncryption(key)
        token = encryption.encrypt({"api_key": "fc-..."})
        secret = encryption.decrypt(token)
    """

    def __init__(self, key: str) -> None:
        """Initialize with a Fernet key.

        Args:
            key: Fernet key (32 url-safe base64-encoded bytes)

        Raises:
            EncryptionKeyError: If key is invalid
        """
        try:
            self._fernet = Fernet(key.encode())
        except Exception as e:
            logger.error("encryption_key_invalid", error=str(e))
            raise EncryptionKeyError(
                "Invalid encryption key format. "
                "Generate with: python -c 'from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())'"
            ) from e

    def encrypt(self, data: dict[str, Any]) -> str:
        """Encrypt a secret payload.

        Args:
            data: JSON-serializable secret payload

        Returns:
            Fernet token (url-safe base64)

        Raises:
            EncryptionError: If encryption fails
        """
        try:
            json_bytes = json.dumps(data, separators=(",", ":")).encode("utf-8")
            return self._fernet.encrypt(json_bytes).decode("utf-8")
        except Exception as e:
            logger.error("encryption_failed", error_type=type(e).__name__)
            raise EncryptionError("Failed to encrypt credential data") from e

    def decrypt(self, encrypted_data: str) -> dict[str, Any]:
        """Decrypt a secret payload.

        Args:
            encrypted_data: Fernet token

        Returns:
            Decrypted payload

        Raises:
            DecryptionError: If decryption fails (wrong key, corrupted data, etc.)
        """
        try:
            decrypted_bytes = self._fernet.decrypt(encrypted_data.encode("utf-8"))
            return json.loads(decrypted_bytes.decode("utf-8"))
        except InvalidToken as e:
            logger.warning("decryption_invalid_token")
            raise DecryptionError(
                "Failed to decrypt: invalid token (wrong key or corrupted data)"
            ) from e
        except json.JSONDecodeError as e:
            logger.error("decryption_invalid_json")
            raise DecryptionError("Decrypted data is not valid JSON") from e

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet encryption key."""
        return Fernet.generate_key().decode("utf-8")


def sign_payload(secret: str, payload: bytes) -> str:
    """Compute the hex HMAC-SHA256 signature of a webhook body."""
    return hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()


def verify_signature(secret: str, payload: bytes, signature: str) -> bool:
    """Check a webhook signature in constant time.

    Args:
        secret: Shared webhook secret
        payload: Raw request body
        signature: Hex digest sent by the caller, optionally prefixed with 'sha256='

    Returns:
        True if the signature matches
    """
    if signature.startswith("sha256="):
        signature = signature[len("sha256="):]
    return hmac.compare_digest(sign_payload(secret, payload), signature)


def mask_credential_value(value: str, visible_chars: int = 4) -> str:
    """Mask a credential value for safe logging.

    Args:
        value: Credential value to mask
        visible_chars: Number of visible characters

    Returns:
        Masked string like "ya29***"
    """
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * min(8, len(value) - visible_chars)
