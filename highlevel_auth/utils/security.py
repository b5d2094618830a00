# highlevel_auth/utils/security.py
import logging
from base64 import urlsafe_b64decode
from binascii import Error as Base64Error
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


def generate_fernet_key() -> str:
    """Generates a new Fernet key and returns it as a string."""
    return Fernet.generate_key().decode('utf-8')


def mask_token(token: Optional[str]) -> str:
    """Short, log-safe rendition of a credential."""
    if not token:
        return "None"
    if len(token) <= 8:
        return "****"
    return f"{token[:4]}...{token[-4:]}"


class FernetEncryptor:
    """Encrypts session payloads at rest using Fernet symmetric encryption."""

    def __init__(self, encryption_key: str):
        """
        Args:
            encryption_key: Base64-encoded Fernet key string

        Raises:
            ValueError: If the key is missing or does not decode to 32 bytes
        """
        if not encryption_key:
            raise ValueError("HIGHLEVEL_ENCRYPTION_KEY is not set; cannot encrypt sessions at rest.")
        key_bytes = encryption_key.encode('utf-8')
        try:
            decoded_key_bytes = urlsafe_b64decode(key_bytes)
        except (Base64Error, ValueError) as e:
            raise ValueError(f"Invalid HIGHLEVEL_ENCRYPTION_KEY: {e}") from e
        if len(decoded_key_bytes) != 32:
            raise ValueError(
                f"Invalid HIGHLEVEL_ENCRYPTION_KEY length after base64 decoding. "
                f"Expected 32 bytes, got {len(decoded_key_bytes)}."
            )
        self.fernet_instance = Fernet(key_bytes)
        logger.info("FernetEncryptor initialized successfully with a valid key.")

    def encrypt(self, data: str) -> Optional[str]:
        """Encrypt a string, returning None if encryption fails."""
        try:
            return self.fernet_instance.encrypt(data.encode('utf-8')).decode('utf-8')
        except (TypeError, ValueError) as e:
            logger.error(f"Encryption failed: {e}", exc_info=True)
            return None

    def decrypt(self, encrypted_data: str) -> Optional[str]:
        """
        Decrypt a Fernet-encrypted string.

        Returns None for data written with another key or corrupted in storage.
        """
        try:
            return self.fernet_instance.decrypt(encrypted_data.encode('utf-8')).decode('utf-8')
        except InvalidToken:
            logger.error(
                "Decryption failed: Invalid token. "
                "This may be due to an incorrect key or corrupted data."
            )
            return None


def build_encryptor(encryption_key: Optional[str]) -> Optional[FernetEncryptor]:
    """Encryptor for the configured key, or None when encryption at rest is disabled."""
    if not encryption_key:
        logger.warning("No encryption key configured; sessions will be stored unencrypted.")
        return None
    return FernetEncryptor(encryption_key)
