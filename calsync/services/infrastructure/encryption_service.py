"""
Fernet encryption for the OAuth tokens stored on calendar connections.

Ciphertext goes into BYTEA columns; psycopg hands those back as memoryview,
which `decrypt_token` accepts as well as bytes.
"""

from cryptography.fernet import Fernet, InvalidToken

from calsync.config import settings
from calsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

_SELF_CHECK_VALUE = "calsync_encryption_check"


class EncryptionError(Exception):
    """Token could not be encrypted or decrypted with the configured key."""


def _cipher() -> Fernet:
    key = settings.ENCRYPTION_KEY
    if not key:
        raise EncryptionError("ENCRYPTION_KEY is not set")
    try:
        return Fernet(key.encode("utf-8"))
    except ValueError as e:
        logger.error("ENCRYPTION_KEY is not a valid Fernet key", error=str(e))
        raise EncryptionError("ENCRYPTION_KEY is not a valid Fernet key") from e


def encrypt_token(token: str) -> bytes:
    if not isinstance(token, str) or not token:
        raise EncryptionError("Cannot encrypt an empty token")
    return _cipher().encrypt(token.encode("utf-8"))


def decrypt_token(encrypted_token: bytes | memoryview) -> str:
    """
    Decrypt a stored token.

    Raises:
        EncryptionError: empty input, missing key, or ciphertext that fails
            Fernet authentication (wrong key or corrupted bytes)
    """
    if isinstance(encrypted_token, memoryview):
        encrypted_token = encrypted_token.tobytes()
    if not isinstance(encrypted_token, bytes) or not encrypted_token:
        raise EncryptionError("Cannot decrypt an empty value")

    cipher = _cipher()
    try:
        plaintext = cipher.decrypt(encrypted_token)
    except InvalidToken as e:
        logger.error("Stored token failed authentication", size=len(encrypted_token))
        raise EncryptionError("Stored token is corrupted or was encrypted with another key") from e
    return plaintext.decode("utf-8")


def encrypt_optional(token: str | None) -> bytes | None:
    return encrypt_token(token) if token else None


def decrypt_optional(encrypted_token: bytes | None) -> str | None:
    """NULL columns stay None."""
    return decrypt_token(encrypted_token) if encrypted_token else None


def validate_encryption_config() -> bool:
    """Startup self-check: the configured key must round-trip a known value."""
    try:
        ok = decrypt_token(encrypt_token(_SELF_CHECK_VALUE)) == _SELF_CHECK_VALUE
    except EncryptionError as e:
        logger.error("Encryption self-check failed", error=str(e))
        return False
    if not ok:
        logger.error("Encryption self-check returned a different value")
    return ok
