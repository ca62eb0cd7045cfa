"""
Encryption of OAuth tokens at rest
"""

import base64
import hashlib
import logging

from cryptography.fernet import Fernet, InvalidToken

from .config import ENCRYPTION_KEY
from .errors import AppError, ErrorCode

logger = logging.getLogger(__name__)


def _build_cipher(secret: str) -> Fernet:
    # Fernet needs 32 url-safe base64 bytes; derive them from the configured secret
    key = base64.urlsafe_b64encode(hashlib.sha256(secret.encode()).digest())
    return Fernet(key)


cipher_suite = _build_cipher(ENCRYPTION_KEY)


def encrypt_token(token: str) -> str:
    return cipher_suite.encrypt(token.encode()).decode()


def decrypt_token(encrypted: str) -> str:
    try:
        return cipher_suite.decrypt(encrypted.encode()).decode()
    except (InvalidToken, ValueError) as e:
        logger.error(f"❌ Token decryption failed: {e}")
        raise AppError("Failed to decrypt token", ErrorCode.INTERNAL_ERROR, 500) from e
