"""
Bearer token encryption at rest (Fernet: AES-128-CBC + HMAC-SHA256).

The key comes from FBR_TOKEN_ENCRYPTION_KEY; when that is unset a key is
derived from SECRET_KEY so development setups work without extra config.
Rotating either value makes existing tokens unreadable; they must be
re-entered.
"""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken
from flask import current_app


class TokenEncryptionError(ValueError):
    """Raised when a token cannot be encrypted or decrypted."""


def _fernet() -> Fernet:
    key = current_app.config.get("FBR_TOKEN_ENCRYPTION_KEY")
    if not key:
        secret = current_app.config.get("SECRET_KEY")
        if not secret:
            raise TokenEncryptionError("No encryption key configured")
        key = base64.urlsafe_b64encode(hashlib.sha256(secret.encode("utf-8")).digest())
    try:
        return Fernet(key)
    except (ValueError, TypeError) as exc:
        raise TokenEncryptionError("Invalid FBR_TOKEN_ENCRYPTION_KEY") from exc


def encrypt_token(token: str) -> str:
    return _fernet().encrypt(token.encode("utf-8")).decode("ascii")


def decrypt_token(ciphertext: str) -> str:
    try:
        return _fernet().decrypt(ciphertext.encode("ascii")).decode("utf-8")
    except InvalidToken as exc:
        raise TokenEncryptionError("Stored FBR token cannot be decrypted with the current key") from exc
