"""
Токени запрошень
================
Сирий токен потрапляє лише в посилання-запрошення,
у сховищі зберігається тільки його SHA-256 хеш.
"""

import hashlib
import secrets


TOKEN_BYTES = 32


def generate_secure_token(nbytes: int = TOKEN_BYTES) -> str:
    """Криптографічно стійкий токен (hex)"""
    return secrets.token_hex(nbytes)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
