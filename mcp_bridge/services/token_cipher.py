"""Symmetric encryption for OAuth credentials kept in the record store."""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken


class TokenCipherError(ValueError):
    """Raised when a stored credential cannot be decrypted."""


class TokenCipherService:
    """Encrypt and decrypt provider tokens with a Fernet key derived from a secret."""

    def __init__(self, *, secret: str) -> None:
        if not secret:
            raise ValueError("Token encryption secret must be provided.")
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("utf-8"))
        except InvalidToken as exc:
            raise TokenCipherError(
                "Stored credential could not be decrypted; the encryption "
                "secret may have changed."
            ) from exc
        return plaintext.decode("utf-8")


__all__ = ["TokenCipherError", "TokenCipherService"]
