"""Helpers for encrypting values before they are written to a store."""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken


def derive_key(secret: str) -> bytes:
    if not secret:
        raise ValueError("encryption secret must not be empty")
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class ValueCipher:
    def __init__(self, secret: str) -> None:
        self._fernet = Fernet(derive_key(secret))

    def encrypt(self, value: bytes) -> bytes:
        return self._fernet.encrypt(value)

    def decrypt(self, value: bytes) -> bytes:
        try:
            return self._fernet.decrypt(value)
        except (InvalidToken, ValueError) as exc:
            raise ValueError("Unable to decrypt value") from exc


__all__ = ["ValueCipher", "derive_key"]
