"""Fernet field encryption for wearable metrics at rest.

Raw daily metrics and a user's declared conditions are encrypted before
they reach SQLite. Scores, weights and anomaly statistics stay in plain
columns so history queries can filter and sort on them.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


class FieldEncryptor:
    """Round-trips JSON-serializable values through Fernet tokens.

    Usage::

        encryptor = FieldEncryptor(key=FieldEncryptor.generate_key())
        token = encryptor.encrypt({"hrv": 42.0, "steps": 8000})
        encryptor.decrypt(token)  # {"hrv": 42.0, "steps": 8000}
    """

    def __init__(self, key: str) -> None:
        """
        Raises:
            EncryptionError: If the key is empty or not a valid Fernet key.
        """
        if not key or not key.strip():
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = Fernet(key.encode())
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc

    def encrypt(self, data: Any) -> str:
        """Serialize ``data`` to compact JSON and encrypt it. ``None`` maps to ``""``."""
        if data is None:
            return ""
        try:
            plaintext = json.dumps(data, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc
        return self._fernet.encrypt(plaintext).decode("utf-8")

    def decrypt(self, token: str) -> Any:
        """Inverse of :meth:`encrypt`. An empty token decrypts to ``None``.

        Raises:
            EncryptionError: Wrong key, tampered token or non-JSON payload.
        """
        if not token:
            return None
        try:
            plaintext = self._fernet.decrypt(token.encode("utf-8"))
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc
        try:
            return json.loads(plaintext)
        except ValueError as exc:
            raise EncryptionError(f"Decryption failed: {exc}") from exc

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode("utf-8")
