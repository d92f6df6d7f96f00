# src/utils/security.py
"""
Field-level encryption for document values that identify people.

A field is sensitive when its lower-cased name contains one of
SENSITIVE_FIELD_MARKERS. Only non-empty string values are encrypted.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from cryptography.fernet import Fernet, InvalidToken

from utils.logging_config import get_logger

logger = get_logger(__name__)

SENSITIVE_FIELD_MARKERS = ("name", "address", "phone", "email", "id", "officer", "recipient")


def is_sensitive_field(field_name: str) -> bool:
    lowered = field_name.lower()
    return any(marker in lowered for marker in SENSITIVE_FIELD_MARKERS)


def load_or_create_key(path: Path) -> str:
    """Read the key at path, generating (and saving) one on first use."""
    path = Path(path)
    if path.exists():
        return path.read_text(encoding="utf-8").strip()
    path.parent.mkdir(parents=True, exist_ok=True)
    key = Fernet.generate_key().decode("ascii")
    path.write_text(key, encoding="utf-8")
    logger.info("encryption_key_created", path=str(path))
    return key


class FieldCipher:
    def __init__(self, key: str | bytes):
        if isinstance(key, str):
            key = key.encode("ascii")
        self._fernet = Fernet(key)

    def encrypt(self, value: str) -> str:
        return self._fernet.encrypt(value.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")

    def encrypt_fields(self, fields: Dict[str, Any] | None) -> Dict[str, Any]:
        out = dict(fields or {})
        for name, value in out.items():
            if is_sensitive_field(name) and isinstance(value, str) and value:
                out[name] = self.encrypt(value)
        return out

    def decrypt_fields(self, fields: Dict[str, Any] | None) -> Dict[str, Any]:
        out = dict(fields or {})
        for name, value in out.items():
            if is_sensitive_field(name) and isinstance(value, str) and value:
                try:
                    out[name] = self.decrypt(value)
                except (InvalidToken, ValueError, UnicodeError):
                    # stored before encryption was enabled
                    logger.warning("field_decrypt_failed", field=name)
        return out
