"""EncryptedString column type for provider secrets stored at rest."""

from __future__ import annotations

import logging
import os
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _get_fernet() -> Fernet | None:
    key = os.environ.get("FIELD_ENCRYPTION_KEY", "")
    return Fernet(key.encode()) if key else None


class EncryptedString(TypeDecorator):
    """Transparently encrypts/decrypts string values using Fernet.

    Rows written before a key was configured are returned as stored.
    """

    impl = String
    cache_ok = True

    def process_bind_param(self, value, dialect):
        fernet = _get_fernet()
        if value and fernet:
            return fernet.encrypt(value.encode()).decode()
        return value

    def process_result_value(self, value, dialect):
        fernet = _get_fernet()
        if value and fernet:
            try:
                return fernet.decrypt(value.encode()).decode()
            except InvalidToken:
                logger.warning("Stored secret is not a Fernet token; returning raw value")
                return value
        return value
