"""
credentials.py – Bearer token storage
────────────────────────────────────────────
Durable key/value storage for the single auth token.

 • MemoryCredentialStore → process-local, used by tests
 • SqlCredentialStore    → SQLAlchemy table, values encrypted
                           with Fernet; a row that fails to
                           decrypt reads as "no token"

Store failures are logged and degrade to "no token"; they never
break the calling flow.
────────────────────────────────────────────
"""

import base64
import hashlib
import logging
from typing import Dict, Optional

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .db import make_engine, make_session_factory, session_scope

log = logging.getLogger(__name__)


def fernet_key(secret_key: str) -> bytes:
    """Fernet key derived from an arbitrary secret string."""
    digest = hashlib.sha256(secret_key.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class CredentialStore:
    """get / set / delete of string secrets by key."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryCredentialStore(CredentialStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SqlCredentialStore(CredentialStore):
    """
    One row per key in `credentials`. The table is created on first use.
    """

    def __init__(self, url: str, secret_key: str):
        self.engine = make_engine(url)
        self._factory = make_session_factory(self.engine)
        self._fernet = Fernet(fernet_key(secret_key))
        with session_scope(self._factory) as s:
            s.execute(text(
                "CREATE TABLE IF NOT EXISTS credentials ("
                " name VARCHAR(64) PRIMARY KEY,"
                " value TEXT NOT NULL)"
            ))

    def get(self, key: str) -> Optional[str]:
        try:
            with session_scope(self._factory) as s:
                row = s.execute(
                    text("SELECT value FROM credentials WHERE name = :k"), {"k": key}
                ).first()
        except SQLAlchemyError as e:
            log.error(f"❌ [CREDENTIALS] read failed for {key}: {e}")
            return None
        if not row:
            return None
        try:
            return self._fernet.decrypt(row[0].encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError):
            log.warning(f"⚠️ [CREDENTIALS] could not decrypt {key}, discarding")
            self.delete(key)
            return None

    def set(self, key: str, value: str) -> None:
        sealed = self._fernet.encrypt(value.encode("utf-8")).decode("ascii")
        try:
            with session_scope(self._factory) as s:
                s.execute(text("DELETE FROM credentials WHERE name = :k"), {"k": key})
                s.execute(
                    text("INSERT INTO credentials (name, value) VALUES (:k, :v)"),
                    {"k": key, "v": sealed},
                )
            log.info(f"[CREDENTIALS] stored {key}")
        except SQLAlchemyError as e:
            log.error(f"❌ [CREDENTIALS] write failed for {key}: {e}")

    def delete(self, key: str) -> None:
        try:
            with session_scope(self._factory) as s:
                s.execute(text("DELETE FROM credentials WHERE name = :k"), {"k": key})
            log.info(f"[CREDENTIALS] removed {key}")
        except SQLAlchemyError as e:
            log.error(f"❌ [CREDENTIALS] delete failed for {key}: {e}")
