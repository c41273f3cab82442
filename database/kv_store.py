"""
Durable key-value storage used by every portal store.

Values are opaque strings (serialized JSON documents). There are no
transactions across keys.
"""
import threading
from datetime import datetime
from typing import Dict, Optional

from database.connection import Database
from database.models import KeyValueEntry


class KeyValueStore:
    """Get/set contract shared by the storage backends."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class SqlKeyValueStore(KeyValueStore):
    """Key-value store backed by the ``kv_store`` table."""

    def __init__(self, database: Database):
        self.database = database

    def get(self, key: str) -> Optional[str]:
        with self.database.get_session() as session:
            entry = session.get(KeyValueEntry, key)
            return entry.value if entry else None

    def set(self, key: str, value: str) -> None:
        with self.database.get_session() as session:
            entry = session.get(KeyValueEntry, key)
            if entry:
                entry.value = value
                entry.updated_at = datetime.utcnow()
            else:
                session.add(KeyValueEntry(key=key, value=value))

    def delete(self, key: str) -> None:
        with self.database.get_session() as session:
            entry = session.get(KeyValueEntry, key)
            if entry:
                session.delete(entry)


class MemoryKeyValueStore(KeyValueStore):
    """In-process key-value store (tests, ephemeral deployments)."""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)
