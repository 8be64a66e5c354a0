"""
Record Store Module

The credit manager persists credits, schedules and payments as plain
dictionaries through ``StorageInterface``. Money is stored as Decimal strings
and timestamps as ISO 8601, so any document or key-value backend can implement
the interface. ``InMemoryStorage`` is the reference backend used by tests.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any
from datetime import datetime
import json
import threading
from dataclasses import dataclass
from contextlib import contextmanager


Table = Dict[str, Dict[str, Any]]


@dataclass
class StorageRecord:
    """Base class for all persisted records"""
    id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
        }


class StorageInterface(ABC):
    """Abstract record store keyed by table name and record id"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Insert or replace a record"""

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load one record, or None when the id is unknown"""

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load every record of a table"""

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Load records whose fields equal every filter value"""

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Remove a record, returning whether it existed"""

    def begin_transaction(self) -> None:
        pass

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass

    @contextmanager
    def atomic(self):
        """
        Group writes so that either all of them persist or none do

        Backends without transactions inherit the no-op hooks and give no
        rollback guarantee.
        """
        self.begin_transaction()
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise


def _copy(data: Any) -> Any:
    # Round trip through JSON so callers never share state with the store
    return json.loads(json.dumps(data, default=str))


class InMemoryStorage(StorageInterface):
    """
    Dictionary-backed store

    ``atomic`` blocks hold the store lock for their whole duration and restore
    a snapshot taken at entry when the block raises.
    """

    def __init__(self):
        self._tables: Dict[str, Table] = {}
        self._lock = threading.RLock()
        self._snapshot: Optional[Dict[str, Table]] = None

    def _table(self, table: str) -> Table:
        return self._tables.setdefault(table, {})

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._table(table)[record_id] = _copy(data)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._table(table).get(record_id)
            return _copy(record) if record is not None else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [_copy(record) for record in self._table(table).values()]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                _copy(record) for record in self._table(table).values()
                if all(key in record and record[key] == value for key, value in filters.items())
            ]

    def exists(self, table: str, record_id: str) -> bool:
        with self._lock:
            return record_id in self._table(table)

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            return self._table(table).pop(record_id, None) is not None

    def begin_transaction(self) -> None:
        self._lock.acquire()
        self._snapshot = _copy(self._tables)

    def commit(self) -> None:
        self._snapshot = None
        self._lock.release()

    def rollback(self) -> None:
        if self._snapshot is not None:
            self._tables = self._snapshot
        self._snapshot = None
        self._lock.release()
