"""
Record Store
Whole-collection get/save persistence with all-or-nothing transactions.

Repositories read and replace entire collections (flats, bills, payments,
allocations, ...). Inside ``transaction()`` every write is buffered; the
buffered collections are flushed together when the block exits cleanly and
discarded when it raises.
"""

import copy
import logging
import os
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, Dict, List, Any, Optional

from mysql.connector import Error

from utils.exceptions import DatabaseException

logger = logging.getLogger(__name__)

class RecordStore(ABC):
    """Base store with a write-buffering transaction"""

    def __init__(self):
        self._cache: Dict[str, List[Dict[str, Any]]] = {}
        self._dirty = set()
        self._depth = 0
        self._on_commit: List[Callable[[], None]] = []

    @abstractmethod
    def _read(self, collection: str) -> List[Dict[str, Any]]:
        """Load a collection from the backing store"""

    @abstractmethod
    def _write(self, changes: Dict[str, List[Dict[str, Any]]]):
        """Replace the given collections in the backing store, atomically"""

    def get(self, collection: str) -> List[Dict[str, Any]]:
        """Return a copy of every row in a collection"""
        if collection not in self._cache:
            self._cache[collection] = self._read(collection)
        return copy.deepcopy(self._cache[collection])

    def save(self, collection: str, rows: List[Dict[str, Any]]):
        """Replace a collection"""
        self._cache[collection] = copy.deepcopy(list(rows))
        self._dirty.add(collection)
        if self._depth == 0:
            try:
                self._flush()
            except Exception:
                self._cache.pop(collection, None)
                self._dirty.discard(collection)
                raise

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def after_commit(self, callback: Callable[[], None]):
        """Run callback once the outermost transaction commits, or now when none is open"""
        if self._depth == 0:
            callback()
        else:
            self._on_commit.append(callback)

    @contextmanager
    def transaction(self):
        """All writes inside the block land together or not at all"""
        if self._depth > 0:
            # Nested blocks join the outer transaction
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        snapshot = copy.deepcopy(self._cache)
        self._depth = 1
        try:
            yield self
            self._flush()
        except Exception:
            self._cache = snapshot
            self._dirty = set()
            self._on_commit = []
            logger.info("Record store transaction rolled back")
            raise
        finally:
            self._depth = 0

        callbacks, self._on_commit = self._on_commit, []
        for callback in callbacks:
            callback()

    def _flush(self):
        if not self._dirty:
            return
        changes = {name: self._cache[name] for name in sorted(self._dirty)}
        self._write(changes)
        self._dirty = set()

class InMemoryRecordStore(RecordStore):
    """Process-local store used by tests and the demo app"""

    def __init__(self, initial: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        super().__init__()
        self._data: Dict[str, List[Dict[str, Any]]] = copy.deepcopy(initial or {})

    def _read(self, collection: str) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._data.get(collection, []))

    def _write(self, changes: Dict[str, List[Dict[str, Any]]]):
        for name, rows in changes.items():
            self._data[name] = copy.deepcopy(rows)

    def dump(self) -> Dict[str, List[Dict[str, Any]]]:
        """Persisted state (what a reload would see)"""
        return copy.deepcopy(self._data)

class MySQLRecordStore(RecordStore):
    """Store backed by the society_records table"""

    def __init__(self, db=None):
        super().__init__()
        if db is None:
            from db.database import db_manager
            db = db_manager
        self.db = db

    def _read(self, collection: str) -> List[Dict[str, Any]]:
        try:
            return self.db.read_collection(collection)
        except Error as e:
            logger.error(f"Error reading collection {collection}: {e}")
            raise DatabaseException(f"Failed to read {collection}: {str(e)}")

    def _write(self, changes: Dict[str, List[Dict[str, Any]]]):
        try:
            self.db.replace_collections(changes)
            logger.info(f"Saved collections: {', '.join(changes)}")
        except Error as e:
            logger.error(f"Error saving collections {list(changes)}: {e}")
            raise DatabaseException(f"Failed to save records: {str(e)}")

def create_record_store() -> RecordStore:
    """Build the store selected by SMS_STORE (memory or mysql)"""
    backend = os.getenv('SMS_STORE', 'memory').lower()
    if backend == 'mysql':
        from db.database import db_manager
        db_manager.ensure_schema()
        return MySQLRecordStore(db_manager)
    return InMemoryRecordStore()
