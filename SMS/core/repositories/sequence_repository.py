"""
Sequence Repository
Per-period counters for bill and receipt numbers
"""

from typing import Callable

from core.repositories.base_repository import BaseRepository
from db.record_store import RecordStore

class SequenceRepository(BaseRepository):
    """Repository for the sequences collection"""

    def __init__(self, store: RecordStore):
        super().__init__(store, 'sequences', 'key')

    def next_value(self, kind: str, period: str, seed: Callable[[], int] = None) -> int:
        """
        Increment and return the counter for (kind, period).

        The read-increment-write happens against the store's transaction
        buffer, so two operations in one transaction never hand out the same
        number and a rolled back operation releases its number. ``seed`` is
        consulted once, when no counter exists yet (e.g. bills imported
        before counters were introduced).
        """
        key = f"{kind}:{period}"
        rows = self.find_all()
        for row in rows:
            if row['key'] == key:
                row['last_value'] = int(row['last_value']) + 1
                self.store.save(self.collection, rows)
                return row['last_value']

        start = seed() if seed else 0
        value = start + 1
        rows.append({'key': key, 'kind': kind, 'period': period, 'last_value': value})
        self.store.save(self.collection, rows)
        return value
