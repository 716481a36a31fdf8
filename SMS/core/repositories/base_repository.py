"""
Base Repository Class
Provides common record operations for all repositories
"""

from abc import ABC
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Dict, Any, Mapping
import logging

from core.models.entities import Head
from db.record_store import RecordStore
from utils.exceptions import ValidationException
from utils.helpers import NumberUtils

logger = logging.getLogger(__name__)

class BaseRepository(ABC):
    """Base repository with common CRUD operations over one collection"""

    def __init__(self, store: RecordStore, collection: str, primary_key: str = 'id'):
        self.store = store
        self.collection = collection
        self.primary_key = primary_key

    def create(self, data: Dict[str, Any]) -> str:
        """Create a new record"""
        record_id = data.get(self.primary_key)
        if not record_id:
            raise ValidationException(f"{self.primary_key} is required to create a {self.collection} record")

        rows = self.store.get(self.collection)
        if any(row.get(self.primary_key) == record_id for row in rows):
            raise ValidationException(f"{self.collection} record {record_id} already exists")

        rows.append(data)
        self.store.save(self.collection, rows)
        logger.info(f"Created record in {self.collection} with ID: {record_id}")
        return record_id

    def find_by_id(self, record_id: str) -> Optional[Dict[str, Any]]:
        """Find record by primary key"""
        for row in self.store.get(self.collection):
            if row.get(self.primary_key) == record_id:
                return row
        return None

    def find_all(self) -> List[Dict[str, Any]]:
        """Find all records"""
        return self.store.get(self.collection)

    def update(self, record_id: str, data: Dict[str, Any]) -> bool:
        """Update record by primary key"""
        rows = self.store.get(self.collection)
        for row in rows:
            if row.get(self.primary_key) == record_id:
                row.update({k: v for k, v in data.items() if k != self.primary_key})
                self.store.save(self.collection, rows)
                logger.info(f"Updated record in {self.collection} with ID: {record_id}")
                return True
        return False

    def delete(self, record_id: str) -> bool:
        """Delete record by primary key"""
        rows = self.store.get(self.collection)
        remaining = [row for row in rows if row.get(self.primary_key) != record_id]
        if len(remaining) == len(rows):
            return False
        self.store.save(self.collection, remaining)
        logger.info(f"Deleted record from {self.collection} with ID: {record_id}")
        return True

    def find_by_field(self, field_name: str, field_value: Any) -> List[Dict[str, Any]]:
        """Find records by specific field"""
        return [row for row in self.store.get(self.collection) if row.get(field_name) == field_value]

    def count(self) -> int:
        return len(self.store.get(self.collection))

    def exists(self, record_id: str) -> bool:
        """Check if record exists"""
        return self.find_by_id(record_id) is not None

    # Serialization helpers shared by the entity repositories

    @staticmethod
    def _money(value: Decimal) -> str:
        return str(NumberUtils.round_currency(NumberUtils.to_decimal(value)))

    @staticmethod
    def _amounts_to_dict(amounts: Optional[Mapping[Head, Decimal]]) -> Optional[Dict[str, str]]:
        if amounts is None:
            return None
        return {head.value: BaseRepository._money(amount) for head, amount in amounts.items()}

    @staticmethod
    def _dict_to_amounts(data: Optional[Dict[str, Any]]) -> Optional[Dict[Head, Decimal]]:
        if data is None:
            return None
        return {Head(key): NumberUtils.to_decimal(value) for key, value in data.items()}

    @staticmethod
    def _date_to_str(value) -> Optional[str]:
        return value.isoformat() if value else None

    @staticmethod
    def _str_to_date(value) -> Optional[date]:
        if not value:
            return None
        if isinstance(value, date):
            return value
        return date.fromisoformat(str(value)[:10])

    @staticmethod
    def _str_to_datetime(value) -> Optional[datetime]:
        if not value:
            return None
        if isinstance(value, datetime):
            return value
        return datetime.fromisoformat(str(value))
