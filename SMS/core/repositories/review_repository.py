"""
Review Repository
Payments queued for a human look
"""
from typing import List, Optional
from datetime import datetime

from core.repositories.base_repository import BaseRepository
from core.models.entities import ReviewItem
from db.record_store import RecordStore

class ReviewRepository(BaseRepository):
    """Repository for review_queue collection operations"""

    def __init__(self, store: RecordStore):
        super().__init__(store, 'review_queue', 'review_id')

    def add_item(self, item: ReviewItem) -> str:
        return self.create({
            'review_id': item.review_id,
            'payment_id': item.payment_id,
            'flat_number': item.flat_number,
            'reason': item.reason,
            'created_at': self._date_to_str(item.created_at or datetime.now()),
            'resolved': item.resolved,
        })

    def get_open_items(self) -> List[ReviewItem]:
        return [self._dict_to_item(row) for row in self.find_all() if not row.get('resolved')]

    def find_item(self, review_id: str) -> Optional[ReviewItem]:
        row = self.find_by_id(review_id)
        return self._dict_to_item(row) if row else None

    def resolve(self, review_id: str) -> bool:
        return self.update(review_id, {'resolved': True})

    def _dict_to_item(self, data: dict) -> ReviewItem:
        return ReviewItem(
            review_id=data['review_id'],
            payment_id=data['payment_id'],
            flat_number=data['flat_number'],
            reason=data.get('reason', ''),
            created_at=self._str_to_datetime(data.get('created_at')),
            resolved=bool(data.get('resolved')),
        )
