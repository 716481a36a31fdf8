"""
Allocation Repository
The payment-to-bill ledger
"""

from typing import List

from core.repositories.base_repository import BaseRepository
from core.models.entities import Allocation, AllocationKind, Head, MatchRule
from db.record_store import RecordStore
from utils.helpers import NumberUtils

class AllocationRepository(BaseRepository):
    """Repository for allocations collection operations"""

    def __init__(self, store: RecordStore):
        super().__init__(store, 'allocations', 'allocation_id')

    def add_allocations(self, allocations: List[Allocation]) -> int:
        """Append ledger rows in one write"""
        if not allocations:
            return 0
        rows = self.find_all()
        rows.extend(self._allocation_to_dict(allocation) for allocation in allocations)
        self.store.save(self.collection, rows)
        return len(allocations)

    def remove_for_payment(self, payment_id: str) -> List[Allocation]:
        """Delete exactly the rows a payment created and return them"""
        rows = self.find_all()
        removed = [row for row in rows if row.get('payment_id') == payment_id]
        if removed:
            self.store.save(self.collection, [row for row in rows if row.get('payment_id') != payment_id])
        return [self._dict_to_allocation(row) for row in removed]

    def find_all_allocations(self) -> List[Allocation]:
        return [self._dict_to_allocation(row) for row in self.find_all()]

    def find_by_payment(self, payment_id: str) -> List[Allocation]:
        return [self._dict_to_allocation(row) for row in self.find_by_field('payment_id', payment_id)]

    def find_by_flat(self, flat_number: str) -> List[Allocation]:
        return [self._dict_to_allocation(row) for row in self.find_by_field('flat_number', flat_number)]

    def find_by_bill(self, bill_id: str) -> List[Allocation]:
        """Rows that settle the bill's own charges or were matched through it"""
        return [
            self._dict_to_allocation(row) for row in self.find_all()
            if row.get('bill_id') == bill_id or row.get('matched_bill_id') == bill_id
        ]

    def _allocation_to_dict(self, allocation: Allocation) -> dict:
        return {
            'allocation_id': allocation.allocation_id,
            'payment_id': allocation.payment_id,
            'flat_number': allocation.flat_number,
            'kind': allocation.kind.value,
            'amount': self._money(allocation.amount),
            'head': allocation.head.value if allocation.head else None,
            'bill_id': allocation.bill_id,
            'matched_bill_id': allocation.matched_bill_id,
            'match_rule': allocation.match_rule.value if allocation.match_rule else None,
        }

    def _dict_to_allocation(self, data: dict) -> Allocation:
        """Convert dictionary to Allocation object"""
        return Allocation(
            allocation_id=data['allocation_id'],
            payment_id=data['payment_id'],
            flat_number=data['flat_number'],
            kind=AllocationKind(data['kind']),
            amount=NumberUtils.to_decimal(data['amount']),
            head=Head(data['head']) if data.get('head') else None,
            bill_id=data.get('bill_id'),
            matched_bill_id=data.get('matched_bill_id'),
            match_rule=MatchRule(data['match_rule']) if data.get('match_rule') else None,
        )
