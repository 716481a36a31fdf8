"""
Bill Repository
Handles storage of the bills collection
"""

from typing import Optional, List

from core.repositories.base_repository import BaseRepository
from core.models.entities import Bill, BillStatus
from db.record_store import RecordStore
from utils.exceptions import DuplicatePeriodException, BillNotFoundException
from utils.helpers import NumberUtils

class BillRepository(BaseRepository):
    """Repository for bills collection operations"""

    def __init__(self, store: RecordStore):
        super().__init__(store, 'bills', 'bill_id')

    @staticmethod
    def make_bill_id(flat_number: str, period: str) -> str:
        """Deterministic id: one bill per (flat, period)"""
        return f"bill_{flat_number}_{period}"

    def create_bill(self, bill: Bill) -> str:
        """Persist a new bill snapshot"""
        if self.find_for_flat_period(bill.flat_number, bill.period):
            raise DuplicatePeriodException(
                f"Bill already exists for flat {bill.flat_number} in {bill.period}",
                flat_number=bill.flat_number, period=bill.period
            )

        return self.create(self._bill_to_dict(bill))

    def create_bills(self, bills: List[Bill]) -> int:
        """Append several new bills in one write"""
        if not bills:
            return 0
        rows = self.find_all()
        taken = {(row['flat_number'], row['period']) for row in rows}
        for bill in bills:
            if (bill.flat_number, bill.period) in taken:
                raise DuplicatePeriodException(
                    f"Bill already exists for flat {bill.flat_number} in {bill.period}",
                    flat_number=bill.flat_number, period=bill.period
                )
            taken.add((bill.flat_number, bill.period))
            rows.append(self._bill_to_dict(bill))
        self.store.save(self.collection, rows)
        return len(bills)

    def find_bill_by_id(self, bill_id: str) -> Optional[Bill]:
        bill_data = self.find_by_id(bill_id)
        if not bill_data:
            return None

        return self._dict_to_bill(bill_data)

    def get_bill(self, bill_id: str) -> Bill:
        bill = self.find_bill_by_id(bill_id)
        if not bill:
            raise BillNotFoundException(f"Bill {bill_id} not found")
        return bill

    def find_for_flat_period(self, flat_number: str, period: str) -> Optional[Bill]:
        for row in self.find_by_field('flat_number', flat_number):
            if row.get('period') == period:
                return self._dict_to_bill(row)
        return None

    def find_by_flat(self, flat_number: str) -> List[Bill]:
        """Bills of a flat, oldest period first"""
        bills = [self._dict_to_bill(row) for row in self.find_by_field('flat_number', flat_number)]
        return sorted(bills, key=lambda bill: bill.period)

    def find_by_period(self, period: str) -> List[Bill]:
        bills = [self._dict_to_bill(row) for row in self.find_by_field('period', period)]
        return sorted(bills, key=lambda bill: bill.bill_number)

    def get_all_bills(self) -> List[Bill]:
        return [self._dict_to_bill(row) for row in self.find_all()]

    def update_statuses(self, bills: List[Bill]) -> int:
        """Write status changes; monetary fields are never rewritten here"""
        statuses = {bill.bill_id: bill.status.value for bill in bills}
        rows = self.find_all()
        changed = 0
        for row in rows:
            new_status = statuses.get(row['bill_id'])
            if new_status and row.get('status') != new_status:
                row['status'] = new_status
                changed += 1
        if changed:
            self.store.save(self.collection, rows)
        return changed

    def replace_bill(self, bill: Bill) -> bool:
        """Rewrite a whole bill row (data migration only)"""
        return self.update(bill.bill_id, self._bill_to_dict(bill))

    def _bill_to_dict(self, bill: Bill) -> dict:
        return {
            'bill_id': bill.bill_id,
            'bill_number': bill.bill_number,
            'flat_number': bill.flat_number,
            'period': bill.period,
            'base_charges': self._amounts_to_dict(bill.base_charges),
            'outstanding_breakdown': self._amounts_to_dict(bill.outstanding_breakdown),
            'legacy_outstanding': self._money(bill.legacy_outstanding),
            'total_amount': self._money(bill.total_amount),
            'status': bill.status.value,
            'generated_date': self._date_to_str(bill.generated_date),
            'due_date': self._date_to_str(bill.due_date),
        }

    def _dict_to_bill(self, bill_data: dict) -> Bill:
        """Convert dictionary to Bill object"""
        return Bill(
            bill_id=bill_data['bill_id'],
            bill_number=bill_data.get('bill_number', ''),
            flat_number=bill_data['flat_number'],
            period=bill_data['period'],
            base_charges=self._dict_to_amounts(bill_data.get('base_charges')),
            outstanding_breakdown=self._dict_to_amounts(bill_data.get('outstanding_breakdown')) or {},
            legacy_outstanding=NumberUtils.to_decimal(bill_data.get('legacy_outstanding')),
            total_amount=NumberUtils.to_decimal(bill_data.get('total_amount')),
            status=BillStatus(bill_data.get('status', 'pending')),
            generated_date=self._str_to_date(bill_data.get('generated_date')),
            due_date=self._str_to_date(bill_data.get('due_date')),
        )
