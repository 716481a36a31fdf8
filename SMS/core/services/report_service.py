"""
Report Service
Tabular views over bills, payments and the allocation ledger, as pandas DataFrames
"""

from datetime import date
from decimal import Decimal
from typing import Optional

import pandas as pd

from core.models.entities import AllocationKind, BILL_HEADS, PaymentStatus
from core.repositories.allocation_repository import AllocationRepository
from core.repositories.bill_repository import BillRepository
from core.repositories.flat_repository import FlatRepository
from core.repositories.payment_repository import PaymentRepository
from core.services.outstanding_service import OutstandingCalculator, HeadDefaults
from db.record_store import RecordStore
from utils.helpers import NumberUtils, ZERO
from utils.validators import BillingValidator

OUTSTANDING_COLUMNS = ['flat_number', 'owner_name'] + [head.value for head in BILL_HEADS] + \
    ['legacy', 'total', 'advance_credit']

COLLECTION_COLUMNS = ['flat_number', 'bill_number', 'status', 'current_charges', 'carried_forward',
                      'legacy_outstanding', 'total_amount', 'paid_amount', 'balance']

PAYMENT_COLUMNS = ['receipt_number', 'flat_number', 'date', 'mode', 'amount',
                   'charges', 'legacy', 'advance', 'status']

class ReportService:
    """Read-only reports for the committee"""

    def __init__(self, store: RecordStore, head_defaults: Optional[HeadDefaults] = None):
        self.flat_repo = FlatRepository(store)
        self.bill_repo = BillRepository(store)
        self.payment_repo = PaymentRepository(store)
        self.allocation_repo = AllocationRepository(store)
        self.head_defaults = head_defaults

    def _calculator(self) -> OutstandingCalculator:
        return OutstandingCalculator(
            self.bill_repo.get_all_bills(),
            self.allocation_repo.find_all_allocations(),
            self.head_defaults,
        )

    def outstanding_report(self, as_of_period: str) -> pd.DataFrame:
        """One row per flat: unpaid amount per head from bills before as_of_period"""
        BillingValidator.validate_period(as_of_period)
        calculator = self._calculator()

        rows = []
        for flat in self.flat_repo.get_all_flats():
            outstanding = calculator.compute_outstanding(flat, as_of_period)
            row = {'flat_number': flat.flat_number, 'owner_name': flat.owner_name}
            for head in BILL_HEADS:
                row[head.value] = outstanding.per_head.get(head, ZERO)
            row['legacy'] = outstanding.legacy
            row['total'] = outstanding.total
            row['advance_credit'] = calculator.advance_credit(flat.flat_number)
            rows.append(row)

        return pd.DataFrame(rows, columns=OUTSTANDING_COLUMNS)

    def collection_summary(self, period: str) -> pd.DataFrame:
        """One row per bill of the period with what has been collected against it"""
        BillingValidator.validate_period(period)
        calculator = self._calculator()
        flats = {flat.flat_number: flat for flat in self.flat_repo.get_all_flats()}

        rows = []
        for bill in self.bill_repo.find_by_period(period):
            flat = flats.get(bill.flat_number)
            if flat is None:
                continue
            settlement = calculator.bill_settlement(bill, flat)
            rows.append({
                'flat_number': bill.flat_number,
                'bill_number': bill.bill_number,
                'status': bill.status.value,
                'current_charges': NumberUtils.total(calculator.base_charges_of(bill).values()),
                'carried_forward': NumberUtils.total(bill.outstanding_breakdown.values()),
                'legacy_outstanding': bill.legacy_outstanding,
                'total_amount': bill.total_amount,
                'paid_amount': settlement.paid_amount,
                'balance': settlement.balance,
            })

        df = pd.DataFrame(rows, columns=COLLECTION_COLUMNS)
        return df.sort_values('flat_number').reset_index(drop=True)

    def payments_report(self, start_date: date = None, end_date: date = None,
                        include_voided: bool = False) -> pd.DataFrame:
        """Payments in a date range with the charge / legacy / advance split of each"""
        split = {}
        for allocation in self.allocation_repo.find_all_allocations():
            parts = split.setdefault(allocation.payment_id, {kind: ZERO for kind in AllocationKind})
            parts[allocation.kind] += allocation.amount

        rows = []
        for payment in self.payment_repo.get_all_payments(include_voided=include_voided):
            if start_date and payment.date < start_date:
                continue
            if end_date and payment.date > end_date:
                continue
            parts = split.get(payment.payment_id, {kind: ZERO for kind in AllocationKind})
            rows.append({
                'receipt_number': payment.receipt_number,
                'flat_number': payment.flat_number,
                'date': payment.date,
                'mode': payment.mode.value,
                'amount': payment.amount,
                'charges': parts[AllocationKind.CHARGE],
                'legacy': parts[AllocationKind.LEGACY],
                'advance': parts[AllocationKind.ADVANCE],
                'status': payment.status.value,
            })

        df = pd.DataFrame(rows, columns=PAYMENT_COLUMNS)
        return df.sort_values(['date', 'receipt_number']).reset_index(drop=True)

    def head_collection(self, start_date: date = None, end_date: date = None) -> pd.DataFrame:
        """Amount collected per head (legacy and advance included) over active payments"""
        payments = {
            payment.payment_id: payment
            for payment in self.payment_repo.get_all_payments()
            if payment.status == PaymentStatus.ACTIVE
            and (start_date is None or payment.date >= start_date)
            and (end_date is None or payment.date <= end_date)
        }
        rows = [
            {
                'head': allocation.head.value if allocation.head else allocation.kind.value,
                'amount': allocation.amount,
            }
            for allocation in self.allocation_repo.find_all_allocations()
            if allocation.payment_id in payments
        ]
        if not rows:
            return pd.DataFrame(columns=['head', 'amount'])

        df = pd.DataFrame(rows)
        summary = df.groupby('head', sort=False)['amount'].agg(lambda values: sum(values, Decimal('0.00')))
        return summary.reset_index()
