"""
Payment Repository
Handles storage of the payments collection
"""

from typing import Optional, List
from datetime import datetime

from core.repositories.base_repository import BaseRepository
from core.models.entities import Payment, PaymentMode, PaymentStatus, PeriodRange, HeadAmount, Head
from db.record_store import RecordStore
from utils.exceptions import ValidationException, PaymentNotFoundException
from utils.helpers import NumberUtils

class PaymentRepository(BaseRepository):
    """Repository for payments collection operations"""

    def __init__(self, store: RecordStore):
        super().__init__(store, 'payments', 'payment_id')

    def create_payment(self, payment: Payment) -> str:
        """Create a new payment"""
        if not payment.flat_number or payment.amount <= 0:
            raise ValidationException("Flat number and positive amount are required")

        return self.create(self._payment_to_dict(payment))

    def find_payment_by_id(self, payment_id: str) -> Optional[Payment]:
        payment_data = self.find_by_id(payment_id)
        if not payment_data:
            return None

        return self._dict_to_payment(payment_data)

    def get_payment(self, payment_id: str) -> Payment:
        payment = self.find_payment_by_id(payment_id)
        if not payment:
            raise PaymentNotFoundException(f"Payment {payment_id} not found")
        return payment

    def find_by_flat(self, flat_number: str, include_voided: bool = False) -> List[Payment]:
        """Payments of a flat ordered by date"""
        payments = [self._dict_to_payment(row) for row in self.find_by_field('flat_number', flat_number)]
        if not include_voided:
            payments = [p for p in payments if p.status == PaymentStatus.ACTIVE]
        return sorted(payments, key=lambda p: (p.date, p.receipt_number))

    def find_by_receipt(self, receipt_number: str) -> List[Payment]:
        return [self._dict_to_payment(row) for row in self.find_by_field('receipt_number', receipt_number)]

    def get_all_payments(self, include_voided: bool = False) -> List[Payment]:
        payments = [self._dict_to_payment(row) for row in self.find_all()]
        if not include_voided:
            payments = [p for p in payments if p.status == PaymentStatus.ACTIVE]
        return payments

    def void_payment(self, payment_id: str) -> bool:
        """Mark a payment voided; the record stays for audit"""
        return self.update(payment_id, {'status': PaymentStatus.VOIDED.value})

    def _payment_to_dict(self, payment: Payment) -> dict:
        def period_range(value: Optional[PeriodRange]):
            return {'from': value.start, 'to': value.end} if value else None

        return {
            'payment_id': payment.payment_id,
            'receipt_number': payment.receipt_number,
            'flat_number': payment.flat_number,
            'amount': self._money(payment.amount),
            'date': self._date_to_str(payment.date),
            'mode': payment.mode.value,
            'head_breakdown': [
                {'head': entry.head.value, 'amount': self._money(entry.amount)}
                for entry in payment.head_breakdown
            ],
            'period': payment.period,
            'maintenance_period': period_range(payment.maintenance_period),
            'parking_period': period_range(payment.parking_period),
            'reference': payment.reference,
            'notes': payment.notes,
            'status': payment.status.value,
            'replaces_payment_id': payment.replaces_payment_id,
            'created_at': self._date_to_str(payment.created_at or datetime.now()),
        }

    def _dict_to_payment(self, payment_data: dict) -> Payment:
        """Convert dictionary to Payment object"""
        def period_range(value) -> Optional[PeriodRange]:
            return PeriodRange(value['from'], value['to']) if value else None

        return Payment(
            payment_id=payment_data['payment_id'],
            receipt_number=payment_data.get('receipt_number', ''),
            flat_number=payment_data['flat_number'],
            amount=NumberUtils.to_decimal(payment_data['amount']),
            date=self._str_to_date(payment_data['date']),
            mode=PaymentMode(payment_data.get('mode', 'cash')),
            head_breakdown=tuple(
                HeadAmount(Head(entry['head']), NumberUtils.to_decimal(entry['amount']))
                for entry in payment_data.get('head_breakdown') or []
            ),
            period=payment_data.get('period'),
            maintenance_period=period_range(payment_data.get('maintenance_period')),
            parking_period=period_range(payment_data.get('parking_period')),
            reference=payment_data.get('reference'),
            notes=payment_data.get('notes'),
            status=PaymentStatus(payment_data.get('status', 'active')),
            replaces_payment_id=payment_data.get('replaces_payment_id'),
            created_at=self._str_to_datetime(payment_data.get('created_at')),
        )
