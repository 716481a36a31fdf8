"""
Bill Status Machine
pending -> partial -> paid, and back again when payments are reversed
"""

from decimal import Decimal

from core.models.entities import Bill, BillStatus

class BillStatusMachine:
    """Pure status transition; always re-evaluated from the full paid amount"""

    @staticmethod
    def transition(total_amount: Decimal, paid_amount: Decimal) -> BillStatus:
        if paid_amount >= total_amount:
            return BillStatus.PAID
        if paid_amount > 0:
            return BillStatus.PARTIAL
        return BillStatus.PENDING

    @classmethod
    def apply(cls, bill: Bill, paid_amount: Decimal) -> Bill:
        """Bill carrying the status implied by paid_amount (same object if unchanged)"""
        status = cls.transition(bill.total_amount, paid_amount)
        if status == bill.status:
            return bill
        return bill.with_status(status)
