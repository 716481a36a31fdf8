"""Reversing, editing and deleting payments."""

from datetime import date
from decimal import Decimal

import pytest

from core.models.entities import BillStatus, PaymentMode, PaymentStatus
from core.models.results import Outcome
from core.repositories.allocation_repository import AllocationRepository
from core.services.audit_service import AuditService
from core.services.payment_service import AllocatorSettings, PaymentService
from utils.exceptions import HeadBreakdownMismatchException, PaymentNotFoundException, ValidationException


def D(value) -> Decimal:
    return Decimal(str(value))


@pytest.fixture
def billed(configure, add_flat, bill_service):
    configure(maintenance_charges=460)
    flat = add_flat("101", legacy="200")
    add_flat("102")
    for period in ("2025-01", "2025-02"):
        bill_service.generate_bill("101", period)
        bill_service.generate_bill("102", period)
    return flat


class TestReverse:

    def test_reverse_restores_previous_state(self, billed, payment_service, outstanding_service, get_bill):
        before = outstanding_service.compute_outstanding(billed, "2025-03")
        outcome = payment_service.record_payment("101", D(660), date(2025, 1, 5), period="2025-01")
        assert get_bill("101", "2025-01").status == BillStatus.PAID

        affected = payment_service.reverse_payment(outcome.payment.payment_id)

        assert "bill_101_2025-01" in [bill.bill_id for bill in affected]
        assert get_bill("101", "2025-01").status == BillStatus.PENDING
        assert outstanding_service.compute_outstanding(billed, "2025-03") == before
        [voided] = payment_service.get_payments_for_flat("101", include_voided=True)
        assert voided.status == PaymentStatus.VOIDED
        assert payment_service.get_payments_for_flat("101") == []

    def test_second_reverse_does_nothing(self, billed, payment_service, store):
        outcome = payment_service.record_payment("101", D(100), date(2025, 1, 5))
        payment_service.reverse_payment(outcome.payment.payment_id)
        audit_entries = len(AuditService(store).get_latest_activity(100))

        assert payment_service.reverse_payment(outcome.payment.payment_id) == []
        assert len(AuditService(store).get_latest_activity(100)) == audit_entries

    def test_reverse_carried_allocation(self, billed, payment_service, get_bill):
        # Feb-dated money pays legacy, then January's carried charge
        outcome = payment_service.record_payment("101", D(660), date(2025, 2, 5))
        assert get_bill("101", "2025-01").status == BillStatus.PAID

        payment_service.reverse_payment(outcome.payment.payment_id)

        assert get_bill("101", "2025-01").status == BillStatus.PENDING
        assert get_bill("101", "2025-02").status == BillStatus.PENDING
        assert AllocationRepository(payment_service.store).find_by_payment(outcome.payment.payment_id) == []

    def test_other_payments_are_untouched(self, billed, payment_service, store, get_bill):
        first = payment_service.record_payment("102", D(460), date(2025, 1, 5), period="2025-01")
        second = payment_service.record_payment("101", D(300), date(2025, 1, 6), period="2025-01")
        kept = AllocationRepository(store).find_by_payment(first.payment.payment_id)

        payment_service.reverse_payment(second.payment.payment_id)

        assert AllocationRepository(store).find_by_payment(first.payment.payment_id) == kept
        assert get_bill("102", "2025-01").status == BillStatus.PAID

    def test_review_item_closed_on_reverse(self, billed, store, notifications):
        service = PaymentService(store, settings=AllocatorSettings(allow_blanket_match=False),
                                 notifications=notifications)
        outcome = service.record_payment("102", D(50), date(2025, 6, 1))
        assert len(service.get_review_items()) == 1

        service.reverse_payment(outcome.payment.payment_id)

        assert service.get_review_items() == []

    def test_unknown_payment(self, billed, payment_service):
        with pytest.raises(PaymentNotFoundException):
            payment_service.reverse_payment("payment_missing")

    def test_delete_is_a_reversal(self, billed, payment_service, store, get_bill):
        outcome = payment_service.record_payment("101", D(660), date(2025, 1, 5), period="2025-01")

        payment_service.delete_payment(outcome.payment.payment_id, actor="treasurer")

        assert get_bill("101", "2025-01").status == BillStatus.PENDING
        latest = AuditService(store).get_latest_activity(100)
        assert any(entry['action'] == 'PAYMENT_REVERSE' and entry['actor'] == 'treasurer' for entry in latest)


class TestEdit:

    def test_edit_keeps_receipt_number(self, billed, payment_service, get_bill):
        outcome = payment_service.record_payment("101", D(200), date(2025, 1, 5), period="2025-01")

        edited = payment_service.edit_payment(outcome.payment.payment_id, amount=D(660), mode=PaymentMode.UPI)

        assert edited.payment.receipt_number == outcome.payment.receipt_number
        assert edited.payment.replaces_payment_id == outcome.payment.payment_id
        assert edited.payment.mode == PaymentMode.UPI
        assert edited.payment.period == "2025-01"
        assert get_bill("101", "2025-01").status == BillStatus.PAID
        payments = payment_service.get_payments_for_flat("101", include_voided=True)
        assert [p.status for p in payments] == [PaymentStatus.VOIDED, PaymentStatus.ACTIVE]
        history = payment_service.get_receipt_history(outcome.payment.receipt_number)
        assert [p.payment_id for p in history] == [outcome.payment.payment_id, edited.payment.payment_id]

    def test_edit_moves_payment_to_other_month(self, billed, payment_service, outstanding_service, get_bill):
        outcome = payment_service.record_payment("102", D(460), date(2025, 1, 5), period="2025-01")

        edited = payment_service.edit_payment(outcome.payment.payment_id, period="2025-02")

        # Matched to February, the money still clears the January amount carried on it
        [allocation] = edited.allocations
        assert allocation.matched_bill_id == "bill_102_2025-02"
        assert allocation.bill_id == "bill_102_2025-01"
        assert get_bill("102", "2025-01").status == BillStatus.PAID
        assert get_bill("102", "2025-02").status == BillStatus.PARTIAL

    def test_failed_edit_leaves_original(self, billed, payment_service, store, get_bill):
        outcome = payment_service.record_payment("101", D(660), date(2025, 1, 5), period="2025-01")
        allocations = AllocationRepository(store).find_by_payment(outcome.payment.payment_id)

        with pytest.raises(HeadBreakdownMismatchException):
            payment_service.edit_payment(outcome.payment.payment_id,
                                         head_breakdown=[("Maintenance", D(100))])

        [payment] = payment_service.get_payments_for_flat("101", include_voided=True)
        assert payment.status == PaymentStatus.ACTIVE
        assert AllocationRepository(store).find_by_payment(outcome.payment.payment_id) == allocations
        assert get_bill("101", "2025-01").status == BillStatus.PAID

    def test_failed_edit_announces_nothing_but_the_error(self, billed, payment_service, notifications):
        outcome = payment_service.record_payment("101", D(400), date(2025, 1, 5), period="2025-01")
        events = []
        notifications.subscribe(events.append)

        with pytest.raises(ValidationException):
            payment_service.edit_payment(outcome.payment.payment_id, period="2025-13")

        assert [event.outcome for event in events] == [Outcome.VALIDATION_ERROR]
        [payment] = payment_service.get_payments_for_flat("101", include_voided=True)
        assert payment.status == PaymentStatus.ACTIVE

    def test_edit_announced_once_committed(self, billed, payment_service, notifications):
        outcome = payment_service.record_payment("101", D(400), date(2025, 1, 5), period="2025-01")
        events = []
        notifications.subscribe(events.append)

        payment_service.edit_payment(outcome.payment.payment_id, amount=D(660))

        assert [event.outcome for event in events] == [Outcome.OK, Outcome.OK]
        assert "reversed" in events[0].message

    def test_cannot_edit_reversed_payment(self, billed, payment_service):
        outcome = payment_service.record_payment("101", D(100), date(2025, 1, 5))
        payment_service.reverse_payment(outcome.payment.payment_id)

        with pytest.raises(ValidationException):
            payment_service.edit_payment(outcome.payment.payment_id, amount=D(200))

    def test_unknown_field_rejected(self, billed, payment_service):
        outcome = payment_service.record_payment("101", D(100), date(2025, 1, 5))

        with pytest.raises(ValidationException):
            payment_service.edit_payment(outcome.payment.payment_id, flat_number="102")
