"""
Payment Service
Records payments, allocates them to bills and reverses them.

Every allocation is written to the ledger (``allocations`` collection) when
the payment is recorded, so statements and reversals read the ledger
instead of guessing again which bills a payment belonged to.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from datetime import date, datetime
from typing import List, Dict, Optional, Iterable, FrozenSet, Tuple, Any

from core.models.entities import (
    Allocation, AllocationKind, Bill, BILL_HEADS, Flat, Head, HeadAmount, MatchRule,
    Payment, PaymentMode, PaymentStatus, PeriodRange, ReviewItem
)
from core.models.results import AllocationOutcome, Outcome, Receipt
from core.repositories.allocation_repository import AllocationRepository
from core.repositories.bill_repository import BillRepository
from core.repositories.flat_repository import FlatRepository
from core.repositories.payment_repository import PaymentRepository
from core.repositories.review_repository import ReviewRepository
from core.repositories.sequence_repository import SequenceRepository
from core.services.audit_service import AuditService
from core.services.bill_status import BillStatusMachine
from core.services.configuration_service import ConfigurationService
from core.services.notification_service import NotificationService
from core.services.outstanding_service import OutstandingCalculator, HeadDefaults
from db.record_store import RecordStore
from utils.exceptions import (
    SocietyBillingException, ValidationException, FlatNotFoundException,
    UnmatchedPaymentException, AllocationException
)
from utils.helpers import LoggingUtils, NumberUtils, PeriodUtils, StringUtils, ZERO
from utils.validators import BillingValidator

ALL_HEADS: FrozenSet[Head] = frozenset(BILL_HEADS)
MAINTENANCE_HEADS: FrozenSet[Head] = frozenset(BILL_HEADS) - {Head.PARKING}
PARKING_HEADS: FrozenSet[Head] = frozenset({Head.PARKING})

@dataclass
class AllocatorSettings:
    """Knobs for the payment allocator"""
    # Last-resort rule: a payment with no period tags whose date month has no bill
    allow_blanket_match: bool = True
    # Record unmatched payments as credit plus a review item instead of rejecting them
    allow_unmatched: bool = True

@dataclass(frozen=True)
class MatchedBill:
    bill: Bill
    rule: MatchRule
    heads: FrozenSet[Head]

@dataclass
class AllocationPlan:
    matched: List[MatchedBill] = field(default_factory=list)
    allocations: List[Allocation] = field(default_factory=list)
    blanket_match_used: bool = False

    @property
    def unmatched(self) -> bool:
        return not self.matched

class PaymentAllocator:
    """Matches a payment to bills and splits it oldest-first; does not touch the store"""

    def __init__(self, calculator: OutstandingCalculator, settings: AllocatorSettings = None):
        self.calculator = calculator
        self.settings = settings or AllocatorSettings()

    def match_bills(self, payment: Payment) -> Tuple[List[MatchedBill], bool]:
        """Bills the payment pays for, oldest period first, and whether the blanket rule was used"""
        bills = self.calculator.bills_for(payment.flat_number)

        if payment.has_period_info:
            matched = []
            for bill in bills:
                if payment.period == bill.period:
                    matched.append(MatchedBill(bill, MatchRule.PERIOD_TAG, ALL_HEADS))
                    continue
                heads = frozenset()
                if payment.maintenance_period and payment.maintenance_period.contains(bill.period):
                    heads = heads | MAINTENANCE_HEADS
                if payment.parking_period and payment.parking_period.contains(bill.period):
                    heads = heads | PARKING_HEADS
                if heads:
                    matched.append(MatchedBill(bill, MatchRule.CATEGORY_RANGE, heads))
            return matched, False

        month = PeriodUtils.from_date(payment.date)
        matched = [MatchedBill(bill, MatchRule.DATE_MONTH, ALL_HEADS) for bill in bills if bill.period == month]
        if matched:
            return matched, False

        if self.settings.allow_blanket_match and bills:
            LoggingUtils.log_diagnostic(
                "blanket_payment_match", payment.flat_number,
                details={'payment_id': payment.payment_id, 'bills': [bill.bill_id for bill in bills]}
            )
            return [MatchedBill(bill, MatchRule.BLANKET, ALL_HEADS) for bill in bills], True

        return [], False

    def allocate(self, payment: Payment, flat: Flat) -> AllocationPlan:
        """Waterfall the payment over its matched bills; nothing is left unallocated"""
        matched, blanket = self.match_bills(payment)
        plan = AllocationPlan(matched=matched, blanket_match_used=blanket)
        state = _AllocationState(self.calculator, payment, plan)
        first_match = matched[0] if matched else None

        if payment.head_breakdown:
            buckets: Dict[Head, Decimal] = {}
            for entry in payment.head_breakdown:
                buckets[entry.head] = buckets.get(entry.head, ZERO) + entry.amount

            leftover = ZERO
            for head, amount in buckets.items():
                if head == Head.LEGACY:
                    leftover += state.settle_legacy(flat, amount, first_match)
                    continue
                for match in matched:
                    if head in match.heads and amount > 0:
                        amount = state.settle_head(match, head, amount)
                leftover += amount
            remaining = leftover
        else:
            remaining = payment.amount
            if any(Head.MAINTENANCE in match.heads for match in matched):
                # Undivided money clears the oldest debt first
                remaining = state.settle_legacy(flat, remaining, first_match)
            for match in matched:
                if remaining <= 0:
                    break
                remaining = state.settle_bill(match, remaining)

        # Remainder reduces legacy dues, then waits as advance credit
        remaining = state.settle_legacy(flat, remaining, first_match)
        if remaining > 0:
            state.add(AllocationKind.ADVANCE, remaining, match=first_match)

        self._verify(payment, flat, state)
        return plan

    def _verify(self, payment: Payment, flat: Flat, state: '_AllocationState'):
        allocated = NumberUtils.total(allocation.amount for allocation in state.plan.allocations)
        if allocated != payment.amount:
            raise AllocationException(
                f"Allocated {StringUtils.format_currency(allocated)} of a "
                f"{StringUtils.format_currency(payment.amount)} payment for flat {flat.flat_number}",
                flat_number=flat.flat_number
            )

        calculator = state.current
        bills = calculator.bills_for(flat.flat_number)
        if bills:
            after_last = PeriodUtils.add_months(bills[-1].period, 1)
            billed = calculator.billed_before(flat.flat_number, after_last)
            paid = calculator.paid_before(flat.flat_number, after_last)
            for head in BILL_HEADS:
                if paid.get(head, ZERO) > billed.get(head, ZERO):
                    raise AllocationException(
                        f"Flat {flat.flat_number} would have more paid than billed for {head.value}",
                        flat_number=flat.flat_number, head=head.value
                    )
        if calculator.legacy_paid(flat.flat_number) > flat.legacy_outstanding:
            raise AllocationException(f"Flat {flat.flat_number} would have legacy dues paid twice",
                                      flat_number=flat.flat_number, head=Head.LEGACY.value)

class _AllocationState:
    """Working ledger while one payment is being split"""

    def __init__(self, calculator: OutstandingCalculator, payment: Payment, plan: AllocationPlan):
        self.base = calculator
        self.current = calculator
        self.payment = payment
        self.plan = plan

    def add(self, kind: AllocationKind, amount: Decimal, head: Head = None, bill_id: str = None,
            match: MatchedBill = None):
        allocation = Allocation(
            allocation_id=StringUtils.generate_id('alloc'),
            payment_id=self.payment.payment_id,
            flat_number=self.payment.flat_number,
            kind=kind,
            amount=NumberUtils.round_currency(amount),
            head=head,
            bill_id=bill_id,
            matched_bill_id=match.bill.bill_id if match else None,
            match_rule=match.rule if match else None,
        )
        self.plan.allocations.append(allocation)
        self.current = self.base.with_allocations(self.plan.allocations)

    def settle_legacy(self, flat: Flat, amount: Decimal, match: Optional[MatchedBill]) -> Decimal:
        take = min(amount, self.current.legacy_balance(flat))
        if take > 0:
            self.add(AllocationKind.LEGACY, take, head=Head.LEGACY, match=match)
        return amount - max(take, ZERO)

    def settle_head(self, match: MatchedBill, head: Head, amount: Decimal) -> Decimal:
        """Carried amount of the head first (paid to the bills it came from), then the bill's own charge"""
        amount = self._settle_carried(match, head, amount)
        return self._settle_own(match, head, amount)

    def settle_bill(self, match: MatchedBill, amount: Decimal) -> Decimal:
        """Undivided amount: every carried head, then every own head"""
        heads = [head for head in BILL_HEADS if head in match.heads]
        for head in heads:
            amount = self._settle_carried(match, head, amount)
        for head in heads:
            amount = self._settle_own(match, head, amount)
        return amount

    def _settle_carried(self, match: MatchedBill, head: Head, amount: Decimal) -> Decimal:
        carried_open = self.current.carried_open(match.bill).get(head, ZERO)
        for origin in self.current.bills_for(match.bill.flat_number):
            if origin.period >= match.bill.period or carried_open <= 0 or amount <= 0:
                break
            take = min(amount, carried_open, self.current.own_open(origin).get(head, ZERO))
            if take > 0:
                self.add(AllocationKind.CHARGE, take, head=head, bill_id=origin.bill_id, match=match)
                amount -= take
                carried_open -= take
        return amount

    def _settle_own(self, match: MatchedBill, head: Head, amount: Decimal) -> Decimal:
        take = min(amount, self.current.own_open(match.bill).get(head, ZERO))
        if take > 0:
            self.add(AllocationKind.CHARGE, take, head=head, bill_id=match.bill.bill_id, match=match)
            amount -= take
        return amount

class PaymentService:
    """Service class for payment recording and reconciliation"""

    def __init__(self, store: RecordStore, settings: AllocatorSettings = None,
                 head_defaults: Optional[HeadDefaults] = None, notifications: NotificationService = None):
        self.store = store
        self.settings = settings or AllocatorSettings()
        self.head_defaults = head_defaults
        self.payment_repo = PaymentRepository(store)
        self.allocation_repo = AllocationRepository(store)
        self.bill_repo = BillRepository(store)
        self.flat_repo = FlatRepository(store)
        self.review_repo = ReviewRepository(store)
        self.sequence_repo = SequenceRepository(store)
        self.config_service = ConfigurationService(store)
        self.audit = AuditService(store)
        self.notifications = notifications or NotificationService()

    def _calculator(self, flat_number: str = None) -> OutstandingCalculator:
        """Calculator over one flat's bills and ledger, or the whole society"""
        if flat_number is None:
            return OutstandingCalculator(
                self.bill_repo.get_all_bills(),
                self.allocation_repo.find_all_allocations(),
                self.head_defaults,
            )
        return OutstandingCalculator(
            self.bill_repo.find_by_flat(flat_number),
            self.allocation_repo.find_by_flat(flat_number),
            self.head_defaults,
        )

    @staticmethod
    def _normalize_breakdown(entries: Optional[Iterable[Any]]) -> Tuple[HeadAmount, ...]:
        """Accept HeadAmount, (label, amount) pairs or {'head', 'amount'} dicts"""
        if not entries:
            return ()
        merged: Dict[Head, Decimal] = {}
        for entry in entries:
            if isinstance(entry, HeadAmount):
                head, amount = entry.head, entry.amount
            elif isinstance(entry, dict):
                head, amount = Head.from_label(entry.get('head')), entry.get('amount')
            else:
                label, amount = entry
                head = Head.from_label(label)
            if not isinstance(amount, Decimal):
                amount = NumberUtils.to_decimal(amount)
            merged[head] = merged.get(head, ZERO) + amount
        return tuple(HeadAmount(head, amount) for head, amount in merged.items())

    @staticmethod
    def _normalize_range(value, field_name: str) -> Optional[PeriodRange]:
        if value is None:
            return None
        if not isinstance(value, PeriodRange):
            start, end = value
            value = PeriodRange(start, end)
        BillingValidator.validate_period_range(value.start, value.end, field_name)
        return value

    def _next_receipt_number(self, payment_date: date) -> str:
        period = PeriodUtils.from_date(payment_date)

        def seed() -> int:
            month_payments = [
                p for p in self.payment_repo.get_all_payments(include_voided=True)
                if p.receipt_number.startswith(f"RCPT-{period}-")
            ]
            return max((StringUtils.sequence_suffix(p.receipt_number) for p in month_payments), default=0)

        sequence = self.sequence_repo.next_value('receipt', period, seed=seed)
        return StringUtils.format_sequence_number('RCPT', period, sequence)

    def refresh_statuses(self, flat: Flat) -> List[Bill]:
        """Re-run the status machine for every bill of the flat; returns bills whose status changed"""
        calculator = self._calculator(flat.flat_number)
        changed = []
        for bill in calculator.bills_for(flat.flat_number):
            settlement = calculator.bill_settlement(bill, flat)
            updated = BillStatusMachine.apply(bill, settlement.paid_amount)
            if updated is not bill:
                changed.append(updated)
        self.bill_repo.update_statuses(changed)
        return changed

    def _affected_bills(self, flat: Flat, allocations: List[Allocation], changed: List[Bill]) -> List[Bill]:
        touched = {a.bill_id for a in allocations if a.bill_id} | {a.matched_bill_id for a in allocations if a.matched_bill_id}
        touched |= {bill.bill_id for bill in changed}
        return [bill for bill in self.bill_repo.find_by_flat(flat.flat_number) if bill.bill_id in touched]

    def record_payment(self, flat_number: str, amount: Decimal, payment_date: date,
                       mode: PaymentMode = PaymentMode.CASH, head_breakdown: Iterable[Any] = None,
                       period: str = None, maintenance_period=None, parking_period=None,
                       reference: str = None, notes: str = None, actor: str = 'admin',
                       replaces_payment_id: str = None, receipt_number: str = None) -> AllocationOutcome:
        """Validate, store and allocate a payment in one transaction"""
        try:
            flat = self.flat_repo.find_flat(flat_number)
            if not flat:
                raise FlatNotFoundException(f"Flat {flat_number} not found", flat_number=flat_number)

            BillingValidator.validate_amount(amount)
            if not isinstance(payment_date, date):
                raise ValidationException("Payment date is required", flat_number=flat_number)
            if period is not None:
                BillingValidator.validate_period(period)
            maintenance_range = self._normalize_range(maintenance_period, "Maintenance period")
            parking_range = self._normalize_range(parking_period, "Parking period")
            breakdown = self._normalize_breakdown(head_breakdown)
            BillingValidator.validate_head_breakdown(amount, breakdown, flat_number=flat_number, period=period)

            with self.store.transaction():
                payment = Payment(
                    payment_id=StringUtils.generate_id('payment'),
                    receipt_number=receipt_number or self._next_receipt_number(payment_date),
                    flat_number=flat_number,
                    amount=amount,
                    date=payment_date,
                    mode=mode,
                    head_breakdown=breakdown,
                    period=period,
                    maintenance_period=maintenance_range,
                    parking_period=parking_range,
                    reference=reference,
                    notes=notes,
                    replaces_payment_id=replaces_payment_id,
                    created_at=datetime.now(),
                )

                plan = PaymentAllocator(self._calculator(flat_number), self.settings).allocate(payment, flat)
                if plan.unmatched and not self.settings.allow_unmatched:
                    raise UnmatchedPaymentException(
                        f"No bill of flat {flat_number} matches a payment of "
                        f"{StringUtils.format_currency(amount)} dated {payment_date.isoformat()}",
                        flat_number=flat_number, period=period or PeriodUtils.from_date(payment_date)
                    )

                self.payment_repo.create_payment(payment)
                self.allocation_repo.add_allocations(plan.allocations)
                changed = self.refresh_statuses(flat)

                outcome = AllocationOutcome(
                    payment=payment,
                    allocations=plan.allocations,
                    affected_bills=self._affected_bills(flat, plan.allocations, changed),
                    blanket_match_used=plan.blanket_match_used,
                    unmatched=plan.unmatched,
                )
                if plan.unmatched:
                    outcome.review_item = ReviewItem(
                        review_id=StringUtils.generate_id('review'),
                        payment_id=payment.payment_id,
                        flat_number=flat_number,
                        reason="No bill matched; amount held against legacy dues / advance credit",
                        created_at=datetime.now(),
                    )
                    self.review_repo.add_item(outcome.review_item)

                self.audit.log(actor, 'PAYMENT_EDIT' if replaces_payment_id else 'PAYMENT_RECORD', {
                    'payment_id': payment.payment_id,
                    'receipt_number': payment.receipt_number,
                    'amount': str(amount),
                    'allocations': len(plan.allocations),
                })

            def announce():
                LoggingUtils.log_payment(
                    "recorded", flat_number, amount, payment.payment_id,
                    details={'receipt_number': payment.receipt_number,
                             'bills': [bill.bill_id for bill in outcome.affected_bills],
                             'blanket_match': plan.blanket_match_used}
                )
                if plan.unmatched:
                    self.notifications.warning(
                        Outcome.UNMATCHED_PAYMENT,
                        f"Receipt {payment.receipt_number} for flat {flat_number} matched no bill "
                        f"and was queued for review",
                        flat_number=flat_number, period=period
                    )
                else:
                    self.notifications.success(
                        f"Receipt {payment.receipt_number}: {StringUtils.format_currency(amount)} "
                        f"from flat {flat_number}",
                        flat_number=flat_number, period=period
                    )

            # Held back while an outer transaction (an edit) can still roll back
            self.store.after_commit(announce)
            return outcome

        except SocietyBillingException as e:
            LoggingUtils.log_business_event(
                "payment_failed", "payment", None, flat_number=flat_number,
                details={'error': e.message, 'amount': str(amount), **e.context()}
            )
            self.notifications.failure(e)
            raise

    def reverse_payment(self, payment_id: str, actor: str = 'admin') -> List[Bill]:
        """Undo exactly the allocations a payment created; repeating it does nothing"""
        payment = self.payment_repo.get_payment(payment_id)
        flat = self.flat_repo.find_flat(payment.flat_number)
        if not flat:
            raise FlatNotFoundException(f"Flat {payment.flat_number} not found", flat_number=payment.flat_number)

        with self.store.transaction():
            removed = self.allocation_repo.remove_for_payment(payment_id)
            if not removed:
                return []

            self.payment_repo.void_payment(payment_id)
            for item in self.review_repo.get_open_items():
                if item.payment_id == payment_id:
                    self.review_repo.resolve(item.review_id)
            changed = self.refresh_statuses(flat)
            affected = self._affected_bills(flat, removed, changed)
            self.audit.log(actor, 'PAYMENT_REVERSE', {
                'payment_id': payment_id, 'receipt_number': payment.receipt_number,
                'allocations': len(removed)
            })

        def announce():
            LoggingUtils.log_payment("reversed", payment.flat_number, payment.amount, payment_id,
                                     details={'bills': [bill.bill_id for bill in affected]})
            self.notifications.success(f"Receipt {payment.receipt_number} reversed",
                                       flat_number=payment.flat_number, period=payment.period)

        self.store.after_commit(announce)
        return affected

    def edit_payment(self, payment_id: str, actor: str = 'admin', **changes) -> AllocationOutcome:
        """Reverse the payment and record the corrected one under the same receipt number"""
        old = self.payment_repo.get_payment(payment_id)
        if old.status == PaymentStatus.VOIDED:
            raise ValidationException(f"Receipt {old.receipt_number} was already reversed",
                                      flat_number=old.flat_number)
        allowed = {'amount', 'payment_date', 'mode', 'head_breakdown', 'period',
                   'maintenance_period', 'parking_period', 'reference', 'notes'}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationException(f"Cannot edit {', '.join(sorted(unknown))} on a payment")

        params = {
            'amount': old.amount,
            'payment_date': old.date,
            'mode': old.mode,
            'head_breakdown': old.head_breakdown,
            'period': old.period,
            'maintenance_period': old.maintenance_period,
            'parking_period': old.parking_period,
            'reference': old.reference,
            'notes': old.notes,
        }
        params.update(changes)

        with self.store.transaction():
            self.reverse_payment(payment_id, actor=actor)
            return self.record_payment(
                old.flat_number, actor=actor, replaces_payment_id=payment_id,
                receipt_number=old.receipt_number, **params
            )

    def delete_payment(self, payment_id: str, actor: str = 'admin') -> List[Bill]:
        """Deleting is a reversal; the voided record stays for audit"""
        return self.reverse_payment(payment_id, actor=actor)

    def get_receipt(self, payment_id: str) -> Receipt:
        """Payment and the allocations it created, for printing"""
        payment = self.payment_repo.get_payment(payment_id)
        allocations = self.allocation_repo.find_by_payment(payment_id)

        def total(kind: AllocationKind) -> Decimal:
            return NumberUtils.total(a.amount for a in allocations if a.kind == kind)

        return Receipt(
            payment=payment,
            flat=self.flat_repo.find_flat(payment.flat_number),
            society=self.config_service.get_society_info(),
            allocations=allocations,
            charge_total=total(AllocationKind.CHARGE),
            legacy_total=total(AllocationKind.LEGACY),
            advance_total=total(AllocationKind.ADVANCE),
        )

    def get_payments_for_flat(self, flat_number: str, include_voided: bool = False) -> List[Payment]:
        return self.payment_repo.find_by_flat(flat_number, include_voided)

    def get_receipt_history(self, receipt_number: str) -> List[Payment]:
        """Every version of a receipt, the original first; corrections reuse the number"""
        return sorted(self.payment_repo.find_by_receipt(receipt_number),
                      key=lambda p: (p.created_at is None, p.created_at))

    def get_review_items(self) -> List[ReviewItem]:
        return self.review_repo.get_open_items()

    def resolve_review_item(self, review_id: str, actor: str = 'admin') -> bool:
        item = self.review_repo.find_item(review_id)
        if not item:
            raise ValidationException(f"Review item {review_id} not found")
        with self.store.transaction():
            self.review_repo.resolve(review_id)
            self.audit.log(actor, 'REVIEW_RESOLVE', {'review_id': review_id, 'payment_id': item.payment_id})
        return True
