"""
Outstanding Calculator
Works out, per charge head, what a flat still owes as of a billing period.

Debt lives on the bill that first charged it: a bill's ``base_charges``.
Carried-forward amounts on later bills are only a snapshot of that debt, so
the calculator sums base charges and never ``outstanding_breakdown`` or
``total_amount``. Payments reach the calculation through the allocation
ledger, which records the bill and head every rupee settled.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional

from core.models.entities import Allocation, AllocationKind, Bill, BILL_HEADS, Flat, Head
from core.models.results import BillSettlement, OutstandingResult
from core.repositories.allocation_repository import AllocationRepository
from core.repositories.bill_repository import BillRepository
from db.record_store import RecordStore
from utils.exceptions import MissingHeadBreakdownException
from utils.helpers import NumberUtils, ZERO

# Explicit per-head amounts used for bills that predate head tracking
HeadDefaults = Mapping[Head, Decimal]

class OutstandingCalculator:
    """Read-only calculator over an already-loaded set of bills and allocations"""

    def __init__(self, bills: Iterable[Bill], allocations: Iterable[Allocation],
                 head_defaults: Optional[HeadDefaults] = None):
        self.head_defaults = dict(head_defaults) if head_defaults is not None else None
        self._bills_by_flat: Dict[str, List[Bill]] = defaultdict(list)
        self._bill_periods: Dict[str, str] = {}
        for bill in bills:
            self._bills_by_flat[bill.flat_number].append(bill)
            self._bill_periods[bill.bill_id] = bill.period
        for flat_bills in self._bills_by_flat.values():
            flat_bills.sort(key=lambda bill: bill.period)

        self._allocations_by_flat: Dict[str, List[Allocation]] = defaultdict(list)
        for allocation in allocations:
            self._allocations_by_flat[allocation.flat_number].append(allocation)

    def with_allocations(self, extra: Iterable[Allocation]) -> 'OutstandingCalculator':
        """Calculator that also sees ``extra`` allocations (used while allocating)"""
        bills = [bill for flat_bills in self._bills_by_flat.values() for bill in flat_bills]
        allocations = [a for flat_allocations in self._allocations_by_flat.values() for a in flat_allocations]
        return OutstandingCalculator(bills, allocations + list(extra), self.head_defaults)

    def bills_for(self, flat_number: str) -> List[Bill]:
        """Bills of a flat, oldest period first"""
        return list(self._bills_by_flat.get(flat_number, []))

    def allocations_for(self, flat_number: str) -> List[Allocation]:
        return list(self._allocations_by_flat.get(flat_number, []))

    def base_charges_of(self, bill: Bill) -> Mapping[Head, Decimal]:
        """A bill's own charges, or the explicit defaults for pre-head bills"""
        if bill.base_charges is not None:
            return bill.base_charges
        if self.head_defaults is None:
            raise MissingHeadBreakdownException(
                f"Bill {bill.bill_number or bill.bill_id} for flat {bill.flat_number} ({bill.period}) "
                f"has no head-wise charges; backfill it before computing outstanding",
                flat_number=bill.flat_number, period=bill.period
            )
        return self.head_defaults

    def billed_before(self, flat_number: str, period: str) -> Dict[Head, Decimal]:
        """Σ base charges per head over bills strictly before period"""
        billed = {head: ZERO for head in BILL_HEADS}
        for bill in self._bills_by_flat.get(flat_number, []):
            if bill.period >= period:
                break
            for head, amount in self.base_charges_of(bill).items():
                billed[head] = billed.get(head, ZERO) + amount
        return billed

    def paid_before(self, flat_number: str, period: str) -> Dict[Head, Decimal]:
        """Σ charge allocations per head against bills strictly before period"""
        paid = {head: ZERO for head in BILL_HEADS}
        for allocation in self._allocations_by_flat.get(flat_number, []):
            if allocation.kind != AllocationKind.CHARGE:
                continue
            bill_period = self._bill_periods.get(allocation.bill_id)
            if bill_period is not None and bill_period < period:
                paid[allocation.head] = paid.get(allocation.head, ZERO) + allocation.amount
        return paid

    def own_paid(self, bill: Bill) -> Dict[Head, Decimal]:
        """Charge allocations per head against the bill's own base charges"""
        paid = {head: ZERO for head in BILL_HEADS}
        for allocation in self._allocations_by_flat.get(bill.flat_number, []):
            if allocation.kind == AllocationKind.CHARGE and allocation.bill_id == bill.bill_id:
                paid[allocation.head] = paid.get(allocation.head, ZERO) + allocation.amount
        return paid

    def legacy_paid(self, flat_number: str) -> Decimal:
        return NumberUtils.total(
            allocation.amount for allocation in self._allocations_by_flat.get(flat_number, [])
            if allocation.kind == AllocationKind.LEGACY
        )

    def legacy_balance(self, flat: Flat) -> Decimal:
        """Pre-system dues still unpaid"""
        return NumberUtils.round_currency(max(ZERO, flat.legacy_outstanding - self.legacy_paid(flat.flat_number)))

    def advance_credit(self, flat_number: str) -> Decimal:
        """Money received that no bill or legacy balance could absorb"""
        return NumberUtils.round_currency(NumberUtils.total(
            allocation.amount for allocation in self._allocations_by_flat.get(flat_number, [])
            if allocation.kind == AllocationKind.ADVANCE
        ))

    def compute_outstanding(self, flat: Flat, as_of_period: str) -> OutstandingResult:
        """Per-head and legacy dues of a flat from bills strictly before as_of_period"""
        billed = self.billed_before(flat.flat_number, as_of_period)
        paid = self.paid_before(flat.flat_number, as_of_period)

        per_head = {}
        for head in BILL_HEADS:
            owed = max(ZERO, billed.get(head, ZERO) - paid.get(head, ZERO))
            if owed > 0:
                per_head[head] = NumberUtils.round_currency(owed)

        legacy = self.legacy_balance(flat)
        total = NumberUtils.round_currency(NumberUtils.total(per_head.values()) + legacy)
        return OutstandingResult(per_head=per_head, legacy=legacy, total=total)

    def carried_settled(self, bill: Bill) -> Dict[Head, Decimal]:
        """
        Part of the bill's carried-forward breakdown that has since been paid.

        At generation ``carried = billed_before - paid_then``; anything paid
        against earlier bills beyond ``paid_then`` settles the carried amount.
        """
        billed = self.billed_before(bill.flat_number, bill.period)
        paid = self.paid_before(bill.flat_number, bill.period)
        settled = {}
        for head, carried in bill.outstanding_breakdown.items():
            paid_then = billed.get(head, ZERO) - carried
            settled[head] = NumberUtils.clamp(paid.get(head, ZERO) - paid_then, ZERO, carried)
        return settled

    def legacy_settled(self, bill: Bill, flat: Flat) -> Decimal:
        """Part of the bill's legacy snapshot that has since been paid"""
        if bill.legacy_outstanding <= 0:
            return ZERO
        paid_then = flat.legacy_outstanding - bill.legacy_outstanding
        return NumberUtils.clamp(self.legacy_paid(flat.flat_number) - paid_then, ZERO, bill.legacy_outstanding)

    def carried_open(self, bill: Bill) -> Dict[Head, Decimal]:
        """Carried-forward amounts on the bill that are still unpaid"""
        settled = self.carried_settled(bill)
        return {
            head: carried - settled.get(head, ZERO)
            for head, carried in bill.outstanding_breakdown.items()
        }

    def own_open(self, bill: Bill) -> Dict[Head, Decimal]:
        """Unpaid part of the bill's own base charges"""
        paid = self.own_paid(bill)
        return {
            head: max(ZERO, amount - paid.get(head, ZERO))
            for head, amount in self.base_charges_of(bill).items()
        }

    def bill_settlement(self, bill: Bill, flat: Flat) -> BillSettlement:
        """Attributed-paid amount of a bill"""
        own_paid = {head: amount for head, amount in self.own_paid(bill).items() if amount > 0}
        carried_settled = {head: amount for head, amount in self.carried_settled(bill).items() if amount > 0}
        legacy_settled = self.legacy_settled(bill, flat)

        paid_amount = NumberUtils.round_currency(
            NumberUtils.total(own_paid.values()) + NumberUtils.total(carried_settled.values()) + legacy_settled
        )
        balance = NumberUtils.round_currency(max(ZERO, bill.total_amount - paid_amount))
        return BillSettlement(
            bill_id=bill.bill_id,
            own_paid=own_paid,
            carried_settled=carried_settled,
            legacy_settled=NumberUtils.round_currency(legacy_settled),
            paid_amount=paid_amount,
            balance=balance,
        )

class OutstandingService:
    """Loads the ledger from the store and answers outstanding queries"""

    def __init__(self, store: RecordStore, head_defaults: Optional[HeadDefaults] = None):
        self.bill_repo = BillRepository(store)
        self.allocation_repo = AllocationRepository(store)
        self.head_defaults = head_defaults

    def calculator(self) -> OutstandingCalculator:
        return OutstandingCalculator(
            self.bill_repo.get_all_bills(),
            self.allocation_repo.find_all_allocations(),
            self.head_defaults,
        )

    def compute_outstanding(self, flat: Flat, as_of_period: str) -> OutstandingResult:
        return self.calculator().compute_outstanding(flat, as_of_period)
