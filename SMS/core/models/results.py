"""
Read models returned by the billing services
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from core.models.entities import Allocation, Bill, Flat, Head, Payment, ReviewItem, SocietyInfo

class Outcome(Enum):
    OK = 'ok'
    VALIDATION_ERROR = 'validation_error'
    DUPLICATE_PERIOD = 'duplicate_period'
    ORDERING_VIOLATION = 'ordering_violation'
    MISSING_CONFIGURATION = 'missing_configuration'
    UNMATCHED_PAYMENT = 'unmatched_payment'

@dataclass(frozen=True)
class OutstandingResult:
    """Unpaid amounts of a flat as of a period"""
    per_head: Dict[Head, Decimal]
    legacy: Decimal
    total: Decimal

@dataclass(frozen=True)
class BillSettlement:
    """How much of a bill's total is covered by payments"""
    bill_id: str
    own_paid: Dict[Head, Decimal]
    carried_settled: Dict[Head, Decimal]
    legacy_settled: Decimal
    paid_amount: Decimal
    balance: Decimal

@dataclass(frozen=True)
class BillStatement:
    """Everything a renderer needs to print a bill without re-running the allocator"""
    bill: Bill
    flat: Optional[Flat]
    society: Optional[SocietyInfo]
    current_charges: Dict[Head, Decimal]
    carried_forward: Dict[Head, Decimal]
    legacy_outstanding: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    balance: Decimal
    allocations: List[Allocation] = field(default_factory=list)

@dataclass(frozen=True)
class Receipt:
    """Payment with the allocations it created"""
    payment: Payment
    flat: Optional[Flat]
    society: Optional[SocietyInfo]
    allocations: List[Allocation]
    charge_total: Decimal
    legacy_total: Decimal
    advance_total: Decimal

@dataclass
class AllocationOutcome:
    """Result of applying or reversing a payment"""
    payment: Payment
    allocations: List[Allocation] = field(default_factory=list)
    affected_bills: List[Bill] = field(default_factory=list)
    blanket_match_used: bool = False
    unmatched: bool = False
    review_item: Optional[ReviewItem] = None

@dataclass
class BatchGenerationResult:
    """Result of generating bills for every flat in a period"""
    period: str
    generated: List[Bill] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

@dataclass(frozen=True)
class BillingEvent:
    """Typed event handed to the notification sink"""
    outcome: Outcome
    message: str
    flat_number: Optional[str] = None
    period: Optional[str] = None
    head: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
