"""
Data Models for SocietyCore Billing System
Dataclasses representing stored records
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, date
from decimal import Decimal
from types import MappingProxyType
from typing import Optional, Mapping, Tuple
from enum import Enum

from utils.exceptions import ValidationException

# Enums for record constraints
class Head(Enum):
    MAINTENANCE = 'maintenance'
    SINKING_FUND = 'sinking_fund'
    PARKING = 'parking'
    FESTIVAL = 'festival'
    BUILDING_MAINTENANCE = 'building_maintenance'
    OCCUPANCY = 'occupancy'
    NON_OCCUPANCY = 'non_occupancy'
    NOC = 'noc'
    LEGACY = 'legacy'  # flat-level pre-system dues, never on a bill's base charges

    @classmethod
    def from_label(cls, label) -> 'Head':
        """Resolve a user-facing label ("Sinking Fund", "Bldg maintenance") to a Head"""
        if isinstance(label, Head):
            return label
        text = " ".join(str(label or "").lower().replace('_', ' ').replace('-', ' ').split())
        if not text:
            raise ValidationException("Charge head is required")
        if text in HEAD_ALIASES:
            return HEAD_ALIASES[text]

        for keyword, head in HEAD_KEYWORDS:
            if keyword in text:
                return head
        raise ValidationException(f"Unknown charge head '{label}'", head=str(label))

class OccupancyStatus(Enum):
    OWNER = 'owner'
    TENANT = 'tenant'
    RENTER = 'renter'
    VACANT = 'vacant'

class BillStatus(Enum):
    PENDING = 'pending'
    PARTIAL = 'partial'
    PAID = 'paid'

class PaymentMode(Enum):
    CASH = 'cash'
    CHEQUE = 'cheque'
    UPI = 'upi'
    BANK_TRANSFER = 'bank_transfer'
    ONLINE = 'online'

class PaymentStatus(Enum):
    ACTIVE = 'active'
    VOIDED = 'voided'

class AllocationKind(Enum):
    CHARGE = 'charge'
    LEGACY = 'legacy'
    ADVANCE = 'advance'

class MatchRule(Enum):
    PERIOD_TAG = 'period_tag'
    CATEGORY_RANGE = 'category_range'
    DATE_MONTH = 'date_month'
    BLANKET = 'blanket'

# Heads that appear on a bill, in waterfall order
BILL_HEADS: Tuple[Head, ...] = (
    Head.MAINTENANCE,
    Head.SINKING_FUND,
    Head.PARKING,
    Head.FESTIVAL,
    Head.BUILDING_MAINTENANCE,
    Head.OCCUPANCY,
    Head.NON_OCCUPANCY,
    Head.NOC,
)

HEAD_ALIASES = {
    'maintenance': Head.MAINTENANCE,
    'maintenance charges': Head.MAINTENANCE,
    'sinking': Head.SINKING_FUND,
    'sinking fund': Head.SINKING_FUND,
    'parking': Head.PARKING,
    'parking charges': Head.PARKING,
    'festival': Head.FESTIVAL,
    'festival charges': Head.FESTIVAL,
    'building maintenance': Head.BUILDING_MAINTENANCE,
    'building': Head.BUILDING_MAINTENANCE,
    'occupancy': Head.OCCUPANCY,
    'occupancy charges': Head.OCCUPANCY,
    'non occupancy': Head.NON_OCCUPANCY,
    'nonoccupancy': Head.NON_OCCUPANCY,
    'non occupancy charges': Head.NON_OCCUPANCY,
    'noc': Head.NOC,
    'noc charges': Head.NOC,
    'legacy': Head.LEGACY,
    'previous outstanding': Head.LEGACY,
    'legacy outstanding': Head.LEGACY,
}

# Checked in order, first hit wins: "building maintenance" is building, not maintenance
HEAD_KEYWORDS = (
    ('building', Head.BUILDING_MAINTENANCE),
    ('bldg', Head.BUILDING_MAINTENANCE),
    ('non occupancy', Head.NON_OCCUPANCY),
    ('nonoccupancy', Head.NON_OCCUPANCY),
    ('sinking', Head.SINKING_FUND),
    ('parking', Head.PARKING),
    ('festival', Head.FESTIVAL),
    ('occupancy', Head.OCCUPANCY),
    ('noc', Head.NOC),
    ('legacy', Head.LEGACY),
    ('previous', Head.LEGACY),
    ('maintenance', Head.MAINTENANCE),
)

def _frozen_amounts(amounts: Optional[Mapping[Head, Decimal]]):
    if amounts is None:
        return None
    return MappingProxyType(dict(amounts))

@dataclass(frozen=True)
class ParkingSlots:
    """Parking slots held by a flat"""
    four_wheeler: int = 0
    three_wheeler: int = 0
    two_wheeler: int = 0

@dataclass(frozen=True)
class PeriodRange:
    """Inclusive month range, e.g. 2025-01 .. 2025-03"""
    start: str
    end: str

    def contains(self, period: str) -> bool:
        return self.start <= period <= self.end

@dataclass(frozen=True)
class HeadAmount:
    """One entry of a payment's head breakdown"""
    head: Head
    amount: Decimal

@dataclass
class Flat:
    """Flat entity"""
    flat_number: str = ""
    owner_name: str = ""
    mobile: Optional[str] = None
    status: OccupancyStatus = OccupancyStatus.OWNER
    parking: ParkingSlots = field(default_factory=ParkingSlots)
    legacy_outstanding: Decimal = Decimal('0.00')
    created_at: Optional[datetime] = None

@dataclass
class ChargeConfiguration:
    """Current rate table (singleton)"""
    maintenance_charges: Decimal = Decimal('0.00')
    sinking_fund: Decimal = Decimal('0.00')
    festival_charges: Decimal = Decimal('0.00')
    building_maintenance: Decimal = Decimal('0.00')
    occupancy_charges: Decimal = Decimal('0.00')
    non_occupancy_charges: Decimal = Decimal('0.00')
    noc_charges: Decimal = Decimal('0.00')
    four_wheeler_rate: Decimal = Decimal('100.00')
    three_wheeler_rate: Decimal = Decimal('100.00')
    two_wheeler_rate: Decimal = Decimal('50.00')
    interest_rate: Decimal = Decimal('0.00')
    due_day: int = 10
    last_updated: Optional[datetime] = None

@dataclass(frozen=True)
class Bill:
    """Bill snapshot for one (flat, period). Monetary fields never change after creation."""
    bill_id: str
    bill_number: str
    flat_number: str
    period: str
    base_charges: Optional[Mapping[Head, Decimal]]
    outstanding_breakdown: Mapping[Head, Decimal]
    legacy_outstanding: Decimal
    total_amount: Decimal
    status: BillStatus = BillStatus.PENDING
    generated_date: Optional[date] = None
    due_date: Optional[date] = None

    def __post_init__(self):
        object.__setattr__(self, 'base_charges', _frozen_amounts(self.base_charges))
        object.__setattr__(self, 'outstanding_breakdown', _frozen_amounts(self.outstanding_breakdown or {}))

    @property
    def has_head_breakdown(self) -> bool:
        return self.base_charges is not None

    def with_status(self, status: BillStatus) -> 'Bill':
        """Copy of this bill carrying a new status"""
        return replace(self, status=status)

@dataclass(frozen=True)
class Payment:
    """Recorded payment; edits and deletions are compensating operations"""
    payment_id: str
    receipt_number: str
    flat_number: str
    amount: Decimal
    date: date
    mode: PaymentMode = PaymentMode.CASH
    head_breakdown: Tuple[HeadAmount, ...] = ()
    period: Optional[str] = None
    maintenance_period: Optional[PeriodRange] = None
    parking_period: Optional[PeriodRange] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    status: PaymentStatus = PaymentStatus.ACTIVE
    replaces_payment_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def has_period_info(self) -> bool:
        return bool(self.period or self.maintenance_period or self.parking_period)

@dataclass(frozen=True)
class Allocation:
    """Attribution of part of a payment to a bill head, the legacy balance, or advance credit"""
    allocation_id: str
    payment_id: str
    flat_number: str
    kind: AllocationKind
    amount: Decimal
    head: Optional[Head] = None
    bill_id: Optional[str] = None
    matched_bill_id: Optional[str] = None
    match_rule: Optional[MatchRule] = None

@dataclass
class SequenceCounter:
    """Per-period counter for bill and receipt numbers"""
    kind: str = "bill"
    period: str = ""
    last_value: int = 0

@dataclass
class ReviewItem:
    """Payment that needs a human look (e.g. nothing matched)"""
    review_id: str = ""
    payment_id: str = ""
    flat_number: str = ""
    reason: str = ""
    created_at: Optional[datetime] = None
    resolved: bool = False

@dataclass
class SocietyInfo:
    """Society header details printed on bills and receipts"""
    name: str = ""
    registration_number: Optional[str] = None
    address: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    updated_at: Optional[datetime] = None
