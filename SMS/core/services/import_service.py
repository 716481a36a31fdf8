"""
Import Service
Loads a JSON snapshot exported from the old browser-based app into an empty store.

Flats, configuration and bills are stored as they were. Payments are not
trusted to carry allocations, so they are replayed through the payment
allocator in date order; that rebuilds the allocation ledger and derives
every bill status again.
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from core.models.entities import (
    Bill, BillStatus, BILL_HEADS, ChargeConfiguration, Flat, Head, OccupancyStatus,
    ParkingSlots, PaymentMode, SocietyInfo
)
from core.repositories.bill_repository import BillRepository
from core.repositories.flat_repository import FlatRepository
from core.services.audit_service import AuditService
from core.services.configuration_service import ConfigurationService
from core.services.outstanding_service import HeadDefaults
from core.services.payment_service import AllocatorSettings, PaymentService
from db.record_store import RecordStore
from utils.exceptions import ValidationException
from utils.helpers import LoggingUtils, NumberUtils, PeriodUtils, StringUtils
from utils.validators import BillingValidator

# Collection names used by the old app, then ours
SNAPSHOT_KEYS = {
    'society': ('societyInfo', 'society'),
    'configuration': ('billConfiguration', 'configuration'),
    'flats': ('societyFlats', 'flats'),
    'bills': ('societyBills', 'bills'),
    'payments': ('societyPayments', 'payments'),
    'member_outstanding': ('memberOutstanding', 'member_outstanding'),
}

@dataclass
class ImportSummary:
    flats: int = 0
    bills: int = 0
    payments: int = 0
    review_items: int = 0
    warnings: List[str] = field(default_factory=list)

def _pick(data: Dict[str, Any], *names, default=None):
    """First present key among snake_case and camelCase spellings"""
    for name in names:
        if name in data and data[name] is not None:
            return data[name]
    return default

def _to_date(value) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])

def _to_range(value):
    if not value:
        return None
    if isinstance(value, dict):
        return (_pick(value, 'from', 'start'), _pick(value, 'to', 'end'))
    return tuple(value)

class ImportService:
    """One-off migration of an exported snapshot"""

    def __init__(self, store: RecordStore, head_defaults: Optional[HeadDefaults] = None,
                 settings: AllocatorSettings = None):
        self.store = store
        self.flat_repo = FlatRepository(store)
        self.bill_repo = BillRepository(store)
        self.config_service = ConfigurationService(store)
        # Replaying history must never reject an old payment
        self.payment_service = PaymentService(
            store, settings=settings or AllocatorSettings(allow_unmatched=True), head_defaults=head_defaults
        )
        self.audit = AuditService(store)

    def import_json(self, text: str, actor: str = 'admin') -> ImportSummary:
        try:
            snapshot = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationException(f"Snapshot is not valid JSON: {e}")
        return self.import_snapshot(snapshot, actor=actor)

    def import_snapshot(self, snapshot: Dict[str, Any], actor: str = 'admin') -> ImportSummary:
        if not isinstance(snapshot, dict):
            raise ValidationException("Snapshot must be a JSON object")
        if self.flat_repo.count() or self.bill_repo.count():
            raise ValidationException("Snapshots can only be imported into an empty store")

        section = {name: _pick(snapshot, *keys) for name, keys in SNAPSHOT_KEYS.items()}
        summary = ImportSummary()

        with self.store.transaction():
            if section['society']:
                self.config_service.save_society_info(self._society(section['society']), actor=actor)
            if section['configuration']:
                self.config_service.save_charge_configuration(
                    self._configuration(section['configuration']), actor=actor
                )

            opening = {
                str(_pick(row, 'flat_number', 'flatNumber')): NumberUtils.to_decimal(
                    _pick(row, 'amount', 'outstandingAmount', 'outstanding', default='0'))
                for row in section['member_outstanding'] or []
            }
            for row in section['flats'] or []:
                flat = self._flat(row, opening)
                self.flat_repo.create_flat(flat)
                summary.flats += 1

            bills = sorted((self._bill(row) for row in section['bills'] or []),
                           key=lambda bill: (bill.flat_number, bill.period))
            for bill in bills:
                if not self.flat_repo.exists(bill.flat_number):
                    raise ValidationException(f"Bill {bill.bill_number} refers to unknown flat {bill.flat_number}",
                                              flat_number=bill.flat_number, period=bill.period)
                self.bill_repo.create_bill(bill)
                if not bill.has_head_breakdown:
                    summary.warnings.append(f"Bill {bill.bill_number} has no head-wise charges")
                summary.bills += 1

            payments = sorted(section['payments'] or [],
                              key=lambda row: (_to_date(_pick(row, 'date', 'paymentDate')) or date.min,
                                               str(_pick(row, 'receipt_number', 'receiptNumber', default=''))))
            for row in payments:
                outcome = self._replay_payment(row, actor)
                summary.payments += 1
                if outcome.review_item:
                    summary.review_items += 1

            # Bills nothing was paid against still need a derived status (zero bills are paid)
            for flat in self.flat_repo.get_all_flats():
                self.payment_service.refresh_statuses(flat)

            self.audit.log(actor, 'SNAPSHOT_IMPORT', {
                'flats': summary.flats, 'bills': summary.bills, 'payments': summary.payments
            })

        LoggingUtils.log_business_event(
            "snapshot_imported", "snapshot", None,
            details={'flats': summary.flats, 'bills': summary.bills, 'payments': summary.payments,
                     'review_items': summary.review_items}
        )
        return summary

    def _society(self, data: Dict[str, Any]) -> SocietyInfo:
        return SocietyInfo(
            name=_pick(data, 'name', 'societyName', default=''),
            registration_number=_pick(data, 'registration_number', 'registrationNumber'),
            address=_pick(data, 'address'),
            contact_email=_pick(data, 'contact_email', 'email'),
            contact_phone=_pick(data, 'contact_phone', 'phone'),
        )

    def _configuration(self, data: Dict[str, Any]) -> ChargeConfiguration:
        money = NumberUtils.to_decimal
        return ChargeConfiguration(
            maintenance_charges=money(_pick(data, 'maintenance_charges', 'maintenanceCharges', default='0')),
            sinking_fund=money(_pick(data, 'sinking_fund', 'sinkingFund', default='0')),
            festival_charges=money(_pick(data, 'festival_charges', 'festivalCharges', default='0')),
            building_maintenance=money(_pick(data, 'building_maintenance', 'buildingMaintenance', default='0')),
            occupancy_charges=money(_pick(data, 'occupancy_charges', 'occupancyCharges', default='0')),
            non_occupancy_charges=money(_pick(data, 'non_occupancy_charges', 'nonOccupancyCharges', default='0')),
            noc_charges=money(_pick(data, 'noc_charges', 'nocCharges', default='0')),
            four_wheeler_rate=money(_pick(data, 'four_wheeler_rate', 'fourWheelerRate', default='100')),
            three_wheeler_rate=money(_pick(data, 'three_wheeler_rate', 'threeWheelerRate', default='100')),
            two_wheeler_rate=money(_pick(data, 'two_wheeler_rate', 'twoWheelerRate', default='50')),
            interest_rate=money(_pick(data, 'interest_rate', 'interestRate', default='0')),
            due_day=int(_pick(data, 'due_day', 'dueDate', 'dueDay', default=10)),
        )

    def _flat(self, data: Dict[str, Any], opening: Dict[str, Any]) -> Flat:
        flat_number = StringUtils.clean_string(str(_pick(data, 'flat_number', 'flatNumber', default='')))
        BillingValidator.validate_flat_number(flat_number)
        parking = _pick(data, 'parking', default={})
        legacy = opening.get(flat_number, NumberUtils.to_decimal(
            _pick(data, 'legacy_outstanding', 'previousOutstanding', default='0')))
        BillingValidator.validate_amount(legacy, allow_zero=True, field_name="Legacy outstanding")

        return Flat(
            flat_number=flat_number,
            owner_name=StringUtils.clean_string(_pick(data, 'owner_name', 'ownerName', default='')),
            mobile=_pick(data, 'mobile', 'mobileNumber'),
            status=OccupancyStatus(str(_pick(data, 'status', 'occupancyStatus', default='owner')).lower()),
            parking=ParkingSlots(
                four_wheeler=int(_pick(parking, 'four_wheeler', 'fourWheeler', default=0)),
                three_wheeler=int(_pick(parking, 'three_wheeler', 'threeWheeler', default=0)),
                two_wheeler=int(_pick(parking, 'two_wheeler', 'twoWheeler', default=0)),
            ),
            legacy_outstanding=NumberUtils.round_currency(legacy),
            created_at=datetime.now(),
        )

    @staticmethod
    def _amounts(data: Optional[Dict[str, Any]]) -> Optional[Dict[Head, Any]]:
        if data is None:
            return None
        amounts = {}
        for label, value in data.items():
            head = Head.from_label(label)
            if head not in BILL_HEADS:
                raise ValidationException(f"'{label}' is not a bill charge head", head=str(label))
            amounts[head] = amounts.get(head, NumberUtils.to_decimal(0)) + NumberUtils.to_decimal(value)
        return amounts

    def _bill(self, data: Dict[str, Any]) -> Bill:
        flat_number = str(_pick(data, 'flat_number', 'flatNumber', default=''))
        period = _pick(data, 'period', 'billPeriod', default='')
        BillingValidator.validate_period(period)
        base = self._amounts(_pick(data, 'base_charges', 'baseCharges'))
        carried = self._amounts(_pick(data, 'outstanding_breakdown', 'outstandingBreakdown', default={}))
        legacy = NumberUtils.to_decimal(_pick(data, 'legacy_outstanding', 'legacyOutstanding', default='0'))
        total = NumberUtils.to_decimal(_pick(data, 'total_amount', 'totalAmount', default='0'))

        if base is not None:
            expected = NumberUtils.round_currency(
                NumberUtils.total(base.values()) + NumberUtils.total(carried.values()) + legacy)
            if expected != NumberUtils.round_currency(total):
                raise ValidationException(
                    f"Bill for flat {flat_number} ({period}) totals {StringUtils.format_currency(total)} "
                    f"but its heads add up to {StringUtils.format_currency(expected)}",
                    flat_number=flat_number, period=period
                )

        return Bill(
            bill_id=BillRepository.make_bill_id(flat_number, period),
            bill_number=_pick(data, 'bill_number', 'billNumber', default=f"BILL-{period}-IMP"),
            flat_number=flat_number,
            period=period,
            base_charges=base,
            outstanding_breakdown=carried,
            legacy_outstanding=NumberUtils.round_currency(legacy),
            total_amount=NumberUtils.round_currency(total),
            status=BillStatus.PENDING,
            generated_date=_to_date(_pick(data, 'generated_date', 'generatedDate')),
            due_date=_to_date(_pick(data, 'due_date', 'dueDate')),
        )

    def _replay_payment(self, data: Dict[str, Any], actor: str):
        payment_date = _to_date(_pick(data, 'date', 'paymentDate'))
        if payment_date is None:
            raise ValidationException("Imported payment has no date",
                                      flat_number=_pick(data, 'flat_number', 'flatNumber'))
        mode = str(_pick(data, 'mode', 'paymentMode', default='cash')).lower().replace(' ', '_')
        if mode not in {m.value for m in PaymentMode}:
            raise ValidationException(f"Unknown payment mode '{mode}'",
                                      flat_number=_pick(data, 'flat_number', 'flatNumber'))
        breakdown = _pick(data, 'head_breakdown', 'headBreakdown', default=None)
        if isinstance(breakdown, dict):
            breakdown = list(breakdown.items())

        return self.payment_service.record_payment(
            str(_pick(data, 'flat_number', 'flatNumber', default='')),
            NumberUtils.to_decimal(_pick(data, 'amount')),
            payment_date,
            mode=PaymentMode(mode),
            head_breakdown=breakdown,
            period=_pick(data, 'period'),
            maintenance_period=_to_range(_pick(data, 'maintenance_period', 'maintenancePeriod')),
            parking_period=_to_range(_pick(data, 'parking_period', 'parkingPeriod')),
            reference=_pick(data, 'reference', 'referenceNumber'),
            notes=_pick(data, 'notes'),
            actor=actor,
            receipt_number=_pick(data, 'receipt_number', 'receiptNumber'),
        )
