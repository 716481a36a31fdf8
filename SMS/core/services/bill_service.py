"""
Bill Service
Bill generation: current charges plus carried-forward debt, frozen into a
per-period snapshot
"""

from decimal import Decimal
from datetime import date
from typing import List, Dict, Optional

from core.models.entities import (
    Bill, BillStatus, BILL_HEADS, ChargeConfiguration, Flat, Head, OccupancyStatus
)
from core.models.results import BatchGenerationResult, BillStatement
from core.repositories.allocation_repository import AllocationRepository
from core.repositories.bill_repository import BillRepository
from core.repositories.flat_repository import FlatRepository
from core.repositories.sequence_repository import SequenceRepository
from core.services.audit_service import AuditService
from core.services.bill_status import BillStatusMachine
from core.services.configuration_service import ConfigurationService
from core.services.notification_service import NotificationService
from core.services.outstanding_service import OutstandingCalculator, HeadDefaults
from db.record_store import RecordStore
from utils.exceptions import (
    SocietyBillingException, ValidationException, DuplicatePeriodException,
    OutOfOrderGenerationException, MissingConfigurationException, FlatNotFoundException
)
from utils.helpers import LoggingUtils, NumberUtils, PeriodUtils, StringUtils, ZERO
from utils.validators import BillingValidator

TENANT_STATUSES = (OccupancyStatus.TENANT, OccupancyStatus.RENTER)

class BillGenerator:
    """Builds bill snapshots; does not touch the store"""

    def __init__(self, calculator: OutstandingCalculator):
        self.calculator = calculator

    @staticmethod
    def parking_charges(flat: Flat, config: ChargeConfiguration) -> Decimal:
        return (config.four_wheeler_rate * flat.parking.four_wheeler
                + config.three_wheeler_rate * flat.parking.three_wheeler
                + config.two_wheeler_rate * flat.parking.two_wheeler)

    def base_charges(self, flat: Flat, config: ChargeConfiguration) -> Dict[Head, Decimal]:
        """Current-month charges for a flat under the given rate table"""
        occupancy = config.occupancy_charges if flat.status in TENANT_STATUSES else ZERO
        non_occupancy = config.non_occupancy_charges if flat.status == OccupancyStatus.VACANT else ZERO

        charges = {
            Head.MAINTENANCE: config.maintenance_charges,
            Head.SINKING_FUND: config.sinking_fund,
            Head.PARKING: self.parking_charges(flat, config),
            Head.FESTIVAL: config.festival_charges,
            Head.BUILDING_MAINTENANCE: config.building_maintenance,
            Head.OCCUPANCY: occupancy,
            Head.NON_OCCUPANCY: non_occupancy,
            Head.NOC: config.noc_charges,
        }
        return {head: NumberUtils.round_currency(charges[head]) for head in BILL_HEADS}

    def build_bill(self, flat: Flat, period: str, config: ChargeConfiguration,
                   bill_number: str, generated_date: date = None) -> Bill:
        base = self.base_charges(flat, config)
        outstanding = self.calculator.compute_outstanding(flat, period)

        total = NumberUtils.round_currency(
            NumberUtils.total(base.values())
            + NumberUtils.total(outstanding.per_head.values())
            + outstanding.legacy
        )

        bill = Bill(
            bill_id=BillRepository.make_bill_id(flat.flat_number, period),
            bill_number=bill_number,
            flat_number=flat.flat_number,
            period=period,
            base_charges=base,
            outstanding_breakdown=outstanding.per_head,
            legacy_outstanding=outstanding.legacy,
            total_amount=total,
            status=BillStatus.PENDING,
            generated_date=generated_date or date.today(),
            due_date=PeriodUtils.due_date(period, config.due_day),
        )
        # Nothing is paid on a fresh bill; a zero bill is settled already
        return BillStatusMachine.apply(bill, ZERO)

class BillService:
    """Service class for bill generation and bill read models"""

    def __init__(self, store: RecordStore, head_defaults: Optional[HeadDefaults] = None,
                 notifications: NotificationService = None):
        self.store = store
        self.head_defaults = head_defaults
        self.bill_repo = BillRepository(store)
        self.flat_repo = FlatRepository(store)
        self.allocation_repo = AllocationRepository(store)
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

    def _next_bill_number(self, period: str) -> str:
        def seed() -> int:
            existing = self.bill_repo.find_by_period(period)
            return max((StringUtils.sequence_suffix(bill.bill_number) for bill in existing), default=0)

        sequence = self.sequence_repo.next_value('bill', period, seed=seed)
        return StringUtils.format_sequence_number('BILL', period, sequence)

    def _check_ordering(self, flat: Flat, period: str, bills: List[Bill]):
        later = [bill.period for bill in bills if bill.period > period]
        if later:
            raise OutOfOrderGenerationException(
                f"Flat {flat.flat_number} already has a bill for {max(later)}; "
                f"generating {period} now would carry forward an incomplete history",
                flat_number=flat.flat_number, period=period
            )

    def _generate(self, flat: Flat, period: str, config: ChargeConfiguration,
                  regenerate: bool, actor: str) -> Bill:
        """Validate, then write one bill; caller holds the transaction"""
        calculator = self._calculator(flat.flat_number)
        self._check_ordering(flat, period, calculator.bills_for(flat.flat_number))

        bill_number = None
        existing = self.bill_repo.find_for_flat_period(flat.flat_number, period)
        if existing:
            if not regenerate:
                raise DuplicatePeriodException(
                    f"Bill {existing.bill_number} already exists for flat {flat.flat_number} in {period}; "
                    f"confirm regeneration to replace it",
                    flat_number=flat.flat_number, period=period
                )
            if self.allocation_repo.find_by_bill(existing.bill_id):
                raise ValidationException(
                    f"Bill {existing.bill_number} has payments allocated to it; reverse them before regenerating",
                    flat_number=flat.flat_number, period=period
                )
            self.bill_repo.delete(existing.bill_id)
            bill_number = existing.bill_number

        generator = BillGenerator(calculator)
        bill = generator.build_bill(flat, period, config, bill_number or self._next_bill_number(period))
        self.bill_repo.create_bill(bill)
        self.audit.log(actor, 'BILL_REGENERATE' if existing else 'BILL_GENERATE', {
            'bill_id': bill.bill_id, 'bill_number': bill.bill_number, 'total': str(bill.total_amount)
        })
        return bill

    def generate_bill(self, flat_number: str, period: str, regenerate: bool = False,
                      actor: str = 'admin') -> Bill:
        """Generate the bill for one flat and period"""
        try:
            BillingValidator.validate_period(period)
            flat = self.flat_repo.find_flat(flat_number)
            if not flat:
                raise FlatNotFoundException(f"Flat {flat_number} not found", flat_number=flat_number)

            config = self.config_service.find_charge_configuration()
            if config is None:
                raise MissingConfigurationException(
                    "Set up the charge configuration before generating bills",
                    flat_number=flat_number, period=period
                )

            with self.store.transaction():
                bill = self._generate(flat, period, config, regenerate, actor)

            def announce():
                LoggingUtils.log_business_event(
                    "bill_generated", "bill", bill.bill_id, flat_number=flat_number,
                    details={'bill_number': bill.bill_number, 'total': str(bill.total_amount)}
                )
                self.notifications.success(
                    f"Bill {bill.bill_number} generated for flat {flat_number}: "
                    f"{StringUtils.format_currency(bill.total_amount)}",
                    flat_number=flat_number, period=period
                )

            self.store.after_commit(announce)
            return bill

        except SocietyBillingException as e:
            LoggingUtils.log_business_event(
                "bill_generation_failed", "bill", None, flat_number=flat_number,
                details={'error': e.message, **e.context(), 'period': period}
            )
            self.notifications.failure(e)
            raise

    def generate_bills_for_period(self, period: str, actor: str = 'admin') -> BatchGenerationResult:
        """Generate bills for every flat; flats already billed are skipped. All or nothing."""
        try:
            BillingValidator.validate_period(period)
            config = self.config_service.find_charge_configuration()
            if config is None:
                raise MissingConfigurationException("Set up the charge configuration before generating bills",
                                                    period=period)

            result = BatchGenerationResult(period=period)
            with self.store.transaction():
                # One read of bills and ledger for the whole run; a new bill for
                # this period never changes another flat's dues before it
                generator = BillGenerator(self._calculator())
                for flat in self.flat_repo.get_all_flats():
                    bills = generator.calculator.bills_for(flat.flat_number)
                    if any(bill.period == period for bill in bills):
                        result.skipped.append(flat.flat_number)
                        continue
                    self._check_ordering(flat, period, bills)
                    result.generated.append(
                        generator.build_bill(flat, period, config, self._next_bill_number(period))
                    )

                self.bill_repo.create_bills(result.generated)
                if result.generated:
                    self.audit.log(actor, 'BILL_GENERATE', {
                        'period': period, 'bills': [bill.bill_number for bill in result.generated],
                        'total': str(NumberUtils.total(bill.total_amount for bill in result.generated))
                    })

            def announce():
                LoggingUtils.log_business_event(
                    "period_bills_generated", "bill", None,
                    details={'period': period, 'generated': len(result.generated),
                             'skipped': len(result.skipped)}
                )
                self.notifications.success(
                    f"{len(result.generated)} bill(s) generated for {period}, "
                    f"{len(result.skipped)} already existed",
                    period=period
                )

            self.store.after_commit(announce)
            return result

        except SocietyBillingException as e:
            LoggingUtils.log_business_event(
                "period_generation_failed", "bill", None, flat_number=e.flat_number,
                details={'error': e.message, **e.context(), 'period': period}
            )
            self.notifications.failure(e)
            raise

    def delete_bill(self, bill_id: str, actor: str = 'admin') -> bool:
        """Admin removal of a bill nothing has been paid against"""
        bill = self.bill_repo.get_bill(bill_id)
        if self.allocation_repo.find_by_bill(bill_id):
            raise ValidationException(
                f"Bill {bill.bill_number} has payments allocated to it; reverse them first",
                flat_number=bill.flat_number, period=bill.period
            )
        later = [b for b in self.bill_repo.find_by_flat(bill.flat_number) if b.period > bill.period]
        if later:
            raise OutOfOrderGenerationException(
                f"Bill {bill.bill_number} is carried into later bills ({later[0].period}); delete those first",
                flat_number=bill.flat_number, period=bill.period
            )

        with self.store.transaction():
            self.bill_repo.delete(bill_id)
            self.audit.log(actor, 'BILL_DELETE', {'bill_id': bill_id, 'bill_number': bill.bill_number})

        LoggingUtils.log_business_event("bill_deleted", "bill", bill_id, flat_number=bill.flat_number)
        return True

    def get_bills_for_flat(self, flat_number: str) -> List[Bill]:
        return self.bill_repo.find_by_flat(flat_number)

    def get_bills_for_period(self, period: str) -> List[Bill]:
        BillingValidator.validate_period(period)
        return self.bill_repo.find_by_period(period)

    def get_bill_statement(self, bill_id: str) -> BillStatement:
        """Head-wise breakdown of a stored bill for printing"""
        bill = self.bill_repo.get_bill(bill_id)
        flat = self.flat_repo.find_flat(bill.flat_number)
        calculator = self._calculator(bill.flat_number)
        settlement = calculator.bill_settlement(bill, flat) if flat else None

        return BillStatement(
            bill=bill,
            flat=flat,
            society=self.config_service.get_society_info(),
            current_charges=dict(calculator.base_charges_of(bill)),
            carried_forward=dict(bill.outstanding_breakdown),
            legacy_outstanding=bill.legacy_outstanding,
            total_amount=bill.total_amount,
            paid_amount=settlement.paid_amount if settlement else ZERO,
            balance=settlement.balance if settlement else bill.total_amount,
            allocations=self.allocation_repo.find_by_bill(bill_id),
        )

    def backfill_base_charges(self, defaults: HeadDefaults, actor: str = 'admin') -> List[Bill]:
        """
        One-off migration for bills generated before head tracking: write the
        given per-head amounts into bills that have none. Bills that already
        carry base charges are left alone.
        """
        if set(defaults) - set(BILL_HEADS):
            raise ValidationException("Defaults may only name bill heads")
        for head, amount in defaults.items():
            BillingValidator.validate_amount(amount, allow_zero=True, field_name=f"{head.value} default")

        filled = []
        with self.store.transaction():
            for bill in self.bill_repo.get_all_bills():
                if bill.has_head_breakdown:
                    continue
                own_total = (bill.total_amount - NumberUtils.total(bill.outstanding_breakdown.values())
                             - bill.legacy_outstanding)
                defaults_total = NumberUtils.total(defaults.values())
                if defaults_total != own_total:
                    raise ValidationException(
                        f"Defaults total {StringUtils.format_currency(defaults_total)} but bill "
                        f"{bill.bill_number} charged {StringUtils.format_currency(own_total)} for the month",
                        flat_number=bill.flat_number, period=bill.period
                    )
                migrated = Bill(
                    bill_id=bill.bill_id,
                    bill_number=bill.bill_number,
                    flat_number=bill.flat_number,
                    period=bill.period,
                    base_charges={head: defaults.get(head, ZERO) for head in BILL_HEADS},
                    outstanding_breakdown=bill.outstanding_breakdown,
                    legacy_outstanding=bill.legacy_outstanding,
                    total_amount=bill.total_amount,
                    status=bill.status,
                    generated_date=bill.generated_date,
                    due_date=bill.due_date,
                )
                self.bill_repo.replace_bill(migrated)
                filled.append(migrated)
            if filled:
                self.audit.log(actor, 'BILL_BACKFILL', {'bills': [bill.bill_id for bill in filled]})

        LoggingUtils.log_business_event("bills_backfilled", "bill", None, details={'count': len(filled)})
        return filled
