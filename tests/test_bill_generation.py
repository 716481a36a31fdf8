"""Bill generation: charges, carry forward, numbering, ordering and errors."""

from datetime import date
from decimal import Decimal

import pytest

from core.models.entities import Bill, BillStatus, Head, OccupancyStatus, ParkingSlots
from core.models.results import Outcome
from core.repositories.bill_repository import BillRepository
from core.services.outstanding_service import OutstandingService
from utils.exceptions import (
    DuplicatePeriodException, MissingConfigurationException, MissingHeadBreakdownException,
    OutOfOrderGenerationException, ValidationException
)


def D(value) -> Decimal:
    return Decimal(str(value))


# ===================================================================
# Current charges
# ===================================================================

class TestCurrentCharges:

    @pytest.mark.parametrize("status,occupancy,non_occupancy,total", [
        (OccupancyStatus.OWNER, "0", "0", "500"),
        (OccupancyStatus.TENANT, "200", "0", "700"),
        (OccupancyStatus.RENTER, "200", "0", "700"),
        (OccupancyStatus.VACANT, "0", "100", "600"),
    ])
    def test_tenancy_heads(self, configure, add_flat, bill_service, status, occupancy, non_occupancy, total):
        configure(maintenance_charges=500, occupancy_charges=200, non_occupancy_charges=100)
        add_flat("101", status=status)

        bill = bill_service.generate_bill("101", "2025-01")

        assert bill.base_charges[Head.OCCUPANCY] == D(occupancy)
        assert bill.base_charges[Head.NON_OCCUPANCY] == D(non_occupancy)
        assert bill.total_amount == D(total)

    def test_parking_rates(self, configure, add_flat, bill_service):
        configure(maintenance_charges=500)
        add_flat("101", parking=ParkingSlots(four_wheeler=1, three_wheeler=1, two_wheeler=2))

        bill = bill_service.generate_bill("101", "2025-01")

        assert bill.base_charges[Head.PARKING] == D(300)
        assert bill.total_amount == D(800)

    def test_every_head_present(self, configure, add_flat, bill_service):
        configure(maintenance_charges=400, sinking_fund=100, festival_charges=50,
                  building_maintenance=75, noc_charges=25)
        add_flat("101")

        bill = bill_service.generate_bill("101", "2025-01")

        assert set(bill.base_charges) == set(Head) - {Head.LEGACY}
        assert bill.base_charges[Head.BUILDING_MAINTENANCE] == D(75)
        assert bill.total_amount == D(650)

    def test_first_bill_has_nothing_carried(self, configure, add_flat, bill_service):
        configure(maintenance_charges=460)
        add_flat("101")

        bill = bill_service.generate_bill("101", "2025-01")

        assert dict(bill.outstanding_breakdown) == {}
        assert bill.legacy_outstanding == D(0)
        assert bill.status == BillStatus.PENDING
        assert bill.generated_date == date.today()


# ===================================================================
# Carry forward
# ===================================================================

class TestCarryForward:

    def test_unpaid_heads_carry_into_next_bill(self, configure, add_flat, bill_service):
        configure(maintenance_charges=460)
        add_flat("101")
        bill_service.generate_bill("101", "2025-01")

        feb = bill_service.generate_bill("101", "2025-02")

        assert dict(feb.outstanding_breakdown) == {Head.MAINTENANCE: D(460)}
        assert feb.total_amount == D(920)

    def test_carry_accumulates_per_head(self, configure, add_flat, bill_service):
        configure(maintenance_charges=400, sinking_fund=100)
        add_flat("101", parking=ParkingSlots(two_wheeler=1))
        for period in ("2025-01", "2025-02"):
            bill_service.generate_bill("101", period)

        mar = bill_service.generate_bill("101", "2025-03")

        assert dict(mar.outstanding_breakdown) == {
            Head.MAINTENANCE: D(800), Head.SINKING_FUND: D(200), Head.PARKING: D(100)
        }
        assert mar.total_amount == D(1650)

    def test_legacy_dues_on_every_bill_until_paid(self, configure, add_flat, bill_service):
        configure(maintenance_charges=460)
        add_flat("101", legacy="1000")

        jan = bill_service.generate_bill("101", "2025-01")
        feb = bill_service.generate_bill("101", "2025-02")

        assert jan.legacy_outstanding == D(1000)
        assert jan.total_amount == D(1460)
        assert feb.legacy_outstanding == D(1000)
        assert feb.total_amount == D(1920)

    def test_skipped_month_still_carries(self, configure, add_flat, bill_service):
        configure(maintenance_charges=460)
        add_flat("101")
        bill_service.generate_bill("101", "2025-01")

        apr = bill_service.generate_bill("101", "2025-04")

        assert dict(apr.outstanding_breakdown) == {Head.MAINTENANCE: D(460)}

    def test_rate_change_only_affects_new_bills(self, configure, add_flat, bill_service, get_bill):
        configure(maintenance_charges=460)
        add_flat("101")
        bill_service.generate_bill("101", "2025-01")
        configure(maintenance_charges=500)

        feb = bill_service.generate_bill("101", "2025-02")

        assert get_bill("101", "2025-01").total_amount == D(460)
        assert feb.base_charges[Head.MAINTENANCE] == D(500)
        assert feb.total_amount == D(960)


# ===================================================================
# Numbering and dates
# ===================================================================

class TestNumbering:

    def test_bill_numbers_per_period(self, configure, add_flat, bill_service):
        configure(maintenance_charges=100)
        add_flat("101")
        add_flat("102")

        first = bill_service.generate_bill("101", "2025-01")
        second = bill_service.generate_bill("102", "2025-01")
        next_month = bill_service.generate_bill("101", "2025-02")

        assert first.bill_number == "BILL-2025-01-001"
        assert second.bill_number == "BILL-2025-01-002"
        assert next_month.bill_number == "BILL-2025-02-001"
        assert first.bill_id == "bill_101_2025-01"

    def test_due_date(self, configure, add_flat, bill_service):
        configure(maintenance_charges=100, due_day=10)
        add_flat("101")

        assert bill_service.generate_bill("101", "2025-01").due_date == date(2025, 1, 10)

    def test_due_day_past_month_end_rolls_over(self, configure, add_flat, bill_service):
        configure(maintenance_charges=100, due_day=31)
        add_flat("101")

        assert bill_service.generate_bill("101", "2025-02").due_date == date(2025, 3, 3)

    def test_zero_bill_is_settled(self, configure, add_flat, bill_service):
        configure()
        add_flat("101")

        bill = bill_service.generate_bill("101", "2025-01")

        assert bill.total_amount == D(0)
        assert bill.status == BillStatus.PAID


# ===================================================================
# Errors
# ===================================================================

class TestGenerationErrors:

    def test_duplicate_period(self, configure, add_flat, bill_service, notifications):
        configure(maintenance_charges=100)
        add_flat("101")
        bill_service.generate_bill("101", "2025-01")

        with pytest.raises(DuplicatePeriodException) as exc:
            bill_service.generate_bill("101", "2025-01")

        assert exc.value.flat_number == "101"
        assert exc.value.period == "2025-01"
        assert notifications.latest().outcome == Outcome.DUPLICATE_PERIOD

    def test_regenerate_keeps_number_and_uses_new_rates(self, configure, add_flat, bill_service):
        configure(maintenance_charges=100)
        add_flat("101")
        original = bill_service.generate_bill("101", "2025-01")
        configure(maintenance_charges=150)

        replaced = bill_service.generate_bill("101", "2025-01", regenerate=True)

        assert replaced.bill_number == original.bill_number
        assert replaced.total_amount == D(150)
        assert len(bill_service.get_bills_for_flat("101")) == 1

    def test_regenerate_refused_once_paid_against(self, configure, add_flat, bill_service, payment_service):
        configure(maintenance_charges=100)
        add_flat("101")
        bill_service.generate_bill("101", "2025-01")
        payment_service.record_payment("101", D(50), date(2025, 1, 5), period="2025-01")

        with pytest.raises(ValidationException):
            bill_service.generate_bill("101", "2025-01", regenerate=True)

    def test_regenerate_refused_when_paid_through_carry(self, configure, add_flat, bill_service,
                                                       payment_service):
        configure(maintenance_charges=460)
        add_flat("101")
        bill_service.generate_bill("101", "2025-01")
        bill_service.generate_bill("101", "2025-02")
        # Matched to February, the money settles the January charge carried on it
        outcome = payment_service.record_payment("101", D(460), date(2025, 2, 5), period="2025-02")
        assert {a.bill_id for a in outcome.allocations} == {"bill_101_2025-01"}

        with pytest.raises(ValidationException):
            bill_service.generate_bill("101", "2025-02", regenerate=True)

    def test_earlier_period_after_later_is_rejected(self, configure, add_flat, bill_service, notifications):
        configure(maintenance_charges=100)
        add_flat("101")
        bill_service.generate_bill("101", "2025-02")

        with pytest.raises(OutOfOrderGenerationException):
            bill_service.generate_bill("101", "2025-01")

        assert notifications.latest().outcome == Outcome.ORDERING_VIOLATION
        assert [b.period for b in bill_service.get_bills_for_flat("101")] == ["2025-02"]

    def test_missing_configuration(self, add_flat, bill_service, notifications):
        add_flat("101")

        with pytest.raises(MissingConfigurationException):
            bill_service.generate_bill("101", "2025-01")

        assert bill_service.get_bills_for_flat("101") == []
        assert notifications.latest().outcome == Outcome.MISSING_CONFIGURATION

    def test_invalid_period(self, configure, add_flat, bill_service):
        configure(maintenance_charges=100)
        add_flat("101")

        with pytest.raises(ValidationException):
            bill_service.generate_bill("101", "2025-1")

    def test_failure_leaves_no_sequence_gap(self, configure, add_flat, bill_service):
        configure(maintenance_charges=100)
        add_flat("101")
        add_flat("102")
        bill_service.generate_bill("101", "2025-02")
        with pytest.raises(OutOfOrderGenerationException):
            bill_service.generate_bill("101", "2025-01")

        assert bill_service.generate_bill("102", "2025-01").bill_number == "BILL-2025-01-001"


# ===================================================================
# Period batch
# ===================================================================

class TestPeriodBatch:

    def test_generates_all_and_skips_existing(self, configure, add_flat, bill_service):
        configure(maintenance_charges=100)
        for flat_number in ("101", "102", "103"):
            add_flat(flat_number)
        bill_service.generate_bill("102", "2025-01")

        result = bill_service.generate_bills_for_period("2025-01")

        assert sorted(b.flat_number for b in result.generated) == ["101", "103"]
        assert result.skipped == ["102"]
        assert len(bill_service.get_bills_for_period("2025-01")) == 3

    def test_batch_is_all_or_nothing(self, configure, add_flat, bill_service):
        configure(maintenance_charges=100)
        add_flat("101")
        add_flat("102")
        bill_service.generate_bill("102", "2025-02")

        with pytest.raises(OutOfOrderGenerationException):
            bill_service.generate_bills_for_period("2025-01")

        assert bill_service.get_bills_for_period("2025-01") == []

    @pytest.mark.parametrize("flat_count", [2, 6])
    def test_store_reads_do_not_grow_with_flats(self, configure, add_flat, bill_service, store, monkeypatch,
                                                 flat_count):
        configure(maintenance_charges=100)
        for number in range(flat_count):
            add_flat(f"1{number:02d}")
        bill_service.generate_bills_for_period("2025-01")

        reads = []
        original_get = store.get

        def counting_get(collection):
            reads.append(collection)
            return original_get(collection)

        monkeypatch.setattr(store, "get", counting_get)
        result = bill_service.generate_bills_for_period("2025-02")

        assert len(result.generated) == flat_count
        # Independent of how many flats (and bills) the society has
        assert reads.count("bills") <= 3
        assert reads.count("allocations") == 1


# ===================================================================
# Bills without head-wise charges
# ===================================================================

class TestPreHeadBills:

    @pytest.fixture
    def old_bill(self, configure, add_flat, store):
        configure(maintenance_charges=460)
        add_flat("101")
        bill = Bill(
            bill_id=BillRepository.make_bill_id("101", "2024-12"),
            bill_number="BILL-2024-12-001",
            flat_number="101",
            period="2024-12",
            base_charges=None,
            outstanding_breakdown={},
            legacy_outstanding=D(0),
            total_amount=D(460),
        )
        BillRepository(store).create_bill(bill)
        return bill

    def test_carry_forward_refuses_to_guess(self, old_bill, bill_service):
        with pytest.raises(MissingHeadBreakdownException) as exc:
            bill_service.generate_bill("101", "2025-01")
        assert exc.value.period == "2024-12"

    def test_explicit_defaults(self, old_bill, store, flat_service):
        service = OutstandingService(store, head_defaults={Head.MAINTENANCE: D(460)})
        result = service.compute_outstanding(flat_service.get_flat("101"), "2025-01")
        assert result.per_head == {Head.MAINTENANCE: D(460)}
        assert result.total == D(460)

    def test_backfill_then_generate(self, old_bill, bill_service):
        filled = bill_service.backfill_base_charges({Head.MAINTENANCE: D(460)})

        assert [b.bill_id for b in filled] == [old_bill.bill_id]
        jan = bill_service.generate_bill("101", "2025-01")
        assert dict(jan.outstanding_breakdown) == {Head.MAINTENANCE: D(460)}
        assert jan.total_amount == D(920)

    def test_backfill_must_match_bill_total(self, old_bill, bill_service):
        with pytest.raises(ValidationException):
            bill_service.backfill_base_charges({Head.MAINTENANCE: D(400)})
        assert not bill_service.bill_repo.get_bill(old_bill.bill_id).has_head_breakdown


# ===================================================================
# Statement and deletion
# ===================================================================

class TestStatement:

    def test_statement_breakdown(self, configure, add_flat, bill_service):
        configure(maintenance_charges=460)
        add_flat("101", legacy="100")
        bill_service.generate_bill("101", "2025-01")
        feb = bill_service.generate_bill("101", "2025-02")

        statement = bill_service.get_bill_statement(feb.bill_id)

        assert statement.current_charges[Head.MAINTENANCE] == D(460)
        assert statement.carried_forward == {Head.MAINTENANCE: D(460)}
        assert statement.legacy_outstanding == D(100)
        assert statement.total_amount == D(1020)
        assert statement.paid_amount == D(0)
        assert statement.balance == D(1020)
        assert statement.flat.flat_number == "101"

    def test_delete_latest_unpaid_bill(self, configure, add_flat, bill_service):
        configure(maintenance_charges=100)
        add_flat("101")
        jan = bill_service.generate_bill("101", "2025-01")
        feb = bill_service.generate_bill("101", "2025-02")

        with pytest.raises(OutOfOrderGenerationException):
            bill_service.delete_bill(jan.bill_id)
        assert bill_service.delete_bill(feb.bill_id)
        assert [b.period for b in bill_service.get_bills_for_flat("101")] == ["2025-01"]
