"""Entities, head labels, period helpers, validators and display formatters."""

from dataclasses import FrozenInstanceError
from datetime import date
from decimal import Decimal

import pytest

from core.models.entities import Bill, BillStatus, Head, HeadAmount, PeriodRange
from core.services.bill_status import BillStatusMachine
from utils.exceptions import HeadBreakdownMismatchException, ValidationException
from utils.formatters import (
    amounts_table, breakdown_entries, format_currency, format_date, format_period, head_label, status_badge,
    to_decimal
)
from utils.helpers import PeriodUtils, StringUtils
from utils.validators import BillingValidator


def D(value) -> Decimal:
    return Decimal(str(value))


def make_bill(**overrides) -> Bill:
    values = dict(
        bill_id="bill_101_2025-01",
        bill_number="BILL-2025-01-001",
        flat_number="101",
        period="2025-01",
        base_charges={Head.MAINTENANCE: D(500)},
        outstanding_breakdown={},
        legacy_outstanding=D(0),
        total_amount=D(500),
    )
    values.update(overrides)
    return Bill(**values)


# ===================================================================
# Head labels
# ===================================================================

class TestHeadLabels:

    @pytest.mark.parametrize("label,head", [
        ("Maintenance", Head.MAINTENANCE),
        ("maintenance charges", Head.MAINTENANCE),
        ("Sinking Fund", Head.SINKING_FUND),
        ("Parking", Head.PARKING),
        ("Festival Charges", Head.FESTIVAL),
        ("NOC", Head.NOC),
        ("Non Occupancy Charges", Head.NON_OCCUPANCY),
        ("non_occupancy", Head.NON_OCCUPANCY),
        ("Occupancy", Head.OCCUPANCY),
        ("Previous Outstanding", Head.LEGACY),
    ])
    def test_known_labels(self, label, head):
        assert Head.from_label(label) == head

    def test_building_beats_maintenance(self):
        assert Head.from_label("Building Maintenance") == Head.BUILDING_MAINTENANCE
        assert Head.from_label("Bldg maintenance fund") == Head.BUILDING_MAINTENANCE
        assert Head.from_label("building repairs") == Head.BUILDING_MAINTENANCE
        assert Head.from_label("Monthly maintenance") == Head.MAINTENANCE

    def test_head_passes_through(self):
        assert Head.from_label(Head.PARKING) is Head.PARKING

    def test_unknown_label_rejected(self):
        with pytest.raises(ValidationException) as exc:
            Head.from_label("water tanker")
        assert exc.value.head == "water tanker"

    def test_blank_label_rejected(self):
        with pytest.raises(ValidationException):
            Head.from_label("  ")


# ===================================================================
# Bill snapshot
# ===================================================================

class TestBillSnapshot:

    def test_monetary_fields_are_read_only(self):
        bill = make_bill()
        with pytest.raises(FrozenInstanceError):
            bill.total_amount = D(1)
        with pytest.raises(TypeError):
            bill.base_charges[Head.MAINTENANCE] = D(1)

    def test_caller_dict_changes_do_not_leak_in(self):
        charges = {Head.MAINTENANCE: D(500)}
        bill = make_bill(base_charges=charges)
        charges[Head.MAINTENANCE] = D(1)
        assert bill.base_charges[Head.MAINTENANCE] == D(500)

    def test_with_status_copies(self):
        bill = make_bill()
        paid = bill.with_status(BillStatus.PAID)
        assert paid.status == BillStatus.PAID
        assert bill.status == BillStatus.PENDING
        assert paid.total_amount == bill.total_amount

    def test_bill_without_heads(self):
        assert not make_bill(base_charges=None).has_head_breakdown


# ===================================================================
# Status machine
# ===================================================================

class TestBillStatusMachine:

    @pytest.mark.parametrize("total,paid,status", [
        ("500", "0", BillStatus.PENDING),
        ("500", "0.01", BillStatus.PARTIAL),
        ("500", "499.99", BillStatus.PARTIAL),
        ("500", "500", BillStatus.PAID),
        ("500", "600", BillStatus.PAID),
        ("0", "0", BillStatus.PAID),
    ])
    def test_transition(self, total, paid, status):
        assert BillStatusMachine.transition(D(total), D(paid)) == status

    def test_apply_returns_same_bill_when_unchanged(self):
        bill = make_bill()
        assert BillStatusMachine.apply(bill, D(0)) is bill

    def test_apply_moves_back_to_pending(self):
        bill = make_bill(status=BillStatus.PAID)
        assert BillStatusMachine.apply(bill, D(0)).status == BillStatus.PENDING


# ===================================================================
# Periods and numbering
# ===================================================================

class TestPeriodUtils:

    def test_add_months_across_year(self):
        assert PeriodUtils.add_months("2024-12", 1) == "2025-01"
        assert PeriodUtils.add_months("2025-01", -1) == "2024-12"

    def test_due_date(self):
        assert PeriodUtils.due_date("2025-01", 10) == date(2025, 1, 10)

    def test_due_date_rolls_into_next_month(self):
        assert PeriodUtils.due_date("2025-02", 31) == date(2025, 3, 3)

    def test_invalid_period(self):
        assert not PeriodUtils.is_valid("2025-13")
        assert not PeriodUtils.is_valid("25-01")
        with pytest.raises(ValueError):
            PeriodUtils.first_day("January")

    def test_sequence_numbers(self):
        assert StringUtils.format_sequence_number("BILL", "2025-01", 7) == "BILL-2025-01-007"
        assert StringUtils.sequence_suffix("RCPT-2025-01-012") == 12
        assert StringUtils.sequence_suffix("legacy") == 0

    def test_period_range(self):
        quarter = PeriodRange("2025-01", "2025-03")
        assert quarter.contains("2025-02")
        assert not quarter.contains("2025-04")


# ===================================================================
# Validators
# ===================================================================

class TestValidators:

    def test_amount_must_be_decimal(self):
        with pytest.raises(ValidationException):
            BillingValidator.validate_amount(100)

    def test_amount_precision(self):
        with pytest.raises(ValidationException):
            BillingValidator.validate_amount(D("10.001"))

    def test_zero_amount(self):
        with pytest.raises(ValidationException):
            BillingValidator.validate_amount(D(0))
        assert BillingValidator.validate_amount(D(0), allow_zero=True)

    def test_period_range_order(self):
        with pytest.raises(ValidationException):
            BillingValidator.validate_period_range("2025-03", "2025-01")

    def test_flat_number(self):
        assert BillingValidator.validate_flat_number("A-101")
        with pytest.raises(ValidationException):
            BillingValidator.validate_flat_number("A 101")

    @pytest.mark.parametrize("name", ["Meera Iyer", "A. Rao & S. Rao", "M/s Shah Traders", "D'Souza"])
    def test_owner_names(self, name):
        assert BillingValidator.validate_name(name, "Owner name")

    def test_owner_name_rejects_markup(self):
        with pytest.raises(ValidationException):
            BillingValidator.validate_name("<b>Rao</b>")

    def test_head_breakdown_mismatch_names_the_difference(self):
        entries = [HeadAmount(Head.MAINTENANCE, D(300)), HeadAmount(Head.PARKING, D(100))]
        with pytest.raises(HeadBreakdownMismatchException) as exc:
            BillingValidator.validate_head_breakdown(D(500), entries, flat_number="101")
        assert "₹400.00" in exc.value.message
        assert "₹500.00" in exc.value.message
        assert "₹100.00" in exc.value.message
        assert exc.value.flat_number == "101"

    def test_head_breakdown_matching(self):
        entries = [HeadAmount(Head.MAINTENANCE, D(400)), HeadAmount(Head.PARKING, D(100))]
        assert BillingValidator.validate_head_breakdown(D(500), entries)


# ===================================================================
# Display formatters
# ===================================================================

class TestFormatters:

    def test_currency(self):
        assert format_currency(D("123456.5")) == "₹123,456.50"
        assert format_currency("40") == "₹40.00"
        assert format_currency("n/a") == "₹n/a"

    def test_period_and_date(self):
        assert format_period("2025-01") == "Jan 2025"
        assert format_period(None) == "None"
        assert format_date(date(2025, 3, 3)) == "03 Mar 2025"
        assert format_date(None) == "N/A"

    @pytest.mark.parametrize("head", list(Head))
    def test_head_labels_read_back(self, head):
        assert Head.from_label(head_label(head)) == head

    def test_amounts_table_drops_zero_heads(self):
        rows = amounts_table({Head.MAINTENANCE: D(400), Head.PARKING: D(0)})
        assert rows == [{"Head": "Maintenance", "Amount": "₹400.00"}]

    def test_breakdown_rows_skip_blank_and_zero(self):
        rows = [
            {"Head": "Maintenance", "Amount": 0.0},
            {"Head": "Parking", "Amount": 150.0},
            {"Head": None, "Amount": 40.0},
            {"Head": "Sinking Fund", "Amount": float("nan")},
            {"Head": "Festival", "Amount": None},
        ]
        assert breakdown_entries(rows) == [("Parking", D("150.00"))]

    def test_number_input_to_decimal(self):
        assert to_decimal(460.1) == D("460.10")
        assert status_badge("voided") == "Reversed"
