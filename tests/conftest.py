"""Shared fixtures: an in-memory record store and the billing services over it."""

from decimal import Decimal

import pytest

from core.models.entities import ChargeConfiguration, OccupancyStatus, ParkingSlots
from core.services.bill_service import BillService
from core.services.configuration_service import ConfigurationService
from core.services.flat_service import FlatService
from core.services.notification_service import NotificationService
from core.services.outstanding_service import OutstandingService
from core.services.payment_service import AllocatorSettings, PaymentService
from core.services.report_service import ReportService
from db.record_store import InMemoryRecordStore


def D(value) -> Decimal:
    return Decimal(str(value))


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def notifications():
    return NotificationService()


@pytest.fixture
def config_service(store):
    return ConfigurationService(store)


@pytest.fixture
def flat_service(store):
    return FlatService(store)


@pytest.fixture
def bill_service(store, notifications):
    return BillService(store, notifications=notifications)


@pytest.fixture
def settings():
    return AllocatorSettings()


@pytest.fixture
def payment_service(store, notifications, settings):
    return PaymentService(store, settings=settings, notifications=notifications)


@pytest.fixture
def outstanding_service(store):
    return OutstandingService(store)


@pytest.fixture
def report_service(store):
    return ReportService(store)


@pytest.fixture
def configure(config_service):
    """Save a rate table; rates not named are zero (parking rates keep their defaults)"""
    def _configure(due_day: int = 10, **rates) -> ChargeConfiguration:
        config = ChargeConfiguration(**{name: D(value) for name, value in rates.items()}, due_day=due_day)
        return config_service.save_charge_configuration(config)
    return _configure


@pytest.fixture
def add_flat(flat_service):
    def _add_flat(flat_number: str = "101", status: OccupancyStatus = OccupancyStatus.OWNER,
                  parking: ParkingSlots = None, legacy="0"):
        return flat_service.register_flat(
            flat_number, f"Owner {flat_number}", status=status, parking=parking, legacy_outstanding=D(legacy)
        )
    return _add_flat


@pytest.fixture
def get_bill(bill_service):
    """Fresh copy of a flat's bill for a period"""
    def _get_bill(flat_number: str, period: str):
        return bill_service.bill_repo.find_for_flat_period(flat_number, period)
    return _get_bill
