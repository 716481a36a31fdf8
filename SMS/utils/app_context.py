"""
Shared state for Streamlit pages.
One record store and one notification service per server process; the
operator name from the sidebar is used as the audit actor.
"""

import streamlit as st

from core.models.results import BillingEvent, Outcome
from core.services.bill_service import BillService
from core.services.configuration_service import ConfigurationService
from core.services.flat_service import FlatService
from core.services.import_service import ImportService
from core.services.notification_service import NotificationService
from core.services.payment_service import AllocatorSettings, PaymentService
from core.services.report_service import ReportService
from db.record_store import RecordStore, create_record_store
from utils.exceptions import SocietyBillingException


@st.cache_resource
def get_store() -> RecordStore:
    return create_record_store()


@st.cache_resource
def get_notifications() -> NotificationService:
    return NotificationService()


def get_actor() -> str:
    """Operator name entered in the sidebar."""
    return st.session_state.get("operator", "") or "admin"


def allocator_settings() -> AllocatorSettings:
    return AllocatorSettings(
        allow_blanket_match=st.session_state.get("allow_blanket_match", True),
        allow_unmatched=st.session_state.get("allow_unmatched", True),
    )


def flat_service() -> FlatService:
    return FlatService(get_store())


def config_service() -> ConfigurationService:
    return ConfigurationService(get_store())


def bill_service() -> BillService:
    return BillService(get_store(), notifications=get_notifications())


def payment_service() -> PaymentService:
    return PaymentService(get_store(), settings=allocator_settings(), notifications=get_notifications())


def report_service() -> ReportService:
    return ReportService(get_store())


def import_service() -> ImportService:
    return ImportService(get_store())


def show_event(event: BillingEvent):
    """Render a billing event with the matching Streamlit message."""
    if event.outcome == Outcome.OK:
        st.success(event.message)
    elif event.outcome == Outcome.UNMATCHED_PAYMENT:
        st.warning(event.message)
    else:
        st.error(f"{event.outcome.value.replace('_', ' ').title()}: {event.message}")


def show_error(error: SocietyBillingException):
    """Render a billing exception as its typed event."""
    show_event(BillingEvent(
        outcome=NotificationService.outcome_for(error),
        message=error.message,
        flat_number=error.flat_number,
        period=error.period,
        head=error.head,
    ))
