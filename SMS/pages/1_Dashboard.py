"""
Dashboard Page - Collection status for the current period and recent activity.
"""

import streamlit as st
from datetime import date

from core.services.audit_service import AuditService
from db.record_store import MySQLRecordStore
from utils.app_context import get_store, payment_service, report_service, flat_service
from utils.sidebar import render_sidebar
from utils.formatters import format_currency, format_period
from utils.helpers import NumberUtils, PeriodUtils

render_sidebar()

st.title("Dashboard Overview")
period = PeriodUtils.from_date(date.today())
st.caption(f"Billing period: **{format_period(period)}**")
st.markdown("---")

try:
    flats = flat_service().list_flats()
    collection = report_service().collection_summary(period)
    outstanding = report_service().outstanding_report(PeriodUtils.add_months(period, 1))

    with st.container(border=True):
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("Flats", len(flats))
        c2.metric("Bills this month", len(collection))
        c3.metric("Collected", format_currency(NumberUtils.total(collection["paid_amount"])))
        c4.metric("Total outstanding", format_currency(NumberUtils.total(outstanding["total"])))

    st.markdown("---")
    col_left, col_right = st.columns([1.5, 1])

    with col_left:
        st.subheader("This month's bills")
        if collection.empty:
            st.info("No bills generated for this period yet.")
        else:
            status_counts = collection.groupby("status")["bill_number"].count()
            st.bar_chart(status_counts)
            st.dataframe(collection, use_container_width=True, hide_index=True)

    with col_right:
        st.subheader("Awaiting review")
        items = payment_service().get_review_items()
        if not items:
            st.success("No unmatched payments.")
        for item in items:
            st.markdown(f"- Flat **{item.flat_number}**: {item.reason}")

        st.subheader("Recent activity")
        for entry in AuditService(get_store()).get_latest_activity(10):
            st.caption(f"{entry['created_at'][:16].replace('T', ' ')} - {entry['actor']}: {entry['action']}")

        st.subheader("Storage")
        store = get_store()
        if isinstance(store, MySQLRecordStore):
            connected = store.db.db_config.test_connection()
            st.metric("Database", "Connected" if connected else "Disconnected")
        else:
            st.metric("Database", "In memory")
            st.caption("Set SMS_STORE=mysql to keep records between restarts.")

except Exception as e:
    st.error(f"{e}")
