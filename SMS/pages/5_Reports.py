"""
Reports Page - Outstanding by head, period collection, payments register.
"""

import streamlit as st
from datetime import date

from utils.app_context import report_service, show_error
from utils.exceptions import SocietyBillingException
from utils.sidebar import render_sidebar
from utils.formatters import format_currency, format_period
from utils.helpers import NumberUtils, PeriodUtils

render_sidebar()

st.title("Reports")
st.markdown("---")

tab_outstanding, tab_collection, tab_payments = st.tabs(["Outstanding", "Collection", "Payments"])

periods = [PeriodUtils.add_months(PeriodUtils.from_date(date.today()), 1 - i) for i in range(0, 24)]

# ===========================
# TAB 1 - Outstanding by head
# ===========================
with tab_outstanding:
    st.subheader("Outstanding by Head")
    as_of = st.selectbox("Unpaid from bills before", periods, format_func=format_period, key="rpt_as_of")
    try:
        df = report_service().outstanding_report(as_of)
        if df.empty:
            st.info("No flats registered yet.")
        else:
            c1, c2, c3 = st.columns(3)
            c1.metric("Total outstanding", format_currency(NumberUtils.total(df["total"])))
            c2.metric("Previous dues", format_currency(NumberUtils.total(df["legacy"])))
            c3.metric("Advance credit held", format_currency(NumberUtils.total(df["advance_credit"])))

            defaulters = df[df["total"] > 0]
            st.markdown(f"#### {len(defaulters)} flat(s) with dues")
            st.dataframe(df, use_container_width=True, hide_index=True)

            csv = df.to_csv(index=False)
            st.download_button("Download (CSV)", csv, file_name=f"outstanding_{as_of}.csv", mime="text/csv")
    except SocietyBillingException as e:
        show_error(e)

# ===========================
# TAB 2 - Collection for a period
# ===========================
with tab_collection:
    st.subheader("Period Collection")
    coll_period = st.selectbox("Bill month", periods[1:], format_func=format_period, key="rpt_period")
    try:
        df = report_service().collection_summary(coll_period)
        if df.empty:
            st.info(f"No bills for {format_period(coll_period)}.")
        else:
            billed = NumberUtils.total(df["total_amount"])
            paid = NumberUtils.total(df["paid_amount"])
            c1, c2, c3 = st.columns(3)
            c1.metric("Billed", format_currency(billed))
            c2.metric("Collected", format_currency(paid))
            c3.metric("Balance", format_currency(NumberUtils.total(df["balance"])))

            st.markdown("#### Bill Status")
            st.bar_chart(df.groupby("status")["bill_number"].count())
            st.dataframe(df, use_container_width=True, hide_index=True)

            csv = df.to_csv(index=False)
            st.download_button("Download (CSV)", csv, file_name=f"collection_{coll_period}.csv", mime="text/csv")
    except SocietyBillingException as e:
        show_error(e)

# ===========================
# TAB 3 - Payments register
# ===========================
with tab_payments:
    st.subheader("Payments Register")
    c1, c2 = st.columns(2)
    start = c1.date_input("From", value=date.today().replace(day=1), key="rpt_from")
    end = c2.date_input("To", value=date.today(), key="rpt_to")
    include_voided = st.checkbox("Include reversed payments", key="rpt_voided")

    df = report_service().payments_report(start, end, include_voided=include_voided)
    if df.empty:
        st.info("No payments in this range.")
    else:
        st.metric("Received", format_currency(NumberUtils.total(df[df["status"] == "active"]["amount"])))
        st.dataframe(df, use_container_width=True, hide_index=True)

        st.markdown("#### By Head")
        heads = report_service().head_collection(start, end)
        heads["amount"] = heads["amount"].astype(float)
        st.bar_chart(heads.set_index("head")["amount"])

        csv = df.to_csv(index=False)
        st.download_button("Download Full Report (CSV)", csv, file_name="payments_report.csv", mime="text/csv")
