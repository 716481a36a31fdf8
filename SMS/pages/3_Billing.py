"""
Billing Page - Generate monthly bills and view bill statements.
"""

import streamlit as st
import pandas as pd
from datetime import date

from utils.app_context import bill_service, flat_service, get_actor, show_error
from utils.exceptions import SocietyBillingException, DuplicatePeriodException
from utils.sidebar import render_sidebar
from utils.formatters import (
    amounts_table, format_currency, format_date, format_period, head_label, status_badge
)
from utils.helpers import PeriodUtils

render_sidebar()

st.title("Billing")
st.markdown("---")

tab_generate, tab_bills, tab_statement = st.tabs(["Generate", "Bills", "Statement"])

current_period = PeriodUtils.from_date(date.today())


def period_input(label: str, key: str) -> str:
    c1, c2 = st.columns(2)
    year = c1.number_input(f"{label} year", min_value=2000, max_value=2100, step=1,
                           value=int(current_period[:4]), key=f"{key}_year")
    month = c2.selectbox(f"{label} month", list(range(1, 13)), index=int(current_period[5:]) - 1,
                         format_func=lambda m: date(2000, m, 1).strftime("%B"), key=f"{key}_month")
    return f"{int(year):04d}-{int(month):02d}"


# ===========================
# TAB 1 - Generate
# ===========================
with tab_generate:
    st.subheader("Generate Bills")
    gen_period = period_input("Billing", "gen")
    st.caption(f"Bills for **{format_period(gen_period)}** carry forward every unpaid head from earlier months.")

    col_all, col_one = st.columns(2)

    with col_all:
        with st.container(border=True):
            st.markdown("#### All flats")
            if st.button("Generate for all flats", use_container_width=True, key="gen_all"):
                try:
                    result = bill_service().generate_bills_for_period(gen_period, actor=get_actor())
                    st.success(f"{len(result.generated)} bill(s) generated.")
                    if result.skipped:
                        st.info(f"Already billed: {', '.join(result.skipped)}")
                except SocietyBillingException as e:
                    show_error(e)

    with col_one:
        with st.container(border=True):
            st.markdown("#### One flat")
            flats = [f.flat_number for f in flat_service().list_flats()]
            gen_flat = st.selectbox("Flat", flats, key="gen_flat")
            regenerate = st.checkbox("Replace an existing bill for this period", key="gen_regen")
            if st.button("Generate bill", use_container_width=True, key="gen_one", disabled=not flats):
                try:
                    bill = bill_service().generate_bill(gen_flat, gen_period, regenerate=regenerate,
                                                        actor=get_actor())
                    st.success(f"Bill **{bill.bill_number}** generated: {format_currency(bill.total_amount)}")
                except DuplicatePeriodException as e:
                    show_error(e)
                    st.info("Tick 'Replace an existing bill' to regenerate it.")
                except SocietyBillingException as e:
                    show_error(e)

# ===========================
# TAB 2 - Bills for a period
# ===========================
with tab_bills:
    st.subheader("Bills")
    view_period = period_input("View", "view")
    try:
        bills = bill_service().get_bills_for_period(view_period)
        if not bills:
            st.info(f"No bills for {format_period(view_period)}.")
        else:
            df = pd.DataFrame([{
                "Bill #": b.bill_number,
                "Flat": b.flat_number,
                "Current": format_currency(sum(b.base_charges.values()) if b.base_charges else 0),
                "Carried": format_currency(sum(b.outstanding_breakdown.values())),
                "Previous Dues": format_currency(b.legacy_outstanding),
                "Total": format_currency(b.total_amount),
                "Due": format_date(b.due_date),
                "Status": status_badge(b.status.value),
            } for b in bills])
            st.dataframe(df, use_container_width=True, hide_index=True)

            with st.expander("Delete a bill"):
                del_bill = st.selectbox("Bill", [b.bill_id for b in bills],
                                        format_func=lambda bid: next(b.bill_number for b in bills if b.bill_id == bid))
                if st.button("Delete bill", key="del_bill"):
                    try:
                        bill_service().delete_bill(del_bill, actor=get_actor())
                        st.success("Bill deleted.")
                    except SocietyBillingException as e:
                        show_error(e)
    except SocietyBillingException as e:
        show_error(e)

# ===========================
# TAB 3 - Statement
# ===========================
with tab_statement:
    st.subheader("Bill Statement")
    flats = [f.flat_number for f in flat_service().list_flats()]
    stmt_flat = st.selectbox("Flat", flats, key="stmt_flat")
    flat_bills = bill_service().get_bills_for_flat(stmt_flat) if stmt_flat else []

    if not flat_bills:
        st.info("No bills for this flat yet.")
    else:
        stmt_bill = st.selectbox("Period", [b.bill_id for b in reversed(flat_bills)],
                                 format_func=lambda bid: format_period(bid.rsplit("_", 1)[-1]))
        try:
            statement = bill_service().get_bill_statement(stmt_bill)
            bill = statement.bill

            with st.container(border=True):
                if statement.society:
                    st.markdown(f"### {statement.society.name}")
                    if statement.society.address:
                        st.caption(statement.society.address)
                c1, c2, c3, c4 = st.columns(4)
                c1.metric("Bill #", bill.bill_number)
                c2.metric("Period", format_period(bill.period))
                c3.metric("Due", format_date(bill.due_date))
                c4.metric("Status", status_badge(bill.status.value))
                if statement.flat:
                    st.caption(f"Flat {statement.flat.flat_number} - {statement.flat.owner_name}")

                left, right = st.columns(2)
                left.markdown("**Current charges**")
                left.table(amounts_table(statement.current_charges))
                right.markdown("**Carried forward**")
                carried = amounts_table(statement.carried_forward)
                if carried:
                    right.table(carried)
                else:
                    right.caption("Nothing carried forward.")

                m1, m2, m3, m4 = st.columns(4)
                m1.metric("Previous Dues", format_currency(statement.legacy_outstanding))
                m2.metric("Total", format_currency(statement.total_amount))
                m3.metric("Paid", format_currency(statement.paid_amount))
                m4.metric("Balance", format_currency(statement.balance))

            if statement.allocations:
                st.markdown("#### Payments applied")
                st.dataframe(pd.DataFrame([{
                    "Payment": a.payment_id,
                    "Head": head_label(a.head) if a.head else a.kind.value.title(),
                    "Amount": format_currency(a.amount),
                    "Matched by": a.match_rule.value.replace("_", " ") if a.match_rule else "",
                } for a in statement.allocations]), use_container_width=True, hide_index=True)
        except SocietyBillingException as e:
            show_error(e)
