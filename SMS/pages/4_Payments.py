"""
Payments Page - Record payments, print receipts, reverse or correct them,
and work through payments that matched no bill.
"""

import streamlit as st
import pandas as pd
from datetime import date

from core.models.entities import BILL_HEADS, Head, PaymentMode, PaymentStatus
from utils.app_context import flat_service, get_actor, payment_service, show_error
from utils.exceptions import SocietyBillingException
from utils.sidebar import render_sidebar
from utils.formatters import (
    breakdown_entries, format_currency, format_date, format_period, head_label, status_badge, to_decimal
)
from utils.helpers import PeriodUtils

render_sidebar()

st.title("Payments")
st.markdown("---")

tab_record, tab_history, tab_review = st.tabs(["Record Payment", "Receipts", "Review Queue"])

MODE_OPTIONS = [mode.value for mode in PaymentMode]
HEAD_OPTIONS = [head_label(head) for head in BILL_HEADS + (Head.LEGACY,)]
recent_periods = [PeriodUtils.add_months(PeriodUtils.from_date(date.today()), -i) for i in range(0, 24)]


def optional_range(label: str, key: str):
    """Optional inclusive month range picker; returns (from, to) or None."""
    enabled = st.checkbox(f"Pays {label} for a range of months", key=f"{key}_on")
    if not enabled:
        return None
    c1, c2 = st.columns(2)
    start = c1.selectbox("From", list(reversed(recent_periods)), format_func=format_period, key=f"{key}_from")
    end = c2.selectbox("To", recent_periods, format_func=format_period, key=f"{key}_to")
    return (start, end)


def show_receipt(payment_id: str):
    receipt = payment_service().get_receipt(payment_id)
    payment = receipt.payment
    with st.container(border=True):
        if receipt.society:
            st.markdown(f"### {receipt.society.name}")
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("Receipt #", payment.receipt_number)
        c2.metric("Flat", payment.flat_number)
        c3.metric("Amount", format_currency(payment.amount))
        c4.metric("Status", status_badge(payment.status.value))
        st.caption(f"{format_date(payment.date)} - {payment.mode.value.replace('_', ' ').title()}"
                   + (f" - Ref {payment.reference}" if payment.reference else ""))

        if receipt.allocations:
            st.dataframe(pd.DataFrame([{
                "Bill": a.bill_id or "",
                "Head": head_label(a.head) if a.head else a.kind.value.title(),
                "Amount": format_currency(a.amount),
            } for a in receipt.allocations]), use_container_width=True, hide_index=True)
        m1, m2, m3 = st.columns(3)
        m1.metric("Against bills", format_currency(receipt.charge_total))
        m2.metric("Previous dues", format_currency(receipt.legacy_total))
        m3.metric("Advance", format_currency(receipt.advance_total))

        versions = payment_service().get_receipt_history(payment.receipt_number)
        if len(versions) > 1:
            st.caption("Corrections of this receipt")
            st.dataframe(pd.DataFrame([{
                "Date": format_date(v.date),
                "Amount": format_currency(v.amount),
                "Reference": v.reference or "",
                "Status": status_badge(v.status.value),
            } for v in versions]), use_container_width=True, hide_index=True)


# ===========================
# TAB 1 - Record payment
# ===========================
with tab_record:
    st.subheader("Record Payment")
    flats = [f.flat_number for f in flat_service().list_flats()]
    if not flats:
        st.info("Register flats before recording payments.")
    else:
        c1, c2, c3 = st.columns(3)
        pay_flat = c1.selectbox("Flat", flats, key="pay_flat")
        pay_amount = c2.number_input("Amount (INR)", min_value=0.0, step=100.0, format="%.2f", key="pay_amount")
        pay_date = c3.date_input("Payment date", value=date.today(), key="pay_date")

        c4, c5 = st.columns(2)
        pay_mode = c4.selectbox("Mode", MODE_OPTIONS, format_func=lambda m: m.replace("_", " ").title(),
                                key="pay_mode")
        pay_reference = c5.text_input("Reference / cheque no.", key="pay_reference")

        st.markdown("**What does this payment cover?**")
        tag_period = st.checkbox("A single bill month", key="pay_tag_on")
        pay_period = st.selectbox("Bill month", recent_periods, format_func=format_period,
                                  key="pay_period") if tag_period else None
        pay_maintenance = optional_range("maintenance", "pay_maint")
        pay_parking = optional_range("parking", "pay_park")

        split = st.checkbox("Split by charge head", key="pay_split")
        breakdown = None
        if split:
            st.caption("Amounts must add up to the payment amount.")
            edited = st.data_editor(
                pd.DataFrame([{"Head": HEAD_OPTIONS[0], "Amount": 0.0}]),
                num_rows="dynamic", use_container_width=True, key="pay_breakdown",
                column_config={"Head": st.column_config.SelectboxColumn(options=HEAD_OPTIONS, required=True)},
            )
            breakdown = breakdown_entries(edited.to_dict("records"))

        pay_notes = st.text_area("Notes", key="pay_notes")

        if st.button("Record Payment", use_container_width=True, key="pay_submit"):
            if pay_amount <= 0:
                st.error("Amount must be greater than zero.")
            else:
                try:
                    outcome = payment_service().record_payment(
                        pay_flat,
                        to_decimal(pay_amount),
                        pay_date,
                        mode=PaymentMode(pay_mode),
                        head_breakdown=breakdown,
                        period=pay_period,
                        maintenance_period=pay_maintenance,
                        parking_period=pay_parking,
                        reference=pay_reference or None,
                        notes=pay_notes or None,
                        actor=get_actor(),
                    )
                    if outcome.unmatched:
                        st.warning("No bill matched this payment. It is held as credit and queued for review.")
                    elif outcome.blanket_match_used:
                        st.warning("The payment had no period and no bill for its month; "
                                   "it was applied to the oldest open bills.")
                    st.success(f"Receipt **{outcome.payment.receipt_number}** recorded.")
                    if outcome.affected_bills:
                        st.caption("Bills updated: " + ", ".join(
                            f"{b.bill_number} ({status_badge(b.status.value)})" for b in outcome.affected_bills))
                    show_receipt(outcome.payment.payment_id)
                except SocietyBillingException as e:
                    show_error(e)

# ===========================
# TAB 2 - Receipts, reversal and correction
# ===========================
with tab_history:
    st.subheader("Receipts")
    flats = [f.flat_number for f in flat_service().list_flats()]
    hist_flat = st.selectbox("Flat", flats, key="hist_flat")
    include_voided = st.checkbox("Show reversed payments", key="hist_voided")
    payments = payment_service().get_payments_for_flat(hist_flat, include_voided) if hist_flat else []

    if not payments:
        st.info("No payments recorded for this flat.")
    else:
        st.dataframe(pd.DataFrame([{
            "Receipt #": p.receipt_number,
            "Date": format_date(p.date),
            "Amount": format_currency(p.amount),
            "Mode": p.mode.value.replace("_", " ").title(),
            "Period": format_period(p.period) if p.period else "",
            "Status": status_badge(p.status.value),
        } for p in payments]), use_container_width=True, hide_index=True)

        chosen = st.selectbox("Payment", [p.payment_id for p in payments],
                              format_func=lambda pid: next(p.receipt_number for p in payments if p.payment_id == pid),
                              key="hist_payment")
        payment = next(p for p in payments if p.payment_id == chosen)
        show_receipt(chosen)

        if payment.status == PaymentStatus.ACTIVE:
            col_rev, col_edit = st.columns(2)
            with col_rev:
                with st.container(border=True):
                    st.markdown("#### Reverse")
                    st.caption("Removes exactly what this payment paid and marks the receipt reversed.")
                    if st.button("Reverse payment", key="hist_reverse"):
                        try:
                            affected = payment_service().reverse_payment(chosen, actor=get_actor())
                            st.success(f"Reversed. {len(affected)} bill(s) updated.")
                        except SocietyBillingException as e:
                            show_error(e)
            with col_edit:
                with st.container(border=True):
                    st.markdown("#### Correct")
                    with st.form("edit_payment_form"):
                        edit_amount = st.number_input("Amount (INR)", min_value=0.0, step=100.0, format="%.2f",
                                                      value=float(payment.amount))
                        edit_date = st.date_input("Payment date", value=payment.date)
                        edit_reference = st.text_input("Reference", value=payment.reference or "")
                        edit_submitted = st.form_submit_button("Save correction")
                    if edit_submitted:
                        try:
                            changes = {
                                "amount": to_decimal(edit_amount),
                                "payment_date": edit_date,
                                "reference": edit_reference or None,
                            }
                            if to_decimal(edit_amount) != payment.amount and payment.head_breakdown:
                                # The old split no longer adds up; allocate the corrected amount undivided
                                changes["head_breakdown"] = None
                            outcome = payment_service().edit_payment(chosen, actor=get_actor(), **changes)
                            st.success(f"Receipt {outcome.payment.receipt_number} corrected.")
                        except SocietyBillingException as e:
                            show_error(e)

# ===========================
# TAB 3 - Review queue
# ===========================
with tab_review:
    st.subheader("Payments Awaiting Review")
    items = payment_service().get_review_items()
    if not items:
        st.success("Nothing to review.")
    for item in items:
        with st.container(border=True):
            st.markdown(f"**Flat {item.flat_number}** - {item.reason}")
            st.caption(f"Payment {item.payment_id} - {format_date(item.created_at)}")
            if st.button("Mark reviewed", key=f"resolve_{item.review_id}"):
                try:
                    payment_service().resolve_review_item(item.review_id, actor=get_actor())
                    st.rerun()
                except SocietyBillingException as e:
                    show_error(e)
