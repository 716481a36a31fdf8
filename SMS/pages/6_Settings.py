"""
Settings Page - Charge configuration, society details and data migration.
"""

import streamlit as st
from decimal import Decimal

from core.models.entities import BILL_HEADS, ChargeConfiguration, SocietyInfo
from core.services.configuration_service import RATE_FIELDS
from utils.app_context import bill_service, config_service, get_actor, import_service, show_error
from utils.exceptions import SocietyBillingException
from utils.sidebar import render_sidebar
from utils.formatters import format_date, head_label, to_decimal

render_sidebar()

st.title("Settings")
st.markdown("---")

tab_charges, tab_society, tab_migrate = st.tabs(["Charges", "Society", "Migration"])

# ===========================
# TAB 1 - Charge configuration
# ===========================
with tab_charges:
    st.subheader("Charge Configuration")
    current = config_service().find_charge_configuration() or ChargeConfiguration()
    if current.last_updated:
        st.caption(f"Last updated {format_date(current.last_updated)}")
    else:
        st.warning("No charge configuration saved yet. Bills cannot be generated until it is.")

    with st.form("charges_form"):
        values = {}
        cols = st.columns(2)
        for i, field_name in enumerate(RATE_FIELDS):
            values[field_name] = cols[i % 2].number_input(
                field_name.replace("_", " ").title() + " (INR)",
                min_value=0.0, step=10.0, format="%.2f",
                value=float(getattr(current, field_name)), key=f"cfg_{field_name}",
            )
        c1, c2 = st.columns(2)
        interest = c1.number_input("Interest rate (%)", min_value=0.0, step=0.5,
                                   value=float(current.interest_rate), key="cfg_interest")
        due_day = c2.number_input("Due day of month", min_value=1, max_value=31, step=1,
                                  value=current.due_day, key="cfg_due_day")
        st.caption("Occupancy charges apply to tenant/renter flats, non-occupancy charges to vacant flats.")
        cfg_submitted = st.form_submit_button("Save Configuration", use_container_width=True)

    if cfg_submitted:
        try:
            config = ChargeConfiguration(
                **{name: to_decimal(value) for name, value in values.items()},
                interest_rate=Decimal(str(interest)),
                due_day=int(due_day),
            )
            config_service().save_charge_configuration(config, actor=get_actor())
            st.success("Charge configuration saved. New rates apply to bills generated from now on.")
        except SocietyBillingException as e:
            show_error(e)

# ===========================
# TAB 2 - Society info
# ===========================
with tab_society:
    st.subheader("Society Details")
    info = config_service().get_society_info() or SocietyInfo()
    with st.form("society_form"):
        soc_name = st.text_input("Society name", value=info.name)
        soc_reg = st.text_input("Registration number", value=info.registration_number or "")
        soc_address = st.text_area("Address", value=info.address or "")
        c1, c2 = st.columns(2)
        soc_email = c1.text_input("Contact email", value=info.contact_email or "")
        soc_phone = c2.text_input("Contact phone", value=info.contact_phone or "")
        soc_submitted = st.form_submit_button("Save Details", use_container_width=True)

    if soc_submitted:
        try:
            config_service().save_society_info(SocietyInfo(
                name=soc_name,
                registration_number=soc_reg or None,
                address=soc_address or None,
                contact_email=soc_email or None,
                contact_phone=soc_phone or None,
            ), actor=get_actor())
            st.success("Society details saved.")
        except SocietyBillingException as e:
            show_error(e)

# ===========================
# TAB 3 - Migration
# ===========================
with tab_migrate:
    st.subheader("Import Snapshot")
    st.caption("Loads flats, bills, payments and configuration exported from the old app into an empty store. "
               "Payments are re-applied in date order.")
    upload = st.file_uploader("Snapshot (JSON)", type=["json"], key="snapshot_file")
    if upload is not None and st.button("Import", key="snapshot_import"):
        try:
            summary = import_service().import_json(upload.getvalue().decode("utf-8"), actor=get_actor())
            st.success(f"Imported {summary.flats} flat(s), {summary.bills} bill(s), {summary.payments} payment(s).")
            if summary.review_items:
                st.warning(f"{summary.review_items} payment(s) matched no bill and are queued for review.")
            for warning in summary.warnings:
                st.caption(warning)
        except SocietyBillingException as e:
            show_error(e)

    st.markdown("---")
    st.subheader("Backfill Head Charges")
    st.caption("Bills from before head-wise tracking have only a total. Enter the per-head amounts "
               "those bills charged each month; they must add up to each bill's own charges.")
    with st.form("backfill_form"):
        defaults = {}
        cols = st.columns(2)
        for i, head in enumerate(BILL_HEADS):
            defaults[head] = cols[i % 2].number_input(head_label(head), min_value=0.0, step=10.0,
                                                      format="%.2f", key=f"bf_{head.value}")
        bf_submitted = st.form_submit_button("Backfill bills")
    if bf_submitted:
        try:
            filled = bill_service().backfill_base_charges(
                {head: to_decimal(value) for head, value in defaults.items()}, actor=get_actor()
            )
            st.success(f"{len(filled)} bill(s) updated.")
        except SocietyBillingException as e:
            show_error(e)
