"""
Flats Page - Register flats, update tenancy and parking, import opening dues.
"""

import streamlit as st
import pandas as pd

from core.models.entities import OccupancyStatus, ParkingSlots
from utils.app_context import flat_service, get_actor, show_error
from utils.exceptions import SocietyBillingException
from utils.sidebar import render_sidebar
from utils.formatters import format_currency, format_date, to_decimal

render_sidebar()

st.title("Flats")
st.markdown("---")

tab_list, tab_register, tab_update, tab_import = st.tabs(
    ["All Flats", "Register Flat", "Update Flat", "Opening Dues"]
)

STATUS_OPTIONS = [status.value for status in OccupancyStatus]

# ===========================
# TAB 1 - Flat list
# ===========================
with tab_list:
    flats = flat_service().list_flats()
    if not flats:
        st.info("No flats registered yet.")
    else:
        df = pd.DataFrame([{
            "Flat": f.flat_number,
            "Owner": f.owner_name,
            "Mobile": f.mobile or "",
            "Status": f.status.value.title(),
            "4W": f.parking.four_wheeler,
            "3W": f.parking.three_wheeler,
            "2W": f.parking.two_wheeler,
            "Opening Dues": format_currency(f.legacy_outstanding),
            "Since": format_date(f.created_at),
        } for f in flats])
        st.dataframe(df, use_container_width=True, hide_index=True)

# ===========================
# TAB 2 - Register
# ===========================
with tab_register:
    st.subheader("Register a Flat")
    with st.form("register_flat_form", clear_on_submit=True):
        c1, c2 = st.columns(2)
        reg_flat = c1.text_input("Flat Number", placeholder="A-101")
        reg_owner = c2.text_input("Owner Name")
        reg_mobile = c1.text_input("Mobile", placeholder="9876543210")
        reg_status = c2.selectbox("Occupancy", STATUS_OPTIONS, format_func=str.title)
        p1, p2, p3 = st.columns(3)
        reg_4w = p1.number_input("Four wheeler slots", min_value=0, step=1)
        reg_3w = p2.number_input("Three wheeler slots", min_value=0, step=1)
        reg_2w = p3.number_input("Two wheeler slots", min_value=0, step=1)
        reg_legacy = st.number_input("Opening outstanding (INR)", min_value=0.0, step=100.0, format="%.2f")
        reg_submitted = st.form_submit_button("Register", use_container_width=True)

    if reg_submitted:
        try:
            flat = flat_service().register_flat(
                flat_number=reg_flat,
                owner_name=reg_owner,
                status=OccupancyStatus(reg_status),
                mobile=reg_mobile or None,
                parking=ParkingSlots(int(reg_4w), int(reg_3w), int(reg_2w)),
                legacy_outstanding=to_decimal(reg_legacy),
                actor=get_actor(),
            )
            st.success(f"Flat **{flat.flat_number}** registered.")
        except SocietyBillingException as e:
            show_error(e)

# ===========================
# TAB 3 - Update
# ===========================
with tab_update:
    st.subheader("Update Flat")
    flats = flat_service().list_flats()
    if not flats:
        st.info("Register a flat first.")
    else:
        selected = st.selectbox("Flat", [f.flat_number for f in flats], key="upd_flat")
        flat = next(f for f in flats if f.flat_number == selected)
        with st.form("update_flat_form"):
            upd_owner = st.text_input("Owner Name", value=flat.owner_name)
            upd_mobile = st.text_input("Mobile", value=flat.mobile or "")
            upd_status = st.selectbox("Occupancy", STATUS_OPTIONS, index=STATUS_OPTIONS.index(flat.status.value),
                                      format_func=str.title)
            p1, p2, p3 = st.columns(3)
            upd_4w = p1.number_input("Four wheeler slots", min_value=0, step=1, value=flat.parking.four_wheeler)
            upd_3w = p2.number_input("Three wheeler slots", min_value=0, step=1, value=flat.parking.three_wheeler)
            upd_2w = p3.number_input("Two wheeler slots", min_value=0, step=1, value=flat.parking.two_wheeler)
            st.caption("Changes apply from the next bill generated for this flat.")
            upd_submitted = st.form_submit_button("Save Changes", use_container_width=True)

        if upd_submitted:
            try:
                flat_service().update_flat(
                    selected,
                    owner_name=upd_owner,
                    mobile=upd_mobile or None,
                    status=OccupancyStatus(upd_status),
                    parking=ParkingSlots(int(upd_4w), int(upd_3w), int(upd_2w)),
                    actor=get_actor(),
                )
                st.success(f"Flat **{selected}** updated.")
            except SocietyBillingException as e:
                show_error(e)

# ===========================
# TAB 4 - Member outstanding import
# ===========================
with tab_import:
    st.subheader("Import Opening Dues")
    st.caption("Sets the pre-system outstanding for flats that have no bills yet. "
               "Edit the table and import; the whole list is rejected if any flat already has bills.")
    seed = pd.DataFrame([{"flat_number": f.flat_number, "amount": float(f.legacy_outstanding)}
                         for f in flat_service().list_flats()])
    if seed.empty:
        seed = pd.DataFrame(columns=["flat_number", "amount"])
    edited = st.data_editor(seed, num_rows="dynamic", use_container_width=True, key="opening_dues")

    if st.button("Import Opening Dues", key="import_dues"):
        try:
            records = [
                {"flat_number": str(row["flat_number"]), "amount": to_decimal(row["amount"] or 0)}
                for row in edited.to_dict("records") if row.get("flat_number")
            ]
            count = flat_service().import_member_outstanding(records, actor=get_actor())
            st.success(f"Opening dues set for {count} flat(s).")
        except SocietyBillingException as e:
            show_error(e)
