"""
Shared sidebar renderer for all pages.
Shows the society name, the operator name used for the audit trail and
the allocator switches.
"""

import streamlit as st

from utils.app_context import config_service, get_notifications, payment_service


def render_sidebar():
    """Render the common sidebar on every page."""
    with st.sidebar:
        info = config_service().get_society_info()
        st.markdown(f"## {info.name if info else 'SocietyCore Billing'}")
        if info and info.registration_number:
            st.caption(f"Reg. No. {info.registration_number}")
        st.markdown("---")

        st.text_input("Operator", key="operator", placeholder="admin")

        with st.expander("Payment matching"):
            st.checkbox("Match undated payments to all bills", value=True, key="allow_blanket_match",
                        help="Used only when a payment has no period and no bill exists for its month.")
            st.checkbox("Accept unmatched payments as credit", value=True, key="allow_unmatched",
                        help="Otherwise a payment that matches no bill is rejected.")

        open_items = payment_service().get_review_items()
        if open_items:
            st.warning(f"{len(open_items)} payment(s) awaiting review")

        latest = get_notifications().latest()
        if latest:
            st.markdown("---")
            st.caption(f"Last event: {latest.message}")
