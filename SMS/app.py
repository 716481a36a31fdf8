import streamlit as st

st.set_page_config(
    page_title="SocietyCore Billing",
    page_icon="🏢",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Ensure logs directory exists
import os
if not os.path.exists("logs"):
    os.makedirs("logs")

# --- NAVIGATION SETUP ---
main_pages = [
    st.Page("pages/1_Dashboard.py", title="Dashboard", default=True),
]

billing_pages = [
    st.Page("pages/2_Flats.py", title="Flats"),
    st.Page("pages/3_Billing.py", title="Billing"),
    st.Page("pages/4_Payments.py", title="Payments"),
]

admin_pages = [
    st.Page("pages/5_Reports.py", title="Reports"),
    st.Page("pages/6_Settings.py", title="Settings"),
]

pg = st.navigation({
    "Main": main_pages,
    "Billing": billing_pages,
    "Administration": admin_pages,
})
pg.run()
