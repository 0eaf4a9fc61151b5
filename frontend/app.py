import sys
from pathlib import Path

APP_DIR = Path(__file__).resolve().parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import streamlit as st
from utils.api_client import cached_registrations
from utils.theme import apply_theme, get_colors, kpi_tile, money, render_sidebar_settings, section_title

st.set_page_config(
    page_title="Pathology Lab Reports",
    page_icon="🧪",
    layout="wide",
    initial_sidebar_state="expanded",
)
apply_theme()
render_sidebar_settings()
COLORS = get_colors()

st.markdown(
    f"""
    <div style="margin-bottom:8px;">
        <span style="font-size:1.8rem;font-weight:800;color:{COLORS['text']};">Pathology Lab Reports</span>
    </div>
    <p style="color:{COLORS['text_muted']};margin-top:0;">
        Recent registrations. Use <b>Download Report</b> for report PDFs and <b>Bills</b> for billing.
    </p>
    """,
    unsafe_allow_html=True,
)

if "page" not in st.session_state:
    st.session_state.page = 1

ok, data = cached_registrations(st.session_state.page, 20)
if not ok:
    st.error("Could not reach the report service.")
    st.stop()

registrations = data.get("registrations", [])
pending = sum(1 for row in registrations if len(row.get("entered_tests", [])) < len(row.get("tests", [])))
outstanding = sum(max(row.get("remaining", 0), 0) for row in registrations)

cols = st.columns(3)
tiles = [
    ("Registrations", data.get("total", 0), COLORS["primary"]),
    ("Awaiting Results (this page)", pending, COLORS["danger"] if pending else COLORS["success"]),
    ("Outstanding (this page)", money(outstanding), COLORS["accent"]),
]
for col, (label, value, color) in zip(cols, tiles):
    col.markdown(kpi_tile(label, value, color), unsafe_allow_html=True)

section_title("Registrations")
if not registrations:
    st.info("No registrations yet.")
else:
    st.dataframe(
        [
            {
                "ID": row["id"],
                "Patient": f"{row.get('patient_name', '')} ({row.get('patient_code', '')})",
                "Doctor": row.get("doctor_name") or "-",
                "Registered": row.get("registration_time") or "-",
                "Tests": len(row.get("tests", [])),
                "Entered": len(row.get("entered_tests", [])),
                "Remaining": money(row.get("remaining")),
            }
            for row in registrations
        ],
        use_container_width=True,
        hide_index=True,
    )

prev_col, page_col, next_col = st.columns([1, 2, 1])
total_pages = max(1, -(-data.get("total", 0) // data.get("limit", 20)))
page_col.markdown(f"<div style='text-align:center'>Page {st.session_state.page} of {total_pages}</div>",
                  unsafe_allow_html=True)
if prev_col.button("Previous", disabled=st.session_state.page <= 1):
    st.session_state.page -= 1
    st.rerun()
if next_col.button("Next", disabled=st.session_state.page >= total_pages):
    st.session_state.page += 1
    st.rerun()
