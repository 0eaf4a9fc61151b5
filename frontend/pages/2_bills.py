import sys
from pathlib import Path

APP_DIR = Path(__file__).resolve().parent.parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import streamlit as st

from utils.api_client import ApiClient, cached_registrations, error_message
from utils.theme import apply_theme, get_colors, kpi_tile, money, render_sidebar_settings, section_title

st.set_page_config(page_title="Bills", page_icon="🧾", layout="wide")
apply_theme()
render_sidebar_settings()
COLORS = get_colors()

client = ApiClient()

st.markdown(
    f"""
    <div style="margin-bottom:4px;">
        <span style="font-size:1.6rem;font-weight:800;color:{COLORS['text']};">🧾 Bills</span>
    </div>
    <p style="color:{COLORS['text_muted']};margin-top:0;">
        Select registrations to see totals and print their bills into one PDF.
    </p>
    """,
    unsafe_allow_html=True,
)

ok, listing = cached_registrations(1, 100)
if not ok or not listing.get("registrations"):
    st.info("No registrations available.")
    st.stop()

labels = {
    f"#{row['id']} · {row.get('patient_name', '')} · {money(row.get('test_total'))}": row["id"]
    for row in listing["registrations"]
}
chosen = st.multiselect("Registrations", list(labels))
registration_ids = [labels[label] for label in chosen]

if not registration_ids:
    st.stop()

section_title("Totals")
res = client.bill_totals(registration_ids)
if not res.ok:
    st.error(error_message(res))
    st.stop()
totals = res.json()["data"]

cols = st.columns(4)
tiles = [
    ("Total", money(totals["totalAmount"]), COLORS["primary"]),
    ("Paid", money(totals["totalPaid"]), COLORS["success"]),
    ("Discount", money(totals["totalDiscount"]), COLORS["accent"]),
    ("Remaining", money(totals["remaining"]), COLORS["danger"] if totals["remaining"] > 0 else COLORS["success"]),
]
for col, (label, value, color) in zip(cols, tiles):
    col.markdown(kpi_tile(label, value, color), unsafe_allow_html=True)

st.markdown("<div style='height:16px'></div>", unsafe_allow_html=True)
if st.button("Generate bills PDF", type="primary", use_container_width=True):
    with st.spinner("Printing bills..."):
        res = client.bills_pdf(registration_ids)
    if res.ok:
        st.download_button("Download bills", data=res.content, file_name="Bills.pdf", mime="application/pdf",
                           use_container_width=True)
    else:
        st.error(error_message(res))
