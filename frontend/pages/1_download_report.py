import sys
from datetime import datetime
from pathlib import Path

APP_DIR = Path(__file__).resolve().parent.parent
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import streamlit as st

from utils.api_client import (
    ApiClient,
    cached_comparison_options,
    cached_registration,
    cached_registrations,
    error_message,
)
from utils.theme import apply_theme, get_colors, render_sidebar_settings, section_title

st.set_page_config(page_title="Download Report", page_icon="📄", layout="wide")
apply_theme()
render_sidebar_settings()
COLORS = get_colors()

client = ApiClient()

st.markdown(
    f"""
    <div style="margin-bottom:4px;">
        <span style="font-size:1.6rem;font-weight:800;color:{COLORS['text']};">📄 Download Report</span>
    </div>
    <p style="color:{COLORS['text_muted']};margin-top:0;">
        Pick the tests to print, how to lay them out, and which past results to compare.
    </p>
    """,
    unsafe_allow_html=True,
)

ok, listing = cached_registrations(1, 100)
if not ok or not listing.get("registrations"):
    st.info("No registrations available.")
    st.stop()

labels = {
    f"#{row['id']} · {row.get('patient_name', '')} · {row.get('registration_time') or '-'}": row["id"]
    for row in listing["registrations"]
}
registration_id = labels[st.selectbox("Registration", list(labels))]

ok, detail = cached_registration(registration_id)
if not ok:
    st.error("Could not load the registration.")
    st.stop()

patient = detail["patient"]
bloodtest: dict = patient.get("bloodtest", {})
printable = [
    key for key, test in bloodtest.items()
    if (test.get("type") or "").lower() != "outsource" and test.get("parameters")
]
names = {key: bloodtest[key].get("testName") or key.replace("_", " ") for key in bloodtest}

if not printable:
    st.warning("No in-house results have been entered for this registration yet.")
    st.stop()

# ── Options ───────────────────────────────────────────────────────────────
section_title("Layout")
mode = st.radio(
    "Report mode",
    ["normal", "combined", "comparison"],
    horizontal=True,
    format_func=lambda value: {
        "normal": "One test per page",
        "combined": "Several tests per page",
        "comparison": "Compare with past results",
    }[value],
)
c1, c2, c3 = st.columns(3)
include_letterhead = c1.checkbox("Letterhead", value=True)
include_cover = c2.checkbox("Cover page", value=False)
include_suggestions = c3.checkbox("Diet & exercise page", value=False)

selected = st.multiselect("Tests", printable, default=printable, format_func=names.get)

groups = []
if mode == "normal":
    with st.expander("Print tests together on one page"):
        group_count = st.number_input("Groups", min_value=0, max_value=5, value=0, step=1)
        for index in range(int(group_count)):
            members = st.multiselect(f"Group {index + 1}", selected, format_func=names.get, key=f"group_{index}")
            if members:
                groups.append({"id": f"group_{index + 1}", "name": f"Group {index + 1}", "tests": members})

comparison_selections = {}
if mode == "comparison":
    section_title("Comparison dates")
    ok, options = cached_comparison_options(registration_id)
    if not ok:
        st.error("Could not load past results.")
        st.stop()
    for key, selection in options.get("comparisonSelections", {}).items():
        if key not in selected:
            continue
        available = [item["date"] for item in selection.get("availableDates", [])]
        picked = st.multiselect(
            selection.get("testName") or names.get(key, key),
            available,
            default=[value for value in selection.get("selectedDates", []) if value in available],
            format_func=lambda value: datetime.fromisoformat(value).strftime("%d %b %Y, %I:%M %p"),
            key=f"compare_{key}",
        )
        comparison_selections[key] = {**selection, "selectedDates": picked}

# ── Generate ──────────────────────────────────────────────────────────────
options = {
    "selectedTests": selected,
    "combinedGroups": groups,
    "comparisonSelections": comparison_selections,
    "reportMode": mode,
    "includeLetterhead": include_letterhead,
    "skipCover": not include_cover,
    "includeSuggestions": include_suggestions,
}

if st.button("Generate PDF", type="primary", disabled=not selected, use_container_width=True):
    with st.spinner("Laying out the report..."):
        res = client.report_pdf(registration_id, options)
    if res.ok:
        st.session_state.report_pdf = res.content
        st.session_state.report_name = f"{patient.get('name', 'report')}_{registration_id}.pdf".replace(" ", "_")
    else:
        st.error(f"Report failed: {error_message(res)}")

if st.session_state.get("report_pdf"):
    st.download_button(
        "Download report",
        data=st.session_state.report_pdf,
        file_name=st.session_state.report_name,
        mime="application/pdf",
        use_container_width=True,
    )

# ── Times ─────────────────────────────────────────────────────────────────
with st.expander("Edit registration and sample times"):
    registration = detail["registration"]
    current = datetime.fromisoformat(registration["registration_time"]) if registration.get("registration_time") else datetime.now()
    t1, t2 = st.columns(2)
    reg_date = t1.date_input("Registration date", value=current.date())
    reg_time = t2.time_input("Registration time (UTC)", value=current.time())
    sample = registration.get("sample_collected_at")
    sample_current = datetime.fromisoformat(sample) if sample else current
    s1, s2 = st.columns(2)
    sample_date = s1.date_input("Sample collected date", value=sample_current.date())
    sample_time = s2.time_input("Sample collected time (UTC)", value=sample_current.time())
    if st.button("Save times"):
        res = client.update_times(
            registration_id,
            {
                "registration_time": datetime.combine(reg_date, reg_time).isoformat(),
                "sample_collected_at": datetime.combine(sample_date, sample_time).isoformat(),
            },
        )
        if res.ok:
            cached_registration.clear()
            cached_registrations.clear()
            st.success("Times updated.")
        else:
            st.error(error_message(res))
