"""
Palette, CSS injection and small HTML helpers for the report console.
"""

from __future__ import annotations

import streamlit as st

# ---------------------------------------------------------------------------
# Color palettes (light + dark)
# ---------------------------------------------------------------------------
COLORS_LIGHT: dict[str, str] = {
    "primary": "#003366",       # report navy
    "accent": "#1E4F91",        # bill header blue
    "danger": "#EF4444",
    "success": "#10B981",
    "text": "#1E293B",
    "text_muted": "#475569",
    "bg_card": "#FFFFFF",
    "bg_page": "#F8FAFC",
    "border": "#E2E8F0",
}

COLORS_DARK: dict[str, str] = {
    "primary": "#60A5FA",
    "accent": "#93C5FD",
    "danger": "#F87171",
    "success": "#34D399",
    "text": "#F1F5F9",
    "text_muted": "#94A3B8",
    "bg_card": "#1E293B",
    "bg_page": "#0F172A",
    "border": "#334155",
}


def get_colors() -> dict[str, str]:
    """Return the active palette based on ``st.session_state.dark_mode``."""
    if st.session_state.get("dark_mode", False):
        return COLORS_DARK
    return COLORS_LIGHT


_CSS_TEMPLATE = """
<style>
[data-testid="stAppViewContainer"] { background-color: %(bg_page)s; }
.section-title {
    font-size: 1.05rem; font-weight: 700; color: %(primary)s;
    border-bottom: 2px solid %(border)s; padding-bottom: 4px; margin: 18px 0 10px 0;
}
.kpi-tile {
    background: %(bg_card)s; border: 1px solid %(border)s; border-radius: 10px;
    padding: 14px 16px; text-align: center;
}
.kpi-value { font-size: 1.4rem; font-weight: 800; }
.kpi-label { font-size: 0.8rem; color: %(text_muted)s; text-transform: uppercase; }
</style>
"""


def apply_theme() -> None:
    """Inject global CSS into the page. Call once at the top of every page."""
    if "dark_mode" not in st.session_state:
        st.session_state.dark_mode = False
    st.markdown(_CSS_TEMPLATE % get_colors(), unsafe_allow_html=True)


def render_sidebar_settings() -> None:
    """Sidebar with the API location and the dark-mode toggle."""
    from utils.api_client import BASE_URL

    with st.sidebar:
        st.caption(f"API: {BASE_URL}")
        dark = st.toggle("Dark mode", value=st.session_state.get("dark_mode", False), key="dark_mode_toggle")
        if dark != st.session_state.get("dark_mode", False):
            st.session_state.dark_mode = dark
            st.rerun()


def kpi_tile(label: str, value: str | int | float, color: str) -> str:
    """Return HTML for a single KPI tile."""
    return (
        f'<div class="kpi-tile">'
        f'  <div class="kpi-value" style="color:{color};">{value}</div>'
        f'  <div class="kpi-label">{label}</div>'
        f'</div>'
    )


def section_title(text: str) -> None:
    st.markdown(f'<div class="section-title">{text}</div>', unsafe_allow_html=True)


def money(value: float | int | None) -> str:
    return f"₹{float(value or 0):,.2f}"
